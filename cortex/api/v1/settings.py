"""Business settings endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from cortex.core.dependencies import ServiceContainer, get_container
from cortex.core.exceptions import DatabaseError, ValidationError
from cortex.schemas.settings import SettingResponse, SettingUpdateRequest

router = APIRouter(tags=["settings"])


@router.put("/settings/{key}", response_model=SettingResponse)
def update_setting(
    key: str,
    payload: SettingUpdateRequest,
    container: ServiceContainer = Depends(get_container),
) -> SettingResponse:
    try:
        container.settings.update_setting(key, payload.value, updated_by=payload.updated_by)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DatabaseError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Settings store unavailable.") from exc
    return SettingResponse(key=key, value=payload.value)
