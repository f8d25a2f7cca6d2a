"""Operator actions on leads for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from cortex.core.dependencies import ServiceContainer, get_container
from cortex.core.exceptions import MessagingError, NotFoundError, ValidationError
from cortex.schemas.leads import AIPauseRequest, HumanMessageRequest, LeadResponse

router = APIRouter(tags=["leads"])


@router.post("/leads/{lead_id}/ai-pause", response_model=LeadResponse)
def set_ai_pause(
    lead_id: str,
    payload: AIPauseRequest,
    container: ServiceContainer = Depends(get_container),
) -> LeadResponse:
    try:
        lead = container.intervention.set_ai_paused(lead_id, payload.paused)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return LeadResponse.model_validate(lead)


@router.post("/leads/{lead_id}/messages", status_code=status.HTTP_201_CREATED)
def send_human_message(
    lead_id: str,
    payload: HumanMessageRequest,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    try:
        return container.intervention.send_human_message(lead_id, payload.content, agent=payload.agent)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MessagingError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
