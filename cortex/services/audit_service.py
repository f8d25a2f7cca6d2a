"""Append-only audit trail writer."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from cortex.models.audit_log import AuditLog
from cortex.services.base_service import BaseService

logger = logging.getLogger(__name__)


class AuditService(BaseService):
    def record(
        self,
        event_type: str,
        payload: dict[str, Any] | None = None,
        lead_id: str | None = None,
        latency_ms: int = 0,
        model_used: str | None = None,
    ) -> bool:
        """Write one audit row; a failed write is logged and reported as ``False``."""
        try:
            with self.session() as db:
                db.add(
                    AuditLog(
                        lead_id=lead_id,
                        event_type=event_type,
                        payload=payload or {},
                        latency_ms=max(0, int(latency_ms)),
                        model_used=model_used,
                    )
                )
                self.commit(db)
            return True
        except SQLAlchemyError:
            logger.exception(
                "audit.write_failed",
                extra={"event": "audit.write_failed", "event_type": event_type, "lead_id": lead_id},
            )
            return False
