"""Append-only conversation log."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cortex.core.exceptions import DatabaseError
from cortex.models.enums import MessageRole
from cortex.models.message import Message
from cortex.services.base_service import BaseService

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    MessageRole.USER: "Usuario",
    MessageRole.ASSISTANT: "Asistente (Tú)",
    MessageRole.HUMAN_AGENT: "Agente Humano",
    MessageRole.SYSTEM: "Sistema",
}


def history_lines(messages: list[Message]) -> list[str]:
    """One role-labelled line per message; embedded newlines are flattened."""
    return [f"{ROLE_LABELS.get(msg.role, msg.role.value)}: {' '.join(msg.content.split())}" for msg in messages]


class MessageService(BaseService):
    def record(
        self,
        lead_id: str,
        role: MessageRole,
        content: str,
        external_message_id: str | None = None,
    ) -> Message:
        """Append a message; an already-stored ``external_message_id`` returns the existing row."""
        try:
            with self.session() as db:
                if external_message_id:
                    existing = db.scalar(select(Message).where(Message.external_message_id == external_message_id))
                    if existing is not None:
                        return existing

                message = Message(
                    lead_id=lead_id,
                    role=role,
                    content=content,
                    external_message_id=external_message_id,
                )
                db.add(message)
                try:
                    self.commit(db)
                except IntegrityError:
                    if not external_message_id:
                        raise
                    existing = db.scalar(select(Message).where(Message.external_message_id == external_message_id))
                    if existing is None:
                        raise
                    return existing
                return message
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to record {role.value} message: {exc}") from exc

    def recent(self, lead_id: str, limit: int = 20) -> list[Message]:
        """The ``limit`` most recent messages, oldest first."""
        stmt = (
            select(Message)
            .where(Message.lead_id == lead_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        with self.session() as db:
            rows = list(db.scalars(stmt).all())
        rows.reverse()
        return rows

    def count(self, lead_id: str) -> int:
        with self.session() as db:
            return db.scalar(select(func.count(Message.id)).where(Message.lead_id == lead_id)) or 0
