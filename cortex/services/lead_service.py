"""Lead persistence: resolve-or-create, profile merge, status and operator actions."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cortex.core.exceptions import DatabaseError, NotFoundError, ValidationError
from cortex.models.base import utcnow
from cortex.models.enums import LeadStatus, MessageRole
from cortex.models.lead import Lead
from cortex.services.base_service import BaseService

logger = logging.getLogger(__name__)

PROFILE_SCALAR_FIELDS = ("name", "company", "role", "industry", "location", "contact_reason")
PROFILE_LIST_FIELDS = ("pain_points",)


def merge_profile(current: dict[str, Any] | None, updates: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge for scalars, ordered set-union for lists; never drops keys."""
    merged = copy.deepcopy(current or {})
    for key, value in updates.items():
        if value is None or value == "" or value == []:
            continue
        if key in PROFILE_LIST_FIELDS or isinstance(value, (list, tuple)):
            existing = merged.get(key) or []
            if not isinstance(existing, list):
                existing = [existing]
            combined = list(existing)
            for item in value:
                if item not in combined:
                    combined.append(item)
            merged[key] = combined
        else:
            merged[key] = value
    return merged


class LeadService(BaseService):
    def resolve_or_create(self, sender_id: str, display_name: str | None = None) -> tuple[Lead, bool]:
        """Return ``(lead, created)`` for ``sender_id``.

        A concurrent insert for the same sender surfaces as ``IntegrityError``
        and is recovered by re-reading the winner's row.
        """
        try:
            with self.session() as db:
                lead = db.scalar(select(Lead).where(Lead.sender_id == sender_id))
                if lead is not None:
                    lead.last_active_at = utcnow()
                    self.commit(db)
                    return lead, False

                profile = {"name": display_name} if display_name else {}
                lead = Lead(sender_id=sender_id, profile=profile, status=LeadStatus.NEW)
                db.add(lead)
                try:
                    self.commit(db)
                except IntegrityError:
                    existing = db.scalar(select(Lead).where(Lead.sender_id == sender_id))
                    if existing is None:
                        raise
                    logger.info(
                        "lead.create_race_recovered",
                        extra={"event": "lead.create_race_recovered", "lead_id": existing.id},
                    )
                    return existing, False

                logger.info("lead.created", extra={"event": "lead.created", "lead_id": lead.id})
                return lead, True
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to resolve lead for sender: {exc}") from exc

    def get(self, lead_id: str) -> Lead:
        with self.session() as db:
            lead = db.get(Lead, lead_id)
            if lead is None:
                raise NotFoundError(f"Lead {lead_id} not found.")
            return lead

    def get_by_sender(self, sender_id: str) -> Lead | None:
        with self.session() as db:
            return db.scalar(select(Lead).where(Lead.sender_id == sender_id))

    def update_profile(self, lead_id: str, updates: dict[str, Any], lead_score: int | None = None) -> dict[str, Any]:
        """Merge ``updates`` into the stored profile; returns the merged profile."""
        if lead_score is not None and not 0 <= lead_score <= 100:
            raise ValidationError("lead_score must be between 0 and 100.")
        try:
            with self.session() as db:
                lead = db.get(Lead, lead_id, with_for_update=True)
                if lead is None:
                    raise NotFoundError(f"Lead {lead_id} not found.")
                lead.profile = merge_profile(lead.profile, updates)
                if lead_score is not None:
                    lead.lead_score = lead_score
                self.commit(db)
                return lead.profile
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to update lead profile: {exc}") from exc

    def update_status(self, lead_id: str, status: LeadStatus) -> Lead:
        try:
            with self.session() as db:
                lead = db.get(Lead, lead_id)
                if lead is None:
                    raise NotFoundError(f"Lead {lead_id} not found.")
                lead.status = status
                self.commit(db)
                return lead
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to update lead status: {exc}") from exc

    def set_ai_paused(self, lead_id: str, paused: bool) -> Lead:
        try:
            with self.session() as db:
                lead = db.get(Lead, lead_id)
                if lead is None:
                    raise NotFoundError(f"Lead {lead_id} not found.")
                lead.ai_paused = paused
                self.commit(db)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to toggle AI pause: {exc}") from exc

        logger.info("lead.ai_paused", extra={"event": "lead.ai_paused", "lead_id": lead_id, "paused": paused})
        return lead

    def update_summary(self, lead_id: str, summary: str) -> None:
        try:
            with self.session() as db:
                lead = db.get(Lead, lead_id)
                if lead is None:
                    raise NotFoundError(f"Lead {lead_id} not found.")
                lead.conversation_summary = summary
                self.commit(db)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to store conversation summary: {exc}") from exc

    def delete(self, lead_id: str) -> bool:
        """Hard delete; cascades to messages and appointments. Test tooling only."""
        with self.session() as db:
            lead = db.get(Lead, lead_id)
            if lead is None:
                return False
            db.delete(lead)
            self.commit(db)
            return True

    def list_leads(self, statuses: Iterable[LeadStatus] | None = None) -> list[Lead]:
        stmt = select(Lead).order_by(Lead.last_active_at.desc())
        if statuses:
            stmt = stmt.where(Lead.status.in_(tuple(statuses)))
        with self.session() as db:
            return list(db.scalars(stmt).all())


class InterventionService:
    """Operator actions taken on behalf of a human agent."""

    def __init__(self, leads: LeadService, messages, messenger, audit) -> None:
        self.leads = leads
        self.messages = messages
        self.messenger = messenger
        self.audit = audit

    def set_ai_paused(self, lead_id: str, paused: bool) -> Lead:
        lead = self.leads.set_ai_paused(lead_id, paused)
        self.audit.record("ai_pause_toggled", {"paused": paused}, lead_id=lead_id)
        return lead

    def send_human_message(self, lead_id: str, content: str, agent: str | None = None) -> dict[str, Any]:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required.")

        lead = self.leads.get(lead_id)
        message = self.messages.record(lead.id, MessageRole.HUMAN_AGENT, content)
        self.messenger.send(lead.sender_id, content)
        self.audit.record(
            "human_intervention",
            {"message_id": message.id, "content_length": len(content), "agent": agent},
            lead_id=lead.id,
        )
        return {"message_id": message.id, "lead_id": lead.id, "sent": True}
