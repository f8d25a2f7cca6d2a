"""Lead model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Enum, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cortex.models.base import Base, CreatedAtMixin, UTCDateTime, UUIDPrimaryKeyMixin, enum_values, utcnow
from cortex.models.enums import LeadStatus


class Lead(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    __tablename__ = "leads"
    __table_args__ = (Index("idx_leads_status", "status"),)

    sender_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[LeadStatus] = mapped_column(
        Enum(LeadStatus, native_enum=False, length=20, values_callable=enum_values),
        default=LeadStatus.NEW,
        nullable=False,
    )
    lead_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ai_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    conversation_summary: Mapped[str | None] = mapped_column(Text)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    messages = relationship(
        "Message",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )
    appointments = relationship(
        "Appointment",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
