"""Inbound event and checkpoint models backing the durable pipeline."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Enum, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cortex.models.base import AuditMixin, Base, UTCDateTime, UUIDPrimaryKeyMixin, enum_values
from cortex.models.enums import CheckpointStatus, EventStatus


class InboundEvent(Base, UUIDPrimaryKeyMixin, AuditMixin):
    __tablename__ = "inbound_events"
    __table_args__ = (Index("idx_inbound_events_status_updated", "status", "updated_at"),)

    external_message_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus, native_enum=False, length=20, values_callable=enum_values),
        default=EventStatus.RECEIVED,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lead_id: Mapped[str | None] = mapped_column(String(36))
    result: Mapped[dict | None] = mapped_column(JSON)
    error: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())


class PipelineCheckpoint(Base, UUIDPrimaryKeyMixin, AuditMixin):
    __tablename__ = "pipeline_checkpoints"
    __table_args__ = (UniqueConstraint("event_id", "step", name="uq_pipeline_checkpoints_event_step"),)

    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    step: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[CheckpointStatus] = mapped_column(
        Enum(CheckpointStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
    )
    result: Mapped[dict | None] = mapped_column(JSON)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error: Mapped[str | None] = mapped_column(Text)
