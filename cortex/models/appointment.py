"""Appointment model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cortex.models.base import AuditMixin, Base, UTCDateTime, UUIDPrimaryKeyMixin, enum_values
from cortex.models.enums import AppointmentStatus


class Appointment(Base, UUIDPrimaryKeyMixin, AuditMixin):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_start", "start_time"),
        Index("idx_appointments_status_start", "status", "start_time"),
    )

    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, native_enum=False, length=20, values_callable=enum_values),
        default=AppointmentStatus.UNCONFIRMED,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    lead = relationship("Lead", back_populates="appointments")
