"""SQLAlchemy model package for the conversation schema."""

from cortex.models.appointment import Appointment
from cortex.models.audit_log import AuditLog
from cortex.models.base import Base
from cortex.models.business_setting import BusinessSetting
from cortex.models.enums import (
    ACTIVE_APPOINTMENT_STATUSES,
    AppointmentStatus,
    CheckpointStatus,
    EventStatus,
    LeadStatus,
    MessageRole,
)
from cortex.models.lead import Lead
from cortex.models.message import Message
from cortex.models.pipeline import InboundEvent, PipelineCheckpoint

__all__ = [
    "ACTIVE_APPOINTMENT_STATUSES",
    "Appointment",
    "AppointmentStatus",
    "AuditLog",
    "Base",
    "BusinessSetting",
    "CheckpointStatus",
    "EventStatus",
    "InboundEvent",
    "Lead",
    "LeadStatus",
    "Message",
    "MessageRole",
    "PipelineCheckpoint",
]
