"""Message model module."""

from __future__ import annotations

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cortex.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin, enum_values
from cortex.models.enums import MessageRole


class Message(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_lead_created", "lead_id", "created_at"),)

    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[MessageRole] = mapped_column(
        Enum(MessageRole, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    external_message_id: Mapped[str | None] = mapped_column(String(128), unique=True)

    lead = relationship("Lead", back_populates="messages")
