"""AgentLearningEvent: a human decision on an agent action, kept as signal.

Anonymization nulls athlete_id and action_id and scrubs the decision
context, leaving the aggregate decision/outcome pair.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.models.base import Base, generate_uuid, utcnow


class LearningEventType(str, enum.Enum):
    action_accepted = "action_accepted"
    action_rejected = "action_rejected"


class AgentLearningEvent(Base):
    __tablename__ = "agent_learning_events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    athlete_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("athletes.id", ondelete="CASCADE"), nullable=True, index=True
    )
    action_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("agent_actions.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[LearningEventType] = mapped_column(
        Enum(LearningEventType, native_enum=False), nullable=False, index=True
    )
    agent_decision: Mapped[dict] = mapped_column(JSON, nullable=False)
    actual_outcome: Mapped[dict] = mapped_column(JSON, nullable=False)
    context_at_decision: Mapped[dict] = mapped_column(JSON, nullable=False)
    anonymized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
