import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, generate_uuid


class ConsentCategory(str, enum.Enum):
    data_processing = "data_processing"
    health_data_processing = "health_data_processing"
    automated_decisions = "automated_decisions"
    learning_contribution = "learning_contribution"
    anonymized_research = "anonymized_research"


CURRENT_CONSENT_VERSION = "1.0"


class AgentConsent(TimestampMixin, Base):
    """GDPR consent for the training agent. One row per athlete.

    Each category is a column so the granted set is closed and queryable.
    Withdrawal is recorded by timestamp and stops every agent cycle.
    """

    __tablename__ = "agent_consents"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    data_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    health_data_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    automated_decisions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    learning_contribution: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    anonymized_research: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consent_version: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CURRENT_CONSENT_VERSION
    )
    consent_given_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    consent_withdrawn_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    @property
    def granted_categories(self) -> frozenset[ConsentCategory]:
        return frozenset(c for c in ConsentCategory if getattr(self, c.value))
