"""AgentPreferences model: per-athlete autonomy settings.

One row per athlete (upsert pattern). When absent, a default is synthesized
by preferences_service; the engine never operates on undefined preferences.
"""

import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, generate_uuid


class AutonomyLevel(str, enum.Enum):
    advisory = "advisory"      # recommendations only
    limited = "limited"        # small intensity reductions only
    supervised = "supervised"  # curated allow-list
    autonomous = "autonomous"  # broad allow-list, still bounded


class ContactMethod(str, enum.Enum):
    in_app = "in_app"
    email = "email"


class AgentPreferences(TimestampMixin, Base):
    __tablename__ = "agent_preferences"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    autonomy_level: Mapped[AutonomyLevel] = mapped_column(
        Enum(AutonomyLevel, native_enum=False),
        nullable=False,
        default=AutonomyLevel.advisory,
    )
    allow_workout_modification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_rest_day_injection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_intensity_reduction: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    min_rest_days_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_consecutive_hard_days: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_briefing_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    proactive_nudges_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    preferred_contact_method: Mapped[ContactMethod] = mapped_column(
        Enum(ContactMethod, native_enum=False),
        nullable=False,
        default=ContactMethod.in_app,
    )
