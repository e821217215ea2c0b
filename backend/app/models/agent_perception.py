"""AgentPerception model: a persisted, immutable perception snapshot.

Scalar columns are denormalized from the snapshot for querying; the full
snapshot (including each active injury) is kept as JSON for audit.
Null readiness or ACWR means insufficient data, never zero.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.models.base import Base, generate_uuid, utcnow


class AgentPerception(Base):
    __tablename__ = "agent_perceptions"
    __table_args__ = (
        Index("ix_agent_perceptions_athlete_perceived", "athlete_id", "perceived_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    perceived_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    acwr: Mapped[float | None] = mapped_column(Float, nullable=True)
    acute_load: Mapped[float | None] = mapped_column(Float, nullable=True)
    chronic_load: Mapped[float | None] = mapped_column(Float, nullable=True)
    acwr_zone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    readiness_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    has_active_injury: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_pain_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    missed_workouts_7d: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    check_in_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
