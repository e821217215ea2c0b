import uuid

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, generate_uuid


class Athlete(TimestampMixin, Base):
    """The subject whose training the agent may adjust.

    is_ai_coached: self-guided athlete with no human coach. Such athletes
    never get coach oversight and default to SUPERVISED autonomy.
    """

    __tablename__ = "athletes"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_ai_coached: Mapped[bool] = mapped_column(nullable=False, default=False)
    coach_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
