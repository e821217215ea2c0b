import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, String, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.models.base import Base, generate_uuid


class ActorType(str, enum.Enum):
    agent = "agent"
    athlete = "athlete"
    coach = "coach"
    system = "system"


class AgentAuditLog(Base):
    """Append-only audit log. No UPDATE or DELETE at application level.

    athlete_id is not a foreign key: entries are retained after
    the athlete's agent data (or the athlete) is erased.
    """

    __tablename__ = "agent_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    athlete_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    actor_type: Mapped[ActorType] = mapped_column(
        Enum(ActorType, native_enum=False), nullable=False
    )
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
