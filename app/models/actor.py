"""Principal actors of the rescue workflow and their running statistics."""

from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from app.models.enums import ActorType


class ActorBase(SQLModel):
    name: str = Field(max_length=100)
    email: str = Field(max_length=255)
    phone_number: str | None = Field(default=None, max_length=50)
    address: str | None = Field(default=None, max_length=500)


class Donor(ActorBase, table=True):
    id_donor: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class NGO(ActorBase, table=True):
    id_ngo: int | None = Field(default=None, primary_key=True)
    registration_number: str | None = Field(default=None, max_length=50)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class Volunteer(ActorBase, table=True):
    id_volunteer: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class Beneficiary(ActorBase, table=True):
    id_beneficiary: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class ActorCreate(ActorBase):
    registration_number: str | None = Field(default=None, max_length=50)


class ActorPublic(ActorBase):
    actor_type: ActorType
    actor_id: int
    created_at: datetime


class ActorRef(SQLModel):
    """Tagged reference to any principal actor."""

    actor_type: ActorType
    actor_id: int


class ActorStats(SQLModel, table=True):
    """Per-actor counters, maintained incrementally and checkable by recomputation."""

    __tablename__ = "actor_stats"  # type: ignore

    actor_type: ActorType = Field(primary_key=True)
    actor_id: int = Field(primary_key=True)
    average_rating: float = Field(default=0.0)
    total_ratings: int = Field(default=0)
    rating_sum: int = Field(default=0)
    completed_tasks: int = Field(default=0)
    completed_donations: int = Field(default=0)
    completed_claims: int = Field(default=0)
    total_deliveries: int = Field(default=0)


class ActorStatsPublic(SQLModel):
    actor_type: ActorType
    actor_id: int
    average_rating: float
    total_ratings: int
    completed_tasks: int
    completed_donations: int
    completed_claims: int
    total_deliveries: int


class RatingSummary(SQLModel):
    """On-demand aggregate over published feedback about one actor."""

    actor_type: ActorType
    actor_id: int
    total_ratings: int
    average_rating: float
    rating_sum: int
    distribution: dict[int, int]
    recommendation_rate: float | None = None
