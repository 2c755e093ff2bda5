from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

from app.models.enums import (
    CommunicationChannel,
    EvidenceType,
    IssueSeverity,
    TaskStatus,
    TaskType,
    UrgencyLevel,
)


class VolunteerTaskBase(SQLModel):
    task_type: TaskType = Field(default=TaskType.PICKUP_AND_DELIVERY)
    priority: UrgencyLevel = Field(default=UrgencyLevel.MEDIUM)
    pickup_address: str = Field(max_length=500)
    delivery_address: str | None = Field(default=None, max_length=500)
    estimated_distance_km: float | None = Field(default=None, ge=0)
    special_instructions: str | None = Field(default=None, max_length=500)


class VolunteerTask(VolunteerTaskBase, table=True):
    __tablename__ = "volunteer_task"  # type: ignore

    id_task: int | None = Field(default=None, primary_key=True)
    task_number: str = Field(max_length=32, unique=True, index=True)
    id_claim: int = Field(foreign_key="claim.id_claim", index=True)
    id_donation: int = Field(foreign_key="donation.id_donation", index=True)
    id_volunteer: int = Field(foreign_key="volunteer.id_volunteer", index=True)
    id_ngo: int = Field(foreign_key="ngo.id_ngo", index=True)
    id_donor: int = Field(foreign_key="donor.id_donor", index=True)
    status: TaskStatus = Field(default=TaskStatus.ASSIGNED, index=True)

    # Pickup schedule
    pickup_scheduled_time: datetime = Field(sa_type=DateTime(timezone=True))
    pickup_estimated_minutes: int = Field(default=30, ge=0)
    pickup_actual_start: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    pickup_actual_end: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )

    # Delivery schedule
    delivery_scheduled_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    delivery_estimated_minutes: int | None = Field(default=None, ge=0)
    delivery_actual_start: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    delivery_actual_end: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )

    assigned_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    accepted_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    declined_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    decline_reason: str | None = Field(default=None, max_length=500)
    completed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    cancelled_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    cancellation_reason: str | None = Field(default=None, max_length=500)
    failure_reason: str | None = Field(default=None, max_length=500)

    # Bounded logs, newest last
    evidence: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    issues: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    communication_log: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    reschedule_history: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    delays: list[dict] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class EvidenceCreate(SQLModel):
    evidence_type: EvidenceType
    url: str = Field(min_length=1, max_length=1000)
    description: str | None = Field(default=None, max_length=500)


class TaskStatusUpdate(SQLModel):
    status: TaskStatus
    id_volunteer: int | None = None
    reason: str | None = Field(default=None, max_length=500)
    evidence: EvidenceCreate | None = None


class TaskIssueCreate(SQLModel):
    issue_type: str = Field(max_length=50)
    description: str = Field(min_length=1, max_length=1000)
    severity: IssueSeverity = Field(default=IssueSeverity.MEDIUM)


class CommunicationCreate(SQLModel):
    channel: CommunicationChannel
    with_party: str = Field(max_length=50)
    summary: str = Field(min_length=1, max_length=1000)


class RescheduleRequest(SQLModel):
    new_time: datetime
    reason: str = Field(min_length=1, max_length=500)


class DelayCreate(SQLModel):
    minutes: int = Field(ge=1)
    reason: str = Field(min_length=1, max_length=500)


class VolunteerTaskPublic(VolunteerTaskBase):
    id_task: int
    task_number: str
    id_claim: int
    id_donation: int
    id_volunteer: int
    id_ngo: int
    id_donor: int
    status: TaskStatus
    pickup_scheduled_time: datetime
    pickup_estimated_minutes: int
    pickup_actual_start: datetime | None
    pickup_actual_end: datetime | None
    delivery_scheduled_time: datetime | None
    delivery_estimated_minutes: int | None
    delivery_actual_end: datetime | None
    assigned_at: datetime
    accepted_at: datetime | None
    declined_at: datetime | None
    decline_reason: str | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    failure_reason: str | None
    evidence: list[dict]
    issues: list[dict]
    communication_log: list[dict]
    reschedule_history: list[dict]
    delays: list[dict]
    # Derived at read time
    is_overdue: bool
    estimated_completion_time: datetime
    total_duration_minutes: int | None
