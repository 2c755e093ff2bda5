from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

from app.models.enums import (
    AssignmentStatus,
    ClaimStatus,
    DistributionMethod,
    DonorDecision,
    IssueSeverity,
    TaskType,
    UrgencyLevel,
    VolunteerRole,
)


class DistributionPlan(SQLModel):
    """How the NGO intends to hand the food out; stored as JSON on the claim."""

    target_beneficiaries: int = Field(ge=1)
    distribution_date: datetime
    distribution_address: str = Field(min_length=1, max_length=500)
    distribution_method: DistributionMethod = Field(
        default=DistributionMethod.DIRECT_DISTRIBUTION
    )
    special_requirements: str | None = Field(default=None, max_length=500)


class ClaimBase(SQLModel):
    claim_message: str | None = Field(default=None, max_length=500)
    urgency_level: UrgencyLevel = Field(default=UrgencyLevel.MEDIUM)


class Claim(ClaimBase, table=True):
    id_claim: int | None = Field(default=None, primary_key=True)
    claim_number: str = Field(max_length=32, unique=True, index=True)
    id_donation: int = Field(foreign_key="donation.id_donation", index=True)
    id_ngo: int = Field(foreign_key="ngo.id_ngo", index=True)
    id_donor: int = Field(foreign_key="donor.id_donor", index=True)
    status: ClaimStatus = Field(default=ClaimStatus.PENDING, index=True)
    distribution_plan: dict = Field(default_factory=dict, sa_column=Column(JSON))
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))

    # Donor response
    donor_decision: DonorDecision | None = Field(default=None)
    donor_responded_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    donor_message: str | None = Field(default=None, max_length=500)
    donor_conditions: str | None = Field(default=None, max_length=500)

    # Volunteer assignment
    id_assigned_volunteer: int | None = Field(
        default=None, foreign_key="volunteer.id_volunteer", index=True
    )
    assignment_role: VolunteerRole | None = Field(default=None)
    assignment_status: AssignmentStatus | None = Field(default=None)
    assignment_assigned_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    assignment_accepted_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    assignment_declined_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    assignment_completed_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    assignment_decline_reason: str | None = Field(default=None, max_length=500)

    # Pickup / delivery timeline
    scheduled_pickup_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    actual_pickup_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    actual_delivery_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )

    issues: list[dict] = Field(default_factory=list, sa_column=Column(JSON))

    cancelled_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    cancellation_reason: str | None = Field(default=None, max_length=500)
    completed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class ClaimCreate(ClaimBase):
    id_donation: int
    id_ngo: int
    distribution_plan: dict


class ClaimDecision(SQLModel):
    id_donor: int
    approve: bool
    message: str | None = Field(default=None, max_length=500)
    conditions: str | None = Field(default=None, max_length=500)


class ClaimCancel(SQLModel):
    id_ngo: int
    reason: str = Field(min_length=1, max_length=500)


class ClaimIssueCreate(SQLModel):
    reported_by: str = Field(max_length=50)
    issue_type: str = Field(max_length=50)
    description: str = Field(min_length=1, max_length=1000)
    severity: IssueSeverity = Field(default=IssueSeverity.MEDIUM)


class VolunteerAssignmentCreate(SQLModel):
    id_volunteer: int
    role: VolunteerRole = Field(default=VolunteerRole.BOTH)
    task_type: TaskType = Field(default=TaskType.PICKUP_AND_DELIVERY)
    pickup_scheduled_time: datetime | None = None
    delivery_scheduled_time: datetime | None = None
    estimated_distance_km: float | None = Field(default=None, ge=0)
    special_instructions: str | None = Field(default=None, max_length=500)


class ClaimPublic(ClaimBase):
    id_claim: int
    claim_number: str
    id_donation: int
    id_ngo: int
    id_donor: int
    status: ClaimStatus
    distribution_plan: dict
    expires_at: datetime
    donor_decision: DonorDecision | None
    donor_responded_at: datetime | None
    donor_message: str | None
    donor_conditions: str | None
    id_assigned_volunteer: int | None
    assignment_role: VolunteerRole | None
    assignment_status: AssignmentStatus | None
    assignment_assigned_at: datetime | None
    assignment_accepted_at: datetime | None
    assignment_decline_reason: str | None
    scheduled_pickup_time: datetime | None
    actual_pickup_time: datetime | None
    actual_delivery_time: datetime | None
    issues: list[dict]
    cancelled_at: datetime | None
    cancellation_reason: str | None
    completed_at: datetime | None
    created_at: datetime
    # Derived at read time
    age_in_hours: int
    hours_until_expiry: int
    is_valid: bool
