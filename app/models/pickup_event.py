from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

from app.models.enums import (
    FoodCondition,
    IssueSeverity,
    PickupEventStatus,
    SignerRole,
    TaskType,
)


class PickupEvent(SQLModel, table=True):
    __tablename__ = "pickup_event"  # type: ignore

    id_pickup_event: int | None = Field(default=None, primary_key=True)
    event_number: str = Field(max_length=32, unique=True, index=True)
    id_task: int = Field(foreign_key="volunteer_task.id_task", unique=True, index=True)
    id_claim: int = Field(foreign_key="claim.id_claim", index=True)
    id_donation: int = Field(foreign_key="donation.id_donation", index=True)
    id_volunteer: int = Field(foreign_key="volunteer.id_volunteer", index=True)
    id_ngo: int = Field(foreign_key="ngo.id_ngo", index=True)
    id_donor: int = Field(foreign_key="donor.id_donor", index=True)
    task_type: TaskType = Field(default=TaskType.PICKUP_AND_DELIVERY)
    status: PickupEventStatus = Field(default=PickupEventStatus.SCHEDULED, index=True)

    scheduled_start_time: datetime = Field(sa_type=DateTime(timezone=True))
    scheduled_end_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    actual_start_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    actual_end_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )

    location_updates: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    food_condition: dict | None = Field(default=None, sa_column=Column(JSON))
    pickup_confirmation: dict | None = Field(default=None, sa_column=Column(JSON))
    delivery_confirmation: dict | None = Field(default=None, sa_column=Column(JSON))
    incidents: list[dict] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class PickupEventStatusUpdate(SQLModel):
    status: PickupEventStatus
    id_volunteer: int | None = None
    reason: str | None = Field(default=None, max_length=500)


class LocationSample(SQLModel):
    id_volunteer: int
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    recorded_at: datetime | None = None
    address: str | None = Field(default=None, max_length=500)


class FoodAssessment(SQLModel):
    condition: FoodCondition
    temperature_c: float | None = None
    packaging_intact: bool = True
    notes: str | None = Field(default=None, max_length=1000)
    photo_urls: list[str] = Field(default_factory=list)


class Confirmation(SQLModel):
    signer_name: str = Field(min_length=1, max_length=100)
    signer_role: SignerRole
    signature_url: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=1000)
    beneficiary_count: int | None = Field(default=None, ge=0)


class IncidentCreate(SQLModel):
    incident_type: str = Field(max_length=50)
    description: str = Field(min_length=1, max_length=1000)
    severity: IssueSeverity = Field(default=IssueSeverity.MEDIUM)


class PickupEventPublic(SQLModel):
    id_pickup_event: int
    event_number: str
    id_task: int
    id_claim: int
    id_donation: int
    id_volunteer: int
    id_ngo: int
    id_donor: int
    task_type: TaskType
    status: PickupEventStatus
    scheduled_start_time: datetime
    scheduled_end_time: datetime | None
    actual_start_time: datetime | None
    actual_end_time: datetime | None
    location_updates: list[dict]
    food_condition: dict | None
    pickup_confirmation: dict | None
    delivery_confirmation: dict | None
    incidents: list[dict]
    created_at: datetime
    # Derived at read time
    delay_minutes: int
    actual_duration_minutes: int | None
