from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from app.models.enums import (
    DonationStatus,
    FoodCategory,
    FoodType,
    StorageRequirement,
    UrgencyLevel,
)


class DonationBase(SQLModel):
    title: str = Field(max_length=100)
    description: str = Field(max_length=1000)
    food_type: FoodType
    food_category: FoodCategory = Field(default=FoodCategory.MIXED)
    quantity: str = Field(max_length=100)
    estimated_servings: int = Field(ge=1)
    storage_requirement: StorageRequirement = Field(
        default=StorageRequirement.ROOM_TEMPERATURE
    )
    special_instructions: str | None = Field(default=None, max_length=500)
    pickup_address: str = Field(max_length=500)
    pickup_lat: float | None = Field(default=None, ge=-90, le=90)
    pickup_long: float | None = Field(default=None, ge=-180, le=180)


class Donation(DonationBase, table=True):
    id_donation: int | None = Field(default=None, primary_key=True)
    donation_number: str = Field(max_length=32, unique=True, index=True)
    id_donor: int = Field(foreign_key="donor.id_donor", index=True)
    status: DonationStatus = Field(default=DonationStatus.AVAILABLE, index=True)
    claimed_by: int | None = Field(default=None, foreign_key="ngo.id_ngo", index=True)
    pickup_formatted_address: str | None = Field(default=None, max_length=500)

    expiry_date_time: datetime = Field(sa_type=DateTime(timezone=True))
    prepared_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    pickup_window_start: datetime = Field(sa_type=DateTime(timezone=True))
    pickup_window_end: datetime = Field(sa_type=DateTime(timezone=True))
    claimed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    actual_pickup_time: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    delivered_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))

    cancelled_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    cancellation_reason: str | None = Field(default=None, max_length=500)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class DonationCreate(DonationBase):
    id_donor: int
    expiry_date_time: datetime
    prepared_at: datetime | None = None
    pickup_window_start: datetime
    pickup_window_end: datetime


class DonationPublic(DonationBase):
    id_donation: int
    donation_number: str
    id_donor: int
    status: DonationStatus
    claimed_by: int | None
    pickup_formatted_address: str | None
    expiry_date_time: datetime
    prepared_at: datetime | None
    pickup_window_start: datetime
    pickup_window_end: datetime
    claimed_at: datetime | None
    actual_pickup_time: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    # Derived at read time, never stored
    hours_until_expiry: int
    urgency_level: UrgencyLevel


class DonationCancel(SQLModel):
    id_donor: int
    reason: str = Field(min_length=1, max_length=500)
