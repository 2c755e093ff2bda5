"""Shared fixtures for benchmark tests."""

import uuid
from datetime import timedelta

import pytest
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from app.models.donation import DonationCreate
from app.models.enums import FoodType


@pytest.fixture(name="session")
def session_fixture():
    """
    Create and yield a SQLModel Session bound to a fresh in-memory SQLite database.

    Yields:
        Session: A SQLModel Session connected to the created in-memory SQLite database; the session is closed when the fixture tears down.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="donation_create_data_factory")
def donation_create_data_factory_fixture():
    """
    Create a factory that produces unique DonationCreate payloads for benchmarks.

    Each payload expires twelve hours after `now` with a pickup window opening
    one hour after `now`; the title carries a random suffix.

    Returns:
        Callable[[int, datetime], DonationCreate]: Factory taking the donor id and the reference time.
    """

    def create(donor_id: int, now):
        unique = uuid.uuid4().hex[:8]
        return DonationCreate(
            id_donor=donor_id,
            title=f"Bench bread {unique}",
            description="Day-old loaves",
            food_type=FoodType.BAKERY,
            quantity="20 loaves",
            estimated_servings=40,
            pickup_address="1 Bench Street",
            pickup_lat=45.0,
            pickup_long=4.0,
            expiry_date_time=now + timedelta(hours=12),
            pickup_window_start=now + timedelta(hours=1),
            pickup_window_end=now + timedelta(hours=3),
        )

    return create
