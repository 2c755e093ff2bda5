import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import Settings
from app.database.database import get_session
from app.main import app
from app.models.actor import ActorCreate
from app.models.claim import ClaimCreate, ClaimDecision, VolunteerAssignmentCreate
from app.models.donation import DonationCreate
from app.models.enums import ActorType, FoodType, TaskStatus, TaskType
from app.services import actor as actor_service
from app.services import claim as claim_service
from app.services import donation as donation_service
from app.services import volunteer_task as task_service
from app.services.notification import clear_dispatchers
from app.utils.clock import utcnow


# Test settings fixture
@pytest.fixture(scope="function")
def test_settings():
    """Provide test settings with the workflow defaults."""
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        BACKEND_CORS_ORIGINS="",
        EXPIRY_SWEEP_INTERVAL_SECONDS=0,
    )


@pytest.fixture(name="session")
def session_fixture():
    """
    Create and yield a SQLModel Session bound to a fresh in-memory SQLite database.

    Yields:
        Session: A session on a single shared connection; closed on teardown.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """TestClient whose requests use the test session. The lifespan is not run."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_dispatchers():
    """Dispatchers are module-level; never leak them between tests."""
    clear_dispatchers()
    yield
    clear_dispatchers()


@pytest.fixture(name="now")
def now_fixture() -> datetime:
    return utcnow().replace(microsecond=0)


def _actor(session: Session, actor_type: ActorType, name: str):
    return actor_service.create_actor(
        session,
        actor_type,
        ActorCreate(
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.com",
            registration_number="NGO-001" if actor_type == ActorType.NGO else None,
        ),
    )


@pytest.fixture(name="donor")
def donor_fixture(session: Session):
    return _actor(session, ActorType.DONOR, "Corner Bakery")


@pytest.fixture(name="ngo")
def ngo_fixture(session: Session):
    return _actor(session, ActorType.NGO, "City Food Bank")


@pytest.fixture(name="other_ngo")
def other_ngo_fixture(session: Session):
    return _actor(session, ActorType.NGO, "Shelter Kitchen")


@pytest.fixture(name="volunteer")
def volunteer_fixture(session: Session):
    return _actor(session, ActorType.VOLUNTEER, "Sam Driver")


@pytest.fixture(name="other_volunteer")
def other_volunteer_fixture(session: Session):
    return _actor(session, ActorType.VOLUNTEER, "Alex Rider")


def donation_payload(donor_id: int, now: datetime, **overrides) -> DonationCreate:
    """Donation expiring in 12 hours with a pickup window opening in one hour."""
    data = {
        "id_donor": donor_id,
        "title": "Unsold sandwiches",
        "description": "Forty sandwiches from today's lunch service",
        "food_type": FoodType.PACKAGED_FOOD,
        "quantity": "40 units",
        "estimated_servings": 40,
        "pickup_address": "12 Market Street",
        "pickup_lat": 48.8566,
        "pickup_long": 2.3522,
        "expiry_date_time": now + timedelta(hours=12),
        "pickup_window_start": now + timedelta(hours=1),
        "pickup_window_end": now + timedelta(hours=3),
    }
    data.update(overrides)
    return DonationCreate(**data)


def distribution_plan(now: datetime) -> dict:
    return {
        "target_beneficiaries": 40,
        "distribution_date": (now + timedelta(hours=6)).isoformat(),
        "distribution_address": "5 Shelter Road",
        "distribution_method": "meal_service",
    }


@pytest.fixture(name="make_donation")
def make_donation_fixture(session: Session, donor, now):
    def make(**overrides):
        created_at = overrides.pop("now", now)
        return asyncio.run(
            donation_service.create_donation(
                session,
                donation_payload(donor.id_donor, created_at, **overrides),
                now=created_at,
            )
        )

    return make


@pytest.fixture(name="make_claim")
def make_claim_fixture(session: Session, ngo, now):
    def make(donation, ngo_id=None, at=None):
        return claim_service.create_claim(
            session,
            ClaimCreate(
                id_donation=donation.id_donation,
                id_ngo=ngo_id or ngo.id_ngo,
                distribution_plan=distribution_plan(now),
            ),
            now=at or now,
        )

    return make


@pytest.fixture(name="approved_claim")
def approved_claim_fixture(session: Session, make_donation, make_claim, donor, now):
    claim = make_claim(make_donation())
    return claim_service.respond_to_claim(
        session,
        claim.id_claim,
        ClaimDecision(id_donor=donor.id_donor, approve=True),
        now=now,
    )


@pytest.fixture(name="make_task")
def make_task_fixture(session: Session, volunteer, now):
    def make(claim, volunteer_id=None, task_type=TaskType.PICKUP_AND_DELIVERY, at=None):
        return claim_service.assign_volunteer(
            session,
            claim.id_claim,
            VolunteerAssignmentCreate(
                id_volunteer=volunteer_id or volunteer.id_volunteer,
                task_type=task_type,
                estimated_distance_km=4.0,
            ),
            now=at or now,
        )

    return make


@pytest.fixture(name="accepted_task")
def accepted_task_fixture(session: Session, approved_claim, make_task, now):
    task = make_task(approved_claim)
    return task_service.update_task_status(
        session, task.id_task, TaskStatus.ACCEPTED, now=now
    )
