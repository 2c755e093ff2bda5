"""Performance benchmarks for the donation to delivery workflow."""

import asyncio
from datetime import timedelta

import pytest
from pytest_codspeed import BenchmarkFixture
from sqlmodel import Session

from app.models.claim import ClaimCreate, ClaimDecision, VolunteerAssignmentCreate
from app.models.enums import PickupEventStatus, TaskStatus
from app.services import claim as claim_service
from app.services import donation as donation_service
from app.services import expiry as expiry_service
from app.services import pickup_event as event_service
from app.services import volunteer_task as task_service

PLAN = {
    "target_beneficiaries": 40,
    "distribution_date": "2030-01-01T12:00:00+00:00",
    "distribution_address": "5 Shelter Road",
}


def _rescue(session: Session, factory, donor, ngo, volunteer, now):
    donation = asyncio.run(
        donation_service.create_donation(
            session, factory(donor.id_donor, now), now=now
        )
    )
    claim = claim_service.create_claim(
        session,
        ClaimCreate(
            id_donation=donation.id_donation, id_ngo=ngo.id_ngo, distribution_plan=PLAN
        ),
        now=now,
    )
    claim_service.respond_to_claim(
        session,
        claim.id_claim,
        ClaimDecision(id_donor=donor.id_donor, approve=True),
        now=now,
    )
    task = claim_service.assign_volunteer(
        session,
        claim.id_claim,
        VolunteerAssignmentCreate(id_volunteer=volunteer.id_volunteer),
        now=now,
    )
    return task_service.update_task_status(
        session, task.id_task, TaskStatus.ACCEPTED, now=now
    )


def test_claim_to_acceptance_performance(
    benchmark: BenchmarkFixture,
    session: Session,
    donation_create_data_factory,
    donor,
    ngo,
    volunteer,
    now,
):
    """Benchmark posting, claiming, approving, assigning and accepting one donation."""

    @benchmark
    def rescue():
        task = _rescue(session, donation_create_data_factory, donor, ngo, volunteer, now)
        return task.id_task


def test_pickup_event_walk_performance(
    benchmark: BenchmarkFixture,
    session: Session,
    donation_create_data_factory,
    donor,
    ngo,
    volunteer,
    now,
):
    """Benchmark driving a pickup event to completion, task, claim and donation included."""

    @benchmark
    def walk():
        task = _rescue(session, donation_create_data_factory, donor, ngo, volunteer, now)
        event = event_service.get_event_for_task(session, task.id_task)
        for minutes, status in enumerate(list(PickupEventStatus)[1:9], start=1):
            event = event_service.update_pickup_event_status(
                session,
                event.id_pickup_event,
                status,
                now=now + timedelta(minutes=10 * minutes),
            )
        return event.status


@pytest.fixture(name="stale_donations")
def stale_donations_fixture(session: Session, donation_create_data_factory, donor, now):
    """Fifty donations posted thirteen hours ago, already past their expiry."""
    posted = now - timedelta(hours=13)
    for _ in range(50):
        asyncio.run(
            donation_service.create_donation(
                session, donation_create_data_factory(donor.id_donor, posted), now=posted
            )
        )


def test_expiry_sweep_performance(
    benchmark: BenchmarkFixture, session: Session, stale_donations, now
):
    """Benchmark a sweep over a backlog of expired donations."""

    @benchmark
    def sweep():
        return expiry_service.run_expiry_sweep(session, now=now).as_dict()
