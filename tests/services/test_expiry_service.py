"""Tests for the expiry monitor: derived time metrics and sweeps."""

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlmodel import Session

from app.exceptions import ExpiredEntityError, InvalidTransitionError
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import (
    ClaimStatus,
    DonationStatus,
    TaskStatus,
    TaskType,
    UrgencyLevel,
)
from app.services import expiry as expiry_service
from app.services import volunteer_task as task_service


class TestDerivedMetrics:
    """Pure functions over stored timestamps."""

    def test_hours_until_expiry_is_floored(self, now):
        expiry = now + timedelta(hours=5, minutes=59)

        assert expiry_service.hours_until_expiry(expiry, now) == 5

    def test_hours_until_expiry_never_negative(self, now):
        assert expiry_service.hours_until_expiry(now - timedelta(hours=3), now) == 0

    def test_naive_timestamps_are_read_as_utc(self, now):
        naive = (now + timedelta(hours=4)).replace(tzinfo=None)

        assert expiry_service.hours_until_expiry(naive, now) == 4

    @pytest.mark.parametrize(
        "hours,level",
        [
            (0, UrgencyLevel.URGENT),
            (2, UrgencyLevel.URGENT),
            (3, UrgencyLevel.HIGH),
            (6, UrgencyLevel.HIGH),
            (7, UrgencyLevel.MEDIUM),
            (12, UrgencyLevel.MEDIUM),
            (13, UrgencyLevel.LOW),
        ],
    )
    def test_urgency_thresholds(self, hours, level):
        assert expiry_service.urgency_level(hours) == level

    def test_age_in_hours(self, now):
        assert expiry_service.age_in_hours(now - timedelta(minutes=150), now) == 2

    def test_estimated_completion_time(self, session: Session, approved_claim, make_task):
        task = make_task(approved_claim)
        task.delivery_estimated_minutes = 20

        # 30 minutes pickup + 20 delivery + 4 km at 3 minutes each
        expected = task.pickup_scheduled_time + timedelta(minutes=62)
        assert expiry_service.estimated_completion_time(task).replace(
            tzinfo=None
        ) == expected.replace(tzinfo=None)

    def test_pickup_only_ignores_delivery_estimate(
        self, session: Session, approved_claim, make_task
    ):
        task = make_task(approved_claim, task_type=TaskType.PICKUP_ONLY)
        task.delivery_estimated_minutes = 20

        expected = task.pickup_scheduled_time + timedelta(minutes=42)
        assert expiry_service.estimated_completion_time(task).replace(
            tzinfo=None
        ) == expected.replace(tzinfo=None)


class TestSweepExpiredDonations:
    def test_available_donation_expires(self, session: Session, make_donation, now):
        donation = make_donation()

        summary = expiry_service.sweep_expired_donations(
            session, now + timedelta(hours=12)
        )

        session.refresh(donation)
        assert summary.expired_donations == 1
        assert donation.status == DonationStatus.EXPIRED

    def test_claim_expires_with_its_donation(
        self, session: Session, approved_claim, now
    ):
        summary = expiry_service.sweep_expired_donations(
            session, now + timedelta(hours=13)
        )

        donation = session.get(Donation, approved_claim.id_donation)
        session.refresh(approved_claim)
        assert summary.expired_claims == 1
        assert approved_claim.status == ClaimStatus.EXPIRED
        assert donation.status == DonationStatus.EXPIRED
        assert donation.claimed_by is None

    def test_scheduled_pickup_is_not_swept(self, session: Session, accepted_task, now):
        summary = expiry_service.sweep_expired_donations(
            session, now + timedelta(hours=13)
        )

        donation = session.get(Donation, accepted_task.id_donation)
        assert summary.expired_donations == 0
        assert donation.status == DonationStatus.PICKUP_SCHEDULED

    def test_fresh_donation_untouched(self, session: Session, make_donation, now):
        donation = make_donation()

        summary = expiry_service.sweep_expired_donations(session, now)

        session.refresh(donation)
        assert summary.expired_donations == 0
        assert donation.status == DonationStatus.AVAILABLE

    def test_past_deadline_blocks_task_acceptance(
        self, session: Session, approved_claim, make_task, now
    ):
        task = make_task(approved_claim)

        with pytest.raises(ExpiredEntityError):
            task_service.update_task_status(
                session, task.id_task, TaskStatus.ACCEPTED, now=now + timedelta(hours=13)
            )

    def test_expiry_cancels_the_unaccepted_task(
        self, session: Session, approved_claim, make_task, now
    ):
        task = make_task(approved_claim)
        later = now + timedelta(hours=13)

        summary = expiry_service.sweep_expired_donations(session, later)

        session.refresh(task)
        assert summary.expired_claims == 1
        assert task.status == TaskStatus.CANCELLED
        assert task.cancellation_reason == "Donation expired before pickup"
        assert task.cancelled_at is not None
        assert expiry_service.list_overdue_tasks(session, later) == []
        with pytest.raises(InvalidTransitionError):
            task_service.update_task_status(
                session, task.id_task, TaskStatus.ACCEPTED, now=later
            )


class TestSweepExpiredClaims:
    def test_pending_claim_expires_and_releases_donation(
        self, session: Session, make_donation, make_claim, now
    ):
        # Claim window (24h) ends well before the food does
        donation = make_donation(
            expiry_date_time=now + timedelta(hours=72),
            pickup_window_end=now + timedelta(hours=48),
        )
        claim = make_claim(donation)

        summary = expiry_service.sweep_expired_claims(
            session, now + timedelta(hours=24, seconds=1)
        )

        session.refresh(claim)
        session.refresh(donation)
        assert summary.expired_claims == 1
        assert summary.released_donations == 1
        assert claim.status == ClaimStatus.EXPIRED
        assert donation.status == DonationStatus.AVAILABLE
        assert donation.claimed_by is None

    def test_donation_held_by_another_claim_is_not_released(
        self, session: Session, make_donation, make_claim, other_ngo, now
    ):
        donation = make_donation(
            expiry_date_time=now + timedelta(hours=72),
            pickup_window_end=now + timedelta(hours=48),
        )
        claim = make_claim(donation)
        # A second active claim on the same donation
        session.exec(
            update(Donation)  # type: ignore
            .where(Donation.id_donation == donation.id_donation)
            .values(status=DonationStatus.AVAILABLE)
        )
        session.commit()
        session.refresh(donation)
        second = make_claim(donation, ngo_id=other_ngo.id_ngo)
        session.exec(
            update(Claim)  # type: ignore
            .where(Claim.id_claim == second.id_claim)
            .values(expires_at=now + timedelta(hours=60))
        )
        session.commit()

        summary = expiry_service.sweep_expired_claims(
            session, now + timedelta(hours=25)
        )

        session.refresh(claim)
        session.refresh(donation)
        assert claim.status == ClaimStatus.EXPIRED
        assert summary.released_donations == 0
        assert donation.status == DonationStatus.CLAIMED
        assert donation.claimed_by == other_ngo.id_ngo

    def test_approved_claim_is_left_alone(self, session: Session, approved_claim, now):
        summary = expiry_service.sweep_expired_claims(
            session, now + timedelta(hours=13)
        )

        session.refresh(approved_claim)
        assert summary.expired_claims == 0
        assert approved_claim.status == ClaimStatus.APPROVED


class TestRunExpirySweep:
    def test_combined_summary(self, session: Session, make_donation, make_claim, now):
        make_donation()
        claimed = make_donation(
            expiry_date_time=now + timedelta(hours=72),
            pickup_window_end=now + timedelta(hours=48),
        )
        make_claim(claimed)

        summary = expiry_service.run_expiry_sweep(session, now + timedelta(hours=30))

        assert summary.as_dict() == {
            "expired_donations": 1,
            "expired_claims": 1,
            "released_donations": 1,
            "conflicts": 0,
        }


class TestOverdueTasks:
    def test_open_task_past_pickup_is_overdue(
        self, session: Session, approved_claim, make_task, now
    ):
        task = make_task(approved_claim)

        overdue = expiry_service.list_overdue_tasks(session, now + timedelta(hours=2))

        assert [t.id_task for t in overdue] == [task.id_task]
        assert expiry_service.is_task_overdue(task, now + timedelta(hours=2)) is True
        assert expiry_service.is_task_overdue(task, now) is False

    def test_declined_task_is_never_overdue(
        self, session: Session, approved_claim, make_task, now
    ):
        task = make_task(approved_claim)
        task = task_service.update_task_status(
            session, task.id_task, TaskStatus.DECLINED, reason="Car broke down", now=now
        )

        assert expiry_service.list_overdue_tasks(session, now + timedelta(hours=2)) == []
        assert expiry_service.is_task_overdue(task, now + timedelta(hours=2)) is False
