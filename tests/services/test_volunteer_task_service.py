"""Tests for volunteer task service business logic."""

from datetime import timedelta

import pytest
from sqlmodel import Session

from app.core.config import get_settings
from app.exceptions import (
    InsufficientPermissionsError,
    InvalidTransitionError,
    ValidationError,
)
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import (
    ActorType,
    AssignmentStatus,
    ClaimStatus,
    CommunicationChannel,
    DonationStatus,
    EvidenceType,
    PickupEventStatus,
    TaskStatus,
    TaskType,
)
from app.models.volunteer_task import (
    CommunicationCreate,
    DelayCreate,
    EvidenceCreate,
    RescheduleRequest,
    TaskIssueCreate,
)
from app.services import pickup_event as event_service
from app.services import rating as rating_service
from app.services import volunteer_task as task_service
from app.utils.clock import ensure_utc


def _step(session: Session, task, status: TaskStatus, at):
    return task_service.update_task_status(session, task.id_task, status, now=at)


class TestAcceptAndDecline:
    def test_accept_opens_pickup_event(self, session: Session, accepted_task, now):
        event = event_service.get_event_for_task(session, accepted_task.id_task)
        claim = session.get(Claim, accepted_task.id_claim)
        donation = session.get(Donation, accepted_task.id_donation)

        assert accepted_task.status == TaskStatus.ACCEPTED
        assert ensure_utc(accepted_task.accepted_at) == now
        assert event is not None
        assert event.status == PickupEventStatus.SCHEDULED
        assert event.event_number.startswith("PKP-")
        assert claim.status == ClaimStatus.PICKUP_SCHEDULED
        assert claim.assignment_status == AssignmentStatus.ACCEPTED
        assert donation.status == DonationStatus.PICKUP_SCHEDULED

    def test_repeated_accept_is_idempotent(self, session: Session, accepted_task, now):
        again = task_service.update_task_status(
            session,
            accepted_task.id_task,
            TaskStatus.ACCEPTED,
            now=now + timedelta(minutes=10),
        )

        assert again.status == TaskStatus.ACCEPTED
        assert ensure_utc(again.accepted_at) == now

    def test_decline_requires_reason(self, session: Session, approved_claim, make_task):
        task = make_task(approved_claim)

        with pytest.raises(ValidationError) as exc_info:
            task_service.update_task_status(session, task.id_task, TaskStatus.DECLINED)

        assert exc_info.value.field == "reason"

    def test_decline_records_reason_on_claim(
        self, session: Session, approved_claim, make_task, now
    ):
        task = make_task(approved_claim)

        task = task_service.update_task_status(
            session, task.id_task, TaskStatus.DECLINED, reason="Out of town", now=now
        )

        session.refresh(approved_claim)
        assert task.status == TaskStatus.DECLINED
        assert task.decline_reason == "Out of town"
        assert approved_claim.assignment_status == AssignmentStatus.DECLINED
        assert approved_claim.assignment_decline_reason == "Out of town"
        assert approved_claim.status == ClaimStatus.VOLUNTEER_ASSIGNED

    def test_declined_claim_can_be_reassigned(
        self, session: Session, approved_claim, make_task, other_volunteer, now
    ):
        task = make_task(approved_claim)
        task_service.update_task_status(
            session, task.id_task, TaskStatus.DECLINED, reason="Sick", now=now
        )

        replacement = make_task(
            approved_claim, volunteer_id=other_volunteer.id_volunteer
        )

        session.refresh(approved_claim)
        assert replacement.id_task != task.id_task
        assert replacement.status == TaskStatus.ASSIGNED
        assert approved_claim.id_assigned_volunteer == other_volunteer.id_volunteer
        assert approved_claim.assignment_status == AssignmentStatus.ASSIGNED
        assert len(task_service.list_claim_tasks(session, approved_claim.id_claim)) == 2

    def test_declined_task_cannot_be_accepted(
        self, session: Session, approved_claim, make_task
    ):
        task = make_task(approved_claim)
        task_service.update_task_status(
            session, task.id_task, TaskStatus.DECLINED, reason="Busy"
        )

        with pytest.raises(InvalidTransitionError):
            task_service.update_task_status(session, task.id_task, TaskStatus.ACCEPTED)

    def test_other_volunteer_cannot_act(
        self, session: Session, approved_claim, make_task, other_volunteer
    ):
        task = make_task(approved_claim)

        with pytest.raises(InsufficientPermissionsError):
            task_service.update_task_status(
                session,
                task.id_task,
                TaskStatus.ACCEPTED,
                volunteer_id=other_volunteer.id_volunteer,
            )

    def test_cannot_skip_ahead(self, session: Session, accepted_task):
        with pytest.raises(InvalidTransitionError):
            task_service.update_task_status(
                session, accepted_task.id_task, TaskStatus.COMPLETED
            )


class TestFullWorkflow:
    """Pickup through delivery, with every dependent following along."""

    def test_completed_task_delivers_the_donation(
        self, session: Session, accepted_task, volunteer, donor, ngo, now
    ):
        task = accepted_task
        task = _step(session, task, TaskStatus.EN_ROUTE_PICKUP, now + timedelta(minutes=30))
        claim = session.get(Claim, task.id_claim)
        assert claim.status == ClaimStatus.IN_PROGRESS

        task = _step(session, task, TaskStatus.AT_PICKUP, now + timedelta(minutes=60))
        event = event_service.get_event_for_task(session, task.id_task)
        assert event.status == PickupEventStatus.VOLUNTEER_ARRIVED
        assert ensure_utc(event.actual_start_time) == now + timedelta(minutes=60)

        task = _step(session, task, TaskStatus.PICKUP_COMPLETED, now + timedelta(minutes=75))
        donation = session.get(Donation, task.id_donation)
        assert donation.status == DonationStatus.PICKED_UP
        assert donation.actual_pickup_time is not None

        task = _step(session, task, TaskStatus.EN_ROUTE_DELIVERY, now + timedelta(minutes=80))
        task = _step(session, task, TaskStatus.AT_DELIVERY, now + timedelta(minutes=100))
        event = event_service.update_pickup_event_status(
            session,
            event.id_pickup_event,
            PickupEventStatus.DELIVERED,
            now=now + timedelta(minutes=105),
        )
        session.refresh(donation)
        assert donation.status == DonationStatus.DELIVERED

        task = _step(session, task, TaskStatus.COMPLETED, now + timedelta(minutes=110))

        session.refresh(event)
        session.refresh(claim)
        assert task.status == TaskStatus.COMPLETED
        assert ensure_utc(task.completed_at) == now + timedelta(minutes=110)
        assert task_service.to_task_public(task).total_duration_minutes == 80
        assert event.status == PickupEventStatus.COMPLETED
        assert claim.status == ClaimStatus.COMPLETED
        assert claim.assignment_status == AssignmentStatus.COMPLETED
        assert claim.actual_delivery_time is not None

        volunteer_stats = rating_service.get_actor_stats(
            session, ActorType.VOLUNTEER, volunteer.id_volunteer
        )
        donor_stats = rating_service.get_actor_stats(session, ActorType.DONOR, donor.id_donor)
        ngo_stats = rating_service.get_actor_stats(session, ActorType.NGO, ngo.id_ngo)
        assert volunteer_stats.completed_tasks == 1
        assert volunteer_stats.total_deliveries == 1
        assert donor_stats.completed_donations == 1
        assert ngo_stats.completed_claims == 1

    def test_completion_without_explicit_delivery_event(
        self, session: Session, accepted_task, now
    ):
        task = accepted_task
        for status in (
            TaskStatus.EN_ROUTE_PICKUP,
            TaskStatus.AT_PICKUP,
            TaskStatus.PICKUP_COMPLETED,
            TaskStatus.EN_ROUTE_DELIVERY,
            TaskStatus.AT_DELIVERY,
            TaskStatus.COMPLETED,
        ):
            task = _step(session, task, status, now)

        donation = session.get(Donation, task.id_donation)
        event = event_service.get_event_for_task(session, task.id_task)
        assert donation.status == DonationStatus.DELIVERED
        assert event.status == PickupEventStatus.COMPLETED

    def test_pickup_only_task_completes_after_pickup(
        self, session: Session, approved_claim, make_task, volunteer, now
    ):
        task = make_task(approved_claim, task_type=TaskType.PICKUP_ONLY)
        for status in (
            TaskStatus.ACCEPTED,
            TaskStatus.EN_ROUTE_PICKUP,
            TaskStatus.AT_PICKUP,
            TaskStatus.PICKUP_COMPLETED,
            TaskStatus.COMPLETED,
        ):
            task = _step(session, task, status, now)

        session.refresh(approved_claim)
        stats = rating_service.get_actor_stats(
            session, ActorType.VOLUNTEER, volunteer.id_volunteer
        )
        assert task.status == TaskStatus.COMPLETED
        assert task.delivery_actual_end is None
        assert approved_claim.status == ClaimStatus.COMPLETED
        assert stats.completed_tasks == 1
        assert stats.total_deliveries == 0

    def test_failed_task_fails_the_event(self, session: Session, accepted_task, now):
        task = _step(session, accepted_task, TaskStatus.EN_ROUTE_PICKUP, now)

        task = task_service.update_task_status(
            session, task.id_task, TaskStatus.FAILED, reason="Flat tyre", now=now
        )

        event = event_service.get_event_for_task(session, task.id_task)
        claim = session.get(Claim, task.id_claim)
        assert task.failure_reason == "Flat tyre"
        assert event.status == PickupEventStatus.FAILED
        assert claim.assignment_status == AssignmentStatus.CANCELLED
        assert claim.status == ClaimStatus.IN_PROGRESS


class TestTaskLogs:
    def test_evidence_with_status_update(self, session: Session, accepted_task, now):
        task = task_service.update_task_status(
            session,
            accepted_task.id_task,
            TaskStatus.EN_ROUTE_PICKUP,
            evidence=EvidenceCreate(
                evidence_type=EvidenceType.CONDITION_PHOTO,
                url="https://cdn.example.com/p/1.jpg",
            ),
            now=now,
        )

        assert len(task.evidence) == 1
        assert task.evidence[0]["evidence_type"] == "condition_photo"
        assert "uploaded_at" in task.evidence[0]

    def test_logs_are_bounded(self, session: Session, accepted_task, now):
        limit = get_settings().LOG_HISTORY_LIMIT
        task = accepted_task
        for index in range(limit + 3):
            task = task_service.record_delay(
                session,
                task.id_task,
                DelayCreate(minutes=index + 1, reason="Traffic"),
                now=now,
            )

        assert len(task.delays) == limit
        assert task.delays[0]["minutes"] == 4
        assert task.delays[-1]["minutes"] == limit + 3

    def test_issue_and_communication(self, session: Session, accepted_task):
        task = task_service.report_issue(
            session,
            accepted_task.id_task,
            TaskIssueCreate(issue_type="access", description="Gate locked"),
        )
        task = task_service.log_communication(
            session,
            task.id_task,
            CommunicationCreate(
                channel=CommunicationChannel.CALL,
                with_party="donor",
                summary="Donor will open the back door",
            ),
        )

        assert task.issues[0]["resolved"] is False
        assert task.communication_log[0]["channel"] == "call"


class TestReschedule:
    def test_reschedule_moves_task_and_event(self, session: Session, accepted_task, now):
        new_time = now + timedelta(hours=2)

        task = task_service.reschedule_pickup(
            session,
            accepted_task.id_task,
            RescheduleRequest(new_time=new_time, reason="Volunteer delayed"),
            now=now,
        )

        event = event_service.get_event_for_task(session, task.id_task)
        assert ensure_utc(task.pickup_scheduled_time) == new_time
        assert ensure_utc(event.scheduled_start_time) == new_time
        assert task.reschedule_history[0]["reason"] == "Volunteer delayed"
        assert task.reschedule_history[0]["previous_time"] == (
            now + timedelta(hours=1)
        ).isoformat()

    def test_new_time_must_be_in_future(self, session: Session, accepted_task, now):
        with pytest.raises(ValidationError):
            task_service.reschedule_pickup(
                session,
                accepted_task.id_task,
                RescheduleRequest(new_time=now - timedelta(minutes=5), reason="Oops"),
                now=now,
            )

    def test_cannot_reschedule_after_pickup(self, session: Session, accepted_task, now):
        task = accepted_task
        for status in (
            TaskStatus.EN_ROUTE_PICKUP,
            TaskStatus.AT_PICKUP,
            TaskStatus.PICKUP_COMPLETED,
        ):
            task = _step(session, task, status, now)

        with pytest.raises(InvalidTransitionError):
            task_service.reschedule_pickup(
                session,
                task.id_task,
                RescheduleRequest(new_time=now + timedelta(hours=1), reason="Late"),
                now=now,
            )


class TestTaskQueries:
    def test_volunteer_listing_by_status(
        self, session: Session, accepted_task, volunteer
    ):
        accepted = task_service.list_volunteer_tasks(
            session, volunteer.id_volunteer, TaskStatus.ACCEPTED
        )
        assigned = task_service.list_volunteer_tasks(
            session, volunteer.id_volunteer, TaskStatus.ASSIGNED
        )

        assert [t.id_task for t in accepted] == [accepted_task.id_task]
        assert assigned == []

    def test_public_view(self, session: Session, accepted_task, now):
        public = task_service.to_task_public(accepted_task, now + timedelta(hours=2))

        assert public.is_overdue is True
        assert public.total_duration_minutes is None
