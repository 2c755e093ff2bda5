"""Tests for transition notifications and outbound dispatchers."""

from unittest.mock import MagicMock, patch

from sqlmodel import Session

from app.models.enums import ActorType, WorkflowEntity
from app.services import notification as notification_service
from app.services.notification import TransitionEvent


class TestNotificationRows:
    def test_every_transition_notifies_its_parties(
        self, session: Session, make_donation, make_claim, donor, ngo
    ):
        make_claim(make_donation())

        donor_notes = notification_service.get_actor_notifications(
            session, ActorType.DONOR, donor.id_donor
        )
        ngo_notes = notification_service.get_actor_notifications(
            session, ActorType.NGO, ngo.id_ngo
        )

        # Donation created, donation claimed, claim created
        assert len(donor_notes) == 3
        assert {n.entity_type for n in ngo_notes} == {
            WorkflowEntity.DONATION,
            WorkflowEntity.CLAIM,
        }
        claimed = next(n for n in donor_notes if n.new_status == "claimed")
        assert claimed.old_status == "available"
        assert "available" in claimed.body

    def test_unread_count_and_mark_read(self, session: Session, make_donation, donor):
        make_donation()
        notes = notification_service.get_actor_notifications(
            session, ActorType.DONOR, donor.id_donor
        )
        assert notification_service.get_unread_count(
            session, ActorType.DONOR, donor.id_donor
        ) == 1

        marked = notification_service.mark_notifications_as_read(
            session, [notes[0].id_notification], ActorType.DONOR, donor.id_donor
        )

        assert marked == 1
        assert notification_service.get_unread_count(
            session, ActorType.DONOR, donor.id_donor
        ) == 0
        assert notification_service.get_actor_notifications(
            session, ActorType.DONOR, donor.id_donor, unread_only=True
        ) == []

    def test_cannot_mark_someone_elses_notifications(
        self, session: Session, make_donation, donor, ngo
    ):
        make_donation()
        notes = notification_service.get_actor_notifications(
            session, ActorType.DONOR, donor.id_donor
        )

        marked = notification_service.mark_notifications_as_read(
            session, [notes[0].id_notification], ActorType.NGO, ngo.id_ngo
        )

        assert marked == 0
        assert notification_service.get_unread_count(
            session, ActorType.DONOR, donor.id_donor
        ) == 1


class TestDispatchers:
    def test_dispatcher_receives_events_after_commit(self, make_donation):
        received: list[TransitionEvent] = []
        notification_service.register_dispatcher(received.append)

        donation = make_donation()

        assert len(received) == 1
        assert received[0].entity_type == WorkflowEntity.DONATION
        assert received[0].entity_number == donation.donation_number
        assert received[0].old_status is None
        assert received[0].new_status == "available"

    def test_failing_dispatcher_never_breaks_the_transition(
        self, session: Session, make_donation
    ):
        failing = MagicMock(side_effect=RuntimeError("push gateway down"))
        working = MagicMock()
        notification_service.register_dispatcher(failing)
        notification_service.register_dispatcher(working)

        with patch("app.services.notification.logger") as mock_logger:
            donation = make_donation()

        assert donation.id_donation is not None
        failing.assert_called_once()
        working.assert_called_once()
        mock_logger.exception.assert_called_once()
