"""Tests for direct messages between actors."""

import pytest
from sqlmodel import Session

from app.exceptions import NotFoundError, ValidationError
from app.models.actor import ActorRef
from app.models.enums import ActorType
from app.models.message import MessageCreate
from app.services import message as message_service


def _ref(actor_type: ActorType, actor_id: int) -> ActorRef:
    return ActorRef(actor_type=actor_type, actor_id=actor_id)


class TestSendMessage:
    def test_message_about_donation(self, session: Session, donor, ngo, make_donation):
        donation = make_donation()

        message = message_service.send_message(
            session,
            MessageCreate(
                sender=_ref(ActorType.NGO, ngo.id_ngo),
                recipient=_ref(ActorType.DONOR, donor.id_donor),
                body="Can we come at noon?",
                id_donation=donation.id_donation,
            ),
        )

        assert message.message_number.startswith("MSG-")
        assert message.sender_type == ActorType.NGO
        assert message.recipient_id == donor.id_donor
        assert message.id_donation == donation.id_donation
        assert message.is_read is False

    def test_message_to_self(self, session: Session, ngo):
        ref = _ref(ActorType.NGO, ngo.id_ngo)

        with pytest.raises(ValidationError) as exc_info:
            message_service.send_message(
                session, MessageCreate(sender=ref, recipient=ref, body="Hello")
            )

        assert exc_info.value.field == "recipient"

    def test_unknown_recipient(self, session: Session, ngo):
        with pytest.raises(NotFoundError):
            message_service.send_message(
                session,
                MessageCreate(
                    sender=_ref(ActorType.NGO, ngo.id_ngo),
                    recipient=_ref(ActorType.DONOR, 999),
                    body="Hello",
                ),
            )

    def test_unknown_donation(self, session: Session, donor, ngo):
        with pytest.raises(NotFoundError):
            message_service.send_message(
                session,
                MessageCreate(
                    sender=_ref(ActorType.NGO, ngo.id_ngo),
                    recipient=_ref(ActorType.DONOR, donor.id_donor),
                    body="Hello",
                    id_donation=999,
                ),
            )


class TestListMessages:
    def test_sent_and_received(self, session: Session, donor, ngo, volunteer):
        ngo_ref = _ref(ActorType.NGO, ngo.id_ngo)
        donor_ref = _ref(ActorType.DONOR, donor.id_donor)
        volunteer_ref = _ref(ActorType.VOLUNTEER, volunteer.id_volunteer)
        outgoing = message_service.send_message(
            session, MessageCreate(sender=ngo_ref, recipient=donor_ref, body="Out")
        )
        incoming = message_service.send_message(
            session, MessageCreate(sender=volunteer_ref, recipient=ngo_ref, body="In")
        )
        message_service.send_message(
            session, MessageCreate(sender=volunteer_ref, recipient=donor_ref, body="Other")
        )

        messages = message_service.list_actor_messages(session, ActorType.NGO, ngo.id_ngo)

        assert {m.id_message for m in messages} == {
            outgoing.id_message,
            incoming.id_message,
        }

    def test_same_id_other_actor_type(self, session: Session, donor, ngo):
        message_service.send_message(
            session,
            MessageCreate(
                sender=_ref(ActorType.NGO, ngo.id_ngo),
                recipient=_ref(ActorType.DONOR, donor.id_donor),
                body="Hello",
            ),
        )

        assert (
            message_service.list_actor_messages(session, ActorType.VOLUNTEER, ngo.id_ngo)
            == []
        )
