"""Direct messages between actors, optionally about a donation."""

from sqlmodel import Session, or_, select

from app.exceptions import ValidationError
from app.models.donation import Donation
from app.models.enums import ActorType
from app.models.message import Message, MessageCreate
from app.services import actor as actor_service
from app.services.utils import get_or_404
from app.utils.clock import utcnow
from app.utils.identifiers import MESSAGE_PREFIX, generate_business_number


def send_message(session: Session, message_in: MessageCreate) -> Message:
    """
    Store a message from one actor to another.

    Raises:
        ValidationError: If sender and recipient are the same actor
        NotFoundError: If an actor or the referenced donation does not exist
    """
    if message_in.sender == message_in.recipient:
        raise ValidationError("Cannot send a message to yourself", field="recipient")
    actor_service.resolve(session, message_in.sender)
    actor_service.resolve(session, message_in.recipient)
    if message_in.id_donation is not None:
        get_or_404(session, Donation, message_in.id_donation)

    now = utcnow()
    message = Message(
        message_number=generate_business_number(MESSAGE_PREFIX, now),
        sender_type=message_in.sender.actor_type,
        sender_id=message_in.sender.actor_id,
        recipient_type=message_in.recipient.actor_type,
        recipient_id=message_in.recipient.actor_id,
        id_donation=message_in.id_donation,
        body=message_in.body,
        created_at=now,
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def list_actor_messages(
    session: Session, actor_type: ActorType, actor_id: int, limit: int = 50
) -> list[Message]:
    """Messages sent or received by an actor, newest first."""
    statement = (
        select(Message)
        .where(
            or_(
                (Message.sender_type == actor_type) & (Message.sender_id == actor_id),  # type: ignore
                (Message.recipient_type == actor_type)  # type: ignore
                & (Message.recipient_id == actor_id),
            )
        )
        .order_by(Message.created_at.desc())  # type: ignore
        .limit(limit)
    )
    return list(session.exec(statement).all())
