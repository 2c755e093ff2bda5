"""Transition events, in-app notifications and outbound dispatchers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlmodel import Session, select, func

from app.models.actor import ActorRef
from app.models.enums import ActorType, WorkflowEntity
from app.models.notification import Notification
from app.utils.identifiers import NOTIFICATION_PREFIX, generate_business_number
from app.utils.logger import logger


@dataclass(frozen=True)
class TransitionEvent:
    """One accepted status change, emitted after the transaction commits."""

    entity_type: WorkflowEntity
    entity_id: int
    entity_number: str
    old_status: str | None
    new_status: str
    timestamp: datetime
    recipients: tuple[ActorRef, ...] = field(default_factory=tuple)


Dispatcher = Callable[[TransitionEvent], None]

_dispatchers: list[Dispatcher] = []


def register_dispatcher(dispatcher: Dispatcher) -> None:
    """Subscribe an outbound channel (push, email, SMS bridge...) to transition events."""
    _dispatchers.append(dispatcher)


def clear_dispatchers() -> None:
    _dispatchers.clear()


def _title_for(event: TransitionEvent) -> str:
    label = event.entity_type.value.replace("_", " ").capitalize()
    return f"{label} {event.entity_number} is now {event.new_status.replace('_', ' ')}"


def _body_for(event: TransitionEvent) -> str:
    if event.old_status is None:
        return f"{event.entity_number} was created with status '{event.new_status}'."
    return (
        f"{event.entity_number} moved from '{event.old_status}' "
        f"to '{event.new_status}'."
    )


def add_notifications(session: Session, events: list[TransitionEvent]) -> None:
    """
    Stage one Notification row per event recipient.

    Args:
        session: Database session (the caller commits)
        events: Transition events collected during the operation
    """
    for event in events:
        for recipient in event.recipients:
            session.add(
                Notification(
                    notification_number=generate_business_number(NOTIFICATION_PREFIX),
                    recipient_type=recipient.actor_type,
                    recipient_id=recipient.actor_id,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    old_status=event.old_status,
                    new_status=event.new_status,
                    title=_title_for(event),
                    body=_body_for(event),
                    created_at=event.timestamp,
                )
            )


def dispatch(events: list[TransitionEvent]) -> None:
    """
    Hand events to every registered dispatcher.

    Delivery belongs to the dispatcher: a failing dispatcher is logged and
    never affects the transition that produced the event.
    """
    for event in events:
        for dispatcher in list(_dispatchers):
            try:
                dispatcher(event)
            except Exception:
                logger.exception(
                    f"Dispatcher failed for {event.entity_type.value} "
                    f"{event.entity_number} -> {event.new_status}"
                )


def commit_and_publish(session: Session, events: list[TransitionEvent]) -> None:
    """
    Write notifications, commit the unit of work, then dispatch the events.

    Args:
        session: Database session holding the pending workflow writes
        events: Transition events collected during the operation
    """
    add_notifications(session, events)
    session.commit()
    dispatch(events)


def get_actor_notifications(
    session: Session,
    actor_type: ActorType,
    actor_id: int,
    *,
    unread_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> list[Notification]:
    """
    Get notifications for an actor.

    Args:
        session: Database session
        actor_type: Recipient actor type
        actor_id: Recipient actor ID
        unread_only: If True, only return unread notifications
        offset: Pagination offset
        limit: Maximum notifications to return

    Returns:
        list[Notification]: List of notifications ordered by date (newest first)
    """
    statement = select(Notification).where(
        Notification.recipient_type == actor_type,
        Notification.recipient_id == actor_id,
    )

    if unread_only:
        statement = statement.where(Notification.is_read == False)  # noqa: E712

    statement = (
        statement.order_by(Notification.created_at.desc())  # type: ignore
        .offset(offset)
        .limit(limit)
    )

    return list(session.exec(statement).all())


def mark_notifications_as_read(
    session: Session,
    notification_ids: list[int],
    actor_type: ActorType,
    actor_id: int,
) -> int:
    """
    Mark notifications as read.

    Only notifications addressed to the given actor are touched.

    Returns:
        int: Number of notifications marked as read
    """
    statement = select(Notification).where(
        Notification.id_notification.in_(notification_ids),  # type: ignore
        Notification.recipient_type == actor_type,
        Notification.recipient_id == actor_id,
    )

    count = 0
    for notification in session.exec(statement).all():
        if not notification.is_read:
            notification.is_read = True
            session.add(notification)
            count += 1

    session.commit()
    return count


def get_unread_count(session: Session, actor_type: ActorType, actor_id: int) -> int:
    count = session.exec(
        select(func.count())
        .select_from(Notification)
        .where(
            Notification.recipient_type == actor_type,
            Notification.recipient_id == actor_id,
            Notification.is_read == False,  # noqa: E712
        )
    ).one()

    return count
