"""
Actor deletion cascade.

Deleting a principal actor removes or neutralizes every record that only
exists in reference to it, in dependency order: pickup events, tasks and
claims before donations, then messages, feedback, notifications, stats and
finally the actor itself. Rows that only exist because of the actor are
removed in bulk; status changes forced on surviving claims and donations go
through the state machines and notify their parties. Each step commits on
its own; a failing step stops the sequence and is reported with what was and
was not cleaned. Steps that already committed are not rolled back.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy import and_, delete, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.exceptions import CascadeFailureError, ConflictError
from app.models.actor import ActorStats
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import ActorType, ClaimStatus, DonationStatus
from app.models.feedback import Feedback
from app.models.message import Message
from app.models.notification import Notification
from app.models.pickup_event import PickupEvent
from app.models.volunteer_task import VolunteerTask
from app.services import actor as actor_service
from app.services import rating as rating_service
from app.services.lifecycle import (
    CLAIM_MACHINE,
    DONATION_MACHINE,
    advance,
    release,
    stamp,
    transition,
)
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.propagation import release_donation
from app.services.utils import compare_and_set, get_or_404
from app.utils.clock import utcnow
from app.utils.logger import logger

Step = Callable[[Session, ActorType, int, datetime], int]


@dataclass
class CascadeReport:
    actor_type: ActorType
    actor_id: int
    cleaned: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)


def _run(session: Session, statement) -> int:
    result = session.exec(statement.execution_options(synchronize_session=False))  # type: ignore
    return result.rowcount or 0


def _detach_feedback(session: Session, column_name: str, ids_query) -> None:
    # Feedback outlives the workflow records it was written about
    column = getattr(Feedback, column_name)
    _run(
        session,
        update(Feedback).where(column.in_(ids_query)).values({column_name: None}),
    )


def _owner_column(model, actor_type: ActorType):
    return getattr(
        model,
        {
            ActorType.DONOR: "id_donor",
            ActorType.NGO: "id_ngo",
            ActorType.VOLUNTEER: "id_volunteer",
        }[actor_type],
    )


def _delete_pickup_events(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    owned = _owner_column(PickupEvent, actor_type) == actor_id
    _detach_feedback(
        session, "id_pickup_event", select(PickupEvent.id_pickup_event).where(owned)
    )
    return _run(session, delete(PickupEvent).where(owned))


def _delete_tasks(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    owned = _owner_column(VolunteerTask, actor_type) == actor_id
    _detach_feedback(session, "id_task", select(VolunteerTask.id_task).where(owned))
    return _run(session, delete(VolunteerTask).where(owned))


def _delete_claims(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    owned = _owner_column(Claim, actor_type) == actor_id
    _detach_feedback(session, "id_claim", select(Claim.id_claim).where(owned))
    return _run(session, delete(Claim).where(owned))


def _delete_donations(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    owned = Donation.id_donor == actor_id
    _detach_feedback(session, "id_donation", select(Donation.id_donation).where(owned))
    _run(
        session,
        update(Message)
        .where(Message.id_donation.in_(select(Donation.id_donation).where(owned)))  # type: ignore[union-attr]
        .values(id_donation=None),
    )
    return _run(session, delete(Donation).where(owned))


def _release_claimed_donations(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    """Donations held by a deleted NGO are released the way a withdrawn claim releases them."""
    held = session.exec(select(Donation).where(Donation.claimed_by == actor_id)).all()
    events: list[TransitionEvent] = []
    for donation in held:
        if not DONATION_MACHINE.is_terminal(donation.status):
            release_donation(
                session, donation, events, now, reason="Claiming NGO was removed"
            )
    # Delivered donations keep their status; the reference cannot outlive the NGO
    _run(
        session,
        update(Donation)
        .where(Donation.claimed_by == actor_id)
        .values(claimed_by=None, updated_at=now),
    )
    commit_and_publish(session, events)
    return len(held)


_CLEARED_ASSIGNMENT = {
    "id_assigned_volunteer": None,
    "assignment_role": None,
    "assignment_status": None,
    "assignment_assigned_at": None,
    "assignment_accepted_at": None,
}


def _unassign_volunteer(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    """
    Detach a deleted volunteer from the claims they were assigned to.

    Claims still waiting on the pickup step back to approved for re-assignment.
    Food the volunteer had already collected is lost with them, so that claim
    and its donation are cancelled; food already delivered completes the claim.
    """
    claims = session.exec(
        select(Claim).where(Claim.id_assigned_volunteer == actor_id)
    ).all()
    events: list[TransitionEvent] = []
    for claim in claims:
        cleared = {**_CLEARED_ASSIGNMENT, "updated_at": now}
        if CLAIM_MACHINE.is_terminal(claim.status) or claim.status == ClaimStatus.APPROVED:
            compare_and_set(session, claim, claim.status, cleared, "Claim")
            continue

        donation = get_or_404(session, Donation, claim.id_donation)
        if donation.status == DonationStatus.DELIVERED:
            advance(
                session, CLAIM_MACHINE, claim, ClaimStatus.COMPLETED,
                events=events,
                values={**cleared, **stamp(claim, "completed_at", now)},
                now=now,
            )
        elif donation.status == DonationStatus.PICKED_UP:
            reason = "Assigned volunteer was removed after pickup"
            transition(
                session, CLAIM_MACHINE, claim, ClaimStatus.CANCELLED,
                events=events,
                values={
                    **cleared,
                    **stamp(claim, "cancelled_at", now),
                    "cancellation_reason": reason,
                },
                now=now,
            )
            release_donation(session, donation, events, now, reason=reason)
        else:
            release(
                session, CLAIM_MACHINE, claim, ClaimStatus.APPROVED,
                events=events, values=cleared, now=now,
            )
            if donation.status == DonationStatus.PICKUP_SCHEDULED:
                release(
                    session, DONATION_MACHINE, donation, DonationStatus.CLAIMED,
                    events=events, now=now,
                )
    commit_and_publish(session, events)
    return len(claims)


def _delete_messages(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    return _run(
        session,
        delete(Message).where(
            or_(
                and_(Message.sender_type == actor_type, Message.sender_id == actor_id),
                and_(
                    Message.recipient_type == actor_type,
                    Message.recipient_id == actor_id,
                ),
            )
        ),
    )


def _delete_feedback(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    by_actor = and_(Feedback.reviewer_type == actor_type, Feedback.reviewer_id == actor_id)
    about_actor = and_(
        Feedback.reviewee_type == actor_type, Feedback.reviewee_id == actor_id
    )

    # Ratings the actor gave stop counting for the actors they rated
    counted = session.exec(
        select(Feedback).where(by_actor, Feedback.counted_in_stats == True)  # noqa: E712
    ).all()
    for feedback in counted:
        if (feedback.reviewee_type, feedback.reviewee_id) != (actor_type, actor_id):
            rating_service.apply_rating(
                session,
                feedback.reviewee_type,
                feedback.reviewee_id,
                feedback.overall_rating,
                remove=True,
            )

    return _run(session, delete(Feedback).where(or_(by_actor, about_actor)))


def _delete_notifications(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    return _run(
        session,
        delete(Notification).where(
            Notification.recipient_type == actor_type,
            Notification.recipient_id == actor_id,
        ),
    )


def _delete_stats(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    return _run(
        session,
        delete(ActorStats).where(
            ActorStats.actor_type == actor_type,  # type: ignore[arg-type]
            ActorStats.actor_id == actor_id,  # type: ignore[arg-type]
        ),
    )


def _delete_actor_record(
    session: Session, actor_type: ActorType, actor_id: int, now: datetime
) -> int:
    model = actor_service.ACTOR_MODELS[actor_type]
    pk = getattr(model, f"id_{actor_type.value}")
    return _run(session, delete(model).where(pk == actor_id))


_COMMON_TAIL: list[tuple[str, Step]] = [
    ("messages", _delete_messages),
    ("feedback", _delete_feedback),
    ("notifications", _delete_notifications),
    ("stats", _delete_stats),
    ("actor", _delete_actor_record),
]

CASCADE_PLANS: dict[ActorType, list[tuple[str, Step]]] = {
    ActorType.DONOR: [
        ("pickup_events", _delete_pickup_events),
        ("volunteer_tasks", _delete_tasks),
        ("claims", _delete_claims),
        ("donations", _delete_donations),
        *_COMMON_TAIL,
    ],
    ActorType.NGO: [
        ("pickup_events", _delete_pickup_events),
        ("volunteer_tasks", _delete_tasks),
        ("claims", _delete_claims),
        ("donations", _release_claimed_donations),
        *_COMMON_TAIL,
    ],
    ActorType.VOLUNTEER: [
        ("pickup_events", _delete_pickup_events),
        ("volunteer_tasks", _delete_tasks),
        ("claims", _unassign_volunteer),
        *_COMMON_TAIL,
    ],
    ActorType.BENEFICIARY: list(_COMMON_TAIL),
}


def delete_actor(
    session: Session,
    actor_type: ActorType,
    actor_id: int,
    now: datetime | None = None,
) -> CascadeReport:
    """
    Delete an actor and everything that only exists because of it.

    Args:
        session: Database session
        actor_type: Type of the actor to delete
        actor_id: ID of the actor to delete
        now: Reference time for expiring released donations

    Returns:
        CascadeReport: Cleaned collections in order, with affected row counts

    Raises:
        NotFoundError: If the actor does not exist
        CascadeFailureError: If a step failed; earlier steps stay applied
    """
    now = now or utcnow()
    actor_service.get_actor(session, actor_type, actor_id)

    plan = CASCADE_PLANS[actor_type]
    report = CascadeReport(actor_type=actor_type, actor_id=actor_id)
    for index, (name, step) in enumerate(plan):
        try:
            report.counts[name] = step(session, actor_type, actor_id, now)
            session.commit()
        except (SQLAlchemyError, ConflictError) as e:
            session.rollback()
            not_cleaned = [pending for pending, _ in plan[index:]]
            logger.error(
                f"Cascade for {actor_type.value} {actor_id} stopped at '{name}': {e}"
            )
            raise CascadeFailureError(
                actor_type.value, actor_id, list(report.cleaned), not_cleaned, str(e)
            ) from e
        report.cleaned.append(name)

    session.expire_all()
    logger.info(
        f"Deleted {actor_type.value} {actor_id} with dependents: {report.counts}"
    )
    return report
