"""
Cross-entity propagation of workflow transitions.

The owning transition is always written first; dependents follow in the same
unit of work, forward only, through compare-and-set. Nothing here commits:
the calling service publishes the collected events once everything succeeded.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlmodel import Session, select

from app.exceptions import ExpiredEntityError, InvalidTransitionError
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import (
    AssignmentStatus,
    ClaimStatus,
    DonationStatus,
    PickupEventStatus,
    TaskStatus,
    TaskType,
)
from app.models.pickup_event import PickupEvent
from app.models.volunteer_task import VolunteerTask
from app.services import rating as rating_service
from app.services.lifecycle import (
    CLAIM_MACHINE,
    DONATION_MACHINE,
    StateMachine,
    advance,
    created_event,
    event_machine_for,
    stamp,
    task_machine_for,
    transition,
)
from app.services.notification import TransitionEvent
from app.services.utils import compare_and_set, get_or_404
from app.utils.clock import ensure_utc
from app.utils.identifiers import PICKUP_EVENT_PREFIX, generate_business_number

INACTIVE_CLAIM_STATUSES = frozenset(
    {ClaimStatus.REJECTED, ClaimStatus.CANCELLED, ClaimStatus.EXPIRED}
)
INACTIVE_TASK_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.CANCELLED, TaskStatus.FAILED, TaskStatus.DECLINED}
)
INACTIVE_EVENT_STATUSES = frozenset(
    {PickupEventStatus.COMPLETED, PickupEventStatus.CANCELLED, PickupEventStatus.FAILED}
)
RELEASABLE_DONATION_STATUSES = frozenset(
    {DonationStatus.CLAIMED, DonationStatus.PICKUP_SCHEDULED}
)

T = TaskStatus
P = PickupEventStatus

TASK_TO_EVENT = {
    T.EN_ROUTE_PICKUP: P.VOLUNTEER_EN_ROUTE,
    T.AT_PICKUP: P.VOLUNTEER_ARRIVED,
    T.PICKUP_COMPLETED: P.PICKUP_COMPLETED,
    T.EN_ROUTE_DELIVERY: P.DELIVERY_IN_PROGRESS,
    T.AT_DELIVERY: P.DELIVERY_IN_PROGRESS,
    T.COMPLETED: P.COMPLETED,
}

EVENT_TO_TASK = {
    P.VOLUNTEER_EN_ROUTE: T.EN_ROUTE_PICKUP,
    P.VOLUNTEER_ARRIVED: T.AT_PICKUP,
    P.FOOD_ASSESSMENT: T.AT_PICKUP,
    P.PICKUP_IN_PROGRESS: T.AT_PICKUP,
    P.PICKUP_COMPLETED: T.PICKUP_COMPLETED,
    P.DELIVERY_IN_PROGRESS: T.EN_ROUTE_DELIVERY,
    P.DELIVERED: T.AT_DELIVERY,
    P.COMPLETED: T.COMPLETED,
}

EVENT_TO_DONATION = {
    P.SCHEDULED: DonationStatus.PICKUP_SCHEDULED,
    P.VOLUNTEER_EN_ROUTE: DonationStatus.PICKUP_SCHEDULED,
    P.VOLUNTEER_ARRIVED: DonationStatus.PICKUP_SCHEDULED,
    P.FOOD_ASSESSMENT: DonationStatus.PICKUP_SCHEDULED,
    P.PICKUP_IN_PROGRESS: DonationStatus.PICKUP_SCHEDULED,
    P.PICKUP_COMPLETED: DonationStatus.PICKED_UP,
    P.DELIVERY_IN_PROGRESS: DonationStatus.PICKED_UP,
    P.DELIVERED: DonationStatus.DELIVERED,
    P.COMPLETED: DonationStatus.DELIVERED,
}

EVENT_TO_CLAIM = {
    P.SCHEDULED: ClaimStatus.PICKUP_SCHEDULED,
    P.VOLUNTEER_EN_ROUTE: ClaimStatus.IN_PROGRESS,
    P.VOLUNTEER_ARRIVED: ClaimStatus.IN_PROGRESS,
    P.FOOD_ASSESSMENT: ClaimStatus.IN_PROGRESS,
    P.PICKUP_IN_PROGRESS: ClaimStatus.IN_PROGRESS,
    P.PICKUP_COMPLETED: ClaimStatus.IN_PROGRESS,
    P.DELIVERY_IN_PROGRESS: ClaimStatus.IN_PROGRESS,
    P.DELIVERED: ClaimStatus.IN_PROGRESS,
    P.COMPLETED: ClaimStatus.COMPLETED,
}


def is_past_expiry(donation: Donation, now: datetime) -> bool:
    return ensure_utc(donation.expiry_date_time) <= now  # type: ignore[operator]


def _reached(machine: StateMachine, status: Any, milestone: Any) -> bool:
    return status == milestone or machine.is_ahead(milestone, status)


def task_timestamps(task: VolunteerTask, status: TaskStatus, now: datetime) -> dict:
    """First-write-wins timestamps a task collects on its way to `status`."""
    machine = task_machine_for(task.task_type)
    values: dict = {}
    if status == T.ACCEPTED:
        values.update(stamp(task, "accepted_at", now))
    elif status == T.DECLINED:
        values.update(stamp(task, "declined_at", now))
    elif status == T.CANCELLED:
        values.update(stamp(task, "cancelled_at", now))

    if _reached(machine, status, T.EN_ROUTE_PICKUP):
        values.update(stamp(task, "pickup_actual_start", now))
    if _reached(machine, status, T.PICKUP_COMPLETED):
        values.update(stamp(task, "pickup_actual_end", now))
    if _reached(machine, status, T.EN_ROUTE_DELIVERY):
        values.update(stamp(task, "delivery_actual_start", now))
    if status == T.COMPLETED:
        values.update(stamp(task, "completed_at", now))
        if task.task_type != TaskType.PICKUP_ONLY:
            values.update(stamp(task, "delivery_actual_end", now))
    return values


def event_timestamps(event: PickupEvent, status: PickupEventStatus, now: datetime) -> dict:
    machine = event_machine_for(event.task_type)
    values: dict = {}
    if _reached(machine, status, P.VOLUNTEER_ARRIVED):
        values.update(stamp(event, "actual_start_time", now))
    if status in (P.DELIVERED, P.COMPLETED):
        values.update(stamp(event, "actual_end_time", now))
    return values


def find_active_claims(
    session: Session, donation_id: int, exclude_claim_id: int | None = None
) -> list[Claim]:
    statement = select(Claim).where(
        Claim.id_donation == donation_id,
        Claim.status.not_in(INACTIVE_CLAIM_STATUSES),  # type: ignore[attr-defined]
    )
    if exclude_claim_id is not None:
        statement = statement.where(Claim.id_claim != exclude_claim_id)
    return list(session.exec(statement).all())


def find_active_task(session: Session, claim_id: int) -> VolunteerTask | None:
    return session.exec(
        select(VolunteerTask).where(
            VolunteerTask.id_claim == claim_id,
            VolunteerTask.status.not_in(INACTIVE_TASK_STATUSES),  # type: ignore[attr-defined]
        )
    ).first()


def donation_has_active_task(session: Session, donation_id: int) -> bool:
    return (
        session.exec(
            select(VolunteerTask.id_task).where(
                VolunteerTask.id_donation == donation_id,
                VolunteerTask.status.not_in(INACTIVE_TASK_STATUSES),  # type: ignore[attr-defined]
            )
        ).first()
        is not None
    )


def find_event_for_task(session: Session, task_id: int) -> PickupEvent | None:
    return session.exec(
        select(PickupEvent).where(PickupEvent.id_task == task_id)
    ).first()


def _advance_or_touch(
    session: Session,
    machine: StateMachine,
    entity: Any,
    target: Any,
    values: dict,
    events: list[TransitionEvent],
    now: datetime,
) -> bool:
    """Advance `entity`; if it is already there, still write pending `values`."""
    if advance(session, machine, entity, target, events=events, values=values, now=now):
        return True
    if values and not machine.is_terminal(entity.status):
        compare_and_set(session, entity, entity.status, values, machine.label)
    return False


def release_donation(
    session: Session,
    donation: Donation,
    events: list[TransitionEvent],
    now: datetime,
    reason: str = "Claim withdrawn after pickup",
) -> None:
    """
    Unbind a donation from its claim.

    Claimed / pickup-scheduled donations go back to available, or to expired
    once their deadline has passed. A donation that already left the donor
    cannot be offered again and is cancelled instead.
    """
    unbind = {"claimed_by": None, "claimed_at": None}
    if donation.status in RELEASABLE_DONATION_STATUSES:
        target = (
            DonationStatus.EXPIRED
            if is_past_expiry(donation, now)
            else DonationStatus.AVAILABLE
        )
        transition(
            session, DONATION_MACHINE, donation, target,
            events=events, values=unbind, now=now,
        )
    elif donation.status == DonationStatus.PICKED_UP:
        transition(
            session, DONATION_MACHINE, donation, DonationStatus.CANCELLED,
            events=events,
            values={
                **unbind,
                **stamp(donation, "cancelled_at", now),
                "cancellation_reason": reason,
            },
            now=now,
        )


def sync_from_event(
    session: Session,
    event: PickupEvent,
    events: list[TransitionEvent],
    now: datetime,
) -> None:
    """Carry a pickup event's progress to its donation and claim."""
    donation = get_or_404(session, Donation, event.id_donation)
    claim = get_or_404(session, Claim, event.id_claim)
    event_machine = event_machine_for(event.task_type)

    donation_target = EVENT_TO_DONATION.get(event.status)
    if donation_target is not None:
        values: dict = {}
        if _reached(DONATION_MACHINE, donation_target, DonationStatus.PICKED_UP):
            values.update(stamp(donation, "actual_pickup_time", now))
        if donation_target == DonationStatus.DELIVERED:
            values.update(stamp(donation, "delivered_at", now))
        became_delivered = _advance_or_touch(
            session, DONATION_MACHINE, donation, donation_target, values, events, now
        ) and donation_target == DonationStatus.DELIVERED
        if became_delivered:
            rating_service.record_completion(
                session,
                id_volunteer=event.id_volunteer,
                id_donor=event.id_donor,
                id_ngo=event.id_ngo,
                delivered=event.task_type != TaskType.PICKUP_ONLY,
            )

    claim_target = EVENT_TO_CLAIM.get(event.status)
    if claim_target is not None:
        values = {}
        if _reached(event_machine, event.status, P.PICKUP_COMPLETED):
            values.update(stamp(claim, "actual_pickup_time", now))
        if event.status in (P.DELIVERED, P.COMPLETED):
            values.update(stamp(claim, "actual_delivery_time", now))
        if claim_target == ClaimStatus.COMPLETED:
            values.update(stamp(claim, "completed_at", now))
            values.update(stamp(claim, "assignment_completed_at", now))
            values["assignment_status"] = AssignmentStatus.COMPLETED
        _advance_or_touch(session, CLAIM_MACHINE, claim, claim_target, values, events, now)


def check_task_acceptable(session: Session, task: VolunteerTask, now: datetime) -> None:
    """
    Refuse acceptance of a task whose claim or donation can no longer be served.

    Raises:
        ExpiredEntityError: If the claim or the donation expired
        InvalidTransitionError: If the claim or the donation was closed otherwise
    """
    claim = get_or_404(session, Claim, task.id_claim)
    donation = get_or_404(session, Donation, task.id_donation)

    if claim.status == ClaimStatus.EXPIRED:
        raise ExpiredEntityError("Claim", claim.claim_number)
    if donation.status == DonationStatus.EXPIRED or (
        donation.status in RELEASABLE_DONATION_STATUSES
        and is_past_expiry(donation, now)
    ):
        raise ExpiredEntityError("Donation", donation.donation_number)
    if CLAIM_MACHINE.is_terminal(claim.status):
        raise InvalidTransitionError(
            "VolunteerTask", task.task_number, task.status.value, T.ACCEPTED.value,
            reason=f"claim {claim.claim_number} is {claim.status.value}",
        )
    if DONATION_MACHINE.is_terminal(donation.status):
        raise InvalidTransitionError(
            "VolunteerTask", task.task_number, task.status.value, T.ACCEPTED.value,
            reason=f"donation {donation.donation_number} is {donation.status.value}",
        )


def on_task_accepted(
    session: Session,
    task: VolunteerTask,
    events: list[TransitionEvent],
    now: datetime,
) -> PickupEvent:
    """Open the pickup event and schedule the claim and donation."""
    claim = get_or_404(session, Claim, task.id_claim)

    scheduled_end = task.pickup_scheduled_time + timedelta(
        minutes=task.pickup_estimated_minutes
    )
    event = PickupEvent(
        event_number=generate_business_number(PICKUP_EVENT_PREFIX, now),
        id_task=task.id_task,  # type: ignore[arg-type]
        id_claim=task.id_claim,
        id_donation=task.id_donation,
        id_volunteer=task.id_volunteer,
        id_ngo=task.id_ngo,
        id_donor=task.id_donor,
        task_type=task.task_type,
        scheduled_start_time=task.pickup_scheduled_time,
        scheduled_end_time=scheduled_end,
        created_at=now,
        updated_at=now,
    )
    session.add(event)
    session.flush()
    session.refresh(event)
    events.append(created_event(event_machine_for(task.task_type), event, now))

    _advance_or_touch(
        session,
        CLAIM_MACHINE,
        claim,
        ClaimStatus.PICKUP_SCHEDULED,
        {
            "assignment_status": AssignmentStatus.ACCEPTED,
            **stamp(claim, "assignment_accepted_at", now),
            "scheduled_pickup_time": task.pickup_scheduled_time,
        },
        events,
        now,
    )
    donation = get_or_404(session, Donation, task.id_donation)
    advance(
        session, DONATION_MACHINE, donation, DonationStatus.PICKUP_SCHEDULED,
        events=events, now=now,
    )
    return event


def on_task_declined(
    session: Session,
    task: VolunteerTask,
    reason: str,
    now: datetime,
) -> None:
    claim = get_or_404(session, Claim, task.id_claim)
    if claim.id_assigned_volunteer != task.id_volunteer:
        return
    compare_and_set(
        session,
        claim,
        claim.status,
        {
            "assignment_status": AssignmentStatus.DECLINED,
            "assignment_declined_at": now,
            "assignment_decline_reason": reason,
        },
        "Claim",
    )


def _cancel_claim_assignment(session: Session, claim_id: int, volunteer_id: int) -> None:
    claim = get_or_404(session, Claim, claim_id)
    if claim.id_assigned_volunteer != volunteer_id or CLAIM_MACHINE.is_terminal(
        claim.status
    ):
        return
    compare_and_set(
        session,
        claim,
        claim.status,
        {"assignment_status": AssignmentStatus.CANCELLED},
        "Claim",
    )


def on_task_progress(
    session: Session,
    task: VolunteerTask,
    events: list[TransitionEvent],
    now: datetime,
    reason: str | None = None,
) -> None:
    """Propagate a task transition (other than accept / decline) downstream."""
    event = find_event_for_task(session, task.id_task)  # type: ignore[arg-type]

    if task.status in (T.CANCELLED, T.FAILED):
        if event is not None and event.status not in INACTIVE_EVENT_STATUSES:
            target = P.CANCELLED if task.status == T.CANCELLED else P.FAILED
            transition(
                session, event_machine_for(event.task_type), event, target,
                events=events, now=now,
            )
        _cancel_claim_assignment(session, task.id_claim, task.id_volunteer)
        return

    if event is None:
        return
    event_target = TASK_TO_EVENT.get(task.status)
    if event_target is not None:
        advance(
            session,
            event_machine_for(event.task_type),
            event,
            event_target,
            events=events,
            values=event_timestamps(event, event_target, now),
            now=now,
        )
    sync_from_event(session, event, events, now)


def on_event_progress(
    session: Session,
    event: PickupEvent,
    events: list[TransitionEvent],
    now: datetime,
    reason: str | None = None,
) -> None:
    """Propagate a pickup event transition to its task, claim and donation."""
    task = get_or_404(session, VolunteerTask, event.id_task)
    task_machine = task_machine_for(task.task_type)

    if event.status in (P.CANCELLED, P.FAILED):
        if task.status not in INACTIVE_TASK_STATUSES:
            if event.status == P.CANCELLED:
                target, values = T.CANCELLED, {
                    **stamp(task, "cancelled_at", now),
                    "cancellation_reason": reason,
                }
            else:
                target, values = T.FAILED, {"failure_reason": reason}
            transition(
                session, task_machine, task, target,
                events=events, values=values, now=now,
            )
        _cancel_claim_assignment(session, event.id_claim, event.id_volunteer)
        return

    task_target = EVENT_TO_TASK.get(event.status)
    if task_target is not None:
        advance(
            session,
            task_machine,
            task,
            task_target,
            events=events,
            values=task_timestamps(task, task_target, now),
            now=now,
        )
    sync_from_event(session, event, events, now)


def cancel_claim_dependents(
    session: Session,
    claim: Claim,
    events: list[TransitionEvent],
    now: datetime,
    reason: str,
) -> None:
    """Close the active task and pickup event of a cancelled claim and release its donation."""
    task = find_active_task(session, claim.id_claim)  # type: ignore[arg-type]
    if task is not None:
        transition(
            session,
            task_machine_for(task.task_type),
            task,
            T.CANCELLED,
            events=events,
            values={**stamp(task, "cancelled_at", now), "cancellation_reason": reason},
            now=now,
        )
        event = find_event_for_task(session, task.id_task)  # type: ignore[arg-type]
        if event is not None and event.status not in INACTIVE_EVENT_STATUSES:
            transition(
                session, event_machine_for(event.task_type), event, P.CANCELLED,
                events=events, now=now,
            )

    donation = get_or_404(session, Donation, claim.id_donation)
    if donation.claimed_by == claim.id_ngo:
        release_donation(session, donation, events, now)


def cancel_donation_dependents(
    session: Session,
    donation: Donation,
    events: list[TransitionEvent],
    now: datetime,
    reason: str,
) -> None:
    """Cancel every live claim, task and pickup event hanging off a cancelled donation."""
    for claim in find_active_claims(session, donation.id_donation):  # type: ignore[arg-type]
        if CLAIM_MACHINE.is_terminal(claim.status):
            continue
        task = find_active_task(session, claim.id_claim)  # type: ignore[arg-type]
        if task is not None:
            event = find_event_for_task(session, task.id_task)  # type: ignore[arg-type]
            if event is not None and event.status not in INACTIVE_EVENT_STATUSES:
                transition(
                    session, event_machine_for(event.task_type), event, P.CANCELLED,
                    events=events, now=now,
                )
            transition(
                session,
                task_machine_for(task.task_type),
                task,
                T.CANCELLED,
                events=events,
                values={
                    **stamp(task, "cancelled_at", now),
                    "cancellation_reason": reason,
                },
                now=now,
            )
        values = {**stamp(claim, "cancelled_at", now), "cancellation_reason": reason}
        if claim.assignment_status in (AssignmentStatus.ASSIGNED, AssignmentStatus.ACCEPTED):
            values["assignment_status"] = AssignmentStatus.CANCELLED
        transition(
            session, CLAIM_MACHINE, claim, ClaimStatus.CANCELLED,
            events=events, values=values, now=now,
        )
