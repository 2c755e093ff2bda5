"""
Status machines for the rescue workflow and the single write path for status changes.

Every status write in the service layer goes through `transition` (validated
against the entity's table, explicit step) or `advance` (forward-only sync
used when one entity drives another), or `release` for the few backward
steps an actor deletion forces. All of them write with compare-and-set on the
status that was read, append a TransitionEvent for the caller to publish, and
count the transition.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlmodel import Session

from app.core.telemetry import record_transition
from app.exceptions import InvalidTransitionError
from app.models.actor import ActorRef
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import (
    ActorType,
    ClaimStatus,
    DonationStatus,
    FeedbackStatus,
    PickupEventStatus,
    TaskStatus,
    TaskType,
    WorkflowEntity,
)
from app.models.feedback import Feedback
from app.models.pickup_event import PickupEvent
from app.models.volunteer_task import VolunteerTask
from app.services.notification import TransitionEvent
from app.services.utils import compare_and_set, primary_key_of
from app.utils.clock import utcnow


@dataclass(frozen=True)
class StateMachine:
    entity_type: WorkflowEntity
    label: str
    number_field: str
    transitions: dict[Any, frozenset]
    terminal: frozenset
    path: tuple
    recipients: Callable[[Any], list[ActorRef]]
    # Backward steps taken only when an actor a later status relied on is deleted
    release_edges: dict[Any, frozenset] = field(default_factory=dict)

    def is_terminal(self, status) -> bool:
        return status in self.terminal

    def can_transition(self, current, new) -> bool:
        if self.is_terminal(current):
            return False
        return new in self.transitions.get(current, frozenset())

    def is_ahead(self, current, target) -> bool:
        """True when `target` lies further along the happy path than `current`."""
        if current not in self.path or target not in self.path:
            return False
        return self.path.index(target) > self.path.index(current)


def _donation_recipients(donation: Donation) -> list[ActorRef]:
    recipients = [ActorRef(actor_type=ActorType.DONOR, actor_id=donation.id_donor)]
    if donation.claimed_by is not None:
        recipients.append(
            ActorRef(actor_type=ActorType.NGO, actor_id=donation.claimed_by)
        )
    return recipients


def _claim_recipients(claim: Claim) -> list[ActorRef]:
    return [
        ActorRef(actor_type=ActorType.NGO, actor_id=claim.id_ngo),
        ActorRef(actor_type=ActorType.DONOR, actor_id=claim.id_donor),
    ]


def _task_recipients(task: VolunteerTask) -> list[ActorRef]:
    return [
        ActorRef(actor_type=ActorType.VOLUNTEER, actor_id=task.id_volunteer),
        ActorRef(actor_type=ActorType.NGO, actor_id=task.id_ngo),
    ]


def _event_recipients(event: PickupEvent) -> list[ActorRef]:
    return [
        ActorRef(actor_type=ActorType.DONOR, actor_id=event.id_donor),
        ActorRef(actor_type=ActorType.NGO, actor_id=event.id_ngo),
    ]


def _feedback_recipients(feedback: Feedback) -> list[ActorRef]:
    return [ActorRef(actor_type=feedback.reviewee_type, actor_id=feedback.reviewee_id)]


D = DonationStatus
DONATION_MACHINE = StateMachine(
    entity_type=WorkflowEntity.DONATION,
    label="Donation",
    number_field="donation_number",
    transitions={
        D.AVAILABLE: frozenset({D.CLAIMED, D.CANCELLED, D.EXPIRED}),
        D.CLAIMED: frozenset(
            {D.AVAILABLE, D.PICKUP_SCHEDULED, D.CANCELLED, D.EXPIRED}
        ),
        D.PICKUP_SCHEDULED: frozenset(
            {D.AVAILABLE, D.PICKED_UP, D.CANCELLED, D.EXPIRED}
        ),
        D.PICKED_UP: frozenset({D.DELIVERED, D.CANCELLED, D.EXPIRED}),
    },
    terminal=frozenset({D.DELIVERED, D.EXPIRED, D.CANCELLED}),
    path=(D.AVAILABLE, D.CLAIMED, D.PICKUP_SCHEDULED, D.PICKED_UP, D.DELIVERED),
    recipients=_donation_recipients,
    release_edges={D.PICKUP_SCHEDULED: frozenset({D.CLAIMED})},
)

C = ClaimStatus
CLAIM_MACHINE = StateMachine(
    entity_type=WorkflowEntity.CLAIM,
    label="Claim",
    number_field="claim_number",
    transitions={
        C.PENDING: frozenset({C.APPROVED, C.REJECTED, C.CANCELLED, C.EXPIRED}),
        C.APPROVED: frozenset({C.VOLUNTEER_ASSIGNED, C.CANCELLED, C.EXPIRED}),
        C.VOLUNTEER_ASSIGNED: frozenset(
            {C.PICKUP_SCHEDULED, C.CANCELLED, C.EXPIRED}
        ),
        C.PICKUP_SCHEDULED: frozenset({C.IN_PROGRESS, C.CANCELLED}),
        C.IN_PROGRESS: frozenset({C.COMPLETED, C.CANCELLED}),
    },
    terminal=frozenset({C.REJECTED, C.CANCELLED, C.EXPIRED, C.COMPLETED}),
    path=(
        C.PENDING,
        C.APPROVED,
        C.VOLUNTEER_ASSIGNED,
        C.PICKUP_SCHEDULED,
        C.IN_PROGRESS,
        C.COMPLETED,
    ),
    recipients=_claim_recipients,
    release_edges={
        C.VOLUNTEER_ASSIGNED: frozenset({C.APPROVED}),
        C.PICKUP_SCHEDULED: frozenset({C.APPROVED}),
        C.IN_PROGRESS: frozenset({C.APPROVED}),
    },
)

T = TaskStatus
_TASK_PICKUP_PATH = (
    T.ASSIGNED,
    T.ACCEPTED,
    T.EN_ROUTE_PICKUP,
    T.AT_PICKUP,
    T.PICKUP_COMPLETED,
)
_TASK_EXITS = frozenset({T.CANCELLED, T.FAILED})
_TASK_COMMON = {
    T.ASSIGNED: frozenset({T.ACCEPTED, T.DECLINED}) | _TASK_EXITS,
    T.ACCEPTED: frozenset({T.EN_ROUTE_PICKUP}) | _TASK_EXITS,
    T.EN_ROUTE_PICKUP: frozenset({T.AT_PICKUP}) | _TASK_EXITS,
    T.AT_PICKUP: frozenset({T.PICKUP_COMPLETED}) | _TASK_EXITS,
}
# Declined is a dead end: the claim gets a replacement task instead
_TASK_TERMINAL = frozenset({T.COMPLETED, T.CANCELLED, T.FAILED, T.DECLINED})

TASK_MACHINE = StateMachine(
    entity_type=WorkflowEntity.VOLUNTEER_TASK,
    label="VolunteerTask",
    number_field="task_number",
    transitions={
        **_TASK_COMMON,
        T.PICKUP_COMPLETED: frozenset({T.EN_ROUTE_DELIVERY}) | _TASK_EXITS,
        T.EN_ROUTE_DELIVERY: frozenset({T.AT_DELIVERY}) | _TASK_EXITS,
        T.AT_DELIVERY: frozenset({T.COMPLETED}) | _TASK_EXITS,
    },
    terminal=_TASK_TERMINAL,
    path=_TASK_PICKUP_PATH + (T.EN_ROUTE_DELIVERY, T.AT_DELIVERY, T.COMPLETED),
    recipients=_task_recipients,
)

PICKUP_ONLY_TASK_MACHINE = StateMachine(
    entity_type=WorkflowEntity.VOLUNTEER_TASK,
    label="VolunteerTask",
    number_field="task_number",
    transitions={
        **_TASK_COMMON,
        T.PICKUP_COMPLETED: frozenset({T.COMPLETED}) | _TASK_EXITS,
    },
    terminal=_TASK_TERMINAL,
    path=_TASK_PICKUP_PATH + (T.COMPLETED,),
    recipients=_task_recipients,
)

P = PickupEventStatus
_EVENT_PICKUP_PATH = (
    P.SCHEDULED,
    P.VOLUNTEER_EN_ROUTE,
    P.VOLUNTEER_ARRIVED,
    P.FOOD_ASSESSMENT,
    P.PICKUP_IN_PROGRESS,
    P.PICKUP_COMPLETED,
)
_EVENT_EXITS = frozenset({P.CANCELLED, P.FAILED})
_EVENT_COMMON = {
    P.SCHEDULED: frozenset({P.VOLUNTEER_EN_ROUTE}) | _EVENT_EXITS,
    P.VOLUNTEER_EN_ROUTE: frozenset({P.VOLUNTEER_ARRIVED}) | _EVENT_EXITS,
    P.VOLUNTEER_ARRIVED: frozenset({P.FOOD_ASSESSMENT}) | _EVENT_EXITS,
    P.FOOD_ASSESSMENT: frozenset({P.PICKUP_IN_PROGRESS}) | _EVENT_EXITS,
    P.PICKUP_IN_PROGRESS: frozenset({P.PICKUP_COMPLETED}) | _EVENT_EXITS,
}
_EVENT_TERMINAL = frozenset({P.COMPLETED, P.CANCELLED, P.FAILED})

PICKUP_EVENT_MACHINE = StateMachine(
    entity_type=WorkflowEntity.PICKUP_EVENT,
    label="PickupEvent",
    number_field="event_number",
    transitions={
        **_EVENT_COMMON,
        P.PICKUP_COMPLETED: frozenset({P.DELIVERY_IN_PROGRESS}) | _EVENT_EXITS,
        P.DELIVERY_IN_PROGRESS: frozenset({P.DELIVERED}) | _EVENT_EXITS,
        P.DELIVERED: frozenset({P.COMPLETED}) | _EVENT_EXITS,
    },
    terminal=_EVENT_TERMINAL,
    path=_EVENT_PICKUP_PATH + (P.DELIVERY_IN_PROGRESS, P.DELIVERED, P.COMPLETED),
    recipients=_event_recipients,
)

PICKUP_ONLY_EVENT_MACHINE = StateMachine(
    entity_type=WorkflowEntity.PICKUP_EVENT,
    label="PickupEvent",
    number_field="event_number",
    transitions={
        **_EVENT_COMMON,
        P.PICKUP_COMPLETED: frozenset({P.COMPLETED}) | _EVENT_EXITS,
    },
    terminal=_EVENT_TERMINAL,
    path=_EVENT_PICKUP_PATH + (P.COMPLETED,),
    recipients=_event_recipients,
)

F = FeedbackStatus
FEEDBACK_MACHINE = StateMachine(
    entity_type=WorkflowEntity.FEEDBACK,
    label="Feedback",
    number_field="feedback_number",
    transitions={
        F.PENDING: frozenset({F.PUBLISHED, F.HIDDEN}),
        F.PUBLISHED: frozenset({F.UNDER_REVIEW, F.DISPUTED, F.HIDDEN}),
        F.UNDER_REVIEW: frozenset({F.PUBLISHED, F.RESOLVED, F.HIDDEN}),
        F.DISPUTED: frozenset({F.RESOLVED, F.HIDDEN}),
        F.RESOLVED: frozenset({F.PUBLISHED, F.HIDDEN}),
        F.HIDDEN: frozenset({F.PUBLISHED}),
    },
    terminal=frozenset(),
    path=(F.PENDING, F.PUBLISHED),
    recipients=_feedback_recipients,
)


def task_machine_for(task_type: TaskType) -> StateMachine:
    if task_type == TaskType.PICKUP_ONLY:
        return PICKUP_ONLY_TASK_MACHINE
    return TASK_MACHINE


def event_machine_for(task_type: TaskType) -> StateMachine:
    if task_type == TaskType.PICKUP_ONLY:
        return PICKUP_ONLY_EVENT_MACHINE
    return PICKUP_EVENT_MACHINE


def stamp(entity: Any, field_name: str, value: datetime) -> dict[str, datetime]:
    """First write wins: only return the timestamp if the field is still unset."""
    if getattr(entity, field_name) is not None:
        return {}
    return {field_name: value}


def _status_value(status: Any) -> str | None:
    if status is None:
        return None
    return getattr(status, "value", status)


def created_event(
    machine: StateMachine, entity: Any, now: datetime | None = None
) -> TransitionEvent:
    """Event for a freshly inserted entity (no previous status)."""
    return TransitionEvent(
        entity_type=machine.entity_type,
        entity_id=primary_key_of(entity),
        entity_number=getattr(entity, machine.number_field),
        old_status=None,
        new_status=_status_value(entity.status),  # type: ignore[arg-type]
        timestamp=now or utcnow(),
        recipients=tuple(machine.recipients(entity)),
    )


def _write(
    session: Session,
    machine: StateMachine,
    entity: Any,
    new_status: Any,
    events: list[TransitionEvent],
    values: dict[str, Any] | None,
    now: datetime,
) -> Any:
    old_status = entity.status
    payload = {"status": new_status, **(values or {})}
    if hasattr(entity, "updated_at"):
        payload.setdefault("updated_at", now)

    compare_and_set(session, entity, old_status, payload, machine.label)

    events.append(
        TransitionEvent(
            entity_type=machine.entity_type,
            entity_id=primary_key_of(entity),
            entity_number=getattr(entity, machine.number_field),
            old_status=_status_value(old_status),
            new_status=_status_value(new_status),  # type: ignore[arg-type]
            timestamp=now,
            recipients=tuple(machine.recipients(entity)),
        )
    )
    record_transition(machine.entity_type.value, _status_value(new_status))  # type: ignore[arg-type]
    return entity


def transition(
    session: Session,
    machine: StateMachine,
    entity: Any,
    new_status: Any,
    *,
    events: list[TransitionEvent],
    values: dict[str, Any] | None = None,
    now: datetime | None = None,
    reason: str | None = None,
) -> Any:
    """
    Move `entity` to `new_status` along an explicit edge of `machine`.

    Args:
        session: Database session (the caller commits)
        machine: State machine of the entity
        entity: Persisted entity read earlier in the operation
        new_status: Requested status
        events: Collector the transition event is appended to
        values: Extra columns written in the same conditional update
        now: Time of the transition (defaults to the current UTC time)
        reason: Extra detail for the InvalidTransitionError message

    Returns:
        The refreshed entity

    Raises:
        InvalidTransitionError: If the edge does not exist or the entity is terminal
        ConflictError: If the status changed since it was read
    """
    if not machine.can_transition(entity.status, new_status):
        raise InvalidTransitionError(
            machine.label,
            getattr(entity, machine.number_field),
            _status_value(entity.status),  # type: ignore[arg-type]
            _status_value(new_status),  # type: ignore[arg-type]
            reason=reason
            or ("status is terminal" if machine.is_terminal(entity.status) else None),
        )
    return _write(
        session, machine, entity, new_status, events, values, now or utcnow()
    )


def advance(
    session: Session,
    machine: StateMachine,
    entity: Any,
    target: Any,
    *,
    events: list[TransitionEvent],
    values: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> bool:
    """
    Bring a dependent entity forward to `target`, skipping intermediate steps.

    Used for propagation: never moves an entity backwards or out of a terminal
    status, and is a no-op when the entity is already at or past `target`.

    Returns:
        bool: Whether a write happened
    """
    current = entity.status
    if machine.is_terminal(current):
        return False
    if not machine.is_ahead(current, target):
        return False
    _write(session, machine, entity, target, events, values, now or utcnow())
    return True


def release(
    session: Session,
    machine: StateMachine,
    entity: Any,
    target: Any,
    *,
    events: list[TransitionEvent],
    values: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Any:
    """
    Step `entity` back along one of the machine's release edges.

    Only the actor deletion cascade uses these edges, when the volunteer a
    claim was waiting on no longer exists.

    Raises:
        InvalidTransitionError: If no release edge leads from the current status to `target`
        ConflictError: If the status changed since it was read
    """
    if target not in machine.release_edges.get(entity.status, frozenset()):
        raise InvalidTransitionError(
            machine.label,
            getattr(entity, machine.number_field),
            _status_value(entity.status),  # type: ignore[arg-type]
            _status_value(target),  # type: ignore[arg-type]
            reason="no release edge",
        )
    return _write(session, machine, entity, target, events, values, now or utcnow())
