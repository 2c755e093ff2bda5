"""Volunteer task service: status updates from the volunteer and task logs."""

from datetime import datetime

from sqlmodel import Session, select

from app.core.config import get_settings
from app.exceptions import (
    InsufficientPermissionsError,
    InvalidTransitionError,
    ValidationError,
)
from app.models.enums import TaskStatus
from app.models.volunteer_task import (
    CommunicationCreate,
    DelayCreate,
    EvidenceCreate,
    RescheduleRequest,
    TaskIssueCreate,
    VolunteerTask,
    VolunteerTaskPublic,
)
from app.services import expiry
from app.services.lifecycle import task_machine_for, transition
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.propagation import (
    INACTIVE_EVENT_STATUSES,
    check_task_acceptable,
    find_event_for_task,
    on_task_accepted,
    on_task_declined,
    on_task_progress,
    task_timestamps,
)
from app.services.utils import compare_and_set, get_or_404
from app.utils.clock import ensure_utc, utcnow
from app.utils.validation import append_bounded

RESCHEDULABLE_STATUSES = frozenset(
    {
        TaskStatus.ASSIGNED,
        TaskStatus.ACCEPTED,
        TaskStatus.EN_ROUTE_PICKUP,
        TaskStatus.AT_PICKUP,
    }
)


def _evidence_entry(evidence: EvidenceCreate, now: datetime) -> dict:
    return {**evidence.model_dump(mode="json"), "uploaded_at": now.isoformat()}


def get_task(session: Session, task_id: int) -> VolunteerTask:
    return get_or_404(session, VolunteerTask, task_id, "VolunteerTask")


def list_volunteer_tasks(
    session: Session, volunteer_id: int, status: TaskStatus | None = None
) -> list[VolunteerTask]:
    statement = select(VolunteerTask).where(VolunteerTask.id_volunteer == volunteer_id)
    if status is not None:
        statement = statement.where(VolunteerTask.status == status)
    statement = statement.order_by(VolunteerTask.pickup_scheduled_time)  # type: ignore
    return list(session.exec(statement).all())


def list_claim_tasks(session: Session, claim_id: int) -> list[VolunteerTask]:
    statement = (
        select(VolunteerTask)
        .where(VolunteerTask.id_claim == claim_id)
        .order_by(VolunteerTask.created_at)  # type: ignore
    )
    return list(session.exec(statement).all())


def update_task_status(
    session: Session,
    task_id: int,
    new_status: TaskStatus,
    *,
    reason: str | None = None,
    evidence: EvidenceCreate | None = None,
    volunteer_id: int | None = None,
    now: datetime | None = None,
) -> VolunteerTask:
    """
    Move a task along its lifecycle and propagate the change.

    Repeating the current status is a no-op that returns the task unchanged,
    so the first call's timestamps are kept.

    Args:
        session: Database session
        task_id: Task ID
        new_status: Requested status
        reason: Decline, cancellation or failure reason (required to decline)
        evidence: Optional photo / signature reference attached with the update
        volunteer_id: Acting volunteer; checked against the assignee when given
        now: Time of the update

    Returns:
        VolunteerTask: The updated task

    Raises:
        NotFoundError: If the task does not exist
        InsufficientPermissionsError: If another volunteer acts on the task
        ValidationError: If a decline has no reason
        InvalidTransitionError: If the transition is not allowed
        ExpiredEntityError: If accepting a task whose claim or donation expired
        ConflictError: If the task or a dependent changed concurrently
    """
    now = now or utcnow()
    task = get_task(session, task_id)
    if volunteer_id is not None and task.id_volunteer != volunteer_id:
        raise InsufficientPermissionsError("Task is assigned to another volunteer")

    if new_status == task.status:
        return task

    if new_status == TaskStatus.DECLINED and not (reason and reason.strip()):
        raise ValidationError("A reason is required to decline a task", field="reason")

    machine = task_machine_for(task.task_type)
    if new_status == TaskStatus.ACCEPTED and machine.can_transition(
        task.status, new_status
    ):
        check_task_acceptable(session, task, now)

    values = task_timestamps(task, new_status, now)
    if new_status == TaskStatus.DECLINED:
        values["decline_reason"] = reason
    elif new_status == TaskStatus.CANCELLED:
        values["cancellation_reason"] = reason
    elif new_status == TaskStatus.FAILED:
        values["failure_reason"] = reason
    if evidence is not None:
        values["evidence"] = append_bounded(
            task.evidence, _evidence_entry(evidence, now), get_settings().LOG_HISTORY_LIMIT
        )

    events: list[TransitionEvent] = []
    transition(session, machine, task, new_status, events=events, values=values, now=now)

    if new_status == TaskStatus.ACCEPTED:
        on_task_accepted(session, task, events, now)
    elif new_status == TaskStatus.DECLINED:
        on_task_declined(session, task, reason, now)  # type: ignore[arg-type]
    else:
        on_task_progress(session, task, events, now, reason)

    commit_and_publish(session, events)
    session.refresh(task)
    return task


def _append_to_log(
    session: Session, task: VolunteerTask, field_name: str, entry: dict, now: datetime
) -> VolunteerTask:
    compare_and_set(
        session,
        task,
        task.status,
        {
            field_name: append_bounded(
                getattr(task, field_name), entry, get_settings().LOG_HISTORY_LIMIT
            ),
            "updated_at": now,
        },
        "VolunteerTask",
    )
    session.commit()
    session.refresh(task)
    return task


def add_evidence(
    session: Session, task_id: int, evidence: EvidenceCreate, now: datetime | None = None
) -> VolunteerTask:
    now = now or utcnow()
    task = get_task(session, task_id)
    return _append_to_log(session, task, "evidence", _evidence_entry(evidence, now), now)


def report_issue(
    session: Session, task_id: int, issue_in: TaskIssueCreate, now: datetime | None = None
) -> VolunteerTask:
    now = now or utcnow()
    task = get_task(session, task_id)
    entry = {
        **issue_in.model_dump(mode="json"),
        "reported_at": now.isoformat(),
        "resolved": False,
    }
    return _append_to_log(session, task, "issues", entry, now)


def log_communication(
    session: Session,
    task_id: int,
    communication: CommunicationCreate,
    now: datetime | None = None,
) -> VolunteerTask:
    now = now or utcnow()
    task = get_task(session, task_id)
    entry = {**communication.model_dump(mode="json"), "logged_at": now.isoformat()}
    return _append_to_log(session, task, "communication_log", entry, now)


def record_delay(
    session: Session, task_id: int, delay: DelayCreate, now: datetime | None = None
) -> VolunteerTask:
    now = now or utcnow()
    task = get_task(session, task_id)
    entry = {**delay.model_dump(mode="json"), "reported_at": now.isoformat()}
    return _append_to_log(session, task, "delays", entry, now)


def reschedule_pickup(
    session: Session,
    task_id: int,
    request: RescheduleRequest,
    now: datetime | None = None,
) -> VolunteerTask:
    """
    Move the scheduled pickup time of a task that has not picked up yet.

    The previous time is kept in the reschedule history and the open pickup
    event, if any, follows the new schedule.

    Raises:
        InvalidTransitionError: If the pickup already happened or the task is closed
        ValidationError: If the new time is not in the future
    """
    now = now or utcnow()
    task = get_task(session, task_id)
    if task.status not in RESCHEDULABLE_STATUSES:
        raise InvalidTransitionError(
            "VolunteerTask",
            task.task_number,
            task.status.value,
            "rescheduled",
            reason="only a pickup that has not happened yet can be rescheduled",
        )
    new_time = ensure_utc(request.new_time)
    if new_time <= now:  # type: ignore[operator]
        raise ValidationError("New pickup time must be in the future", field="new_time")

    entry = {
        "previous_time": ensure_utc(task.pickup_scheduled_time).isoformat(),  # type: ignore[union-attr]
        "new_time": new_time.isoformat(),  # type: ignore[union-attr]
        "reason": request.reason,
        "rescheduled_at": now.isoformat(),
    }
    compare_and_set(
        session,
        task,
        task.status,
        {
            "pickup_scheduled_time": new_time,
            "reschedule_history": append_bounded(
                task.reschedule_history, entry, get_settings().LOG_HISTORY_LIMIT
            ),
            "updated_at": now,
        },
        "VolunteerTask",
    )

    event = find_event_for_task(session, task_id)
    if event is not None and event.status not in INACTIVE_EVENT_STATUSES:
        compare_and_set(
            session,
            event,
            event.status,
            {"scheduled_start_time": new_time, "updated_at": now},
            "PickupEvent",
        )

    session.commit()
    session.refresh(task)
    return task


def to_task_public(task: VolunteerTask, now: datetime | None = None) -> VolunteerTaskPublic:
    return VolunteerTaskPublic.model_validate(
        {
            **task.model_dump(),
            "is_overdue": expiry.is_task_overdue(task, now),
            "estimated_completion_time": expiry.estimated_completion_time(task),
            "total_duration_minutes": expiry.task_total_duration_minutes(task),
        }
    )
