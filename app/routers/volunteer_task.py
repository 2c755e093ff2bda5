"""Volunteer task router: status updates and field logs from the volunteer."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.database.database import get_session
from app.exceptions import NotFoundError
from app.models.enums import TaskStatus
from app.models.pickup_event import PickupEventPublic
from app.models.volunteer_task import (
    CommunicationCreate,
    DelayCreate,
    EvidenceCreate,
    RescheduleRequest,
    TaskIssueCreate,
    TaskStatusUpdate,
    VolunteerTaskPublic,
)
from app.services import expiry as expiry_service
from app.services import pickup_event as event_service
from app.services import volunteer_task as task_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("/overdue", response_model=list[VolunteerTaskPublic])
def list_overdue_tasks(
    session: Annotated[Session, Depends(get_session)],
) -> list[VolunteerTaskPublic]:
    """Open tasks whose scheduled pickup time has already passed."""
    return [
        task_service.to_task_public(t)
        for t in expiry_service.list_overdue_tasks(session)
    ]


@router.get("/by-volunteer/{volunteer_id}", response_model=list[VolunteerTaskPublic])
def list_volunteer_tasks(
    volunteer_id: int,
    session: Annotated[Session, Depends(get_session)],
    task_status: TaskStatus | None = Query(
        default=None, alias="status", description="Only tasks in this status"
    ),
) -> list[VolunteerTaskPublic]:
    tasks = task_service.list_volunteer_tasks(session, volunteer_id, task_status)
    return [task_service.to_task_public(t) for t in tasks]


@router.get("/{task_id}", response_model=VolunteerTaskPublic)
def get_task(
    task_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    return task_service.to_task_public(task_service.get_task(session, task_id))


@router.get("/{task_id}/pickup-event", response_model=PickupEventPublic)
def get_task_pickup_event(
    task_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    """
    Get the pickup event created when the task was accepted.

    Raises:
        404 NotFoundError: If the task doesn't exist or has not been accepted.
    """
    task_service.get_task(session, task_id)
    event = event_service.get_event_for_task(session, task_id)
    if not event:
        raise NotFoundError("PickupEvent", task_id)
    return event_service.to_event_public(event)


@router.patch("/{task_id}/status", response_model=VolunteerTaskPublic)
def update_task_status(
    task_id: int,
    update: TaskStatusUpdate,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    """
    Move a task along its lifecycle.

    Accepting creates the pickup event; later steps advance the pickup event,
    the claim and the donation. Sending the current status again changes nothing.

    ### Request Body:
    - **status**: requested task status
    - **id_volunteer**: acting volunteer, checked against the assignee
    - **reason**: required to decline; kept for cancellation and failure
    - **evidence**: optional photo or signature reference

    Raises:
        403 InsufficientPermissionsError: If another volunteer acts on the task.
        409 InvalidTransitionError: If the transition is not allowed.
        410 ExpiredEntityError: If accepting after the claim or donation expired.
        422 ValidationError: If a decline has no reason.
    """
    task = task_service.update_task_status(
        session,
        task_id,
        update.status,
        reason=update.reason,
        evidence=update.evidence,
        volunteer_id=update.id_volunteer,
    )
    return task_service.to_task_public(task)


@router.post("/{task_id}/evidence", response_model=VolunteerTaskPublic)
def add_evidence(
    task_id: int,
    evidence: EvidenceCreate,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    return task_service.to_task_public(
        task_service.add_evidence(session, task_id, evidence)
    )


@router.post("/{task_id}/issues", response_model=VolunteerTaskPublic)
def report_issue(
    task_id: int,
    issue_in: TaskIssueCreate,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    return task_service.to_task_public(
        task_service.report_issue(session, task_id, issue_in)
    )


@router.post("/{task_id}/communications", response_model=VolunteerTaskPublic)
def log_communication(
    task_id: int,
    communication: CommunicationCreate,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    return task_service.to_task_public(
        task_service.log_communication(session, task_id, communication)
    )


@router.post("/{task_id}/delays", response_model=VolunteerTaskPublic)
def record_delay(
    task_id: int,
    delay: DelayCreate,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    return task_service.to_task_public(
        task_service.record_delay(session, task_id, delay)
    )


@router.post("/{task_id}/reschedule", response_model=VolunteerTaskPublic)
def reschedule_pickup(
    task_id: int,
    request: RescheduleRequest,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    """
    Move the pickup time of a task that has not picked up yet.

    Raises:
        409 InvalidTransitionError: If the food was already picked up.
        422 ValidationError: If the new time is in the past.
    """
    return task_service.to_task_public(
        task_service.reschedule_pickup(session, task_id, request)
    )
