"""Notification router: per-actor feed of workflow status changes."""

from typing import Annotated
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.database.database import get_session
from app.models.enums import ActorType
from app.models.notification import NotificationPublic, NotificationMarkRead
from app.services import actor as actor_service
from app.services import notification as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/{actor_type}/{actor_id}", response_model=list[NotificationPublic])
def get_notifications(
    *,
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
    unread_only: bool = Query(
        False, description="If true, only return unread notifications"
    ),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> list[NotificationPublic]:
    """
    Get notifications for an actor.

    Returns the status changes of donations, claims, tasks, pickup events and
    feedback the actor takes part in, ordered by date (newest first).

    ### Query Parameters:
    - **unread_only**: Filter to only unread notifications
    - **offset**: Pagination offset
    - **limit**: Max results (1-100, default 50)

    Args:
        actor_type: Recipient actor type.
        actor_id: Recipient actor ID.
        session: Database session (automatically injected).
        unread_only: Filter to only unread notifications.
        offset: Pagination offset.
        limit: Maximum number of results to return.

    Returns:
        list[NotificationPublic]: List of notifications ordered by date (newest first).

    Raises:
        404 NotFoundError: If the actor doesn't exist.
    """
    actor_service.get_actor(session, actor_type, actor_id)
    notifications = notification_service.get_actor_notifications(
        session,
        actor_type,
        actor_id,
        unread_only=unread_only,
        offset=offset,
        limit=limit,
    )

    return [NotificationPublic.model_validate(n) for n in notifications]


@router.get("/{actor_type}/{actor_id}/unread-count", response_model=dict)
def get_unread_count(
    *,
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> dict:
    """
    Get count of unread notifications.

    Useful for displaying notification badge in UI.
    """
    actor_service.get_actor(session, actor_type, actor_id)
    count = notification_service.get_unread_count(session, actor_type, actor_id)

    return {"unread_count": count}


@router.patch("/{actor_type}/{actor_id}/mark-read", response_model=dict)
def mark_notifications_as_read(
    *,
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
    mark_read: NotificationMarkRead,
) -> dict:
    """
    Mark notifications as read.

    ### Request Body:
    - **notification_ids**: List of notification IDs to mark as read

    Only notifications addressed to this actor are touched.

    Returns:
        dict: Dictionary containing marked_count.
    """
    actor_service.get_actor(session, actor_type, actor_id)
    marked_count = notification_service.mark_notifications_as_read(
        session=session,
        notification_ids=mark_read.notification_ids,
        actor_type=actor_type,
        actor_id=actor_id,
    )

    return {"marked_count": marked_count}
