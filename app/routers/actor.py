"""Actor profiles, their statistics and account deletion."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.database.database import get_session
from app.models.actor import ActorCreate, ActorPublic, ActorStatsPublic, RatingSummary
from app.models.enums import ActorType
from app.models.feedback import FeedbackPublic
from app.models.message import MessagePublic
from app.services import actor as actor_service
from app.services import cascade as cascade_service
from app.services import feedback as feedback_service
from app.services import message as message_service
from app.services import rating as rating_service

router = APIRouter(prefix="/actors", tags=["actors"])


@router.post(
    "/{actor_type}", response_model=ActorPublic, status_code=status.HTTP_201_CREATED
)
def create_actor(
    actor_type: ActorType,
    actor_in: ActorCreate,
    session: Annotated[Session, Depends(get_session)],
) -> ActorPublic:
    """
    Register a donor, NGO, volunteer or beneficiary profile.

    `registration_number` is only kept for NGOs.
    """
    actor = actor_service.create_actor(session, actor_type, actor_in)
    return actor_service.to_actor_public(actor_type, actor)


@router.get("/{actor_type}/{actor_id}", response_model=ActorPublic)
def get_actor(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> ActorPublic:
    actor = actor_service.get_actor(session, actor_type, actor_id)
    return actor_service.to_actor_public(actor_type, actor)


@router.delete("/{actor_type}/{actor_id}", response_model=dict)
def delete_actor(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> dict:
    """
    Delete an actor together with every record that depends on it.

    Pickup events, tasks and claims go first, then donations (deleted for a
    donor, released for an NGO), messages, feedback, notifications, stats and
    the profile itself.

    Args:
        actor_type: Type of the actor to delete.
        actor_id: Identifier of the actor to delete.
        session: Database session (automatically injected).

    Returns:
        dict: The cleaned collections in order with the number of affected rows.

    Raises:
        404 NotFoundError: If the actor does not exist.
        500 CascadeFailureError: If a step failed; the body lists what was and
            was not cleaned.
    """
    report = cascade_service.delete_actor(session, actor_type, actor_id)
    return asdict(report)


@router.get("/{actor_type}/{actor_id}/stats", response_model=ActorStatsPublic)
def get_actor_stats(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> ActorStatsPublic:
    """Running rating average and completion counters for an actor."""
    actor_service.get_actor(session, actor_type, actor_id)
    stats = rating_service.get_actor_stats(session, actor_type, actor_id)
    return ActorStatsPublic.model_validate(stats)


@router.get("/{actor_type}/{actor_id}/rating-summary", response_model=RatingSummary)
def get_rating_summary(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> RatingSummary:
    """Full recomputation over published feedback, with the 1-5 distribution."""
    actor_service.get_actor(session, actor_type, actor_id)
    return rating_service.recompute_actor_stats(session, actor_type, actor_id)


@router.get("/{actor_type}/{actor_id}/rating-consistency", response_model=dict)
def check_rating_consistency(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> dict:
    actor_service.get_actor(session, actor_type, actor_id)
    return asdict(rating_service.check_consistency(session, actor_type, actor_id))


@router.get("/{actor_type}/{actor_id}/feedback", response_model=list[FeedbackPublic])
def list_actor_feedback(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
    published_only: bool = Query(
        True, description="If false, include feedback that is not published"
    ),
) -> list[FeedbackPublic]:
    feedback = feedback_service.list_actor_feedback(
        session, actor_type, actor_id, published_only=published_only
    )
    return [FeedbackPublic.model_validate(f) for f in feedback]


@router.get("/{actor_type}/{actor_id}/messages", response_model=list[MessagePublic])
def list_actor_messages(
    actor_type: ActorType,
    actor_id: int,
    session: Annotated[Session, Depends(get_session)],
    limit: int = Query(50, ge=1, le=100),
) -> list[MessagePublic]:
    """Messages sent or received by the actor, newest first."""
    messages = message_service.list_actor_messages(
        session, actor_type, actor_id, limit=limit
    )
    return [MessagePublic.model_validate(m) for m in messages]
