"""Feedback router: ratings between actors, replies, disputes and moderation."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.database.database import get_session
from app.models.feedback import (
    FeedbackCreate,
    FeedbackDispute,
    FeedbackModeration,
    FeedbackPublic,
    FeedbackResponse,
)
from app.services import feedback as feedback_service

router = APIRouter(prefix="/feedback", tags=["feedback"])


@router.post("/", response_model=FeedbackPublic, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    feedback_in: FeedbackCreate,
    session: Annotated[Session, Depends(get_session)],
    auto_publish: bool = Query(
        True, description="If false, the feedback waits for moderation"
    ),
) -> FeedbackPublic:
    """
    Rate another actor, optionally about a donation, claim, task or pickup.

    Published feedback updates the reviewee's running average immediately.

    Raises:
        404 NotFoundError: If an actor or a referenced record doesn't exist.
        409 AlreadyExistsError: If the reviewer already rated this context.
        422 ValidationError: If an actor rates themselves or a detailed rating is out of range.
    """
    feedback = feedback_service.submit_feedback(
        session, feedback_in, auto_publish=auto_publish
    )
    return FeedbackPublic.model_validate(feedback)


@router.get("/{feedback_id}", response_model=FeedbackPublic)
def get_feedback(
    feedback_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> FeedbackPublic:
    return FeedbackPublic.model_validate(
        feedback_service.get_feedback(session, feedback_id)
    )


@router.post("/{feedback_id}/publish", response_model=FeedbackPublic)
def publish_feedback(
    feedback_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> FeedbackPublic:
    return FeedbackPublic.model_validate(
        feedback_service.publish_feedback(session, feedback_id)
    )


@router.post("/{feedback_id}/response", response_model=FeedbackPublic)
def respond_to_feedback(
    feedback_id: int,
    response: FeedbackResponse,
    session: Annotated[Session, Depends(get_session)],
) -> FeedbackPublic:
    """Reply as the reviewed actor. Hidden or unpublished feedback cannot be answered."""
    return FeedbackPublic.model_validate(
        feedback_service.respond_to_feedback(session, feedback_id, response)
    )


@router.post("/{feedback_id}/dispute", response_model=FeedbackPublic)
def dispute_feedback(
    feedback_id: int,
    dispute: FeedbackDispute,
    session: Annotated[Session, Depends(get_session)],
) -> FeedbackPublic:
    """Contest a published feedback; it stops counting until resolved."""
    feedback = feedback_service.dispute_feedback(
        session, feedback_id, dispute.disputer, dispute.reason
    )
    return FeedbackPublic.model_validate(feedback)


@router.post("/{feedback_id}/moderation", response_model=FeedbackPublic)
def moderate_feedback(
    feedback_id: int,
    moderation: FeedbackModeration,
    session: Annotated[Session, Depends(get_session)],
) -> FeedbackPublic:
    return FeedbackPublic.model_validate(
        feedback_service.moderate_feedback(session, feedback_id, moderation)
    )
