"""Feedback service: ratings between actors and their moderation."""

from datetime import datetime

from sqlmodel import Session, select

from app.exceptions import (
    AlreadyExistsError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ValidationError,
)
from app.models.actor import ActorRef
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import ActorType, FeedbackStatus, ModerationStatus
from app.models.feedback import (
    Feedback,
    FeedbackCreate,
    FeedbackModeration,
    FeedbackResponse,
)
from app.models.pickup_event import PickupEvent
from app.models.volunteer_task import VolunteerTask
from app.services import actor as actor_service
from app.services import rating as rating_service
from app.services.lifecycle import FEEDBACK_MACHINE, created_event, stamp, transition
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.utils import compare_and_set, get_or_404
from app.utils.clock import utcnow
from app.utils.identifiers import FEEDBACK_PREFIX, generate_business_number

CONTEXT_MODELS = {
    "id_donation": Donation,
    "id_claim": Claim,
    "id_task": VolunteerTask,
    "id_pickup_event": PickupEvent,
}

MODERATION_TARGETS = {
    ModerationStatus.AUTO_APPROVED: FeedbackStatus.PUBLISHED,
    ModerationStatus.APPROVED: FeedbackStatus.PUBLISHED,
    ModerationStatus.PENDING_REVIEW: FeedbackStatus.UNDER_REVIEW,
    ModerationStatus.REJECTED: FeedbackStatus.HIDDEN,
    ModerationStatus.FLAGGED: FeedbackStatus.HIDDEN,
}


def _move(
    session: Session,
    feedback: Feedback,
    target: FeedbackStatus,
    events: list[TransitionEvent],
    values: dict,
    now: datetime,
) -> Feedback:
    """
    Change the feedback status and keep the reviewee's stats in step.

    Only published feedback counts: entering published adds the rating,
    leaving it takes the rating back out.
    """
    values = dict(values)
    entering = target == FeedbackStatus.PUBLISHED and not feedback.counted_in_stats
    leaving = target != FeedbackStatus.PUBLISHED and feedback.counted_in_stats
    if entering:
        values["counted_in_stats"] = True
        values.update(stamp(feedback, "published_at", now))
    elif leaving:
        values["counted_in_stats"] = False

    transition(
        session, FEEDBACK_MACHINE, feedback, target, events=events, values=values, now=now
    )

    if entering or leaving:
        rating_service.apply_rating(
            session,
            feedback.reviewee_type,
            feedback.reviewee_id,
            feedback.overall_rating,
            remove=leaving,
        )
    return feedback


def _find_duplicate(session: Session, feedback_in: FeedbackCreate) -> Feedback | None:
    statement = select(Feedback).where(
        Feedback.reviewer_type == feedback_in.reviewer.actor_type,
        Feedback.reviewer_id == feedback_in.reviewer.actor_id,
        Feedback.reviewee_type == feedback_in.reviewee.actor_type,
        Feedback.reviewee_id == feedback_in.reviewee.actor_id,
    )
    for field_name in CONTEXT_MODELS:
        value = getattr(feedback_in, field_name)
        column = getattr(Feedback, field_name)
        statement = statement.where(
            column.is_(None) if value is None else column == value
        )
    return session.exec(statement).first()


def submit_feedback(
    session: Session,
    feedback_in: FeedbackCreate,
    *,
    auto_publish: bool = True,
    now: datetime | None = None,
) -> Feedback:
    """
    Record a rating from one actor about another.

    Args:
        session: Database session
        feedback_in: Reviewer, reviewee, optional workflow context and ratings
        auto_publish: Publish straight away (auto-approved moderation)
        now: Submission time

    Returns:
        Feedback: The stored feedback

    Raises:
        ValidationError: If an actor reviews themselves or a detailed rating is out of range
        NotFoundError: If an actor or a context record does not exist
        AlreadyExistsError: If the reviewer already rated this reviewee for the same context
    """
    now = now or utcnow()
    if feedback_in.reviewer == feedback_in.reviewee:
        raise ValidationError("Actors cannot review themselves", field="reviewee")
    for name, score in feedback_in.detailed_ratings.items():
        if not 1 <= score <= 5:
            raise ValidationError(
                f"Detailed rating '{name}' must be between 1 and 5",
                field="detailed_ratings",
            )

    actor_service.resolve(session, feedback_in.reviewer)
    actor_service.resolve(session, feedback_in.reviewee)
    for field_name, model in CONTEXT_MODELS.items():
        value = getattr(feedback_in, field_name)
        if value is not None:
            get_or_404(session, model, value)

    has_context = any(getattr(feedback_in, name) is not None for name in CONTEXT_MODELS)
    if has_context and _find_duplicate(session, feedback_in) is not None:
        raise AlreadyExistsError(
            "Feedback",
            "reviewer",
            f"{feedback_in.reviewer.actor_type.value}:{feedback_in.reviewer.actor_id}",
        )

    feedback = Feedback(
        feedback_number=generate_business_number(FEEDBACK_PREFIX, now),
        feedback_type=feedback_in.feedback_type,
        overall_rating=feedback_in.overall_rating,
        title=feedback_in.title,
        comment=feedback_in.comment,
        would_recommend=feedback_in.would_recommend,
        reviewer_type=feedback_in.reviewer.actor_type,
        reviewer_id=feedback_in.reviewer.actor_id,
        reviewee_type=feedback_in.reviewee.actor_type,
        reviewee_id=feedback_in.reviewee.actor_id,
        id_donation=feedback_in.id_donation,
        id_claim=feedback_in.id_claim,
        id_task=feedback_in.id_task,
        id_pickup_event=feedback_in.id_pickup_event,
        detailed_ratings=dict(feedback_in.detailed_ratings),
        status=FeedbackStatus.PENDING,
        moderation_status=(
            ModerationStatus.AUTO_APPROVED
            if auto_publish
            else ModerationStatus.PENDING_REVIEW
        ),
        created_at=now,
    )
    session.add(feedback)
    session.flush()
    session.refresh(feedback)

    events = [created_event(FEEDBACK_MACHINE, feedback, now)]
    if auto_publish:
        _move(session, feedback, FeedbackStatus.PUBLISHED, events, {}, now)

    commit_and_publish(session, events)
    session.refresh(feedback)
    return feedback


def get_feedback(session: Session, feedback_id: int) -> Feedback:
    return get_or_404(session, Feedback, feedback_id)


def list_actor_feedback(
    session: Session,
    actor_type: ActorType,
    actor_id: int,
    *,
    published_only: bool = True,
) -> list[Feedback]:
    statement = select(Feedback).where(
        Feedback.reviewee_type == actor_type,
        Feedback.reviewee_id == actor_id,
    )
    if published_only:
        statement = statement.where(Feedback.status == FeedbackStatus.PUBLISHED)
    statement = statement.order_by(Feedback.created_at.desc())  # type: ignore
    return list(session.exec(statement).all())


def publish_feedback(
    session: Session, feedback_id: int, now: datetime | None = None
) -> Feedback:
    now = now or utcnow()
    feedback = get_feedback(session, feedback_id)
    events: list[TransitionEvent] = []
    _move(
        session,
        feedback,
        FeedbackStatus.PUBLISHED,
        events,
        {"moderation_status": ModerationStatus.APPROVED},
        now,
    )
    commit_and_publish(session, events)
    session.refresh(feedback)
    return feedback


def respond_to_feedback(
    session: Session,
    feedback_id: int,
    response: FeedbackResponse,
    now: datetime | None = None,
) -> Feedback:
    """
    Let the reviewee answer a feedback.

    Raises:
        InsufficientPermissionsError: If the responder is not the reviewee
        InvalidTransitionError: If the feedback is hidden or not yet published
    """
    now = now or utcnow()
    feedback = get_feedback(session, feedback_id)
    reviewee = ActorRef(actor_type=feedback.reviewee_type, actor_id=feedback.reviewee_id)
    if response.responder != reviewee:
        raise InsufficientPermissionsError("Only the reviewed actor can respond")
    if feedback.status in (FeedbackStatus.PENDING, FeedbackStatus.HIDDEN):
        raise InvalidTransitionError(
            "Feedback",
            feedback.feedback_number,
            feedback.status.value,
            "responded",
            reason="only visible feedback can be answered",
        )

    compare_and_set(
        session,
        feedback,
        feedback.status,
        {
            "response_comment": response.comment,
            "response_action_plan": response.action_plan,
            "response_acknowledged": response.acknowledged,
            "responded_at": now,
        },
        "Feedback",
    )
    session.commit()
    session.refresh(feedback)
    return feedback


def dispute_feedback(
    session: Session,
    feedback_id: int,
    disputer: ActorRef,
    reason: str,
    now: datetime | None = None,
) -> Feedback:
    """Reviewee contests a published feedback; it stops counting until resolved."""
    now = now or utcnow()
    feedback = get_feedback(session, feedback_id)
    reviewee = ActorRef(actor_type=feedback.reviewee_type, actor_id=feedback.reviewee_id)
    if disputer != reviewee:
        raise InsufficientPermissionsError("Only the reviewed actor can dispute")

    events: list[TransitionEvent] = []
    _move(
        session,
        feedback,
        FeedbackStatus.DISPUTED,
        events,
        {"moderation_note": reason},
        now,
    )
    commit_and_publish(session, events)
    session.refresh(feedback)
    return feedback


def moderate_feedback(
    session: Session,
    feedback_id: int,
    moderation: FeedbackModeration,
    now: datetime | None = None,
) -> Feedback:
    """
    Apply a moderation decision.

    Approval publishes, a review request puts published feedback under review,
    rejection or flagging hides it.
    """
    now = now or utcnow()
    feedback = get_feedback(session, feedback_id)
    values = {
        "moderation_status": moderation.moderation_status,
        "moderation_note": moderation.note,
    }
    target = MODERATION_TARGETS[moderation.moderation_status]

    events: list[TransitionEvent] = []
    if target == feedback.status:
        compare_and_set(session, feedback, feedback.status, values, "Feedback")
    else:
        _move(session, feedback, target, events, values, now)

    commit_and_publish(session, events)
    session.refresh(feedback)
    return feedback
