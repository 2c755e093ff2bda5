"""Per-actor running statistics fed by published feedback and completed workflows."""

from collections import Counter
from dataclasses import dataclass

from sqlalchemy import Float, case, cast, func, update
from sqlmodel import Session, select

from app.models.actor import ActorStats, RatingSummary
from app.models.enums import ActorType, FeedbackStatus
from app.models.feedback import Feedback
from app.utils.logger import logger


def _stats_key(actor_type: ActorType, actor_id: int) -> tuple[ActorType, int]:
    return (actor_type, actor_id)


def get_or_create_stats(
    session: Session, actor_type: ActorType, actor_id: int
) -> ActorStats:
    """Return the stats row for an actor, staging an empty one if missing."""
    stats = session.get(ActorStats, _stats_key(actor_type, actor_id))
    if stats is None:
        stats = ActorStats(actor_type=actor_type, actor_id=actor_id)
        session.add(stats)
        session.flush()
    return stats


def get_actor_stats(
    session: Session, actor_type: ActorType, actor_id: int
) -> ActorStats:
    """Read-only lookup; actors without any activity get zeroed stats."""
    stats = session.get(ActorStats, _stats_key(actor_type, actor_id))
    if stats is None:
        return ActorStats(actor_type=actor_type, actor_id=actor_id)
    return stats


def _increment(
    session: Session, actor_type: ActorType, actor_id: int, **deltas: int
) -> None:
    # Increments are computed in SQL so concurrent writers cannot lose updates
    get_or_create_stats(session, actor_type, actor_id)
    values = {
        name: getattr(ActorStats, name) + delta for name, delta in deltas.items()
    }
    session.exec(
        update(ActorStats)  # type: ignore
        .where(
            ActorStats.actor_type == actor_type,  # type: ignore
            ActorStats.actor_id == actor_id,  # type: ignore
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def apply_rating(
    session: Session,
    actor_type: ActorType,
    actor_id: int,
    rating: int,
    *,
    remove: bool = False,
) -> ActorStats:
    """
    Add (or with `remove`, subtract) one rating from an actor's running average.

    Args:
        session: Database session (the caller commits)
        actor_type: Reviewee actor type
        actor_id: Reviewee actor ID
        rating: Overall rating of the feedback, 1 to 5
        remove: Subtract instead of add

    Returns:
        ActorStats: The refreshed stats row
    """
    stats = get_or_create_stats(session, actor_type, actor_id)
    sign = -1 if remove else 1
    new_total = ActorStats.total_ratings + sign
    new_sum = ActorStats.rating_sum + sign * rating
    session.exec(
        update(ActorStats)  # type: ignore
        .where(
            ActorStats.actor_type == actor_type,  # type: ignore
            ActorStats.actor_id == actor_id,  # type: ignore
        )
        .values(
            total_ratings=new_total,
            rating_sum=new_sum,
            average_rating=case(
                (new_total > 0, func.round(cast(new_sum, Float) / new_total, 2)),
                else_=0.0,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    session.refresh(stats)
    return stats


def record_completion(
    session: Session,
    *,
    id_volunteer: int,
    id_donor: int,
    id_ngo: int,
    delivered: bool,
) -> None:
    """Bump the completion counters of every party of a finished workflow."""
    _increment(
        session,
        ActorType.VOLUNTEER,
        id_volunteer,
        completed_tasks=1,
        total_deliveries=1 if delivered else 0,
    )
    _increment(session, ActorType.DONOR, id_donor, completed_donations=1)
    _increment(session, ActorType.NGO, id_ngo, completed_claims=1)


def recompute_actor_stats(
    session: Session, actor_type: ActorType, actor_id: int
) -> RatingSummary:
    """
    Aggregate all published feedback about an actor from scratch.

    Returns:
        RatingSummary: Totals, average rounded to two decimals, the 1-5
        distribution and the share of reviewers who would recommend the actor.
    """
    rows = session.exec(
        select(Feedback.overall_rating, Feedback.would_recommend).where(
            Feedback.reviewee_type == actor_type,
            Feedback.reviewee_id == actor_id,
            Feedback.status == FeedbackStatus.PUBLISHED,
        )
    ).all()

    ratings = [rating for rating, _ in rows]
    total = len(ratings)
    rating_sum = sum(ratings)
    counts = Counter(ratings)

    answered = [recommend for _, recommend in rows if recommend is not None]
    recommendation_rate = (
        round(100 * sum(1 for r in answered if r) / len(answered), 2)
        if answered
        else None
    )

    return RatingSummary(
        actor_type=actor_type,
        actor_id=actor_id,
        total_ratings=total,
        rating_sum=rating_sum,
        average_rating=round(rating_sum / total, 2) if total else 0.0,
        distribution={star: counts.get(star, 0) for star in range(1, 6)},
        recommendation_rate=recommendation_rate,
    )


@dataclass(frozen=True)
class ConsistencyReport:
    actor_type: ActorType
    actor_id: int
    consistent: bool
    stored_total: int
    stored_average: float
    recomputed_total: int
    recomputed_average: float


def check_consistency(
    session: Session, actor_type: ActorType, actor_id: int
) -> ConsistencyReport:
    """Compare the incrementally maintained stats with a full recomputation."""
    stored = get_actor_stats(session, actor_type, actor_id)
    summary = recompute_actor_stats(session, actor_type, actor_id)

    # Averages are rounded on both sides, so the raw sums decide
    consistent = (
        stored.total_ratings == summary.total_ratings
        and stored.rating_sum == summary.rating_sum
    )
    if not consistent:
        logger.warning(
            f"Rating drift for {actor_type.value} {actor_id}: stored "
            f"{stored.total_ratings}/{stored.average_rating}, recomputed "
            f"{summary.total_ratings}/{summary.average_rating}"
        )

    return ConsistencyReport(
        actor_type=actor_type,
        actor_id=actor_id,
        consistent=consistent,
        stored_total=stored.total_ratings,
        stored_average=stored.average_rating,
        recomputed_total=summary.total_ratings,
        recomputed_average=summary.average_rating,
    )
