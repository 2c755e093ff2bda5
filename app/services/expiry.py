"""
Expiry and scheduling monitor.

Derived time metrics are pure functions of stored timestamps and are never
persisted. The sweeps apply time-driven transitions with the same
compare-and-set discipline as request-driven ones: an entity that changed
under the sweep is logged and skipped.
"""

import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta

from sqlmodel import Session, select

from app.core.telemetry import record_expired
from app.exceptions import ConflictError
from app.models.claim import Claim
from app.models.donation import Donation
from app.models.enums import (
    ClaimStatus,
    DonationStatus,
    TaskStatus,
    TaskType,
    UrgencyLevel,
)
from app.models.pickup_event import PickupEvent
from app.models.volunteer_task import VolunteerTask
from app.services.lifecycle import (
    CLAIM_MACHINE,
    DONATION_MACHINE,
    stamp,
    task_machine_for,
    transition,
)
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.propagation import (
    INACTIVE_TASK_STATUSES,
    donation_has_active_task,
    find_active_claims,
    find_active_task,
    is_past_expiry,
)
from app.services.utils import get_or_404
from app.utils.clock import ensure_utc, utcnow
from app.utils.logger import logger

DEFAULT_PICKUP_MINUTES = 30
MINUTES_PER_KM = 3

SWEEPABLE_DONATION_STATUSES = (DonationStatus.AVAILABLE, DonationStatus.CLAIMED)
# Claims that have not reached a pickup yet expire together with their donation
EXPIRABLE_CLAIM_STATUSES = (
    ClaimStatus.PENDING,
    ClaimStatus.APPROVED,
    ClaimStatus.VOLUNTEER_ASSIGNED,
)


def hours_until_expiry(expiry: datetime, now: datetime | None = None) -> int:
    """Whole hours left before `expiry`, floored at 0."""
    now = now or utcnow()
    remaining = (ensure_utc(expiry) - now).total_seconds()  # type: ignore[operator]
    return max(0, math.floor(remaining / 3600))


def urgency_level(hours: int) -> UrgencyLevel:
    if hours <= 2:
        return UrgencyLevel.URGENT
    if hours <= 6:
        return UrgencyLevel.HIGH
    if hours <= 12:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


def age_in_hours(created_at: datetime, now: datetime | None = None) -> int:
    now = now or utcnow()
    elapsed = (now - ensure_utc(created_at)).total_seconds()  # type: ignore[operator]
    return max(0, math.floor(elapsed / 3600))


def is_claim_valid(claim: Claim, now: datetime | None = None) -> bool:
    """A claim is still actionable when it is not closed and its deadline is ahead."""
    now = now or utcnow()
    if CLAIM_MACHINE.is_terminal(claim.status):
        return False
    if claim.status == ClaimStatus.PENDING:
        return ensure_utc(claim.expires_at) > now  # type: ignore[operator]
    return True


def is_task_overdue(task: VolunteerTask, now: datetime | None = None) -> bool:
    """Past its scheduled pickup time and still open (declined counts as closed)."""
    now = now or utcnow()
    if task.status in INACTIVE_TASK_STATUSES:
        return False
    return now > ensure_utc(task.pickup_scheduled_time)  # type: ignore[operator]


def estimated_completion_time(task: VolunteerTask) -> datetime:
    """
    Scheduled pickup plus the pickup estimate, the delivery estimate and travel time.

    Travel is approximated at three minutes per kilometre.
    """
    minutes = task.pickup_estimated_minutes or DEFAULT_PICKUP_MINUTES
    if task.task_type != TaskType.PICKUP_ONLY:
        minutes += task.delivery_estimated_minutes or 0
    if task.estimated_distance_km:
        minutes += task.estimated_distance_km * MINUTES_PER_KM
    return ensure_utc(task.pickup_scheduled_time) + timedelta(minutes=minutes)  # type: ignore[operator]


def task_total_duration_minutes(task: VolunteerTask) -> int | None:
    end = task.delivery_actual_end or task.pickup_actual_end
    if task.pickup_actual_start is None or end is None:
        return None
    elapsed = (ensure_utc(end) - ensure_utc(task.pickup_actual_start)).total_seconds()  # type: ignore[operator]
    return max(0, math.floor(elapsed / 60))


def delay_minutes(event: PickupEvent) -> int:
    """Minutes the volunteer arrived after the scheduled start (0 if on time or not yet arrived)."""
    if event.actual_start_time is None:
        return 0
    late = (
        ensure_utc(event.actual_start_time) - ensure_utc(event.scheduled_start_time)  # type: ignore[operator]
    ).total_seconds()
    return max(0, math.floor(late / 60))


def actual_duration_minutes(event: PickupEvent) -> int | None:
    if event.actual_start_time is None or event.actual_end_time is None:
        return None
    elapsed = (
        ensure_utc(event.actual_end_time) - ensure_utc(event.actual_start_time)  # type: ignore[operator]
    ).total_seconds()
    return max(0, math.floor(elapsed / 60))


@dataclass
class SweepSummary:
    expired_donations: int = 0
    expired_claims: int = 0
    released_donations: int = 0
    conflicts: int = 0

    def merge(self, other: "SweepSummary") -> "SweepSummary":
        return SweepSummary(
            expired_donations=self.expired_donations + other.expired_donations,
            expired_claims=self.expired_claims + other.expired_claims,
            released_donations=self.released_donations + other.released_donations,
            conflicts=self.conflicts + other.conflicts,
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _cancel_unaccepted_task(
    session: Session, claim: Claim, events: list[TransitionEvent], now: datetime
) -> None:
    task = find_active_task(session, claim.id_claim)  # type: ignore[arg-type]
    if task is None or task.status != TaskStatus.ASSIGNED:
        return
    transition(
        session,
        task_machine_for(task.task_type),
        task,
        TaskStatus.CANCELLED,
        events=events,
        values={
            **stamp(task, "cancelled_at", now),
            "cancellation_reason": "Donation expired before pickup",
        },
        now=now,
    )


def sweep_expired_donations(
    session: Session, now: datetime | None = None
) -> SweepSummary:
    """
    Expire available or claimed donations whose deadline has passed.

    The donation's not-yet-picked-up claim expires with it, and a task
    still waiting for the volunteer to accept it is cancelled.

    Args:
        session: Database session
        now: Sweep time (defaults to the current UTC time)

    Returns:
        SweepSummary: Counts of expired entities and skipped conflicts
    """
    now = now or utcnow()
    summary = SweepSummary()
    donation_ids = session.exec(
        select(Donation.id_donation).where(
            Donation.status.in_(SWEEPABLE_DONATION_STATUSES),  # type: ignore[attr-defined]
            Donation.expiry_date_time <= now,
        )
    ).all()

    for donation_id in donation_ids:
        donation = get_or_404(session, Donation, donation_id)  # type: ignore[arg-type]
        # Re-checked: an earlier commit in this loop reloads the row
        if donation.status not in SWEEPABLE_DONATION_STATUSES or not is_past_expiry(
            donation, now
        ):
            continue

        events: list[TransitionEvent] = []
        try:
            transition(
                session,
                DONATION_MACHINE,
                donation,
                DonationStatus.EXPIRED,
                events=events,
                values={"claimed_by": None, "claimed_at": None},
                now=now,
            )
            expired_claims = 0
            for claim in find_active_claims(session, donation_id):  # type: ignore[arg-type]
                if claim.status in EXPIRABLE_CLAIM_STATUSES:
                    was_assigned = claim.status == ClaimStatus.VOLUNTEER_ASSIGNED
                    transition(
                        session, CLAIM_MACHINE, claim, ClaimStatus.EXPIRED,
                        events=events, now=now,
                    )
                    if was_assigned:
                        _cancel_unaccepted_task(session, claim, events, now)
                    expired_claims += 1
            commit_and_publish(session, events)
        except ConflictError as e:
            logger.warning(f"Expiry sweep skipped donation {donation_id}: {e.message}")
            summary.conflicts += 1
            continue

        summary.expired_donations += 1
        summary.expired_claims += expired_claims

    record_expired("donation", summary.expired_donations)
    return summary


def sweep_expired_claims(session: Session, now: datetime | None = None) -> SweepSummary:
    """
    Expire pending claims past their own deadline and release their donations.

    The donation goes back to available (or expired, if its own deadline has
    passed too) only when this claim's NGO still holds it and no other active
    claim or open task exists for it.
    """
    now = now or utcnow()
    summary = SweepSummary()
    claim_ids = session.exec(
        select(Claim.id_claim).where(
            Claim.status == ClaimStatus.PENDING,
            Claim.expires_at <= now,
        )
    ).all()

    for claim_id in claim_ids:
        claim = get_or_404(session, Claim, claim_id)  # type: ignore[arg-type]
        if claim.status != ClaimStatus.PENDING:
            continue

        events: list[TransitionEvent] = []
        released = False
        try:
            transition(
                session, CLAIM_MACHINE, claim, ClaimStatus.EXPIRED,
                events=events, now=now,
            )
            donation = get_or_404(session, Donation, claim.id_donation)
            if (
                donation.status == DonationStatus.CLAIMED
                and donation.claimed_by == claim.id_ngo
                and not find_active_claims(session, claim.id_donation, claim.id_claim)
                and not donation_has_active_task(session, claim.id_donation)
            ):
                target = (
                    DonationStatus.EXPIRED
                    if is_past_expiry(donation, now)
                    else DonationStatus.AVAILABLE
                )
                transition(
                    session,
                    DONATION_MACHINE,
                    donation,
                    target,
                    events=events,
                    values={"claimed_by": None, "claimed_at": None},
                    now=now,
                )
                released = target == DonationStatus.AVAILABLE
            commit_and_publish(session, events)
        except ConflictError as e:
            logger.warning(f"Expiry sweep skipped claim {claim_id}: {e.message}")
            summary.conflicts += 1
            continue

        summary.expired_claims += 1
        if released:
            summary.released_donations += 1

    record_expired("claim", summary.expired_claims)
    return summary


def run_expiry_sweep(session: Session, now: datetime | None = None) -> SweepSummary:
    """Run both sweeps: donations first so their claims expire with them."""
    now = now or utcnow()
    summary = sweep_expired_donations(session, now).merge(
        sweep_expired_claims(session, now)
    )
    logger.info(f"Expiry sweep finished: {summary.as_dict()}")
    return summary


def list_overdue_tasks(
    session: Session, now: datetime | None = None
) -> list[VolunteerTask]:
    """Read-only report of open tasks past their scheduled pickup time."""
    now = now or utcnow()
    statement = (
        select(VolunteerTask)
        .where(
            VolunteerTask.status.not_in(INACTIVE_TASK_STATUSES),  # type: ignore[attr-defined]
            VolunteerTask.pickup_scheduled_time < now,
        )
        .order_by(VolunteerTask.pickup_scheduled_time)  # type: ignore
    )
    return list(session.exec(statement).all())
