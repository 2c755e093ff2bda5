"""Claim service: NGO claims, donor decisions and volunteer assignment."""

from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session, select

from app.core.config import get_settings
from app.exceptions import (
    AlreadyExistsError,
    ConflictError,
    ExpiredEntityError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ValidationError,
)
from app.models.claim import (
    Claim,
    ClaimCreate,
    ClaimDecision,
    ClaimIssueCreate,
    ClaimPublic,
    DistributionPlan,
    VolunteerAssignmentCreate,
)
from app.models.donation import Donation
from app.models.enums import (
    ActorType,
    AssignmentStatus,
    ClaimStatus,
    DonationStatus,
    DonorDecision,
    TaskStatus,
    TaskType,
)
from app.models.volunteer_task import VolunteerTask
from app.services import actor as actor_service
from app.services import expiry
from app.services.lifecycle import (
    CLAIM_MACHINE,
    DONATION_MACHINE,
    created_event,
    stamp,
    task_machine_for,
    transition,
)
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.propagation import (
    cancel_claim_dependents,
    find_active_task,
    is_past_expiry,
    release_donation,
)
from app.services.utils import compare_and_set, get_or_404
from app.utils.clock import ensure_utc, utcnow
from app.utils.identifiers import (
    CLAIM_PREFIX,
    TASK_PREFIX,
    generate_business_number,
)
from app.utils.validation import append_bounded

ASSIGNABLE_CLAIM_STATUSES = frozenset(
    {
        ClaimStatus.APPROVED,
        ClaimStatus.VOLUNTEER_ASSIGNED,
        ClaimStatus.PICKUP_SCHEDULED,
        ClaimStatus.IN_PROGRESS,
    }
)


def _parse_plan(raw_plan: dict) -> DistributionPlan:
    try:
        return DistributionPlan.model_validate(raw_plan)
    except PydanticValidationError as e:
        problems = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "plan"
            for error in e.errors()
        )
        raise ValidationError(
            f"Invalid distribution plan: {problems}", field="distribution_plan"
        ) from e


def create_claim(
    session: Session, claim_in: ClaimCreate, now: datetime | None = None
) -> Claim:
    """
    Claim an available donation for an NGO.

    The donation moves to claimed in the same unit of work through a
    conditional write, so only one of two concurrent claims can win.

    Args:
        session: Database session
        claim_in: Claim data including the distribution plan
        now: Claim time (defaults to the current UTC time)

    Returns:
        Claim: The created claim, status pending

    Raises:
        NotFoundError: If the NGO or the donation does not exist
        ValidationError: If the distribution plan is malformed
        ConflictError: If the donation is not available (or was claimed concurrently)
        ExpiredEntityError: If the donation's expiry has passed
    """
    now = now or utcnow()
    actor_service.get_actor(session, ActorType.NGO, claim_in.id_ngo)
    plan = _parse_plan(claim_in.distribution_plan)
    donation = get_or_404(session, Donation, claim_in.id_donation)

    if donation.status != DonationStatus.AVAILABLE:
        raise ConflictError(
            "Donation",
            donation.donation_number,
            f"Donation '{donation.donation_number}' is {donation.status.value}, "
            "not available for claiming",
        )
    if is_past_expiry(donation, now):
        raise ExpiredEntityError("Donation", donation.donation_number)

    events: list[TransitionEvent] = []
    transition(
        session,
        DONATION_MACHINE,
        donation,
        DonationStatus.CLAIMED,
        events=events,
        values={"claimed_by": claim_in.id_ngo, "claimed_at": now},
        now=now,
    )

    claim_window = now + timedelta(hours=get_settings().CLAIM_EXPIRY_HOURS)
    expires_at = min(claim_window, ensure_utc(donation.expiry_date_time))  # type: ignore[type-var]

    claim = Claim(
        claim_number=generate_business_number(CLAIM_PREFIX, now),
        id_donation=donation.id_donation,  # type: ignore[arg-type]
        id_ngo=claim_in.id_ngo,
        id_donor=donation.id_donor,
        claim_message=claim_in.claim_message,
        urgency_level=claim_in.urgency_level,
        distribution_plan=plan.model_dump(mode="json"),
        expires_at=expires_at,
        created_at=now,
        updated_at=now,
    )
    session.add(claim)
    session.flush()
    session.refresh(claim)
    events.append(created_event(CLAIM_MACHINE, claim, now))

    commit_and_publish(session, events)
    session.refresh(claim)
    return claim


def get_claim(session: Session, claim_id: int) -> Claim:
    return get_or_404(session, Claim, claim_id)


def list_donation_claims(session: Session, donation_id: int) -> list[Claim]:
    statement = (
        select(Claim)
        .where(Claim.id_donation == donation_id)
        .order_by(Claim.created_at.desc())  # type: ignore
    )
    return list(session.exec(statement).all())


def list_ngo_claims(
    session: Session, ngo_id: int, status: ClaimStatus | None = None
) -> list[Claim]:
    statement = select(Claim).where(Claim.id_ngo == ngo_id)
    if status is not None:
        statement = statement.where(Claim.status == status)
    statement = statement.order_by(Claim.created_at.desc())  # type: ignore
    return list(session.exec(statement).all())


def respond_to_claim(
    session: Session,
    claim_id: int,
    decision: ClaimDecision,
    now: datetime | None = None,
) -> Claim:
    """
    Record the donor's single decision on a pending claim.

    Approval keeps the donation claimed; rejection releases it.

    Raises:
        NotFoundError: If the claim does not exist
        InsufficientPermissionsError: If the donor does not own the donation
        InvalidTransitionError: If the claim was already decided or closed
        ExpiredEntityError: If the claim or its donation has expired
        ConflictError: If the claim changed concurrently
    """
    now = now or utcnow()
    claim = get_or_404(session, Claim, claim_id)
    if claim.id_donor != decision.id_donor:
        raise InsufficientPermissionsError("Only the donor can respond to this claim")

    target = ClaimStatus.APPROVED if decision.approve else ClaimStatus.REJECTED
    if claim.status != ClaimStatus.PENDING:
        raise InvalidTransitionError(
            "Claim",
            claim.claim_number,
            claim.status.value,
            target.value,
            reason="the donor has already responded or the claim is closed",
        )

    donation = get_or_404(session, Donation, claim.id_donation)
    if decision.approve:
        if ensure_utc(claim.expires_at) <= now:  # type: ignore[operator]
            raise ExpiredEntityError("Claim", claim.claim_number)
        if is_past_expiry(donation, now):
            raise ExpiredEntityError("Donation", donation.donation_number)

    events: list[TransitionEvent] = []
    transition(
        session,
        CLAIM_MACHINE,
        claim,
        target,
        events=events,
        values={
            "donor_decision": (
                DonorDecision.APPROVED if decision.approve else DonorDecision.REJECTED
            ),
            "donor_responded_at": now,
            "donor_message": decision.message,
            "donor_conditions": decision.conditions,
        },
        now=now,
    )
    if not decision.approve and donation.claimed_by == claim.id_ngo:
        release_donation(session, donation, events, now)

    commit_and_publish(session, events)
    session.refresh(claim)
    return claim


def assign_volunteer(
    session: Session,
    claim_id: int,
    assignment: VolunteerAssignmentCreate,
    now: datetime | None = None,
) -> VolunteerTask:
    """
    Dispatch a volunteer for an approved claim by creating a task.

    After a decline, cancellation or failure the claim can be assigned again:
    the replacement task is created against the same claim.

    Args:
        session: Database session
        claim_id: Claim ID
        assignment: Volunteer, role, task type and scheduling details
        now: Assignment time

    Returns:
        VolunteerTask: The new task, status assigned

    Raises:
        NotFoundError: If the claim, donation or volunteer does not exist
        InvalidTransitionError: If the claim is not approved (or further along) or the donation is closed
        AlreadyExistsError: If the claim already has an open task
        ExpiredEntityError: If the donation expired before pickup
        ConflictError: If the claim changed concurrently
    """
    now = now or utcnow()
    claim = get_or_404(session, Claim, claim_id)
    actor_service.get_actor(session, ActorType.VOLUNTEER, assignment.id_volunteer)

    if claim.status not in ASSIGNABLE_CLAIM_STATUSES:
        raise InvalidTransitionError(
            "Claim",
            claim.claim_number,
            claim.status.value,
            ClaimStatus.VOLUNTEER_ASSIGNED.value,
            reason="a volunteer can only be assigned to an approved claim",
        )
    if find_active_task(session, claim_id) is not None:
        raise AlreadyExistsError("VolunteerTask", "id_claim", claim_id)

    donation = get_or_404(session, Donation, claim.id_donation)
    if DONATION_MACHINE.is_terminal(donation.status):
        raise InvalidTransitionError(
            "Claim",
            claim.claim_number,
            claim.status.value,
            ClaimStatus.VOLUNTEER_ASSIGNED.value,
            reason=f"donation {donation.donation_number} is {donation.status.value}",
        )
    if donation.status == DonationStatus.CLAIMED and is_past_expiry(donation, now):
        raise ExpiredEntityError("Donation", donation.donation_number)

    assignment_values = {
        "id_assigned_volunteer": assignment.id_volunteer,
        "assignment_role": assignment.role,
        "assignment_status": AssignmentStatus.ASSIGNED,
        "assignment_assigned_at": now,
        "assignment_accepted_at": None,
        "assignment_declined_at": None,
        "assignment_decline_reason": None,
    }
    events: list[TransitionEvent] = []
    if claim.status == ClaimStatus.APPROVED:
        transition(
            session,
            CLAIM_MACHINE,
            claim,
            ClaimStatus.VOLUNTEER_ASSIGNED,
            events=events,
            values=assignment_values,
            now=now,
        )
    else:
        # Re-assignment keeps the status, so the assignment as read is the guard
        compare_and_set(
            session,
            claim,
            claim.status,
            {**assignment_values, "updated_at": now},
            "Claim",
            expected={
                "id_assigned_volunteer": claim.id_assigned_volunteer,
                "assignment_status": claim.assignment_status,
            },
        )

    task_type = assignment.task_type
    pickup_time = ensure_utc(assignment.pickup_scheduled_time) or ensure_utc(
        donation.pickup_window_start
    )
    task = VolunteerTask(
        task_number=generate_business_number(TASK_PREFIX, now),
        id_claim=claim.id_claim,  # type: ignore[arg-type]
        id_donation=donation.id_donation,  # type: ignore[arg-type]
        id_volunteer=assignment.id_volunteer,
        id_ngo=claim.id_ngo,
        id_donor=claim.id_donor,
        task_type=task_type,
        priority=claim.urgency_level,
        pickup_address=donation.pickup_formatted_address or donation.pickup_address,
        delivery_address=(
            None
            if task_type == TaskType.PICKUP_ONLY
            else claim.distribution_plan.get("distribution_address")
        ),
        estimated_distance_km=assignment.estimated_distance_km,
        special_instructions=assignment.special_instructions,
        pickup_scheduled_time=pickup_time,
        delivery_scheduled_time=ensure_utc(assignment.delivery_scheduled_time),
        status=TaskStatus.ASSIGNED,
        assigned_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(task)
    session.flush()
    session.refresh(task)
    events.append(created_event(task_machine_for(task_type), task, now))

    commit_and_publish(session, events)
    session.refresh(task)
    return task


def cancel_claim(
    session: Session,
    claim_id: int,
    ngo_id: int,
    reason: str,
    now: datetime | None = None,
) -> Claim:
    """
    Withdraw a claim; its open task and pickup event are cancelled and the donation released.

    Raises:
        NotFoundError: If the claim does not exist
        InsufficientPermissionsError: If the NGO does not own the claim
        InvalidTransitionError: If the claim is already terminal
        ConflictError: If the claim changed concurrently
    """
    now = now or utcnow()
    claim = get_or_404(session, Claim, claim_id)
    if claim.id_ngo != ngo_id:
        raise InsufficientPermissionsError("Only the claiming NGO can cancel this claim")

    values = {**stamp(claim, "cancelled_at", now), "cancellation_reason": reason}
    if claim.assignment_status in (AssignmentStatus.ASSIGNED, AssignmentStatus.ACCEPTED):
        values["assignment_status"] = AssignmentStatus.CANCELLED

    events: list[TransitionEvent] = []
    transition(
        session, CLAIM_MACHINE, claim, ClaimStatus.CANCELLED,
        events=events, values=values, now=now,
    )
    cancel_claim_dependents(session, claim, events, now, reason)

    commit_and_publish(session, events)
    session.refresh(claim)
    return claim


def report_claim_issue(
    session: Session,
    claim_id: int,
    issue_in: ClaimIssueCreate,
    now: datetime | None = None,
) -> Claim:
    now = now or utcnow()
    claim = get_or_404(session, Claim, claim_id)
    issue = {**issue_in.model_dump(mode="json"), "reported_at": now.isoformat()}
    compare_and_set(
        session,
        claim,
        claim.status,
        {
            "issues": append_bounded(
                claim.issues, issue, get_settings().LOG_HISTORY_LIMIT
            ),
            "updated_at": now,
        },
        "Claim",
    )
    session.commit()
    session.refresh(claim)
    return claim


def to_claim_public(claim: Claim, now: datetime | None = None) -> ClaimPublic:
    now = now or utcnow()
    return ClaimPublic.model_validate(
        {
            **claim.model_dump(),
            "age_in_hours": expiry.age_in_hours(claim.created_at, now),
            "hours_until_expiry": expiry.hours_until_expiry(claim.expires_at, now),
            "is_valid": expiry.is_claim_valid(claim, now),
        }
    )
