"""Claim router: NGOs claim donations, donors decide, NGOs dispatch volunteers."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.database.database import get_session
from app.models.claim import (
    ClaimCancel,
    ClaimCreate,
    ClaimDecision,
    ClaimIssueCreate,
    ClaimPublic,
    VolunteerAssignmentCreate,
)
from app.models.enums import ClaimStatus
from app.models.volunteer_task import VolunteerTaskPublic
from app.services import claim as claim_service
from app.services import volunteer_task as task_service

router = APIRouter(prefix="/claims", tags=["claims"])


@router.post("/", response_model=ClaimPublic, status_code=status.HTTP_201_CREATED)
def create_claim(
    claim_in: ClaimCreate,
    session: Annotated[Session, Depends(get_session)],
) -> ClaimPublic:
    """
    Claim an available donation on behalf of an NGO.

    Only one claim can win a donation: the donation moves to `claimed` in the
    same write, and a concurrent second claim receives 409.

    ### Request Body:
    - **id_donation**, **id_ngo**: who claims what
    - **distribution_plan**: target beneficiaries, date, address and method
    - **urgency_level**, **claim_message**: optional context for the donor

    Raises:
        404 NotFoundError: If the NGO or donation doesn't exist.
        409 ConflictError: If the donation is no longer available.
        410 ExpiredEntityError: If the donation has expired.
        422 ValidationError: If the distribution plan is malformed.
    """
    claim = claim_service.create_claim(session, claim_in)
    return claim_service.to_claim_public(claim)


@router.get("/by-ngo/{ngo_id}", response_model=list[ClaimPublic])
def list_ngo_claims(
    ngo_id: int,
    session: Annotated[Session, Depends(get_session)],
    claim_status: ClaimStatus | None = Query(
        default=None, alias="status", description="Only claims in this status"
    ),
) -> list[ClaimPublic]:
    claims = claim_service.list_ngo_claims(session, ngo_id, claim_status)
    return [claim_service.to_claim_public(c) for c in claims]


@router.get("/{claim_id}", response_model=ClaimPublic)
def get_claim(
    claim_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> ClaimPublic:
    return claim_service.to_claim_public(claim_service.get_claim(session, claim_id))


@router.post("/{claim_id}/decision", response_model=ClaimPublic)
def respond_to_claim(
    claim_id: int,
    decision: ClaimDecision,
    session: Annotated[Session, Depends(get_session)],
) -> ClaimPublic:
    """
    Approve or reject a pending claim. The donor decides once.

    Rejection puts the donation back on offer, or marks it expired when its
    deadline has passed.

    Raises:
        403 InsufficientPermissionsError: If the caller is not the donor.
        409 InvalidTransitionError: If the claim was already decided.
        410 ExpiredEntityError: If approving an expired claim or donation.
    """
    claim = claim_service.respond_to_claim(session, claim_id, decision)
    return claim_service.to_claim_public(claim)


@router.post(
    "/{claim_id}/assign",
    response_model=VolunteerTaskPublic,
    status_code=status.HTTP_201_CREATED,
)
def assign_volunteer(
    claim_id: int,
    assignment: VolunteerAssignmentCreate,
    session: Annotated[Session, Depends(get_session)],
) -> VolunteerTaskPublic:
    """
    Dispatch a volunteer for an approved claim.

    Creates a volunteer task in `assigned` status. After a decline or failure
    the claim can be assigned again, producing a new task.

    Raises:
        409 AlreadyExistsError: If the claim already has an open task.
        409 InvalidTransitionError: If the claim is not approved yet.
    """
    task = claim_service.assign_volunteer(session, claim_id, assignment)
    return task_service.to_task_public(task)


@router.get("/{claim_id}/tasks", response_model=list[VolunteerTaskPublic])
def list_claim_tasks(
    claim_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> list[VolunteerTaskPublic]:
    claim_service.get_claim(session, claim_id)
    return [
        task_service.to_task_public(t)
        for t in task_service.list_claim_tasks(session, claim_id)
    ]


@router.post("/{claim_id}/cancel", response_model=ClaimPublic)
def cancel_claim(
    claim_id: int,
    cancel_in: ClaimCancel,
    session: Annotated[Session, Depends(get_session)],
) -> ClaimPublic:
    """Withdraw a claim; its open task and pickup event are cancelled and the donation released."""
    claim = claim_service.cancel_claim(
        session, claim_id, cancel_in.id_ngo, cancel_in.reason
    )
    return claim_service.to_claim_public(claim)


@router.post("/{claim_id}/issues", response_model=ClaimPublic)
def report_claim_issue(
    claim_id: int,
    issue_in: ClaimIssueCreate,
    session: Annotated[Session, Depends(get_session)],
) -> ClaimPublic:
    claim = claim_service.report_claim_issue(session, claim_id, issue_in)
    return claim_service.to_claim_public(claim)
