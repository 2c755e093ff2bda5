"""Donation posting, discovery and cancellation router."""

from typing import Annotated

from anyio import to_thread
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.database.database import get_session
from app.models.claim import ClaimPublic
from app.models.donation import DonationCancel, DonationCreate, DonationPublic
from app.services import claim as claim_service
from app.services import donation as donation_service
from app.services import expiry as expiry_service
from app.utils.clock import utcnow

router = APIRouter(prefix="/donations", tags=["donations"])


@router.post("/", response_model=DonationPublic, status_code=status.HTTP_201_CREATED)
async def create_donation(
    donation_in: DonationCreate,
    session: Annotated[Session, Depends(get_session)],
) -> DonationPublic:
    """
    Post surplus food for NGOs to claim.

    ### Validation:
    - **expiry_date_time** must be in the future
    - the pickup window must end after it starts and open before the food expires

    When `pickup_lat`/`pickup_long` are omitted the pickup address is geocoded;
    a failed lookup leaves the coordinates empty.

    Args:
        donation_in: Donation data including the donor ID.
        session: Database session (automatically injected).

    Returns:
        DonationPublic: The created donation with its expiry countdown and urgency.

    Raises:
        404 NotFoundError: If the donor doesn't exist.
        422 ValidationError: If the schedule is inconsistent.
    """
    now = utcnow()
    data = await to_thread.run_sync(
        donation_service.prepare_donation, session, donation_in, now
    )
    data = await donation_service.locate_pickup(data)
    donation = await to_thread.run_sync(
        donation_service.persist_donation, session, data, now
    )
    return donation_service.to_donation_public(donation)


@router.get("/", response_model=list[DonationPublic])
def list_available_donations(
    session: Annotated[Session, Depends(get_session)],
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    limit: int = Query(
        default=100, ge=1, le=100, description="Pagination limit (max 100)"
    ),
) -> list[DonationPublic]:
    """Donations that can be claimed right now, newest first."""
    donations = donation_service.list_available_donations(
        session, offset=offset, limit=limit
    )
    return [donation_service.to_donation_public(d) for d in donations]


@router.get("/by-donor/{donor_id}", response_model=list[DonationPublic])
def list_donor_donations(
    donor_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> list[DonationPublic]:
    donations = donation_service.list_donor_donations(session, donor_id)
    return [donation_service.to_donation_public(d) for d in donations]


@router.post("/expiry-sweep", response_model=dict)
def run_expiry_sweep(session: Annotated[Session, Depends(get_session)]) -> dict:
    """
    Expire overdue donations and pending claims immediately.

    The same sweep also runs periodically in the background.

    Returns:
        dict: Counts of expired donations and claims, released donations and
        rows skipped because they changed concurrently.
    """
    return expiry_service.run_expiry_sweep(session).as_dict()


@router.get("/{donation_id}", response_model=DonationPublic)
def get_donation(
    donation_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> DonationPublic:
    donation = donation_service.get_donation(session, donation_id)
    return donation_service.to_donation_public(donation)


@router.get("/{donation_id}/claims", response_model=list[ClaimPublic])
def list_donation_claims(
    donation_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> list[ClaimPublic]:
    donation_service.get_donation(session, donation_id)
    claims = claim_service.list_donation_claims(session, donation_id)
    return [claim_service.to_claim_public(c) for c in claims]


@router.post("/{donation_id}/cancel", response_model=DonationPublic)
def cancel_donation(
    donation_id: int,
    cancel_in: DonationCancel,
    session: Annotated[Session, Depends(get_session)],
) -> DonationPublic:
    """
    Withdraw a donation.

    Every open claim, task and pickup event attached to it is cancelled in the
    same operation.

    Raises:
        403 InsufficientPermissionsError: If the caller is not the donor.
        409 InvalidTransitionError: If the donation is already closed.
        409 ConflictError: If the donation changed concurrently.
    """
    donation = donation_service.cancel_donation(
        session, donation_id, cancel_in.id_donor, cancel_in.reason
    )
    return donation_service.to_donation_public(donation)
