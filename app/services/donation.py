"""Donation service: posting surplus food and closing it from the donor side."""

from datetime import datetime

from sqlmodel import Session, select

from app.exceptions import InsufficientPermissionsError, ValidationError
from app.models.donation import Donation, DonationCreate, DonationPublic
from app.models.enums import ActorType, DonationStatus
from app.services import actor as actor_service
from app.services import expiry
from app.services.geocoding import geocode_address
from app.services.lifecycle import DONATION_MACHINE, created_event, stamp, transition
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.propagation import cancel_donation_dependents
from app.services.utils import get_or_404
from app.utils.clock import ensure_utc, utcnow
from app.utils.identifiers import DONATION_PREFIX, generate_business_number
from app.utils.logger import logger


def _validate_schedule(donation_in: DonationCreate, now: datetime) -> None:
    if donation_in.expiry_date_time <= now:
        raise ValidationError(
            "Expiry date must be in the future", field="expiry_date_time"
        )
    if donation_in.pickup_window_end <= donation_in.pickup_window_start:
        raise ValidationError(
            "Pickup window must end after it starts", field="pickup_window_end"
        )
    if donation_in.pickup_window_start >= donation_in.expiry_date_time:
        raise ValidationError(
            "Pickup window must open before the food expires",
            field="pickup_window_start",
        )


def prepare_donation(
    session: Session, donation_in: DonationCreate, now: datetime
) -> dict:
    """
    Check the donor and the schedule of a new donation.

    Returns:
        dict: Column values with every timestamp normalized to UTC

    Raises:
        NotFoundError: If the donor does not exist
        ValidationError: If the expiry or pickup window is inconsistent
    """
    actor_service.get_actor(session, ActorType.DONOR, donation_in.id_donor)

    data = donation_in.model_dump()
    for field_name in (
        "expiry_date_time",
        "prepared_at",
        "pickup_window_start",
        "pickup_window_end",
    ):
        data[field_name] = ensure_utc(data[field_name])
    _validate_schedule(DonationCreate.model_validate(data), now)
    return data


async def locate_pickup(data: dict) -> dict:
    """Fill in the pickup coordinates from the address when they were not sent."""
    if data["pickup_lat"] is not None and data["pickup_long"] is not None:
        return data
    geocoded = await geocode_address(data["pickup_address"])
    if geocoded is None:
        logger.info(f"Coordinates unknown for donation by donor {data['id_donor']}")
        return data
    return {
        **data,
        "pickup_lat": geocoded.latitude,
        "pickup_long": geocoded.longitude,
        "pickup_formatted_address": geocoded.formatted_address,
    }


def persist_donation(session: Session, data: dict, now: datetime) -> Donation:
    donation = Donation.model_validate(
        {
            **data,
            "donation_number": generate_business_number(DONATION_PREFIX, now),
            "status": DonationStatus.AVAILABLE,
            "created_at": now,
            "updated_at": now,
        }
    )
    session.add(donation)
    session.flush()
    session.refresh(donation)

    commit_and_publish(session, [created_event(DONATION_MACHINE, donation, now)])
    session.refresh(donation)
    return donation


async def create_donation(
    session: Session, donation_in: DonationCreate, now: datetime | None = None
) -> Donation:
    """
    Post a new donation.

    The pickup address is geocoded when no coordinates were supplied; a failed
    lookup leaves the coordinates unknown and never blocks creation. Callers
    on the event loop run `prepare_donation` and `persist_donation` in a
    worker thread and only await `locate_pickup`.

    Args:
        session: Database session
        donation_in: Donation data
        now: Creation time (defaults to the current UTC time)

    Returns:
        Donation: The created donation, status available

    Raises:
        NotFoundError: If the donor does not exist
        ValidationError: If the expiry or pickup window is inconsistent
    """
    now = now or utcnow()
    data = await locate_pickup(prepare_donation(session, donation_in, now))
    return persist_donation(session, data, now)


def get_donation(session: Session, donation_id: int) -> Donation:
    return get_or_404(session, Donation, donation_id)


def list_available_donations(
    session: Session,
    *,
    now: datetime | None = None,
    offset: int = 0,
    limit: int = 100,
) -> list[Donation]:
    """
    List donations that can be claimed right now, newest first.

    Returns:
        list[Donation]: Available donations whose expiry is still ahead
    """
    now = now or utcnow()
    statement = (
        select(Donation)
        .where(
            Donation.status == DonationStatus.AVAILABLE,
            Donation.expiry_date_time > now,
        )
        .order_by(Donation.created_at.desc())  # type: ignore
        .offset(offset)
        .limit(limit)
    )
    return list(session.exec(statement).all())


def list_donor_donations(session: Session, donor_id: int) -> list[Donation]:
    statement = (
        select(Donation)
        .where(Donation.id_donor == donor_id)
        .order_by(Donation.created_at.desc())  # type: ignore
    )
    return list(session.exec(statement).all())


def cancel_donation(
    session: Session,
    donation_id: int,
    donor_id: int,
    reason: str,
    now: datetime | None = None,
) -> Donation:
    """
    Withdraw a donation and everything still running against it.

    Args:
        session: Database session
        donation_id: Donation ID
        donor_id: Donor performing the cancellation (must own the donation)
        reason: Cancellation reason
        now: Cancellation time

    Returns:
        Donation: The cancelled donation

    Raises:
        NotFoundError: If the donation does not exist
        InsufficientPermissionsError: If the donor does not own the donation
        InvalidTransitionError: If the donation is already terminal
        ConflictError: If the donation changed concurrently
    """
    now = now or utcnow()
    donation = get_or_404(session, Donation, donation_id)
    if donation.id_donor != donor_id:
        raise InsufficientPermissionsError("Only the donor can cancel this donation")

    events: list[TransitionEvent] = []
    transition(
        session,
        DONATION_MACHINE,
        donation,
        DonationStatus.CANCELLED,
        events=events,
        values={
            "claimed_by": None,
            "claimed_at": None,
            "cancellation_reason": reason,
            **stamp(donation, "cancelled_at", now),
        },
        now=now,
    )
    cancel_donation_dependents(session, donation, events, now, reason)

    commit_and_publish(session, events)
    session.refresh(donation)
    return donation


def to_donation_public(donation: Donation, now: datetime | None = None) -> DonationPublic:
    """Public view with the derived expiry fields computed at read time."""
    hours = expiry.hours_until_expiry(donation.expiry_date_time, now)
    return DonationPublic.model_validate(
        {
            **donation.model_dump(),
            "hours_until_expiry": hours,
            "urgency_level": expiry.urgency_level(hours),
        }
    )
