"""Pickup event router: on-site execution of an accepted task."""

from typing import Annotated

from anyio import to_thread
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.database.database import get_session
from app.models.pickup_event import (
    Confirmation,
    FoodAssessment,
    IncidentCreate,
    LocationSample,
    PickupEventPublic,
    PickupEventStatusUpdate,
)
from app.services import pickup_event as event_service

router = APIRouter(prefix="/pickup-events", tags=["pickup events"])


@router.get("/{event_id}", response_model=PickupEventPublic)
def get_pickup_event(
    event_id: int,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    return event_service.to_event_public(event_service.get_event(session, event_id))


@router.patch("/{event_id}/status", response_model=PickupEventPublic)
def update_pickup_event_status(
    event_id: int,
    update: PickupEventStatusUpdate,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    """
    Move a pickup event along its lifecycle.

    The task follows the event, and the claim and donation follow both: a
    delivered event marks the donation delivered and credits the actors'
    completion counters.

    Raises:
        403 InsufficientPermissionsError: If another volunteer acts on the event.
        409 InvalidTransitionError: If the transition is not allowed.
        409 ConflictError: If the event or a dependent changed concurrently.
    """
    event = event_service.update_pickup_event_status(
        session,
        event_id,
        update.status,
        reason=update.reason,
        volunteer_id=update.id_volunteer,
    )
    return event_service.to_event_public(event)


@router.post("/{event_id}/locations", response_model=PickupEventPublic)
async def append_location_sample(
    event_id: int,
    sample: LocationSample,
    session: Annotated[Session, Depends(get_session)],
    resolve_address: bool = Query(
        False, description="Reverse geocode the coordinates when no address is sent"
    ),
) -> PickupEventPublic:
    """
    Record the volunteer's position; only the most recent samples are kept.

    A failed reverse geocoding lookup stores the sample without an address.
    """
    if resolve_address:
        sample = await event_service.resolve_sample_address(sample)
    event = await to_thread.run_sync(
        event_service.append_location_sample, session, event_id, sample
    )
    return event_service.to_event_public(event)


@router.post("/{event_id}/food-assessment", response_model=PickupEventPublic)
def record_food_assessment(
    event_id: int,
    assessment: FoodAssessment,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    return event_service.to_event_public(
        event_service.record_food_assessment(session, event_id, assessment)
    )


@router.post("/{event_id}/pickup-confirmation", response_model=PickupEventPublic)
def confirm_pickup(
    event_id: int,
    confirmation: Confirmation,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    return event_service.to_event_public(
        event_service.confirm_pickup(session, event_id, confirmation)
    )


@router.post("/{event_id}/delivery-confirmation", response_model=PickupEventPublic)
def confirm_delivery(
    event_id: int,
    confirmation: Confirmation,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    return event_service.to_event_public(
        event_service.confirm_delivery(session, event_id, confirmation)
    )


@router.post("/{event_id}/incidents", response_model=PickupEventPublic)
def report_incident(
    event_id: int,
    incident: IncidentCreate,
    session: Annotated[Session, Depends(get_session)],
) -> PickupEventPublic:
    return event_service.to_event_public(
        event_service.report_incident(session, event_id, incident)
    )
