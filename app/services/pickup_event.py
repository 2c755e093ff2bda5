"""Pickup event service: live execution record of an accepted task."""

from datetime import datetime

from sqlmodel import Session, select

from app.core.config import get_settings
from app.exceptions import InsufficientPermissionsError, InvalidTransitionError
from app.models.enums import PickupEventStatus, TaskType
from app.models.pickup_event import (
    Confirmation,
    FoodAssessment,
    IncidentCreate,
    LocationSample,
    PickupEvent,
    PickupEventPublic,
)
from app.services import expiry
from app.services.geocoding import reverse_geocode
from app.services.lifecycle import event_machine_for, transition
from app.services.notification import TransitionEvent, commit_and_publish
from app.services.propagation import event_timestamps, on_event_progress
from app.services.utils import compare_and_set, get_or_404
from app.utils.clock import ensure_utc, utcnow
from app.utils.validation import append_bounded

PICKUP_CONFIRMABLE = frozenset(
    {
        PickupEventStatus.FOOD_ASSESSMENT,
        PickupEventStatus.PICKUP_IN_PROGRESS,
        PickupEventStatus.PICKUP_COMPLETED,
    }
)
DELIVERY_CONFIRMABLE = frozenset(
    {PickupEventStatus.DELIVERY_IN_PROGRESS, PickupEventStatus.DELIVERED}
)


def get_event(session: Session, event_id: int) -> PickupEvent:
    return get_or_404(session, PickupEvent, event_id, "PickupEvent")


def get_event_for_task(session: Session, task_id: int) -> PickupEvent | None:
    return session.exec(select(PickupEvent).where(PickupEvent.id_task == task_id)).first()


def _reject(event: PickupEvent, action: str, reason: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        "PickupEvent", event.event_number, event.status.value, action, reason=reason
    )


def update_pickup_event_status(
    session: Session,
    event_id: int,
    new_status: PickupEventStatus,
    *,
    reason: str | None = None,
    volunteer_id: int | None = None,
    now: datetime | None = None,
) -> PickupEvent:
    """
    Move a pickup event along its lifecycle and propagate the change.

    The task follows the event; the donation and claim follow both.
    Repeating the current status is a no-op.

    Raises:
        NotFoundError: If the event does not exist
        InsufficientPermissionsError: If another volunteer acts on the event
        InvalidTransitionError: If the transition is not allowed
        ConflictError: If the event or a dependent changed concurrently
    """
    now = now or utcnow()
    event = get_event(session, event_id)
    if volunteer_id is not None and event.id_volunteer != volunteer_id:
        raise InsufficientPermissionsError("Pickup is assigned to another volunteer")

    if new_status == event.status:
        return event

    events: list[TransitionEvent] = []
    transition(
        session,
        event_machine_for(event.task_type),
        event,
        new_status,
        events=events,
        values=event_timestamps(event, new_status, now),
        now=now,
    )
    on_event_progress(session, event, events, now, reason)

    commit_and_publish(session, events)
    session.refresh(event)
    return event


async def resolve_sample_address(sample: LocationSample) -> LocationSample:
    """Fill in a street address by reverse geocoding when the device sent none."""
    if sample.address:
        return sample
    result = await reverse_geocode(sample.latitude, sample.longitude)
    if result is None:
        return sample
    return sample.model_copy(update={"address": result.formatted_address})


def append_location_sample(
    session: Session,
    event_id: int,
    sample: LocationSample,
    now: datetime | None = None,
) -> PickupEvent:
    """
    Append one position sample, keeping only the most recent ones.

    Args:
        session: Database session
        event_id: Pickup event ID
        sample: Coordinates reported by the assigned volunteer's device
        now: Time the sample was received

    Returns:
        PickupEvent: The event with the updated location history

    Raises:
        InsufficientPermissionsError: If the sample comes from another volunteer
        InvalidTransitionError: If the event is already closed
    """
    now = now or utcnow()
    event = get_event(session, event_id)
    if sample.id_volunteer != event.id_volunteer:
        raise InsufficientPermissionsError("Only the assigned volunteer can report location")
    if event_machine_for(event.task_type).is_terminal(event.status):
        raise _reject(event, "location_update", "event is closed")

    entry = {
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "accuracy_m": sample.accuracy_m,
        "address": sample.address,
        "recorded_at": (ensure_utc(sample.recorded_at) or now).isoformat(),
    }
    compare_and_set(
        session,
        event,
        event.status,
        {
            "location_updates": append_bounded(
                event.location_updates, entry, get_settings().LOCATION_HISTORY_LIMIT
            ),
            "updated_at": now,
        },
        "PickupEvent",
    )
    session.commit()
    session.refresh(event)
    return event


def record_food_assessment(
    session: Session,
    event_id: int,
    assessment: FoodAssessment,
    now: datetime | None = None,
) -> PickupEvent:
    now = now or utcnow()
    event = get_event(session, event_id)
    if event.status != PickupEventStatus.FOOD_ASSESSMENT:
        raise _reject(event, "food_assessment", "food can only be assessed on site")

    compare_and_set(
        session,
        event,
        event.status,
        {
            "food_condition": {
                **assessment.model_dump(mode="json"),
                "assessed_at": now.isoformat(),
            },
            "updated_at": now,
        },
        "PickupEvent",
    )
    session.commit()
    session.refresh(event)
    return event


def _confirm(
    session: Session,
    event: PickupEvent,
    field_name: str,
    confirmation: Confirmation,
    now: datetime,
) -> PickupEvent:
    compare_and_set(
        session,
        event,
        event.status,
        {
            field_name: {
                **confirmation.model_dump(mode="json"),
                "confirmed_at": now.isoformat(),
            },
            "updated_at": now,
        },
        "PickupEvent",
    )
    session.commit()
    session.refresh(event)
    return event


def confirm_pickup(
    session: Session,
    event_id: int,
    confirmation: Confirmation,
    now: datetime | None = None,
) -> PickupEvent:
    now = now or utcnow()
    event = get_event(session, event_id)
    if event.status not in PICKUP_CONFIRMABLE:
        raise _reject(event, "pickup_confirmation", "volunteer is not at the pickup")
    return _confirm(session, event, "pickup_confirmation", confirmation, now)


def confirm_delivery(
    session: Session,
    event_id: int,
    confirmation: Confirmation,
    now: datetime | None = None,
) -> PickupEvent:
    now = now or utcnow()
    event = get_event(session, event_id)
    if event.task_type == TaskType.PICKUP_ONLY:
        raise _reject(event, "delivery_confirmation", "pickup-only event has no delivery")
    if event.status not in DELIVERY_CONFIRMABLE:
        raise _reject(event, "delivery_confirmation", "delivery is not under way")
    return _confirm(session, event, "delivery_confirmation", confirmation, now)


def report_incident(
    session: Session,
    event_id: int,
    incident: IncidentCreate,
    now: datetime | None = None,
) -> PickupEvent:
    now = now or utcnow()
    event = get_event(session, event_id)
    entry = {**incident.model_dump(mode="json"), "reported_at": now.isoformat()}
    compare_and_set(
        session,
        event,
        event.status,
        {
            "incidents": append_bounded(
                event.incidents, entry, get_settings().LOG_HISTORY_LIMIT
            ),
            "updated_at": now,
        },
        "PickupEvent",
    )
    session.commit()
    session.refresh(event)
    return event


def to_event_public(event: PickupEvent) -> PickupEventPublic:
    return PickupEventPublic.model_validate(
        {
            **event.model_dump(),
            "delay_minutes": expiry.delay_minutes(event),
            "actual_duration_minutes": expiry.actual_duration_minutes(event),
        }
    )
