"""Resolve tagged actor references to the per-type actor tables."""

from sqlmodel import Session, SQLModel

from app.models.actor import (
    ActorCreate,
    ActorPublic,
    ActorRef,
    Beneficiary,
    Donor,
    NGO,
    Volunteer,
)
from app.models.enums import ActorType
from app.services.utils import get_or_404, primary_key_of

ACTOR_MODELS: dict[ActorType, type[SQLModel]] = {
    ActorType.DONOR: Donor,
    ActorType.NGO: NGO,
    ActorType.VOLUNTEER: Volunteer,
    ActorType.BENEFICIARY: Beneficiary,
}

ACTOR_LABELS = {
    ActorType.DONOR: "Donor",
    ActorType.NGO: "NGO",
    ActorType.VOLUNTEER: "Volunteer",
    ActorType.BENEFICIARY: "Beneficiary",
}


def get_actor(session: Session, actor_type: ActorType, actor_id: int):
    """
    Fetch the actor record behind a tagged reference.

    Raises:
        NotFoundError: If no actor of that type has this ID.
    """
    return get_or_404(
        session, ACTOR_MODELS[actor_type], actor_id, ACTOR_LABELS[actor_type]
    )


def resolve(session: Session, ref: ActorRef):
    return get_actor(session, ref.actor_type, ref.actor_id)


def actor_exists(session: Session, actor_type: ActorType, actor_id: int) -> bool:
    return session.get(ACTOR_MODELS[actor_type], actor_id) is not None


def create_actor(session: Session, actor_type: ActorType, actor_in: ActorCreate):
    """
    Create a profile row for the given actor type.

    Args:
        session: Database session
        actor_type: Which actor table to insert into
        actor_in: Profile fields

    Returns:
        The created actor
    """
    model = ACTOR_MODELS[actor_type]
    data = actor_in.model_dump()
    if actor_type != ActorType.NGO:
        data.pop("registration_number", None)
    actor = model.model_validate(data)
    session.add(actor)
    session.commit()
    session.refresh(actor)
    return actor


def to_actor_public(actor_type: ActorType, actor) -> ActorPublic:
    return ActorPublic(
        actor_type=actor_type,
        actor_id=primary_key_of(actor),
        name=actor.name,
        email=actor.email,
        phone_number=actor.phone_number,
        address=actor.address,
        created_at=actor.created_at,
    )
