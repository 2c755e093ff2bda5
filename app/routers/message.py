"""Direct messages between actors."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.database.database import get_session
from app.models.message import MessageCreate, MessagePublic
from app.services import message as message_service

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/", response_model=MessagePublic, status_code=status.HTTP_201_CREATED)
def send_message(
    message_in: MessageCreate,
    session: Annotated[Session, Depends(get_session)],
) -> MessagePublic:
    """
    Send a message to another actor, optionally about a donation.

    Raises:
        404 NotFoundError: If an actor or the donation doesn't exist.
        422 ValidationError: If sender and recipient are the same actor.
    """
    message = message_service.send_message(session, message_in)
    return MessagePublic.model_validate(message)
