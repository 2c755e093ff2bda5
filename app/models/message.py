from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlmodel import SQLModel, Field

from app.models.actor import ActorRef
from app.models.enums import ActorType


class Message(SQLModel, table=True):
    id_message: int | None = Field(default=None, primary_key=True)
    message_number: str = Field(max_length=32, unique=True, index=True)
    sender_type: ActorType = Field(index=True)
    sender_id: int = Field(index=True)
    recipient_type: ActorType = Field(index=True)
    recipient_id: int = Field(index=True)
    id_donation: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("donation.id_donation", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    body: str = Field(max_length=2000)
    is_read: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class MessageCreate(SQLModel):
    sender: ActorRef
    recipient: ActorRef
    body: str = Field(min_length=1, max_length=2000)
    id_donation: int | None = None


class MessagePublic(SQLModel):
    id_message: int
    message_number: str
    sender_type: ActorType
    sender_id: int
    recipient_type: ActorType
    recipient_id: int
    id_donation: int | None
    body: str
    is_read: bool
    created_at: datetime
