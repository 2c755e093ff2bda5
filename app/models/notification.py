"""In-app notifications written for every accepted workflow transition."""

from datetime import datetime, timezone
from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field

from app.models.enums import ActorType, WorkflowEntity


class NotificationBase(SQLModel):
    """Base notification fields."""

    recipient_type: ActorType = Field(index=True)
    recipient_id: int = Field(index=True)
    entity_type: WorkflowEntity
    entity_id: int
    old_status: str | None = Field(default=None, max_length=50)
    new_status: str = Field(max_length=50)
    title: str = Field(max_length=200)
    body: str = Field(max_length=500)
    is_read: bool = Field(default=False)


class Notification(NotificationBase, table=True):
    """Database notification model."""

    id_notification: int | None = Field(default=None, primary_key=True)
    notification_number: str = Field(max_length=32, unique=True, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class NotificationPublic(NotificationBase):
    """Public notification response."""

    id_notification: int
    notification_number: str
    created_at: datetime


class NotificationMarkRead(SQLModel):
    """Schema for marking notifications as read."""

    notification_ids: list[int] = Field(min_length=1)
