from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer
from sqlmodel import SQLModel, Field

from app.models.actor import ActorRef
from app.models.enums import ActorType, FeedbackStatus, ModerationStatus


class FeedbackBase(SQLModel):
    feedback_type: str = Field(max_length=50)
    overall_rating: int = Field(ge=1, le=5)
    title: str | None = Field(default=None, max_length=100)
    comment: str | None = Field(default=None, max_length=2000)
    would_recommend: bool | None = None


class Feedback(FeedbackBase, table=True):
    id_feedback: int | None = Field(default=None, primary_key=True)
    feedback_number: str = Field(max_length=32, unique=True, index=True)

    reviewer_type: ActorType = Field(index=True)
    reviewer_id: int = Field(index=True)
    reviewee_type: ActorType = Field(index=True)
    reviewee_id: int = Field(index=True)

    # Context references survive the deletion of the workflow record
    id_donation: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("donation.id_donation", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    id_claim: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("claim.id_claim", ondelete="SET NULL"), nullable=True
        ),
    )
    id_task: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("volunteer_task.id_task", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    id_pickup_event: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("pickup_event.id_pickup_event", ondelete="SET NULL"),
            nullable=True,
        ),
    )

    detailed_ratings: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: FeedbackStatus = Field(default=FeedbackStatus.PENDING, index=True)
    moderation_status: ModerationStatus = Field(
        default=ModerationStatus.AUTO_APPROVED
    )
    moderation_note: str | None = Field(default=None, max_length=500)
    counted_in_stats: bool = Field(default=False)

    response_comment: str | None = Field(default=None, max_length=2000)
    response_action_plan: str | None = Field(default=None, max_length=1000)
    response_acknowledged: bool = Field(default=False)
    responded_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))

    published_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )


class FeedbackCreate(FeedbackBase):
    reviewer: ActorRef
    reviewee: ActorRef
    id_donation: int | None = None
    id_claim: int | None = None
    id_task: int | None = None
    id_pickup_event: int | None = None
    detailed_ratings: dict[str, int] = Field(default_factory=dict)


class FeedbackResponse(SQLModel):
    responder: ActorRef
    comment: str = Field(min_length=1, max_length=2000)
    action_plan: str | None = Field(default=None, max_length=1000)
    acknowledged: bool = True


class FeedbackDispute(SQLModel):
    disputer: ActorRef
    reason: str = Field(min_length=1, max_length=500)


class FeedbackModeration(SQLModel):
    moderation_status: ModerationStatus
    note: str | None = Field(default=None, max_length=500)


class FeedbackPublic(FeedbackBase):
    id_feedback: int
    feedback_number: str
    reviewer_type: ActorType
    reviewer_id: int
    reviewee_type: ActorType
    reviewee_id: int
    id_donation: int | None
    id_claim: int | None
    id_task: int | None
    id_pickup_event: int | None
    detailed_ratings: dict
    status: FeedbackStatus
    moderation_status: ModerationStatus
    counted_in_stats: bool
    response_comment: str | None
    response_action_plan: str | None
    responded_at: datetime | None
    published_at: datetime | None
    created_at: datetime
