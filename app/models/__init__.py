from app.models.actor import ActorStats, Beneficiary, Donor, NGO, Volunteer
from app.models.donation import Donation
from app.models.claim import Claim
from app.models.volunteer_task import VolunteerTask
from app.models.pickup_event import PickupEvent
from app.models.feedback import Feedback
from app.models.message import Message
from app.models.notification import Notification

__all__ = [
    "ActorStats",
    "Beneficiary",
    "Donor",
    "NGO",
    "Volunteer",
    "Donation",
    "Claim",
    "VolunteerTask",
    "PickupEvent",
    "Feedback",
    "Message",
    "Notification",
]
