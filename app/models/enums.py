from enum import Enum


class ActorType(str, Enum):
    DONOR = "donor"
    NGO = "ngo"
    VOLUNTEER = "volunteer"
    BENEFICIARY = "beneficiary"


class WorkflowEntity(str, Enum):
    DONATION = "donation"
    CLAIM = "claim"
    VOLUNTEER_TASK = "volunteer_task"
    PICKUP_EVENT = "pickup_event"
    FEEDBACK = "feedback"


class DonationStatus(str, Enum):
    AVAILABLE = "available"
    CLAIMED = "claimed"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    VOLUNTEER_ASSIGNED = "volunteer_assigned"
    PICKUP_SCHEDULED = "pickup_scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TaskStatus(str, Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EN_ROUTE_PICKUP = "en_route_pickup"
    AT_PICKUP = "at_pickup"
    PICKUP_COMPLETED = "pickup_completed"
    EN_ROUTE_DELIVERY = "en_route_delivery"
    AT_DELIVERY = "at_delivery"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PickupEventStatus(str, Enum):
    SCHEDULED = "scheduled"
    VOLUNTEER_EN_ROUTE = "volunteer_en_route"
    VOLUNTEER_ARRIVED = "volunteer_arrived"
    FOOD_ASSESSMENT = "food_assessment"
    PICKUP_IN_PROGRESS = "pickup_in_progress"
    PICKUP_COMPLETED = "pickup_completed"
    DELIVERY_IN_PROGRESS = "delivery_in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class FeedbackStatus(str, Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    UNDER_REVIEW = "under_review"
    DISPUTED = "disputed"
    RESOLVED = "resolved"
    HIDDEN = "hidden"


class ModerationStatus(str, Enum):
    AUTO_APPROVED = "auto_approved"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class DonorDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class TaskType(str, Enum):
    PICKUP_ONLY = "pickup_only"
    DELIVERY_ONLY = "delivery_only"
    PICKUP_AND_DELIVERY = "pickup_and_delivery"


class VolunteerRole(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    BOTH = "both"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class FoodType(str, Enum):
    COOKED_MEAL = "cooked_meal"
    RAW_INGREDIENTS = "raw_ingredients"
    PACKAGED_FOOD = "packaged_food"
    BEVERAGES = "beverages"
    DAIRY = "dairy"
    BAKERY = "bakery"
    FRUITS_VEGETABLES = "fruits_vegetables"
    OTHER = "other"


class FoodCategory(str, Enum):
    VEGETARIAN = "vegetarian"
    NON_VEGETARIAN = "non_vegetarian"
    VEGAN = "vegan"
    HALAL = "halal"
    KOSHER = "kosher"
    MIXED = "mixed"


class StorageRequirement(str, Enum):
    ROOM_TEMPERATURE = "room_temperature"
    REFRIGERATED = "refrigerated"
    FROZEN = "frozen"


class DistributionMethod(str, Enum):
    DIRECT_DISTRIBUTION = "direct_distribution"
    MEAL_SERVICE = "meal_service"
    FOOD_BANK = "food_bank"
    COMMUNITY_KITCHEN = "community_kitchen"


class EvidenceType(str, Enum):
    PICKUP_PHOTO = "pickup_photo"
    DELIVERY_PHOTO = "delivery_photo"
    SIGNATURE = "signature"
    CONDITION_PHOTO = "condition_photo"
    ISSUE_PHOTO = "issue_photo"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FoodCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNACCEPTABLE = "unacceptable"


class SignerRole(str, Enum):
    DONOR = "donor"
    VOLUNTEER = "volunteer"
    NGO_REPRESENTATIVE = "ngo_representative"
    BENEFICIARY = "beneficiary"


class CommunicationChannel(str, Enum):
    CALL = "call"
    SMS = "sms"
    IN_APP_MESSAGE = "in_app_message"
    EMAIL = "email"
    OTHER = "other"
