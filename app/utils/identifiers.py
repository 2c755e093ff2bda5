"""Human-readable business numbers (e.g. ``CLM-20261019-4KQ7ZD``)."""

import secrets
import string
from datetime import datetime

from app.utils.clock import utcnow

_ALPHABET = string.ascii_uppercase + string.digits

DONATION_PREFIX = "DON"
CLAIM_PREFIX = "CLM"
TASK_PREFIX = "TSK"
PICKUP_EVENT_PREFIX = "PKP"
FEEDBACK_PREFIX = "FBK"
NOTIFICATION_PREFIX = "NTF"
MESSAGE_PREFIX = "MSG"


def generate_business_number(prefix: str, now: datetime | None = None) -> str:
    """
    Build a business identifier of the form ``<PREFIX>-YYYYMMDD-XXXXXX``.

    The date part is the UTC creation day; the suffix is six random uppercase
    alphanumerics. Uniqueness is enforced by the column's unique index.
    """
    day = (now or utcnow()).strftime("%Y%m%d")
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{prefix}-{day}-{suffix}"
