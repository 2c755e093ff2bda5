"""
Application exceptions module.

This module provides a clean separation of concerns for error handling:
- Base exceptions define the hierarchy
- CRUD exceptions handle entity store lookups and input validation
- Workflow exceptions handle state transitions, races, expiry and cascades
- HTTP mapping is handled separately in app/core/error_handlers.py
"""

from app.exceptions.base import AppException
from app.exceptions.crud import (
    NotFoundError,
    AlreadyExistsError,
    ValidationError,
)
from app.exceptions.access import InsufficientPermissionsError
from app.exceptions.workflow import (
    InvalidTransitionError,
    ConflictError,
    ExpiredEntityError,
    CascadeFailureError,
)

__all__ = [
    # Base
    "AppException",
    # CRUD
    "NotFoundError",
    "AlreadyExistsError",
    "ValidationError",
    # Access
    "InsufficientPermissionsError",
    # Workflow
    "InvalidTransitionError",
    "ConflictError",
    "ExpiredEntityError",
    "CascadeFailureError",
]
