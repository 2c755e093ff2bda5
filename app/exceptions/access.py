"""Ownership exceptions: the acting party is not the one the record belongs to."""

from app.exceptions.base import AppException


class InsufficientPermissionsError(AppException):
    """Actor is not allowed to act on this record."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)
