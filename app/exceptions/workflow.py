"""Workflow exceptions raised by the lifecycle engine, expiry monitor and cascade manager."""

from app.exceptions.base import AppException


class InvalidTransitionError(AppException):
    """Requested status change is not legal from the entity's current state."""

    def __init__(
        self,
        entity: str,
        identifier: int | str,
        current_status: str,
        requested_status: str,
        reason: str | None = None,
    ):
        """
        Describe a rejected status change.

        Parameters:
            entity (str): Entity type name (for example, "Claim").
            identifier (int | str): Identifier of the entity.
            current_status (str): Status the entity is in.
            requested_status (str): Status the caller asked for.
            reason (str | None): Optional extra explanation appended to the message.
        """
        self.entity = entity
        self.identifier = identifier
        self.current_status = current_status
        self.requested_status = requested_status
        message = (
            f"{entity} '{identifier}' cannot move from "
            f"'{current_status}' to '{requested_status}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConflictError(AppException):
    """Another writer changed the entity between read and write."""

    def __init__(self, entity: str, identifier: int | str, message: str | None = None):
        """
        Parameters:
            entity (str): Entity type name.
            identifier (int | str): Identifier of the contended entity.
            message (str | None): Optional custom message; a generic one is used otherwise.
        """
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            message
            or f"{entity} '{identifier}' was modified concurrently, retry the operation"
        )


class ExpiredEntityError(AppException):
    """Operation attempted on an entity past its expiry deadline."""

    def __init__(self, entity: str, identifier: int | str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} '{identifier}' has expired")


class CascadeFailureError(AppException):
    """Actor deletion stopped part-way; already-deleted records are not restored."""

    def __init__(
        self,
        actor_type: str,
        actor_id: int,
        cleaned: list[str],
        not_cleaned: list[str],
        cause: str,
    ):
        """
        Report a partially applied cascade.

        Parameters:
            actor_type (str): Type of the actor being deleted.
            actor_id (int): Identifier of the actor being deleted.
            cleaned (list[str]): Collections fully cleaned before the failure.
            not_cleaned (list[str]): Collections left untouched, starting with the failing one.
            cause (str): Description of the underlying failure.
        """
        self.actor_type = actor_type
        self.actor_id = actor_id
        self.cleaned = cleaned
        self.not_cleaned = not_cleaned
        self.cause = cause
        super().__init__(
            f"Deletion of {actor_type} '{actor_id}' stopped at "
            f"'{not_cleaned[0] if not_cleaned else 'unknown'}': {cause}"
        )
