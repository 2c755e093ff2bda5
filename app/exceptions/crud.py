"""CRUD-related exceptions for entity store operations."""

from app.exceptions.base import AppException


class NotFoundError(AppException):
    """Referenced entity does not exist in the store."""

    def __init__(self, resource: str, identifier: int | str):
        """
        Initialize a NotFoundError for a missing entity.

        Parameters:
            resource (str): The type or name of the entity that was not found.
            identifier (int | str): The identifier of the missing entity.

        Description:
            Stores `resource` and `identifier` as instance attributes and sets the exception message to
            "<resource> with identifier '<identifier>' not found".
        """
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class AlreadyExistsError(AppException):
    """Entity already exists (unique constraint or one-per-context rule)."""

    def __init__(self, resource: str, field: str, value: int | str):
        """
        Parameters:
            resource (str): Name of the entity type (for example, "Feedback").
            field (str): The field that must be unique.
            value (int | str): The conflicting value for the field.
        """
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}='{value}' already exists")


class ValidationError(AppException):
    """Malformed input or a business rule on input values failed."""

    def __init__(self, message: str, field: str | None = None):
        """
        Create a ValidationError representing a rejected input.

        Parameters:
            message (str): Human-readable error message describing the validation failure.
            field (str | None): Optional name of the offending field; may be None if not field-specific.
        """
        self.field = field
        super().__init__(message)
