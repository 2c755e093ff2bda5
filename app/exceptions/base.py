"""Base exception for all application-level errors."""


class AppException(Exception):
    """Root of the domain exception hierarchy."""

    def __init__(self, message: str = "An application error occurred"):
        """
        Initialize the exception with a human-readable message.

        Parameters:
            message (str): Description of the failure; also available as `message`.
        """
        self.message = message
        super().__init__(message)
