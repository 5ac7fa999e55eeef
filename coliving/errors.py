"""Custom exception classes for the application."""


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when user input fails validation."""

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


class MalformedError(AppError):
    """Raised when an identifier does not have the expected shape."""

    def __init__(self, message="Malformed identifier."):
        """Initialize the error."""
        super().__init__(message, 400)


class ForbiddenError(AppError):
    """Raised when the caller is not the authorized actor."""

    def __init__(self, message="You are not allowed to perform this action."):
        """Initialize the error."""
        super().__init__(message, 403)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class InactiveGroupError(AppError):
    """Raised when a membership change targets a group that is no longer active."""

    def __init__(self, message="This group is no longer active."):
        """Initialize the error."""
        super().__init__(message, 409)


class ConflictError(AppError):
    """Raised when an atomic update keeps losing a write race."""

    def __init__(self, message="The group changed while saving. Please try again."):
        """Initialize the error."""
        super().__init__(message, 409)


class CannotSelfRemoveAdminError(AppError):
    """Raised when the group admin tries to remove themselves."""

    def __init__(
        self,
        message="The group admin cannot leave. Transfer leadership or delete the group.",
    ):
        """Initialize the error."""
        super().__init__(message, 409)


class ConfigUnavailableError(AppError):
    """Raised when configuration or the backing store cannot be reached."""

    def __init__(self, message="Configuration is unavailable."):
        """Initialize the error."""
        super().__init__(message, 503)


class StoreTimeoutError(AppError):
    """Raised when a store write does not complete within the write timeout."""

    def __init__(self, message="The operation timed out. Please try again."):
        """Initialize the error."""
        super().__init__(message, 504)
