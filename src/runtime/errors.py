# =============================================================================
# Dispatcher Errors
# =============================================================================
# Typed failures raised across the runtime. The HTTP layer maps status_code
# directly onto the API Gateway response.
# =============================================================================

from typing import Optional


class DispatcherError(Exception):
    """Base class for all dispatcher errors."""
    status_code = 500

    def __init__(self, message: str = "", detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class AuthenticationError(DispatcherError):
    """Bad, missing or stale request signature."""
    status_code = 401


class MalformedPayloadError(DispatcherError):
    """Request body is not a valid interaction."""
    status_code = 400


class UnknownCommandError(DispatcherError):
    """No command is registered under the requested name."""
    status_code = 200

    def __init__(self, name: str):
        super().__init__(f"Unknown command: {name}")
        self.name = name


class DuplicateNameError(DispatcherError):
    """A command with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Command already registered: {name}")
        self.name = name


class HandlerError(DispatcherError):
    """A command handler failed. Raise it from handlers for a user-facing message."""
    status_code = 200


class StorageError(DispatcherError):
    """The state store backend failed."""


class QueueError(DispatcherError):
    """The work queue backend failed."""


class FollowUpError(DispatcherError):
    """Delivering a follow-up message to Discord failed."""


class InstanceError(DispatcherError):
    """The managed instance capability failed."""


class ConfigurationError(DispatcherError):
    """A required setting is missing or invalid."""
