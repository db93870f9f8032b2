"""Error taxonomy for session and portal operations.

Every action-level failure reaches the caller as one of these types. None of
them is retried by the portal.
"""


class PortalError(Exception):
    """Base class for portal errors."""

    pass


class InvalidCredentials(PortalError):
    """Raised when the platform rejects an email/password pair."""

    def __init__(self, message: str = "Invalid login credentials"):
        super().__init__(message)


class EmailAlreadyRegistered(PortalError):
    """Raised when sign-up is attempted with an email that already has an account."""

    def __init__(self, message: str = "User already registered"):
        super().__init__(message)


class NotAuthenticated(PortalError):
    """Raised when an operation requires a signed-in user and there is none."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ValidationError(PortalError):
    """Raised when the platform rejects submitted fields."""

    pass


class NetworkError(PortalError):
    """Raised when a platform call cannot complete (transport error, timeout, 5xx)."""

    pass


class RecordNotFound(PortalError):
    """Raised when a requested record does not exist."""

    pass


class RestorationFailed(PortalError):
    """Raised internally when a stored session cannot be restored.

    Never surfaced to callers; the session manager treats it as anonymous.
    """

    pass
