"""Error vocabulary shared by the directory client, the store and the filters.

Every error here is fatal to the login attempt that raised it. A missing
remote object is not an error: the client returns ``NOT_FOUND`` instead.
"""

from __future__ import annotations

# Status codes the directory API documents, used in error messages.
HTTP_STATUS_REASONS: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Incorrect Input or Forbidden",
    404: "Not Found",
    409: "Conflict",
    410: "Gone",
    412: "Precondition Failed",
    500: "Internal Server Error",
    503: "Quotas Exceeded",
}


class ProvisioningError(Exception):
    """Base class for all provisioning failures."""

    retryable: bool = False


class ConfigurationError(ProvisioningError):
    """Missing or invalid setup; needs an operator to fix."""


class AuthenticationError(ProvisioningError):
    """The admin credential exchange with the directory failed."""


class TransportError(ProvisioningError):
    """Network failure or timeout talking to the directory.

    Safe to retry on the next login attempt.
    """

    retryable = True


class RemoteApiError(ProvisioningError):
    """The directory answered with a non-success status."""

    def __init__(self, status: int, body: str, url: str | None = None):
        self.status = status
        self.body = body
        self.url = url
        reason = HTTP_STATUS_REASONS.get(status)
        if reason:
            message = f"Error {status} ({reason})"
        else:
            message = f"Unknown error code [{status}]"
        if url:
            message += f" from request: {url}"
        message += f" Response: {body}"
        super().__init__(message)


class ProtocolError(ProvisioningError):
    """A directory response lacks required fields or could not be parsed."""


class StorageError(ProvisioningError):
    """Writing a provisioning record failed."""


class NotFoundResult:
    """Falsy marker returned when the directory reports an absent object."""

    _instance: NotFoundResult | None = None

    def __new__(cls) -> NotFoundResult:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = NotFoundResult()
