"""Exception hierarchy for fleetclient.

Every exception carries a machine-readable ``code`` and a process
``exit_code``. HTTP failures additionally carry the normalized error shape
``{message, code, status, data}`` that callers branch on.

Subclass hierarchy::

    FleetClientError           (GENERIC, exit 1)
    +-- InvalidUsageError      (INVALID_USAGE, exit 2)
    +-- ConfigError            (CONFIG_ERROR, exit 1)
    +-- StorageError           (CACHE_ERROR, exit 1)   -- never raised to callers
    +-- ApiError               (exit 5)
        +-- RequestTimeoutError  (TIMEOUT, 408, exit 6)
        +-- NetworkError         (NETWORK_ERROR, exit 6)
        +-- HTTPStatusError      (HTTP_<status>, exit 3/4/5 by status)

:class:`StorageError` is only ever handed to a storage engine's ``on_error``
callback; the storage engine recovers from every failure locally.
"""

from __future__ import annotations

from typing import Any, Optional

from fleetclient.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
)


class FleetClientError(Exception):
    """Base exception for all fleetclient errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    code: str = "UNKNOWN_ERROR"

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(FleetClientError):
    """Raised for invalid CLI arguments or malformed option values."""

    exit_code = EXIT_INVALID_USAGE
    code = "INVALID_USAGE"


class ConfigError(FleetClientError):
    """Raised for unreadable config files and invalid config values."""

    exit_code = EXIT_GENERIC_FAILURE
    code = "CONFIG_ERROR"


class StorageError(FleetClientError):
    """A storage engine operation failed and was recovered locally.

    Attributes:
        operation: Name of the engine operation (``"get"``, ``"set"``, ...).
        key: Logical key involved, when there is one.
        cause: The original exception.
    """

    code = "CACHE_ERROR"

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        key: Optional[str] = None,
    ) -> None:
        target = f" '{key}'" if key is not None else ""
        super().__init__(f"Storage {operation}{target} failed: {cause}")
        self.operation = operation
        self.key = key
        self.cause = cause


class ApiError(FleetClientError):
    """Normalized HTTP client failure.

    This is the single error type callers of
    :class:`~fleetclient.client.ApiClient` need to catch. ``code`` and
    ``status`` identify the failure class; ``data`` holds the parsed response
    body when the server sent one.

    Args:
        message: Human-readable description.
        code: Error code (``TIMEOUT``, ``NETWORK_ERROR``, ``HTTP_404``, ...).
        status: HTTP status (408 for timeouts).
        data: Optional response payload.
    """

    exit_code = EXIT_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status: int = 500,
        data: Any = None,
    ) -> None:
        super().__init__(message or "An error occurred")
        self.code = code
        self.status = status
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Return the normalized ``{message, code, status, data}`` shape."""
        return {
            "message": self.message,
            "code": self.code,
            "status": self.status,
            "data": self.data,
        }


class RequestTimeoutError(ApiError):
    """The attempt's deadline fired before a response arrived."""

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(message, code="TIMEOUT", status=408)


class NetworkError(ApiError):
    """The transport failed without receiving a response.

    Named so it does not shadow the built-in ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message, code="NETWORK_ERROR", status=500)


class HTTPStatusError(ApiError):
    """The server answered with a non-2xx status."""

    def __init__(self, status: int, message: str, data: Any = None) -> None:
        super().__init__(message, code=f"HTTP_{status}", status=status, data=data)
        if status in (401, 403):
            self.exit_code = EXIT_AUTH_FAILURE
        elif status == 404:
            self.exit_code = EXIT_NOT_FOUND
