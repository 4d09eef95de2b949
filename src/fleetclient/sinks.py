"""Notification and telemetry collaborators, plus the runner that feeds them.

The HTTP client and the storage engine never talk to a UI or an analytics
backend directly. They report through two small interfaces:

* :class:`NotificationSink` -- receives the message of every terminal
  request failure (the tracker's toast layer in the browser, stderr in the
  CLI).
* :class:`TelemetrySink` -- receives fire-and-forget events and errors when
  analytics is enabled.

:class:`SinkRunner` fans a :class:`FailureReport` out to both. A sink that
raises is logged and skipped so a broken collaborator can never fail or mask
the original error.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from fleetclient.exceptions import ApiError

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Receives user-facing failure messages."""

    @abstractmethod
    def error(self, message: str) -> None:
        """Show or record *message* as an error notification."""
        ...


class TelemetrySink(ABC):
    """Receives analytics events.

    Implementations must not block; they are called inline from the client
    and the storage engine.
    """

    @abstractmethod
    def track_event(
        self,
        category: str,
        action: str,
        label: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        """Record a single event (e.g. ``("Storage", "Set", "user", {...})``)."""
        ...

    def track_error(self, error: ApiError, data: Optional[dict[str, Any]] = None) -> None:
        """Record a terminal request failure.

        The default implementation forwards to :meth:`track_event` under the
        ``Error`` category.
        """
        self.track_event("Error", error.code, error.message, {**(data or {}), "status": error.status})


@dataclass
class FailureReport:
    """A terminal request failure as handed to the sinks.

    Attributes:
        error: The normalized error that is about to be raised.
        method: HTTP method of the failed request.
        url: Fully resolved request URL.
        attempts: Number of network attempts made.
    """

    error: ApiError
    method: str = ""
    url: str = ""
    attempts: int = 1

    def telemetry_data(self) -> dict[str, Any]:
        """Context attached to the telemetry error event."""
        return {
            "url": self.url,
            "method": self.method,
            "status": self.error.status,
            "code": self.error.code,
            "attempts": self.attempts,
        }


class SinkRunner:
    """Delivers failure reports to the configured sinks.

    Args:
        notifier: Optional notification sink.
        telemetry: Optional telemetry sink.
        analytics_enabled: When ``False`` the telemetry sink is never called
            for failures, even if one is configured.
    """

    def __init__(
        self,
        notifier: Optional[NotificationSink] = None,
        telemetry: Optional[TelemetrySink] = None,
        analytics_enabled: bool = False,
    ) -> None:
        self._notifier = notifier
        self._telemetry = telemetry
        self._analytics_enabled = analytics_enabled

    def report(self, report: FailureReport) -> None:
        """Forward *report* to the telemetry sink (if enabled) and the notifier."""
        if self._telemetry is not None and self._analytics_enabled:
            try:
                self._telemetry.track_error(report.error, report.telemetry_data())
            except Exception as exc:
                logger.warning("Telemetry sink failed: %s", exc)

        if self._notifier is not None:
            try:
                self._notifier.error(report.error.message)
            except Exception as exc:
                logger.warning("Notification sink failed: %s", exc)


def emit_event(
    telemetry: Optional[TelemetrySink],
    category: str,
    action: str,
    label: Optional[str] = None,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Send one event to *telemetry* if present, logging any sink failure."""
    if telemetry is None:
        return
    try:
        telemetry.track_event(category, action, label, data)
    except Exception as exc:
        logger.warning("Telemetry sink failed: %s", exc)


# --- Concrete sinks ---


class OutputNotifier(NotificationSink):
    """Prints failure messages through the CLI's global output manager."""

    def error(self, message: str) -> None:
        from fleetclient.output import error

        error(message)


class LoggingTelemetry(TelemetrySink):
    """Writes events to a :mod:`logging` logger at INFO level."""

    def __init__(self, logger_name: str = "fleetclient.telemetry") -> None:
        self._logger = logging.getLogger(logger_name)

    def track_event(
        self,
        category: str,
        action: str,
        label: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        self._logger.info("%s/%s label=%s data=%s", category, action, label, data or {})
