"""Canonical Pydantic models shared across all fleetclient modules.

Every duration in these models is expressed in **milliseconds** and every
timestamp in **epoch milliseconds**. The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config
directory and resolved by :func:`~fleetclient.config.resolve_config`:
    :class:`StorageDriver`, :class:`StorageConfig`, :class:`CacheConfig`,
    :class:`RequestConfig`, and :class:`ClientConfig`.

**Runtime models** -- produced and consumed by the storage engine and the
HTTP client:
    :class:`StorageItem`, :class:`RequestOptions`, :class:`ResponseConfig`,
    and :class:`ApiResponse`.

Runtime request options are frozen: a retried attempt gets a copy via
``model_copy(update=...)`` and the original is never mutated.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Configuration ---


class StorageDriver(str, enum.Enum):
    """Backend variants a :class:`~fleetclient.storage.StorageEngine` can use.

    * ``EPHEMERAL`` -- process memory owned by a single backend instance.
    * ``SESSION`` -- process memory shared by every backend opened with the
      same session id, dropped when the session ends.
    * ``PERSISTENT`` -- an on-disk store that survives restarts.
    """

    EPHEMERAL = "ephemeral"
    SESSION = "session"
    PERSISTENT = "persistent"


class StorageConfig(BaseModel):
    """Storage engine settings, fixed for the lifetime of an engine."""

    prefix: str = Field(default="tcc_", description="Namespace prepended to every key")
    driver: StorageDriver = Field(
        default=StorageDriver.PERSISTENT,
        description="Backend variant (ephemeral, session, persistent)",
    )
    encryption: bool = Field(default=False, description="Run the encryption stage")
    compression: bool = Field(default=False, description="Run the compression stage")


class CacheConfig(BaseModel):
    """HTTP response cache settings."""

    enabled: bool = Field(default=True, description="Cache successful GET responses")
    ttl: int = Field(default=300_000, gt=0, description="Default freshness budget in ms")


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every call."""

    timeout: int = Field(default=30_000, gt=0, description="Per-attempt timeout in ms")
    retry: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_delay: int = Field(default=1_000, ge=0, description="Fixed delay between attempts in ms")


class ClientConfig(BaseModel):
    """Top-level configuration persisted in ``config.json``.

    Loaded and saved by :func:`~fleetclient.config.load_config` and
    :func:`~fleetclient.config.save_config`, then overlaid with environment
    variables and CLI flags by :func:`~fleetclient.config.resolve_config`.
    """

    base_url: str = Field(default="http://localhost:3333", description="API base URL")
    analytics_enabled: bool = Field(
        default=False, description="Forward terminal failures to the telemetry sink"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


# --- Storage ---


class StorageItem(BaseModel):
    """Envelope written to a storage backend for every value.

    Attributes:
        key: The fully namespaced key (prefix + logical key).
        value: The stored JSON-serialisable payload.
        timestamp: Write time in epoch ms; never changes after the write.
        ttl: Lifetime in ms. ``None`` (or ``0``) means the item never expires.
    """

    key: str
    value: Any = None
    timestamp: int
    ttl: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        """Return ``True`` once ``now - timestamp`` reaches :attr:`ttl`."""
        if not self.ttl:
            return False
        return now - self.timestamp >= self.ttl


# --- HTTP ---


class RequestOptions(BaseModel):
    """Fully resolved options for one logical request.

    Built by :class:`~fleetclient.client.ApiClient` from the per-call
    arguments and the client defaults. ``retry`` is the remaining retry
    budget of the attempt carrying these options.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    method: str = "GET"
    params: Optional[dict[str, Any]] = None
    data: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: int = Field(default=30_000, gt=0)
    retry: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=1_000, ge=0)
    cache: bool = False
    cache_ttl: Optional[int] = Field(default=None, gt=0)


class ResponseConfig(RequestOptions):
    """Request options echoed on a response, stamped with the capture time."""

    timestamp: int = Field(description="Capture time in epoch ms")


class ApiResponse(BaseModel):
    """A successful response, live or served from the cache.

    Both kinds are indistinguishable at the type level; a cached response
    is simply the model that was stored after the original network call.
    """

    data: Any = None
    status: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    config: ResponseConfig
