"""Storage-backed cache for HTTP GET responses.

Cache keys have the shape ``api_<scope>_<path>_<params>`` where ``params``
is the query-parameter dict serialised as JSON with sorted keys, so the same
logical request always resolves to the same entry regardless of parameter
ordering. ``scope`` identifies the active credential (see
:func:`credential_scope`) so that entries captured under one identity are
never served to another.

Freshness is pull-based: an entry is fresh while
``now - config.timestamp < (config.cache_ttl or default_ttl)``. Stale and
malformed entries are deleted on read. There is no push invalidation; only
:meth:`ResponseCache.clear` sweeps entries unconditionally.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from fleetclient.models import ApiResponse
from fleetclient.storage import StorageEngine

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "api_"
ANONYMOUS_SCOPE = "anon"


def credential_scope(token: Optional[str]) -> str:
    """Return a short, stable identifier for *token* (``anon`` when ``None``).

    The token itself is never written into a key; only a SHA-256 digest.
    """
    if not token:
        return ANONYMOUS_SCOPE
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


class ResponseCache:
    """Cache of :class:`~fleetclient.models.ApiResponse` objects.

    Args:
        storage: Engine holding the entries. Several clients sharing an
            engine (or an engine prefix on a shared backend) share the cache.
        default_ttl: Freshness budget in ms for entries that carry no
            ``cache_ttl`` of their own.

    Example::

        cache = ResponseCache(storage, default_ttl=60_000)
        key = cache.make_key("/vehicles", {"page": "1"})
        cache.set(key, response)
        hit = cache.get(key)
    """

    def __init__(self, storage: StorageEngine, default_ttl: int = 300_000) -> None:
        self._storage = storage
        self.default_ttl = default_ttl

    def make_key(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        scope: str = ANONYMOUS_SCOPE,
    ) -> str:
        """Derive the logical storage key for a request."""
        encoded = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
        return f"{CACHE_KEY_PREFIX}{scope}_{path}_{encoded}"

    def get(self, key: str, default_ttl: Optional[int] = None) -> Optional[ApiResponse]:
        """Return the fresh entry stored under *key*, or ``None``.

        Args:
            key: Key from :meth:`make_key`.
            default_ttl: Budget used when the entry has no ``cache_ttl``;
                falls back to :attr:`default_ttl`.
        """
        raw = self._storage.get(key, None)
        if raw is None:
            return None

        try:
            cached = ApiResponse.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding malformed cache entry '%s': %s", key, exc)
            self._storage.remove(key)
            return None

        ttl = cached.config.cache_ttl or default_ttl or self.default_ttl
        age = self._storage.now() - cached.config.timestamp
        if age >= ttl:
            logger.debug("Cache entry '%s' is stale (age %d ms >= %d ms)", key, age, ttl)
            self._storage.remove(key)
            return None
        return cached

    def set(self, key: str, response: ApiResponse) -> None:
        """Store *response* under *key*, replacing any previous entry."""
        ttl = response.config.cache_ttl or self.default_ttl
        self._storage.set(key, response.model_dump(mode="json"), ttl=ttl)

    def invalidate(self, key: str) -> None:
        """Remove a single entry."""
        self._storage.remove(key)

    def keys(self) -> list[str]:
        """Logical keys of all live cache entries."""
        return [k for k in self._storage.keys() if k.startswith(CACHE_KEY_PREFIX)]

    def clear(self) -> int:
        """Delete every cache entry regardless of freshness or scope.

        Keys outside the ``api_`` namespace (tokens, preferences) are left
        untouched.

        Returns:
            The number of entries removed.
        """
        keys = self.keys()
        for key in keys:
            self._storage.remove(key)
        return len(keys)

    def stats(self) -> dict[str, Any]:
        """Return the number of live entries and the default TTL in ms."""
        return {"size": len(self.keys()), "ttl": self.default_ttl}
