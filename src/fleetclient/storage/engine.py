"""Namespaced key-value storage with per-item expiration.

:class:`StorageEngine` sits on top of a
:class:`~fleetclient.storage.backends.StorageBackend` and adds:

- **Namespacing** -- every logical key is stored as ``prefix + key``.
  Enumeration, ``clear`` and ``export`` only ever see keys carrying this
  engine's prefix, so several engines can share one backend.
- **Expiration** -- values are wrapped in a
  :class:`~fleetclient.models.StorageItem` stamped with the engine clock.
  Expired items are treated as absent and deleted when they are read.
- **Serialization** -- items go through a
  :class:`~fleetclient.storage.serialization.SerializationPipeline`.

All public operations are total: they never raise. A failure is logged,
wrapped in a :class:`~fleetclient.exceptions.StorageError`, handed to the
optional ``on_error`` callback, and turned into a safe default (the default
value, ``False``, an empty list, or a no-op).
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from fleetclient.exceptions import StorageError
from fleetclient.models import StorageConfig, StorageDriver, StorageItem
from fleetclient.sinks import TelemetrySink, emit_event
from fleetclient.storage.backends import StorageBackend, create_backend
from fleetclient.storage.serialization import SerializationPipeline, Transform, ZlibTransform

logger = logging.getLogger(__name__)

Clock = Callable[[], int]
ErrorCallback = Callable[[StorageError], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class StorageEngine:
    """Namespaced, expiring key-value store over a pluggable backend.

    Args:
        backend: Backend variant holding the raw strings.
        prefix: Namespace prepended to every logical key.
        encryption: Run the encryption stage. Without a *cipher* the stage
            stays the identity and a warning is logged.
        compression: Run the compression stage (zlib unless *compressor*
            is given).
        cipher: Encryption transform.
        compressor: Compression transform.
        clock: Callable returning the current time in epoch ms.
        on_error: Called with a :class:`StorageError` whenever an operation
            recovers from a failure.
        telemetry: Optional sink receiving ``Storage`` events.

    Example::

        from fleetclient.storage import EphemeralBackend, StorageEngine

        store = StorageEngine(EphemeralBackend(), prefix="tcc_")
        store.set("user", {"id": 1}, ttl=1000)
        store.get("user")          # {"id": 1}
        store.keys()               # ["user"]
    """

    def __init__(
        self,
        backend: StorageBackend,
        prefix: str = "tcc_",
        encryption: bool = False,
        compression: bool = False,
        cipher: Optional[Transform] = None,
        compressor: Optional[Transform] = None,
        clock: Optional[Clock] = None,
        on_error: Optional[ErrorCallback] = None,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        self._backend = backend
        self._prefix = prefix
        self._encryption = encryption
        self._compression = compression
        self._clock = clock or _now_ms
        self._on_error = on_error
        self._telemetry = telemetry

        if encryption and cipher is None:
            logger.warning("Storage encryption requested without a cipher; values are stored as-is")
        if compression and compressor is None:
            compressor = ZlibTransform()
        self._pipeline = SerializationPipeline(
            compressor=compressor if compression else None,
            cipher=cipher if encryption else None,
        )

    @classmethod
    def from_config(
        cls,
        config: StorageConfig,
        directory: Optional[str | Path] = None,
        session_id: str = "default",
        **kwargs: Any,
    ) -> StorageEngine:
        """Build an engine and its backend from a :class:`StorageConfig`.

        Args:
            config: Prefix, driver and pipeline flags.
            directory: Database directory for the persistent driver.
                Defaults to ``<cache dir>/storage``.
            session_id: Session name for the session driver.
            **kwargs: Forwarded to the constructor (``cipher``, ``clock``,
                ``on_error``, ``telemetry``, ...).
        """
        if config.driver is StorageDriver.PERSISTENT and directory is None:
            from fleetclient.config import get_cache_dir

            directory = get_cache_dir() / "storage"
        backend = create_backend(config.driver, directory=directory, session_id=session_id)
        return cls(
            backend,
            prefix=config.prefix,
            encryption=config.encryption,
            compression=config.compression,
            **kwargs,
        )

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def prefix(self) -> str:
        """Namespace prepended to every logical key."""
        return self._prefix

    @property
    def backend(self) -> StorageBackend:
        """The backend this engine writes to."""
        return self._backend

    def now(self) -> int:
        """Current time in epoch ms according to the engine clock."""
        return self._clock()

    # ------------------------------------------------------------------ #
    # Single-key operations
    # ------------------------------------------------------------------ #

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default*.

        *default* is returned when the key is absent, the stored data cannot
        be decoded, or the item has expired. Expired items are removed.
        """
        try:
            item = self._read(self._namespaced(key))
        except Exception as exc:
            self._report("get", exc, key)
            return default
        if item is None:
            return default
        self._track("Get", key)
        return item.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store *value* under *key*, optionally expiring after *ttl* ms.

        The previous value is fully replaced. Failures (unserialisable
        values, backend errors) are reported and leave the prior value in
        place.
        """
        try:
            namespaced = self._namespaced(key)
            item = StorageItem(key=namespaced, value=value, timestamp=self.now(), ttl=ttl)
            self._backend.set_item(namespaced, self._pipeline.serialize(item))
        except Exception as exc:
            self._report("set", exc, key)
            return
        self._track("Set", key, {"ttl": ttl})

    def remove(self, key: str) -> None:
        """Delete *key* from this namespace."""
        try:
            self._backend.remove_item(self._namespaced(key))
        except Exception as exc:
            self._report("remove", exc, key)
            return
        self._track("Remove", key)

    def has(self, key: str) -> bool:
        """Return ``True`` iff a non-expired item exists under *key*."""
        try:
            return self._read(self._namespaced(key)) is not None
        except Exception as exc:
            self._report("has", exc, key)
            return False

    # ------------------------------------------------------------------ #
    # Namespace-wide operations
    # ------------------------------------------------------------------ #

    def clear(self) -> None:
        """Delete every key in this namespace; other keys are untouched."""
        try:
            for namespaced in self._namespaced_keys():
                self._backend.remove_item(namespaced)
        except Exception as exc:
            self._report("clear", exc)
            return
        self._track("Clear")

    def keys(self) -> list[str]:
        """Logical keys of all live items in this namespace."""
        return [key for key, _ in self._live_entries("keys")]

    def values(self) -> list[Any]:
        """Values of all live items in this namespace."""
        return [value for _, value in self._live_entries("values")]

    def entries(self) -> list[tuple[str, Any]]:
        """``(key, value)`` pairs of all live items in this namespace."""
        return self._live_entries("entries")

    def size(self) -> int:
        """Number of live items in this namespace."""
        return len(self._live_entries("size"))

    def export(self) -> str:
        """Dump all live items as a JSON object of ``{key: value}``."""
        return json.dumps(dict(self._live_entries("export")), indent=2, ensure_ascii=False)

    def import_(self, data: str, ttl: Optional[int] = None) -> int:
        """Restore items from a JSON object produced by :meth:`export`.

        Each entry is written through :meth:`set`, so serialization and the
        optional *ttl* apply as for any other write.

        Returns:
            The number of entries written. Invalid input is reported and
            nothing is imported.
        """
        try:
            parsed = json.loads(data)
            if not isinstance(parsed, dict):
                raise ValueError("Invalid storage data format: expected a JSON object")
        except (ValueError, TypeError) as exc:
            self._report("import", exc)
            return 0

        for key, value in parsed.items():
            self.set(key, value, ttl=ttl)
        self._track("Import", data={"count": len(parsed)})
        return len(parsed)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _namespaced(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _namespaced_keys(self) -> list[str]:
        return [k for k in self._backend.iter_keys() if k.startswith(self._prefix)]

    def _read(self, namespaced: str) -> Optional[StorageItem]:
        """Load and decode one item, deleting it if expired.

        Raises on backend or decoding failures; callers decide the default.
        """
        raw = self._backend.get_item(namespaced)
        if raw is None:
            return None
        item = self._pipeline.deserialize(raw)
        if item.is_expired(self.now()):
            logger.debug("Storage item '%s' expired, removing", namespaced)
            self._backend.remove_item(namespaced)
            return None
        return item

    def _live_entries(self, operation: str) -> list[tuple[str, Any]]:
        try:
            namespaced_keys = self._namespaced_keys()
        except Exception as exc:
            self._report(operation, exc)
            return []

        entries: list[tuple[str, Any]] = []
        for namespaced in namespaced_keys:
            key = namespaced[len(self._prefix):]
            try:
                item = self._read(namespaced)
            except Exception as exc:
                # One unreadable item must not hide the rest.
                self._report(operation, exc, key)
                continue
            if item is not None:
                entries.append((key, item.value))
        return entries

    def _report(self, operation: str, exc: Exception, key: Optional[str] = None) -> None:
        error = StorageError(operation, exc, key=key)
        logger.warning("%s", error)
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as callback_exc:
            logger.warning("Storage error callback failed: %s", callback_exc)

    def _track(
        self,
        action: str,
        key: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        if self._telemetry is None:
            return
        emit_event(
            self._telemetry,
            "Storage",
            action,
            key,
            {
                "driver": self._backend.driver.value,
                "encryption": self._encryption,
                "compression": self._compression,
                **(data or {}),
            },
        )
