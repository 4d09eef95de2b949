"""Storage backends: a closed set of variants behind one interface.

Every backend is a flat ``str -> str`` map exposing the same surface
(``get_item``, ``set_item``, ``remove_item``, ``clear``, ``key``,
``length``), so :class:`~fleetclient.storage.engine.StorageEngine` never
needs to know which one it is talking to. The variant is chosen with
:class:`~fleetclient.models.StorageDriver` and built by
:func:`create_backend`:

* :class:`EphemeralBackend` -- a private dict; data dies with the instance.
* :class:`SessionBackend` -- a dict shared by every backend opened with the
  same session id in this process; it survives re-creating the engine and
  is dropped by :meth:`SessionBackend.end_session` or process exit.
* :class:`PersistentBackend` -- a :class:`diskcache.Cache` directory that
  survives restarts.

Backends do not namespace, expire, or serialize anything; that is the
engine's job. Their ``clear`` wipes the whole backing map.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, Optional

import diskcache

from fleetclient.models import StorageDriver


class StorageBackend(ABC):
    """Minimal string key-value contract shared by all backends."""

    driver: StorageDriver

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the raw value stored under *key*, or ``None``."""
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete *key*. Missing keys are ignored."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Delete every key in the backing map."""
        ...

    @abstractmethod
    def iter_keys(self) -> Iterator[str]:
        """Iterate over the keys currently stored."""
        ...

    def key(self, index: int) -> Optional[str]:
        """Return the key at position *index*, or ``None`` when out of range."""
        if index < 0:
            return None
        for position, key in enumerate(self.iter_keys()):
            if position == index:
                return key
        return None

    @property
    def length(self) -> int:
        """Number of keys currently stored."""
        return sum(1 for _ in self.iter_keys())

    def close(self) -> None:
        """Release backend resources. The default is a no-op."""


class EphemeralBackend(StorageBackend):
    """In-process map owned by this instance alone."""

    driver = StorageDriver.EPHEMERAL

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def iter_keys(self) -> Iterator[str]:
        return iter(list(self._data))

    @property
    def length(self) -> int:
        return len(self._data)


class SessionBackend(StorageBackend):
    """In-process map shared by all backends opened on the same session id.

    Args:
        session_id: Name of the session. Backends created with the same id
            in the same process observe each other's writes.

    Example::

        first = SessionBackend("tab-1")
        first.set_item("k", "v")
        assert SessionBackend("tab-1").get_item("k") == "v"
    """

    driver = StorageDriver.SESSION

    _sessions: dict[str, dict[str, str]] = {}

    def __init__(self, session_id: str = "default") -> None:
        self._session_id = session_id

    @property
    def session_id(self) -> str:
        """The session this backend is attached to."""
        return self._session_id

    @property
    def _data(self) -> dict[str, str]:
        return self._sessions.setdefault(self._session_id, {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def iter_keys(self) -> Iterator[str]:
        return iter(list(self._data))

    @property
    def length(self) -> int:
        return len(self._data)

    def end_session(self) -> None:
        """Drop all data of this session for every backend attached to it."""
        self._sessions.pop(self._session_id, None)

    @classmethod
    def end_all_sessions(cls) -> None:
        """Drop every session in the process."""
        cls._sessions.clear()


class PersistentBackend(StorageBackend):
    """On-disk map backed by :class:`diskcache.Cache`.

    Args:
        directory: Directory holding the cache database. Created if needed.
    """

    driver = StorageDriver.PERSISTENT

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._cache = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        """Filesystem location of the cache database."""
        return self._directory

    def get_item(self, key: str) -> Optional[str]:
        return self._cache.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._cache.set(key, value)

    def remove_item(self, key: str) -> None:
        self._cache.delete(key)

    def clear(self) -> None:
        self._cache.clear()

    def iter_keys(self) -> Iterator[str]:
        return iter(list(self._cache.iterkeys()))

    @property
    def length(self) -> int:
        return len(self._cache)

    def close(self) -> None:
        self._cache.close()


def create_backend(
    driver: StorageDriver,
    directory: Optional[str | Path] = None,
    session_id: str = "default",
) -> StorageBackend:
    """Build the backend variant selected by *driver*.

    Args:
        driver: Which variant to create.
        directory: Database directory; required for ``PERSISTENT``.
        session_id: Session name used by ``SESSION``.

    Returns:
        A new :class:`StorageBackend`.

    Raises:
        ValueError: If ``PERSISTENT`` is requested without a directory.
    """
    driver = StorageDriver(driver)
    if driver is StorageDriver.EPHEMERAL:
        return EphemeralBackend()
    if driver is StorageDriver.SESSION:
        return SessionBackend(session_id)
    if directory is None:
        raise ValueError("The persistent backend needs a directory")
    return PersistentBackend(directory)
