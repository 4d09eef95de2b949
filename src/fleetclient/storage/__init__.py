"""Namespaced key-value storage with expiration and pluggable backends.

This package provides :class:`StorageEngine`, the store used by the HTTP
client's response cache and by the token store. An engine combines one
backend variant (ephemeral, session, or persistent), a key prefix, and a
serialization pipeline with compression and encryption hook points.

See Also:
    :class:`~fleetclient.models.StorageConfig` -- the model that selects
    the prefix, driver and pipeline stages.
"""

from fleetclient.storage.backends import (
    EphemeralBackend,
    PersistentBackend,
    SessionBackend,
    StorageBackend,
    create_backend,
)
from fleetclient.storage.engine import StorageEngine
from fleetclient.storage.serialization import (
    IdentityTransform,
    SerializationPipeline,
    Transform,
    ZlibTransform,
)

__all__ = [
    "EphemeralBackend",
    "IdentityTransform",
    "PersistentBackend",
    "SerializationPipeline",
    "SessionBackend",
    "StorageBackend",
    "StorageEngine",
    "Transform",
    "ZlibTransform",
    "create_backend",
]
