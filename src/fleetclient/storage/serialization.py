"""Serialization pipeline for stored items.

Items pass through three fixed stages::

    serialize   = encrypt(compress(json(item)))
    deserialize = json(decompress(decrypt(raw)))

Compression and encryption are hook points: each is a :class:`Transform`
with ``encode``/``decode``. A disabled stage is :class:`IdentityTransform`.
Both stages are advisory -- if a transform raises, the failure is logged and
the stage passes its input through unchanged instead of aborting the store
operation. Only the JSON stage is allowed to fail loudly; the engine turns
that into a safe default.
"""

from __future__ import annotations

import base64
import logging
import zlib
from typing import Optional

from fleetclient.models import StorageItem

logger = logging.getLogger(__name__)


class Transform:
    """A reversible ``str -> str`` stage. The base class is the identity."""

    name = "identity"

    def encode(self, value: str) -> str:
        return value

    def decode(self, value: str) -> str:
        return value


class IdentityTransform(Transform):
    """Explicit no-op stage used when compression or encryption is off."""


class ZlibTransform(Transform):
    """zlib-deflate the UTF-8 text and wrap it in base64 so it stays a string.

    Args:
        level: zlib compression level (0-9).
    """

    name = "zlib"

    def __init__(self, level: int = 6) -> None:
        self._level = level

    def encode(self, value: str) -> str:
        compressed = zlib.compress(value.encode("utf-8"), self._level)
        return base64.b64encode(compressed).decode("ascii")

    def decode(self, value: str) -> str:
        return zlib.decompress(base64.b64decode(value, validate=True)).decode("utf-8")


class SerializationPipeline:
    """Turns :class:`~fleetclient.models.StorageItem` values into strings and back.

    Args:
        compressor: Compression stage, or ``None`` for identity.
        cipher: Encryption stage, or ``None`` for identity.
    """

    def __init__(
        self,
        compressor: Optional[Transform] = None,
        cipher: Optional[Transform] = None,
    ) -> None:
        self._compressor = compressor or IdentityTransform()
        self._cipher = cipher or IdentityTransform()

    def serialize(self, item: StorageItem) -> str:
        """Encode *item*; raises only if the item is not JSON-serialisable."""
        text = item.model_dump_json()
        text = self._apply("compress", self._compressor.encode, text)
        return self._apply("encrypt", self._cipher.encode, text)

    def deserialize(self, raw: str) -> StorageItem:
        """Decode *raw*; raises :class:`ValueError` if the JSON is invalid."""
        text = self._apply("decrypt", self._cipher.decode, raw)
        text = self._apply("decompress", self._compressor.decode, text)
        return StorageItem.model_validate_json(text)

    @staticmethod
    def _apply(stage: str, func, value: str) -> str:
        try:
            return func(value)
        except Exception as exc:
            logger.warning("Storage %s stage failed, passing value through: %s", stage, exc)
            return value
