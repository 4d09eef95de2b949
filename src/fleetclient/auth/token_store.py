"""Bearer-token persistence on top of the storage engine.

The tracker keeps the user's API token next to its other client-side state.
:class:`TokenStore` writes a :class:`CredentialEntry` under the logical key
``auth_token`` of a :class:`~fleetclient.storage.StorageEngine`. When the
entry carries an expiry, the storage TTL is derived from it, so an expired
token simply reads as absent.

The ``auth_token`` key lives outside the response cache's ``api_``
namespace, so :meth:`~fleetclient.client.ApiClient.clear_cache` never logs
the user out.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field, ValidationError

from fleetclient.storage import StorageEngine

if TYPE_CHECKING:
    from fleetclient.client import ApiClient

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"


class CredentialEntry(BaseModel):
    """A stored bearer token.

    Attributes:
        token: The bearer credential.
        expires_at: Expiry in epoch ms; ``None`` means it never expires.
        metadata: Free-form context (user id, issuer, ...).
    """

    token: str = Field(min_length=1, description="Bearer token")
    expires_at: Optional[int] = Field(default=None, description="Expiry in epoch ms")
    metadata: dict[str, Any] = Field(default_factory=dict)


class TokenStore:
    """Read/write the bearer token kept in a storage engine.

    Args:
        storage: Engine holding the entry.
        key: Logical key of the entry.

    Example::

        tokens = TokenStore(storage)
        tokens.save(CredentialEntry(token="abc123"))
        tokens.apply(client)   # client now sends "Authorization: Bearer abc123"
    """

    def __init__(self, storage: StorageEngine, key: str = TOKEN_KEY) -> None:
        self._storage = storage
        self._key = key

    def save(self, entry: CredentialEntry) -> bool:
        """Store *entry*, replacing any previous token.

        Returns:
            ``False`` if the entry is already expired and was not stored.
        """
        ttl: Optional[int] = None
        if entry.expires_at is not None:
            ttl = entry.expires_at - self._storage.now()
            if ttl <= 0:
                logger.warning("Refusing to store an already expired token")
                return False
        self._storage.set(self._key, entry.model_dump(mode="json"), ttl=ttl)
        return True

    def load(self) -> Optional[CredentialEntry]:
        """Return the stored entry, or ``None`` if absent, expired or invalid."""
        raw = self._storage.get(self._key, None)
        if raw is None:
            return None
        try:
            return CredentialEntry.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding invalid stored token: %s", exc)
            self._storage.remove(self._key)
            return None

    def is_valid(self) -> bool:
        """``True`` iff a non-expired token is stored."""
        return self.load() is not None

    def clear(self) -> None:
        """Delete the stored token."""
        self._storage.remove(self._key)

    def apply(self, client: ApiClient) -> bool:
        """Load the stored token into *client*, or remove the client's token.

        Returns:
            ``True`` if a token was applied.
        """
        entry = self.load()
        if entry is None:
            client.remove_token()
            return False
        client.set_token(entry.token)
        return True
