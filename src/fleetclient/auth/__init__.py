"""Authentication support: persisting the bearer token the client sends.

Token issuance is the backend's business; this package only stores the
token it hands out and applies it to an :class:`~fleetclient.client.ApiClient`.
"""

from fleetclient.auth.token_store import TOKEN_KEY, CredentialEntry, TokenStore

__all__ = ["TOKEN_KEY", "CredentialEntry", "TokenStore"]
