"""HTTP client module for fleetclient.

Provides :class:`ApiClient`, an asynchronous client that wraps
:class:`httpx.AsyncClient` with response caching on a
:class:`~fleetclient.storage.StorageEngine`, fixed-delay retry, per-attempt
timeouts, bearer-token management and failure reporting.

Example::

    from fleetclient.client import ApiClient

    async with ApiClient(storage, base_url="http://localhost:3333") as client:
        resp = await client.get("/vehicles")
"""

from fleetclient.client.api_client import ApiClient

__all__ = ["ApiClient"]
