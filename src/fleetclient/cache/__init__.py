"""HTTP response caching on top of the storage engine.

This package provides :class:`ResponseCache`, which stores successful GET
responses as items of a :class:`~fleetclient.storage.StorageEngine` under
logical keys beginning with ``api_``. Keys are derived from the request path,
its query parameters, and the credential scope, and entries are checked
against their freshness budget on every read.

The cache is consumed by :class:`~fleetclient.client.ApiClient` and is
controlled by :class:`~fleetclient.models.CacheConfig`.
"""

from fleetclient.cache.cache import CACHE_KEY_PREFIX, ResponseCache

__all__ = ["CACHE_KEY_PREFIX", "ResponseCache"]
