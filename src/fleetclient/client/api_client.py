"""Asynchronous HTTP client with response caching, retry, and timeouts.

This module provides :class:`ApiClient`, the only entry point the tracker's
domain code uses to reach the backend. It wraps :class:`httpx.AsyncClient`
and layers on:

- **Response caching** -- successful GET responses are written to a
  :class:`~fleetclient.cache.ResponseCache`; a fresh entry is returned
  without any network I/O.
- **Per-attempt timeout** -- every attempt runs under its own deadline.
  When it fires, the in-flight transport call is cancelled and the attempt
  fails with :class:`~fleetclient.exceptions.RequestTimeoutError`.
- **Fixed-delay retry** -- any failed attempt (timeout, non-2xx, transport
  error) is retried after ``retry_delay`` ms while the retry budget lasts.
  The delay never escalates; callers who want backoff wrap the client.
- **Credential scoping** -- cache keys include a digest of the bearer
  token, so switching users never surfaces someone else's cached data.
- **Failure reporting** -- the terminal error is handed to the
  notification sink and, when analytics is on, the telemetry sink.

Per-call lifecycle::

    START -> cache check -> [hit: return]
          -> CONNECTING -> success -> CACHE_WRITE -> DONE
          -> CONNECTING -> failure -> (retry > 0) -> sleep -> CONNECTING ...
                                   -> (retry == 0) -> report -> raise
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from fleetclient.cache import ResponseCache
from fleetclient.cache.cache import credential_scope
from fleetclient.client.response import extract_error_message, extract_response_data
from fleetclient.exceptions import (
    ApiError,
    HTTPStatusError,
    NetworkError,
    RequestTimeoutError,
)
from fleetclient.models import ApiResponse, ClientConfig, RequestOptions, ResponseConfig
from fleetclient.sinks import FailureReport, NotificationSink, SinkRunner, TelemetrySink
from fleetclient.storage import StorageEngine

logger = logging.getLogger(__name__)


class ApiClient:
    """Caching HTTP client for the tracker's REST API.

    Must be used as an async context manager so the underlying
    :class:`httpx.AsyncClient` is opened and closed properly. Settings
    changed at runtime (base URL, token, timeout, ...) apply to every
    subsequent request.

    Cache reads and writes go straight to the storage engine on the event
    loop. With the persistent driver that is a blocking diskcache call,
    which is fine for the CLI's one-request-per-process use; long-running
    services should prefer the ephemeral or session driver.

    Args:
        storage: Storage engine holding cached responses.
        base_url: Base URL that request paths are resolved against.
        timeout: Default per-attempt timeout in ms.
        retry: Default retry budget (retries after the first attempt).
        retry_delay: Default fixed delay between attempts in ms.
        cache: Whether GET responses are cached by default.
        cache_ttl: Default freshness budget of cache entries in ms.
        notifier: Receives the message of every terminal failure.
        telemetry: Receives terminal failures when *analytics_enabled*.
        analytics_enabled: Gate for the telemetry sink.
        transport: Optional httpx transport (tests use
            :class:`httpx.MockTransport`).

    Example::

        async with ApiClient(storage, base_url="https://api.example.com") as client:
            client.set_token("abc123")
            vehicles = await client.get("/vehicles", params={"page": "1"})
            await client.post("/vehicles", data={"plate": "ABC1D23"})
    """

    def __init__(
        self,
        storage: StorageEngine,
        base_url: str = "",
        timeout: int = 30_000,
        retry: int = 3,
        retry_delay: int = 1_000,
        cache: bool = True,
        cache_ttl: int = 300_000,
        notifier: Optional[NotificationSink] = None,
        telemetry: Optional[TelemetrySink] = None,
        analytics_enabled: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._storage = storage
        self._cache = ResponseCache(storage, default_ttl=cache_ttl)
        self._sinks = SinkRunner(notifier, telemetry, analytics_enabled)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._token: Optional[str] = None

        self.base_url = base_url
        self.timeout = timeout
        self.retry = retry
        self.retry_delay = retry_delay
        self.cache_enabled = cache
        self.cache_ttl = cache_ttl

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        storage: StorageEngine,
        notifier: Optional[NotificationSink] = None,
        telemetry: Optional[TelemetrySink] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> ApiClient:
        """Build a client from a resolved :class:`~fleetclient.models.ClientConfig`."""
        return cls(
            storage,
            base_url=config.base_url,
            timeout=config.request.timeout,
            retry=config.request.retry,
            retry_delay=config.request.retry_delay,
            cache=config.cache.enabled,
            cache_ttl=config.cache.ttl,
            notifier=notifier,
            telemetry=telemetry,
            analytics_enabled=config.analytics_enabled,
            transport=transport,
        )

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> ApiClient:
        # Deadlines are enforced per attempt in _send, not by httpx.
        self._client = httpx.AsyncClient(
            timeout=None,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Runtime configuration
    # ------------------------------------------------------------------ #

    @property
    def base_url(self) -> str:
        """Base URL request paths are resolved against."""
        return self._base_url

    @base_url.setter
    def base_url(self, url: str) -> None:
        self._base_url = url

    @property
    def timeout(self) -> int:
        """Default per-attempt timeout in ms."""
        return self._timeout

    @timeout.setter
    def timeout(self, value: int) -> None:
        if value <= 0:
            raise ValueError("timeout must be a positive number of milliseconds")
        self._timeout = value

    @property
    def retry(self) -> int:
        """Default number of retries after the first attempt."""
        return self._retry

    @retry.setter
    def retry(self, value: int) -> None:
        if value < 0:
            raise ValueError("retry must not be negative")
        self._retry = value

    @property
    def retry_delay(self) -> int:
        """Default fixed delay between attempts in ms."""
        return self._retry_delay

    @retry_delay.setter
    def retry_delay(self, value: int) -> None:
        if value < 0:
            raise ValueError("retry_delay must not be negative")
        self._retry_delay = value

    @property
    def cache_enabled(self) -> bool:
        """Whether GET responses are cached unless a call opts out."""
        return self._cache_enabled

    @cache_enabled.setter
    def cache_enabled(self, enabled: bool) -> None:
        self._cache_enabled = enabled

    @property
    def cache_ttl(self) -> int:
        """Default freshness budget of cache entries in ms."""
        return self._cache.default_ttl

    @cache_ttl.setter
    def cache_ttl(self, value: int) -> None:
        if value <= 0:
            raise ValueError("cache_ttl must be a positive number of milliseconds")
        self._cache.default_ttl = value

    @property
    def headers(self) -> dict[str, str]:
        """A copy of the default headers sent with every request."""
        return dict(self._headers)

    @property
    def cache(self) -> ResponseCache:
        """The response cache used by this client."""
        return self._cache

    def set_header(self, name: str, value: str) -> None:
        """Send *name: value* with every subsequent request."""
        self._headers[name] = value

    def remove_header(self, name: str) -> None:
        """Stop sending header *name*."""
        self._headers.pop(name, None)

    def set_token(self, token: str) -> None:
        """Authenticate subsequent requests with ``Authorization: Bearer <token>``.

        Cached entries are scoped to the token, so entries captured under a
        previous token are not served after the switch.
        """
        self._token = token
        self.set_header("Authorization", f"Bearer {token}")

    def remove_token(self) -> None:
        """Stop sending the bearer token."""
        self._token = None
        self.remove_header("Authorization")

    def clear_cache(self) -> int:
        """Delete every cached response; returns how many were removed."""
        removed = self._cache.clear()
        logger.debug("Cleared %d cached responses", removed)
        return removed

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        data: Any = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[int] = None,
        retry: Optional[int] = None,
        retry_delay: Optional[int] = None,
        cache: Optional[bool] = None,
        cache_ttl: Optional[int] = None,
    ) -> ApiResponse:
        """Send a request through the cache, timeout and retry pipeline.

        Arguments left as ``None`` take the client defaults.

        Args:
            method: HTTP method.
            path: Path (or absolute URL) resolved against :attr:`base_url`.
            params: Query parameters; part of the cache key.
            data: JSON-serialisable request body.
            headers: Extra headers for this call only.
            timeout: Per-attempt timeout in ms.
            retry: Retries after the first attempt.
            retry_delay: Fixed delay between attempts in ms.
            cache: Use the response cache for this call (GET only).
            cache_ttl: Freshness budget for the entry written by this call.

        Returns:
            The :class:`~fleetclient.models.ApiResponse`, live or cached.

        Raises:
            RequestTimeoutError: The last attempt hit its deadline.
            HTTPStatusError: The last attempt got a non-2xx response.
            NetworkError: The last attempt failed in the transport.
            ApiError: Any other failure (``UNKNOWN_ERROR``), such as an
                invalid URL or a body that cannot be encoded as JSON.
        """
        options = RequestOptions(
            path=path,
            method=method.upper(),
            params=params,
            data=data,
            headers=headers or {},
            timeout=self._timeout if timeout is None else timeout,
            retry=self._retry if retry is None else retry,
            retry_delay=self._retry_delay if retry_delay is None else retry_delay,
            cache=self._cache_enabled if cache is None else cache,
            cache_ttl=cache_ttl if cache_ttl is not None else self.cache_ttl,
        )

        use_cache = options.cache and options.method == "GET"
        cache_key = ""
        if use_cache:
            cache_key = self._cache.make_key(path, params, credential_scope(self._token))
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("Cache hit: %s %s", options.method, path)
                return cached

        response = await self._execute_with_retry(options)

        if use_cache:
            self._cache.set(cache_key, response)
        return response

    async def get(self, path: str, **kwargs: Any) -> ApiResponse:
        """Send a GET request; ``kwargs`` are forwarded to :meth:`request`."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, data: Any = None, **kwargs: Any) -> ApiResponse:
        """Send a POST request with *data* as the JSON body."""
        return await self.request("POST", path, data=data, **kwargs)

    async def put(self, path: str, data: Any = None, **kwargs: Any) -> ApiResponse:
        """Send a PUT request with *data* as the JSON body."""
        return await self.request("PUT", path, data=data, **kwargs)

    async def patch(self, path: str, data: Any = None, **kwargs: Any) -> ApiResponse:
        """Send a PATCH request with *data* as the JSON body."""
        return await self.request("PATCH", path, data=data, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        """Send a DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    async def head(self, path: str, **kwargs: Any) -> ApiResponse:
        """Send a HEAD request."""
        return await self.request("HEAD", path, **kwargs)

    async def options(self, path: str, **kwargs: Any) -> ApiResponse:
        """Send an OPTIONS request."""
        return await self.request("OPTIONS", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _build_url(self, path: str) -> str:
        if not self._base_url:
            return path
        return str(httpx.URL(self._base_url).join(path))

    def _report_url(self, path: str) -> str:
        try:
            return self._build_url(path)
        except httpx.InvalidURL:
            return path

    async def _execute_with_retry(self, options: RequestOptions) -> ApiResponse:
        """Run attempts until one succeeds or the retry budget is spent.

        Each retry gets a copy of the options with ``retry`` decremented;
        the delay between attempts is always ``retry_delay``.
        """
        attempt = options
        attempts = 0
        while True:
            attempts += 1
            try:
                return await self._send(attempt)
            except ApiError as exc:
                if attempt.retry > 0:
                    logger.debug(
                        "%s %s failed with %s, retrying in %d ms (%d left)",
                        attempt.method,
                        attempt.path,
                        exc.code,
                        attempt.retry_delay,
                        attempt.retry,
                    )
                    await asyncio.sleep(attempt.retry_delay / 1000)
                    attempt = attempt.model_copy(update={"retry": attempt.retry - 1})
                    continue

                self._sinks.report(
                    FailureReport(
                        error=exc,
                        method=attempt.method,
                        url=self._report_url(attempt.path),
                        attempts=attempts,
                    )
                )
                raise

    async def _send(self, options: RequestOptions) -> ApiResponse:
        """Perform one attempt under its own deadline."""
        assert self._client is not None, "Client not initialised -- use as async context manager"

        try:
            kwargs: dict[str, Any] = {
                "method": options.method,
                "url": self._build_url(options.path),
                "headers": {**self._headers, **options.headers},
                "params": options.params,
            }
            if options.data is not None:
                kwargs["json"] = options.data

            response = await asyncio.wait_for(
                self._client.request(**kwargs),
                timeout=options.timeout / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise RequestTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc
        except Exception as exc:
            # Invalid URLs, unencodable bodies and misbehaving transports.
            raise ApiError(str(exc) or exc.__class__.__name__) from exc

        body = extract_response_data(response)
        if not response.is_success:
            message = extract_error_message(body) or response.reason_phrase or f"HTTP {response.status_code}"
            raise HTTPStatusError(response.status_code, message, data=body)

        config = ResponseConfig(
            **options.model_dump(),
            timestamp=self._storage.now(),
        )
        return ApiResponse(
            data=body,
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            config=config,
        )
