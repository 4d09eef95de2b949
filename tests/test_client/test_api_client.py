"""Tests for the asynchronous caching HTTP client."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx
import pytest

from fleetclient.client import ApiClient
from fleetclient.exceptions import (
    ApiError,
    HTTPStatusError,
    NetworkError,
    RequestTimeoutError,
)
from fleetclient.models import ClientConfig
from fleetclient.sinks import NotificationSink, TelemetrySink
from fleetclient.storage import PersistentBackend, StorageEngine


BASE_URL = "https://api.example.com"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingHandler:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        # A response object can only be sent once, so hand out a fresh copy.
        return httpx.Response(
            status_code=template.status_code,
            headers=template.headers,
            content=template.content,
        )

    @property
    def calls(self) -> int:
        return len(self.requests)


class RecordingNotifier(NotificationSink):
    def __init__(self) -> None:
        self.messages: list[str] = []

    def error(self, message: str) -> None:
        self.messages.append(message)


class RecordingTelemetry(TelemetrySink):
    def __init__(self) -> None:
        self.events: list[tuple[str, str, Optional[str], dict[str, Any]]] = []

    def track_event(self, category, action, label=None, data=None) -> None:
        self.events.append((category, action, label, data or {}))


def _json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=data)


def _make_client(
    storage: StorageEngine,
    handler,
    **kwargs: Any,
) -> ApiClient:
    kwargs.setdefault("retry", 0)
    kwargs.setdefault("retry_delay", 0)
    return ApiClient(
        storage,
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Context manager and configuration
# ---------------------------------------------------------------------------


class TestContextManager:
    @pytest.mark.asyncio
    async def test_enter_creates_client(self, storage: StorageEngine) -> None:
        client = _make_client(storage, RecordingHandler(_json_response({})))
        assert client._client is None
        async with client:
            assert client._client is not None
        assert client._client is None

    @pytest.mark.asyncio
    async def test_request_outside_context_fails(self, storage: StorageEngine) -> None:
        client = _make_client(storage, RecordingHandler(_json_response({})))
        with pytest.raises(AssertionError):
            await client.get("/vehicles", cache=False)


class TestConfiguration:
    def test_defaults(self, storage: StorageEngine) -> None:
        client = ApiClient(storage)
        assert client.timeout == 30_000
        assert client.retry == 3
        assert client.retry_delay == 1_000
        assert client.cache_enabled is True
        assert client.cache_ttl == 300_000
        assert client.headers == {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def test_from_config(self, storage: StorageEngine) -> None:
        config = ClientConfig.model_validate(
            {
                "base_url": "http://fleet.local",
                "request": {"timeout": 5000, "retry": 1, "retry_delay": 10},
                "cache": {"enabled": False, "ttl": 60_000},
            }
        )
        client = ApiClient.from_config(config, storage)
        assert client.base_url == "http://fleet.local"
        assert client.timeout == 5000
        assert client.retry == 1
        assert client.retry_delay == 10
        assert client.cache_enabled is False
        assert client.cache_ttl == 60_000

    @pytest.mark.parametrize(
        "attr, value",
        [("timeout", 0), ("timeout", -1), ("retry", -1), ("retry_delay", -5), ("cache_ttl", 0)],
    )
    def test_invalid_values_rejected(self, storage: StorageEngine, attr: str, value: int) -> None:
        client = ApiClient(storage)
        with pytest.raises(ValueError):
            setattr(client, attr, value)

    def test_headers_copy_is_detached(self, storage: StorageEngine) -> None:
        client = ApiClient(storage)
        client.headers["X-Test"] = "1"
        assert "X-Test" not in client.headers

    def test_set_and_remove_header(self, storage: StorageEngine) -> None:
        client = ApiClient(storage)
        client.set_header("X-Tenant", "acme")
        assert client.headers["X-Tenant"] == "acme"
        client.remove_header("X-Tenant")
        client.remove_header("X-Missing")
        assert "X-Tenant" not in client.headers

    def test_token_management(self, storage: StorageEngine) -> None:
        client = ApiClient(storage)
        client.set_token("abc123")
        assert client.headers["Authorization"] == "Bearer abc123"
        client.remove_token()
        assert "Authorization" not in client.headers


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


class TestRequestBuilding:
    @pytest.mark.asyncio
    async def test_url_params_and_headers(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response([]))
        async with _make_client(storage, handler) as client:
            client.set_token("abc123")
            await client.get("/vehicles", params={"page": "2"}, headers={"X-Trace": "t1"})

        request = handler.requests[0]
        assert request.method == "GET"
        assert str(request.url) == f"{BASE_URL}/vehicles?page=2"
        assert request.headers["Authorization"] == "Bearer abc123"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Trace"] == "t1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["post", "put", "patch"])
    async def test_body_methods_send_json(self, storage: StorageEngine, method: str) -> None:
        handler = RecordingHandler(_json_response({"ok": True}, status_code=201))
        async with _make_client(storage, handler) as client:
            response = await getattr(client, method)("/vehicles", data={"plate": "ABC1D23"})

        assert handler.requests[0].method == method.upper()
        assert json.loads(handler.requests[0].content) == {"plate": "ABC1D23"}
        assert response.status == 201

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["delete", "head", "options"])
    async def test_bodyless_methods(self, storage: StorageEngine, method: str) -> None:
        handler = RecordingHandler(httpx.Response(204))
        async with _make_client(storage, handler) as client:
            response = await getattr(client, method)("/vehicles/1")

        assert handler.requests[0].method == method.upper()
        assert handler.requests[0].content == b""
        assert response.data is None

    @pytest.mark.asyncio
    async def test_absolute_path_overrides_base(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler) as client:
            await client.get("https://other.example.com/ping", cache=False)
        assert handler.requests[0].url.host == "other.example.com"

    @pytest.mark.asyncio
    async def test_base_url_change_applies(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler) as client:
            client.base_url = "https://v2.example.com"
            await client.get("/vehicles", cache=False)
        assert handler.requests[0].url.host == "v2.example.com"


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class TestResponses:
    @pytest.mark.asyncio
    async def test_response_shape(self, storage: StorageEngine, clock) -> None:
        handler = RecordingHandler(_json_response({"id": 1}))
        async with _make_client(storage, handler) as client:
            response = await client.get("/vehicles/1", params={"full": "1"}, cache=False)

        assert response.data == {"id": 1}
        assert response.status == 200
        assert response.status_text == "OK"
        assert response.headers["content-type"] == "application/json"
        assert response.config.path == "/vehicles/1"
        assert response.config.method == "GET"
        assert response.config.params == {"full": "1"}
        assert response.config.timestamp == clock.now

    @pytest.mark.asyncio
    async def test_text_body(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(httpx.Response(200, text="pong"))
        async with _make_client(storage, handler) as client:
            response = await client.get("/ping")
        assert response.data == "pong"


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({"id": 1}))
        async with _make_client(storage, handler) as client:
            first = await client.get("/vehicles", params={"page": "1"})
            second = await client.get("/vehicles", params={"page": "1"})

        assert handler.calls == 1
        assert second.data == first.data
        assert second.config.timestamp == first.config.timestamp

    @pytest.mark.asyncio
    async def test_param_order_shares_entry(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response([]))
        async with _make_client(storage, handler) as client:
            await client.get("/positions", params={"a": "1", "b": "2"})
            await client.get("/positions", params={"b": "2", "a": "1"})
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_stale_entry_refetched(self, storage: StorageEngine, clock) -> None:
        handler = RecordingHandler(_json_response({"v": 1}), _json_response({"v": 2}))
        async with _make_client(storage, handler, cache_ttl=1000) as client:
            await client.get("/vehicles")
            clock.advance(1000)
            response = await client.get("/vehicles")
            refreshed = client.cache.get(client.cache.make_key("/vehicles"))
            again = await client.get("/vehicles")

        assert handler.calls == 2
        assert response.data == {"v": 2}
        assert refreshed is not None
        assert refreshed.config.timestamp == clock.now
        assert again.data == {"v": 2}

    @pytest.mark.asyncio
    async def test_persistent_cache_survives_client(self, tmp_path, clock) -> None:
        handler = RecordingHandler(_json_response({"id": 7}))
        for _ in range(2):
            backend = PersistentBackend(tmp_path / "storage")
            storage = StorageEngine(backend, clock=clock)
            try:
                async with _make_client(storage, handler) as client:
                    response = await client.get("/vehicles/7")
            finally:
                backend.close()

        assert handler.calls == 1
        assert response.data == {"id": 7}

    @pytest.mark.asyncio
    async def test_per_call_cache_ttl(self, storage: StorageEngine, clock) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler, cache_ttl=1000) as client:
            await client.get("/vehicles", cache_ttl=10_000)
            clock.advance(5000)
            await client.get("/vehicles")
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_cache_opt_out(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler) as client:
            await client.get("/vehicles", cache=False)
            await client.get("/vehicles", cache=False)
        assert handler.calls == 2
        assert client.cache.keys() == []

    @pytest.mark.asyncio
    async def test_cache_disabled_globally(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler, cache=False) as client:
            await client.get("/vehicles")
            await client.get("/vehicles")
        assert handler.calls == 2

    @pytest.mark.asyncio
    async def test_non_get_not_cached(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler) as client:
            await client.post("/vehicles", data={"plate": "X"}, cache=True)
            await client.post("/vehicles", data={"plate": "X"}, cache=True)
        assert handler.calls == 2
        assert client.cache.keys() == []

    @pytest.mark.asyncio
    async def test_errors_not_cached(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({"message": "down"}, 503), _json_response({"ok": 1}))
        async with _make_client(storage, handler) as client:
            with pytest.raises(ApiError):
                await client.get("/vehicles")
            response = await client.get("/vehicles")
        assert response.data == {"ok": 1}
        assert handler.calls == 2

    @pytest.mark.asyncio
    async def test_token_switch_does_not_leak_entries(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({"user": "a"}), _json_response({"user": "b"}))
        async with _make_client(storage, handler) as client:
            client.set_token("token-a")
            await client.get("/me")
            client.set_token("token-b")
            response = await client.get("/me")

        assert handler.calls == 2
        assert response.data == {"user": "b"}

    @pytest.mark.asyncio
    async def test_clear_cache_keeps_other_items(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        storage.set("auth_token", {"token": "abc"})
        async with _make_client(storage, handler) as client:
            await client.get("/a")
            await client.get("/b")
            assert client.clear_cache() == 2
            await client.get("/a")

        assert handler.calls == 3
        assert storage.get("auth_token") == {"token": "abc"}

    @pytest.mark.asyncio
    async def test_clients_sharing_storage_share_cache(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler) as first:
            await first.get("/vehicles")
        async with _make_client(storage, handler) as second:
            await second.get("/vehicles")
        assert handler.calls == 1


# ---------------------------------------------------------------------------
# Errors and retry
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, exit_code", [(401, 3), (403, 3), (404, 4), (500, 5), (422, 5)])
    async def test_http_error_normalized(self, storage: StorageEngine, status: int, exit_code: int) -> None:
        handler = RecordingHandler(_json_response({"message": "Nope"}, status))
        async with _make_client(storage, handler) as client:
            with pytest.raises(HTTPStatusError) as exc_info:
                await client.get("/vehicles")

        error = exc_info.value
        assert error.code == f"HTTP_{status}"
        assert error.status == status
        assert error.message == "Nope"
        assert error.data == {"message": "Nope"}
        assert error.exit_code == exit_code

    @pytest.mark.asyncio
    async def test_validation_list_message(self, storage: StorageEngine) -> None:
        body = {"message": [{"field": "plate", "message": "required"}, {"message": "too short"}]}
        handler = RecordingHandler(_json_response(body, 422))
        async with _make_client(storage, handler) as client:
            with pytest.raises(HTTPStatusError, match="required, too short"):
                await client.post("/vehicles", data={})

    @pytest.mark.asyncio
    async def test_error_without_body_uses_reason(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(httpx.Response(502))
        async with _make_client(storage, handler) as client:
            with pytest.raises(HTTPStatusError) as exc_info:
                await client.get("/vehicles")
        assert exc_info.value.message == "Bad Gateway"
        assert exc_info.value.data is None

    @pytest.mark.asyncio
    async def test_network_error(self, storage: StorageEngine) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _make_client(storage, handler) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.get("/vehicles")

        assert exc_info.value.code == "NETWORK_ERROR"
        assert exc_info.value.status == 500
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout(self, storage: StorageEngine) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        async with _make_client(storage, handler, timeout=50) as client:
            with pytest.raises(RequestTimeoutError) as exc_info:
                await client.get("/slow")

        assert exc_info.value.to_dict() == {
            "message": "Request timeout",
            "code": "TIMEOUT",
            "status": 408,
            "data": None,
        }

    @pytest.mark.asyncio
    async def test_transport_timeout_normalized(self, storage: StorageEngine) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with _make_client(storage, handler) as client:
            with pytest.raises(RequestTimeoutError):
                await client.get("/slow")

    @pytest.mark.asyncio
    async def test_invalid_url_normalized(self, storage: StorageEngine) -> None:
        notifier = RecordingNotifier()
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler, notifier=notifier) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.get("/vehicles\x00")

        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert exc_info.value.status == 500
        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)
        assert handler.calls == 0
        assert notifier.messages == [exc_info.value.message]

    @pytest.mark.asyncio
    async def test_unencodable_body_normalized(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}))
        async with _make_client(storage, handler) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.post("/vehicles", data={"when": object()})

        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert isinstance(exc_info.value.__cause__, TypeError)
        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_unexpected_transport_error_retried_and_reported(self, storage: StorageEngine) -> None:
        notifier = RecordingNotifier()
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise RuntimeError("transport exploded")

        async with _make_client(storage, handler, retry=1, notifier=notifier) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.get("/vehicles")

        assert calls == 2
        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert exc_info.value.message == "transport exploded"
        assert notifier.messages == ["transport exploded"]


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_budget_gives_attempts(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({"message": "down"}, 503))
        async with _make_client(storage, handler, retry=2) as client:
            with pytest.raises(HTTPStatusError):
                await client.get("/vehicles")
        assert handler.calls == 3

    @pytest.mark.asyncio
    async def test_success_after_failures(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(
            _json_response({}, 500),
            _json_response({}, 500),
            _json_response({"ok": True}),
        )
        async with _make_client(storage, handler, retry=3) as client:
            response = await client.get("/vehicles")
        assert response.data == {"ok": True}
        assert handler.calls == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_retried(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}, 404))
        async with _make_client(storage, handler, retry=1) as client:
            with pytest.raises(HTTPStatusError):
                await client.get("/vehicles/99")
        assert handler.calls == 2

    @pytest.mark.asyncio
    async def test_per_call_retry_overrides_default(self, storage: StorageEngine) -> None:
        handler = RecordingHandler(_json_response({}, 500))
        async with _make_client(storage, handler, retry=5) as client:
            with pytest.raises(HTTPStatusError):
                await client.get("/vehicles", retry=0)
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self, storage: StorageEngine) -> None:
        calls = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(5)
            return httpx.Response(200, json={"ok": True})

        async with _make_client(storage, handler, timeout=50, retry=1) as client:
            response = await client.get("/slow")
        assert response.data == {"ok": True}
        assert calls == 2

    @pytest.mark.asyncio
    async def test_timeout_on_every_attempt(self, storage: StorageEngine) -> None:
        calls = 0
        cancelled = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls, cancelled
            calls += 1
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled += 1
                raise
            return httpx.Response(200)

        async with _make_client(storage, handler, timeout=30, retry=2) as client:
            with pytest.raises(RequestTimeoutError) as exc_info:
                await client.get("/slow")

        assert exc_info.value.code == "TIMEOUT"
        assert calls == 3
        assert cancelled == 3

    @pytest.mark.asyncio
    async def test_fixed_delay_between_attempts(self, storage: StorageEngine, monkeypatch) -> None:
        delays: list[float] = []
        real_sleep = asyncio.sleep

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        handler = RecordingHandler(_json_response({}, 500))
        async with _make_client(storage, handler, retry=3, retry_delay=250) as client:
            with pytest.raises(HTTPStatusError):
                await client.get("/vehicles")
        assert delays == [0.25, 0.25, 0.25]


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class TestSinks:
    @pytest.mark.asyncio
    async def test_notifier_called_once_after_retries(self, storage: StorageEngine) -> None:
        notifier = RecordingNotifier()
        handler = RecordingHandler(_json_response({"message": "Server exploded"}, 500))
        async with _make_client(storage, handler, retry=2, notifier=notifier) as client:
            with pytest.raises(ApiError):
                await client.get("/vehicles")
        assert notifier.messages == ["Server exploded"]

    @pytest.mark.asyncio
    async def test_notifier_not_called_on_success(self, storage: StorageEngine) -> None:
        notifier = RecordingNotifier()
        handler = RecordingHandler(_json_response({}, 500), _json_response({}))
        async with _make_client(storage, handler, retry=1, notifier=notifier) as client:
            await client.get("/vehicles")
        assert notifier.messages == []

    @pytest.mark.asyncio
    async def test_telemetry_only_when_analytics_enabled(self, storage: StorageEngine) -> None:
        telemetry = RecordingTelemetry()
        handler = RecordingHandler(_json_response({}, 404))
        async with _make_client(storage, handler, telemetry=telemetry) as client:
            with pytest.raises(ApiError):
                await client.get("/vehicles")
        assert telemetry.events == []

    @pytest.mark.asyncio
    async def test_telemetry_receives_error(self, storage: StorageEngine) -> None:
        telemetry = RecordingTelemetry()
        handler = RecordingHandler(_json_response({"message": "gone"}, 404))
        async with _make_client(
            storage, handler, retry=1, telemetry=telemetry, analytics_enabled=True
        ) as client:
            with pytest.raises(ApiError):
                await client.get("/vehicles/9")

        assert len(telemetry.events) == 1
        category, action, label, data = telemetry.events[0]
        assert (category, action, label) == ("Error", "HTTP_404", "gone")
        assert data["url"] == f"{BASE_URL}/vehicles/9"
        assert data["method"] == "GET"
        assert data["attempts"] == 2
        assert data["status"] == 404

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_mask_error(self, storage: StorageEngine) -> None:
        class BrokenNotifier(NotificationSink):
            def error(self, message: str) -> None:
                raise RuntimeError("toast layer crashed")

        handler = RecordingHandler(_json_response({}, 500))
        async with _make_client(storage, handler, notifier=BrokenNotifier()) as client:
            with pytest.raises(HTTPStatusError):
                await client.get("/vehicles")
