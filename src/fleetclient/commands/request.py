"""Request command -- send one request through the caching client.

Registered directly on the root app as ``fleetclient request``. The command
builds an :class:`~fleetclient.client.ApiClient` from the resolved
configuration, applies the stored bearer token, and prints the response.
Failures are reported by the client's notification sink (stderr) and turned
into the error's exit code.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional

import typer

from fleetclient.auth import TokenStore
from fleetclient.client import ApiClient
from fleetclient.commands.common import open_storage, resolve_settings
from fleetclient.exceptions import ApiError, InvalidUsageError
from fleetclient.models import ApiResponse, ClientConfig
from fleetclient.sinks import LoggingTelemetry, OutputNotifier
from fleetclient.storage import StorageEngine


_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def build_client(config: ClientConfig, storage: StorageEngine) -> ApiClient:
    """Create the client used by :func:`request_command`."""
    return ApiClient.from_config(
        config,
        storage,
        notifier=OutputNotifier(),
        telemetry=LoggingTelemetry(),
    )


def parse_pairs(pairs: Optional[List[str]], option: str) -> dict[str, str]:
    """Turn ``["k=v", ...]`` into a dict.

    Raises:
        InvalidUsageError: If an item has no ``=``.
    """
    result: dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise InvalidUsageError(f"Expected NAME=VALUE for {option}, got: {pair}")
        result[name] = value
    return result


def parse_body(data: Optional[str]) -> Any:
    """Decode *data* as JSON, falling back to the raw string."""
    if data is None:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return data


async def _send(
    config: ClientConfig,
    storage: StorageEngine,
    method: str,
    path: str,
    **kwargs: Any,
) -> ApiResponse:
    async with build_client(config, storage) as client:
        TokenStore(storage).apply(client)
        return await client.request(method, path, **kwargs)


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE, ...)."),
    path: str = typer.Argument(help="Request path, resolved against the base URL."),
    param: Optional[List[str]] = typer.Option(
        None, "--param", "-p", help="Query parameter as NAME=VALUE (repeatable)."
    ),
    header: Optional[List[str]] = typer.Option(
        None, "--header", "-H", help="Extra header as NAME=VALUE (repeatable)."
    ),
    data: Optional[str] = typer.Option(
        None, "--data", "-d", help="Request body (JSON, or sent as a string)."
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the response cache."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Per-attempt timeout in ms."),
    retry: Optional[int] = typer.Option(None, "--retry", help="Retries after the first attempt."),
    retry_delay: Optional[int] = typer.Option(
        None, "--retry-delay", help="Delay between attempts in ms."
    ),
) -> None:
    """Send a request and print the response data.

    GET responses are served from and written to the response cache unless
    ``--no-cache`` is given or caching is disabled in the configuration.

    Example::

        fleetclient request GET /vehicles -p page=1
        fleetclient request POST /vehicles -d '{"plate": "ABC1D23"}'
        fleetclient --json request GET /positions --no-cache
    """
    from fleetclient.client.response import format_api_response
    from fleetclient.output import error

    verb = method.upper()
    try:
        if verb not in _METHODS:
            raise InvalidUsageError(f"Unsupported method: {method}")
        if timeout is not None and timeout <= 0:
            raise InvalidUsageError("--timeout must be a positive number of milliseconds")
        if retry is not None and retry < 0:
            raise InvalidUsageError("--retry must not be negative")
        if retry_delay is not None and retry_delay < 0:
            raise InvalidUsageError("--retry-delay must not be negative")
        kwargs: dict[str, Any] = {
            "params": parse_pairs(param, "--param") or None,
            "headers": parse_pairs(header, "--header"),
            "data": parse_body(data),
            "timeout": timeout,
            "retry": retry,
            "retry_delay": retry_delay,
        }
    except InvalidUsageError as exc:
        error(exc.message)
        raise typer.Exit(code=exc.exit_code) from None

    config = resolve_settings(ctx)
    if no_cache:
        kwargs["cache"] = False

    with open_storage(config) as storage:
        try:
            response = asyncio.run(_send(config, storage, verb, path, **kwargs))
        except ApiError as exc:
            # The notification sink has already printed the message.
            raise typer.Exit(code=exc.exit_code) from None

    format_api_response(response)
