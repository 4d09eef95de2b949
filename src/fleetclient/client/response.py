"""Response helpers shared by the HTTP client and the CLI.

:func:`extract_response_data` turns an :class:`httpx.Response` body into the
``data`` field of an :class:`~fleetclient.models.ApiResponse`;
:func:`extract_error_message` pulls a human-readable message out of an error
payload; :func:`format_api_response` renders a response through the CLI
output system.

See Also:
    :mod:`fleetclient.output` -- the output manager that renders data.
"""

from __future__ import annotations

from typing import Any

import httpx

from fleetclient.models import ApiResponse
from fleetclient.output import get_output


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Attempts to parse the body as JSON first. If that fails (HTML, plain
    text), returns the raw text. Returns ``None`` for responses with no
    content, such as ``204 No Content`` or ``HEAD``.

    Args:
        response: The :class:`httpx.Response` to extract data from.

    Returns:
        A JSON-decoded object, a ``str`` of raw text, or ``None``.
    """
    if not response.content:
        return None

    try:
        return response.json()
    except ValueError:
        return response.text


def extract_error_message(body: Any) -> str:
    """Return the message carried by an error payload, or ``""``.

    The tracker's backend answers errors as ``{"message": ...}`` (validation
    failures send a list of ``{"message": ...}`` objects); ``error`` and
    ``detail`` keys are accepted as well.
    """
    if isinstance(body, dict):
        message = body.get("message") or body.get("error") or body.get("detail") or ""
        if isinstance(message, list):
            return ", ".join(
                str(item.get("message", item)) if isinstance(item, dict) else str(item)
                for item in message
            )
        return str(message)
    if isinstance(body, str):
        return body[:200]
    return ""


def format_api_response(response: ApiResponse) -> None:
    """Print the status line to stderr and the response data to stdout.

    Args:
        response: The response to display.
    """
    output = get_output()
    output.info(f"HTTP {response.status} {response.status_text}".rstrip())
    if response.data is not None:
        content_type = response.headers.get("content-type", "application/json")
        output.format_response(response.data, content_type)
