"""Auth commands -- store, inspect and remove the bearer token.

Provides the ``fleetclient auth`` sub-command group. The token is kept in
the storage engine through :class:`~fleetclient.auth.TokenStore` and is
applied to every ``fleetclient request``. Token issuance happens on the
backend; ``login`` only records a token obtained there.
"""

from __future__ import annotations

from typing import Optional

import typer

from fleetclient.auth import CredentialEntry, TokenStore
from fleetclient.commands.common import open_storage, resolve_settings
from fleetclient.exit_codes import EXIT_AUTH_FAILURE, EXIT_INVALID_USAGE
from fleetclient.output import error, format_response, info, success


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    token: Optional[str] = typer.Option(
        None, "--token", "-t", help="Bearer token. Prompted for when omitted."
    ),
    expires_in: Optional[int] = typer.Option(
        None, "--expires-in", help="Token lifetime in ms."
    ),
) -> None:
    """Store a bearer token for subsequent requests.

    The token replaces any previously stored one. With ``--expires-in`` the
    stored entry expires on its own.

    Example::

        fleetclient auth login --token abc123
        fleetclient auth login --expires-in 3600000
    """
    if token is None:
        token = typer.prompt("Token", hide_input=True)
    if not token:
        error("Token must not be empty.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    if expires_in is not None and expires_in <= 0:
        error("--expires-in must be a positive number of milliseconds.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        expires_at = storage.now() + expires_in if expires_in is not None else None
        TokenStore(storage).save(CredentialEntry(token=token, expires_at=expires_at))
    success("Token stored.")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Remove the stored bearer token."""
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        TokenStore(storage).clear()
    success("Token removed.")


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether a valid token is stored.

    Raises:
        typer.Exit: With code 3 if no valid token is stored.
    """
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        entry = TokenStore(storage).load()
    if entry is None:
        info("Not logged in.")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)

    token = entry.token
    masked = f"{token[:4]}...{token[-4:]}" if len(token) > 12 else "****"
    format_response(
        {
            "logged_in": True,
            "token": masked,
            "expires_at": entry.expires_at,
        }
    )
