"""Cache commands -- inspect and clear cached API responses.

Provides the ``fleetclient cache`` sub-command group. Only entries of the
response cache (logical keys beginning with ``api_``) are affected; the
stored token and other items in the same storage namespace are kept.
"""

from __future__ import annotations

import typer

from fleetclient.cache import ResponseCache
from fleetclient.commands.common import open_storage, resolve_settings
from fleetclient.output import format_response, info, print_table, success


cache_app = typer.Typer(no_args_is_help=True)


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Delete every cached response, fresh or stale.

    Example::

        fleetclient cache clear
    """
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        removed = ResponseCache(storage, default_ttl=config.cache.ttl).clear()
    success(f"Removed {removed} cached response(s).")


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the number of cached responses and the default TTL (ms).

    Example::

        fleetclient cache stats
        fleetclient --json cache stats
    """
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        stats = ResponseCache(storage, default_ttl=config.cache.ttl).stats()
    stats["enabled"] = config.cache.enabled
    format_response(stats)


@cache_app.command("list")
def cache_list(ctx: typer.Context) -> None:
    """List the keys of live cache entries."""
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        keys = ResponseCache(storage, default_ttl=config.cache.ttl).keys()
    if not keys:
        info("No cached responses.")
        return
    print_table(["Key"], [[key] for key in sorted(keys)], title="Cached responses")
