"""Helpers shared by the CLI commands.

Commands resolve the effective configuration from ``ctx.obj`` and open the
storage engine through :func:`open_storage`, which closes the backend (the
persistent driver holds a database handle) when the command finishes.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import typer

from fleetclient.models import ClientConfig
from fleetclient.sinks import LoggingTelemetry
from fleetclient.storage import StorageEngine


def resolve_settings(ctx: typer.Context) -> ClientConfig:
    """Resolve config file, environment and the ``--base-url`` flag."""
    from fleetclient.config import resolve_config

    base_url = ctx.obj.get("base_url") if ctx.obj else None
    return resolve_config(cli_base_url=base_url)


@contextmanager
def open_storage(config: ClientConfig) -> Iterator[StorageEngine]:
    """Yield a :class:`StorageEngine` built from *config*, closing it afterwards.

    Recovered storage failures are shown as debug output.
    """
    from fleetclient.output import debug

    telemetry = LoggingTelemetry() if config.analytics_enabled else None
    engine = StorageEngine.from_config(
        config.storage,
        on_error=lambda exc: debug(str(exc)),
        telemetry=telemetry,
    )
    try:
        yield engine
    finally:
        engine.backend.close()
