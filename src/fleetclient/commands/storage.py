"""Storage commands -- inspect and manage items of the storage engine.

Provides the ``fleetclient storage`` sub-command group. Every command works
on the namespace selected by ``storage.prefix`` and the backend selected by
``storage.driver``. Expired items never show up and are removed as they are
read.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from fleetclient.commands.common import open_storage, resolve_settings
from fleetclient.exit_codes import EXIT_INVALID_USAGE, EXIT_NOT_FOUND
from fleetclient.output import error, format_response, info, print_data, print_table, success


storage_app = typer.Typer(no_args_is_help=True)

_MISSING = object()


@storage_app.command("keys")
def storage_keys(ctx: typer.Context) -> None:
    """List the logical keys of all live items.

    Example::

        fleetclient storage keys
    """
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        keys = storage.keys()
    if not keys:
        info("No stored items.")
        return
    print_table(["Key"], [[key] for key in sorted(keys)], title=f"Storage ({config.storage.prefix})")


@storage_app.command("get")
def storage_get(
    ctx: typer.Context,
    key: str = typer.Argument(help="Logical key."),
) -> None:
    """Print the value stored under KEY.

    Raises:
        typer.Exit: With code 4 if the key is absent or expired.

    Example::

        fleetclient storage get user
    """
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        value = storage.get(key, _MISSING)
    if value is _MISSING:
        error(f"No item stored under '{key}'.")
        raise typer.Exit(code=EXIT_NOT_FOUND)
    format_response(value)


@storage_app.command("set")
def storage_set(
    ctx: typer.Context,
    key: str = typer.Argument(help="Logical key."),
    value: str = typer.Argument(help="Value (JSON, or stored as a string)."),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Lifetime in ms."),
) -> None:
    """Store VALUE under KEY, optionally expiring after --ttl ms.

    Example::

        fleetclient storage set user '{"id": 1}' --ttl 60000
    """
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        storage.set(key, parsed, ttl=ttl)
    success(f"Stored '{key}'.")


@storage_app.command("remove")
def storage_remove(
    ctx: typer.Context,
    key: str = typer.Argument(help="Logical key."),
) -> None:
    """Delete the item stored under KEY."""
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        storage.remove(key)
    success(f"Removed '{key}'.")


@storage_app.command("clear")
def storage_clear(ctx: typer.Context) -> None:
    """Delete every item in the configured namespace.

    Keys of other namespaces on the same backend are kept. Asks for
    confirmation unless ``--force`` is active.
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    config = resolve_settings(ctx)
    if not force:
        confirmed = typer.confirm(f"Delete every item under prefix '{config.storage.prefix}'?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    with open_storage(config) as storage:
        storage.clear()
    success("Storage cleared.")


@storage_app.command("export")
def storage_export(
    ctx: typer.Context,
    output_file: Optional[str] = typer.Option(None, "-o", "--output", help="Write to a file."),
) -> None:
    """Export all live items as a JSON object.

    Example::

        fleetclient storage export -o backup.json
    """
    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        data = storage.export()

    if output_file:
        Path(output_file).write_text(data + "\n", encoding="utf-8")
        success(f"Exported to {output_file}")
    else:
        print_data(data)


@storage_app.command("import")
def storage_import(
    ctx: typer.Context,
    input_file: str = typer.Argument(help="JSON file produced by 'storage export'."),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Lifetime in ms for imported items."),
) -> None:
    """Import items from a JSON object of ``{key: value}``.

    Raises:
        typer.Exit: With code 2 if the file is missing or not a JSON object.
    """
    path = Path(input_file)
    if not path.is_file():
        error(f"File not found: {input_file}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    text = path.read_text(encoding="utf-8")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        error(f"Invalid JSON in {input_file}: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if not isinstance(parsed, dict):
        error("Invalid storage data format: expected a JSON object")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    config = resolve_settings(ctx)
    with open_storage(config) as storage:
        count = storage.import_(text, ttl=ttl)
    success(f"Imported {count} item(s).")
