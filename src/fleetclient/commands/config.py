"""Config commands -- view and modify the stored configuration.

Provides the ``fleetclient config`` sub-command group for reading,
updating, and resetting the config file
(:class:`~fleetclient.models.ClientConfig`). ``show`` prints the effective
configuration, with environment variables and ``--base-url`` applied.
"""

from __future__ import annotations

import typer

from fleetclient.commands.common import resolve_settings
from fleetclient.exceptions import ConfigError
from fleetclient.exit_codes import EXIT_INVALID_USAGE
from fleetclient.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Prints the config file path followed by the resolved configuration.

    Example::

        fleetclient config show
        fleetclient --json config show
    """
    from fleetclient.config import config_path

    info(f"Config file: {config_path()}")
    format_response(resolve_settings(ctx).model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g., 'cache.ttl')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced by
    :class:`~fleetclient.models.ClientConfig` validation (``"true"`` becomes
    a bool, ``"5000"`` an int) before saving.

    Raises:
        typer.Exit: With code 2 if the key is unknown or validation fails.

    Example::

        fleetclient config set base_url https://api.example.com
        fleetclient config set cache.ttl 60000
        fleetclient config set storage.driver session
    """
    from pydantic import ValidationError

    from fleetclient.config import load_config, save_config, set_config_value
    from fleetclient.models import ClientConfig

    try:
        data = load_config().model_dump(mode="json")
        set_config_value(data, key, value)
        new_config = ClientConfig.model_validate(data)
    except ConfigError as exc:
        error(exc.message)
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_config(new_config)
    success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults.

    Deletes the config file. Asks for confirmation unless ``--force`` is
    active.

    Example::

        fleetclient config reset
        fleetclient --force config reset
    """
    from fleetclient.config import reset_config

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    reset_config()
    success("Configuration reset to defaults.")
