"""Built-in CLI sub-commands for fleetclient.

This package groups the Typer modules that form the CLI's command tree:

* :mod:`~fleetclient.commands.request` -- send a request through the
  caching client.
* :mod:`~fleetclient.commands.cache` -- inspect and clear cached responses.
* :mod:`~fleetclient.commands.storage` -- inspect and manage stored items.
* :mod:`~fleetclient.commands.auth` -- store and remove the bearer token.
* :mod:`~fleetclient.commands.config` -- view and modify configuration.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups) or a plain callback registered directly on the root
app (for ``request``).
"""
