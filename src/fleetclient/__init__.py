"""fleetclient -- caching data-access layer for the fleet maintenance tracker.

The package gives the tracker's domain code (vehicles, maintenance services,
expenses, reminders) a single way to talk to the backend REST API and to
keep client-side state:

* :class:`~fleetclient.storage.StorageEngine` -- a namespaced key-value
  store with per-item TTL, three interchangeable backends, and a
  ``JSON -> compress -> encrypt`` serialization pipeline.
* :class:`~fleetclient.client.ApiClient` -- an asynchronous HTTP client that
  caches successful GET responses in a storage engine, retries failed
  attempts at a fixed delay, and enforces a per-attempt timeout.

Typical wiring::

    from fleetclient.client import ApiClient
    from fleetclient.config import resolve_config
    from fleetclient.storage import StorageEngine

    config = resolve_config()
    storage = StorageEngine.from_config(config.storage)
    async with ApiClient.from_config(config, storage) as client:
        response = await client.get("/vehicles", params={"page": "1"})

Modules:
    app: Typer application and the ``fleetclient`` console script.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with error codes and exit codes.
    sinks: Notification and telemetry collaborator interfaces.
    output: stdout/stderr formatting for the CLI.
"""

__version__ = "0.1.0"
