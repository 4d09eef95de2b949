"""Numeric process exit codes used by the ``fleetclient`` CLI.

Each constant maps to an error category and is referenced by the matching
:class:`~fleetclient.exceptions.FleetClientError` subclass, so shell scripts
can branch on the failure class without parsing stderr.

Example::

    $ fleetclient request GET /vehicles
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- the request timed out on every attempt
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The API rejected the credentials (HTTP 401 / 403)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The API answered with an error status that is not auth or not-found."""

EXIT_CONNECTION_ERROR = 6
"""No response was received (timeout, DNS failure, connection refused)."""
