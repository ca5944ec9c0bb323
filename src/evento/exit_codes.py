"""Numeric process exit codes.

Each constant maps to an error class family and is referenced by the
corresponding :class:`~evento.exceptions.EventoError` subclass.  Scripts
wrapping ``evento`` can tell a caller mistake from a runtime failure by the
exit code alone; the JSON failure envelope carries the precise ``code``.

Example::

    $ evento events get ../x
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the request never left the machine
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_RUNTIME_FAILURE = 1
"""The command failed at runtime (auth, storage, network, HTTP)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_INTERRUPTED = 130
"""The user pressed Ctrl-C."""
