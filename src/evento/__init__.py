"""evento -- command-line client for the evento API.

The CLI signs a user in through the identity provider (Supabase Auth),
keeps the resulting session in an owner-only credential file, and calls the
evento API on the user's behalf, refreshing near-expiry sessions and
retrying transient failures along the way.

Typical workflow::

    evento auth login --email me@example.com
    evento events list --limit 10
    evento api GET /v1/user

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: Storage paths, config file and precedence resolution.
    exceptions: Error taxonomy with machine-readable codes and exit codes.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting with JSON and text envelopes.
    payload: ``--data`` / ``--data-file`` request body parsing.
"""

__version__ = "0.4.0"
