"""Raw API access -- ``evento api METHOD PATH``.

Sends an authenticated request to any API path, with the same session
refresh, retry and error classification as the dedicated commands.

Example::

    evento api GET /v1/events --limit 5
    evento api PATCH /v1/events/evt_123 --data '{"title": "Renamed"}'
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from evento.client.api_client import validate_path
from evento.commands.common import call_api, handle_errors
from evento.exceptions import UsageError
from evento.payload import MISSING_PAYLOAD_MESSAGE, resolve_payload

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD")
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def api_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method: GET, POST, PUT, PATCH, DELETE or HEAD."),
    path: str = typer.Argument(help="API path beginning with /, e.g. /v1/events."),
    data: Optional[str] = typer.Option(None, "--data", help="JSON request body."),
    data_file: Optional[Path] = typer.Option(
        None, "--data-file", help="Path to a file containing the JSON request body."
    ),
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="limit query parameter."),
    offset: Optional[int] = typer.Option(None, "--offset", min=0, help="offset query parameter."),
    q: Optional[str] = typer.Option(None, "--q", help="q query parameter."),
) -> None:
    """Send an authenticated request to an arbitrary API path."""
    command = "api"
    with handle_errors():
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise UsageError(
                f'Invalid HTTP method: "{method}". Accepted: {", ".join(ALLOWED_METHODS)}.',
                command,
            )
        validate_path(path, command)

        payload = resolve_payload(command, data, data_file)
        if method in BODY_METHODS and payload is None:
            raise UsageError(MISSING_PAYLOAD_MESSAGE, command)

        call_api(
            ctx, command, method, path,
            query={"limit": limit, "offset": offset, "q": q},
            body=payload,
        )
