"""Event commands -- list, read, create, update, delete and RSVP.

Payload-bearing commands take the body from ``--data '<json>'`` or
``--data-file path.json`` (mutually exclusive; an object or array).

Example::

    evento events list --limit 20 --q launch
    evento events create --data '{"title": "Launch party"}'
    evento events rsvp evt_123 --data '{"status": "yes"}'
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from urllib.parse import quote

import typer

from evento.commands.common import call_api, handle_errors
from evento.exceptions import UsageError
from evento.payload import resolve_payload

RSVP_STATUSES = ("yes", "no", "maybe")

events_app = typer.Typer(no_args_is_help=True)

_DATA_OPTION = typer.Option(None, "--data", help="JSON request body.")
_DATA_FILE_OPTION = typer.Option(
    None, "--data-file", help="Path to a file containing the JSON request body."
)


def _event_path(event_id: str, suffix: str = "") -> str:
    return f"/v1/events/{quote(event_id, safe='')}{suffix}"


@events_app.command("list")
def events_list(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="Maximum number of events."),
    offset: Optional[int] = typer.Option(None, "--offset", min=0, help="Number of events to skip."),
    q: Optional[str] = typer.Option(None, "--q", help="Search text."),
) -> None:
    """List events."""
    with handle_errors():
        call_api(
            ctx, "events list", "GET", "/v1/events",
            query={"limit": limit, "offset": offset, "q": q},
        )


@events_app.command("get")
def events_get(
    ctx: typer.Context,
    event_id: str = typer.Argument(help="Event identifier."),
) -> None:
    """Show one event."""
    with handle_errors():
        call_api(ctx, "events get", "GET", _event_path(event_id))


@events_app.command("create")
def events_create(
    ctx: typer.Context,
    data: Optional[str] = _DATA_OPTION,
    data_file: Optional[Path] = _DATA_FILE_OPTION,
) -> None:
    """Create an event from a JSON payload."""
    command = "events create"
    with handle_errors():
        payload = resolve_payload(command, data, data_file, required=True)
        call_api(ctx, command, "POST", "/v1/events", body=payload)


@events_app.command("update")
def events_update(
    ctx: typer.Context,
    event_id: str = typer.Argument(help="Event identifier."),
    data: Optional[str] = _DATA_OPTION,
    data_file: Optional[Path] = _DATA_FILE_OPTION,
) -> None:
    """Update fields of an event."""
    command = "events update"
    with handle_errors():
        payload = resolve_payload(command, data, data_file, required=True)
        if not payload:
            raise UsageError(
                "Invalid argument: payload must include at least one updatable field.",
                command,
            )
        call_api(ctx, command, "PATCH", _event_path(event_id), body=payload)


@events_app.command("delete")
def events_delete(
    ctx: typer.Context,
    event_id: str = typer.Argument(help="Event identifier."),
) -> None:
    """Delete an event."""
    with handle_errors():
        call_api(ctx, "events delete", "DELETE", _event_path(event_id))


@events_app.command("rsvp")
def events_rsvp(
    ctx: typer.Context,
    event_id: str = typer.Argument(help="Event identifier."),
    data: Optional[str] = _DATA_OPTION,
    data_file: Optional[Path] = _DATA_FILE_OPTION,
) -> None:
    """Respond to an event; the payload's ``status`` is yes, no or maybe."""
    command = "events rsvp"
    with handle_errors():
        payload = resolve_payload(command, data, data_file, required=True)
        status = payload.get("status") if isinstance(payload, dict) else None
        if status not in RSVP_STATUSES:
            raise UsageError(
                "Invalid argument: status must be one of yes|no|maybe.", command
            )
        call_api(ctx, command, "POST", _event_path(event_id, "/rsvp"), body=payload)
