"""User commands."""

from __future__ import annotations

import typer

from evento.commands.common import call_api, handle_errors

user_app = typer.Typer(no_args_is_help=True)


@user_app.command("me")
def user_me(ctx: typer.Context) -> None:
    """Show the signed-in user's profile."""
    with handle_errors():
        call_api(ctx, "user me", "GET", "/v1/user")
