"""Auth commands -- sign in, inspect, print and discard the session.

Provides the ``evento auth`` sub-command group:

    evento auth login --email me@example.com   # browser callback, OTP fallback
    evento auth login --email me@example.com --otp
    evento auth status                         # refreshes if near expiry
    evento auth token                          # print a valid access token
    evento auth logout
"""

from __future__ import annotations

from typing import Optional

import typer

from evento.auth.credential_store import CredentialStore
from evento.auth.login import login
from evento.commands.common import get_config, get_provider_factory, get_refresher, handle_errors
from evento.exceptions import UsageError
from evento.output import OutputFormat, get_output, success, suggest


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    email: Optional[str] = typer.Option(None, "--email", help="Account email address."),
    otp: bool = typer.Option(
        False, "--otp", help="Type the emailed one-time code instead of using the browser."
    ),
) -> None:
    """Sign in and store the session for the active profile.

    Without ``--otp`` a magic link is emailed and the browser redirect is
    received on a local callback server; if that fails the emailed
    one-time code is requested instead.
    """
    command = "auth login"
    with handle_errors():
        config = get_config(ctx)
        if not config.supabase_url or not config.supabase_anon_key:
            raise UsageError(
                "Missing required configuration: EVENTO_SUPABASE_URL. Set --profile, "
                "EVENTO_SUPABASE_URL, or profiles."
                f"{config.profile}.supabaseUrl in {config.paths.config_path}",
                command,
            )
        obj = ctx.find_root().obj or {}
        result = login(
            config,
            CredentialStore(config.paths),
            get_provider_factory(ctx)(config),
            email=email,
            otp=otp,
            prompt=obj.get("prompt"),
            open_browser=obj.get("open_browser"),
            interactive=obj.get("interactive"),
            command=command,
        )
        expires_at = result.credentials.expires_at.isoformat()
        get_output().print_success(
            {
                "command": command,
                "profile": config.profile,
                "state": "authenticated",
                "method": result.method.value,
                "expires_at": expires_at,
                "token_type": "bearer",
            },
            text=f"Logged in (profile {config.profile}, expires {expires_at}).",
        )


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether the active profile holds a usable session.

    A session within two minutes of expiry is refreshed first.
    """
    command = "auth status"
    with handle_errors():
        config = get_config(ctx)
        resolution = get_refresher(ctx, command).resolve()
        expires_at = resolution.credentials.expires_at.isoformat()
        get_output().print_success(
            {
                "command": command,
                "profile": config.profile,
                "authenticated": True,
                "state": "authenticated",
                "expires_at": expires_at,
                "refresh_attempt": resolution.refresh_attempt.value,
            },
            text=f"Authenticated (profile {config.profile}); token expires {expires_at}.",
        )


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Remove the stored session for the active profile."""
    command = "auth logout"
    with handle_errors():
        config = get_config(ctx)
        removed = CredentialStore(config.paths).clear(config.profile)
        output = get_output()
        if output.format == OutputFormat.JSON:
            output.print_success(
                {"command": command, "profile": config.profile, "state": "unauthenticated"}
            )
        elif removed:
            success(f"Logged out of profile {config.profile}.")
        else:
            suggest(f"Profile {config.profile} had no stored session.")


@auth_app.command("token")
def auth_token(ctx: typer.Context) -> None:
    """Print a valid access token, refreshing it if needed.

    Text mode prints the bare token so it can be captured by a shell::

        TOKEN=$(evento --format text auth token)
    """
    command = "auth token"
    with handle_errors():
        config = get_config(ctx)
        resolution = get_refresher(ctx, command).resolve()
        credentials = resolution.credentials
        get_output().print_success(
            {
                "command": command,
                "profile": config.profile,
                "access_token": credentials.access_token,
                "token_type": "bearer",
                "expires_at": credentials.expires_at.isoformat(),
                "refresh_attempt": resolution.refresh_attempt.value,
            },
            text=credentials.access_token,
        )
