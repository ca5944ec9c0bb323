"""Shared plumbing for evento sub-commands.

The root callback in :mod:`evento.app` stores the global options in
``ctx.obj``; commands turn them into a
:class:`~evento.models.ResolvedConfig` with :func:`get_config` and run
their body inside :func:`handle_errors`, which renders any
:class:`~evento.exceptions.EventoError` through the output layer and exits
with the error's code.

``ctx.obj`` may also carry test seams: ``transport`` (an
:class:`httpx.BaseTransport`) and ``provider_factory``.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

import typer

from evento.auth.credential_store import CredentialStore
from evento.auth.provider import ProviderFactory, SupabaseIdentityProvider
from evento.auth.session import SessionRefresher
from evento.client import ApiClient
from evento.config import resolve_config
from evento.exceptions import EventoError
from evento.models import ResolvedConfig
from evento.output import get_output


@contextmanager
def handle_errors() -> Iterator[None]:
    """Report an :class:`EventoError` and exit with its code."""
    try:
        yield
    except EventoError as exc:
        code = get_output().print_failure(exc)
        raise typer.Exit(code=code) from None


def get_config(ctx: typer.Context) -> ResolvedConfig:
    """Resolve (once per invocation) the configuration for *ctx*.

    Raises:
        UsageError: Invalid configuration; see
            :func:`~evento.config.resolve_config`.
    """
    obj = _root_obj(ctx)
    config = obj.get("config")
    if config is None:
        config = resolve_config(
            cli_profile=obj.get("profile"),
            cli_base_url=obj.get("base_url"),
            cli_format=obj.get("format"),
            is_stdout_tty=sys.stdout.isatty(),
        )
        obj["config"] = config
    return config


def get_provider_factory(ctx: typer.Context) -> ProviderFactory:
    return _root_obj(ctx).get("provider_factory") or SupabaseIdentityProvider.from_config


def get_refresher(ctx: typer.Context, command: str) -> SessionRefresher:
    config = get_config(ctx)
    return SessionRefresher(
        config,
        CredentialStore(config.paths),
        provider_factory=get_provider_factory(ctx),
        command=command,
    )


def call_api(
    ctx: typer.Context,
    command: str,
    method: str,
    path: str,
    *,
    query: Optional[dict[str, Any]] = None,
    body: Any = None,
) -> None:
    """Perform an authenticated API call and print the response envelope."""
    config = get_config(ctx)
    with ApiClient(
        config,
        refresher=get_refresher(ctx, command),
        transport=_root_obj(ctx).get("transport"),
        command=command,
    ) as client:
        data = client.execute(method, path, query=query, body=body)
    get_output().print_success(data)


def _root_obj(ctx: typer.Context) -> dict[str, Any]:
    root = ctx.find_root()
    root.ensure_object(dict)
    return root.obj
