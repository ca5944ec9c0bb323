"""Shared test fixtures for evento.

Provides isolated storage locations, a resolved configuration pointing at
them, a factory for credential records, a scriptable fake identity
provider and a CLI runner.  These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from evento.auth.credential_store import CredentialStore
from evento.auth.provider import IdentityProvider
from evento.config import resolve_storage_paths
from evento.models import (
    Credentials,
    ProviderFailure,
    ProviderResult,
    ProviderSession,
    ResolvedConfig,
    SessionGranted,
    StoragePaths,
)
from evento.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a quiet output manager and reset it after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    set_output(OutputManager(format=OutputFormat.JSON, no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Storage and configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def storage_paths(tmp_path: Path) -> StoragePaths:
    """Storage paths rooted in a disposable ``.evento`` directory."""
    return resolve_storage_paths(home=str(tmp_path / ".evento"))


@pytest.fixture
def config(storage_paths: StoragePaths) -> ResolvedConfig:
    """Resolved configuration with provider settings and fast retries."""
    return ResolvedConfig(
        profile="default",
        output_format="json",
        api_base_url="https://api.evento.test/api",
        supabase_url="https://project.supabase.test",
        supabase_anon_key="anon-key",
        timeout_ms=2000,
        retry_attempts=2,
        retry_delay_ms=50,
        paths=storage_paths,
    )


@pytest.fixture
def store(storage_paths: StoragePaths) -> CredentialStore:
    return CredentialStore(storage_paths, lock_timeout=1.0)


@pytest.fixture
def make_credentials() -> Callable[..., Credentials]:
    """Factory for credential records expiring *expires_in* seconds from now."""

    def _make(
        expires_in: float = 3600,
        profile: str = "default",
        access_token: str = "access-1",
        refresh_token: str = "refresh-1",
        **extra: Any,
    ) -> Credentials:
        return Credentials(
            profile=profile,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            **extra,
        )

    return _make


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate the CLI environment to a temporary directory.

    Clears every ``EVENTO_*`` variable, points ``EVENTO_HOME`` at
    ``tmp_path/.evento`` and changes the working directory to ``tmp_path``.

    Returns:
        The ``EVENTO_HOME`` directory (not yet created).
    """
    for var in list(os.environ):
        if var.startswith("EVENTO_"):
            monkeypatch.delenv(var)
    home = tmp_path / ".evento"
    monkeypatch.setenv("EVENTO_HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return home


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------


def granted(
    access_token: str = "access-2",
    refresh_token: str = "refresh-2",
    expires_in: Optional[int] = 3600,
    user_id: Optional[str] = "user-1",
) -> SessionGranted:
    """Build a successful provider result expiring *expires_in* seconds from now."""
    expires_at = None
    if expires_in is not None:
        expires_at = int(datetime.now(timezone.utc).timestamp()) + expires_in
    return SessionGranted(
        session=ProviderSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user_id=user_id,
        )
    )


class FakeProvider(IdentityProvider):
    """Scriptable :class:`IdentityProvider` recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.start_result: Optional[ProviderFailure] = None
        self.verify_result: ProviderResult = granted()
        self.exchange_result: ProviderResult = granted()
        self.set_result: ProviderResult = granted()
        self.refresh_result: ProviderResult = granted()

    def start_passwordless_auth(
        self, email: str, redirect_to: Optional[str] = None
    ) -> Optional[ProviderFailure]:
        self.calls.append(("start_passwordless_auth", email, redirect_to))
        return self.start_result

    def verify_one_time_code(self, email: str, code: str) -> ProviderResult:
        self.calls.append(("verify_one_time_code", email, code))
        return self.verify_result

    def exchange_authorization_code(self, code: str) -> ProviderResult:
        self.calls.append(("exchange_authorization_code", code))
        return self.exchange_result

    def set_session(self, access_token: str, refresh_token: str) -> ProviderResult:
        self.calls.append(("set_session", access_token, refresh_token))
        return self.set_result

    def refresh_session(self) -> ProviderResult:
        self.calls.append(("refresh_session",))
        return self.refresh_result

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def granted_session() -> Callable[..., SessionGranted]:
    """Expose :func:`granted` to test modules."""
    return granted


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
