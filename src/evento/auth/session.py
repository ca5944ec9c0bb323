"""Session refresh engine.

Turns the stored credential record into one that is safe to send:

* **Fresh** -- more than :data:`REFRESH_WINDOW_SECONDS` until expiry; returned
  unchanged without touching the network.
* **Near expiry** (including already expired) -- check-then-refresh: the
  stored pair is installed with ``set_session`` first; if the provider
  reports a session that is still fresh the stored record is returned as is.
  Only otherwise is a full ``refresh_session`` performed, and the renewed
  record is written back through the
  :class:`~evento.auth.credential_store.CredentialStore`.

Every failure surfaces as a classified
:class:`~evento.exceptions.EventoError`.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional

from evento.auth.credential_store import CredentialStore
from evento.auth.provider import (
    IdentityProvider,
    ProviderFactory,
    SupabaseIdentityProvider,
    require_provider_config,
)
from evento.exceptions import AuthExpiredError, AuthRequiredError
from evento.models import (
    Credentials,
    ProviderFailure,
    ProviderSession,
    ResolvedConfig,
    seconds_until,
)
from evento.output import debug

REFRESH_WINDOW_SECONDS = 120
DEFAULT_SESSION_LIFETIME_SECONDS = 3600


class RefreshAttempt(str, Enum):
    """What :meth:`SessionRefresher.resolve` had to do to produce a session."""

    NOT_NEEDED = "not_needed"
    PROVIDER_EXTENDED = "provider_extended"
    REFRESHED = "refreshed"


class SessionResolution(NamedTuple):
    credentials: Credentials
    refresh_attempt: RefreshAttempt


def credentials_from_session(
    profile: str, session: ProviderSession, now: Optional[float] = None
) -> Credentials:
    """Build a credential record from a provider session.

    A missing ``expires_at`` defaults to one hour from *now*.
    """
    now = time.time() if now is None else now
    expires_epoch = session.expires_at or int(now + DEFAULT_SESSION_LIFETIME_SECONDS)
    return Credentials(
        profile=profile,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=datetime.fromtimestamp(expires_epoch, tz=timezone.utc),
        metadata={"user_id": session.user_id} if session.user_id else None,
    )


class SessionRefresher:
    """Provide valid credentials for the active profile.

    Args:
        config: Resolved configuration (profile and provider settings).
        store: Credential store to read from and write renewed records to.
        provider_factory: Builds the identity provider lazily, only when a
            refresh is actually needed.
        command: Command name reported in errors.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        store: CredentialStore,
        provider_factory: ProviderFactory = SupabaseIdentityProvider.from_config,
        command: str = "root",
    ) -> None:
        self._config = config
        self._store = store
        self._provider_factory = provider_factory
        self._command = command

    def get_valid_credentials(self) -> Credentials:
        """Return credentials with more than two minutes of validity left.

        Raises:
            AuthRequiredError: No stored session for the profile.
            AuthConfigMissingError: Refresh needed but provider config absent.
            AuthExpiredError: The provider rejected the stored session.
        """
        return self.resolve().credentials

    def resolve(self) -> SessionResolution:
        """Like :meth:`get_valid_credentials`, also reporting what was done."""
        current = self._store.read(self._config.profile)
        if current is None:
            raise AuthRequiredError(
                "No active credentials. Run 'evento auth login'.", self._command
            )

        remaining = current.seconds_until_expiry()
        if remaining > REFRESH_WINDOW_SECONDS:
            return SessionResolution(current, RefreshAttempt.NOT_NEEDED)

        debug(f"Access token expires in {remaining}s, refreshing session")
        provider = self._provider()

        checked = provider.set_session(current.access_token, current.refresh_token)
        if isinstance(checked, ProviderFailure):
            raise self._expired(checked)

        checked_expiry = checked.session.expires_at
        if checked_expiry is not None:
            remaining = seconds_until(datetime.fromtimestamp(checked_expiry, tz=timezone.utc))
        if remaining > REFRESH_WINDOW_SECONDS:
            debug("Provider reports the session as still valid; keeping stored tokens")
            return SessionResolution(current, RefreshAttempt.PROVIDER_EXTENDED)

        refreshed = provider.refresh_session()
        if isinstance(refreshed, ProviderFailure):
            raise self._expired(refreshed)

        renewed = credentials_from_session(self._config.profile, refreshed.session)
        renewed = self._store.write(renewed)
        debug(f"Session refreshed; new expiry {renewed.expires_at.isoformat()}")
        return SessionResolution(renewed, RefreshAttempt.REFRESHED)

    def _provider(self) -> IdentityProvider:
        require_provider_config(self._config, self._command)
        return self._provider_factory(self._config)

    def _expired(self, failure: ProviderFailure) -> AuthExpiredError:
        return AuthExpiredError(
            "Session expired; refresh attempt failed. "
            "Please re-auth with 'evento auth login'.",
            self._command,
            details={"reason": failure.reason},
        )
