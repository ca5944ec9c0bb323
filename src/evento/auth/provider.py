"""Identity-provider boundary.

:class:`IdentityProvider` is the abstract contract the rest of evento calls
against -- five operations, each returning a tagged
:data:`~evento.models.ProviderResult` (a session or a failure reason) rather
than raising.  :class:`SupabaseIdentityProvider` implements it with the
``supabase`` client configured for a CLI: no session persistence, no
background auto-refresh, PKCE flow for the browser callback.

See Also:
    :mod:`evento.auth.session` -- check-then-refresh on top of
    :meth:`~IdentityProvider.set_session` and
    :meth:`~IdentityProvider.refresh_session`.
    :mod:`evento.auth.login` -- interactive login flows.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import httpx
from supabase import AuthError, Client, ClientOptions, create_client

from evento.exceptions import AuthConfigMissingError
from evento.models import (
    ProviderFailure,
    ProviderResult,
    ProviderSession,
    ResolvedConfig,
    SessionGranted,
)

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Abstract identity-provider operations consumed by evento."""

    @abstractmethod
    def start_passwordless_auth(
        self, email: str, redirect_to: Optional[str] = None
    ) -> Optional[ProviderFailure]:
        """Send a magic link / one-time code to *email*.

        Returns:
            ``None`` on success, or a :class:`~evento.models.ProviderFailure`.
        """
        ...

    @abstractmethod
    def verify_one_time_code(self, email: str, code: str) -> ProviderResult:
        """Exchange an emailed one-time code for a session."""
        ...

    @abstractmethod
    def exchange_authorization_code(self, code: str) -> ProviderResult:
        """Exchange a browser-callback authorization code for a session."""
        ...

    @abstractmethod
    def set_session(self, access_token: str, refresh_token: str) -> ProviderResult:
        """Install a stored token pair and return the provider's view of it."""
        ...

    @abstractmethod
    def refresh_session(self) -> ProviderResult:
        """Rotate the tokens of the session last installed."""
        ...


ProviderFactory = Callable[[ResolvedConfig], IdentityProvider]


def require_provider_config(config: ResolvedConfig, command: str = "root") -> None:
    """Fail unless the provider URL and anonymous key are both configured.

    Raises:
        AuthConfigMissingError: If either value is missing.
    """
    if not config.supabase_url or not config.supabase_anon_key:
        raise AuthConfigMissingError(
            "Missing required configuration: EVENTO_SUPABASE_URL or "
            "EVENTO_SUPABASE_ANON_KEY.",
            command,
        )


class SupabaseIdentityProvider(IdentityProvider):
    """:class:`IdentityProvider` backed by Supabase Auth.

    Args:
        url: Supabase project URL.
        anon_key: Supabase anonymous (public) key.
        client: Pre-built client, mainly for tests.  When omitted one is
            created with persistence and auto-refresh disabled.
    """

    def __init__(self, url: str, anon_key: str, client: Optional[Client] = None) -> None:
        self._client = client or create_client(
            url,
            anon_key,
            options=ClientOptions(
                auto_refresh_token=False,
                persist_session=False,
                flow_type="pkce",
            ),
        )

    @classmethod
    def from_config(cls, config: ResolvedConfig) -> SupabaseIdentityProvider:
        """Build a provider from the resolved configuration.

        Callers must have checked that ``supabase_url`` and
        ``supabase_anon_key`` are set.
        """
        assert config.supabase_url and config.supabase_anon_key
        return cls(config.supabase_url, config.supabase_anon_key)

    def start_passwordless_auth(
        self, email: str, redirect_to: Optional[str] = None
    ) -> Optional[ProviderFailure]:
        credentials: dict[str, Any] = {"email": email}
        if redirect_to:
            credentials["options"] = {"email_redirect_to": redirect_to}
        try:
            self._client.auth.sign_in_with_otp(credentials)
        except (AuthError, httpx.HTTPError) as exc:
            logger.debug("sign_in_with_otp failed: %s", exc)
            return ProviderFailure(reason=str(exc) or type(exc).__name__)
        return None

    def verify_one_time_code(self, email: str, code: str) -> ProviderResult:
        return self._call(
            "verify_otp",
            lambda: self._client.auth.verify_otp(
                {"email": email, "token": code, "type": "email"}
            ),
        )

    def exchange_authorization_code(self, code: str) -> ProviderResult:
        return self._call(
            "exchange_code_for_session",
            lambda: self._client.auth.exchange_code_for_session({"auth_code": code}),
        )

    def set_session(self, access_token: str, refresh_token: str) -> ProviderResult:
        return self._call(
            "set_session",
            lambda: self._client.auth.set_session(access_token, refresh_token),
        )

    def refresh_session(self) -> ProviderResult:
        return self._call("refresh_session", self._client.auth.refresh_session)

    def _call(self, operation: str, fn: Callable[[], Any]) -> ProviderResult:
        """Run a Supabase auth call and fold its outcome into a tagged result."""
        try:
            response = fn()
        except (AuthError, httpx.HTTPError) as exc:
            logger.debug("%s failed: %s", operation, exc)
            return ProviderFailure(reason=str(exc) or type(exc).__name__)

        session = getattr(response, "session", None)
        if session is None:
            return ProviderFailure(reason=f"{operation} returned no session")
        return SessionGranted(session=_convert_session(session))


def _convert_session(session: Any) -> ProviderSession:
    """Map a Supabase ``Session`` onto :class:`~evento.models.ProviderSession`."""
    user = getattr(session, "user", None)
    return ProviderSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user_id=str(user.id) if user is not None else None,
    )
