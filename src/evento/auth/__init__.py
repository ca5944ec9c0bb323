"""Authentication and session management for evento.

- :class:`CredentialStore` -- lock-guarded, owner-only persistence of the
  credential record, with backup-based recovery.
- :class:`FileLock` -- the cross-process lock serializing store writes.
- :class:`IdentityProvider` / :class:`SupabaseIdentityProvider` -- the
  five provider operations, returning tagged results.
- :class:`SessionRefresher` -- check-then-refresh of near-expiry sessions.
- :func:`login` -- interactive OTP and browser-callback sign-in.

Typical usage::

    from evento.auth import CredentialStore, SessionRefresher

    refresher = SessionRefresher(config, CredentialStore(config.paths))
    token = refresher.get_valid_credentials().access_token
"""

from evento.auth.credential_store import CredentialStore
from evento.auth.lock import FileLock
from evento.auth.login import LoginResult, login
from evento.auth.provider import IdentityProvider, SupabaseIdentityProvider
from evento.auth.session import SessionRefresher

__all__ = [
    "CredentialStore",
    "FileLock",
    "IdentityProvider",
    "LoginResult",
    "SessionRefresher",
    "SupabaseIdentityProvider",
    "login",
]
