"""Canonical Pydantic models shared across evento modules.

The models fall into three groups:

**Configuration** -- :class:`ProfileConfig` and :class:`ConfigFile` mirror the
JSON stored at ``~/.evento/config.json`` (camelCase keys on disk);
:class:`StoragePaths` and :class:`ResolvedConfig` are the immutable values
built once per invocation by :func:`evento.config.resolve_config` and passed
down to every layer.

**Credentials** -- :class:`Credentials` is the single record persisted by
:class:`~evento.auth.credential_store.CredentialStore`.

**Identity provider results** -- :class:`ProviderSession` plus the tagged
union :data:`ProviderResult` (:class:`SessionGranted` or
:class:`ProviderFailure`) returned by
:class:`~evento.auth.provider.IdentityProvider` operations.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

OutputFormatName = Literal["json", "text"]


# --- Configuration ---


class StoragePaths(BaseModel):
    """On-disk locations used by the CLI.

    Produced by :func:`evento.config.resolve_storage_paths`.
    """

    model_config = ConfigDict(frozen=True)

    config_dir: Path
    config_path: Path
    credentials_path: Path
    credentials_backup_path: Path
    lock_path: Path
    logs_dir: Path


class ProfileConfig(BaseModel):
    """Per-profile settings from the config file.

    Every field is optional; unset values fall through to environment
    variables and built-in defaults during resolution.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    api_base_url: Optional[str] = Field(default=None, alias="apiBaseUrl")
    supabase_url: Optional[str] = Field(default=None, alias="supabaseUrl")
    supabase_anon_key: Optional[str] = Field(default=None, alias="supabaseAnonKey")
    timeout_ms: Optional[int] = Field(default=None, alias="timeoutMs")
    retry_attempts: Optional[int] = Field(default=None, alias="retryAttempts")
    retry_delay_ms: Optional[int] = Field(default=None, alias="retryDelayMs")


class ConfigFile(BaseModel):
    """Top-level structure of ``~/.evento/config.json``.

    Example::

        {
          "version": 1,
          "activeProfile": "staging",
          "profiles": {"staging": {"apiBaseUrl": "https://staging.evento.so/api"}}
        }
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: Optional[int] = None
    active_profile: Optional[str] = Field(default=None, alias="activeProfile")
    profiles: Optional[dict[str, ProfileConfig]] = None


class ResolvedConfig(BaseModel):
    """Effective configuration for one CLI invocation.

    Read-only: the core subsystems receive this value by parameter and
    never consult the process environment themselves.
    """

    model_config = ConfigDict(frozen=True)

    profile: str = "default"
    output_format: OutputFormatName = "json"
    api_base_url: str
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    timeout_ms: int = 15000
    retry_attempts: int = 2
    retry_delay_ms: int = 250
    paths: StoragePaths


# --- Credentials ---


class Credentials(BaseModel):
    """The session record persisted for the active profile.

    ``updated_at`` is stamped by the store at write time when the caller
    leaves it unset.  Naive timestamps are interpreted as UTC.
    """

    version: Literal[1] = 1
    profile: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: Literal["bearer"] = "bearer"
    updated_at: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None

    def seconds_until_expiry(self, now: Optional[datetime] = None) -> int:
        """Whole seconds until :attr:`expires_at`; negative once expired."""
        return seconds_until(self.expires_at, now)


def seconds_until(moment: datetime, now: Optional[datetime] = None) -> int:
    """Return ``floor(moment - now)`` in seconds, treating naive values as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return math.floor((moment - now).total_seconds())


# --- Identity provider ---


class ProviderSession(BaseModel):
    """A session as returned by the identity provider.

    ``expires_at`` is in epoch seconds and may be omitted by the provider.
    """

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None
    user_id: Optional[str] = None


class SessionGranted(BaseModel):
    """Successful provider call that produced a session."""

    kind: Literal["session"] = "session"
    session: ProviderSession


class ProviderFailure(BaseModel):
    """Failed provider call, with the provider's reason."""

    kind: Literal["failure"] = "failure"
    reason: str


ProviderResult = Annotated[
    Union[SessionGranted, ProviderFailure], Field(discriminator="kind")
]
