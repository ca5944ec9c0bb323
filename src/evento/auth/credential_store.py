"""Persistent, lock-guarded credential store.

A single JSON record lives at ``~/.evento/credentials.json`` and belongs to
whichever profile last wrote it.  Writes are atomic (temp file in the same
directory, ``0o600`` before any content is written, ``os.replace``) and run
under :class:`~evento.auth.lock.FileLock` so concurrent invocations never
interleave.  After every successful write an identical copy is written to
``credentials.json.bak``; that backup is the only recovery source when the
primary file turns out to hold invalid JSON.

Reads refuse to trust a file whose mode is anything but ``0o600``.

See Also:
    :class:`~evento.auth.session.SessionRefresher` -- writes renewed
    sessions back through this store.
"""

from __future__ import annotations

import json
import os
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from evento.auth.lock import DEFAULT_LOCK_TIMEOUT, FileLock
from evento.config import atomic_write
from evento.exceptions import (
    CorruptCredentialsError,
    InsecurePermissionsError,
    InvalidJsonError,
)
from evento.models import Credentials, StoragePaths

CREDENTIALS_FILE_MODE = 0o600
CONFIG_DIR_MODE = 0o700

_COMMAND = "storage"
_REQUIRED_KEYS = frozenset(
    {
        "version",
        "profile",
        "access_token",
        "refresh_token",
        "expires_at",
        "token_type",
        "updated_at",
    }
)

_TIMESTAMP_KEYS = ("expires_at", "updated_at")


class _UnparsableJson(Exception):
    """Internal signal: file content is not JSON at all."""


def parse_credentials(raw: bytes) -> Credentials:
    """Parse and validate a stored credential record.

    Raises:
        _UnparsableJson: If *raw* is not decodable JSON.
        CorruptCredentialsError: If the JSON does not match the schema.
    """
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise _UnparsableJson(str(exc)) from exc

    if not isinstance(data, dict) or not _REQUIRED_KEYS.issubset(data):
        raise CorruptCredentialsError("Failed to read credentials", _COMMAND)
    if any(not isinstance(data[key], str) for key in _TIMESTAMP_KEYS):
        raise CorruptCredentialsError("Failed to read credentials", _COMMAND)
    try:
        return Credentials.model_validate(data)
    except ValidationError as exc:
        raise CorruptCredentialsError("Failed to read credentials", _COMMAND) from exc


class CredentialStore:
    """Read, write, and clear the stored credential record.

    Args:
        paths: Resolved storage locations for this invocation.
        lock_timeout: Total seconds a mutating call waits for the lock.

    Example::

        store = CredentialStore(config.paths)
        store.write(Credentials(profile="default", access_token="a",
                                refresh_token="r", expires_at=expiry))
        creds = store.read("default")
    """

    def __init__(
        self,
        paths: StoragePaths,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self._paths = paths
        self._lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        """The filesystem path of the primary credential file."""
        return self._paths.credentials_path

    @property
    def backup_path(self) -> Path:
        """The filesystem path of the backup credential file."""
        return self._paths.credentials_backup_path

    def read(self, profile: str) -> Optional[Credentials]:
        """Load the stored record for *profile*.

        Returns:
            The validated :class:`~evento.models.Credentials`, or ``None`` if
            no file exists or the record belongs to another profile.

        Raises:
            InsecurePermissionsError: If the file mode is not ``0o600``.
            InvalidJsonError: If the file is not JSON and the backup cannot
                restore it.
            CorruptCredentialsError: If the JSON fails schema validation.
        """
        try:
            _require_owner_only(self.path)
        except FileNotFoundError:
            return None

        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return None

        try:
            credentials = parse_credentials(raw)
        except _UnparsableJson:
            return self._restore_from_backup(profile)

        if credentials.profile != profile:
            return None
        return credentials

    def write(self, credentials: Credentials) -> Credentials:
        """Persist *credentials* atomically and refresh the backup copy.

        ``updated_at`` is stamped with the current time when unset.

        Returns:
            The record exactly as written.

        Raises:
            LockTimeoutError: If the store lock cannot be acquired.
            OSError: If the files cannot be written.
        """
        self._ensure_storage_dir()
        with FileLock(self._paths.lock_path, self._lock_timeout):
            if credentials.updated_at is None:
                credentials = credentials.model_copy(
                    update={"updated_at": datetime.now(timezone.utc)}
                )
            text = json.dumps(
                credentials.model_dump(mode="json", exclude_none=True), indent=2
            ) + "\n"
            atomic_write(self.path, text, mode=CREDENTIALS_FILE_MODE)
            atomic_write(self.backup_path, text, mode=CREDENTIALS_FILE_MODE)
        return credentials

    def clear(self, profile: str) -> bool:
        """Remove the stored record if it belongs to *profile*.

        The backup file is left in place.

        Returns:
            ``True`` if a record was removed, ``False`` if there was nothing
            to clear.
        """
        if self.read(profile) is None:
            return False
        with FileLock(self._paths.lock_path, self._lock_timeout):
            self.path.unlink(missing_ok=True)
        return True

    def _ensure_storage_dir(self) -> None:
        self._paths.config_dir.mkdir(parents=True, exist_ok=True, mode=CONFIG_DIR_MODE)

    def _restore_from_backup(self, profile: str) -> Optional[Credentials]:
        """Rewrite the primary file from a valid backup and return it."""
        try:
            _require_owner_only(self.backup_path)
            restored = parse_credentials(self.backup_path.read_bytes())
        except (OSError, _UnparsableJson, CorruptCredentialsError) as exc:
            raise InvalidJsonError(
                "Failed to recover credentials: invalid_json",
                _COMMAND,
                details={"path": str(self.path), "backup_path": str(self.backup_path)},
            ) from exc

        self.write(restored)
        return restored if restored.profile == profile else None


def _require_owner_only(path: Path) -> None:
    """Raise unless *path* has mode ``0o600``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        InsecurePermissionsError: For any other mode.
    """
    mode = stat.S_IMODE(os.stat(path).st_mode)
    if mode != CREDENTIALS_FILE_MODE:
        raise InsecurePermissionsError(
            f"Credential file mode is insecure. Run chmod 600 {path}.",
            _COMMAND,
            details={"path": str(path), "mode": oct(mode)},
        )
