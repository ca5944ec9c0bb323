"""Cross-process file lock guarding the credential store.

The lock is a sentinel file created with ``O_CREAT | O_EXCL``: whichever
process creates it owns the lock until it removes the file.  Contenders back
off for a short randomized interval and retry until a total wait bound,
then fail with :class:`~evento.exceptions.LockTimeoutError` instead of
blocking forever.

Example::

    with FileLock(paths.lock_path):
        ...  # exclusive section
"""

from __future__ import annotations

import logging
import os
import random
import time
from pathlib import Path
from types import TracebackType
from typing import Optional

from evento.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 5.0
_BACKOFF_MIN = 0.100
_BACKOFF_MAX = 0.150


class FileLock:
    """Exclusive, fail-fast lock backed by a lock file.

    Args:
        path: Location of the lock file.  Its directory must exist.
        timeout: Total seconds to keep retrying before giving up.
        command: Command name reported in the timeout error.
    """

    def __init__(
        self,
        path: Path,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        command: str = "storage",
    ) -> None:
        self._path = path
        self._timeout = timeout
        self._command = command
        self._fd: Optional[int] = None

    @property
    def path(self) -> Path:
        """The filesystem path of the lock file."""
        return self._path

    @property
    def is_held(self) -> bool:
        """Whether this instance currently owns the lock."""
        return self._fd is not None

    def acquire(self) -> None:
        """Create the lock file, retrying with jittered backoff.

        Raises:
            LockTimeoutError: If the file still exists after ``timeout``
                seconds of retrying.
            OSError: For any failure other than the file already existing.
        """
        deadline = time.monotonic() + self._timeout
        attempts = 0
        while True:
            attempts += 1
            try:
                self._fd = os.open(
                    self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600
                )
            except FileExistsError:
                if time.monotonic() >= deadline:
                    break
                logger.debug("Lock %s busy (attempt %d), backing off", self._path, attempts)
                time.sleep(random.uniform(_BACKOFF_MIN, _BACKOFF_MAX))
                continue
            return

        raise LockTimeoutError(
            "Credential lock timeout: another evento process is holding "
            f"{self._path}. Retry, or remove the file if no other process is running.",
            self._command,
            details={"lock_path": str(self._path), "waited_seconds": self._timeout},
        )

    def release(self) -> None:
        """Close and remove the lock file.  Safe to call when not held."""
        if self._fd is None:
            return
        try:
            os.close(self._fd)
        finally:
            self._fd = None
            self._path.unlink(missing_ok=True)

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()
