"""Configuration management: storage paths, config file, and precedence resolution.

This module is the only place that reads the process environment:

* **Storage paths** -- :func:`resolve_storage_paths` computes the config
  directory (``~/.evento`` or ``$EVENTO_HOME``), the config file, the
  credential file, its backup, the lock file and the crash-log directory.
* **Config file** -- :func:`load_config_file` reads ``config.json`` into a
  :class:`~evento.models.ConfigFile`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  ``EVENTO_*`` environment variables, the selected profile and defaults into
  an immutable :class:`~evento.models.ResolvedConfig`.
* **Env files** -- :func:`load_env_files` loads ``.env.local`` and ``.env``
  through :mod:`dotenv` without overriding variables that are already set.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a partially written file.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from evento.exceptions import UsageError
from evento.models import ConfigFile, ProfileConfig, ResolvedConfig, StoragePaths

DEFAULT_API_BASE_URL = "https://evento.so/api"
DEFAULT_PROFILE = "default"

_APP_DIR_NAME = ".evento"
_CONFIG_FILENAME = "config.json"
_ENV_FILES = (".env.local", ".env")


# --- Storage paths ---


def resolve_storage_paths(
    config_path_override: Optional[str] = None,
    home: Optional[str] = None,
) -> StoragePaths:
    """Compute every on-disk location used by the CLI.

    Args:
        config_path_override: Explicit config file path
            (``$EVENTO_CONFIG_PATH``); resolved to an absolute path.
        home: Directory holding the CLI state (``$EVENTO_HOME``).  Defaults
            to ``~/.evento``.

    Returns:
        The resolved :class:`~evento.models.StoragePaths`.  Nothing is
        created on disk.
    """
    config_dir = Path(home).expanduser() if home else Path.home() / _APP_DIR_NAME
    if config_path_override:
        config_path = Path(config_path_override).expanduser().resolve()
    else:
        config_path = config_dir / _CONFIG_FILENAME
    return StoragePaths(
        config_dir=config_dir,
        config_path=config_path,
        credentials_path=config_dir / "credentials.json",
        credentials_backup_path=config_dir / "credentials.json.bak",
        lock_path=config_dir / "credentials.lock",
        logs_dir=config_dir / "logs",
    )


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  When *mode* is
    given it is applied to the temp file before any content is written and
    re-applied to *path* after the rename.  On any failure the temp file is
    cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
        tmp_path = None
        if mode is not None:
            os.chmod(path, mode)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config file ---


def load_config_file(path: Path) -> ConfigFile:
    """Load ``config.json``.

    Returns:
        The parsed :class:`~evento.models.ConfigFile`, or an empty one when
        the file does not exist.

    Raises:
        UsageError: If the file contains invalid JSON or an invalid shape.
    """
    if not path.is_file():
        return ConfigFile()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise UsageError(
            f"Invalid configuration file: {path} contains invalid JSON"
        ) from exc
    try:
        return ConfigFile.model_validate(data)
    except ValidationError as exc:
        raise UsageError(
            f"Invalid configuration file: {path} does not match the expected shape"
        ) from exc


def _parse_integer(
    value: Optional[str],
    fallback: int,
    minimum: int,
    maximum: int,
    key: str,
) -> int:
    """Parse *value* as an integer in ``[minimum, maximum]``, or return *fallback*."""
    if value is None:
        return fallback
    try:
        parsed = int(str(value).strip(), 10)
    except ValueError:
        parsed = None
    if parsed is None or parsed < minimum or parsed > maximum:
        raise UsageError(
            f"Invalid configuration value for {key}: expected {minimum}-{maximum}, "
            f"received {value}"
        )
    return parsed


def _first_set(*values: Optional[object]) -> Optional[str]:
    """Return the first value that is not ``None``, stringified."""
    for value in values:
        if value is not None:
            return str(value)
    return None


# --- Precedence resolution ---


def resolve_config(
    cli_profile: Optional[str] = None,
    cli_base_url: Optional[str] = None,
    cli_format: Optional[str] = None,
    is_stdout_tty: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> ResolvedConfig:
    """Resolve the effective configuration for this invocation.

    Precedence (high to low):
        1. CLI flags (``cli_profile``, ``cli_base_url``, ``cli_format``)
        2. Environment variables (``EVENTO_*``)
        3. The selected profile in ``config.json``
        4. Defaults

    Args:
        cli_profile: ``--profile`` value.
        cli_base_url: ``--base-url`` value.
        cli_format: ``--format`` value (``json`` or ``text``).
        is_stdout_tty: Whether stdout is interactive; picks the default
            output format (``text`` on a TTY, ``json`` otherwise).
        environ: Environment mapping; defaults to :data:`os.environ`.

    Returns:
        The frozen :class:`~evento.models.ResolvedConfig`.

    Raises:
        UsageError: For invalid JSON in the config file, an unknown profile,
            an invalid output format or an out-of-range numeric setting.
    """
    env = os.environ if environ is None else environ
    paths = resolve_storage_paths(
        env.get("EVENTO_CONFIG_PATH") or None,
        env.get("EVENTO_HOME") or None,
    )
    config = load_config_file(paths.config_path)

    profile = (
        cli_profile
        or env.get("EVENTO_PROFILE")
        or config.active_profile
        or DEFAULT_PROFILE
    )

    if config.profiles is not None and profile not in config.profiles:
        names = ", ".join(config.profiles) or "none"
        raise UsageError(f"Invalid profile: {profile}. Available profiles: {names}")
    selected = (config.profiles or {}).get(profile) or ProfileConfig()

    raw_format = cli_format or env.get("EVENTO_FORMAT")
    if raw_format and raw_format not in ("json", "text"):
        raise UsageError(
            "Invalid configuration value for EVENTO_FORMAT: expected json|text, "
            f"received {raw_format}"
        )
    output_format = raw_format or ("text" if is_stdout_tty else "json")

    api_base_url = (
        cli_base_url
        or env.get("EVENTO_API_BASE_URL")
        or selected.api_base_url
        or DEFAULT_API_BASE_URL
    ).rstrip("/")

    timeout_ms = _parse_integer(
        _first_set(env.get("EVENTO_API_TIMEOUT_MS"), selected.timeout_ms),
        15000, 1000, 60000, "EVENTO_API_TIMEOUT_MS",
    )
    retry_attempts = _parse_integer(
        _first_set(env.get("EVENTO_API_RETRY_ATTEMPTS"), selected.retry_attempts),
        2, 0, 5, "EVENTO_API_RETRY_ATTEMPTS",
    )
    retry_delay_ms = _parse_integer(
        _first_set(env.get("EVENTO_API_RETRY_DELAY_MS"), selected.retry_delay_ms),
        250, 50, 5000, "EVENTO_API_RETRY_DELAY_MS",
    )

    return ResolvedConfig(
        profile=profile,
        output_format=output_format,
        api_base_url=api_base_url,
        supabase_url=env.get("EVENTO_SUPABASE_URL") or selected.supabase_url,
        supabase_anon_key=env.get("EVENTO_SUPABASE_ANON_KEY") or selected.supabase_anon_key,
        timeout_ms=timeout_ms,
        retry_attempts=retry_attempts,
        retry_delay_ms=retry_delay_ms,
        paths=paths,
    )


# --- Env files ---


def load_env_files(search_dirs: Optional[list[Path]] = None) -> list[Path]:
    """Load ``.env.local`` then ``.env`` from each directory in *search_dirs*.

    Variables already present in the environment are never overridden, so
    earlier files win over later ones.

    Args:
        search_dirs: Directories to search, defaulting to the current
            working directory.  Duplicates are visited once.

    Returns:
        The env files that were found and loaded, in load order.
    """
    loaded: list[Path] = []
    seen: set[Path] = set()
    for directory in search_dirs or [Path.cwd()]:
        directory = directory.resolve()
        if directory in seen:
            continue
        seen.add(directory)
        for name in _ENV_FILES:
            candidate = directory / name
            if candidate.is_file():
                load_dotenv(candidate, override=False)
                loaded.append(candidate)
    return loaded
