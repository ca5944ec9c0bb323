"""Request body parsing for ``--data`` and ``--data-file``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from evento.exceptions import UsageError

MISSING_PAYLOAD_MESSAGE = (
    "Missing required payload: provide --data <json> or --data-file <path>."
)


def parse_json_payload(text: str, command: str) -> Any:
    """Parse *text* as JSON and require an object or array.

    Raises:
        UsageError: Invalid JSON, or a scalar/null document.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise UsageError(f"Invalid argument: payload is not valid JSON ({exc.msg}).", command) from exc
    if not isinstance(parsed, (dict, list)):
        raise UsageError("Invalid argument: JSON payload must be an object or array.", command)
    return parsed


def resolve_payload(
    command: str,
    data: Optional[str] = None,
    data_file: Optional[Path] = None,
    required: bool = False,
) -> Any:
    """Return the request body given by ``--data`` or ``--data-file``.

    Args:
        command: Command name for error context.
        data: Inline JSON.
        data_file: Path to a file holding JSON.
        required: Fail when neither option is given.

    Returns:
        The parsed object or array, or ``None`` when no payload was given
        and none is required.

    Raises:
        UsageError: Both options given, payload missing when required, an
            unreadable file, or invalid JSON.
    """
    if data is not None and data_file is not None:
        raise UsageError(
            "Conflicting flags: --data and --data-file cannot be used together.", command
        )
    if data is None and data_file is None:
        if required:
            raise UsageError(MISSING_PAYLOAD_MESSAGE, command)
        return None
    if data is not None:
        return parse_json_payload(data, command)

    try:
        raw = Path(data_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise UsageError(
            f'Invalid argument: --data-file path "{data_file}" is not readable.', command
        ) from exc
    return parse_json_payload(raw, command)
