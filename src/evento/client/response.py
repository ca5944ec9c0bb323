"""Response decoding helpers shared by the request engine.

The evento API wraps payloads in an envelope of the form
``{"success": bool, "message": str, "data": ...}``.  These helpers decode a
:class:`httpx.Response` body, detect envelopes that declare a logical
failure even on a 2xx status, and pick the message to report.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

UNPARSABLE: Any = object()
"""Sentinel returned by :func:`decode_body` when the body is not JSON."""


def decode_body(response: httpx.Response) -> Any:
    """Decode the body of *response* as JSON.

    Returns:
        The decoded value, ``None`` for an empty body, or :data:`UNPARSABLE`
        when the content is not valid JSON.
    """
    if not response.content.strip():
        return None
    try:
        return json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return UNPARSABLE


def declares_failure(body: Any) -> bool:
    """Whether *body* is an envelope carrying ``"success": false``."""
    return isinstance(body, dict) and body.get("success") is False


def failure_message(response: httpx.Response, body: Any) -> str:
    """Message for a failed response.

    Prefers the envelope's ``message``; otherwise synthesizes one from the
    status line, e.g. ``HTTP 404 Not Found``.
    """
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return f"HTTP {response.status_code} {response.reason_phrase}".rstrip()
