"""Synchronous HTTP client for the evento API with auth and retry.

This module provides :class:`ApiClient`, the request engine used by every
command that talks to the API.  It wraps :class:`httpx.Client` and layers
on:

- **Path validation** -- paths must start with ``/`` and may not contain
  ``..`` segments; violations are a :class:`~evento.exceptions.UsageError`
  raised before any traffic is sent.
- **Auth injection** -- a bearer token obtained from
  :class:`~evento.auth.session.SessionRefresher`, which transparently
  refreshes near-expiry sessions.
- **Retry with backoff** -- retries transient HTTP statuses
  (:data:`RETRYABLE_STATUS`) and transport failures with linear, jittered
  delay (``retry_delay_ms * attempt + 0..99 ms``).
- **Error classification** -- every terminal failure is raised as a typed
  :class:`~evento.exceptions.EventoError` carrying status, request id and
  enough context to reproduce the call.
"""

from __future__ import annotations

import random
import re
import time
from typing import Any, Optional
from urllib.parse import unquote

import httpx

from evento.auth.credential_store import CredentialStore
from evento.auth.session import SessionRefresher
from evento.client.response import UNPARSABLE, declares_failure, decode_body, failure_message
from evento.exceptions import (
    HttpRequestFailedError,
    NetworkError,
    RequestTimeoutError,
    ResponseParseFailedError,
    UsageError,
)
from evento.models import ResolvedConfig
from evento.output import get_output

RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})
"""HTTP statuses treated as transient."""

_JITTER_MS = 100
_SEGMENT_SEPARATORS = re.compile(r"[/\\]")


def validate_path(path: str, command: str = "api") -> None:
    """Reject request paths that are relative or contain ``..`` segments.

    The check runs on the percent-decoded path so ``%2e%2e`` is caught too.

    Raises:
        UsageError: If *path* is invalid.
    """
    if not path.startswith("/"):
        raise UsageError(f'Invalid path: "{path}". Path must begin with /.', command)
    segments = _SEGMENT_SEPARATORS.split(unquote(path.split("?", 1)[0]))
    if ".." in segments:
        raise UsageError(
            f'Invalid path: "{path}". Path traversal sequences are not allowed.',
            command,
        )


def encode_query(query: Optional[dict[str, Any]]) -> dict[str, str]:
    """Drop ``None`` values and stringify the rest (booleans as ``true``/``false``)."""
    encoded: dict[str, str] = {}
    for key, value in (query or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


class ApiClient:
    """Synchronous client for evento API calls.

    Must be used as a context manager so that the underlying transport is
    opened and closed.

    Args:
        config: Resolved configuration (base URL, timeout, retry budget).
        refresher: Source of valid credentials for authenticated calls.
            Defaults to a :class:`~evento.auth.session.SessionRefresher`
            over the configured credential store.
        transport: Optional :class:`httpx.BaseTransport`, mainly for tests
            (``httpx.MockTransport``).
        command: Command name reported in errors.

    Example::

        with ApiClient(config, command="events list") as client:
            envelope = client.get("/v1/events", query={"limit": 10})
    """

    def __init__(
        self,
        config: ResolvedConfig,
        refresher: Optional[SessionRefresher] = None,
        transport: Optional[httpx.BaseTransport] = None,
        command: str = "api",
    ) -> None:
        self._config = config
        self._refresher = refresher
        self._transport = transport
        self._command = command
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> ApiClient:
        self._client = httpx.Client(
            timeout=self._config.timeout_ms / 1000,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def execute(
        self,
        method: str,
        path: str,
        *,
        query: Optional[dict[str, Any]] = None,
        body: Any = None,
        requires_auth: bool = True,
        command: Optional[str] = None,
    ) -> Any:
        """Perform an API call and return the decoded JSON envelope.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE, HEAD).
            path: Absolute API path, appended to the configured base URL.
            query: Query parameters; ``None`` values are omitted.
            body: JSON-serialisable request body.
            requires_auth: Attach ``Authorization: Bearer <token>``.
            command: Command name for error context; defaults to the one
                given at construction.

        Returns:
            The decoded response body; ``None`` for a 204 or ``HEAD`` response.

        Raises:
            UsageError: Invalid *path*.
            HttpRequestFailedError: Non-2xx or ``success: false`` response.
            ResponseParseFailedError: Successful status with a non-JSON or
                unexpectedly empty body.
            RequestTimeoutError: The final attempt exceeded the timeout.
            NetworkError: Any other transport failure.
            EventoError: Auth failures from the session refresher, unchanged.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        command = command or self._command
        method = method.upper()
        validate_path(path, command)

        headers: dict[str, str] = {"Accept": "application/json"}
        if requires_auth:
            credentials = self._get_refresher().get_valid_credentials()
            headers["Authorization"] = f"Bearer {credentials.access_token}"

        request = self._client.build_request(
            method,
            f"{self._config.api_base_url}{path}",
            params=encode_query(query),
            headers=headers,
            json=body,
        )
        return self._execute_with_retry(request, path, command)

    def get(self, path: str, **kwargs: Any) -> Any:
        """Send a GET request. See :meth:`execute`."""
        return self.execute("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Any:
        """Send a POST request. See :meth:`execute`."""
        return self.execute("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Any:
        """Send a PUT request. See :meth:`execute`."""
        return self.execute("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Any:
        """Send a PATCH request. See :meth:`execute`."""
        return self.execute("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Any:
        """Send a DELETE request. See :meth:`execute`."""
        return self.execute("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _get_refresher(self) -> SessionRefresher:
        if self._refresher is None:
            self._refresher = SessionRefresher(
                self._config, CredentialStore(self._config.paths), command=self._command
            )
        return self._refresher

    def _execute_with_retry(self, request: httpx.Request, path: str, command: str) -> Any:
        """Send *request*, retrying transient failures with linear backoff."""
        assert self._client is not None

        max_attempts = self._config.retry_attempts + 1
        output = get_output()

        for attempt in range(1, max_attempts + 1):
            context = {
                "method": request.method,
                "url": str(request.url),
                "attempt": attempt,
                "max_attempts": max_attempts,
            }
            endpoint = f"{request.method} {path}"

            try:
                response = self._client.send(request)
            except httpx.TimeoutException as exc:
                if attempt < max_attempts:
                    output.debug(
                        f"Request timed out, retrying (attempt {attempt}/{max_attempts})"
                    )
                    self._backoff(attempt)
                    continue
                raise RequestTimeoutError(
                    f"Request timed out after {self._config.timeout_ms} ms",
                    command,
                    endpoint=endpoint,
                    retryable=True,
                    details=context,
                ) from exc
            except httpx.NetworkError as exc:
                if attempt < max_attempts:
                    output.debug(
                        f"Connection error: {exc}, retrying (attempt {attempt}/{max_attempts})"
                    )
                    self._backoff(attempt)
                    continue
                raise NetworkError(
                    str(exc) or "Network request failed",
                    command,
                    endpoint=endpoint,
                    retryable=True,
                    details=context,
                ) from exc
            except httpx.TransportError as exc:
                raise NetworkError(
                    str(exc) or "Network request failed",
                    command,
                    endpoint=endpoint,
                    details=context,
                ) from exc

            request_id = response.headers.get("x-request-id")
            body = decode_body(response)

            if not response.is_success or declares_failure(body):
                retryable = response.status_code in RETRYABLE_STATUS
                if retryable and attempt < max_attempts:
                    output.debug(
                        f"Server returned {response.status_code}, retrying "
                        f"(attempt {attempt}/{max_attempts})"
                    )
                    self._backoff(attempt)
                    continue
                raise HttpRequestFailedError(
                    failure_message(response, None if body is UNPARSABLE else body),
                    command,
                    endpoint=endpoint,
                    status=response.status_code,
                    retryable=retryable,
                    request_id=request_id,
                    details=context,
                )

            if body is UNPARSABLE or (body is None and not _may_be_empty(response)):
                raise ResponseParseFailedError(
                    "HTTP response parse failed",
                    command,
                    endpoint=endpoint,
                    status=response.status_code,
                    request_id=request_id,
                    details=context,
                )

            output.debug(f"{endpoint} -> {response.status_code} (attempt {attempt})")
            return body

        raise NetworkError("Unexpected request failure", command)  # pragma: no cover

    def _backoff(self, attempt: int) -> None:
        delay_ms = self._config.retry_delay_ms * attempt + random.randint(0, _JITTER_MS - 1)
        time.sleep(delay_ms / 1000)


def _may_be_empty(response: httpx.Response) -> bool:
    return response.status_code == 204 or response.request.method == "HEAD"
