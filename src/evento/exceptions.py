"""Exception hierarchy for evento.

Every failure the CLI can report is an :class:`EventoError`.  Each subclass
fixes a stable machine-readable ``code`` and ``category`` plus the process
``exit_code``; instances carry the HTTP ``status`` (if any), whether the
condition is ``retryable``, the server ``request_id`` and a ``details``
mapping that always names the ``command`` and ``endpoint``.

The top-level handler in :func:`evento.app.main` renders the error through
:meth:`EventoError.to_envelope` and exits with ``exit_code``.

Subclass hierarchy::

    EventoError (runtime_error, exit 1)
    +-- UsageError                  (exit 2)
    +-- AuthRequiredError
    +-- AuthConfigMissingError
    +-- AuthExpiredError
    +-- InsecurePermissionsError
    +-- InvalidJsonError
    +-- CorruptCredentialsError
    +-- LockTimeoutError
    +-- HttpRequestFailedError
    +-- ResponseParseFailedError
    +-- NetworkError
    |   +-- RequestTimeoutError
    +-- OtpVerificationFailedError
    +-- TokenExchangeFailedError
    +-- CallbackTimeoutError
    +-- CallbackPayloadInvalidError
    +-- CallbackListenerFailedError
"""

from __future__ import annotations

from typing import Any, Optional

from evento.exit_codes import EXIT_INVALID_USAGE, EXIT_RUNTIME_FAILURE


class EventoError(Exception):
    """Base exception for all evento errors.

    Args:
        message: Human-readable error description.
        command: Name of the command that failed (e.g. ``"events list"``).
        endpoint: ``"METHOD /path"`` for request failures, else ``None``.
        status: HTTP status code, when a response was received.
        retryable: Whether the condition was considered transient.
        request_id: Value of the server's ``x-request-id`` header.
        details: Extra context merged into the payload's ``details``.
    """

    code: str = "runtime_error"
    category: str = "runtime"
    exit_code: int = EXIT_RUNTIME_FAILURE

    def __init__(
        self,
        message: str,
        command: str = "root",
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
        retryable: bool = False,
        request_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.retryable = retryable
        self.request_id = request_id
        self.details: dict[str, Any] = {"command": command, "endpoint": endpoint}
        self.details.update(details or {})

    @property
    def command(self) -> str:
        return self.details["command"]

    def to_payload(self) -> dict[str, Any]:
        """Return the machine-readable error body."""
        return {
            "code": self.code,
            "category": self.category,
            "status": self.status,
            "retryable": self.retryable,
            "requestId": self.request_id,
            "details": dict(self.details),
        }

    def to_envelope(self) -> dict[str, Any]:
        """Return the failure envelope printed in JSON output mode."""
        return {
            "success": False,
            "message": self.message,
            "data": None,
            "error": self.to_payload(),
        }


class UsageError(EventoError):
    """Raised for caller mistakes: bad paths, conflicting flags, bad config values."""

    code = "usage_error"
    category = "usage_error"
    exit_code = EXIT_INVALID_USAGE

    def __init__(self, message: str, command: str = "root", **kwargs: Any) -> None:
        details = {"message": message}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(message, command, details=details, **kwargs)


class AuthRequiredError(EventoError):
    """Raised when no stored session exists for the active profile."""

    code = "auth_required"
    category = "auth"


class AuthConfigMissingError(EventoError):
    """Raised when a refresh is needed but the identity-provider URL or key is absent."""

    code = "auth_config_missing"
    category = "auth"


class AuthExpiredError(EventoError):
    """Raised when the provider rejects the stored refresh token."""

    code = "auth_expired"
    category = "auth"


class InsecurePermissionsError(EventoError):
    """Raised when the credential file is readable or writable by anyone but its owner."""

    code = "credentials_permissions_invalid"
    category = "auth"


class InvalidJsonError(EventoError):
    """Raised when the credential file is unparsable and no valid backup exists."""

    code = "invalid_json"
    category = "parse"


class CorruptCredentialsError(EventoError):
    """Raised when the credential file is valid JSON but fails schema validation."""

    code = "corrupt_credentials"
    category = "auth"


class LockTimeoutError(EventoError):
    """Raised when the credential lock cannot be acquired within the wait bound."""

    code = "lock_contention_refresh_failed"
    category = "auth"


class HttpRequestFailedError(EventoError):
    """Raised on a non-2xx response or an envelope declaring ``success: false``."""

    code = "HTTP_REQUEST_FAILED"
    category = "http"


class ResponseParseFailedError(EventoError):
    """Raised when a successful response body is not valid JSON."""

    code = "HTTP_RESPONSE_PARSE_FAILED"
    category = "parse"


class NetworkError(EventoError):
    """Raised on transport-level failures (reset, refused, DNS, socket errors)."""

    code = "network_error"
    category = "network"


class RequestTimeoutError(NetworkError):
    """Raised when a request attempt exceeds the configured deadline."""

    code = "request_timeout"
    category = "timeout"


class OtpVerificationFailedError(EventoError):
    """Raised when the one-time code cannot be sent or is rejected."""

    code = "otp_verification_failed"
    category = "auth"


class TokenExchangeFailedError(EventoError):
    """Raised when the browser callback code cannot be exchanged for a session."""

    code = "token_exchange_failed"
    category = "auth"


class CallbackTimeoutError(EventoError):
    """Raised when the browser callback does not arrive in time."""

    code = "callback_timeout"
    category = "auth"


class CallbackPayloadInvalidError(EventoError):
    """Raised when the browser callback carries an ``error`` instead of a ``code``."""

    code = "callback_payload_invalid"
    category = "auth"


class CallbackListenerFailedError(EventoError):
    """Raised when the loopback callback server cannot be started."""

    code = "callback_listener_failed"
    category = "auth"
