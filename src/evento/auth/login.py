"""Interactive sign-in: one-time code and browser callback.

Two flows create the first credential record for a profile:

1. **OTP** (``--otp``) -- the provider emails a one-time code, the user
   types it in, and the code is exchanged for a session.
2. **Browser callback** (default) -- a loopback HTTP server listens
   on ``127.0.0.1`` at a free port, the emailed magic link redirects to
   ``http://localhost:<port>/auth/callback?code=...``, and the code is
   exchanged for a session.  Any failure on this path (listener, timeout,
   malformed callback, rejected code) falls back to the OTP prompt, since
   the same email also carries the one-time code.

Either way the session is persisted through
:class:`~evento.auth.credential_store.CredentialStore`.
"""

from __future__ import annotations

import sys
import threading
import time
import webbrowser
from enum import Enum
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, NamedTuple, Optional
from urllib.parse import parse_qs, urlparse

import typer

from evento.auth.credential_store import CredentialStore
from evento.auth.provider import IdentityProvider
from evento.auth.session import credentials_from_session
from evento.exceptions import (
    CallbackListenerFailedError,
    CallbackPayloadInvalidError,
    CallbackTimeoutError,
    EventoError,
    OtpVerificationFailedError,
    TokenExchangeFailedError,
    UsageError,
)
from evento.models import Credentials, ProviderFailure, ProviderResult, ResolvedConfig
from evento.output import debug, info, warning

CALLBACK_TIMEOUT_SECONDS = 120
CALLBACK_PATH = "/auth/callback"

PromptFn = Callable[[str], str]
BrowserFn = Callable[[str], Any]


class LoginMethod(str, Enum):
    BROWSER_CALLBACK = "browser_callback"
    OTP = "otp"


class LoginResult(NamedTuple):
    method: LoginMethod
    credentials: Credentials


def _prompt_stderr(label: str) -> str:
    return typer.prompt(label, err=True)


def _open_browser_async(url: str) -> None:
    """Open *url* in a daemon thread so a slow browser never blocks the flow."""
    thread = threading.Thread(target=webbrowser.open, args=(url,), daemon=True)
    thread.start()


class CallbackListener:
    """Loopback server receiving the browser redirect.

    Requests are served until one carries a ``code`` or an ``error`` query
    parameter, or the timeout passes.  Other hits (the browser opening the
    bare callback page, favicon requests) are answered and ignored.

    Args:
        timeout: Seconds to wait for the redirect.
        command: Command name reported in errors.

    Example::

        with CallbackListener() as listener:
            send_magic_link(redirect_to=listener.redirect_uri)
            code = listener.wait_for_code()
    """

    def __init__(
        self,
        timeout: float = CALLBACK_TIMEOUT_SECONDS,
        command: str = "auth login",
    ) -> None:
        self._timeout = timeout
        self._command = command
        self._server: Optional[HTTPServer] = None
        self._result: dict[str, Optional[str]] = {"code": None, "error": None}

    @property
    def redirect_uri(self) -> str:
        assert self._server is not None, "Listener not started -- use as context manager"
        return f"http://localhost:{self._server.server_address[1]}{CALLBACK_PATH}"

    def __enter__(self) -> CallbackListener:
        result = self._result

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                url = urlparse(self.path)
                params = parse_qs(url.query)
                if url.path != CALLBACK_PATH:
                    status, body = 404, "Not found"
                elif params.get("code", [""])[0]:
                    result["code"] = params["code"][0]
                    status, body = 200, "Authentication complete. You can return to the CLI."
                elif "error" in params:
                    result["error"] = params["error"][0] or "missing_code"
                    status, body = 400, "Missing code"
                else:
                    status, body = 200, "Open the sign-in link from your email to continue."

                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(
                    f"<html><body><h2>{body}</h2></body></html>".encode("utf-8")
                )

            def log_message(self, format: str, *args: Any) -> None:
                pass

        try:
            self._server = HTTPServer(("127.0.0.1", 0), CallbackHandler)
        except OSError as exc:
            raise CallbackListenerFailedError(
                f"Callback listener failed: {exc}", self._command
            ) from exc
        self._server.timeout = self._timeout
        return self

    def __exit__(self, *args: object) -> None:
        if self._server is not None:
            self._server.server_close()
            self._server = None

    def wait_for_code(self) -> str:
        """Block until the redirect arrives and return its ``code``.

        Raises:
            CallbackTimeoutError: Nothing arrived within the timeout.
            CallbackPayloadInvalidError: The redirect carried an ``error``
                instead of a ``code``.
        """
        assert self._server is not None, "Listener not started -- use as context manager"
        info(f"Waiting for callback at {self.redirect_uri}")
        deadline = time.monotonic() + self._timeout
        while not (self._result["code"] or self._result["error"]):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._server.timeout = remaining
            self._server.handle_request()

        if self._result["code"]:
            return self._result["code"]
        if self._result["error"]:
            raise CallbackPayloadInvalidError(
                "Auth callback payload invalid",
                self._command,
                details={"error": self._result["error"]},
            )
        raise CallbackTimeoutError("Auth callback timeout", self._command)


class LoginFlow:
    """Run one interactive sign-in for the active profile.

    Args:
        config: Resolved configuration (profile name).
        store: Credential store receiving the new session.
        provider: Identity provider performing the exchanges.
        prompt: Reads a line of input for a label; defaults to
            :func:`typer.prompt` on stderr.
        open_browser: Opens a URL; defaults to :mod:`webbrowser` in a
            daemon thread.
        interactive: Whether prompting is possible; defaults to
            ``sys.stdin.isatty()``.
        callback_timeout: Seconds to wait for the browser redirect.
        command: Command name reported in errors.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        store: CredentialStore,
        provider: IdentityProvider,
        prompt: Optional[PromptFn] = None,
        open_browser: Optional[BrowserFn] = None,
        interactive: Optional[bool] = None,
        callback_timeout: float = CALLBACK_TIMEOUT_SECONDS,
        command: str = "auth login",
    ) -> None:
        self._config = config
        self._store = store
        self._provider = provider
        self._prompt = prompt or _prompt_stderr
        self._open_browser = open_browser or _open_browser_async
        self._interactive = sys.stdin.isatty() if interactive is None else interactive
        self._callback_timeout = callback_timeout
        self._command = command

    def run(self, email: Optional[str] = None, otp: bool = False) -> LoginResult:
        """Sign in and persist the session.

        Raises:
            UsageError: Missing or malformed email, or a prompt is needed in
                a non-interactive session.
            OtpVerificationFailedError: The code could not be sent or was
                rejected.
        """
        if otp and not email:
            raise UsageError("Invalid argument: --otp requires --email.", self._command)
        email = email if email is not None else self._ask("Email")
        if "@" not in email:
            raise UsageError(
                "Invalid argument: --email requires a valid email format.", self._command
            )

        if otp:
            self._send_code(email)
            return self._verify_code(email)

        try:
            with CallbackListener(self._callback_timeout, self._command) as listener:
                self._send_code(email, redirect_to=listener.redirect_uri)
                self._open_browser(listener.redirect_uri)
                code = listener.wait_for_code()
                credentials = self._persist(
                    self._provider.exchange_authorization_code(code),
                    TokenExchangeFailedError,
                    "Token exchange failed",
                )
            return LoginResult(LoginMethod.BROWSER_CALLBACK, credentials)
        except (
            CallbackListenerFailedError,
            CallbackPayloadInvalidError,
            CallbackTimeoutError,
            TokenExchangeFailedError,
        ) as exc:
            debug(f"Browser callback failed: {exc.code}")
            warning("Callback failed or timed out, falling back to OTP.")
            return self._verify_code(email)

    def _ask(self, label: str) -> str:
        if not self._interactive:
            raise UsageError(
                f"Missing required argument: {label}. Run evento auth login --help.",
                self._command,
            )
        return self._prompt(label).strip()

    def _send_code(self, email: str, redirect_to: Optional[str] = None) -> None:
        failure = self._provider.start_passwordless_auth(email, redirect_to)
        if failure is not None:
            raise OtpVerificationFailedError(failure.reason, self._command)
        info(f"Sign-in email sent to {email}.")

    def _verify_code(self, email: str) -> LoginResult:
        code = self._ask("OTP Code")
        credentials = self._persist(
            self._provider.verify_one_time_code(email, code),
            OtpVerificationFailedError,
            "OTP verification failed",
        )
        return LoginResult(LoginMethod.OTP, credentials)

    def _persist(
        self,
        result: ProviderResult,
        error_cls: type[EventoError],
        fallback_message: str,
    ) -> Credentials:
        if isinstance(result, ProviderFailure):
            raise error_cls(result.reason or fallback_message, self._command)
        credentials = credentials_from_session(self._config.profile, result.session)
        return self._store.write(credentials)


def login(
    config: ResolvedConfig,
    store: CredentialStore,
    provider: IdentityProvider,
    email: Optional[str] = None,
    otp: bool = False,
    **kwargs: Any,
) -> LoginResult:
    """Convenience wrapper around :meth:`LoginFlow.run`.

    Extra keyword arguments are passed to :class:`LoginFlow`.
    """
    return LoginFlow(config, store, provider, **kwargs).run(email, otp)
