"""Tests for the Supabase-backed identity provider."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from evento.auth.provider import SupabaseIdentityProvider, require_provider_config
from evento.exceptions import AuthConfigMissingError
from evento.models import ProviderFailure, SessionGranted


def _supabase_session(expires_at=1_900_000_000, user_id="user-42"):
    user = SimpleNamespace(id=user_id) if user_id else None
    return SimpleNamespace(
        access_token="sb-access",
        refresh_token="sb-refresh",
        expires_at=expires_at,
        user=user,
    )


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def provider(client: MagicMock) -> SupabaseIdentityProvider:
    return SupabaseIdentityProvider("https://project.supabase.test", "anon-key", client=client)


class TestStartPasswordlessAuth:
    def test_sends_email(self, provider, client) -> None:
        assert provider.start_passwordless_auth("a@b.test") is None
        client.auth.sign_in_with_otp.assert_called_once_with({"email": "a@b.test"})

    def test_passes_redirect(self, provider, client) -> None:
        provider.start_passwordless_auth("a@b.test", "http://localhost:5000/auth/callback")
        client.auth.sign_in_with_otp.assert_called_once_with(
            {
                "email": "a@b.test",
                "options": {"email_redirect_to": "http://localhost:5000/auth/callback"},
            }
        )

    def test_transport_error_is_failure(self, provider, client) -> None:
        client.auth.sign_in_with_otp.side_effect = httpx.ConnectError("refused")
        result = provider.start_passwordless_auth("a@b.test")
        assert isinstance(result, ProviderFailure)
        assert result.reason == "refused"


class TestSessionCalls:
    def test_verify_code_maps_session(self, provider, client) -> None:
        client.auth.verify_otp.return_value = SimpleNamespace(session=_supabase_session())

        result = provider.verify_one_time_code("a@b.test", "123456")
        client.auth.verify_otp.assert_called_once_with(
            {"email": "a@b.test", "token": "123456", "type": "email"}
        )
        assert isinstance(result, SessionGranted)
        assert result.session.access_token == "sb-access"
        assert result.session.refresh_token == "sb-refresh"
        assert result.session.expires_at == 1_900_000_000
        assert result.session.user_id == "user-42"

    def test_missing_session_is_failure(self, provider, client) -> None:
        client.auth.verify_otp.return_value = SimpleNamespace(session=None)
        result = provider.verify_one_time_code("a@b.test", "123456")
        assert result == ProviderFailure(reason="verify_otp returned no session")

    def test_exchange_code(self, provider, client) -> None:
        client.auth.exchange_code_for_session.return_value = SimpleNamespace(
            session=_supabase_session(user_id=None)
        )
        result = provider.exchange_authorization_code("auth-code")
        client.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "auth-code"})
        assert isinstance(result, SessionGranted)
        assert result.session.user_id is None

    def test_set_session(self, provider, client) -> None:
        client.auth.set_session.return_value = SimpleNamespace(
            session=_supabase_session(expires_at=None)
        )
        result = provider.set_session("a", "r")
        client.auth.set_session.assert_called_once_with("a", "r")
        assert isinstance(result, SessionGranted)
        assert result.session.expires_at is None

    def test_refresh_error_is_failure(self, provider, client) -> None:
        client.auth.refresh_session.side_effect = httpx.ReadTimeout("slow")
        result = provider.refresh_session()
        assert isinstance(result, ProviderFailure)
        assert result.reason == "slow"


class TestRequireProviderConfig:
    def test_complete_config_passes(self, config) -> None:
        require_provider_config(config)

    @pytest.mark.parametrize("field", ["supabase_url", "supabase_anon_key"])
    def test_missing_value_raises(self, config, field) -> None:
        with pytest.raises(AuthConfigMissingError) as exc_info:
            require_provider_config(config.model_copy(update={field: None}), "events list")
        err = exc_info.value
        assert err.code == "auth_config_missing"
        assert err.command == "events list"
        assert "EVENTO_SUPABASE_URL" in err.message
