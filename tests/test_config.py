"""Tests for configuration resolution, storage paths and atomic writes."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from evento.config import (
    DEFAULT_API_BASE_URL,
    atomic_write,
    load_config_file,
    load_env_files,
    resolve_config,
    resolve_storage_paths,
)
from evento.exceptions import UsageError


@pytest.fixture
def home(tmp_path: Path) -> Path:
    return tmp_path / ".evento"


@pytest.fixture
def env(home: Path) -> dict[str, str]:
    return {"EVENTO_HOME": str(home)}


def _write_config(home: Path, data) -> Path:
    home.mkdir(parents=True, exist_ok=True)
    path = home / "config.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


class TestStoragePaths:
    def test_layout(self, home: Path) -> None:
        paths = resolve_storage_paths(home=str(home))
        assert paths.config_dir == home
        assert paths.config_path == home / "config.json"
        assert paths.credentials_path == home / "credentials.json"
        assert paths.credentials_backup_path == home / "credentials.json.bak"
        assert paths.lock_path == home / "credentials.lock"
        assert paths.logs_dir == home / "logs"
        assert not home.exists()

    def test_default_home(self) -> None:
        assert resolve_storage_paths().config_dir == Path.home() / ".evento"

    def test_config_path_override_is_absolute(self, home: Path, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        paths = resolve_storage_paths("custom/config.json", home=str(home))
        assert paths.config_path == tmp_path.resolve() / "custom" / "config.json"
        assert paths.config_path.is_absolute()
        assert paths.credentials_path == home / "credentials.json"


class TestResolveConfig:
    def test_defaults(self, env) -> None:
        config = resolve_config(environ=env)
        assert config.profile == "default"
        assert config.output_format == "json"
        assert config.api_base_url == DEFAULT_API_BASE_URL
        assert config.supabase_url is None
        assert config.supabase_anon_key is None
        assert config.timeout_ms == 15000
        assert config.retry_attempts == 2
        assert config.retry_delay_ms == 250

    def test_tty_defaults_to_text(self, env) -> None:
        assert resolve_config(is_stdout_tty=True, environ=env).output_format == "text"

    def test_precedence(self, env, home) -> None:
        _write_config(
            home,
            {
                "version": 1,
                "activeProfile": "staging",
                "profiles": {
                    "staging": {
                        "apiBaseUrl": "https://profile.test/api",
                        "supabaseUrl": "https://profile.supabase.test",
                        "timeoutMs": 5000,
                    },
                    "prod": {"apiBaseUrl": "https://prod.test/api"},
                },
            },
        )

        from_profile = resolve_config(environ=env)
        assert from_profile.profile == "staging"
        assert from_profile.api_base_url == "https://profile.test/api"
        assert from_profile.supabase_url == "https://profile.supabase.test"
        assert from_profile.timeout_ms == 5000

        env.update(
            {
                "EVENTO_API_BASE_URL": "https://env.test/api",
                "EVENTO_API_TIMEOUT_MS": "7000",
            }
        )
        from_env = resolve_config(environ=env)
        assert from_env.api_base_url == "https://env.test/api"
        assert from_env.timeout_ms == 7000

        from_cli = resolve_config(cli_base_url="https://cli.test/api/", environ=env)
        assert from_cli.api_base_url == "https://cli.test/api"

        env["EVENTO_PROFILE"] = "prod"
        assert resolve_config(environ=env).profile == "prod"
        assert resolve_config(cli_profile="staging", environ=env).profile == "staging"

    def test_trailing_slashes_stripped(self, env) -> None:
        env["EVENTO_API_BASE_URL"] = "https://api.test/api//"
        assert resolve_config(environ=env).api_base_url == "https://api.test/api"

    def test_unknown_profile(self, env, home) -> None:
        _write_config(home, {"profiles": {"a": {}, "b": {}}})
        with pytest.raises(UsageError) as exc_info:
            resolve_config(cli_profile="c", environ=env)
        assert "Invalid profile: c" in exc_info.value.message
        assert "a, b" in exc_info.value.message

    def test_any_profile_allowed_without_profiles_map(self, env) -> None:
        assert resolve_config(cli_profile="work", environ=env).profile == "work"

    def test_invalid_json(self, env, home) -> None:
        _write_config(home, "{nope")
        with pytest.raises(UsageError) as exc_info:
            resolve_config(environ=env)
        assert "invalid JSON" in exc_info.value.message
        assert exc_info.value.exit_code == 2

    def test_invalid_shape(self, env, home) -> None:
        _write_config(home, {"profiles": "everything"})
        with pytest.raises(UsageError):
            resolve_config(environ=env)

    def test_config_path_env(self, env, tmp_path) -> None:
        custom = tmp_path / "elsewhere.json"
        custom.write_text(json.dumps({"profiles": {"default": {"retryAttempts": 4}}}))
        env["EVENTO_CONFIG_PATH"] = str(custom)
        config = resolve_config(environ=env)
        assert config.retry_attempts == 4
        assert config.paths.config_path == custom

    @pytest.mark.parametrize(
        ("var", "value"),
        [
            ("EVENTO_API_TIMEOUT_MS", "999"),
            ("EVENTO_API_TIMEOUT_MS", "60001"),
            ("EVENTO_API_TIMEOUT_MS", "fast"),
            ("EVENTO_API_RETRY_ATTEMPTS", "6"),
            ("EVENTO_API_RETRY_ATTEMPTS", "-1"),
            ("EVENTO_API_RETRY_DELAY_MS", "49"),
            ("EVENTO_API_RETRY_DELAY_MS", "5001"),
        ],
    )
    def test_out_of_range_values(self, env, var, value) -> None:
        env[var] = value
        with pytest.raises(UsageError) as exc_info:
            resolve_config(environ=env)
        assert var in exc_info.value.message

    @pytest.mark.parametrize(
        ("var", "value", "field", "expected"),
        [
            ("EVENTO_API_TIMEOUT_MS", "1000", "timeout_ms", 1000),
            ("EVENTO_API_TIMEOUT_MS", "60000", "timeout_ms", 60000),
            ("EVENTO_API_RETRY_ATTEMPTS", "0", "retry_attempts", 0),
            ("EVENTO_API_RETRY_DELAY_MS", " 5000 ", "retry_delay_ms", 5000),
        ],
    )
    def test_boundary_values(self, env, var, value, field, expected) -> None:
        env[var] = value
        assert getattr(resolve_config(environ=env), field) == expected

    def test_invalid_format(self, env) -> None:
        with pytest.raises(UsageError):
            resolve_config(cli_format="yaml", environ=env)
        env["EVENTO_FORMAT"] = "xml"
        with pytest.raises(UsageError):
            resolve_config(environ=env)

    def test_format_from_env(self, env) -> None:
        env["EVENTO_FORMAT"] = "text"
        assert resolve_config(environ=env).output_format == "text"
        assert resolve_config(cli_format="json", environ=env).output_format == "json"

    def test_provider_settings_from_env(self, env) -> None:
        env["EVENTO_SUPABASE_URL"] = "https://x.supabase.test"
        env["EVENTO_SUPABASE_ANON_KEY"] = "anon"
        config = resolve_config(environ=env)
        assert config.supabase_url == "https://x.supabase.test"
        assert config.supabase_anon_key == "anon"

    def test_resolved_config_is_frozen(self, env) -> None:
        config = resolve_config(environ=env)
        with pytest.raises(Exception):
            config.profile = "other"  # type: ignore[misc]


class TestLoadConfigFile:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        config = load_config_file(tmp_path / "absent.json")
        assert config.profiles is None
        assert config.active_profile is None


class TestAtomicWrite:
    def test_writes_content(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.json"
        atomic_write(target, '{"a": 1}')
        assert target.read_text() == '{"a": 1}'

    def test_applies_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        target.write_text("old")
        os.chmod(target, 0o644)
        atomic_write(target, "new", mode=0o600)
        assert target.read_text() == "new"
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / "a.json", "x")
        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]


class TestLoadEnvFiles:
    def test_local_wins_and_existing_env_kept(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # Registered with monkeypatch so values loaded by dotenv are undone.
        for var in ("EVENTO_TEST_A", "EVENTO_TEST_B", "EVENTO_TEST_C"):
            monkeypatch.setenv(var, "placeholder")
            monkeypatch.delenv(var)
        monkeypatch.setenv("EVENTO_TEST_C", "from-shell")

        (tmp_path / ".env.local").write_text("EVENTO_TEST_A=local\n")
        (tmp_path / ".env").write_text(
            "EVENTO_TEST_A=shared\nEVENTO_TEST_B=shared\nEVENTO_TEST_C=shared\n"
        )

        loaded = load_env_files([tmp_path, tmp_path])
        assert loaded == [tmp_path.resolve() / ".env.local", tmp_path.resolve() / ".env"]
        assert os.environ["EVENTO_TEST_A"] == "local"
        assert os.environ["EVENTO_TEST_B"] == "shared"
        assert os.environ["EVENTO_TEST_C"] == "from-shell"

    def test_no_files(self, tmp_path: Path) -> None:
        assert load_env_files([tmp_path]) == []
