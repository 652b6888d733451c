from __future__ import annotations

import inspect

import pytest
from pydantic import ValidationError

from gemini_files.activation import await_activation
from gemini_files.config import API_KEY_ENV_VAR, Settings, load_settings, resolve_api_key
from gemini_files.deletion import reconcile_deletion
from gemini_files.errors import ConfigError
from gemini_files.snapshot import fetch_snapshot
from gemini_files.upload import upload_files


class TestResolveApiKey:
    def test_keyfile_wins_over_env(self, tmp_path):
        keyfile = tmp_path / "key"
        keyfile.write_text("  file-key \n", encoding="utf-8")

        assert resolve_api_key(keyfile, env={API_KEY_ENV_VAR: "env-key"}) == "file-key"

    def test_env_used_without_keyfile(self):
        assert resolve_api_key(None, env={API_KEY_ENV_VAR: " env-key\n"}) == "env-key"

    def test_missing_keyfile(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            resolve_api_key(tmp_path / "missing", env={API_KEY_ENV_VAR: "env-key"})

    def test_empty_keyfile(self, tmp_path):
        keyfile = tmp_path / "key"
        keyfile.write_text("\n\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="empty"):
            resolve_api_key(keyfile, env={})

    def test_no_source(self):
        with pytest.raises(ConfigError, match=API_KEY_ENV_VAR):
            resolve_api_key(None, env={})

    def test_blank_env(self):
        with pytest.raises(ConfigError):
            resolve_api_key(None, env={API_KEY_ENV_VAR: "   "})

    def test_undecodable_keyfile(self, tmp_path):
        keyfile = tmp_path / "key"
        keyfile.write_bytes(b"\xff\xfe-key")
        with pytest.raises(ConfigError, match="Cannot read keyfile"):
            resolve_api_key(keyfile, env={})


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings(env={})
        assert settings == Settings()
        assert settings.verify_delays == (5, 10, 20, 60)
        assert settings.page_size == 100
        assert settings.delete_delay == 0.5
        assert settings.model == "gemini-2.0-flash-lite"

    def test_overrides(self):
        settings = load_settings(
            env={
                "GEMINI_FILES_VERIFY_DELAYS": "1, 2,3",
                "GEMINI_FILES_DELETE_DELAY": "0",
                "GEMINI_FILES_WORKERS": "4",
                "GEMINI_FILES_PAGE_SIZE": "10",
                "GEMINI_FILES_MODEL": "gemini-1.5-pro",
                "GEMINI_FILES_API_ROOT": "http://localhost:8080/v1beta/",
            }
        )
        assert settings.verify_delays == (1.0, 2.0, 3.0)
        assert settings.delete_delay == 0.0
        assert settings.workers == 4
        assert settings.page_size == 10
        assert settings.model == "gemini-1.5-pro"
        assert settings.api_root == "http://localhost:8080/v1beta"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("GEMINI_FILES_WORKERS", "0"),
            ("GEMINI_FILES_PAGE_SIZE", "ten"),
            ("GEMINI_FILES_DELETE_DELAY", "-1"),
            ("GEMINI_FILES_VERIFY_DELAYS", "5,soon"),
        ],
    )
    def test_bad_values(self, name, value):
        with pytest.raises(ConfigError, match=name):
            load_settings(env={name: value})

    def test_empty_and_unknown_overrides_are_ignored(self):
        settings = load_settings(env={"GEMINI_FILES_PAGE_SIZE": "", "GEMINI_FILES_COLOUR": "blue", "PAGE_SIZE": "3"})
        assert settings.page_size == 100

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_FILES_VERIFY_DELAYS", "0,1.5")
        monkeypatch.setenv("GEMINI_FILES_WORKERS", "2")
        settings = load_settings()
        assert settings.verify_delays == (0.0, 1.5)
        assert settings.workers == 2

    def test_process_environment_bad_value(self, monkeypatch):
        monkeypatch.setenv("GEMINI_FILES_PAGE_SIZE", "0")
        with pytest.raises(ConfigError, match="GEMINI_FILES_PAGE_SIZE"):
            load_settings()

    def test_settings_are_frozen(self):
        settings = load_settings(env={})
        with pytest.raises(ValidationError):
            settings.page_size = 5


@pytest.mark.parametrize(
    "fn,param,setting",
    [
        (fetch_snapshot, "page_size", "page_size"),
        (fetch_snapshot, "pause", "page_pause"),
        (reconcile_deletion, "delay", "delete_delay"),
        (await_activation, "delays", "verify_delays"),
        (upload_files, "workers", "workers"),
    ],
)
def test_function_defaults_match_settings(fn, param, setting):
    default = inspect.signature(fn).parameters[param].default
    assert default == getattr(load_settings(env={}), setting)
