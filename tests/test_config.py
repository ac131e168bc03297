"""Tests for TOML settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from matrix_bot.config import (
    DEFAULT_STATE_DIR,
    HOME_CONFIG_PATH,
    load_settings,
    resolve_config_path,
)
from matrix_bot.errors import ConfigError

MINIMAL = """
homeserver = "https://matrix.example.org"
username = "robocop"
password = "hunter2"
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(text)
    return path


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith("MATRIX_BOT__"):
            monkeypatch.delenv(key)


def test_minimal_config(tmp_path: Path) -> None:
    settings, path = load_settings(_write(tmp_path, MINIMAL))

    assert path == tmp_path / "config.toml"
    assert settings.homeserver == "https://matrix.example.org"
    assert settings.username == "robocop"
    assert settings.password == "hunter2"
    assert settings.device_name == "matrix-bot"
    assert settings.state_dir == DEFAULT_STATE_DIR
    assert settings.autojoin.enabled is True
    assert settings.autojoin.initial_delay == 2.0
    assert settings.autojoin.multiplier == 2.0
    assert settings.autojoin.max_delay == 3600.0
    assert settings.log_format == "console"


def test_statedir_and_autojoin_table(tmp_path: Path) -> None:
    text = MINIMAL + f"""
statedir = "{tmp_path / 'state'}"

[autojoin]
initial_delay = 1
max_delay = 120
"""
    settings, _ = load_settings(_write(tmp_path, text))

    assert settings.state_dir == tmp_path / "state"
    assert settings.autojoin.initial_delay == 1.0
    assert settings.autojoin.max_delay == 120.0


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MATRIX_BOT__USERNAME", "other")
    monkeypatch.setenv("MATRIX_BOT__AUTOJOIN__ENABLED", "false")

    settings, _ = load_settings(_write(tmp_path, MINIMAL))

    assert settings.username == "other"
    assert settings.autojoin.enabled is False


def test_access_token_is_enough(tmp_path: Path) -> None:
    text = """
homeserver = "https://matrix.example.org"
username = "@robocop:example.org"
access_token = "syt_abc"
"""
    settings, _ = load_settings(_write(tmp_path, text))
    assert settings.access_token == "syt_abc"
    assert settings.password is None


def test_missing_credentials(tmp_path: Path) -> None:
    text = """
homeserver = "https://matrix.example.org"
username = "robocop"
"""
    with pytest.raises(ConfigError, match="password or access_token"):
        load_settings(_write(tmp_path, text))


def test_missing_homeserver(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="homeserver"):
        load_settings(_write(tmp_path, 'username = "x"\npassword = "y"\n'))


def test_invalid_backoff(tmp_path: Path) -> None:
    text = MINIMAL + "\n[autojoin]\nmultiplier = 1\n"
    with pytest.raises(ConfigError):
        load_settings(_write(tmp_path, text))


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing config file"):
        load_settings(tmp_path / "nope.toml")


def test_directory_is_not_a_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not a file"):
        load_settings(tmp_path)


def test_resolve_config_path_default() -> None:
    assert resolve_config_path(None) == HOME_CONFIG_PATH
    assert resolve_config_path("~/bot.toml") == Path.home() / "bot.toml"
