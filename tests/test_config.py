"""
Tests for settings loading and WatcherConfig validation.
"""

import logging
from datetime import timedelta

import pytest

from compose_watcher.core.config import (
    DEFAULT_INTERVAL,
    Settings,
    build_watcher_config,
    load_settings,
    log_configuration,
    parse_duration,
)
from compose_watcher.exceptions import ConfigurationError
from compose_watcher.models import NoCredential, SshKey, UsernamePassword


@pytest.mark.parametrize(
    ("text", "seconds"),
    [
        ("5m", 300),
        ("1h30m", 5400),
        ("90s", 90),
        ("1.5h", 5400),
        ("250ms", 0.25),
        ("1m30s", 90),
        ("300", 300),
    ],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == timedelta(seconds=seconds)


@pytest.mark.parametrize("text", ["", "five minutes", "m5", "5m garbage", "5d"])
def test_parse_duration_rejects_invalid_values(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_settings_defaults():
    settings = load_settings()

    assert settings.URL is None
    assert settings.BRANCH == "main"
    assert settings.INTERVAL == DEFAULT_INTERVAL
    assert settings.FORCE is False
    assert settings.COMPOSE_FILES == []


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("WATCHER_URL", "https://git.example.com/ops/stack.git")
    monkeypatch.setenv("WATCHER_DIRECTORY", "/srv/stack")
    monkeypatch.setenv("WATCHER_INTERVAL", "2m")
    monkeypatch.setenv("WATCHER_ONSTART", "true")
    monkeypatch.setenv("WATCHER_COMPOSE_FILES", '["compose.yaml", "compose.prod.yaml"]')

    settings = load_settings()

    assert settings.URL == "https://git.example.com/ops/stack.git"
    assert settings.DIRECTORY == "/srv/stack"
    assert settings.INTERVAL == timedelta(minutes=2)
    assert settings.ONSTART is True
    assert settings.COMPOSE_FILES == ["compose.yaml", "compose.prod.yaml"]


def test_settings_read_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("WATCHER_BRANCH=develop\nWATCHER_INTERVAL=30s\n")

    settings = load_settings()

    assert settings.BRANCH == "develop"
    assert settings.INTERVAL == timedelta(seconds=30)


def test_settings_read_extra_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / "watcher.env"
    env_file.write_text("WATCHER_DOCKER_COMMAND=podman\n")
    monkeypatch.setenv("WATCHER_ENV_FILE", str(env_file))

    assert load_settings().DOCKER_COMMAND == "podman"


def test_overrides_take_precedence_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("WATCHER_BRANCH", "develop")
    monkeypatch.setenv("WATCHER_URL", "https://git.example.com/a.git")

    settings = load_settings(BRANCH="release", URL=None, INTERVAL="10s")

    assert settings.BRANCH == "release"
    assert settings.URL == "https://git.example.com/a.git"
    assert settings.INTERVAL == timedelta(seconds=10)


def test_invalid_values_raise_configuration_error(monkeypatch):
    monkeypatch.setenv("WATCHER_INTERVAL", "soon")

    with pytest.raises(ConfigurationError):
        load_settings()


def test_invalid_log_level_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        load_settings(LOG_LEVEL="chatty")


def _settings(**values):
    base = {"URL": "https://git.example.com/ops/stack.git", "DIRECTORY": "/srv/stack"}
    base.update(values)
    return Settings.model_validate(base)


def test_build_watcher_config_defaults():
    config = build_watcher_config(_settings())

    assert config.target.url == "https://git.example.com/ops/stack.git"
    assert config.target.directory == "/srv/stack"
    assert config.target.branch == "main"
    assert config.target.credential == NoCredential()
    assert config.interval == timedelta(minutes=5)
    assert config.on_start is False
    assert config.clone_first is False


def test_build_watcher_config_with_basic_auth():
    config = build_watcher_config(_settings(USERNAME="deploy", PASSWORD="s3cret"))

    assert config.target.credential == UsernamePassword("deploy", "s3cret")
    assert config.secrets == ("s3cret",)
    assert "s3cret" not in repr(config)


def test_build_watcher_config_with_ssh_key():
    config = build_watcher_config(_settings(KEY="/keys/deploy", PASSWORD="phrase"))
    assert config.target.credential == SshKey("/keys/deploy", "phrase")


@pytest.mark.parametrize(
    "values",
    [
        {"URL": None},
        {"DIRECTORY": None},
        {"BRANCH": ""},
        {"USERNAME": "deploy"},
        {"PASSWORD": "s3cret"},
        {"USERNAME": "deploy", "PASSWORD": "s3cret", "KEY": "/keys/deploy"},
        {"INTERVAL": 0},
    ],
)
def test_build_watcher_config_rejects_invalid_settings(values):
    with pytest.raises(ConfigurationError):
        build_watcher_config(_settings(**values))


def test_log_configuration_redacts_password(caplog):
    settings = _settings(USERNAME="deploy", PASSWORD="s3cret")

    with caplog.at_level(logging.INFO, logger="compose_watcher"):
        log_configuration(settings)

    assert "username=deploy" in caplog.text
    assert "password=********" in caplog.text
    assert "s3cret" not in caplog.text
