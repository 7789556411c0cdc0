import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from compose_watcher.exceptions import ConfigurationError
from compose_watcher.models import RepositoryTarget, credential_from_options
from compose_watcher.utils.redaction import obfuscate_url, redact

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
DEFAULT_INTERVAL = timedelta(minutes=5)

# Go-style durations: 90s, 5m, 1h30m, 1.5h, 250ms
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go-style duration string such as "5m" or "1h30m".

    Args:
        value: Duration string; a bare number is read as seconds

    Returns:
        The parsed duration

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")

    return timedelta(seconds=seconds)


def _get_env_files() -> list[str]:
    """
    Get list of environment files to load in order of precedence.

    The base .env in the working directory is loaded first, then the file
    named by WATCHER_ENV_FILE. Process environment variables always win.
    """
    env_files = []

    if os.path.exists(".env"):
        env_files.append(".env")
        logger.debug("Found base env file: .env")

    extra_env_file = os.environ.get("WATCHER_ENV_FILE", "")
    if extra_env_file:
        if os.path.exists(extra_env_file):
            env_files.append(extra_env_file)
        else:
            logger.warning(f"WATCHER_ENV_FILE points to a missing file: {extra_env_file}")

    return env_files


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WATCHER_", env_file_encoding="utf-8", extra="ignore")

    # Repository
    URL: str | None = None
    DIRECTORY: str | None = None
    BRANCH: str = DEFAULT_BRANCH
    USERNAME: str | None = None
    PASSWORD: str | None = None  # Also used as the SSH key passphrase
    KEY: str | None = None  # Path to an SSH private key
    SSH_STRICT_HOST_KEY_CHECKING: str = "accept-new"

    # Watch behaviour
    INTERVAL: timedelta = DEFAULT_INTERVAL
    FORCE: bool = False
    ONSTART: bool = False
    CLONE: bool = False
    RETRY_FAILED_DEPLOYMENTS: bool = False

    # Docker compose
    DOCKER_COMMAND: str = "docker"
    COMPOSE_FILES: list[str] = []
    COMPOSE_UP_FLAGS: list[str] = []

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "compose-watcher.log"

    @field_validator("INTERVAL", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except ValueError:
                # Leave ISO-8601 and HH:MM:SS forms to pydantic
                return value
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level


def load_settings(**overrides: Any) -> Settings:
    """
    Load settings from env files and WATCHER_* variables, then apply overrides.

    Overrides with a value of None are ignored so that command-line flags which
    were not given do not mask the environment.

    Raises:
        ConfigurationError: If a value cannot be parsed
    """
    try:
        settings = Settings(_env_file=_get_env_files())
        values = {key: value for key, value in overrides.items() if value is not None}
        if values:
            settings = Settings.model_validate({**settings.model_dump(), **values})
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
    return settings


@dataclass(frozen=True)
class WatcherConfig:
    """Validated configuration handed to the init, check and watch entry points."""

    target: RepositoryTarget
    interval: timedelta = DEFAULT_INTERVAL
    force: bool = False
    on_start: bool = False
    clone_first: bool = False
    retry_failed_deployments: bool = False
    docker_command: str = "docker"
    compose_files: tuple[str, ...] = ()
    compose_up_flags: tuple[str, ...] = ()
    ssh_strict_host_key_checking: str = "accept-new"
    secrets: tuple[str, ...] = field(default=(), repr=False)


def build_watcher_config(settings: Settings) -> WatcherConfig:
    """
    Validate settings and convert them into a WatcherConfig.

    Raises:
        ConfigurationError: If required options are missing or conflict
    """
    if not settings.URL:
        raise ConfigurationError("repository URL is required")
    if not settings.DIRECTORY:
        raise ConfigurationError("directory is required")
    if not settings.BRANCH:
        raise ConfigurationError("branch must not be empty")
    if settings.INTERVAL.total_seconds() <= 0:
        raise ConfigurationError(f"interval must be positive, got {settings.INTERVAL}")

    credential = credential_from_options(settings.USERNAME, settings.PASSWORD, settings.KEY)

    return WatcherConfig(
        target=RepositoryTarget(
            url=settings.URL,
            directory=settings.DIRECTORY,
            branch=settings.BRANCH,
            credential=credential,
        ),
        interval=settings.INTERVAL,
        force=settings.FORCE,
        on_start=settings.ONSTART,
        clone_first=settings.CLONE,
        retry_failed_deployments=settings.RETRY_FAILED_DEPLOYMENTS,
        docker_command=settings.DOCKER_COMMAND,
        compose_files=tuple(settings.COMPOSE_FILES),
        compose_up_flags=tuple(settings.COMPOSE_UP_FLAGS),
        ssh_strict_host_key_checking=settings.SSH_STRICT_HOST_KEY_CHECKING,
        secrets=tuple(s for s in (settings.PASSWORD,) if s),
    )


def log_configuration(settings: Settings, message: str = "configuration set via cli and environment") -> None:
    """Log the effective configuration with secrets redacted."""
    parts = [
        f"url={obfuscate_url(settings.URL or '')}",
        f"directory={settings.DIRECTORY}",
        f"branch={settings.BRANCH}",
    ]
    if settings.KEY:
        parts.append(f"key={settings.KEY}")
    if settings.USERNAME:
        parts.append(f"username={settings.USERNAME}")
    if settings.PASSWORD:
        parts.append(f"password={redact(settings.PASSWORD)}")

    logger.info(f"{message} {' '.join(parts)}")
