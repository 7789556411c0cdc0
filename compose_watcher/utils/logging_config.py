import logging
import logging.handlers
from collections.abc import Iterable
from pathlib import Path

from compose_watcher.utils.redaction import REDACTED, obfuscate_url

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SecretRedactionFilter(logging.Filter):
    """Mask registered secret values and URL credentials in log records."""

    def __init__(self, secrets: Iterable[str | None] = ()) -> None:
        super().__init__()
        # Longest first so that a secret containing another one is masked whole
        self.secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        message = obfuscate_url(record.getMessage())
        for secret in self.secrets:
            message = message.replace(secret, REDACTED)
        record.msg = message
        record.args = None
        return True


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = False,
    log_file_path: str = "compose-watcher.log",
    secrets: Iterable[str | None] = (),
) -> None:
    """
    Configure logging to output to stdout and optionally to a file.

    Args:
        level: Log level for the compose_watcher loggers
        log_to_file: Whether to enable file logging alongside stdout
        log_file_path: Path to log file when file logging is enabled
        secrets: Values that must never appear in log output
    """
    # Clear any existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # Keep third-party packages at INFO
    root_logger.setLevel(logging.INFO)

    watcher_logger = logging.getLogger("compose_watcher")
    watcher_logger.setLevel(level.upper())

    redaction_filter = SecretRedactionFilter(secrets)

    # Always add stdout handler
    stdout_handler = logging.StreamHandler()
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    stdout_handler.addFilter(redaction_filter)
    root_logger.addHandler(stdout_handler)

    if log_to_file:
        try:
            log_path = Path(log_file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            # Create rotating file handler (max 10MB, keep 5 files)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.addFilter(redaction_filter)
            root_logger.addHandler(file_handler)

            logging.info(f"File logging enabled: {log_file_path}")

        except OSError as e:
            logging.exception(f"Failed to setup file logging to {log_file_path}: {e}")
            logging.info("Continuing with stdout logging only")
