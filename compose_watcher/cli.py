"""
Command line entry point: compose-watcher [options] {init,check,watch}.

Options can also be supplied as WATCHER_* environment variables or in a .env
file; flags given on the command line take precedence.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any

from compose_watcher import PROJECT_DESCRIPTION, PROJECT_NAME, VERSION
from compose_watcher.core.config import WatcherConfig, build_watcher_config, load_settings, log_configuration
from compose_watcher.core.watcher import StopSignal, run_check, run_init, run_watch
from compose_watcher.exceptions import WatcherError
from compose_watcher.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROJECT_NAME, description=PROJECT_DESCRIPTION)
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-r", "--url", help="URL of Git repository")
    parser.add_argument("-d", "--directory", help="Directory for clone/pull")
    parser.add_argument("-u", "--username", help="Username")
    parser.add_argument("-p", "--password", help="Password for remote repository or SSH private key")
    parser.add_argument("-k", "--key", help="SSH private key")
    parser.add_argument("-b", "--branch", help="Git branch to use (default: main)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")

    subparsers = parser.add_subparsers(dest="command", metavar="{init,check,watch}")

    subparsers.add_parser("init", help="Initialise the repository")

    check_parser = subparsers.add_parser("check", help="Checks for updates")
    check_parser.add_argument(
        "--force", action="store_true", default=None, help="Always start containers via Docker Compose"
    )

    watch_parser = subparsers.add_parser("watch", help="Watches for changes")
    watch_parser.add_argument("--interval", help="Refresh interval, e.g. 30s, 5m or 1h30m (default: 5m)")
    watch_parser.add_argument("--onstart", action="store_true", default=None, help="Run pull and up on start")
    watch_parser.add_argument("--clone", action="store_true", default=None, help="Clone repository on start")

    return parser


def settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed flags onto Settings fields; flags that were not given map to None."""
    return {
        "URL": args.url,
        "DIRECTORY": args.directory,
        "USERNAME": args.username,
        "PASSWORD": args.password,
        "KEY": args.key,
        "BRANCH": args.branch,
        "LOG_LEVEL": args.log_level,
        "FORCE": getattr(args, "force", None),
        "INTERVAL": getattr(args, "interval", None),
        "ONSTART": getattr(args, "onstart", None),
        "CLONE": getattr(args, "clone", None),
    }


async def _watch(config: WatcherConfig) -> int:
    stop = StopSignal()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.stop, f"received {sig.name}")
        except NotImplementedError:
            # Not supported by the Windows event loop; Ctrl+C raises KeyboardInterrupt instead
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")

    cause = await run_watch(config, stop)
    logger.info(f"watch stopped cause={cause}")
    return 0


async def _run(command: str, config: WatcherConfig) -> int:
    if command == "init":
        await run_init(config)
    elif command == "check":
        await run_check(config)
    elif command == "watch":
        return await _watch(config)
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Parse arguments, load configuration and run the selected command.

    Returns:
        Process exit status: 0 on success, 1 on any WatcherError
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Basic logging until the configured level and secrets are known
    setup_logging()

    try:
        settings = load_settings(**settings_overrides(args))
        config = build_watcher_config(settings)
        setup_logging(
            level=settings.LOG_LEVEL,
            log_to_file=settings.LOG_TO_FILE,
            log_file_path=settings.LOG_FILE_PATH,
            secrets=config.secrets,
        )
        log_configuration(settings)

        return asyncio.run(_run(args.command, config))
    except WatcherError as e:
        logger.error(f"error during execution error={e}")
        return 1


def run() -> None:
    sys.exit(main())
