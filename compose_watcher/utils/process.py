"""
Run external commands and capture their output.

Both the git and the docker compose connectors go through run_command so that
tests can replace a single seam instead of spawning real processes.
"""

import asyncio
import logging
import os
from dataclasses import dataclass

from compose_watcher.utils.redaction import obfuscate_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured result of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return obfuscate_url(" ".join(self.args))


async def run_command(
    args: list[str], cwd: str | None = None, env: dict[str, str] | None = None
) -> CommandResult:
    """
    Run a command with subprocess and wait for it to complete.

    Args:
        args: Executable followed by its arguments
        cwd: Optional working directory
        env: Optional environment variables added on top of os.environ

    Returns:
        CommandResult with the exit code and decoded stdout/stderr

    Raises:
        OSError: If the executable is missing or cannot be started
    """
    cmd_env = os.environ.copy()
    if env:
        cmd_env.update(env)

    logger.debug(f"Running command: {obfuscate_url(' '.join(args))} in {cwd or os.getcwd()}")

    process = await asyncio.create_subprocess_exec(
        *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE, env=cmd_env, cwd=cwd
    )

    # Wait for command to complete
    stdout, stderr = await process.communicate()
    stdout_str = stdout.decode("utf-8", errors="replace").strip()
    stderr_str = stderr.decode("utf-8", errors="replace").strip()
    returncode = process.returncode or 0

    if returncode != 0:
        logger.debug(f"Command {args[0]} failed with code {returncode}: {obfuscate_url(stderr_str)}")
    else:
        logger.debug(f"Command {args[0]} succeeded")

    return CommandResult(args=tuple(args), returncode=returncode, stdout=stdout_str, stderr=stderr_str)
