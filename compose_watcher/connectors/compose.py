"""
Docker Compose connector for refreshing images and applying the desired state.

The connector shells out to `docker compose` in the working copy directory and
only reports success or failure; the compose tool's own "up" semantics take
care of recreating changed services and removing orphans.
"""

import logging
from collections.abc import Sequence

from compose_watcher.exceptions import DeploymentError
from compose_watcher.models import DeploymentOutcome
from compose_watcher.utils.process import run_command

logger = logging.getLogger(__name__)


class ComposeConnector:
    """Connector for running docker compose against one project directory."""

    def __init__(
        self,
        directory: str,
        docker_command: str = "docker",
        compose_files: Sequence[str] = (),
        up_flags: Sequence[str] = (),
    ):
        """
        Initialize the compose connector.

        Args:
            directory: Directory holding the compose project (the working copy)
            docker_command: Docker executable to invoke
            compose_files: Optional compose files, each passed as -f
            up_flags: Extra flags always appended to `up`
        """
        self.directory = directory
        self.docker_command = docker_command
        self.compose_files = list(compose_files)
        self.up_flags = list(up_flags)

    def _base_args(self) -> list[str]:
        args = ["compose", "--progress", "quiet"]
        for compose_file in self.compose_files:
            args.extend(["-f", compose_file])
        return args

    async def _run_compose_command(self, args: list[str], action: str) -> DeploymentOutcome:
        """
        Run a docker compose command and raise DeploymentError on failure.

        Captured stdout and stderr are only logged when the command fails.
        """
        cmd = [self.docker_command, *args]

        try:
            result = await run_command(cmd, cwd=self.directory)
        except OSError as e:
            logger.error(f"docker args={' '.join(args)} error={e}")
            raise DeploymentError(f"error during docker compose {action}: {e}") from e

        outcome = DeploymentOutcome(
            args=tuple(args), returncode=result.returncode, stdout=result.stdout, stderr=result.stderr
        )

        if not outcome.success:
            parts = [f"args={' '.join(args)}"]
            if outcome.stdout:
                parts.append(f"stdout={outcome.stdout}")
            if outcome.stderr:
                parts.append(f"stderr={outcome.stderr}")
            logger.error(f"docker {' '.join(parts)}")
            raise DeploymentError(
                f"error during docker compose {action}: exit status {outcome.returncode}", outcome=outcome
            )

        logger.debug(f"docker compose {action} succeeded in {self.directory}")
        return outcome

    async def refresh(self) -> None:
        """
        Pull the newest images for all services.

        Raises:
            DeploymentError: If docker compose pull fails
        """
        await self._run_compose_command([*self._base_args(), "pull"], "pull")

    async def reconcile(self, extra_flags: Sequence[str] = ()) -> None:
        """
        Start or recreate services to match the compose file, removing orphans.

        Args:
            extra_flags: Flags appended after the configured up flags

        Raises:
            DeploymentError: If docker compose up fails
        """
        args = [*self._base_args(), "up", "-d", "--remove-orphans", "--pull", "always"]
        args.extend(self.up_flags)
        args.extend(extra_flags)
        await self._run_compose_command(args, "up")


def create_compose_connector(
    directory: str, docker_command: str = "docker", compose_files: Sequence[str] = (), up_flags: Sequence[str] = ()
) -> ComposeConnector:
    return ComposeConnector(directory, docker_command, compose_files, up_flags)
