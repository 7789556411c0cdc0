"""
Git connector for keeping a local working copy in sync using the git CLI.
"""

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from compose_watcher.connectors.credentials import AuthHandle
from compose_watcher.exceptions import (
    CheckoutError,
    CloneError,
    NotFoundError,
    SyncError,
    TargetDirectoryNotEmptyError,
    WatcherError,
)
from compose_watcher.models import CommitRef, RepositoryTarget
from compose_watcher.utils.process import CommandResult, run_command
from compose_watcher.utils.redaction import obfuscate_url

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"

# Messages printed by `git pull` when there is nothing to merge (older git used a hyphen)
_UP_TO_DATE_MARKERS = ("Already up to date", "Already up-to-date")


def branch_refspec(branch: str) -> str:
    """Refspec that maps a remote branch onto the local branch of the same name."""
    return f"refs/heads/{branch}:refs/heads/{branch}"


class GitConnector:
    """Connector for one repository target backed by a local working copy."""

    def __init__(self, target: RepositoryTarget, auth: AuthHandle | None = None):
        """
        Initialize the Git connector.

        Args:
            target: Remote URL, local directory and branch to work with
            auth: Authentication handle from resolve_credential; unauthenticated if omitted
        """
        self.target = target
        self.repo_url = target.url
        self.directory = target.directory
        self.auth = auth or AuthHandle()

        # Store the branch name without refs/heads/ prefix for consistency
        if target.branch.startswith("refs/heads/"):
            self.branch = target.branch[len("refs/heads/") :]
        else:
            self.branch = target.branch

        logger.debug(f"Initialized GitConnector for {obfuscate_url(self.repo_url)} in {self.directory}")

    async def __aenter__(self) -> "GitConnector":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        """Release the authentication handle."""
        self.auth.close()

    def _get_server_context(self) -> str:
        """Describe the git server and branch for error messages."""
        parsed = urlparse(self.repo_url)
        if parsed.scheme and parsed.hostname:
            server = f"{parsed.scheme}://{parsed.hostname}"
            if parsed.port:
                server += f":{parsed.port}"
        else:
            # scp-like syntax (git@host:path) or a local path
            server = obfuscate_url(self.repo_url)
        return f"git [server={server}, branch={self.branch}]"

    async def _run_git_command(
        self, args: list[str], cwd: str | None = None, error_cls: type[WatcherError] = SyncError
    ) -> CommandResult:
        """
        Run a git command with the authentication environment applied.

        Args:
            args: Git arguments (without the leading "git")
            cwd: Working directory, defaults to the local checkout
            error_cls: Error raised if git cannot be started at all

        Returns:
            CommandResult of the git invocation
        """
        # Never prompt for credentials and keep messages parseable
        env = {"GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C", **self.auth.env}
        try:
            return await run_command(["git", *args], cwd=cwd or self.directory, env=env)
        except OSError as e:
            raise error_cls(f"could not run git in {cwd or self.directory}: {e}") from e

    async def open(self) -> None:
        """
        Verify that the local directory holds an existing working copy.

        Raises:
            NotFoundError: If the directory is missing or is not the top of a git working tree
        """
        if not os.path.isdir(self.directory):
            raise NotFoundError(f"repository does not exist: {self.directory}")

        result = await self._run_git_command(["rev-parse", "--show-toplevel"], error_cls=NotFoundError)
        if not result.ok:
            raise NotFoundError(f"repository does not exist: {self.directory}: {result.stderr}")

        if os.path.realpath(result.stdout) != os.path.realpath(self.directory):
            raise NotFoundError(f"repository does not exist: {self.directory} is inside {result.stdout}")

        logger.debug(f"Opened working copy {self.directory}")

    async def clone(self) -> None:
        """
        Clone the remote repository into the local directory.

        Raises:
            TargetDirectoryNotEmptyError: If the directory already has content
            CloneError: If the directory cannot be created or git clone fails
        """
        path = Path(self.directory)
        if path.exists():
            if not path.is_dir():
                raise CloneError(f"clone target is not a directory: {self.directory}")
            try:
                populated = any(path.iterdir())
            except OSError as e:
                raise CloneError(f"could not inspect clone target {self.directory}: {e}") from e
            if populated:
                raise TargetDirectoryNotEmptyError(f"destination directory is not empty: {self.directory}")

        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CloneError(f"could not create directory {self.directory}: {e}") from e

        logger.info(f"cloning repository url={obfuscate_url(self.repo_url)} directory={self.directory}")
        result = await self._run_git_command(
            ["clone", self.repo_url, str(path)], cwd=str(path.parent), error_cls=CloneError
        )
        if not result.ok:
            raise CloneError(f"Failed to clone repository from {self._get_server_context()}: {result.stderr}")

        logger.debug("Repository cloned successfully")

    async def _checkout(self, branch: str) -> CommandResult:
        # --no-guess keeps git from silently creating the branch from a remote-tracking ref
        return await self._run_git_command(["checkout", "--force", "--no-guess", branch], error_cls=CheckoutError)

    async def local_branch_exists(self, branch: str) -> bool:
        """Check whether refs/heads/<branch> exists in the working copy."""
        result = await self._run_git_command(
            ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], error_cls=CheckoutError
        )
        return result.ok

    async def fetch_ref(self, refspec: str) -> None:
        """
        Fetch an explicit refspec from the remote.

        Raises:
            SyncError: If the fetch fails
        """
        logger.debug(f"Fetching {refspec} from {REMOTE_NAME}")
        result = await self._run_git_command(["fetch", REMOTE_NAME, refspec])
        if not result.ok:
            raise SyncError(f"Failed to fetch {refspec} from {self._get_server_context()}: {result.stderr}")

    async def checkout_branch(self, branch: str | None = None) -> None:
        """
        Check out a branch, fetching it from the remote once if it is not present locally.

        Args:
            branch: Branch name, defaults to the target branch

        Raises:
            CheckoutError: If the branch cannot be checked out after the fetch and retry
        """
        branch = branch or self.branch

        result = await self._checkout(branch)
        if result.ok:
            logger.debug(f"Checked out branch {branch}")
            return

        if await self.local_branch_exists(branch):
            raise CheckoutError(f"Failed to checkout branch {branch}: {result.stderr}")

        logger.info(f"branch not found locally, fetching from remote branch={branch}")
        try:
            await self.fetch_ref(branch_refspec(branch))
        except SyncError as e:
            raise CheckoutError(f"branch {branch} not found locally or on the remote: {e}") from e

        result = await self._checkout(branch)
        if not result.ok:
            raise CheckoutError(f"Failed to checkout branch {branch} after fetch: {result.stderr}")

        logger.debug(f"Checked out branch {branch} after fetching it from {REMOTE_NAME}")

    async def current_branch(self) -> str:
        """
        Get the name of the checked out branch.

        Raises:
            SyncError: If HEAD is detached or cannot be read
        """
        result = await self._run_git_command(["symbolic-ref", "--short", "-q", "HEAD"])
        if not result.ok or not result.stdout:
            raise SyncError(f"HEAD of {self.directory} is not on a branch")
        return result.stdout

    async def pull(self) -> None:
        """
        Fast-forward the current branch from the remote branch of the same name.

        Being already up to date is not an error.

        Raises:
            SyncError: If the pull fails
        """
        branch = await self.current_branch()
        result = await self._run_git_command(["pull", "--ff-only", REMOTE_NAME, branch])

        if not result.ok:
            raise SyncError(f"Failed to pull latest changes from {self._get_server_context()}: {result.stderr}")

        if any(marker in result.stdout for marker in _UP_TO_DATE_MARKERS):
            logger.debug(f"Branch {branch} already up to date")
        else:
            logger.debug(f"Pulled latest changes for branch {branch}")

    async def current_tip(self) -> CommitRef:
        """
        Resolve HEAD to a commit hash.

        Raises:
            SyncError: If HEAD cannot be resolved
        """
        result = await self._run_git_command(["rev-parse", "--verify", "HEAD^{commit}"])
        if not result.ok or not result.stdout:
            raise SyncError(f"Failed to get local commit hash: {result.stderr}")
        return CommitRef(result.stdout.strip())


def create_git_connector(target: RepositoryTarget, auth: AuthHandle | None = None) -> GitConnector:
    return GitConnector(target, auth)
