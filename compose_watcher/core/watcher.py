"""
Reconciliation loop: keep the working copy in sync and redeploy on new commits.

The loop is a single sequential task. Each tick runs pull, compare and maybe
deploy to completion before the next tick is scheduled; a StopSignal is only
observed while waiting for the next tick, never in the middle of a git or
docker command.

Errors raised while establishing the baseline (open, checkout, first pull,
deployment on start) propagate to the caller. Errors raised during steady-state
polling are logged and the next tick acts as the retry.
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import timedelta
from typing import Protocol

from compose_watcher.connectors.compose import create_compose_connector
from compose_watcher.connectors.credentials import resolve_credential
from compose_watcher.connectors.git import create_git_connector
from compose_watcher.core.config import WatcherConfig
from compose_watcher.exceptions import TargetDirectoryNotEmptyError, WatcherError
from compose_watcher.models import CommitRef, WatchState

logger = logging.getLogger(__name__)


class Repository(Protocol):
    async def open(self) -> None: ...

    async def clone(self) -> None: ...

    async def checkout_branch(self, branch: str | None = None) -> None: ...

    async def pull(self) -> None: ...

    async def current_tip(self) -> CommitRef: ...


class Deployer(Protocol):
    async def refresh(self) -> None: ...

    async def reconcile(self, extra_flags: Sequence[str] = ()) -> None: ...


class StopSignal:
    """Cooperative cancellation for the watch loop, carrying the reason it was stopped."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.cause: str | None = None

    def stop(self, cause: str = "stopped") -> None:
        # The first cause wins
        if not self._event.is_set():
            self.cause = cause
            self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """
        Wait until the signal is set or the timeout elapses.

        Returns:
            True if the signal was set, False on timeout
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


async def deploy(deployer: Deployer, extra_flags: Sequence[str] = ()) -> None:
    """Refresh images and then apply the desired state. Errors propagate."""
    await deployer.refresh()
    await deployer.reconcile(extra_flags)


async def init_repository(repository: Repository, branch: str | None = None) -> None:
    """Clone the repository and check out the requested branch."""
    await repository.clone()
    await repository.checkout_branch(branch)


async def check_once(
    repository: Repository, deployer: Deployer, force: bool = False, extra_flags: Sequence[str] = ()
) -> bool:
    """
    Pull once and deploy if HEAD moved or a deployment is forced.

    Args:
        repository: Existing working copy
        deployer: Docker compose actions
        force: Deploy even if no new commit was pulled
        extra_flags: Extra flags for the reconcile step

    Returns:
        True if a deployment was run

    Raises:
        WatcherError: On any failure; nothing is retried
    """
    await repository.open()

    before = await repository.current_tip()
    await repository.pull()
    after = await repository.current_tip()

    if force or before != after:
        logger.info(f"deploying before={before} after={after} force={force}")
        await deploy(deployer, extra_flags)
        return True

    logger.info("no changes detected and not forced")
    return False


async def establish_baseline(
    repository: Repository, branch: str | None = None, clone_first: bool = False
) -> WatchState:
    """
    Prepare the working copy and record the commit that polling compares against.

    Raises:
        WatcherError: If the working copy cannot be opened, checked out or pulled
    """
    if clone_first:
        try:
            await repository.clone()
        except TargetDirectoryNotEmptyError as e:
            logger.info(f"repository already cloned, continuing reason={e}")

    await repository.open()
    await repository.checkout_branch(branch)

    # A stale or unknown baseline would hide the next change, so this pull is fatal
    await repository.pull()
    commit = await repository.current_tip()

    return WatchState(last_observed_commit=commit, last_deployed_commit=commit)


async def _deploy_and_log(
    deployer: Deployer, state: WatchState, commit: CommitRef, extra_flags: Sequence[str]
) -> None:
    try:
        await deployer.refresh()
    except WatcherError as e:
        # Do not bring services up with possibly stale images
        logger.error(f"could not run docker compose pull commit={commit} error={e}")
        return

    try:
        await deployer.reconcile(extra_flags)
    except WatcherError as e:
        logger.error(f"could not run docker compose up commit={commit} error={e}")
        return

    state.last_deployed_commit = commit
    logger.info(f"deployment finished commit={commit}")


async def poll_once(
    repository: Repository,
    deployer: Deployer,
    state: WatchState,
    extra_flags: Sequence[str] = (),
    retry_failed_deployments: bool = False,
) -> None:
    """
    Run one polling tick against an established baseline.

    Never raises WatcherError: failures are logged and left for the next tick.
    The observed commit advances as soon as a change is seen, so by default a
    failed deployment is only retried when the next new commit arrives.
    """
    try:
        await repository.pull()
    except WatcherError as e:
        logger.error(f"could not pull from repository error={e}")
        return

    try:
        current = await repository.current_tip()
    except WatcherError as e:
        logger.error(f"could not get current commit of HEAD error={e}")
        return

    if current == state.last_observed_commit:
        if retry_failed_deployments and state.deployment_pending:
            logger.info(f"retrying failed deployment commit={current}")
            await _deploy_and_log(deployer, state, current, extra_flags)
        else:
            logger.info("no changes found")
        return

    state.last_observed_commit = current
    logger.info(f"changes found commit={current}")
    await _deploy_and_log(deployer, state, current, extra_flags)


async def watch(
    repository: Repository,
    deployer: Deployer,
    interval: timedelta | float,
    stop: StopSignal,
    branch: str | None = None,
    on_start: bool = False,
    clone_first: bool = False,
    extra_flags: Sequence[str] = (),
    retry_failed_deployments: bool = False,
) -> str | None:
    """
    Watch the branch and deploy whenever its tip changes, until stopped.

    Args:
        repository: Working copy to keep in sync
        deployer: Docker compose actions
        interval: Time between polling ticks
        stop: Signal that ends the loop at the next wait
        branch: Branch to check out before polling
        on_start: Deploy immediately after the baseline is established
        clone_first: Clone before opening; an already populated directory is accepted
        extra_flags: Extra flags for the reconcile step
        retry_failed_deployments: Retry a failed deployment on unchanged ticks

    Returns:
        The cause passed to StopSignal.stop

    Raises:
        WatcherError: If setup or the deployment on start fails
    """
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval}")

    state = await establish_baseline(repository, branch, clone_first)

    if on_start:
        logger.info(f"running deployment on start commit={state.last_observed_commit}")
        await deploy(deployer, extra_flags)

    logger.info(f"starting watch interval={seconds}s commit={state.last_observed_commit}")

    loop = asyncio.get_running_loop()
    next_tick = loop.time() + seconds

    while True:
        if await stop.wait(max(0.0, next_tick - loop.time())):
            logger.info(f"stopping watch cause={stop.cause}")
            return stop.cause

        try:
            await poll_once(repository, deployer, state, extra_flags, retry_failed_deployments)
        except Exception as e:
            logger.error(f"unexpected error during polling cycle error={e}")
            logger.debug(f"Polling error details: {e!s}", exc_info=True)

        # Fixed-rate schedule; ticks missed while a cycle overran are dropped
        next_tick += seconds
        now = loop.time()
        if next_tick <= now:
            next_tick += ((now - next_tick) // seconds + 1) * seconds


async def run_init(config: WatcherConfig) -> None:
    """Clone the configured repository and check out its branch."""
    auth = await resolve_credential(config.target.credential, config.ssh_strict_host_key_checking)
    async with create_git_connector(config.target, auth) as repository:
        await init_repository(repository, config.target.branch)


async def run_check(config: WatcherConfig) -> bool:
    """Run a one-shot check with connectors built from the configuration."""
    auth = await resolve_credential(config.target.credential, config.ssh_strict_host_key_checking)
    async with create_git_connector(config.target, auth) as repository:
        deployer = create_compose_connector(
            config.target.directory, config.docker_command, config.compose_files, config.compose_up_flags
        )
        return await check_once(repository, deployer, config.force)


async def run_watch(config: WatcherConfig, stop: StopSignal) -> str | None:
    """Run the continuous watch with connectors built from the configuration."""
    auth = await resolve_credential(config.target.credential, config.ssh_strict_host_key_checking)
    async with create_git_connector(config.target, auth) as repository:
        deployer = create_compose_connector(
            config.target.directory, config.docker_command, config.compose_files, config.compose_up_flags
        )
        return await watch(
            repository,
            deployer,
            config.interval,
            stop,
            branch=config.target.branch,
            on_start=config.on_start,
            clone_first=config.clone_first,
            retry_failed_deployments=config.retry_failed_deployments,
        )
