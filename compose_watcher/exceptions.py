"""
Exception types raised by compose-watcher.

Errors raised before a trustworthy baseline exists are propagated to the
process boundary; errors raised during steady-state polling are logged by the
watcher and retried on the next tick.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from compose_watcher.models import DeploymentOutcome


class WatcherError(Exception):
    """Base class for all compose-watcher errors."""


class ConfigurationError(WatcherError):
    """Exception raised when options are missing or conflict with each other."""


class CredentialError(WatcherError):
    """Exception raised when an authentication handle cannot be constructed."""


class NotFoundError(WatcherError):
    """Exception raised when the local working copy does not exist."""


class CloneError(WatcherError):
    """Exception raised when the local working copy cannot be created."""


class TargetDirectoryNotEmptyError(CloneError):
    """Exception raised when cloning into a directory that already has content."""


class CheckoutError(WatcherError):
    """Exception raised when a branch cannot be resolved locally or remotely."""


class SyncError(WatcherError):
    """Exception raised when pulling or reading the working copy fails."""


class DeploymentError(WatcherError):
    """Exception raised when a docker compose action exits non-zero."""

    def __init__(self, message: str, outcome: DeploymentOutcome | None = None):
        super().__init__(message)
        self.outcome = outcome
