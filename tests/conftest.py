"""
Shared fixtures and fakes for the compose-watcher tests.
"""

import os

import pytest

from compose_watcher.models import CommitRef
from compose_watcher.utils.process import CommandResult


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Run every test away from real .env files and WATCHER_* variables."""
    for name in list(os.environ):
        if name.startswith("WATCHER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def result(*args: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(args=tuple(args), returncode=returncode, stdout=stdout, stderr=stderr)


class FakeRepository:
    """In-memory working copy whose pulls follow a script.

    Each entry in ``pulls`` is consumed by one pull: a commit string moves the
    tip, None leaves it unchanged and an exception instance is raised. When the
    script runs out the optional stop signal is triggered.
    """

    def __init__(self, tip="A", pulls=(), stop=None, clone_error=None, open_error=None, checkout_error=None):
        self.tip = tip
        self.pulls = list(pulls)
        self.stop = stop
        self.clone_error = clone_error
        self.open_error = open_error
        self.checkout_error = checkout_error
        self.calls = []

    @property
    def pull_count(self):
        return self.calls.count("pull")

    async def clone(self):
        self.calls.append("clone")
        if self.clone_error:
            raise self.clone_error

    async def open(self):
        self.calls.append("open")
        if self.open_error:
            raise self.open_error

    async def checkout_branch(self, branch=None):
        self.calls.append(("checkout", branch))
        if self.checkout_error:
            raise self.checkout_error

    async def pull(self):
        self.calls.append("pull")
        try:
            if self.pulls:
                outcome = self.pulls.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                if outcome is not None:
                    self.tip = outcome
        finally:
            if not self.pulls and self.stop is not None:
                self.stop.stop("script finished")

    async def current_tip(self):
        return CommitRef(self.tip)


class FakeDeployer:
    """Records refresh/reconcile calls and optionally fails them."""

    def __init__(self, refresh_errors=(), reconcile_errors=()):
        self.refresh_errors = list(refresh_errors)
        self.reconcile_errors = list(reconcile_errors)
        self.calls = []

    async def refresh(self):
        self.calls.append("refresh")
        if self.refresh_errors:
            error = self.refresh_errors.pop(0)
            if error is not None:
                raise error

    async def reconcile(self, extra_flags=()):
        self.calls.append(("reconcile", tuple(extra_flags)))
        if self.reconcile_errors:
            error = self.reconcile_errors.pop(0)
            if error is not None:
                raise error

    @property
    def deployments(self):
        return sum(1 for call in self.calls if call != "refresh")
