"""
Data types shared by the connectors and the watcher.
"""

from dataclasses import dataclass, field
from typing import NewType, Union

from compose_watcher.exceptions import ConfigurationError

# Full hex object name of a commit, as printed by `git rev-parse`
CommitRef = NewType("CommitRef", str)


@dataclass(frozen=True)
class NoCredential:
    """Access the remote without authentication."""

    def describe(self) -> str:
        return "none"


@dataclass(frozen=True)
class UsernamePassword:
    """HTTP basic authentication."""

    username: str
    password: str = field(repr=False)

    def describe(self) -> str:
        return f"basic-auth username={self.username}"


@dataclass(frozen=True)
class SshKey:
    """SSH private key authentication, optionally protected by a passphrase."""

    path: str
    passphrase: str | None = field(default=None, repr=False)

    def describe(self) -> str:
        return f"ssh-key path={self.path}"


AuthCredential = Union[NoCredential, UsernamePassword, SshKey]


def credential_from_options(
    username: str | None = None, password: str | None = None, key: str | None = None
) -> AuthCredential:
    """
    Build an AuthCredential from the raw username/password/key options.

    The password doubles as the key passphrase when a key path is given.

    Raises:
        ConfigurationError: If username and key are combined, or only one of
            username and password is set without a key
    """
    if key and username:
        raise ConfigurationError("username/password and SSH key are mutually exclusive")

    if key:
        return SshKey(path=key, passphrase=password or None)

    if bool(username) != bool(password):
        raise ConfigurationError("username and password must be set together")

    if username and password:
        return UsernamePassword(username=username, password=password)

    return NoCredential()


@dataclass(frozen=True)
class RepositoryTarget:
    """The single repository, directory and branch watched by one run."""

    url: str
    directory: str
    branch: str = "main"
    credential: AuthCredential = field(default_factory=NoCredential)


@dataclass
class WatchState:
    """Mutable state owned by one invocation of the watch loop."""

    last_observed_commit: CommitRef
    last_deployed_commit: CommitRef | None = None

    @property
    def deployment_pending(self) -> bool:
        return self.last_deployed_commit != self.last_observed_commit


@dataclass(frozen=True)
class DeploymentOutcome:
    """Result of running one docker compose action."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0
