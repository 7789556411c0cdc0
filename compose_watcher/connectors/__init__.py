"""
Connectors for the git and docker compose command line tools.
"""

from compose_watcher.connectors.compose import ComposeConnector, create_compose_connector
from compose_watcher.connectors.credentials import AuthHandle, resolve_credential
from compose_watcher.connectors.git import GitConnector, create_git_connector

__all__ = [
    "AuthHandle",
    "ComposeConnector",
    "GitConnector",
    "create_compose_connector",
    "create_git_connector",
    "resolve_credential",
]
