"""
compose-watcher - continuous deployment for Docker Compose from a git branch.
"""

PROJECT_NAME: str = "compose-watcher"
VERSION: str = "0.1.0"  # replace in CI/CD pipeline
PROJECT_DESCRIPTION: str = "A CD solution for Docker Compose"

__version__ = VERSION
