"""Integration plane: git-backed version control."""

from boxsafe.integration_plane.version_control import (
    GitCommandError,
    GitVersionControl,
    NotARepositoryError,
    VersionControlError,
    VersionControlReason,
    VersionControlRequest,
    VersionControlResult,
    environment_token_lookup,
)

__all__ = [
    "GitCommandError",
    "GitVersionControl",
    "NotARepositoryError",
    "VersionControlError",
    "VersionControlReason",
    "VersionControlRequest",
    "VersionControlResult",
    "environment_token_lookup",
]
