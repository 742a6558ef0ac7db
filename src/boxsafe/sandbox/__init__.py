"""Sandbox plane: workspace containment, filesystem navigation and command execution."""

from boxsafe.sandbox.command_policy import PolicyDecision, ShellCommandPolicy
from boxsafe.sandbox.executor import (
    ArgvCommand,
    Command,
    CommandExecutor,
    CommandSpawnError,
    ExecResult,
)
from boxsafe.sandbox.navigator import (
    DeleteResult,
    DirectoryCreateResult,
    DirectoryListing,
    EntryKind,
    FileReadResult,
    FileSystemEntry,
    FileWriteResult,
    MetadataResult,
    Navigator,
    NavigatorOperation,
    NavigatorResult,
    OperationError,
)
from boxsafe.sandbox.path_guard import PathGuard, SandboxError, WorkspaceBoundaryError

__all__ = [
    "ArgvCommand",
    "Command",
    "CommandExecutor",
    "CommandSpawnError",
    "DeleteResult",
    "DirectoryCreateResult",
    "DirectoryListing",
    "EntryKind",
    "ExecResult",
    "FileReadResult",
    "FileSystemEntry",
    "FileWriteResult",
    "MetadataResult",
    "Navigator",
    "NavigatorOperation",
    "NavigatorResult",
    "OperationError",
    "PathGuard",
    "PolicyDecision",
    "SandboxError",
    "ShellCommandPolicy",
    "WorkspaceBoundaryError",
]
