"""mru exception hierarchy.

All pipeline failures inherit from MruError and carry the ErrorKind they
are reported as, so the orchestration engine can turn any of them into a
per-repository Failed outcome with a single catch clause.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    REPOSITORY_PATH_MISSING = "RepositoryPathMissing"
    MANIFEST_NOT_FOUND = "ManifestNotFound"
    MANIFEST_PARSE_ERROR = "ManifestParseError"
    DIRTY_WORKING_TREE = "DirtyWorkingTree"
    BRANCH_CREATION_FAILED = "BranchCreationFailed"
    COMMIT_FAILED = "CommitFailed"
    PUSH_FAILED = "PushFailed"
    PULL_REQUEST_CREATION_FAILED = "PullRequestCreationFailed"
    PROCESS_TIMEOUT = "ProcessTimeout"
    INSTALL_FAILED = "InstallFailed"
    UNEXPECTED = "Unexpected"


class MruError(Exception):
    """Base exception for all mru errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(MruError):
    """Invalid or missing configuration."""


class RepositoryPathMissingError(MruError):
    kind = ErrorKind.REPOSITORY_PATH_MISSING


class ManifestNotFoundError(MruError):
    kind = ErrorKind.MANIFEST_NOT_FOUND


class ManifestParseError(MruError):
    kind = ErrorKind.MANIFEST_PARSE_ERROR


class DirtyWorkingTreeError(MruError):
    kind = ErrorKind.DIRTY_WORKING_TREE


class BranchCreationFailedError(MruError):
    kind = ErrorKind.BRANCH_CREATION_FAILED


class CommitFailedError(MruError):
    kind = ErrorKind.COMMIT_FAILED


class PushFailedError(MruError):
    """Push rejected or remote unreachable."""

    kind = ErrorKind.PUSH_FAILED

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class PullRequestCreationFailedError(MruError):
    kind = ErrorKind.PULL_REQUEST_CREATION_FAILED


class ProcessTimeoutError(MruError):
    """External command exceeded its timeout."""

    kind = ErrorKind.PROCESS_TIMEOUT

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class InstallFailedError(MruError):
    kind = ErrorKind.INSTALL_FAILED
