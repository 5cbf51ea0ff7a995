"""Branch, commit, and push state machine for one repository."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from enum import StrEnum

from mru.errors import (
    BranchCreationFailedError,
    CommitFailedError,
    DirtyWorkingTreeError,
    MruError,
    PushFailedError,
)
from mru.models import Repository
from mru.process import ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_PREFIX = "mru/update"
_COMMIT_ID_RE = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")
_UNSAFE_REF_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_SCP_LIKE_RE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>.+)$")


class WorkflowState(StrEnum):
    CLEAN = "clean"
    BRANCHED = "branched"
    COMMITTED = "committed"
    PUSHED = "pushed"
    PULL_REQUEST_READY = "pull_request_ready"


def branch_token(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")


def _ref_component(value: str) -> str:
    cleaned = _UNSAFE_REF_CHARS.sub("-", value.strip().lstrip("@"))
    cleaned = re.sub(r"-{2,}", "-", cleaned).strip("-.")
    return cleaned or "x"


def branch_name(
    package_name: str,
    version_spec: str,
    token: str,
    prefix: str = DEFAULT_BRANCH_PREFIX,
) -> str:
    """Deterministic branch for (package, version, token).

    ``@scope/pkg`` and range operators such as ``^``/``~``/``>=`` are folded
    into characters git accepts in ref names.
    """
    return (
        f"{prefix.strip('/')}-{_ref_component(package_name)}"
        f"-{_ref_component(version_spec)}-{token}"
    )


def normalize_remote_url(url: str) -> str:
    value = url.strip()
    if "://" in value:
        value = value.split("://", 1)[1]
        if "@" in value.split("/", 1)[0]:
            value = value.split("@", 1)[1]
    else:
        match = _SCP_LIKE_RE.match(value)
        if match:
            value = f"{match.group('host')}/{match.group('path')}"
    value = value.rstrip("/")
    if value.endswith(".git"):
        value = value[: -len(".git")]
    return value.lower()


class GitWorkflowRunner:
    """Drives CLEAN -> BRANCHED -> COMMITTED -> PUSHED for one repository."""

    def __init__(self, repo: Repository, runner: ProcessRunner, timeout_s: float) -> None:
        self.repo = repo
        self.state = WorkflowState.CLEAN
        self.created_branch: str | None = None
        self._runner = runner
        self._timeout_s = timeout_s

    def _git(self, *args: str) -> ProcessResult:
        return self._runner.run(
            "git",
            ["-C", str(self.repo.path), *args],
            timeout=self._timeout_s,
        )

    def is_dirty(self, include_untracked: bool = False) -> bool:
        flags = ["status", "--porcelain"]
        if not include_untracked:
            flags.append("--untracked-files=no")
        proc = self._git(*flags)
        if not proc.ok:
            raise MruError(proc.detail("git status failed"))
        return bool(proc.stdout.strip())

    def ensure_clean(self) -> None:
        if self.is_dirty():
            raise DirtyWorkingTreeError(f"working tree has uncommitted changes: {self.repo.path}")

    def current_branch(self) -> str:
        proc = self._git("branch", "--show-current")
        if not proc.ok:
            raise MruError(proc.detail("failed to get current branch"))
        branch = proc.stdout.strip()
        if branch:
            return branch
        # Detached HEAD: remember the commit instead.
        return self.head_commit()

    def head_commit(self) -> str:
        proc = self._git("rev-parse", "HEAD")
        commit_id = proc.stdout.strip()
        if not proc.ok or not _COMMIT_ID_RE.match(commit_id):
            raise MruError(proc.detail(f"unexpected rev-parse output: {commit_id!r}"))
        return commit_id

    def branch_exists(self, name: str) -> bool:
        proc = self._git("rev-parse", "--verify", "--quiet", f"refs/heads/{name}")
        return proc.ok

    def create_branch(self, name: str) -> None:
        if self.branch_exists(name):
            raise BranchCreationFailedError(f"branch already exists: {name}")
        # Recorded before checkout so a timed-out checkout is still cleaned up.
        self.created_branch = name
        proc = self._git("checkout", "-b", name)
        if not proc.ok:
            raise BranchCreationFailedError(proc.detail(f"failed to create branch {name}"))
        self.state = WorkflowState.BRANCHED
        logger.info("Created branch %s", name)

    def commit(self, paths: list[str], message: str) -> str:
        add = self._git("add", "--", *paths)
        if not add.ok:
            raise CommitFailedError(add.detail("git add failed"))
        staged = self._git("diff", "--cached", "--quiet")
        if staged.ok:
            raise CommitFailedError("no staged changes to commit")
        proc = self._git("commit", "-m", message)
        if not proc.ok:
            raise CommitFailedError(proc.detail("git commit failed"))
        try:
            commit_id = self.head_commit()
        except MruError as exc:
            raise CommitFailedError(str(exc)) from exc
        self.state = WorkflowState.COMMITTED
        logger.info("Committed %s", commit_id[:12])
        return commit_id

    def remotes(self) -> dict[str, str]:
        proc = self._git("remote", "-v")
        if not proc.ok:
            raise PushFailedError(proc.detail("git remote failed"))
        found: dict[str, str] = {}
        for line in proc.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 3 and parts[2] == "(push)":
                found[parts[0]] = parts[1]
        return found

    def resolve_remote(self) -> str:
        remotes = self.remotes()
        if not remotes:
            raise PushFailedError(f"no git remotes configured in {self.repo.path}")
        if self.repo.remote_url.strip():
            wanted = normalize_remote_url(self.repo.remote_url)
            for name, url in remotes.items():
                if normalize_remote_url(url) == wanted:
                    return name
            raise PushFailedError(
                f"no git remote matches {self.repo.remote_url} (found: {sorted(remotes)})"
            )
        if "origin" in remotes:
            return "origin"
        if len(remotes) == 1:
            return next(iter(remotes))
        raise PushFailedError(f"cannot choose a push remote among: {sorted(remotes)}")

    def push(self, branch: str) -> str:
        remote = self.resolve_remote()
        proc = self._git("push", "--set-upstream", remote, branch)
        if not proc.ok:
            raise PushFailedError(proc.detail(f"failed to push {branch} to {remote}"))
        self.state = WorkflowState.PUSHED
        logger.info("Pushed %s to %s", branch, remote)
        return remote

    def checkout(self, ref: str, force: bool = False) -> bool:
        args = ["checkout", "-f", ref] if force else ["checkout", ref]
        proc = self._git(*args)
        if not proc.ok:
            logger.warning("Failed to checkout %s: %s", ref, proc.detail("git checkout failed"))
        return proc.ok

    def abandon(self, branch: str, original: str) -> None:
        """Best-effort: return to *original* and delete *branch*. Never raises.

        Only a branch this runner created is deleted; a pre-existing branch of
        the same name, or one that was never written, is left alone.
        """
        try:
            if not self.checkout(original, force=True):
                return
            if branch != self.created_branch or not self.branch_exists(branch):
                return
            proc = self._git("branch", "-D", branch)
            if not proc.ok:
                logger.warning(
                    "Failed to delete branch %s: %s", branch, proc.detail("git branch -D failed")
                )
        except MruError as exc:
            logger.warning("Cleanup of branch %s failed: %s", branch, exc)
