"""Pull request creation through the GitHub CLI."""

from __future__ import annotations

import logging
import re

from mru.errors import PullRequestCreationFailedError
from mru.models import Repository
from mru.process import ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://\S+")
_EXISTING_MARKERS = ("already exists", "already a pull request")


def _extract_url(proc: ProcessResult) -> str | None:
    for line in reversed(proc.stdout.strip().splitlines()):
        match = _URL_RE.search(line)
        if match:
            return match.group(0)
    return None


def render_body(package_name: str, old_version: str | None, new_version: str) -> str:
    previous = f"`{old_version}`" if old_version else "unset"
    return (
        f"Updates `{package_name}` from {previous} to `{new_version}`.\n\n"
        "_Opened by mru._"
    )


class PullRequestCreator:
    def __init__(self, runner: ProcessRunner, timeout_s: float) -> None:
        self._runner = runner
        self._timeout_s = timeout_s

    def _gh(self, repo: Repository, *args: str) -> ProcessResult:
        return self._runner.run("gh", list(args), cwd=repo.path, timeout=self._timeout_s)

    def existing_url(self, repo: Repository, branch_name: str) -> str | None:
        proc = self._gh(repo, "pr", "view", branch_name, "--json", "url", "--jq", ".url")
        if not proc.ok:
            return None
        return _extract_url(proc)

    def create(
        self,
        repo: Repository,
        branch_name: str,
        title: str,
        body: str,
        draft: bool = False,
    ) -> str:
        args = ["pr", "create", "--title", title, "--body", body, "--head", branch_name]
        if draft:
            args.append("--draft")
        proc = self._gh(repo, *args)
        if not proc.ok:
            error = proc.detail("gh pr create failed")
            if any(marker in error for marker in _EXISTING_MARKERS):
                url = self.existing_url(repo, branch_name)
                if url:
                    logger.info("Pull request already exists: %s", url)
                    return url
            raise PullRequestCreationFailedError(error)
        url = _extract_url(proc)
        if url is None:
            raise PullRequestCreationFailedError(
                f"gh pr create returned no URL: {proc.stdout.strip()[:200]!r}"
            )
        logger.info("Pull request created: %s", url)
        return url
