"""Cloning repositories for registration."""

from __future__ import annotations

import logging
from pathlib import Path

from mru.errors import MruError
from mru.process import ProcessRunner

logger = logging.getLogger(__name__)


def repo_dir_name(url: str) -> str:
    name = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or "repo"


def clone_repository(
    url: str,
    output_dir: Path | None,
    runner: ProcessRunner,
    timeout_s: float,
) -> Path:
    target = output_dir or Path(repo_dir_name(url))
    if target.exists() and any(target.iterdir()):
        raise MruError(f"destination is not empty: {target}")
    logger.info("Cloning %s into %s", url, target)
    proc = runner.run("git", ["clone", url, str(target)], timeout=timeout_s)
    if not proc.ok:
        raise MruError(f"failed to clone {url}: {proc.detail('git clone failed')}")
    return target.resolve()
