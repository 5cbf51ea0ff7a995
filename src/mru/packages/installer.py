"""Lock file regeneration through the governing package manager."""

from __future__ import annotations

import logging
from pathlib import Path

from mru.errors import InstallFailedError
from mru.models import PackageManager
from mru.process import ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)


class DependencyInstaller:
    def __init__(self, runner: ProcessRunner, timeout_s: float) -> None:
        self._runner = runner
        self._timeout_s = timeout_s

    def install(self, repo_path: Path, manager: PackageManager) -> ProcessResult:
        command, *args = manager.install_command
        logger.info("Running %s in %s", " ".join(manager.install_command), repo_path)
        result = self._runner.run(command, args, cwd=repo_path, timeout=self._timeout_s)
        if not result.ok:
            raise InstallFailedError(
                f"{manager.value} install failed (exit {result.exit_code}): "
                f"{result.detail('no output')}"
            )
        return result

    @staticmethod
    def lock_file_to_stage(repo_path: Path, manager: PackageManager) -> str | None:
        lock_file = manager.lock_file
        return lock_file if (repo_path / lock_file).exists() else None
