"""External process execution with explicit timeouts."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from mru.errors import ProcessTimeoutError

logger = logging.getLogger(__name__)

_MAX_CAPTURE_CHARS = 20000


@dataclass(frozen=True, slots=True)
class ProcessResult:
    command: list[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def detail(self, fallback: str) -> str:
        """First non-empty stream, trimmed for use in error messages."""
        text = (self.stderr or self.stdout).strip()
        return text[:500] if text else fallback


class ProcessRunner:
    """Runs one blocking command and reports exit code and output."""

    def run(
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        *,
        cwd: Path | str | None = None,
        timeout: float = 60,
    ) -> ProcessResult:
        argv = [command, *args]
        started = datetime.now(UTC)
        logger.debug("Running %s (cwd=%s timeout=%ss)", " ".join(argv), cwd, timeout)
        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProcessTimeoutError(
                f"{' '.join(argv)} timed out after {timeout}s"
            ) from exc
        except FileNotFoundError:
            if cwd is not None and not Path(cwd).is_dir():
                missing = f"working directory not found: {cwd}"
            else:
                missing = f"command not found: {command}"
            return ProcessResult(command=argv, exit_code=127, stdout="", stderr=missing)
        finished = datetime.now(UTC)
        return ProcessResult(
            command=argv,
            exit_code=proc.returncode,
            stdout=(proc.stdout or "")[:_MAX_CAPTURE_CHARS],
            stderr=(proc.stderr or "")[:_MAX_CAPTURE_CHARS],
            duration_ms=int((finished - started).total_seconds() * 1000),
        )
