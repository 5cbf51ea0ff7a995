"""Package manager detection from lock files."""

from __future__ import annotations

from pathlib import Path

from mru.models import PackageManager

# Checked in order; the first lock file present decides the manager.
LOCK_FILE_PRIORITY: tuple[PackageManager, ...] = (
    PackageManager.PNPM,
    PackageManager.YARN,
    PackageManager.NPM,
)


def detect_from_lock_files(repo_path: Path) -> PackageManager | None:
    for manager in LOCK_FILE_PRIORITY:
        if (repo_path / manager.lock_file).exists():
            return manager
    return None


def resolve(repo_path: Path, configured_default: PackageManager | None = None) -> PackageManager:
    detected = detect_from_lock_files(repo_path)
    if detected is not None:
        return detected
    if configured_default is not None:
        return configured_default
    return PackageManager.NPM
