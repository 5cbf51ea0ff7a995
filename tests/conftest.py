import json
import os
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from mru.config import get_settings

_MRU_ENV = (
    "MRU_CONFIG_PATH",
    "MRU_LOG_LEVEL",
    "MRU_LOG_JSON",
    "MRU_MAX_WORKERS",
    "MRU_GIT_TIMEOUT_SECONDS",
    "MRU_INSTALL_TIMEOUT_SECONDS",
    "MRU_GH_TIMEOUT_SECONDS",
    "MRU_BRANCH_PREFIX",
)


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    for key in _MRU_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MRU_CONFIG_PATH", str(tmp_path / "mru" / "config.toml"))
    # Keep commits in test repositories independent of the developer's git setup.
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def git(repo: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return proc.stdout.strip()


def package_json(dependencies: dict[str, str] | None = None, **sections: dict[str, str]) -> str:
    document: dict[str, object] = {"name": "demo", "version": "1.0.0"}
    if dependencies is not None:
        document["dependencies"] = dependencies
    document.update(sections)
    return json.dumps(document, indent=2) + "\n"


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Path]:
    """Create a committed git repository with a bare ``origin`` remote."""

    def _make(name: str, files: dict[str, str], with_remote: bool = True) -> Path:
        repo = tmp_path / name
        repo.mkdir()
        git(repo, "init", "-b", "main")
        git(repo, "config", "user.email", "test@example.com")
        git(repo, "config", "user.name", "Test User")
        git(repo, "config", "commit.gpgsign", "false")
        for rel, content in files.items():
            target = repo / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        git(repo, "add", ".")
        git(repo, "commit", "-m", "init")
        if with_remote:
            remote = tmp_path / f"{name}-remote.git"
            subprocess.run(
                ["git", "init", "--bare", "-b", "main", str(remote)],
                check=True,
                capture_output=True,
                text=True,
            )
            git(repo, "remote", "add", "origin", str(remote))
            git(repo, "push", "origin", "main")
        return repo

    return _make


@pytest.fixture
def run_git() -> Callable[..., str]:
    return git


@pytest.fixture
def manifest_text() -> Callable[..., str]:
    return package_json
