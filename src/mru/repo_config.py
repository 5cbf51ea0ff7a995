"""Persisted repository list (``~/.config/mru/config.toml``)."""

from __future__ import annotations

import logging
from pathlib import Path

import toml
from pydantic import BaseModel, Field, ValidationError, field_validator

from mru.errors import ConfigError
from mru.models import PackageManager, Repository

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "chore: update {package} to {version}"


class RepoEntry(BaseModel):
    path: str
    github_url: str = ""


class RepoConfig(BaseModel):
    default_commit_message: str | None = None
    repositories: list[RepoEntry] = Field(default_factory=list)
    default_package_manager: PackageManager | None = None

    @field_validator("default_package_manager", mode="before")
    @classmethod
    def _parse_manager(cls, value: object) -> object:
        if isinstance(value, str):
            if not value.strip():
                return None
            return PackageManager.parse(value)
        return value

    def find(self, path: str) -> RepoEntry | None:
        target = expand_path(path)
        for entry in self.repositories:
            if expand_path(entry.path) == target:
                return entry
        return None

    def add_repository(self, path: str, github_url: str = "") -> RepoEntry:
        if self.find(path) is not None:
            raise ConfigError(f"repository already exists in config: {path}")
        entry = RepoEntry(path=path, github_url=github_url)
        self.repositories.append(entry)
        return entry

    def remove_repository(self, path: str) -> None:
        target = expand_path(path)
        kept = [entry for entry in self.repositories if expand_path(entry.path) != target]
        if len(kept) == len(self.repositories):
            raise ConfigError(f"repository not found: {path}")
        self.repositories = kept

    def to_repositories(self) -> list[Repository]:
        return [
            Repository(path=expand_path(entry.path).resolve(), remote_url=entry.github_url)
            for entry in self.repositories
        ]


def expand_path(path: str) -> Path:
    return Path(path).expanduser()


def default_repo_config() -> RepoConfig:
    return RepoConfig(
        default_commit_message=DEFAULT_COMMIT_MESSAGE,
        repositories=[],
        default_package_manager=PackageManager.NPM,
    )


def save_repo_config(config: RepoConfig, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json", exclude_none=True)
    path.write_text(toml.dumps(payload))
    return path


def load_repo_config(path: Path) -> RepoConfig:
    """Load the repository list, creating a default file on first use."""
    if not path.exists():
        config = default_repo_config()
        save_repo_config(config, path)
        logger.info("Created default config at %s", path)
        return config
    try:
        raw = toml.loads(path.read_text())
    except (OSError, toml.TomlDecodeError) as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    try:
        return RepoConfig.model_validate(raw)
    except (ValidationError, ConfigError) as exc:
        raise ConfigError(f"invalid config file {path}: {exc}") from exc
