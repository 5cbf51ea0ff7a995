"""Value types shared by the update pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from mru.errors import ConfigError, ErrorKind


class PackageManager(StrEnum):
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"

    @property
    def lock_file(self) -> str:
        return _LOCK_FILES[self]

    @property
    def install_command(self) -> list[str]:
        return list(_INSTALL_COMMANDS[self])

    @classmethod
    def parse(cls, value: str) -> PackageManager:
        clean = value.strip().lower()
        for member in cls:
            if member.value == clean:
                return member
        valid = ", ".join(member.value for member in cls)
        raise ConfigError(f"invalid package manager {value!r}; must be one of: {valid}")


_LOCK_FILES: dict[PackageManager, str] = {
    PackageManager.NPM: "package-lock.json",
    PackageManager.YARN: "yarn.lock",
    PackageManager.PNPM: "pnpm-lock.yaml",
}
_INSTALL_COMMANDS: dict[PackageManager, tuple[str, ...]] = {
    PackageManager.NPM: ("npm", "install"),
    PackageManager.YARN: ("yarn", "install"),
    PackageManager.PNPM: ("pnpm", "install"),
}


class DependencySection(StrEnum):
    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "devDependencies"
    PEER_DEPENDENCIES = "peerDependencies"


# Search order when updating a package; only the first match is changed.
SECTION_PRIORITY: tuple[DependencySection, ...] = (
    DependencySection.DEPENDENCIES,
    DependencySection.DEV_DEPENDENCIES,
    DependencySection.PEER_DEPENDENCIES,
)


@dataclass(frozen=True, slots=True)
class Repository:
    path: Path
    remote_url: str = ""

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True, slots=True)
class UpdateRequest:
    package_name: str
    version_spec: str
    commit_message: str | None = None
    create_pull_request: bool = False
    dry_run: bool = False
    run_install: bool = True
    draft_pull_request: bool = False

    def __post_init__(self) -> None:
        if not self.package_name.strip():
            raise ValueError("package_name must be non-empty")
        if not self.version_spec.strip():
            raise ValueError("version_spec must be non-empty")


@dataclass(frozen=True, slots=True)
class ManifestChange:
    dependency_section: DependencySection
    old_version: str | None
    new_version: str


@dataclass(frozen=True, slots=True)
class NoChangeNeeded:
    reason: str


@dataclass(frozen=True, slots=True)
class DependencyEntry:
    name: str
    version: str
    section: DependencySection


@dataclass(frozen=True, slots=True)
class Skipped:
    reason: str
    change: ManifestChange | None = None


@dataclass(frozen=True, slots=True)
class Applied:
    change: ManifestChange
    branch_name: str
    commit_id: str
    pull_request_url: str | None = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Failed:
    kind: ErrorKind
    detail: str
    retryable: bool = False


UpdateOutcome = Skipped | Applied | Failed


@dataclass(slots=True)
class BatchResult:
    entries: list[tuple[Repository, UpdateOutcome]] = field(default_factory=list)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def outcome_for(self, repo: Repository) -> UpdateOutcome | None:
        for candidate, outcome in self.entries:
            if candidate == repo:
                return outcome
        return None

    @property
    def applied(self) -> list[tuple[Repository, Applied]]:
        return [(repo, o) for repo, o in self.entries if isinstance(o, Applied)]

    @property
    def skipped(self) -> list[tuple[Repository, Skipped]]:
        return [(repo, o) for repo, o in self.entries if isinstance(o, Skipped)]

    @property
    def failed(self) -> list[tuple[Repository, Failed]]:
        return [(repo, o) for repo, o in self.entries if isinstance(o, Failed)]

    def exit_code(self) -> int:
        return 1 if self.failed else 0
