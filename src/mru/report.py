"""Human-readable rendering of batch results and read-only queries."""

from __future__ import annotations

from collections.abc import Iterable

from mru.models import (
    SECTION_PRIORITY,
    Applied,
    BatchResult,
    DependencyEntry,
    DependencySection,
    Failed,
    ManifestChange,
    Skipped,
)

_SECTION_TITLES = {
    DependencySection.DEPENDENCIES: "Dependencies",
    DependencySection.DEV_DEPENDENCIES: "Dev Dependencies",
    DependencySection.PEER_DEPENDENCIES: "Peer Dependencies",
}


def _green(text: str) -> str:
    return f"\033[32m{text}\033[0m"


def _red(text: str) -> str:
    return f"\033[31m{text}\033[0m"


def _yellow(text: str) -> str:
    return f"\033[33m{text}\033[0m"


def _plain(text: str) -> str:
    return text


def describe_change(change: ManifestChange) -> str:
    old = change.old_version if change.old_version is not None else "unset"
    return f"{change.dependency_section.value}: {old} -> {change.new_version}"


def render_summary(result: BatchResult, *, dry_run: bool, color: bool = False) -> list[str]:
    green, red, yellow = (_green, _red, _yellow) if color else (_plain, _plain, _plain)
    label = "projected" if dry_run else "result"
    lines: list[str] = []
    for repo, outcome in result:
        if isinstance(outcome, Applied):
            line = (
                f"{green('applied')}  {repo.path}: {describe_change(outcome.change)} "
                f"on {outcome.branch_name} ({outcome.commit_id[:12]})"
            )
            if outcome.pull_request_url:
                line += f" PR {outcome.pull_request_url}"
            lines.append(line)
            lines.extend(f"    {yellow('warning:')} {warning}" for warning in outcome.warnings)
        elif isinstance(outcome, Skipped):
            detail = outcome.reason
            if outcome.change is not None:
                detail = f"{detail}, {describe_change(outcome.change)}"
            lines.append(f"{yellow('skipped')}  {repo.path}: {detail}")
        elif isinstance(outcome, Failed):
            line = f"{red('failed')}   {repo.path}: {outcome.kind.value}: {outcome.detail}"
            if outcome.retryable:
                line += " (retryable)"
            lines.append(line)
    totals = (
        f"{label}: {len(result.applied)} applied, {len(result.skipped)} skipped, "
        f"{len(result.failed)} failed of {len(result)}"
    )
    lines.append(red(totals) if result.failed else green(totals))
    return lines


def render_compare(package_name: str, versions: Iterable[tuple[str, str | None]]) -> list[str]:
    lines = [f"Comparing package '{package_name}' across repositories:"]
    for repo_path, version in versions:
        lines.append(f"{repo_path}: {version if version is not None else 'not found'}")
    return lines


def render_packages(repo_path: str, entries: list[DependencyEntry]) -> list[str]:
    lines = [f"Packages in {repo_path}:"]
    if not entries:
        lines.append("  No packages found")
        return lines
    for section in SECTION_PRIORITY:
        grouped = [entry for entry in entries if entry.section == section]
        if not grouped:
            continue
        lines.append(f"  {_SECTION_TITLES[section]}:")
        lines.extend(f"    {entry.name}: {entry.version}" for entry in grouped)
    return lines
