"""Click CLI group: update, repository registry, and read-only queries."""

from __future__ import annotations

import dataclasses
import logging
import sys
from pathlib import Path

import click

from mru.config import Settings, get_settings, validate_settings
from mru.engine import EngineConfig, OrchestrationEngine
from mru.errors import ConfigError, MruError
from mru.git.clone import clone_repository
from mru.git.workflow import GitWorkflowRunner
from mru.logging import configure_logging
from mru.models import PackageManager, Repository, UpdateRequest
from mru.packages import manifest, resolver
from mru.process import ProcessRunner
from mru.repo_config import RepoConfig, expand_path, load_repo_config, save_repo_config
from mru.report import render_compare, render_packages, render_summary

logger = logging.getLogger(__name__)


def _settings() -> Settings:
    settings = get_settings()
    try:
        validate_settings(settings)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    return settings


def _config_path(settings: Settings) -> Path:
    return Path(settings.config_path).expanduser()


def _load_repo_config(settings: Settings) -> RepoConfig:
    try:
        return load_repo_config(_config_path(settings))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


@click.group()
@click.option("--log-level", default=None, help="Override MRU_LOG_LEVEL.")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines on stderr.")
def cli(log_level: str | None, json_logs: bool) -> None:
    """Update one dependency across many repositories."""
    settings = get_settings()
    configure_logging(
        log_level or settings.log_level,
        json_output=json_logs or int(settings.log_json) == 1,
    )


@cli.command()
@click.argument("package")
@click.argument("version")
@click.option("-m", "--message", default=None, help="Commit message (supports {package}).")
@click.option("-p", "--pull-request", is_flag=True, help="Open a pull request after pushing.")
@click.option("--draft", is_flag=True, help="Open the pull request as a draft.")
@click.option("-d", "--dry-run", is_flag=True, help="Report the change without making it.")
@click.option("--no-install", is_flag=True, help="Skip the package manager install step.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parallel repos.")
def update(
    package: str,
    version: str,
    message: str | None,
    pull_request: bool,
    draft: bool,
    dry_run: bool,
    no_install: bool,
    workers: int | None,
) -> None:
    """Update PACKAGE to VERSION in every configured repository."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    repos = repo_config.to_repositories()
    if not repos:
        click.echo("No repositories configured. Use 'mru add-repo' to add repositories.")
        return
    try:
        request = UpdateRequest(
            package_name=package,
            version_spec=version,
            commit_message=message,
            create_pull_request=pull_request,
            dry_run=dry_run,
            run_install=not no_install,
            draft_pull_request=draft,
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    engine_config = EngineConfig.from_settings(settings, repo_config)
    if workers is not None:
        engine_config = dataclasses.replace(engine_config, max_workers=workers)
    if dry_run:
        click.echo("DRY RUN MODE - no changes will be made")
    click.echo(f"Updating '{package}' to '{version}' in {len(repos)} repositories")

    result = OrchestrationEngine(engine_config).run(request, repos)
    _echo_lines(render_summary(result, dry_run=dry_run, color=sys.stdout.isatty()))
    if result.exit_code():
        sys.exit(result.exit_code())


@cli.command("add-repo")
@click.argument("path")
@click.option("--github-url", default="", help="Remote URL to push to (default: origin).")
def add_repo(path: str, github_url: str) -> None:
    """Register a local repository."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    if not github_url and expand_path(path).is_dir():
        workflow = GitWorkflowRunner(
            Repository(path=expand_path(path).resolve()),
            ProcessRunner(),
            settings.git_timeout_seconds,
        )
        try:
            github_url = workflow.remotes().get("origin", "")
        except MruError as exc:
            logger.debug("No remote detected for %s: %s", path, exc)
    try:
        repo_config.add_repository(path, github_url=github_url)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    save_repo_config(repo_config, _config_path(settings))
    click.echo(f"Repository added: {path}")


@cli.command("remove-repo")
@click.argument("path")
def remove_repo(path: str) -> None:
    """Unregister a repository."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    try:
        repo_config.remove_repository(path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    save_repo_config(repo_config, _config_path(settings))
    click.echo(f"Repository removed: {path}")


@cli.command("list-repos")
def list_repos() -> None:
    """Show configured repositories with git status and package manager."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    if not repo_config.repositories:
        click.echo("No repositories configured")
        return
    runner = ProcessRunner()
    click.echo("Configured repositories:")
    for index, repo in enumerate(repo_config.to_repositories(), start=1):
        click.echo(f"{index}. Path: {repo.path}")
        if repo.remote_url:
            click.echo(f"   Remote: {repo.remote_url}")
        if not repo.path.is_dir():
            click.echo("   Status: path missing")
            continue
        workflow = GitWorkflowRunner(repo, runner, settings.git_timeout_seconds)
        try:
            dirty = workflow.is_dirty(include_untracked=True)
            click.echo(f"   Status: {'Changes present' if dirty else 'Clean'}")
            click.echo(f"   Branch: {workflow.current_branch()}")
        except MruError as exc:
            click.echo(f"   Status check failed: {exc}")
        manager = resolver.resolve(repo.path, repo_config.default_package_manager)
        click.echo(f"   Package Manager: {manager.value}")


@cli.command()
@click.argument("package")
def compare(package: str) -> None:
    """Compare the declared version of PACKAGE across repositories."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    if not repo_config.repositories:
        click.echo("No repositories configured")
        return
    versions: list[tuple[str, str | None]] = []
    for repo in repo_config.to_repositories():
        try:
            versions.append((str(repo.path), manifest.get_version(repo.path, package)))
        except MruError as exc:
            versions.append((str(repo.path), f"error: {exc}"))
    _echo_lines(render_compare(package, versions))


@cli.command("list-packages")
@click.option("-r", "--repo", "repo_path", default=None, help="Only this repository.")
def list_packages(repo_path: str | None) -> None:
    """List declared dependencies grouped by section."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    if repo_path is not None:
        entry = repo_config.find(repo_path)
        if entry is None:
            raise click.ClickException(f"repository not found: {repo_path}")
        paths = [expand_path(entry.path).resolve()]
    else:
        paths = [repo.path for repo in repo_config.to_repositories()]
    if not paths:
        click.echo("No repositories configured")
        return
    for path in paths:
        try:
            _echo_lines(render_packages(str(path), manifest.list_dependencies(path)))
        except MruError as exc:
            click.echo(f"Packages in {path}:")
            click.echo(f"  Error listing packages: {exc}")


@cli.command()
@click.argument("github_url")
@click.option("-o", "--output", default=None, help="Directory to clone into.")
@click.option("--add", is_flag=True, help="Register the clone after cloning.")
def clone(github_url: str, output: str | None, add: bool) -> None:
    """Clone GITHUB_URL, optionally adding it to the config."""
    settings = _settings()
    try:
        target = clone_repository(
            github_url,
            Path(output).expanduser() if output else None,
            ProcessRunner(),
            settings.git_timeout_seconds,
        )
    except MruError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Repository cloned to: {target}")
    if add:
        repo_config = _load_repo_config(settings)
        try:
            repo_config.add_repository(str(target), github_url=github_url)
        except ConfigError as exc:
            raise click.ClickException(str(exc)) from exc
        save_repo_config(repo_config, _config_path(settings))
        click.echo(f"Repository added: {target}")


@cli.command("set-package-manager")
@click.argument("name")
def set_package_manager(name: str) -> None:
    """Set the fallback package manager (npm, yarn, pnpm)."""
    settings = _settings()
    repo_config = _load_repo_config(settings)
    try:
        manager = PackageManager.parse(name)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    repo_config.default_package_manager = manager
    save_repo_config(repo_config, _config_path(settings))
    click.echo(f"Default package manager set to: {manager.value}")


def main() -> None:
    cli()
