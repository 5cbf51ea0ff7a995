"""Batch orchestration: run the update pipeline across repositories."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from mru.config import Settings
from mru.errors import ErrorKind, MruError, RepositoryPathMissingError
from mru.git.workflow import (
    DEFAULT_BRANCH_PREFIX,
    GitWorkflowRunner,
    WorkflowState,
    branch_name,
    branch_token,
)
from mru.github.pulls import PullRequestCreator, render_body
from mru.logging import repo_context
from mru.models import (
    Applied,
    BatchResult,
    Failed,
    ManifestChange,
    NoChangeNeeded,
    PackageManager,
    Repository,
    Skipped,
    UpdateOutcome,
    UpdateRequest,
)
from mru.packages import manifest, resolver
from mru.packages.installer import DependencyInstaller
from mru.process import ProcessRunner
from mru.repo_config import RepoConfig

logger = logging.getLogger(__name__)

DRY_RUN_REASON = "dry-run"
CANCELLED_REASON = "cancelled"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Read-only snapshot of everything the engine needs from configuration."""

    default_commit_message: str | None = None
    default_package_manager: PackageManager | None = None
    max_workers: int = 1
    git_timeout_s: float = 60
    install_timeout_s: float = 600
    gh_timeout_s: float = 120
    branch_prefix: str = DEFAULT_BRANCH_PREFIX

    @classmethod
    def from_settings(
        cls, settings: Settings, repo_config: RepoConfig | None = None
    ) -> EngineConfig:
        return cls(
            default_commit_message=repo_config.default_commit_message if repo_config else None,
            default_package_manager=(
                repo_config.default_package_manager if repo_config else None
            ),
            max_workers=max(1, int(settings.max_workers)),
            git_timeout_s=float(settings.git_timeout_seconds),
            install_timeout_s=float(settings.install_timeout_seconds),
            gh_timeout_s=float(settings.gh_timeout_seconds),
            branch_prefix=settings.branch_prefix,
        )


def commit_message_for(request: UpdateRequest, default_template: str | None) -> str:
    template = request.commit_message or default_template
    if not template or not template.strip():
        template = "chore: update {package} to {version}"
    return template.replace("{package}", request.package_name).replace(
        "{version}", request.version_spec
    )


class OrchestrationEngine:
    def __init__(
        self,
        config: EngineConfig,
        runner: ProcessRunner | None = None,
        token_factory: Callable[[], str] = branch_token,
    ) -> None:
        self.config = config
        self._runner = runner or ProcessRunner()
        self._token_factory = token_factory
        self._installer = DependencyInstaller(self._runner, config.install_timeout_s)
        self._pull_requests = PullRequestCreator(self._runner, config.gh_timeout_s)
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop starting new repositories; in-flight ones run to completion."""
        self._cancel.set()

    def run(self, request: UpdateRequest, repos: Sequence[Repository]) -> BatchResult:
        targets = list(repos)
        outcomes: dict[int, UpdateOutcome] = {}
        lock = threading.Lock()

        def _work(index: int, repo: Repository) -> None:
            if self._cancel.is_set():
                outcome: UpdateOutcome = Skipped(reason=CANCELLED_REASON)
            else:
                outcome = self.process(request, repo)
            with lock:
                outcomes[index] = outcome

        logger.info(
            "Updating %s to %s in %d repositories (dry_run=%s workers=%d)",
            request.package_name,
            request.version_spec,
            len(targets),
            request.dry_run,
            self.config.max_workers,
        )
        with ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="mru-worker"
        ) as pool:
            futures: list[Future[None]] = [
                pool.submit(_work, index, repo) for index, repo in enumerate(targets)
            ]
            try:
                wait(futures)
            except KeyboardInterrupt:
                logger.warning("Interrupted; finishing repositories already in progress")
                self.cancel()
                for future in futures:
                    future.cancel()
                wait(futures)

        result = BatchResult()
        for index, repo in enumerate(targets):
            result.entries.append((repo, outcomes.get(index, Skipped(reason=CANCELLED_REASON))))
        return result

    def process(self, request: UpdateRequest, repo: Repository) -> UpdateOutcome:
        """Run the pipeline for one repository; never raises."""
        with repo_context(str(repo.path)):
            try:
                return self._pipeline(request, repo)
            except MruError as exc:
                logger.error("%s: %s", exc.kind.value, exc)
                return Failed(kind=exc.kind, detail=str(exc), retryable=exc.retryable)
            except Exception as exc:
                logger.exception("Unexpected failure")
                return Failed(
                    kind=ErrorKind.UNEXPECTED, detail=f"{type(exc).__name__}: {exc}"
                )

    def _pipeline(self, request: UpdateRequest, repo: Repository) -> UpdateOutcome:
        if not repo.path.is_dir():
            raise RepositoryPathMissingError(f"repository path does not exist: {repo.path}")
        manager = resolver.resolve(repo.path, self.config.default_package_manager)
        logger.debug("Package manager: %s", manager.value)

        # Nothing to change: skip before the working tree is inspected.
        planned = manifest.plan_update(repo.path, request.package_name, request.version_spec)
        if isinstance(planned, NoChangeNeeded):
            return Skipped(reason=planned.reason)
        if request.dry_run:
            return Skipped(reason=DRY_RUN_REASON, change=planned)

        workflow = GitWorkflowRunner(repo, self._runner, self.config.git_timeout_s)
        workflow.ensure_clean()

        original = workflow.current_branch()
        name = branch_name(
            request.package_name,
            request.version_spec,
            self._token_factory(),
            prefix=self.config.branch_prefix,
        )
        message = commit_message_for(request, self.config.default_commit_message)
        try:
            workflow.create_branch(name)
            change, commit_id = self._commit_and_push(
                request, repo, manager, workflow, name, message
            )
        except Exception:
            workflow.abandon(name, original)
            raise

        warnings: list[str] = []
        pull_request_url: str | None = None
        if request.create_pull_request:
            try:
                pull_request_url = self._pull_requests.create(
                    repo,
                    name,
                    title=message.splitlines()[0],
                    body=render_body(request.package_name, change.old_version, change.new_version),
                    draft=request.draft_pull_request,
                )
                workflow.state = WorkflowState.PULL_REQUEST_READY
            except MruError as exc:
                logger.warning("Pull request not created: %s", exc)
                warnings.append(f"pull request not created: {exc}")
        if not workflow.checkout(original):
            warnings.append(f"could not switch back to {original}")
        return Applied(
            change=change,
            branch_name=name,
            commit_id=commit_id,
            pull_request_url=pull_request_url,
            warnings=tuple(warnings),
        )

    def _commit_and_push(
        self,
        request: UpdateRequest,
        repo: Repository,
        manager: PackageManager,
        workflow: GitWorkflowRunner,
        name: str,
        message: str,
    ) -> tuple[ManifestChange, str]:
        change = manifest.apply_update(repo.path, request.package_name, request.version_spec)
        if isinstance(change, NoChangeNeeded):
            raise MruError(f"manifest changed during update: {change.reason}")
        paths = [manifest.MANIFEST_FILE]
        if request.run_install:
            self._installer.install(repo.path, manager)
            lock_file = self._installer.lock_file_to_stage(repo.path, manager)
            if lock_file is not None:
                paths.append(lock_file)
        commit_id = workflow.commit(paths, message)
        workflow.push(name)
        return change, commit_id
