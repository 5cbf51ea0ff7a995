from pathlib import Path
from unittest.mock import patch

import pytest

from mru.config import Settings
from mru.engine import EngineConfig, OrchestrationEngine, commit_message_for
from mru.errors import ErrorKind, ProcessTimeoutError
from mru.models import (
    Applied,
    DependencySection,
    Failed,
    PackageManager,
    Repository,
    Skipped,
    UpdateRequest,
)
from mru.process import ProcessResult, ProcessRunner
from mru.repo_config import RepoConfig


class StubRunner(ProcessRunner):
    """Real git; scripted results for everything else."""

    def __init__(self, scripted: dict[str, ProcessResult] | None = None) -> None:
        self.scripted = scripted or {}
        self.calls: list[list[str]] = []

    def run(self, command, args=(), *, cwd=None, timeout=60):
        self.calls.append([command, *args])
        if command == "git":
            return super().run(command, args, cwd=cwd, timeout=timeout)
        if command in self.scripted:
            return self.scripted[command]
        return ProcessResult(command=[command, *args], exit_code=0, stdout="", stderr="")

    def commands(self, name: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == name]


def _engine(runner: ProcessRunner, **overrides) -> OrchestrationEngine:
    config = EngineConfig(default_package_manager=PackageManager.NPM, **overrides)
    return OrchestrationEngine(config, runner=runner, token_factory=lambda: "20260101000000")


def _lodash_repo(make_repo, manifest_text, name: str = "web") -> Path:
    return make_repo(
        name,
        {
            "package.json": manifest_text({"lodash": "^4.17.20", "react": "^18.2.0"}),
            "pnpm-lock.yaml": "lockfileVersion: '6.0'\n",
        },
    )


def test_commit_message_templates() -> None:
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21")
    assert commit_message_for(request, None) == "chore: update lodash to ^4.17.21"
    assert commit_message_for(request, "deps: {package}@{version}") == "deps: lodash@^4.17.21"
    explicit = UpdateRequest(package_name="lodash", version_spec="1", commit_message="bump it")
    assert commit_message_for(explicit, "ignored {package}") == "bump it"


def test_engine_config_from_settings() -> None:
    settings = Settings(MRU_MAX_WORKERS=4, MRU_BRANCH_PREFIX="deps")
    repo_config = RepoConfig(default_package_manager=PackageManager.YARN)
    config = EngineConfig.from_settings(settings, repo_config)
    assert config.max_workers == 4
    assert config.branch_prefix == "deps"
    assert config.default_package_manager is PackageManager.YARN
    assert config.git_timeout_s == 60.0


def test_dry_run_leaves_repository_untouched(make_repo, manifest_text, run_git) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    before = (repo / "package.json").read_bytes()
    head = run_git(repo, "rev-parse", "HEAD")
    runner = StubRunner()
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21", dry_run=True)

    result = _engine(runner).run(request, [Repository(path=repo)])

    [(_, outcome)] = list(result)
    assert isinstance(outcome, Skipped)
    assert outcome.reason == "dry-run"
    assert outcome.change is not None
    assert outcome.change.old_version == "^4.17.20"
    assert outcome.change.new_version == "^4.17.21"
    assert outcome.change.dependency_section is DependencySection.DEPENDENCIES
    assert (repo / "package.json").read_bytes() == before
    assert run_git(repo, "rev-parse", "HEAD") == head
    assert run_git(repo, "branch", "--list") == "* main"
    assert runner.commands("pnpm") == []
    assert result.exit_code() == 0


def test_applied_runs_install_and_returns_to_original_branch(
    make_repo, manifest_text, run_git
) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    runner = StubRunner()
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21")

    outcome = _engine(runner).process(request, Repository(path=repo))

    assert isinstance(outcome, Applied)
    assert outcome.branch_name == "mru/update-lodash-4.17.21-20260101000000"
    assert outcome.warnings == ()
    assert runner.commands("pnpm") == [["pnpm", "install"]]
    assert run_git(repo, "branch", "--show-current") == "main"
    assert run_git(repo, "rev-parse", outcome.branch_name) == outcome.commit_id
    assert run_git(repo, "log", "-1", "--format=%s", outcome.branch_name) == (
        "chore: update lodash to ^4.17.21"
    )
    remote = repo.parent / "web-remote.git"
    assert run_git(remote, "rev-parse", f"refs/heads/{outcome.branch_name}") == outcome.commit_id


def test_already_at_version_is_skipped(make_repo, manifest_text, run_git) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.20")
    outcome = _engine(StubRunner()).process(request, Repository(path=repo))
    assert outcome == Skipped(reason="already at ^4.17.20")
    assert run_git(repo, "branch", "--list") == "* main"


def test_install_failure_abandons_branch(make_repo, manifest_text, run_git) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    before = (repo / "package.json").read_bytes()
    runner = StubRunner(
        {"pnpm": ProcessResult(command=["pnpm"], exit_code=1, stdout="", stderr="ETARGET")}
    )
    request = UpdateRequest(package_name="lodash", version_spec="^99.0.0")

    outcome = _engine(runner).process(request, Repository(path=repo))

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.INSTALL_FAILED
    assert "ETARGET" in outcome.detail
    assert run_git(repo, "branch", "--show-current") == "main"
    assert run_git(repo, "branch", "--list", "mru/*") == ""
    assert (repo / "package.json").read_bytes() == before


def test_pull_request_url_is_reported(make_repo, manifest_text) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    runner = StubRunner(
        {
            "gh": ProcessResult(
                command=["gh"],
                exit_code=0,
                stdout="https://github.com/acme/web/pull/9\n",
                stderr="",
            )
        }
    )
    request = UpdateRequest(
        package_name="lodash", version_spec="^4.17.21", create_pull_request=True
    )
    outcome = _engine(runner).process(request, Repository(path=repo))
    assert isinstance(outcome, Applied)
    assert outcome.pull_request_url == "https://github.com/acme/web/pull/9"
    [gh_call] = runner.commands("gh")
    assert gh_call[gh_call.index("--title") + 1] == "chore: update lodash to ^4.17.21"


def test_pull_request_failure_is_a_warning(make_repo, manifest_text) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    runner = StubRunner(
        {"gh": ProcessResult(command=["gh"], exit_code=4, stdout="", stderr="gh auth login")}
    )
    request = UpdateRequest(
        package_name="lodash", version_spec="^4.17.21", create_pull_request=True
    )
    outcome = _engine(runner).process(request, Repository(path=repo))
    assert isinstance(outcome, Applied)
    assert outcome.pull_request_url is None
    assert outcome.warnings == ("pull request not created: gh auth login",)


def test_failures_are_isolated_and_ordered(make_repo, manifest_text, tmp_path) -> None:
    good = _lodash_repo(make_repo, manifest_text, name="good")
    missing = Repository(path=tmp_path / "does-not-exist")
    dirty = _lodash_repo(make_repo, manifest_text, name="dirty")
    (dirty / "pnpm-lock.yaml").write_text("lockfileVersion: '9.0'\n")
    repos = [missing, Repository(path=good), Repository(path=dirty)]
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21", run_install=False)

    result = _engine(StubRunner(), max_workers=3).run(request, repos)

    assert [repo for repo, _ in result] == repos
    assert isinstance(result.outcome_for(missing), Failed)
    assert result.outcome_for(missing).kind is ErrorKind.REPOSITORY_PATH_MISSING
    assert isinstance(result.outcome_for(Repository(path=good)), Applied)
    assert result.outcome_for(Repository(path=dirty)).kind is ErrorKind.DIRTY_WORKING_TREE
    assert result.exit_code() == 1


def test_unexpected_errors_become_failed_outcomes(make_repo, manifest_text) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    request = UpdateRequest(package_name="lodash", version_spec="1.0.0", dry_run=True)
    with patch("mru.engine.manifest.plan_update", side_effect=RuntimeError("boom")):
        outcome = _engine(StubRunner()).process(request, Repository(path=repo))
    assert outcome == Failed(kind=ErrorKind.UNEXPECTED, detail="RuntimeError: boom")


def test_cancelled_engine_skips_remaining_work(tmp_path) -> None:
    engine = _engine(StubRunner())
    engine.cancel()
    repos = [Repository(path=tmp_path / "a"), Repository(path=tmp_path / "b")]
    result = engine.run(UpdateRequest(package_name="x", version_spec="1"), repos)
    assert engine.cancelled is True
    assert [outcome for _, outcome in result] == [Skipped(reason="cancelled")] * 2


@pytest.mark.parametrize("workers", [1, 4])
def test_results_keep_input_order(tmp_path, workers: int) -> None:
    repos = [Repository(path=tmp_path / f"missing-{index}") for index in range(6)]
    request = UpdateRequest(package_name="x", version_spec="1")
    result = _engine(StubRunner(), max_workers=workers).run(request, repos)
    assert [repo for repo, _ in result] == repos
    assert len(result.failed) == 6


class BranchTimeoutRunner(StubRunner):
    """Lets ``git checkout -b`` write the branch, then reports a timeout."""

    def run(self, command, args=(), *, cwd=None, timeout=60):
        result = super().run(command, args, cwd=cwd, timeout=timeout)
        if command == "git" and "checkout" in args and "-b" in args:
            raise ProcessTimeoutError("git checkout -b timed out")
        return result


def test_absent_package_is_skipped_without_touching_git(
    make_repo, manifest_text, run_git
) -> None:
    repo = make_repo("api", {"package.json": manifest_text({"react": "^18.2.0"})})
    head = run_git(repo, "rev-parse", "HEAD")
    runner = StubRunner()
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21")

    result = _engine(runner).run(request, [Repository(path=repo)])

    assert [outcome for _, outcome in result] == [Skipped(reason="not found")]
    assert result.exit_code() == 0
    assert run_git(repo, "rev-parse", "HEAD") == head
    assert run_git(repo, "branch", "--list") == "* main"
    remote = repo.parent / "api-remote.git"
    assert run_git(remote, "for-each-ref", "--format=%(refname)") == "refs/heads/main"
    assert runner.commands("npm") == []


def test_dirty_repository_without_the_package_is_skipped(
    make_repo, manifest_text, run_git
) -> None:
    repo = make_repo(
        "api",
        {"package.json": manifest_text({"react": "^18.2.0"}), "README.md": "# api\n"},
    )
    (repo / "README.md").write_text("# api, edited\n")
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21")

    outcome = _engine(StubRunner()).process(request, Repository(path=repo))

    assert outcome == Skipped(reason="not found")
    assert run_git(repo, "branch", "--list") == "* main"
    assert run_git(repo, "status", "--porcelain") == "M README.md"


def test_timed_out_branch_creation_is_cleaned_up(make_repo, manifest_text, run_git) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21")

    outcome = _engine(BranchTimeoutRunner()).process(request, Repository(path=repo))

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.PROCESS_TIMEOUT
    assert outcome.retryable is True
    assert run_git(repo, "branch", "--show-current") == "main"
    assert run_git(repo, "branch", "--list", "mru/*") == ""


def test_pre_existing_branch_is_left_alone(make_repo, manifest_text, run_git) -> None:
    repo = _lodash_repo(make_repo, manifest_text)
    taken = "mru/update-lodash-4.17.21-20260101000000"
    run_git(repo, "branch", taken)
    request = UpdateRequest(package_name="lodash", version_spec="^4.17.21")

    outcome = _engine(StubRunner()).process(request, Repository(path=repo))

    assert isinstance(outcome, Failed)
    assert outcome.kind is ErrorKind.BRANCH_CREATION_FAILED
    assert outcome.retryable is False
    assert run_git(repo, "branch", "--show-current") == "main"
    assert run_git(repo, "branch", "--list", taken) == taken
