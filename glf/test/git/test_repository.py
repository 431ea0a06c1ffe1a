"""Tests for git/repository.py."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from glf.core.result import Err, Ok
from glf.git.repository import GitError, Repository
from glf.output.console import MockConsole


def _completed(
    returncode: int = 0, stdout: str = "", stderr: str = ""
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr
    )


def _argv(mock_run: MagicMock, index: int = -1) -> list[str]:
    """git arguments of a recorded call, without ``git -C <path>``."""
    return list(mock_run.call_args_list[index].args[0][3:])


# =============================================================================
# GitError Tests
# =============================================================================


class TestGitError:
    """Tests for GitError."""

    def test_str(self) -> None:
        error = GitError(command="checkout develop", message="pathspec did not match", returncode=1)
        assert str(error) == "git checkout develop failed (exit 1): pathspec did not match"


# =============================================================================
# Repository Tests - Mocked subprocess
# =============================================================================


class TestRepositoryMocked:
    """Tests for command composition with a mocked subprocess."""

    def test_exists(self, tmp_path: Path) -> None:
        """A .git directory or worktree file marks a repository."""
        assert Repository(tmp_path).exists() is False
        (tmp_path / ".git").write_text("gitdir: elsewhere")
        assert Repository(tmp_path).exists() is True

    @patch("subprocess.run")
    def test_runs_inside_repository(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """Every call is git -C <path>."""
        mock_run.return_value = _completed()

        Repository(tmp_path).checkout_branch("develop")

        argv = mock_run.call_args.args[0]
        assert argv[:3] == ["git", "-C", str(tmp_path)]
        assert argv[3:] == ["checkout", "develop"]

    @patch("subprocess.run")
    def test_never_prompts(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """Credential prompts are disabled for every call."""
        mock_run.return_value = _completed()

        Repository(tmp_path).fetch()

        assert mock_run.call_args.kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"

    @patch("subprocess.run")
    def test_merge_arguments(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """Squash, no-commit and strategy options precede the branch."""
        mock_run.return_value = _completed()

        Repository(tmp_path).merge("feature/x", squash=True, no_commit=True, strategy="theirs")

        assert _argv(mock_run) == ["merge", "--squash", "--no-commit", "-X", "theirs", "feature/x"]

    @patch("subprocess.run")
    def test_annotated_tag(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """An annotation makes an annotated tag."""
        mock_run.return_value = _completed()
        repo = Repository(tmp_path)

        repo.tag("1.2.0", annotation="Release 1.2.0")
        assert _argv(mock_run) == ["tag", "-a", "1.2.0", "-m", "Release 1.2.0"]

        repo.tag("light")
        assert _argv(mock_run) == ["tag", "light"]

    @patch("subprocess.run")
    def test_failure_becomes_git_error(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """stderr and the exit code are carried over."""
        mock_run.return_value = _completed(returncode=128, stderr="fatal: bad revision\n")

        result = Repository(tmp_path).resolve_commit_sha("nope")

        assert isinstance(result, Err)
        assert result.error.command == "rev-parse --verify nope^{commit}"
        assert result.error.message == "fatal: bad revision"
        assert result.error.returncode == 128

    @patch("subprocess.run")
    def test_dry_run_echoes_but_skips_mutations(
        self, mock_run: MagicMock, tmp_path: Path
    ) -> None:
        """Mutations are printed, not executed; queries still run."""
        mock_run.return_value = _completed(stdout="develop\n")
        console = MockConsole()
        repo = Repository(tmp_path, console=console, dry_run=True)

        assert repo.create_branch("feature/x", "abc") == Ok(None)
        assert mock_run.call_count == 0
        assert console.commands == ["git branch feature/x abc"]

        assert repo.resolve_current_branch() == Ok("develop")
        assert mock_run.call_count == 1

    @patch("subprocess.run")
    def test_detached_head_falls_back(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """HEAD from rev-parse triggers the symbolic-ref fallback."""
        mock_run.side_effect = [
            _completed(stdout="HEAD\n"),
            _completed(returncode=128, stderr="fatal: ref HEAD is not a symbolic ref"),
        ]

        result = Repository(tmp_path).resolve_current_branch()

        assert isinstance(result, Err)
        assert _argv(mock_run) == ["symbolic-ref", "--short", "HEAD"]

    @patch("subprocess.run")
    def test_fetch_uses_network_timeout(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """Network commands get a longer timeout."""
        mock_run.return_value = _completed()
        repo = Repository(tmp_path)

        repo.fetch()
        fetch_timeout = mock_run.call_args.kwargs["timeout"]
        repo.branch_exists("develop")
        local_timeout = mock_run.call_args.kwargs["timeout"]

        assert fetch_timeout > local_timeout

    @patch("subprocess.run")
    def test_hook_commands_are_not_timed(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """commit, merge and checkout may run hooks of any length."""
        mock_run.return_value = _completed()
        repo = Repository(tmp_path)

        repo.commit("feature x merge")
        assert mock_run.call_args.kwargs["timeout"] is None
        repo.merge("feature/x", squash=True, no_commit=True)
        assert mock_run.call_args.kwargs["timeout"] is None
        repo.checkout_branch("develop")
        assert mock_run.call_args.kwargs["timeout"] is None

        repo.tag("1.2.0")
        assert mock_run.call_args.kwargs["timeout"] is not None

    @patch("subprocess.run")
    def test_root_commit_is_last_line(self, mock_run: MagicMock, tmp_path: Path) -> None:
        """With several roots the oldest listed one is used."""
        mock_run.return_value = _completed(stdout="aaa\nbbb\n")

        assert Repository(tmp_path).root_commit_sha() == Ok("bbb")


# =============================================================================
# Repository Tests - Real git
# =============================================================================


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Repository:
    """An initialized repository with one commit on master."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    config = tmp_path / "gitconfig"
    config.write_text(
        "[init]\n\tdefaultBranch = master\n[commit]\n\tgpgsign = false\n[tag]\n\tgpgsign = false\n"
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(var, "glf tests")
    for var in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(var, "glf@example.com")

    path = tmp_path / "repo"
    path.mkdir()
    repo = Repository(path)
    assert repo.init() == Ok(None)
    (path / "app.txt").write_text("base\n")
    _git(path, "add", "app.txt")
    assert repo.commit("Initial commit") == Ok(None)
    return repo


def _git(path: Path, *args: str) -> None:
    subprocess.run(["git", "-C", str(path), *args], check=True, capture_output=True)


class TestRepositoryGit:
    """Tests against a real repository."""

    def test_branches(self, git_repo: Repository) -> None:
        """Create, check out and delete a branch."""
        assert git_repo.resolve_current_branch() == Ok("master")
        root = git_repo.root_commit_sha()
        assert isinstance(root, Ok)

        assert git_repo.create_branch("develop", root.value) == Ok(None)
        assert git_repo.branch_exists("develop")
        assert git_repo.checkout_branch("develop") == Ok(None)
        assert git_repo.resolve_current_branch() == Ok("develop")
        assert git_repo.resolve_commit_sha("develop") == root

        assert git_repo.checkout_branch("master") == Ok(None)
        assert git_repo.delete_branch("develop") == Ok(None)
        assert not git_repo.branch_exists("develop")

    def test_dirty_ignores_untracked(self, git_repo: Repository) -> None:
        """Only tracked changes make the tree dirty."""
        (git_repo.path / "notes.txt").write_text("untracked\n")
        assert git_repo.is_dirty() is False

        (git_repo.path / "app.txt").write_text("changed\n")
        assert git_repo.is_dirty() is True

    def test_squash_merge_conflict(self, git_repo: Repository) -> None:
        """A conflicting squash merge stays in progress until staged."""
        path = git_repo.path
        git_repo.create_branch("feature/x")
        git_repo.checkout_branch("feature/x")
        (path / "app.txt").write_text("feature\n")
        _git(path, "commit", "-am", "feature change")
        git_repo.checkout_branch("master")
        (path / "app.txt").write_text("master\n")
        _git(path, "commit", "-am", "master change")

        merged = git_repo.merge("feature/x", squash=True, no_commit=True)

        assert isinstance(merged, Err)
        assert git_repo.is_merge_in_progress() is True
        assert git_repo.has_unmerged_paths() is True

        (path / "app.txt").write_text("resolved\n")
        _git(path, "add", "app.txt")

        assert git_repo.is_merge_in_progress() is False
        assert git_repo.has_staged_changes() is True
        assert git_repo.commit("feature x merge") == Ok(None)
        assert git_repo.is_dirty() is False

    def test_clean_squash_merge_stages_changes(self, git_repo: Repository) -> None:
        """A clean squash merge leaves staged changes and no merge state."""
        git_repo.create_branch("feature/y")
        git_repo.checkout_branch("feature/y")
        (git_repo.path / "new.txt").write_text("y\n")
        _git(git_repo.path, "add", "new.txt")
        _git(git_repo.path, "commit", "-m", "add y")
        git_repo.checkout_branch("master")

        assert git_repo.merge("feature/y", squash=True, no_commit=True) == Ok(None)
        assert git_repo.is_merge_in_progress() is False
        assert git_repo.has_staged_changes() is True

    def test_tags(self, git_repo: Repository) -> None:
        """Annotated tags resolve to the tagged commit."""
        assert git_repo.tag("1.2.0", annotation="Release 1.2.0") == Ok(None)

        assert git_repo.resolve_commit_sha("refs/tags/1.2.0") == git_repo.resolve_commit_sha(
            "master"
        )
        assert isinstance(git_repo.resolve_commit_sha("refs/tags/9.9.9"), Err)

    def test_upstreams(self, git_repo: Repository) -> None:
        """Remotes are added and detected without network access."""
        assert git_repo.upstream_exists("origin") is False

        assert git_repo.add_upstream("origin", "https://example.com/repo.git") == Ok(None)

        assert git_repo.upstream_exists("origin") is True
        assert git_repo.remote_branch_exists("master", "origin") is False
