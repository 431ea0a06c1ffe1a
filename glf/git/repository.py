"""Git Gateway: every git invocation glf makes goes through here.

``Repository`` wraps one working directory. Mutating operations are echoed
to the console before they run and are skipped entirely in dry-run mode;
read-only queries always run so that dry-run command flow stays the same as
a real run.

Usage:
    repo = Repository(node.path, console=console, dry_run=False)

    if repo.is_dirty():
        ...

    match repo.checkout_branch("develop"):
        case Ok(_):
            ...
        case Err(e):
            print(f"checkout failed: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from glf.core.result import Err, Ok, Result
from glf.output.console import ConsoleProtocol
from glf.platform.process import ProcessError
from glf.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# These run user hooks (pre-commit, commit-msg, post-checkout) of any length
_HOOK_COMMANDS = frozenset({"commit", "merge", "checkout"})

# Never block on a credential prompt or an editor
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true"}

__all__ = [
    "GitError",
    "GitGateway",
    "Repository",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed (without the ``git -C`` prefix)
        message: Error message (stderr, falling back to stdout)
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1

    def __str__(self) -> str:
        return f"git {self.command} failed (exit {self.returncode}): {self.message}"


class GitGateway(Protocol):
    """Operations the workflow needs from a node's working directory."""

    @property
    def path(self) -> Path: ...

    def checkout_branch(self, name: str) -> Result[None, GitError]: ...

    def create_branch(self, name: str, source: str | None = None) -> Result[None, GitError]: ...

    def delete_branch(self, name: str) -> Result[None, GitError]: ...

    def branch_exists(self, name: str) -> bool: ...

    def remote_branch_exists(self, name: str, upstream: str) -> bool: ...

    def merge(
        self,
        name: str,
        *,
        squash: bool = False,
        message: str | None = None,
        no_commit: bool = False,
        strategy: str | None = None,
    ) -> Result[None, GitError]: ...

    def abort_merge(self) -> Result[None, GitError]: ...

    def reset_merge(self) -> Result[None, GitError]: ...

    def tag(
        self, name: str, *, source: str | None = None, annotation: str | None = None
    ) -> Result[None, GitError]: ...

    def commit(
        self, message: str, *, amend: bool = False, allow_empty: bool = False
    ) -> Result[None, GitError]: ...

    def fetch(self) -> Result[None, GitError]: ...

    def is_dirty(self) -> bool: ...

    def has_staged_changes(self) -> bool: ...

    def is_merge_in_progress(self) -> bool: ...

    def has_unmerged_paths(self) -> bool: ...

    def resolve_current_branch(self) -> Result[str, GitError]: ...

    def resolve_commit_sha(self, ref: str) -> Result[str, GitError]: ...

    def upstream_exists(self, name: str) -> bool: ...

    def add_upstream(self, name: str, url: str) -> Result[None, GitError]: ...

    def exists(self) -> bool: ...

    def init(self) -> Result[None, GitError]: ...

    def root_commit_sha(self) -> Result[str, GitError]: ...


class Repository:
    """Git Gateway backed by the ``git`` binary.

    Attributes:
        path: Working directory of the node
        dry_run: Skip mutating commands (they are still echoed)
    """

    def __init__(
        self,
        path: Path,
        *,
        console: ConsoleProtocol | None = None,
        dry_run: bool = False,
    ) -> None:
        self._path = path
        self._console = console
        self.dry_run = dry_run

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """Check if this is a git repository (``.git`` dir or worktree file)."""
        return (self._path / ".git").exists()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def init(self) -> Result[None, GitError]:
        return self._mutate(["init"])

    def checkout_branch(self, name: str) -> Result[None, GitError]:
        return self._mutate(["checkout", name])

    def create_branch(self, name: str, source: str | None = None) -> Result[None, GitError]:
        args = ["branch", name]
        if source:
            args.append(source)
        return self._mutate(args)

    def delete_branch(self, name: str) -> Result[None, GitError]:
        return self._mutate(["branch", "-D", name])

    def merge(
        self,
        name: str,
        *,
        squash: bool = False,
        message: str | None = None,
        no_commit: bool = False,
        strategy: str | None = None,
    ) -> Result[None, GitError]:
        args = ["merge"]
        if squash:
            args.append("--squash")
        if no_commit:
            args.append("--no-commit")
        if message:
            args.extend(["-m", message])
        if strategy:
            args.extend(["-X", strategy])
        args.append(name)
        return self._mutate(args)

    def abort_merge(self) -> Result[None, GitError]:
        return self._mutate(["merge", "--abort"])

    def reset_merge(self) -> Result[None, GitError]:
        return self._mutate(["reset", "--merge"])

    def tag(
        self, name: str, *, source: str | None = None, annotation: str | None = None
    ) -> Result[None, GitError]:
        if source or annotation:
            args = ["tag", "-a", name, "-m", annotation or name]
            if source:
                args.append(source)
        else:
            args = ["tag", name]
        return self._mutate(args)

    def commit(
        self, message: str, *, amend: bool = False, allow_empty: bool = False
    ) -> Result[None, GitError]:
        args = ["commit", "-m", message]
        if amend:
            args.append("--amend")
        if allow_empty:
            args.append("--allow-empty")
        return self._mutate(args)

    def fetch(self) -> Result[None, GitError]:
        return self._mutate(["fetch", "--all", "--prune"])

    def add_upstream(self, name: str, url: str) -> Result[None, GitError]:
        return self._mutate(["remote", "add", name, url])

    # -------------------------------------------------------------------------
    # Queries (always executed, even in dry-run)
    # -------------------------------------------------------------------------

    def branch_exists(self, name: str) -> bool:
        return isinstance(self._query(["rev-parse", "--verify", "--quiet", f"refs/heads/{name}"]), Ok)

    def remote_branch_exists(self, name: str, upstream: str) -> bool:
        """Check the remote-tracking ref locally (no network round trip)."""
        if not self.upstream_exists(upstream):
            return False
        ref = f"refs/remotes/{upstream}/{name}"
        return isinstance(self._query(["rev-parse", "--verify", "--quiet", ref]), Ok)

    def upstream_exists(self, name: str) -> bool:
        return isinstance(self._query(["remote", "get-url", name]), Ok)

    def is_dirty(self) -> bool:
        """True if tracked files differ from HEAD (staged or not).

        Untracked files are ignored. A repository without commits counts as
        dirty since there is no HEAD to compare against.
        """
        self._query(["update-index", "-q", "--refresh"])
        return isinstance(self._query(["diff-index", "--quiet", "HEAD", "--"]), Err)

    def has_staged_changes(self) -> bool:
        match self._query(["diff", "--name-only", "--cached"]):
            case Ok(stdout):
                return bool(stdout.strip())
            case Err(_):
                return False

    def has_unmerged_paths(self) -> bool:
        match self._query(["diff", "--name-only", "--diff-filter=U"]):
            case Ok(stdout):
                return bool(stdout.strip())
            case Err(_):
                return False

    def is_merge_in_progress(self) -> bool:
        """True while git still considers a merge unresolved.

        A squash merge leaves no MERGE_HEAD, so unmerged index entries are
        checked as well.
        """
        if isinstance(self._query(["rev-parse", "-q", "--verify", "MERGE_HEAD"]), Ok):
            return True
        return self.has_unmerged_paths()

    def resolve_current_branch(self) -> Result[str, GitError]:
        result = self._query(["rev-parse", "--abbrev-ref", "HEAD"])
        if isinstance(result, Ok) and result.value.strip() != "HEAD":
            return Ok(result.value.strip())

        # Unborn branch (no commits yet) or detached HEAD
        fallback = self._query(["symbolic-ref", "--short", "HEAD"])
        match fallback:
            case Ok(stdout):
                return Ok(stdout.strip())
            case Err(e):
                return Err(e)

    def resolve_commit_sha(self, ref: str) -> Result[str, GitError]:
        return self._query(["rev-parse", "--verify", f"{ref}^{{commit}}"]).map(str.strip)

    def root_commit_sha(self) -> Result[str, GitError]:
        match self._query(["rev-list", "--max-parents=0", "HEAD"]):
            case Ok(stdout):
                lines = stdout.split()
                if not lines:
                    return Err(GitError(command="rev-list", message="no root commit"))
                return Ok(lines[-1])
            case Err(e):
                return Err(e)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _mutate(self, args: list[str]) -> Result[None, GitError]:
        if self._console is not None:
            self._console.command(["git", *args], self._path)
        if self.dry_run:
            return Ok(None)
        return self._query(args).map(lambda _: None)

    def _query(self, args: list[str]) -> Result[str, GitError]:
        return self._run(args).map_err(lambda e: _to_git_error(args, e))

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        command = args[0] if args else ""
        timeout: float | None
        if command in _HOOK_COMMANDS:
            timeout = None
        elif command in {"fetch", "pull", "push", "clone"}:
            timeout = _GIT_NETWORK_TIMEOUT_SECONDS
        else:
            timeout = _GIT_TIMEOUT_SECONDS
        return run_process(
            ["git", "-C", str(self._path), *args], cwd=self._path, env=_GIT_ENV, timeout=timeout
        )


def _to_git_error(args: list[str], error: ProcessError) -> GitError:
    return GitError(
        command=" ".join(args),
        message=error.output or "git command failed",
        returncode=error.returncode,
    )
