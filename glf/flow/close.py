"""Close Workflow: finish a feature, release or hotfix on one node.

Closing merges the work branch into develop (and, for releases and
hotfixes, into master followed by an annotated tag), then deletes the
branch and removes the item from the configuration. Support-owned items
use their support's develop and master branches instead.

Progress is persisted in the node's workflow state so that an interrupted
close (conflict left unresolved, crash, declined prompt) resumes where it
stopped:

    activeClosingFeature          uri of the item being closed
    <uri>/closing -> develop      develop merge done
    <uri>/closing -> master       master merge and tag done

Any error before finalization leaves these markers untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from glf.core.globs import escape
from glf.core.result import Err, Ok, Result
from glf.flow.errors import FlowError, from_git_error
from glf.flow.model import ConfigNode, ItemElement, WorkItem
from glf.flow.resolver import OpenRepo, resolve_element, resolve_element_from_branch
from glf.flow.state import WorkflowState
from glf.flow.tree import save_node
from glf.flow.uri import Uri, parse_uri
from glf.git.repository import GitGateway
from glf.output.console import ConsoleProtocol, Style

__all__ = [
    "ACTIVE_CLOSING_KEY",
    "Stage",
    "Confirm",
    "CloseOutcome",
    "NodeReport",
    "CloseWorkflow",
    "close_nodes",
    "closing_key",
    "active_closing",
    "set_active_closing",
    "stage_done",
    "mark_stage_done",
    "clear_closing_markers",
    "stages_for",
]

ACTIVE_CLOSING_KEY = "activeClosingFeature"

type Stage = Literal["develop", "master"]
type Confirm = Callable[[str], bool]


# -----------------------------------------------------------------------------
# Typed state accessors
# -----------------------------------------------------------------------------


def closing_key(item: WorkItem) -> str:
    return f"{item.uri}/closing"


def active_closing(state: WorkflowState) -> Result[str | None, FlowError]:
    return state.get_str(ACTIVE_CLOSING_KEY)


def set_active_closing(state: WorkflowState, uri: str | None) -> Result[None, FlowError]:
    return state.set(ACTIVE_CLOSING_KEY, uri)


def stage_done(state: WorkflowState, item: WorkItem, stage: Stage) -> Result[bool, FlowError]:
    return state.get_bool((closing_key(item), stage)).map(bool)


def mark_stage_done(state: WorkflowState, item: WorkItem, stage: Stage) -> Result[None, FlowError]:
    return state.set((closing_key(item), stage), True)


def clear_closing_markers(state: WorkflowState, item: WorkItem) -> Result[None, FlowError]:
    return state.set_matching(escape(closing_key(item)) + "*", None).map(lambda _: None)


def stages_for(item: WorkItem) -> tuple[Stage, ...]:
    if item.kind == "feature":
        return ("develop",)
    return ("develop", "master")


# -----------------------------------------------------------------------------
# Workflow
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CloseOutcome:
    """What a close run did on one node.

    Attributes:
        item: The closed item, None when there was nothing to close
        resumed: The item came from an interrupted close
        aborted: Closed with ``abort`` (no merge attempted)
    """

    item: WorkItem | None
    resumed: bool = False
    aborted: bool = False


def _dirty(node: ConfigNode, action: str) -> FlowError:
    return FlowError(
        kind="dirty_working_tree",
        message=f"{node.pathspec}: working tree has uncommitted changes, cannot {action}",
        hint="Commit or stash your changes, then run the close again",
    )


class CloseWorkflow:
    """Resumable close of one item on one node.

    ``confirm`` answers the initial "close X?" question. ``confirm_resolved``
    answers "conflicts resolved?" inside the conflict loop and defaults to
    ``confirm``; pass a function returning False to fail fast on conflicts
    (progress is kept for the next run).
    """

    def __init__(
        self,
        node: ConfigNode,
        repo: GitGateway,
        *,
        console: ConsoleProtocol,
        confirm: Confirm,
        confirm_resolved: Confirm | None = None,
        dry_run: bool = False,
    ) -> None:
        self._node = node
        self._repo = repo
        self._console = console
        self._confirm = confirm
        self._confirm_resolved = confirm_resolved or confirm
        self._dry_run = dry_run
        self.state = WorkflowState(node.path, dry_run=dry_run)

    def run(
        self,
        target: Uri | None = None,
        *,
        abort: bool = False,
        strategy: str | None = None,
    ) -> Result[CloseOutcome, FlowError]:
        selected = self._select(target)
        if isinstance(selected, Err):
            return selected
        item, resumed = selected.value
        if item is None:
            self._console.print(f"{self._node.pathspec}: nothing to close", Style.DIM)
            return Ok(CloseOutcome(item=None))

        verb = "Abort and remove" if abort else "Close"
        if not self._confirm(f"{verb} {item.uri} on {self._node.pathspec}?"):
            return Err(
                FlowError(kind="close_aborted", message=f"close of {item.uri} cancelled")
            )

        marked = set_active_closing(self.state, item.uri)
        if isinstance(marked, Err):
            return marked

        if not abort:
            for stage in stages_for(item):
                result = self._run_stage(item, stage, strategy, resumed=resumed)
                if isinstance(result, Err):
                    return result

        finalized = self._finalize(item)
        if isinstance(finalized, Err):
            return finalized

        self._console.success(f"{self._node.pathspec}: closed {item.uri}")
        return Ok(CloseOutcome(item=item, resumed=resumed, aborted=abort))

    # -------------------------------------------------------------------------
    # Entry
    # -------------------------------------------------------------------------

    def _select(self, target: Uri | None) -> Result[tuple[WorkItem | None, bool], FlowError]:
        """Item to close: interrupted close first, then target, then current branch."""
        active = active_closing(self.state)
        if isinstance(active, Err):
            return active
        if active.value is not None:
            item = self._resolve_item(active.value)
            if item is not None:
                self._console.warning(f"{self._node.pathspec}: resuming close of {item.uri}")
                return Ok((item, True))
            self._console.warning(
                f"{self._node.pathspec}: interrupted close of {active.value} no longer "
                "matches an item, clearing it"
            )
            cleared = set_active_closing(self.state, None)
            if isinstance(cleared, Err):
                return cleared

        if target is not None:
            match resolve_element(self._node, target, self._repo):
                case Ok(ItemElement(item)):
                    return Ok((item, False))
                case Ok(_):
                    return Ok((None, False))
                case Err(e) if e.kind == "not_found":
                    return Ok((None, False))
                case Err(e):
                    return Err(e)

        match self._repo.resolve_current_branch():
            case Ok(branch):
                element = resolve_element_from_branch(self._node, branch)
                if isinstance(element, ItemElement):
                    return Ok((element.item, False))
                return Ok((None, False))
            case Err(e):
                return Err(from_git_error(e))

    def _resolve_item(self, text: str) -> WorkItem | None:
        parsed = parse_uri(text)
        if isinstance(parsed, Err):
            return None
        resolved = resolve_element(self._node, parsed.value, self._repo)
        if isinstance(resolved, Ok) and isinstance(resolved.value, ItemElement):
            return resolved.value.item
        return None

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _target_branch(self, item: WorkItem, stage: Stage) -> str:
        support = self._node.find_support(item.support) if item.support else None
        if support is None:
            return stage
        return support.develop_branch_name if stage == "develop" else support.master_branch_name

    def _run_stage(
        self, item: WorkItem, stage: Stage, strategy: str | None, *, resumed: bool = False
    ) -> Result[None, FlowError]:
        done = stage_done(self.state, item, stage)
        if isinstance(done, Err):
            return done
        if done.value:
            self._console.print(
                f"{self._node.pathspec}: {stage} merge of {item.uri} already done", Style.DIM
            )
            return Ok(None)

        target = self._target_branch(item, stage)
        if resumed and self._merge_pending_on(target):
            self._console.info(
                f"{self._node.pathspec}: continuing merge of {item.branch_name} into {target}"
            )
            if self._repo.is_merge_in_progress():
                resolved = self._wait_for_resolution(item, target)
                if isinstance(resolved, Err):
                    return resolved
            return self._complete_stage(item, stage)

        self._console.info(f"{self._node.pathspec}: merging {item.branch_name} into {target}")

        if self._repo.is_dirty():
            return Err(_dirty(self._node, f"check out {target}"))

        checked_out = self._repo.checkout_branch(target)
        if isinstance(checked_out, Err):
            return Err(from_git_error(checked_out.error))

        if self._repo.is_dirty():
            return Err(_dirty(self._node, f"merge into {target}"))

        merged = self._repo.merge(
            item.branch_name, squash=True, no_commit=True, strategy=strategy
        )
        if isinstance(merged, Err):
            if not self._repo.is_merge_in_progress():
                return Err(from_git_error(merged.error))
            resolved = self._wait_for_resolution(item, target)
            if isinstance(resolved, Err):
                return resolved

        return self._complete_stage(item, stage)

    def _merge_pending_on(self, target: str) -> bool:
        """An earlier run left a merge (conflicted or resolved) on ``target``."""
        current = self._repo.resolve_current_branch()
        if not isinstance(current, Ok) or current.value != target:
            return False
        return self._repo.is_merge_in_progress() or self._repo.has_staged_changes()

    def _complete_stage(self, item: WorkItem, stage: Stage) -> Result[None, FlowError]:
        if self._repo.has_staged_changes():
            committed = self._repo.commit(f"{item.kind} {item.name} merge")
            if isinstance(committed, Err):
                return Err(from_git_error(committed.error))

        if stage == "master":
            tagged = self._tag(item)
            if isinstance(tagged, Err):
                return tagged

        return mark_stage_done(self.state, item, stage)

    def _wait_for_resolution(self, item: WorkItem, target: str) -> Result[None, FlowError]:
        """Conflict loop: ask until the user says yes and git agrees."""
        self._console.warning(
            f"{self._node.pathspec}: merging {item.branch_name} into {target} has conflicts"
        )
        self._console.print(f"Resolve and stage them in {self._node.path}", Style.DIM)
        while True:
            if not self._confirm_resolved("Conflicts resolved and staged?"):
                return Err(
                    FlowError(
                        kind="merge_aborted",
                        message=f"{self._node.pathspec}: merge of {item.uri} into {target} not completed",
                        hint="Resolve the conflicts and run the close again, it resumes from here",
                    )
                )
            if not self._repo.is_merge_in_progress():
                return Ok(None)
            self._console.warning("git still reports unmerged paths")

    def _tag(self, item: WorkItem) -> Result[None, FlowError]:
        if isinstance(self._repo.resolve_commit_sha(f"refs/tags/{item.name}"), Ok):
            self._console.warning(f"{self._node.pathspec}: tag {item.name} already exists")
            return Ok(None)
        annotation = f"{item.kind.capitalize()} {item.name}"
        tagged = self._repo.tag(item.name, annotation=annotation)
        if isinstance(tagged, Err):
            return Err(from_git_error(tagged.error))
        return Ok(None)

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def _finalize(self, item: WorkItem) -> Result[None, FlowError]:
        home = self._target_branch(item, "develop")
        checked_out = self._repo.checkout_branch(home)
        if isinstance(checked_out, Err):
            return Err(from_git_error(checked_out.error))

        if self._repo.branch_exists(item.branch_name):
            deleted = self._repo.delete_branch(item.branch_name)
            if isinstance(deleted, Err):
                return Err(from_git_error(deleted.error))

        owner = self._node.owner_of(item)
        if owner is not None:
            owner.remove_item(item)
        removed = self.state.delete(tuple(item.state_key.split("/")))
        if isinstance(removed, Err):
            return removed

        saved = save_node(self._node, dry_run=self._dry_run)
        if isinstance(saved, Err):
            return saved

        cleared = clear_closing_markers(self.state, item)
        if isinstance(cleared, Err):
            return cleared
        return set_active_closing(self.state, None)


# -----------------------------------------------------------------------------
# Batch
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NodeReport:
    node: ConfigNode
    result: Result[CloseOutcome, FlowError]

    @property
    def failed(self) -> bool:
        return isinstance(self.result, Err)


def close_nodes(
    nodes: Sequence[ConfigNode],
    target: Uri | None,
    *,
    open_repo: OpenRepo,
    console: ConsoleProtocol,
    confirm: Confirm,
    confirm_resolved: Confirm | None = None,
    abort: bool = False,
    strategy: str | None = None,
    dry_run: bool = False,
) -> list[NodeReport]:
    """Close ``target`` on each node in order, one node's failure never stops the rest."""
    reports: list[NodeReport] = []
    for node in nodes:
        console.header(node.pathspec)
        workflow = CloseWorkflow(
            node,
            open_repo(node),
            console=console,
            confirm=confirm,
            confirm_resolved=confirm_resolved,
            dry_run=dry_run,
        )
        result = workflow.run(target, abort=abort, strategy=strategy)
        if isinstance(result, Err):
            console.error(result.error.message)
            if result.error.hint:
                console.print(f"hint: {result.error.hint}", Style.DIM)
        reports.append(NodeReport(node=node, result=result))
    return reports
