"""Lifecycle actions over a selection of nodes.

Every batch method walks its nodes strictly in order and isolates
failures: a node that fails is reported and the next node still runs.
Per node, a method returns Ok(True) when it changed something, Ok(False)
when there was nothing to do (already exists, not on this node).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from glf.core.result import Err, Ok, Result
from glf.flow.close import active_closing, clear_closing_markers, set_active_closing
from glf.flow.errors import FlowError, from_git_error
from glf.flow.model import (
    IDENTIFIER_FILENAME,
    ITEM_KINDS,
    Artifact,
    ConfigNode,
    Hotfix,
    ItemElement,
    ItemKind,
    ItemOwner,
    Release,
    RepoElement,
    Support,
    SupportElement,
    WorkItem,
    item_class,
)
from glf.flow.resolver import (
    OpenRepo,
    resolve_artifact_from_branch,
    resolve_element,
    resolve_source_branch,
)
from glf.flow.state import WorkflowState
from glf.flow.tree import save_node, walk
from glf.flow.uri import Uri, parse_uri
from glf.git.repository import GitError, GitGateway
from glf.output.console import ConsoleProtocol, Style
from glf.platform.files import atomic_write_text

__all__ = [
    "ActionReport",
    "NodeStatus",
    "WorkflowService",
    "default_branch_name",
    "list_items",
]

DEFAULT_ITEM_SOURCE = "branch://develop"
DEFAULT_SUPPORT_SOURCE = "branch://master"


@dataclass(frozen=True, slots=True)
class ActionReport:
    node: ConfigNode
    result: Result[bool, FlowError]

    @property
    def failed(self) -> bool:
        return isinstance(self.result, Err)


@dataclass(frozen=True, slots=True)
class NodeStatus:
    """Current checkout of one node, as shown by ``glf status``."""

    node: ConfigNode
    branch: str | None
    artifact: Artifact | None
    dirty: bool | None
    error: str | None = None


def default_branch_name(kind: ItemKind, name: str, support: str | None = None) -> str:
    """``feature/x``, or ``support/<s>/feature/x`` when created from a support."""
    base = f"{kind}/{name}"
    if support:
        return f"support/{support}/{base}"
    return base


def list_items(root: ConfigNode, kind: ItemKind) -> list[tuple[ConfigNode, WorkItem]]:
    """Every item of ``kind`` in the tree, node items before support items."""
    found: list[tuple[ConfigNode, WorkItem]] = []
    for node in walk(root):
        found.extend((node, item) for item in node.items(kind))
        for support in node.supports:
            found.extend((node, item) for item in support.items(kind))
    return found


def _git(result: Result[None, GitError]) -> Result[None, FlowError]:
    if isinstance(result, Err):
        return Err(from_git_error(result.error))
    return Ok(None)


class WorkflowService:
    """Create, delete, check out and initialize across the tree."""

    def __init__(
        self,
        *,
        open_repo: OpenRepo,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> None:
        self._open_repo = open_repo
        self._console = console
        self._dry_run = dry_run

    def _each(
        self, nodes: Sequence[ConfigNode], action: Callable[[ConfigNode], Result[bool, FlowError]]
    ) -> list[ActionReport]:
        reports: list[ActionReport] = []
        for node in nodes:
            self._console.header(node.pathspec)
            result = action(node)
            if isinstance(result, Err):
                self._console.error(result.error.message)
                if result.error.hint:
                    self._console.print(f"hint: {result.error.hint}", Style.DIM)
            reports.append(ActionReport(node=node, result=result))
        return reports

    def _skip(self, node: ConfigNode, message: str) -> Result[bool, FlowError]:
        self._console.print(f"{node.pathspec}: {message}", Style.DIM)
        return Ok(False)

    def _save(self, node: ConfigNode) -> Result[bool, FlowError]:
        return save_node(node, dry_run=self._dry_run).map(lambda _: True)

    def _source(
        self, node: ConfigNode, repo: GitGateway, from_uri: str
    ) -> Result[tuple[str, str, Support | None], FlowError]:
        """(source branch, source sha, support the source belongs to)."""
        parsed = parse_uri(from_uri)
        if isinstance(parsed, Err):
            return parsed
        element = resolve_element(node, parsed.value, repo)
        if isinstance(element, Err):
            return element
        branch = resolve_source_branch(node, element.value, self._open_repo)
        if isinstance(branch, Err):
            return branch
        sha = repo.resolve_commit_sha(branch.value)
        if isinstance(sha, Err):
            return Err(from_git_error(sha.error))
        support = element.value.support if isinstance(element.value, SupportElement) else None
        return Ok((branch.value, sha.value, support))

    def _branch_taken(self, node: ConfigNode, branch: str) -> bool:
        if node.find_item_by_branch(branch) is not None:
            return True
        for support in node.supports:
            if branch in (support.master_branch_name, support.develop_branch_name):
                return True
            if support.find_item_by_branch(branch) is not None:
                return True
        return False

    def _leave_branches(
        self, node: ConfigNode, repo: GitGateway, branches: set[str], home: str
    ) -> Result[None, FlowError]:
        """Check out ``home`` if one of ``branches`` is currently checked out."""
        current = repo.resolve_current_branch()
        if isinstance(current, Ok) and current.value in branches:
            return _git(repo.checkout_branch(home))
        return Ok(None)

    # -------------------------------------------------------------------------
    # Features / releases / hotfixes
    # -------------------------------------------------------------------------

    def create_item(
        self,
        nodes: Sequence[ConfigNode],
        kind: ItemKind,
        name: str,
        *,
        from_uri: str | None = None,
        branch_name: str | None = None,
        checkout: bool = False,
        upstream: str | None = None,
        intermediate: bool = False,
    ) -> list[ActionReport]:
        def create(node: ConfigNode) -> Result[bool, FlowError]:
            repo = self._open_repo(node)
            source = self._source(node, repo, from_uri or DEFAULT_ITEM_SOURCE)
            if isinstance(source, Err):
                return source
            source_branch, sha, support = source.value

            owner: ItemOwner = support if support is not None else node
            if owner.find_item(kind, name) is not None:
                return self._skip(node, f"{kind} {name} already exists")

            support_name = support.name if support is not None else None
            branch = branch_name or default_branch_name(kind, name, support_name)
            if self._branch_taken(node, branch):
                return Err(
                    FlowError(
                        kind="validation",
                        message=f"branch {branch} is already used by another item",
                        hint="Pass an explicit --branch-name",
                    )
                )

            item = item_class(kind)(
                name=name,
                branch_name=branch,
                source_sha=sha,
                upstream=upstream,
                support=support_name,
            )
            if isinstance(item, (Release, Hotfix)):
                item.intermediate = intermediate
            owner.add_item(item)
            self._console.info(f"{node.pathspec}: {item.uri} from {source_branch} ({sha[:8]})")

            if not repo.branch_exists(branch):
                created = _git(repo.create_branch(branch, sha))
                if isinstance(created, Err):
                    owner.remove_item(item)
                    return created
            if checkout:
                checked_out = _git(repo.checkout_branch(branch))
                if isinstance(checked_out, Err):
                    return checked_out
            return self._save(node)

        return self._each(nodes, create)

    def delete_item(
        self, nodes: Sequence[ConfigNode], kind: ItemKind, value: str
    ) -> list[ActionReport]:
        """Delete ``<kind>://<value>`` (``name`` or ``support/name``) where present."""

        def delete(node: ConfigNode) -> Result[bool, FlowError]:
            repo = self._open_repo(node)
            element = resolve_element(node, Uri(type=kind, value=value), repo)
            if isinstance(element, Err):
                if element.error.kind == "not_found":
                    return self._skip(node, f"no {kind} {value}")
                return element
            assert isinstance(element.value, ItemElement)
            item = element.value.item

            support = node.find_support(item.support) if item.support else None
            home = support.develop_branch_name if support is not None else "develop"
            left = self._leave_branches(node, repo, {item.branch_name}, home)
            if isinstance(left, Err):
                return left
            if repo.branch_exists(item.branch_name):
                deleted = _git(repo.delete_branch(item.branch_name))
                if isinstance(deleted, Err):
                    return deleted

            owner = node.owner_of(item)
            if owner is not None:
                owner.remove_item(item)
            state = WorkflowState(node.path, dry_run=self._dry_run)
            removed = state.delete(tuple(item.state_key.split("/")))
            if isinstance(removed, Err):
                return removed
            cleared = clear_closing_markers(state, item)
            if isinstance(cleared, Err):
                return cleared
            self._console.info(f"{node.pathspec}: removed {item.uri}")
            return self._save(node)

        return self._each(nodes, delete)

    # -------------------------------------------------------------------------
    # Supports
    # -------------------------------------------------------------------------

    def create_support(
        self,
        nodes: Sequence[ConfigNode],
        name: str,
        *,
        from_uri: str | None = None,
        master_branch_name: str | None = None,
        develop_branch_name: str | None = None,
        upstream: str | None = None,
    ) -> list[ActionReport]:
        def create(node: ConfigNode) -> Result[bool, FlowError]:
            if node.find_support(name) is not None:
                return self._skip(node, f"support {name} already exists")

            repo = self._open_repo(node)
            source = self._source(node, repo, from_uri or DEFAULT_SUPPORT_SOURCE)
            if isinstance(source, Err):
                return source
            source_branch, sha, _ = source.value

            support = Support(
                name=name,
                master_branch_name=master_branch_name or f"support/{name}/master",
                develop_branch_name=develop_branch_name or f"support/{name}/develop",
                source_sha=sha,
                upstream=upstream,
            )
            for branch in (support.master_branch_name, support.develop_branch_name):
                if self._branch_taken(node, branch):
                    return Err(
                        FlowError(kind="validation", message=f"branch {branch} is already in use")
                    )

            self._console.info(f"{node.pathspec}: {support.uri} from {source_branch} ({sha[:8]})")
            for branch in (support.master_branch_name, support.develop_branch_name):
                if not repo.branch_exists(branch):
                    created = _git(repo.create_branch(branch, sha))
                    if isinstance(created, Err):
                        return created
            node.supports.append(support)
            return self._save(node)

        return self._each(nodes, create)

    def delete_support(self, nodes: Sequence[ConfigNode], name: str) -> list[ActionReport]:
        """Remove a support, its items and all of their branches."""

        def delete(node: ConfigNode) -> Result[bool, FlowError]:
            support = node.find_support(name)
            if support is None:
                return self._skip(node, f"no support {name}")

            repo = self._open_repo(node)
            branches = [i.branch_name for i in support.all_items()]
            branches += [support.develop_branch_name, support.master_branch_name]
            left = self._leave_branches(node, repo, set(branches), "develop")
            if isinstance(left, Err):
                return left
            for branch in branches:
                if repo.branch_exists(branch):
                    deleted = _git(repo.delete_branch(branch))
                    if isinstance(deleted, Err):
                        return deleted

            node.supports.remove(support)
            state = WorkflowState(node.path, dry_run=self._dry_run)
            removed = state.delete(tuple(support.state_key.split("/")))
            if isinstance(removed, Err):
                return removed
            items = list(support.all_items())
            for item in items:
                cleared = clear_closing_markers(state, item)
                if isinstance(cleared, Err):
                    return cleared
            active = active_closing(state)
            if isinstance(active, Err):
                return active
            if active.value in {item.uri for item in items}:
                dropped = set_active_closing(state, None)
                if isinstance(dropped, Err):
                    return dropped
            self._console.info(f"{node.pathspec}: removed {support.uri}")
            return self._save(node)

        return self._each(nodes, delete)

    # -------------------------------------------------------------------------
    # Workflow state
    # -------------------------------------------------------------------------

    def reset_state(self, nodes: Sequence[ConfigNode]) -> list[ActionReport]:
        """Forget all workflow progress, interrupted closes included."""

        def reset(node: ConfigNode) -> Result[bool, FlowError]:
            state = WorkflowState(node.path, dry_run=self._dry_run)
            active = active_closing(state)
            if isinstance(active, Ok) and active.value is not None:
                self._console.warning(
                    f"{node.pathspec}: forgetting interrupted close of {active.value}"
                )
            cleared = state.clear()
            if isinstance(cleared, Err):
                return cleared
            if not cleared.value:
                return self._skip(node, "no workflow state")
            self._console.info(f"{node.pathspec}: workflow state reset")
            return Ok(True)

        return self._each(nodes, reset)

    # -------------------------------------------------------------------------
    # Checkout / init / status
    # -------------------------------------------------------------------------

    def checkout(self, nodes: Sequence[ConfigNode], target: Uri) -> list[ActionReport]:
        """Check out ``target`` on every node that has it."""

        def checkout(node: ConfigNode) -> Result[bool, FlowError]:
            repo = self._open_repo(node)
            element = resolve_element(node, target, repo)
            if isinstance(element, Err):
                if element.error.kind == "not_found":
                    return self._skip(node, f"no {target}")
                return element
            if isinstance(element.value, RepoElement):
                return Err(
                    FlowError(
                        kind="invalid_uri",
                        message=f"cannot check out {target}",
                        hint="Use branch://, feature://, release://, hotfix:// or support://",
                    )
                )
            branch = resolve_source_branch(node, element.value, self._open_repo)
            if isinstance(branch, Err):
                return branch

            current = repo.resolve_current_branch()
            if isinstance(current, Ok) and current.value == branch.value:
                return self._skip(node, f"already on {branch.value}")
            return _git(repo.checkout_branch(branch.value)).map(lambda _: True)

        return self._each(nodes, checkout)

    def init(self, nodes: Sequence[ConfigNode]) -> list[ActionReport]:
        """Make each node's directory a repository matching its configuration.

        Creates the repository (with an empty initial commit) when missing,
        adds missing upstreams, creates master/develop from the root commit,
        creates missing item and support branches from their source commit
        and records the node identifier in ``.glf/identifier``.
        """

        def init(node: ConfigNode) -> Result[bool, FlowError]:
            repo = self._open_repo(node)
            if not repo.exists():
                if not self._dry_run:
                    try:
                        node.path.mkdir(parents=True, exist_ok=True)
                    except OSError as e:
                        return Err(
                            FlowError(kind="io_failed", message=f"cannot create {node.path}: {e}")
                        )
                created = _git(repo.init())
                if isinstance(created, Err):
                    return created
                committed = _git(repo.commit("Initial commit", allow_empty=True))
                if isinstance(committed, Err):
                    return committed

            for upstream in node.upstreams:
                if not repo.upstream_exists(upstream.name):
                    added = _git(repo.add_upstream(upstream.name, upstream.url))
                    if isinstance(added, Err):
                        return added

            root_sha = repo.root_commit_sha()
            wanted: list[tuple[str, str | None]] = []
            if isinstance(root_sha, Ok):
                wanted += [("master", root_sha.value), ("develop", root_sha.value)]
            elif not self._dry_run:
                return Err(from_git_error(root_sha.error))
            for support in node.supports:
                wanted += [
                    (support.master_branch_name, support.source_sha),
                    (support.develop_branch_name, support.source_sha),
                ]
            for kind in ITEM_KINDS:
                wanted += [(i.branch_name, i.source_sha) for i in node.items(kind)]
                for support in node.supports:
                    wanted += [(i.branch_name, i.source_sha) for i in support.items(kind)]

            for branch, sha in wanted:
                if repo.branch_exists(branch):
                    continue
                if sha is None:
                    self._console.warning(f"{node.pathspec}: no source commit for {branch}, skipped")
                    continue
                created = _git(repo.create_branch(branch, sha))
                if isinstance(created, Err):
                    return created

            if not self._dry_run:
                identifier_path = node.meta_dir / IDENTIFIER_FILENAME
                try:
                    atomic_write_text(identifier_path, node.identifier + "\n")
                except OSError as e:
                    return Err(
                        FlowError(kind="io_failed", message=f"cannot write {identifier_path}: {e}")
                    )
            self._console.success(f"{node.pathspec}: initialized {node.path}")
            return self._save(node)

        return self._each(nodes, init)

    def status(self, nodes: Sequence[ConfigNode]) -> list[NodeStatus]:
        statuses: list[NodeStatus] = []
        for node in nodes:
            repo = self._open_repo(node)
            match repo.resolve_current_branch():
                case Ok(branch):
                    statuses.append(
                        NodeStatus(
                            node=node,
                            branch=branch,
                            artifact=resolve_artifact_from_branch(node, branch),
                            dirty=repo.is_dirty(),
                        )
                    )
                case Err(e):
                    statuses.append(
                        NodeStatus(node=node, branch=None, artifact=None, dirty=None, error=e.message)
                    )
        return statuses
