"""Filter Engine: select tree nodes with include / exclude URI globs.

Each pattern is one or more URI globs joined with ``;``; all parts must
match for the pattern to match:

    repo://root/**                     every node below the root
    branch://feature/*                 nodes currently on a feature/ branch
    release://1.*;repo://root/api*     nodes on a 1.x release, under api*
    tag://backend                      nodes (or their submodule) tagged backend
    support://lts                      nodes on the lts master or develop branch

Filters are evaluated per node against that node's own checkout.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from glf.core.globs import globmatch
from glf.core.result import Err, Ok, Result
from glf.flow.errors import FlowError
from glf.flow.model import Artifact, ConfigNode
from glf.flow.resolver import OpenRepo, resolve_artifact_from_branch
from glf.flow.tree import walk
from glf.flow.uri import Uri, parse_uri

__all__ = ["Pattern", "parse_patterns", "node_matches", "resolve_filtered_configs"]


@dataclass(frozen=True, slots=True)
class Pattern:
    """A conjunction of URI globs."""

    source: str
    parts: tuple[Uri, ...]


def parse_patterns(patterns: Sequence[str]) -> Result[list[Pattern], FlowError]:
    parsed: list[Pattern] = []
    for pattern in patterns:
        parts: list[Uri] = []
        for chunk in pattern.split(";"):
            if not chunk.strip():
                continue
            match parse_uri(chunk, allow_tag=True):
                case Ok(uri):
                    parts.append(uri)
                case Err(e):
                    return Err(e)
        if parts:
            parsed.append(Pattern(source=pattern, parts=tuple(parts)))
    return Ok(parsed)


class _NodeView:
    """Node facts a pattern can look at, with the branch queried at most once."""

    def __init__(self, node: ConfigNode, open_repo: OpenRepo) -> None:
        self.node = node
        self._open_repo = open_repo
        self._branch: str | None = None
        self._queried = False

    @property
    def branch(self) -> str | None:
        if not self._queried:
            self._queried = True
            match self._open_repo(self.node).resolve_current_branch():
                case Ok(branch):
                    self._branch = branch
                case Err(_):
                    # Not a repository yet: only repo:// and tag:// can match
                    self._branch = None
        return self._branch

    @property
    def artifact(self) -> Artifact | None:
        branch = self.branch
        if branch is None:
            return None
        return resolve_artifact_from_branch(self.node, branch)


def _part_matches(view: _NodeView, uri: Uri) -> bool:
    match uri.type:
        case "repo":
            return globmatch(view.node.pathspec, uri.value)
        case "tag":
            return any(globmatch(tag, uri.value) for tag in view.node.all_tags)
        case "branch":
            branch = view.branch
            return branch is not None and globmatch(branch, uri.value)
        case "feature" | "release" | "hotfix":
            artifact = view.artifact
            return (
                artifact is not None
                and artifact.kind == uri.type
                and globmatch(artifact.name, uri.value)
            )
        case "support":
            # on the master or develop branch of a matching support
            branch = view.branch
            return branch is not None and any(
                globmatch(s.name, uri.value)
                and branch in (s.master_branch_name, s.develop_branch_name)
                for s in view.node.supports
            )


def _pattern_matches(view: _NodeView, pattern: Pattern) -> bool:
    return all(_part_matches(view, part) for part in pattern.parts)


def node_matches(
    node: ConfigNode,
    open_repo: OpenRepo,
    *,
    included: Sequence[Pattern],
    excluded: Sequence[Pattern],
) -> bool:
    view = _NodeView(node, open_repo)
    if included and not any(_pattern_matches(view, p) for p in included):
        return False
    return not any(_pattern_matches(view, p) for p in excluded)


def resolve_filtered_configs(
    root: ConfigNode,
    *,
    open_repo: OpenRepo,
    included: Sequence[str] | None = None,
    excluded: Sequence[str] | None = None,
) -> Result[list[ConfigNode], FlowError]:
    """Nodes of the tree selected by the filters, in pre-order.

    ``None`` falls back to the root's own ``included`` / ``excluded`` lists;
    an empty sequence means no constraint.
    """
    include_result = parse_patterns(root.included if included is None else included)
    if isinstance(include_result, Err):
        return include_result
    exclude_result = parse_patterns(root.excluded if excluded is None else excluded)
    if isinstance(exclude_result, Err):
        return exclude_result

    return Ok(
        [
            node
            for node in walk(root)
            if node_matches(
                node,
                open_repo,
                included=include_result.value,
                excluded=exclude_result.value,
            )
        ]
    )
