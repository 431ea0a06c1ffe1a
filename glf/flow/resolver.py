"""Address Resolver: URIs to elements, branch names to artifacts."""

from __future__ import annotations

from collections.abc import Callable

from glf.core.result import Err, Ok, Result
from glf.flow.errors import FlowError, from_git_error
from glf.flow.model import (
    ITEM_KINDS,
    ROOT_PATHSPEC,
    Artifact,
    BranchElement,
    ConfigNode,
    Element,
    ItemElement,
    ItemKind,
    RepoElement,
    SupportElement,
)
from glf.flow.uri import Uri, parse_uri
from glf.git.repository import GitGateway

__all__ = [
    "OpenRepo",
    "resolve_element",
    "resolve_artifact_from_branch",
    "resolve_element_from_branch",
    "resolve_current_branch",
    "resolve_current_artifact",
    "resolve_source_branch",
]

type OpenRepo = Callable[[ConfigNode], GitGateway]

_SUPPORT_TARGETS = ("master", "develop")


def _not_found(node: ConfigNode, what: str) -> FlowError:
    return FlowError(kind="not_found", message=f"{node.pathspec}: {what} not found")


def _split_scoped(value: str) -> tuple[str | None, str]:
    """``support/name`` or ``support:name`` to (support, name)."""
    support, sep, name = value.partition("/")
    if sep:
        return support, name
    support, sep, name = value.partition(":")
    if sep:
        return support, name
    return None, value


def _resolve_repo(node: ConfigNode, segments: list[str]) -> Result[Element, FlowError]:
    if segments and segments[0] == ROOT_PATHSPEC:
        segments = segments[1:]
    current = node
    for segment in segments:
        submodule = current.find_submodule(segment)
        if submodule is None:
            return Err(_not_found(current, f"submodule '{segment}'"))
        current = submodule.node
    return Ok(RepoElement(current))


def _resolve_item(node: ConfigNode, kind: ItemKind, value: str) -> Result[Element, FlowError]:
    support_name, name = _split_scoped(value)
    if support_name is None:
        item = node.find_item(kind, name)
        if item is None:
            return Err(_not_found(node, f"{kind} '{name}'"))
        return Ok(ItemElement(item))

    support = node.find_support(support_name)
    if support is None:
        return Err(_not_found(node, f"support '{support_name}'"))
    item = support.find_item(kind, name)
    if item is None:
        return Err(_not_found(node, f"{kind} '{name}' of support '{support_name}'"))
    return Ok(ItemElement(item))


def _resolve_support(node: ConfigNode, value: str) -> Result[Element, FlowError]:
    name, _, target = value.rpartition("/")
    if not name or target not in _SUPPORT_TARGETS:
        name, target = value, ""
    support = node.find_support(name)
    if support is None:
        return Err(_not_found(node, f"support '{name}'"))
    match target:
        case "master" | "develop":
            return Ok(SupportElement(support, target))
        case _:
            return Ok(SupportElement(support))


def resolve_element(
    node: ConfigNode, uri: Uri | str, repo: GitGateway
) -> Result[Element, FlowError]:
    """Resolve an address against ``node``.

    ``repo`` is the node's gateway; only ``branch://`` needs it, to check the
    branch exists.
    """
    if isinstance(uri, str):
        parsed = parse_uri(uri)
        if isinstance(parsed, Err):
            return parsed
        uri = parsed.value

    match uri.type:
        case "branch":
            if not repo.branch_exists(uri.value):
                return Err(_not_found(node, f"branch '{uri.value}'"))
            return Ok(BranchElement(uri.value))
        case "repo":
            return _resolve_repo(node, uri.segments)
        case "feature" | "release" | "hotfix":
            return _resolve_item(node, uri.type, uri.value)
        case "support":
            return _resolve_support(node, uri.value)
        case "tag":
            return Err(
                FlowError(
                    kind="invalid_uri",
                    message=f"'{uri}' selects nodes and cannot be resolved to an element",
                    hint="tag:// is only valid in --include / --exclude filters",
                )
            )


def resolve_artifact_from_branch(node: ConfigNode, branch: str) -> Artifact:
    """Classify ``branch`` on ``node``.

    Pure: depends only on the node's own features, releases and hotfixes.
    ``master`` and ``develop`` win over any item carrying the same branch
    name; support-owned items are not considered.
    """
    if branch == "master":
        return Artifact(kind="master", branch=branch)
    if branch == "develop":
        return Artifact(kind="develop", branch=branch)
    for kind in ITEM_KINDS:
        for item in node.items(kind):
            if item.branch_name == branch:
                return Artifact(kind=kind, branch=branch, item=item)
    return Artifact(kind="unknown", branch=branch)


def resolve_element_from_branch(node: ConfigNode, branch: str) -> Element:
    """What ``branch`` is, looking at node items, then supports, else a plain branch.

    Node-level items win over support items carrying the same branch name;
    supports are searched in declaration order.
    """
    item = node.find_item_by_branch(branch)
    if item is not None:
        return ItemElement(item)
    for support in node.supports:
        item = support.find_item_by_branch(branch)
        if item is not None:
            return ItemElement(item)
    for support in node.supports:
        if support.master_branch_name == branch:
            return SupportElement(support, "master")
        if support.develop_branch_name == branch:
            return SupportElement(support, "develop")
    return BranchElement(branch)


def resolve_current_branch(node: ConfigNode, repo: GitGateway) -> Result[str, FlowError]:
    match repo.resolve_current_branch():
        case Ok(branch):
            return Ok(branch)
        case Err(e):
            return Err(from_git_error(e, hint=f"Is {node.path} a git repository?"))


def resolve_current_artifact(node: ConfigNode, repo: GitGateway) -> Result[Artifact, FlowError]:
    return resolve_current_branch(node, repo).map(
        lambda branch: resolve_artifact_from_branch(node, branch)
    )


def resolve_source_branch(
    node: ConfigNode, element: Element, open_repo: OpenRepo
) -> Result[str, FlowError]:
    """Branch an element stands for when used as a source (``--from``)."""
    match element:
        case BranchElement(name):
            return Ok(name)
        case RepoElement(target):
            return resolve_current_branch(target, open_repo(target))
        case ItemElement(item):
            return Ok(item.branch_name)
        case SupportElement(support, "master"):
            return Ok(support.master_branch_name)
        case SupportElement(support, _):
            return Ok(support.develop_branch_name)
