"""Config tree loading, saving and traversal.

``load_tree`` is the only way to obtain a ``ConfigNode``. It reads the root
document, then walks submodules with an explicit worklist so that deep
trees never recurse. All traversals here are depth-first pre-order: a node,
then each of its submodule subtrees in declared order.
"""

from __future__ import annotations

import weakref
from collections.abc import Iterator
from pathlib import Path

from glf.core.result import Err, Ok, Result
from glf.flow.document import (
    ConfigDocument,
    SubmoduleRef,
    document_of,
    new_identifier,
    parse_document,
    render_document,
)
from glf.flow.errors import FlowError
from glf.flow.model import (
    CONFIG_FILENAME,
    IDENTIFIER_FILENAME,
    ITEM_KINDS,
    META_DIRNAME,
    ROOT_PATHSPEC,
    ConfigNode,
    ItemKind,
    ItemOwner,
    Submodule,
    WorkItem,
)
from glf.output.console import ConsoleProtocol
from glf.platform.files import atomic_write_text, read_text_if_exists

__all__ = [
    "load_tree",
    "save_node",
    "flatten",
    "walk",
    "find_items",
    "find_features",
    "find_releases",
    "find_hotfixes",
    "read_identifier_file",
]


def _io_error(path: Path, action: str, e: OSError) -> FlowError:
    return FlowError(kind="io_failed", message=f"cannot {action} {path}: {e}")


def _read_document(path: Path) -> Result[ConfigDocument | None, FlowError]:
    try:
        text = read_text_if_exists(path)
    except OSError as e:
        return Err(_io_error(path, "read", e))
    if text is None:
        return Ok(None)
    return parse_document(text, source=str(path))


def read_identifier_file(node_path: Path) -> Result[str | None, FlowError]:
    """Identifier recorded by ``glf init`` in the node's ``.glf`` directory."""
    path = node_path / META_DIRNAME / IDENTIFIER_FILENAME
    try:
        text = read_text_if_exists(path)
    except OSError as e:
        return Err(_io_error(path, "read", e))
    if text is None:
        return Ok(None)
    return Ok(text.strip() or None)


def _check_submodule_path(ref: SubmoduleRef, where: str) -> FlowError | None:
    rel = Path(ref.path)
    if rel.is_absolute() or ".." in rel.parts:
        return FlowError(
            kind="validation",
            message=f"{where}: invalid submodule path '{ref.path}' for '{ref.name}'",
            hint="Submodule paths must be relative to the parent repository",
        )
    return None


def _check_unique(values: list[str], what: str, where: str) -> FlowError | None:
    seen: set[str] = set()
    for value in values:
        if value in seen:
            return FlowError(kind="validation", message=f"{where}: duplicate {what} '{value}'")
        seen.add(value)
    return None


def _validate_node(node: ConfigNode) -> FlowError | None:
    """Uniqueness rules for one node: names per scope and kind, branches per node."""
    where = str(node.config_path)
    scopes: list[tuple[str, ItemOwner]] = [(where, node)]
    scopes.extend((f"{where} (support '{s.name}')", s) for s in node.supports)

    for scope, owner in scopes:
        for kind in ITEM_KINDS:
            error = _check_unique([i.name for i in owner.items(kind)], f"{kind} name", scope)
            if error is not None:
                return error

    error = _check_unique([s.name for s in node.supports], "support name", where)
    if error is not None:
        return error
    error = _check_unique([s.name for s in node.submodules], "submodule name", where)
    if error is not None:
        return error

    branches = [i.branch_name for i in node.all_items()]
    for support in node.supports:
        branches.extend([support.master_branch_name, support.develop_branch_name])
        branches.extend(i.branch_name for i in support.all_items())
    return _check_unique(branches, "branch name", where)


def load_tree(
    config_path: Path, *, console: ConsoleProtocol | None = None
) -> Result[ConfigNode, FlowError]:
    """Load the root document at ``config_path`` and every submodule below it.

    Documents are read first for the whole tree (submodules pass), then each
    node's features, releases, hotfixes and supports are checked in that
    order. A missing document yields a new node with a fresh identifier.

    Fails with a ``validation`` error on a malformed document, a duplicate
    identifier in the tree, a duplicate name or branch within a node, or an
    identifier differing from the one recorded in ``.glf/identifier``.
    """
    config_path = config_path.expanduser().absolute()
    root: ConfigNode | None = None
    nodes: list[ConfigNode] = []
    identifiers: dict[str, str] = {}

    # (directory, document name, pathspec, parent, submodule reference)
    worklist: list[tuple[Path, str, str, ConfigNode | None, SubmoduleRef | None]] = [
        (config_path.parent, config_path.name, ROOT_PATHSPEC, None, None)
    ]

    while worklist:
        directory, doc_name, pathspec, parent, ref = worklist.pop()

        doc_result = _read_document(directory / doc_name)
        if isinstance(doc_result, Err):
            return doc_result
        doc = doc_result.value
        is_new = doc is None
        if doc is None:
            doc = ConfigDocument(identifier=new_identifier())

        recorded = read_identifier_file(directory)
        if isinstance(recorded, Err):
            return recorded
        if recorded.value is not None and recorded.value != doc.identifier:
            return Err(
                FlowError(
                    kind="validation",
                    message=(
                        f"{pathspec}: identifier {doc.identifier} does not match "
                        f"{recorded.value} recorded in {META_DIRNAME}/{IDENTIFIER_FILENAME}"
                    ),
                    hint="The configuration document belongs to another repository",
                )
            )

        if doc.identifier in identifiers:
            return Err(
                FlowError(
                    kind="validation",
                    message=(
                        f"{pathspec}: duplicate identifier {doc.identifier} "
                        f"(also used by {identifiers[doc.identifier]})"
                    ),
                )
            )
        identifiers[doc.identifier] = pathspec

        node = ConfigNode(
            identifier=doc.identifier,
            path=directory,
            pathspec=pathspec,
            upstreams=doc.upstreams,
            features=doc.features,
            releases=doc.releases,
            hotfixes=doc.hotfixes,
            supports=doc.supports,
            included=doc.included,
            excluded=doc.excluded,
            tags=doc.tags,
            is_new=is_new,
            config_name=doc_name,
        )
        nodes.append(node)

        if parent is None or ref is None:
            root = node
        else:
            node.parent_ref = weakref.ref(parent)
            parent.submodules.append(
                Submodule(name=ref.name, path=ref.path, node=node, url=ref.url, tags=list(ref.tags))
            )

        for child in reversed(doc.submodules):
            error = _check_submodule_path(child, str(node.config_path))
            if error is not None:
                return Err(error)
            child_dir = directory / child.path
            if console is not None and not child_dir.is_dir():
                console.warning(f"{pathspec}/{child.name}: directory {child_dir} does not exist")
            worklist.append((child_dir, CONFIG_FILENAME, f"{pathspec}/{child.name}", node, child))

    for node in nodes:
        error = _validate_node(node)
        if error is not None:
            return Err(error)

    assert root is not None
    return Ok(root)


def save_node(node: ConfigNode, *, dry_run: bool = False) -> Result[Path, FlowError]:
    """Write the node's own document. Submodule children are saved separately."""
    path = node.config_path
    if dry_run:
        return Ok(path)
    try:
        atomic_write_text(path, render_document(document_of(node)))
    except OSError as e:
        return Err(_io_error(path, "write", e))
    node.is_new = False
    return Ok(path)


def walk(root: ConfigNode) -> Iterator[ConfigNode]:
    """Yield the tree depth-first, pre-order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(s.node for s in reversed(node.submodules))


def flatten(root: ConfigNode) -> list[ConfigNode]:
    return list(walk(root))


def find_items(root: ConfigNode, kind: ItemKind, fqn: str) -> list[tuple[ConfigNode, WorkItem]]:
    """Every node-level item of ``kind`` named ``fqn``, in pre-order."""
    matches: list[tuple[ConfigNode, WorkItem]] = []
    for node in walk(root):
        item = node.find_item(kind, fqn)
        if item is not None:
            matches.append((node, item))
    return matches


def find_features(root: ConfigNode, fqn: str) -> list[tuple[ConfigNode, WorkItem]]:
    return find_items(root, "feature", fqn)


def find_releases(root: ConfigNode, fqn: str) -> list[tuple[ConfigNode, WorkItem]]:
    return find_items(root, "release", fqn)


def find_hotfixes(root: ConfigNode, fqn: str) -> list[tuple[ConfigNode, WorkItem]]:
    return find_items(root, "hotfix", fqn)
