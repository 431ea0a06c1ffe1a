"""Config tree model.

A ``ConfigNode`` is one repository of the tree. Nodes only exist in
registered form: ``glf.flow.tree.load_tree`` builds them with their path,
pathspec and parent already bound. Work items (features, releases,
hotfixes) remember the name of the support that owns them, if any; the
owning node is always passed alongside an item rather than stored on it.
"""

from __future__ import annotations

import weakref
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Literal

__all__ = [
    "CONFIG_FILENAME",
    "META_DIRNAME",
    "STATE_FILENAME",
    "IDENTIFIER_FILENAME",
    "ROOT_PATHSPEC",
    "ItemKind",
    "ArtifactKind",
    "Upstream",
    "WorkItem",
    "Feature",
    "Release",
    "Hotfix",
    "Support",
    "ItemOwner",
    "Submodule",
    "ConfigNode",
    "Artifact",
    "BranchElement",
    "RepoElement",
    "ItemElement",
    "SupportElement",
    "Element",
    "ITEM_KINDS",
    "item_class",
    "collection_key",
]

CONFIG_FILENAME = ".gitflow.yml"
META_DIRNAME = ".glf"
STATE_FILENAME = "state.json"
IDENTIFIER_FILENAME = "identifier"
ROOT_PATHSPEC = "root"

ItemKind = Literal["feature", "release", "hotfix"]
ArtifactKind = Literal["master", "develop", "feature", "release", "hotfix", "unknown"]

ITEM_KINDS: tuple[ItemKind, ...] = ("feature", "release", "hotfix")


@dataclass(frozen=True, slots=True)
class Upstream:
    """A named git remote."""

    name: str
    url: str


def _empty_str_list() -> list[str]:
    return []


@dataclass(slots=True)
class WorkItem:
    """A short-lived work branch: feature, release or hotfix.

    Attributes:
        name: Unique within the owning scope (node or support)
        branch_name: Git branch carrying the work
        source_sha: Commit the branch was (or will be) created from
        sources: Alternate origin scopes
        upstream: Remote the branch tracks, if any
        support: Name of the owning support, None when owned by the node
    """

    kind: ClassVar[ItemKind]

    name: str
    branch_name: str
    source_sha: str | None = None
    sources: list[str] = field(default_factory=_empty_str_list)
    upstream: str | None = None
    support: str | None = None

    @property
    def fqn(self) -> str:
        return self.name

    @property
    def uri(self) -> str:
        if self.support:
            return f"{self.kind}://{self.support}/{self.name}"
        return f"{self.kind}://{self.name}"

    @property
    def state_key(self) -> str:
        if self.support:
            return f"{self.kind}/{self.support}/{self.name}"
        return f"{self.kind}/{self.name}"


@dataclass(slots=True)
class Feature(WorkItem):
    kind: ClassVar[ItemKind] = "feature"


@dataclass(slots=True)
class Release(WorkItem):
    kind: ClassVar[ItemKind] = "release"

    intermediate: bool = False


@dataclass(slots=True)
class Hotfix(WorkItem):
    kind: ClassVar[ItemKind] = "hotfix"

    intermediate: bool = False


_ITEM_CLASSES: dict[ItemKind, type[WorkItem]] = {
    "feature": Feature,
    "release": Release,
    "hotfix": Hotfix,
}


def item_class(kind: ItemKind) -> type[WorkItem]:
    return _ITEM_CLASSES[kind]


def collection_key(kind: ItemKind) -> str:
    """Document key holding items of ``kind``."""
    return "hotfixes" if kind == "hotfix" else f"{kind}s"


def _empty_features() -> list[Feature]:
    return []


def _empty_releases() -> list[Release]:
    return []


def _empty_hotfixes() -> list[Hotfix]:
    return []


class ItemOwner:
    """Shared lookups for scopes owning features, releases and hotfixes."""

    __slots__ = ()

    features: list[Feature]
    releases: list[Release]
    hotfixes: list[Hotfix]

    def items(self, kind: ItemKind) -> list[WorkItem]:
        match kind:
            case "feature":
                return self.features  # type: ignore[return-value]
            case "release":
                return self.releases  # type: ignore[return-value]
            case "hotfix":
                return self.hotfixes  # type: ignore[return-value]

    def all_items(self) -> Iterator[WorkItem]:
        yield from self.features
        yield from self.releases
        yield from self.hotfixes

    def find_item(self, kind: ItemKind, name: str) -> WorkItem | None:
        return next((i for i in self.items(kind) if i.name == name), None)

    def find_item_by_branch(self, branch: str) -> WorkItem | None:
        return next((i for i in self.all_items() if i.branch_name == branch), None)

    def add_item(self, item: WorkItem) -> None:
        self.items(item.kind).append(item)

    def remove_item(self, item: WorkItem) -> bool:
        items = self.items(item.kind)
        for index, candidate in enumerate(items):
            if candidate is item:
                del items[index]
                return True
        return False


@dataclass(slots=True)
class Support(ItemOwner):
    """A long-lived parallel lineage with its own master/develop pair."""

    name: str
    master_branch_name: str
    develop_branch_name: str
    source_sha: str | None = None
    upstream: str | None = None
    features: list[Feature] = field(default_factory=_empty_features)
    releases: list[Release] = field(default_factory=_empty_releases)
    hotfixes: list[Hotfix] = field(default_factory=_empty_hotfixes)

    @property
    def uri(self) -> str:
        return f"support://{self.name}"

    @property
    def state_key(self) -> str:
        return f"support/{self.name}"


@dataclass(slots=True)
class Submodule:
    """Reference from a parent node to the child node it owns."""

    name: str
    path: str
    node: ConfigNode
    url: str | None = None
    tags: list[str] = field(default_factory=_empty_str_list)


def _empty_upstreams() -> list[Upstream]:
    return []


def _empty_submodules() -> list[Submodule]:
    return []


def _empty_supports() -> list[Support]:
    return []


@dataclass(eq=False, slots=True, weakref_slot=True)
class ConfigNode(ItemOwner):
    """A registered repository of the tree.

    Nodes compare by identity. The parent is held through a weak reference,
    the tree is owned top-down through ``submodules``.
    """

    identifier: str
    path: Path
    pathspec: str
    upstreams: list[Upstream] = field(default_factory=_empty_upstreams)
    submodules: list[Submodule] = field(default_factory=_empty_submodules)
    features: list[Feature] = field(default_factory=_empty_features)
    releases: list[Release] = field(default_factory=_empty_releases)
    hotfixes: list[Hotfix] = field(default_factory=_empty_hotfixes)
    supports: list[Support] = field(default_factory=_empty_supports)
    included: list[str] = field(default_factory=_empty_str_list)
    excluded: list[str] = field(default_factory=_empty_str_list)
    tags: list[str] = field(default_factory=_empty_str_list)
    is_new: bool = False
    config_name: str = CONFIG_FILENAME
    parent_ref: weakref.ref[ConfigNode] | None = field(default=None, repr=False)

    @property
    def parent(self) -> ConfigNode | None:
        if self.parent_ref is None:
            return None
        return self.parent_ref()

    @property
    def name(self) -> str:
        return self.pathspec.rsplit("/", 1)[-1]

    @property
    def config_path(self) -> Path:
        return self.path / self.config_name

    @property
    def meta_dir(self) -> Path:
        return self.path / META_DIRNAME

    @property
    def submodule(self) -> Submodule | None:
        """The parent's submodule entry pointing at this node."""
        parent = self.parent
        if parent is None:
            return None
        return next((s for s in parent.submodules if s.node is self), None)

    @property
    def all_tags(self) -> list[str]:
        submodule = self.submodule
        if submodule is None:
            return list(self.tags)
        return [*self.tags, *submodule.tags]

    def find_submodule(self, name: str) -> Submodule | None:
        return next((s for s in self.submodules if s.name == name), None)

    def find_support(self, name: str) -> Support | None:
        return next((s for s in self.supports if s.name == name), None)

    def owner_of(self, item: WorkItem) -> ItemOwner | None:
        """Scope owning ``item`` on this node (the node or one of its supports)."""
        if item.support is None:
            return self
        return self.find_support(item.support)

    def find_upstream(self, name: str) -> Upstream | None:
        return next((u for u in self.upstreams if u.name == name), None)


# -----------------------------------------------------------------------------
# Derived values
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Artifact:
    """Workflow classification of a branch name on a node."""

    kind: ArtifactKind
    branch: str
    item: WorkItem | None = None

    @property
    def name(self) -> str:
        """Item name for item artifacts, the branch name otherwise."""
        return self.item.name if self.item is not None else self.branch


@dataclass(frozen=True, slots=True)
class BranchElement:
    name: str


@dataclass(frozen=True, slots=True)
class RepoElement:
    node: ConfigNode


@dataclass(frozen=True, slots=True)
class ItemElement:
    item: WorkItem

    @property
    def kind(self) -> ItemKind:
        return self.item.kind


@dataclass(frozen=True, slots=True)
class SupportElement:
    support: Support
    target: Literal["master", "develop"] | None = None


type Element = BranchElement | RepoElement | ItemElement | SupportElement
