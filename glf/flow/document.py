"""The per-node ``.gitflow.yml`` configuration document.

``ConfigDocument`` is the declarative form of a node: what is written to
and read from disk. It carries no path and no parent; the tree builder
turns documents into registered ``ConfigNode`` values.

Keys on disk keep their camelCase names (``branchName``, ``sourceSha``,
``masterBranchName``...), empty optional lists are omitted.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import yaml

from glf.core.result import Err, Ok, Result
from glf.core.structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_list,
    get_str,
    get_str_list,
)
from glf.flow.errors import FlowError
from glf.flow.model import (
    ITEM_KINDS,
    ConfigNode,
    Feature,
    Hotfix,
    ItemKind,
    Release,
    Support,
    Upstream,
    WorkItem,
    collection_key,
    item_class,
)

__all__ = [
    "SubmoduleRef",
    "ConfigDocument",
    "new_identifier",
    "parse_document",
    "render_document",
    "document_of",
]


def new_identifier() -> str:
    """Random 32 hex digit node identifier."""
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class SubmoduleRef:
    """A submodule as written in its parent's document (never inlined)."""

    name: str
    path: str
    url: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(slots=True)
class ConfigDocument:
    identifier: str
    upstreams: list[Upstream] = field(default_factory=list)
    submodules: list[SubmoduleRef] = field(default_factory=list)
    features: list[Feature] = field(default_factory=list)
    releases: list[Release] = field(default_factory=list)
    hotfixes: list[Hotfix] = field(default_factory=list)
    supports: list[Support] = field(default_factory=list)
    included: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def _invalid(where: str, message: str) -> FlowError:
    return FlowError(
        kind="validation",
        message=f"{where}: {message}",
        hint="Fix the configuration document or restore it from version control",
    )


def _get_tables(data: StrDict, key: str, where: str) -> Result[list[StrDict], FlowError]:
    if data.get(key) is None:
        return Ok([])
    raw = get_list(data, key)
    if raw is None:
        return Err(_invalid(where, f"'{key}' must be a list"))
    tables: list[StrDict] = []
    for index, entry in enumerate(raw):
        table = as_str_dict(entry)
        if table is None:
            return Err(_invalid(where, f"'{key}[{index}]' must be a mapping"))
        tables.append(table)
    return Ok(tables)


def _get_strings(data: StrDict, key: str, where: str) -> Result[list[str], FlowError]:
    if data.get(key) is None:
        return Ok([])
    values = get_str_list(data, key)
    if values is None:
        return Err(_invalid(where, f"'{key}' must be a list of strings"))
    return Ok(values)


def _require_str(data: StrDict, key: str, where: str) -> Result[str, FlowError]:
    value = get_str(data, key)
    if value is None:
        return Err(_invalid(where, f"missing required string '{key}'"))
    return Ok(value)


def _parse_items(
    data: StrDict, kind: ItemKind, where: str, *, support: str | None = None
) -> Result[list[Any], FlowError]:
    key = collection_key(kind)
    tables = _get_tables(data, key, where)
    if isinstance(tables, Err):
        return tables

    cls = item_class(kind)
    items: list[WorkItem] = []
    for index, table in enumerate(tables.value):
        item_where = f"{where}.{key}[{index}]"
        name = _require_str(table, "name", item_where)
        if isinstance(name, Err):
            return name
        branch_name = _require_str(table, "branchName", item_where)
        if isinstance(branch_name, Err):
            return branch_name
        sources = _get_strings(table, "sources", item_where)
        if isinstance(sources, Err):
            return sources
        if kind == "feature" and get_str(table, "sourceSha") is None:
            return Err(_invalid(item_where, "missing required string 'sourceSha'"))

        item = cls(
            name=name.value,
            branch_name=branch_name.value,
            source_sha=get_str(table, "sourceSha"),
            sources=sources.value,
            upstream=get_str(table, "upstream"),
            support=support,
        )
        if isinstance(item, (Release, Hotfix)):
            item.intermediate = bool(get_bool(table, "intermediate"))
        items.append(item)
    return Ok(items)


def _parse_support(table: StrDict, where: str) -> Result[Support, FlowError]:
    name = _require_str(table, "name", where)
    if isinstance(name, Err):
        return name
    master = _require_str(table, "masterBranchName", where)
    if isinstance(master, Err):
        return master
    develop = _require_str(table, "developBranchName", where)
    if isinstance(develop, Err):
        return develop

    support = Support(
        name=name.value,
        master_branch_name=master.value,
        develop_branch_name=develop.value,
        source_sha=get_str(table, "sourceSha"),
        upstream=get_str(table, "upstream"),
    )
    for kind in ITEM_KINDS:
        items = _parse_items(table, kind, where, support=support.name)
        if isinstance(items, Err):
            return items
        support.items(kind).extend(items.value)
    return Ok(support)


def parse_document(text: str, *, source: str = ".gitflow.yml") -> Result[ConfigDocument, FlowError]:
    """Parse and validate a YAML configuration document."""
    try:
        raw: object = yaml.safe_load(text)
    except yaml.YAMLError as e:
        return Err(_invalid(source, f"invalid YAML: {e}"))

    data = as_str_dict(raw)
    if data is None:
        return Err(_invalid(source, "document root must be a mapping"))

    identifier = _require_str(data, "identifier", source)
    if isinstance(identifier, Err):
        return identifier
    doc = ConfigDocument(identifier=identifier.value)

    upstreams = _get_tables(data, "upstreams", source)
    if isinstance(upstreams, Err):
        return upstreams
    for index, table in enumerate(upstreams.value):
        where = f"{source}.upstreams[{index}]"
        name = _require_str(table, "name", where)
        if isinstance(name, Err):
            return name
        url = _require_str(table, "url", where)
        if isinstance(url, Err):
            return url
        doc.upstreams.append(Upstream(name=name.value, url=url.value))

    submodules = _get_tables(data, "submodules", source)
    if isinstance(submodules, Err):
        return submodules
    for index, table in enumerate(submodules.value):
        where = f"{source}.submodules[{index}]"
        name = _require_str(table, "name", where)
        if isinstance(name, Err):
            return name
        path = _require_str(table, "path", where)
        if isinstance(path, Err):
            return path
        tags = _get_strings(table, "tags", where)
        if isinstance(tags, Err):
            return tags
        doc.submodules.append(
            SubmoduleRef(
                name=name.value,
                path=path.value,
                url=get_str(table, "url"),
                tags=tuple(tags.value),
            )
        )

    for kind in ITEM_KINDS:
        items = _parse_items(data, kind, source)
        if isinstance(items, Err):
            return items
        match kind:
            case "feature":
                doc.features = items.value
            case "release":
                doc.releases = items.value
            case "hotfix":
                doc.hotfixes = items.value

    supports = _get_tables(data, "supports", source)
    if isinstance(supports, Err):
        return supports
    for index, table in enumerate(supports.value):
        support = _parse_support(table, f"{source}.supports[{index}]")
        if isinstance(support, Err):
            return support
        doc.supports.append(support.value)

    for key in ("included", "excluded", "tags"):
        values = _get_strings(data, key, source)
        if isinstance(values, Err):
            return values
        setattr(doc, key, values.value)

    return Ok(doc)


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------


def _item_to_dict(item: WorkItem) -> StrDict:
    out: StrDict = {"name": item.name, "branchName": item.branch_name}
    if item.source_sha:
        out["sourceSha"] = item.source_sha
    if item.sources:
        out["sources"] = list(item.sources)
    if item.upstream:
        out["upstream"] = item.upstream
    if isinstance(item, (Release, Hotfix)) and item.intermediate:
        out["intermediate"] = True
    return out


def _put_items(out: StrDict, key: str, items: list[Feature] | list[Release] | list[Hotfix]) -> None:
    if items:
        out[key] = [_item_to_dict(i) for i in items]


def _support_to_dict(support: Support) -> StrDict:
    out: StrDict = {
        "name": support.name,
        "masterBranchName": support.master_branch_name,
        "developBranchName": support.develop_branch_name,
    }
    if support.source_sha:
        out["sourceSha"] = support.source_sha
    if support.upstream:
        out["upstream"] = support.upstream
    _put_items(out, "features", support.features)
    _put_items(out, "releases", support.releases)
    _put_items(out, "hotfixes", support.hotfixes)
    return out


def render_document(doc: ConfigDocument) -> str:
    """Serialize a document to YAML, keeping key order stable."""
    out: StrDict = {"identifier": doc.identifier}
    if doc.upstreams:
        out["upstreams"] = [{"name": u.name, "url": u.url} for u in doc.upstreams]
    if doc.submodules:
        refs: list[StrDict] = []
        for ref in doc.submodules:
            entry: StrDict = {"name": ref.name, "path": ref.path}
            if ref.url:
                entry["url"] = ref.url
            if ref.tags:
                entry["tags"] = list(ref.tags)
            refs.append(entry)
        out["submodules"] = refs
    _put_items(out, "features", doc.features)
    _put_items(out, "releases", doc.releases)
    _put_items(out, "hotfixes", doc.hotfixes)
    if doc.supports:
        out["supports"] = [_support_to_dict(s) for s in doc.supports]
    for key in ("included", "excluded", "tags"):
        values: list[str] = getattr(doc, key)
        if values:
            out[key] = list(values)
    return yaml.safe_dump(out, sort_keys=False, default_flow_style=False, allow_unicode=True)


def document_of(node: ConfigNode) -> ConfigDocument:
    """Declarative view of a registered node (children by reference only)."""
    return ConfigDocument(
        identifier=node.identifier,
        upstreams=list(node.upstreams),
        submodules=[
            SubmoduleRef(name=s.name, path=s.path, url=s.url, tags=tuple(s.tags))
            for s in node.submodules
        ],
        features=list(node.features),
        releases=list(node.releases),
        hotfixes=list(node.hotfixes),
        supports=list(node.supports),
        included=list(node.included),
        excluded=list(node.excluded),
        tags=list(node.tags),
    )
