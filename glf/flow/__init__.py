"""Workflow domain: config tree, addressing, filters, state and close."""

from glf.flow.errors import FlowError
from glf.flow.model import (
    Artifact,
    ConfigNode,
    Element,
    Feature,
    Hotfix,
    Release,
    Submodule,
    Support,
    WorkItem,
)
from glf.flow.tree import flatten, load_tree, save_node
from glf.flow.uri import Uri, parse_uri

__all__ = [
    "FlowError",
    # model
    "Artifact",
    "ConfigNode",
    "Element",
    "Feature",
    "Hotfix",
    "Release",
    "Submodule",
    "Support",
    "WorkItem",
    # tree
    "flatten",
    "load_tree",
    "save_node",
    # uri
    "Uri",
    "parse_uri",
]
