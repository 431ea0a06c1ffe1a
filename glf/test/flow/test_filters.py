"""Tests for flow/filters.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from glf.core.result import Err, Ok
from glf.flow.filters import parse_patterns, resolve_filtered_configs
from glf.flow.model import ConfigNode
from glf.flow.tree import flatten
from glf.flow.uri import Uri
from glf.test.flow._fakes import FakeRepos, load, write_config


@pytest.fixture
def root(tmp_path: Path) -> ConfigNode:
    """root -> (featureLib, apiService -> (auth))."""
    write_config(
        tmp_path,
        """
        identifier: aaaa0000aaaa0000aaaa0000aaaa0000
        submodules:
          - name: featureLib
            path: libs/feature
          - name: apiService
            path: services/api
            tags: [backend]
        features:
          - name: checkout-flow
            branchName: feature/checkout-flow
            sourceSha: 1a2b3c4d
        """,
    )
    write_config(tmp_path / "libs" / "feature", "identifier: bbbb0000bbbb0000bbbb0000bbbb0000\n")
    write_config(
        tmp_path / "services" / "api",
        """
        identifier: cccc0000cccc0000cccc0000cccc0000
        submodules:
          - name: auth
            path: auth
        releases:
          - name: "1.2.0"
            branchName: release/1.2.0
        supports:
          - name: lts
            masterBranchName: support/lts/master
            developBranchName: support/lts/develop
        """,
    )
    write_config(
        tmp_path / "services" / "api" / "auth",
        "identifier: dddd0000dddd0000dddd0000dddd0000\ntags: [security]\n",
    )
    return load(tmp_path / ".gitflow.yml")


@pytest.fixture
def repos(root: ConfigNode) -> FakeRepos:
    root_node, lib, api, auth = flatten(root)
    repos = FakeRepos()
    repos.add(root_node, current="feature/checkout-flow")
    repos.add(lib, current="develop")
    repos.add(api, current="release/1.2.0")
    repos.add(auth, current="master")
    return repos


def _select(
    root: ConfigNode,
    repos: FakeRepos,
    included: list[str] | None = None,
    excluded: list[str] | None = None,
) -> list[str]:
    result = resolve_filtered_configs(
        root, open_repo=repos, included=included, excluded=excluded
    )
    assert isinstance(result, Ok), result
    return [n.pathspec for n in result.value]


# =============================================================================
# Test: parse_patterns
# =============================================================================


class TestParsePatterns:
    """Tests for pattern parsing."""

    def test_conjunction(self) -> None:
        """';' joins the parts of one pattern."""
        result = parse_patterns(["release://1.*;repo://root/api*"])

        assert isinstance(result, Ok)
        assert result.value[0].parts == (Uri("release", "1.*"), Uri("repo", "root/api*"))

    def test_empty_parts_are_ignored(self) -> None:
        """Stray separators do not produce empty patterns."""
        result = parse_patterns(["repo://root;", ";"])

        assert isinstance(result, Ok)
        assert len(result.value) == 1

    def test_invalid_part(self) -> None:
        """Any invalid part fails the whole list."""
        result = parse_patterns(["repo://root;nope"])

        assert isinstance(result, Err)
        assert result.error.kind == "invalid_uri"


# =============================================================================
# Test: resolve_filtered_configs
# =============================================================================


class TestResolveFilteredConfigs:
    """Tests for node selection."""

    def test_no_filters_selects_all_in_pre_order(self, root: ConfigNode, repos: FakeRepos) -> None:
        """Without filters every node is selected, parents first."""
        assert _select(root, repos) == [
            "root",
            "root/featureLib",
            "root/apiService",
            "root/apiService/auth",
        ]

    def test_repo_glob(self, root: ConfigNode, repos: FakeRepos) -> None:
        """'*' stays within one path segment."""
        assert _select(root, repos, ["repo://root/feature*"]) == ["root/featureLib"]
        assert _select(root, repos, ["repo://root/*"]) == ["root/featureLib", "root/apiService"]

    def test_repo_double_star(self, root: ConfigNode, repos: FakeRepos) -> None:
        """'**' spans segments and includes the parent itself."""
        assert _select(root, repos, ["repo://root/apiService/**"]) == [
            "root/apiService",
            "root/apiService/auth",
        ]

    def test_repo_only_filters_never_open_repositories(
        self, root: ConfigNode, repos: FakeRepos
    ) -> None:
        """Branches are queried lazily."""
        _select(root, repos, ["repo://root"])

        assert repos.opened == []

    def test_branch(self, root: ConfigNode, repos: FakeRepos) -> None:
        """branch:// matches the node's checked out branch."""
        assert _select(root, repos, ["branch://feature/*"]) == ["root"]
        assert _select(root, repos, ["branch://{master,develop}"]) == [
            "root/featureLib",
            "root/apiService/auth",
        ]

    def test_item_artifact(self, root: ConfigNode, repos: FakeRepos) -> None:
        """feature:// and release:// match the checked out item."""
        assert _select(root, repos, ["feature://checkout-*"]) == ["root"]
        assert _select(root, repos, ["release://1.*"]) == ["root/apiService"]

    def test_tag(self, root: ConfigNode, repos: FakeRepos) -> None:
        """tag:// matches node tags and submodule entry tags."""
        assert _select(root, repos, ["tag://backend"]) == ["root/apiService"]
        assert _select(root, repos, ["tag://sec*"]) == ["root/apiService/auth"]

    def test_support(self, root: ConfigNode, repos: FakeRepos) -> None:
        """support:// matches nodes on a support's own branches."""
        api = flatten(root)[2]
        repos.get(api).current = "support/lts/develop"

        assert _select(root, repos, ["support://lts"]) == ["root/apiService"]

    def test_conjunction(self, root: ConfigNode, repos: FakeRepos) -> None:
        """All parts of a pattern must match."""
        assert _select(root, repos, ["release://1.*;repo://root/api*"]) == ["root/apiService"]
        assert _select(root, repos, ["release://1.*;repo://root/feature*"]) == []

    def test_include_is_union(self, root: ConfigNode, repos: FakeRepos) -> None:
        """A node matching any include pattern is selected."""
        assert _select(root, repos, ["repo://root", "tag://security"]) == [
            "root",
            "root/apiService/auth",
        ]

    def test_exclude_wins(self, root: ConfigNode, repos: FakeRepos) -> None:
        """Excluded nodes are dropped even when included."""
        assert _select(root, repos, ["repo://root/**"], ["branch://master"]) == [
            "root",
            "root/featureLib",
            "root/apiService",
        ]

    def test_root_defaults(self, root: ConfigNode, repos: FakeRepos) -> None:
        """None falls back to the root's lists, [] means no constraint."""
        root.excluded = ["tag://backend"]

        assert "root/apiService" not in _select(root, repos)
        assert "root/apiService" in _select(root, repos, excluded=[])

    def test_node_outside_repository(self, root: ConfigNode, repos: FakeRepos) -> None:
        """A node that is not a repository only matches repo:// and tag://."""
        lib = flatten(root)[1]
        repos.get(lib).is_repo = False

        assert _select(root, repos, ["branch://**"]) == [
            "root",
            "root/apiService",
            "root/apiService/auth",
        ]
        assert _select(root, repos, ["repo://root/featureLib"]) == ["root/featureLib"]

    def test_invalid_pattern(self, root: ConfigNode, repos: FakeRepos) -> None:
        """A bad pattern is an error, not an empty selection."""
        result = resolve_filtered_configs(root, open_repo=repos, included=["repo:root"])

        assert isinstance(result, Err)
