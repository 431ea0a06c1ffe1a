"""Tests for flow/close.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from glf.core.result import Err, Ok
from glf.flow.close import (
    ACTIVE_CLOSING_KEY,
    CloseWorkflow,
    close_nodes,
    closing_key,
    stages_for,
)
from glf.flow.model import ConfigNode
from glf.flow.uri import Uri
from glf.output.console import MockConsole
from glf.test.flow._fakes import FakeRepos, FakeRepository, load, write_config

ROOT_DOC = """
    identifier: 0f3c2a9e5b7d4c1a8e6f2b9d3c7a5e10
    features:
      - name: checkout-flow
        branchName: feature/checkout-flow
        sourceSha: 1a2b3c4d
    releases:
      - name: "1.2.0"
        branchName: release/1.2.0
        sourceSha: 1a2b3c4d
    supports:
      - name: lts
        masterBranchName: support/lts/master
        developBranchName: support/lts/develop
        features:
          - name: backport
            branchName: support/lts/feature/backport
            sourceSha: 1a2b3c4d
"""

BRANCHES = {
    "master": "sha-root",
    "develop": "sha-root",
    "feature/checkout-flow": "sha-feature",
    "release/1.2.0": "sha-release",
    "support/lts/master": "sha-root",
    "support/lts/develop": "sha-root",
    "support/lts/feature/backport": "sha-backport",
}


def _yes(_: str) -> bool:
    return True


def _no(_: str) -> bool:
    return False


@pytest.fixture
def node(tmp_path: Path) -> ConfigNode:
    return load(write_config(tmp_path, ROOT_DOC))


@pytest.fixture
def repo(node: ConfigNode) -> FakeRepository:
    return FakeRepository(path=node.path, branches=dict(BRANCHES))


def _workflow(
    node: ConfigNode,
    repo: FakeRepository,
    console: MockConsole | None = None,
    **kwargs: object,
) -> CloseWorkflow:
    kwargs.setdefault("confirm", _yes)
    return CloseWorkflow(node, repo, console=console or MockConsole(), **kwargs)  # type: ignore[arg-type]


def _reloaded(node: ConfigNode) -> ConfigNode:
    return load(node.config_path)


# =============================================================================
# Test: Stages
# =============================================================================


class TestStages:
    """Tests for stage selection per item kind."""

    def test_feature_merges_develop_only(self, node: ConfigNode) -> None:
        """Features only go to develop."""
        feature = node.find_item("feature", "checkout-flow")
        assert feature is not None
        assert stages_for(feature) == ("develop",)

    def test_release_merges_develop_then_master(self, node: ConfigNode) -> None:
        """Releases go to develop first, then master."""
        release = node.find_item("release", "1.2.0")
        assert release is not None
        assert stages_for(release) == ("develop", "master")

    def test_closing_key_uses_item_uri(self, node: ConfigNode) -> None:
        """Support items are keyed by their scoped URI."""
        lts = node.find_support("lts")
        assert lts is not None
        backport = lts.find_item("feature", "backport")
        assert backport is not None
        assert closing_key(backport) == "feature://lts/backport/closing"


# =============================================================================
# Test: Feature close
# =============================================================================


class TestCloseFeature:
    """Tests for closing a feature."""

    def test_closes_current_branch_item(self, node: ConfigNode, repo: FakeRepository) -> None:
        """Without a target the checked out item is closed."""
        repo.current = "feature/checkout-flow"
        console = MockConsole()

        result = _workflow(node, repo, console).run()

        assert isinstance(result, Ok)
        assert result.value.item is not None
        assert result.value.item.name == "checkout-flow"
        assert repo.merges == ["merge feature/checkout-flow"]
        assert "commit feature checkout-flow merge" in repo.ops
        assert repo.current == "develop"
        assert "feature/checkout-flow" not in repo.branches
        assert "OK root: closed feature://checkout-flow" in console.messages

    def test_removes_item_from_document(self, node: ConfigNode, repo: FakeRepository) -> None:
        """The saved document no longer lists the feature."""
        result = _workflow(node, repo).run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Ok)
        reloaded = _reloaded(node)
        assert reloaded.find_item("feature", "checkout-flow") is None
        assert reloaded.find_item("release", "1.2.0") is not None

    def test_clears_markers_when_done(self, node: ConfigNode, repo: FakeRepository) -> None:
        """Active and stage markers are gone after a successful close."""
        workflow = _workflow(node, repo)

        result = workflow.run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Ok)
        assert workflow.state.load() == Ok({})

    def test_dirty_tree_fails_before_checkout(self, node: ConfigNode, repo: FakeRepository) -> None:
        """A dirty working tree stops the close before any checkout."""
        repo.current = "feature/checkout-flow"
        repo.dirty = True

        result = _workflow(node, repo).run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Err)
        assert result.error.kind == "dirty_working_tree"
        assert repo.checkouts == []
        assert repo.merges == []
        assert node.find_item("feature", "checkout-flow") is not None

    def test_declined_confirmation(self, node: ConfigNode, repo: FakeRepository) -> None:
        """Saying no leaves everything untouched."""
        workflow = _workflow(node, repo, confirm=_no)

        result = workflow.run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Err)
        assert result.error.kind == "close_aborted"
        assert repo.ops == []
        assert workflow.state.load() == Ok({})

    def test_nothing_to_close_on_develop(self, node: ConfigNode, repo: FakeRepository) -> None:
        """Being on develop without a target is not an error."""
        console = MockConsole()

        result = _workflow(node, repo, console).run()

        assert isinstance(result, Ok)
        assert result.value.item is None
        assert "root: nothing to close" in console.messages
        assert repo.ops == []

    def test_unknown_target_is_nothing_to_close(
        self, node: ConfigNode, repo: FakeRepository
    ) -> None:
        """A target absent from the node is skipped, not failed."""
        result = _workflow(node, repo).run(Uri("feature", "missing"))

        assert isinstance(result, Ok)
        assert result.value.item is None

    def test_abort_never_merges(self, node: ConfigNode, repo: FakeRepository) -> None:
        """--abort deletes the branch and the item without merging."""
        repo.current = "feature/checkout-flow"
        workflow = _workflow(node, repo)

        result = workflow.run(Uri("feature", "checkout-flow"), abort=True)

        assert isinstance(result, Ok)
        assert result.value.aborted
        assert repo.merges == []
        assert "branch -D feature/checkout-flow" in repo.ops
        assert _reloaded(node).find_item("feature", "checkout-flow") is None
        assert workflow.state.load() == Ok({})

    def test_strategy_is_passed_to_merge(self, node: ConfigNode, repo: FakeRepository) -> None:
        """The -X strategy option reaches git merge."""
        result = _workflow(node, repo).run(Uri("feature", "checkout-flow"), strategy="theirs")

        assert isinstance(result, Ok)
        assert repo.strategies == ["theirs"]


# =============================================================================
# Test: Release close
# =============================================================================


class TestCloseRelease:
    """Tests for closing a release (develop, master and tag)."""

    def test_merges_both_and_tags(self, node: ConfigNode, repo: FakeRepository) -> None:
        """Develop then master are merged, then the tag is created on master."""
        result = _workflow(node, repo).run(Uri("release", "1.2.0"))

        assert isinstance(result, Ok)
        assert repo.merges == ["merge release/1.2.0", "merge release/1.2.0"]
        assert repo.checkouts == ["checkout develop", "checkout master", "checkout develop"]
        assert "tag 1.2.0 Release 1.2.0" in repo.ops
        assert "1.2.0" in repo.tags

    def test_markers_progress_then_clear(self, node: ConfigNode, repo: FakeRepository) -> None:
        """develop is marked before tagging, master before the final checkout."""
        workflow = _workflow(node, repo)
        key = "release://1.2.0/closing"
        seen: dict[str, dict[str, object]] = {}

        def markers() -> dict[str, object]:
            return {
                "active": workflow.state.get_str(ACTIVE_CLOSING_KEY).unwrap(),
                "develop": workflow.state.get_bool((key, "develop")).unwrap(),
                "master": workflow.state.get_bool((key, "master")).unwrap(),
            }

        def observe(op: str) -> None:
            if op.startswith("tag "):
                seen["tag"] = markers()
            elif op == "checkout develop" and "tag" in seen:
                seen["finalize"] = markers()

        repo.observer = observe
        result = workflow.run(Uri("release", "1.2.0"))

        assert isinstance(result, Ok)
        assert seen["tag"] == {"active": "release://1.2.0", "develop": True, "master": None}
        assert seen["finalize"] == {"active": "release://1.2.0", "develop": True, "master": True}
        assert workflow.state.keys() == Ok([])

    def test_existing_tag_is_kept(self, node: ConfigNode, repo: FakeRepository) -> None:
        """An existing tag is reported, not recreated."""
        repo.tags["1.2.0"] = "sha-old"
        console = MockConsole()

        result = _workflow(node, repo, console).run(Uri("release", "1.2.0"))

        assert isinstance(result, Ok)
        assert not any(op.startswith("tag ") for op in repo.ops)
        assert repo.tags["1.2.0"] == "sha-old"
        assert console.has_warning()

    def test_support_feature_uses_support_branches(
        self, node: ConfigNode, repo: FakeRepository
    ) -> None:
        """Support-owned items merge into the support's develop branch."""
        result = _workflow(node, repo).run(Uri("feature", "lts/backport"))

        assert isinstance(result, Ok)
        assert repo.checkouts == ["checkout support/lts/develop", "checkout support/lts/develop"]
        assert repo.merges == ["merge support/lts/feature/backport"]
        lts = _reloaded(node).find_support("lts")
        assert lts is not None
        assert lts.features == []


# =============================================================================
# Test: Resume
# =============================================================================


class TestResume:
    """Tests for resuming an interrupted close."""

    def test_develop_stage_is_not_repeated(self, node: ConfigNode, repo: FakeRepository) -> None:
        """A recorded develop merge is skipped on the next run."""
        workflow = _workflow(node, repo)
        workflow.state.set(ACTIVE_CLOSING_KEY, "release://1.2.0")
        workflow.state.set(("release://1.2.0/closing", "develop"), True)

        result = workflow.run()

        assert isinstance(result, Ok)
        assert result.value.resumed
        assert repo.merges == ["merge release/1.2.0"]
        assert repo.checkouts == ["checkout master", "checkout develop"]

    def test_active_marker_wins_over_target(self, node: ConfigNode, repo: FakeRepository) -> None:
        """The interrupted item is finished before anything else."""
        workflow = _workflow(node, repo)
        workflow.state.set(ACTIVE_CLOSING_KEY, "feature://checkout-flow")

        result = workflow.run(Uri("release", "1.2.0"))

        assert isinstance(result, Ok)
        assert result.value.item is not None
        assert result.value.item.name == "checkout-flow"
        assert node.find_item("release", "1.2.0") is not None

    def test_stale_marker_is_cleared(self, node: ConfigNode, repo: FakeRepository) -> None:
        """A marker naming a removed item does not block later closes."""
        workflow = _workflow(node, repo)
        workflow.state.set(ACTIVE_CLOSING_KEY, "feature://gone")
        console = MockConsole()
        workflow = _workflow(node, repo, console)

        result = workflow.run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Ok)
        assert result.value.item is not None
        assert not result.value.resumed
        assert console.find("feature://gone")
        assert workflow.state.load() == Ok({})


# =============================================================================
# Test: Conflicts
# =============================================================================


class TestConflicts:
    """Tests for the merge conflict loop."""

    def test_loops_until_git_agrees(self, node: ConfigNode, repo: FakeRepository) -> None:
        """A premature yes is rejected while unmerged paths remain."""
        repo.conflicting.add("feature/checkout-flow")
        questions: list[str] = []

        def resolved(question: str) -> bool:
            questions.append(question)
            if len(questions) == 2:
                repo.merge_in_progress = False
                repo.staged = True
            return True

        console = MockConsole()
        workflow = _workflow(node, repo, console, confirm_resolved=resolved)

        result = workflow.run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Ok)
        assert len(questions) == 2
        assert console.find("git still reports unmerged paths")
        assert "commit feature checkout-flow merge" in repo.ops

    def test_declined_resolution_keeps_progress(
        self, node: ConfigNode, repo: FakeRepository
    ) -> None:
        """Giving up leaves the active marker for the next run."""
        repo.conflicting.add("feature/checkout-flow")
        workflow = _workflow(node, repo, confirm_resolved=_no)

        result = workflow.run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Err)
        assert result.error.kind == "merge_aborted"
        assert workflow.state.get_str(ACTIVE_CLOSING_KEY) == Ok("feature://checkout-flow")
        assert node.find_item("feature", "checkout-flow") is not None

        repo.conflicting.clear()
        repo.merge_in_progress = False
        resumed = workflow.run()

        assert isinstance(resumed, Ok)
        assert resumed.value.resumed
        assert workflow.state.load() == Ok({})

    def test_resolved_merge_is_committed_on_resume(
        self, node: ConfigNode, repo: FakeRepository
    ) -> None:
        """A merge resolved between runs is committed, not merged again."""
        repo.conflicting.add("feature/checkout-flow")
        workflow = _workflow(node, repo, confirm_resolved=_no)
        assert isinstance(workflow.run(Uri("feature", "checkout-flow")), Err)

        # Resolved and staged by hand: the index differs from HEAD
        repo.merge_in_progress = False
        repo.staged = True
        repo.dirty = True
        repo.ops.clear()

        resumed = workflow.run()

        assert isinstance(resumed, Ok)
        assert resumed.value.resumed
        assert repo.merges == []
        assert repo.ops[0] == "commit feature checkout-flow merge"
        assert "feature/checkout-flow" not in repo.branches

    def test_unresolved_merge_asks_again_on_resume(
        self, node: ConfigNode, repo: FakeRepository
    ) -> None:
        """Rerunning with the conflict still open goes back to the prompt."""
        repo.conflicting.add("feature/checkout-flow")
        workflow = _workflow(node, repo, confirm_resolved=_no)
        workflow.run(Uri("feature", "checkout-flow"))
        repo.dirty = True

        again = workflow.run()

        assert isinstance(again, Err)
        assert again.error.kind == "merge_aborted"
        assert repo.merges == ["merge feature/checkout-flow"]

    def test_merge_failure_without_conflict(self, node: ConfigNode, repo: FakeRepository) -> None:
        """A merge error with nothing in progress is a git failure."""
        del repo.branches["feature/checkout-flow"]

        result = _workflow(node, repo).run(Uri("feature", "checkout-flow"))

        assert isinstance(result, Err)
        assert result.error.kind == "git_failed"


# =============================================================================
# Test: Dry run
# =============================================================================


class TestDryRun:
    """Tests for dry-run closes."""

    def test_writes_nothing(self, node: ConfigNode, tmp_path: Path) -> None:
        """Neither the document nor the state file change."""
        before = node.config_path.read_text(encoding="utf-8")
        repo = FakeRepository(path=tmp_path, branches=dict(BRANCHES), dry_run=True)

        result = _workflow(node, repo, dry_run=True).run(Uri("release", "1.2.0"))

        assert isinstance(result, Ok)
        assert node.config_path.read_text(encoding="utf-8") == before
        assert not (tmp_path / ".glf" / "state.json").exists()
        assert "release/1.2.0" in repo.branches


# =============================================================================
# Test: close_nodes
# =============================================================================


class TestCloseNodes:
    """Tests for closing across several nodes."""

    def test_failure_does_not_stop_other_nodes(self, tmp_path: Path) -> None:
        """A dirty node fails while the next one still closes."""
        write_config(
            tmp_path,
            """
            identifier: 7e1d9c3b2a6f4e8d9c0b1a2f3e4d5c6b
            submodules:
              - name: featureLib
                path: libs/feature
            features:
              - name: checkout-flow
                branchName: feature/checkout-flow
                sourceSha: 1a2b3c4d
            """,
        )
        write_config(
            tmp_path / "libs" / "feature",
            """
            identifier: 2b4d6f8a0c1e3a5c7e9a1b3d5f7a9c1e
            features:
              - name: checkout-flow
                branchName: feature/checkout-flow
                sourceSha: 5e6f7a8b
            """,
        )
        root = load(tmp_path / ".gitflow.yml")
        child = root.submodules[0].node
        repos = FakeRepos()
        repos.add(root, branches=dict(BRANCHES), dirty=True)
        repos.add(child, branches=dict(BRANCHES))
        console = MockConsole()

        reports = close_nodes(
            [root, child],
            Uri("feature", "checkout-flow"),
            open_repo=repos,
            console=console,
            confirm=_yes,
        )

        assert [r.failed for r in reports] == [True, False]
        assert child.find_item("feature", "checkout-flow") is None
        assert root.find_item("feature", "checkout-flow") is not None
        assert console.messages[0] == "root"
        assert "root/featureLib" in console.messages
        assert console.has_error()
