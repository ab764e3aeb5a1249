"""Unit tests for stack discovery."""

from staqd.stack import metadata
from staqd.stack.graph import StackGraph, collect_stack
from staqd.stack.models import ChildRef, StackMetadata
from staqd.tests.fakes import FakeRepo, make_client


def stack_body(*children: ChildRef, merge_method: str = "squash") -> str:
    return metadata.encode(StackMetadata(children=list(children), merge_method=merge_method))


def build_tree() -> FakeRepo:
    """main <- r(1) <- {a(2) <- b(4), c(3)}"""
    repo = FakeRepo()
    repo.add_pull(1, "r", "main", body="Root change")
    repo.add_pull(2, "a", "r")
    repo.add_pull(3, "c", "r")
    repo.add_pull(4, "b", "a")
    return repo


class TestFindChildren:
    """Tests for child lookup and staleness."""

    def test_find_children(self) -> None:
        graph = StackGraph(make_client(build_tree()))
        assert graph.find_children("r") == [ChildRef(branch="a", pr=2), ChildRef(branch="c", pr=3)]
        assert graph.find_children("b") == []

    def test_closed_pulls_are_not_children(self) -> None:
        repo = build_tree()
        repo.pulls[3].state = "closed"
        assert StackGraph(make_client(repo)).find_children("r") == [ChildRef(branch="a", pr=2)]

    def test_needs_restack(self) -> None:
        repo = build_tree()
        repo.ahead[("a", "r")] = 2
        graph = StackGraph(make_client(repo))
        assert graph.needs_restack("r", "a")
        assert not graph.needs_restack("r", "c")

    def test_needs_restack_missing_branch_is_false(self) -> None:
        repo = build_tree()
        repo.missing_branches.append("gone")
        assert not StackGraph(make_client(repo)).needs_restack("r", "gone")


class TestDiscover:
    """Tests for discover."""

    def test_preorder_with_depths(self) -> None:
        nodes = StackGraph(make_client(build_tree())).discover(1)
        assert [(n.pr, n.branch, n.depth) for n in nodes] == [
            (1, "r", 0), (2, "a", 1), (4, "b", 2), (3, "c", 1),
        ]
        assert [c.pr for c in nodes[0].children] == [2, 3]

    def test_stale_edges_are_flagged(self) -> None:
        repo = build_tree()
        repo.ahead[("c", "r")] = 1
        nodes = StackGraph(make_client(repo)).discover(1)
        edges = {c.pr: c.needs_restack for c in nodes[0].children}
        assert edges == {2: False, 3: True}
        assert nodes[0].stale
        assert not nodes[1].stale

    def test_writes_metadata_to_bodies(self) -> None:
        repo = build_tree()
        StackGraph(make_client(repo)).discover(1)

        root_meta = metadata.decode(repo.pulls[1].body)
        assert root_meta is not None
        assert root_meta.children == [ChildRef(branch="a", pr=2), ChildRef(branch="c", pr=3)]
        assert repo.pulls[1].body.startswith("Root change\n\n")
        a_meta = metadata.decode(repo.pulls[2].body)
        assert a_meta is not None
        assert a_meta.children == [ChildRef(branch="b", pr=4)]
        # Leaves get no block
        assert metadata.decode(repo.pulls[3].body) is None
        assert metadata.decode(repo.pulls[4].body) is None

    def test_preserves_merge_method(self) -> None:
        repo = build_tree()
        repo.pulls[1].body = stack_body(ChildRef(branch="a", pr=2), merge_method="rebase")
        StackGraph(make_client(repo)).discover(1)
        meta = metadata.decode(repo.pulls[1].body)
        assert meta is not None
        assert meta.merge_method == "rebase"
        assert [c.pr for c in meta.children] == [2, 3]

    def test_reads_merge_method_from_legacy_comment(self) -> None:
        repo = build_tree()
        repo.create_issue_comment(1, stack_body(ChildRef(branch="a", pr=2), merge_method="merge"))
        StackGraph(make_client(repo)).discover(1)
        meta = metadata.decode(repo.pulls[1].body)
        assert meta is not None
        assert meta.merge_method == "merge"

    def test_clears_metadata_when_children_are_gone(self) -> None:
        repo = build_tree()
        repo.pulls[4].body = "Leaf\n\n" + stack_body(ChildRef(branch="x", pr=99))
        StackGraph(make_client(repo)).discover(4)
        assert repo.pulls[4].body == "Leaf"

    def test_unchanged_metadata_is_not_rewritten(self) -> None:
        repo = build_tree()
        graph = StackGraph(make_client(repo))
        graph.discover(1)
        edits = len(repo.edits)
        graph.discover(1)
        assert len(repo.edits) == edits

    def test_cycle_terminates(self) -> None:
        repo = FakeRepo()
        repo.add_pull(1, "a", "b")
        repo.add_pull(2, "b", "a")
        nodes = StackGraph(make_client(repo)).discover(1)
        assert [n.pr for n in nodes] == [1, 2]

    def test_self_targeting_pull_terminates(self) -> None:
        repo = FakeRepo()
        repo.add_pull(1, "a", "a")
        nodes = StackGraph(make_client(repo)).discover(1)
        assert [n.pr for n in nodes] == [1]

    def test_explicit_visited_set(self) -> None:
        visited = {2}
        nodes = StackGraph(make_client(build_tree())).discover(1, visited=visited)
        assert [n.pr for n in nodes] == [1, 3]
        assert visited == {1, 2, 3}


class TestCollectStack:
    """Tests for collect_stack over stored metadata."""

    def test_collects_in_preorder(self) -> None:
        repo = build_tree()
        repo.pulls[1].body = stack_body(ChildRef(branch="a", pr=2), ChildRef(branch="c", pr=3))
        repo.pulls[2].body = stack_body(ChildRef(branch="b", pr=4))
        assert collect_stack(make_client(repo), 1) == [1, 2, 4, 3]

    def test_stored_cycle_terminates(self) -> None:
        repo = build_tree()
        repo.pulls[1].body = stack_body(ChildRef(branch="a", pr=2))
        repo.pulls[2].body = stack_body(ChildRef(branch="r", pr=1))
        assert collect_stack(make_client(repo), 1) == [1, 2]
