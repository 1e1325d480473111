"""Tests for the permission tree builder."""

from app.features.permissions.models import PermissionType
from app.features.permissions.schemas import PermissionNode
from app.features.permissions.tree import (
    build_permission_tree,
    filter_menu_nodes,
    find_in_tree,
    flatten_tree,
)


def node(id, parent_id=None, order=0, name=None, type=PermissionType.MENU, enabled=True):
    return PermissionNode(
        id=id,
        key=f"k.{id}",
        name=name or id,
        type=type,
        parent_id=parent_id,
        order=order,
        enabled=enabled,
    )


def ids(forest):
    return [n.id for n in forest]


class TestBuildPermissionTree:
    """Tests for build_permission_tree."""

    def test_empty_input(self):
        assert build_permission_tree([]) == []

    def test_builds_hierarchy(self):
        """Children attach under their parent."""
        forest = build_permission_tree([
            node("A", order=1),
            node("B", parent_id="A", order=1),
            node("C", parent_id="A", order=2),
        ])
        assert ids(forest) == ["A"]
        assert ids(forest[0].children) == ["B", "C"]
        assert not forest[0].is_orphaned

    def test_sorts_siblings_by_order_then_name(self):
        forest = build_permission_tree([
            node("x", order=2, name="alpha"),
            node("y", order=1, name="zulu"),
            node("z", order=1, name="bravo"),
        ])
        assert ids(forest) == ["z", "y", "x"]

    def test_ties_keep_input_order(self):
        forest = build_permission_tree([
            node("second", order=1, name="same"),
            node("first", order=1, name="same"),
        ])
        assert ids(forest) == ["second", "first"]

    def test_missing_parent_becomes_orphaned_root(self):
        """A dangling parent reference attaches the node at root, after the normal roots."""
        forest = build_permission_tree([
            node("A", order=1),
            node("B", parent_id="X", order=0),
        ])
        assert ids(forest) == ["A", "B"]
        assert forest[1].is_orphaned
        assert not forest[0].is_orphaned

    def test_self_parent_is_orphaned(self):
        forest = build_permission_tree([node("S", parent_id="S")])
        assert ids(forest) == ["S"]
        assert forest[0].is_orphaned
        assert forest[0].children == []

    def test_cycle_is_broken(self):
        """Every node of a parent cycle still appears exactly once."""
        forest = build_permission_tree([
            node("P", parent_id="Q"),
            node("Q", parent_id="P"),
        ])
        flat = flatten_tree(forest)
        assert sorted(ids(flat)) == ["P", "Q"]
        assert ids(forest) == ["P"]
        assert forest[0].is_orphaned
        assert ids(forest[0].children) == ["Q"]

    def test_cycle_does_not_orphan_descendants(self):
        forest = build_permission_tree([
            node("P", parent_id="Q"),
            node("Q", parent_id="P"),
            node("R", parent_id="Q"),
        ])
        flat = flatten_tree(forest)
        assert sorted(ids(flat)) == ["P", "Q", "R"]
        orphaned = [n.id for n in flat if n.is_orphaned]
        assert orphaned == ["P"]

    def test_duplicate_ids_collapse(self):
        forest = build_permission_tree([node("A", name="first"), node("A", name="second")])
        assert len(forest) == 1
        assert forest[0].name == "first"

    def test_every_node_appears_once(self):
        nodes = [
            node("root"),
            node("a", parent_id="root", order=2),
            node("b", parent_id="root", order=1),
            node("c", parent_id="b"),
            node("d", parent_id="gone"),
        ]
        flat = flatten_tree(build_permission_tree(nodes))
        assert sorted(ids(flat)) == sorted(n.id for n in nodes)

    def test_does_not_mutate_input(self):
        source = node("A")
        build_permission_tree([source, node("B", parent_id="A")])
        assert not hasattr(source, "children")


class TestTreeHelpers:
    """Tests for filtering and lookup helpers."""

    def test_filter_menu_nodes(self):
        nodes = [
            node("m", type=PermissionType.MENU),
            node("p", type=PermissionType.PAGE),
            node("a", type=PermissionType.API),
            node("x", type=PermissionType.ACTION),
            node("off", type=PermissionType.PAGE, enabled=False),
        ]
        assert [n.id for n in filter_menu_nodes(nodes)] == ["m", "p"]

    def test_find_in_tree(self):
        forest = build_permission_tree([node("A"), node("B", parent_id="A")])
        assert find_in_tree(forest, "k.B").id == "B"
        assert find_in_tree(forest, "k.missing") is None

    def test_find_in_tree_skips_disabled(self):
        forest = build_permission_tree([node("A", enabled=False)])
        assert find_in_tree(forest, "k.A") is None
        assert find_in_tree(forest, "k.A", enabled_only=False).id == "A"
