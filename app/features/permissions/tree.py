"""
Permission hierarchy builder.

Turns a flat list of catalog nodes (parent pointers) into a sorted forest.
Pure functions, no I/O.

Guarantees:
- every input node appears exactly once in the output
- a node whose parent is missing is attached at the root, flagged orphaned
- self-parented nodes and cycles unreachable from a root are detached and
  attached at the root, flagged orphaned
- siblings are ordered by (orphaned last, order, name); ties keep input order

Filtering (enabled only, menu types only) is the caller's job; pass in just
the nodes you want in the tree.
"""
from typing import Dict, Iterable, List, Sequence, Set

from app.features.permissions.models import MENU_TYPES
from app.features.permissions.schemas import PermissionNode, PermissionTreeNode
from app.utils import get_logger


log = get_logger(__name__)

_NODE_FIELDS = set(PermissionNode.model_fields)


def _sort_key(node: PermissionTreeNode):
    return (node.is_orphaned, node.order, node.name)


def _sort_forest(nodes: List[PermissionTreeNode]) -> None:
    # list.sort is stable, so equal keys keep input order
    stack = [nodes]
    while stack:
        siblings = stack.pop()
        siblings.sort(key=_sort_key)
        stack.extend(node.children for node in siblings if node.children)


def _mark_reachable(roots: Iterable[PermissionTreeNode], seen: Set[str]) -> None:
    stack = list(roots)
    while stack:
        node = stack.pop()
        if node.id in seen:
            continue
        seen.add(node.id)
        stack.extend(node.children)


def _first_cycle_member(
    start: PermissionTreeNode,
    lookup: Dict[str, PermissionTreeNode],
    position: Dict[str, int],
) -> PermissionTreeNode:
    # An unreachable node always has a parent in lookup, so walking up must
    # eventually revisit a node: that is where the cycle closes.
    path: List[str] = []
    on_path: Set[str] = set()
    node = start
    while node.id not in on_path:
        path.append(node.id)
        on_path.add(node.id)
        node = lookup[node.parent_id]
    cycle = path[path.index(node.id):]
    return lookup[min(cycle, key=position.__getitem__)]


def build_permission_tree(nodes: Sequence[PermissionNode]) -> List[PermissionTreeNode]:
    """
    Build a forest from flat permission nodes.

    Args:
        nodes: Catalog nodes, in the order that should break sort ties

    Returns:
        Root-level tree nodes, each with sorted ``children``
    """
    lookup: Dict[str, PermissionTreeNode] = {}
    ordered: List[PermissionTreeNode] = []
    for node in nodes:
        if node.id in lookup:
            # Duplicate ids collapse to the first occurrence
            continue
        tree_node = PermissionTreeNode(**node.model_dump(include=_NODE_FIELDS), children=[])
        lookup[node.id] = tree_node
        ordered.append(tree_node)

    roots: List[PermissionTreeNode] = []
    orphaned = 0
    for tree_node in ordered:
        if tree_node.parent_id is None:
            roots.append(tree_node)
            continue
        parent = lookup.get(tree_node.parent_id)
        if parent is not None and parent is not tree_node:
            parent.children.append(tree_node)
        else:
            log.warning(
                "Permission %s (%s) has missing or self-referencing parent %s",
                tree_node.key, tree_node.id, tree_node.parent_id,
            )
            tree_node.is_orphaned = True
            roots.append(tree_node)
            orphaned += 1

    # Nodes caught in a parent cycle hang off each other and never reach a
    # root. Cut each such cycle at its first member in input order.
    reachable: Set[str] = set()
    _mark_reachable(roots, reachable)
    if len(reachable) < len(ordered):
        position = {tree_node.id: index for index, tree_node in enumerate(ordered)}
        for tree_node in ordered:
            if tree_node.id in reachable:
                continue
            cut = _first_cycle_member(tree_node, lookup, position)
            parent = lookup[cut.parent_id]
            parent.children = [child for child in parent.children if child is not cut]
            log.warning(
                "Permission %s (%s) is part of a parent cycle; attaching at root",
                cut.key, cut.id,
            )
            cut.is_orphaned = True
            roots.append(cut)
            orphaned += 1
            _mark_reachable([cut], reachable)

    _sort_forest(roots)
    log.debug("Built permission tree with %d root nodes, %d orphaned", len(roots), orphaned)
    return roots


def filter_menu_nodes(nodes: Iterable[PermissionNode]) -> List[PermissionNode]:
    """Keep only enabled MENU and PAGE nodes, preserving order."""
    return [node for node in nodes if node.enabled and node.type in MENU_TYPES]


def find_in_tree(forest: Iterable[PermissionTreeNode], key: str, enabled_only: bool = True) -> PermissionTreeNode | None:
    """Depth-first search for a node by key."""
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        if node.key == key and (node.enabled or not enabled_only):
            return node
        stack.extend(reversed(node.children))
    return None


def flatten_tree(forest: Iterable[PermissionTreeNode]) -> List[PermissionTreeNode]:
    """Pre-order list of every node in the forest."""
    result: List[PermissionTreeNode] = []
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result
