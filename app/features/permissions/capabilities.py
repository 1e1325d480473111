"""
UI capability gate.

Client-side mirror of the predicates, operating on a snapshot fetched once
from ``GET /admins/me/permissions``. The admin panel renders controls based
on these answers; the API re-checks everything on its side.
"""
from typing import Any, Iterable, List, Optional

from app.features.permissions import predicates
from app.features.permissions.predicates import Requirement, parse_requirement
from app.features.permissions.schemas import PermissionTreeNode, ResolvedPermissions


class CapabilityGate:
    """
    Answers capability questions against a held snapshot.

    Args:
        snapshot: The admin's resolved permissions, or None when signed out
    """

    def __init__(self, snapshot: Optional[ResolvedPermissions] = None):
        self.snapshot = snapshot

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> "CapabilityGate":
        """Build a gate from the JSON body of the snapshot endpoint."""
        if payload is None:
            return cls(None)
        return cls(ResolvedPermissions.model_validate(payload))

    def update(self, snapshot: Optional[ResolvedPermissions]) -> None:
        self.snapshot = snapshot

    def clear(self) -> None:
        self.snapshot = None

    def is_authenticated(self) -> bool:
        return self.snapshot is not None

    def is_superadmin(self) -> bool:
        return self.snapshot is not None and self.snapshot.is_superadmin

    def has_permission(self, key: str, reverse: bool = False) -> bool:
        return predicates.has_permission(self.snapshot, key, reverse=reverse)

    def has_any_permission(self, keys: Iterable[str], reverse: bool = False) -> bool:
        return predicates.has_any_permission(self.snapshot, keys, reverse=reverse)

    def has_all_permissions(self, keys: Iterable[str], reverse: bool = False) -> bool:
        return predicates.has_all_permissions(self.snapshot, keys, reverse=reverse)

    def has_role(self, code: str, reverse: bool = False) -> bool:
        return predicates.has_role(self.snapshot, code, reverse=reverse)

    def has_any_role(self, codes: Iterable[str], reverse: bool = False) -> bool:
        return predicates.has_any_role(self.snapshot, codes, reverse=reverse)

    def has_menu_permission(self, key: str, reverse: bool = False) -> bool:
        return predicates.has_menu_permission(self.snapshot, key, reverse=reverse)

    def check(self, binding: Any, reverse: bool = False) -> bool:
        """
        Evaluate a requirement or a raw UI binding value.

        A ``reverse`` embedded in a dict binding combines with the argument
        (either one flips the answer, both cancel out).
        """
        if isinstance(binding, predicates.REQUIREMENT_TYPES):
            requirement: Requirement = binding
            embedded = False
        else:
            requirement, embedded = parse_requirement(binding)
        return predicates.check(self.snapshot, requirement, reverse=reverse != embedded)

    def accessible_menus(self) -> List[PermissionTreeNode]:
        """Enabled menu nodes; branches left empty by filtering are pruned."""
        if self.snapshot is None:
            return []
        if not self.snapshot.is_superadmin and not self.snapshot.roles:
            return []
        return _enabled_only(self.snapshot.menus)


def _enabled_only(nodes: List[PermissionTreeNode]) -> List[PermissionTreeNode]:
    kept: List[PermissionTreeNode] = []
    for node in nodes:
        if not node.enabled:
            continue
        children = _enabled_only(node.children)
        if node.children and not children:
            continue
        kept.append(node.model_copy(update={"children": children}))
    return kept
