"""
Membership predicates over a resolved permission set.

Every predicate takes ``ResolvedPermissions`` or ``None`` (unauthenticated)
and a keyword-only ``reverse`` flag that negates the final answer. Policy:

- unauthenticated: False
- superadmin: True, for any key or role, existing or not
- no roles: False for everything
- empty key/code lists: False (no vacuous truth)

Requirements are explicit variants rather than values inspected at runtime;
``parse_requirement`` exists only for the UI boundary, where bindings arrive
as plain strings, lists or dicts.
"""
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Optional, Sequence, Tuple, Union

from app.features.permissions.schemas import ResolvedPermissions
from app.features.permissions.tree import find_in_tree


Mode = Literal["any", "all"]


def _flip(result: bool, reverse: bool) -> bool:
    return not result if reverse else result


def _gate(resolved: Optional[ResolvedPermissions]) -> Optional[bool]:
    """Shared short-circuits; None means 'evaluate normally'."""
    if resolved is None:
        return False
    if resolved.is_superadmin:
        return True
    if not resolved.roles:
        return False
    return None


def has_permission(resolved: Optional[ResolvedPermissions], key: str, *, reverse: bool = False) -> bool:
    decided = _gate(resolved)
    if decided is not None:
        return _flip(decided, reverse)
    return _flip(key in resolved.permission_keys, reverse)


def has_any_permission(resolved: Optional[ResolvedPermissions], keys: Iterable[str], *, reverse: bool = False) -> bool:
    keys = list(keys)
    decided = _gate(resolved)
    if decided is not None:
        return _flip(decided, reverse)
    if not keys:
        return _flip(False, reverse)
    return _flip(any(key in resolved.permission_keys for key in keys), reverse)


def has_all_permissions(resolved: Optional[ResolvedPermissions], keys: Iterable[str], *, reverse: bool = False) -> bool:
    keys = list(keys)
    decided = _gate(resolved)
    if decided is not None:
        return _flip(decided, reverse)
    if not keys:
        return _flip(False, reverse)
    return _flip(all(key in resolved.permission_keys for key in keys), reverse)


def has_role(resolved: Optional[ResolvedPermissions], code: str, *, reverse: bool = False) -> bool:
    decided = _gate(resolved)
    if decided is not None:
        return _flip(decided, reverse)
    return _flip(code in resolved.role_codes, reverse)


def has_any_role(resolved: Optional[ResolvedPermissions], codes: Iterable[str], *, reverse: bool = False) -> bool:
    codes = list(codes)
    decided = _gate(resolved)
    if decided is not None:
        return _flip(decided, reverse)
    if not codes:
        return _flip(False, reverse)
    role_codes = resolved.role_codes
    return _flip(any(code in role_codes for code in codes), reverse)


def has_menu_permission(resolved: Optional[ResolvedPermissions], key: str, *, reverse: bool = False) -> bool:
    """True if an enabled node with ``key`` exists in the resolved menu tree."""
    decided = _gate(resolved)
    if decided is not None:
        return _flip(decided, reverse)
    if not resolved.menus:
        return _flip(False, reverse)
    return _flip(find_in_tree(resolved.menus, key) is not None, reverse)


# ============================================================================
# Requirement variants
# ============================================================================

@dataclass(frozen=True)
class SinglePermission:
    key: str


@dataclass(frozen=True)
class MultiplePermissions:
    keys: Tuple[str, ...]
    mode: Mode = "any"

    def __post_init__(self):
        if self.mode not in ("any", "all"):
            raise ValueError(f"Unknown permission mode: {self.mode!r}")
        object.__setattr__(self, "keys", tuple(self.keys))


@dataclass(frozen=True)
class RoleRequirement:
    codes: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "codes", tuple(self.codes))


@dataclass(frozen=True)
class MenuRequirement:
    key: str


@dataclass(frozen=True)
class CustomPredicate:
    """Arbitrary check over the resolved set; superadmin still passes."""
    predicate: Callable[[ResolvedPermissions], bool]
    description: str = "custom permission check"


Requirement = Union[SinglePermission, MultiplePermissions, RoleRequirement, MenuRequirement, CustomPredicate]
REQUIREMENT_TYPES = (SinglePermission, MultiplePermissions, RoleRequirement, MenuRequirement, CustomPredicate)


def check(resolved: Optional[ResolvedPermissions], requirement: Requirement, *, reverse: bool = False) -> bool:
    """Evaluate one requirement variant."""
    if isinstance(requirement, SinglePermission):
        return has_permission(resolved, requirement.key, reverse=reverse)
    if isinstance(requirement, MultiplePermissions):
        if requirement.mode == "all":
            return has_all_permissions(resolved, requirement.keys, reverse=reverse)
        return has_any_permission(resolved, requirement.keys, reverse=reverse)
    if isinstance(requirement, RoleRequirement):
        return has_any_role(resolved, requirement.codes, reverse=reverse)
    if isinstance(requirement, MenuRequirement):
        return has_menu_permission(resolved, requirement.key, reverse=reverse)
    if isinstance(requirement, CustomPredicate):
        decided = _gate(resolved)
        if decided is not None:
            return _flip(decided, reverse)
        return _flip(bool(requirement.predicate(resolved)), reverse)
    raise TypeError(f"Unsupported requirement: {requirement!r}")


def describe(requirement: Requirement) -> str:
    """Human-readable form used in log lines and 403 bodies."""
    if isinstance(requirement, SinglePermission):
        return requirement.key
    if isinstance(requirement, MultiplePermissions):
        return f"{', '.join(requirement.keys)} ({requirement.mode})"
    if isinstance(requirement, RoleRequirement):
        return f"role {', '.join(requirement.codes)}"
    if isinstance(requirement, MenuRequirement):
        return f"menu {requirement.key}"
    return requirement.description


def parse_requirement(value: Any) -> Tuple[Requirement, bool]:
    """
    Parse a UI binding value into ``(requirement, reverse)``.

    Accepted shapes:
        "user.list"                              single permission
        ["user.list", "user.create"]             any of these permissions
        {"permission": "user.list"}
        {"permissions": [...], "permission_mode": "all"}
        {"role": "admin"} / {"roles": [...]}
        {"menu": "system"}
        {"check": callable}
        any of the dict forms may add "reverse": True

    Raises:
        ValueError: for values that name no requirement
    """
    if isinstance(value, str):
        return SinglePermission(value), False
    if isinstance(value, (list, tuple)):
        return MultiplePermissions(tuple(value)), False
    if not isinstance(value, dict):
        raise ValueError(f"Cannot interpret permission binding: {value!r}")

    reverse = bool(value.get("reverse", False))
    if value.get("check") is not None:
        return CustomPredicate(value["check"]), reverse
    if value.get("permission"):
        return SinglePermission(value["permission"]), reverse
    if "permissions" in value:
        return MultiplePermissions(tuple(value["permissions"]), value.get("permission_mode", "any")), reverse
    if value.get("role"):
        return RoleRequirement((value["role"],)), reverse
    if "roles" in value:
        return RoleRequirement(tuple(value["roles"])), reverse
    if value.get("menu"):
        return MenuRequirement(value["menu"]), reverse
    raise ValueError(f"Permission binding names no requirement: {value!r}")


def as_requirement(keys: Sequence[str], mode: Mode = "any") -> Requirement:
    """Single key -> SinglePermission, several -> MultiplePermissions."""
    if len(keys) == 1:
        return SinglePermission(keys[0])
    return MultiplePermissions(tuple(keys), mode)
