"""
Namespaced permission cache on top of the generic TTL cache.

Key layout (one flat TTLCache):
    user_permissions:{admin_id}            resolved permission set   short TTL
    permission_check:{admin_id}:{key}      single key check memo     short TTL
    role_permissions:{role_id}             a role's permission list  long TTL
    permission_tree                        global catalog tree       long TTL
    menu_tree                              global menu tree          long TTL

Invalidation is explicit. Mutation code calls the ``clear_*`` helpers after
committing and before returning.
"""
from typing import Dict, List, Optional

from app.core import config
from app.core.cache import TTLCache
from app.features.permissions.schemas import PermissionNode, PermissionTreeNode, ResolvedPermissions
from app.utils import get_logger


log = get_logger(__name__)

USER_PERMISSIONS = "user_permissions:"
PERMISSION_CHECK = "permission_check:"
ROLE_PERMISSIONS = "role_permissions:"
PERMISSION_TREE = "permission_tree"
MENU_TREE = "menu_tree"


class PermissionCache:
    """Typed accessors and invalidation rules for the RBAC namespaces."""

    def __init__(
        self,
        cache: TTLCache,
        user_permission_ttl: float = config.USER_PERMISSION_TTL,
        permission_check_ttl: float = config.PERMISSION_CHECK_TTL,
        role_permission_ttl: float = config.ROLE_PERMISSION_TTL,
        permission_tree_ttl: float = config.PERMISSION_TREE_TTL,
    ):
        self.cache = cache
        self.user_permission_ttl = user_permission_ttl
        self.permission_check_ttl = permission_check_ttl
        self.role_permission_ttl = role_permission_ttl
        self.permission_tree_ttl = permission_tree_ttl

    # Resolved user permission sets

    def get_user_permissions(self, admin_id: str) -> Optional[ResolvedPermissions]:
        return self.cache.get(f"{USER_PERMISSIONS}{admin_id}")

    def set_user_permissions(self, admin_id: str, resolved: ResolvedPermissions) -> None:
        self.cache.set(f"{USER_PERMISSIONS}{admin_id}", resolved, self.user_permission_ttl)

    # Single-key check memo

    def get_permission_check(self, admin_id: str, key: str) -> Optional[bool]:
        return self.cache.get(f"{PERMISSION_CHECK}{admin_id}:{key}")

    def set_permission_check(self, admin_id: str, key: str, granted: bool) -> None:
        self.cache.set(f"{PERMISSION_CHECK}{admin_id}:{key}", granted, self.permission_check_ttl)

    # Per-role permission lists

    def get_role_permissions(self, role_id: str) -> Optional[List[PermissionNode]]:
        return self.cache.get(f"{ROLE_PERMISSIONS}{role_id}")

    def set_role_permissions(self, role_id: str, permissions: List[PermissionNode]) -> None:
        self.cache.set(f"{ROLE_PERMISSIONS}{role_id}", permissions, self.role_permission_ttl)

    # Global trees

    def get_permission_tree(self) -> Optional[List[PermissionTreeNode]]:
        return self.cache.get(PERMISSION_TREE)

    def set_permission_tree(self, tree: List[PermissionTreeNode]) -> None:
        self.cache.set(PERMISSION_TREE, tree, self.permission_tree_ttl)

    def get_menu_tree(self) -> Optional[List[PermissionTreeNode]]:
        return self.cache.get(MENU_TREE)

    def set_menu_tree(self, tree: List[PermissionTreeNode]) -> None:
        self.cache.set(MENU_TREE, tree, self.permission_tree_ttl)

    # Invalidation

    def clear_user_cache(self, admin_id: str) -> None:
        """An admin's role assignments changed."""
        self.cache.delete(f"{USER_PERMISSIONS}{admin_id}")
        removed = self.cache.delete_prefix(f"{PERMISSION_CHECK}{admin_id}:")
        log.debug("Cleared permission cache for admin %s (%d check memos)", admin_id, removed)

    def clear_all_users(self) -> None:
        """Drop every resolved set and check memo."""
        self.cache.delete_prefix(USER_PERMISSIONS)
        self.cache.delete_prefix(PERMISSION_CHECK)

    def clear_role_cache(self, role_id: Optional[str] = None) -> None:
        """A role's permission assignments changed."""
        if role_id:
            self.cache.delete(f"{ROLE_PERMISSIONS}{role_id}")
        self.cache.delete(PERMISSION_TREE)
        self.cache.delete(MENU_TREE)
        log.debug("Cleared role cache for role %s", role_id or "*")

    def clear_permission_cache(self) -> None:
        """The permission catalog changed."""
        self.cache.delete(PERMISSION_TREE)
        self.cache.delete(MENU_TREE)
        removed = self.cache.delete_prefix(ROLE_PERMISSIONS)
        log.debug("Cleared permission catalog cache (%d role lists)", removed)

    def stats(self) -> Dict[str, int]:
        """Entry counts per namespace (expired-but-unswept entries included)."""
        counts = {
            "total": 0,
            "user_permissions": 0,
            "permission_checks": 0,
            "role_permissions": 0,
            "permission_tree": 0,
            "menu_tree": 0,
            "other": 0,
        }
        for key in self.cache.keys():
            counts["total"] += 1
            if key.startswith(USER_PERMISSIONS):
                counts["user_permissions"] += 1
            elif key.startswith(PERMISSION_CHECK):
                counts["permission_checks"] += 1
            elif key.startswith(ROLE_PERMISSIONS):
                counts["role_permissions"] += 1
            elif key == PERMISSION_TREE:
                counts["permission_tree"] += 1
            elif key == MENU_TREE:
                counts["menu_tree"] += 1
            else:
                counts["other"] += 1
        return counts
