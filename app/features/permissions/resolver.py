"""
Permission resolution engine.

Given an admin id, computes the admin's effective roles and permissions:

1. cached result, if still live
2. unknown admin -> None
3. superadmin -> wildcard set, no joins
4. enabled roles -> their enabled permissions, deduplicated by id
5. ancestor completion: every missing enabled ancestor of a granted node is
   added, so a leaf ACTION can always walk up to its PAGE and MENU
6. key set + resolved menu tree, cached with the user-permission TTL

Resolution is idempotent and computes the full value before caching it.
Provider errors propagate unchanged.
"""
from typing import Dict, List, Optional

from app.features.permissions.cache import PermissionCache
from app.features.permissions.models import MENU_TYPES
from app.features.permissions.provider import PermissionDataProvider
from app.features.permissions.schemas import (
    WILDCARD,
    PermissionNode,
    PermissionTreeNode,
    ResolvedPermissions,
    RoleSummary,
)
from app.features.permissions.tree import build_permission_tree, filter_menu_nodes
from app.utils import get_logger


log = get_logger(__name__)


class PermissionResolver:
    """
    Resolves admins to ``ResolvedPermissions`` through a data provider.

    The cache is injected so the application can share one instance across
    requests while tests use a fresh one.
    """

    def __init__(self, provider: PermissionDataProvider, cache: PermissionCache):
        self.provider = provider
        self.cache = cache

    async def resolve(self, principal_id: str) -> Optional[ResolvedPermissions]:
        cached = self.cache.get_user_permissions(principal_id)
        if cached is not None:
            log.debug("Retrieved permissions from cache for admin %s", principal_id)
            return cached

        principal = await self.provider.find_principal_by_id(principal_id)
        if principal is None:
            return None

        if principal.is_superadmin:
            resolved = ResolvedPermissions(
                principal_id=principal.id,
                account=principal.account,
                is_superadmin=True,
                roles=[],
                permissions=[],
                permission_keys=frozenset({WILDCARD}),
                menus=await self.get_menu_tree(),
            )
        else:
            roles = await self.provider.find_roles_for_principal(principal.id)
            permissions = await self._collect_permissions(roles)
            permissions = await self._complete_ancestors(permissions)
            ordered = list(permissions.values())
            resolved = ResolvedPermissions(
                principal_id=principal.id,
                account=principal.account,
                roles=roles,
                permissions=ordered,
                permission_keys=frozenset(p.key for p in ordered),
                menus=build_permission_tree(filter_menu_nodes(ordered)),
            )

        self.cache.set_user_permissions(principal_id, resolved)
        log.debug(
            "Resolved %d permissions across %d roles for admin %s",
            len(resolved.permission_keys), len(resolved.roles), principal_id,
        )
        return resolved

    async def check_permission(self, principal_id: str, key: str) -> bool:
        """Memoized single-key check; unknown admins are never granted."""
        memo = self.cache.get_permission_check(principal_id, key)
        if memo is not None:
            return memo
        resolved = await self.resolve(principal_id)
        if resolved is None:
            return False
        granted = resolved.is_superadmin or key in resolved.permission_keys
        self.cache.set_permission_check(principal_id, key, granted)
        return granted

    async def get_role_permissions(self, role_id: str) -> List[PermissionNode]:
        cached = self.cache.get_role_permissions(role_id)
        if cached is not None:
            return cached
        permissions = await self.provider.find_permissions_for_role(role_id)
        self.cache.set_role_permissions(role_id, permissions)
        return permissions

    async def get_permission_tree(self) -> List[PermissionTreeNode]:
        """Tree of every enabled catalog node."""
        cached = self.cache.get_permission_tree()
        if cached is not None:
            return cached
        tree = build_permission_tree(await self.provider.list_permissions(enabled_only=True))
        self.cache.set_permission_tree(tree)
        return tree

    async def get_menu_tree(self) -> List[PermissionTreeNode]:
        """Tree of every enabled MENU/PAGE catalog node."""
        cached = self.cache.get_menu_tree()
        if cached is not None:
            return cached
        nodes = await self.provider.list_permissions(enabled_only=True, types=MENU_TYPES)
        tree = build_permission_tree(nodes)
        self.cache.set_menu_tree(tree)
        return tree

    def invalidate_principal(self, principal_id: str) -> None:
        self.cache.clear_user_cache(principal_id)

    def invalidate_role(self, role_id: Optional[str] = None) -> None:
        self.cache.clear_role_cache(role_id)

    def invalidate_catalog(self) -> None:
        self.cache.clear_permission_cache()
        self.cache.clear_all_users()

    async def _collect_permissions(self, roles: List[RoleSummary]) -> Dict[str, PermissionNode]:
        collected: Dict[str, PermissionNode] = {}
        for role in roles:
            for permission in await self.get_role_permissions(role.id):
                if permission.enabled:
                    collected.setdefault(permission.id, permission)
        return collected

    async def _complete_ancestors(self, permissions: Dict[str, PermissionNode]) -> Dict[str, PermissionNode]:
        completed = dict(permissions)
        # Ids already looked up, hits and misses alike, are never fetched again
        visited = set(completed)
        pending = [p.parent_id for p in permissions.values() if p.parent_id]
        while pending:
            parent_id = pending.pop()
            if parent_id in visited:
                continue
            visited.add(parent_id)
            parent = await self.provider.find_permission_by_id(parent_id)
            if parent is None or not parent.enabled:
                continue
            completed[parent.id] = parent
            if parent.parent_id:
                pending.append(parent.parent_id)
        added = len(completed) - len(permissions)
        if added:
            log.debug("Ancestor completion added %d permissions", added)
        return completed
