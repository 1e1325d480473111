"""
Permission catalog operations.

Writes commit before invalidating, so a concurrent resolution can never
re-cache the state being replaced.
"""
import math
from typing import List, Optional, Set
from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import CircularAssignmentError, ConflictError, InvalidReferenceError, NotFoundError
from app.features.permissions.cache import PermissionCache
from app.features.permissions.models import Permission, PermissionType, role_permissions
from app.features.permissions.schemas import (
    PermissionCreate,
    PermissionListResponse,
    PermissionResponse,
    PermissionUpdate,
)
from app.utils import get_logger


log = get_logger(__name__)


def _invalidate(cache: PermissionCache) -> None:
    # Catalog edits can change any role's list and any admin's ancestor closure
    cache.clear_permission_cache()
    cache.clear_all_users()


async def get_permission(db: AsyncSession, permission_id: str) -> Permission:
    result = await db.execute(select(Permission).where(Permission.id == permission_id))
    permission = result.scalar_one_or_none()
    if permission is None:
        raise NotFoundError(f"Permission {permission_id} not found")
    return permission


async def get_permission_by_key(db: AsyncSession, key: str) -> Optional[Permission]:
    result = await db.execute(select(Permission).where(Permission.key == key))
    return result.scalar_one_or_none()


async def get_permissions_by_keys(db: AsyncSession, keys: List[str]) -> List[Permission]:
    """Enabled permissions whose key is in ``keys``."""
    if not keys:
        return []
    stmt = (
        select(Permission)
        .where(Permission.key.in_(keys), Permission.enabled.is_(True))
        .order_by(Permission.order, Permission.created_at)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_permission_descendants(db: AsyncSession, permission_id: str) -> List[Permission]:
    """Every node below ``permission_id``, breadth first."""
    await get_permission(db, permission_id)
    descendants: List[Permission] = []
    seen: Set[str] = {permission_id}
    frontier = [permission_id]
    while frontier:
        stmt = (
            select(Permission)
            .where(Permission.parent_id.in_(frontier))
            .order_by(Permission.order, Permission.name)
        )
        result = await db.execute(stmt)
        frontier = []
        for child in result.scalars().all():
            if child.id in seen:
                continue
            seen.add(child.id)
            descendants.append(child)
            frontier.append(child.id)
    return descendants


async def list_permissions(
    db: AsyncSession,
    type: Optional[PermissionType] = None,
    enabled: Optional[bool] = None,
    parent_id: Optional[str] = None,
    keyword: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> PermissionListResponse:
    """Filtered, paginated catalog listing."""
    conditions = []
    if type is not None:
        conditions.append(Permission.type == type)
    if enabled is not None:
        conditions.append(Permission.enabled.is_(enabled))
    if parent_id is not None:
        conditions.append(Permission.parent_id == parent_id)
    if keyword:
        pattern = f"%{keyword}%"
        conditions.append(or_(
            Permission.key.ilike(pattern),
            Permission.name.ilike(pattern),
            Permission.path.ilike(pattern),
        ))

    total = (await db.execute(select(func.count()).select_from(Permission).where(*conditions))).scalar_one()
    stmt = (
        select(Permission)
        .where(*conditions)
        .order_by(Permission.order, Permission.created_at)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return PermissionListResponse(
        items=[PermissionResponse.model_validate(p) for p in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total else 0,
    )


async def _ensure_parent(db: AsyncSession, parent_id: str) -> Permission:
    result = await db.execute(select(Permission).where(Permission.id == parent_id))
    parent = result.scalar_one_or_none()
    if parent is None:
        raise InvalidReferenceError(f"Parent permission {parent_id} does not exist")
    return parent


async def _would_create_cycle(db: AsyncSession, permission_id: str, parent_id: str) -> bool:
    """True if ``permission_id`` is ``parent_id`` or one of its ancestors."""
    visited: Set[str] = set()
    current: Optional[str] = parent_id
    while current and current not in visited:
        if current == permission_id:
            return True
        visited.add(current)
        result = await db.execute(select(Permission.parent_id).where(Permission.id == current))
        current = result.scalar_one_or_none()
    return False


async def create_permission(db: AsyncSession, cache: PermissionCache, data: PermissionCreate) -> Permission:
    """
    Create a catalog node.

    Raises:
        ConflictError: key already taken
        InvalidReferenceError: parent does not exist
    """
    if await get_permission_by_key(db, data.key) is not None:
        raise ConflictError(f"Permission key '{data.key}' already exists")
    if data.parent_id:
        await _ensure_parent(db, data.parent_id)

    permission = Permission(**data.model_dump())
    db.add(permission)
    await db.commit()
    await db.refresh(permission)

    _invalidate(cache)
    log.info("Created permission %s (%s)", permission.key, permission.id)
    return permission


async def update_permission(
    db: AsyncSession,
    cache: PermissionCache,
    permission_id: str,
    data: PermissionUpdate,
) -> Permission:
    """
    Update a catalog node.

    Raises:
        NotFoundError: permission does not exist
        InvalidReferenceError: new parent does not exist
        CircularAssignmentError: new parent is the node itself or a descendant
    """
    permission = await get_permission(db, permission_id)
    update_data = data.model_dump(exclude_unset=True)

    parent_id = update_data.get("parent_id")
    if parent_id and parent_id != permission.parent_id:
        await _ensure_parent(db, parent_id)
        if await _would_create_cycle(db, permission_id, parent_id):
            raise CircularAssignmentError(
                f"Permission {permission.key} cannot be placed under itself or one of its descendants"
            )
    if update_data.get("method"):
        update_data["method"] = update_data["method"].upper()

    for key, value in update_data.items():
        setattr(permission, key, value)
    await db.commit()
    await db.refresh(permission)

    _invalidate(cache)
    log.info("Updated permission %s (%s): %s", permission.key, permission.id, sorted(update_data))
    return permission


async def delete_permission(db: AsyncSession, cache: PermissionCache, permission_id: str) -> Permission:
    """
    Delete a catalog node that is a leaf and unused.

    Raises:
        NotFoundError: permission does not exist
        ConflictError: it still has children or is assigned to a role
    """
    permission = await get_permission(db, permission_id)

    has_children = (await db.execute(
        select(exists().where(Permission.parent_id == permission_id))
    )).scalar()
    if has_children:
        raise ConflictError(f"Permission {permission.key} still has child permissions")

    in_use = (await db.execute(
        select(exists().where(role_permissions.c.permission_id == permission_id))
    )).scalar()
    if in_use:
        raise ConflictError(f"Permission {permission.key} is assigned to one or more roles")

    await db.delete(permission)
    await db.commit()

    _invalidate(cache)
    log.info("Deleted permission %s (%s)", permission.key, permission_id)
    return permission


async def batch_update_permission_status(
    db: AsyncSession,
    cache: PermissionCache,
    ids: List[str],
    enabled: bool,
) -> int:
    """Enable or disable many nodes; returns the number of rows changed."""
    stmt = (
        update(Permission)
        .where(Permission.id.in_(ids))
        .values(enabled=enabled)
    )
    result = await db.execute(stmt)
    await db.commit()

    _invalidate(cache)
    log.info("Set enabled=%s on %d permissions", enabled, result.rowcount)
    return result.rowcount
