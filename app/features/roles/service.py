"""
Role operations.

A role's permission list is cached per role, and every holder of the role
has it folded into their resolved set, so role writes clear both.
"""
import math
from typing import List, Optional
from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, InvalidReferenceError, NotFoundError
from app.features.permissions.cache import PermissionCache
from app.features.permissions.models import Permission, Role, admin_roles, role_permissions
from app.features.permissions.schemas import RoleCreate, RoleListResponse, RoleResponse, RoleUpdate
from app.utils import get_logger


log = get_logger(__name__)


async def get_role_holder_ids(db: AsyncSession, role_id: str) -> List[str]:
    result = await db.execute(select(admin_roles.c.admin_id).where(admin_roles.c.role_id == role_id))
    return list(result.scalars().all())


async def _invalidate_role(db: AsyncSession, cache: PermissionCache, role_ids: List[str]) -> None:
    for role_id in role_ids:
        cache.clear_role_cache(role_id)
        for admin_id in await get_role_holder_ids(db, role_id):
            cache.clear_user_cache(admin_id)


async def get_role(db: AsyncSession, role_id: str) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFoundError(f"Role {role_id} not found")
    return role


async def list_roles(
    db: AsyncSession,
    keyword: Optional[str] = None,
    status: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
) -> RoleListResponse:
    conditions = []
    if keyword:
        pattern = f"%{keyword}%"
        conditions.append(or_(
            Role.name.ilike(pattern),
            Role.code.ilike(pattern),
            Role.description.ilike(pattern),
        ))
    if status is not None:
        conditions.append(Role.status.is_(status))

    total = (await db.execute(select(func.count()).select_from(Role).where(*conditions))).scalar_one()
    stmt = (
        select(Role)
        .where(*conditions)
        .order_by(Role.created_at.desc(), Role.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return RoleListResponse(
        items=[RoleResponse.model_validate(role) for role in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total else 0,
    )


async def get_available_roles(db: AsyncSession) -> List[Role]:
    """Enabled roles, for assignment pickers."""
    result = await db.execute(select(Role).where(Role.status.is_(True)).order_by(Role.name))
    return list(result.scalars().all())


async def create_role(db: AsyncSession, data: RoleCreate) -> Role:
    """
    Create a role.

    Raises:
        ConflictError: code or name already taken
    """
    result = await db.execute(select(Role).where(or_(Role.code == data.code, Role.name == data.name)))
    existing = result.scalars().first()
    if existing is not None:
        field = "code" if existing.code == data.code else "name"
        raise ConflictError(f"Role {field} already exists")

    role = Role(**data.model_dump())
    db.add(role)
    await db.commit()
    await db.refresh(role)

    log.info("Created role %s (%s)", role.code, role.id)
    return role


async def update_role(db: AsyncSession, cache: PermissionCache, role_id: str, data: RoleUpdate) -> Role:
    """
    Update a role's name, description or status.

    Raises:
        NotFoundError: role does not exist
        ConflictError: new name already taken
    """
    role = await get_role(db, role_id)
    update_data = data.model_dump(exclude_unset=True)

    new_name = update_data.get("name")
    if new_name and new_name != role.name:
        result = await db.execute(select(Role.id).where(Role.name == new_name, Role.id != role_id))
        if result.first() is not None:
            raise ConflictError("Role name already exists")

    for key, value in update_data.items():
        setattr(role, key, value)
    await db.commit()
    await db.refresh(role)

    await _invalidate_role(db, cache, [role_id])
    log.info("Updated role %s (%s): %s", role.code, role.id, sorted(update_data))
    return role


async def delete_role(db: AsyncSession, cache: PermissionCache, role_id: str) -> Role:
    """
    Delete a role that no admin holds.

    Raises:
        NotFoundError: role does not exist
        ConflictError: role is still assigned
    """
    role = await get_role(db, role_id)

    holders = await get_role_holder_ids(db, role_id)
    if holders:
        raise ConflictError(f"Role {role.code} is assigned to {len(holders)} admin(s)")

    # role_permissions rows are removed in the same flush as the role
    await db.delete(role)
    await db.commit()

    cache.clear_role_cache(role_id)
    log.info("Deleted role %s (%s)", role.code, role_id)
    return role


async def batch_update_role_status(db: AsyncSession, cache: PermissionCache, ids: List[str], status: bool) -> int:
    stmt = (
        update(Role)
        .where(Role.id.in_(ids))
        .values(status=status)
    )
    result = await db.execute(stmt)
    await db.commit()

    await _invalidate_role(db, cache, ids)
    log.info("Set status=%s on %d roles", status, result.rowcount)
    return result.rowcount


async def assign_permissions_to_role(
    db: AsyncSession,
    cache: PermissionCache,
    role_id: str,
    permission_ids: List[str],
) -> Role:
    """
    Replace a role's permission set.

    The old rows are deleted and the new ones inserted in one transaction.

    Raises:
        NotFoundError: role does not exist
        InvalidReferenceError: a permission is missing or disabled
    """
    role = await get_role(db, role_id)
    unique_ids = list(dict.fromkeys(permission_ids))

    if unique_ids:
        result = await db.execute(
            select(Permission.id).where(Permission.id.in_(unique_ids), Permission.enabled.is_(True))
        )
        found = set(result.scalars().all())
        missing = [pid for pid in unique_ids if pid not in found]
        if missing:
            raise InvalidReferenceError(f"Permissions do not exist or are disabled: {', '.join(missing)}")

    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    if unique_ids:
        await db.execute(
            insert(role_permissions),
            [{"role_id": role_id, "permission_id": pid} for pid in unique_ids],
        )
    await db.commit()
    await db.refresh(role, attribute_names=["permissions"])

    await _invalidate_role(db, cache, [role_id])
    log.info("Assigned %d permissions to role %s (%s)", len(unique_ids), role.code, role_id)
    return role
