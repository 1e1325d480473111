"""
Admin account and role assignment operations.

The resolved permission set carries the admin's type and role grants, so
every write here commits and then drops the affected admins' cached sets.
"""
from typing import List
from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, InvalidReferenceError, NotFoundError
from app.features.admins.models import Admin, AdminStatus, AdminType
from app.features.admins.schemas import AdminUpdate
from app.features.permissions.cache import PermissionCache
from app.features.permissions.models import Permission, Role, admin_roles, role_permissions
from app.utils import get_logger


log = get_logger(__name__)


async def get_admin(db: AsyncSession, admin_id: str) -> Admin:
    result = await db.execute(select(Admin).where(Admin.id == admin_id))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise NotFoundError(f"Admin {admin_id} not found")
    return admin


async def update_admin(db: AsyncSession, cache: PermissionCache, admin_id: str, data: AdminUpdate) -> Admin:
    """
    Update an admin's account, name, type or status.

    Raises:
        NotFoundError: admin does not exist
        ConflictError: new account name already taken
    """
    admin = await get_admin(db, admin_id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)

    new_account = update_data.get("account")
    if new_account and new_account != admin.account:
        result = await db.execute(select(Admin.id).where(Admin.account == new_account, Admin.id != admin_id))
        if result.first() is not None:
            raise ConflictError("Admin account already exists")

    for key, value in update_data.items():
        setattr(admin, key, value)
    await db.commit()
    await db.refresh(admin)

    cache.clear_user_cache(admin_id)
    log.info("Updated admin %s (%s): %s", admin.account, admin_id, sorted(update_data))
    return admin


async def batch_update_admin_status(
    db: AsyncSession,
    cache: PermissionCache,
    ids: List[str],
    status: AdminStatus,
) -> int:
    """Set the status of many admins; SUPER_ADMIN accounts are left alone. Returns the number changed."""
    result = await db.execute(
        select(Admin.id).where(Admin.id.in_(ids), Admin.type != AdminType.SUPER_ADMIN)
    )
    target_ids = list(result.scalars().all())
    if not target_ids:
        return 0

    stmt = (
        update(Admin)
        .where(Admin.id.in_(target_ids))
        .values(status=status)
    )
    result = await db.execute(stmt)
    await db.commit()

    for admin_id in target_ids:
        cache.clear_user_cache(admin_id)
    log.info("Set status=%s on %d admins", status.value, result.rowcount)
    return result.rowcount


async def _ensure_enabled_roles(db: AsyncSession, role_ids: List[str]) -> None:
    if not role_ids:
        return
    result = await db.execute(select(Role.id).where(Role.id.in_(role_ids), Role.status.is_(True)))
    found = set(result.scalars().all())
    missing = [rid for rid in role_ids if rid not in found]
    if missing:
        raise InvalidReferenceError(f"Roles do not exist or are disabled: {', '.join(missing)}")


async def _replace_roles(db: AsyncSession, admin_id: str, role_ids: List[str]) -> None:
    await db.execute(delete(admin_roles).where(admin_roles.c.admin_id == admin_id))
    if role_ids:
        await db.execute(
            insert(admin_roles),
            [{"admin_id": admin_id, "role_id": rid} for rid in role_ids],
        )


async def _reload(db: AsyncSession, admins: List[Admin]) -> None:
    for admin in admins:
        await db.refresh(admin, attribute_names=["roles"])


async def assign_roles_to_admin(
    db: AsyncSession,
    cache: PermissionCache,
    admin_id: str,
    role_ids: List[str],
) -> Admin:
    """
    Replace an admin's role set atomically.

    Raises:
        NotFoundError: admin does not exist
        InvalidReferenceError: a role is missing or disabled
    """
    admin = await get_admin(db, admin_id)
    unique_ids = list(dict.fromkeys(role_ids))
    await _ensure_enabled_roles(db, unique_ids)

    await _replace_roles(db, admin_id, unique_ids)
    await db.commit()
    await _reload(db, [admin])

    cache.clear_user_cache(admin_id)
    log.info("Assigned %d roles to admin %s (%s)", len(unique_ids), admin.account, admin_id)
    return admin


async def add_admin_role(db: AsyncSession, cache: PermissionCache, admin_id: str, role_id: str) -> Admin:
    """
    Raises:
        NotFoundError: admin does not exist
        InvalidReferenceError: role is missing or disabled
        ConflictError: admin already holds the role
    """
    admin = await get_admin(db, admin_id)
    await _ensure_enabled_roles(db, [role_id])

    result = await db.execute(
        select(admin_roles.c.role_id).where(admin_roles.c.admin_id == admin_id, admin_roles.c.role_id == role_id)
    )
    if result.first() is not None:
        raise ConflictError("Admin already has this role")

    await db.execute(insert(admin_roles).values(admin_id=admin_id, role_id=role_id))
    await db.commit()
    await _reload(db, [admin])

    cache.clear_user_cache(admin_id)
    log.info("Added role %s to admin %s", role_id, admin_id)
    return admin


async def remove_admin_role(db: AsyncSession, cache: PermissionCache, admin_id: str, role_id: str) -> Admin:
    """
    Raises:
        NotFoundError: admin does not exist or does not hold the role
    """
    admin = await get_admin(db, admin_id)
    result = await db.execute(
        delete(admin_roles).where(admin_roles.c.admin_id == admin_id, admin_roles.c.role_id == role_id)
    )
    if result.rowcount == 0:
        raise NotFoundError("Admin does not have this role")
    await db.commit()
    await _reload(db, [admin])

    cache.clear_user_cache(admin_id)
    log.info("Removed role %s from admin %s", role_id, admin_id)
    return admin


async def batch_assign_roles(
    db: AsyncSession,
    cache: PermissionCache,
    admin_ids: List[str],
    role_ids: List[str],
) -> List[Admin]:
    """
    Replace the role set of several admins in one transaction.

    Raises:
        NotFoundError: an admin does not exist
        InvalidReferenceError: a role is missing or disabled
    """
    unique_admins = list(dict.fromkeys(admin_ids))
    result = await db.execute(select(Admin).where(Admin.id.in_(unique_admins)))
    admins = list(result.scalars().all())
    found = {admin.id for admin in admins}
    missing = [aid for aid in unique_admins if aid not in found]
    if missing:
        raise NotFoundError(f"Admins not found: {', '.join(missing)}")

    unique_roles = list(dict.fromkeys(role_ids))
    await _ensure_enabled_roles(db, unique_roles)

    for admin_id in unique_admins:
        await _replace_roles(db, admin_id, unique_roles)
    await db.commit()
    await _reload(db, admins)

    for admin_id in unique_admins:
        cache.clear_user_cache(admin_id)
    log.info("Assigned %d roles to %d admins", len(unique_roles), len(unique_admins))
    return admins


async def get_admin_roles(db: AsyncSession, admin_id: str) -> List[Role]:
    """Enabled roles held by the admin."""
    await get_admin(db, admin_id)
    stmt = (
        select(Role)
        .join(admin_roles, admin_roles.c.role_id == Role.id)
        .where(admin_roles.c.admin_id == admin_id, Role.status.is_(True))
        .order_by(Role.created_at, Role.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_admins_by_role(db: AsyncSession, role_code: str) -> List[Admin]:
    """Admins holding the enabled role ``role_code``."""
    stmt = (
        select(Admin)
        .join(admin_roles, admin_roles.c.admin_id == Admin.id)
        .join(Role, Role.id == admin_roles.c.role_id)
        .where(Role.code == role_code, Role.status.is_(True))
        .order_by(Admin.account)
    )
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def get_admins_by_permission(db: AsyncSession, permission_key: str) -> List[Admin]:
    """Admins granted the enabled permission ``permission_key`` through an enabled role."""
    stmt = (
        select(Admin)
        .join(admin_roles, admin_roles.c.admin_id == Admin.id)
        .join(Role, Role.id == admin_roles.c.role_id)
        .join(role_permissions, role_permissions.c.role_id == Role.id)
        .join(Permission, Permission.id == role_permissions.c.permission_id)
        .where(
            Permission.key == permission_key,
            Permission.enabled.is_(True),
            Role.status.is_(True),
        )
        .order_by(Admin.account)
    )
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())
