"""
Seed script to populate the default permission catalog, roles and admins.

Run this script after database initialization to create:
- The system menu with its pages, APIs and actions
- Default roles
- A super admin and a test admin

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.admins.models import Admin, AdminType
from app.features.permissions.models import Permission, PermissionType, Role
from app.utils import get_logger


log = get_logger(__name__)

MENU = PermissionType.MENU
PAGE = PermissionType.PAGE
API = PermissionType.API
ACTION = PermissionType.ACTION


# (key, name, type, parent key, path, method, order)
DEFAULT_PERMISSIONS = [
    ("system", "System", MENU, None, None, None, 1),

    ("user", "Admins", PAGE, "system", "/system/admins", None, 1),
    ("user.list", "List admins", API, "user", "/admins", "GET", 1),
    ("user.update", "Update admin", ACTION, "user", "/admins/{id}", "PUT", 2),
    ("user.assign_role", "Assign roles", ACTION, "user", None, None, 3),

    ("role", "Roles", PAGE, "system", "/system/roles", None, 2),
    ("role.list", "List roles", API, "role", "/roles", "GET", 1),
    ("role.create", "Create role", ACTION, "role", "/roles", "POST", 2),
    ("role.update", "Update role", ACTION, "role", "/roles/{id}", "PUT", 3),
    ("role.delete", "Delete role", ACTION, "role", "/roles/{id}", "DELETE", 4),

    ("permission", "Permissions", PAGE, "system", "/system/permissions", None, 3),
    ("permission.list", "List permissions", API, "permission", "/permissions", "GET", 1),
    ("permission.create", "Create permission", ACTION, "permission", "/permissions", "POST", 2),
    ("permission.update", "Update permission", ACTION, "permission", "/permissions/{id}", "PUT", 3),
    ("permission.delete", "Delete permission", ACTION, "permission", "/permissions/{id}", "DELETE", 4),
    ("permission.assign", "Assign permissions", ACTION, "permission", "/roles/{id}/permissions", "PUT", 5),
]


DEFAULT_ROLES = {
    "system_admin": {
        "name": "System Administrator",
        "description": "Manages admins, roles and the permission catalog",
        "permissions": "ALL"  # Special case - gets every catalog node
    },
    "auditor": {
        "name": "Auditor",
        "description": "Read-only access to admins, roles and permissions",
        "permissions": ["user.list", "role.list", "permission.list"]
    },
}


DEFAULT_ADMINS = [
    ("admin", "Super Admin", AdminType.SUPER_ADMIN, []),
    ("testadmin", "Test Admin", AdminType.ADMIN, ["auditor"]),
]


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create the default catalog.

    Parents are listed before their children, so each parent id is known by
    the time a child is created.

    Returns:
        Dictionary mapping permission keys to Permission objects
    """
    log.info("Creating default permissions...")
    permissions_map: dict[str, Permission] = {}

    for key, name, type_, parent_key, path, method, order in DEFAULT_PERMISSIONS:
        result = await db.execute(select(Permission).where(Permission.key == key))
        existing = result.scalars().first()

        if existing:
            log.debug("Permission '%s' already exists, skipping", key)
            permissions_map[key] = existing
            continue

        parent = permissions_map.get(parent_key) if parent_key else None
        permission = Permission(
            key=key,
            name=name,
            type=type_,
            parent_id=parent.id if parent else None,
            path=path,
            method=method,
            order=order,
        )
        db.add(permission)
        await db.flush()
        permissions_map[key] = permission
        log.info("Created permission: %s", key)

    await db.commit()
    log.info("Seeded %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]) -> dict[str, Role]:
    """
    Create default roles and assign permissions.

    Args:
        db: Database session
        permissions_map: Dictionary of permission key -> Permission object
    """
    log.info("Creating default roles...")
    roles_map: dict[str, Role] = {}

    for code, role_config in DEFAULT_ROLES.items():
        result = await db.execute(select(Role).where(Role.code == code))
        existing = result.scalars().first()

        if existing:
            log.debug("Role '%s' already exists, skipping", code)
            roles_map[code] = existing
            continue

        role = Role(code=code, name=role_config["name"], description=role_config["description"])

        if role_config["permissions"] == "ALL":
            role.permissions = list(permissions_map.values())
        else:
            granted = []
            for key in role_config["permissions"]:
                if key in permissions_map:
                    granted.append(permissions_map[key])
                else:
                    log.warning("Permission '%s' not found for role '%s'", key, code)
            role.permissions = granted

        db.add(role)
        roles_map[code] = role
        log.info("Created role '%s' with %d permissions", code, len(role.permissions))

    await db.commit()
    return roles_map


async def seed_admins(db: AsyncSession, roles_map: dict[str, Role]):
    log.info("Creating default admins...")

    for account, name, admin_type, role_codes in DEFAULT_ADMINS:
        result = await db.execute(select(Admin).where(Admin.account == account))
        if result.scalars().first():
            log.debug("Admin '%s' already exists, skipping", account)
            continue

        admin = Admin(account=account, name=name, type=admin_type)
        admin.roles = [roles_map[code] for code in role_codes if code in roles_map]
        db.add(admin)
        log.info("Created admin '%s' (%s)", account, admin_type.value)

    await db.commit()


async def main():
    """Main function to seed the catalog, roles and admins."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            permissions_map = await seed_permissions(db)
            roles_map = await seed_roles(db, permissions_map)
            await seed_admins(db, roles_map)

            log.info("Permission seeding completed successfully!")
            for code, role_config in DEFAULT_ROLES.items():
                log.info("  - %s: %s", code, role_config["description"])

        except Exception as e:
            log.error("Error seeding permissions: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
