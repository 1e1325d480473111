"""
Pytest fixtures for the RBAC backend.

Provides:
- An in-memory SQLite database shared by the test and the app under test
- A fresh permission cache per test
- A seeded catalog with roles and admins
- Bearer token helpers
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core import config
from app.core.cache import TTLCache
from app.core.database.engine import get_db, init_db
from app.features.admins.models import Admin, AdminStatus, AdminType
from app.features.permissions.cache import PermissionCache
from app.features.permissions.dependencies import get_permission_cache
from app.features.permissions.models import Permission, PermissionType, Role
from app.main import app


MENU = PermissionType.MENU
PAGE = PermissionType.PAGE
API = PermissionType.API
ACTION = PermissionType.ACTION

# (key, name, type, parent key, order)
CATALOG = [
    ("system", "System", MENU, None, 1),
    ("user", "Admins", PAGE, "system", 1),
    ("user.list", "List admins", API, "user", 1),
    ("user.assign_role", "Assign roles", ACTION, "user", 2),
    ("role", "Roles", PAGE, "system", 2),
    ("role.list", "List roles", API, "role", 1),
    ("role.create", "Create role", ACTION, "role", 2),
    ("role.update", "Update role", ACTION, "role", 3),
    ("role.delete", "Delete role", ACTION, "role", 4),
    ("permission", "Permissions", PAGE, "system", 3),
    ("permission.list", "List permissions", API, "permission", 1),
    ("permission.create", "Create permission", ACTION, "permission", 2),
    ("permission.update", "Update permission", ACTION, "permission", 3),
    ("permission.delete", "Delete permission", ACTION, "permission", 4),
    ("permission.assign", "Assign permissions", ACTION, "permission", 5),
]


@pytest_asyncio.fixture
async def engine():
    """One in-memory database per test; StaticPool keeps it on one connection."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def permission_cache():
    return PermissionCache(TTLCache())


@pytest_asyncio.fixture
async def client(session_factory, permission_cache):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_permission_cache] = lambda: permission_cache
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


async def seed_catalog(session: AsyncSession) -> Dict[str, Permission]:
    permissions: Dict[str, Permission] = {}
    for key, name, type_, parent_key, order in CATALOG:
        permission = Permission(
            key=key,
            name=name,
            type=type_,
            parent_id=permissions[parent_key].id if parent_key else None,
            order=order,
        )
        session.add(permission)
        await session.flush()
        permissions[key] = permission
    await session.commit()
    return permissions


@pytest_asyncio.fixture
async def seeded(session_factory):
    """
    Catalog plus:
    - ``root``: super admin, no roles
    - ``viewer``: role ``auditor`` (the three list permissions)
    - ``manager``: role ``role_manager`` (role.*, permission.list, permission.assign)
    - ``nobody``: admin without roles
    - ``inactive``: deactivated admin holding ``auditor``
    """
    async with session_factory() as session:
        permissions = await seed_catalog(session)

        auditor = Role(code="auditor", name="Auditor")
        auditor.permissions = [permissions[k] for k in ("user.list", "role.list", "permission.list")]
        role_manager = Role(code="role_manager", name="Role Manager")
        role_manager.permissions = [
            permissions[k]
            for k in ("role.list", "role.create", "role.update", "role.delete", "permission.list", "permission.assign")
        ]
        session.add_all([auditor, role_manager])
        await session.flush()

        root = Admin(account="root", type=AdminType.SUPER_ADMIN)
        viewer = Admin(account="viewer")
        viewer.roles = [auditor]
        manager = Admin(account="manager")
        manager.roles = [role_manager]
        nobody = Admin(account="nobody")
        inactive = Admin(account="inactive", status=AdminStatus.INACTIVE)
        inactive.roles = [auditor]
        session.add_all([root, viewer, manager, nobody, inactive])
        await session.commit()

        return SimpleNamespace(
            permissions={key: p.id for key, p in permissions.items()},
            roles={"auditor": auditor.id, "role_manager": role_manager.id},
            admins={
                "root": root.id,
                "viewer": viewer.id,
                "manager": manager.id,
                "nobody": nobody.id,
                "inactive": inactive.id,
            },
        )


def make_token(admin_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    payload = {"sub": admin_id, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def auth(admin_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(admin_id)}"}
