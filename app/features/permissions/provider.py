"""
Role/permission data provider.

The resolver only talks to the store through ``PermissionDataProvider``.
``SQLAlchemyPermissionProvider`` is the production implementation over an
``AsyncSession``; tests may substitute an in-memory one.
"""
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.admins.models import Admin
from app.features.permissions.models import (
    Permission,
    PermissionType,
    Role,
    admin_roles,
    role_permissions,
)
from app.features.permissions.schemas import PermissionNode, RoleSummary


class PrincipalRecord(Protocol):
    id: str
    account: str

    @property
    def is_superadmin(self) -> bool: ...


class PermissionDataProvider(Protocol):
    """Read-side collaborator of the resolution engine."""

    async def find_principal_by_id(self, principal_id: str) -> Optional[PrincipalRecord]:
        ...

    async def find_roles_for_principal(self, principal_id: str) -> List[RoleSummary]:
        """Enabled roles assigned to the principal."""
        ...

    async def find_permissions_for_role(self, role_id: str) -> List[PermissionNode]:
        """Enabled permissions assigned to the role."""
        ...

    async def find_permission_by_id(self, permission_id: str) -> Optional[PermissionNode]:
        ...

    async def list_permissions(
        self,
        enabled_only: bool = True,
        types: Optional[Iterable[PermissionType]] = None,
    ) -> List[PermissionNode]:
        """Catalog nodes ordered by (order, created_at)."""
        ...


class SQLAlchemyPermissionProvider:
    """Provider backed by the async ORM session of the current request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_principal_by_id(self, principal_id: str) -> Optional[Admin]:
        result = await self.db.execute(select(Admin).where(Admin.id == principal_id))
        return result.scalar_one_or_none()

    async def find_roles_for_principal(self, principal_id: str) -> List[RoleSummary]:
        stmt = (
            select(Role)
            .join(admin_roles, admin_roles.c.role_id == Role.id)
            .where(admin_roles.c.admin_id == principal_id, Role.status.is_(True))
            .order_by(Role.created_at, Role.id)
        )
        result = await self.db.execute(stmt)
        return [RoleSummary.model_validate(role) for role in result.scalars().all()]

    async def find_permissions_for_role(self, role_id: str) -> List[PermissionNode]:
        stmt = (
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(role_permissions.c.role_id == role_id, Permission.enabled.is_(True))
            .order_by(Permission.order, Permission.created_at, Permission.id)
        )
        result = await self.db.execute(stmt)
        return [PermissionNode.model_validate(p) for p in result.scalars().all()]

    async def find_permission_by_id(self, permission_id: str) -> Optional[PermissionNode]:
        result = await self.db.execute(select(Permission).where(Permission.id == permission_id))
        permission = result.scalar_one_or_none()
        return PermissionNode.model_validate(permission) if permission else None

    async def list_permissions(
        self,
        enabled_only: bool = True,
        types: Optional[Iterable[PermissionType]] = None,
    ) -> List[PermissionNode]:
        stmt = select(Permission)
        if enabled_only:
            stmt = stmt.where(Permission.enabled.is_(True))
        if types is not None:
            stmt = stmt.where(Permission.type.in_(list(types)))
        stmt = stmt.order_by(Permission.order, Permission.created_at, Permission.id)
        result = await self.db.execute(stmt)
        return [PermissionNode.model_validate(p) for p in result.scalars().all()]
