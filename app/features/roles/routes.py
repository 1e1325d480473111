"""
Role management API routes.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.cache import PermissionCache
from app.features.permissions.dependencies import (
    client_info,
    create_audit_log,
    get_permission_cache,
    get_resolver,
    require_permission,
)
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import (
    AssignPermissionsToRole,
    BatchStatusResponse,
    BatchStatusUpdate,
    PermissionNode,
    ResolvedPermissions,
    RoleCreate,
    RoleListResponse,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
)
from app.features.roles import service


router = APIRouter()


@router.get("", response_model=RoleListResponse)
async def list_roles(
    keyword: Optional[str] = None,
    enabled: Optional[bool] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("role.list"))
):
    """List roles with optional filtering."""
    return await service.list_roles(db, keyword=keyword, status=enabled, page=page, page_size=page_size)


@router.get("/available", response_model=List[RoleResponse])
async def get_available_roles(
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("role.list", "user.assign_role"))
):
    """Enabled roles that can be assigned to admins."""
    return await service.get_available_roles(db)


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    resolved: ResolvedPermissions = Depends(require_permission("role.create"))
):
    db_role = await service.create_role(db, role)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="create",
        resource_type="role",
        resource_id=db_role.id,
        details=role.model_dump(mode="json"),
        **client_info(request)
    )
    return db_role


@router.post("/batch-status", response_model=BatchStatusResponse)
async def batch_update_role_status(
    body: BatchStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("role.update"))
):
    updated = await service.batch_update_role_status(db, cache, body.ids, body.enabled)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="batch_status",
        resource_type="role",
        details={"ids": body.ids, "status": body.enabled, "updated": updated},
        **client_info(request)
    )
    return BatchStatusResponse(updated=updated)


@router.get("/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("role.list"))
):
    """Get a role with its permissions."""
    return await service.get_role(db, role_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("role.update"))
):
    db_role = await service.update_role(db, cache, role_id, role_update)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="update",
        resource_type="role",
        resource_id=role_id,
        details=role_update.model_dump(mode="json", exclude_unset=True),
        **client_info(request)
    )
    return db_role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("role.delete"))
):
    deleted = await service.delete_role(db, cache, role_id)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="delete",
        resource_type="role",
        resource_id=role_id,
        details={"code": deleted.code, "name": deleted.name},
        **client_info(request)
    )
    return None


@router.get("/{role_id}/permissions", response_model=List[PermissionNode])
async def get_role_permissions(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("role.list"))
):
    """Enabled permissions granted by the role."""
    await service.get_role(db, role_id)
    return await resolver.get_role_permissions(role_id)


@router.put("/{role_id}/permissions", response_model=RoleWithPermissions)
async def assign_permissions_to_role(
    role_id: str,
    assignment: AssignPermissionsToRole,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("permission.assign"))
):
    """Replace the role's permission set."""
    db_role = await service.assign_permissions_to_role(db, cache, role_id, assignment.permission_ids)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="assign_permissions",
        resource_type="role",
        resource_id=role_id,
        details={"permission_ids": assignment.permission_ids},
        **client_info(request)
    )
    return db_role
