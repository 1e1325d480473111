"""
Admin account, role assignment and permission inspection routes.
"""
from typing import List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import NotFoundError
from app.features.admins import service
from app.features.admins.models import Admin
from app.features.admins.schemas import AdminBatchStatusUpdate, AdminResponse, AdminUpdate
from app.features.permissions.cache import PermissionCache
from app.features.permissions.dependencies import (
    client_info,
    create_audit_log,
    get_permission_cache,
    get_resolved_permissions,
    get_resolver,
    require_permission,
)
from app.features.permissions.predicates import has_all_permissions, has_any_permission
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import (
    AddRoleToAdmin,
    AssignRolesToAdmin,
    BatchAssignRoles,
    BatchStatusResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionsCheckRequest,
    PermissionTreeNode,
    ResolvedPermissions,
    RoleSummary,
)


router = APIRouter()


async def _resolve_or_404(resolver: PermissionResolver, admin_id: str) -> ResolvedPermissions:
    resolved = await resolver.resolve(admin_id)
    if resolved is None:
        raise NotFoundError(f"Admin {admin_id} not found")
    return resolved


# ============================================================================
# Current Admin
# ============================================================================

@router.get("/me/permissions", response_model=ResolvedPermissions)
async def get_my_permissions(
    resolved: ResolvedPermissions = Depends(get_resolved_permissions)
):
    """
    The caller's resolved permissions.

    The admin panel fetches this once after login and gates its UI with it.
    """
    return resolved


# ============================================================================
# Admin Queries
# ============================================================================

@router.get("", response_model=List[AdminResponse])
async def list_admins(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    result = await db.execute(select(Admin).order_by(Admin.account).offset(skip).limit(limit))
    return result.scalars().all()


@router.get("/by-role/{role_code}", response_model=List[AdminResponse])
async def get_admins_by_role(
    role_code: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    return await service.get_admins_by_role(db, role_code)


@router.get("/by-permission/{permission_key}", response_model=List[AdminResponse])
async def get_admins_by_permission(
    permission_key: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    return await service.get_admins_by_permission(db, permission_key)


@router.get("/{admin_id}", response_model=AdminResponse)
async def get_admin(
    admin_id: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    return await service.get_admin(db, admin_id)


@router.get("/{admin_id}/roles", response_model=List[RoleSummary])
async def get_admin_roles(
    admin_id: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    """Enabled roles held by the admin."""
    return await service.get_admin_roles(db, admin_id)


@router.get("/{admin_id}/permissions", response_model=ResolvedPermissions)
async def get_admin_permissions(
    admin_id: str,
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    return await _resolve_or_404(resolver, admin_id)


@router.get("/{admin_id}/menu-permissions", response_model=List[PermissionTreeNode])
async def get_admin_menu_permissions(
    admin_id: str,
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    resolved = await _resolve_or_404(resolver, admin_id)
    return resolved.menus


# ============================================================================
# Permission Checks
# ============================================================================

@router.post("/{admin_id}/check-permission", response_model=PermissionCheckResponse)
async def check_admin_permission(
    admin_id: str,
    body: PermissionCheckRequest,
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    await _resolve_or_404(resolver, admin_id)
    granted = await resolver.check_permission(admin_id, body.permission)
    return PermissionCheckResponse(
        has_permission=granted,
        reason=None if granted else f"Missing permission {body.permission}"
    )


@router.post("/{admin_id}/check-any", response_model=PermissionCheckResponse)
async def check_admin_any_permission(
    admin_id: str,
    body: PermissionsCheckRequest,
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    resolved = await _resolve_or_404(resolver, admin_id)
    granted = has_any_permission(resolved, body.permissions)
    return PermissionCheckResponse(
        has_permission=granted,
        reason=None if granted else "None of the permissions are granted"
    )


@router.post("/{admin_id}/check-all", response_model=PermissionCheckResponse)
async def check_admin_all_permissions(
    admin_id: str,
    body: PermissionsCheckRequest,
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("user.list"))
):
    resolved = await _resolve_or_404(resolver, admin_id)
    granted = has_all_permissions(resolved, body.permissions)
    return PermissionCheckResponse(
        has_permission=granted,
        reason=None if granted else "Not all permissions are granted"
    )


# ============================================================================
# Admin Updates
# ============================================================================

@router.post("/batch-status", response_model=BatchStatusResponse)
async def batch_update_admin_status(
    body: AdminBatchStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("user.update"))
):
    """Activate or deactivate many admins. SUPER_ADMIN accounts are not touched."""
    updated = await service.batch_update_admin_status(db, cache, body.ids, body.status)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="batch_update_status",
        resource_type="admin",
        details={"ids": body.ids, "status": body.status.value, "updated": updated},
        **client_info(request)
    )
    return BatchStatusResponse(updated=updated)


@router.put("/{admin_id}", response_model=AdminResponse)
async def update_admin(
    admin_id: str,
    admin_data: AdminUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("user.update"))
):
    admin = await service.update_admin(db, cache, admin_id, admin_data)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="update",
        resource_type="admin",
        resource_id=admin_id,
        details=admin_data.model_dump(exclude_unset=True, mode="json"),
        **client_info(request)
    )
    return admin


# ============================================================================
# Role Assignment
# ============================================================================

@router.post("/batch-assign-roles", response_model=List[AdminResponse])
async def batch_assign_roles(
    body: BatchAssignRoles,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("user.assign_role"))
):
    """Replace the role set of several admins."""
    admins = await service.batch_assign_roles(db, cache, body.admin_ids, body.role_ids)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="batch_assign_roles",
        resource_type="admin",
        details={"admin_ids": body.admin_ids, "role_ids": body.role_ids},
        **client_info(request)
    )
    return admins


@router.put("/{admin_id}/roles", response_model=AdminResponse)
async def assign_roles_to_admin(
    admin_id: str,
    assignment: AssignRolesToAdmin,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("user.assign_role"))
):
    """Replace the admin's role set."""
    admin = await service.assign_roles_to_admin(db, cache, admin_id, assignment.role_ids)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="assign_roles",
        resource_type="admin",
        resource_id=admin_id,
        details={"role_ids": assignment.role_ids},
        **client_info(request)
    )
    return admin


@router.post("/{admin_id}/roles", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
async def add_admin_role(
    admin_id: str,
    body: AddRoleToAdmin,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("user.assign_role"))
):
    admin = await service.add_admin_role(db, cache, admin_id, body.role_id)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="add_role",
        resource_type="admin",
        resource_id=admin_id,
        details={"role_id": body.role_id},
        **client_info(request)
    )
    return admin


@router.delete("/{admin_id}/roles/{role_id}", response_model=AdminResponse)
async def remove_admin_role(
    admin_id: str,
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("user.assign_role"))
):
    admin = await service.remove_admin_role(db, cache, admin_id, role_id)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="remove_role",
        resource_type="admin",
        resource_id=admin_id,
        details={"role_id": role_id},
        **client_info(request)
    )
    return admin
