"""
Permission catalog API routes.

Provides endpoints for managing the permission catalog, its trees, and the
audit log.
"""
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import NotFoundError
from app.features.permissions import service
from app.features.permissions.cache import PermissionCache
from app.features.permissions.dependencies import (
    client_info,
    create_audit_log,
    get_permission_cache,
    get_resolver,
    require_permission,
)
from app.features.permissions.models import AuditLog, PermissionType
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    BatchStatusResponse,
    BatchStatusUpdate,
    PermissionCreate,
    PermissionKeysRequest,
    PermissionListResponse,
    PermissionResponse,
    PermissionTreeNode,
    PermissionUpdate,
    ResolvedPermissions,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Catalog Queries
# ============================================================================

@router.get("", response_model=PermissionListResponse)
async def list_permissions(
    type: Optional[PermissionType] = None,
    enabled: Optional[bool] = None,
    parent_id: Optional[str] = None,
    keyword: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    """List permissions with optional filtering."""
    return await service.list_permissions(
        db, type=type, enabled=enabled, parent_id=parent_id, keyword=keyword, page=page, page_size=page_size
    )


@router.get("/tree", response_model=List[PermissionTreeNode])
async def get_permission_tree(
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    """Tree of every enabled permission."""
    return await resolver.get_permission_tree()


@router.get("/menu", response_model=List[PermissionTreeNode])
async def get_menu_tree(
    resolver: PermissionResolver = Depends(get_resolver),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    """Tree of every enabled MENU and PAGE permission."""
    return await resolver.get_menu_tree()


@router.get("/key/{key}", response_model=PermissionResponse)
async def get_permission_by_key(
    key: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    permission = await service.get_permission_by_key(db, key)
    if permission is None:
        raise NotFoundError(f"Permission '{key}' not found")
    return permission


@router.post("/keys", response_model=List[PermissionResponse])
async def get_permissions_by_keys(
    body: PermissionKeysRequest,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    """Enabled permissions matching the given keys; unknown keys are skipped."""
    return await service.get_permissions_by_keys(db, body.keys)


@router.get("/cache/stats")
async def get_cache_stats(
    cache: PermissionCache = Depends(get_permission_cache),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
) -> Dict[str, int]:
    return cache.stats()


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    skip: int = 0,
    limit: int = 50,
    admin_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    """List audit logs with optional filtering."""
    stmt = select(AuditLog)

    if admin_id:
        stmt = stmt.where(AuditLog.admin_id == admin_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    entries = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in entries],
        total=total,
        page=page,
        page_size=limit,
        pages=pages
    )


# ============================================================================
# Catalog Mutations
# ============================================================================

@router.post("", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("permission.create"))
):
    db_permission = await service.create_permission(db, cache, permission)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="create",
        resource_type="permission",
        resource_id=db_permission.id,
        details=permission.model_dump(mode="json"),
        **client_info(request)
    )
    return db_permission


@router.post("/batch-status", response_model=BatchStatusResponse)
async def batch_update_permission_status(
    body: BatchStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("permission.update"))
):
    updated = await service.batch_update_permission_status(db, cache, body.ids, body.enabled)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="batch_status",
        resource_type="permission",
        details={"ids": body.ids, "enabled": body.enabled, "updated": updated},
        **client_info(request)
    )
    return BatchStatusResponse(updated=updated)


@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    return await service.get_permission(db, permission_id)


@router.get("/{permission_id}/descendants", response_model=List[PermissionResponse])
async def get_permission_descendants(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    _: ResolvedPermissions = Depends(require_permission("permission.list"))
):
    return await service.get_permission_descendants(db, permission_id)


@router.put("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_update: PermissionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("permission.update"))
):
    db_permission = await service.update_permission(db, cache, permission_id, permission_update)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="update",
        resource_type="permission",
        resource_id=permission_id,
        details=permission_update.model_dump(mode="json", exclude_unset=True),
        **client_info(request)
    )
    return db_permission


@router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
    resolved: ResolvedPermissions = Depends(require_permission("permission.delete"))
):
    deleted = await service.delete_permission(db, cache, permission_id)
    await create_audit_log(
        db,
        admin_id=resolved.principal_id,
        action="delete",
        resource_type="permission",
        resource_id=permission_id,
        details={"key": deleted.key},
        **client_info(request)
    )
    return None
