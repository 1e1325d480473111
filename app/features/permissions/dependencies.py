"""
Authorization gate.

Implements:
- Resolver wiring (per-request provider, process-wide cache)
- FastAPI dependencies for route protection
- ``guarded``, an explicit wrapper that gates any coroutine by a requirement
- Audit logging helper

Authentication failures (no/invalid principal) raise ``AuthenticationError``
(401); an authenticated admin lacking a permission or role gets
``AuthorizationError`` (403).
"""
import functools
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import AuthenticationError, AuthorizationError
from app.features.admins.dependencies import get_current_admin
from app.features.admins.models import Admin
from app.features.permissions.cache import PermissionCache
from app.features.permissions.models import AuditLog
from app.features.permissions.predicates import (
    MenuRequirement,
    Mode,
    Requirement,
    RoleRequirement,
    as_requirement,
    check,
    describe,
)
from app.features.permissions.provider import SQLAlchemyPermissionProvider
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import ResolvedPermissions
from app.utils import get_logger


log = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Resolver Wiring
# ============================================================================

def get_permission_cache(request: Request) -> PermissionCache:
    """The process-wide cache created at startup (see ``app.main``)."""
    return request.app.state.permission_cache


def get_resolver(
    db: AsyncSession = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
) -> PermissionResolver:
    return PermissionResolver(SQLAlchemyPermissionProvider(db), cache)


async def get_resolved_permissions(
    current_admin: Admin = Depends(get_current_admin),
    resolver: PermissionResolver = Depends(get_resolver),
) -> ResolvedPermissions:
    resolved = await resolver.resolve(current_admin.id)
    if resolved is None:
        # The admin was deleted between token lookup and resolution
        raise AuthenticationError("Admin not found")
    return resolved


# ============================================================================
# Enforcement
# ============================================================================

def enforce(resolved: Optional[ResolvedPermissions], requirement: Requirement) -> ResolvedPermissions:
    """
    Raise unless ``resolved`` satisfies ``requirement``.

    Raises:
        AuthenticationError: resolved is None
        AuthorizationError: the requirement is not met
    """
    if resolved is None:
        raise AuthenticationError("Authentication required")
    if not check(resolved, requirement):
        log.warning(
            "Permission denied: %s (%s) - required: %s",
            resolved.account, resolved.principal_id, describe(requirement),
        )
        raise AuthorizationError(f"Insufficient permissions: requires {describe(requirement)}")
    if resolved.is_superadmin:
        log.debug("Super admin access granted: %s (%s)", resolved.account, resolved.principal_id)
    else:
        log.debug(
            "Permission granted: %s (%s) - %s",
            resolved.account, resolved.principal_id, describe(requirement),
        )
    return resolved


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require(requirement: Requirement):
    """
    FastAPI dependency enforcing any requirement variant.

    Returns:
        Dependency function returning the caller's ResolvedPermissions
    """
    async def requirement_dependency(
        resolved: ResolvedPermissions = Depends(get_resolved_permissions),
    ) -> ResolvedPermissions:
        return enforce(resolved, requirement)

    return requirement_dependency


def require_permission(*keys: str, mode: Mode = "any"):
    """
    FastAPI dependency to require one or more permission keys.

    Usage:
        @router.post("/roles")
        async def create_role(
            resolved: ResolvedPermissions = Depends(require_permission("role.create"))
        ):
            ...

        # every key must be granted
        Depends(require_permission("role.update", "permission.assign", mode="all"))
    """
    return require(as_requirement(keys, mode))


def require_role(*codes: str):
    """FastAPI dependency to require any of the given role codes."""
    return require(RoleRequirement(codes))


def require_menu(key: str):
    """FastAPI dependency to require access to a menu node."""
    return require(MenuRequirement(key))


def guarded(
    requirement: Requirement,
    operation: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """
    Wrap ``operation`` so it only runs when ``requirement`` holds.

    The wrapped coroutine takes the caller's ResolvedPermissions (or None)
    as its first argument and passes it through to ``operation``.

    Usage:
        export_roles = guarded(SinglePermission("role.list"), _export_roles)
        await export_roles(resolved, fmt="csv")
    """
    @functools.wraps(operation)
    async def wrapper(resolved: Optional[ResolvedPermissions], *args: Any, **kwargs: Any) -> T:
        enforce(resolved, requirement)
        return await operation(resolved, *args, **kwargs)

    return wrapper


# ============================================================================
# Audit Logging
# ============================================================================

def client_info(request: Request) -> Dict[str, Optional[str]]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    db: AsyncSession,
    admin_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Add an audit log entry to the current transaction.

    The entry commits together with the mutation it describes.

    Args:
        db: Database session
        admin_id: Admin performing the action
        action: Action performed (e.g., "create", "update", "assign_permissions")
        resource_type: Type of resource (e.g., "role", "permission", "admin")
        resource_id: ID of the resource
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent
    """
    audit_log = AuditLog(
        admin_id=admin_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )
    db.add(audit_log)
    await db.flush()

    log.info("Audit: admin=%s action=%s resource=%s:%s", admin_id, action, resource_type, resource_id)
    return audit_log
