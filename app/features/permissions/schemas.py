"""
Pydantic schemas for permission management.

Besides request/response models this module defines the engine's value
types: ``PermissionNode`` (a catalog row projection), ``PermissionTreeNode``
(a node in a built forest) and ``ResolvedPermissions`` (an admin's effective
access).
"""
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.permissions.models import PermissionType


# Marker granting every permission key
WILDCARD = "*"


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionNode(BaseModel):
    """Projection of a catalog row used by the tree builder and resolver."""
    id: str
    key: str
    name: str
    type: PermissionType
    parent_id: Optional[str] = None
    path: Optional[str] = None
    method: Optional[str] = None
    order: int = 0
    enabled: bool = True

    model_config = ConfigDict(from_attributes=True)


class PermissionTreeNode(PermissionNode):
    """A node of a built permission forest."""
    children: List["PermissionTreeNode"] = []
    is_orphaned: bool = False

    model_config = ConfigDict(from_attributes=True)


class PermissionBase(BaseModel):
    """Base permission schema."""
    key: str = Field(..., min_length=1, max_length=100, description="Unique dot-namespaced key, e.g. 'user.list'")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    type: PermissionType
    parent_id: Optional[str] = Field(None, description="Parent permission ID")
    path: Optional[str] = Field(None, max_length=255)
    method: Optional[str] = Field(None, max_length=10)
    order: int = 0
    enabled: bool = True


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator('key')
    @classmethod
    def key_format(cls, v: str) -> str:
        """Validate permission key format."""
        if not v.replace('_', '').replace('.', '').replace('-', '').isalnum():
            raise ValueError('Permission key must contain only alphanumeric characters, underscores, hyphens, and dots')
        return v

    @field_validator('method')
    @classmethod
    def method_uppercase(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class PermissionUpdate(BaseModel):
    """Schema for updating a permission. The key is immutable."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[PermissionType] = None
    parent_id: Optional[str] = None
    path: Optional[str] = Field(None, max_length=255)
    method: Optional[str] = Field(None, max_length=10)
    order: Optional[int] = None
    enabled: Optional[bool] = None


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionListResponse(BaseModel):
    """Paginated permission list."""
    items: List[PermissionResponse]
    total: int
    page: int
    page_size: int
    pages: int


class BatchStatusUpdate(BaseModel):
    """Enable or disable many records at once."""
    ids: List[str] = Field(..., min_length=1)
    enabled: bool


class BatchStatusResponse(BaseModel):
    updated: int


class PermissionKeysRequest(BaseModel):
    keys: List[str] = Field(..., min_length=1)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleSummary(BaseModel):
    """Role fields carried inside a resolved permission set."""
    id: str
    name: str
    code: str

    model_config = ConfigDict(from_attributes=True)


class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    code: str = Field(..., min_length=1, max_length=50, description="Unique role code")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")
    status: bool = True


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator('code')
    @classmethod
    def code_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role code format."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Role code must contain only alphanumeric characters, underscores, and hyphens')
        return v


class RoleUpdate(BaseModel):
    """Schema for updating a role. The code is immutable."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[bool] = None


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class RoleListResponse(BaseModel):
    """Paginated role list."""
    items: List[RoleResponse]
    total: int
    page: int
    page_size: int
    pages: int


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignPermissionsToRole(BaseModel):
    """Replace a role's permission set."""
    permission_ids: List[str] = Field(default_factory=list, description="Permission IDs")


class AssignRolesToAdmin(BaseModel):
    """Replace an admin's role set."""
    role_ids: List[str] = Field(default_factory=list, description="Role IDs")


class AddRoleToAdmin(BaseModel):
    role_id: str = Field(..., description="Role ID")


class BatchAssignRoles(BaseModel):
    """Replace the role set of several admins at once."""
    admin_ids: List[str] = Field(..., min_length=1)
    role_ids: List[str] = Field(default_factory=list)


# ============================================================================
# Resolution Schemas
# ============================================================================

class ResolvedPermissions(BaseModel):
    """
    An admin's effective access, derived from roles and never persisted.

    For a superadmin ``permission_keys`` is ``{"*"}`` and ``is_superadmin``
    is set; predicates short-circuit on the flag.
    """
    principal_id: str
    account: str
    is_superadmin: bool = False
    roles: List[RoleSummary] = []
    permissions: List[PermissionNode] = []
    permission_keys: FrozenSet[str] = frozenset()
    menus: List[PermissionTreeNode] = []

    @property
    def role_codes(self) -> FrozenSet[str]:
        return frozenset(role.code for role in self.roles)


class PermissionCheckRequest(BaseModel):
    """Schema for checking one permission key."""
    permission: str = Field(..., min_length=1)


class PermissionsCheckRequest(BaseModel):
    """Schema for checking several permission keys."""
    permissions: List[str] = Field(default_factory=list)


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    reason: Optional[str] = None


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    admin_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int


PermissionTreeNode.model_rebuild()
