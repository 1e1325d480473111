"""
Permission catalog, Role, and association models for admin RBAC.

This module implements:
- A hierarchical permission catalog (MENU / PAGE / API / ACTION nodes)
- Roles bundling permissions
- Admin-role and role-permission association tables
- An audit log for mutations
"""
import enum
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import String, Integer, Boolean, ForeignKey, Table, Column, JSON, Text, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class PermissionType(str, enum.Enum):
    MENU = "MENU"
    PAGE = "PAGE"
    API = "API"
    ACTION = "ACTION"


# Types that make up the navigation tree
MENU_TYPES = frozenset({PermissionType.MENU, PermissionType.PAGE})


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

# Role-Permission relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Admin-Role relationship
admin_roles = Table(
    "admin_roles",
    Base.metadata,
    Column("admin_id", String(26), ForeignKey("admins.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    A node in the permission catalog.

    Keys are dot-namespaced and globally unique ("user.list", "role.delete").
    parent_id is a weak reference: it is not a foreign key, and a value that
    points nowhere is tolerated (the tree builder attaches such nodes at the
    root and flags them orphaned).
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[PermissionType] = mapped_column(Enum(PermissionType), nullable=False, index=True)
    parent_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    # Route binding for PAGE/API nodes
    path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    method: Mapped[str | None] = mapped_column(String(10), nullable=True)

    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, key={self.key!r}, type={self.type})>"


class Role(Base, TimestampMixin):
    """
    Role model bundling permissions.

    ``code`` is the stable external identifier used by role checks;
    ``status`` is the enabled flag (disabled roles grant nothing).
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, code={self.code!r}, status={self.status})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking RBAC mutations.

    Tracks who changed what, when, and from where.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    admin_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("admins.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, admin_id={self.admin_id}, action={self.action}, resource={self.resource_type})>"
