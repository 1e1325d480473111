"""
Admin model with ULID primary keys.
"""
import enum
from datetime import datetime
from sqlalchemy import DateTime, String, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.permissions.models import admin_roles


class AdminType(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"


class AdminStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Admin(Base, TimestampMixin):
    """
    Admin account: the principal whose access is evaluated.
    
    SUPER_ADMIN accounts bypass every permission and role check.
    """
    __tablename__ = "admins"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    account: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    type: Mapped[AdminType] = mapped_column(Enum(AdminType), default=AdminType.ADMIN, nullable=False)
    status: Mapped[AdminStatus] = mapped_column(Enum(AdminStatus), default=AdminStatus.ACTIVE, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    roles: Mapped[list["Role"]] = relationship(  # type: ignore
        "Role",
        secondary=admin_roles,
        lazy="selectin"
    )
    
    @property
    def is_superadmin(self) -> bool:
        return self.type == AdminType.SUPER_ADMIN
    
    @property
    def is_active(self) -> bool:
        return self.status == AdminStatus.ACTIVE
    
    def __repr__(self) -> str:
        return f"<Admin(id={self.id}, account={self.account!r}, type={self.type})>"
