"""
Pydantic schemas for admins.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.features.admins.models import AdminStatus, AdminType
from app.features.permissions.schemas import RoleSummary


class AdminResponse(BaseModel):
    """Admin account with its assigned roles (enabled or not)."""
    id: str
    account: str
    name: Optional[str] = None
    type: AdminType
    status: AdminStatus
    roles: List[RoleSummary] = []
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminUpdate(BaseModel):
    account: Optional[str] = Field(None, min_length=1, max_length=100)
    name: Optional[str] = Field(None, max_length=255)
    type: Optional[AdminType] = None
    status: Optional[AdminStatus] = None


class AdminBatchStatusUpdate(BaseModel):
    """Activate or deactivate many admins. SUPER_ADMIN accounts are skipped."""
    ids: List[str] = Field(..., min_length=1)
    status: AdminStatus
