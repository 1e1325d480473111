"""
FastAPI dependencies for admin authentication.

Tokens are issued by the auth service; here we only verify them and load
the admin they name. Every failure is an authentication failure (401),
never a 403.
"""
from typing import Annotated, Optional
import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.errors import AuthenticationError
from app.features.admins.models import Admin
from app.utils import get_logger


log = get_logger(__name__)
security = HTTPBearer(auto_error=False)


def verify_access_token(token: str) -> dict:
    """
    Verify a bearer token and return its payload.

    Raises:
        AuthenticationError: If the token is expired, malformed or unsigned
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {e}")


async def get_current_admin(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Admin:
    """
    Get the current authenticated admin from the bearer token.

    Usage:
        @router.get("/me")
        async def get_me(admin: Admin = Depends(get_current_admin)):
            return admin
    """
    if credentials is None:
        raise AuthenticationError("Authentication required")

    payload = verify_access_token(credentials.credentials)
    admin_id = payload.get("sub")
    if not admin_id:
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(select(Admin).where(Admin.id == admin_id))
    admin = result.scalar_one_or_none()

    if admin is None:
        raise AuthenticationError("Admin not found")
    if not admin.is_active:
        log.info("Rejected token for inactive admin %s", admin.account)
        raise AuthenticationError("Admin account is deactivated")

    return admin


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
