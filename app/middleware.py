import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import ACCESS_TOKEN_EXPIRE_HOURS, ALGORITHM, SECRET_KEY

logger = logging.getLogger(__name__)

ADMIN_ROLES = {"admin", "superadmin"}

security = HTTPBearer()


def verify_bearer_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Verify JWT Bearer token from Authorization header.

    Returns user context dict with: user_id, email, role_name
    """
    token = credentials.credentials

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "TOKEN_EXPIRED",
                "message": "Your session has expired. Please log in again.",
            },
        )
    except jwt.InvalidTokenError as e:
        logger.error(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "INVALID_TOKEN",
                "message": "Invalid access token",
            },
        )

    if payload.get("type") != "access" or not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "INVALID_TOKEN_TYPE",
                "message": "Invalid access token",
            },
        )

    return {
        "user_id": str(payload["user_id"]),
        "email": payload.get("email"),
        "role_name": payload.get("role_name") or "member",
    }


def require_admin(auth: dict = Depends(verify_bearer_token)) -> dict:
    """
    Dependency for staff-only endpoints.

    Usage:
        @router.post("/scan")
        def scan(auth: dict = Depends(require_admin)):
    """
    if auth.get("role_name", "").lower() not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "PERMISSION_DENIED",
                "message": "You do not have permission to perform this action.",
            },
        )
    return auth


def create_access_token(data: dict, expires_hours: int = ACCESS_TOKEN_EXPIRE_HOURS) -> str:
    """
    Create JWT access token.

    Args:
        data: dict containing user_id, email, role_name
        expires_hours: token expiration time in hours (default 24)

    Returns:
        JWT token string
    """
    to_encode = {
        "user_id": data.get("user_id"),
        "email": data.get("email"),
        "role_name": data.get("role_name", "member"),
        "exp": datetime.now(timezone.utc) + timedelta(hours=expires_hours),
        "type": "access",
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
