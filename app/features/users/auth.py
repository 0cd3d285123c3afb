"""
Bearer token verification.

Tokens are issued by the platform's identity service; this module only
checks the signature and expiry and extracts the caller's id and role.
"""
import jwt
from fastapi import HTTPException, status

from app.core import config
from app.features.users.models import UserRole
from app.features.users.schemas import Principal


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.
    
    Raises:
        HTTPException: 401 if token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def principal_from_payload(payload: dict) -> Principal:
    """
    Build a Principal from token claims.
    
    Accepts either ``sub`` or ``id`` for the caller id.
    """
    principal_id = payload.get("sub") or payload.get("id")
    role = payload.get("role")
    
    if not principal_id or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    
    try:
        return Principal(id=str(principal_id), role=UserRole(str(role).upper()))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {role}",
        )
