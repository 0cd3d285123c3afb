"""
FastAPI dependencies for authentication and authorization.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.features.users.auth import verify_jwt_token, principal_from_payload
from app.features.users.models import UserRole
from app.features.users.schemas import Principal
from app.utils import get_logger


log = get_logger(__name__)

# auto_error=False so a missing header is reported as 401 rather than 403
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)]
) -> Principal:
    """
    Resolve the caller from the Authorization header.
    
    Usage:
        @router.get("/me")
        async def get_me(principal: Principal = Depends(get_current_principal)):
            return principal
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    payload = verify_jwt_token(credentials.credentials)
    return principal_from_payload(payload)


def require_role(*roles: UserRole):
    """
    FastAPI dependency factory restricting a route to the given roles.
    
    Usage:
        @router.put("/{organization_id}")
        async def update(principal: Principal = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    async def role_dependency(
        principal: Annotated[Principal, Depends(get_current_principal)]
    ) -> Principal:
        if principal.role not in roles:
            log.warning("Principal %s with role %s denied, requires %s",
                        principal.id, principal.role.value, [r.value for r in roles])
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return principal
    
    return role_dependency


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
