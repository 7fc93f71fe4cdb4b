"""API Dependencies"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from uuid import UUID

from rental_ledger.database import get_db  # noqa: F401
from rental_ledger.core.security import decode_token
from rental_ledger.models.enums import UserRole

# Security scheme for bearer token
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller as described by the access token"""
    id: UUID
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_any_role(self, *roles: UserRole) -> bool:
        return any(role.value in self.roles for role in roles)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """
    Get current authenticated user from JWT token.

    Args:
        credentials: HTTP authorization credentials

    Returns:
        Current user with the roles carried by the token

    Raises:
        HTTPException: If the token is missing or invalid
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    # Decode token
    payload = decode_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Could not validate credentials")

    # Check token type
    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    # Get user ID from token
    user_id_str: Optional[str] = payload.get("sub")
    if not user_id_str:
        raise _unauthorized("Could not validate credentials")

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _unauthorized("Invalid user ID")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]

    return CurrentUser(id=user_id, roles=frozenset(str(role).upper() for role in roles))


def require_roles(*roles: UserRole):
    """
    Build a dependency that admits callers holding any of ``roles``.

    Example:
        ```python
        @router.post("/generate")
        async def generate(current_user: CurrentUser = Depends(require_roles(UserRole.ADMIN))):
            ...
        ```
    """

    async def checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not current_user.has_any_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return current_user

    return checker


require_admin = require_roles(UserRole.ADMIN)
require_operator = require_roles(UserRole.ADMIN, UserRole.OPER)
