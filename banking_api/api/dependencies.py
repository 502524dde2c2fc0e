"""
Authentication and authorization dependencies

Every protected route depends on ``require_permission``; the token is
validated before the route body runs, so an authentication failure never
reaches account data.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..errors import ForbiddenError, UnauthenticatedError
from ..system import BankingSystem
from ..tokens import Identity
from ..users import Permission, role_has_permission


security = HTTPBearer(auto_error=False)


def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> Identity:
    """Dependency that validates the bearer token and returns the caller"""
    if not credentials or not credentials.credentials:
        raise UnauthenticatedError("Missing bearer token")
    return system.token_service.validate(credentials.credentials)


def require_permission(permission: Permission):
    """Dependency factory for permission checking"""
    def check(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not role_has_permission(identity.role, permission):
            raise ForbiddenError(
                f"Role {identity.role.value} may not {permission.value.replace('_', ' ')}"
            )
        return identity
    return check
