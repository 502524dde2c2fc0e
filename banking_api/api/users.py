"""
User management endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_banking_system, require_permission
from .schemas import CreateUserRequest, UserResponse
from ..system import BankingSystem
from ..tokens import Identity
from ..users import Permission


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
def create_user(
    request: CreateUserRequest,
    identity: Identity = Depends(require_permission(Permission.MANAGE_USERS)),
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a user with a role"""
    try:
        user = system.user_manager.create_user(
            request.username, request.password, request.role,
            created_by=identity.username
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return UserResponse(username=user.username, role=user.role)
