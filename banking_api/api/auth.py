"""
Login endpoint
"""

from fastapi import APIRouter, Depends

from .dependencies import get_banking_system
from .schemas import LoginRequest, TokenResponse
from ..system import BankingSystem


router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate a user and return a session token"""
    issued = system.login(request.username, request.password)
    return TokenResponse(token=issued.token, expires_at=issued.expires_at)
