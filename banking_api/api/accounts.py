"""
Account management endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_banking_system, require_permission
from .schemas import AccountResponse, CreateAccountRequest
from ..errors import AccountNotFoundError, UserNotFoundError
from ..system import BankingSystem
from ..tokens import Identity
from ..users import Permission


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=AccountResponse)
def create_account(
    request: CreateAccountRequest,
    identity: Identity = Depends(require_permission(Permission.CREATE_ACCOUNT)),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open an account for an existing user"""
    if system.user_manager.find_by_username(request.username) is None:
        raise UserNotFoundError(f"User {request.username} does not exist")

    try:
        account = system.account_manager.create_account(
            owner_username=request.username,
            holder_name=request.holder_name,
            tax_id=request.tax_id,
            account_number=request.account_number,
            initial_balance=request.balance,
            created_by=identity.username
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return AccountResponse.from_account(account)


@router.get("", response_model=List[AccountResponse])
def list_accounts(
    identity: Identity = Depends(require_permission(Permission.LIST_ACCOUNTS)),
    system: BankingSystem = Depends(get_banking_system)
):
    """List all accounts"""
    return [AccountResponse.from_account(a) for a in system.account_manager.list_accounts()]


@router.get("/me", response_model=AccountResponse)
def get_my_account(
    identity: Identity = Depends(require_permission(Permission.VIEW_OWN_ACCOUNT)),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get the caller's own account"""
    account = system.account_manager.get_account_by_owner(identity.username)
    if account is None:
        raise AccountNotFoundError(f"owned by {identity.username}")
    return AccountResponse.from_account(account)
