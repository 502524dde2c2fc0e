"""
Transfer and statement endpoints
"""

from typing import List

from fastapi import APIRouter, Depends

from .dependencies import get_banking_system, require_permission
from .schemas import StatementLineResponse, TransferRequest, TransferResponse
from ..system import BankingSystem
from ..tokens import Identity
from ..users import Permission


router = APIRouter()


@router.post("/transfer", response_model=TransferResponse)
def transfer(
    request: TransferRequest,
    identity: Identity = Depends(require_permission(Permission.TRANSFER_FUNDS)),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transfer funds between two accounts"""
    entry = system.transfer_engine.transfer(
        source_account_number=request.from_account_number,
        destination_account_number=request.to_account_number,
        amount=request.amount,
        description=request.description,
        initiated_by=identity.username
    )
    return TransferResponse.from_entry(entry)


@router.get("/statement", response_model=List[StatementLineResponse])
def statement(
    identity: Identity = Depends(require_permission(Permission.VIEW_OWN_STATEMENT)),
    system: BankingSystem = Depends(get_banking_system)
):
    """Statement of the caller's own account, oldest first"""
    lines = system.statement_service.statement_for_user(identity.username)
    return [StatementLineResponse.from_line(line) for line in lines]
