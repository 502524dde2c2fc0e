"""
Error Taxonomy

Every failure surfaced to a caller maps to a stable error code, a
human-readable message and an HTTP status. Retryable errors are the
mechanical ones (write contention, storage timeouts).
"""

from typing import Any, Dict, Optional


class BankingError(Exception):
    """Base exception for all banking errors"""
    code = "BANKING_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Banking operation failed"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class InvalidAmountError(BankingError):
    """Amount is not a finite, positive, currency-safe decimal"""
    code = "INVALID_AMOUNT"
    status_code = 400

    def default_message(self) -> str:
        return "Amount must be a positive decimal value"


class AccountNotFoundError(BankingError):
    """An account referenced by number does not exist"""
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404

    def __init__(self, account_number: str, side: Optional[str] = None):
        self.account_number = account_number
        self.side = side
        if side:
            message = f"{side.capitalize()} account {account_number} not found"
        else:
            message = f"Account {account_number} not found"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.side:
            result["side"] = self.side
        return result


class InsufficientFundsError(BankingError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 422

    def default_message(self) -> str:
        return "Insufficient funds in source account"


class ConflictError(BankingError):
    """A concurrent write changed a balance between read and commit"""
    code = "CONFLICT"
    status_code = 409
    retryable = True

    def default_message(self) -> str:
        return "Concurrent update detected, please retry"


class UnavailableError(BankingError):
    """Storage did not respond in time"""
    code = "UNAVAILABLE"
    status_code = 503
    retryable = True

    def default_message(self) -> str:
        return "Service temporarily unavailable, please retry"


class InvalidSignatureError(BankingError):
    code = "INVALID_SIGNATURE"
    status_code = 401

    def default_message(self) -> str:
        return "Invalid token"


class TokenExpiredError(BankingError):
    code = "TOKEN_EXPIRED"
    status_code = 401

    def default_message(self) -> str:
        return "Token expired"


class UnauthenticatedError(BankingError):
    code = "UNAUTHENTICATED"
    status_code = 401

    def default_message(self) -> str:
        return "Not authenticated"


class ForbiddenError(BankingError):
    code = "FORBIDDEN"
    status_code = 403

    def default_message(self) -> str:
        return "Insufficient permissions"


class DuplicateUserError(BankingError):
    code = "DUPLICATE_USER"
    status_code = 409


class DuplicateAccountError(BankingError):
    code = "DUPLICATE_ACCOUNT"
    status_code = 409


class UserNotFoundError(BankingError):
    code = "USER_NOT_FOUND"
    status_code = 404
