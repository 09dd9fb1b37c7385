"""
Error taxonomy for the token ledger.

Business outcomes (unknown account, used or expired token) are reported as
result objects carrying an ErrorCode. Exceptions are reserved for invalid
input to the stores and for infrastructure failures.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Outcome codes surfaced to callers."""
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    ACCOUNT_ALREADY_EXISTS = "ACCOUNT_ALREADY_EXISTS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    TOKEN_NOT_FOUND_OR_WRONG_OWNER = "TOKEN_NOT_FOUND_OR_WRONG_OWNER"
    TOKEN_ALREADY_USED = "TOKEN_ALREADY_USED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    STORAGE_CONFLICT = "STORAGE_CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"


class TokenLedgerError(Exception):
    """Base class for errors raised by the token ledger."""
    code: ErrorCode = ErrorCode.STORAGE_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class InvalidAmountError(TokenLedgerError):
    """Raised when an amount is not a finite decimal greater than zero."""
    code = ErrorCode.INVALID_AMOUNT


class StorageError(TokenLedgerError):
    """Infrastructure failure: unreachable store or unexpected constraint violation."""
    code = ErrorCode.STORAGE_ERROR


class StorageConflictError(StorageError):
    """Concurrent-write retries were exhausted."""
    code = ErrorCode.STORAGE_CONFLICT
