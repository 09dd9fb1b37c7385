"""
Token validation rules.

Checks run in a fixed order and stop at the first failure:

1. Token exists for the querying account - a token held by another account
   is indistinguishable from a missing one
2. Token has not been used
3. Token has not expired

Only a token passing all three is VALID. Used and expired are permanent.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from .errors import ErrorCode
from token_ledger.storage.models import Token


class TokenCheck(Enum):
    """Result of evaluating a token against the validation rules."""
    VALID = "valid"
    INVALID_OR_WRONG_OWNER = "invalid_or_wrong_owner"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"

    @property
    def message(self) -> str:
        return _MESSAGES[self]

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return _ERROR_CODES[self]


_MESSAGES = {
    TokenCheck.VALID: "Token is valid",
    TokenCheck.INVALID_OR_WRONG_OWNER: "Invalid token or wrong owner",
    TokenCheck.ALREADY_USED: "Token already used",
    TokenCheck.EXPIRED: "Token has expired",
}

_ERROR_CODES = {
    TokenCheck.VALID: None,
    TokenCheck.INVALID_OR_WRONG_OWNER: ErrorCode.TOKEN_NOT_FOUND_OR_WRONG_OWNER,
    TokenCheck.ALREADY_USED: ErrorCode.TOKEN_ALREADY_USED,
    TokenCheck.EXPIRED: ErrorCode.TOKEN_EXPIRED,
}


def check_token(record: Optional[Token], now: datetime) -> TokenCheck:
    """Evaluate a looked-up token record at time ``now``.

    Args:
        record: Token found by (token, account_number), or None
        now: Current time, timezone-aware

    Returns:
        The first failing check, or TokenCheck.VALID
    """
    if record is None:
        return TokenCheck.INVALID_OR_WRONG_OWNER
    if record.is_used:
        return TokenCheck.ALREADY_USED
    if not now < record.expires_at:
        return TokenCheck.EXPIRED
    return TokenCheck.VALID
