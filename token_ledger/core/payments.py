"""
Payment authorization and amount handling.

The payment gateway is an external capability. Authorizers are plain
callables taking (account_number, amount) and returning True to approve.
"""

from decimal import Decimal, InvalidOperation
from typing import Callable, Union

from .errors import InvalidAmountError

PaymentAuthorizer = Callable[[str, Decimal], bool]

AmountLike = Union[Decimal, int, float, str]

# Amounts carry at most 8 decimal places and stay below 10**15, so a balance
# sum fits the 28-digit default context without rounding.
AMOUNT_PLACES = 8
AMOUNT_LIMIT = Decimal(10) ** 15

_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)


def to_amount(value: AmountLike, allow_zero: bool = False) -> Decimal:
    """Convert a caller-supplied amount to a Decimal.

    Floats are converted through their shortest repr so 25.1 stays 25.1.

    Args:
        value: Amount as Decimal, int, float or numeric string
        allow_zero: Accept 0 (used for opening balances)

    Returns:
        The amount as a finite Decimal

    Raises:
        InvalidAmountError: If the value is not numeric, not finite, negative,
            zero when zero is not allowed, not below AMOUNT_LIMIT, or finer
            than AMOUNT_PLACES decimal places
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}") from None

    if not amount.is_finite():
        raise InvalidAmountError(f"Amount must be finite, got {value!r}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmountError(f"Amount must be > 0, got {value!r}")
    if amount >= AMOUNT_LIMIT:
        raise InvalidAmountError(f"Amount must be below {AMOUNT_LIMIT:,}, got {value!r}")
    if amount != amount.quantize(_QUANTUM):
        raise InvalidAmountError(
            f"Amount has more than {AMOUNT_PLACES} decimal places: {value!r}"
        )
    return amount


def approve_positive_amount(account_number: str, amount: Decimal) -> bool:
    """Default gateway stub: any positive amount is approved."""
    return amount > 0


def ceiling_authorizer(max_amount: AmountLike) -> PaymentAuthorizer:
    """Build an authorizer that also rejects payments above max_amount."""
    ceiling = to_amount(max_amount)

    def authorize(account_number: str, amount: Decimal) -> bool:
        return approve_positive_amount(account_number, amount) and amount <= ceiling

    return authorize
