"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PaymentStatus(Enum):
    """Lifecycle state recorded with each payment."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Account:
    """Prepaid account; balance only grows through completed payments."""
    account_number: str
    balance: Decimal


@dataclass(frozen=True)
class Payment:
    """Immutable record of a payment attempt.

    Append-only rows that form the audit trail behind every balance change.
    Once written, these records must never be modified.
    """
    payment_id: int
    account_number: str
    amount: Decimal
    status: PaymentStatus
    created_at: datetime


@dataclass(frozen=True)
class Token:
    """Single-use, time-limited token bound to one account."""
    token: str
    account_number: str
    amount_paid: Decimal
    is_used: bool
    created_at: datetime
    expires_at: datetime
