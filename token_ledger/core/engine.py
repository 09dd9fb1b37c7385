"""
Token lifecycle engine.

Coordinates the ledger store and the token registry for the four operations:

- generate: payment capture -> balance credit + payment record + token mint
- validate: read-only token check
- use: validate and consume in one transaction
- info: balance plus token history

The engine holds no state between requests. Business outcomes come back as
result objects; only infrastructure failures raise.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import ErrorCode, InvalidAmountError
from .payments import (
    AmountLike,
    PaymentAuthorizer,
    approve_positive_amount,
    ceiling_authorizer,
    to_amount,
)
from .validation import TokenCheck, check_token
from token_ledger.config.loader import TokenLedgerConfig
from token_ledger.storage.db import Database
from token_ledger.storage.models import PaymentStatus, Token
from token_ledger.storage.repository import LedgerStore, utc_now
from token_ledger.storage.tokens import TokenRegistry

logger = logging.getLogger(__name__)


class Operation(Enum):
    """Operations accepted by the engine."""
    GENERATE = "generate"
    VALIDATE = "validate"
    USE = "use"
    INFO = "info"


@dataclass(frozen=True)
class OperationRequest:
    """A single request routed to one engine operation."""
    operation: Operation
    account_number: str
    amount: Optional[AmountLike] = None
    token: Optional[str] = None


@dataclass
class GenerateResult:
    """Outcome of a payment that funds a token."""
    status: PaymentStatus
    token: Optional[str] = None
    new_balance: Optional[Decimal] = None
    payment_id: Optional[int] = None
    error: Optional[ErrorCode] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is PaymentStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value}
        if self.ok:
            data["token"] = self.token
            data["new_balance"] = self.new_balance
        else:
            data["error"] = self.error.value if self.error else None
            data["message"] = self.message
        return data


@dataclass
class ValidationResult:
    """Outcome of a read-only token check."""
    valid: bool
    message: str
    error: Optional[ErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.valid

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "message": self.message}


@dataclass
class UseResult:
    """Outcome of consuming a token."""
    success: bool
    message: str
    error: Optional[ErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


@dataclass
class AccountInfo:
    """Balance and newest-first token history of an account."""
    found: bool
    account_number: str
    balance: Optional[Decimal] = None
    tokens: List[Token] = field(default_factory=list)
    error: Optional[ErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.found

    def to_dict(self) -> Dict[str, Any]:
        if not self.found:
            return {"found": False}
        return {
            "found": True,
            "balance": self.balance,
            "tokens": [
                {
                    "token": t.token,
                    "amount": t.amount_paid,
                    "used": t.is_used,
                    "created_at": t.created_at.isoformat(),
                    "expires_at": t.expires_at.isoformat(),
                }
                for t in self.tokens
            ],
        }


class TokenLifecycleEngine:
    """Runs token operations against the two stores."""

    def __init__(
        self,
        ledger: LedgerStore,
        registry: TokenRegistry,
        authorizer: PaymentAuthorizer = approve_positive_amount,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the engine.

        Args:
            ledger: Account and payment store
            registry: Token store; must share the ledger's database
            authorizer: Payment gateway capability
            clock: Callable returning the current UTC datetime
        """
        if ledger.db is not registry.db:
            raise ValueError("ledger and registry must share one database handle")
        self.ledger = ledger
        self.registry = registry
        self.authorizer = authorizer
        self.clock = clock
        self._handlers = {
            Operation.GENERATE: lambda r: self.generate(r.account_number, r.amount),
            Operation.VALIDATE: lambda r: self.validate(r.account_number, r.token or ""),
            Operation.USE: lambda r: self.use(r.account_number, r.token or ""),
            Operation.INFO: lambda r: self.info(r.account_number),
        }

    def handle(self, request: OperationRequest):
        """Dispatch a request to the handler for its operation."""
        try:
            handler = self._handlers[Operation(request.operation)]
        except (KeyError, ValueError):
            raise ValueError(f"Unknown operation: {request.operation!r}") from None
        return handler(request)

    def create_account(
        self, account_number: str, initial_balance: AmountLike = Decimal("0")
    ) -> Optional[ErrorCode]:
        """Create an account; returns ACCOUNT_ALREADY_EXISTS on conflict, else None."""
        if self.ledger.create_account(account_number, initial_balance):
            return None
        return ErrorCode.ACCOUNT_ALREADY_EXISTS

    def generate(self, account_number: str, amount: Optional[AmountLike]) -> GenerateResult:
        """Capture a payment and mint a token funded by it.

        Credit, payment record and mint commit together or not at all. The
        authorizer runs before the write transaction opens, so a slow gateway
        never holds the writer lock; the account is re-checked inside it.
        """
        try:
            value = to_amount(amount)
        except InvalidAmountError as e:
            return self._invalid_amount(e)

        if self.ledger.get_account(account_number) is None:
            return self._account_not_found(account_number)

        approved = self.authorizer(account_number, value)

        try:
            with self.ledger.db.write_tx() as conn:
                if self.ledger.get_account(account_number, conn=conn) is None:
                    return self._account_not_found(account_number)

                if not approved:
                    payment_id = self.ledger.record_payment(
                        account_number, value, PaymentStatus.FAILED, conn=conn
                    )
                    logger.warning(
                        "Payment rejected for account %s (amount %s)", account_number, value
                    )
                    return GenerateResult(
                        status=PaymentStatus.FAILED,
                        payment_id=payment_id,
                        error=ErrorCode.PAYMENT_REJECTED,
                        message=f"Payment rejected for account {account_number}",
                    )

                new_balance = self.ledger.credit(account_number, value, conn=conn)
                payment_id = self.ledger.record_payment(
                    account_number, value, PaymentStatus.COMPLETED, conn=conn
                )
                token = self.registry.mint(account_number, value, conn=conn)
        except InvalidAmountError as e:
            return self._invalid_amount(e)

        logger.info(
            "Payment %d completed for account %s: amount %s, new balance %s",
            payment_id, account_number, value, new_balance,
        )
        return GenerateResult(
            status=PaymentStatus.COMPLETED,
            token=token.token,
            new_balance=new_balance,
            payment_id=payment_id,
            message="Payment processed successfully",
        )

    @staticmethod
    def _invalid_amount(error: InvalidAmountError) -> GenerateResult:
        return GenerateResult(
            status=PaymentStatus.FAILED,
            error=ErrorCode.INVALID_AMOUNT,
            message=error.message,
        )

    @staticmethod
    def _account_not_found(account_number: str) -> GenerateResult:
        return GenerateResult(
            status=PaymentStatus.FAILED,
            error=ErrorCode.ACCOUNT_NOT_FOUND,
            message=f"Account {account_number} not found",
        )

    def validate(self, account_number: str, token: str) -> ValidationResult:
        """Check a token without modifying it."""
        outcome = check_token(self.registry.lookup(token, account_number), self.clock())
        return ValidationResult(
            valid=outcome is TokenCheck.VALID,
            message=outcome.message,
            error=outcome.error_code,
        )

    def use(self, account_number: str, token: str) -> UseResult:
        """Consume a token if it is valid; invalid tokens are never marked used."""
        outcome = self.registry.consume(token, account_number, now=self.clock())
        if outcome is TokenCheck.VALID:
            logger.info("Token %s used by account %s", token, account_number)
            return UseResult(
                success=True,
                message=f"Token {token} has been successfully used and marked as consumed",
            )
        return UseResult(success=False, message=outcome.message, error=outcome.error_code)

    def info(self, account_number: str) -> AccountInfo:
        """Return balance and token history for an account."""
        with self.ledger.db.connection() as conn:
            account = self.ledger.get_account(account_number, conn=conn)
            if account is None:
                return AccountInfo(
                    found=False,
                    account_number=account_number,
                    error=ErrorCode.ACCOUNT_NOT_FOUND,
                )
            tokens = self.registry.list_for_account(account_number, conn=conn)
        return AccountInfo(
            found=True,
            account_number=account_number,
            balance=account.balance,
            tokens=tokens,
        )


def build_engine(
    config: Optional[TokenLedgerConfig] = None,
    db_path: Optional[str] = None,
    clock: Callable[[], datetime] = utc_now,
    id_generator: Optional[Callable[[], str]] = None,
) -> TokenLifecycleEngine:
    """Wire a database handle, both stores and the engine from configuration.

    Args:
        config: Application configuration (defaults when omitted)
        db_path: Overrides config.database.path
        clock: Shared clock for minting and validation
        id_generator: Overrides the token identifier source

    Returns:
        A ready engine; the schema must already exist
    """
    config = config or TokenLedgerConfig()
    db = Database(
        path=db_path or config.database.path,
        busy_timeout_ms=config.database.busy_timeout_ms,
        write_deadline_ms=config.database.write_deadline_ms,
    )
    registry_kwargs: Dict[str, Any] = {"max_mint_attempts": config.tokens.max_mint_attempts}
    if id_generator is not None:
        registry_kwargs["id_generator"] = id_generator

    authorizer = approve_positive_amount
    if config.payments.max_amount is not None:
        authorizer = ceiling_authorizer(config.payments.max_amount)

    return TokenLifecycleEngine(
        ledger=LedgerStore(db, clock=clock),
        registry=TokenRegistry(db, clock=clock, **registry_kwargs),
        authorizer=authorizer,
        clock=clock,
    )
