"""
Repository pattern for data access.

Holds the schema bootstrap, the shared row codecs, and the ledger store
(accounts and the append-only payment trail).
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, Inexact, localcontext
from typing import Iterator, List, Optional

from .db import Database
from .models import Account, Payment, PaymentStatus
from token_ledger.core.errors import InvalidAmountError, StorageError
from token_ledger.core.payments import AmountLike, to_amount

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def encode_timestamp(value: datetime) -> str:
    """Encode a datetime as fixed-width ISO-8601 UTC text (sortable as a string)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def decode_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@contextmanager
def write_scope(db: Database, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
    """Join the caller's open transaction, or run in a new one."""
    if conn is not None:
        yield conn
    else:
        with db.write_tx() as new_conn:
            yield new_conn


@contextmanager
def read_scope(db: Database, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
    """Reuse the caller's connection, or open a scoped read connection."""
    if conn is not None:
        yield conn
    else:
        with db.connection() as new_conn:
            yield new_conn


def initialize_schema(db: Database) -> None:
    """Create the accounts, payments and tokens tables if they don't exist.

    Payments are an append-only ledger. No UPDATE or DELETE operations
    should ever be performed on that table.

    Args:
        db: Store handle to initialize
    """
    with db.write_tx() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                account_number TEXT PRIMARY KEY,
                balance TEXT NOT NULL DEFAULT '0'
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS payments (
                payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_number TEXT NOT NULL,
                amount TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('pending', 'completed', 'failed')),
                created_at TEXT NOT NULL,
                FOREIGN KEY (account_number) REFERENCES accounts (account_number)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tokens (
                token TEXT PRIMARY KEY,
                account_number TEXT NOT NULL,
                amount_paid TEXT NOT NULL,
                is_used INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                FOREIGN KEY (account_number) REFERENCES accounts (account_number)
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tokens_account_created "
            "ON tokens (account_number, created_at)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_payments_account ON payments (account_number)"
        )
    logger.info("Schema initialized at %s", db.path)


class LedgerStore:
    """Durable record of account balances and payment history.

    Every method accepts an optional open connection. When given, the call
    joins that transaction; otherwise it runs and commits on its own.
    """

    def __init__(self, db: Database, clock=utc_now):
        """Initialize the store.

        Args:
            db: Shared store handle
            clock: Callable returning the current UTC datetime
        """
        self.db = db
        self.clock = clock

    def create_account(
        self,
        account_number: str,
        initial_balance: AmountLike = Decimal("0"),
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Create an account.

        Returns:
            True if created, False if the account number already exists
            (nothing is modified in that case)

        Raises:
            ValueError: If account_number is empty
            InvalidAmountError: If initial_balance is negative or not numeric
        """
        if not account_number or not account_number.strip():
            raise ValueError("account_number is required and cannot be empty")
        balance = to_amount(initial_balance, allow_zero=True)

        with write_scope(self.db, conn) as c:
            try:
                c.execute(
                    "INSERT INTO accounts (account_number, balance) VALUES (?, ?)",
                    (account_number, str(balance)),
                )
            except sqlite3.IntegrityError:
                return False
        logger.info("Created account %s with balance %s", account_number, balance)
        return True

    def get_account(
        self, account_number: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Account]:
        with read_scope(self.db, conn) as c:
            row = c.execute(
                "SELECT account_number, balance FROM accounts WHERE account_number = ?",
                (account_number,),
            ).fetchone()
        if row is None:
            return None
        return Account(account_number=row["account_number"], balance=Decimal(row["balance"]))

    def get_balance(
        self, account_number: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Decimal]:
        """Return the account balance, or None if the account does not exist."""
        account = self.get_account(account_number, conn=conn)
        return account.balance if account else None

    def credit(
        self,
        account_number: str,
        amount: AmountLike,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Decimal]:
        """Add ``amount`` to the balance in one read-modify-write.

        Returns:
            The new balance, or None if the account does not exist

        Raises:
            InvalidAmountError: If amount is not a valid payment amount, or
                the new balance cannot be represented exactly
        """
        value = to_amount(amount)
        with write_scope(self.db, conn) as c:
            row = c.execute(
                "SELECT balance FROM accounts WHERE account_number = ?",
                (account_number,),
            ).fetchone()
            if row is None:
                return None
            with localcontext() as ctx:
                ctx.traps[Inexact] = True
                try:
                    new_balance = Decimal(row["balance"]) + value
                except Inexact:
                    raise InvalidAmountError(
                        f"Crediting {value} would overflow the balance of {account_number}"
                    ) from None
            c.execute(
                "UPDATE accounts SET balance = ? WHERE account_number = ?",
                (str(new_balance), account_number),
            )
        return new_balance

    def record_payment(
        self,
        account_number: str,
        amount: AmountLike,
        status: PaymentStatus,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Append a payment row and return its payment_id.

        Raises:
            InvalidAmountError: If amount is not greater than zero
            StorageError: If the account does not exist
        """
        value = to_amount(amount)
        with write_scope(self.db, conn) as c:
            try:
                cursor = c.execute(
                    "INSERT INTO payments (account_number, amount, status, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (account_number, str(value), status.value, encode_timestamp(self.clock())),
                )
            except sqlite3.IntegrityError as e:
                raise StorageError(
                    f"Cannot record payment for account {account_number}: {e}"
                ) from e
            return cursor.lastrowid

    def list_payments(
        self, account_number: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Payment]:
        """Return the payment trail for an account, newest first."""
        with read_scope(self.db, conn) as c:
            rows = c.execute(
                """
                SELECT payment_id, account_number, amount, status, created_at
                FROM payments
                WHERE account_number = ?
                ORDER BY created_at DESC, payment_id DESC
                """,
                (account_number,),
            ).fetchall()
        return [
            Payment(
                payment_id=row["payment_id"],
                account_number=row["account_number"],
                amount=Decimal(row["amount"]),
                status=PaymentStatus(row["status"]),
                created_at=decode_timestamp(row["created_at"]),
            )
            for row in rows
        ]
