"""
Token registry.

Owns token records: minting unique identifiers, owner-scoped lookup and the
single false -> true transition of ``is_used``.
"""

import logging
import secrets
import sqlite3
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from .db import Database
from .models import Token
from .repository import (
    decode_timestamp,
    encode_timestamp,
    read_scope,
    utc_now,
    write_scope,
)
from token_ledger.core.errors import StorageConflictError, StorageError
from token_ledger.core.payments import AmountLike, to_amount
from token_ledger.core.validation import TokenCheck, check_token

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(hours=24)
TOKEN_MIN = 1_000_000_000
TOKEN_MAX = 9_999_999_999
DEFAULT_MAX_MINT_ATTEMPTS = 1000

_TOKEN_COLUMNS = "token, account_number, amount_paid, is_used, created_at, expires_at"


def generate_token_id() -> str:
    """Draw a 10-digit decimal identifier from [1000000000, 9999999999]."""
    return str(TOKEN_MIN + secrets.randbelow(TOKEN_MAX - TOKEN_MIN + 1))


def _row_to_token(row: sqlite3.Row) -> Token:
    return Token(
        token=row["token"],
        account_number=row["account_number"],
        amount_paid=Decimal(row["amount_paid"]),
        is_used=bool(row["is_used"]),
        created_at=decode_timestamp(row["created_at"]),
        expires_at=decode_timestamp(row["expires_at"]),
    )


class TokenRegistry:
    """Durable record of tokens with uniqueness and owner-scoped lookup."""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = utc_now,
        id_generator: Callable[[], str] = generate_token_id,
        max_mint_attempts: int = DEFAULT_MAX_MINT_ATTEMPTS,
    ):
        """Initialize the registry.

        Args:
            db: Shared store handle
            clock: Callable returning the current UTC datetime
            id_generator: Source of candidate token identifiers
            max_mint_attempts: Candidates tried before a mint gives up
        """
        if max_mint_attempts < 1:
            raise ValueError("max_mint_attempts must be >= 1")
        self.db = db
        self.clock = clock
        self.id_generator = id_generator
        self.max_mint_attempts = max_mint_attempts

    def mint(
        self,
        account_number: str,
        amount_paid: AmountLike,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Token:
        """Generate, store and return a new unique token.

        Each candidate is checked against storage and then inserted in the
        same write transaction. A primary-key conflict on insert is treated
        like a failed check and a new candidate is drawn.

        Raises:
            StorageConflictError: If no unused identifier was found within
                max_mint_attempts candidates
            StorageError: If the account does not exist
        """
        amount = to_amount(amount_paid)
        with write_scope(self.db, conn) as c:
            for attempt in range(1, self.max_mint_attempts + 1):
                candidate = self.id_generator()
                exists = c.execute(
                    "SELECT 1 FROM tokens WHERE token = ?", (candidate,)
                ).fetchone()
                if exists:
                    logger.warning("Token candidate collision on attempt %d", attempt)
                    continue

                created_at = self.clock()
                token = Token(
                    token=candidate,
                    account_number=account_number,
                    amount_paid=amount,
                    is_used=False,
                    created_at=created_at,
                    expires_at=created_at + TOKEN_TTL,
                )
                try:
                    c.execute(
                        f"INSERT INTO tokens ({_TOKEN_COLUMNS}) VALUES (?, ?, ?, 0, ?, ?)",
                        (
                            token.token,
                            token.account_number,
                            str(token.amount_paid),
                            encode_timestamp(token.created_at),
                            encode_timestamp(token.expires_at),
                        ),
                    )
                except sqlite3.IntegrityError as e:
                    if "tokens.token" in str(e):
                        logger.warning("Token insert conflict on attempt %d", attempt)
                        continue
                    raise StorageError(
                        f"Cannot mint token for account {account_number}: {e}"
                    ) from e

                logger.info("Minted token %s for account %s", token.token, account_number)
                return token

        raise StorageConflictError(
            f"No unused token identifier found after {self.max_mint_attempts} attempts"
        )

    def get(self, token: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Token]:
        """Fetch a token by identifier regardless of owner."""
        with read_scope(self.db, conn) as c:
            row = c.execute(
                f"SELECT {_TOKEN_COLUMNS} FROM tokens WHERE token = ?", (token,)
            ).fetchone()
        return _row_to_token(row) if row else None

    def lookup(
        self,
        token: str,
        account_number: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Token]:
        """Find a token by exact (token, account_number) match.

        A token owned by a different account returns None, same as a token
        that does not exist.
        """
        with read_scope(self.db, conn) as c:
            row = c.execute(
                f"SELECT {_TOKEN_COLUMNS} FROM tokens WHERE token = ? AND account_number = ?",
                (token, account_number),
            ).fetchone()
        return _row_to_token(row) if row else None

    def mark_used(
        self,
        token: str,
        account_number: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> TokenCheck:
        """Flip is_used from false to true.

        The update is a compare-and-set on is_used, so only one caller can
        ever observe the transition.

        Returns:
            VALID if this call consumed the token, ALREADY_USED if it was
            consumed before, INVALID_OR_WRONG_OWNER if no such token exists
            for the account
        """
        with write_scope(self.db, conn) as c:
            cursor = c.execute(
                "UPDATE tokens SET is_used = 1 "
                "WHERE token = ? AND account_number = ? AND is_used = 0",
                (token, account_number),
            )
            if cursor.rowcount == 1:
                return TokenCheck.VALID
            if self.lookup(token, account_number, conn=c) is None:
                return TokenCheck.INVALID_OR_WRONG_OWNER
            return TokenCheck.ALREADY_USED

    def consume(
        self,
        token: str,
        account_number: str,
        now: Optional[datetime] = None,
    ) -> TokenCheck:
        """Validate and mark a token used as one atomic unit.

        Returns:
            VALID if the token was consumed by this call, otherwise the
            failing check; a token that fails validation is left untouched
        """
        now = now or self.clock()
        with self.db.write_tx() as c:
            outcome = check_token(self.lookup(token, account_number, conn=c), now)
            if outcome is not TokenCheck.VALID:
                return outcome
            return self.mark_used(token, account_number, conn=c)

    def list_for_account(
        self, account_number: str, conn: Optional[sqlite3.Connection] = None
    ) -> List[Token]:
        """Return all tokens of an account, newest first."""
        with read_scope(self.db, conn) as c:
            rows = c.execute(
                f"""
                SELECT {_TOKEN_COLUMNS}
                FROM tokens
                WHERE account_number = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (account_number,),
            ).fetchall()
        return [_row_to_token(row) for row in rows]
