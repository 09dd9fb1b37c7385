"""
CLI interface for the token ledger.

Routes each command to one lifecycle operation and presents the result.
"""

import logging
import sys
from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from token_ledger.config.loader import TokenLedgerConfig, load_config
from token_ledger.core.engine import (
    Operation,
    OperationRequest,
    TokenLifecycleEngine,
    build_engine,
)
from token_ledger.core.errors import ErrorCode, TokenLedgerError
from token_ledger.storage.repository import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DEMO_ACCOUNTS = (("ACC001", "100.0"), ("ACC002", "50.0"))


class _State:
    config: TokenLedgerConfig = TokenLedgerConfig()
    db_path: Optional[str] = None


state = _State()


def _configure_logging(level: int) -> None:
    """Send package logs to stderr through rich, once per process."""
    logger = logging.getLogger("token_ledger")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def _engine() -> TokenLifecycleEngine:
    return build_engine(state.config, db_path=state.db_path)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _storage_failure(e: TokenLedgerError) -> None:
    if "no such table" in e.message.lower():
        console.print("\n[bold yellow]Database is not initialized[/]")
        console.print("Run `token-ledger init` to create the tables\n")
        sys.exit(EXIT_CODE_FAIL)
    _fail(f"{e.code.value}: {e.message}")


def _run(request: OperationRequest):
    """Run a request, turning infrastructure errors into a failing exit."""
    try:
        return _engine().handle(request)
    except TokenLedgerError as e:
        _storage_failure(e)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        help="Path to the SQLite database (overrides the config file)"
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML config file (or set TOKEN_LEDGER_CONFIG)"
    ),
):
    """Token ledger CLI."""
    try:
        state.config = load_config(config)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))
    state.db_path = db
    _configure_logging(state.config.logging.numeric_level)
    if ctx.invoked_subcommand is None:
        console.print("Token Ledger - Use --help to see available commands")


@app.command()
def init(
    demo: bool = typer.Option(
        False,
        "--demo",
        help="Also create demo accounts ACC001 and ACC002"
    )
):
    """Initialize the token ledger database."""
    try:
        engine = _engine()
        initialize_schema(engine.ledger.db)
        if demo:
            for account_number, balance in DEMO_ACCOUNTS:
                engine.create_account(account_number, balance)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except TokenLedgerError as e:
        _fail(f"initializing database: {e.message}")


@app.command("create-account")
def create_account(
    account_number: str = typer.Argument(..., help="Account number to create"),
    balance: str = typer.Option("0", "--balance", "-b", help="Opening balance"),
):
    """Create a prepaid account."""
    try:
        error = _engine().create_account(account_number, balance)
    except TokenLedgerError as e:
        _fail(f"{e.code.value}: {e.message}")
    except ValueError as e:
        _fail(str(e))
    if error is ErrorCode.ACCOUNT_ALREADY_EXISTS:
        _fail(f"Account {account_number} already exists")
    console.print(f"[green]✓[/] Account {account_number} created")


@app.command()
def generate(
    account_number: str = typer.Argument(..., help="Account paying for the token"),
    amount: str = typer.Argument(..., help="Payment amount, must be > 0"),
):
    """Process a payment and generate a token."""
    result = _run(OperationRequest(Operation.GENERATE, account_number, amount=amount))
    if not result.ok:
        _fail(f"Payment failed for account {account_number}: {result.message}")

    console.print("[green]✓[/] Payment processed successfully!")
    console.print(f"Account: {account_number}")
    console.print(f"Amount: {_format_currency(amount)}")
    console.print(f"Generated Token: [bold]{result.token}[/]")
    console.print(f"New Balance: {_format_currency(result.new_balance)}")


@app.command()
def validate(
    account_number: str = typer.Argument(..., help="Account that owns the token"),
    token: str = typer.Argument(..., help="Token to check"),
):
    """Check whether a token can be used."""
    result = _run(OperationRequest(Operation.VALIDATE, account_number, token=token))
    if result.valid:
        console.print(f"[green]✓[/] {result.message}")
    else:
        console.print(f"[red]✗[/] {result.message}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def use(
    account_number: str = typer.Argument(..., help="Account that owns the token"),
    token: str = typer.Argument(..., help="Token to consume"),
):
    """Consume a token."""
    result = _run(OperationRequest(Operation.USE, account_number, token=token))
    if result.success:
        console.print(f"[green]✓[/] {result.message}")
    else:
        console.print(f"[red]✗[/] {result.message}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def info(account_number: str = typer.Argument(..., help="Account to describe")):
    """Show balance and token history for an account."""
    result = _run(OperationRequest(Operation.INFO, account_number))
    if not result.found:
        _fail(f"Account {account_number} not found")

    console.print("\n[bold]Account Information[/bold]")
    console.print("-" * 40)
    console.print(f"Account: {account_number}")
    console.print(f"Balance: {_format_currency(result.balance)}")

    if not result.tokens:
        console.print("\n[dim]No tokens issued for this account.[/]")
        return

    table = Table(title="Tokens")
    table.add_column("Token", no_wrap=True)
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Created")
    table.add_column("Expires")
    for t in result.tokens:
        table.add_row(
            t.token,
            _format_currency(t.amount_paid),
            "USED" if t.is_used else "ACTIVE",
            t.created_at.strftime("%Y-%m-%d %H:%M"),
            t.expires_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def payments(account_number: str = typer.Argument(..., help="Account to audit")):
    """Show the payment trail for an account."""
    engine = _engine()
    try:
        if engine.ledger.get_account(account_number) is None:
            _fail(f"Account {account_number} not found")
        rows = engine.ledger.list_payments(account_number)
    except TokenLedgerError as e:
        _storage_failure(e)

    table = Table(title=f"Payments for {account_number}")
    table.add_column("ID", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Created")
    for p in rows:
        table.add_row(
            str(p.payment_id),
            _format_currency(p.amount),
            p.status.value,
            p.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


def _format_currency(amount) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${Decimal(str(amount)):,.2f}"


if __name__ == "__main__":
    app()
