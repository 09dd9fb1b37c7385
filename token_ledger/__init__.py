"""Single-use prepaid access tokens backed by a SQLite ledger."""

__version__ = "0.1.0"
