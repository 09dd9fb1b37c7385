"""
Configuration management and loading.

Handles application settings from a YAML file and environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_ENV_VAR = "TOKEN_LEDGER_CONFIG"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class DatabaseConfig:
    """SQLite store settings."""
    path: str = "token_ledger.db"
    busy_timeout_ms: int = 5000
    write_deadline_ms: int = 10000

    def __post_init__(self):
        """Validate database values."""
        if not self.path:
            raise ValueError("database.path cannot be empty")
        if self.busy_timeout_ms < 0:
            raise ValueError("database.busy_timeout_ms must be >= 0")
        if self.write_deadline_ms <= 0:
            raise ValueError("database.write_deadline_ms must be > 0")


@dataclass(frozen=True)
class TokenConfig:
    """Token minting settings."""
    max_mint_attempts: int = 1000

    def __post_init__(self):
        if self.max_mint_attempts < 1:
            raise ValueError("tokens.max_mint_attempts must be >= 1")


@dataclass(frozen=True)
class PaymentConfig:
    """Payment authorization settings."""
    max_amount: Optional[Decimal] = None

    def __post_init__(self):
        if self.max_amount is not None and self.max_amount <= 0:
            raise ValueError("payments.max_amount must be > 0")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self):
        if self.level not in _LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {sorted(_LOG_LEVELS)}")

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.level)


@dataclass(frozen=True)
class TokenLedgerConfig:
    """Complete application configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    tokens: TokenConfig = field(default_factory=TokenConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: Optional[str] = None) -> TokenLedgerConfig:
    """Load and validate configuration from a YAML file.

    Strict validation ensures no silent misconfigurations. With no path and
    no TOKEN_LEDGER_CONFIG environment variable, defaults are returned.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TokenLedgerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return TokenLedgerConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return TokenLedgerConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'database', 'tokens', 'payments', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    database = _section(raw_config, 'database', {'path', 'busy_timeout_ms', 'write_deadline_ms'})
    tokens = _section(raw_config, 'tokens', {'max_mint_attempts'})
    payments = _section(raw_config, 'payments', {'max_amount'})
    logging_data = _section(raw_config, 'logging', {'level'})

    database_config = DatabaseConfig(
        path=str(database.get('path', DatabaseConfig.path)),
        busy_timeout_ms=_int(database, 'busy_timeout_ms', DatabaseConfig.busy_timeout_ms, 'database'),
        write_deadline_ms=_int(database, 'write_deadline_ms', DatabaseConfig.write_deadline_ms, 'database'),
    )

    token_config = TokenConfig(
        max_mint_attempts=_int(tokens, 'max_mint_attempts', TokenConfig.max_mint_attempts, 'tokens'),
    )

    max_amount = payments.get('max_amount')
    if max_amount is not None:
        if isinstance(max_amount, bool) or not isinstance(max_amount, (int, float, str)):
            raise ValueError("'max_amount' in payments must be a number")
        try:
            max_amount = Decimal(str(max_amount))
        except InvalidOperation:
            raise ValueError("'max_amount' in payments must be a number")
    payment_config = PaymentConfig(max_amount=max_amount)

    level = logging_data.get('level', LoggingConfig.level)
    if not isinstance(level, str):
        raise ValueError("'level' in logging must be a string")

    return TokenLedgerConfig(
        database=database_config,
        tokens=token_config,
        payments=payment_config,
        logging=LoggingConfig(level=level.upper()),
    )


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict[str, Any]:
    """Extract an optional section and reject unknown keys.

    Raises:
        ValueError: If the section is not a dictionary or has unknown keys
    """
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _int(data: Dict, key: str, default: int, path: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' in {path} must be an integer")
    return value
