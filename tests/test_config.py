"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for application configs.
"""

import logging
import os
import tempfile
from decimal import Decimal

import pytest
import yaml

from token_ledger.config.loader import (
    CONFIG_ENV_VAR,
    DatabaseConfig,
    TokenConfig,
    TokenLedgerConfig,
    load_config,
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a complete configuration loads correctly."""
        config_data = {
            "database": {
                "path": "/tmp/tokens.db",
                "busy_timeout_ms": 2000,
                "write_deadline_ms": 4000
            },
            "tokens": {"max_mint_attempts": 50},
            "payments": {"max_amount": 500.5},
            "logging": {"level": "debug"}
        }

        config = load_config(self._write_config(config_data))

        assert config.database.path == "/tmp/tokens.db"
        assert config.database.busy_timeout_ms == 2000
        assert config.database.write_deadline_ms == 4000
        assert config.tokens.max_mint_attempts == 50
        assert config.payments.max_amount == Decimal("500.5")
        assert config.logging.level == "DEBUG"
        assert config.logging.numeric_level == logging.DEBUG

    def test_partial_config_uses_defaults(self):
        """Missing sections fall back to defaults."""
        config = load_config(self._write_config({"tokens": {"max_mint_attempts": 10}}))

        assert config.tokens.max_mint_attempts == 10
        assert config.database == DatabaseConfig()
        assert config.payments.max_amount is None
        assert config.logging.level == "INFO"

    def test_no_path_returns_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_config() == TokenLedgerConfig()

    def test_env_var_names_config_file(self, monkeypatch):
        path = self._write_config({"database": {"path": "env.db"}})
        monkeypatch.setenv(CONFIG_ENV_VAR, path)

        assert load_config().database.path == "env.db"

    def test_empty_file_returns_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w').close()

        assert load_config(config_path) == TokenLedgerConfig()

    def test_missing_file_raises_error(self):
        """Test that missing config file raises error."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config("nonexistent.yaml")

    def test_invalid_yaml_raises_error(self):
        """Test that invalid YAML raises error."""
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w') as f:
            f.write("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            load_config(config_path)

    def test_non_mapping_root_raises_error(self):
        with pytest.raises(ValueError, match="root must be a dictionary"):
            load_config(self._write_config(["a", "b"]))

    def test_unknown_top_level_key_raises_error(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_config(self._write_config({"currency": {"code": "USD"}}))

    def test_unknown_section_key_raises_error(self):
        with pytest.raises(ValueError, match="Unknown keys in tokens"):
            load_config(self._write_config({"tokens": {"ttl_hours": 48}}))

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="'database' must be a dictionary"):
            load_config(self._write_config({"database": "tokens.db"}))

    @pytest.mark.parametrize("value", ["ten", 1.5, True])
    def test_non_integer_attempts_raise_error(self, value):
        with pytest.raises(ValueError, match="must be an integer"):
            load_config(self._write_config({"tokens": {"max_mint_attempts": value}}))

    def test_zero_attempts_raise_error(self):
        with pytest.raises(ValueError, match="max_mint_attempts must be >= 1"):
            load_config(self._write_config({"tokens": {"max_mint_attempts": 0}}))

    def test_non_positive_max_amount_raises_error(self):
        with pytest.raises(ValueError, match="max_amount must be > 0"):
            load_config(self._write_config({"payments": {"max_amount": 0}}))

    def test_non_numeric_max_amount_raises_error(self):
        with pytest.raises(ValueError, match="must be a number"):
            load_config(self._write_config({"payments": {"max_amount": "lots"}}))

    def test_invalid_log_level_raises_error(self):
        with pytest.raises(ValueError, match="logging.level must be one of"):
            load_config(self._write_config({"logging": {"level": "verbose"}}))

    def test_negative_busy_timeout_raises_error(self):
        with pytest.raises(ValueError, match="busy_timeout_ms must be >= 0"):
            load_config(self._write_config({"database": {"busy_timeout_ms": -1}}))


class TestConfigDataclasses:
    """Test dataclass-level validation."""

    def test_config_is_frozen(self):
        config = TokenConfig()
        with pytest.raises(Exception):
            config.max_mint_attempts = 5

    def test_empty_database_path_rejected(self):
        with pytest.raises(ValueError, match="database.path"):
            DatabaseConfig(path="")
