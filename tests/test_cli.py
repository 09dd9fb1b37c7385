"""
Tests for the CLI interface.
"""
import os
import re
import shutil
import tempfile
from unittest.mock import patch

from typer.testing import CliRunner

from token_ledger.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from token_ledger.core.errors import StorageError

runner = CliRunner()


class TestCLI:
    """Test CLI commands against a temporary database."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "cli.db")

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def invoke(self, *args):
        return runner.invoke(app, ["--db", self.db_path, *args])

    def generate_token(self, account="ACC001", amount="25.0"):
        result = self.invoke("generate", account, amount)
        assert result.exit_code == EXIT_CODE_PASS, result.output
        match = re.search(r"Generated Token: (\d{10})", result.output)
        assert match, result.output
        return match.group(1)

    def test_init_with_demo_accounts(self):
        result = self.invoke("init", "--demo")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output

        info = self.invoke("info", "ACC002")
        assert info.exit_code == EXIT_CODE_PASS
        assert "$50.00" in info.output

    def test_create_account(self):
        self.invoke("init")

        result = self.invoke("create-account", "ACC010", "--balance", "12.5")
        assert result.exit_code == EXIT_CODE_PASS
        assert "ACC010 created" in result.output

        duplicate = self.invoke("create-account", "ACC010")
        assert duplicate.exit_code == EXIT_CODE_FAIL
        assert "already exists" in duplicate.output

    def test_generate_validate_use_info_flow(self):
        """End-to-end flow through the CLI."""
        self.invoke("init", "--demo")

        token = self.generate_token()

        validated = self.invoke("validate", "ACC001", token)
        assert validated.exit_code == EXIT_CODE_PASS
        assert "Token is valid" in validated.output

        used = self.invoke("use", "ACC001", token)
        assert used.exit_code == EXIT_CODE_PASS
        assert "successfully used" in used.output

        again = self.invoke("use", "ACC001", token)
        assert again.exit_code == EXIT_CODE_FAIL
        assert "already used" in again.output

        info = self.invoke("info", "ACC001")
        assert info.exit_code == EXIT_CODE_PASS
        assert "$125.00" in info.output
        assert token in info.output
        assert "USED" in info.output

    def test_generate_output_contains_financial_info(self):
        self.invoke("init", "--demo")

        result = self.invoke("generate", "ACC001", "1000")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Payment processed successfully" in result.output
        assert "$1,000.00" in result.output
        assert "$1,100.00" in result.output

    def test_generate_unknown_account_fails(self):
        self.invoke("init")

        result = self.invoke("generate", "ACC999", "10")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Payment failed" in result.output

    def test_generate_invalid_amount_fails(self):
        self.invoke("init", "--demo")

        result = self.invoke("generate", "ACC001", "0")

        assert result.exit_code == EXIT_CODE_FAIL

    def test_validate_wrong_owner(self):
        self.invoke("init", "--demo")
        token = self.generate_token()

        result = self.invoke("validate", "ACC999", token)

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid token or wrong owner" in result.output

    def test_info_unknown_account(self):
        self.invoke("init")

        result = self.invoke("info", "ACC999")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "not found" in result.output

    def test_payments_lists_trail(self):
        self.invoke("init", "--demo")
        self.generate_token(amount="7")

        result = self.invoke("payments", "ACC001")

        assert result.exit_code == EXIT_CODE_PASS
        assert "completed" in result.output
        assert "$7.00" in result.output

    def test_uninitialized_database_hint(self):
        result = self.invoke("info", "ACC001")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "token-ledger init" in result.output

    def test_payments_uninitialized_database_hint(self):
        result = self.invoke("payments", "ACC001")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "token-ledger init" in result.output

    def test_large_balance_keeps_cents(self):
        self.invoke("init")
        self.invoke("create-account", "ACC010", "--balance", "999999999999999.99")

        result = self.invoke("info", "ACC010")

        assert result.exit_code == EXIT_CODE_PASS
        assert "$999,999,999,999,999.99" in result.output

    def test_storage_error_exits_with_failure(self):
        self.invoke("init", "--demo")

        with patch(
            "token_ledger.core.engine.TokenLifecycleEngine.info",
            side_effect=StorageError("disk I/O error"),
        ):
            result = self.invoke("info", "ACC001")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "STORAGE_ERROR" in result.output

    def test_missing_config_file_fails(self):
        result = runner.invoke(app, ["--config", "missing.yaml", "info", "ACC001"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Config file not found" in result.output
