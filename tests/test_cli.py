"""Tests for spendvolt.cli — argument parsing and command handlers.

Tests use main(argv=[...]) against the fixture config and a temporary
SQLite cache. The backend gateway is replaced with a MagicMock.
"""

from __future__ import annotations

import subprocess
import sys

import pytest

from spendvolt.config import Config
from spendvolt.gateway.session import Session
from spendvolt.models import TransactionStatus
from tests.conftest import FIXTURE_CONFIG_DIR, make_dashboard, make_txn

URL = "upi://pay?pa=cafe@okaxis&pn=Blue+Tokai&am=240&mc=5812"


# ── Helpers ──────────────────────────────────────────────


@pytest.fixture
def cli_env(monkeypatch, tmp_path, mock_gateway):
    """Point the CLI at fixture config, a temp cache and a mock gateway.

    Backend writes echo the fixture profile and categories so replies do
    not reset the currency.
    """
    config = Config(FIXTURE_CONFIG_DIR)
    echo = make_dashboard(categories=config.default_categories, profile=config.default_profile)
    for name in (
        "fetch_dashboard", "create_transaction", "delete_transaction",
        "update_transaction_status", "update_transaction_category",
        "update_profile", "create_category", "delete_category",
    ):
        getattr(mock_gateway, name).return_value = echo

    monkeypatch.setenv("SPENDVOLT_CONFIG_DIR", str(FIXTURE_CONFIG_DIR))
    monkeypatch.setenv("SPENDVOLT_DB_PATH", str(tmp_path / "spendvolt.db"))
    monkeypatch.setattr("spendvolt.cli._get_gateway", lambda config: mock_gateway)
    return mock_gateway


def _run(argv) -> int:
    from spendvolt.cli import main

    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# ── Argument parsing ─────────────────────────────────────


class TestCliHelp:
    def test_help_exits_zero(self):
        result = subprocess.run(
            [sys.executable, "-m", "spendvolt.cli", "--help"],
            capture_output=True, text=True,
        )
        assert result.returncode == 0
        assert "SpendVolt expense tracker" in result.stdout

    def test_no_command_prints_help(self, capsys):
        assert _run([]) == 0
        assert "usage: spendvolt" in capsys.readouterr().out

    def test_group_without_subcommand(self, cli_env, capsys):
        assert _run(["category"]) == 1
        assert "Usage: spendvolt category" in capsys.readouterr().out

    def test_missing_config_dir(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("SPENDVOLT_CONFIG_DIR", "/nonexistent/config")
        assert _run(["status"]) == 1
        assert "Config directory not found" in capsys.readouterr().out


# ── Status and session ───────────────────────────────────


class TestCmdStatus:
    def test_shows_config_budget(self, cli_env, capsys):
        assert _run(["status"]) == 0
        out = capsys.readouterr().out
        assert "SpendVolt Status" in out
        assert "Logged in:           no" in out
        assert "$3,000.00" in out

    def test_sync_requires_login(self, cli_env, capsys):
        assert _run(["sync"]) == 1
        assert "Not logged in" in capsys.readouterr().out
        cli_env.fetch_dashboard.assert_not_called()


class TestCmdLogin:
    def test_login_applies_dashboard(self, cli_env, capsys):
        cli_env.login.return_value = (
            Session("tok", "asha"),
            make_dashboard([make_txn(5, status=TransactionStatus.SUCCESS)]),
        )
        assert _run(["login", "asha", "--password", "pw"]) == 0
        assert "Logged in as asha. 1 transaction(s)" in capsys.readouterr().out
        cli_env.login.assert_called_once_with("asha", "pw")

        assert _run(["status"]) == 0
        assert "Logged in:           yes" in capsys.readouterr().out

    def test_logout(self, cli_env, capsys):
        assert _run(["logout"]) == 0
        assert "Logged out." in capsys.readouterr().out


# ── Transactions ─────────────────────────────────────────


class TestCmdTransactions:
    def test_add_then_history(self, cli_env, capsys):
        assert _run(["add", "Shell", "1,250", "--category", "Fuel"]) == 0
        assert "Added Shell: $1,250.00" in capsys.readouterr().out
        cli_env.create_transaction.assert_called_once()

        assert _run(["history"]) == 0
        out = capsys.readouterr().out
        assert "Transactions (1 of 1)" in out
        assert "Shell" in out

    def test_add_rejects_zero_amount(self, cli_env, capsys):
        assert _run(["add", "Shell", "0"]) == 1
        assert "Error: Please enter an amount greater than zero." in capsys.readouterr().out
        cli_env.create_transaction.assert_not_called()

    def test_scan_pending_confirm(self, cli_env, capsys):
        assert _run(["scan", URL, "--no-launch"]) == 0
        out = capsys.readouterr().out
        assert "Payee:   Blue Tokai (cafe@okaxis)" in out
        txn_id = next(
            line.split()[1] for line in out.splitlines() if line.startswith("Pending:")
        )

        assert _run(["pending"]) == 0
        assert "Awaiting confirmation (1)" in capsys.readouterr().out

        assert _run(["confirm", txn_id, "--amount", "260"]) == 0
        assert "Confirmed Blue Tokai: $260.00" in capsys.readouterr().out

        assert _run(["pending"]) == 0
        assert "No payments awaiting confirmation." in capsys.readouterr().out

    def test_scan_rejects_non_upi(self, cli_env, capsys):
        assert _run(["scan", "https://example.com", "--no-launch"]) == 1
        assert "not a valid UPI payment code" in capsys.readouterr().out

    def test_confirm_unknown_id(self, cli_env, capsys):
        assert _run(["confirm", "no-such-id"]) == 1
        assert "was not found" in capsys.readouterr().out

    def test_backend_failure_is_a_warning(self, cli_env, capsys):
        from spendvolt.gateway.errors import NoResponseError

        cli_env.create_transaction.side_effect = NoResponseError()
        assert _run(["add", "Shell", "100"]) == 0
        out = capsys.readouterr().out
        assert "Added Shell" in out
        assert "Warning: No data received from the server." in out


# ── Categories and profile ───────────────────────────────


class TestCmdCategory:
    def test_list_uses_config_defaults(self, cli_env, capsys):
        assert _run(["category", "list"]) == 0
        out = capsys.readouterr().out
        assert "Fuel" in out
        assert "Grocery" in out

    def test_add(self, cli_env, capsys):
        assert _run(["category", "add", "Travel", "--icon", "airplane"]) == 0
        assert "Added category 'Travel'." in capsys.readouterr().out
        cli_env.create_category.assert_called_once()

    def test_add_duplicate(self, cli_env, capsys):
        assert _run(["category", "add", "fuel"]) == 1
        assert "Error:" in capsys.readouterr().out

    def test_delete_moves_to_unassigned(self, cli_env, capsys):
        assert _run(["add", "Shell", "100", "--category", "Fuel"]) == 0
        capsys.readouterr()
        assert _run(["category", "delete", "Fuel"]) == 0
        assert "1 transaction(s) moved to 'Unassigned'" in capsys.readouterr().out


class TestCmdProfile:
    def test_show(self, cli_env, capsys):
        assert _run(["profile", "show"]) == 0
        out = capsys.readouterr().out
        assert "Test User" in out
        assert "USD ($)" in out

    def test_set_budget(self, cli_env, capsys):
        assert _run(["profile", "set", "--budget", "5000"]) == 0
        out = capsys.readouterr().out
        assert "Profile saved." in out
        assert "$5,000.00" in out
        cli_env.update_profile.assert_called_once()

    def test_set_nothing(self, cli_env, capsys):
        assert _run(["profile", "set"]) == 1
        assert "Nothing to change." in capsys.readouterr().out

    def test_set_invalid_threshold(self, cli_env, capsys):
        assert _run(["profile", "set", "--threshold", "1.5"]) == 1
        assert "threshold" in capsys.readouterr().out


class TestGetApp:
    def test_payment_apps_from_settings(self, cli_env):
        from spendvolt.cli import _get_app

        app = _get_app()
        assert app.supported_apps == ["Google Pay", "PhonePe"]
        app.close()
