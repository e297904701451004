"""
Command line tests against a temporary SQLite ledger
"""

import json
import pytest
from datetime import timedelta
from click.testing import CliRunner

from pos_credit import cli as cli_module
from pos_credit.config import PosCreditConfig
from pos_credit.system import LedgerSystem

from conftest import TODAY


@pytest.fixture
def config(tmp_path):
    return PosCreditConfig(
        database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
        notification_channel="log",
        send_transaction_messages=False,
        log_file=str(tmp_path / "cli.log")
    )


@pytest.fixture
def runner(config, monkeypatch):
    monkeypatch.setattr(cli_module, "get_config", lambda: config)
    return CliRunner()


@pytest.fixture
def seeded(config):
    """One loan due today"""
    system = LedgerSystem(config)
    customer = system.customer_manager.create_customer("Amina Uwase", "+250788123456")
    loan = system.loan_manager.create_loan(customer.id, system.money("500"), TODAY)
    system.close()
    return loan


class TestCli:
    """Test operator commands"""

    def test_run_schedules_reminders(self, runner, seeded):
        result = runner.invoke(cli_module.cli, ["run", "--date", TODAY.isoformat()])

        assert result.exit_code == 0
        assert '"messagesScheduled": 1' in result.output

    def test_run_twice_same_day(self, runner, seeded):
        runner.invoke(cli_module.cli, ["run", "--date", TODAY.isoformat()])
        result = runner.invoke(cli_module.cli, ["run", "--date", TODAY.isoformat()])

        assert '"messagesScheduled": 0' in result.output
        assert '"duplicatesSkipped": 1' in result.output

    def test_run_and_dispatch(self, runner, config, seeded):
        result = runner.invoke(cli_module.cli, ["run", "--date", TODAY.isoformat(), "--dispatch"])

        assert result.exit_code == 0
        assert '"sent": 1' in result.output

        system = LedgerSystem(config)
        assert system.reminder_store.list_unsent_reminders() == []
        system.close()

    def test_dispatch_with_nothing_pending(self, runner, seeded):
        result = runner.invoke(cli_module.cli, ["dispatch"])

        assert result.exit_code == 0
        assert json.loads(result.output)["attempted"] == 0

    def test_verify_audit(self, runner, seeded):
        result = runner.invoke(cli_module.cli, ["verify-audit"])

        assert result.exit_code == 0
        assert "Audit chain OK" in result.output

    def test_refresh_statuses(self, runner, seeded):
        result = runner.invoke(cli_module.cli, ["refresh-statuses"])

        assert result.exit_code == 0
        assert json.loads(result.output)["marked_overdue"] == 1
