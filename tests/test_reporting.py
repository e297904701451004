"""
Test suite for loan reports
"""

import pytest
from decimal import Decimal
from datetime import timedelta

from pos_credit.currency import Currency
from pos_credit.customers import RiskLevel
from pos_credit.reporting import ReportingEngine

from conftest import usd, TODAY


@pytest.fixture
def reporting(loan_manager, customer_manager, reminder_store):
    return ReportingEngine(loan_manager, customer_manager, reminder_store, currency=Currency.USD)


@pytest.fixture
def loan_book(loan_manager, customer_manager, customer, loan):
    """Four loans: one partly paid, one paid, one overdue, one defaulted"""
    other = customer_manager.create_customer("Eric M", "+250722000111")

    paid = loan_manager.create_loan(other.id, usd(100), TODAY)
    loan_manager.record_payment(paid.id, usd(100), payment_date=TODAY)

    overdue = loan_manager.create_loan(other.id, usd(300), TODAY - timedelta(days=5))
    loan_manager.refresh_statuses(TODAY)

    written_off = loan_manager.create_loan(customer.id, usd(200), TODAY + timedelta(days=10))
    loan_manager.mark_defaulted(written_off.id, "Moved away")

    return {"partial": loan, "paid": paid, "overdue": overdue, "defaulted": written_off}


class TestPortfolioStats:
    """Test headline loan book numbers"""

    def test_empty_book(self, reporting):
        stats = reporting.loan_portfolio_stats()

        assert stats.total_loans == 0
        assert stats.default_rate == Decimal("0.00")
        assert stats.total_outstanding == usd(0)

    def test_counts_and_totals(self, reporting, loan_book):
        stats = reporting.loan_portfolio_stats()

        assert stats.total_loans == 4
        assert stats.active_loans == 1
        assert stats.paid_loans == 1
        assert stats.overdue_loans == 1
        assert stats.defaulted_loans == 1
        assert stats.total_outstanding == usd(1300)
        assert stats.total_collected == usd(300)
        assert stats.avg_loan_amount == usd(400)
        assert stats.default_rate == Decimal("25.00")

    def test_to_dict(self, reporting, loan_book):
        data = reporting.loan_portfolio_stats().to_dict()

        assert data["total_outstanding"] == "1300.00"
        assert data["default_rate"] == "25.00"
        assert data["currency"] == "USD"


class TestCustomerRisk:
    """Test per-customer risk summaries"""

    def test_sorted_by_outstanding(self, reporting, loan_book):
        summaries = reporting.customer_risk_summaries()

        assert [s.name for s in summaries] == ["Amina Uwase", "Eric M"]
        assert summaries[0].outstanding == usd(1000)
        assert summaries[0].total_loans == 2
        assert summaries[1].outstanding == usd(300)

    def test_customers_without_loans_left_out(self, reporting, customer_manager):
        customer_manager.create_customer("Walk-in", "+250733000999")

        assert reporting.customer_risk_summaries() == []

    def test_summary_fields(self, reporting, loan_book):
        summary = next(s for s in reporting.customer_risk_summaries() if s.name == "Eric M")
        data = summary.to_dict()

        assert data["payment_count"] == 1
        assert data["on_time_rate"] == "1"
        assert data["risk_level"] == RiskLevel.LOW.value
        assert data["last_payment_date"] == TODAY.isoformat()


class TestReminderActivity:
    """Test the recent reminder feed"""

    def test_activity_includes_customer_name(self, reporting, scheduler, reminder_store, loan_book):
        scheduler.run(TODAY)
        reminder = reminder_store.list_recent_reminders()[0]
        reminder_store.mark_reminder_sent(reminder.id, "wamid.1")

        activity = reporting.reminder_activity()

        assert len(activity) == 1
        assert activity[0]["customer_name"] == "Eric M"
        assert activity[0]["reminder_type"] == "overdue"
        assert activity[0]["is_sent"] is True
