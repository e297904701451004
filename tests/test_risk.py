"""
Test suite for risk classification
"""

import pytest
from decimal import Decimal
from datetime import timedelta

from pos_credit.currency import Currency
from pos_credit.customers import RiskLevel, PaymentHistoryEntry
from pos_credit.risk import RiskClassifier, on_time_rate
from pos_credit.loans import LoanStatus

from conftest import usd, TODAY


def history(on_time: int, late: int):
    entries = [PaymentHistoryEntry(date=TODAY, on_time=True) for _ in range(on_time)]
    entries += [PaymentHistoryEntry(date=TODAY, on_time=False) for _ in range(late)]
    return entries


@pytest.fixture
def classifier():
    return RiskClassifier(currency=Currency.USD)


class TestHistoryClassification:
    """Test thresholds on the on-time rate"""

    def test_no_history_is_low(self, classifier):
        assert classifier.classify([]) == RiskLevel.LOW
        assert on_time_rate([]) is None

    def test_nine_of_ten_is_low(self, classifier):
        assert classifier.classify(history(9, 1)) == RiskLevel.LOW

    def test_low_threshold_is_inclusive(self, classifier):
        # 17 / 20 = 0.85 exactly
        assert on_time_rate(history(17, 3)) == Decimal("0.85")
        assert classifier.classify(history(17, 3)) == RiskLevel.LOW

    def test_just_below_low_threshold_is_medium(self, classifier):
        assert classifier.classify(history(16, 4)) == RiskLevel.MEDIUM

    def test_medium_threshold_is_inclusive(self, classifier):
        # 3 / 5 = 0.60 exactly
        assert classifier.classify(history(3, 2)) == RiskLevel.MEDIUM

    def test_below_medium_threshold_is_high(self, classifier):
        assert classifier.classify(history(1, 1)) == RiskLevel.HIGH
        assert classifier.classify(history(0, 4)) == RiskLevel.HIGH

    def test_custom_thresholds(self):
        strict = RiskClassifier(low_threshold=Decimal("0.95"), medium_threshold=Decimal("0.90"))
        assert strict.classify(history(9, 1)) == RiskLevel.MEDIUM

    @pytest.mark.parametrize("low,medium", [("0.5", "0.6"), ("1.1", "0.6"), ("0.8", "-0.1")])
    def test_invalid_thresholds_rejected(self, low, medium):
        with pytest.raises(ValueError):
            RiskClassifier(low_threshold=Decimal(low), medium_threshold=Decimal(medium))


class TestExposureEscalation:
    """Test one-tier escalation for large outstanding balances"""

    def test_escalates_one_tier(self, classifier):
        assert classifier.classify(history(10, 0), usd(400), usd(100)) == RiskLevel.MEDIUM
        assert classifier.classify(history(3, 2), usd(400), usd(100)) == RiskLevel.HIGH
        assert classifier.classify(history(0, 2), usd(400), usd(100)) == RiskLevel.HIGH

    def test_equal_to_multiple_does_not_escalate(self, classifier):
        assert classifier.classify(history(10, 0), usd(300), usd(100)) == RiskLevel.LOW

    def test_no_loans_no_escalation(self, classifier):
        assert classifier.classify(history(10, 0), usd(0), usd(0)) == RiskLevel.LOW


class TestAssessment:
    """Test assessing stored customers against their loans"""

    def test_new_customer_with_one_loan(self, loan_manager, loan):
        assessment = loan_manager.assess_customer(loan.customer_id)

        assert assessment.risk_level == RiskLevel.LOW
        assert assessment.payment_count == 0
        assert assessment.outstanding == usd(800)
        assert assessment.average_loan_size == usd(1000)
        assert not assessment.escalated
        assert assessment.reason == "no payment history"

    def test_nine_of_ten_on_time_stays_low(self, loan_manager, customer_manager, customer):
        loan = loan_manager.create_loan(customer.id, usd(1000), TODAY + timedelta(days=30))
        for _ in range(9):
            loan_manager.record_payment(loan.id, usd(10), payment_date=TODAY)
        loan_manager.record_payment(loan.id, usd(10), payment_date=loan.due_date + timedelta(days=1))

        assessment = loan_manager.assess_customer(customer.id)
        assert assessment.on_time_rate == Decimal("0.9")
        assert assessment.risk_level == RiskLevel.LOW
        assert customer_manager.get_customer(customer.id).risk_level == RiskLevel.LOW

    def test_many_open_loans_escalate(self, loan_manager, customer_manager, customer):
        for _ in range(4):
            loan_manager.create_loan(customer.id, usd(100), TODAY + timedelta(days=30))

        assessment = loan_manager.refresh_customer_risk(customer.id)

        assert assessment.outstanding == usd(400)
        assert assessment.escalated
        assert assessment.risk_level == RiskLevel.MEDIUM
        assert "escalated from low" in assessment.reason
        assert customer_manager.get_customer(customer.id).risk_level == RiskLevel.MEDIUM

    def test_defaulted_balance_counts_as_outstanding(self, loan_manager, loan):
        loan_manager.mark_defaulted(loan.id, "Unreachable")

        assessment = loan_manager.assess_customer(loan.customer_id)
        assert loan_manager.get_loan(loan.id).status == LoanStatus.DEFAULTED
        assert assessment.outstanding == usd(800)

    def test_paid_loans_not_outstanding(self, loan_manager, loan):
        loan_manager.record_payment(loan.id, usd(800), payment_date=TODAY)

        assert loan_manager.assess_customer(loan.customer_id).outstanding == usd(0)
