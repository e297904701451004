"""
Test suite for loans module

Tests balance invariants, payment application, status derivation,
sale origination, compare-and-swap updates and idempotent payments.
"""

import pytest
import threading
from decimal import Decimal
from datetime import date, timedelta
from dataclasses import replace

from pos_credit.currency import Money, Currency
from pos_credit.loans import (
    Loan, LoanStatus, PaymentType, apply_payment, derive_status
)
from pos_credit.customers import RiskLevel
from pos_credit.errors import (
    InvalidAmount, InvalidLoanState, LoanNotFound, CustomerNotFound, ConcurrentModification
)
from pos_credit.events import LedgerEvent
from pos_credit.audit import AuditEventType

from conftest import usd, TODAY


class TestApplyPayment:
    """Test the pure payment function"""

    def test_partial_payment_reduces_balance(self, loan):
        updated = apply_payment(loan, usd(300), TODAY)

        assert updated.paid_amount == usd(500)
        assert updated.remaining_balance == usd(500)
        assert updated.status == LoanStatus.ACTIVE
        assert updated.last_payment_date == TODAY

    def test_exact_payment_marks_paid(self, loan):
        updated = apply_payment(loan, usd(800), TODAY)

        assert updated.remaining_balance.is_zero()
        assert updated.paid_amount == usd(1000)
        assert updated.status == LoanStatus.PAID

    def test_overpayment_rejected(self, loan):
        with pytest.raises(InvalidAmount) as exc_info:
            apply_payment(loan, usd(900), TODAY)

        assert exc_info.value.amount == usd(900)
        assert exc_info.value.remaining_balance == usd(800)
        assert loan.remaining_balance == usd(800)

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount_rejected(self, loan, amount):
        with pytest.raises(InvalidAmount):
            apply_payment(loan, usd(amount), TODAY)

    def test_wrong_currency_rejected(self, loan):
        with pytest.raises(InvalidAmount):
            apply_payment(loan, Money(Decimal("10"), Currency.EUR), TODAY)

    def test_paid_loan_accepts_nothing_more(self, loan):
        paid = apply_payment(loan, usd(800), TODAY)

        with pytest.raises(InvalidAmount):
            apply_payment(paid, usd("0.01"), TODAY)

    def test_defaulted_loan_rejects_payment(self, loan):
        defaulted = replace(loan, status=LoanStatus.DEFAULTED)

        with pytest.raises(InvalidLoanState):
            apply_payment(defaulted, usd(100), TODAY)

    def test_overdue_status_kept_on_partial_payment(self, loan):
        overdue = replace(loan, status=LoanStatus.OVERDUE)

        assert apply_payment(overdue, usd(100), TODAY).status == LoanStatus.OVERDUE

    def test_balance_invariant_after_every_payment(self, loan):
        current = loan
        for amount in ["100", "0.50", "250.25", "449.25"]:
            current = apply_payment(current, usd(amount), TODAY)
            assert current.remaining_balance == current.total_amount - current.paid_amount
            assert not current.remaining_balance.is_negative()
        assert current.status == LoanStatus.PAID


class TestDeriveStatus:
    """Test status derivation from balance and due date"""

    def test_active_before_and_on_due_date(self, loan):
        assert derive_status(loan, loan.due_date - timedelta(days=1)) == LoanStatus.ACTIVE
        assert derive_status(loan, loan.due_date) == LoanStatus.ACTIVE

    def test_overdue_after_due_date(self, loan):
        assert derive_status(loan, loan.due_date + timedelta(days=1)) == LoanStatus.OVERDUE

    def test_paid_when_balance_zero(self, loan):
        paid = apply_payment(loan, usd(800), TODAY)
        assert derive_status(paid, paid.due_date + timedelta(days=60)) == LoanStatus.PAID

    def test_never_returns_defaulted(self, loan):
        defaulted = replace(loan, status=LoanStatus.DEFAULTED)
        assert derive_status(defaulted, loan.due_date + timedelta(days=365)) == LoanStatus.OVERDUE


class TestLoanRecord:
    """Test loan dataclass validation"""

    def test_inconsistent_balance_rejected(self, loan):
        with pytest.raises(ValueError):
            replace(loan, remaining_balance=usd(799))

    def test_days_until_due(self, loan):
        assert loan.days_until_due(loan.due_date - timedelta(days=3)) == 3
        assert loan.days_until_due(loan.due_date + timedelta(days=2)) == -2


class TestLoanCreation:
    """Test loan origination"""

    def test_partial_sale_loan(self, loan_manager, loan):
        stored = loan_manager.get_loan(loan.id)

        assert stored.total_amount == usd(1000)
        assert stored.paid_amount == usd(200)
        assert stored.remaining_balance == usd(800)
        assert stored.status == LoanStatus.ACTIVE
        assert stored.sale_id == "SALE-001"
        assert "SALE-001" in stored.agreement_terms

    def test_initial_payment_recorded_as_payment(self, loan_manager, loan):
        payments = loan_manager.get_loan_payments(loan.id)

        assert len(payments) == 1
        assert payments[0].amount == usd(200)
        assert payments[0].notes == "Initial payment for sale SALE-001"

    def test_initial_payment_not_counted_as_repayment_history(self, customer_manager, loan):
        customer = customer_manager.get_customer(loan.customer_id)
        assert customer.repayment_behavior.payment_history == []

    def test_loan_without_initial_payment(self, loan_manager, customer):
        loan = loan_manager.create_loan(customer.id, usd(500), TODAY + timedelta(days=10))

        assert loan.paid_amount == usd(0)
        assert loan.remaining_balance == usd(500)
        assert loan_manager.get_loan_payments(loan.id) == []

    def test_initial_payment_must_be_below_total(self, loan_manager, customer):
        with pytest.raises(InvalidAmount):
            loan_manager.create_loan(customer.id, usd(500), TODAY, initial_payment=usd(500))

    def test_non_positive_total_rejected(self, loan_manager, customer):
        with pytest.raises(InvalidAmount):
            loan_manager.create_loan(customer.id, usd(0), TODAY)

    def test_unknown_customer(self, loan_manager):
        with pytest.raises(CustomerNotFound):
            loan_manager.create_loan("missing", usd(100), TODAY)

    def test_deactivated_customer_cannot_borrow(self, loan_manager, customer_manager, customer):
        customer_manager.deactivate_customer(customer.id)

        with pytest.raises(InvalidLoanState):
            loan_manager.create_loan(customer.id, usd(100), TODAY)

    def test_creation_is_audited_and_published(self, loan_manager, audit_trail, events, customer):
        received = []
        events.subscribe(LedgerEvent.LOAN_CREATED, received.append)

        loan = loan_manager.create_loan(customer.id, usd(300), TODAY, initial_payment=usd(50))

        audit_types = [e.event_type for e in audit_trail.get_events_for_entity("loan", loan.id)]
        assert AuditEventType.LOAN_CREATED in audit_types
        assert AuditEventType.LOAN_PAYMENT_RECORDED in audit_types
        assert len(received) == 1
        assert received[0].data["remaining_balance"] == "250.00"


class TestSaleOrigination:
    """Test the checkout credit rule"""

    def test_full_payment_opens_no_loan(self, loan_manager, customer):
        loan = loan_manager.originate_from_sale("SALE-9", usd(1000), PaymentType.FULL)

        assert loan is None
        assert loan_manager.list_loans() == []

    def test_partial_payment(self, loan_manager, customer):
        loan = loan_manager.originate_from_sale(
            "SALE-10", usd(1000), PaymentType.PARTIAL,
            customer_id=customer.id, due_date=TODAY + timedelta(days=14), partial_amount=usd(200)
        )

        assert loan.total_amount == usd(1000)
        assert loan.paid_amount == usd(200)
        assert loan.remaining_balance == usd(800)

    def test_loan_only_finances_whole_sale(self, loan_manager, customer):
        loan = loan_manager.originate_from_sale(
            "SALE-11", usd(450), PaymentType.LOAN_ONLY,
            customer_id=customer.id, due_date=TODAY + timedelta(days=14)
        )

        assert loan.remaining_balance == usd(450)
        assert loan.paid_amount == usd(0)

    def test_partial_amount_must_be_below_total(self, loan_manager, customer):
        with pytest.raises(InvalidAmount):
            loan_manager.originate_from_sale(
                "SALE-12", usd(100), PaymentType.PARTIAL,
                customer_id=customer.id, due_date=TODAY, partial_amount=usd(100)
            )

    def test_customer_required_for_credit(self, loan_manager):
        with pytest.raises(ValueError):
            loan_manager.originate_from_sale("SALE-13", usd(100), PaymentType.LOAN_ONLY, due_date=TODAY)

    def test_due_date_required_for_credit(self, loan_manager, customer):
        with pytest.raises(ValueError):
            loan_manager.originate_from_sale(
                "SALE-14", usd(100), PaymentType.LOAN_ONLY, customer_id=customer.id
            )


class TestRecordPayment:
    """Test persisted payments"""

    def test_payment_pays_off_loan(self, loan_manager, loan):
        payment = loan_manager.record_payment(loan.id, usd(800), payment_date=TODAY)
        stored = loan_manager.get_loan(loan.id)

        assert payment.amount == usd(800)
        assert stored.remaining_balance.is_zero()
        assert stored.status == LoanStatus.PAID
        assert stored.version == loan.version + 1

    def test_rejected_payment_leaves_loan_unchanged(self, loan_manager, loan):
        with pytest.raises(InvalidAmount):
            loan_manager.record_payment(loan.id, usd(900), payment_date=TODAY)

        stored = loan_manager.get_loan(loan.id)
        assert stored.remaining_balance == usd(800)
        assert stored.version == loan.version
        assert len(loan_manager.get_loan_payments(loan.id)) == 1

    def test_paid_loan_rejects_further_payments(self, loan_manager, loan):
        loan_manager.record_payment(loan.id, usd(800), payment_date=TODAY)

        with pytest.raises(InvalidAmount):
            loan_manager.record_payment(loan.id, usd(1), payment_date=TODAY)

    def test_payments_sum_to_paid_amount(self, loan_manager, loan):
        for amount in ["150", "75.50", "24.50"]:
            loan_manager.record_payment(loan.id, usd(amount), payment_date=TODAY)

        stored = loan_manager.get_loan(loan.id)
        total = sum((p.amount.amount for p in loan_manager.get_loan_payments(loan.id)), Decimal("0"))
        assert total == stored.paid_amount.amount == Decimal("450.00")

    def test_unknown_loan(self, loan_manager):
        with pytest.raises(LoanNotFound):
            loan_manager.record_payment("missing", usd(10), payment_date=TODAY)

    def test_idempotency_key_prevents_double_apply(self, loan_manager, loan):
        first = loan_manager.record_payment(loan.id, usd(100), payment_date=TODAY, idempotency_key="till-1-0042")
        second = loan_manager.record_payment(loan.id, usd(100), payment_date=TODAY, idempotency_key="till-1-0042")

        assert first.id == second.id
        assert loan_manager.get_loan(loan.id).remaining_balance == usd(700)
        assert len(loan_manager.get_loan_payments(loan.id)) == 2

    def test_on_time_flag_and_history(self, loan_manager, customer_manager, loan):
        on_time = loan_manager.record_payment(loan.id, usd(100), payment_date=loan.due_date)
        late = loan_manager.record_payment(loan.id, usd(100), payment_date=loan.due_date + timedelta(days=1))

        assert on_time.on_time is True
        assert late.on_time is False
        history = customer_manager.get_customer(loan.customer_id).repayment_behavior.payment_history
        assert [entry.on_time for entry in history] == [True, False]

    def test_late_payments_raise_stored_risk(self, loan_manager, customer_manager, loan):
        late = loan.due_date + timedelta(days=5)
        for _ in range(3):
            loan_manager.record_payment(loan.id, usd(50), payment_date=late)

        assert customer_manager.get_customer(loan.customer_id).risk_level == RiskLevel.HIGH

    def test_payment_events(self, loan_manager, events, loan):
        received = []
        events.subscribe_all(received.append)

        loan_manager.record_payment(loan.id, usd(800), payment_date=TODAY)

        types = [e.event_type for e in received]
        assert LedgerEvent.LOAN_PAYMENT in types
        assert LedgerEvent.LOAN_PAID in types

    def test_failure_inside_transaction_rolls_back_payment(self, loan_manager, customer_manager, loan, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("history write failed")

        monkeypatch.setattr(customer_manager, "record_payment_timeliness", broken)

        with pytest.raises(RuntimeError):
            loan_manager.record_payment(loan.id, usd(100), payment_date=TODAY)

        assert loan_manager.get_loan(loan.id).remaining_balance == usd(800)
        assert len(loan_manager.get_loan_payments(loan.id)) == 1


class TestCompareAndSwap:
    """Test optimistic concurrency on loan updates"""

    def test_stale_version_rejected(self, loan_manager, loan):
        loan_manager.record_payment(loan.id, usd(100), payment_date=TODAY)

        with pytest.raises(ConcurrentModification) as exc_info:
            loan_manager.update_loan_balance(
                loan.id, usd(500), usd(500), LoanStatus.ACTIVE, expected_version=loan.version
            )

        assert exc_info.value.expected_version == loan.version
        assert exc_info.value.actual_version == loan.version + 1
        assert loan_manager.get_loan(loan.id).remaining_balance == usd(700)

    def test_current_version_accepted(self, loan_manager, loan):
        updated = loan_manager.update_loan_balance(
            loan.id, usd(600), usd(400), LoanStatus.ACTIVE, expected_version=loan.version
        )

        assert updated.version == loan.version + 1
        assert loan_manager.get_loan(loan.id).remaining_balance == usd(400)

    def test_update_must_keep_invariant(self, loan_manager, loan):
        with pytest.raises(ValueError):
            loan_manager.update_loan_balance(
                loan.id, usd(600), usd(500), LoanStatus.ACTIVE, expected_version=loan.version
            )

    def test_unknown_loan(self, loan_manager):
        with pytest.raises(LoanNotFound):
            loan_manager.update_loan_balance("missing", usd(1), usd(1), LoanStatus.ACTIVE, expected_version=1)
        with pytest.raises(LoanNotFound):
            loan_manager.insert_payment("missing", usd(10), TODAY)

    def test_concurrent_tills_one_wins(self, loan_manager, loan):
        """Two cashiers read the same version; the second write loses"""
        till_a = loan_manager.get_loan(loan.id)
        till_b = loan_manager.get_loan(loan.id)

        after_a = apply_payment(till_a, usd(300), TODAY)
        loan_manager.update_loan_balance(
            loan.id, after_a.paid_amount, after_a.remaining_balance, after_a.status, till_a.version
        )

        after_b = apply_payment(till_b, usd(300), TODAY)
        with pytest.raises(ConcurrentModification):
            loan_manager.update_loan_balance(
                loan.id, after_b.paid_amount, after_b.remaining_balance, after_b.status, till_b.version
            )

        assert loan_manager.get_loan(loan.id).remaining_balance == usd(500)

    def test_overlapping_tills_both_recorded(self, loan_manager, loan, monkeypatch):
        """A till paying while another is mid-transaction waits instead of losing its payment"""
        original = loan_manager.update_loan_balance
        in_transaction = threading.Event()
        release = threading.Event()
        errors = []

        def slow_update(*args, **kwargs):
            if not in_transaction.is_set():
                in_transaction.set()
                release.wait(5)
            return original(*args, **kwargs)

        monkeypatch.setattr(loan_manager, "update_loan_balance", slow_update)

        def pay(amount):
            try:
                loan_manager.record_payment(loan.id, usd(amount), payment_date=TODAY)
            except Exception as e:
                errors.append(e)

        till_b = threading.Thread(target=pay, args=(100,))
        till_b.start()
        assert in_transaction.wait(5)

        till_a = threading.Thread(target=pay, args=(300,))
        till_a.start()
        till_a.join(0.2)
        release.set()
        till_b.join(5)
        till_a.join(5)

        assert errors == []
        assert loan_manager.get_loan(loan.id).remaining_balance == usd(400)
        amounts = sorted(p.amount.amount for p in loan_manager.get_loan_payments(loan.id))
        assert amounts == [Decimal("100"), Decimal("200"), Decimal("300")]


class TestStatusChanges:
    """Test status refresh and administrative default"""

    def test_refresh_marks_overdue(self, loan_manager, loan):
        results = loan_manager.refresh_statuses(loan.due_date + timedelta(days=1))

        assert results == {"loans_checked": 1, "marked_overdue": 1, "marked_active": 0}
        assert loan_manager.get_loan(loan.id).status == LoanStatus.OVERDUE

    def test_refresh_is_noop_before_due(self, loan_manager, loan):
        results = loan_manager.refresh_statuses(loan.due_date)

        assert results["marked_overdue"] == 0
        assert loan_manager.get_loan(loan.id).version == loan.version

    def test_list_by_status(self, loan_manager, customer, loan):
        other = loan_manager.create_loan(customer.id, usd(50), TODAY)
        loan_manager.record_payment(other.id, usd(50), payment_date=TODAY)

        assert [l.id for l in loan_manager.list_loans_by_status([LoanStatus.ACTIVE])] == [loan.id]
        assert [l.id for l in loan_manager.list_loans_by_status([LoanStatus.PAID])] == [other.id]

    def test_mark_defaulted(self, loan_manager, audit_trail, loan):
        defaulted = loan_manager.mark_defaulted(loan.id, "Customer moved away", performed_by="manager-1")

        assert defaulted.status == LoanStatus.DEFAULTED
        assert defaulted.default_reason == "Customer moved away"
        assert defaulted.defaulted_at is not None
        assert audit_trail.get_events_by_type(AuditEventType.LOAN_DEFAULTED)[-1].user_id == "manager-1"

    def test_defaulted_loan_is_terminal(self, loan_manager, loan):
        loan_manager.mark_defaulted(loan.id, "Unreachable")

        with pytest.raises(InvalidLoanState):
            loan_manager.record_payment(loan.id, usd(10), payment_date=TODAY)
        loan_manager.refresh_statuses(loan.due_date + timedelta(days=90))
        assert loan_manager.get_loan(loan.id).status == LoanStatus.DEFAULTED

    def test_paid_loan_cannot_default(self, loan_manager, loan):
        loan_manager.record_payment(loan.id, usd(800), payment_date=TODAY)

        with pytest.raises(InvalidLoanState):
            loan_manager.mark_defaulted(loan.id, "Too late")

    def test_default_requires_reason(self, loan_manager, loan):
        with pytest.raises(ValueError):
            loan_manager.mark_defaulted(loan.id, "  ")
