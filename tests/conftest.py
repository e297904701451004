"""
Shared fixtures: in-memory ledger components
"""

import pytest
from decimal import Decimal
from datetime import date, timedelta

from pos_credit.currency import Money, Currency
from pos_credit.storage import InMemoryStorage
from pos_credit.audit import AuditTrail
from pos_credit.events import EventDispatcher
from pos_credit.customers import CustomerManager
from pos_credit.risk import RiskClassifier
from pos_credit.loans import LoanManager
from pos_credit.reminders import ReminderStore, ReminderScheduler


TODAY = date(2024, 6, 15)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def customer_manager(storage, audit_trail, events):
    return CustomerManager(storage, audit_trail, events)


@pytest.fixture
def loan_manager(storage, audit_trail, customer_manager, events):
    return LoanManager(
        storage, audit_trail, customer_manager,
        risk_classifier=RiskClassifier(currency=Currency.USD),
        events=events,
        currency=Currency.USD
    )


@pytest.fixture
def reminder_store(storage, audit_trail, events):
    return ReminderStore(storage, audit_trail, events)


@pytest.fixture
def scheduler(reminder_store, loan_manager, customer_manager, audit_trail):
    return ReminderScheduler(
        reminder_store, loan_manager, customer_manager, audit_trail,
        lead_days=3, escalation_after_days=14, store_name="Corner Shop", store_phone="+250788000000"
    )


@pytest.fixture
def customer(customer_manager):
    return customer_manager.create_customer("Amina Uwase", "+250 788 123 456")


@pytest.fixture
def loan(loan_manager, customer):
    """1000 sale with 200 paid at the till, due in 30 days"""
    return loan_manager.create_loan(
        customer_id=customer.id,
        total_amount=usd(1000),
        due_date=TODAY + timedelta(days=30),
        initial_payment=usd(200),
        sale_id="SALE-001"
    )
