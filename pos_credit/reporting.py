"""
Reporting Module

Loan portfolio statistics, per-customer risk summaries and the reminder
activity feed shown on the loan reports screen.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from .currency import Money, Currency
from .customers import CustomerManager, RiskLevel
from .loans import LoanManager, LoanStatus
from .reminders import ReminderStore


@dataclass
class LoanPortfolioStats:
    """Headline numbers for the loan book"""
    total_loans: int
    active_loans: int
    overdue_loans: int
    paid_loans: int
    defaulted_loans: int
    total_outstanding: Money
    total_collected: Money
    default_rate: Decimal     # percentage of loans defaulted
    avg_loan_amount: Money

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_loans": self.total_loans,
            "active_loans": self.active_loans,
            "overdue_loans": self.overdue_loans,
            "paid_loans": self.paid_loans,
            "defaulted_loans": self.defaulted_loans,
            "total_outstanding": str(self.total_outstanding.amount),
            "total_collected": str(self.total_collected.amount),
            "default_rate": str(self.default_rate),
            "avg_loan_amount": str(self.avg_loan_amount.amount),
            "currency": self.total_outstanding.currency.code
        }


@dataclass
class CustomerRiskSummary:
    """Risk view of one borrowing customer"""
    customer_id: str
    name: str
    phone: str
    total_loans: int
    outstanding: Money
    stored_risk_level: RiskLevel
    assessed_risk_level: RiskLevel
    payment_count: int
    on_time_rate: Optional[Decimal]
    last_payment_date: Optional[date]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "name": self.name,
            "phone": self.phone,
            "total_loans": self.total_loans,
            "outstanding": str(self.outstanding.amount),
            "risk_level": self.stored_risk_level.value,
            "assessed_risk_level": self.assessed_risk_level.value,
            "payment_count": self.payment_count,
            "on_time_rate": str(self.on_time_rate) if self.on_time_rate is not None else None,
            "last_payment_date": self.last_payment_date.isoformat() if self.last_payment_date else None
        }


class ReportingEngine:
    """Read-only reports over loans, customers and reminders"""

    def __init__(
        self,
        loan_manager: LoanManager,
        customer_manager: CustomerManager,
        reminder_store: ReminderStore,
        currency: Currency = Currency.USD
    ):
        self.loan_manager = loan_manager
        self.customer_manager = customer_manager
        self.reminder_store = reminder_store
        self.currency = currency

    def loan_portfolio_stats(self) -> LoanPortfolioStats:
        loans = self.loan_manager.list_loans()
        counts = {status: 0 for status in LoanStatus}
        outstanding = Money.zero(self.currency)
        collected = Money.zero(self.currency)
        principal = Money.zero(self.currency)

        for loan in loans:
            counts[loan.status] += 1
            if loan.status != LoanStatus.PAID:
                outstanding = outstanding + loan.remaining_balance
            collected = collected + loan.paid_amount
            principal = principal + loan.total_amount

        total = len(loans)
        if total:
            default_rate = (
                Decimal(counts[LoanStatus.DEFAULTED]) * Decimal("100") / Decimal(total)
            ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            average = principal / Decimal(total)
        else:
            default_rate = Decimal("0.00")
            average = Money.zero(self.currency)

        return LoanPortfolioStats(
            total_loans=total,
            active_loans=counts[LoanStatus.ACTIVE],
            overdue_loans=counts[LoanStatus.OVERDUE],
            paid_loans=counts[LoanStatus.PAID],
            defaulted_loans=counts[LoanStatus.DEFAULTED],
            total_outstanding=outstanding,
            total_collected=collected,
            default_rate=default_rate,
            avg_loan_amount=average
        )

    def customer_risk_summaries(self) -> List[CustomerRiskSummary]:
        """Customers with at least one loan, largest outstanding first"""
        summaries = []
        for customer in self.customer_manager.list_customers(include_inactive=True):
            loans = self.loan_manager.get_customer_loans(customer.id)
            if not loans:
                continue
            assessment = self.loan_manager.risk_classifier.assess(customer, loans)
            summaries.append(CustomerRiskSummary(
                customer_id=customer.id,
                name=customer.name,
                phone=customer.phone,
                total_loans=len(loans),
                outstanding=assessment.outstanding,
                stored_risk_level=customer.risk_level,
                assessed_risk_level=assessment.risk_level,
                payment_count=assessment.payment_count,
                on_time_rate=assessment.on_time_rate,
                last_payment_date=customer.last_payment_date
            ))

        summaries.sort(key=lambda s: s.outstanding.amount, reverse=True)
        return summaries

    def reminder_activity(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Recent reminders joined with customer names"""
        names: Dict[str, str] = {}
        activity = []
        for reminder in self.reminder_store.list_recent_reminders(limit):
            if reminder.customer_id not in names:
                customer = self.customer_manager.get_customer(reminder.customer_id)
                names[reminder.customer_id] = customer.name if customer else "Unknown"
            activity.append({
                "id": reminder.id,
                "loan_id": reminder.loan_id,
                "customer_name": names[reminder.customer_id],
                "reminder_type": reminder.reminder_type.value,
                "scheduled_date": reminder.scheduled_date.isoformat(),
                "is_sent": reminder.is_sent,
                "sent_date": reminder.sent_date.isoformat() if reminder.sent_date else None,
                "attempts": reminder.attempts,
                "last_error": reminder.last_error,
                "cancelled": reminder.cancelled
            })
        return activity
