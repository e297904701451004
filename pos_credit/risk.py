"""
Risk Classification Module

Derives a customer's repayment risk tier from payment timeliness history,
escalated one tier when outstanding credit is large relative to the
customer's usual loan size. The tier drives reminder tone and is shown at
checkout before extending more credit.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import List, Optional, Sequence, Any

from .currency import Money, Currency
from .customers import Customer, RiskLevel, PaymentHistoryEntry


DEFAULT_LOW_THRESHOLD = Decimal("0.85")
DEFAULT_MEDIUM_THRESHOLD = Decimal("0.60")
DEFAULT_OUTSTANDING_MULTIPLE = Decimal("3")


def on_time_rate(history: Sequence[PaymentHistoryEntry]) -> Optional[Decimal]:
    """Share of on-time payments, or None when there is no history"""
    if not history:
        return None
    on_time = sum(1 for entry in history if entry.on_time)
    return Decimal(on_time) / Decimal(len(history))


@dataclass
class RiskAssessment:
    """Result of assessing a customer's credit risk"""
    customer_id: str
    risk_level: RiskLevel
    history_level: RiskLevel
    on_time_rate: Optional[Decimal]
    payment_count: int
    outstanding: Money
    average_loan_size: Money
    escalated: bool

    @property
    def reason(self) -> str:
        if self.on_time_rate is None:
            basis = "no payment history"
        else:
            basis = f"on-time rate {self.on_time_rate:.2%} over {self.payment_count} payments"
        if self.escalated:
            return f"{basis}; outstanding {self.outstanding.to_string()} escalated from {self.history_level.value}"
        return basis


class RiskClassifier:
    """
    Classifies customers into low/medium/high risk

    Thresholds are inclusive lower bounds: a rate equal to the low threshold
    is low risk, a rate equal to the medium threshold is medium risk.
    """

    def __init__(
        self,
        low_threshold: Decimal = DEFAULT_LOW_THRESHOLD,
        medium_threshold: Decimal = DEFAULT_MEDIUM_THRESHOLD,
        outstanding_multiple: Decimal = DEFAULT_OUTSTANDING_MULTIPLE,
        currency: Currency = Currency.USD
    ):
        if not (Decimal("0") <= medium_threshold <= low_threshold <= Decimal("1")):
            raise ValueError("Risk thresholds must satisfy 0 <= medium <= low <= 1")
        if outstanding_multiple <= 0:
            raise ValueError("Outstanding multiple must be positive")
        self.low_threshold = Decimal(low_threshold)
        self.medium_threshold = Decimal(medium_threshold)
        self.outstanding_multiple = Decimal(outstanding_multiple)
        self.currency = currency

    @classmethod
    def from_config(cls, config: Any, currency: Currency) -> 'RiskClassifier':
        return cls(
            low_threshold=config.risk_low_threshold,
            medium_threshold=config.risk_medium_threshold,
            outstanding_multiple=config.risk_outstanding_multiple,
            currency=currency
        )

    def classify_history(self, history: Sequence[PaymentHistoryEntry]) -> RiskLevel:
        """Risk tier from payment history alone; new customers start low"""
        rate = on_time_rate(history)
        if rate is None or rate >= self.low_threshold:
            return RiskLevel.LOW
        if rate >= self.medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    def classify(
        self,
        history: Sequence[PaymentHistoryEntry],
        outstanding: Optional[Money] = None,
        average_loan_size: Optional[Money] = None
    ) -> RiskLevel:
        """
        Risk tier from history, escalated one tier for heavy exposure

        Args:
            history: Chronological payment timeliness entries
            outstanding: Current unpaid balance across the customer's loans
            average_loan_size: Mean total amount of the customer's loans

        Returns:
            RiskLevel
        """
        level = self.classify_history(history)
        if self._exceeds_exposure(outstanding, average_loan_size):
            level = level.escalate()
        return level

    def _exceeds_exposure(self, outstanding: Optional[Money], average_loan_size: Optional[Money]) -> bool:
        if outstanding is None or average_loan_size is None:
            return False
        if not average_loan_size.is_positive():
            return False
        return outstanding.amount > average_loan_size.amount * self.outstanding_multiple

    def assess(self, customer: Customer, loans: List[Any]) -> RiskAssessment:
        """
        Assess a customer against their loans

        Outstanding counts every loan with a remaining balance (active, overdue
        or defaulted); the average loan size is taken over all loans.
        """
        history = customer.repayment_behavior.payment_history
        currency = loans[0].total_amount.currency if loans else self.currency

        outstanding = Money.zero(currency)
        total = Money.zero(currency)
        for loan in loans:
            total = total + loan.total_amount
            if loan.remaining_balance.is_positive():
                outstanding = outstanding + loan.remaining_balance

        average = total / Decimal(len(loans)) if loans else Money.zero(currency)

        history_level = self.classify_history(history)
        escalated = self._exceeds_exposure(outstanding, average)
        risk_level = history_level.escalate() if escalated else history_level

        return RiskAssessment(
            customer_id=customer.id,
            risk_level=risk_level,
            history_level=history_level,
            on_time_rate=on_time_rate(history),
            payment_count=len(history),
            outstanding=outstanding,
            average_loan_size=average,
            escalated=escalated and risk_level != history_level
        )
