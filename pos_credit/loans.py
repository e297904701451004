"""
Loan Module

Credit sales ledger: loan origination from a sale, payment application,
status derivation and administrative default.

The balance rules live in two pure functions, apply_payment and
derive_status. LoanManager persists their results: a payment insert and the
loan balance update run in one storage transaction, and every loan update is
a compare-and-swap on the loan's version so concurrent payments from two tills
cannot overwrite each other.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid
import logging

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, LedgerEvent
from .customers import CustomerManager
from .risk import RiskClassifier, RiskAssessment
from .errors import InvalidAmount, InvalidLoanState, LoanNotFound
from .logging_config import log_action


logger = logging.getLogger("pos_credit.loans")


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"         # Balance outstanding, not yet due
    PAID = "paid"             # Balance fully repaid
    OVERDUE = "overdue"       # Balance outstanding past the due date
    DEFAULTED = "defaulted"   # Written off by an administrator; terminal


OPEN_STATUSES = [LoanStatus.ACTIVE, LoanStatus.OVERDUE]


class PaymentType(Enum):
    """How a sale was settled at the till"""
    FULL = "full"            # Paid in full, no loan
    PARTIAL = "partial"      # Part paid now, remainder on credit
    LOAN_ONLY = "loan_only"  # Entire sale on credit


@dataclass
class Loan(StorageRecord):
    """Customer credit balance opened by a sale"""
    customer_id: str
    total_amount: Money
    paid_amount: Money
    remaining_balance: Money
    due_date: date
    status: LoanStatus = LoanStatus.ACTIVE
    sale_id: Optional[str] = None
    agreement_terms: Optional[str] = None
    version: int = 1
    last_payment_date: Optional[date] = None
    defaulted_at: Optional[datetime] = None
    default_reason: Optional[str] = None

    def __post_init__(self):
        if self.remaining_balance != self.total_amount - self.paid_amount:
            raise ValueError(
                f"Loan {self.id}: remaining balance {self.remaining_balance.to_string()} does not equal "
                f"total {self.total_amount.to_string()} minus paid {self.paid_amount.to_string()}"
            )
        if self.remaining_balance.is_negative():
            raise ValueError(f"Loan {self.id}: remaining balance cannot be negative")

    @property
    def currency(self) -> Currency:
        return self.total_amount.currency

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def days_until_due(self, today: date) -> int:
        """Positive before the due date, zero on it, negative once overdue"""
        return (self.due_date - today).days


@dataclass
class LoanPayment(StorageRecord):
    """Append-only repayment against a loan"""
    loan_id: str
    amount: Money
    payment_date: date
    payment_method: str = "cash"
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    on_time: bool = True


def apply_payment(loan: Loan, amount: Money, payment_date: date) -> Loan:
    """
    Apply a payment to a loan without persisting anything

    Args:
        loan: Current loan
        amount: Payment amount, must be positive and no more than the remaining balance
        payment_date: Date the money was received

    Returns:
        New Loan with paid amount, remaining balance and status updated

    Raises:
        InvalidAmount: If the amount is not positive or would overpay the loan
        InvalidLoanState: If the loan has been defaulted
    """
    if loan.status == LoanStatus.DEFAULTED:
        raise InvalidLoanState(f"Loan {loan.id} is defaulted and cannot accept payments")
    if amount.currency != loan.currency:
        raise InvalidAmount(
            f"Payment currency {amount.currency.code} does not match loan currency {loan.currency.code}",
            amount=amount
        )
    if not amount.is_positive():
        raise InvalidAmount(
            f"Payment amount must be positive, got {amount.to_string()}",
            amount=amount, remaining_balance=loan.remaining_balance
        )
    if amount > loan.remaining_balance:
        raise InvalidAmount(
            f"Payment {amount.to_string()} exceeds remaining balance {loan.remaining_balance.to_string()}",
            amount=amount, remaining_balance=loan.remaining_balance
        )

    paid_amount = loan.paid_amount + amount
    remaining_balance = loan.remaining_balance - amount
    status = LoanStatus.PAID if remaining_balance.is_zero() else loan.status

    return replace(
        loan,
        paid_amount=paid_amount,
        remaining_balance=remaining_balance,
        status=status,
        last_payment_date=payment_date
    )


def derive_status(loan: Loan, today: date) -> LoanStatus:
    """Status implied by balance and due date; never returns DEFAULTED"""
    if loan.remaining_balance.is_zero():
        return LoanStatus.PAID
    if today > loan.due_date:
        return LoanStatus.OVERDUE
    return LoanStatus.ACTIVE


def default_agreement_terms(total_amount: Money, due_date: date, sale_id: Optional[str] = None) -> str:
    prefix = f"Loan agreement for sale {sale_id}." if sale_id else "Loan agreement."
    return f"{prefix} Amount: {total_amount.format()}. Due: {due_date.isoformat()}."


class LoanManager:
    """
    Manages loan origination, repayment and status changes
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        customer_manager: CustomerManager,
        risk_classifier: Optional[RiskClassifier] = None,
        events: Optional[EventDispatcher] = None,
        currency: Currency = Currency.USD
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.customer_manager = customer_manager
        self.risk_classifier = risk_classifier or RiskClassifier(currency=currency)
        self.events = events or EventDispatcher()
        self.currency = currency

        self.loans_table = "loans"
        self.payments_table = "loan_payments"

    def create_loan(
        self,
        customer_id: str,
        total_amount: Money,
        due_date: date,
        initial_payment: Optional[Money] = None,
        sale_id: Optional[str] = None,
        agreement_terms: Optional[str] = None,
        payment_method: str = "cash",
        performed_by: Optional[str] = None
    ) -> Loan:
        """
        Open a loan for a customer

        The loan is stored with nothing paid; a non-zero initial payment is
        then applied as its first payment in the same transaction.

        Args:
            customer_id: Borrowing customer, must be active
            total_amount: Amount owed
            due_date: Date the full balance is due
            initial_payment: Amount paid at the till, at least zero and below the total
            sale_id: Originating sale
            agreement_terms: Free-text terms; a default agreement is generated when omitted
            payment_method: Method of the initial payment
            performed_by: Cashier id for the audit trail

        Returns:
            Created Loan
        """
        customer = self.customer_manager.require_customer(customer_id)
        if not customer.is_active:
            raise InvalidLoanState(f"Customer {customer_id} is deactivated and cannot take new credit")
        if due_date is None:
            raise ValueError("Due date is required for credit sales")
        if not total_amount.is_positive():
            raise InvalidAmount(f"Loan amount must be positive, got {total_amount.to_string()}", amount=total_amount)

        initial_payment = initial_payment or Money.zero(total_amount.currency)
        if initial_payment.currency != total_amount.currency:
            raise InvalidAmount("Initial payment currency must match loan currency", amount=initial_payment)
        if initial_payment.is_negative() or initial_payment >= total_amount:
            raise InvalidAmount(
                f"Initial payment {initial_payment.to_string()} must be at least zero "
                f"and less than the loan amount {total_amount.to_string()}",
                amount=initial_payment, remaining_balance=total_amount
            )

        now = datetime.now(timezone.utc)
        zero = Money.zero(total_amount.currency)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            total_amount=total_amount,
            paid_amount=zero,
            remaining_balance=total_amount,
            due_date=due_date,
            status=LoanStatus.ACTIVE,
            sale_id=sale_id,
            agreement_terms=agreement_terms or default_agreement_terms(total_amount, due_date, sale_id)
        )

        with self.storage.atomic():
            self.storage.save(self.loans_table, loan.id, self._loan_to_dict(loan))

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "customer_id": customer_id,
                    "sale_id": sale_id,
                    "total_amount": total_amount.to_string(),
                    "initial_payment": initial_payment.to_string(),
                    "due_date": due_date
                },
                user_id=performed_by
            )

            if initial_payment.is_positive():
                note = f"Initial payment for sale {sale_id}" if sale_id else "Initial payment"
                loan, _ = self._post_payment(
                    loan, initial_payment, now.date(),
                    notes=note, payment_method=payment_method,
                    track_timeliness=False, performed_by=performed_by
                )

        log_action(
            logger, "info", f"Loan created for customer {customer_id}",
            user_id=performed_by, action="create_loan", resource=f"loan:{loan.id}",
            extra={"total_amount": total_amount.to_string(), "remaining_balance": loan.remaining_balance.to_string()}
        )
        self.events.emit(
            LedgerEvent.LOAN_CREATED, "loan", loan.id,
            {"customer_id": customer_id, "total_amount": str(total_amount.amount),
             "remaining_balance": str(loan.remaining_balance.amount)}
        )

        return loan

    def originate_from_sale(
        self,
        sale_id: str,
        sale_total: Money,
        payment_type: PaymentType,
        customer_id: Optional[str] = None,
        due_date: Optional[date] = None,
        partial_amount: Optional[Money] = None,
        agreement_terms: Optional[str] = None,
        payment_method: str = "cash",
        performed_by: Optional[str] = None
    ) -> Optional[Loan]:
        """
        Apply the checkout credit rule to a completed sale

        Returns:
            The opened Loan, or None for a sale paid in full
        """
        if payment_type == PaymentType.FULL:
            return None

        if not customer_id:
            raise ValueError("A customer is required for partial and loan-only sales")
        if due_date is None:
            raise ValueError("Due date is required for credit sales")

        if payment_type == PaymentType.PARTIAL:
            if partial_amount is None or not partial_amount.is_positive():
                raise InvalidAmount("Partial payment amount must be positive", amount=partial_amount)
            if partial_amount >= sale_total:
                raise InvalidAmount(
                    f"Partial payment {partial_amount.to_string()} must be less than the sale total {sale_total.to_string()}",
                    amount=partial_amount, remaining_balance=sale_total
                )
            paid_now = partial_amount
        else:
            paid_now = Money.zero(sale_total.currency)

        return self.create_loan(
            customer_id=customer_id,
            total_amount=sale_total,
            due_date=due_date,
            initial_payment=paid_now,
            sale_id=sale_id,
            agreement_terms=agreement_terms,
            payment_method=payment_method,
            performed_by=performed_by
        )

    def record_payment(
        self,
        loan_id: str,
        amount: Money,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
        payment_method: str = "cash",
        idempotency_key: Optional[str] = None,
        performed_by: Optional[str] = None
    ) -> LoanPayment:
        """
        Record a repayment against a loan

        A repeated idempotency_key for the same loan returns the payment that
        was recorded the first time and changes nothing.

        Raises:
            LoanNotFound: Unknown loan
            InvalidAmount: Amount not positive or above the remaining balance
            InvalidLoanState: Loan is defaulted
            ConcurrentModification: Loan changed between read and write
        """
        payment_date = payment_date or date.today()

        with self.storage.atomic():
            if idempotency_key:
                existing = self._find_payment_by_key(loan_id, idempotency_key)
                if existing:
                    logger.info(f"Duplicate payment request {idempotency_key} for loan {loan_id} ignored")
                    return existing

            loan = self.require_loan(loan_id)
            updated, payment = self._post_payment(
                loan, amount, payment_date,
                notes=notes, payment_method=payment_method,
                idempotency_key=idempotency_key, performed_by=performed_by
            )

        log_action(
            logger, "info", f"Payment of {amount.to_string()} recorded",
            user_id=performed_by, action="record_payment", resource=f"loan:{loan_id}",
            extra={"remaining_balance": updated.remaining_balance.to_string(), "status": updated.status.value}
        )
        self.events.emit(
            LedgerEvent.LOAN_PAYMENT, "loan", loan_id,
            {"payment_id": payment.id, "amount": str(amount.amount),
             "remaining_balance": str(updated.remaining_balance.amount)}
        )
        if updated.status == LoanStatus.PAID:
            self.events.emit(LedgerEvent.LOAN_PAID, "loan", loan_id, {"customer_id": updated.customer_id})

        return payment

    def _post_payment(
        self,
        loan: Loan,
        amount: Money,
        payment_date: date,
        notes: Optional[str] = None,
        payment_method: str = "cash",
        idempotency_key: Optional[str] = None,
        track_timeliness: bool = True,
        performed_by: Optional[str] = None
    ):
        """Apply, insert and persist one payment; caller holds the transaction"""
        updated = apply_payment(loan, amount, payment_date)
        on_time = payment_date <= loan.due_date

        payment = self.insert_payment(
            loan.id, amount, payment_date,
            notes=notes, payment_method=payment_method,
            idempotency_key=idempotency_key, on_time=on_time
        )
        updated = self.update_loan_balance(
            loan.id, updated.paid_amount, updated.remaining_balance, updated.status,
            expected_version=loan.version, last_payment_date=payment_date
        )

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_PAYMENT_RECORDED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "payment_id": payment.id,
                "amount": amount.to_string(),
                "payment_method": payment_method,
                "paid_amount": updated.paid_amount.to_string(),
                "remaining_balance": updated.remaining_balance.to_string(),
                "on_time": on_time
            },
            user_id=performed_by
        )
        if updated.status == LoanStatus.PAID:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_PAID_OFF,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"total_amount": updated.total_amount.to_string()},
                user_id=performed_by
            )

        if track_timeliness:
            self.customer_manager.record_payment_timeliness(loan.customer_id, payment_date, on_time)
            self.refresh_customer_risk(loan.customer_id)

        return updated, payment

    def insert_payment(
        self,
        loan_id: str,
        amount: Money,
        payment_date: date,
        notes: Optional[str] = None,
        payment_method: str = "cash",
        idempotency_key: Optional[str] = None,
        on_time: bool = True
    ) -> LoanPayment:
        """Persist a payment row; the loan balance must be updated in the same transaction"""
        if not self.storage.exists(self.loans_table, loan_id):
            raise LoanNotFound(loan_id)

        now = datetime.now(timezone.utc)
        payment = LoanPayment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method,
            notes=notes,
            idempotency_key=idempotency_key,
            on_time=on_time
        )
        self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))
        return payment

    def update_loan_balance(
        self,
        loan_id: str,
        paid_amount: Money,
        remaining_balance: Money,
        status: LoanStatus,
        expected_version: int,
        last_payment_date: Optional[date] = None
    ) -> Loan:
        """
        Compare-and-swap the balance fields of a loan

        Raises:
            LoanNotFound: Unknown loan
            ValueError: If the new balance breaks total = paid + remaining
            ConcurrentModification: If the stored version is not expected_version
        """
        loan = self.require_loan(loan_id)
        updated = replace(
            loan,
            paid_amount=paid_amount,
            remaining_balance=remaining_balance,
            status=status,
            last_payment_date=last_payment_date or loan.last_payment_date
        )
        return self._compare_and_save(updated, expected_version)

    def _compare_and_save(self, loan: Loan, expected_version: int) -> Loan:
        saved = replace(loan, version=expected_version + 1, updated_at=datetime.now(timezone.utc))
        self.storage.compare_and_save(
            self.loans_table, saved.id, self._loan_to_dict(saved), expected_version
        )
        return saved

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        loan_dict = self.storage.load(self.loans_table, loan_id)
        if loan_dict:
            return self._loan_from_dict(loan_dict)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        """Get loan by ID or raise LoanNotFound"""
        loan = self.get_loan(loan_id)
        if not loan:
            raise LoanNotFound(loan_id)
        return loan

    def list_loans_by_status(self, statuses: List[LoanStatus]) -> List[Loan]:
        """Loans in any of the given statuses, earliest due first"""
        loans = []
        for status in statuses:
            loans.extend(
                self._loan_from_dict(data)
                for data in self.storage.find(self.loans_table, {"status": status.value})
            )
        loans.sort(key=lambda loan: (loan.due_date, loan.created_at))
        return loans

    def list_loans(self, status: Optional[LoanStatus] = None, customer_id: Optional[str] = None) -> List[Loan]:
        """List loans, newest first, optionally filtered"""
        filters: Dict[str, Any] = {}
        if status:
            filters["status"] = status.value
        if customer_id:
            filters["customer_id"] = customer_id
        loans = [self._loan_from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def get_customer_loans(self, customer_id: str) -> List[Loan]:
        """Get all loans for a customer"""
        loans_data = self.storage.find(self.loans_table, {"customer_id": customer_id})
        loans = [self._loan_from_dict(data) for data in loans_data]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def get_loan_payments(self, loan_id: str) -> List[LoanPayment]:
        """Get payment history for loan"""
        payments_data = self.storage.find(self.payments_table, {"loan_id": loan_id})
        payments = [self._payment_from_dict(data) for data in payments_data]
        payments.sort(key=lambda p: (p.payment_date, p.created_at))
        return payments

    def refresh_loan_status(self, loan: Loan, today: Optional[date] = None) -> Loan:
        """Persist the derived status of an open loan if it has changed"""
        today = today or date.today()
        if not loan.is_open:
            return loan

        new_status = derive_status(loan, today)
        if new_status == loan.status:
            return loan

        updated = self._compare_and_save(replace(loan, status=new_status), loan.version)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_STATUS_CHANGED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"old_status": loan.status, "new_status": new_status, "as_of": today}
        )
        self.events.emit(
            LedgerEvent.LOAN_STATUS_CHANGED, "loan", loan.id,
            {"old_status": loan.status.value, "new_status": new_status.value}
        )
        logger.info(f"Loan {loan.id} status {loan.status.value} -> {new_status.value}")

        return updated

    def refresh_statuses(self, today: Optional[date] = None) -> Dict[str, int]:
        """Persist derived statuses for all open loans"""
        today = today or date.today()
        results = {"loans_checked": 0, "marked_overdue": 0, "marked_active": 0}

        for loan in self.list_loans_by_status(OPEN_STATUSES):
            results["loans_checked"] += 1
            updated = self.refresh_loan_status(loan, today)
            if updated.status != loan.status:
                if updated.status == LoanStatus.OVERDUE:
                    results["marked_overdue"] += 1
                elif updated.status == LoanStatus.ACTIVE:
                    results["marked_active"] += 1

        return results

    def mark_defaulted(self, loan_id: str, reason: str, performed_by: Optional[str] = None) -> Loan:
        """
        Administrative write-off of a loan

        Raises:
            InvalidLoanState: If the loan is already paid
        """
        loan = self.require_loan(loan_id)
        if loan.status == LoanStatus.DEFAULTED:
            return loan
        if loan.status == LoanStatus.PAID:
            raise InvalidLoanState(f"Loan {loan_id} is paid and cannot be defaulted")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to default a loan")

        now = datetime.now(timezone.utc)
        updated = self._compare_and_save(
            replace(loan, status=LoanStatus.DEFAULTED, defaulted_at=now, default_reason=reason.strip()),
            loan.version
        )

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_DEFAULTED,
            entity_type="loan",
            entity_id=loan_id,
            metadata={
                "previous_status": loan.status,
                "remaining_balance": loan.remaining_balance.to_string(),
                "reason": updated.default_reason
            },
            user_id=performed_by
        )
        log_action(
            logger, "warning", f"Loan {loan_id} marked defaulted",
            user_id=performed_by, action="mark_defaulted", resource=f"loan:{loan_id}",
            extra={"reason": updated.default_reason}
        )
        self.events.emit(
            LedgerEvent.LOAN_DEFAULTED, "loan", loan_id,
            {"customer_id": loan.customer_id, "remaining_balance": str(loan.remaining_balance.amount)}
        )

        self.refresh_customer_risk(loan.customer_id)
        return updated

    def assess_customer(self, customer_id: str) -> RiskAssessment:
        """Live risk assessment from history and current loans"""
        customer = self.customer_manager.require_customer(customer_id)
        return self.risk_classifier.assess(customer, self.get_customer_loans(customer_id))

    def refresh_customer_risk(self, customer_id: str) -> RiskAssessment:
        """Assess a customer and persist the resulting risk level"""
        assessment = self.assess_customer(customer_id)
        self.customer_manager.update_customer_risk_level(customer_id, assessment.risk_level, assessment.reason)
        return assessment

    def _find_payment_by_key(self, loan_id: str, idempotency_key: str) -> Optional[LoanPayment]:
        matches = self.storage.find(
            self.payments_table, {"loan_id": loan_id, "idempotency_key": idempotency_key}
        )
        if matches:
            return self._payment_from_dict(matches[0])
        return None

    def _loan_to_dict(self, loan: Loan) -> Dict[str, Any]:
        """Convert loan to dictionary"""
        result = {
            "id": loan.id,
            "created_at": loan.created_at.isoformat(),
            "updated_at": loan.updated_at.isoformat(),
            "customer_id": loan.customer_id,
            "sale_id": loan.sale_id,
            "currency": loan.currency.code,
            "due_date": loan.due_date.isoformat(),
            "status": loan.status.value,
            "agreement_terms": loan.agreement_terms,
            "version": loan.version,
            "last_payment_date": loan.last_payment_date.isoformat() if loan.last_payment_date else None,
            "defaulted_at": loan.defaulted_at.isoformat() if loan.defaulted_at else None,
            "default_reason": loan.default_reason
        }
        for field_name in ["total_amount", "paid_amount", "remaining_balance"]:
            result[field_name] = str(getattr(loan, field_name).amount)
        return result

    def _loan_from_dict(self, data: Dict[str, Any]) -> Loan:
        """Convert dictionary to loan"""
        currency = Currency[data["currency"]]

        def get_money(field_name: str) -> Money:
            return Money(Decimal(data[field_name]), currency)

        return Loan(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            customer_id=data["customer_id"],
            sale_id=data.get("sale_id"),
            total_amount=get_money("total_amount"),
            paid_amount=get_money("paid_amount"),
            remaining_balance=get_money("remaining_balance"),
            due_date=date.fromisoformat(data["due_date"]),
            status=LoanStatus(data["status"]),
            agreement_terms=data.get("agreement_terms"),
            version=data["version"],
            last_payment_date=date.fromisoformat(data["last_payment_date"]) if data.get("last_payment_date") else None,
            defaulted_at=datetime.fromisoformat(data["defaulted_at"]) if data.get("defaulted_at") else None,
            default_reason=data.get("default_reason")
        )

    def _payment_to_dict(self, payment: LoanPayment) -> Dict[str, Any]:
        """Convert payment to dictionary"""
        return {
            "id": payment.id,
            "created_at": payment.created_at.isoformat(),
            "updated_at": payment.updated_at.isoformat(),
            "loan_id": payment.loan_id,
            "amount": str(payment.amount.amount),
            "currency": payment.amount.currency.code,
            "payment_date": payment.payment_date.isoformat(),
            "payment_method": payment.payment_method,
            "notes": payment.notes,
            "idempotency_key": payment.idempotency_key,
            "on_time": payment.on_time
        }

    def _payment_from_dict(self, data: Dict[str, Any]) -> LoanPayment:
        """Convert dictionary to payment"""
        return LoanPayment(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            loan_id=data["loan_id"],
            amount=Money(Decimal(data["amount"]), Currency[data["currency"]]),
            payment_date=date.fromisoformat(data["payment_date"]),
            payment_method=data.get("payment_method", "cash"),
            notes=data.get("notes"),
            idempotency_key=data.get("idempotency_key"),
            on_time=data.get("on_time", True)
        )
