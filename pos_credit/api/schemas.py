"""
Pydantic schemas for API requests and response payload builders
"""

from datetime import date
from typing import Dict, Optional, Any, Literal
from pydantic import BaseModel, Field

from ..customers import Customer
from ..loans import Loan, LoanPayment
from ..reminders import Reminder
from ..risk import RiskAssessment


# Customer schemas
class CreateCustomerRequest(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class UpdateCustomerRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


# Loan schemas
class CreateLoanRequest(BaseModel):
    customer_id: str
    total_amount: str = Field(..., description="Decimal amount as string")
    due_date: date
    initial_payment: Optional[str] = Field(None, description="Amount paid at the till")
    sale_id: Optional[str] = None
    agreement_terms: Optional[str] = None
    payment_method: str = "cash"
    performed_by: Optional[str] = None


class SaleCustomerModel(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None


class SaleLoanRequest(BaseModel):
    sale_id: str
    sale_total: str = Field(..., description="Sale total as decimal string")
    payment_type: Literal["full", "partial", "loan_only"]
    customer_id: Optional[str] = None
    customer: Optional[SaleCustomerModel] = Field(None, description="Registered on the fly when no id is given")
    due_date: Optional[date] = None
    partial_amount: Optional[str] = None
    agreement_terms: Optional[str] = None
    payment_method: str = "cash"
    performed_by: Optional[str] = None


class LoanPaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    payment_date: Optional[date] = None
    notes: Optional[str] = None
    payment_method: str = "cash"
    idempotency_key: Optional[str] = Field(None, description="Repeated keys do not re-apply the payment")
    performed_by: Optional[str] = None


class DefaultLoanRequest(BaseModel):
    reason: str
    performed_by: Optional[str] = None


# Reminder schemas
class ManualMessageRequest(BaseModel):
    phone: str
    message: str


def customer_payload(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "email": customer.email,
        "address": customer.address,
        "notes": customer.notes,
        "is_active": customer.is_active,
        "risk_level": customer.risk_level.value,
        "payment_history": [
            {"date": entry.date.isoformat(), "on_time": entry.on_time}
            for entry in customer.repayment_behavior.payment_history
        ],
        "created_at": customer.created_at.isoformat()
    }


def loan_payload(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "customer_id": loan.customer_id,
        "sale_id": loan.sale_id,
        "currency": loan.currency.code,
        "total_amount": str(loan.total_amount.amount),
        "paid_amount": str(loan.paid_amount.amount),
        "remaining_balance": str(loan.remaining_balance.amount),
        "due_date": loan.due_date.isoformat(),
        "status": loan.status.value,
        "agreement_terms": loan.agreement_terms,
        "version": loan.version,
        "last_payment_date": loan.last_payment_date.isoformat() if loan.last_payment_date else None,
        "defaulted_at": loan.defaulted_at.isoformat() if loan.defaulted_at else None,
        "default_reason": loan.default_reason,
        "created_at": loan.created_at.isoformat()
    }


def payment_payload(payment: LoanPayment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "loan_id": payment.loan_id,
        "amount": str(payment.amount.amount),
        "currency": payment.amount.currency.code,
        "payment_date": payment.payment_date.isoformat(),
        "payment_method": payment.payment_method,
        "notes": payment.notes,
        "idempotency_key": payment.idempotency_key,
        "on_time": payment.on_time
    }


def reminder_payload(reminder: Reminder) -> Dict[str, Any]:
    return {
        "id": reminder.id,
        "loan_id": reminder.loan_id,
        "customer_id": reminder.customer_id,
        "reminder_type": reminder.reminder_type.value,
        "scheduled_date": reminder.scheduled_date.isoformat(),
        "title": reminder.title,
        "message_content": reminder.message_content,
        "risk_level": reminder.risk_level.value,
        "is_sent": reminder.is_sent,
        "sent_date": reminder.sent_date.isoformat() if reminder.sent_date else None,
        "external_message_id": reminder.external_message_id,
        "last_error": reminder.last_error,
        "attempts": reminder.attempts,
        "cancelled": reminder.cancelled
    }


def risk_payload(assessment: RiskAssessment) -> Dict[str, Any]:
    return {
        "customer_id": assessment.customer_id,
        "risk_level": assessment.risk_level.value,
        "history_level": assessment.history_level.value,
        "on_time_rate": str(assessment.on_time_rate) if assessment.on_time_rate is not None else None,
        "payment_count": assessment.payment_count,
        "outstanding": str(assessment.outstanding.amount),
        "average_loan_size": str(assessment.average_loan_size.amount),
        "escalated": assessment.escalated,
        "reason": assessment.reason
    }
