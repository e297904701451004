"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import get_ledger_system, to_http_exception
from .schemas import (
    CreateLoanRequest, SaleLoanRequest, LoanPaymentRequest, DefaultLoanRequest,
    loan_payload, payment_payload
)
from ..loans import LoanStatus, PaymentType
from ..system import LedgerSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_loan(
    request: CreateLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Open a loan for a customer"""
    try:
        loan = system.loan_manager.create_loan(
            customer_id=request.customer_id,
            total_amount=system.money(request.total_amount),
            due_date=request.due_date,
            initial_payment=system.money(request.initial_payment) if request.initial_payment else None,
            sale_id=request.sale_id,
            agreement_terms=request.agreement_terms,
            payment_method=request.payment_method,
            performed_by=request.performed_by
        )
        return loan_payload(loan)
    except Exception as e:
        raise to_http_exception(e)


@router.post("/from-sale")
def create_loan_from_sale(
    request: SaleLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Checkout credit rule: full payment opens nothing, partial and loan-only sales open a loan"""
    try:
        customer_id = request.customer_id
        if not customer_id and request.customer and request.payment_type != PaymentType.FULL.value:
            customer = system.customer_manager.find_or_create_by_phone(
                name=request.customer.name,
                phone=request.customer.phone,
                email=request.customer.email,
                address=request.customer.address,
                performed_by=request.performed_by
            )
            customer_id = customer.id

        loan = system.loan_manager.originate_from_sale(
            sale_id=request.sale_id,
            sale_total=system.money(request.sale_total),
            payment_type=PaymentType(request.payment_type),
            customer_id=customer_id,
            due_date=request.due_date,
            partial_amount=system.money(request.partial_amount) if request.partial_amount else None,
            agreement_terms=request.agreement_terms,
            payment_method=request.payment_method,
            performed_by=request.performed_by
        )
        return {"sale_id": request.sale_id, "loan": loan_payload(loan) if loan else None}
    except Exception as e:
        raise to_http_exception(e)


@router.get("")
def list_loans(
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List loans, newest first"""
    try:
        loan_status = LoanStatus(status) if status else None
        loans = system.loan_manager.list_loans(status=loan_status, customer_id=customer_id)
        return {"loans": [loan_payload(loan) for loan in loans]}
    except Exception as e:
        raise to_http_exception(e)


@router.post("/refresh-statuses")
def refresh_statuses(system: LedgerSystem = Depends(get_ledger_system)):
    """Persist overdue/active statuses as of today"""
    try:
        return system.loan_manager.refresh_statuses()
    except Exception as e:
        raise to_http_exception(e)


@router.get("/{loan_id}")
def get_loan(loan_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Get loan details"""
    try:
        return loan_payload(system.loan_manager.require_loan(loan_id))
    except Exception as e:
        raise to_http_exception(e)


@router.get("/{loan_id}/payments")
def get_loan_payments(loan_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Payment history of a loan"""
    try:
        system.loan_manager.require_loan(loan_id)
        payments = system.loan_manager.get_loan_payments(loan_id)
        return {"loan_id": loan_id, "payments": [payment_payload(p) for p in payments]}
    except Exception as e:
        raise to_http_exception(e)


@router.post("/{loan_id}/payments", status_code=status.HTTP_201_CREATED)
def record_payment(
    loan_id: str,
    request: LoanPaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record a repayment"""
    try:
        payment = system.loan_manager.record_payment(
            loan_id=loan_id,
            amount=system.money(request.amount),
            payment_date=request.payment_date,
            notes=request.notes,
            payment_method=request.payment_method,
            idempotency_key=request.idempotency_key,
            performed_by=request.performed_by
        )
        loan = system.loan_manager.require_loan(loan_id)
        return {"payment": payment_payload(payment), "loan": loan_payload(loan)}
    except Exception as e:
        raise to_http_exception(e)


@router.post("/{loan_id}/default")
def mark_defaulted(
    loan_id: str,
    request: DefaultLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Administrative write-off"""
    try:
        loan = system.loan_manager.mark_defaulted(loan_id, request.reason, performed_by=request.performed_by)
        return loan_payload(loan)
    except Exception as e:
        raise to_http_exception(e)
