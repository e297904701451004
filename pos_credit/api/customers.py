"""
Customer endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_ledger_system, to_http_exception
from .schemas import (
    CreateCustomerRequest, UpdateCustomerRequest, customer_payload, loan_payload, risk_payload
)
from ..system import LedgerSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_customer(
    request: CreateCustomerRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Register a customer"""
    try:
        customer = system.customer_manager.create_customer(
            name=request.name,
            phone=request.phone,
            email=request.email,
            address=request.address,
            notes=request.notes
        )
        return customer_payload(customer)
    except Exception as e:
        raise to_http_exception(e)


@router.get("")
def list_customers(
    include_inactive: bool = False,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List customers"""
    try:
        customers = system.customer_manager.list_customers(include_inactive=include_inactive)
        return {"customers": [customer_payload(c) for c in customers]}
    except Exception as e:
        raise to_http_exception(e)


@router.get("/{customer_id}")
def get_customer(customer_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Get customer details"""
    try:
        return customer_payload(system.customer_manager.require_customer(customer_id))
    except Exception as e:
        raise to_http_exception(e)


@router.put("/{customer_id}")
def update_customer(
    customer_id: str,
    request: UpdateCustomerRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Update contact details"""
    try:
        customer = system.customer_manager.update_customer_info(
            customer_id,
            name=request.name,
            phone=request.phone,
            email=request.email,
            address=request.address,
            notes=request.notes
        )
        return customer_payload(customer)
    except Exception as e:
        raise to_http_exception(e)


@router.post("/{customer_id}/deactivate")
def deactivate_customer(customer_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Soft-delete a customer"""
    try:
        customer = system.customer_manager.deactivate_customer(customer_id)
        return {"customer_id": customer.id, "is_active": customer.is_active}
    except Exception as e:
        raise to_http_exception(e)


@router.get("/{customer_id}/risk")
def get_customer_risk(customer_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Live risk assessment"""
    try:
        return risk_payload(system.loan_manager.assess_customer(customer_id))
    except Exception as e:
        raise to_http_exception(e)


@router.get("/{customer_id}/loans")
def get_customer_loans(customer_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Loans of one customer"""
    try:
        system.customer_manager.require_customer(customer_id)
        loans = system.loan_manager.get_customer_loans(customer_id)
        return {"customer_id": customer_id, "loans": [loan_payload(loan) for loan in loans]}
    except Exception as e:
        raise to_http_exception(e)
