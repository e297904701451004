"""
Reporting endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_ledger_system, to_http_exception
from ..system import LedgerSystem


router = APIRouter()


@router.get("/loans")
def loan_portfolio(system: LedgerSystem = Depends(get_ledger_system)):
    """Loan portfolio statistics"""
    try:
        return system.reporting_engine.loan_portfolio_stats().to_dict()
    except Exception as e:
        raise to_http_exception(e)


@router.get("/customer-risk")
def customer_risk(system: LedgerSystem = Depends(get_ledger_system)):
    """Borrowers by outstanding balance with risk levels"""
    try:
        summaries = system.reporting_engine.customer_risk_summaries()
        return {"customers": [s.to_dict() for s in summaries]}
    except Exception as e:
        raise to_http_exception(e)


@router.get("/reminder-activity")
def reminder_activity(limit: int = 20, system: LedgerSystem = Depends(get_ledger_system)):
    """Recent reminder activity"""
    try:
        return {"activity": system.reporting_engine.reminder_activity(limit)}
    except Exception as e:
        raise to_http_exception(e)


@router.get("/audit-integrity")
def audit_integrity(system: LedgerSystem = Depends(get_ledger_system)):
    """Verify the audit hash chain"""
    try:
        return system.audit_trail.verify_integrity()
    except Exception as e:
        raise to_http_exception(e)
