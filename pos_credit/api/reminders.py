"""
Reminder endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends

from .dependencies import get_ledger_system, to_http_exception
from .schemas import ManualMessageRequest, reminder_payload
from ..reminders import run_reminder_scheduler
from ..system import LedgerSystem


router = APIRouter()


@router.post("/run")
def run_scheduler(
    run_date: Optional[date] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Run the reminder scheduler now; returns messagesScheduled"""
    try:
        return run_reminder_scheduler(system.scheduler, run_date)
    except Exception as e:
        raise to_http_exception(e)


@router.post("/dispatch")
def dispatch_reminders(
    limit: Optional[int] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Send pending reminders"""
    try:
        return system.dispatcher.dispatch_pending(limit=limit).to_dict()
    except Exception as e:
        raise to_http_exception(e)


@router.get("")
def list_reminders(
    loan_id: Optional[str] = None,
    unsent: bool = False,
    limit: int = 50,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Recent reminders, or those of one loan"""
    try:
        if loan_id:
            reminders = system.reminder_store.list_reminders_for_loan(loan_id)
        elif unsent:
            reminders = system.reminder_store.list_unsent_reminders(limit=limit)
        else:
            reminders = system.reminder_store.list_recent_reminders(limit=limit)
        return {"reminders": [reminder_payload(r) for r in reminders]}
    except Exception as e:
        raise to_http_exception(e)


@router.post("/test-message")
def send_test_message(
    request: ManualMessageRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Send a one-off message through the configured channel"""
    try:
        result = system.dispatcher.send_test_message(request.phone, request.message)
        return {
            "success": result.success,
            "external_message_id": result.external_message_id,
            "reason": result.reason
        }
    except Exception as e:
        raise to_http_exception(e)
