"""
Reminder Scheduling Module

Daily scan over open loans that produces WhatsApp reminder messages:
a heads-up a few days before the due date, a notice on the due date, daily
overdue notices, and a one-time escalation once a loan is long overdue.
Message tone follows the customer's risk level.

A run is idempotent per calendar day: at most one reminder of each type is
created per loan per day, so the scheduler can be re-run after a crash.
"""

from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid
import logging

from .currency import Money
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, LedgerEvent
from .customers import CustomerManager, Customer, RiskLevel
from .loans import LoanManager, Loan, OPEN_STATUSES
from .errors import PartialSchedulerFailure, ReminderNotFound
from .logging_config import log_action


logger = logging.getLogger("pos_credit.reminders")


class ReminderType(Enum):
    """Reminder kinds relative to the loan due date"""
    BEFORE_DUE = "before_due"
    ON_DUE = "on_due"
    OVERDUE = "overdue"
    ESCALATION = "escalation"


REMINDER_TITLES = {
    ReminderType.BEFORE_DUE: "Payment reminder",
    ReminderType.ON_DUE: "Payment due today",
    ReminderType.OVERDUE: "Payment overdue",
    ReminderType.ESCALATION: "Final notice",
}

TONE_OPENINGS = {
    RiskLevel.LOW: "Hi {name}, just a friendly reminder that",
    RiskLevel.MEDIUM: "Hello {name}, this is a reminder that",
    RiskLevel.HIGH: "Dear {name}, please note that",
}

TONE_CLOSINGS = {
    RiskLevel.LOW: "Thank you for shopping with {store}!",
    RiskLevel.MEDIUM: "Please arrange payment at your earliest convenience.",
    RiskLevel.HIGH: "Payment is required immediately. Please contact {store}{phone} to settle your account.",
}


@dataclass
class Reminder(StorageRecord):
    """Scheduled message for one loan"""
    loan_id: str
    customer_id: str
    reminder_type: ReminderType
    scheduled_date: date
    message_content: str
    risk_level: RiskLevel = RiskLevel.LOW
    title: str = ""
    is_sent: bool = False
    sent_date: Optional[datetime] = None
    external_message_id: Optional[str] = None
    last_error: Optional[str] = None
    attempts: int = 0
    cancelled: bool = False


@dataclass
class SchedulerRunResult:
    """Outcome of one scheduler run"""
    run_date: date
    loans_checked: int = 0
    messages_scheduled: int = 0
    duplicates_skipped: int = 0
    not_due: int = 0
    reminders: List[Reminder] = field(default_factory=list)
    failures: List[PartialSchedulerFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messagesScheduled": self.messages_scheduled,
            "runDate": self.run_date.isoformat(),
            "loansChecked": self.loans_checked,
            "duplicatesSkipped": self.duplicates_skipped,
            "notDue": self.not_due,
            "failures": [{"loanId": f.loan_id, "reason": f.reason} for f in self.failures],
        }


class ReminderStore:
    """Persistence of reminder rows"""

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        events: Optional[EventDispatcher] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.events = events or EventDispatcher()
        self.table_name = "reminders"

    def insert_reminder(self, reminder: Reminder) -> Reminder:
        self.storage.save(self.table_name, reminder.id, self._reminder_to_dict(reminder))
        self.audit_trail.log_event(
            event_type=AuditEventType.REMINDER_SCHEDULED,
            entity_type="reminder",
            entity_id=reminder.id,
            metadata={
                "loan_id": reminder.loan_id,
                "reminder_type": reminder.reminder_type,
                "scheduled_date": reminder.scheduled_date
            }
        )
        self.events.emit(
            LedgerEvent.REMINDER_SCHEDULED, "reminder", reminder.id,
            {"loan_id": reminder.loan_id, "reminder_type": reminder.reminder_type.value}
        )
        return reminder

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        data = self.storage.load(self.table_name, reminder_id)
        if data:
            return self._reminder_from_dict(data)
        return None

    def require_reminder(self, reminder_id: str) -> Reminder:
        reminder = self.get_reminder(reminder_id)
        if not reminder:
            raise ReminderNotFound(reminder_id)
        return reminder

    def list_reminders_for_loan(self, loan_id: str) -> List[Reminder]:
        reminders = [
            self._reminder_from_dict(data)
            for data in self.storage.find(self.table_name, {"loan_id": loan_id})
        ]
        reminders.sort(key=lambda r: (r.scheduled_date, r.created_at))
        return reminders

    def list_reminders_for_loan_on_date(self, loan_id: str, scheduled_date: date) -> List[Reminder]:
        return [
            self._reminder_from_dict(data)
            for data in self.storage.find(self.table_name, {
                "loan_id": loan_id,
                "scheduled_date": scheduled_date.isoformat()
            })
        ]

    def has_escalation(self, loan_id: str, before: Optional[date] = None) -> bool:
        """True once an escalation, sent or pending, exists for the loan (scheduled before `before` if given)"""
        escalations = self.storage.find(self.table_name, {
            "loan_id": loan_id,
            "reminder_type": ReminderType.ESCALATION.value
        })
        if before is not None:
            escalations = [e for e in escalations if date.fromisoformat(e["scheduled_date"]) < before]
        return bool(escalations)

    def list_unsent_reminders(
        self,
        limit: Optional[int] = None,
        max_attempts: Optional[int] = None
    ) -> List[Reminder]:
        """
        Unsent, uncancelled reminders, oldest first

        Reminders with max_attempts or more failed deliveries are left out
        before the limit is applied.
        """
        reminders = [
            self._reminder_from_dict(data)
            for data in self.storage.find(self.table_name, {"is_sent": False})
            if not data.get("cancelled", False)
        ]
        if max_attempts is not None:
            reminders = [r for r in reminders if r.attempts < max_attempts]
        reminders.sort(key=lambda r: (r.scheduled_date, r.created_at))
        if limit:
            reminders = reminders[:limit]
        return reminders

    def list_recent_reminders(self, limit: int = 50) -> List[Reminder]:
        """Most recent reminders first"""
        reminders = [self._reminder_from_dict(data) for data in self.storage.load_all(self.table_name)]
        reminders.sort(key=lambda r: (r.scheduled_date, r.created_at), reverse=True)
        return reminders[:limit]

    def mark_reminder_sent(
        self,
        reminder_id: str,
        external_message_id: Optional[str],
        sent_date: Optional[datetime] = None
    ) -> Reminder:
        reminder = self.require_reminder(reminder_id)
        reminder.is_sent = True
        reminder.sent_date = sent_date or datetime.now(timezone.utc)
        reminder.external_message_id = external_message_id
        reminder.last_error = None
        reminder.attempts += 1
        reminder.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, reminder.id, self._reminder_to_dict(reminder))

        self.audit_trail.log_event(
            event_type=AuditEventType.REMINDER_SENT,
            entity_type="reminder",
            entity_id=reminder.id,
            metadata={"loan_id": reminder.loan_id, "external_message_id": external_message_id}
        )
        self.events.emit(
            LedgerEvent.REMINDER_SENT, "reminder", reminder.id,
            {"loan_id": reminder.loan_id, "external_message_id": external_message_id}
        )
        return reminder

    def mark_reminder_failed(self, reminder_id: str, reason: str) -> Reminder:
        """Record a failed delivery attempt; the reminder stays unsent for retry"""
        reminder = self.require_reminder(reminder_id)
        reminder.attempts += 1
        reminder.last_error = reason
        reminder.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, reminder.id, self._reminder_to_dict(reminder))

        self.audit_trail.log_event(
            event_type=AuditEventType.REMINDER_FAILED,
            entity_type="reminder",
            entity_id=reminder.id,
            metadata={"loan_id": reminder.loan_id, "reason": reason, "attempts": reminder.attempts}
        )
        self.events.emit(
            LedgerEvent.REMINDER_FAILED, "reminder", reminder.id,
            {"loan_id": reminder.loan_id, "reason": reason}
        )
        return reminder

    def cancel_reminder(self, reminder_id: str, reason: str) -> Reminder:
        """Withdraw an unsent reminder so it is never delivered"""
        reminder = self.require_reminder(reminder_id)
        if reminder.is_sent:
            raise ValueError(f"Reminder {reminder_id} was already sent")
        reminder.cancelled = True
        reminder.last_error = reason
        reminder.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, reminder.id, self._reminder_to_dict(reminder))

        self.audit_trail.log_event(
            event_type=AuditEventType.REMINDER_CANCELLED,
            entity_type="reminder",
            entity_id=reminder.id,
            metadata={"loan_id": reminder.loan_id, "reason": reason}
        )
        self.events.emit(
            LedgerEvent.REMINDER_CANCELLED, "reminder", reminder.id,
            {"loan_id": reminder.loan_id, "reason": reason}
        )
        return reminder

    def _reminder_to_dict(self, reminder: Reminder) -> Dict[str, Any]:
        return {
            "id": reminder.id,
            "created_at": reminder.created_at.isoformat(),
            "updated_at": reminder.updated_at.isoformat(),
            "loan_id": reminder.loan_id,
            "customer_id": reminder.customer_id,
            "reminder_type": reminder.reminder_type.value,
            "scheduled_date": reminder.scheduled_date.isoformat(),
            "message_content": reminder.message_content,
            "risk_level": reminder.risk_level.value,
            "title": reminder.title,
            "is_sent": reminder.is_sent,
            "sent_date": reminder.sent_date.isoformat() if reminder.sent_date else None,
            "external_message_id": reminder.external_message_id,
            "last_error": reminder.last_error,
            "attempts": reminder.attempts,
            "cancelled": reminder.cancelled
        }

    def _reminder_from_dict(self, data: Dict[str, Any]) -> Reminder:
        return Reminder(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            loan_id=data["loan_id"],
            customer_id=data["customer_id"],
            reminder_type=ReminderType(data["reminder_type"]),
            scheduled_date=date.fromisoformat(data["scheduled_date"]),
            message_content=data["message_content"],
            risk_level=RiskLevel(data.get("risk_level", RiskLevel.LOW.value)),
            title=data.get("title", ""),
            is_sent=data.get("is_sent", False),
            sent_date=datetime.fromisoformat(data["sent_date"]) if data.get("sent_date") else None,
            external_message_id=data.get("external_message_id"),
            last_error=data.get("last_error"),
            attempts=data.get("attempts", 0),
            cancelled=data.get("cancelled", False)
        )


def compose_message(
    reminder_type: ReminderType,
    customer_name: str,
    remaining_balance: Money,
    due_date: date,
    days_overdue: int,
    risk_level: RiskLevel,
    store_name: str,
    store_phone: str = ""
) -> str:
    """Build reminder text with the tone for the customer's risk level"""
    balance = remaining_balance.format()
    due = due_date.strftime("%d %b %Y")

    if reminder_type == ReminderType.BEFORE_DUE:
        body = f"your payment of {balance} to {store_name} is due on {due}."
    elif reminder_type == ReminderType.ON_DUE:
        body = f"your payment of {balance} to {store_name} is due today ({due})."
    elif reminder_type == ReminderType.OVERDUE:
        unit = "day" if days_overdue == 1 else "days"
        body = f"your payment of {balance} to {store_name} was due on {due} and is {days_overdue} {unit} overdue."
    elif reminder_type == ReminderType.ESCALATION:
        body = (
            f"your balance of {balance} with {store_name} has been unpaid for {days_overdue} days "
            f"since {due} and your account has been referred for follow-up."
        )
    else:
        raise ValueError(f"Unknown reminder type: {reminder_type}")

    opening = TONE_OPENINGS[risk_level].format(name=customer_name)
    closing = TONE_CLOSINGS[risk_level].format(
        store=store_name,
        phone=f" on {store_phone}" if store_phone else ""
    )
    return f"{opening} {body} {closing}"


class ReminderScheduler:
    """
    Produces the day's reminders for open loans

    Reminder type by days until due (delta):
        delta == lead_days                     -> before_due
        delta == 0                             -> on_due
        delta < -escalation_after_days, first  -> escalation
        delta < 0                              -> overdue
    """

    def __init__(
        self,
        reminder_store: ReminderStore,
        loan_manager: LoanManager,
        customer_manager: CustomerManager,
        audit_trail: AuditTrail,
        lead_days: int = 3,
        escalation_after_days: int = 14,
        store_name: str = "Our Store",
        store_phone: str = ""
    ):
        if lead_days <= 0:
            raise ValueError("Reminder lead days must be positive")
        if escalation_after_days < 0:
            raise ValueError("Escalation threshold cannot be negative")
        self.reminder_store = reminder_store
        self.loan_manager = loan_manager
        self.customer_manager = customer_manager
        self.audit_trail = audit_trail
        self.lead_days = lead_days
        self.escalation_after_days = escalation_after_days
        self.store_name = store_name
        self.store_phone = store_phone

    def classify(self, loan: Loan, today: date) -> Optional[ReminderType]:
        """Reminder type due for a loan today, or None"""
        delta = loan.days_until_due(today)
        if delta == self.lead_days:
            return ReminderType.BEFORE_DUE
        if delta == 0:
            return ReminderType.ON_DUE
        # Earlier days only, so a same-day re-run still classifies as escalation and is deduplicated
        if delta < -self.escalation_after_days and not self.reminder_store.has_escalation(loan.id, before=today):
            return ReminderType.ESCALATION
        if delta < 0:
            return ReminderType.OVERDUE
        return None

    def run(self, today: Optional[date] = None) -> SchedulerRunResult:
        """
        Scan open loans and persist the reminders due today

        Args:
            today: Run date, defaults to the current date

        Returns:
            SchedulerRunResult with counts and per-loan failures

        Raises:
            StoreUnavailable: If the open loans cannot be fetched
        """
        today = today or date.today()
        result = SchedulerRunResult(run_date=today)

        loans = self.loan_manager.list_loans_by_status(OPEN_STATUSES)
        result.loans_checked = len(loans)

        for loan in loans:
            try:
                outcome = self._process_loan(loan, today)
            except Exception as e:
                failure = PartialSchedulerFailure(loan.id, str(e))
                result.failures.append(failure)
                logger.error(f"Skipping loan {loan.id}: {e}")
                continue

            if outcome is None:
                result.not_due += 1
            elif outcome is False:
                result.duplicates_skipped += 1
            else:
                result.reminders.append(outcome)
                result.messages_scheduled += 1

        self.audit_trail.log_event(
            event_type=AuditEventType.SCHEDULER_RUN,
            entity_type="scheduler",
            entity_id=today.isoformat(),
            metadata={
                "loans_checked": result.loans_checked,
                "messages_scheduled": result.messages_scheduled,
                "duplicates_skipped": result.duplicates_skipped,
                "failures": len(result.failures)
            }
        )
        log_action(
            logger, "info", f"Reminder scheduler scheduled {result.messages_scheduled} messages",
            action="run_scheduler", resource=f"scheduler:{today.isoformat()}",
            extra={
                "loans_checked": result.loans_checked,
                "duplicates_skipped": result.duplicates_skipped,
                "failures": len(result.failures)
            }
        )

        return result

    def _process_loan(self, loan: Loan, today: date):
        """Returns the new Reminder, False for a same-day duplicate, None when nothing is due"""
        loan = self.loan_manager.refresh_loan_status(loan, today)
        if not loan.is_open:
            return None

        reminder_type = self.classify(loan, today)
        if reminder_type is None:
            return None

        existing = self.reminder_store.list_reminders_for_loan_on_date(loan.id, today)
        if any(r.reminder_type == reminder_type for r in existing):
            return False

        customer = self.customer_manager.require_customer(loan.customer_id)
        assessment = self.loan_manager.refresh_customer_risk(customer.id)

        return self.reminder_store.insert_reminder(
            self._build_reminder(loan, customer, reminder_type, assessment.risk_level, today)
        )

    def _build_reminder(
        self,
        loan: Loan,
        customer: Customer,
        reminder_type: ReminderType,
        risk_level: RiskLevel,
        today: date
    ) -> Reminder:
        now = datetime.now(timezone.utc)
        message = compose_message(
            reminder_type,
            customer_name=customer.name,
            remaining_balance=loan.remaining_balance,
            due_date=loan.due_date,
            days_overdue=max(0, -loan.days_until_due(today)),
            risk_level=risk_level,
            store_name=self.store_name,
            store_phone=self.store_phone
        )
        return Reminder(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan.id,
            customer_id=customer.id,
            reminder_type=reminder_type,
            scheduled_date=today,
            message_content=message,
            risk_level=risk_level,
            title=REMINDER_TITLES[reminder_type]
        )


def run_reminder_scheduler(scheduler: ReminderScheduler, today: Optional[date] = None) -> Dict[str, Any]:
    """Operator trigger; returns {"messagesScheduled": n, ...}"""
    return scheduler.run(today).to_dict()
