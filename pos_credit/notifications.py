"""
Notification Dispatcher Module

Delivers reminder and transaction messages to customers over a messaging
channel (WhatsApp Cloud API, a generic webhook, or the log for development)
and records the delivery outcome on the reminder.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from abc import ABC, abstractmethod
import logging
import requests

from .customers import CustomerManager
from .events import EventDispatcher, EventPayload, LedgerEvent
from .loans import LoanManager, Loan, LoanPayment
from .reminders import ReminderStore, Reminder


logger = logging.getLogger("pos_credit.notifications")


@dataclass
class OutboundMessage:
    """Message to a single phone number"""
    phone: str
    title: str
    message: str


@dataclass
class DeliveryResult:
    """Channel response for one message"""
    success: bool
    external_message_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def delivered(cls, external_message_id: Optional[str] = None) -> 'DeliveryResult':
        return cls(success=True, external_message_id=external_message_id)

    @classmethod
    def failed(cls, reason: str) -> 'DeliveryResult':
        return cls(success=False, reason=reason)


class ChannelProvider(ABC):
    """Abstract base class for messaging channel providers"""

    name = "channel"

    @abstractmethod
    def send(self, message: OutboundMessage) -> DeliveryResult:
        """Send a message; failures are reported in the result, not raised"""
        pass


class LogChannelProvider(ChannelProvider):
    """Logs messages instead of sending them, for development"""

    name = "log"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("pos_credit.notifications.outbox")
        self.sent: List[OutboundMessage] = []

    def send(self, message: OutboundMessage) -> DeliveryResult:
        self.sent.append(message)
        self.logger.info(f"WHATSAPP to {message.phone}: {message.title} | {message.message[:100]}")
        return DeliveryResult.delivered(f"log-{len(self.sent)}")


class WhatsAppChannelProvider(ChannelProvider):
    """WhatsApp Cloud API text messages"""

    name = "whatsapp"

    def __init__(
        self,
        api_token: str,
        phone_number_id: str,
        api_url: str = "https://graph.facebook.com/v19.0",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        if not api_token or not phone_number_id:
            raise ValueError("WhatsApp API token and phone number id are required")
        self.api_token = api_token
        self.phone_number_id = phone_number_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, message: OutboundMessage) -> DeliveryResult:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.phone.lstrip("+"),
            "type": "text",
            "text": {"preview_url": False, "body": f"*{message.title}*\n\n{message.message}"}
        }

        try:
            response = self.session.post(
                f"{self.api_url}/{self.phone_number_id}/messages",
                json=payload,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json"
                }
            )
        except requests.RequestException as e:
            return DeliveryResult.failed(f"WhatsApp request failed: {e}")

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                error = response.text
            return DeliveryResult.failed(f"WhatsApp API error {response.status_code}: {error}")

        try:
            messages = response.json().get("messages") or []
        except ValueError:
            messages = []
        return DeliveryResult.delivered(messages[0].get("id") if messages else None)


class WebhookChannelProvider(ChannelProvider):
    """POSTs messages to an external gateway"""

    name = "webhook"

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        if not url:
            raise ValueError("Webhook URL is required")
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, message: OutboundMessage) -> DeliveryResult:
        payload = {
            "phone": message.phone,
            "title": message.title,
            "message": message.message,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
        try:
            response = self.session.post(
                self.url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"}
            )
        except requests.RequestException as e:
            return DeliveryResult.failed(f"Webhook request failed: {e}")

        if not 200 <= response.status_code < 300:
            return DeliveryResult.failed(f"Webhook returned {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        external_id = (body.get("id") or body.get("message_id")) if isinstance(body, dict) else None
        return DeliveryResult.delivered(external_id)


def create_channel_provider(config: Any) -> ChannelProvider:
    """Build the configured channel provider"""
    channel = config.notification_channel.lower()
    if channel == "whatsapp":
        return WhatsAppChannelProvider(
            api_token=config.whatsapp_api_token,
            phone_number_id=config.whatsapp_phone_number_id,
            api_url=config.whatsapp_api_url,
            timeout=config.notification_timeout
        )
    if channel == "webhook":
        return WebhookChannelProvider(config.webhook_url, timeout=config.notification_timeout)
    if channel == "log":
        return LogChannelProvider()
    raise ValueError(f"Unknown notification channel: {config.notification_channel}")


@dataclass
class DispatchSummary:
    """Outcome of one dispatch pass"""
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "failures": self.failures
        }


class NotificationDispatcher:
    """
    Sends pending reminders and transaction messages

    A failed reminder stays unsent with the reason recorded and is retried on
    the next pass until max_delivery_attempts is reached.
    """

    def __init__(
        self,
        reminder_store: ReminderStore,
        customer_manager: CustomerManager,
        provider: ChannelProvider,
        loan_manager: Optional[LoanManager] = None,
        max_delivery_attempts: int = 5,
        store_name: str = "Our Store"
    ):
        self.reminder_store = reminder_store
        self.customer_manager = customer_manager
        self.provider = provider
        self.loan_manager = loan_manager
        self.max_delivery_attempts = max_delivery_attempts
        self.store_name = store_name

    def _deliver(self, message: OutboundMessage) -> DeliveryResult:
        try:
            return self.provider.send(message)
        except Exception as e:
            logger.error(f"{self.provider.name} provider raised while sending to {message.phone}: {e}")
            return DeliveryResult.failed(str(e))

    def send_reminder(self, reminder: Reminder) -> DeliveryResult:
        """Deliver one reminder and record the outcome"""
        customer = self.customer_manager.require_customer(reminder.customer_id)
        result = self._deliver(OutboundMessage(
            phone=customer.phone,
            title=reminder.title or "Payment reminder",
            message=reminder.message_content
        ))

        if result.success:
            self.reminder_store.mark_reminder_sent(reminder.id, result.external_message_id)
        else:
            self.reminder_store.mark_reminder_failed(reminder.id, result.reason or "Delivery failed")
            logger.warning(f"Reminder {reminder.id} for loan {reminder.loan_id} not delivered: {result.reason}")

        return result

    def _loan_closed(self, reminder: Reminder) -> Optional[str]:
        """Reason a reminder must not go out, or None while its loan is open"""
        if self.loan_manager is None:
            return None
        loan = self.loan_manager.get_loan(reminder.loan_id)
        if loan is None:
            return "Loan no longer exists"
        if not loan.is_open:
            return f"Loan is {loan.status.value}"
        return None

    def dispatch_pending(self, limit: Optional[int] = None) -> DispatchSummary:
        """
        Send every unsent reminder that still has attempts left

        Reminders whose loan was paid or defaulted since scheduling are
        cancelled instead of sent and counted as skipped.
        """
        summary = DispatchSummary()
        pending = self.reminder_store.list_unsent_reminders(
            limit=limit, max_attempts=self.max_delivery_attempts
        )

        for reminder in pending:
            closed = self._loan_closed(reminder)
            if closed:
                self.reminder_store.cancel_reminder(reminder.id, closed)
                logger.info(f"Reminder {reminder.id} cancelled: {closed}")
                summary.skipped += 1
                continue

            summary.attempted += 1
            try:
                result = self.send_reminder(reminder)
            except Exception as e:
                result = DeliveryResult.failed(str(e))
                logger.error(f"Reminder {reminder.id} dispatch error: {e}")

            if result.success:
                summary.sent += 1
            else:
                summary.failed += 1
                summary.failures.append({"reminder_id": reminder.id, "reason": result.reason or ""})

        logger.info(
            f"Dispatched reminders: {summary.sent} sent, {summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    def send_payment_receipt(self, loan: Loan, payment: LoanPayment) -> DeliveryResult:
        """Thank-you message after a repayment"""
        customer = self.customer_manager.require_customer(loan.customer_id)
        message = (
            f"Thank you {customer.name}! We received your payment of {payment.amount.format()}. "
            f"Your new balance is {loan.remaining_balance.format()}."
        )
        result = self._deliver(OutboundMessage(customer.phone, "Payment received", message))
        if not result.success:
            logger.warning(f"Payment receipt for loan {loan.id} not delivered: {result.reason}")
        return result

    def send_loan_agreement(self, loan: Loan) -> DeliveryResult:
        """Agreement confirmation after a credit sale"""
        customer = self.customer_manager.require_customer(loan.customer_id)
        message = (
            f"Dear {customer.name}, your loan agreement for {loan.total_amount.format()} has been created. "
            f"Due date: {loan.due_date.strftime('%d %b %Y')}."
        )
        if loan.paid_amount.is_positive():
            message += f" Initial payment of {loan.paid_amount.format()} received."
        message += f" Balance: {loan.remaining_balance.format()}. {self.store_name}"

        result = self._deliver(OutboundMessage(customer.phone, "Loan agreement", message))
        if not result.success:
            logger.warning(f"Loan agreement for loan {loan.id} not delivered: {result.reason}")
        return result

    def send_test_message(self, phone: str, message: str) -> DeliveryResult:
        """Manual send from the reminder tester"""
        if not message or not message.strip():
            raise ValueError("Message text is required")
        return self._deliver(OutboundMessage(phone, "Test message", message.strip()))

    def subscribe(self, events: EventDispatcher) -> None:
        """Send agreements and receipts when loans are created or paid"""
        if self.loan_manager is None:
            raise ValueError("A loan manager is required for transaction messages")
        events.subscribe(LedgerEvent.LOAN_CREATED, self._on_loan_created)
        events.subscribe(LedgerEvent.LOAN_PAYMENT, self._on_loan_payment)

    def _on_loan_created(self, event: EventPayload) -> None:
        loan = self.loan_manager.get_loan(event.entity_id)
        if loan:
            self.send_loan_agreement(loan)

    def _on_loan_payment(self, event: EventPayload) -> None:
        loan = self.loan_manager.get_loan(event.entity_id)
        if not loan:
            return
        payment_id = event.data.get("payment_id")
        for payment in self.loan_manager.get_loan_payments(loan.id):
            if payment.id == payment_id:
                self.send_payment_receipt(loan, payment)
                break
