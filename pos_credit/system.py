"""
Ledger system wiring

Builds storage, audit trail, managers, scheduler and dispatcher from one
configuration object. Used by the HTTP API and the command line.
"""

from typing import Optional

from .config import PosCreditConfig
from .currency import Money, currency_from_code, decimal_from_string
from .storage import StorageInterface, create_storage
from .audit import AuditTrail
from .events import EventDispatcher
from .customers import CustomerManager
from .risk import RiskClassifier
from .loans import LoanManager
from .reminders import ReminderStore, ReminderScheduler
from .notifications import ChannelProvider, NotificationDispatcher, create_channel_provider
from .reporting import ReportingEngine


class LedgerSystem:
    """Credit ledger with all components initialized"""

    def __init__(
        self,
        config: PosCreditConfig,
        storage: Optional[StorageInterface] = None,
        provider: Optional[ChannelProvider] = None,
        send_transaction_messages: Optional[bool] = None
    ):
        self.config = config
        self.currency = currency_from_code(config.currency)

        self.storage = storage or create_storage(config.database_url)
        self.events = EventDispatcher()
        self.audit_trail = AuditTrail(self.storage, enabled=config.enable_audit_logging)

        self.customer_manager = CustomerManager(self.storage, self.audit_trail, self.events)
        self.risk_classifier = RiskClassifier.from_config(config, self.currency)
        self.loan_manager = LoanManager(
            self.storage, self.audit_trail, self.customer_manager,
            risk_classifier=self.risk_classifier,
            events=self.events,
            currency=self.currency
        )

        self.reminder_store = ReminderStore(self.storage, self.audit_trail, self.events)
        self.scheduler = ReminderScheduler(
            self.reminder_store, self.loan_manager, self.customer_manager, self.audit_trail,
            lead_days=config.reminder_lead_days,
            escalation_after_days=config.escalation_after_days,
            store_name=config.store_name,
            store_phone=config.store_phone
        )

        self.provider = provider or create_channel_provider(config)
        self.dispatcher = NotificationDispatcher(
            self.reminder_store, self.customer_manager, self.provider,
            loan_manager=self.loan_manager,
            max_delivery_attempts=config.max_delivery_attempts,
            store_name=config.store_name
        )
        if send_transaction_messages is None:
            send_transaction_messages = config.send_transaction_messages
        if send_transaction_messages:
            self.dispatcher.subscribe(self.events)

        self.reporting_engine = ReportingEngine(
            self.loan_manager, self.customer_manager, self.reminder_store, currency=self.currency
        )

    def money(self, value) -> Money:
        """Parse an amount in the store currency"""
        return Money(decimal_from_string(value), self.currency)

    def close(self) -> None:
        self.storage.close()
