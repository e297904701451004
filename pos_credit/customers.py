"""
Customer Management Module

Manages store customers who buy on credit: contact details keyed by phone,
repayment behaviour (payment timeliness history and stored risk level), and
soft deactivation. Customers are never hard-deleted so loan history keeps its
references.
"""

from datetime import datetime, date, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid
import re

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, LedgerEvent
from .errors import CustomerNotFound


class RiskLevel(Enum):
    """Repayment risk tiers"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def escalate(self) -> 'RiskLevel':
        """Next tier up; HIGH stays HIGH"""
        if self == RiskLevel.LOW:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH


@dataclass
class PaymentHistoryEntry:
    """One repayment, flagged on time if made on or before the loan due date"""
    date: date
    on_time: bool


@dataclass
class RepaymentBehavior:
    """Stored repayment profile"""
    risk_level: RiskLevel = RiskLevel.LOW
    payment_history: List[PaymentHistoryEntry] = field(default_factory=list)


@dataclass
class Customer(StorageRecord):
    """
    Store customer eligible for credit sales
    """
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    repayment_behavior: RepaymentBehavior = field(default_factory=RepaymentBehavior)
    is_active: bool = True

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Customer name is required")
        self.phone = normalize_phone(self.phone)
        if self.email:
            email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
            if not re.match(email_pattern, self.email):
                raise ValueError("Invalid email format")

    @property
    def risk_level(self) -> RiskLevel:
        return self.repayment_behavior.risk_level

    @property
    def last_payment_date(self) -> Optional[date]:
        history = self.repayment_behavior.payment_history
        return history[-1].date if history else None


def normalize_phone(phone: str) -> str:
    """Strip formatting from a phone number; raises ValueError if it is not dialable"""
    if not phone:
        raise ValueError("Customer phone is required")
    cleaned = re.sub(r'[\s\-().]', '', phone.strip())
    if not re.match(r'^\+?\d{7,15}$', cleaned):
        raise ValueError(f"Invalid phone number: {phone}")
    return cleaned


class CustomerManager:
    """
    Manages customer lifecycle and stored repayment behaviour
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        events: Optional[EventDispatcher] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.events = events or EventDispatcher()
        self.table_name = "customers"

    def create_customer(
        self,
        name: str,
        phone: str,
        email: Optional[str] = None,
        address: Optional[str] = None,
        notes: Optional[str] = None,
        performed_by: Optional[str] = None
    ) -> Customer:
        """
        Register a new customer

        Args:
            name: Display name
            phone: Contact phone, unique among active customers
            email: Optional email
            address: Optional address
            notes: Optional free-text notes
            performed_by: Cashier/operator id for the audit trail

        Returns:
            Created Customer object
        """
        now = datetime.now(timezone.utc)
        customer = Customer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name.strip(),
            phone=phone,
            email=email,
            address=address,
            notes=notes
        )

        if self.get_customer_by_phone(customer.phone):
            raise ValueError(f"An active customer with phone {customer.phone} already exists")

        self._save_customer(customer)

        self.audit_trail.log_event(
            event_type=AuditEventType.CUSTOMER_CREATED,
            entity_type="customer",
            entity_id=customer.id,
            metadata={"name": customer.name, "phone": customer.phone},
            user_id=performed_by
        )
        self.events.emit(LedgerEvent.CUSTOMER_CREATED, "customer", customer.id, {"name": customer.name})

        return customer

    def find_or_create_by_phone(
        self,
        name: str,
        phone: str,
        email: Optional[str] = None,
        address: Optional[str] = None,
        performed_by: Optional[str] = None
    ) -> Customer:
        """Checkout helper: reuse the active customer with this phone or register one"""
        existing = self.get_customer_by_phone(phone)
        if existing:
            return existing
        return self.create_customer(name, phone, email=email, address=address, performed_by=performed_by)

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        customer_dict = self.storage.load(self.table_name, customer_id)
        if customer_dict:
            return self._customer_from_dict(customer_dict)
        return None

    def require_customer(self, customer_id: str) -> Customer:
        """Get customer by ID or raise CustomerNotFound"""
        customer = self.get_customer(customer_id)
        if not customer:
            raise CustomerNotFound(customer_id)
        return customer

    def get_customer_by_phone(self, phone: str) -> Optional[Customer]:
        """Get the active customer registered with a phone number"""
        matches = self.storage.find(self.table_name, {
            "phone": normalize_phone(phone),
            "is_active": True
        })
        if matches:
            return self._customer_from_dict(matches[0])
        return None

    def list_customers(self, include_inactive: bool = False) -> List[Customer]:
        """List customers sorted by name"""
        customers = [self._customer_from_dict(d) for d in self.storage.load_all(self.table_name)]
        if not include_inactive:
            customers = [c for c in customers if c.is_active]
        customers.sort(key=lambda c: c.name.lower())
        return customers

    def update_customer_info(
        self,
        customer_id: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
        notes: Optional[str] = None,
        performed_by: Optional[str] = None
    ) -> Customer:
        """Update contact details"""
        customer = self.require_customer(customer_id)
        old_data = {"name": customer.name, "phone": customer.phone, "email": customer.email}

        if name is not None:
            if not name.strip():
                raise ValueError("Customer name is required")
            customer.name = name.strip()
        if phone is not None:
            new_phone = normalize_phone(phone)
            other = self.get_customer_by_phone(new_phone)
            if other and other.id != customer.id:
                raise ValueError(f"An active customer with phone {new_phone} already exists")
            customer.phone = new_phone
        if email is not None:
            customer.email = email or None
        if address is not None:
            customer.address = address or None
        if notes is not None:
            customer.notes = notes or None

        customer.updated_at = datetime.now(timezone.utc)
        self._save_customer(customer)

        self.audit_trail.log_event(
            event_type=AuditEventType.CUSTOMER_UPDATED,
            entity_type="customer",
            entity_id=customer.id,
            metadata={
                "old_data": old_data,
                "new_data": {"name": customer.name, "phone": customer.phone, "email": customer.email}
            },
            user_id=performed_by
        )

        return customer

    def deactivate_customer(self, customer_id: str, performed_by: Optional[str] = None) -> Customer:
        """Soft-delete a customer; loans and payments keep referencing it"""
        customer = self.require_customer(customer_id)
        if not customer.is_active:
            return customer

        customer.is_active = False
        customer.updated_at = datetime.now(timezone.utc)
        self._save_customer(customer)

        self.audit_trail.log_event(
            event_type=AuditEventType.CUSTOMER_DEACTIVATED,
            entity_type="customer",
            entity_id=customer.id,
            metadata={"name": customer.name},
            user_id=performed_by
        )
        self.events.emit(LedgerEvent.CUSTOMER_DEACTIVATED, "customer", customer.id)

        return customer

    def record_payment_timeliness(self, customer_id: str, payment_date: date, on_time: bool) -> Customer:
        """Append an entry to the customer's payment history"""
        customer = self.require_customer(customer_id)
        customer.repayment_behavior.payment_history.append(
            PaymentHistoryEntry(date=payment_date, on_time=on_time)
        )
        customer.updated_at = datetime.now(timezone.utc)
        self._save_customer(customer)
        return customer

    def update_customer_risk_level(self, customer_id: str, risk_level: RiskLevel, reason: Optional[str] = None) -> bool:
        """
        Persist a customer's risk level

        Returns:
            True if the stored level changed
        """
        customer = self.require_customer(customer_id)
        old_level = customer.repayment_behavior.risk_level
        if old_level == risk_level:
            return False

        customer.repayment_behavior.risk_level = risk_level
        customer.updated_at = datetime.now(timezone.utc)
        self._save_customer(customer)

        self.audit_trail.log_event(
            event_type=AuditEventType.RISK_LEVEL_CHANGED,
            entity_type="customer",
            entity_id=customer.id,
            metadata={"old_level": old_level, "new_level": risk_level, "reason": reason}
        )
        self.events.emit(
            LedgerEvent.CUSTOMER_RISK_CHANGED, "customer", customer.id,
            {"old_level": old_level.value, "new_level": risk_level.value}
        )

        return True

    def _save_customer(self, customer: Customer) -> None:
        self.storage.save(self.table_name, customer.id, self._customer_to_dict(customer))

    def _customer_to_dict(self, customer: Customer) -> Dict[str, Any]:
        return {
            "id": customer.id,
            "created_at": customer.created_at.isoformat(),
            "updated_at": customer.updated_at.isoformat(),
            "name": customer.name,
            "phone": customer.phone,
            "email": customer.email,
            "address": customer.address,
            "notes": customer.notes,
            "is_active": customer.is_active,
            "repayment_behavior": {
                "risk_level": customer.repayment_behavior.risk_level.value,
                "payment_history": [
                    {"date": entry.date.isoformat(), "on_time": entry.on_time}
                    for entry in customer.repayment_behavior.payment_history
                ]
            }
        }

    def _customer_from_dict(self, data: Dict[str, Any]) -> Customer:
        behavior = data.get("repayment_behavior") or {}
        return Customer(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            name=data["name"],
            phone=data["phone"],
            email=data.get("email"),
            address=data.get("address"),
            notes=data.get("notes"),
            is_active=data.get("is_active", True),
            repayment_behavior=RepaymentBehavior(
                risk_level=RiskLevel(behavior.get("risk_level", RiskLevel.LOW.value)),
                payment_history=[
                    PaymentHistoryEntry(date=date.fromisoformat(entry["date"]), on_time=bool(entry["on_time"]))
                    for entry in behavior.get("payment_history", [])
                ]
            )
        )
