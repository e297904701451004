"""
Ledger Error Hierarchy

Domain exceptions raised by the loan ledger, risk and reminder engines.
The HTTP layer maps each class to a status code.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors"""


class InvalidAmount(LedgerError):
    """Amount is not positive or exceeds the remaining balance"""

    def __init__(self, message: str, amount=None, remaining_balance=None):
        super().__init__(message)
        self.amount = amount
        self.remaining_balance = remaining_balance


class InvalidLoanState(LedgerError):
    """Operation is not allowed for the loan's current status"""


class EntityNotFound(LedgerError):
    """Referenced record does not exist"""

    entity_type = "record"

    def __init__(self, entity_id: str):
        super().__init__(f"{self.entity_type.capitalize()} {entity_id} not found")
        self.entity_id = entity_id


class LoanNotFound(EntityNotFound):
    entity_type = "loan"


class CustomerNotFound(EntityNotFound):
    entity_type = "customer"


class ReminderNotFound(EntityNotFound):
    entity_type = "reminder"


class ConcurrentModification(LedgerError):
    """Stored record version no longer matches the expected version"""

    def __init__(self, entity_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Record {entity_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StoreUnavailable(LedgerError):
    """Storage backend failed; the driver error is chained as __cause__"""


class PartialSchedulerFailure(LedgerError):
    """Reminder generation failed for a single loan"""

    def __init__(self, loan_id: str, reason: str):
        super().__init__(f"Reminder generation failed for loan {loan_id}: {reason}")
        self.loan_id = loan_id
        self.reason = reason
