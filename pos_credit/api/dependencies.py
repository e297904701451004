"""
Shared API dependencies and error translation
"""

from typing import Optional
import logging

from fastapi import HTTPException, status

from ..config import get_config
from ..errors import (
    LedgerError, InvalidAmount, InvalidLoanState, EntityNotFound,
    ConcurrentModification, StoreUnavailable
)
from ..system import LedgerSystem


logger = logging.getLogger("pos_credit.api")

_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system, built on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem(get_config())
    return _ledger_system


ERROR_STATUS = [
    (InvalidAmount, status.HTTP_400_BAD_REQUEST),
    (EntityNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidLoanState, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(error: Exception) -> HTTPException:
    """Map a domain or validation error to an HTTPException"""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            if status_code >= 500:
                logger.error(f"Storage failure: {error}", exc_info=error)
            return HTTPException(status_code=status_code, detail=str(error))
    if isinstance(error, (LedgerError, ValueError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    logger.exception("Unhandled API error", exc_info=error)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
