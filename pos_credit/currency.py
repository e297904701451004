"""
Currency and Money Module

Store currencies with their display symbol and minor-unit precision, and an
immutable Money type. All balances are Decimal; floats are never used.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext, InvalidOperation
from dataclasses import dataclass
from enum import Enum
from typing import Union
import re

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 codes supported by the till, with precision and symbol placement"""
    USD = ("USD", 2, "$", True)
    EUR = ("EUR", 2, "€", True)
    GBP = ("GBP", 2, "£", True)
    CAD = ("CAD", 2, "C$", True)
    RWF = ("RWF", 0, "FRw", False)
    JPY = ("JPY", 0, "¥", True)
    AUD = ("AUD", 2, "A$", True)
    CHF = ("CHF", 2, "CHF", True)
    CNY = ("CNY", 2, "¥", True)
    INR = ("INR", 2, "₹", True)
    NGN = ("NGN", 2, "₦", True)
    KES = ("KES", 2, "KSh", True)
    UGX = ("UGX", 0, "USh", True)
    TZS = ("TZS", 0, "TSh", True)

    def __init__(self, code: str, precision: int, symbol: str, symbol_before: bool):
        self.code = code
        self.precision = precision
        self.symbol = symbol
        self.symbol_before = symbol_before


@dataclass(frozen=True)
class Money:
    """
    Immutable money value rounded to its currency precision.
    Arithmetic between different currencies raises ValueError.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        try:
            amount = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
            rounded = amount.quantize(
                Decimal('0.1') ** self.currency.precision,
                rounding=ROUND_HALF_UP
            )
        except InvalidOperation:
            raise ValueError(f"Amount {self.amount} cannot be represented in {self.currency.code}")
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __truediv__(self, divisor: Decimal) -> 'Money':
        if not isinstance(divisor, Decimal):
            divisor = Decimal(str(divisor))
        return Money(self.amount / divisor, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Code-prefixed form used in logs and audit metadata"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"

    def format(self) -> str:
        """Receipt/message form with the currency symbol, e.g. '$1,250.00' or '5,000 FRw'"""
        number = f"{self.amount:,.{self.currency.precision}f}"
        if self.currency.symbol_before:
            return f"{self.currency.symbol}{number}"
        return f"{number} {self.currency.symbol}"


def currency_from_code(code: str) -> Currency:
    """Look up a Currency by ISO code (case-insensitive)"""
    try:
        return Currency[code.strip().upper()]
    except KeyError:
        raise ValueError(f"Unsupported currency code: {code}")


def decimal_from_string(value: Union[str, int, Decimal]) -> Decimal:
    """
    Parse user-entered amounts, tolerating symbols and thousands separators

    Args:
        value: Amount as typed at the till ("1,250.50", "KSh 300")

    Returns:
        Decimal value

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:
            clean_value = clean_value.replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')
    else:
        clean_value = clean_value.replace(',', '')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
