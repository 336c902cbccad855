"""
Money Utilities Module

Currency codes, Decimal precision and display formatting for collection
amounts. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28

# Tolerance used when comparing a set of cheque amounts against a collection
DEFAULT_TOLERANCE = Decimal('0.01')

ZERO = Decimal('0')


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    LKR = ("LKR", 2)  # Sri Lankan Rupee, 2 decimal places
    USD = ("USD", 2)  # US Dollar, 2 decimal places
    EUR = ("EUR", 2)  # Euro, 2 decimal places
    INR = ("INR", 2)  # Indian Rupee, 2 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency = Currency.LKR

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    def to_string(self) -> str:
        """Format for display, e.g. ``LKR 1,250.5``"""
        return format_currency(self.amount, self.currency)


def to_decimal(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """
    Convert a stored or user-supplied amount to Decimal.

    Floats are routed through ``str`` so 0.1 stays 0.1. ``None`` and empty
    strings become zero, matching how the record store treats missing
    numeric columns.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid amount")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        if not value.strip():
            return ZERO
        return decimal_from_string(value)
    raise ValueError(f"Cannot convert {type(value).__name__} to Decimal")


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Args:
        value: String representation of number, optionally with a currency
            prefix and thousands separators ("LKR 1,250.00")

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    # Remove currency symbols and whitespace
    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        # Both comma and dot - assume comma is thousands separator
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


def quantize(value: Decimal, currency: Currency = Currency.LKR) -> Decimal:
    """Round a Decimal to the currency's precision"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def format_currency(amount: Union[Decimal, int, float, str], currency: Currency = Currency.LKR) -> str:
    """
    Render an amount for notes and messages.

    Digits are grouped in lakhs and crores and trailing zero fractions
    dropped, so ``1000`` renders as ``LKR 1,000``, ``100000`` as
    ``LKR 1,00,000`` and ``1250.5`` as ``LKR 1,250.5``.
    """
    value = quantize(to_decimal(amount), currency)
    whole, _, fraction = f"{abs(value):.{currency.precision}f}".partition('.')
    fraction = fraction.rstrip('0')
    text = _group_lakh(whole) + (f".{fraction}" if fraction else "")
    sign = "-" if value < ZERO else ""
    return f"{currency.code} {sign}{text}"


def _group_lakh(digits: str) -> str:
    # Last three digits, then pairs: 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, groups = digits[:-3], [digits[-3:]]
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    groups.insert(0, head)
    return ",".join(groups)


def clamp_subtract(balance: Decimal, delta: Decimal) -> Decimal:
    """``max(0, balance - delta)``, used for every balance decrement"""
    return max(ZERO, balance - delta)


def amounts_match(left: Decimal, right: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """True when two amounts agree within tolerance"""
    return abs(left - right) <= tolerance


def amount_to_text(amount: Decimal) -> str:
    """Plain string form of an amount, used for search matching"""
    normalized = amount.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal('1')))
    return format(normalized, 'f')
