"""
Predicates: pure checks shared by the validators and by test assertions.

Every function returns a plain boolean (or a number) and never raises on
malformed input, so any assertion layer can consume them.  Booleans are never
accepted where a number is expected.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

TRANSACTION_TYPES = ("credit", "debit")
TRANSACTION_STATUSES = ("pending", "finished")
TRANSACTION_OUTCOMES = ("approved", "denied", None)


def is_number(value: Any) -> bool:
    """Finite int, float or Decimal; NaN and infinities are not amounts."""
    if not isinstance(value, (int, float, Decimal)) or isinstance(value, bool):
        return False
    return value.is_finite() if isinstance(value, Decimal) else math.isfinite(value)


def to_decimal(value: Any) -> Decimal | None:
    """Exact decimal view of a number, using its shortest repr for floats."""
    if not is_number(value):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and UUID_PATTERN.match(value) is not None


def is_currency_code(value: Any) -> bool:
    return isinstance(value, str) and CURRENCY_CODE_PATTERN.match(value) is not None


def is_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_PATTERN.match(value) is not None


def is_positive_amount(value: Any) -> bool:
    return is_number(value) and value > 0


def decimal_places(value: Any) -> int:
    """Number of fractional digits in ``value`` (0 for non-numbers)."""
    dec = to_decimal(value)
    if dec is None:
        return 0
    exponent = dec.normalize().as_tuple().exponent
    return -exponent if exponent < 0 else 0


def has_decimal_precision(value: Any, max_decimals: int = 4) -> bool:
    return decimal_places(value) <= max_decimals


def is_valid_transaction_type(value: Any) -> bool:
    return value in TRANSACTION_TYPES


def is_valid_status(value: Any) -> bool:
    return value in TRANSACTION_STATUSES


def is_valid_outcome(value: Any) -> bool:
    return value in TRANSACTION_OUTCOMES


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO 8601 date-time string; ``None`` when it is not one."""
    if not isinstance(value, str) or "T" not in value:
        return None
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def is_iso8601_datetime(value: Any) -> bool:
    parsed = parse_datetime(value)
    return parsed is not None and parsed.tzinfo is not None


def is_within_range(value: Any, minimum: float, maximum: float) -> bool:
    return is_number(value) and minimum <= value <= maximum


def is_non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def is_balance_change_within(actual: Any, expected: Any, tolerance: float = 0.01) -> bool:
    """``|actual - expected| <= tolerance`` using decimal arithmetic."""
    a, e = to_decimal(actual), to_decimal(expected)
    if a is None or e is None:
        return False
    return abs(a - e) <= Decimal(str(tolerance))


def find_clip(wallet: Mapping[str, Any] | None, currency: Any) -> Mapping[str, Any] | None:
    """The currency clip for ``currency`` in a wallet snapshot, if any."""
    if not wallet:
        return None
    for clip in wallet.get("currencyClips") or []:
        if isinstance(clip, Mapping) and clip.get("currency") == currency:
            return clip
    return None


def has_sufficient_balance(wallet: Mapping[str, Any] | None, currency: Any, amount: Any) -> bool:
    clip = find_clip(wallet, currency)
    if clip is None or not is_number(amount) or not is_number(clip.get("balance")):
        return False
    return clip["balance"] >= amount
