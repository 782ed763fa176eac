"""Formatting and rounding rules shared by every metric calculator.

* Percentages are integers in ``[0, 100]`` rounded half-up (``round()`` in
  Python rounds half-to-even, which would turn 62.5 into 62).
* Counts coming from untrusted payloads are coerced to non-negative ints.
* Rankings are a total order: rate desc, total desc, input position asc.
"""

from __future__ import annotations

import enum
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Sequence, TypeVar

T = TypeVar("T")

_ONE = Decimal("1")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return int(Decimal(str(value)).quantize(_ONE, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError, TypeError):
        return 0


def clamp_percent(value: Any) -> int:
    """Coerce *value* to an integer percentage within ``[0, 100]``."""
    return min(100, max(0, round_half_up(_to_number(value))))


def percentage(part: float, whole: float) -> int:
    """``round(100 * part / whole)`` guarded against a zero/negative *whole*."""
    if not whole or whole <= 0:
        return 0
    return clamp_percent(100 * part / whole)


def ratio(part: float, whole: float) -> int:
    """``round(part / whole)`` guarded against a zero/negative *whole*."""
    if not whole or whole <= 0:
        return 0
    return max(0, round_half_up(part / whole))


def to_count(value: Any, default: int = 0) -> int:
    """Coerce a count from a loosely-typed payload; never negative."""
    number = _to_number(value, default=None)
    if number is None:
        return default
    return max(0, round_half_up(number))


def format_label(value: Any) -> str:
    """``"in_progress"`` → ``"In Progress"``."""
    text = _raw_text(value).replace("_", " ").replace("-", " ").strip()
    if not text:
        return "Unknown"
    return " ".join(word.capitalize() for word in text.split())


def normalize_key(value: Any) -> str:
    """``"In Progress"`` / ``"in-progress"`` → ``"in_progress"``."""
    text = _raw_text(value).strip().lower()
    for sep in ("-", " "):
        text = text.replace(sep, "_")
    while "__" in text:
        text = text.replace("__", "_")
    return text


def rank(
    items: Sequence[T],
    *,
    rate: Callable[[T], int],
    total: Callable[[T], int],
) -> list[T]:
    """Sort by rate desc, then total desc; equal items keep input order."""
    indexed: Iterable[tuple[int, T]] = enumerate(items)
    ordered = sorted(indexed, key=lambda pair: (-rate(pair[1]), -total(pair[1]), pair[0]))
    return [item for _, item in ordered]


# ── Internal helper ─────────────────────────────────────────────────

def _to_number(value: Any, default: Any = 0) -> Any:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return default
        return value
    try:
        number = float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _raw_text(value: Any) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    return str(value or "")
