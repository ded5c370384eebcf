from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return float(default)
    return f if math.isfinite(f) else float(default)


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Lenient numeric parse used for form/JSON input.
    Accepts ints, floats, Decimals and strings with a decimal comma ("12,5").
    Returns None for blank/unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    s = str(value).strip().replace(" ", "").replace(",", ".")
    if not s:
        return None
    try:
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def q2(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_date(value: Any) -> Optional[date]:
    """YYYY-MM-DD or DD.MM.YYYY; date/datetime pass through."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = (str(value) if value is not None else "").strip()
    if not s:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def iso10(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value or "")[:10]


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive values; treat them as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
