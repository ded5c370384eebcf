from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from sitestock.utils.helpers import parse_date, safe_float

INTERVALS = ("day", "week", "month")

# Points are dicts like {"bucket": "YYYY-MM-DD", "value": 12.5, "count": 1};
# aggregated rows keep the same shape with bucket keys per interval.


def _as_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    return parse_date(str(value or "")[:10])


def day_key(d) -> str:
    d = _as_date(d)
    return d.isoformat() if d else ""


def week_key(d) -> str:
    """Monday of the ISO week, as YYYY-MM-DD."""
    d = _as_date(d)
    if d is None:
        return ""
    return (d - timedelta(days=d.weekday())).isoformat()


def month_key(d) -> str:
    d = _as_date(d)
    return d.strftime("%Y-%m") if d else ""


def bucket_key(d, interval: str) -> str:
    if interval == "day":
        return day_key(d)
    if interval == "month":
        return month_key(d)
    return week_key(d)


def list_days_between(date_from, date_to) -> List[str]:
    a, b = _as_date(date_from), _as_date(date_to)
    if a is None or b is None:
        return []
    out = []
    cur = a
    while cur <= b:
        out.append(cur.isoformat())
        cur += timedelta(days=1)
    return out


def list_weeks_between(date_from, date_to) -> List[str]:
    a, b = _as_date(date_from), _as_date(date_to)
    if a is None or b is None:
        return []
    cur = a - timedelta(days=a.weekday())
    end = b - timedelta(days=b.weekday())
    out = []
    while cur <= end:
        out.append(cur.isoformat())
        cur += timedelta(days=7)
    return out


def list_months_between(date_from, date_to) -> List[str]:
    a, b = _as_date(date_from), _as_date(date_to)
    if a is None or b is None:
        return []
    y, m = a.year, a.month
    out = []
    while (y, m) <= (b.year, b.month):
        out.append(f"{y:04d}-{m:02d}")
        m += 1
        if m > 12:
            y, m = y + 1, 1
    return out


def buckets_between(date_from, date_to, interval: str) -> List[str]:
    if interval == "day":
        return list_days_between(date_from, date_to)
    if interval == "month":
        return list_months_between(date_from, date_to)
    return list_weeks_between(date_from, date_to)


def _num(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def bucket_sum(points: Iterable[Dict], interval: str, date_from, date_to) -> List[Dict]:
    """Sum value/count per bucket over the full bucket list; empty buckets are None."""
    agg: Dict[str, Dict[str, float]] = {}
    for p in points:
        k = bucket_key(p.get("bucket"), interval)
        if not k:
            continue
        row = agg.setdefault(k, {"value": 0.0, "count": 0.0})
        row["value"] += safe_float(p.get("value"), 0)
        row["count"] += safe_float(p.get("count"), 0)
    out = []
    for b in buckets_between(date_from, date_to, interval):
        row = agg.get(b)
        out.append({
            "bucket": b,
            "value": row["value"] if row else None,
            "count": int(row["count"]) if row else None,
        })
    return out


def bucket_abs_sum(points: Iterable[Dict], interval: str, date_from, date_to, field: str = "value") -> List[Dict]:
    agg: Dict[str, float] = {}
    for p in points:
        k = bucket_key(p.get("bucket"), interval)
        v = _num(p.get(field))
        if not k or v is None:
            continue
        agg[k] = agg.get(k, 0.0) + abs(v)
    return [{"bucket": b, "value": agg.get(b)} for b in buckets_between(date_from, date_to, interval)]


def bucket_max(points: Iterable[Dict], interval: str, date_from, date_to, field: str = "value") -> List[Dict]:
    """Per-bucket maximum; for days the raw points are returned as-is."""
    points = list(points)
    if interval == "day":
        return [
            {"bucket": day_key(p.get("bucket")), "value": _num(p.get(field))}
            for p in points
            if day_key(p.get("bucket"))
        ]
    agg: Dict[str, float] = {}
    for p in points:
        k = bucket_key(p.get("bucket"), interval)
        v = _num(p.get(field))
        if not k or v is None:
            continue
        if k not in agg or v > agg[k]:
            agg[k] = v
    return [{"bucket": b, "value": agg.get(b)} for b in buckets_between(date_from, date_to, interval)]


def cumulative(rows: Iterable[Dict], fields: Iterable[str]) -> List[Dict]:
    """Running totals of `fields`; None counts as 0."""
    fields = list(fields)
    totals = {f: 0.0 for f in fields}
    out = []
    for r in rows:
        row = dict(r)
        for f in fields:
            totals[f] += safe_float(r.get(f), 0)
            row[f] = round(totals[f], 2)
        out.append(row)
    return out
