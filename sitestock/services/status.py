import math
from typing import Dict, List, Optional

LEVEL_OK = "ok"
LEVEL_WARN = "warn"
LEVEL_CRITICAL = "critical"

LABELS = {LEVEL_OK: "STABLE", LEVEL_WARN: "ATTENTION", LEVEL_CRITICAL: "ALARM"}
_RANK = {LEVEL_OK: 0, LEVEL_WARN: 1, LEVEL_CRITICAL: 2}

# (critical_at, warn_at)
THRESHOLDS = {
    "over_plan": (3, 1),
    "low_stock": (5, 1),
    "approval_time": (24, 6),
}


def severity(reason: str, value: Optional[float]) -> str:
    if value is None:
        return LEVEL_OK
    try:
        v = float(value)
    except (TypeError, ValueError):
        return LEVEL_OK
    if not math.isfinite(v):
        return LEVEL_OK
    crit, warn = THRESHOLDS[reason]
    if v >= crit:
        return LEVEL_CRITICAL
    if v >= warn:
        return LEVEL_WARN
    return LEVEL_OK


def worst(levels: List[str]) -> str:
    return max(levels, key=lambda lv: _RANK.get(lv, 0), default=LEVEL_OK)


def fmt_hours(h) -> str:
    try:
        h = float(h)
    except (TypeError, ValueError):
        return "—"
    if not math.isfinite(h):
        return "—"
    if h < 1:
        return f"{round(h * 60)} min"
    if h < 24:
        return f"{h:.1f} h"
    return f"{h / 24:.1f} d"


def project_status(dash: Dict) -> Dict:
    """Traffic light for the metrics dashboard."""
    over = dash.get("over_plan_count") or 0
    low = dash.get("low_stock_count") or 0
    hours = dash.get("avg_approval_hours")

    reasons = [
        {
            "key": "over_plan",
            "level": severity("over_plan", over),
            "value": over,
            "text": f"{over} material(s) over plan",
        },
        {
            "key": "low_stock",
            "level": severity("low_stock", low),
            "value": low,
            "text": f"{low} material(s) low on stock",
        },
        {
            "key": "approval_time",
            "level": severity("approval_time", hours),
            "value": hours,
            "text": f"average approval time {fmt_hours(hours if hours is not None else float('nan'))}",
        },
    ]
    level = worst([r["level"] for r in reasons])
    return {"level": level, "label": LABELS[level], "reasons": reasons}
