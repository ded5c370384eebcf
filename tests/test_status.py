from sitestock.services import status


def test_severity_thresholds():
    assert status.severity("over_plan", 0) == status.LEVEL_OK
    assert status.severity("over_plan", 1) == status.LEVEL_WARN
    assert status.severity("over_plan", 3) == status.LEVEL_CRITICAL
    assert status.severity("approval_time", 5.9) == status.LEVEL_OK
    assert status.severity("approval_time", 6) == status.LEVEL_WARN
    assert status.severity("approval_time", 30) == status.LEVEL_CRITICAL
    assert status.severity("low_stock", None) == status.LEVEL_OK
    assert status.severity("low_stock", float("nan")) == status.LEVEL_OK


def test_fmt_hours():
    assert status.fmt_hours(0.5) == "30 min"
    assert status.fmt_hours(5) == "5.0 h"
    assert status.fmt_hours(36) == "1.5 d"
    assert status.fmt_hours(None) == "—"
    assert status.fmt_hours(float("inf")) == "—"


def test_project_status_takes_worst_reason():
    out = status.project_status({"over_plan_count": 0, "low_stock_count": 2, "avg_approval_hours": 30})
    assert out["level"] == status.LEVEL_CRITICAL
    assert out["label"] == "ALARM"
    assert [r["key"] for r in out["reasons"]] == ["over_plan", "low_stock", "approval_time"]


def test_project_status_stable_for_empty_dash():
    out = status.project_status({"over_plan_count": 0, "low_stock_count": 0, "avg_approval_hours": 0})
    assert out["label"] == "STABLE"
