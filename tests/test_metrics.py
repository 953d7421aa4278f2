import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock

from focus_signal.models.activity import ActivityCategory, ActivityRecord
from focus_signal.models.recommendations import BreakRecord
from focus_signal.services.database import DatabaseManager, QueryError
from focus_signal.services.metrics import MetricsCollector

DAY = datetime(2025, 3, 10)

def record(hour, minute, app_name="code", seconds=300, category=ActivityCategory.PRODUCTIVE):
    return ActivityRecord(
        app_name=app_name,
        category=category,
        duration_seconds=seconds,
        created_at=DAY.replace(hour=hour, minute=minute),
    )

@pytest.fixture
def metrics_collector(db):
    db.compact()
    for item in [
        record(6, 0),
        record(9, 0),
        record(9, 5, "terminal"),
        record(9, 10, "YouTube", category=ActivityCategory.DISTRACTION),
        record(22, 0),
    ]:
        db.record_activity(item)
    db.record_break(BreakRecord(break_type="short", taken=True, created_at=DAY.replace(hour=10)))
    db.record_break(BreakRecord(break_type="eye", taken=True, created_at=DAY.replace(hour=11)))
    db.record_break(BreakRecord(break_type="long", taken=False, created_at=DAY.replace(hour=12)))
    return MetricsCollector(db)

def test_build_daily_pattern(metrics_collector):
    pattern = metrics_collector.build_daily_pattern(DAY.date())
    assert pattern.date == DAY.date()
    assert pattern.work_minutes == 25
    assert pattern.focus_score == 80
    assert pattern.breaks_taken == 2
    assert pattern.late_night_minutes == 5
    assert pattern.early_morning_minutes == 5
    assert pattern.weekend_work is False

def test_empty_day(metrics_collector):
    pattern = metrics_collector.build_daily_pattern(DAY.date() - timedelta(days=1))
    assert pattern.work_minutes == 0
    assert pattern.focus_score == 0

def test_gaps_fill_missing_durations(db):
    db.compact()
    db.record_activity(record(9, 0, seconds=0))
    db.record_activity(record(9, 2, seconds=0))
    db.record_activity(record(9, 30, seconds=0))  # 28 minute gap is capped at the idle threshold
    db.record_activity(record(9, 31, seconds=0))  # last observation has no duration

    pattern = MetricsCollector(db).build_daily_pattern(DAY.date())
    assert pattern.work_minutes == 2 + 5 + 1

def test_daily_metrics(metrics_collector):
    metrics = metrics_collector.get_daily_metrics(DAY.date())
    assert metrics["date"] == "2025-03-10"
    assert metrics["summary"]["tracked_minutes"] == 25
    assert metrics["summary"]["distraction_minutes"] == 5
    assert metrics["summary"]["context_switches"] == 3
    assert metrics["top_apps"][0] == {"app_name": "code", "minutes": 15}
    assert metrics["hourly_patterns"][9]["tracked_minutes"] == 15
    assert metrics["hourly_patterns"][9]["productive_minutes"] == 10
    assert metrics["sessions"] == 0

def test_daily_metrics_error_returns_empty():
    db = Mock(spec=DatabaseManager)
    db.get_activities_on.side_effect = QueryError("boom")
    assert MetricsCollector(db).get_daily_metrics(DAY.date()) == {}

def test_export_timeframe(metrics_collector):
    result = metrics_collector.export_timeframe(DAY.date() - timedelta(days=2), DAY.date())
    assert result["timeframe"] == {"start": "2025-03-08", "end": "2025-03-10"}
    assert len(result["daily_patterns"]) == 3
    assert result["daily_patterns"][-1]["work_minutes"] == 25
    assert result["aggregate_metrics"]["total_work_minutes"] == 25
    assert result["aggregate_metrics"]["average_work_minutes"] == pytest.approx(25 / 3, abs=0.01)
