from datetime import datetime, timedelta
import pytest
from pydantic import ValidationError

from focus_signal.models.work_pattern import DailyWorkPattern
from focus_signal.models.work_session import SessionState, WorkSession

START = datetime(2025, 3, 10, 9, 0)

def test_new_session_is_accumulating():
    session = WorkSession(start_time=START)
    assert session.state == SessionState.ACCUMULATING
    assert session.is_open
    assert session.id.startswith("deep_")
    assert session.continuous_minutes == 0

def test_duration_never_decreases():
    session = WorkSession(start_time=START)
    session.update_duration(START + timedelta(minutes=30))
    session.update_duration(START + timedelta(minutes=10))
    assert session.continuous_minutes == 30

def test_duration_never_negative():
    session = WorkSession(start_time=START)
    session.update_duration(START - timedelta(minutes=5))
    assert session.continuous_minutes == 0

def test_qualify_fires_once():
    session = WorkSession(start_time=START)
    assert session.qualify() is True
    assert session.qualify() is False
    assert session.state == SessionState.QUALIFIED

def test_close_keeps_qualification():
    session = WorkSession(start_time=START)
    session.qualify()
    session.close(START + timedelta(minutes=70))
    assert session.state == SessionState.CLOSED
    assert session.qualified
    assert not session.is_open
    assert session.end_time == START + timedelta(minutes=70)

def test_close_end_time_not_before_start():
    session = WorkSession(start_time=START)
    session.close(START - timedelta(minutes=1))
    assert session.end_time == START

def test_snapshot_is_independent():
    session = WorkSession(start_time=START, apps_touched={"code"})
    copy = session.snapshot()
    copy.apps_touched.add("terminal")
    assert session.apps_touched == {"code"}

def test_to_dict():
    session = WorkSession(start_time=START, apps_touched={"vim", "code"})
    session.update_duration(START + timedelta(minutes=12, seconds=30))
    data = session.to_dict()
    assert data["apps_touched"] == ["code", "vim"]
    assert data["continuous_minutes"] == 12.5
    assert data["state"] == "accumulating"
    assert data["end_time"] is None

@pytest.mark.parametrize("day,minutes,expected", [
    (datetime(2025, 3, 15).date(), 45, True),    # Saturday
    (datetime(2025, 3, 16).date(), 20, False),   # Sunday, too short
    (datetime(2025, 3, 12).date(), 600, False),  # Wednesday
])
def test_weekend_work_is_derived(day, minutes, expected):
    pattern = DailyWorkPattern(date=day, work_minutes=minutes)
    assert pattern.weekend_work is expected

def test_explicit_weekend_work_wins():
    pattern = DailyWorkPattern(date=datetime(2025, 3, 12).date(), work_minutes=10, weekend_work=True)
    assert pattern.weekend_work is True

def test_focus_score_bounds():
    with pytest.raises(ValidationError):
        DailyWorkPattern(date=START.date(), focus_score=120)
