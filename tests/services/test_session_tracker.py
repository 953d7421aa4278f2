from datetime import datetime, timedelta
import pytest

from focus_signal.config.config import TrackerConfig
from focus_signal.models.activity import ActivityCategory
from focus_signal.models.work_session import SessionState
from focus_signal.services.session_tracker import DeepWorkTracker

PRODUCTIVE = ActivityCategory.PRODUCTIVE
DISTRACTION = ActivityCategory.DISTRACTION
T0 = datetime(2025, 3, 10, 9, 0)

def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)

@pytest.fixture
def qualified_sessions():
    return []

@pytest.fixture
def tracker(db, clock, qualified_sessions):
    return DeepWorkTracker(store=db, on_deep_work=qualified_sessions.append, clock=clock)

def run(tracker, app_name, category, start, end):
    """One event per minute in [start, end]"""
    closed = []
    for minute in range(start, end + 1):
        result = tracker.process(app_name, category, at(minute))
        if result is not None:
            closed.append(result)
    return closed

def test_starts_idle(tracker):
    assert tracker.state == SessionState.IDLE
    assert tracker.get_current_session() is None
    assert tracker.time_until_deep_work() == 60

def test_distraction_alone_does_not_start_session(tracker):
    tracker.process("YouTube", DISTRACTION, at(0))
    assert tracker.state == SessionState.IDLE

def test_productive_event_starts_session(tracker):
    tracker.process("code", PRODUCTIVE, at(0))
    assert tracker.state == SessionState.ACCUMULATING
    assert tracker.get_current_session(now=at(0)).apps_touched == {"code"}

def test_qualifies_at_minimum_minutes(tracker, qualified_sessions):
    run(tracker, "code", PRODUCTIVE, 0, 59)
    assert tracker.state == SessionState.ACCUMULATING
    assert not qualified_sessions

    tracker.process("code", PRODUCTIVE, at(60))
    assert tracker.state == SessionState.QUALIFIED
    assert tracker.is_in_deep_work()
    assert len(qualified_sessions) == 1
    assert qualified_sessions[0].display_minutes == 60

def test_qualification_callback_fires_once(tracker, qualified_sessions):
    run(tracker, "code", PRODUCTIVE, 0, 120)
    assert len(qualified_sessions) == 1

def test_duration_is_monotonic(tracker):
    durations = []
    for minute in range(0, 30):
        tracker.process("code", PRODUCTIVE, at(minute))
        durations.append(tracker.get_current_session(now=at(minute)).continuous_minutes)
    assert durations == sorted(durations)

def test_out_of_order_timestamps_are_clamped(tracker):
    tracker.process("code", PRODUCTIVE, at(0))
    tracker.process("code", PRODUCTIVE, at(10))
    tracker.process("code", PRODUCTIVE, at(5))
    assert tracker.last_event_time == at(10)
    assert tracker.get_current_session(now=at(10)).continuous_minutes == 10

def test_grace_period_keeps_session(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 30)
    run(tracker, "YouTube", DISTRACTION, 31, 34)
    tracker.process("code", PRODUCTIVE, at(35))

    session = tracker.get_current_session(now=at(35))
    assert session is not None
    assert session.continuous_minutes == 35
    assert session.distractions == 1

def test_distraction_time_is_not_credited(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 20)
    tracker.process("YouTube", DISTRACTION, at(23))
    session = tracker.get_current_session(now=at(24))
    assert session.continuous_minutes == 20

def test_grace_exceeded_closes_and_persists(tracker, db):
    """40 productive minutes then a long distraction"""
    run(tracker, "code", PRODUCTIVE, 0, 40)
    closed = run(tracker, "YouTube", DISTRACTION, 41, 50)

    assert len(closed) == 1
    session = closed[0]
    assert session.state == SessionState.CLOSED
    assert session.continuous_minutes == pytest.approx(40)
    assert session.end_time == at(40)
    assert not session.qualified
    assert tracker.state == SessionState.IDLE

    stored = db.get_work_sessions()
    assert len(stored) == 1
    assert stored[0].id == session.id
    assert stored[0].continuous_minutes == pytest.approx(40)
    assert not stored[0].qualified

def test_productive_event_after_expired_grace_starts_new_session(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 20)
    tracker.process("YouTube", DISTRACTION, at(21))
    closed = tracker.process("code", PRODUCTIVE, at(30))

    assert closed is not None
    assert closed.continuous_minutes == pytest.approx(20)
    current = tracker.get_current_session(now=at(30))
    assert current.start_time == at(30)
    assert current.id != closed.id

def test_short_sessions_are_dropped(tracker, db):
    run(tracker, "code", PRODUCTIVE, 0, 10)
    closed = tracker.end_tracking()
    assert closed.continuous_minutes == pytest.approx(10)
    assert db.get_work_sessions() == []

def test_qualification_is_sticky(tracker, db):
    run(tracker, "code", PRODUCTIVE, 0, 65)
    tracker.process("YouTube", DISTRACTION, at(66))
    assert tracker.state == SessionState.QUALIFIED

    closed = tracker.end_tracking()
    assert closed.qualified
    assert db.get_work_sessions(qualified_only=True)[0].id == closed.id

def test_end_tracking_without_session(tracker):
    assert tracker.end_tracking() is None

def test_context_switches(tracker):
    tracker.process("code", PRODUCTIVE, at(0))
    tracker.process("terminal", PRODUCTIVE, at(1))
    tracker.process("terminal", PRODUCTIVE, at(2))
    tracker.process("code", PRODUCTIVE, at(3))
    assert tracker.context_switch_count == 2
    assert tracker.get_current_session(now=at(3)).context_switches == 2

def test_record_break_resets_counters(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 30)
    tracker.process("terminal", PRODUCTIVE, at(31))
    assert tracker.context_switch_count == 1
    assert tracker.focus_samples

    tracker.record_break(True, at=at(31))
    assert tracker.context_switch_count == 0
    assert tracker.focus_samples == []

    tracker.process("terminal", PRODUCTIVE, at(41))
    assert tracker.minutes_since_break() == pytest.approx(10)

def test_skipped_break_changes_nothing(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 30)
    tracker.process("terminal", PRODUCTIVE, at(31))
    tracker.record_break(False, at=at(31))
    assert tracker.context_switch_count == 1
    assert tracker.minutes_since_break() == pytest.approx(31)

def test_explicit_focus_scores_are_clamped(tracker):
    tracker.process("code", PRODUCTIVE, at(0), focus_score=140)
    tracker.process("code", PRODUCTIVE, at(1), focus_score=-5)
    assert tracker.focus_samples == [100.0, 0.0]

def test_derived_focus_samples_track_productive_share(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 9)
    assert tracker.focus_samples[-1] == 100.0
    tracker.process("YouTube", DISTRACTION, at(10))
    tracker.process("YouTube", DISTRACTION, at(12))
    # 10 productive minutes and 2 distracted minutes inside the window
    assert tracker.focus_samples[-1] == pytest.approx(100 * 10 / 12, abs=0.01)

def test_closed_callback(db, clock):
    closed = []
    tracker = DeepWorkTracker(
        config=TrackerConfig(persist_minimum_minutes=0),
        store=db,
        on_session_closed=closed.append,
        clock=clock,
    )
    tracker.process("code", PRODUCTIVE, at(0))
    tracker.process("code", PRODUCTIVE, at(3))
    tracker.end_tracking()
    assert len(closed) == 1
    assert len(db.get_work_sessions()) == 1

def test_stalled_stream_credits_at_most_idle_threshold(tracker):
    run(tracker, "code", PRODUCTIVE, 0, 10)
    assert tracker.get_current_session(now=at(12)).continuous_minutes == pytest.approx(12)
    assert tracker.get_current_session(now=at(30)).continuous_minutes == pytest.approx(15)
    # Reads never move the live session
    assert tracker.time_until_deep_work() == pytest.approx(50)
