import pytest
from fastapi.testclient import TestClient
from datetime import datetime, timedelta, timezone

from focus_signal.services.database import QueryError
from focus_signal.web.app import create_app

@pytest.fixture
def test_client(engine):
    """Create a test client around the shared test engine"""
    return TestClient(create_app(engine))

def test_post_activity(test_client, clock):
    response = test_client.post("/api/activity", json={
        "app_name": "Visual Studio Code",
        "window_title": "app.py",
        "timestamp": clock().isoformat(),
    })
    assert response.status_code == 200
    data = response.json()
    assert data["recommendation"] is None
    assert data["in_deep_work"] is False

def test_post_activity_returns_recommendation(test_client, clock):
    for minute in range(21):
        response = test_client.post("/api/activity", json={
            "app_name": "Visual Studio Code",
            "timestamp": (clock() + timedelta(minutes=minute)).isoformat(),
        })
    recommendation = response.json()["recommendation"]
    assert recommendation["type"] == "eye"
    assert recommendation["urgency"] == "low"

def test_post_activity_validation(test_client):
    response = test_client.post("/api/activity", json={"app_name": "Slack", "focus_score": 150})
    assert response.status_code == 422
    response = test_client.post("/api/activity", json={"window_title": "no app"})
    assert response.status_code == 422

def test_session_endpoint(test_client, feed):
    response = test_client.get("/api/session")
    assert response.json() == {
        "session": None,
        "in_deep_work": False,
        "minutes_until_deep_work": 60,
    }

    feed("Visual Studio Code", 61)
    data = test_client.get("/api/session").json()
    assert data["in_deep_work"] is True
    assert data["minutes_until_deep_work"] == 0
    assert data["session"]["qualified"] is True
    assert data["session"]["continuous_minutes"] == 61
    assert data["session"]["apps_touched"] == ["Visual Studio Code"]

def test_breaks(test_client):
    response = test_client.post("/api/breaks", json={"break_type": "eye", "taken": True})
    assert response.status_code == 201
    assert response.json()["ok"] is True

    test_client.post("/api/breaks", json={"break_type": "long", "taken": False})
    stats = test_client.get("/api/breaks/stats").json()
    assert stats["taken_today"] == 1
    assert stats["skipped_today"] == 1

def test_break_validation(test_client):
    response = test_client.post("/api/breaks", json={"break_type": "nap", "taken": True})
    assert response.status_code == 422

def test_breaks_queued_when_storage_fails(test_client, db):
    db.conn.execute("DROP TABLE break_history")
    response = test_client.post("/api/breaks", json={"break_type": "eye", "taken": True})
    assert response.status_code == 202
    assert response.json()["pending"] == 1

def test_patterns(test_client, db):
    response = test_client.post("/api/patterns", json={
        "date": "2025-03-08",
        "work_minutes": 300,
        "focus_score": 70,
        "breaks_taken": 3,
    })
    assert response.status_code == 201
    stored = db.get_recent_patterns()
    assert stored[0].weekend_work is True

def test_patterns_without_body_aggregates_today(test_client, feed, db, clock):
    feed("Visual Studio Code", 30)
    response = test_client.post("/api/patterns")
    assert response.status_code == 201
    assert db.get_daily_pattern(clock().date()) is not None

def test_burnout(test_client):
    data = test_client.get("/api/burnout").json()
    assert data["risk_level"] == "low"
    assert data["days_analyzed"] == 0

def test_sessions(test_client, feed):
    feed("Visual Studio Code", 70)
    feed("YouTube", 10)

    today = test_client.get("/api/sessions/today").json()
    assert len(today["sessions"]) == 1
    assert today["deep_work_minutes"] == pytest.approx(69)

    completed = test_client.get("/api/sessions/completed", params={"days": 7}).json()
    assert len(completed["sessions"]) == 1

def test_completed_sessions_rejects_bad_days(test_client):
    assert test_client.get("/api/sessions/completed", params={"days": 0}).status_code == 400

def test_daily_metrics_api(test_client, feed):
    feed("Visual Studio Code", 20)
    response = test_client.get("/api/metrics/daily/2025-03-10")
    assert response.status_code == 200
    data = response.json()
    assert data["date"] == "2025-03-10"
    assert "summary" in data
    assert "hourly_patterns" in data

def test_invalid_date_format(test_client):
    """Test handling of invalid date format"""
    response = test_client.get("/api/metrics/daily/invalid-date")
    assert response.status_code == 400
    assert "Invalid date format" in response.json()["detail"]

def test_metrics_range(test_client):
    response = test_client.get("/api/metrics/range", params={"start": "2025-03-08", "end": "2025-03-10"})
    assert response.status_code == 200
    data = response.json()
    assert len(data["daily_patterns"]) == 3
    assert data["timeframe"]["start"] == "2025-03-08"

    response = test_client.get("/api/metrics/range", params={"start": "2025-03-10", "end": "2025-03-08"})
    assert response.status_code == 400

def test_storage_errors_return_503(test_client, engine, monkeypatch):
    def broken():
        raise QueryError("disk is gone")
    monkeypatch.setattr(engine, "get_break_stats", broken)
    response = test_client.get("/api/breaks/stats")
    assert response.status_code == 503
    assert "disk is gone" in response.json()["detail"]

def test_offset_timestamps_are_converted_to_local_time(test_client):
    start = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
    for minute in range(3):
        stamp = (start + timedelta(minutes=minute)).strftime("%Y-%m-%dT%H:%M:%SZ")
        response = test_client.post("/api/activity", json={
            "app_name": "Visual Studio Code",
            "timestamp": stamp,
        })
        assert response.status_code == 200

    response = test_client.get("/api/session")
    assert response.status_code == 200
    local_start = start.astimezone().replace(tzinfo=None)
    assert response.json()["session"]["start_time"] == local_start.isoformat()

    response = test_client.post("/api/breaks", json={"break_type": "eye", "taken": True})
    assert response.status_code == 201
