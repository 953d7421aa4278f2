import json
from datetime import date, datetime, time, timedelta
import pytest
from click.testing import CliRunner

from focus_signal.cli.service import cli
from focus_signal.config.settings import settings
from focus_signal.services.database import DatabaseManager

@pytest.fixture
def runner(temp_dir, monkeypatch):
    monkeypatch.setattr(settings, "LOG_DIR", temp_dir / "logs")
    return CliRunner()

@pytest.fixture
def db_path(temp_dir):
    return temp_dir / "cli.db"

@pytest.fixture
def events_file(temp_dir):
    start = datetime.combine(date.today(), time(0, 0))
    path = temp_dir / "events.jsonl"
    with open(path, "w") as f:
        for minute in range(95):
            f.write(json.dumps({
                "app_name": "Visual Studio Code",
                "window_title": "cli.py",
                "timestamp": (start + timedelta(minutes=minute)).isoformat(),
            }) + "\n")
    return path

def test_replay(runner, db_path, events_file):
    result = runner.invoke(cli, ["--db", str(db_path), "replay", str(events_file)])
    assert result.exit_code == 0, result.output
    assert "Replayed 95 events" in result.output
    assert "Deep work session" in result.output

    store = DatabaseManager(db_path)
    try:
        sessions = store.get_work_sessions(qualified_only=True)
        assert len(sessions) == 1
        assert len(store.get_activities_on(date.today())) == 95
    finally:
        store.close()

def test_replay_missing_file(runner, db_path, temp_dir):
    result = runner.invoke(cli, ["--db", str(db_path), "replay", str(temp_dir / "nope.jsonl")])
    assert result.exit_code != 0

def test_watch_without_follow(runner, db_path, events_file):
    result = runner.invoke(cli, ["--db", str(db_path), "watch", "--no-follow", str(events_file)])
    assert result.exit_code == 0, result.output
    assert "Processed 95 events" in result.output

def test_presets(runner):
    result = runner.invoke(cli, ["presets"])
    assert result.exit_code == 0
    assert "pomodoro" in result.output
    assert "ultra-focus" in result.output

def test_breaks(runner, db_path):
    result = runner.invoke(cli, ["--db", str(db_path), "breaks", "--taken", "eye", "--skipped", "long"])
    assert result.exit_code == 0, result.output

    store = DatabaseManager(db_path)
    try:
        history = store.get_breaks_on(datetime.now().date())
        assert sorted((b.break_type, b.taken) for b in history) == [("eye", True), ("long", False)]
    finally:
        store.close()

def test_breaks_rejects_unknown_type(runner, db_path):
    result = runner.invoke(cli, ["--db", str(db_path), "breaks", "--taken", "nap"])
    assert result.exit_code == 2

def test_pattern_record(runner, db_path):
    result = runner.invoke(cli, ["--db", str(db_path), "pattern", "record", "--date", "2025-03-10"])
    assert result.exit_code == 0, result.output
    assert "Recorded 2025-03-10" in result.output

def test_burnout_and_sessions(runner, db_path):
    result = runner.invoke(cli, ["--db", str(db_path), "burnout"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(cli, ["--db", str(db_path), "sessions", "--today"])
    assert result.exit_code == 0, result.output

@pytest.mark.parametrize("command", ["stats", "compact", "verify", "optimize"])
def test_db_commands(runner, db_path, command):
    result = runner.invoke(cli, ["--db", str(db_path), "db", command])
    assert result.exit_code == 0, result.output
