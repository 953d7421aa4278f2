import pytest
from pathlib import Path
import tempfile
import shutil
from datetime import datetime, timedelta

from focus_signal.services.break_advisor import index_selector
from focus_signal.services.database import DatabaseManager
from focus_signal.services.engine import ProductivityEngine

class FakeClock:
    """Manually advanced stand-in for datetime.now"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files"""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)

@pytest.fixture
def clock():
    """A Monday morning clock"""
    return FakeClock(datetime(2025, 3, 10, 9, 0))

@pytest.fixture
def db(clock):
    """Provide a test database instance"""
    db = DatabaseManager(":memory:", clock=clock)  # Use in-memory database for testing
    yield db
    db.close()

@pytest.fixture
def engine(db, clock):
    """Engine with deterministic break activity selection"""
    return ProductivityEngine(store=db, clock=clock, selector=index_selector(0))

@pytest.fixture
def feed(engine, clock):
    """Send one event per ``step`` minutes for ``minutes`` minutes, advancing the clock"""
    def _feed(app_name, minutes, window_title="", step=1):
        recommendations = []
        for _ in range(0, minutes, step):
            recommendations.append(engine.process_activity(app_name, window_title, timestamp=clock()))
            clock.advance(minutes=step)
        return recommendations
    return _feed
