import pytest

from focus_signal.config.config import BreakConfig, EngineConfig, DEFAULT_DISTRACTION_KEYWORDS
from focus_signal.config.settings import Settings
from focus_signal.services.errors import ConfigError

def test_defaults():
    config = EngineConfig()
    assert config.tracker.minimum_minutes == 60
    assert config.tracker.allowed_break_minutes == 5
    assert config.tracker.persist_minimum_minutes == 15
    assert config.retention.pattern_days == 30
    assert config.retention.activity_days == 90
    assert config.classifier.distraction_keywords == DEFAULT_DISTRACTION_KEYWORDS

def test_with_changes_returns_validated_copy():
    config = EngineConfig()
    changed = config.with_changes(tracker={"minimum_minutes": 45})
    assert changed.tracker.minimum_minutes == 45
    assert changed.tracker.allowed_break_minutes == 5
    assert config.tracker.minimum_minutes == 60

def test_with_changes_rejects_invalid_values():
    with pytest.raises(ConfigError):
        EngineConfig().with_changes(tracker={"minimum_minutes": -1})

def test_with_changes_rejects_unknown_section():
    with pytest.raises(ConfigError, match="Unknown configuration section"):
        EngineConfig().with_changes(notifications={"enabled": True})

def test_decline_bands_are_ordered():
    with pytest.raises(ValueError):
        BreakConfig(large_decline=5, moderate_decline=10)

def test_settings_from_environment(monkeypatch, temp_dir):
    monkeypatch.setenv("FOCUS_SIGNAL_WEB_PORT", "9123")
    monkeypatch.setenv("FOCUS_SIGNAL_BREAK_SELECTION_SEED", "7")
    monkeypatch.setenv("FOCUS_SIGNAL_DATA_DIR", str(temp_dir / "data"))
    settings = Settings()
    assert settings.WEB_PORT == 9123
    assert settings.BREAK_SELECTION_SEED == 7
    assert settings.DATA_DIR == temp_dir / "data"
