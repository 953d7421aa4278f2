from typing import Any, Dict, List
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
import logging

from focus_signal.services.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DISTRACTION_KEYWORDS = [
    "youtube", "netflix", "tiktok", "twitter", "x.com",
    "facebook", "instagram", "reddit", "discord", "telegram",
    "whatsapp", "slack", "messenger", "snapchat",
]

class ClassifierConfig(BaseModel):
    """Activity classification configuration"""
    model_config = {"frozen": True}

    distraction_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_DISTRACTION_KEYWORDS),
        description="Case-insensitive substrings that mark an app or window as a distraction"
    )
    match_window_title: bool = Field(
        default=True,
        description="Also match keywords against the window title"
    )

    @field_validator("distraction_keywords")
    @classmethod
    def normalize_keywords(cls, value: List[str]) -> List[str]:
        keywords = []
        for keyword in value:
            keyword = keyword.strip().lower()
            if keyword and keyword not in keywords:
                keywords.append(keyword)
        return keywords

class TrackerConfig(BaseModel):
    """Deep-work session tracking configuration"""
    model_config = {"frozen": True}

    minimum_minutes: float = Field(
        default=60,
        gt=0,
        le=480,
        description="Continuous minutes required for a session to count as deep work"
    )
    allowed_break_minutes: float = Field(
        default=5,
        ge=0,
        le=60,
        description="Grace period a distraction may last before the session closes"
    )
    persist_minimum_minutes: float = Field(
        default=15,
        ge=0,
        description="Sessions shorter than this are dropped at close time"
    )
    focus_window_minutes: float = Field(
        default=15,
        gt=0,
        le=240,
        description="Trailing window used for live focus-score samples"
    )
    idle_threshold_minutes: float = Field(
        default=5,
        gt=0,
        le=120,
        description="Longest gap between observations credited as tracked time"
    )

class BreakConfig(BaseModel):
    """Break advisor configuration"""
    model_config = {"frozen": True}

    long_break_minutes: float = Field(default=90, gt=0)
    decline_sample_count: int = Field(
        default=10,
        ge=4,
        description="Focus samples needed before decline is evaluated"
    )
    large_decline: float = Field(default=15, ge=0)
    moderate_decline: float = Field(default=8, ge=0)
    context_switch_limit: int = Field(default=20, ge=0)

    @model_validator(mode="after")
    def check_decline_bands(self) -> "BreakConfig":
        if self.moderate_decline > self.large_decline:
            raise ValueError("moderate_decline must not exceed large_decline")
        return self

class RetentionConfig(BaseModel):
    """Retention horizons per table"""
    model_config = {"frozen": True}

    pattern_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days to keep daily work patterns"
    )
    break_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days to keep break history"
    )
    activity_days: int = Field(
        default=90,
        ge=1,
        le=365,
        description="Days to keep the raw activity log"
    )
    session_days: int = Field(
        default=90,
        ge=1,
        le=365,
        description="Days to keep persisted work sessions"
    )
    compaction_interval_minutes: int = Field(
        default=60,
        ge=0,
        le=1440,
        description="Minimum minutes between retention passes triggered by writes"
    )

class EngineConfig(BaseModel):
    """Main engine configuration"""
    model_config = {"frozen": True}

    classifier: ClassifierConfig = ClassifierConfig()
    tracker: TrackerConfig = TrackerConfig()
    breaks: BreakConfig = BreakConfig()
    retention: RetentionConfig = RetentionConfig()

    def with_changes(self, **changes: Dict[str, Any]) -> "EngineConfig":
        """Return a validated copy with section-level changes applied

        Args:
            changes: Section name mapped to the fields to override,
                e.g. ``tracker={"minimum_minutes": 45}``

        Raises:
            ConfigError: If a section is unknown or a value fails validation
        """
        data = self.model_dump()
        for section, values in changes.items():
            if section not in data:
                raise ConfigError(f"Unknown configuration section: {section}")
            data[section].update(values)
        try:
            return EngineConfig.model_validate(data)
        except ValidationError as e:
            logger.error(f"Rejected configuration change: {e}")
            raise ConfigError(f"Invalid configuration: {e}")
