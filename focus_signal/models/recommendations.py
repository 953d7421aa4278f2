from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

class BreakType(str, Enum):
    MICRO = "micro"
    SHORT = "short"
    LONG = "long"
    MOVEMENT = "movement"
    EYE = "eye"

class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class FocusDecline(str, Enum):
    """Which focus-decline band produced a recommendation"""
    LARGE = "large"
    MODERATE = "moderate"

class BreakRecommendation(BaseModel):
    """A suggested break, never persisted"""
    type: BreakType
    duration_minutes: int = Field(ge=0)
    reason: str
    activity: str = Field(description="Suggested thing to do during the break")
    urgency: Urgency
    focus_decline: Optional[FocusDecline] = None
    focus_drop: Optional[float] = Field(
        default=None,
        description="Prior minus recent focus average when decline triggered"
    )

class BreakRecord(BaseModel):
    """A recommendation the user acted on (or skipped)"""
    id: Optional[int] = None
    break_type: str
    taken: bool
    created_at: datetime

class BreakStats(BaseModel):
    taken_today: int = 0
    skipped_today: int = 0
    avg_break_interval: float = Field(
        default=0.0,
        description="Minutes worked since the last break"
    )

class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"

class Indicator(BaseModel):
    """One burnout signal and how strongly it fired"""
    type: str
    description: str
    severity: Severity
    triggered: bool
    score: int = Field(default=0, ge=0, description="Contribution to the risk score")

class BurnoutAssessment(BaseModel):
    """Composite burnout risk derived from recent daily work patterns"""
    risk_level: RiskLevel
    score: int = Field(ge=0, le=100)
    indicators: List[Indicator] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    days_analyzed: int = 0
    last_updated: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}
