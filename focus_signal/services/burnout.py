"""Burnout risk assessment over recent daily work patterns.

Five independent indicators each add to a 0-100 score. Their maxima are
25/20/20/20/15, so the score tops out at exactly 100:

    excessive_hours   avg work minutes  > 540 / > 480   +25 / +15
    focus_decline     first-week avg focus minus last-week avg
                      > 15 / > 8 (needs 7+ days)        +20 / +10
    skipping_breaks   avg breaks taken  < 2 / < 4       +20 / +10
    late_nights       days with > 60 late minutes  >= 5 / >= 3   +20 / +10
    weekend_work      weekend days worked          >= 4 / >= 2   +15 / +8
"""
from datetime import datetime
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from focus_signal.models.recommendations import (
    BurnoutAssessment, Indicator, RiskLevel, Severity
)
from focus_signal.models.work_pattern import DailyWorkPattern
from focus_signal.services.database import DatabaseManager
from focus_signal.services.errors import DatabaseError

logger = logging.getLogger(__name__)

ASSESSMENT_WINDOW_DAYS = 14
MAX_RECOMMENDATIONS = 5

START_TRACKING = "Start tracking your work days to get a burnout assessment"

INDICATOR_RECOMMENDATIONS = {
    "excessive_hours": [
        "Set a hard stop time each day and stick to it",
        "Block \"wind down\" time on your calendar",
    ],
    "focus_decline": [
        "Try a midday meditation or walk",
        "Make sure you're getting 7-8 hours of sleep",
    ],
    "skipping_breaks": [
        "Use the Pomodoro technique with enforced breaks",
        "Take a 10-minute walk after each focus session",
    ],
    "late_nights": [
        "Establish a \"screens off\" time before bed",
        "Move devices out of the bedroom",
    ],
    "weekend_work": [
        "Protect your weekends for rest and recovery",
        "Plan tasks to complete by Friday evening",
    ],
}

RISK_PREAMBLES = {
    RiskLevel.CRITICAL: "Consider taking a day off or speaking with a manager",
    RiskLevel.HIGH: "Your work patterns suggest high stress - please prioritize rest",
}

RISK_COLORS = {
    RiskLevel.LOW: "#22c55e",
    RiskLevel.MODERATE: "#f59e0b",
    RiskLevel.HIGH: "#f97316",
    RiskLevel.CRITICAL: "#ef4444",
}

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0

def _tiered(
    kind: str,
    description: str,
    danger: bool,
    warning: bool,
    points: Tuple[int, int],
) -> Indicator:
    """Build an indicator from its two trigger tiers"""
    if danger:
        severity, score = Severity.DANGER, points[0]
    elif warning:
        severity, score = Severity.WARNING, points[1]
    else:
        severity, score = Severity.INFO, 0
    return Indicator(
        type=kind,
        description=description,
        severity=severity,
        triggered=danger or warning,
        score=score,
    )

def risk_level_for(score: int) -> RiskLevel:
    if score >= 70:
        return RiskLevel.CRITICAL
    if score >= 45:
        return RiskLevel.HIGH
    if score >= 25:
        return RiskLevel.MODERATE
    return RiskLevel.LOW

def risk_color(level: RiskLevel) -> str:
    return RISK_COLORS[RiskLevel(level)]

def build_indicators(patterns: Sequence[DailyWorkPattern]) -> List[Indicator]:
    """Evaluate every indicator over ``patterns`` (oldest first)"""
    indicators = []

    avg_minutes = _mean([p.work_minutes for p in patterns])
    indicators.append(_tiered(
        "excessive_hours",
        "Working more than 9 hours daily",
        danger=avg_minutes > 540,
        warning=avg_minutes > 480,
        points=(25, 15),
    ))

    if len(patterns) >= 7:
        first_week = _mean([p.focus_score for p in patterns[:7]])
        last_week = _mean([p.focus_score for p in patterns[-7:]])
        decline = first_week - last_week
        indicators.append(_tiered(
            "focus_decline",
            "Focus scores declining over time",
            danger=decline > 15,
            warning=decline > 8,
            points=(20, 10),
        ))

    avg_breaks = _mean([p.breaks_taken for p in patterns])
    indicators.append(_tiered(
        "skipping_breaks",
        "Not taking enough breaks",
        danger=avg_breaks < 2,
        warning=avg_breaks < 4,
        points=(20, 10),
    ))

    late_night_days = sum(1 for p in patterns if p.late_night_minutes > 60)
    indicators.append(_tiered(
        "late_nights",
        "Working late into the night",
        danger=late_night_days >= 5,
        warning=late_night_days >= 3,
        points=(20, 10),
    ))

    weekend_days = sum(1 for p in patterns if p.weekend_work)
    indicators.append(_tiered(
        "weekend_work",
        "Working on weekends",
        danger=weekend_days >= 4,
        warning=weekend_days >= 2,
        points=(15, 8),
    ))

    return indicators

def build_recommendations(indicators: Sequence[Indicator], risk_level: RiskLevel) -> List[str]:
    recommendations = []
    for indicator in indicators:
        if indicator.triggered:
            recommendations.extend(INDICATOR_RECOMMENDATIONS.get(indicator.type, []))

    preamble = RISK_PREAMBLES.get(risk_level)
    if preamble:
        recommendations.insert(0, preamble)

    return recommendations[:MAX_RECOMMENDATIONS]

def assess_burnout_risk(
    patterns: Sequence[DailyWorkPattern],
    now: Optional[datetime] = None,
) -> BurnoutAssessment:
    """Assess burnout risk from the last 14 patterns in ``patterns``

    Patterns are sorted by date first, so callers may pass them in any
    order. With no history the result is a neutral low-risk assessment.
    """
    now = now or datetime.now()
    recent = sorted(patterns, key=lambda p: p.date)[-ASSESSMENT_WINDOW_DAYS:]

    if not recent:
        return BurnoutAssessment(
            risk_level=RiskLevel.LOW,
            score=0,
            indicators=[],
            recommendations=[START_TRACKING],
            days_analyzed=0,
            last_updated=now,
        )

    indicators = build_indicators(recent)
    score = min(100, sum(indicator.score for indicator in indicators))
    risk_level = risk_level_for(score)

    return BurnoutAssessment(
        risk_level=risk_level,
        score=score,
        indicators=indicators,
        recommendations=build_recommendations(indicators, risk_level),
        days_analyzed=len(recent),
        last_updated=now,
    )

class BurnoutAssessor:
    """Reads recent patterns from the store and caches the latest assessment"""

    def __init__(self, store: DatabaseManager, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self._clock = clock
        self.last_assessment: Optional[BurnoutAssessment] = None

    def assess(self) -> BurnoutAssessment:
        try:
            patterns = self.store.get_recent_patterns(ASSESSMENT_WINDOW_DAYS)
        except DatabaseError as e:
            logger.error(f"Could not load work patterns, assessing without history: {e}")
            patterns = []

        assessment = assess_burnout_risk(patterns, now=self._clock())
        # Swap in the whole result, never a partially built one
        self.last_assessment = assessment
        logger.info(
            f"Burnout risk {assessment.risk_level.value} "
            f"(score {assessment.score}, {assessment.days_analyzed} days)"
        )
        return assessment
