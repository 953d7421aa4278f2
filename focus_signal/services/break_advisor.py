"""Recommend breaks from live session counters"""
import logging
import random
from typing import Callable, Dict, List, Optional, Sequence

from focus_signal.config.config import BreakConfig
from focus_signal.models.recommendations import (
    BreakRecommendation, BreakType, FocusDecline, Urgency
)

logger = logging.getLogger(__name__)

Selector = Callable[[Sequence[str]], str]

BREAK_TYPES: Dict[BreakType, Dict] = {
    BreakType.MICRO: {
        "name": "Micro Break",
        "duration": 1,
        "activities": [
            "Take 3 deep breaths",
            "Stretch your neck",
            "Blink rapidly for 10 seconds",
        ],
    },
    BreakType.SHORT: {
        "name": "Short Break",
        "duration": 5,
        "activities": [
            "Walk to get water",
            "Do 10 squats",
            "Chat with a colleague",
            "Step outside briefly",
        ],
    },
    BreakType.LONG: {
        "name": "Recovery Break",
        "duration": 15,
        "activities": [
            "Take a proper snack break",
            "Go for a short walk",
            "Do some stretching",
            "Meditate for 10 min",
        ],
    },
    BreakType.MOVEMENT: {
        "name": "Movement Break",
        "duration": 5,
        "activities": [
            "Walk around the block",
            "Do some jumping jacks",
            "Stretch your whole body",
        ],
    },
    BreakType.EYE: {
        "name": "Eye Rest",
        "duration": 1,
        "activities": [
            "Look at something 20 feet away for 20 seconds",
            "Close eyes and rest",
            "Blink slowly 10 times",
        ],
    },
}

def seeded_selector(seed: Optional[int] = None) -> Selector:
    """Pick activities with a private RNG, reproducible when seeded"""
    rng = random.Random(seed)
    return rng.choice

def index_selector(index: int = 0) -> Selector:
    """Always pick the activity at ``index`` (wrapping around)"""
    def select(options: Sequence[str]) -> str:
        return options[index % len(options)]
    return select

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)

class BreakAdvisor:
    """Stateless-per-call break policy.

    Rules are checked in priority order and the first match wins, so a call
    yields at most one recommendation. Nothing here raises on odd input; not
    enough data simply means no recommendation.
    """

    def __init__(self, config: Optional[BreakConfig] = None, selector: Optional[Selector] = None):
        self.config = config or BreakConfig()
        self.selector = selector or seeded_selector()

    def advise(
        self,
        continuous_minutes: float,
        context_switch_count: int,
        focus_samples: Sequence[float],
    ) -> Optional[BreakRecommendation]:
        config = self.config
        minutes = max(0.0, continuous_minutes or 0.0)

        if minutes >= config.long_break_minutes:
            return self._recommend(
                BreakType.LONG,
                f"You've been working for {int(config.long_break_minutes)}+ minutes",
                Urgency.HIGH,
            )

        decline = self._focus_decline(focus_samples)
        if decline is not None:
            if decline > config.large_decline:
                return self._recommend(
                    BreakType.SHORT,
                    "Your focus is declining sharply",
                    Urgency.MEDIUM,
                    focus_decline=FocusDecline.LARGE,
                    focus_drop=decline,
                )
            if decline > config.moderate_decline:
                return self._recommend(
                    BreakType.SHORT,
                    "Your focus is starting to slip",
                    Urgency.MEDIUM,
                    focus_decline=FocusDecline.MODERATE,
                    focus_drop=decline,
                )

        if context_switch_count > config.context_switch_limit and minutes > 30:
            return self._recommend(BreakType.MOVEMENT, "High context switching detected", Urgency.MEDIUM)

        if 25 <= minutes < 30:
            return self._recommend(BreakType.SHORT, "25 minutes of focused work completed", Urgency.LOW)

        if 20 <= minutes < 21:
            return self._recommend(BreakType.EYE, "20-20-20 rule reminder", Urgency.LOW)

        if 50 <= minutes < 51:
            return self._recommend(BreakType.MICRO, "Quick micro-break suggested", Urgency.LOW)

        return None

    def _focus_decline(self, samples: Sequence[float]) -> Optional[float]:
        """Prior-window average minus recent-window average, or None"""
        count = self.config.decline_sample_count
        if not samples or len(samples) < count:
            return None
        half = count // 2
        recent = list(samples[-half:])
        prior = list(samples[-count:-half])
        return _mean(prior) - _mean(recent)

    def _recommend(
        self,
        break_type: BreakType,
        reason: str,
        urgency: Urgency,
        focus_decline: Optional[FocusDecline] = None,
        focus_drop: Optional[float] = None,
    ) -> BreakRecommendation:
        info = BREAK_TYPES[break_type]
        activity = self.selector(info["activities"])
        logger.debug(f"Recommending {break_type.value} break: {reason}")
        return BreakRecommendation(
            type=break_type,
            duration_minutes=info["duration"],
            reason=reason,
            activity=activity,
            urgency=urgency,
            focus_decline=focus_decline,
            focus_drop=round(focus_drop, 2) if focus_drop is not None else None,
        )

    @staticmethod
    def get_break_types() -> Dict[str, Dict]:
        """Catalog of break types keyed by type name"""
        return {
            break_type.value: {
                "name": info["name"],
                "duration": info["duration"],
                "activities": list(info["activities"]),
            } for break_type, info in BREAK_TYPES.items()
        }

    @staticmethod
    def activities_for(break_type: BreakType) -> List[str]:
        return list(BREAK_TYPES[break_type]["activities"])
