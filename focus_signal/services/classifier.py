"""Classify raw activity observations as productive or distracting"""
from typing import Iterable, Optional, Tuple
import logging

from focus_signal.config.config import ClassifierConfig
from focus_signal.models.activity import ActivityCategory

logger = logging.getLogger(__name__)

class ActivityClassifier:
    """Keyword-driven classifier.

    Anything that matches no distraction keyword is productive; there is no
    error path. Instances are immutable so a configuration change builds a
    new classifier rather than editing one in place.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        config = config or ClassifierConfig()
        self._keywords: Tuple[str, ...] = tuple(config.distraction_keywords)
        self._match_title = config.match_window_title

    @classmethod
    def from_keywords(cls, keywords: Iterable[str]) -> "ActivityClassifier":
        return cls(ClassifierConfig(distraction_keywords=list(keywords)))

    @property
    def keywords(self) -> Tuple[str, ...]:
        return self._keywords

    def classify(self, app_name: Optional[str], window_title: Optional[str] = None) -> ActivityCategory:
        """Map an observation to productive or distraction"""
        if self.matched_keyword(app_name, window_title) is not None:
            return ActivityCategory.DISTRACTION
        return ActivityCategory.PRODUCTIVE

    def is_distraction(self, app_name: Optional[str], window_title: Optional[str] = None) -> bool:
        return self.classify(app_name, window_title) == ActivityCategory.DISTRACTION

    def matched_keyword(self, app_name: Optional[str], window_title: Optional[str] = None) -> Optional[str]:
        """Return the first distraction keyword found, if any"""
        haystacks = [(app_name or "").lower()]
        if self._match_title:
            haystacks.append((window_title or "").lower())

        for keyword in self._keywords:
            if any(keyword in haystack for haystack in haystacks):
                logger.debug(f"Matched distraction keyword '{keyword}' for {app_name!r}")
                return keyword
        return None
