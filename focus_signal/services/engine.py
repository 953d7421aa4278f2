"""Public entry point tying classification, tracking, advice and storage together"""
from datetime import datetime, timedelta
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from focus_signal.config.config import EngineConfig
from focus_signal.models.activity import ActivityCategory, ActivityEvent, ActivityRecord
from focus_signal.models.recommendations import (
    BreakRecommendation, BreakRecord, BreakStats, BreakType, BurnoutAssessment
)
from focus_signal.models.work_pattern import DailyWorkPattern
from focus_signal.models.work_session import WorkSession
from focus_signal.services.break_advisor import BreakAdvisor, Selector
from focus_signal.services.burnout import BurnoutAssessor
from focus_signal.services.classifier import ActivityClassifier
from focus_signal.services.database import DatabaseManager, WriteResult
from focus_signal.services.errors import DatabaseError, TimerError
from focus_signal.services.metrics import MetricsCollector
from focus_signal.services.session_tracker import DeepWorkTracker, SessionCallback
from focus_signal.services.timer import CountdownTimer, DoneCallback, TickCallback, get_preset

logger = logging.getLogger(__name__)

RecommendationCallback = Callable[[BreakRecommendation], None]

class ProductivityEngine:
    """Feeds activity events through the classifier, the deep-work tracker
    and the break advisor, and answers questions about stored history.

    Each engine owns its components; nothing is shared between instances
    except what the caller passes in (usually the store).
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[DatabaseManager] = None,
        clock: Callable[[], datetime] = datetime.now,
        selector: Optional[Selector] = None,
        on_deep_work: Optional[SessionCallback] = None,
        on_break_recommendation: Optional[RecommendationCallback] = None,
        on_session_closed: Optional[SessionCallback] = None,
    ):
        self.config = config or EngineConfig()
        self._clock = clock
        self.store = store if store is not None else DatabaseManager(
            retention=self.config.retention, clock=clock
        )
        self.on_break_recommendation = on_break_recommendation

        self.classifier = ActivityClassifier(self.config.classifier)
        self.tracker = DeepWorkTracker(
            config=self.config.tracker,
            store=self.store,
            on_deep_work=on_deep_work,
            on_session_closed=on_session_closed,
            clock=clock,
        )
        self.advisor = BreakAdvisor(self.config.breaks, selector=selector)
        self.assessor = BurnoutAssessor(self.store, clock=clock)
        self.metrics = MetricsCollector(self.store, self.config.tracker)
        self.timer = CountdownTimer()

        self.last_recommendation: Optional[BreakRecommendation] = None
        self._pending_activity: Optional[ActivityRecord] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    def process_activity(
        self,
        app_name: str,
        window_title: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        url: Optional[str] = None,
        focus_score: Optional[float] = None,
    ) -> Optional[BreakRecommendation]:
        """Process one "what is active now" observation

        Returns:
            A break recommendation, or None when no rule fires
        """
        event = ActivityEvent(
            app_name=app_name,
            window_title=window_title or "",
            timestamp=timestamp or self._clock(),
            url=url,
        )
        return self.process_event(event, focus_score=focus_score)

    def process_event(
        self,
        event: ActivityEvent,
        focus_score: Optional[float] = None,
    ) -> Optional[BreakRecommendation]:
        with self._lock:
            category = self.classifier.classify(event.app_name, event.window_title)
            self._log_activity(event, category)
            self.tracker.process(event.app_name, category, event.timestamp, focus_score)

            recommendation = self.advisor.advise(
                self.tracker.minutes_since_break(),
                self.tracker.context_switch_count,
                self.tracker.focus_samples,
            )

        if recommendation is not None:
            self.last_recommendation = recommendation
            logger.info(
                f"Break recommended: {recommendation.type.value} "
                f"({recommendation.urgency.value}) - {recommendation.reason}"
            )
            if self.on_break_recommendation is not None:
                self.on_break_recommendation(recommendation)
        return recommendation

    def _log_activity(self, event: ActivityEvent, category: ActivityCategory) -> None:
        """Write the previous observation now that its duration is known"""
        if self._pending_activity is not None:
            previous = self._pending_activity
            gap = (event.timestamp - previous.created_at).total_seconds()
            idle_cap = self.config.tracker.idle_threshold_minutes * 60
            duration = int(max(0.0, min(gap, idle_cap)))
            self.store.record_activity(previous.model_copy(update={"duration_seconds": duration}))

        self._pending_activity = ActivityRecord(
            app_name=event.app_name,
            window_title=event.window_title,
            url=event.url,
            category=category,
            created_at=event.timestamp,
        )

    def _flush_activity(self) -> Optional[WriteResult]:
        if self._pending_activity is None:
            return None
        record, self._pending_activity = self._pending_activity, None
        return self.store.record_activity(record)

    def get_current_session(self) -> Optional[WorkSession]:
        with self._lock:
            return self.tracker.get_current_session()

    def is_in_deep_work(self) -> bool:
        return self.tracker.is_in_deep_work()

    def time_until_deep_work(self) -> float:
        return self.tracker.time_until_deep_work()

    def end_tracking(self) -> Optional[WorkSession]:
        """Flush the activity log and close the open session"""
        with self._lock:
            self._flush_activity()
            return self.tracker.end_tracking()

    # ------------------------------------------------------------------
    # Breaks
    # ------------------------------------------------------------------

    def record_break(self, break_type: BreakType, taken: bool) -> WriteResult:
        """Record whether a recommended break was taken

        A taken break resets the context-switch count, the focus samples and
        the continuous-work counter the advisor sees.
        """
        with self._lock:
            now = self._clock()
            self.tracker.record_break(taken, at=now)
            record = BreakRecord(
                break_type=BreakType(break_type).value,
                taken=taken,
                created_at=now,
            )
            result = self.store.record_break(record)
        logger.info(f"Break {record.break_type} {'taken' if taken else 'skipped'}")
        return result

    def get_break_stats(self) -> BreakStats:
        """Today's taken/skipped counts and minutes worked since the last break"""
        today = self._clock().date()
        try:
            breaks = self.store.get_breaks_on(today)
        except DatabaseError as e:
            logger.error(f"Could not load break history: {e}")
            breaks = []

        return BreakStats(
            taken_today=sum(1 for b in breaks if b.taken),
            skipped_today=sum(1 for b in breaks if not b.taken),
            avg_break_interval=round(self.tracker.minutes_since_break(), 2),
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def record_daily_pattern(self, pattern: Optional[DailyWorkPattern] = None) -> WriteResult:
        """Store a day's pattern, aggregating today's from the activity log if none given"""
        if pattern is None:
            try:
                pattern = self.metrics.build_daily_pattern(self._clock().date())
            except DatabaseError as e:
                logger.error(f"Could not aggregate today's work pattern: {e}")
                return WriteResult(ok=False, error=str(e), pending=self.store.pending_writes)
        result = self.store.upsert_daily_pattern(pattern)
        logger.info(f"Recorded daily pattern for {pattern.date}")
        return result

    def assess_burnout_risk(self) -> BurnoutAssessment:
        return self.assessor.assess()

    def get_today_sessions(self) -> List[WorkSession]:
        """Persisted deep-work sessions that started today"""
        try:
            return self.store.get_sessions_on(self._clock().date(), qualified_only=True)
        except DatabaseError as e:
            logger.error(f"Could not load today's sessions: {e}")
            return []

    def get_completed_sessions(self, days: int = 7) -> List[WorkSession]:
        """Persisted deep-work sessions from the last ``days`` days, newest first"""
        start = self._clock() - timedelta(days=days)
        try:
            return self.store.get_work_sessions(start=start, qualified_only=True)
        except DatabaseError as e:
            logger.error(f"Could not load completed sessions: {e}")
            return []

    def get_today_deep_work_minutes(self) -> float:
        """Deep-work minutes today, counting a qualified live session"""
        total = sum(s.continuous_minutes for s in self.get_today_sessions())
        current = self.get_current_session()
        if current is not None and current.qualified and current.start_time.date() == self._clock().date():
            total += current.continuous_minutes
        return round(total, 2)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, **changes: Dict[str, Any]) -> EngineConfig:
        """Apply section-level changes, effective from the next event

        Raises:
            ConfigError: If the change is rejected; the old config stays
        """
        new_config = self.config.with_changes(**changes)
        classifier = ActivityClassifier(new_config.classifier)

        with self._lock:
            self.config = new_config
            self.classifier = classifier
            self.tracker.config = new_config.tracker
            self.advisor.config = new_config.breaks
            self.metrics.tracker_config = new_config.tracker
            self.store.retention = new_config.retention

        logger.info(f"Configuration updated: {', '.join(changes)}")
        return new_config

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start_timer(
        self,
        minutes: Optional[float] = None,
        preset: Optional[str] = None,
        on_tick: Optional[TickCallback] = None,
        on_complete: Optional[DoneCallback] = None,
    ):
        """Start the engine's countdown from a running event loop

        Args:
            minutes: Countdown length; ignored when ``preset`` is given
            preset: Focus preset id whose focus duration is used
        """
        if preset is not None:
            focus_preset = get_preset(preset)
            minutes, label = focus_preset.focus_duration, focus_preset.name
        elif minutes is not None:
            label = f"{minutes:g} minute focus"
        else:
            raise TimerError("Either minutes or preset is required")
        return self.timer.start(minutes * 60, on_tick=on_tick, on_complete=on_complete, label=label)

    def cancel_timer(self) -> bool:
        return self.timer.cancel()

    def close(self) -> None:
        """End tracking and release the store"""
        self.cancel_timer()
        self.end_tracking()
        self.store.close()
