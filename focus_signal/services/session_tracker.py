"""Assemble deep-work sessions from a stream of classified activity events"""
from collections import deque
from datetime import datetime, timedelta
import logging
from typing import Callable, Deque, List, Optional, Tuple

from focus_signal.config.config import TrackerConfig
from focus_signal.models.activity import ActivityCategory
from focus_signal.models.work_session import SessionState, WorkSession
from focus_signal.services.database import DatabaseManager

logger = logging.getLogger(__name__)

SessionCallback = Callable[[WorkSession], None]

class DeepWorkTracker:
    """State machine over idle -> accumulating -> qualified -> closed.

    Events must be fed in order from a single stream; the tracker keeps no
    locks. Durations are derived from event timestamps only, so a stalled
    stream freezes the live session instead of ticking it forward.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        store: Optional[DatabaseManager] = None,
        on_deep_work: Optional[SessionCallback] = None,
        on_session_closed: Optional[SessionCallback] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or TrackerConfig()
        self.store = store
        self.on_deep_work = on_deep_work
        self.on_session_closed = on_session_closed
        self._clock = clock

        self._session: Optional[WorkSession] = None
        self._last_event_time: Optional[datetime] = None
        self._last_productive_time: Optional[datetime] = None
        self._distraction_since: Optional[datetime] = None
        self._last_app: Optional[str] = None
        self._last_break_time: Optional[datetime] = None
        self._focus_samples: List[float] = []
        self._window: Deque[Tuple[datetime, bool]] = deque()

        self.context_switch_count = 0
        self.last_closed: Optional[WorkSession] = None

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    @property
    def focus_samples(self) -> List[float]:
        return list(self._focus_samples)

    @property
    def last_event_time(self) -> Optional[datetime]:
        return self._last_event_time

    def process(
        self,
        app_name: str,
        category: ActivityCategory,
        timestamp: Optional[datetime] = None,
        focus_score: Optional[float] = None,
    ) -> Optional[WorkSession]:
        """Feed one classified event

        Returns:
            The session closed by this event, if any
        """
        config = self.config
        now = self._clamp(timestamp)
        productive = category == ActivityCategory.PRODUCTIVE
        closed = None

        if self._last_app is not None and app_name != self._last_app:
            self.context_switch_count += 1
            if self._session is not None:
                self._session.context_switches += 1
        self._last_app = app_name
        self._observe(now, productive, config)

        if productive:
            if self._session is not None and self._grace_exceeded(now, config):
                closed = self._close(config)
            if self._session is None:
                self._start(now)
            self._distraction_since = None
            self._last_productive_time = now
            self._session.apps_touched.add(app_name)
            self._refresh(now, config)
        elif self._session is not None:
            if self._distraction_since is None:
                self._distraction_since = now
                self._session.distractions += 1
            if self._grace_exceeded(now, config):
                closed = self._close(config)

        if self._session is not None:
            self._record_sample(now, productive, focus_score, config)

        self._last_event_time = now
        return closed

    def get_current_session(self, now: Optional[datetime] = None) -> Optional[WorkSession]:
        """Return a copy of the live session with its duration recomputed against ``now``

        The live session itself only moves on events. The copy credits the
        time since the last event up to the idle threshold, so a stalled
        stream stops adding minutes once that threshold has passed.
        """
        if self._session is None:
            return None

        snapshot = self._session.snapshot()
        if self._distraction_since is not None:
            # Time spent on a distraction is never credited
            return snapshot

        reference = now or self._clock()
        if self._last_event_time is not None:
            idle_limit = self._last_event_time + timedelta(minutes=self.config.idle_threshold_minutes)
            reference = max(self._last_event_time, min(reference, idle_limit))
        snapshot.update_duration(reference)
        return snapshot

    def end_tracking(self) -> Optional[WorkSession]:
        """Close the open session, persisting it if long enough"""
        if self._session is None:
            return None
        return self._close(self.config)

    def record_break(self, taken: bool, at: Optional[datetime] = None) -> None:
        """Reset break-related counters when a break was actually taken"""
        if not taken:
            return
        at = at or self._clock()
        if self._last_event_time is not None:
            at = max(at, self._last_event_time)
        self._last_break_time = at
        self.context_switch_count = 0
        self._focus_samples = []
        logger.debug(f"Break recorded at {at}, counters reset")

    def minutes_since_break(self, now: Optional[datetime] = None) -> float:
        """Continuous work minutes since the later of session start and last break"""
        if self._session is None:
            return 0.0
        reference = now or self._last_event_time or self._clock()
        if self._distraction_since is not None:
            reference = self._last_productive_time
        anchor = self._session.start_time
        if self._last_break_time is not None and self._last_break_time > anchor:
            anchor = self._last_break_time
        return max(0.0, (reference - anchor).total_seconds() / 60)

    def is_in_deep_work(self) -> bool:
        return self._session is not None and self._session.qualified

    def time_until_deep_work(self) -> float:
        if self._session is None:
            return self.config.minimum_minutes
        return max(0.0, self.config.minimum_minutes - self._session.continuous_minutes)

    def _clamp(self, timestamp: Optional[datetime]) -> datetime:
        now = timestamp or self._clock()
        if self._last_event_time is not None and now < self._last_event_time:
            logger.debug(f"Out-of-order timestamp {now} clamped to {self._last_event_time}")
            return self._last_event_time
        return now

    def _grace_exceeded(self, now: datetime, config: TrackerConfig) -> bool:
        if self._distraction_since is None or self._last_productive_time is None:
            return False
        gap = (now - self._last_productive_time).total_seconds() / 60
        return gap > config.allowed_break_minutes

    def _start(self, now: datetime) -> None:
        self._session = WorkSession(start_time=now)
        self._focus_samples = []
        logger.info(f"Started work session {self._session.id} at {now}")

    def _refresh(self, now: datetime, config: TrackerConfig) -> None:
        session = self._session
        session.update_duration(now)
        if session.continuous_minutes >= config.minimum_minutes and session.qualify():
            logger.info(
                f"Session {session.id} qualified as deep work after "
                f"{session.display_minutes} minutes"
            )
            if self.on_deep_work is not None:
                self.on_deep_work(session.snapshot())

    def _close(self, config: TrackerConfig) -> WorkSession:
        session = self._session
        end_time = self._last_productive_time or session.start_time
        session.update_duration(end_time)
        session.close(end_time)

        if session.continuous_minutes >= config.persist_minimum_minutes:
            if self.store is not None:
                quality = self._focus_samples[-1] if self._focus_samples else None
                self.store.store_work_session(session, quality_score=quality)
        else:
            logger.debug(f"Dropping short session {session.id} ({session.continuous_minutes:.1f} min)")

        logger.info(
            f"Closed session {session.id} after {session.display_minutes} minutes "
            f"(qualified={session.qualified})"
        )
        self._session = None
        self._distraction_since = None
        self._focus_samples = []
        self.last_closed = session.snapshot()

        if self.on_session_closed is not None:
            self.on_session_closed(self.last_closed)
        return self.last_closed

    def _observe(self, now: datetime, productive: bool, config: TrackerConfig) -> None:
        """Keep the trailing window of observations used for focus samples"""
        self._window.append((now, productive))
        window_start = now - timedelta(minutes=config.focus_window_minutes)
        # Keep one observation before the window start, its interval overlaps it
        while len(self._window) > 1 and self._window[1][0] <= window_start:
            self._window.popleft()

    def _record_sample(
        self,
        now: datetime,
        productive: bool,
        focus_score: Optional[float],
        config: TrackerConfig,
    ) -> None:
        if focus_score is not None:
            self._focus_samples.append(min(100.0, max(0.0, float(focus_score))))
            return

        window_start = now - timedelta(minutes=config.focus_window_minutes)
        idle_cap = config.idle_threshold_minutes * 60
        tracked = productive_seconds = 0.0
        observations = list(self._window)
        for (started, was_productive), (ended, _) in zip(observations, observations[1:]):
            seconds = min((ended - max(started, window_start)).total_seconds(), idle_cap)
            if seconds <= 0:
                continue
            tracked += seconds
            if was_productive:
                productive_seconds += seconds

        if tracked == 0:
            sample = 100.0 if productive else 0.0
        else:
            sample = 100.0 * productive_seconds / tracked
        self._focus_samples.append(round(sample, 2))
