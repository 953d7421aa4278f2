"""Aggregate the activity log into daily work metrics"""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from focus_signal.config.config import TrackerConfig
from focus_signal.models.activity import ActivityRecord
from focus_signal.models.work_pattern import DailyWorkPattern
from focus_signal.services.database import DatabaseManager

logger = logging.getLogger(__name__)

LATE_NIGHT_HOUR = 21
EARLY_MORNING_HOUR = 7

class MetricsCollector:
    """Collects and formats activity metrics for analysis"""

    def __init__(self, db: DatabaseManager, tracker_config: Optional[TrackerConfig] = None):
        self.db = db
        self.tracker_config = tracker_config or TrackerConfig()

    def build_daily_pattern(self, day: Optional[date] = None) -> DailyWorkPattern:
        """Aggregate one calendar day of the activity log into a DailyWorkPattern"""
        day = day or datetime.now().date()
        intervals = self._intervals(self.db.get_activities_on(day))
        breaks = self.db.get_breaks_on(day)

        tracked = sum(seconds for _, seconds, _ in intervals)
        productive = sum(seconds for _, seconds, r in intervals if not r.is_distraction)
        late = sum(seconds for start, seconds, _ in intervals if start.hour >= LATE_NIGHT_HOUR)
        early = sum(seconds for start, seconds, _ in intervals if start.hour < EARLY_MORNING_HOUR)

        pattern = DailyWorkPattern(
            date=day,
            work_minutes=round(tracked / 60, 2),
            focus_score=round(100 * productive / tracked, 2) if tracked else 0.0,
            breaks_taken=sum(1 for b in breaks if b.taken),
            late_night_minutes=round(late / 60, 2),
            early_morning_minutes=round(early / 60, 2),
        )
        logger.debug(f"Built daily pattern for {day}: {pattern}")
        return pattern

    def get_daily_metrics(self, day: Optional[date] = None) -> Dict:
        """Get metrics for a specific date"""
        day = day or datetime.now().date()
        try:
            records = self.db.get_activities_on(day)
            intervals = self._intervals(records)
            return {
                "date": day.isoformat(),
                "summary": self._get_daily_summary(intervals),
                "top_apps": self._get_top_apps(intervals),
                "hourly_patterns": self._get_hourly_patterns(intervals),
                "sessions": len(self.db.get_sessions_on(day)),
                "deep_work_sessions": len(self.db.get_sessions_on(day, qualified_only=True)),
            }
        except Exception as e:
            logger.error(f"Error getting daily metrics: {e}")
            return {}

    def export_timeframe(self, start: date, end: date) -> Dict:
        """Export daily patterns for every day in [start, end]"""
        days = []
        current = start
        while current <= end:
            days.append(self.build_daily_pattern(current).model_dump(mode="json"))
            current += timedelta(days=1)

        work = [d["work_minutes"] for d in days]
        return {
            "timeframe": {
                "start": start.isoformat(),
                "end": end.isoformat()
            },
            "daily_patterns": days,
            "aggregate_metrics": {
                "total_work_minutes": round(sum(work), 2),
                "average_work_minutes": round(sum(work) / len(work), 2) if work else 0.0,
            }
        }

    def _intervals(self, records: List[ActivityRecord]) -> List[Tuple[datetime, float, ActivityRecord]]:
        """Pair every record with the seconds it accounts for.

        A stored duration wins; otherwise the gap to the next observation is
        used. Either way the time is capped at the idle threshold so an
        abandoned workstation is not counted as work.
        """
        idle_cap = self.tracker_config.idle_threshold_minutes * 60
        ordered = sorted(records, key=lambda r: r.created_at)
        intervals = []
        for i, record in enumerate(ordered):
            if record.duration_seconds > 0:
                seconds = float(record.duration_seconds)
            elif i + 1 < len(ordered):
                seconds = (ordered[i + 1].created_at - record.created_at).total_seconds()
            else:
                seconds = 0.0
            seconds = max(0.0, min(seconds, idle_cap))
            if seconds:
                intervals.append((record.created_at, seconds, record))
        return intervals

    def _get_daily_summary(self, intervals) -> Dict:
        tracked = sum(seconds for _, seconds, _ in intervals)
        distracted = sum(seconds for _, seconds, r in intervals if r.is_distraction)
        switches = sum(
            1 for (_, _, a), (_, _, b) in zip(intervals, intervals[1:])
            if a.app_name != b.app_name
        )
        return {
            "tracked_minutes": round(tracked / 60, 2),
            "distraction_minutes": round(distracted / 60, 2),
            "focus_score": round(100 * (tracked - distracted) / tracked, 2) if tracked else 0.0,
            "context_switches": switches,
            "total_observations": len(intervals),
        }

    def _get_top_apps(self, intervals, limit: int = 5) -> List[Dict]:
        totals: Dict[str, float] = {}
        for _, seconds, record in intervals:
            totals[record.app_name] = totals.get(record.app_name, 0.0) + seconds
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:limit]
        return [{"app_name": app, "minutes": round(seconds / 60, 2)} for app, seconds in ranked]

    def _get_hourly_patterns(self, intervals) -> Dict[int, Dict]:
        """Get tracked and productive minutes by hour of day"""
        patterns = {hour: {"tracked_minutes": 0.0, "productive_minutes": 0.0}
                    for hour in range(24)}
        for start, seconds, record in intervals:
            patterns[start.hour]["tracked_minutes"] += seconds / 60
            if not record.is_distraction:
                patterns[start.hour]["productive_minutes"] += seconds / 60

        for hour in patterns:
            for key in patterns[hour]:
                patterns[hour][key] = round(patterns[hour][key], 2)
        return patterns
