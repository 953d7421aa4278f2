from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Set
import uuid

class SessionState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    QUALIFIED = "qualified"
    CLOSED = "closed"

@dataclass
class WorkSession:
    start_time: datetime
    id: str = field(default_factory=lambda: f"deep_{uuid.uuid4().hex[:12]}")
    end_time: Optional[datetime] = None
    continuous_minutes: float = 0.0
    apps_touched: Set[str] = field(default_factory=set)
    state: SessionState = SessionState.ACCUMULATING
    qualified: bool = False  # sticky once set
    context_switches: int = 0
    distractions: int = 0

    @property
    def is_open(self) -> bool:
        return self.state in (SessionState.ACCUMULATING, SessionState.QUALIFIED)

    @property
    def display_minutes(self) -> int:
        """Duration rounded for display"""
        return int(round(self.continuous_minutes))

    def update_duration(self, now: datetime) -> float:
        """Recompute the duration against ``now``, never going negative"""
        elapsed = (now - self.start_time).total_seconds() / 60
        self.continuous_minutes = max(self.continuous_minutes, elapsed, 0.0)
        return self.continuous_minutes

    def qualify(self) -> bool:
        """Mark the session as deep work. Returns True only on the first call"""
        if self.qualified:
            return False
        self.qualified = True
        if self.is_open:
            self.state = SessionState.QUALIFIED
        return True

    def close(self, end_time: datetime) -> None:
        self.end_time = max(end_time, self.start_time)
        self.state = SessionState.CLOSED

    def snapshot(self) -> "WorkSession":
        """Copy safe to hand to callers"""
        return replace(self, apps_touched=set(self.apps_touched))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "continuous_minutes": round(self.continuous_minutes, 2),
            "apps_touched": sorted(self.apps_touched),
            "state": self.state.value,
            "qualified": self.qualified,
            "context_switches": self.context_switches,
            "distractions": self.distractions,
        }
