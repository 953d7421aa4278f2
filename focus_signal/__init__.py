"""
focus-signal - Deep work, break and burnout signals from activity events
"""

__version__ = "0.1.0"

from .services.database import DatabaseManager, WriteResult
from .services.engine import ProductivityEngine
from .config.config import EngineConfig
from .models.activity import ActivityCategory, ActivityEvent
from .models.recommendations import BreakRecommendation, BreakType, BurnoutAssessment
from .models.work_pattern import DailyWorkPattern
from .models.work_session import SessionState, WorkSession

__all__ = [
    'ActivityCategory',
    'ActivityEvent',
    'BreakRecommendation',
    'BreakType',
    'BurnoutAssessment',
    'DailyWorkPattern',
    'DatabaseManager',
    'EngineConfig',
    'ProductivityEngine',
    'SessionState',
    'WorkSession',
    'WriteResult',
]
