from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

class ActivityCategory(str, Enum):
    """Classification of a single activity observation"""
    PRODUCTIVE = "productive"
    DISTRACTION = "distraction"

class ActivityEvent(BaseModel):
    """A raw "what is active right now" observation"""
    app_name: str = Field(description="Owning application of the active window")
    window_title: str = Field(default="", description="Title of the active window")
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the observation was made (local time)"
    )
    url: Optional[str] = Field(
        default=None,
        description="Page URL, only reported for browsers"
    )

    @field_validator("timestamp")
    @classmethod
    def to_local_time(cls, value: datetime) -> datetime:
        """Offset-aware timestamps are converted to naive local time"""
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

class ActivityRecord(BaseModel):
    """A classified observation as stored in the activity log"""
    id: Optional[int] = None
    app_name: str
    window_title: str = ""
    url: Optional[str] = None
    category: ActivityCategory
    duration_seconds: int = Field(default=0, ge=0)
    created_at: datetime

    @property
    def is_distraction(self) -> bool:
        return self.category == ActivityCategory.DISTRACTION
