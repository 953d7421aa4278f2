import datetime as dt
from typing import Optional
from pydantic import BaseModel, Field, model_validator

class DailyWorkPattern(BaseModel):
    """Aggregated work behaviour for one calendar date"""
    date: dt.date = Field(description="Local calendar date, unique per row")
    work_minutes: float = Field(default=0, ge=0, description="Minutes of tracked work")
    focus_score: float = Field(
        default=0,
        ge=0,
        le=100,
        description="Percentage of tracked time classified productive (0-100)"
    )
    breaks_taken: int = Field(default=0, ge=0)
    late_night_minutes: float = Field(
        default=0,
        ge=0,
        description="Minutes worked after 21:00"
    )
    early_morning_minutes: float = Field(
        default=0,
        ge=0,
        description="Minutes worked before 07:00"
    )
    weekend_work: Optional[bool] = Field(
        default=None,
        description="Derived from the date when not supplied"
    )

    @model_validator(mode="after")
    def derive_weekend_work(self) -> "DailyWorkPattern":
        if self.weekend_work is None:
            self.weekend_work = self.date.weekday() >= 5 and self.work_minutes > 30
        return self
