from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from datetime import datetime
import logging
from typing import Optional

from pydantic import BaseModel, Field

from focus_signal.models.recommendations import BreakType
from focus_signal.models.work_pattern import DailyWorkPattern
from focus_signal.services.database import WriteResult
from focus_signal.services.engine import ProductivityEngine
from focus_signal.services.errors import DatabaseError

logger = logging.getLogger(__name__)

class ActivityIn(BaseModel):
    app_name: str
    window_title: str = ""
    timestamp: Optional[datetime] = None
    url: Optional[str] = None
    focus_score: Optional[float] = Field(default=None, ge=0, le=100)

class BreakIn(BaseModel):
    break_type: BreakType
    taken: bool

def _write_response(result: WriteResult) -> JSONResponse:
    # 202: accepted but only queued for retry
    return JSONResponse(
        status_code=201 if result.ok else 202,
        content={
            "ok": result.ok,
            "row_id": result.row_id,
            "error": result.error,
            "pending": result.pending,
        }
    )

def _parse_date(value: str):
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format")

def create_app(engine: ProductivityEngine) -> FastAPI:
    """Build the HTTP API around an existing engine"""
    app = FastAPI(title="focus-signal")
    app.state.engine = engine

    @app.post("/api/activity")
    def post_activity(activity: ActivityIn):
        """Process one activity observation"""
        recommendation = engine.process_activity(
            activity.app_name,
            activity.window_title,
            timestamp=activity.timestamp,
            url=activity.url,
            focus_score=activity.focus_score,
        )
        return {
            "recommendation": recommendation.model_dump(mode="json") if recommendation else None,
            "in_deep_work": engine.is_in_deep_work(),
        }

    @app.get("/api/session")
    def get_session():
        session = engine.get_current_session()
        return {
            "session": session.to_dict() if session else None,
            "in_deep_work": engine.is_in_deep_work(),
            "minutes_until_deep_work": round(engine.time_until_deep_work(), 2),
        }

    @app.post("/api/breaks")
    def post_break(body: BreakIn):
        return _write_response(engine.record_break(body.break_type, body.taken))

    @app.get("/api/breaks/stats")
    def get_break_stats():
        return engine.get_break_stats().model_dump()

    @app.post("/api/patterns")
    def post_pattern(pattern: Optional[DailyWorkPattern] = None):
        """Store a daily pattern; without a body today's is aggregated"""
        return _write_response(engine.record_daily_pattern(pattern))

    @app.get("/api/burnout")
    def get_burnout():
        return engine.assess_burnout_risk().model_dump(mode="json")

    @app.get("/api/sessions/today")
    def get_today_sessions():
        sessions = engine.get_today_sessions()
        return {
            "sessions": [s.to_dict() for s in sessions],
            "deep_work_minutes": engine.get_today_deep_work_minutes(),
        }

    @app.get("/api/sessions/completed")
    def get_completed_sessions(days: int = 7):
        if days < 1:
            raise HTTPException(status_code=400, detail="days must be positive")
        return {"sessions": [s.to_dict() for s in engine.get_completed_sessions(days)]}

    @app.get("/api/metrics/daily/{date}")
    def get_daily_metrics(date: str):
        """Get metrics for a specific date"""
        day = _parse_date(date)
        metrics = engine.metrics.get_daily_metrics(day)
        if not metrics:
            raise HTTPException(status_code=500, detail="Could not compute daily metrics")
        return metrics

    @app.get("/api/metrics/range")
    def get_metrics_range(start: str, end: str):
        """Get daily patterns for a date range"""
        start_date, end_date = _parse_date(start), _parse_date(end)
        if end_date < start_date:
            raise HTTPException(status_code=400, detail="end must not precede start")
        try:
            return engine.metrics.export_timeframe(start_date, end_date)
        except DatabaseError as e:
            logger.error(f"Error getting metrics range: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc)}
        )

    return app
