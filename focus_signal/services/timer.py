"""Cooperative countdown timer and focus-session presets"""
import asyncio
from enum import Enum
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from focus_signal.services.errors import TimerError

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], Union[None, Awaitable[None]]]
DoneCallback = Callable[[], Union[None, Awaitable[None]]]

class FocusPreset(BaseModel):
    """A named focus routine: work cycles separated by breaks"""
    model_config = {"frozen": True}

    id: str
    name: str
    focus_duration: int = Field(ge=5, le=120, description="Minutes of focus per cycle")
    break_interval: int = Field(
        default=0,
        ge=0,
        description="Minutes between mid-cycle breaks (0 = none)"
    )
    break_duration: int = Field(ge=0, description="Minutes of break after each cycle")
    cycles: int = Field(default=1, ge=1, le=8)

DEFAULT_PRESETS: Dict[str, FocusPreset] = {
    preset.id: preset for preset in (
        FocusPreset(id="pomodoro", name="Pomodoro", focus_duration=25, break_duration=5, cycles=4),
        FocusPreset(id="deep-work", name="Deep Work", focus_duration=45, break_duration=10, cycles=2),
        FocusPreset(
            id="long-focus", name="Long Focus",
            focus_duration=90, break_interval=30, break_duration=15, cycles=1
        ),
        FocusPreset(
            id="ultra-focus", name="Ultra Focus",
            focus_duration=120, break_interval=45, break_duration=20, cycles=1
        ),
    )
}

def get_preset(preset_id: str) -> FocusPreset:
    try:
        return DEFAULT_PRESETS[preset_id]
    except KeyError:
        raise TimerError(f"Unknown focus preset: {preset_id}")

def list_presets() -> List[FocusPreset]:
    return list(DEFAULT_PRESETS.values())

def calculate_total_time(preset: FocusPreset) -> int:
    """Total minutes for a preset, breaks between cycles included"""
    focus_time = preset.focus_duration * preset.cycles
    break_time = preset.break_duration * (preset.cycles - 1)
    return focus_time + break_time

def format_duration(minutes: int) -> str:
    """Format minutes as '45m', '2h' or '1h 30m'"""
    minutes = int(minutes)
    if minutes < 60:
        return f"{minutes}m"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if mins else f"{hours}h"

def format_time(seconds: float) -> str:
    """Format seconds as MM:SS"""
    mins, secs = divmod(int(seconds), 60)
    return f"{mins:02d}:{secs:02d}"

class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

class CountdownTimer:
    """Single asyncio countdown with optional tick and completion callbacks.

    Only one countdown runs at a time; starting a new one while another is
    running raises ``TimerError``. Cancelling never fires the completion
    callback.
    """

    def __init__(self, tick_seconds: float = 1.0):
        if tick_seconds <= 0:
            raise TimerError("tick_seconds must be positive")
        self.tick_seconds = tick_seconds
        self.duration_seconds = 0.0
        self.remaining = 0.0
        self.label: Optional[str] = None
        self._state = TimerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._on_tick: Optional[TickCallback] = None
        self._on_complete: Optional[DoneCallback] = None

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == TimerState.RUNNING

    def start(
        self,
        duration_seconds: float,
        on_tick: Optional[TickCallback] = None,
        on_complete: Optional[DoneCallback] = None,
        label: Optional[str] = None,
    ) -> asyncio.Task:
        """Start counting down. Must be called from a running event loop"""
        if self.is_running:
            raise TimerError("A countdown is already running")
        if duration_seconds <= 0:
            raise TimerError("Countdown duration must be positive")

        self.duration_seconds = float(duration_seconds)
        self.remaining = self.duration_seconds
        self.label = label
        self._on_tick = on_tick
        self._on_complete = on_complete
        self._state = TimerState.RUNNING
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Started countdown {label or 'timer'} for {self.duration_seconds:.0f}s")
        return self._task

    def cancel(self) -> bool:
        """Stop the countdown. Returns False if nothing was running"""
        if not self.is_running:
            return False
        self._state = TimerState.CANCELLED
        if self._task is not None:
            self._task.cancel()
        logger.info(f"Cancelled countdown with {self.remaining:.0f}s remaining")
        return True

    def reset(self) -> asyncio.Task:
        """Restart the last countdown from its full duration"""
        if self.duration_seconds <= 0:
            raise TimerError("No countdown to reset")
        self.cancel()
        return self.start(
            self.duration_seconds,
            on_tick=self._on_tick,
            on_complete=self._on_complete,
            label=self.label,
        )

    async def wait(self) -> TimerState:
        """Wait for the current countdown to finish or be cancelled"""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        return self._state

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.duration_seconds
        try:
            while self.remaining > 0:
                await asyncio.sleep(min(self.tick_seconds, self.remaining))
                self.remaining = max(0.0, deadline - loop.time())
                if self._on_tick is not None:
                    await _call(self._on_tick, self.remaining)

            self._state = TimerState.COMPLETED
            logger.info(f"Countdown {self.label or 'timer'} completed")
            if self._on_complete is not None:
                await _call(self._on_complete)
        except Exception as e:
            # A failing completion callback leaves the countdown completed
            if self._state == TimerState.RUNNING:
                self._state = TimerState.FAILED
            logger.error(f"Countdown {self.label or 'timer'} callback failed: {e}", exc_info=True)

class PomodoroCycle:
    """Tracks progress through the cycles of a preset"""

    def __init__(self, preset: FocusPreset):
        self.preset = preset
        self.current_cycle = 1
        self.in_break = False

    @property
    def total_cycles(self) -> int:
        return self.preset.cycles

    def next_cycle(self) -> Dict[str, bool]:
        """Finish the current focus block; a break follows unless it was the last"""
        if self.current_cycle >= self.total_cycles:
            self.current_cycle = 1
            self.in_break = False
            return {"completed": True, "is_break": False}
        self.in_break = True
        return {"completed": False, "is_break": True}

    def end_break(self) -> None:
        self.current_cycle += 1
        self.in_break = False

    def current_duration_seconds(self) -> float:
        minutes = self.preset.break_duration if self.in_break else self.preset.focus_duration
        return minutes * 60.0

async def _call(callback, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
