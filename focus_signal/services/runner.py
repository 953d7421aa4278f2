import asyncio
import json
import logging
import signal
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Callable, Iterator, Optional

from pydantic import ValidationError

from focus_signal.config.settings import settings
from focus_signal.models.activity import ActivityEvent
from focus_signal.models.recommendations import BreakRecommendation
from focus_signal.services.engine import ProductivityEngine
from focus_signal.services.errors import DatabaseError, RunnerError, ServiceError

logger = logging.getLogger(__name__)

class EventSourceError(RunnerError):
    """Exception raised when an event source cannot be read"""
    pass

def parse_event_line(line: str) -> Optional[ActivityEvent]:
    """Parse one JSONL line into an event, or None for blank/invalid lines"""
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    try:
        return ActivityEvent.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Skipping malformed event line: {e}")
        return None

def load_events(path: Path) -> Iterator[ActivityEvent]:
    """Read every event from a JSONL file"""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                event = parse_event_line(line)
                if event is not None:
                    yield event
    except OSError as e:
        raise EventSourceError(f"Could not read events from {path}: {e}")

class JsonlEventSource:
    """Async iterator over a JSONL file of activity events.

    With ``follow=True`` it keeps polling the file for appended lines until
    ``stop()`` is called, like ``tail -f``.
    """

    def __init__(self, path: Path, follow: bool = False, poll_seconds: Optional[float] = None):
        self.path = Path(path)
        self.follow = follow
        self.poll_seconds = poll_seconds if poll_seconds is not None else settings.EVENT_POLL_SECONDS
        self._stopped = asyncio.Event()

    def stop(self) -> None:
        self._stopped.set()

    async def __aiter__(self) -> AsyncIterator[ActivityEvent]:
        try:
            handle = open(self.path, encoding="utf-8")
        except OSError as e:
            raise EventSourceError(f"Could not open {self.path}: {e}")

        with handle:
            buffer = ""
            while not self._stopped.is_set():
                chunk = await asyncio.to_thread(handle.readline)
                if chunk:
                    buffer += chunk
                    if not buffer.endswith("\n") and self.follow:
                        # Partial line, the writer has not finished it yet
                        continue
                    event = parse_event_line(buffer)
                    buffer = ""
                    if event is not None:
                        yield event
                    continue

                if not self.follow:
                    break
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_seconds)
                except asyncio.TimeoutError:
                    continue

class EngineRunner:
    """Drives a ProductivityEngine from an async event source with graceful shutdown"""

    MAX_ERRORS = 3

    def __init__(
        self,
        engine: ProductivityEngine,
        compaction_interval_minutes: Optional[float] = None,
        on_recommendation: Optional[Callable[[BreakRecommendation], None]] = None,
        record_pattern_on_exit: bool = True,
    ):
        self.engine = engine
        self.compaction_interval_minutes = (
            compaction_interval_minutes
            if compaction_interval_minutes is not None
            else settings.COMPACTION_INTERVAL_MINUTES
        )
        self.on_recommendation = on_recommendation
        self.record_pattern_on_exit = record_pattern_on_exit

        self.running = False
        self.shutdown_event = asyncio.Event()
        self.source = None

        # Track runner state
        self.events_processed = 0
        self.recommendations = 0
        self.error_count = 0
        self.last_compaction_time: Optional[datetime] = None

    def _setup_signal_handlers(self):
        """Set up handlers for system signals"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(
                    sig,
                    lambda s=sig: asyncio.create_task(self.shutdown(s))
                )
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal handlers unavailable for {sig.name}")

    async def shutdown(self, sig: Optional[signal.Signals] = None):
        """Stop consuming events; run() finishes the cleanup"""
        if sig:
            logger.info(f"Received exit signal {sig.name}...")
        logger.info("Initiating graceful shutdown...")
        self.running = False
        self.shutdown_event.set()
        if self.source is not None and hasattr(self.source, "stop"):
            self.source.stop()

    async def run(self, source, install_signal_handlers: bool = True) -> int:
        """Consume ``source`` until it is exhausted or shutdown is requested

        Returns:
            Number of events processed
        """
        logger.info("Starting focus-signal runner...")
        if install_signal_handlers:
            self._setup_signal_handlers()
        self.source = source
        self.running = True

        compaction_task = None
        if self.compaction_interval_minutes > 0:
            compaction_task = asyncio.create_task(self.run_periodic_compaction())

        try:
            async for event in source:
                if self.shutdown_event.is_set():
                    break
                try:
                    self._handle(event)
                    self.error_count = 0
                except ServiceError as e:
                    self.error_count += 1
                    logger.error(f"Error processing event: {e}", exc_info=True)
                    if self.error_count >= self.MAX_ERRORS:
                        logger.critical(f"Too many errors ({self.error_count}), initiating shutdown...")
                        await self.shutdown()
                        break
        finally:
            if compaction_task is not None:
                compaction_task.cancel()
                try:
                    await compaction_task
                except asyncio.CancelledError:
                    pass
            self.running = False
            await self.cleanup()

        logger.info(
            f"Runner stopped after {self.events_processed} events "
            f"and {self.recommendations} recommendations"
        )
        return self.events_processed

    def _handle(self, event: ActivityEvent) -> None:
        recommendation = self.engine.process_event(event)
        self.events_processed += 1
        if recommendation is not None:
            self.recommendations += 1
            if self.on_recommendation is not None:
                self.on_recommendation(recommendation)

    async def cleanup(self):
        """Close the open session and store today's pattern"""
        try:
            closed = self.engine.end_tracking()
            if closed is not None:
                logger.info(f"Closed session {closed.id} on shutdown")
            if self.record_pattern_on_exit and self.events_processed:
                self.engine.record_daily_pattern()
            logger.info("Cleanup completed successfully")
        except ServiceError as e:
            logger.error(f"Error during cleanup: {e}")

    async def run_periodic_compaction(self):
        """Apply retention horizons on a fixed cadence"""
        interval = self.compaction_interval_minutes * 60
        while self.running:
            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                logger.debug("Running periodic compaction...")
                await asyncio.to_thread(self.engine.store.compact)
                self.last_compaction_time = datetime.now()
            except DatabaseError as e:
                logger.error(f"Error in compaction: {e}")

def run_service(path: Path, follow: bool = True, engine: Optional[ProductivityEngine] = None) -> int:
    """Entry point for running the engine against a JSONL event file"""
    engine = engine or ProductivityEngine()
    runner = EngineRunner(engine)
    try:
        return asyncio.run(runner.run(JsonlEventSource(path, follow=follow)))
    finally:
        engine.store.close()
