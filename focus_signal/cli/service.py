import click
import sys
import asyncio
import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table
import uvicorn

from focus_signal.config.logging_config import setup_logging
from focus_signal.config.settings import settings
from focus_signal.models.recommendations import BreakType
from focus_signal.services.break_advisor import seeded_selector
from focus_signal.services.database import DatabaseManager
from focus_signal.services.display import TerminalDisplay
from focus_signal.services.engine import ProductivityEngine
from focus_signal.services.runner import EngineRunner, JsonlEventSource, load_events
from focus_signal.services.timer import calculate_total_time, format_duration, list_presets

# Set up logging
logger = logging.getLogger(__name__)

# Initialize console
console = Console()

def _open_store(ctx: click.Context) -> DatabaseManager:
    return DatabaseManager(ctx.obj["db_path"])

def _build_engine(ctx: click.Context, **kwargs) -> ProductivityEngine:
    return ProductivityEngine(
        store=_open_store(ctx),
        selector=seeded_selector(settings.BREAK_SELECTION_SEED),
        **kwargs
    )

@click.group()
@click.option('--debug', is_flag=True, help='Enable debug output')
@click.option('--db', 'db_path', type=click.Path(dir_okay=False, path_type=Path),
              default=None, help='SQLite database file')
@click.pass_context
def cli(ctx, debug, db_path):
    """focus-signal: deep work, break and burnout signals from activity events"""
    # Set up logging before anything else
    setup_logging(debug=debug)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path or settings.DEFAULT_DB_PATH

@cli.command()
@click.argument('events_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--record-pattern', is_flag=True, help="Store today's daily pattern afterwards")
@click.pass_context
def replay(ctx, events_file: Path, record_pattern: bool):
    """Feed a JSONL event file through the engine and print recommendations"""
    display = TerminalDisplay(console)
    engine = _build_engine(ctx)
    try:
        count = 0
        for event in load_events(events_file):
            recommendation = engine.process_event(event)
            count += 1
            if recommendation is not None:
                display.show_recommendation(recommendation, at=event.timestamp)

        display.show_session(engine.get_current_session(), engine.time_until_deep_work())
        closed = engine.end_tracking()
        if closed is not None and closed.qualified:
            console.print(f"[green]Deep work session of {format_duration(closed.display_minutes)} recorded[/green]")
        if record_pattern:
            engine.record_daily_pattern()
        console.print(f"[dim]Replayed {count} events[/dim]")
    except Exception as e:
        logger.error(f"Replay failed: {e}")
        console.print(f"[red]Replay failed: {e}[/red]")
        sys.exit(1)
    finally:
        engine.store.close()

@cli.command()
@click.argument('events_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--no-follow', is_flag=True, help='Stop at the end of the file')
@click.pass_context
def watch(ctx, events_file: Path, no_follow: bool):
    """Follow a JSONL event file as it grows, like tail -f"""
    display = TerminalDisplay(console)
    engine = _build_engine(ctx)
    runner = EngineRunner(
        engine,
        on_recommendation=lambda r: display.show_recommendation(r, at=datetime.now()),
    )
    console.print(f"[yellow]Watching {events_file}... (Ctrl+C to stop)[/yellow]")
    try:
        processed = asyncio.run(runner.run(JsonlEventSource(events_file, follow=not no_follow)))
        console.print(f"[dim]Processed {processed} events[/dim]")
    except Exception as e:
        logger.error(f"Watcher failed: {e}")
        console.print(f"[red]Watcher failed: {e}[/red]")
        sys.exit(1)
    finally:
        engine.store.close()

@cli.command()
@click.pass_context
def burnout(ctx):
    """Assess burnout risk from the last 14 recorded days"""
    engine = _build_engine(ctx)
    try:
        TerminalDisplay(console).show_assessment(engine.assess_burnout_risk())
    finally:
        engine.store.close()

@cli.command()
@click.option('--taken', 'taken_type', type=click.Choice([t.value for t in BreakType]),
              help='Record a break of this type as taken')
@click.option('--skipped', 'skipped_type', type=click.Choice([t.value for t in BreakType]),
              help='Record a break of this type as skipped')
@click.pass_context
def breaks(ctx, taken_type, skipped_type):
    """Show today's break statistics, optionally recording a break first"""
    engine = _build_engine(ctx)
    try:
        for break_type, taken in ((taken_type, True), (skipped_type, False)):
            if break_type is None:
                continue
            result = engine.record_break(BreakType(break_type), taken)
            if not result.ok:
                console.print(f"[red]Break queued for retry: {result.error}[/red]")
        TerminalDisplay(console).show_break_stats(engine.get_break_stats())
    finally:
        engine.store.close()

@cli.command()
@click.option('--days', default=7, show_default=True, help='Days of history to show')
@click.option('--today', is_flag=True, help="Only today's sessions")
@click.pass_context
def sessions(ctx, days: int, today: bool):
    """List persisted deep work sessions"""
    engine = _build_engine(ctx)
    try:
        display = TerminalDisplay(console)
        if today:
            display.show_sessions(engine.get_today_sessions(), title="Today's Deep Work")
        else:
            display.show_sessions(engine.get_completed_sessions(days), title=f"Deep Work (last {days} days)")
    finally:
        engine.store.close()

@cli.command()
def presets():
    """List focus timer presets"""
    table = Table(title="Focus Presets")
    table.add_column("Preset", style="cyan")
    table.add_column("Focus", justify="right", style="green")
    table.add_column("Break", justify="right", style="yellow")
    table.add_column("Cycles", justify="right")
    table.add_column("Total", justify="right", style="bold")

    for preset in list_presets():
        table.add_row(
            preset.id,
            format_duration(preset.focus_duration),
            format_duration(preset.break_duration),
            str(preset.cycles),
            format_duration(calculate_total_time(preset)),
        )
    console.print(table)

@cli.group()
def pattern():
    """Daily work pattern commands"""
    pass

@pattern.command()
@click.option('--date', 'day', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
              help='Day to aggregate (default: today)')
@click.pass_context
def record(ctx, day):
    """Aggregate a day of the activity log into a daily work pattern"""
    engine = _build_engine(ctx)
    try:
        daily = engine.metrics.build_daily_pattern(day.date() if day else None)
        result = engine.record_daily_pattern(daily)
        if not result.ok:
            console.print(f"[red]Pattern queued for retry: {result.error}[/red]")
            sys.exit(1)
        console.print(
            f"[green]Recorded {daily.date}:[/green] {format_duration(round(daily.work_minutes))} worked, "
            f"focus {daily.focus_score:.0f}%, {daily.breaks_taken} breaks"
        )
    except Exception as e:
        logger.error(f"Failed to record pattern: {e}")
        console.print(f"[red]Failed to record pattern: {e}[/red]")
        sys.exit(1)
    finally:
        engine.store.close()

@cli.group()
def db():
    """Database management commands"""
    pass

@db.command()
@click.pass_context
def stats(ctx):
    """Show database statistics"""
    try:
        store = _open_store(ctx)
        try:
            TerminalDisplay(console).show_db_stats(store.get_database_stats())
        finally:
            store.close()
    except Exception as e:
        logger.error(f"Failed to get database stats: {e}")
        sys.exit(1)

@db.command()
@click.pass_context
def compact(ctx):
    """Drop rows past their retention horizon"""
    try:
        store = _open_store(ctx)
        try:
            deleted = store.compact()
        finally:
            store.close()

        table = Table(title="Compaction")
        table.add_column("Table", style="cyan")
        table.add_column("Deleted", justify="right", style="green")
        for name, count in deleted.items():
            table.add_row(name, str(count))
        console.print(table)
    except Exception as e:
        logger.error(f"Compaction failed: {e}")
        sys.exit(1)

@db.command()
@click.pass_context
def verify(ctx):
    """Verify database integrity"""
    try:
        store = _open_store(ctx)
        try:
            is_healthy = store.verify_database_integrity()
        finally:
            store.close()
    except Exception as e:
        logger.error(f"Integrity check failed: {e}")
        sys.exit(1)

    if is_healthy:
        console.print("[green]Database integrity check passed[/green]")
    else:
        console.print("[red]Database integrity check failed![/red]")
        sys.exit(1)

@db.command()
@click.pass_context
def optimize(ctx):
    """Optimize database performance"""
    try:
        store = _open_store(ctx)
        try:
            store.optimize()
        finally:
            store.close()
        console.print("[green]Database optimization complete[/green]")
    except Exception as e:
        logger.error(f"Optimization failed: {e}")
        sys.exit(1)

@cli.command()
@click.option('--host', default=settings.WEB_HOST, help='Host to bind to')
@click.option('--port', default=settings.WEB_PORT, help='Port to bind to')
@click.pass_context
def web(ctx, host: str, port: int):
    """Start the HTTP API"""
    from focus_signal.web.app import create_app

    engine = _build_engine(ctx)
    click.echo(f"Starting web interface on http://{host}:{port}")
    try:
        uvicorn.run(create_app(engine), host=host, port=port)
    finally:
        engine.close()

if __name__ == '__main__':
    cli()
