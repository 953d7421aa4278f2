from datetime import datetime
from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from focus_signal.models.recommendations import (
    BreakRecommendation, BreakStats, BurnoutAssessment, Severity, Urgency
)
from focus_signal.models.work_session import WorkSession
from focus_signal.services.burnout import risk_color
from focus_signal.services.timer import format_duration

URGENCY_STYLES = {
    Urgency.LOW: "green",
    Urgency.MEDIUM: "yellow",
    Urgency.HIGH: "bold red",
}

SEVERITY_STYLES = {
    Severity.INFO: "dim",
    Severity.WARNING: "yellow",
    Severity.DANGER: "red",
}

class TerminalDisplay:
    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show_recommendation(self, recommendation: BreakRecommendation, at: Optional[datetime] = None):
        """Print a break recommendation as a one-line alert"""
        style = URGENCY_STYLES.get(recommendation.urgency, "white")
        text = Text()
        if at is not None:
            text.append(f"{at.strftime('%H:%M')} ", style="dim")
        text.append(f"☕ {recommendation.type.value} break", style=style)
        text.append(f" ({recommendation.duration_minutes}m, {recommendation.urgency.value})", style="dim")
        text.append(f" - {recommendation.reason}. ")
        text.append(recommendation.activity, style="italic cyan")
        if recommendation.focus_drop is not None:
            text.append(f" [focus -{recommendation.focus_drop:.1f}]", style="magenta")
        self.console.print(text)

    def show_session(self, session: Optional[WorkSession], minutes_to_deep_work: float = 0.0):
        """Show the live session panel"""
        if session is None:
            self.console.print("[yellow]No active work session[/yellow]")
            return

        body = Text()
        body.append(f"Started: {session.start_time.strftime('%Y-%m-%d %H:%M')}\n", style="dim")
        body.append(f"Duration: {format_duration(session.display_minutes)}\n", style="bold")
        body.append(f"State: {session.state.value}\n",
                    style="bold green" if session.qualified else "yellow")
        if not session.qualified:
            body.append(f"Deep work in: {format_duration(round(minutes_to_deep_work))}\n", style="dim")
        body.append(f"Context switches: {session.context_switches}\n")
        body.append(f"Distractions: {session.distractions}\n")
        if session.apps_touched:
            body.append(f"Apps: {', '.join(sorted(session.apps_touched))}", style="cyan")

        self.console.print(Panel(body, title=f"🎯 Session {session.id}", expand=False))

    def show_sessions(self, sessions: List[WorkSession], title: str = "Deep Work Sessions"):
        if not sessions:
            self.console.print("[yellow]No deep work sessions found[/yellow]")
            return

        table = Table(title=title)
        table.add_column("Started", style="cyan")
        table.add_column("Duration", justify="right", style="green")
        table.add_column("Switches", justify="right")
        table.add_column("Distractions", justify="right")
        table.add_column("Apps", style="yellow")

        for session in sessions:
            table.add_row(
                session.start_time.strftime("%Y-%m-%d %H:%M"),
                format_duration(session.display_minutes),
                str(session.context_switches),
                str(session.distractions),
                ", ".join(sorted(session.apps_touched)),
            )

        self.console.print(table)
        total = sum(s.continuous_minutes for s in sessions)
        self.console.print(f"[bold]Total:[/bold] {format_duration(round(total))}")

    def show_break_stats(self, stats: BreakStats):
        self.console.print(Panel(
            f"[green]Taken today:[/green] {stats.taken_today}\n"
            f"[red]Skipped today:[/red] {stats.skipped_today}\n"
            f"[cyan]Minutes since last break:[/cyan] {stats.avg_break_interval:.0f}",
            title="Breaks",
            expand=False
        ))

    def show_assessment(self, assessment: BurnoutAssessment):
        """Show the burnout assessment with its indicators and advice"""
        color = risk_color(assessment.risk_level)
        header = Text()
        header.append("🔥 Burnout Risk: ", style="bold")
        header.append(assessment.risk_level.value.upper(), style=f"bold {color}")
        header.append(f"  score {assessment.score}/100", style=color)
        header.append(f"\n{assessment.days_analyzed} days analyzed", style="dim")
        self.console.print(Panel(header, expand=False))

        if assessment.indicators:
            table = Table(title="Indicators")
            table.add_column("Indicator", style="cyan")
            table.add_column("Severity")
            table.add_column("Points", justify="right")
            for indicator in assessment.indicators:
                style = SEVERITY_STYLES.get(indicator.severity, "white")
                table.add_row(
                    indicator.description,
                    Text(indicator.severity.value, style=style),
                    str(indicator.score),
                )
            self.console.print(table)

        if assessment.recommendations:
            self.console.print("\n[bold green]Recommendations:[/bold green]")
            for recommendation in assessment.recommendations:
                self.console.print(f"  • {recommendation}")

    def show_db_stats(self, stats: Dict):
        table = Table(title="Database Tables")
        table.add_column("Table", style="cyan")
        table.add_column("Rows", justify="right", style="green")
        table.add_column("Indexes", justify="right", style="yellow")

        for table_name, info in stats["tables"].items():
            table.add_row(table_name, str(info["row_count"]), str(info["index_count"]))
        self.console.print(table)

        time_range = stats["time_range"]
        if time_range["oldest"] and time_range["newest"]:
            self.console.print(Panel(
                f"[green]Oldest Activity:[/green] {time_range['oldest']}\n"
                f"[green]Newest Activity:[/green] {time_range['newest']}\n"
                f"[yellow]Total Activities:[/yellow] {time_range['total_records']:,}",
                title="Data Overview"
            ))

        size_text = Text()
        size_text.append("\nDatabase Size: ", style="bold")
        size_text.append(f"{stats['database_size_mb']:.1f}MB", style="green")
        if stats.get("pending_writes"):
            size_text.append(f"  ({stats['pending_writes']} writes pending)", style="red")
        self.console.print(size_text)
