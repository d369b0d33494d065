"""
Cadence CLI: inspect practice telemetry and difficulty state.

Commands:
- cadence status       - Recovery slot and today's rollup
- cadence journal      - Recent journal entries
- cadence weekly       - Trailing seven-day summary
- cadence difficulty   - Blended difficulty for a skill
- cadence recommend    - Skills to focus on or advance
- cadence skills       - Per-skill levels and global stats
- cadence reset        - Forget a skill's difficulty record
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from cadence.adaptive.difficulty import AdaptationRules, DifficultyAdapter
from cadence.core.values import safe_num
from cadence.delivery.analytics import TIMEFRAMES_MS, PracticeAnalytics
from cadence.storage import keys, open_store

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="cadence",
    help="Cadence: practice telemetry and adaptive difficulty",
    no_args_is_help=True,
)
console = Console()

DB_OPTION = typer.Option(None, "--db", help="State database (defaults to CADENCE_STATE_DB_PATH)")

PRIORITY_STYLES = {"high": "bold red", "medium": "yellow", "low": "dim"}


def _store(db: Optional[Path]):
    return open_store(db or get_settings().state_db_path)


def _adapter(db: Optional[Path]) -> DifficultyAdapter:
    adapter = DifficultyAdapter(
        _store(db),
        rules=AdaptationRules.from_config(get_settings().get_difficulty_config()),
    )
    adapter.init()
    return adapter


def _analytics(db: Optional[Path]) -> PracticeAnalytics:
    settings = get_settings()
    return PracticeAnalytics(
        _store(db),
        journal_capacity=settings.journal_capacity,
        retention_days=settings.daily_retention_days,
    )


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def status(db: Optional[Path] = DB_OPTION) -> None:
    """Show the crash-recovery slot and today's rollup."""
    snapshot = _store(db).get(keys.RECOVERY)
    if snapshot and isinstance(snapshot, dict) and isinstance(snapshot.get("session"), dict):
        session = snapshot["session"]
        console.print(
            Panel(
                f"{session.get('activity', '?')}  |  "
                f"{int(safe_num(session.get('engaged_ms'))) // 60_000} min engaged  |  "
                f"saved {_fmt_ms(int(safe_num(snapshot.get('saved_at'))))}",
                title="In-flight session (recoverable)",
                border_style="yellow",
            )
        )
    else:
        console.print("[dim]No in-flight session snapshot[/dim]")

    today = datetime.now().date().isoformat()
    day = _analytics(db).load_daily().get(today)
    if not day:
        console.print(f"[dim]No practice recorded for {today}[/dim]")
        return

    table = Table(show_header=False, box=None, title=f"Today ({today})")
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Sessions", str(day["sessions"]))
    table.add_row("Engaged minutes", f"{day['engaged_minutes']:.1f}")
    table.add_row("Total minutes", f"{day['total_minutes']:.1f}")
    table.add_row("Avg accuracy", f"{day['avg_accuracy']:.0f}%")
    table.add_row("Avg focus", f"{day['avg_focus'] * 100:.0f}%")
    console.print(table)


@app.command()
def journal(
    timeframe: str = typer.Option("week", "--timeframe", "-t", help="day, week, month, quarter or all"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum entries to show"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """List recent practice sessions."""
    if timeframe not in TIMEFRAMES_MS:
        console.print(f"[red]Unknown timeframe '{timeframe}'[/red]")
        raise typer.Exit(code=1)

    entries = _analytics(db).recent_sessions(timeframe)[:limit]
    if not entries:
        console.print("[dim]No sessions in this timeframe[/dim]")
        return

    table = Table(title=f"Practice journal ({timeframe})")
    table.add_column("Ended")
    table.add_column("Activity")
    table.add_column("Min", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Focus", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("XP", justify="right")
    table.add_column("Reason", style="dim")

    for e in entries:
        table.add_row(
            _fmt_ms(int(e.get("timestamp", 0))),
            str(e.get("activity", "?")),
            str(e.get("minutes", 0)),
            f"{e.get('accuracy', 0)}%",
            f"{float(e.get('focus_score', 0)) * 100:.0f}%",
            str(e.get("quality_score", 0)),
            str(e.get("xp_earned", 0)),
            str(e.get("end_reason", "")),
        )
    console.print(table)


@app.command()
def weekly(db: Optional[Path] = DB_OPTION) -> None:
    """Summarize the trailing seven days."""
    stats = _analytics(db).weekly_stats()

    table = Table(show_header=False, box=None, title="Last 7 days")
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Sessions", str(stats["sessions"]))
    table.add_row("Engaged minutes", f"{stats['engaged_minutes']:.1f}")
    table.add_row("Avg accuracy", f"{stats['avg_accuracy']:.0f}%")
    table.add_row("Avg focus", f"{stats['avg_focus'] * 100:.0f}%")
    table.add_row("Avg quality", f"{stats['avg_quality']:.0f}")
    table.add_row("Practice days", f"{stats['practice_days']}/7 ({stats['consistency']}%)")
    table.add_row("Day streak", str(stats["current_streak"]))
    table.add_row("XP earned", str(stats["xp_earned"]))
    console.print(table)

    if stats["by_activity"]:
        breakdown = Table(title="By activity")
        breakdown.add_column("Activity")
        breakdown.add_column("Sessions", justify="right")
        breakdown.add_column("Minutes", justify="right")
        breakdown.add_column("Accuracy", justify="right")
        for activity, data in stats["by_activity"].items():
            breakdown.add_row(
                activity,
                str(data["sessions"]),
                f"{data['engaged_minutes']:.1f}",
                f"{data['avg_accuracy']:.0f}%",
            )
        console.print(breakdown)


@app.command()
def difficulty(
    skill: str = typer.Argument(..., help="Skill identifier"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Show the blended difficulty for a skill."""
    result = _adapter(db).get_difficulty(skill)
    perf = result.performance
    cfg = result.config

    console.print(
        Panel(
            f"Level [bold]{result.level}[/bold] ({cfg.name})\n"
            f"Skill level {perf.level}  |  {perf.sessions} sessions  |  "
            f"recent {perf.recent_accuracy:.0f}%  |  lifetime {perf.total_accuracy:.0f}%\n"
            f"Tempo {cfg.tempo} BPM  |  {cfg.items} items  |  speed x{cfg.speed}\n\n"
            f"[cyan]{result.recommendation}[/cyan]",
            title=skill,
            border_style="cyan",
        )
    )


@app.command()
def recommend(db: Optional[Path] = DB_OPTION) -> None:
    """List skills to focus on or advance."""
    recs = _adapter(db).get_recommendations()
    if not recs:
        console.print("[dim]No recommendations yet[/dim]")
        return

    table = Table(title="Recommendations")
    table.add_column("Priority")
    table.add_column("Skill")
    table.add_column("Action")
    table.add_column("Level", justify="right")
    table.add_column("Reason")
    for r in recs:
        style = PRIORITY_STYLES.get(r.priority, "white")
        table.add_row(f"[{style}]{r.priority}[/{style}]", r.skill, r.action, str(r.level), r.reason)
    console.print(table)


@app.command()
def skills(db: Optional[Path] = DB_OPTION) -> None:
    """Show every tracked skill and global difficulty stats."""
    adapter = _adapter(db)
    stats = adapter.get_global_stats()

    table = Table(title=f"Skills (global level {adapter.global_level})")
    table.add_column("Skill")
    table.add_column("Level", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("Recent", justify="right")
    table.add_column("Streak", justify="right")
    for name in adapter.skills:
        perf = adapter.get_performance(name)
        table.add_row(
            name,
            str(perf.level),
            str(perf.sessions),
            f"{perf.recent_accuracy:.0f}%",
            str(perf.streak),
        )
    console.print(table)
    console.print(
        f"Avg level {stats['avg_level']:.2f}  |  at max {stats['skills_at_max']}  |  "
        f"struggling {stats['struggling']}"
    )


@app.command()
def reset(
    skill: str = typer.Argument(..., help="Skill identifier"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Forget a skill's difficulty record."""
    if not confirm and not typer.confirm(f"Reset difficulty record for '{skill}'?"):
        console.print("[dim]Cancelled[/dim]")
        raise typer.Exit()

    if _adapter(db).reset_skill(skill):
        console.print(f"[green]Reset '{skill}'[/green]")
    else:
        console.print(f"[yellow]No record for '{skill}'[/yellow]")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="WARNING",
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
