"""Command-line interface for the Strength Analytics engine."""

import logging
from datetime import datetime, timedelta

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape
from rich import box

from .config import config
from .dashboard import DashboardAnalytics
from .analysis import aggregates
from .analysis.fatigue import FatigueAnalyzer
from .analysis.one_rm import estimate_1rm, estimate_all, percentage_table
from .analysis.personal_records import calculate_timeline, months_before
from .analysis.readiness import ReadinessChecker
from .analysis.units import format_weight
from .analysis.weekly_summary import WeeklySummaryCalculator
from .db import get_db, TrainingRepository
from .exceptions import StrengthAnalyticsError
from .notifications import mark_all_read, refresh_notifications_for_users, PerformanceNotificationService

console = Console()

SEVERITY_STYLES = {
    "success": "green",
    "info": "cyan",
    "warning": "yellow",
    "danger": "red",
}


@click.group()
def cli():
    """Strength training analytics and notifications."""
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))


@cli.command("init-db")
def init_db():
    """Create the database tables."""
    db = get_db()
    db.create_tables()
    console.print(f"[green]✅ Database ready at {escape(db.database_url)}[/green]")


@cli.command()
def reset():
    """Drop and recreate every table."""
    console.print(Panel.fit("⚠️  Reset Database", style="bold yellow"))

    if not click.confirm("This will delete all data. Are you sure?"):
        console.print("[black]Operation cancelled.[/black]")
        return

    db = get_db()
    db.drop_tables()
    db.create_tables()
    console.print("[green]✅ Database reset successfully![/green]")


@cli.command("one-rm")
@click.argument("weight", type=float)
@click.argument("reps", type=int)
@click.option("--table/--no-table", default=True, help="Show the percentage table")
def one_rm(weight, reps, table):
    """Estimate a one-rep max from WEIGHT (kg) x REPS."""
    estimate = estimate_1rm(weight, reps)
    if estimate is None:
        console.print("[red]❌ Need a positive weight and 1-30 reps[/red]")
        return

    console.print(Panel.fit(f"🏋️  e1RM: {format_weight(estimate)} kg", style="bold blue"))

    formulas = Table(title="Formula Estimates", box=box.ROUNDED)
    formulas.add_column("Formula", style="cyan")
    formulas.add_column("e1RM (kg)", justify="right")
    for name, value in estimate_all(weight, reps).items():
        formulas.add_row(name, format_weight(value))
    console.print(formulas)

    if table:
        rows = Table(title="Training Percentages", box=box.ROUNDED)
        rows.add_column("%", justify="right")
        rows.add_column("Weight (kg)", justify="right")
        rows.add_column("Reps", justify="right")
        for row in percentage_table(estimate):
            rows.add_row(str(row["percentage"]), format_weight(row["weight"]), str(row["estimated_reps"]))
        console.print(rows)


@cli.command("refresh-notifications")
@click.option("--user", "user_ids", type=int, multiple=True, required=True, help="User id (repeatable)")
def refresh_notifications(user_ids):
    """Refresh performance notifications for one or more users."""
    result = refresh_notifications_for_users(get_db(), user_ids)

    for user_id in result.refreshed:
        console.print(f"[green]✅ User {user_id} refreshed[/green]")
    for user_id, error in result.failed.items():
        console.print(f"[red]❌ User {user_id} failed: {escape(error)}[/red]")


@cli.command()
@click.option("--user", "user_id", type=int, required=True, help="User id")
@click.option("--refresh/--no-refresh", default=False, help="Refresh before listing")
@click.option("--mark-read", is_flag=True, help="Mark everything read after listing")
def notifications(user_id, refresh, mark_read):
    """List a user's notification feed."""
    db = get_db()
    with db.get_session() as session:
        repository = TrainingRepository(session)
        user = repository.get_user(user_id)
        service = PerformanceNotificationService(session, user)
        feed = service.refresh() if refresh else service.recent()

        if not feed:
            console.print("[black]No notifications.[/black]")
            return

        table = Table(title=f"Notifications for {escape(user.name)}", box=box.ROUNDED)
        table.add_column("Kind", style="cyan")
        table.add_column("Title")
        table.add_column("Message")
        table.add_column("Read", justify="center")
        for n in feed:
            style = SEVERITY_STYLES.get(n.severity, "white")
            table.add_row(n.kind, f"[{style}]{escape(n.title)}[/{style}]", escape(n.message),
                          "✓" if n.is_read else "")
        console.print(table)

        if mark_read:
            count = mark_all_read(session, user_id)
            console.print(f"[green]Marked {count} notifications read[/green]")


@cli.command()
@click.option("--user", "user_id", type=int, required=True, help="User id")
@click.option("--months", default=config.PR_TIMELINE_MONTHS, help="Months of history to scan")
@click.option("--limit", default=config.PR_TIMELINE_LIMIT, help="Maximum PRs to show")
def prs(user_id, months, limit):
    """Show a user's PR timeline."""
    db = get_db()
    with db.get_session() as session:
        repository = TrainingRepository(session)
        unit = repository.get_user(user_id).unit
        now = datetime.utcnow()
        events = calculate_timeline(
            repository.exercise_sessions(user_id, finished_only=True),
            since=months_before(now, months),
            limit=limit,
            now=now,
            unit=unit,
        )

    console.print(Panel.fit(f"🏆 PR Timeline ({months} months)", style="bold blue"))
    if not events:
        console.print("[black]No personal records in this period.[/black]")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("Date")
    table.add_column("Exercise", style="cyan")
    table.add_column("Type")
    table.add_column(f"Weight ({unit})", justify="right")
    table.add_column("Reps", justify="right")
    for event in events:
        name = event["exercise"] if not event["machine"] else f"{event['exercise']} ({event['machine']})"
        table.add_row(event["date"], escape(name), event["type"], str(event["weight"]), str(event["reps"]))
    console.print(table)


@cli.command()
@click.option("--workout-exercise", "workout_exercise_id", type=int, required=True,
              help="Workout exercise to compare against its baseline")
def fatigue(workout_exercise_id):
    """Compare one exercise session with its recent baseline."""
    db = get_db()
    with db.get_session() as session:
        repository = TrainingRepository(session)
        current = repository.exercise_session(workout_exercise_id)
        if current is None:
            console.print(f"[red]❌ Workout exercise {workout_exercise_id} not found[/red]")
            return

        history = repository.exercise_sessions(
            current.user_id,
            exercise_id=current.exercise_id,
            machine_id=current.machine_id,
            finished_only=True,
        )
        result = FatigueAnalyzer().analyze(current, history)

    if result is None:
        console.print("[yellow]⚠️  Not enough data for a fatigue analysis[/yellow]")
        return

    console.print(Panel(result.status_message, title=f"💤 {escape(current.display_name)}",
                        border_style=SEVERITY_STYLES[result.status_color]))

    table = Table(box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Baseline", justify="right")
    cur, base = result.current_performance, result.baseline_performance
    table.add_row("Volume (kg)", format_weight(cur.volume_kg), format_weight(base.volume_kg))
    table.add_row("Avg reps", f"{cur.avg_reps:.1f}", f"{base.avg_reps:.1f}")
    table.add_row(
        "Avg RPE",
        "-" if cur.avg_rpe is None else f"{cur.avg_rpe:.1f}",
        "-" if base.avg_rpe is None else f"{base.avg_rpe:.1f}",
    )
    console.print(table)
    console.print(f"Sessions analyzed: {result.sessions_analyzed}  Factors: {', '.join(result.factors) or 'none'}")


@cli.command()
@click.option("--user", "user_id", type=int, required=True, help="User id")
@click.option("--exercise", "exercise_id", type=int, required=True, help="Exercise id")
@click.option("--machine", "machine_id", type=int, default=None, help="Machine id")
def readiness(user_id, exercise_id, machine_id):
    """Check whether an exercise is ready for more weight."""
    db = get_db()
    with db.get_session() as session:
        repository = TrainingRepository(session)
        repository.get_user(user_id)
        history = repository.exercise_sessions(
            user_id, exercise_id=exercise_id, machine_id=machine_id, finished_only=True,
        )
        result = ReadinessChecker(exercise_id, machine_id).check(history)

    if result is None:
        console.print("[black]Not ready to progress yet.[/black]")
    else:
        console.print(Panel(escape(result.message), title="📈 Ready to Progress", border_style="green"))


@cli.command()
@click.option("--user", "user_id", type=int, required=True, help="User id")
@click.option("--weeks", default=12, help="Weeks of tonnage to show")
def streaks(user_id, weeks):
    """Show training streaks and weekly tonnage."""
    db = get_db()
    with db.get_session() as session:
        repository = TrainingRepository(session)
        unit = repository.get_user(user_id).unit
        today = datetime.utcnow().date()
        streak = aggregates.calculate_streaks(repository.finished_workout_times(user_id), today)
        tonnage = aggregates.weekly_tonnage(
            repository.exercise_sessions(user_id, finished_only=True), today, weeks=weeks, unit=unit,
        )

    last = streak["last_workout_days_ago"]
    console.print(Panel.fit(
        f"🔥 Current streak: {streak['current']} weeks\n"
        f"🏅 Longest streak: {streak['longest']} weeks\n"
        f"📅 Last workout: {'never' if last is None else f'{last} days ago'}",
        style="bold blue",
    ))

    table = Table(title=f"Weekly Tonnage ({unit})", box=box.SIMPLE)
    table.add_column("Week")
    table.add_column("Volume", justify="right")
    for row in tonnage:
        table.add_row(row["label"], f"{row['volume']:,}")
    console.print(table)


@cli.command()
@click.option("--user", "user_id", type=int, required=True, help="User id")
@click.option("--show-cache", is_flag=True, help="Print today's cache hit/miss counters")
def dashboard(user_id, show_cache):
    """Show the cached dashboard analytics for a user."""
    db = get_db()
    cache = db.enable_analytics_cache()
    with db.get_session() as session:
        user = TrainingRepository(session).get_user(user_id)
        unit = user.unit
        metrics = DashboardAnalytics(session, user, cache).all()

    streak = metrics["streaks"]
    this_week = metrics["week_comparison"]["this_week"]
    last_week = metrics["week_comparison"]["last_week"]
    console.print(Panel.fit(
        f"🔥 Streak: {streak['current']} weeks (longest {streak['longest']})\n"
        f"📊 This week: {this_week['volume']:,} {unit} in {this_week['workouts']} workouts\n"
        f"📉 Last week: {last_week['volume']:,} {unit} in {last_week['workouts']} workouts",
        title="Dashboard",
        style="bold blue",
    ))

    if metrics["pr_timeline"]:
        table = Table(title="Recent PRs", box=box.ROUNDED)
        table.add_column("Date")
        table.add_column("Exercise", style="cyan")
        table.add_column("Type")
        table.add_column(f"Weight ({unit})", justify="right")
        for event in metrics["pr_timeline"][-5:]:
            table.add_row(event["date"], escape(event["exercise"]), event["type"], str(event["weight"]))
        console.print(table)

    for plateau in metrics["plateaus"]:
        console.print(
            f"[yellow]⚠️  {escape(plateau['exercise'])}: no weight PR for "
            f"{plateau['weeks_since_pr']} weeks (best {plateau['best_weight']} {unit})[/yellow]"
        )

    distribution = ", ".join(f"{name}: {count}" for name, count in metrics["rep_range_distribution"].items())
    console.print(f"Rep ranges (30 days): {distribution}")
    if metrics["exercise_frequency"]:
        top = ", ".join(f"{escape(row['exercise'])} x{row['count']}" for row in metrics["exercise_frequency"])
        console.print(f"Most trained (90 days): {top}")

    if show_cache:
        counts = cache.metrics_for_user(user_id)
        console.print(
            f"[black]Cache today: {counts['cache_hit']} hits, {counts['cache_miss']} misses, "
            f"{counts['invalidation']} invalidations[/black]"
        )


@cli.command()
@click.option("--user", "user_id", type=int, required=True, help="User id")
@click.option("--weeks-ago", default=0, help="Summarize an earlier week")
def summary(user_id, weeks_ago):
    """Print the weekly training summary."""
    db = get_db()
    with db.get_session() as session:
        repository = TrainingRepository(session)
        repository.get_user(user_id)
        now = datetime.utcnow()
        calculator = WeeklySummaryCalculator(
            repository.exercise_sessions(user_id, finished_only=True),
            repository.workouts(user_id),
            week_start=(now - timedelta(weeks=weeks_ago)).date(),
            now=now,
        )
        result = calculator.calculate()

    week = result["this_week"]
    console.print(Panel.fit(f"📊 {result['week_label']}", style="bold blue"))
    console.print(f"  • Workouts: {week['workout_count']}")
    console.print(f"  • Volume: {week['total_volume_kg']:,} kg")
    console.print(f"  • Sets: {week['total_sets']}  Reps: {week['total_reps']}")
    console.print(f"  • Duration: {week['total_duration_minutes']} min")

    for highlight in result["highlights"]:
        console.print(f"[green]★ {escape(highlight['message'])}[/green]")

    if result["top_exercises"]:
        table = Table(title="Top Exercises", box=box.ROUNDED)
        table.add_column("Exercise", style="cyan")
        table.add_column("Volume (kg)", justify="right")
        table.add_column("Sets", justify="right")
        for row in result["top_exercises"]:
            table.add_row(escape(row["exercise_name"]), f"{row['volume_kg']:,}", str(row["set_count"]))
        console.print(table)

    consistency = result["consistency"]
    console.print(
        f"Weeks trained (last 4): {consistency['weeks_trained_last_4']}  "
        f"Streak: {consistency['current_streak']} weeks"
    )


def main():
    """Main entry point."""
    try:
        config.ensure_dirs()
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")
    except StrengthAnalyticsError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")


if __name__ == "__main__":
    main()
