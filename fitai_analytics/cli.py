"""Command-line interface for the FitAI analytics engine."""

import logging

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .analysis import AnalyticsEngine
from .analysis.periods import PERIOD_TYPES
from .analysis.prediction import POLICIES, SkippedPrediction
from .analysis.regression import TrendDirection
from .cache import cache_from_config
from .config import config
from .db import Database, SqlRecordStore
from .exceptions import FitAIAnalyticsError

console = Console()

DIRECTION_COLORS = {
    TrendDirection.IMPROVING: "green",
    TrendDirection.DECLINING: "red",
    TrendDirection.PLATEAUING: "yellow",
    TrendDirection.VOLATILE: "magenta",
}

READINESS_COLORS = {
    "high": "green",
    "moderate": "blue",
    "low": "yellow",
    "rest": "red",
}


def _engine(ctx) -> AnalyticsEngine:
    db = Database(ctx.obj["database_url"])
    db.create_tables()
    return AnalyticsEngine(SqlRecordStore(db), cache=cache_from_config())


def _fail(error: Exception):
    console.print(f"[red]❌ {escape(str(error))}[/red]")
    raise SystemExit(1)


@click.group()
@click.option("--database-url", default=None, help="Database URL (defaults to DATABASE_URL)")
@click.option("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL)")
@click.pass_context
def cli(ctx, database_url, log_level):
    """FitAI workout and recovery analytics."""
    logging.basicConfig(
        level=(log_level or config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url or config.DATABASE_URL


@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create the database tables."""
    db = Database(ctx.obj["database_url"])
    created = db.create_tables()
    if created:
        console.print(f"[green]✅ Database tables created: {', '.join(created)}[/green]")
    else:
        console.print(f"[green]✅ Database tables already present ({len(db.table_names())} tables)[/green]")


@cli.command()
@click.option("--user", "user_id", required=True, help="User identifier")
@click.option("--period", type=click.Choice(PERIOD_TYPES), default="monthly", help="Period type")
@click.option("--back", default=0, type=int, help="Number of periods before the current one")
@click.pass_context
def snapshot(ctx, user_id, period, back):
    """Aggregate and store a period snapshot."""
    console.print(Panel.fit(f"📊 {period.capitalize()} Snapshot", style="bold blue"))
    try:
        result = _engine(ctx).aggregate_period(user_id, period, back)
    except FitAIAnalyticsError as e:
        _fail(e)

    table = Table(title=f"{result.period_start:%Y-%m-%d} to {result.period_end:%Y-%m-%d}", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in result.to_record().items():
        if name in ("period_end", "failed_groups"):
            continue
        table.add_row(name.replace("_", " "), f"{value:.2f}" if isinstance(value, float) else str(value))
    console.print(table)

    if result.failed_groups:
        console.print(f"[yellow]⚠️  Defaults used for: {', '.join(result.failed_groups)}[/yellow]")


@cli.command()
@click.option("--user", "user_id", required=True, help="User identifier")
@click.option("--save/--no-save", default=False, help="Store today's recovery recommendation")
@click.pass_context
def recovery(ctx, user_id, save):
    """Show the current recovery score."""
    console.print(Panel.fit("💤 Recovery Status", style="bold blue"))
    try:
        analysis = _engine(ctx).score_recovery(user_id, persist=save)
    except FitAIAnalyticsError as e:
        _fail(e)

    color = READINESS_COLORS[analysis.training_readiness.value]
    factors = "\n".join(f"  {name.replace('_', ' ')}: {influence.value}" for name, influence in analysis.factors.items())
    text = (
        f"[bold {color}]{analysis.current_score}/100 ({analysis.training_readiness.value})[/bold {color}]\n\n"
        f"[bold]Trend:[/bold] {analysis.trend.value}\n"
        f"[bold]Factors:[/bold]\n{factors}"
    )
    console.print(Panel(text, title="Recovery", border_style=color))
    for recommendation in analysis.recommendations:
        console.print(f"  • {recommendation}")


@cli.command()
@click.option("--user", "user_id", required=True, help="User identifier")
@click.option("--period", type=click.Choice(PERIOD_TYPES), default="monthly", help="Snapshot period type")
@click.option("--limit", default=6, type=int, help="Number of recent periods to fit")
@click.pass_context
def trends(ctx, user_id, period, limit):
    """Classify trends of the key snapshot metrics."""
    console.print(Panel.fit("📈 Metric Trends", style="bold blue"))
    try:
        results = _engine(ctx).analyze_trends(user_id, period, limit)
    except FitAIAnalyticsError as e:
        _fail(e)

    table = Table(box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Direction")
    table.add_column("Change %", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Points", justify="right")
    for metric, result in results.items():
        color = DIRECTION_COLORS[result.direction]
        table.add_row(
            metric.replace("_", " "),
            f"[{color}]{result.direction.value}[/{color}]",
            f"{result.change_percent:+.1f}",
            str(result.confidence),
            str(result.data_points),
        )
    console.print(table)


@cli.command()
@click.option("--user", "user_id", required=True, help="User identifier")
@click.option("--type", "prediction_type", type=click.Choice(["all"] + list(POLICIES)), default="all",
              help="Prediction type")
@click.option("--save/--no-save", default=True, help="Store the predictions")
@click.pass_context
def predict(ctx, user_id, prediction_type, save):
    """Project metrics forward."""
    console.print(Panel.fit("🔮 Progress Predictions", style="bold blue"))
    try:
        engine = _engine(ctx)
        if prediction_type == "all":
            outcomes = engine.generate_predictions(user_id, persist=save)
        else:
            outcomes = [engine.predict(user_id, prediction_type, persist=save)]
    except FitAIAnalyticsError as e:
        _fail(e)

    table = Table(box=box.ROUNDED)
    table.add_column("Type", style="cyan")
    table.add_column("Target date")
    table.add_column("Predicted", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Model")
    for outcome in outcomes:
        if isinstance(outcome, SkippedPrediction):
            table.add_row(outcome.prediction_type, "-", f"[yellow]{outcome.reason}[/yellow]", "-", "-")
        else:
            table.add_row(
                outcome.prediction_type,
                outcome.target_date.isoformat(),
                f"{outcome.predicted_value:g}",
                f"{outcome.confidence}%",
                outcome.model_version,
            )
    console.print(table)


@cli.command()
@click.option("--user", "user_id", required=True, help="User identifier")
@click.pass_context
def adjust(ctx, user_id):
    """Recommend adjustments for today's workout."""
    console.print(Panel.fit("🎯 Workout Adjustment", style="bold blue"))
    try:
        adjustment = _engine(ctx).recommend_adjustment(user_id)
    except FitAIAnalyticsError as e:
        _fail(e)

    if adjustment.skip.should_skip:
        console.print(Panel(f"[bold red]Skip today's workout[/bold red]\n{adjustment.skip.reason}", border_style="red"))

    table = Table(box=box.ROUNDED)
    table.add_column("Multiplier", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("intensity", f"×{adjustment.intensity_multiplier:.2f}")
    table.add_row("duration", f"×{adjustment.duration_multiplier:.2f}")
    table.add_row("rest", f"×{adjustment.rest_multiplier:.2f}")
    console.print(table)

    console.print(f"[bold]Recovery score:[/bold] {adjustment.recovery_score}   [bold]Confidence:[/bold] {adjustment.confidence}%")
    if adjustment.recommended_activities:
        console.print(f"[green]Recommended:[/green] {', '.join(adjustment.recommended_activities)}")
    if adjustment.avoid_activities:
        console.print(f"[red]Avoid:[/red] {', '.join(adjustment.avoid_activities)}")
    for warning in adjustment.warning_flags:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")


@cli.command()
@click.option("--user", "user_id", required=True, help="User identifier")
@click.option("--age", default=None, type=int, help="Age used to estimate max heart rate")
@click.option("--duration", default=45, type=float, help="Planned workout duration in minutes")
@click.option("--rest", default=60, type=float, help="Planned rest between sets in seconds")
@click.pass_context
def personalize(ctx, user_id, age, duration, rest):
    """Heart rate zones and recovery-scaled workout parameters."""
    console.print(Panel.fit("❤️  Personalized Workout", style="bold blue"))
    try:
        plan = _engine(ctx).personalize_workout(user_id, duration, rest, age)
    except FitAIAnalyticsError as e:
        _fail(e)

    console.print(f"[bold]Duration:[/bold] {plan.suggested_duration_minutes} min   "
                  f"[bold]Rest:[/bold] {plan.rest_between_sets_seconds} s   "
                  f"[bold]Intensity:[/bold] ×{plan.intensity_multiplier:.2f}")

    table = Table(title=f"Heart rate zones (rest {plan.resting_heart_rate}, max {plan.max_heart_rate})", box=box.ROUNDED)
    table.add_column("Zone", style="cyan")
    table.add_column("BPM", justify="right")
    for name, zone in plan.heart_rate_zones.items():
        table.add_row(name, f"{zone.min_bpm}-{zone.max_bpm}")
    console.print(table)


@cli.command("key-metrics")
@click.option("--user", "user_id", required=True, help="User identifier")
@click.option("--period", type=click.Choice(PERIOD_TYPES), default="monthly", help="Snapshot period type")
@click.pass_context
def key_metrics(ctx, user_id, period):
    """Compare the latest snapshot with the previous one."""
    console.print(Panel.fit("📋 Key Metrics", style="bold blue"))
    try:
        metrics = _engine(ctx).key_metrics(user_id, period)
    except FitAIAnalyticsError as e:
        _fail(e)

    fitness, recovery = metrics.fitness_score, metrics.recovery_score
    frequency, strength = metrics.workout_frequency, metrics.strength_progress

    table = Table(title=f"{period.capitalize()} from {metrics.period_start:%Y-%m-%d}", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Trend")
    for name, metric in (("fitness score", fitness), ("recovery score", recovery)):
        color = DIRECTION_COLORS[metric.trend]
        table.add_row(name, f"{metric.current:.1f}", f"{metric.change:+.1f}", f"[{color}]{metric.trend.value}[/{color}]")
    table.add_row("workouts", f"{frequency.current}/{frequency.target}", f"{frequency.completion_rate:.0f}%", "")
    table.add_row("personal records", str(strength.personal_records), f"{strength.volume_change_kg:+.0f} kg", "")
    console.print(table)

    if metrics.previous_period_start is None:
        console.print("[yellow]No previous snapshot to compare against.[/yellow]")


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")


if __name__ == "__main__":
    main()
