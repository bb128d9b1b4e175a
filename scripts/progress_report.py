# ABOUTME: Provides a CLI that recomputes a learner's progress metrics from an attempts snapshot.
# ABOUTME: Renders confidence, pronunciation, and streak results as rich tables or JSON.

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.common.attempt_source import ParquetAttemptSource
from src.common.config import load_metrics_config
from src.common.errors import ProgressMetricsError
from src.common.schemas import ConfidenceMetric, PronunciationMetric, StreakRecord
from src.metrics.facade import MetricsFacade

console = Console()
app = typer.Typer(help="Recompute learner confidence, pronunciation, and streak metrics.")

STATUS_COLORS = {"active": "green", "at_risk": "yellow", "broken": "red"}


def _default_attempts_path() -> Path:
    return Path("data/attempts.parquet")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_facade(attempts_path: Path, learners_path: Optional[Path], config_path: Optional[Path]) -> MetricsFacade:
    try:
        config = load_metrics_config(config_path)
    except ProgressMetricsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    return MetricsFacade(ParquetAttemptSource(attempts_path, learners_path), config=config)


def _fmt_score(score: Optional[float]) -> str:
    return "no data" if score is None else f"{score:.2f}"


def _print_confidence(metric: ConfidenceMetric) -> None:
    console.print("[bold green]Confidence[/bold green]")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Drill Type")
    table.add_column("Score")
    table.add_row("overall", _fmt_score(metric.overall_score))
    for drill_type, score in metric.by_drill_type.items():
        table.add_row(drill_type.value, _fmt_score(score))
    console.print(table)
    trend = metric.trend.value if metric.trend else "n/a"
    console.print(f"Samples: {metric.sample_size}  Trend: {trend}  Label: {metric.label or 'n/a'}")
    console.print(
        f"Speech drills: {_fmt_score(metric.pronunciation_confidence)}  "
        f"Other drills: {_fmt_score(metric.completion_confidence)}"
    )


def _print_pronunciation(metric: PronunciationMetric) -> None:
    console.print("[bold yellow]Pronunciation[/bold yellow]")
    console.print(f"Overall: {_fmt_score(metric.overall_score)}  Samples: {metric.sample_size}")
    if not metric.weak_phonemes:
        console.print("[green]No weak phonemes with enough evidence.[/green]")
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Phoneme")
    table.add_column("Mean")
    table.add_column("Occurrences")
    for stat in metric.weak_phonemes:
        table.add_row(stat.phoneme, f"{stat.mean_score:.2f}", str(stat.occurrences))
    console.print(table)


def _print_streak(record: StreakRecord) -> None:
    color = STATUS_COLORS.get(record.streak_status.value, "white")
    console.print("[bold blue]Streak[/bold blue]")
    console.print(
        f"Current: {record.current_streak}  Longest: {record.longest_streak}  "
        f"Status: [{color}]{record.streak_status.value}[/{color}]"
    )
    last_active = record.last_active_date.isoformat() if record.last_active_date else "never"
    console.print(f"Last active: {last_active} ({record.reference_timezone})")
    week = " ".join("■" if day.qualified else "□" for day in record.weekly_activity)
    console.print(f"Last 7 days: {week}")
    for badge in record.badges:
        console.print(f"  🏅 {badge.badge_name} ({badge.milestone} days)")


def _run(action, as_json: bool):
    try:
        result = action()
    except ProgressMetricsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return None
    return result


@app.command()
def confidence(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier."),
    attempts_path: Path = typer.Option(_default_attempts_path(), "--attempts-path", help="Attempts parquet or CSV."),
    learners_path: Optional[Path] = typer.Option(None, "--learners-path", help="Optional learner roster file."),
    config: Optional[Path] = typer.Option(None, "--config", help="Metrics config YAML."),
    as_json: bool = typer.Option(False, "--json", help="Print the metric as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Recompute the confidence metric for one learner."""
    _configure_logging(verbose)
    facade = _build_facade(attempts_path, learners_path, config)
    metric = _run(lambda: facade.get_confidence(learner_id), as_json)
    if metric is not None:
        _print_confidence(metric)


@app.command()
def pronunciation(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier."),
    attempts_path: Path = typer.Option(_default_attempts_path(), "--attempts-path", help="Attempts parquet or CSV."),
    learners_path: Optional[Path] = typer.Option(None, "--learners-path", help="Optional learner roster file."),
    config: Optional[Path] = typer.Option(None, "--config", help="Metrics config YAML."),
    as_json: bool = typer.Option(False, "--json", help="Print the metric as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Recompute the pronunciation metric and weak phonemes for one learner."""
    _configure_logging(verbose)
    facade = _build_facade(attempts_path, learners_path, config)
    metric = _run(lambda: facade.get_pronunciation(learner_id), as_json)
    if metric is not None:
        _print_pronunciation(metric)


@app.command()
def streak(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="IANA timezone for calendar days."),
    attempts_path: Path = typer.Option(_default_attempts_path(), "--attempts-path", help="Attempts parquet or CSV."),
    learners_path: Optional[Path] = typer.Option(None, "--learners-path", help="Optional learner roster file."),
    config: Optional[Path] = typer.Option(None, "--config", help="Metrics config YAML."),
    as_json: bool = typer.Option(False, "--json", help="Print the record as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Recompute the practice streak for one learner."""
    _configure_logging(verbose)
    facade = _build_facade(attempts_path, learners_path, config)
    record = _run(lambda: facade.get_streak(learner_id, reference_timezone=timezone), as_json)
    if record is not None:
        _print_streak(record)


@app.command()
def report(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="IANA timezone for calendar days."),
    attempts_path: Path = typer.Option(_default_attempts_path(), "--attempts-path", help="Attempts parquet or CSV."),
    learners_path: Optional[Path] = typer.Option(None, "--learners-path", help="Optional learner roster file."),
    config: Optional[Path] = typer.Option(None, "--config", help="Metrics config YAML."),
    as_json: bool = typer.Option(False, "--json", help="Print all metrics as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Recompute all three metrics from a single read of the learner's history."""
    _configure_logging(verbose)
    facade = _build_facade(attempts_path, learners_path, config)
    metrics = _run(lambda: facade.get_learner_metrics(learner_id, reference_timezone=timezone), as_json)
    if metrics is None:
        return
    console.rule(f"[bold blue]Progress report for {metrics.learner_id}[/bold blue]")
    _print_confidence(metrics.confidence)
    console.print()
    _print_pronunciation(metrics.pronunciation)
    console.print()
    _print_streak(metrics.streak)


if __name__ == "__main__":
    app()
