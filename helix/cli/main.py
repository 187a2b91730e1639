"""
Helix: Terminal front end for the Triple Helix scheduler.

Operates on one learner's JSON state file.

Commands:
- helix init      - Write a fresh default state
- helix show      - Show every track's positions
- helix complete  - Record an answered unit and show what comes next
- helix rotate    - Move to the next track without answering
- helix select    - Pin a track (diagnostics)
- helix check     - Verify table invariants
- helix migrate   - Upgrade a stored record to the current schema
- helix simulate  - Run an in-memory session from an answer pattern
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from helix.core.errors import InvariantViolation, SchedulerError
from helix.core.models import TRACK_NUMBERS, SchedulerState, Track
from helix.engine.format_bridge import RepairReport
from helix.engine.position_table import PositionTable
from helix.engine.registry import UnitRegistry
from helix.engine.scheduler import CompletionEvent, TripleHelixScheduler, TurnDecision

from .state_store import StateStore

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="helix",
    help="Triple Helix: position-based learning progression scheduler",
    no_args_is_help=True,
)
console = Console()

STATE_OPTION = typer.Option(
    None,
    "--state", "-s",
    help="State file (defaults to <state_dir>/state.json)",
)

LEVEL_STYLES = {"L1": "green", "L2": "yellow", "L3": "red"}


# =============================================================================
# Helpers
# =============================================================================

def _store(state_path: Optional[Path]) -> StateStore:
    settings = get_settings()
    path = state_path or settings.get_state_dir() / StateStore.DEFAULT_FILENAME
    return StateStore(
        path,
        progression=settings.get_skip_progression(),
        default_skip_number=settings.legacy_default_skip_number,
    )


def _load_scheduler(store: StateStore) -> TripleHelixScheduler:
    if not store.exists:
        console.print(f"[red]No state at {store.path}. Run 'helix init' first.[/red]")
        raise typer.Exit(1)
    try:
        state, report = store.load()
    except SchedulerError as exc:
        console.print(f"[red]Cannot load {store.path}: {exc}[/red]")
        raise typer.Exit(1)
    _print_repairs(report)
    return TripleHelixScheduler.from_settings(state)


def _print_repairs(report: RepairReport) -> None:
    for repair in report.repairs:
        console.print(
            f"[yellow]Repaired track {repair.track_number} ({repair.kind}): {repair.detail}[/yellow]"
        )


def default_registry(units_per_track: int) -> UnitRegistry:
    """Content with `units_per_track` numbered units on each track."""
    assignments = {}
    for number in TRACK_NUMBERS:
        thread_id = f"thread-T{number}-001"
        assignments[number] = (
            thread_id,
            [f"T{number}-001-{index:02d}" for index in range(1, units_per_track + 1)],
        )
    return UnitRegistry(assignments)


def _track_table(track: Track, active: bool, limit: int) -> Table:
    marker = " [bold cyan](active)[/bold cyan]" if active else ""
    table = Table(title=f"Track {track.number}{marker}  [dim]{track.thread_id or ''}[/dim]")
    table.add_column("Pos", justify="right")
    table.add_column("Unit")
    table.add_column("Skip", justify="right")
    table.add_column("Level")

    for unit in PositionTable(track).ordered()[:limit]:
        level = unit.distractor_level.value
        style = LEVEL_STYLES.get(level, "white")
        unit_label = f"[bold]{unit.id}[/bold]" if unit.position == 0 else unit.id
        table.add_row(str(unit.position), unit_label, str(unit.skip_number), f"[{style}]{level}[/{style}]")
    return table


def _print_state(state: SchedulerState, limit: int) -> None:
    console.print(
        f"\n[bold]Learner[/bold] {state.user_id}  |  active track {state.active_track_number}"
        f"  |  cycle {state.cycle_count}  |  points {state.total_points}"
    )
    for number in TRACK_NUMBERS:
        console.print(_track_table(state.track(number), number == state.active_track_number, limit))


def _print_decision(decision: TurnDecision) -> None:
    outcome = "[green]perfect[/green]" if decision.is_perfect_score else "[red]imperfect[/red]"
    console.print(Panel(
        f"Answer on track {decision.track_number}: {outcome}\n"
        f"Next: [bold]{decision.next_unit_id}[/bold] on track {decision.next_track_number}"
        f"  (cycle {decision.cycle_count})",
        title="Turn",
        border_style="cyan",
    ))


# =============================================================================
# Commands
# =============================================================================

@app.command()
def init(
    state_path: Optional[Path] = STATE_OPTION,
    units: int = typer.Option(10, "--units", "-u", min=1, help="Units per track"),
    user_id: str = typer.Option("anonymous", "--user", help="Learner id"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing state"),
) -> None:
    """Write a fresh default state."""
    store = _store(state_path)
    if store.exists and not force:
        console.print(f"[yellow]{store.path} exists; use --force to overwrite[/yellow]")
        raise typer.Exit(1)

    registry = default_registry(units)
    state = registry.default_state(user_id, get_settings().get_skip_progression())
    store.save(state)
    console.print(f"[green]Initialized {units} units per track at {store.path}[/green]")


@app.command()
def show(
    state_path: Optional[Path] = STATE_OPTION,
    limit: int = typer.Option(10, "--limit", "-l", help="Units shown per track"),
) -> None:
    """Show every track's positions."""
    scheduler = _load_scheduler(_store(state_path))
    _print_state(scheduler.state, limit)


@app.command()
def complete(
    unit_id: str = typer.Argument(..., help="Answered unit"),
    correct: int = typer.Option(..., "--correct", "-c", help="Questions answered correctly"),
    total: int = typer.Option(..., "--total", "-t", help="Questions asked"),
    track: Optional[str] = typer.Option(
        None,
        "--track",
        help="Track number or thread id (defaults to the active track)",
    ),
    state_path: Optional[Path] = STATE_OPTION,
) -> None:
    """Record an answered unit and show what comes next."""
    store = _store(state_path)
    scheduler = _load_scheduler(store)
    event = CompletionEvent(
        track_or_thread_id=track if track is not None else scheduler.current_track_number(),
        unit_id=unit_id,
        correct_count=correct,
        total_count=total,
    )
    try:
        decision = scheduler.complete(event)
    except SchedulerError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(1)

    store.save(scheduler.state)
    _print_decision(decision)


@app.command()
def rotate(state_path: Optional[Path] = STATE_OPTION) -> None:
    """Move to the next track without answering."""
    store = _store(state_path)
    scheduler = _load_scheduler(store)
    try:
        track_number, unit = scheduler.rotate()
    except SchedulerError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(1)
    store.save(scheduler.state)
    console.print(f"Track {track_number}: [bold]{unit.id}[/bold]")


@app.command()
def select(
    track_number: int = typer.Argument(..., help="Track to pin (1-3)"),
    state_path: Optional[Path] = STATE_OPTION,
) -> None:
    """Pin a track, bypassing rotation (diagnostics)."""
    store = _store(state_path)
    scheduler = _load_scheduler(store)
    try:
        unit = scheduler.select_track(track_number)
    except SchedulerError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(1)
    store.save(scheduler.state)
    console.print(f"Track {track_number} pinned: [bold]{unit.id}[/bold]")


@app.command()
def check(state_path: Optional[Path] = STATE_OPTION) -> None:
    """Verify table invariants."""
    scheduler = _load_scheduler(_store(state_path))
    report = scheduler.verify_integrity()

    table = Table(title="Integrity")
    table.add_column("Track", justify="right")
    table.add_column("Units", justify="right")
    table.add_column("At 0", justify="right")
    table.add_column("Status")

    for number, integrity in report.items():
        status = "[green]OK[/green]" if integrity.valid else f"[red]{'; '.join(integrity.errors)}[/red]"
        table.add_row(str(number), str(integrity.unit_count), str(integrity.current_count), status)
    console.print(table)

    if not all(i.valid for i in report.values()):
        raise typer.Exit(1)


@app.command()
def migrate(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Stored record"),
    dest: Path = typer.Argument(..., dir_okay=False, help="Output file"),
) -> None:
    """Upgrade a stored record to the current schema, repairing positions."""
    settings = get_settings()
    reader = StateStore(
        source,
        progression=settings.get_skip_progression(),
        default_skip_number=settings.legacy_default_skip_number,
    )
    try:
        state, report = reader.load()
    except SchedulerError as exc:
        console.print(f"[red]Cannot migrate {source}: {exc}[/red]")
        raise typer.Exit(1)

    _print_repairs(report)
    StateStore(dest).save(state)
    console.print(f"[green]Wrote {dest} ({len(report.repairs)} repair(s))[/green]")


@app.command()
def simulate(
    units: int = typer.Option(6, "--units", "-u", min=1, help="Units per track"),
    turns: int = typer.Option(12, "--turns", "-n", min=1, help="Turns to play"),
    pattern: str = typer.Option(
        "P",
        "--pattern", "-p",
        help="Repeating answer pattern: P = perfect, I = imperfect",
    ),
    questions: int = typer.Option(3, "--questions", "-q", min=1, help="Questions per unit"),
) -> None:
    """Run an in-memory session from a deterministic answer pattern."""
    pattern = pattern.upper()
    if not pattern or set(pattern) - {"P", "I"}:
        console.print("[red]Pattern must contain only P and I[/red]")
        raise typer.Exit(1)

    registry = default_registry(units)
    settings = get_settings()
    scheduler = TripleHelixScheduler.from_settings(
        registry.default_state(progression=settings.get_skip_progression()),
        registry=registry,
        settings=settings,
    )

    table = Table(title="Simulation")
    table.add_column("Turn", justify="right")
    table.add_column("Track", justify="right")
    table.add_column("Unit")
    table.add_column("Result")
    table.add_column("Skip", justify="right")
    table.add_column("Next")

    for turn in range(turns):
        unit = scheduler.current_unit()
        perfect = pattern[turn % len(pattern)] == "P"
        event = CompletionEvent(
            track_or_thread_id=scheduler.current_track_number(),
            unit_id=unit.id,
            correct_count=questions if perfect else questions - 1,
            total_count=questions,
        )
        try:
            decision = scheduler.complete(event)
        except InvariantViolation as exc:
            console.print(f"[red]State corrupted on turn {turn + 1}: {exc}[/red]")
            raise typer.Exit(1)

        table.add_row(
            str(turn + 1),
            str(decision.track_number),
            unit.id,
            "[green]P[/green]" if perfect else "[red]I[/red]",
            str(decision.reposition.skip_number),
            f"T{decision.next_track_number} {decision.next_unit_id}",
        )

    console.print(table)
    _print_state(scheduler.state, limit=units)


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")

    app()


if __name__ == "__main__":
    main()
