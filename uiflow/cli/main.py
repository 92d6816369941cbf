"""
Typer CLI for uiflow-engine.

Commands:
    uiflow validate CONFIG            - Validate a flow configuration document
    uiflow variant CONFIG             - Show the A/B variant a subject is assigned
    uiflow simulate CONFIG            - Simulate a user type and show the resulting state
    uiflow replay CONFIG EVENTS       - Replay a JSON-lines interaction log
    uiflow version                    - Show version information

Usage:
    uiflow --help
    uiflow validate flows/editor.json
    uiflow variant flows/editor.json --subject user-42
    uiflow simulate flows/editor.json --user-type power-user --seed 7
    uiflow replay flows/editor.json session.jsonl --tick
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from uiflow import __version__
from uiflow.core.errors import ConfigurationError, UIFlowError
from uiflow.core.events import EventRecorder, EventType
from uiflow.core.expressions import (
    FlowConfiguration,
    UnsupportedAction,
    UnsupportedDependency,
    UnsupportedTrigger,
)
from uiflow.core.models import Category
from uiflow.engine.progression import ProgressionController
from uiflow.engine.simulation import USER_PATTERNS
from uiflow.engine.variant_selector import hash_subject, select_variant

app = typer.Typer(
    help="uiflow: progressive feature disclosure engine tooling",
    no_args_is_help=True,
)

console = Console()


# ========================================
# Helpers
# ========================================


def _read_document(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        rprint(f"[red]✗[/red] File not found: {path}")
        raise typer.Exit(code=1)
    except json.JSONDecodeError as e:
        rprint(f"[red]✗[/red] {path} is not valid JSON: {e}")
        raise typer.Exit(code=1)


def _load_configuration(path: Path) -> FlowConfiguration:
    try:
        return FlowConfiguration.from_document(_read_document(path))
    except ConfigurationError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)


def _unsupported_nodes(configuration: FlowConfiguration) -> list[str]:
    """Human-readable list of nodes that will evaluate false / be skipped."""
    problems = []
    for area_id, area in configuration.areas.items():
        for element in area.elements:
            for expression in element.dependencies:
                if isinstance(expression, UnsupportedDependency):
                    problems.append(f"{area_id}/{element.id}: dependency {expression.type!r} ({expression.reason})")
    for rule in configuration.rules:
        if isinstance(rule.trigger, UnsupportedTrigger):
            problems.append(f"rule {rule.name}: trigger {rule.trigger.type!r} ({rule.trigger.reason})")
        if isinstance(rule.action, UnsupportedAction):
            problems.append(f"rule {rule.name}: action {rule.action.type!r} ({rule.action.reason})")
    return problems


def _print_state(controller: ProgressionController, areas: list[str]) -> None:
    table = Table(title="Area Statistics")
    table.add_column("Area", style="cyan")
    table.add_column("Visible", justify="right")
    table.add_column("Total", justify="right")
    for category in Category:
        table.add_column(category.value.title(), justify="right")
    table.add_column("Interactions", justify="right")

    for area in areas:
        stats = controller.area_stats(area)
        table.add_row(
            area,
            str(stats.visible_elements),
            str(stats.total_elements),
            *(str(stats.recent_usage[category]) for category in Category),
            str(stats.adaptation_events),
        )
    console.print(table)

    visible = controller.visible_elements_sorted()
    if visible:
        rprint("\n[bold]Visible elements[/bold]")
        for record in visible:
            marker = " [yellow](new)[/yellow]" if record.is_new else ""
            rprint(f"  [{record.category.value}] {record.area}/{record.element_id}{marker}")


def _print_events(recorder: EventRecorder) -> None:
    counts: dict[str, int] = {}
    for event in recorder.events:
        counts[event.type.value] = counts.get(event.type.value, 0) + 1
    if not counts:
        return

    table = Table(title="Notifications")
    table.add_column("Event", style="cyan")
    table.add_column("Count", justify="right")
    for name, count in sorted(counts.items()):
        table.add_row(name, str(count))
    console.print(table)


# ========================================
# Commands
# ========================================


@app.command("validate")
def validate(
    config_path: Path = typer.Argument(..., help="Flow configuration (JSON)"),
    strict: bool = typer.Option(False, "--strict", help="Fail when unsupported nodes are present"),
    show_dependencies: bool = typer.Option(False, "--dependencies", "-d", help="List every element's dependencies"),
) -> None:
    """Validate a flow configuration document."""
    configuration = _load_configuration(config_path)

    table = Table(title=f"{configuration.name} v{configuration.version}")
    table.add_column("Area", style="cyan")
    for category in Category:
        table.add_column(category.value.title(), justify="right")
    table.add_column("With dependencies", justify="right")

    for area_id, area in configuration.areas.items():
        counts = {category: 0 for category in Category}
        for element in area.elements:
            counts[element.category] += 1
        table.add_row(
            area_id,
            *(str(counts[category]) for category in Category),
            str(sum(1 for element in area.elements if element.dependencies)),
        )
    console.print(table)

    if show_dependencies:
        for area_id, area in configuration.areas.items():
            for element in area.elements:
                if element.dependencies:
                    described = ", ".join(expression.describe() for expression in element.dependencies)
                    rprint(f"  {area_id}/{element.id}: {described}")

    rprint(f"  Rules: {len(configuration.rules)}")
    rprint(f"  Templates: {len(configuration.templates)}")
    if configuration.ab_test is not None:
        experiment = configuration.ab_test
        state = "enabled" if experiment.enabled else "disabled"
        rprint(f"  A/B test: {experiment.test_id} ({state}, {len(experiment.variants)} variants)")

    problems = _unsupported_nodes(configuration)
    if problems:
        rprint(f"\n[yellow]⚠[/yellow] {len(problems)} unsupported nodes (evaluate false / skipped):")
        for problem in problems:
            rprint(f"  - {problem}")
        if strict:
            raise typer.Exit(code=1)

    rprint("\n[bold green]✓ Configuration is valid[/bold green]")


@app.command("variant")
def variant(
    config_path: Path = typer.Argument(..., help="Flow configuration (JSON)"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s", help="Subject key (default: from config)"),
) -> None:
    """Show which A/B variant a subject is assigned."""
    configuration = _load_configuration(config_path)
    experiment = configuration.ab_test
    if experiment is None or not experiment.enabled:
        rprint("[yellow]⚠[/yellow] No enabled A/B test in configuration")
        raise typer.Exit(code=0)

    subject_key = subject or get_settings().subject_key
    bucket = hash_subject(subject_key + experiment.test_id) % 100
    assigned = select_variant(subject_key, experiment)

    rprint(f"[bold]{experiment.test_id}[/bold]")
    rprint(f"  Subject: {subject_key}")
    rprint(f"  Bucket: {bucket}")
    if assigned is None:
        rprint("  Variant: [yellow]none (invalid traffic allocation)[/yellow]")
    else:
        rprint(f"  Variant: [green]{assigned.id}[/green] ({assigned.display_name})")


@app.command("simulate")
def simulate(
    config_path: Path = typer.Argument(..., help="Flow configuration (JSON)"),
    user_type: str = typer.Option("beginner", "--user-type", "-u", help=f"One of: {', '.join(USER_PATTERNS)}"),
    area: Optional[list[str]] = typer.Option(None, "--area", "-a", help="Area to simulate (repeatable, default: all)"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Shuffle seed for reproducible runs"),
    tick: bool = typer.Option(True, "--tick/--no-tick", help="Run one rule pass after simulating"),
) -> None:
    """Simulate a user type against a configuration and show the result."""
    if user_type not in USER_PATTERNS:
        rprint(f"[red]✗[/red] Unknown user type: {user_type} (expected one of {', '.join(USER_PATTERNS)})")
        raise typer.Exit(code=1)

    settings = get_settings()
    if seed is not None:
        settings = settings.model_copy(update={"simulation_seed": seed})

    document = _read_document(config_path)
    recorder = EventRecorder()
    controller = ProgressionController(settings=settings)
    controller.subscribe(None, recorder)
    try:
        controller.load_configuration(document, start_rules=False)
        simulated = controller.simulate_user_type(user_type, area or None)
        fired = controller.tick() if tick else []

        rprint(f"\n[bold cyan]Simulated {user_type} user[/bold cyan]")
        rprint(f"  Areas: {', '.join(simulated) or '(none)'}")
        if fired:
            rprint(f"  Rules fired: {', '.join(fired)}")
        _print_state(controller, simulated)
        _print_events(recorder)
    except UIFlowError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        controller.destroy()


@app.command("replay")
def replay(
    config_path: Path = typer.Argument(..., help="Flow configuration (JSON)"),
    events_path: Path = typer.Argument(..., help="Interaction log (JSON lines)"),
    tick: bool = typer.Option(False, "--tick", help="Run a rule pass after every interaction"),
) -> None:
    """
    Replay an interaction log.

    Each line is a JSON object, one of:
        {"element": "open-file", "timestamp": 1700000000000}
        {"event": "tour-finished", "data": {...}}
        {"tick": true}
    """
    document = _read_document(config_path)
    try:
        lines = events_path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        rprint(f"[red]✗[/red] File not found: {events_path}")
        raise typer.Exit(code=1)

    recorder = EventRecorder()
    controller = ProgressionController()
    controller.subscribe(None, recorder)
    try:
        controller.load_configuration(document, start_rules=False)

        recorded = skipped = 0
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Line {}: not valid JSON, skipped", number)
                skipped += 1
                continue

            if not isinstance(entry, dict):
                logger.warning("Line {}: not a JSON object, skipped", number)
                skipped += 1
                continue

            if "element" in entry:
                try:
                    applied = controller.on_interaction(entry["element"], entry.get("timestamp"))
                except (TypeError, ValueError) as e:
                    logger.warning("Line {}: {}, skipped", number, e)
                    applied = False
                if applied:
                    recorded += 1
                else:
                    skipped += 1
                if tick:
                    controller.tick()
            elif "event" in entry:
                controller.fire_custom_event(entry["event"], entry.get("data"))
            elif entry.get("tick"):
                controller.tick()
            else:
                logger.warning("Line {}: unrecognized entry, skipped", number)
                skipped += 1

        rprint(f"\n[bold cyan]Replayed {config_path.name}[/bold cyan]")
        rprint(f"  Interactions recorded: {recorded}")
        if skipped:
            rprint(f"  [yellow]Skipped: {skipped}[/yellow]")
        _print_state(controller, list(controller.store.areas))
        _print_events(recorder)

        changed = recorder.of_type(EventType.VISIBILITY_CHANGED)
        if changed:
            rprint("\n[bold]Visibility changes[/bold]")
            for event in changed:
                state = "[green]shown[/green]" if event.payload["visible"] else "[red]hidden[/red]"
                rprint(f"  {event.payload['element_id']}: {state}")
    except UIFlowError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        controller.destroy()


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]uiflow-engine[/bold] v{__version__}")
    rprint("  Dependency, rule and journey engine for progressive disclosure")


# ========================================
# Entry Point
# ========================================


def main() -> None:
    """CLI entry point."""
    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level.upper(),
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
