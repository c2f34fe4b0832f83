"""CLI entry point for the colony scheduler."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from colonysched import __version__
from colonysched.config import SchedulerConfig, load_config
from colonysched.demo import DemoColony, build_demo_colony

console = Console()
err_console = Console(stderr=True)

_STATUS_STYLES = {
    "completed": "green",
    "in_progress": "cyan",
    "assigned": "cyan",
    "available": "yellow",
    "blocked": "magenta",
    "failed": "red",
    "cancelled": "red",
}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="colsched")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file (default: ~/.colonysched/config.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log scheduler decisions")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """Colony scheduler: task dependencies, assignment and collaboration."""
    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    _configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = config


@main.command()
@click.option("--ticks", default=100, show_default=True, help="Number of ticks to simulate")
@click.option("--dt", "delta_time", default=1.0, show_default=True, help="Seconds per tick")
@click.pass_obj
def demo(config: SchedulerConfig, ticks: int, delta_time: float) -> None:
    """Run the scripted colony and show where every task ended up."""
    if ticks < 0 or delta_time <= 0:
        raise click.BadParameter("ticks must be >= 0 and dt > 0")

    colony = build_demo_colony(config)
    colony.run(ticks, delta_time)

    _print_tasks(colony)
    _print_groups(colony)

    stats = colony.system.get_stats()
    console.print(
        f"\n[bold]Ticks:[/bold] {colony.ticks}  "
        f"[bold]Completed:[/bold] {stats.completed}/{stats.total_tasks}  "
        f"[bold]Avg progress:[/bold] {stats.average_progress:.0%}"
    )
    report = colony.collaboration.get_efficiency_report()
    console.print(f"[bold]Collaboration:[/bold] {report}")
    for recommendation in report.recommendations:
        console.print(f"  [yellow]•[/yellow] {recommendation}")


@main.command()
@click.pass_obj
def plan(config: SchedulerConfig) -> None:
    """Print the demo colony's tasks in dependency order."""
    colony = build_demo_colony(config)
    manager = colony.system.manager

    console.print("[bold]Execution order[/bold]")
    for index, task_id in enumerate(manager.get_topological_order(), start=1):
        task = manager.require_task(task_id)
        prerequisites = ", ".join(str(p) for p in manager.graph.get_prerequisites(task_id))
        after = f" [dim](after {prerequisites})[/dim]" if prerequisites else ""
        console.print(f"  {index}. {task_id} {task.definition.name}{after}")


@main.command()
@click.argument("character_id", type=int)
@click.option("--limit", default=None, type=int, help="Maximum recommendations")
@click.pass_obj
def recommend(config: SchedulerConfig, character_id: int, limit: int | None) -> None:
    """Rank the demo colony's open tasks for one character."""
    colony = build_demo_colony(config)
    character = colony.roster.get_character(character_id)
    if character is None:
        known = ", ".join(str(c.id) for c in colony.roster.all_characters())
        raise click.ClickException(f"Unknown character {character_id} (known: {known})")

    recommendations = colony.system.get_recommendations(character, limit)
    if not recommendations:
        console.print(f"[dim]No suitable tasks for character {character_id}.[/dim]")
        return

    table = Table(title=f"Recommendations for character {character_id}")
    table.add_column("Task", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Reason")
    for rec in recommendations:
        table.add_row(rec.task.definition.name, f"{rec.score:.1f}", rec.reason)
    console.print(table)


def _print_tasks(colony: DemoColony) -> None:
    table = Table(title="Tasks")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Assigned")

    for task in colony.system.manager.get_all_tasks():
        status = task.status.value
        style = _STATUS_STYLES.get(status, "white")
        table.add_row(
            str(task.id),
            task.definition.name,
            task.definition.type.value,
            f"[{style}]{status}[/{style}]",
            f"{task.progress:.0%}",
            ", ".join(str(c) for c in task.assigned_characters) or "-",
        )
    console.print(table)


def _print_groups(colony: DemoColony) -> None:
    groups = colony.collaboration.manager.get_all_groups()
    if not groups:
        return

    table = Table(title="Collaboration Groups")
    table.add_column("Task", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Members")
    for group in groups:
        members = ", ".join(f"{p.character_id} ({p.role.value})" for p in group.participants)
        table.add_row(str(group.task_id), group.type.value, group.status.value, members or "-")
    console.print(table)


if __name__ == "__main__":
    main()
