"""Spawn commands: a named task or an ad-hoc command."""

from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from taskscope.cli_commands import SpawnTracker, WorkspaceOptions, build_session
from taskscope.logging import Logger
from taskscope.working_dir import AmbiguousRootError


def spawn_task(
    logger: Logger,
    options: WorkspaceOptions,
    task_name: str,
    dry_run: bool = False,
    task_output: Optional[str] = None,
) -> None:
    """
    Resolve the context for the active item and spawn the task called `task_name`.
    """
    cli = build_session(logger, options)
    tracker = SpawnTracker(logger, dry_run, task_output)
    cli.session.scheduler.subscribe(tracker)

    try:
        found = cli.session.spawn_task_with_name(task_name)
    except AmbiguousRootError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not found:
        logger.error(f"[red]Task not found: {task_name}[/red]")
        _print_available(logger, [task.name() for _, task in cli.session.list_tasks()])
        raise typer.Exit(1)

    tracker.report(task_name)


def spawn_oneshot(
    logger: Logger,
    options: WorkspaceOptions,
    command: str,
    dry_run: bool = False,
    task_output: Optional[str] = None,
) -> None:
    """
    Spawn an ad-hoc command with the current context exported to its environment.
    """
    if not command.strip():
        logger.error("[red]Command must not be empty[/red]")
        raise typer.Exit(1)

    cli = build_session(logger, options)
    tracker = SpawnTracker(logger, dry_run, task_output)
    cli.session.scheduler.subscribe(tracker)

    try:
        task = cli.session.spawn_oneshot(command)
    except AmbiguousRootError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)

    tracker.report(task.name())


def _print_available(logger: Logger, names: list[str]) -> None:
    if not names:
        logger.info("No tasks are available here")
        return
    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Task", style="cyan", no_wrap=True)
    for name in names:
        table.add_row(name)
    logger.info("Available tasks:")
    logger.info(table)
