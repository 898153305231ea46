"""Rerun command implementation."""

from __future__ import annotations

from typing import Optional

import typer

from taskscope.cli_commands import SpawnTracker, WorkspaceOptions, build_session
from taskscope.logging import Logger
from taskscope.working_dir import AmbiguousRootError


def rerun_task(
    logger: Logger,
    options: WorkspaceOptions,
    reevaluate: Optional[bool] = None,
    omit_history: Optional[bool] = None,
    dry_run: bool = False,
    task_output: Optional[str] = None,
) -> None:
    """
    Spawn the last scheduled task again.

    The stored context is reused unless `reevaluate` asks for a fresh one
    from the current position. Unset flags come from the settings.
    """
    cli = build_session(logger, options)
    if not cli.store.restore(cli.session.inventory, cli.languages):
        logger.error("[red]No task has been scheduled yet[/red]")
        raise typer.Exit(1)

    last = cli.session.inventory.last_scheduled_task()
    task_name = last[0].name() if last is not None else ""

    tracker = SpawnTracker(logger, dry_run, task_output)
    cli.session.scheduler.subscribe(tracker)
    try:
        cli.session.rerun(reevaluate, omit_history)
    except AmbiguousRootError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)

    tracker.report(task_name)
