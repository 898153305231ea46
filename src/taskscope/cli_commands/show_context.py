"""Show context command implementation."""

from __future__ import annotations

import typer
from rich.table import Table

from taskscope.cli_commands import WorkspaceOptions, build_session
from taskscope.logging import Logger
from taskscope.working_dir import AmbiguousRootError


def show_context(logger: Logger, options: WorkspaceOptions) -> None:
    """
    Print the working directory and variables tasks would see right now.
    """
    cli = build_session(logger, options)
    try:
        context = cli.session.task_context()
    except AmbiguousRootError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Variable", style="bold cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("cwd", str(context.cwd) if context.cwd is not None else "[dim]none[/dim]")
    for name, value in context.task_variables.items():
        table.add_row(name, value)

    logger.info(table)
