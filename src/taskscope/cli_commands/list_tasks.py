"""List tasks command implementation."""

from __future__ import annotations

from rich.table import Table

from taskscope.cli_commands import WorkspaceOptions, build_session
from taskscope.logging import Logger


def list_tasks(logger: Logger, options: WorkspaceOptions, used_only: bool = False) -> None:
    """
    List the tasks available for the active item, in listing order.
    """
    cli = build_session(logger, options)
    if used_only:
        cli.store.restore(cli.session.inventory, cli.languages)
    listed = cli.session.list_tasks(used_only)
    if not listed:
        logger.info("[yellow]No tasks available[/yellow]")
        return

    max_task_name_len = max(len(task.name()) for _, task in listed)

    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Task", style="bold cyan", no_wrap=True, width=max_task_name_len)
    table.add_column("Source", style="dim", no_wrap=True)
    table.add_column("Description", style="white", max_width=80)

    for kind, task in listed:
        definition = getattr(task, "definition", None)
        desc = definition.desc if definition is not None and definition.desc else ""
        table.add_row(task.name(), kind.label(), desc)

    logger.info(table)
