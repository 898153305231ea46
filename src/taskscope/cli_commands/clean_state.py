"""Clean state command implementation."""

from __future__ import annotations

from taskscope.cli_commands import get_action_success_string
from taskscope.config import get_state_path
from taskscope.logging import Logger
from taskscope.state import HistoryStore


def clean_state(logger: Logger) -> None:
    """
    Forget the last scheduled task.
    """
    store = HistoryStore(get_state_path(), logger)
    if store.clear():
        logger.info(f"[green]{get_action_success_string()} Removed {store.state_path}[/green]")
        logger.info("Rerun has nothing to repeat until the next spawn")
    else:
        logger.info(f"[yellow]No state file found at {store.state_path}[/yellow]")
