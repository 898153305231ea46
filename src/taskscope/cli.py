"""Command-line interface for taskscope."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from taskscope import __version__
from taskscope.cli_commands import WorkspaceOptions
from taskscope.cli_commands.clean_state import clean_state
from taskscope.cli_commands.list_tasks import list_tasks
from taskscope.cli_commands.rerun_task import rerun_task
from taskscope.cli_commands.show_context import show_context
from taskscope.cli_commands.spawn_task import spawn_oneshot, spawn_task
from taskscope.config import ConfigError, load_settings
from taskscope.console_logger import ConsoleLogger
from taskscope.logging import LogLevel
from taskscope.process_runner import TaskOutputTypes

app = typer.Typer(
    help="taskscope - run project tasks with the context of where you are editing",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


class _State:
    log_level: Optional[str] = None


_state = _State()


RootOption = typer.Option(
    None, "--root", "-r", help="Project root; repeat for several roots (default: current directory)"
)
FileOption = typer.Option(None, "--file", "-f", help="File open in the active editor")
CursorOption = typer.Option(None, "--cursor", "-c", help="Cursor position in --file as LINE:COL (1-based)")
SelectToOption = typer.Option(None, "--select-to", help="End of the selection started at --cursor, LINE:COL")
ActiveEntryOption = typer.Option(None, "--active-entry", help="Entry selected in the project panel")
DryRunOption = typer.Option(False, "--dry-run", help="Show what would be spawned without running it")
TaskOutputOption = typer.Option(
    None,
    "--task-output",
    "-O",
    help=f"Task output to show: {', '.join(t.value for t in TaskOutputTypes)}",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"taskscope version {__version__}")
        raise typer.Exit()


@app.callback()
def _main_options(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-L",
        help="fatal, error, warn, info, debug or trace (default from config, else info)",
    ),
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    _state.log_level = log_level


def _make_logger(roots: Optional[List[Path]]) -> ConsoleLogger:
    """
    Logger at the --log-level, else at the configured level.
    """
    if _state.log_level is not None:
        try:
            return ConsoleLogger(console, LogLevel.parse(_state.log_level))
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    start_dir = roots[0] if roots else Path.cwd()
    try:
        level = load_settings(start_dir).log_level
    except ConfigError:
        # Reported by the command once it loads the settings itself
        level = LogLevel.INFO
    return ConsoleLogger(console, level)


def _options(
    roots: Optional[List[Path]],
    file: Optional[Path],
    cursor: Optional[str],
    select_to: Optional[str],
    active_entry: Optional[Path],
) -> WorkspaceOptions:
    return WorkspaceOptions(
        roots=list(roots or []),
        file=file,
        cursor=cursor,
        select_to=select_to,
        active_entry=active_entry,
    )


@app.command("list")
def list_command(
    roots: Optional[List[Path]] = RootOption,
    file: Optional[Path] = FileOption,
    cursor: Optional[str] = CursorOption,
    select_to: Optional[str] = SelectToOption,
    active_entry: Optional[Path] = ActiveEntryOption,
    used: bool = typer.Option(False, "--used", help="Only tasks that were scheduled before"),
) -> None:
    """List tasks available for the active file."""
    logger = _make_logger(roots)
    list_tasks(logger, _options(roots, file, cursor, select_to, active_entry), used)


@app.command("context")
def context_command(
    roots: Optional[List[Path]] = RootOption,
    file: Optional[Path] = FileOption,
    cursor: Optional[str] = CursorOption,
    select_to: Optional[str] = SelectToOption,
    active_entry: Optional[Path] = ActiveEntryOption,
) -> None:
    """Show the working directory and variables a task would get."""
    logger = _make_logger(roots)
    show_context(logger, _options(roots, file, cursor, select_to, active_entry))


@app.command("spawn")
def spawn_command(
    name: str = typer.Argument(..., help="Task to spawn"),
    roots: Optional[List[Path]] = RootOption,
    file: Optional[Path] = FileOption,
    cursor: Optional[str] = CursorOption,
    select_to: Optional[str] = SelectToOption,
    active_entry: Optional[Path] = ActiveEntryOption,
    dry_run: bool = DryRunOption,
    task_output: Optional[str] = TaskOutputOption,
) -> None:
    """Spawn a task by name."""
    logger = _make_logger(roots)
    _check_task_output(task_output)
    spawn_task(logger, _options(roots, file, cursor, select_to, active_entry), name, dry_run, task_output)


@app.command("oneshot")
def oneshot_command(
    command: str = typer.Argument(..., help="Shell command to spawn"),
    roots: Optional[List[Path]] = RootOption,
    file: Optional[Path] = FileOption,
    cursor: Optional[str] = CursorOption,
    select_to: Optional[str] = SelectToOption,
    active_entry: Optional[Path] = ActiveEntryOption,
    dry_run: bool = DryRunOption,
    task_output: Optional[str] = TaskOutputOption,
) -> None:
    """Spawn an ad-hoc shell command with the current context."""
    logger = _make_logger(roots)
    _check_task_output(task_output)
    spawn_oneshot(logger, _options(roots, file, cursor, select_to, active_entry), command, dry_run, task_output)


@app.command("rerun")
def rerun_command(
    roots: Optional[List[Path]] = RootOption,
    file: Optional[Path] = FileOption,
    cursor: Optional[str] = CursorOption,
    select_to: Optional[str] = SelectToOption,
    active_entry: Optional[Path] = ActiveEntryOption,
    reevaluate: Optional[bool] = typer.Option(
        None,
        "--reevaluate/--no-reevaluate",
        help="Resolve a fresh context instead of reusing the recorded one (default from config)",
    ),
    omit_history: Optional[bool] = typer.Option(
        None,
        "--omit-history/--record-history",
        help="Leave the last scheduled task untouched (default from config)",
    ),
    dry_run: bool = DryRunOption,
    task_output: Optional[str] = TaskOutputOption,
) -> None:
    """Spawn the last scheduled task again."""
    logger = _make_logger(roots)
    _check_task_output(task_output)
    rerun_task(
        logger,
        _options(roots, file, cursor, select_to, active_entry),
        reevaluate,
        omit_history,
        dry_run,
        task_output,
    )


@app.command("clean-state")
def clean_state_command() -> None:
    """Forget the last scheduled task."""
    clean_state(_make_logger(None))


def _check_task_output(task_output: Optional[str]) -> None:
    if task_output is None:
        return
    valid = {t.value for t in TaskOutputTypes}
    if task_output.lower() not in valid:
        console.print(f"[red]Invalid --task-output '{task_output}', expected one of: {', '.join(sorted(valid))}[/red]")
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
