"""CLI command implementations and shared utilities."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from taskscope.config import (
    ConfigError,
    Settings,
    get_state_path,
    get_user_tasks_path,
    load_settings,
)
from taskscope.editor import Point
from taskscope.languages import LanguageRegistry
from taskscope.logging import Logger
from taskscope.process_runner import SpawnExecutor, TaskOutputTypes, make_process_runner
from taskscope.scheduler import SpawnRequested
from taskscope.session import TaskSession
from taskscope.state import HistoryStore
from taskscope.workspace import TextBuffer, Workspace


def _supports_unicode() -> bool:
    """
    Check if the terminal supports Unicode characters.
    """
    # Classic Windows console (conhost)
    if os.name == "nt" and "WT_SESSION" not in os.environ:
        return False

    encoding = sys.stdout.encoding
    if not encoding:
        return False

    try:
        "✓✗".encode(encoding)
        return True
    except UnicodeEncodeError:
        return False


def get_action_success_string() -> str:
    return "✓" if _supports_unicode() else "[ OK ]"


def get_action_failure_string() -> str:
    return "✗" if _supports_unicode() else "[ FAIL ]"


def parse_position(value: str, option: str) -> Point:
    """
    Parse a 1-based ``LINE:COL`` (or ``LINE``) into a zero-based Point.

    Raises:
        typer.BadParameter: If the value is malformed or not positive
    """
    line_text, _, column_text = value.partition(":")
    try:
        line = int(line_text)
        column = int(column_text) if column_text else 1
    except ValueError:
        raise typer.BadParameter(f"expected LINE:COL, got '{value}'", param_hint=option) from None
    if line < 1 or column < 1:
        raise typer.BadParameter(f"lines and columns start at 1, got '{value}'", param_hint=option)
    return Point(line - 1, column - 1)


@dataclass
class WorkspaceOptions:
    """Command-line description of the editing position."""

    roots: list[Path] = field(default_factory=list)
    file: Optional[Path] = None
    cursor: Optional[str] = None
    select_to: Optional[str] = None
    active_entry: Optional[Path] = None


def load_cli_settings(logger: Logger, start_dir: Path) -> Settings:
    try:
        return load_settings(start_dir)
    except ConfigError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)


def build_workspace(logger: Logger, options: WorkspaceOptions, languages: LanguageRegistry) -> Workspace:
    """
    Open the roots and the active file described by `options`.

    With no --root the current directory is the only root.

    Raises:
        typer.Exit: If the file cannot be read or a position is outside it
    """
    workspace = Workspace()
    roots = options.roots or [Path.cwd()]
    for root in roots:
        workspace.add_root(root.resolve())

    if options.file is not None:
        path = options.file.resolve()
        try:
            text = path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"[red]Cannot open {path}: {e}[/red]")
            raise typer.Exit(1)

        buffer = TextBuffer(text, path=path, language=languages.language_for_path(path))
        try:
            start = buffer.offset_for_point(parse_position(options.cursor, "--cursor")) if options.cursor else 0
            end = buffer.offset_for_point(parse_position(options.select_to, "--select-to")) if options.select_to else start
        except ValueError as e:
            logger.error(f"[red]Invalid position in {path}: {e}[/red]")
            raise typer.Exit(1)
        buffer.select(start, end)
        workspace.add_item(buffer)
    elif options.cursor or options.select_to:
        logger.warn("[yellow]--cursor and --select-to need --file, ignoring them[/yellow]")

    if options.active_entry is not None:
        workspace.set_active_entry(options.active_entry.resolve())
    return workspace


@dataclass
class CliSession:
    session: TaskSession
    store: HistoryStore
    languages: LanguageRegistry


def build_session(logger: Logger, options: WorkspaceOptions) -> CliSession:
    """
    Workspace, settings, sources and history persistence for one invocation.
    """
    languages = LanguageRegistry.with_builtins()
    workspace = build_workspace(logger, options, languages)
    start_dir = options.roots[0] if options.roots else Path.cwd()
    settings = load_cli_settings(logger, start_dir)
    session = TaskSession.create(workspace, settings, logger, user_tasks_path=get_user_tasks_path())
    store = HistoryStore(get_state_path(), logger)
    session.scheduler.subscribe(store.listener(session.inventory))
    return CliSession(session, store, languages)


class SpawnTracker:
    """
    Collects spawn requests; runs them unless this is a dry run.
    """

    def __init__(self, logger: Logger, dry_run: bool, task_output: Optional[str]) -> None:
        self._logger = logger
        self._dry_run = dry_run
        self.spawned: list[SpawnRequested] = []
        self.executor: Optional[SpawnExecutor] = None
        if not dry_run:
            output = TaskOutputTypes(task_output.lower()) if task_output else TaskOutputTypes.ALL
            self.executor = SpawnExecutor(make_process_runner(output, logger), logger)

    def __call__(self, event: SpawnRequested) -> None:
        self.spawned.append(event)
        if self.executor is not None:
            self.executor(event)
        else:
            self._logger.info(spawn_table(event))

    def report(self, task_name: str) -> None:
        """
        Print the outcome of the spawn, exiting non-zero on any failure.
        """
        if not self.spawned:
            self._logger.error(
                f"[red]{get_action_failure_string()} Task '{task_name}' cannot run at the current "
                f"position (a referenced variable is missing)[/red]"
            )
            raise typer.Exit(1)
        if self.executor is None:
            return
        return_code = self.executor.last_return_code
        if return_code == 0:
            self._logger.info(
                f"[green]{get_action_success_string()} Task '{task_name}' completed successfully[/green]"
            )
            return
        self._logger.error(
            f"[red]{get_action_failure_string()} Task '{task_name}' failed with exit code {return_code}[/red]"
        )
        raise typer.Exit(1)


def spawn_table(event: SpawnRequested) -> Table:
    spawn = event.spawn
    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("task", spawn.label)
    table.add_row("command", spawn.command_line())
    table.add_row("cwd", str(spawn.cwd) if spawn.cwd is not None else "")
    for key, value in spawn.env.items():
        table.add_row(f"env {key}", value)
    return table
