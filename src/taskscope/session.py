"""Task actions for one workspace: spawn by name, spawn ad-hoc, rerun."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from taskscope.config import Settings
from taskscope.context import task_context
from taskscope.editor import Language, RootId
from taskscope.inventory import TaskInventory
from taskscope.logging import Logger, null_logger
from taskscope.parser import tasks_file_for_root
from taskscope.scheduler import Scheduler
from taskscope.tasks import (
    OneshotSource,
    OneshotTask,
    SourceType,
    StaticSource,
    Task,
    TaskSourceKind,
)
from taskscope.variables import TaskContext
from taskscope.working_dir import task_cwd
from taskscope.workspace import Workspace

__all__ = ["TaskSession"]


class TaskSession:
    """Wires a Workspace to an inventory and a scheduler.

    Every operation that needs a fresh context resolves the working
    directory first, so AmbiguousRootError propagates out of spawn
    operations and out of a re-evaluating rerun.
    """

    def __init__(
        self,
        workspace: Workspace,
        inventory: TaskInventory,
        scheduler: Scheduler,
        settings: Settings = Settings(),
        logger: Logger = null_logger,
    ) -> None:
        self.workspace = workspace
        self.inventory = inventory
        self.scheduler = scheduler
        self.settings = settings
        self._logger = logger

    @classmethod
    def create(
        cls,
        workspace: Workspace,
        settings: Settings = Settings(),
        logger: Logger = null_logger,
        user_tasks_path: Optional[Path] = None,
    ) -> "TaskSession":
        """Build a session with the standard sources.

        Sources in listing order: ad-hoc user input, the user-level tasks file
        (if given), then one tasks file per project root.
        """
        inventory = TaskInventory(history_depth=settings.history_depth, logger=logger)
        inventory.add_source(TaskSourceKind.user_input(), lambda _: OneshotSource())
        if user_tasks_path is not None:
            kind = TaskSourceKind.from_abs_path(user_tasks_path)
            inventory.add_source(kind, lambda inv: StaticSource(user_tasks_path, kind.id_base, inv.logger))
        session = cls(workspace, inventory, Scheduler(inventory, logger), settings, logger)
        session.sync_worktree_sources()
        return session

    def sync_worktree_sources(self) -> None:
        """Register a tasks-file source for each root; drop sources of closed roots."""
        roots = self.workspace.project_roots()
        open_ids = {root.id for root in roots}
        self.inventory.remove_sources(
            lambda kind: kind.type == SourceType.WORKTREE and kind.worktree_id not in open_ids
        )
        registered = set(self.inventory.source_kinds())
        for root in roots:
            path = tasks_file_for_root(root.path)
            kind = TaskSourceKind.from_worktree(root.id, path)
            if kind in registered:
                continue
            self.inventory.add_source(
                kind, lambda inv, path=path, kind=kind: StaticSource(path, kind.id_base, inv.logger)
            )

    def task_cwd(self) -> Optional[Path]:
        return task_cwd(self.workspace, self._logger)

    def task_context(self) -> TaskContext:
        """Fresh context for the active editor."""
        cwd = self.task_cwd()
        return task_context(self.workspace.active_item(), self.workspace, cwd, self._logger)

    def active_item_selection_properties(self) -> tuple[Optional[RootId], Optional[Language]]:
        """Root and language of the active item, used to filter task listings."""
        item = self.workspace.active_item()
        if item is None:
            return None, None
        worktree_id: Optional[RootId] = None
        file = item.file_for_buffer()
        if file is not None:
            worktree_id = self.workspace.root_for_file(file)
        start, _ = item.current_selection_range()
        return worktree_id, item.language_at(start)

    def list_tasks(self, used_only: bool = False) -> list[tuple[TaskSourceKind, Task]]:
        worktree_id, language = self.active_item_selection_properties()
        return self.inventory.list_tasks(language, worktree_id, used_only)

    def spawn_task(self, task: Task, omit_history: bool = False) -> None:
        self.scheduler.schedule(task, self.task_context(), omit_history)

    def spawn_task_with_name(self, name: str, omit_history: bool = False) -> bool:
        """Schedule the first listed task called `name`.

        Returns:
            False if no task has that name; the caller offers a picker instead
        """
        for _, task in self.list_tasks():
            if task.name() == name:
                self.spawn_task(task, omit_history)
                return True
        self._logger.debug(f"No task named '{name}' for the active item")
        return False

    def spawn_oneshot(self, prompt: str) -> OneshotTask:
        """Register an ad-hoc command with the user input source and schedule it."""
        source = self.inventory.source(TaskSourceKind.user_input())
        if not isinstance(source, OneshotSource):
            source = self.inventory.add_source(TaskSourceKind.user_input(), lambda _: OneshotSource())
        task = source.spawn(prompt)
        self.spawn_task(task)
        return task

    def rerun(
        self,
        reevaluate_context: Optional[bool] = None,
        omit_history: Optional[bool] = None,
    ) -> bool:
        """Schedule the last scheduled task again.

        Unset arguments take their values from the settings. A re-evaluated
        rerun resolves the working directory again as well as the variables.

        Returns:
            False if nothing has been scheduled yet
        """
        if reevaluate_context is None:
            reevaluate_context = self.settings.rerun_reevaluates_context
        if omit_history is None:
            omit_history = self.settings.rerun_omit_history
        return self.scheduler.rerun(reevaluate_context, self.task_context, omit_history)
