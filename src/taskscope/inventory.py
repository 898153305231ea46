"""Registered task sources and the scheduling history."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from taskscope.editor import Language
from taskscope.logging import Logger, null_logger
from taskscope.tasks import DefinitionTask, Task, TaskId, TaskSource, TaskSourceKind
from taskscope.variables import TaskContext

__all__ = ["TaskInventory", "SourceFactory"]

SourceFactory = Callable[["TaskInventory"], TaskSource]


@dataclass
class _RegisteredSource:
    kind: TaskSourceKind
    source: TaskSource


class TaskInventory:
    """Owns task sources and the history of scheduled tasks.

    The history keeps the most recent `history_depth` entries (one by
    default). It is only written after a task prepared successfully; the
    Scheduler is responsible for that ordering. Mutations are not
    synchronized: the host serializes access to one inventory.
    """

    def __init__(self, history_depth: int = 1, logger: Logger = null_logger) -> None:
        if history_depth < 1:
            raise ValueError(f"history_depth must be at least 1, got {history_depth}")
        self._sources: list[_RegisteredSource] = []
        self._history: deque[tuple[Task, TaskContext]] = deque(maxlen=history_depth)
        self._language_tasks: dict[str, list[Task]] = {}
        self._logger = logger

    @property
    def logger(self) -> Logger:
        return self._logger

    @property
    def history_depth(self) -> int:
        return self._history.maxlen

    def add_source(self, kind: TaskSourceKind, factory: SourceFactory) -> TaskSource:
        """Register a source. Later listings include it after every earlier source.

        Registering a kind that is already present replaces that source in place.
        """
        source = factory(self)
        for registered in self._sources:
            if registered.kind == kind:
                self._logger.trace(f"Replacing task source {kind.label()}")
                registered.source = source
                return source
        self._logger.trace(f"Adding task source {kind.label()}")
        self._sources.append(_RegisteredSource(kind, source))
        return source

    def remove_sources(self, predicate: Callable[[TaskSourceKind], bool]) -> None:
        self._sources = [registered for registered in self._sources if not predicate(registered.kind)]

    def source(self, kind: TaskSourceKind) -> Optional[TaskSource]:
        for registered in self._sources:
            if registered.kind == kind:
                return registered.source
        return None

    def source_kinds(self) -> list[TaskSourceKind]:
        return [registered.kind for registered in self._sources]

    def list_tasks(
        self,
        language: Optional[Language] = None,
        worktree: Optional[int] = None,
        used_only: bool = False,
    ) -> list[tuple[TaskSourceKind, Task]]:
        """List tasks in source registration order, then each source's own order.

        Args:
            language: Language of the active buffer; its associated tasks come last
            worktree: Root of the active item; sources bound to another root are skipped
            used_only: Only return tasks present in the scheduling history
        """
        tasks: list[tuple[TaskSourceKind, Task]] = []
        for registered in self._sources:
            source_worktree = registered.kind.worktree
            if worktree is not None and source_worktree is not None and source_worktree != worktree:
                continue
            for task in registered.source.tasks_to_schedule():
                tasks.append((registered.kind, task))

        if language is not None:
            kind = TaskSourceKind.from_language(language.name)
            for task in self._tasks_for_language(language):
                tasks.append((kind, task))

        if used_only:
            used = {task.id for task, _ in self._history}
            tasks = [(kind, task) for kind, task in tasks if task.id in used]
        return tasks

    def _tasks_for_language(self, language: Language) -> list[Task]:
        if language.context_provider is None:
            return []
        cached = self._language_tasks.get(language.name)
        if cached is None:
            kind = TaskSourceKind.from_language(language.name)
            cached = [
                DefinitionTask(kind.id_base, definition, self._logger)
                for definition in language.context_provider.associated_tasks()
            ]
            self._language_tasks[language.name] = cached
        return list(cached)

    def find_task(
        self,
        task_id: TaskId,
        languages: Iterable[Language] = (),
    ) -> Optional[tuple[TaskSourceKind, Task]]:
        """Look a task up by id across every source, ignoring root filters.

        Language tasks are searched for `languages` and for any language
        listed before.
        """
        for kind, task in self.list_tasks():
            if task.id == task_id:
                return kind, task
        for language in languages:
            self._tasks_for_language(language)
        for name, tasks in self._language_tasks.items():
            for task in tasks:
                if task.id == task_id:
                    return TaskSourceKind.from_language(name), task
        return None

    def task_scheduled(self, task: Task, context: TaskContext) -> None:
        """Record a successfully prepared task. The newest entry is the last scheduled."""
        self._history.append((task, context.clone()))
        self._logger.trace(f"Recorded '{task.name()}' as last scheduled task")

    def last_scheduled_task(self) -> Optional[tuple[Task, TaskContext]]:
        if not self._history:
            return None
        task, context = self._history[-1]
        return task, context.clone()

    def history(self) -> list[tuple[Task, TaskContext]]:
        """Recorded entries, oldest first."""
        return [(task, context.clone()) for task, context in self._history]
