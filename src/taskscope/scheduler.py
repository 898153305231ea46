"""Turn a task and a context into a spawn request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from taskscope.inventory import TaskInventory
from taskscope.logging import Logger, null_logger
from taskscope.tasks import SpawnInTerminal, Task
from taskscope.variables import TaskContext

__all__ = ["SpawnRequested", "SpawnListener", "Scheduler"]


@dataclass(frozen=True)
class SpawnRequested:
    """Emitted once per successfully prepared task for the external executor."""

    spawn: SpawnInTerminal


SpawnListener = Callable[[SpawnRequested], None]


class Scheduler:
    """Prepares tasks, records history and notifies spawn listeners.

    One scheduling attempt ends either with the task recorded and a
    SpawnRequested emitted, or with nothing at all when the task could not be
    prepared. Failed prepares are not retried.
    """

    def __init__(self, inventory: TaskInventory, logger: Logger = null_logger) -> None:
        self.inventory = inventory
        self._logger = logger
        self._listeners: list[SpawnListener] = []

    def subscribe(self, listener: SpawnListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def schedule(self, task: Task, context: TaskContext, omit_history: bool = False) -> None:
        """Prepare `task` for `context` and request its spawn.

        History is written before listeners run, so a listener reading
        `last_scheduled_task()` sees this task.

        Args:
            task: Task to prepare
            context: Context to prepare it with; a clone is used
            omit_history: Leave the scheduling history untouched
        """
        context = context.clone()
        # Tasks get their own copy; the recorded context must stay as given
        spawn = task.prepare_exec(context.clone())
        if spawn is None:
            self._logger.debug(f"Task '{task.name()}' produced nothing to run, skipping")
            return

        if not omit_history:
            self.inventory.task_scheduled(task, context)
        self._logger.debug(f"Spawning '{spawn.label}': {spawn.command_line()}")
        self._emit(SpawnRequested(spawn))

    def rerun(
        self,
        reevaluate_context: bool,
        context_factory: Optional[Callable[[], TaskContext]] = None,
        omit_history: bool = False,
    ) -> bool:
        """Schedule the last scheduled task again.

        Args:
            reevaluate_context: Build a fresh context with `context_factory`
                instead of reusing the recorded one
            context_factory: Produces the fresh context; required when re-evaluating
            omit_history: Leave the history untouched

        Returns:
            False if nothing was scheduled before, True otherwise

        Raises:
            ValueError: If re-evaluation is requested without a context_factory
            AmbiguousRootError: Propagated from context_factory
        """
        last = self.inventory.last_scheduled_task()
        if last is None:
            self._logger.debug("No task has been scheduled yet, nothing to rerun")
            return False

        task, recorded_context = last
        if reevaluate_context:
            if context_factory is None:
                raise ValueError("Re-evaluating the rerun context requires a context_factory")
            context = context_factory()
        else:
            context = recorded_context

        self._logger.trace(f"Rerunning '{task.name()}' (reevaluate={reevaluate_context})")
        self.schedule(task, context, omit_history)
        return True

    def _emit(self, event: SpawnRequested) -> None:
        for listener in list(self._listeners):
            listener(event)
