"""Persist the last scheduled task for hosts that restart between runs."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

from taskscope.editor import Language
from taskscope.inventory import TaskInventory
from taskscope.logging import Logger, null_logger
from taskscope.scheduler import SpawnRequested
from taskscope.tasks import OneshotSource, TaskSourceKind
from taskscope.variables import TaskContext

__all__ = ["ScheduledEntry", "HistoryStore", "STATE_PATH_ENV"]

# Overrides the default state file location
STATE_PATH_ENV = "TASKSCOPE_STATE_FILE"

_ONESHOT_PREFIX = "oneshot:"


@dataclass
class ScheduledEntry:
    """
    The last scheduled task as stored on disk.
    """

    task_id: str
    task_name: str
    context: TaskContext
    scheduled_at: float

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.
        """
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "context": self.context.to_dict(),
            "scheduled_at": self.scheduled_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledEntry":
        """
        Create from dictionary loaded from JSON.
        """
        return cls(
            task_id=data["task_id"],
            task_name=data["task_name"],
            context=TaskContext.from_dict(data["context"]),
            scheduled_at=data.get("scheduled_at", 0.0),
        )


class HistoryStore:
    """
    Reads and writes the last-scheduled-task file.
    """

    def __init__(self, state_path: Path, logger: Logger = null_logger):
        override = os.environ.get(STATE_PATH_ENV)
        self.state_path = Path(override) if override else state_path
        self.logger = logger
        # (task id, context) last written or read; unchanged history is not saved again
        self._current: Optional[tuple[str, TaskContext]] = None

    def load(self) -> Optional[ScheduledEntry]:
        """
        Load the stored entry. A missing or corrupted file yields None.
        """
        if not self.state_path.exists():
            self.logger.trace(f"No state file found at {self.state_path}")
            return None
        try:
            with open(self.state_path, "r") as f:
                entry = ScheduledEntry.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, ValueError):
            # A corrupted state file only loses the rerun target
            self.logger.trace(f"State file {self.state_path} corrupted, ignoring it")
            return None
        self._current = (entry.task_id, entry.context)
        self.logger.trace(f"Loaded last scheduled task '{entry.task_name}' from {self.state_path}")
        return entry

    def save(self, entry: ScheduledEntry) -> None:
        self.logger.trace(f"Saving last scheduled task '{entry.task_name}' to {self.state_path}")
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_path, "w") as f:
            json.dump(entry.to_dict(), f, indent=2)
        self._current = (entry.task_id, entry.context)

    def clear(self) -> bool:
        """
        Remove the state file. Returns True if a file was removed.
        """
        self._current = None
        if self.state_path.exists():
            self.state_path.unlink()
            return True
        return False

    def restore(self, inventory: TaskInventory, languages: Iterable[Language] = ()) -> bool:
        """
        Put the stored entry back into the inventory's history.

        The task is looked up by id among the inventory's current tasks; a
        oneshot task is re-created in the user input source. Returns False
        when there is nothing stored or the task no longer exists.
        """
        entry = self.load()
        if entry is None:
            return False

        found = inventory.find_task(entry.task_id, languages)
        if found is not None:
            inventory.task_scheduled(found[1], entry.context)
            return True

        if entry.task_id.startswith(_ONESHOT_PREFIX):
            source = inventory.source(TaskSourceKind.user_input())
            if isinstance(source, OneshotSource):
                task = source.spawn(entry.task_id[len(_ONESHOT_PREFIX):])
                inventory.task_scheduled(task, entry.context)
                return True

        self.logger.warn(
            f"[yellow]Last scheduled task '{entry.task_name}' is no longer defined[/yellow]"
        )
        return False

    def listener(self, inventory: TaskInventory):
        """
        Spawn listener that saves the inventory's last scheduled task.

        The scheduler records history before notifying listeners, so the
        inventory already holds the task being spawned. A spawn that left
        the history untouched (a rerun omitting history) saves nothing.
        """
        def on_spawn(event: SpawnRequested) -> None:
            last = inventory.last_scheduled_task()
            if last is None:
                return
            task, context = last
            if self._current == (task.id, context):
                self.logger.trace(f"History unchanged, not saving '{task.name()}' again")
                return
            self.save(ScheduledEntry(task.id, task.name(), context, time.time()))

        return on_spawn
