"""Tasks, the execution descriptors they prepare, and the sources that list them."""

from __future__ import annotations

import enum
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from taskscope.logging import Logger, null_logger
from taskscope.parser import TaskDefinition, TaskFileError, parse_tasks_file
from taskscope.substitution import UnresolvedPlaceholderError, substitute_all
from taskscope.variables import TaskContext

__all__ = [
    "TaskId",
    "SpawnInTerminal",
    "Task",
    "DefinitionTask",
    "OneshotTask",
    "SourceType",
    "TaskSourceKind",
    "TaskSource",
    "StaticSource",
    "OneshotSource",
]

TaskId = str


@dataclass(frozen=True)
class SpawnInTerminal:
    """Fully resolved command handed to the external executor."""

    id: TaskId
    label: str
    command: str
    args: list[str] = field(default_factory=list)
    cwd: Optional[Path] = None
    env: dict[str, str] = field(default_factory=dict)
    use_new_terminal: bool = False
    allow_concurrent_runs: bool = False

    def command_line(self) -> str:
        """Shell command line: the command verbatim, each argument quoted."""
        return " ".join([self.command, *(shlex.quote(arg) for arg in self.args)])


class Task(ABC):
    """A named unit of work that can be turned into a SpawnInTerminal."""

    @property
    @abstractmethod
    def id(self) -> TaskId:
        ...

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def prepare_exec(self, context: TaskContext) -> Optional[SpawnInTerminal]:
        """Materialize the task for `context`, or None if it cannot run there."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


class DefinitionTask(Task):
    """Task backed by a TaskDefinition from a tasks file or a language."""

    def __init__(self, id_base: str, definition: TaskDefinition, logger: Logger = null_logger) -> None:
        self._id = f"{id_base}:{definition.label}"
        self.definition = definition
        self._logger = logger

    @property
    def id(self) -> TaskId:
        return self._id

    def name(self) -> str:
        return self.definition.label

    def prepare_exec(self, context: TaskContext) -> Optional[SpawnInTerminal]:
        variables = context.task_variables
        try:
            command = substitute_all(self.definition.command, variables)
            args = [substitute_all(arg, variables) for arg in self.definition.args]
            cwd = self._resolve_cwd(context)
            task_env = {
                key: substitute_all(value, variables)
                for key, value in self.definition.env.items()
            }
        except UnresolvedPlaceholderError as e:
            self._logger.debug(f"Task '{self.name()}' cannot be prepared: {e}")
            return None

        env = variables.to_env()
        env.update(task_env)
        return SpawnInTerminal(
            id=self.id,
            label=self.name(),
            command=command,
            args=args,
            cwd=cwd,
            env=env,
            use_new_terminal=self.definition.use_new_terminal,
            allow_concurrent_runs=self.definition.allow_concurrent_runs,
        )

    def _resolve_cwd(self, context: TaskContext) -> Optional[Path]:
        if not self.definition.cwd:
            return context.cwd
        cwd = Path(substitute_all(self.definition.cwd, context.task_variables))
        if not cwd.is_absolute() and context.cwd is not None:
            return context.cwd / cwd
        return cwd


class OneshotTask(Task):
    """Ad-hoc command typed by the user, run through the shell as written."""

    def __init__(self, prompt: str) -> None:
        self.prompt = prompt

    @property
    def id(self) -> TaskId:
        return f"oneshot:{self.prompt}"

    def name(self) -> str:
        return self.prompt

    def prepare_exec(self, context: TaskContext) -> Optional[SpawnInTerminal]:
        if not self.prompt.strip():
            return None
        return SpawnInTerminal(
            id=self.id,
            label=self.prompt,
            command=self.prompt,
            cwd=context.cwd,
            env=context.task_variables.to_env(),
        )


class SourceType(enum.Enum):
    USER_INPUT = "user_input"
    ABS_PATH = "abs_path"
    WORKTREE = "worktree"
    LANGUAGE = "language"


@dataclass(frozen=True)
class TaskSourceKind:
    """Where a group of tasks comes from."""

    type: SourceType
    abs_path: Optional[Path] = None
    worktree_id: Optional[int] = None
    language: Optional[str] = None

    @classmethod
    def user_input(cls) -> "TaskSourceKind":
        return cls(SourceType.USER_INPUT)

    @classmethod
    def from_abs_path(cls, abs_path: Path) -> "TaskSourceKind":
        return cls(SourceType.ABS_PATH, abs_path=abs_path)

    @classmethod
    def from_worktree(cls, worktree_id: int, abs_path: Path) -> "TaskSourceKind":
        return cls(SourceType.WORKTREE, abs_path=abs_path, worktree_id=worktree_id)

    @classmethod
    def from_language(cls, name: str) -> "TaskSourceKind":
        return cls(SourceType.LANGUAGE, language=name)

    @property
    def worktree(self) -> Optional[int]:
        return self.worktree_id

    @property
    def id_base(self) -> str:
        match self.type:
            case SourceType.USER_INPUT:
                return "oneshot"
            case SourceType.ABS_PATH:
                return f"file:{self.abs_path}"
            case SourceType.WORKTREE:
                return f"worktree{self.worktree_id}:{self.abs_path}"
            case SourceType.LANGUAGE:
                return f"language:{self.language}"
        raise ValueError(f"Invalid SourceType: {self.type}")

    def label(self) -> str:
        """Short description for listings."""
        match self.type:
            case SourceType.USER_INPUT:
                return "oneshot"
            case SourceType.LANGUAGE:
                return f"language: {self.language}"
            case _:
                return str(self.abs_path)


class TaskSource(ABC):
    """Provider of a listable set of tasks."""

    @abstractmethod
    def tasks_to_schedule(self) -> list[Task]:
        ...


class StaticSource(TaskSource):
    """Tasks defined in a YAML tasks file.

    The file is re-read when its modification time changes. Task objects are
    reused while the file is unchanged so history and listings share handles.
    If a later edit breaks the file, the last good tasks stay listed and the
    error is logged.
    """

    def __init__(self, path: Path, id_base: str, logger: Logger = null_logger) -> None:
        self.path = path
        self._id_base = id_base
        self._logger = logger
        self._mtime: Optional[float] = None
        self._tasks: list[Task] = []

    def tasks_to_schedule(self) -> list[Task]:
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            if self._tasks:
                self._logger.trace(f"Tasks file {self.path} disappeared")
            self._mtime = None
            self._tasks = []
            return []

        if mtime != self._mtime:
            self._reload(mtime)
        return list(self._tasks)

    def _reload(self, mtime: float) -> None:
        try:
            definitions = parse_tasks_file(self.path)
        except TaskFileError as e:
            self._logger.error(f"[red]{e}[/red]")
            self._mtime = mtime
            return
        self._logger.trace(f"Loaded {len(definitions)} task(s) from {self.path}")
        self._tasks = [DefinitionTask(self._id_base, definition, self._logger) for definition in definitions]
        self._mtime = mtime


class OneshotSource(TaskSource):
    """Ad-hoc tasks entered by the user, listed in the order first spawned."""

    def __init__(self) -> None:
        self._tasks: dict[str, OneshotTask] = {}

    def spawn(self, prompt: str) -> OneshotTask:
        task = self._tasks.get(prompt)
        if task is None:
            task = OneshotTask(prompt)
            self._tasks[prompt] = task
        return task

    def tasks_to_schedule(self) -> list[Task]:
        return list(self._tasks.values())
