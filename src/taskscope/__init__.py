"""taskscope - resolve the editing context for project tasks and schedule them."""

__version__ = "0.1.0"

from taskscope.context import task_context
from taskscope.inventory import TaskInventory
from taskscope.scheduler import Scheduler, SpawnRequested
from taskscope.session import TaskSession
from taskscope.tasks import (
    DefinitionTask,
    OneshotSource,
    OneshotTask,
    SpawnInTerminal,
    StaticSource,
    Task,
    TaskSourceKind,
)
from taskscope.variables import TaskContext, TaskVariables, VariableName
from taskscope.working_dir import AmbiguousRootError, resolve_working_directory, task_cwd
from taskscope.workspace import ProjectRoot, TextBuffer, Workspace

__all__ = [
    "__version__",
    "task_context",
    "TaskInventory",
    "Scheduler",
    "SpawnRequested",
    "TaskSession",
    "DefinitionTask",
    "OneshotSource",
    "OneshotTask",
    "SpawnInTerminal",
    "StaticSource",
    "Task",
    "TaskSourceKind",
    "TaskContext",
    "TaskVariables",
    "VariableName",
    "AmbiguousRootError",
    "resolve_working_directory",
    "task_cwd",
    "ProjectRoot",
    "TextBuffer",
    "Workspace",
]
