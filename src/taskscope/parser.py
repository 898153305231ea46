"""Parse task definition files.

A tasks file is YAML with a single ``tasks`` mapping. Task names are the
keys; each value is either a command string or a mapping::

    tasks:
      test symbol:
        command: cargo
        args: [test, "{{ ctx.symbol }}"]
        cwd: "{{ ctx.worktree_root }}"
        env:
          RUST_BACKTRACE: "1"
      hello: echo hello

Definitions keep the file's order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

__all__ = [
    "TASKS_DIR",
    "TASKS_FILE",
    "TaskDefinition",
    "TaskFileError",
    "parse_task_definitions",
    "parse_tasks_file",
    "tasks_file_for_root",
]

TASKS_DIR = ".taskscope"
TASKS_FILE = "tasks.yaml"

_KNOWN_FIELDS = frozenset(
    {"command", "args", "cwd", "env", "use_new_terminal", "allow_concurrent_runs", "desc"}
)


class TaskFileError(Exception):
    """Raised when a tasks file is invalid."""

    pass


@dataclass
class TaskDefinition:
    """A task as written in a tasks file, templates unresolved."""

    label: str
    command: str
    args: list[str] = field(default_factory=list)
    cwd: str = ""
    env: dict[str, str] = field(default_factory=dict)
    desc: str = ""
    use_new_terminal: bool = False
    allow_concurrent_runs: bool = False

    def __post_init__(self):
        """Ensure args is always a list."""
        if isinstance(self.args, str):
            self.args = [self.args]


def tasks_file_for_root(root: Path) -> Path:
    """Location of the tasks file inside a project root."""
    return root / TASKS_DIR / TASKS_FILE


def parse_tasks_file(path: Path) -> list[TaskDefinition]:
    """
    Parse a tasks file into definitions.

    A missing or empty file yields no definitions.

    Raises:
        TaskFileError: If the file cannot be read or has an invalid structure
    """
    if not path.exists():
        return []

    try:
        content = path.read_text()
    except OSError as e:
        raise TaskFileError(f"Error reading tasks file '{path}': {e}") from e

    if not content.strip():
        return []

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise TaskFileError(f"Error parsing YAML in tasks file '{path}': {e}") from e

    return parse_task_definitions(data, str(path))


def parse_task_definitions(data: Any, origin: str = "<memory>") -> list[TaskDefinition]:
    """
    Build definitions from already-loaded YAML data.

    Args:
        data: Loaded YAML document (None is treated as empty)
        origin: Name used in error messages

    Raises:
        TaskFileError: If the structure is invalid
    """
    if data is None:
        return []
    if not isinstance(data, dict):
        raise TaskFileError(f"Error in tasks file '{origin}': top level must be a mapping")

    tasks_data = data.get("tasks")
    if tasks_data is None:
        return []
    if not isinstance(tasks_data, dict):
        raise TaskFileError(f"Error in tasks file '{origin}': 'tasks' must be a dictionary")

    return [_parse_definition(str(label), body, origin) for label, body in tasks_data.items()]


def _parse_definition(label: str, body: Any, origin: str) -> TaskDefinition:
    if not label.strip():
        raise TaskFileError(f"Error in tasks file '{origin}': task names must not be empty")

    if isinstance(body, str):
        return TaskDefinition(label=label, command=body)

    if not isinstance(body, dict):
        raise TaskFileError(
            f"Error in tasks file '{origin}': task '{label}' must be a command string or a dictionary"
        )

    unknown = sorted(set(body) - _KNOWN_FIELDS)
    if unknown:
        raise TaskFileError(
            f"Error in tasks file '{origin}': task '{label}' has unknown field(s): {', '.join(unknown)}"
        )

    command = body.get("command")
    if not isinstance(command, str) or not command.strip():
        raise TaskFileError(
            f"Error in tasks file '{origin}': task '{label}' must define a non-empty 'command'"
        )

    args = body.get("args", [])
    if isinstance(args, str):
        args = [args]
    if not isinstance(args, list):
        raise TaskFileError(f"Error in tasks file '{origin}': field 'args' of '{label}' must be a list")
    # YAML turns bare numbers into ints; commands only ever see strings
    args = [str(arg) for arg in args]

    cwd = body.get("cwd", "")
    if not isinstance(cwd, str):
        raise TaskFileError(f"Error in tasks file '{origin}': field 'cwd' of '{label}' must be a string")

    env = body.get("env", {})
    if not isinstance(env, dict):
        raise TaskFileError(f"Error in tasks file '{origin}': field 'env' of '{label}' must be a dictionary")
    env = {str(key): str(value) for key, value in env.items()}

    desc = body.get("desc", "")
    if not isinstance(desc, str):
        raise TaskFileError(f"Error in tasks file '{origin}': field 'desc' of '{label}' must be a string")

    flags = {}
    for flag in ("use_new_terminal", "allow_concurrent_runs"):
        value = body.get(flag, False)
        if not isinstance(value, bool):
            raise TaskFileError(
                f"Error in tasks file '{origin}': field '{flag}' of '{label}' must be a boolean"
            )
        flags[flag] = value

    return TaskDefinition(
        label=label,
        command=command,
        args=args,
        cwd=cwd,
        env=env,
        desc=desc,
        **flags,
    )
