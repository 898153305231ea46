"""Task variables and the context a task is prepared with."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

__all__ = [
    "ENV_PREFIX",
    "VariableName",
    "TaskVariables",
    "TaskContext",
]

# Prefix used when variables are exported into a spawned task's environment
ENV_PREFIX = "TASKSCOPE_"


class VariableName(str, enum.Enum):
    """Well-known variables filled in from the active editing position.

    Values are the names used in task templates (``{{ ctx.row }}``). Because
    this is a ``str`` enum, a language provider that returns the plain string
    ``"symbol"`` addresses the same variable as ``VariableName.SYMBOL``.
    """

    ROW = "row"
    COLUMN = "column"
    SELECTED_TEXT = "selected_text"
    FILE = "file"
    WORKTREE_ROOT = "worktree_root"
    SYMBOL = "symbol"

    def __str__(self) -> str:
        return self.value

    @property
    def env_name(self) -> str:
        return env_name_for(self.value)


def env_name_for(name: str) -> str:
    """Return the environment variable a context variable is exported as."""
    return f"{ENV_PREFIX}{name.upper()}"


VariableKey = Union[VariableName, str]


def _key(name: VariableKey) -> str:
    if isinstance(name, VariableName):
        return name.value
    if not isinstance(name, str) or not name:
        raise TypeError(f"Variable names must be non-empty strings, got {name!r}")
    return name


class TaskVariables:
    """Insertion-ordered mapping of variable name to plain-text value.

    Keys are stored by their template name, so well-known and provider
    names share one namespace. Writing an existing key replaces its value
    in place: ``extend`` is last-write-wins.
    """

    def __init__(self, items: Iterable[tuple[VariableKey, str]] = ()) -> None:
        self._values: dict[str, str] = {}
        self.extend(items)

    @classmethod
    def from_dict(cls, data: Mapping[str, str]) -> "TaskVariables":
        return cls(data.items())

    def insert(self, name: VariableKey, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(
                f"Value for variable '{_key(name)}' must be a string, got {type(value).__name__}"
            )
        self._values[_key(name)] = value

    def extend(self, items: Union["TaskVariables", Iterable[tuple[VariableKey, str]]]) -> None:
        if isinstance(items, TaskVariables):
            items = items.items()
        for name, value in items:
            self.insert(name, value)

    def get(self, name: VariableKey, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(_key(name), default)

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._values.items()))

    def names(self) -> list[str]:
        return list(self._values)

    def copy(self) -> "TaskVariables":
        return TaskVariables(self._values.items())

    def to_dict(self) -> dict[str, str]:
        return dict(self._values)

    def to_env(self) -> dict[str, str]:
        """Export every variable as ``TASKSCOPE_<NAME>``."""
        return {env_name_for(name): value for name, value in self._values.items()}

    def __getitem__(self, name: VariableKey) -> str:
        return self._values[_key(name)]

    def __contains__(self, name: object) -> bool:
        if isinstance(name, (VariableName, str)):
            return _key(name) in self._values
        return False

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TaskVariables):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self._values == {_key(k): v for k, v in other.items()}
        return NotImplemented

    def __repr__(self) -> str:
        return f"TaskVariables({self._values!r})"


@dataclass(frozen=True)
class TaskContext:
    """Working directory plus variables a task is prepared with.

    Built fresh for every scheduling attempt. The scheduler and the history
    only ever hold clones, so a caller mutating its own variables afterwards
    cannot change what was recorded.
    """

    cwd: Optional[Path] = None
    task_variables: TaskVariables = field(default_factory=TaskVariables)

    def clone(self) -> "TaskContext":
        return TaskContext(cwd=self.cwd, task_variables=self.task_variables.copy())

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.
        """
        return {
            "cwd": str(self.cwd) if self.cwd is not None else None,
            "task_variables": self.task_variables.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskContext":
        """
        Create from dictionary loaded from JSON.
        """
        cwd = data.get("cwd")
        return cls(
            cwd=Path(cwd) if cwd is not None else None,
            task_variables=TaskVariables.from_dict(data.get("task_variables", {})),
        )
