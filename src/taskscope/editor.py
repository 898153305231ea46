"""Interfaces to the collaborators context resolution reads from.

The editing surface, the project model and the language subsystem live
outside taskscope. They are described here as abstract classes; the
in-memory implementations in ``taskscope.workspace`` back the CLI, the
language server and the tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Hashable, NamedTuple, Optional

from taskscope.variables import TaskVariables

if TYPE_CHECKING:
    from taskscope.parser import TaskDefinition
    from taskscope.working_dir import ProjectRootCandidate

__all__ = [
    "Point",
    "LocalFile",
    "Location",
    "ContextProvider",
    "Language",
    "EditorSurface",
    "ProjectModel",
    "RootId",
    "EntryId",
]

RootId = int
EntryId = Hashable


class Point(NamedTuple):
    """Zero-based row and column of a character offset."""

    row: int
    column: int


@dataclass(frozen=True)
class LocalFile:
    """A buffer's backing file on the local filesystem."""

    abs_path: Path


@dataclass(frozen=True)
class Location:
    """A range inside a buffer, in character offsets."""

    buffer: "EditorSurface"
    start: int
    end: int


class ContextProvider(ABC):
    """Language extension contributing extra variables for a position."""

    @abstractmethod
    def build_context(self, location: Location) -> TaskVariables:
        """Return variables for `location`. May raise; callers degrade to no variables."""
        ...

    def associated_tasks(self) -> list["TaskDefinition"]:
        """Task definitions this language offers regardless of project configuration."""
        return []


@dataclass(frozen=True)
class Language:
    name: str
    extensions: tuple[str, ...] = ()
    context_provider: Optional[ContextProvider] = field(default=None, compare=False)

    def matches(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions


class EditorSurface(ABC):
    """The text buffer behind the active editor plus its selections."""

    @abstractmethod
    def text(self) -> str:
        ...

    @abstractmethod
    def current_selection_range(self) -> tuple[int, int]:
        """Return (start, end) offsets of the newest selection, start <= end."""
        ...

    @abstractmethod
    def point_for_offset(self, offset: int) -> Point:
        """Map an offset to a zero-based Point.

        Raises:
            ValueError: If the offset lies outside the buffer
        """
        ...

    @abstractmethod
    def text_for_range(self, start: int, end: int) -> str:
        ...

    @abstractmethod
    def file_for_buffer(self) -> Optional[LocalFile]:
        """Return the backing local file, or None for unsaved or remote buffers."""
        ...

    @abstractmethod
    def language_at(self, offset: int) -> Optional[Language]:
        ...


class ProjectModel(ABC):
    """The set of project roots (worktrees) open in the workspace."""

    @abstractmethod
    def roots(self) -> list["ProjectRootCandidate"]:
        ...

    @abstractmethod
    def root_by_id(self, root_id: RootId) -> Optional["ProjectRootCandidate"]:
        ...

    @abstractmethod
    def root_for_file(self, file: LocalFile) -> Optional[RootId]:
        ...

    @abstractmethod
    def active_entry_id(self) -> Optional[EntryId]:
        """The entry the user last interacted with, if any."""
        ...

    @abstractmethod
    def root_owning_entry(self, entry_id: EntryId) -> Optional["ProjectRootCandidate"]:
        ...
