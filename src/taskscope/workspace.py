"""In-memory editing surface and project model.

These back the CLI and the language server, where taskscope itself owns the
open documents, and they serve as the collaborators in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from taskscope.editor import (
    EditorSurface,
    EntryId,
    Language,
    LocalFile,
    Point,
    ProjectModel,
    RootId,
)
from taskscope.working_dir import ProjectRootCandidate

__all__ = ["TextBuffer", "ProjectRoot", "Workspace"]


class TextBuffer(EditorSurface):
    """A document with selections, optionally backed by a file.

    Offsets are character offsets into the text. The newest selection is the
    last one added; a selection is stored as (tail, head) and reported
    ordered.
    """

    def __init__(
        self,
        text: str,
        path: Optional[Path] = None,
        language: Optional[Language] = None,
        is_local: bool = True,
    ) -> None:
        self._text = text
        self.path = path
        self.language = language
        self.is_local = is_local
        self._selections: list[tuple[int, int]] = [(0, 0)]

    def text(self) -> str:
        return self._text

    def set_text(self, text: str) -> None:
        """Replace the contents, clamping selections to the new length."""
        self._text = text
        limit = len(text)
        self._selections = [(min(tail, limit), min(head, limit)) for tail, head in self._selections]

    def select(self, start: int, end: Optional[int] = None) -> None:
        """Replace every selection with one range (a cursor if `end` is omitted)."""
        self._selections = [(start, start if end is None else end)]

    def add_selection(self, start: int, end: int) -> None:
        self._selections.append((start, end))

    def current_selection_range(self) -> tuple[int, int]:
        tail, head = self._selections[-1]
        return (min(tail, head), max(tail, head))

    def point_for_offset(self, offset: int) -> Point:
        if offset < 0 or offset > len(self._text):
            raise ValueError(f"Offset {offset} is outside the buffer (length {len(self._text)})")
        row = self._text.count("\n", 0, offset)
        line_start = self._text.rfind("\n", 0, offset) + 1
        return Point(row, offset - line_start)

    def offset_for_point(self, point: Point) -> int:
        """Inverse of point_for_offset. Columns past the line end are clamped."""
        lines = self._text.split("\n")
        if point.row < 0 or point.row >= len(lines):
            raise ValueError(f"Row {point.row} is outside the buffer ({len(lines)} lines)")
        offset = sum(len(line) + 1 for line in lines[: point.row])
        return offset + max(0, min(point.column, len(lines[point.row])))

    def text_for_range(self, start: int, end: int) -> str:
        if start < 0 or end > len(self._text) or start > end:
            raise ValueError(f"Range {start}..{end} is outside the buffer")
        return self._text[start:end]

    def file_for_buffer(self) -> Optional[LocalFile]:
        if self.path is None or not self.is_local:
            return None
        return LocalFile(self.path)

    def language_at(self, offset: int) -> Optional[Language]:
        return self.language

    def __repr__(self) -> str:
        return f"TextBuffer(path={self.path!r})"


@dataclass
class ProjectRoot:
    """An open project root. `is_dir` of None means ask the filesystem."""

    id: RootId
    path: Path
    visible: bool = True
    local: bool = True
    is_dir: Optional[bool] = None

    def contains(self, path: Path) -> bool:
        return path == self.path or self.path in path.parents

    def candidate(self) -> ProjectRootCandidate:
        is_dir = self.path.is_dir() if self.is_dir is None else self.is_dir
        return ProjectRootCandidate(
            id=self.id,
            path=self.path,
            is_visible=self.visible,
            is_local=self.local,
            root_is_directory=is_dir,
        )


class Workspace(ProjectModel):
    """Open roots, open buffers, and the active item.

    Entries are identified by absolute path. The active entry follows the
    active buffer's file unless set explicitly.
    """

    def __init__(self) -> None:
        self._roots: list[ProjectRoot] = []
        self._items: list[TextBuffer] = []
        self._active: Optional[TextBuffer] = None
        self._active_entry: Optional[Path] = None
        self._next_root_id = 1

    # -- roots ---------------------------------------------------------------

    def add_root(
        self,
        path: Path,
        visible: bool = True,
        local: bool = True,
        is_dir: Optional[bool] = None,
    ) -> ProjectRoot:
        root = ProjectRoot(self._next_root_id, path, visible, local, is_dir)
        self._next_root_id += 1
        self._roots.append(root)
        return root

    def remove_root(self, root_id: RootId) -> None:
        self._roots = [root for root in self._roots if root.id != root_id]

    def project_roots(self) -> list[ProjectRoot]:
        return list(self._roots)

    def roots(self) -> list[ProjectRootCandidate]:
        return [root.candidate() for root in self._roots]

    def root_by_id(self, root_id: RootId) -> Optional[ProjectRootCandidate]:
        for root in self._roots:
            if root.id == root_id:
                return root.candidate()
        return None

    def _owning_root(self, path: Path) -> Optional[ProjectRoot]:
        # Nested roots: the deepest one owns the path
        owners = [root for root in self._roots if root.contains(path)]
        if not owners:
            return None
        return max(owners, key=lambda root: len(root.path.parts))

    def root_for_file(self, file: LocalFile) -> Optional[RootId]:
        root = self._owning_root(file.abs_path)
        return root.id if root is not None else None

    def root_owning_entry(self, entry_id: EntryId) -> Optional[ProjectRootCandidate]:
        root = self._owning_root(Path(entry_id))
        return root.candidate() if root is not None else None

    # -- items ---------------------------------------------------------------

    def add_item(self, buffer: TextBuffer, activate: bool = True) -> TextBuffer:
        if buffer not in self._items:
            self._items.append(buffer)
        if activate:
            self.activate_item(buffer)
        return buffer

    def activate_item(self, buffer: TextBuffer) -> None:
        if buffer not in self._items:
            raise ValueError(f"{buffer!r} is not open in this workspace")
        self._active = buffer
        self._active_entry = None

    def close_item(self, buffer: TextBuffer) -> None:
        if buffer in self._items:
            self._items.remove(buffer)
        if self._active is buffer:
            self._active = self._items[-1] if self._items else None

    def items(self) -> list[TextBuffer]:
        return list(self._items)

    def item_for_path(self, path: Path) -> Optional[TextBuffer]:
        for item in self._items:
            if item.path == path:
                return item
        return None

    def active_item(self) -> Optional[TextBuffer]:
        return self._active

    def set_active_entry(self, path: Optional[Path]) -> None:
        """Point the active entry at a path without opening it, e.g. a tree selection."""
        self._active_entry = path

    def active_entry_id(self) -> Optional[EntryId]:
        if self._active_entry is not None:
            return str(self._active_entry)
        if self._active is not None and self._active.path is not None:
            if self._owning_root(self._active.path) is not None:
                return str(self._active.path)
        return None
