"""Working directory selection across open project roots."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from taskscope.logging import Logger, null_logger

if TYPE_CHECKING:
    from taskscope.editor import EntryId, ProjectModel, RootId

__all__ = [
    "AmbiguousRootError",
    "ProjectRootCandidate",
    "qualifying_roots",
    "resolve_working_directory",
    "task_cwd",
]


class AmbiguousRootError(Exception):
    """Raised when several roots qualify and none can be picked from the active entry."""

    def __init__(self, candidates: list["ProjectRootCandidate"], active_entry: Optional["EntryId"]) -> None:
        self.candidates = candidates
        self.active_entry = active_entry
        roots = ", ".join(str(candidate.path) for candidate in candidates)
        super().__init__(f"Cannot determine task cwd for multiple worktrees ({roots})")


@dataclass(frozen=True)
class ProjectRootCandidate:
    """A project root as seen at resolution time. Recomputed on every call."""

    id: "RootId"
    path: Path
    is_visible: bool = True
    is_local: bool = True
    root_is_directory: bool = True

    @property
    def qualifies(self) -> bool:
        return self.is_visible and self.is_local and self.root_is_directory


def qualifying_roots(candidates: Iterable[ProjectRootCandidate]) -> list[ProjectRootCandidate]:
    """Keep visible, local roots whose top-level entry is a directory, in order."""
    return [candidate for candidate in candidates if candidate.qualifies]


def resolve_working_directory(
    candidates: Iterable[ProjectRootCandidate],
    active_entry: Optional["EntryId"],
    root_owning_entry: Callable[["EntryId"], Optional[ProjectRootCandidate]],
    logger: Logger = null_logger,
) -> Optional[Path]:
    """Pick the working directory for a task.

    Zero qualifying roots give None and one gives its path. With more than
    one, the root owning the active entry wins; when there is no active entry
    or it sits outside every qualifying root this raises instead of guessing.

    Args:
        candidates: Every root open in the workspace
        active_entry: The entry the user last interacted with, if any
        root_owning_entry: Looks up the root an entry belongs to

    Returns:
        Path of the chosen root, or None when no root qualifies

    Raises:
        AmbiguousRootError: Several roots qualify and the active entry does not pick one
    """
    available = qualifying_roots(candidates)
    if not available:
        logger.trace("No qualifying project roots, task cwd left unset")
        return None
    if len(available) == 1:
        return available[0].path

    if active_entry is not None:
        owner = root_owning_entry(active_entry)
        if owner is not None:
            for candidate in available:
                if candidate.id == owner.id:
                    logger.trace(f"Active entry selects root {candidate.path} out of {len(available)}")
                    return candidate.path

    raise AmbiguousRootError(available, active_entry)


def task_cwd(project: "ProjectModel", logger: Logger = null_logger) -> Optional[Path]:
    """Resolve the working directory from a ProjectModel.

    Raises:
        AmbiguousRootError: See resolve_working_directory
    """
    return resolve_working_directory(
        project.roots(),
        project.active_entry_id(),
        project.root_owning_entry,
        logger,
    )
