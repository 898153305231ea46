"""Build a TaskContext from the active editing position."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping, Optional

from taskscope.editor import EditorSurface, Language, Location, ProjectModel
from taskscope.logging import Logger, null_logger
from taskscope.variables import TaskContext, TaskVariables, VariableName

__all__ = ["task_context", "resolve_or_default", "language_variables"]


def task_context(
    editor: Optional[EditorSurface],
    project: Optional[ProjectModel],
    cwd: Optional[Path],
    logger: Logger = null_logger,
) -> TaskContext:
    """Resolve the variables for the active editor.

    Well-known variables go in first (row, column, selected text, then file
    and worktree root when known); variables from the buffer language's
    context provider go in last and replace well-known ones of the same name.

    Args:
        editor: Active editor, or None when no editor is focused
        project: Project model used to find the file's root
        cwd: Working directory already resolved for this context

    Returns:
        The resolved context. Without an editor, or when the position cannot
        be read, the variables are empty rather than partial.
    """
    if editor is None:
        return TaskContext(cwd=cwd)
    return resolve_or_default(lambda: _editor_context(editor, project, cwd, logger), cwd, logger)


def resolve_or_default(
    build: Callable[[], Optional[TaskContext]],
    cwd: Optional[Path],
    logger: Logger = null_logger,
) -> TaskContext:
    """Run `build`, falling back to an empty context on any failure."""
    try:
        context = build()
    except Exception as e:
        logger.debug(f"Task context degraded to empty variables: {e}")
        return TaskContext(cwd=cwd)
    if context is None:
        return TaskContext(cwd=cwd)
    return context


def language_variables(
    language: Optional[Language],
    location: Location,
    logger: Logger = null_logger,
) -> TaskVariables:
    """Ask the language's context provider for extra variables.

    A missing provider and a failing provider both give no variables.
    """
    if language is None or language.context_provider is None:
        return TaskVariables()
    try:
        extra = language.context_provider.build_context(location)
    except Exception as e:
        logger.debug(f"Context provider for {language.name} failed: {e}")
        return TaskVariables()
    if isinstance(extra, TaskVariables):
        return extra
    if isinstance(extra, Mapping):
        try:
            return TaskVariables(extra.items())
        except (TypeError, ValueError) as e:
            logger.debug(f"Context provider for {language.name} returned invalid variables: {e}")
            return TaskVariables()
    logger.debug(f"Context provider for {language.name} returned {type(extra).__name__}, ignoring")
    return TaskVariables()


def _editor_context(
    editor: EditorSurface,
    project: Optional[ProjectModel],
    cwd: Optional[Path],
    logger: Logger,
) -> TaskContext:
    start, end = editor.current_selection_range()
    point = editor.point_for_offset(start)
    selected_text = editor.text_for_range(start, end)

    current_file = editor.file_for_buffer()
    worktree_path: Optional[Path] = None
    if current_file is not None and project is not None:
        root_id = project.root_for_file(current_file)
        root = project.root_by_id(root_id) if root_id is not None else None
        if root is not None:
            worktree_path = root.path

    location = Location(buffer=editor, start=start, end=end)
    extra = language_variables(editor.language_at(start), location, logger)

    variables = TaskVariables([
        (VariableName.ROW, str(point.row + 1)),
        (VariableName.COLUMN, str(point.column + 1)),
        (VariableName.SELECTED_TEXT, selected_text),
    ])
    if current_file is not None:
        variables.insert(VariableName.FILE, str(current_file.abs_path))
    if worktree_path is not None:
        variables.insert(VariableName.WORKTREE_ROOT, str(worktree_path))
    variables.extend(extra)

    logger.trace(f"Resolved task variables: {variables.to_dict()}")
    return TaskContext(cwd=cwd, task_variables=variables)
