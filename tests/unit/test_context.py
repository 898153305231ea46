"""Tests for context module."""

import unittest
from pathlib import Path
from unittest.mock import MagicMock

from taskscope.context import language_variables, resolve_or_default, task_context
from taskscope.editor import ContextProvider, Language, Location
from taskscope.languages import RUST, TYPESCRIPT
from taskscope.logging import LogLevel
from taskscope.variables import TaskContext, TaskVariables, VariableName
from taskscope.working_dir import task_cwd
from taskscope.workspace import TextBuffer, Workspace

from helpers.logging import RecordingLogger


class _FixedProvider(ContextProvider):
    def __init__(self, result):
        self.result = result
        self.locations = []

    def build_context(self, location):
        self.locations.append(location)
        return self.result


class _FailingProvider(ContextProvider):
    def build_context(self, location):
        raise RuntimeError("parser crashed")


class TestTaskContext(unittest.TestCase):
    def setUp(self):
        self.workspace = Workspace()
        self.workspace.add_root(Path("/dir"), is_dir=True)

    def test_no_editor_gives_empty_variables(self):
        context = task_context(None, self.workspace, Path("/dir"))
        self.assertEqual(context.cwd, Path("/dir"))
        self.assertEqual(len(context.task_variables), 0)

    def test_well_known_variables(self):
        buffer = TextBuffer("first\nsecond line\n", path=Path("/dir/notes.txt"))
        buffer.select(8, 14)
        context = task_context(buffer, self.workspace, Path("/dir"))
        self.assertEqual(
            context.task_variables,
            {
                VariableName.ROW: "2",
                VariableName.COLUMN: "3",
                VariableName.SELECTED_TEXT: "cond l",
                VariableName.FILE: "/dir/notes.txt",
                VariableName.WORKTREE_ROOT: "/dir",
            },
        )

    def test_order_of_variables(self):
        buffer = TextBuffer("x", path=Path("/dir/x.txt"))
        context = task_context(buffer, self.workspace, None)
        self.assertEqual(
            context.task_variables.names(),
            ["row", "column", "selected_text", "file", "worktree_root"],
        )

    def test_cursor_gives_empty_selected_text(self):
        buffer = TextBuffer("abc", path=Path("/dir/x.txt"))
        buffer.select(1)
        context = task_context(buffer, self.workspace, None)
        self.assertEqual(context.task_variables[VariableName.SELECTED_TEXT], "")

    def test_newest_selection_wins(self):
        buffer = TextBuffer("one two three", path=Path("/dir/x.txt"))
        buffer.select(0, 3)
        buffer.add_selection(8, 4)
        context = task_context(buffer, self.workspace, None)
        self.assertEqual(context.task_variables[VariableName.SELECTED_TEXT], "two ")
        self.assertEqual(context.task_variables[VariableName.COLUMN], "5")

    def test_unsaved_buffer_has_no_file(self):
        buffer = TextBuffer("scratch")
        context = task_context(buffer, self.workspace, Path("/dir"))
        self.assertNotIn(VariableName.FILE, context.task_variables)
        self.assertNotIn(VariableName.WORKTREE_ROOT, context.task_variables)
        self.assertIn(VariableName.ROW, context.task_variables)

    def test_file_outside_roots_has_no_worktree_root(self):
        buffer = TextBuffer("x", path=Path("/elsewhere/x.txt"))
        context = task_context(buffer, self.workspace, None)
        self.assertEqual(context.task_variables[VariableName.FILE], "/elsewhere/x.txt")
        self.assertNotIn(VariableName.WORKTREE_ROOT, context.task_variables)

    def test_remote_buffer_has_no_file(self):
        buffer = TextBuffer("x", path=Path("/dir/x.txt"), is_local=False)
        context = task_context(buffer, self.workspace, None)
        self.assertNotIn(VariableName.FILE, context.task_variables)

    def test_provider_variables_override_well_known(self):
        provider = _FixedProvider(TaskVariables([(VariableName.ROW, "99"), ("custom", "yes")]))
        language = Language("Fake", (".fake",), provider)
        buffer = TextBuffer("abc", path=Path("/dir/x.fake"), language=language)
        buffer.select(1, 2)
        context = task_context(buffer, self.workspace, None)
        self.assertEqual(context.task_variables[VariableName.ROW], "99")
        self.assertEqual(context.task_variables["custom"], "yes")
        location = provider.locations[0]
        self.assertIs(location.buffer, buffer)
        self.assertEqual((location.start, location.end), (1, 2))

    def test_failing_provider_keeps_well_known_variables(self):
        logger = RecordingLogger()
        language = Language("Broken", (".broken",), _FailingProvider())
        buffer = TextBuffer("abc", path=Path("/dir/x.broken"), language=language)
        context = task_context(buffer, self.workspace, None, logger)
        self.assertEqual(context.task_variables[VariableName.ROW], "1")
        self.assertNotIn(VariableName.SYMBOL, context.task_variables)
        self.assertTrue(any("parser crashed" in m for m in logger.messages(LogLevel.DEBUG)))

    def test_invalid_provider_values_keep_well_known_variables(self):
        logger = RecordingLogger()
        language = Language("Odd", (".odd",), _FixedProvider({"symbol": None}))
        buffer = TextBuffer("abc", path=Path("/dir/x.odd"), language=language)
        context = task_context(buffer, self.workspace, Path("/dir"), logger)
        self.assertEqual(context.task_variables.get(VariableName.ROW), "1")
        self.assertEqual(context.task_variables.get(VariableName.FILE), "/dir/x.odd")
        self.assertEqual(context.task_variables.get(VariableName.WORKTREE_ROOT), "/dir")
        self.assertNotIn(VariableName.SYMBOL, context.task_variables)
        self.assertTrue(any("invalid variables" in m for m in logger.messages(LogLevel.DEBUG)))

    def test_unreadable_position_degrades_to_empty_variables(self):
        editor = MagicMock()
        editor.current_selection_range.return_value = (0, 0)
        editor.point_for_offset.side_effect = ValueError("offset out of range")
        context = task_context(editor, self.workspace, Path("/dir"))
        self.assertEqual(context, TaskContext(cwd=Path("/dir")))
        self.assertEqual(len(context.task_variables), 0)


class TestResolveOrDefault(unittest.TestCase):
    def test_returns_built_context(self):
        built = TaskContext(cwd=Path("/a"), task_variables=TaskVariables([("x", "1")]))
        self.assertIs(resolve_or_default(lambda: built, Path("/a")), built)

    def test_none_gives_empty_context(self):
        self.assertEqual(resolve_or_default(lambda: None, Path("/a")), TaskContext(cwd=Path("/a")))

    def test_exception_gives_empty_context(self):
        def build():
            raise KeyError("missing")

        context = resolve_or_default(build, None)
        self.assertIsNone(context.cwd)
        self.assertEqual(len(context.task_variables), 0)


class TestLanguageVariables(unittest.TestCase):
    def setUp(self):
        self.buffer = TextBuffer("abc")
        self.location = Location(self.buffer, 0, 0)

    def test_no_language(self):
        self.assertEqual(len(language_variables(None, self.location)), 0)

    def test_language_without_provider(self):
        self.assertEqual(len(language_variables(Language("Plain"), self.location)), 0)

    def test_mapping_result_accepted(self):
        language = Language("Fake", (), _FixedProvider({"symbol": "main"}))
        self.assertEqual(language_variables(language, self.location), {"symbol": "main"})

    def test_unexpected_result_ignored(self):
        language = Language("Fake", (), _FixedProvider(42))
        self.assertEqual(len(language_variables(language, self.location)), 0)


class TestTwoLanguageProject(unittest.TestCase):
    """A project at /dir with a TypeScript file and a Rust file."""

    def setUp(self):
        self.workspace = Workspace()
        self.workspace.add_root(Path("/dir"), is_dir=True)
        self.ts_buffer = TextBuffer(
            "function this_is_a_test() { }", path=Path("/dir/a.ts"), language=TYPESCRIPT
        )
        self.rust_buffer = TextBuffer(
            "use std; fn this_is_a_rust_file() { }", path=Path("/dir/rust/b.rs"), language=RUST
        )
        self.workspace.add_item(self.ts_buffer, activate=False)
        self.workspace.add_item(self.rust_buffer)

    def _context(self):
        return task_context(
            self.workspace.active_item(), self.workspace, task_cwd(self.workspace)
        )

    def test_rust_file_cursor_outside_function(self):
        self.assertEqual(
            self._context(),
            TaskContext(
                cwd=Path("/dir"),
                task_variables=TaskVariables([
                    (VariableName.FILE, "/dir/rust/b.rs"),
                    (VariableName.WORKTREE_ROOT, "/dir"),
                    (VariableName.ROW, "1"),
                    (VariableName.COLUMN, "1"),
                    (VariableName.SELECTED_TEXT, ""),
                ]),
            ),
        )

    def test_rust_file_selection_inside_function(self):
        self.rust_buffer.select(14, 18)
        context = self._context()
        self.assertEqual(context.cwd, Path("/dir"))
        self.assertEqual(
            context.task_variables,
            {
                VariableName.FILE: "/dir/rust/b.rs",
                VariableName.WORKTREE_ROOT: "/dir",
                VariableName.ROW: "1",
                VariableName.COLUMN: "15",
                VariableName.SELECTED_TEXT: "is_i",
                VariableName.SYMBOL: "this_is_a_rust_file",
            },
        )

    def test_typescript_file_cursor_at_start(self):
        self.workspace.activate_item(self.ts_buffer)
        context = self._context()
        self.assertEqual(context.cwd, Path("/dir"))
        self.assertEqual(
            context.task_variables,
            {
                VariableName.FILE: "/dir/a.ts",
                VariableName.WORKTREE_ROOT: "/dir",
                VariableName.ROW: "1",
                VariableName.COLUMN: "1",
                VariableName.SELECTED_TEXT: "",
                VariableName.SYMBOL: "this_is_a_test",
            },
        )


if __name__ == "__main__":
    unittest.main()
