"""Tests for LSP server module."""

import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock, patch

from lsprotocol.types import (
    ClientCapabilities,
    DidChangeTextDocumentParams,
    DidChangeWorkspaceFoldersParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    InitializeParams,
    MessageType,
    TextDocumentContentChangeWholeDocument,
    TextDocumentIdentifier,
    TextDocumentItem,
    TextDocumentSyncKind,
    VersionedTextDocumentIdentifier,
    WorkspaceFolder,
    WorkspaceFoldersChangeEvent,
)

import taskscope
from taskscope.config import Settings
from taskscope.logging import LogLevel
from taskscope.lsp.server import (
    COMMANDS,
    SPAWN_NOTIFICATION,
    ClientLogger,
    TaskscopeLanguageServer,
    create_server,
    main,
    spawn_payload,
)
from taskscope.tasks import SpawnInTerminal

TASKS_YAML = """\
tasks:
  echo symbol:
    command: echo
    args: ["{{ ctx.symbol }}"]
"""

RUST_SOURCE = "use std; fn this_is_a_rust_file() { }"


def _uri(path: Path) -> str:
    return f"file://{path}"


class LspTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve() / "project"
        (self.root / ".taskscope").mkdir(parents=True)
        (self.root / ".taskscope" / "tasks.yaml").write_text(TASKS_YAML)

        self.server = create_server(Settings(log_level=LogLevel.WARN))
        self.server.protocol.notify = MagicMock()
        self.server.handlers["initialize"](
            InitializeParams(process_id=1, root_uri=_uri(self.root), capabilities=ClientCapabilities())
        )

    def tearDown(self):
        self._tmp.cleanup()

    def open(self, name, text, language_id="rust"):
        uri = _uri(self.root / name)
        self.server.handlers["textDocument/didOpen"](
            DidOpenTextDocumentParams(
                text_document=TextDocumentItem(uri=uri, language_id=language_id, version=1, text=text)
            )
        )
        return uri

    def notifications(self, method):
        return [call.args[1] for call in self.server.protocol.notify.call_args_list if call.args[0] == method]


class TestCreateServer(LspTestCase):
    def test_server_identity(self):
        self.assertIsInstance(self.server, TaskscopeLanguageServer)
        self.assertEqual(self.server.name, "taskscope-lsp")
        self.assertEqual(self.server.version, taskscope.__version__)

    def test_handlers_registered(self):
        for name in ("initialize", "shutdown", "exit", "textDocument/didOpen", "textDocument/didChange",
                     "textDocument/didClose", "workspace/didChangeWorkspaceFolders", *COMMANDS):
            with self.subTest(name=name):
                self.assertIn(name, self.server.handlers)

    def test_initialize_capabilities(self):
        server = create_server()
        result = server.handlers["initialize"](
            InitializeParams(process_id=1, root_uri=None, capabilities=ClientCapabilities())
        )
        self.assertEqual(result.capabilities.text_document_sync, TextDocumentSyncKind.Full)
        self.assertEqual(result.capabilities.execute_command_provider.commands, COMMANDS)

    def test_initialize_adds_root(self):
        self.assertEqual([root.path for root in self.server.project.project_roots()], [self.root])

    def test_initialize_with_workspace_folders(self):
        server = create_server()
        other = self.root.parent / "other"
        other.mkdir()
        server.handlers["initialize"](
            InitializeParams(
                process_id=1,
                root_uri=_uri(self.root),
                capabilities=ClientCapabilities(),
                workspace_folders=[
                    WorkspaceFolder(uri=_uri(self.root), name="project"),
                    WorkspaceFolder(uri=_uri(other), name="other"),
                ],
            )
        )
        self.assertEqual([root.path for root in server.project.project_roots()], [self.root, other])

    def test_shutdown_and_exit(self):
        self.assertIsNone(self.server.handlers["shutdown"]())
        self.assertIsNone(self.server.handlers["exit"]())


class TestDocuments(LspTestCase):
    def test_did_open_tracks_buffer(self):
        uri = self.open("b.rs", RUST_SOURCE)
        buffer = self.server.buffers[uri]
        self.assertEqual(buffer.text(), RUST_SOURCE)
        self.assertEqual(buffer.language.name, "Rust")
        self.assertIs(self.server.project.active_item(), buffer)

    def test_did_change_replaces_text(self):
        uri = self.open("b.rs", RUST_SOURCE)
        self.server.handlers["textDocument/didChange"](
            DidChangeTextDocumentParams(
                text_document=VersionedTextDocumentIdentifier(uri=uri, version=2),
                content_changes=[TextDocumentContentChangeWholeDocument(text="fn changed() {}")],
            )
        )
        self.assertEqual(self.server.buffers[uri].text(), "fn changed() {}")

    def test_did_close_forgets_buffer(self):
        uri = self.open("b.rs", RUST_SOURCE)
        self.server.handlers["textDocument/didClose"](
            DidCloseTextDocumentParams(text_document=TextDocumentIdentifier(uri=uri))
        )
        self.assertNotIn(uri, self.server.buffers)
        self.assertIsNone(self.server.project.active_item())

    def test_workspace_folder_changes(self):
        other = self.root.parent / "other"
        other.mkdir()
        self.server.handlers["workspace/didChangeWorkspaceFolders"](
            DidChangeWorkspaceFoldersParams(
                event=WorkspaceFoldersChangeEvent(
                    added=[WorkspaceFolder(uri=_uri(other), name="other")],
                    removed=[WorkspaceFolder(uri=_uri(self.root), name="project")],
                )
            )
        )
        self.assertEqual([root.path for root in self.server.project.project_roots()], [other])


class TestCommands(LspTestCase):
    def test_context(self):
        uri = self.open("rust/b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.context"](
            {"uri": uri, "selection": {"start": {"line": 0, "character": 14}, "end": {"line": 0, "character": 18}}}
        )
        self.assertEqual(result["cwd"], str(self.root))
        self.assertEqual(
            result["task_variables"],
            {
                "row": "1",
                "column": "15",
                "selected_text": "is_i",
                "file": str(self.root / "rust" / "b.rs"),
                "worktree_root": str(self.root),
                "symbol": "this_is_a_rust_file",
            },
        )

    def test_arguments_as_single_list(self):
        uri = self.open("b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.context"]([{"uri": uri, "position": {"line": 0, "character": 14}}])
        self.assertEqual(result["task_variables"]["symbol"], "this_is_a_rust_file")

    def test_list_tasks(self):
        uri = self.open("b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.listTasks"]({"uri": uri})
        self.assertEqual(
            [item["name"] for item in result],
            ["echo symbol", "cargo check", "cargo test symbol"],
        )
        self.assertEqual(result[1]["source"], "language: Rust")

    def test_spawn_sends_notification(self):
        uri = self.open("b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.spawn"](
            {"name": "echo symbol", "uri": uri, "position": {"line": 0, "character": 14}}
        )
        self.assertEqual(result, {"found": True, "spawned": True})
        (payload,) = self.notifications(SPAWN_NOTIFICATION)
        self.assertEqual(payload["label"], "echo symbol")
        self.assertEqual(payload["args"], ["this_is_a_rust_file"])
        self.assertEqual(payload["cwd"], str(self.root))
        self.assertEqual(payload["env"]["TASKSCOPE_SYMBOL"], "this_is_a_rust_file")

    def test_spawn_without_symbol_spawns_nothing(self):
        uri = self.open("b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.spawn"]({"name": "echo symbol", "uri": uri})
        self.assertEqual(result, {"found": True, "spawned": False})
        self.assertEqual(self.notifications(SPAWN_NOTIFICATION), [])

    def test_spawn_unknown_task(self):
        result = self.server.handlers["taskscope.spawn"]({"name": "nope"})
        self.assertFalse(result["found"])
        (message,) = self.notifications("window/showMessage")
        self.assertEqual(message.type, MessageType.Error)
        self.assertIn("nope", message.message)

    def test_spawn_needs_name(self):
        self.assertEqual(self.server.handlers["taskscope.spawn"]({}), {"found": False, "spawned": False})

    def test_oneshot(self):
        uri = self.open("b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.oneshot"]({"command": "ls -la", "uri": uri})
        self.assertEqual(result, {"taskId": "oneshot:ls -la", "spawned": True})
        (payload,) = self.notifications(SPAWN_NOTIFICATION)
        self.assertEqual(payload["commandLine"], "ls -la")

    def test_rerun_stale_and_reevaluated(self):
        uri = self.open("b.rs", RUST_SOURCE)
        self.server.handlers["taskscope.spawn"](
            {"name": "echo symbol", "uri": uri, "position": {"line": 0, "character": 14}}
        )
        self.server.handlers["textDocument/didChange"](
            DidChangeTextDocumentParams(
                text_document=VersionedTextDocumentIdentifier(uri=uri, version=2),
                content_changes=[TextDocumentContentChangeWholeDocument(text="fn renamed() { }")],
            )
        )

        stale = self.server.handlers["taskscope.rerun"]({"uri": uri, "position": {"line": 0, "character": 5}})
        fresh = self.server.handlers["taskscope.rerun"](
            {"uri": uri, "position": {"line": 0, "character": 5}, "reevaluate": True}
        )
        self.assertEqual(stale, {"rerun": True, "spawned": True})
        self.assertEqual(fresh, {"rerun": True, "spawned": True})
        payloads = self.notifications(SPAWN_NOTIFICATION)
        self.assertEqual([p["args"] for p in payloads], [["this_is_a_rust_file"], ["this_is_a_rust_file"], ["renamed"]])

    def test_rerun_with_nothing_scheduled(self):
        self.assertEqual(self.server.handlers["taskscope.rerun"]({}), {"rerun": False, "spawned": False})

    def test_ambiguous_roots_reported(self):
        other = self.root.parent / "other"
        other.mkdir()
        self.server.add_folder(_uri(other))
        result = self.server.handlers["taskscope.context"]({})
        self.assertIsNone(result)
        (message,) = self.notifications("window/showMessage")
        self.assertIn("multiple worktrees", message.message)

    def test_active_entry_disambiguates(self):
        other = self.root.parent / "other"
        other.mkdir()
        self.server.add_folder(_uri(other))
        result = self.server.handlers["taskscope.context"]({"activeEntry": _uri(other / "README.md")})
        self.assertEqual(result["cwd"], str(other))

    def test_unknown_document_keeps_active_one(self):
        self.open("b.rs", RUST_SOURCE)
        result = self.server.handlers["taskscope.context"]({"uri": _uri(self.root / "missing.rs")})
        self.assertEqual(result["task_variables"]["file"], str(self.root / "b.rs"))


class TestClientLogger(unittest.TestCase):
    def test_forwards_plain_text_at_level(self):
        server = MagicMock()
        logger = ClientLogger(server, LogLevel.INFO)
        logger.error("[red]boom[/red]")
        logger.debug("hidden")
        server.send_notification.assert_called_once()
        method, params = server.send_notification.call_args.args
        self.assertEqual(method, "window/logMessage")
        self.assertEqual(params.message, "boom")
        self.assertEqual(params.type, MessageType.Error)

    def test_unbalanced_markup_sent_verbatim(self):
        server = MagicMock()
        ClientLogger(server).warn("closing [/bold] only")
        self.assertEqual(server.send_notification.call_args.args[1].message, "closing [/bold] only")

    def test_push_and_pop(self):
        logger = ClientLogger(MagicMock())
        logger.push_level(LogLevel.TRACE)
        self.assertEqual(logger.pop_level(), LogLevel.TRACE)
        with self.assertRaises(RuntimeError):
            logger.pop_level()


class TestSpawnPayload(unittest.TestCase):
    def test_fields(self):
        spawn = SpawnInTerminal(id="t", label="echo", command="echo", args=["a b"], cwd=None, env={"A": "1"})
        self.assertEqual(
            spawn_payload(spawn),
            {
                "id": "t",
                "label": "echo",
                "command": "echo",
                "args": ["a b"],
                "commandLine": "echo 'a b'",
                "cwd": None,
                "env": {"A": "1"},
                "useNewTerminal": False,
                "allowConcurrentRuns": False,
            },
        )


class TestMain(unittest.TestCase):
    def test_main_starts_io(self):
        with patch("taskscope.lsp.server.create_server") as create:
            main()
        create.return_value.start_io.assert_called_once()


if __name__ == "__main__":
    unittest.main()
