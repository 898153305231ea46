"""taskscope LSP server main entry point."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import unquote

from lsprotocol.types import (
    DidChangeTextDocumentParams,
    DidChangeWorkspaceFoldersParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    ExecuteCommandOptions,
    InitializeParams,
    InitializeResult,
    LogMessageParams,
    MessageType,
    ServerCapabilities,
    ShowMessageParams,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer
from rich.errors import MarkupError
from rich.text import Text

import taskscope
from taskscope.config import ConfigError, Settings, get_user_tasks_path, load_settings
from taskscope.editor import Point
from taskscope.languages import LanguageRegistry
from taskscope.logging import Logger, LogLevel
from taskscope.scheduler import SpawnRequested
from taskscope.session import TaskSession
from taskscope.tasks import SpawnInTerminal
from taskscope.working_dir import AmbiguousRootError
from taskscope.workspace import TextBuffer, Workspace

__all__ = [
    "ClientLogger",
    "TaskscopeLanguageServer",
    "create_server",
    "spawn_payload",
    "main",
    "SPAWN_NOTIFICATION",
    "COMMANDS",
]

log = logging.getLogger(__name__)

# Sent to the client for every spawn request; the client runs the task
SPAWN_NOTIFICATION = "taskscope/spawn"

COMMANDS = [
    "taskscope.spawn",
    "taskscope.oneshot",
    "taskscope.rerun",
    "taskscope.listTasks",
    "taskscope.context",
]


def _uri_to_path(uri: str) -> Optional[Path]:
    """Convert a file:// URI to a filesystem path.

    Returns:
        The path, or None if the URI is not a file:// URI.
    """
    if uri.startswith("file://"):
        return Path(unquote(uri[len("file://"):]))
    return None


def _plain(value: Any) -> str:
    if not isinstance(value, str):
        return str(value)
    try:
        return Text.from_markup(value).plain
    except MarkupError:
        return value


class ClientLogger(Logger):
    """Forwards log messages to the client with window/logMessage.

    Rich markup is stripped; the client shows plain text.
    """

    _MESSAGE_TYPES = {
        LogLevel.FATAL: MessageType.Error,
        LogLevel.ERROR: MessageType.Error,
        LogLevel.WARN: MessageType.Warning,
        LogLevel.INFO: MessageType.Info,
        LogLevel.DEBUG: MessageType.Log,
        LogLevel.TRACE: MessageType.Log,
    }

    def __init__(self, server: "TaskscopeLanguageServer", level: LogLevel = LogLevel.INFO) -> None:
        self._server = server
        self._levels = [level]

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        if self._levels[-1].value < level.value:
            return
        message = " ".join(_plain(arg) for arg in args)
        self._server.send_notification(
            "window/logMessage",
            LogMessageParams(type=self._MESSAGE_TYPES[level], message=message),
        )

    def push_level(self, level: LogLevel) -> None:
        self._levels.append(level)

    def pop_level(self) -> LogLevel:
        if len(self._levels) <= 1:
            raise RuntimeError("Cannot pop the base log level")
        return self._levels.pop()


def spawn_payload(spawn: SpawnInTerminal) -> dict[str, Any]:
    """JSON body of a taskscope/spawn notification."""
    return {
        "id": spawn.id,
        "label": spawn.label,
        "command": spawn.command,
        "args": list(spawn.args),
        "commandLine": spawn.command_line(),
        "cwd": str(spawn.cwd) if spawn.cwd is not None else None,
        "env": dict(spawn.env),
        "useNewTerminal": spawn.use_new_terminal,
        "allowConcurrentRuns": spawn.allow_concurrent_runs,
    }


class TaskscopeLanguageServer(LanguageServer):
    """Language server that resolves task contexts for the client's editor.

    The client keeps the server informed about open documents and workspace
    folders, and passes the active document and selection with each command.
    Spawn requests go back to the client as notifications; the server never
    runs tasks itself.
    """

    def __init__(
        self,
        name: str,
        version: str,
        settings: Optional[Settings] = None,
        user_tasks_path: Optional[Path] = None,
    ):
        super().__init__(name, version)
        settings = settings if settings is not None else Settings()
        self.languages = LanguageRegistry.with_builtins()
        self.project = Workspace()
        # Open documents by URI
        self.buffers: dict[str, TextBuffer] = {}
        self.task_logger = ClientLogger(self, settings.log_level)
        self.session = TaskSession.create(self.project, settings, self.task_logger, user_tasks_path)
        self.session.scheduler.subscribe(self._on_spawn)
        self.spawned: list[SpawnInTerminal] = []
        # Store handler references for testing
        self.handlers: dict[str, Callable] = {}

    def send_notification(self, method: str, params: Any) -> None:
        self.protocol.notify(method, params)

    def show_error(self, message: str) -> None:
        self.send_notification("window/showMessage", ShowMessageParams(type=MessageType.Error, message=message))

    def _on_spawn(self, event: SpawnRequested) -> None:
        self.spawned.append(event.spawn)
        self.send_notification(SPAWN_NOTIFICATION, spawn_payload(event.spawn))

    def add_folder(self, uri: str) -> None:
        path = _uri_to_path(uri)
        if path is None:
            self.task_logger.warn(f"Ignoring non-file workspace folder {uri}")
            return
        if any(root.path == path for root in self.project.project_roots()):
            return
        self.project.add_root(path)

    def remove_folder(self, uri: str) -> None:
        path = _uri_to_path(uri)
        for root in self.project.project_roots():
            if root.path == path:
                self.project.remove_root(root.id)

    def focus(self, argument: dict[str, Any]) -> None:
        """Activate the document and selection named in a command argument.

        Recognized keys: ``uri``, ``selection`` (an LSP range) or ``position``,
        and ``activeEntry`` (a URI). Positions count characters, not UTF-16
        code units.
        """
        uri = argument.get("uri")
        if uri is not None:
            buffer = self.buffers.get(uri)
            if buffer is None:
                self.task_logger.warn(f"Document {uri} is not open, using the active document")
            else:
                self.project.activate_item(buffer)
                self._select(buffer, argument)

        entry = argument.get("activeEntry")
        if entry is not None:
            self.project.set_active_entry(_uri_to_path(entry))

    def _select(self, buffer: TextBuffer, argument: dict[str, Any]) -> None:
        selection = argument.get("selection")
        if selection is not None:
            start, end = selection["start"], selection["end"]
        elif argument.get("position") is not None:
            start = end = argument["position"]
        else:
            return
        try:
            buffer.select(
                buffer.offset_for_point(Point(start["line"], start["character"])),
                buffer.offset_for_point(Point(end["line"], end["character"])),
            )
        except ValueError as e:
            self.task_logger.warn(f"Ignoring selection outside {buffer.path}: {e}")


def _command_argument(args: tuple) -> dict[str, Any]:
    """First command argument as a dict.

    Depending on the pygls version the arguments arrive either unpacked or
    as one list.
    """
    if len(args) == 1 and isinstance(args[0], list):
        args = tuple(args[0])
    if args and isinstance(args[0], dict):
        return args[0]
    return {}


def create_server(settings: Optional[Settings] = None, user_tasks_path: Optional[Path] = None) -> TaskscopeLanguageServer:
    """Create and configure the taskscope LSP server."""
    server = TaskscopeLanguageServer("taskscope-lsp", taskscope.__version__, settings, user_tasks_path)

    @server.feature("initialize")
    def initialize(params: InitializeParams) -> InitializeResult:
        """Handle LSP initialize request.

        Every workspace folder becomes a project root; a client without
        folder support contributes its root URI instead.
        """
        if params.workspace_folders:
            for folder in params.workspace_folders:
                server.add_folder(folder.uri)
        elif params.root_uri:
            server.add_folder(params.root_uri)
        server.session.sync_worktree_sources()

        return InitializeResult(
            capabilities=ServerCapabilities(
                text_document_sync=TextDocumentSyncKind.Full,
                execute_command_provider=ExecuteCommandOptions(commands=list(COMMANDS)),
            )
        )

    @server.feature("shutdown")
    def shutdown() -> None:
        """Handle LSP shutdown request."""
        pass

    @server.feature("exit")
    def exit() -> None:
        """Handle LSP exit notification."""
        pass

    @server.feature("textDocument/didOpen")
    def did_open(params: DidOpenTextDocumentParams) -> None:
        """Open the document as the active item, with the cursor at its start."""
        uri = params.text_document.uri
        path = _uri_to_path(uri)
        language = server.languages.language_for_path(path) if path is not None else None
        buffer = TextBuffer(params.text_document.text, path=path, language=language, is_local=path is not None)
        server.buffers[uri] = buffer
        server.project.add_item(buffer)

    @server.feature("textDocument/didChange")
    def did_change(params: DidChangeTextDocumentParams) -> None:
        """Replace the document text (full sync mode)."""
        buffer = server.buffers.get(params.text_document.uri)
        if buffer is not None and params.content_changes:
            buffer.set_text(params.content_changes[0].text)

    @server.feature("textDocument/didClose")
    def did_close(params: DidCloseTextDocumentParams) -> None:
        buffer = server.buffers.pop(params.text_document.uri, None)
        if buffer is not None:
            server.project.close_item(buffer)

    @server.feature("workspace/didChangeWorkspaceFolders")
    def did_change_workspace_folders(params: DidChangeWorkspaceFoldersParams) -> None:
        for folder in params.event.removed:
            server.remove_folder(folder.uri)
        for folder in params.event.added:
            server.add_folder(folder.uri)
        server.session.sync_worktree_sources()

    @server.command("taskscope.spawn")
    def spawn(*args: Any) -> dict[str, Any]:
        """Spawn the task called ``name`` for the focused document and selection."""
        argument = _command_argument(args)
        name = argument.get("name")
        if not name:
            server.show_error("taskscope.spawn needs a task name")
            return {"found": False, "spawned": False}
        server.focus(argument)
        before = len(server.spawned)
        try:
            found = server.session.spawn_task_with_name(name)
        except AmbiguousRootError as e:
            server.show_error(str(e))
            return {"found": True, "spawned": False, "error": str(e)}
        if not found:
            server.show_error(f"Task not found: {name}")
        return {"found": found, "spawned": len(server.spawned) > before}

    @server.command("taskscope.oneshot")
    def oneshot(*args: Any) -> dict[str, Any]:
        """Spawn the ad-hoc shell ``command`` with the current context."""
        argument = _command_argument(args)
        command = argument.get("command", "")
        server.focus(argument)
        before = len(server.spawned)
        try:
            task = server.session.spawn_oneshot(command)
        except AmbiguousRootError as e:
            server.show_error(str(e))
            return {"spawned": False, "error": str(e)}
        return {"taskId": task.id, "spawned": len(server.spawned) > before}

    @server.command("taskscope.rerun")
    def rerun(*args: Any) -> dict[str, Any]:
        """Spawn the last scheduled task again.

        ``reevaluate`` and ``omitHistory`` default to the settings.
        """
        argument = _command_argument(args)
        server.focus(argument)
        before = len(server.spawned)
        try:
            had_task = server.session.rerun(argument.get("reevaluate"), argument.get("omitHistory"))
        except AmbiguousRootError as e:
            server.show_error(str(e))
            return {"rerun": True, "spawned": False, "error": str(e)}
        return {"rerun": had_task, "spawned": len(server.spawned) > before}

    @server.command("taskscope.listTasks")
    def list_tasks(*args: Any) -> list[dict[str, Any]]:
        """Tasks for the focused document, in listing order."""
        argument = _command_argument(args)
        server.focus(argument)
        return [
            {"id": task.id, "name": task.name(), "source": kind.label()}
            for kind, task in server.session.list_tasks(bool(argument.get("usedOnly", False)))
        ]

    @server.command("taskscope.context")
    def context(*args: Any) -> Optional[dict[str, Any]]:
        """The context a task would be prepared with right now."""
        argument = _command_argument(args)
        server.focus(argument)
        try:
            resolved = server.session.task_context()
        except AmbiguousRootError as e:
            server.show_error(str(e))
            return None
        return resolved.to_dict()

    # Store handler references for testing
    server.handlers["initialize"] = initialize
    server.handlers["shutdown"] = shutdown
    server.handlers["exit"] = exit
    server.handlers["textDocument/didOpen"] = did_open
    server.handlers["textDocument/didChange"] = did_change
    server.handlers["textDocument/didClose"] = did_close
    server.handlers["workspace/didChangeWorkspaceFolders"] = did_change_workspace_folders
    server.handlers["taskscope.spawn"] = spawn
    server.handlers["taskscope.oneshot"] = oneshot
    server.handlers["taskscope.rerun"] = rerun
    server.handlers["taskscope.listTasks"] = list_tasks
    server.handlers["taskscope.context"] = context

    return server


def main() -> None:
    """Start the taskscope LSP server."""
    try:
        settings = load_settings(Path.cwd())
    except ConfigError as e:
        log.error("%s; starting with default settings", e)
        settings = Settings()
    server = create_server(settings, get_user_tasks_path())
    server.start_io()


if __name__ == "__main__":
    main()
