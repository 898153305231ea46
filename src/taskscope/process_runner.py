"""Reference executor for spawn requests.

taskscope itself only prepares SpawnInTerminal descriptors. Hosts that run
tasks in-process (the CLI) subscribe a SpawnExecutor to the scheduler; it
runs each descriptor through the shell with a ProcessRunner.
"""

from __future__ import annotations

import os
import subprocess
import sys
from abc import ABC, abstractmethod
from enum import Enum
from subprocess import Popen
from threading import Thread
from typing import Any, Optional

from taskscope.logging import Logger
from taskscope.scheduler import SpawnRequested
from taskscope.tasks import SpawnInTerminal

__all__ = [
    "ProcessRunner",
    "PassthroughProcessRunner",
    "SilentProcessRunner",
    "StdoutOnlyProcessRunner",
    "StderrOnlyProcessRunner",
    "TaskOutputTypes",
    "make_process_runner",
    "stream_output",
    "SpawnExecutor",
]


class TaskOutputTypes(Enum):
    """
    Which of a spawned task's output streams reach the terminal.
    """

    ALL = "all"
    NONE = "none"
    OUT = "out"
    ERR = "err"


class ProcessRunner(ABC):
    """
    Runs one subprocess. The signature mirrors subprocess.run().
    """

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    @abstractmethod
    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        """
        Raises:
            subprocess.CalledProcessError: If check=True and process exits non-zero
            subprocess.TimeoutExpired: If timeout is exceeded
        """
        ...


class PassthroughProcessRunner(ProcessRunner):
    """
    Delegates directly to subprocess.run.
    """

    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        return subprocess.run(*args, **kwargs)


class SilentProcessRunner(ProcessRunner):
    """
    Discards both output streams regardless of what the caller asks for.
    """

    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        kwargs["stdout"] = subprocess.DEVNULL
        kwargs["stderr"] = subprocess.DEVNULL
        return subprocess.run(*args, **kwargs)


def stream_output(pipe: Any, target: Any) -> None:
    """
    Copy lines from a pipe to a target stream until the pipe closes.

    A pipe closed underneath us (process killed) ends the copy quietly.
    """
    if pipe:
        try:
            for line in pipe:
                target.write(line)
                target.flush()
        except (OSError, ValueError):
            pass


class _StreamingProcessRunner(ProcessRunner):
    """
    Streams one output stream to the terminal and discards the other.
    """

    _streams_stdout: bool = True

    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        check = kwargs.pop("check", False)
        timeout = kwargs.pop("timeout", None)
        # Not supported by Popen
        kwargs.pop("capture_output", None)

        kwargs["stdout"] = subprocess.PIPE if self._streams_stdout else subprocess.DEVNULL
        kwargs["stderr"] = subprocess.DEVNULL if self._streams_stdout else subprocess.PIPE
        kwargs["text"] = True
        kwargs["bufsize"] = 1

        process = subprocess.Popen(*args, **kwargs)
        pipe = process.stdout if self._streams_stdout else process.stderr
        target = sys.stdout if self._streams_stdout else sys.stderr
        thread = Thread(
            target=stream_output,
            args=(pipe, target),
            name="stdout-streamer" if self._streams_stdout else "stderr-streamer",
        )

        return_code = self._wait(process, pipe, thread, timeout)
        command = args[0] if args else kwargs.get("args", [])
        if check and return_code != 0:
            raise subprocess.CalledProcessError(return_code, command)
        # Output was streamed, nothing captured
        return subprocess.CompletedProcess(args=command, returncode=return_code, stdout=None, stderr=None)

    def _wait(self, process: Popen[str], pipe: Any, thread: Thread, timeout: Optional[float]) -> int:
        join_timeout_secs = 1.0
        thread.start()
        try:
            return_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            raise
        finally:
            if pipe:
                pipe.close()
            thread.join(timeout=join_timeout_secs)

        if thread.is_alive():
            self._logger.warn(f"Stream thread did not complete within timeout of {join_timeout_secs} seconds")
        return return_code


class StdoutOnlyProcessRunner(_StreamingProcessRunner):
    _streams_stdout = True


class StderrOnlyProcessRunner(_StreamingProcessRunner):
    _streams_stdout = False


def make_process_runner(output_type: TaskOutputTypes, logger: Logger) -> ProcessRunner:
    """
    Factory function for creating ProcessRunner instances.

    Raises:
        ValueError: If an invalid TaskOutputTypes value is provided
    """
    match output_type:
        case TaskOutputTypes.ALL:
            return PassthroughProcessRunner(logger)
        case TaskOutputTypes.NONE:
            return SilentProcessRunner(logger)
        case TaskOutputTypes.OUT:
            return StdoutOnlyProcessRunner(logger)
        case TaskOutputTypes.ERR:
            return StderrOnlyProcessRunner(logger)
        case _:
            raise ValueError(f"Invalid TaskOutputTypes: {output_type}")


class SpawnExecutor:
    """
    Spawn listener that runs each requested task to completion.

    Exit codes are kept per task label in `results`, most recent last.
    """

    def __init__(self, runner: ProcessRunner, logger: Logger) -> None:
        self._runner = runner
        self._logger = logger
        self.results: list[tuple[str, int]] = []

    def __call__(self, event: SpawnRequested) -> None:
        self.run(event.spawn)

    def run(self, spawn: SpawnInTerminal) -> int:
        command_line = spawn.command_line()
        self._logger.info(f"[bold cyan]>[/bold cyan] {command_line}")
        if spawn.cwd is not None:
            self._logger.debug(f"  in {spawn.cwd}")

        env = dict(os.environ)
        env.update(spawn.env)
        try:
            result = self._runner.run(
                command_line,
                shell=True,
                cwd=str(spawn.cwd) if spawn.cwd is not None else None,
                env=env,
            )
            return_code = result.returncode
        except OSError as e:
            # Missing cwd or shell; report like a failed command
            self._logger.error(f"[red]Failed to start '{spawn.label}': {e}[/red]")
            return_code = 127

        self.results.append((spawn.label, return_code))
        return return_code

    @property
    def last_return_code(self) -> Optional[int]:
        return self.results[-1][1] if self.results else None
