from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from rich.console import Console

from taskscope.logging import Logger, LogLevel


class ConsoleLogger(Logger):
    """Console-based logger implementation using Rich for formatting.

    Messages less severe than the active level are dropped. The active level
    lives on a stack so a command can raise verbosity temporarily (for
    example while printing a resolved context) and restore it afterwards.
    """

    def __init__(self, console: Console, level: LogLevel = LogLevel.INFO) -> None:
        """Initialize the console logger.

        Args:
            console: Rich Console instance to use for output
            level: Initial log level (default: INFO)
        """
        self._console = console
        self._levels = [level]

    @property
    def level(self) -> LogLevel:
        return self._levels[-1]

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        """Print through the Rich console if `level` passes the active threshold.

        Args:
            level: The severity level of this message (default: INFO)
            *args: Positional arguments passed to Rich Console.print()
            **kwargs: Keyword arguments passed to Rich Console.print()
        """
        if self._levels[-1].value >= level.value:
            self._console.print(*args, **kwargs)

    def push_level(self, level: LogLevel) -> None:
        self._levels.append(level)

    def pop_level(self) -> LogLevel:
        """Pop the current log level and return to the previous level.

        Raises:
            RuntimeError: If attempting to pop the base (initial) log level
        """
        if len(self._levels) <= 1:
            raise RuntimeError("Cannot pop the base log level")
        return self._levels.pop()

    @contextmanager
    def at_level(self, level: LogLevel) -> Iterator["ConsoleLogger"]:
        """Temporarily switch to `level` for the duration of a with-block."""
        self.push_level(level)
        try:
            yield self
        finally:
            self.pop_level()
