"""Logging infrastructure for taskscope.

Every component that reports diagnostics receives a Logger by injection;
nothing in the core writes to a global console.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod


class LogLevel(enum.Enum):
    """Log verbosity levels for taskscope diagnostic messages.

    Lower numeric values represent higher severity / less verbosity.
    """
    FATAL = 0  # Only unrecoverable errors
    ERROR = 1  # Ambiguous working directory, malformed task files
    WARN = 2   # Errors plus skipped sources and ignored settings
    INFO = 3   # Warnings plus spawned tasks (default)
    DEBUG = 4  # Info plus resolved variables, failed prepares, degraded contexts
    TRACE = 5  # Debug plus history and source bookkeeping

    @classmethod
    def parse(cls, name: str) -> "LogLevel":
        """Look up a level by case-insensitive name.

        Raises:
            ValueError: If the name is not a known level
        """
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = ", ".join(level.name.lower() for level in cls)
            raise ValueError(f"Unknown log level '{name}' (expected one of: {valid})") from None


class Logger(ABC):
    """Leveled logger interface."""

    @abstractmethod
    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        ...

    @abstractmethod
    def push_level(self, level: LogLevel) -> None:
        ...

    @abstractmethod
    def pop_level(self) -> LogLevel:
        ...

    def fatal(self, *args, **kwargs) -> None:
        self.log(LogLevel.FATAL, *args, **kwargs)

    def error(self, *args, **kwargs) -> None:
        self.log(LogLevel.ERROR, *args, **kwargs)

    def warn(self, *args, **kwargs) -> None:
        self.log(LogLevel.WARN, *args, **kwargs)

    def info(self, *args, **kwargs) -> None:
        self.log(LogLevel.INFO, *args, **kwargs)

    def debug(self, *args, **kwargs) -> None:
        self.log(LogLevel.DEBUG, *args, **kwargs)

    def trace(self, *args, **kwargs) -> None:
        self.log(LogLevel.TRACE, *args, **kwargs)


class NullLogger(Logger):
    """Logger that discards everything. Used when no logger is injected."""

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        pass

    def push_level(self, level: LogLevel) -> None:
        pass

    def pop_level(self) -> LogLevel:
        return LogLevel.INFO


null_logger = NullLogger()
