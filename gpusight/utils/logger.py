"""Logging for gpusight.

Every module logs through a child of the ``gpusight`` logger. The hierarchy
is configured once, by the CLI or by a test fixture; asking for a logger
before that raises ``LoggerNotConfiguredError`` instead of silently dropping
messages. Logs go to stderr by default so ``--format json`` output on stdout
stays machine-readable.

Usage:
    from gpusight.utils.logger import Logger

    Logger.configure_from_env()             # GPUSIGHT_LOG_LEVEL, else WARNING
    Logger.get("assembler").warning("disk unavailable: timed out after 10s")

    log = Logger.for_source("adapters.command", "host/free-b")
    log.warning("section nproc failed")     # "[host/free-b] section nproc failed"
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from enum import Enum
from pathlib import Path
from typing import Any, TextIO

from gpusight.errors import GpusightError

ROOT_LOGGER = "gpusight"
LOG_LEVEL_ENV = "GPUSIGHT_LOG_LEVEL"


class LogLevel(Enum):
    """Accepted log level names."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: str | LogLevel) -> LogLevel:
        """Resolve a level name case-insensitively.

        Raises:
            ValueError: If the name is not a known level.
        """
        if isinstance(value, LogLevel):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            names = ", ".join(level.value for level in cls)
            raise ValueError(
                f"Unknown log level {value!r} (expected one of {names})"
            ) from None

    @property
    def number(self) -> int:
        level: int = getattr(logging, self.value)
        return level


class LoggerNotConfiguredError(GpusightError):
    """Raised when a logger is requested before Logger.configure()."""

    def __init__(self) -> None:
        super().__init__(
            "Logger not configured. Call Logger.configure() at application startup."
        )


class SourceLogAdapter(logging.LoggerAdapter):
    """Prefixes each message with the source it concerns (``[disk/iostat-x]``)."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['source']}] {msg}", kwargs


class Logger:
    """Configure-once entry point to the ``gpusight`` logger hierarchy."""

    _configured: bool = False

    @classmethod
    def configure(
        cls,
        level: str | LogLevel = LogLevel.WARNING,
        output: str | Path | TextIO | None = None,
        timestamps: bool = True,
        include_location: bool = False,
    ) -> None:
        """Install a single handler on the ``gpusight`` logger.

        Reconfiguring replaces the previous handler.

        Args:
            level: Level name or LogLevel.
            output: None for stderr, a file path, or a writable stream.
            timestamps: Prefix records with the time.
            include_location: Add ``[file:line]`` to each record.

        Raises:
            ValueError: If the level is unknown or output is not writable.
        """
        resolved = LogLevel.parse(level)
        handler = cls._make_handler(output)
        handler.setLevel(resolved.number)
        handler.setFormatter(
            logging.Formatter(cls._format(timestamps, include_location))
        )

        root = logging.getLogger(ROOT_LOGGER)
        for existing in root.handlers[:]:
            root.removeHandler(existing)
            existing.close()
        root.addHandler(handler)
        root.setLevel(resolved.number)
        root.propagate = False
        cls._configured = True

    @classmethod
    def configure_from_env(cls, default: str = "WARNING", **kwargs: Any) -> None:
        """Configure with the level named by ``GPUSIGHT_LOG_LEVEL``."""
        from gpusight.utils.env import get_env

        cls.configure(level=get_env(LOG_LEVEL_ENV, default=default), **kwargs)

    @staticmethod
    def _make_handler(output: str | Path | TextIO | None) -> logging.Handler:
        if output is None:
            return logging.StreamHandler(sys.stderr)
        if isinstance(output, str | Path):
            return logging.FileHandler(str(output))
        if hasattr(output, "write"):
            return logging.StreamHandler(output)
        raise ValueError(f"Invalid log output: {type(output).__name__}")

    @staticmethod
    def _format(timestamps: bool, include_location: bool) -> str:
        parts = ["%(levelname)s", "[%(name)s]"]
        if timestamps:
            parts.insert(0, "%(asctime)s")
        if include_location:
            parts.append("[%(filename)s:%(lineno)d]")
        parts.append("%(message)s")
        return " ".join(parts)

    @classmethod
    def get(cls, name: str | None = None) -> logging.Logger:
        """Return ``gpusight.<name>``, or the ``gpusight`` logger itself.

        Raises:
            LoggerNotConfiguredError: If configure() hasn't been called.
        """
        if not cls._configured:
            raise LoggerNotConfiguredError()
        return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)

    @classmethod
    def for_source(cls, name: str, source: str) -> SourceLogAdapter:
        """Return a logger whose messages are tagged with a source label."""
        return SourceLogAdapter(cls.get(name), {"source": source})

    @classmethod
    def set_level(cls, level: str | LogLevel) -> None:
        """Change the level of the configured logger and its handler.

        Raises:
            LoggerNotConfiguredError: If configure() hasn't been called.
        """
        if not cls._configured:
            raise LoggerNotConfiguredError()
        number = LogLevel.parse(level).number
        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(number)
        for handler in root.handlers:
            handler.setLevel(number)

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def reset(cls) -> None:
        """Drop the handler and return to the unconfigured state."""
        root = logging.getLogger(ROOT_LOGGER)
        for existing in root.handlers[:]:
            root.removeHandler(existing)
            existing.close()
        cls._configured = False
