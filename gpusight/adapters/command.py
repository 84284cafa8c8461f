"""Adapter for command-line diagnostic tools (nvidia-smi, ps, iostat, sar, free)."""

from __future__ import annotations

import shutil
import subprocess
import time

from gpusight.adapters.base import SourceAdapter
from gpusight.errors import (
    ToolError,
    ToolExecutionFailedError,
    ToolTimeoutError,
    ToolUnavailableError,
)
from gpusight.models.constants import DEFAULT_TIMEOUT_SECONDS, MetricSource
from gpusight.models.source_models import RawSourceOutput
from gpusight.utils.logger import Logger


def run_command(argv: list[str], timeout_seconds: float) -> str:
    """Run a tool and return its stdout.

    Args:
        argv: Command and arguments; argv[0] is looked up on PATH.
        timeout_seconds: Seconds before the child is killed.

    Raises:
        ToolUnavailableError: If the binary is missing or not executable.
        ToolTimeoutError: If the tool runs past the timeout.
        ToolExecutionFailedError: If the tool exits non-zero.
    """
    tool = argv[0]
    path = shutil.which(tool)
    if path is None:
        raise ToolUnavailableError(tool, "not found on PATH")

    try:
        # subprocess.run kills the child when the timeout expires
        result = subprocess.run(
            [path, *argv[1:]],
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout_seconds,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolTimeoutError(tool, timeout_seconds) from e
    except PermissionError as e:
        raise ToolUnavailableError(tool, f"not executable: {e}") from e
    except OSError as e:
        raise ToolExecutionFailedError(tool, str(e)) from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip().splitlines()
        message = detail[0] if detail else "no output"
        raise ToolExecutionFailedError(
            tool, f"exit status {result.returncode}: {message}", result.returncode
        )
    return result.stdout


class CommandAdapter(SourceAdapter):
    """Runs a primary command plus optional named section commands.

    The primary command's failure fails the whole source. A section command
    failing only sets that section to ``None``; the parser then reports the
    source as Degraded. All commands share one deadline of
    ``timeout_seconds`` from the start of ``collect``.

    Example:
        >>> adapter = CommandAdapter(
        ...     MetricSource.HOST, "free-b", ["free", "-b"],
        ...     sections={"nproc": ["nproc"]},
        ... )
        >>> raw = adapter.collect()
    """

    def __init__(
        self,
        source: MetricSource,
        format_version: str,
        command: list[str],
        sections: dict[str, list[str]] | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(source, format_version, timeout_seconds)
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.sections = dict(sections or {})
        self._logger = Logger.for_source("adapters.command", self.name)

    def collect(self) -> RawSourceOutput:
        deadline = time.monotonic() + self.timeout_seconds
        self._logger.debug(f"running {' '.join(self.command)}")
        payload = run_command(self.command, self.timeout_seconds)

        sections: dict[str, str | None] = {}
        for section, argv in self.sections.items():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._logger.warning(f"no time left for section {section}")
                sections[section] = None
                continue
            try:
                sections[section] = run_command(argv, remaining)
            except ToolError as e:
                self._logger.warning(f"section {section} failed: {e}")
                sections[section] = None

        return self.output(payload, sections)
