"""Exception hierarchy for gpusight.

Tool errors are raised by adapters and converted into ``ToolFailure`` records
by the collector. Parse format errors are raised by parsers and converted by
``gpusight.assembler.parse_source``. Neither ever aborts a collection cycle.
"""

from gpusight.models.constants import MetricSource, ToolErrorKind


class GpusightError(Exception):
    """Base exception for gpusight errors."""

    pass


class ToolError(GpusightError):
    """A raw source adapter could not produce output."""

    kind: ToolErrorKind = ToolErrorKind.TOOL_EXECUTION_FAILED

    def __init__(self, tool: str, message: str, exit_code: int | None = None) -> None:
        self.tool = tool
        self.exit_code = exit_code
        super().__init__(f"{tool}: {message}")


class ToolUnavailableError(ToolError):
    """Binary or library missing, or not executable."""

    kind = ToolErrorKind.TOOL_UNAVAILABLE


class ToolTimeoutError(ToolError):
    """Tool did not finish before its timeout."""

    kind = ToolErrorKind.TOOL_TIMEOUT

    def __init__(self, tool: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(tool, f"timed out after {timeout_seconds:g}s")


class ToolExecutionFailedError(ToolError):
    """Tool ran but exited with a non-zero status."""

    kind = ToolErrorKind.TOOL_EXECUTION_FAILED


class ParseFormatUnsupportedError(GpusightError):
    """A whole raw output could not be interpreted by any known format."""

    def __init__(self, source: MetricSource, format_version: str, reason: str) -> None:
        self.source = source
        self.format_version = format_version
        self.reason = reason
        super().__init__(f"{source.value} output ({format_version}): {reason}")


class ConfigError(GpusightError):
    """Configuration file or values are invalid."""

    pass
