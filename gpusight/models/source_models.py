"""Pydantic models for raw adapter output handed to the parser layer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gpusight.models.constants import MetricSource, ToolErrorKind


class ToolFailure(BaseModel):
    """Hard failure of a raw source (tool missing, timeout, non-zero exit)."""

    model_config = ConfigDict(frozen=True)

    kind: ToolErrorKind
    message: str
    exit_code: int | None = None


class RawSourceOutput(BaseModel):
    """Captured output of one source, or the failure that prevented it.

    ``payload`` is the primary output: text from a command-line tool, or
    structured rows from a library sampler. ``sections`` holds named
    secondary outputs (e.g. the accelerator's compute process listing); a
    section whose sub-command failed is present with value ``None``.
    """

    model_config = ConfigDict(frozen=True)

    source: MetricSource
    format_version: str
    payload: Any = None
    sections: dict[str, Any] = Field(default_factory=dict)
    failure: ToolFailure | None = None

    @classmethod
    def failed(
        cls,
        source: MetricSource,
        format_version: str,
        kind: ToolErrorKind,
        message: str,
        exit_code: int | None = None,
    ) -> RawSourceOutput:
        """Build an output that carries only a failure."""
        return cls(
            source=source,
            format_version=format_version,
            failure=ToolFailure(kind=kind, message=message, exit_code=exit_code),
        )
