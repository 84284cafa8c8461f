"""Abstract base class for raw source adapters.

An adapter runs one diagnostic tool (or library sampler) and hands back its
raw output tagged with the format version the parser layer should use.

- Tool missing: raise ``ToolUnavailableError``
- Tool too slow: raise ``ToolTimeoutError``
- Tool failed: raise ``ToolExecutionFailedError``

The collector turns these into ``ToolFailure`` records, so an adapter never
needs to build a failed ``RawSourceOutput`` itself.
"""

from abc import ABC, abstractmethod

from gpusight.models.constants import DEFAULT_TIMEOUT_SECONDS, MetricSource
from gpusight.models.source_models import RawSourceOutput


class SourceAdapter(ABC):
    """Produces the raw output of one metric source."""

    def __init__(
        self,
        source: MetricSource,
        format_version: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.source = source
        self.format_version = format_version
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        """Short label for logs (e.g. 'disk/iostat-x')."""
        return f"{self.source.value}/{self.format_version}"

    @abstractmethod
    def collect(self) -> RawSourceOutput:
        """Run the tool and return its raw output.

        Raises:
            ToolError: If no output could be produced.
        """
        pass

    def output(self, payload, sections=None) -> RawSourceOutput:
        """Wrap a payload in a RawSourceOutput for this adapter."""
        return RawSourceOutput(
            source=self.source,
            format_version=self.format_version,
            payload=payload,
            sections=sections or {},
        )
