"""Field parsers that turn raw tool output into typed metric records.

Importing this package registers every parser variant with ``PARSERS``.

Quick Start:
    from gpusight.parsers import PARSERS

    parser = PARSERS.get(raw.source, raw.format_version)
    result = parser.parse(raw)
"""

from gpusight.parsers import accelerator, disk, host, network, process  # noqa: F401
from gpusight.parsers.base import (
    AcceleratorParseResult,
    MetricParser,
    ParseResult,
    RowSkip,
)
from gpusight.parsers.registry import PARSERS, ParserCollisionError, ParserRegistry

__all__ = [
    "PARSERS",
    "AcceleratorParseResult",
    "MetricParser",
    "ParseResult",
    "ParserCollisionError",
    "ParserRegistry",
    "RowSkip",
]
