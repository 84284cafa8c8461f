"""Registry of parser variants keyed by (source, format version).

Usage:
    from gpusight.parsers.registry import PARSERS

    parser = PARSERS.get(MetricSource.DISK, "iostat-x")
    result = parser.parse(raw)
"""

from __future__ import annotations

from gpusight.errors import GpusightError, ParseFormatUnsupportedError
from gpusight.models.constants import MetricSource
from gpusight.parsers.base import MetricParser


class ParserCollisionError(GpusightError):
    """Raised when two parsers claim the same (source, format version)."""

    def __init__(
        self, key: tuple[MetricSource, str], first: type, second: type
    ) -> None:
        self.key = key
        super().__init__(
            f"Parser collision for {key[0].value}/{key[1]}: "
            f"{first.__qualname__} and {second.__qualname__}"
        )


class ParserRegistry:
    """Maps (source, format version) to a parser class."""

    def __init__(self) -> None:
        self._parsers: dict[tuple[MetricSource, str], type[MetricParser]] = {}

    def register(self, parser_cls: type[MetricParser]) -> type[MetricParser]:
        """Register a parser class; usable as a class decorator.

        Raises:
            ParserCollisionError: If another class owns the same key.
        """
        key = (parser_cls.source, parser_cls.format_version)
        existing = self._parsers.get(key)
        if existing is not None and existing is not parser_cls:
            raise ParserCollisionError(key, existing, parser_cls)
        self._parsers[key] = parser_cls
        return parser_cls

    def get(self, source: MetricSource, format_version: str) -> MetricParser:
        """Instantiate the parser for a source and format version.

        Raises:
            ParseFormatUnsupportedError: If no parser handles the pair.
        """
        parser_cls = self._parsers.get((source, format_version))
        if parser_cls is None:
            known = ", ".join(self.formats_for(source)) or "none"
            raise ParseFormatUnsupportedError(
                source, format_version, f"unknown format version (known: {known})"
            )
        return parser_cls()

    def formats_for(self, source: MetricSource) -> list[str]:
        """Registered format versions for a source, sorted."""
        return sorted(fmt for src, fmt in self._parsers if src == source)


PARSERS = ParserRegistry()
register_parser = PARSERS.register
