"""OS process listing parsers: ``ps`` text and psutil rows."""

from __future__ import annotations

from gpusight.models.constants import FormatVersion, MetricSource
from gpusight.models.metric_models import OsProcess
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.base import MetricParser, ParseResult, optional_field
from gpusight.parsers.registry import register_parser
from gpusight.parsers.values import (
    FieldValueError,
    format_elapsed,
    parse_bytes,
    parse_float,
    parse_key,
    parse_text,
)

PS_COLUMN_ALIASES: dict[str, str] = {
    "PID": "pid",
    "USER": "user",
    "RUSER": "user",
    "%CPU": "cpu_percent",
    "RSS": "rss",
    "RSZ": "rss",
    "ELAPSED": "elapsed",
    "COMMAND": "command",
    "CMD": "command",
    "ARGS": "command",
}

# Column order of ``ps -eo pid=,user=,pcpu=,rss=,etime=,args=`` (no header)
PS_DEFAULT_COLUMNS: tuple[str, ...] = (
    "pid",
    "user",
    "cpu_percent",
    "rss",
    "elapsed",
    "command",
)


@register_parser
class PsParser(MetricParser):
    """Parser for ``ps -eo pid,user,pcpu,rss,etime,args`` style output.

    The header decides column order; a headerless listing is read in
    ``PS_DEFAULT_COLUMNS`` order. A trailing command column keeps its spaces.
    RSS is reported by ps in KiB.
    """

    source = MetricSource.PROCESS_COMPUTE
    format_version = FormatVersion.PS.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[OsProcess]:
        text = self.require_text(raw)
        result: ParseResult[OsProcess] = ParseResult()
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            return result

        first = lines[0].split()
        if first[0].isdigit():
            columns = list(PS_DEFAULT_COLUMNS)
            body = lines
        else:
            columns = [PS_COLUMN_ALIASES.get(token.upper(), token) for token in first]
            body = lines[1:]
            if "pid" not in columns:
                raise self.unsupported("header has no PID column")

        command_last = columns[-1] == "command"
        for row_number, line in enumerate(body, start=1):
            if command_last:
                tokens = line.split(None, len(columns) - 1)
                if len(tokens) == len(columns) - 1:
                    tokens.append("")
            else:
                tokens = line.split()
            if len(tokens) < len(columns):
                result.skip(
                    row_number, f"expected {len(columns)} columns, got {len(tokens)}"
                )
                continue

            values = dict(zip(columns, tokens, strict=False))
            try:
                pid = parse_key(values.get("pid"))
            except FieldValueError as e:
                result.skip(row_number, f"pid: {e}")
                continue

            degraded: list[str] = []
            record = self.build(
                OsProcess,
                result,
                row_number,
                pid=pid,
                user=parse_text(values.get("user")),
                cpu_percent=optional_field(
                    parse_float, values.get("cpu_percent"), degraded, "%CPU"
                ),
                rss_bytes=optional_field(
                    lambda v: parse_bytes(v, "KiB"), values.get("rss"), degraded, "RSS"
                ),
                elapsed=parse_text(values.get("elapsed")),
                command=parse_text(values.get("command")) or None,
            )
            if record is None:
                continue
            if degraded:
                result.notes.append(f"pid {pid}: unparsable {', '.join(degraded)}")
            result.records.append(record)

        return result


@register_parser
class PsutilProcessParser(MetricParser):
    """Parser for rows from ``gpusight.adapters.psutil_sources.PsutilProcessAdapter``.

    Row keys: pid, username, cpu_percent, rss_bytes, elapsed_seconds, cmdline.
    """

    source = MetricSource.PROCESS_COMPUTE
    format_version = FormatVersion.PSUTIL.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[OsProcess]:
        rows = self.require_rows(raw.payload)
        result: ParseResult[OsProcess] = ParseResult()

        for row_number, row in enumerate(rows):
            if not isinstance(row, dict):
                result.skip(row_number, "row is not a mapping")
                continue
            try:
                pid = parse_key(row.get("pid"))
            except FieldValueError as e:
                result.skip(row_number, f"pid: {e}")
                continue

            cmdline = row.get("cmdline")
            command = " ".join(cmdline) if isinstance(cmdline, list) else cmdline
            degraded: list[str] = []
            record = self.build(
                OsProcess,
                result,
                row_number,
                pid=pid,
                user=parse_text(row.get("username")),
                cpu_percent=optional_field(
                    parse_float, row.get("cpu_percent"), degraded, "cpu_percent"
                ),
                rss_bytes=optional_field(
                    parse_bytes, row.get("rss_bytes"), degraded, "rss_bytes"
                ),
                elapsed=format_elapsed(
                    optional_field(
                        parse_float, row.get("elapsed_seconds"), degraded, "elapsed"
                    )
                ),
                command=parse_text(command) or None,
            )
            if record is None:
                continue
            if degraded:
                result.notes.append(f"pid {pid}: unparsable {', '.join(degraded)}")
            result.records.append(record)

        return result
