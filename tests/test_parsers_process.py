"""Tests for the ps and psutil process listing parsers."""

import pytest

from gpusight.errors import ParseFormatUnsupportedError
from gpusight.models.constants import MetricSource
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.process import PsParser, PsutilProcessParser

PS_OUTPUT = """\
    PID USER     %CPU   RSS     ELAPSED COMMAND
      1 root      0.0 13044 10-02:11:09 /sbin/init splash
   4242 alice   312.5 8388608   01:02:03 python train.py --epochs 90 --batch 256
   4343 bob       0.1  2048      00:12 sleep
"""


def ps_raw(text):
    return RawSourceOutput(
        source=MetricSource.PROCESS_COMPUTE, format_version="ps", payload=text
    )


def test_ps_header_keyed_listing() -> None:
    """ps header keyed listing."""
    result = PsParser().parse(ps_raw(PS_OUTPUT))

    assert [p.pid for p in result.records] == [1, 4242, 4343]
    train = result.records[1]
    assert train.user == "alice"
    assert train.cpu_percent == 312.5
    assert train.rss_bytes == 8388608 * 1024
    assert train.elapsed == "01:02:03"
    assert train.command == "python train.py --epochs 90 --batch 256"
    assert result.skipped_rows == 0


def test_ps_headerless_listing_uses_default_columns() -> None:
    """ps headerless listing uses default columns."""
    text = "4242 alice 99.0 1024 05:00 python train.py\n"
    result = PsParser().parse(ps_raw(text))

    process = result.records[0]
    assert process.pid == 4242
    assert process.rss_bytes == 1024 * 1024
    assert process.command == "python train.py"


def test_ps_reordered_columns() -> None:
    """ps reordered columns."""
    text = "USER PID RSS %CPU\nalice 4242 10 1.5\n"
    result = PsParser().parse(ps_raw(text))

    process = result.records[0]
    assert process.pid == 4242
    assert process.cpu_percent == 1.5
    assert process.command is None


def test_ps_bad_pid_row_is_skipped() -> None:
    """ps bad pid row is skipped."""
    text = PS_OUTPUT + "   oops bob 0.0 1 00:01 ghost\n"
    result = PsParser().parse(ps_raw(text))

    assert len(result.records) == 3
    assert result.skipped_rows == 1


def test_ps_bad_optional_field_degrades_record() -> None:
    """ps bad optional field degrades record."""
    text = "PID USER %CPU RSS ELAPSED COMMAND\n4242 alice lots 10 00:01 python\n"
    result = PsParser().parse(ps_raw(text))

    assert result.records[0].cpu_percent is None
    assert result.notes == ["pid 4242: unparsable %CPU"]


def test_ps_header_without_pid_is_unsupported() -> None:
    """ps header without pid is unsupported."""
    with pytest.raises(ParseFormatUnsupportedError):
        PsParser().parse(ps_raw("USER COMMAND\nalice python\n"))


def test_ps_empty_output_has_no_records() -> None:
    """ps empty output has no records."""
    result = PsParser().parse(ps_raw(""))

    assert result.records == []
    assert result.skipped_rows == 0


def test_psutil_rows() -> None:
    """psutil process rows become records."""
    raw = RawSourceOutput(
        source=MetricSource.PROCESS_COMPUTE,
        format_version="psutil",
        payload=[
            {
                "pid": 4242,
                "username": "alice",
                "cpu_percent": 101.0,
                "rss_bytes": 4096,
                "elapsed_seconds": 3725.9,
                "cmdline": ["python", "train.py"],
            },
            {"pid": 7, "username": None, "cpu_percent": None, "cmdline": []},
            {"pid": None},
        ],
    )
    result = PsutilProcessParser().parse(raw)

    first, second = result.records
    assert first.elapsed == "01:02:05"
    assert first.command == "python train.py"
    assert second.cpu_percent is None
    assert second.command is None
    assert result.skipped_rows == 1
