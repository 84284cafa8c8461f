"""Snapshot assembly: parse raw outputs, correlate pids, classify availability.

The assembler is purely structural. It never infers anything and never
synthesizes records for a failed source; a failure only changes that
source's ``SourceAvailability`` entry.

Usage:
    outcomes = [parse_source(raw) for raw in raw_outputs]
    snapshot = SnapshotAssembler(config.enabled_sources()).assemble(
        outcomes, timestamp=time.time()
    )
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from gpusight.errors import ParseFormatUnsupportedError
from gpusight.models.constants import CorrelationOutcome, MetricSource, ToolErrorKind
from gpusight.models.metric_models import (
    AcceleratorMetric,
    AcceleratorProcess,
    ComputeProcess,
    DiskMetric,
    HostMetric,
    NetworkMetric,
    OsProcess,
)
from gpusight.models.snapshot_models import Snapshot, SourceAvailability
from gpusight.models.source_models import RawSourceOutput, ToolFailure
from gpusight.parsers import PARSERS, AcceleratorParseResult, ParseResult
from gpusight.utils.logger import Logger

NO_SOURCES_REASON = "no sources enabled"
NO_OUTPUT_REASON = "no output collected"


@dataclass(frozen=True)
class SourceOutcome:
    """Result of parsing one source: records, or the failure that stopped it.

    Exactly one of ``result`` and ``failure`` is set.
    """

    source: MetricSource
    format_version: str | None
    result: ParseResult | None = None
    failure: ToolFailure | None = None

    @property
    def failed(self) -> bool:
        return self.failure is not None


def parse_source(raw: RawSourceOutput) -> SourceOutcome:
    """Run the parser registered for a raw output's (source, format version).

    Adapter failures pass through unchanged. A parser's
    ``ParseFormatUnsupportedError`` becomes a ``format_unsupported`` failure;
    any other exception propagates.
    """
    if raw.failure is not None:
        return SourceOutcome(raw.source, raw.format_version, failure=raw.failure)

    try:
        parser = PARSERS.get(raw.source, raw.format_version)
        result = parser.parse(raw)
    except ParseFormatUnsupportedError as e:
        return SourceOutcome(
            raw.source,
            raw.format_version,
            failure=ToolFailure(kind=ToolErrorKind.FORMAT_UNSUPPORTED, message=str(e)),
        )
    return SourceOutcome(raw.source, raw.format_version, result=result)


def correlate_processes(
    accelerator_processes: Iterable[AcceleratorProcess],
    os_processes: Iterable[OsProcess] | None,
) -> list[ComputeProcess]:
    """Join accelerator-side compute processes with the OS listing on pid.

    Args:
        accelerator_processes: Processes holding an accelerator context.
        os_processes: OS process listing, or None when it is unavailable.

    Returns:
        One ComputeProcess per (pid, device_index), sorted by that key.
        Repeated context entries for one key are merged with their memory
        summed. OS-only processes are not GPU compute processes and are
        dropped.
    """
    by_pid: dict[int, OsProcess] = {}
    for process in os_processes or ():
        # a pid listed twice keeps its first row
        by_pid.setdefault(process.pid, process)

    by_key: dict[tuple[int, int], AcceleratorProcess] = {}
    for gpu_process in accelerator_processes:
        existing = by_key.get(gpu_process.key)
        by_key[gpu_process.key] = (
            gpu_process if existing is None else existing.merged_with(gpu_process)
        )

    merged: list[ComputeProcess] = []
    for gpu_process in by_key.values():
        os_process = by_pid.get(gpu_process.pid)
        if os_process is None:
            merged.append(
                ComputeProcess(
                    pid=gpu_process.pid,
                    device_index=gpu_process.device_index,
                    accelerator_memory_used_bytes=gpu_process.used_memory_bytes,
                    correlation=CorrelationOutcome.ACCELERATOR_ONLY,
                    os_metrics_unavailable=True,
                )
            )
            continue
        merged.append(
            ComputeProcess(
                pid=gpu_process.pid,
                device_index=gpu_process.device_index,
                accelerator_memory_used_bytes=gpu_process.used_memory_bytes,
                cpu_percent=os_process.cpu_percent,
                rss_bytes=os_process.rss_bytes,
                user=os_process.user,
                command=os_process.command,
                elapsed=os_process.elapsed,
                correlation=CorrelationOutcome.BOTH,
                os_metrics_unavailable=False,
            )
        )

    merged.sort(key=lambda process: (process.pid, process.device_index))
    return merged


def classify(outcome: SourceOutcome) -> SourceAvailability:
    """Derive a source's availability from its parse outcome."""
    source = outcome.source
    if outcome.failure is not None:
        return SourceAvailability.unavailable(
            source,
            outcome.failure.message,
            error_kind=outcome.failure.kind,
            format_version=outcome.format_version,
        )

    result = outcome.result
    if result is None:
        return SourceAvailability.unavailable(
            source, NO_OUTPUT_REASON, format_version=outcome.format_version
        )

    records = len(result.records)
    skipped = result.skipped_rows
    if records == 0 and skipped > 0:
        return SourceAvailability.unavailable(
            source,
            f"all {skipped} rows malformed",
            error_kind=ToolErrorKind.FORMAT_UNSUPPORTED,
            skipped_rows=skipped,
            format_version=outcome.format_version,
        )
    if skipped > 0 or result.notes:
        reasons = []
        if skipped > 0:
            reasons.append(f"{skipped} malformed rows skipped")
        reasons.extend(result.notes)
        return SourceAvailability.degraded(
            source,
            "; ".join(reasons),
            skipped_rows=skipped,
            record_count=records,
            format_version=outcome.format_version,
        )
    return SourceAvailability.available(source, records, outcome.format_version)


class SnapshotAssembler:
    """Merges per-source parse outcomes into one Snapshot.

    Args:
        configured_sources: Sources enabled for this cycle. The snapshot
            carries exactly one availability entry for each of them.
    """

    def __init__(self, configured_sources: Iterable[MetricSource]) -> None:
        self.configured_sources = tuple(
            sorted(set(configured_sources), key=list(MetricSource).index)
        )
        self._logger = Logger.get("assembler")

    def assemble(self, outcomes: Iterable[SourceOutcome], timestamp: float) -> Snapshot:
        """Build the snapshot for one collection cycle.

        Args:
            outcomes: At most one outcome per source. Outcomes for sources that
                are not configured are ignored.
            timestamp: Unix time of collection, recorded as-is.

        Raises:
            ValueError: If two outcomes are given for the same source.
        """
        if not self.configured_sources:
            self._logger.error("No sources enabled; producing an empty snapshot")
            return Snapshot(
                timestamp=timestamp,
                availability={
                    source: SourceAvailability.unavailable(source, NO_SOURCES_REASON)
                    for source in MetricSource
                },
            )

        by_source: dict[MetricSource, SourceOutcome] = {}
        for outcome in outcomes:
            if outcome.source in by_source:
                raise ValueError(f"duplicate outcome for source {outcome.source.value}")
            if outcome.source not in self.configured_sources:
                self._logger.debug(
                    f"Ignoring outcome for unconfigured {outcome.source}"
                )
                continue
            by_source[outcome.source] = outcome

        availability: dict[MetricSource, SourceAvailability] = {}
        for source in self.configured_sources:
            outcome = by_source.get(source)
            if outcome is None:
                entry = SourceAvailability.unavailable(source, NO_OUTPUT_REASON)
            else:
                entry = classify(outcome)
            availability[source] = entry
            if entry.is_unavailable:
                self._logger.warning(f"{source} unavailable: {entry.reason}")
            elif entry.reason:
                self._logger.info(f"{source} degraded: {entry.reason}")

        def usable(source: MetricSource) -> ParseResult | None:
            entry = availability.get(source)
            if entry is None or entry.is_unavailable:
                return None
            return by_source[source].result

        accelerator_result = usable(MetricSource.ACCELERATOR)
        accelerators: list[AcceleratorMetric] = []
        processes: list[ComputeProcess] = []
        if accelerator_result is not None:
            accelerators = sorted(accelerator_result.records, key=lambda m: m.index)
            gpu_processes = (
                accelerator_result.processes
                if isinstance(accelerator_result, AcceleratorParseResult)
                else []
            )
            process_result = usable(MetricSource.PROCESS_COMPUTE)
            processes = correlate_processes(
                gpu_processes,
                process_result.records if process_result is not None else None,
            )

        disk_result = usable(MetricSource.DISK)
        disks: list[DiskMetric] = (
            sorted(disk_result.records, key=lambda d: d.name) if disk_result else []
        )
        network_result = usable(MetricSource.NETWORK)
        networks: list[NetworkMetric] = (
            sorted(network_result.records, key=lambda n: n.interface)
            if network_result
            else []
        )
        host_result = usable(MetricSource.HOST)
        host: HostMetric | None = (
            host_result.records[0] if host_result and host_result.records else None
        )

        return Snapshot(
            timestamp=timestamp,
            accelerators=tuple(accelerators),
            processes=tuple(processes),
            disks=tuple(disks),
            networks=tuple(networks),
            host=host,
            availability=availability,
        )
