"""One collection cycle: collect, parse, assemble, infer."""

from __future__ import annotations

import time
from collections.abc import Sequence

from gpusight.adapters.base import SourceAdapter
from gpusight.adapters.factory import build_adapters
from gpusight.assembler import SnapshotAssembler, parse_source
from gpusight.collector import collect_all
from gpusight.inference.engine import InferenceEngine
from gpusight.models.config_models import MonitorConfig
from gpusight.models.finding_models import Finding
from gpusight.models.snapshot_models import Snapshot
from gpusight.utils.logger import Logger


def run_cycle(
    config: MonitorConfig,
    adapters: Sequence[SourceAdapter] | None = None,
    timestamp: float | None = None,
) -> tuple[Snapshot, tuple[Finding, ...]]:
    """Run one bounded collection cycle.

    Args:
        config: Sources, rules and timeouts for the cycle.
        adapters: Adapters to run; built from ``config`` when None.
        timestamp: Snapshot timestamp; defaults to the time collection starts.

    Returns:
        The snapshot and the findings inferred from it.

    Raises:
        ConfigError: If adapters are built from ``config`` and an enabled
            source has no collector.
    """
    logger = Logger.get("pipeline")
    if adapters is None:
        adapters = build_adapters(config)
    if timestamp is None:
        timestamp = time.time()

    raw_outputs = collect_all(adapters)
    outcomes = [parse_source(raw) for raw in raw_outputs]
    snapshot = SnapshotAssembler(config.enabled_sources()).assemble(outcomes, timestamp)
    findings = InferenceEngine(config.rules).run(snapshot)
    logger.debug(
        f"Cycle complete: {len(snapshot.accelerators)} accelerators, "
        f"{len(snapshot.processes)} compute processes, {len(findings)} findings"
    )
    return snapshot, findings
