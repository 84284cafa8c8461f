"""Built-in diagnostic rules, registered in evaluation order.

Each rule emits at most one Finding per snapshot; a rule that matches
several devices lists all of them in that one finding.
"""

from __future__ import annotations

from gpusight.inference.base import Rule, gpu_device
from gpusight.inference.registry import register_rule
from gpusight.models.config_models import (
    DiskBoundConfig,
    HostBoundConfig,
    HostMemoryPressureConfig,
    IoWaitConfig,
    MemoryPressureConfig,
    PowerThrottlingConfig,
    ThermalThrottlingConfig,
)
from gpusight.models.constants import (
    POWER_THROTTLE_REASONS,
    THERMAL_THROTTLE_REASONS,
    BottleneckLabel,
    MetricSource,
    Severity,
)
from gpusight.models.finding_models import Finding, MetricValue
from gpusight.models.snapshot_models import Snapshot


def _devices_phrase(indices: list[int]) -> str:
    return ", ".join(gpu_device(index) for index in indices)


@register_rule
class ThermalThrottlingRule(Rule):
    """Hot accelerator running below its nominal clock.

    The reference clock is the configured boost clock for the device, or the
    device-reported max SM clock. When either clock is unknown, an active
    thermal throttle reason stands in for the clock comparison.
    """

    name = "thermal_throttling"
    label = BottleneckLabel.THERMAL_THROTTLING
    severity = Severity.CRITICAL
    required_sources = (MetricSource.ACCELERATOR,)
    config_class = ThermalThrottlingConfig
    description = "Temperature above threshold with SM clock below boost clock"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: ThermalThrottlingConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        matched: list[int] = []
        evidence: list[MetricValue] = []
        details: list[str] = []

        for gpu in snapshot.accelerators:
            if gpu.temperature_celsius is None:
                continue
            if gpu.temperature_celsius <= config.temperature_celsius:
                continue
            device = gpu_device(gpu.index)
            reference = config.boost_clock_mhz.get(gpu.index, gpu.max_sm_clock_mhz)

            if gpu.sm_clock_mhz is not None and reference is not None:
                deficit = reference - gpu.sm_clock_mhz
                if deficit <= config.clock_tolerance_mhz:
                    continue
                evidence.extend(
                    [
                        MetricValue(
                            name="temperature_celsius",
                            value=gpu.temperature_celsius,
                            unit="C",
                            device=device,
                        ),
                        MetricValue(
                            name="sm_clock_mhz",
                            value=gpu.sm_clock_mhz,
                            unit="MHz",
                            device=device,
                        ),
                        MetricValue(
                            name="boost_clock_mhz",
                            value=reference,
                            unit="MHz",
                            device=device,
                        ),
                        MetricValue(
                            name="clock_deficit_mhz",
                            value=deficit,
                            unit="MHz",
                            device=device,
                        ),
                    ]
                )
                details.append(
                    f"{device} at {gpu.temperature_celsius:g}C, "
                    f"{deficit:g} MHz below its {reference:g} MHz boost clock"
                )
            else:
                active = sorted(
                    THERMAL_THROTTLE_REASONS.intersection(gpu.throttle_reasons)
                )
                if not active:
                    continue
                evidence.extend(
                    [
                        MetricValue(
                            name="temperature_celsius",
                            value=gpu.temperature_celsius,
                            unit="C",
                            device=device,
                        ),
                        MetricValue(
                            name="throttle_reasons",
                            value=",".join(active),
                            device=device,
                        ),
                    ]
                )
                details.append(
                    f"{device} at {gpu.temperature_celsius:g}C with "
                    f"{', '.join(active)} active"
                )
            matched.append(gpu.index)

        if not matched:
            return None
        return self.finding(
            f"Thermal throttling: {'; '.join(details)} "
            f"(threshold {config.temperature_celsius:g}C)",
            evidence,
            device_indices=matched,
        )


@register_rule
class PowerThrottlingRule(Rule):
    """Accelerator drawing at its power limit or capped by the driver."""

    name = "power_throttling"
    label = BottleneckLabel.POWER_THROTTLING
    severity = Severity.WARNING
    required_sources = (MetricSource.ACCELERATOR,)
    config_class = PowerThrottlingConfig
    description = "Power draw at the power limit, or a power cap throttle reason"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: PowerThrottlingConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        matched: list[int] = []
        evidence: list[MetricValue] = []

        for gpu in snapshot.accelerators:
            device = gpu_device(gpu.index)
            at_limit = (
                gpu.power_draw_watts is not None
                and gpu.power_limit_watts
                and gpu.power_draw_watts
                >= config.draw_to_limit_ratio * gpu.power_limit_watts
            )
            capped = sorted(POWER_THROTTLE_REASONS.intersection(gpu.throttle_reasons))
            if not at_limit and not capped:
                continue
            matched.append(gpu.index)
            evidence.append(
                MetricValue(
                    name="power_draw_watts",
                    value=gpu.power_draw_watts,
                    unit="W",
                    device=device,
                )
            )
            evidence.append(
                MetricValue(
                    name="power_limit_watts",
                    value=gpu.power_limit_watts,
                    unit="W",
                    device=device,
                )
            )
            if capped:
                evidence.append(
                    MetricValue(
                        name="throttle_reasons", value=",".join(capped), device=device
                    )
                )

        if not matched:
            return None
        return self.finding(
            f"Power limited: {_devices_phrase(matched)} at or capped by the power "
            f"limit (ratio threshold {config.draw_to_limit_ratio:g})",
            evidence,
            device_indices=matched,
        )


@register_rule
class MemoryPressureRule(Rule):
    """Accelerator memory nearly full."""

    name = "memory_pressure"
    label = BottleneckLabel.MEMORY_PRESSURE
    severity = Severity.WARNING
    required_sources = (MetricSource.ACCELERATOR,)
    config_class = MemoryPressureConfig
    description = "Accelerator memory used/total above threshold"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: MemoryPressureConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        matched: list[int] = []
        evidence: list[MetricValue] = []
        details: list[str] = []

        for gpu in snapshot.accelerators:
            ratio = gpu.memory_used_ratio
            if ratio is None or ratio <= config.used_ratio:
                continue
            device = gpu_device(gpu.index)
            matched.append(gpu.index)
            evidence.extend(
                [
                    MetricValue(name="memory_used_ratio", value=ratio, device=device),
                    MetricValue(
                        name="memory_used_bytes",
                        value=gpu.memory_used_bytes,
                        unit="B",
                        device=device,
                    ),
                    MetricValue(
                        name="memory_total_bytes",
                        value=gpu.memory_total_bytes,
                        unit="B",
                        device=device,
                    ),
                ]
            )
            details.append(f"{device} {ratio:.0%} used")

        if not matched:
            return None
        return self.finding(
            f"Accelerator memory pressure: {', '.join(details)} "
            f"(threshold {config.used_ratio:.0%})",
            evidence,
            device_indices=matched,
        )


@register_rule
class DiskBoundRule(Rule):
    """Saturated disk while an accelerator sits idle: a starved input pipeline."""

    name = "disk_bound"
    label = BottleneckLabel.DISK_BOUND
    severity = Severity.WARNING
    required_sources = (MetricSource.DISK, MetricSource.ACCELERATOR)
    config_class = DiskBoundConfig
    description = "Disk utilization high while an accelerator is nearly idle"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: DiskBoundConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        busy_disks = [
            disk
            for disk in snapshot.disks
            if disk.utilization_percent is not None
            and disk.utilization_percent > config.disk_utilization_percent
        ]
        idle_gpus = [
            gpu
            for gpu in snapshot.accelerators
            if gpu.utilization_percent is not None
            and gpu.utilization_percent < config.accelerator_utilization_percent
        ]
        if not busy_disks or not idle_gpus:
            return None

        evidence = [
            MetricValue(
                name="disk_utilization_percent",
                value=disk.utilization_percent,
                unit="%",
                device=disk.name,
            )
            for disk in busy_disks
        ]
        evidence.extend(
            MetricValue(
                name="accelerator_utilization_percent",
                value=gpu.utilization_percent,
                unit="%",
                device=gpu_device(gpu.index),
            )
            for gpu in idle_gpus
        )
        disks = ", ".join(
            f"{disk.name} {disk.utilization_percent:g}%" for disk in busy_disks
        )
        gpus = ", ".join(
            f"{gpu_device(gpu.index)} {gpu.utilization_percent:g}%" for gpu in idle_gpus
        )
        return self.finding(
            f"Possible I/O-bound input pipeline: disk busy ({disks}) while "
            f"accelerator idle ({gpus})",
            evidence,
            device_indices=[gpu.index for gpu in idle_gpus],
            devices=[disk.name for disk in busy_disks],
        )


@register_rule
class HostBoundRule(Rule):
    """Live compute process on an accelerator doing almost nothing."""

    name = "host_bound"
    label = BottleneckLabel.HOST_BOUND
    severity = Severity.INFO
    required_sources = (MetricSource.ACCELERATOR,)
    config_class = HostBoundConfig
    description = "Compute process present on a near-idle accelerator"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: HostBoundConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        pids_by_device: dict[int, list[int]] = {}
        for process in snapshot.processes:
            pids_by_device.setdefault(process.device_index, []).append(process.pid)

        matched: list[int] = []
        evidence: list[MetricValue] = []
        for gpu in snapshot.accelerators:
            pids = pids_by_device.get(gpu.index)
            if not pids or gpu.utilization_percent is None:
                continue
            if gpu.utilization_percent > config.utilization_percent:
                continue
            device = gpu_device(gpu.index)
            matched.append(gpu.index)
            evidence.append(
                MetricValue(
                    name="utilization_percent",
                    value=gpu.utilization_percent,
                    unit="%",
                    device=device,
                )
            )
            evidence.append(
                MetricValue(
                    name="compute_pids",
                    value=",".join(str(pid) for pid in pids),
                    device=device,
                )
            )

        if not matched:
            return None
        return self.finding(
            f"Accelerator near idle with a live compute process on "
            f"{_devices_phrase(matched)}; the host side (data loading, CPU "
            f"preprocessing) may be the bottleneck",
            evidence,
            device_indices=matched,
        )


@register_rule
class HostMemoryPressureRule(Rule):
    """Little host RAM left available."""

    name = "host_memory_pressure"
    label = BottleneckLabel.HOST_MEMORY_PRESSURE
    severity = Severity.WARNING
    required_sources = (MetricSource.HOST,)
    config_class = HostMemoryPressureConfig
    description = "Host available/total RAM below threshold"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: HostMemoryPressureConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        host = snapshot.host
        if host is None:
            return None
        ratio = host.memory_available_ratio
        if ratio is None or ratio >= config.available_ratio:
            return None
        evidence = [
            MetricValue(name="memory_available_ratio", value=ratio, device="host"),
            MetricValue(
                name="memory_available_bytes",
                value=host.memory_available_bytes,
                unit="B",
                device="host",
            ),
            MetricValue(
                name="swap_used_bytes",
                value=host.swap_used_bytes,
                unit="B",
                device="host",
            ),
        ]
        return self.finding(
            f"Host memory pressure: {ratio:.0%} of RAM available "
            f"(threshold {config.available_ratio:.0%})",
            evidence,
            devices=["host"],
        )


@register_rule
class IoWaitRule(Rule):
    """CPUs spending a large share of time waiting on I/O."""

    name = "io_wait"
    label = BottleneckLabel.IO_WAIT
    severity = Severity.WARNING
    required_sources = (MetricSource.HOST,)
    config_class = IoWaitConfig
    description = "Host CPU iowait above threshold"

    def evaluate(
        self,
        snapshot: Snapshot,
        config: IoWaitConfig,
        prior: tuple[Finding, ...],
    ) -> Finding | None:
        host = snapshot.host
        if host is None or host.iowait_percent is None:
            return None
        if host.iowait_percent <= config.iowait_percent:
            return None
        return self.finding(
            f"High I/O wait: CPUs idle waiting on I/O {host.iowait_percent:g}% of "
            f"the time (threshold {config.iowait_percent:g}%)",
            [
                MetricValue(
                    name="iowait_percent",
                    value=host.iowait_percent,
                    unit="%",
                    device="host",
                )
            ],
            devices=["host"],
        )
