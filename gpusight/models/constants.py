"""Constants and enumerations shared by gpusight models."""

import sys
from enum import auto

if sys.version_info >= (3, 11):  # noqa: UP036
    from enum import StrEnum
else:
    from backports.strenum import StrEnum  # noqa: UP035


class MetricSource(StrEnum):
    """Provenance of every metric record and availability entry."""

    ACCELERATOR = auto()
    PROCESS_COMPUTE = auto()
    DISK = auto()
    NETWORK = auto()
    HOST = auto()


class AvailabilityStatus(StrEnum):
    """Per-source health classification."""

    AVAILABLE = auto()
    DEGRADED = auto()
    UNAVAILABLE = auto()


class Severity(StrEnum):
    """Finding severity, ordered INFO < WARNING < CRITICAL."""

    INFO = auto()
    WARNING = auto()
    CRITICAL = auto()

    @property
    def rank(self) -> int:
        """Position on the severity scale (higher is more severe)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class BottleneckLabel(StrEnum):
    """Diagnostic labels a finding can carry."""

    THERMAL_THROTTLING = auto()
    POWER_THROTTLING = auto()
    MEMORY_PRESSURE = auto()
    DISK_BOUND = auto()
    HOST_BOUND = auto()
    HOST_MEMORY_PRESSURE = auto()
    IO_WAIT = auto()


class ToolErrorKind(StrEnum):
    """Why a source produced no usable output."""

    TOOL_UNAVAILABLE = auto()
    TOOL_TIMEOUT = auto()
    TOOL_EXECUTION_FAILED = auto()
    FORMAT_UNSUPPORTED = auto()


class CorrelationOutcome(StrEnum):
    """Which side(s) of the pid join reported a compute process."""

    BOTH = auto()
    ACCELERATOR_ONLY = auto()
    OS_ONLY = auto()


class FormatVersion(StrEnum):
    """Raw output formats understood by the parser layer."""

    NVIDIA_SMI_CSV = "nvidia-smi-csv"
    NVML = "nvml"
    PS = "ps"
    IOSTAT_X = "iostat-x"
    SAR_DEV = "sar-dev"
    FREE_B = "free-b"
    PSUTIL = "psutil"


DEFAULT_FORMAT_VERSIONS: dict[MetricSource, FormatVersion] = {
    MetricSource.ACCELERATOR: FormatVersion.NVIDIA_SMI_CSV,
    MetricSource.PROCESS_COMPUTE: FormatVersion.PS,
    MetricSource.DISK: FormatVersion.IOSTAT_X,
    MetricSource.NETWORK: FormatVersion.PSUTIL,
    MetricSource.HOST: FormatVersion.FREE_B,
}

# Section names carried alongside a primary raw payload
COMPUTE_APPS_SECTION = "compute_apps"
NPROC_SECTION = "nproc"
IOSTAT_CPU_SECTION = "iostat_cpu"
SMI_BANNER_SECTION = "smi_banner"

# Flag attached to accelerator-only compute processes
OS_METRICS_UNAVAILABLE = "os-metrics-unavailable"

# NVML clocks throttle reason bits, in bit order
THROTTLE_REASON_BITS: tuple[tuple[int, str], ...] = (
    (0x0000000000000001, "gpu_idle"),
    (0x0000000000000002, "applications_clocks_setting"),
    (0x0000000000000004, "sw_power_cap"),
    (0x0000000000000008, "hw_slowdown"),
    (0x0000000000000010, "sync_boost"),
    (0x0000000000000020, "sw_thermal_slowdown"),
    (0x0000000000000040, "hw_thermal_slowdown"),
    (0x0000000000000080, "hw_power_brake_slowdown"),
    (0x0000000000000100, "display_clock_setting"),
)

THERMAL_THROTTLE_REASONS = frozenset({"sw_thermal_slowdown", "hw_thermal_slowdown"})
POWER_THROTTLE_REASONS = frozenset({"sw_power_cap", "hw_power_brake_slowdown"})

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_SAMPLE_INTERVAL_SECONDS = 1.0
