"""Shared fixtures for gpusight tests."""

import time
from io import StringIO

import pytest

from gpusight.models.constants import AvailabilityStatus, MetricSource
from gpusight.models.metric_models import AcceleratorMetric, DiskMetric
from gpusight.models.snapshot_models import Snapshot, SourceAvailability
from gpusight.utils.logger import Logger


@pytest.fixture(autouse=True)
def configured_logger():
    """Configure logging into a buffer so modules can call Logger.get()."""
    output = StringIO()
    Logger.configure(level="DEBUG", output=output, timestamps=False)
    return output


def make_snapshot(
    accelerators=(),
    processes=(),
    disks=(),
    networks=(),
    host=None,
    unavailable=(),
    sources=tuple(MetricSource),
):
    """Build a snapshot with every listed source Available unless named unavailable."""
    availability = {}
    for source in sources:
        if source in unavailable:
            availability[source] = SourceAvailability.unavailable(
                source, "timed out after 10s"
            )
        else:
            availability[source] = SourceAvailability(
                source=source, status=AvailabilityStatus.AVAILABLE
            )
    return Snapshot(
        timestamp=time.time(),
        accelerators=tuple(accelerators),
        processes=tuple(processes),
        disks=tuple(disks),
        networks=tuple(networks),
        host=host,
        availability=availability,
    )


@pytest.fixture
def hot_gpu():
    return AcceleratorMetric(
        index=0,
        name="NVIDIA A100-SXM4-80GB",
        utilization_percent=98.0,
        temperature_celsius=89.0,
        sm_clock_mhz=1110.0,
        max_sm_clock_mhz=1410.0,
        memory_used_bytes=20 * 1024**3,
        memory_total_bytes=80 * 1024**3,
    )


@pytest.fixture
def busy_disk():
    return DiskMetric(name="nvme0n1", utilization_percent=97.0)


@pytest.fixture
def snapshot_factory():
    """Return make_snapshot for building synthetic snapshots."""
    return make_snapshot
