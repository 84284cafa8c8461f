"""Tests for the nvidia-smi CSV and NVML accelerator parsers."""

import pytest

from gpusight.errors import ParseFormatUnsupportedError
from gpusight.models.constants import (
    COMPUTE_APPS_SECTION,
    SMI_BANNER_SECTION,
    MetricSource,
)
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers import PARSERS
from gpusight.parsers.accelerator import NvidiaSmiCsvParser, NvmlParser

MIB = 1024**2

SMI_HEADER = (
    "index, uuid, pci.bus_id, name, utilization.gpu [%], utilization.memory [%], "
    "memory.used [MiB], memory.total [MiB], temperature.gpu, power.draw [W], "
    "power.limit [W], clocks.sm [MHz], clocks.max.sm [MHz], fan.speed [%], "
    "clocks_throttle_reasons.active, compute_cap, driver_version"
)
SMI_GPU0 = (
    "0, GPU-aaaa, 00000000:17:00.0, NVIDIA A100-SXM4-80GB, 97 %, 40 %, 61234 MiB, "
    "81920 MiB, 89, 398.12 W, 400.00 W, 1110 MHz, 1410 MHz, [N/A], "
    "0x0000000000000040, 8.0, 535.104.05"
)
SMI_GPU1 = (
    "1, GPU-bbbb, 00000000:31:00.0, NVIDIA A100-SXM4-80GB, 0 %, 0 %, 4 MiB, "
    "81920 MiB, 31, 61.50 W, 400.00 W, 210 MHz, 1410 MHz, [N/A], "
    "0x0000000000000001, 8.0, 535.104.05"
)
EMPTY_APPS = "pid, gpu_uuid, gpu_bus_id, used_gpu_memory [MiB]\n"
COMPUTE_APPS = (
    "pid, gpu_uuid, gpu_bus_id, used_gpu_memory [MiB]\n"
    "4242, GPU-aaaa, 00000000:17:00.0, 61000 MiB\n"
    "5151, GPU-zzzz, 00000000:99:00.0, 100 MiB\n"
)


def smi_raw(text, sections=None):
    return RawSourceOutput(
        source=MetricSource.ACCELERATOR,
        format_version="nvidia-smi-csv",
        payload=text,
        sections={COMPUTE_APPS_SECTION: EMPTY_APPS} if sections is None else sections,
    )


def test_registry_resolves_accelerator_formats() -> None:
    """Registry resolves accelerator formats."""
    assert isinstance(
        PARSERS.get(MetricSource.ACCELERATOR, "nvidia-smi-csv"), NvidiaSmiCsvParser
    )
    assert isinstance(PARSERS.get(MetricSource.ACCELERATOR, "nvml"), NvmlParser)
    assert PARSERS.formats_for(MetricSource.ACCELERATOR) == ["nvidia-smi-csv", "nvml"]


def test_registry_unknown_format_raises() -> None:
    """Registry unknown format raises."""
    with pytest.raises(ParseFormatUnsupportedError) as exc_info:
        PARSERS.get(MetricSource.ACCELERATOR, "rocm-smi")
    assert "known: nvidia-smi-csv, nvml" in str(exc_info.value)


def test_smi_csv_units_are_normalized() -> None:
    """nvidia-smi CSV units are normalized."""
    result = NvidiaSmiCsvParser().parse(smi_raw(f"{SMI_HEADER}\n{SMI_GPU0}\n"))

    assert result.skipped_rows == 0
    gpu = result.records[0]
    assert gpu.index == 0
    assert gpu.uuid == "GPU-aaaa"
    assert gpu.utilization_percent == 97.0
    assert gpu.memory_used_bytes == 61234 * MIB
    assert gpu.memory_total_bytes == 81920 * MIB
    assert gpu.temperature_celsius == 89.0
    assert gpu.power_draw_watts == pytest.approx(398.12)
    assert gpu.power_limit_watts == 400.0
    assert gpu.sm_clock_mhz == 1110.0
    assert gpu.max_sm_clock_mhz == 1410.0
    assert gpu.throttle_reasons == ("sw_thermal_slowdown",)
    assert gpu.compute_capability == "8.0"
    assert gpu.driver_version == "535.104.05"


def test_smi_csv_not_supported_is_unknown_not_zero() -> None:
    """nvidia-smi CSV not supported is unknown not zero."""
    result = NvidiaSmiCsvParser().parse(smi_raw(f"{SMI_HEADER}\n{SMI_GPU0}\n"))

    gpu = result.records[0]
    assert gpu.fan_speed_percent is None
    assert not result.notes


def test_smi_csv_zero_reading_stays_zero() -> None:
    """nvidia-smi CSV zero reading stays zero."""
    result = NvidiaSmiCsvParser().parse(smi_raw(f"{SMI_HEADER}\n{SMI_GPU1}\n", {}))

    assert result.records[0].utilization_percent == 0.0


def test_smi_csv_nounits_and_reordered_columns() -> None:
    """nvidia-smi CSV nounits and reordered columns."""
    text = (
        "temperature.gpu, index, memory.total [MiB], memory.used [MiB], extra.field\n"
        "71, 0, 16384, 1024, whatever\n"
    )
    result = NvidiaSmiCsvParser().parse(smi_raw(text, {}))

    gpu = result.records[0]
    assert gpu.temperature_celsius == 71.0
    assert gpu.memory_used_bytes == 1024 * MIB
    assert gpu.memory_used_ratio == pytest.approx(1 / 16)


def test_smi_csv_accepts_renamed_fields() -> None:
    """nvidia-smi CSV accepts renamed fields."""
    text = (
        "index, power.draw.instant [W], clocks_event_reasons.active\n"
        "0, 250.00 W, 0x0000000000000004\n"
    )
    result = NvidiaSmiCsvParser().parse(smi_raw(text, {}))

    gpu = result.records[0]
    assert gpu.power_draw_watts == 250.0
    assert gpu.throttle_reasons == ("sw_power_cap",)


def test_smi_csv_malformed_rows_are_skipped() -> None:
    """nvidia-smi CSV malformed rows are skipped."""
    text = f"{SMI_HEADER}\n{SMI_GPU0}\nbroken, row\n{SMI_GPU0.replace('0, GPU-aaaa', 'x, GPU-cccc', 1)}\n"
    result = NvidiaSmiCsvParser().parse(smi_raw(text))

    assert [gpu.index for gpu in result.records] == [0]
    assert result.skipped_rows == 2


def test_smi_csv_garbage_optional_field_degrades_record() -> None:
    """nvidia-smi CSV garbage optional field degrades record."""
    text = "index, temperature.gpu, utilization.gpu [%]\n0, hot, 50 %\n"
    result = NvidiaSmiCsvParser().parse(smi_raw(text, {}))

    gpu = result.records[0]
    assert gpu.temperature_celsius is None
    assert gpu.utilization_percent == 50.0
    assert result.notes == ["gpu0: unparsable temperature.gpu"]


def test_smi_csv_without_index_column_is_unsupported() -> None:
    """nvidia-smi CSV without index column is unsupported."""
    with pytest.raises(ParseFormatUnsupportedError):
        NvidiaSmiCsvParser().parse(smi_raw("name, memory.used [MiB]\nA100, 1 MiB\n"))


def test_smi_csv_non_text_payload_is_unsupported() -> None:
    """nvidia-smi CSV non text payload is unsupported."""
    raw = RawSourceOutput(
        source=MetricSource.ACCELERATOR, format_version="nvidia-smi-csv", payload=[{}]
    )
    with pytest.raises(ParseFormatUnsupportedError):
        NvidiaSmiCsvParser().parse(raw)


def test_smi_compute_apps_mapped_to_devices() -> None:
    """nvidia-smi CSV compute apps mapped to devices."""
    result = NvidiaSmiCsvParser().parse(
        smi_raw(
            f"{SMI_HEADER}\n{SMI_GPU0}\n{SMI_GPU1}\n", {COMPUTE_APPS_SECTION: COMPUTE_APPS}
        )
    )

    assert len(result.processes) == 1
    process = result.processes[0]
    assert process.pid == 4242
    assert process.device_index == 0
    assert process.used_memory_bytes == 61000 * MIB
    # pid 5151 names a device missing from the GPU listing
    assert result.skipped_rows == 1


def test_smi_compute_apps_matched_by_bus_id() -> None:
    """nvidia-smi CSV compute apps matched by bus id."""
    apps = "pid, gpu_bus_id, used_gpu_memory [MiB]\n777, 0000:31:00.0, 10 MiB\n"
    result = NvidiaSmiCsvParser().parse(
        smi_raw(f"{SMI_HEADER}\n{SMI_GPU0}\n{SMI_GPU1}\n", {COMPUTE_APPS_SECTION: apps})
    )

    assert [(p.pid, p.device_index) for p in result.processes] == [(777, 1)]


def test_smi_compute_apps_none_running() -> None:
    """nvidia-smi CSV compute apps none running."""
    apps = "No running processes found\n"
    result = NvidiaSmiCsvParser().parse(
        smi_raw(f"{SMI_HEADER}\n{SMI_GPU0}\n", {COMPUTE_APPS_SECTION: apps})
    )

    assert result.processes == []
    assert not result.notes


def test_smi_compute_apps_failure_is_noted() -> None:
    """nvidia-smi CSV compute apps failure is noted."""
    result = NvidiaSmiCsvParser().parse(
        smi_raw(f"{SMI_HEADER}\n{SMI_GPU0}\n", {COMPUTE_APPS_SECTION: None})
    )

    assert len(result.records) == 1
    assert result.notes == ["compute process listing failed"]


def test_nvml_rows_are_converted() -> None:
    """NVML rows are converted."""
    raw = RawSourceOutput(
        source=MetricSource.ACCELERATOR,
        format_version="nvml",
        payload=[
            {
                "index": 0,
                "uuid": "GPU-aaaa",
                "name": "NVIDIA H100 80GB HBM3",
                "utilization_gpu": 3,
                "utilization_memory": 1,
                "memory_used_bytes": 1024,
                "memory_total_bytes": 4096,
                "temperature_c": 45,
                "power_draw_mw": 120500,
                "power_limit_mw": 700000,
                "sm_clock_mhz": 1980,
                "max_sm_clock_mhz": 1980,
                "fan_speed_percent": None,
                "throttle_reasons_mask": 0x24,
                "compute_capability": "9.0",
                "driver_version": "550.54.15",
                "cuda_driver_version": 12040,
                "processes": [
                    {"pid": 31337, "used_memory_bytes": 2**64 - 1},
                    {"pid": 31338, "used_memory_bytes": 512},
                ],
            }
        ],
    )
    result = NvmlParser().parse(raw)

    gpu = result.records[0]
    assert gpu.power_draw_watts == pytest.approx(120.5)
    assert gpu.power_limit_watts == 700.0
    assert gpu.fan_speed_percent is None
    assert gpu.throttle_reasons == ("sw_power_cap", "sw_thermal_slowdown")
    assert gpu.cuda_version == "12.4"
    assert [(p.pid, p.used_memory_bytes) for p in result.processes] == [
        (31337, None),
        (31338, 512),
    ]
    assert not result.notes


def test_nvml_row_without_index_is_skipped() -> None:
    """NVML row without index is skipped."""
    raw = RawSourceOutput(
        source=MetricSource.ACCELERATOR,
        format_version="nvml",
        payload=[{"uuid": "GPU-aaaa"}, {"index": 1, "processes": []}],
    )
    result = NvmlParser().parse(raw)

    assert [gpu.index for gpu in result.records] == [1]
    assert result.skipped_rows == 1


def test_smi_csv_out_of_range_reading_keeps_device_and_processes() -> None:
    """A 101 % utilization drops that reading only, not the device row."""
    row = SMI_GPU0.replace("97 %", "101 %", 1)
    result = NvidiaSmiCsvParser().parse(
        smi_raw(f"{SMI_HEADER}\n{row}\n", {COMPUTE_APPS_SECTION: COMPUTE_APPS})
    )

    gpu = result.records[0]
    assert gpu.utilization_percent is None
    assert gpu.temperature_celsius == 89.0
    assert [p.pid for p in result.processes] == [4242]
    assert len(result.notes) == 1
    assert result.notes[0].startswith("row 1: out of range utilization_percent")
    # only the process on the unknown device is skipped
    assert result.skipped_rows == 1


def test_smi_csv_repeated_pid_on_one_device_is_merged() -> None:
    """Two contexts of one pid on one GPU become a single process entry."""
    apps = (
        "pid, gpu_uuid, gpu_bus_id, used_gpu_memory [MiB]\n"
        "7, GPU-aaaa, 00000000:17:00.0, 100 MiB\n"
        "7, GPU-aaaa, 00000000:17:00.0, 28 MiB\n"
        "7, GPU-bbbb, 00000000:31:00.0, [N/A]\n"
    )
    result = NvidiaSmiCsvParser().parse(
        smi_raw(
            f"{SMI_HEADER}\n{SMI_GPU0}\n{SMI_GPU1}\n", {COMPUTE_APPS_SECTION: apps}
        )
    )

    assert [(p.pid, p.device_index) for p in result.processes] == [(7, 0), (7, 1)]
    assert result.processes[0].used_memory_bytes == 128 * MIB
    assert result.processes[1].used_memory_bytes is None


def test_smi_csv_reads_cuda_version_from_banner() -> None:
    """The plain nvidia-smi header supplies the CUDA version."""
    banner = (
        "+-----------------------------------------------------------------------+\n"
        "| NVIDIA-SMI 550.54.15   Driver Version: 550.54.15   CUDA Version: 12.4 |\n"
        "|-------------------------------+----------------------+----------------+\n"
    )
    result = NvidiaSmiCsvParser().parse(
        smi_raw(
            f"{SMI_HEADER}\n{SMI_GPU0}\n",
            {COMPUTE_APPS_SECTION: EMPTY_APPS, SMI_BANNER_SECTION: banner},
        )
    )

    assert result.records[0].cuda_version == "12.4"
    assert not result.notes


def test_smi_csv_without_banner_has_no_cuda_version() -> None:
    """A missing or failed banner leaves the CUDA version unknown."""
    for sections in (
        {COMPUTE_APPS_SECTION: EMPTY_APPS},
        {COMPUTE_APPS_SECTION: EMPTY_APPS, SMI_BANNER_SECTION: None},
    ):
        raw = smi_raw(f"{SMI_HEADER}\n{SMI_GPU0}\n", sections)
        result = NvidiaSmiCsvParser().parse(raw)
        assert result.records[0].cuda_version is None


def test_nvml_out_of_range_reading_keeps_device() -> None:
    """NVML rows with an impossible reading still yield the device."""
    raw = RawSourceOutput(
        source=MetricSource.ACCELERATOR,
        format_version="nvml",
        payload=[{"index": 0, "utilization_gpu": 250, "processes": []}],
    )

    result = NvmlParser().parse(raw)

    assert [gpu.index for gpu in result.records] == [0]
    assert result.records[0].utilization_percent is None
    assert result.skipped_rows == 0
    assert result.notes
