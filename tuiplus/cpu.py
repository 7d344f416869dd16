"""Processor usage monitor fed by PowerShell queries."""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from tuiplus.jsonout import MonitorError, parse_json_array, parse_json_object, strip_bom

DEFAULT_TDP = 65.0

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

CPU_INFO_SCRIPT = r"""
$fallback = [PSCustomObject]@{
    Name = "Unknown"; MaxClockSpeed = 0; CurrentClockSpeed = 0
    NumberOfCores = 0; NumberOfLogicalProcessors = 0; TDP = 65
}
try {
    $cpu = Get-CimInstance Win32_Processor -ErrorAction Stop | Select-Object -First 1
    if ($cpu) { $cpu | ConvertTo-Json } else { $fallback | ConvertTo-Json }
} catch {
    $fallback | ConvertTo-Json
}
"""

CORE_USAGE_SCRIPT = r"""
try {
    Get-CimInstance Win32_PerfFormattedData_PerfOS_Processor -ErrorAction Stop |
        Where-Object { $_.Name -ne '_Total' } |
        ForEach-Object {
            [PSCustomObject]@{ Core = $_.Name; Usage = [double]$_.PercentProcessorTime }
        } | ConvertTo-Json
} catch {
    "[]"
}
"""

OVERALL_USAGE_SCRIPT = r"""
try {
    $total = Get-CimInstance Win32_PerfFormattedData_PerfOS_Processor -ErrorAction Stop |
        Where-Object { $_.Name -eq '_Total' } | Select-Object -First 1
    if ($total) { $total.PercentProcessorTime } else { 0 }
} catch {
    0
}
"""

TOP_PROCESSES_SCRIPT = r"""
try {
    $logical = (Get-CimInstance Win32_ComputerSystem -ErrorAction SilentlyContinue).NumberOfLogicalProcessors
    if (-not $logical -or $logical -le 0) { $logical = [Environment]::ProcessorCount }
    if (-not $logical -or $logical -le 0) { $logical = 1 }
    $top = Get-CimInstance Win32_PerfFormattedData_PerfProc_Process -ErrorAction Stop |
        Where-Object { $_.IDProcess -ne 0 -and $_.Name -ne '_Total' -and $_.Name -ne 'Idle' } |
        Sort-Object PercentProcessorTime -Descending | Select-Object -First 5
    $top | ForEach-Object {
        $proc = Get-Process -Id $_.IDProcess -ErrorAction SilentlyContinue
        [PSCustomObject]@{
            Id = [uint32]$_.IDProcess
            ProcessName = if ($proc) { $proc.ProcessName } else { $_.Name }
            CpuPercent = [double]$_.PercentProcessorTime / [double]$logical
            Threads = if ($proc -and $proc.Threads) { $proc.Threads.Count } else { $null }
            Memory = if ($proc) { [uint64]$proc.WorkingSet64 } else { 0 }
        }
    } | ConvertTo-Json
} catch {
    "[]"
}
"""

PERF_INFO_SCRIPT = r"""
try {
    $perf = Get-CimInstance Win32_PerfFormattedData_Counters_ProcessorInformation -ErrorAction Stop
    $entries = $perf | Where-Object { $_.Name -notlike '*_Total' }
    if (-not $entries) { $entries = $perf }
    [PSCustomObject]@{
        AvgFrequency = [double]($entries | Measure-Object -Property ProcessorFrequency -Average).Average
        MaxFrequency = [double]($entries | Measure-Object -Property ProcessorFrequency -Maximum).Maximum
        AvgPerformance = [double]($entries | Measure-Object -Property PercentProcessorPerformance -Average).Average
        AvgUtility = [double]($entries | Measure-Object -Property PercentProcessorUtility -Average).Average
    } | ConvertTo-Json
} catch {
    [PSCustomObject]@{ AvgFrequency = 0; MaxFrequency = 0; AvgPerformance = 0; AvgUtility = 0 } | ConvertTo-Json
}
"""

TEMPERATURE_SCRIPT = r"""
try {
    $temps = Get-CimInstance -Namespace "root/wmi" -ClassName MSAcpi_ThermalZoneTemperature -ErrorAction SilentlyContinue |
        Where-Object { $_.CurrentTemperature -gt 0 } |
        ForEach-Object { ($_.CurrentTemperature / 10) - 273.15 }
    if ($temps) { [math]::Round(($temps | Measure-Object -Maximum).Maximum, 1) } else { "" }
} catch {
    ""
}
"""

SCRIPTS = (
    CPU_INFO_SCRIPT,
    CORE_USAGE_SCRIPT,
    OVERALL_USAGE_SCRIPT,
    TOP_PROCESSES_SCRIPT,
    PERF_INFO_SCRIPT,
    TEMPERATURE_SCRIPT,
)


@dataclass
class CoreUsage:
    core_id: int
    usage: float


@dataclass
class FrequencyInfo:
    """Clock figures in GHz."""

    base_clock: float
    avg_frequency: float
    max_frequency: float
    boost_active: bool


@dataclass
class PowerInfo:
    """Power figures in watts."""

    current_power: float
    max_power: float


@dataclass
class ProcessInfo:
    pid: int
    name: str
    cpu_usage: float
    threads: int
    memory: int


@dataclass
class CpuData:
    name: str
    overall_usage: float
    core_count: int
    thread_count: int
    core_usage: list[CoreUsage]
    frequency: FrequencyInfo
    power: PowerInfo
    temperature: float | None
    top_processes: list[ProcessInfo] = field(default_factory=list)


@dataclass
class CpuInfo:
    """Static processor description; clock speeds in MHz."""

    name: str
    max_clock_speed: int
    current_clock_speed: int
    number_of_cores: int
    number_of_logical_processors: int
    tdp: float


@dataclass
class PerfInfo:
    """Averaged performance counters; any of them may be missing."""

    avg_frequency: float | None = None
    max_frequency: float | None = None
    avg_performance: float | None = None
    avg_utility: float | None = None


@contextmanager
def _context(message: str) -> Iterator[None]:
    try:
        yield
    except MonitorError as exc:
        raise MonitorError(f"{message}: {exc}") from exc


def _present(record: dict[str, Any], key: str) -> Any:
    value = record.get(key)
    if value is None:
        raise MonitorError(f"Missing field {key!r}")
    return value


def _check_uint(key: str, value: Any, limit: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= limit:
        raise MonitorError(f"Field {key!r} is not an unsigned integer: {value!r}")
    return value


def _check_float(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MonitorError(f"Field {key!r} is not a number: {value!r}")
    return float(value)


def _uint(record: dict[str, Any], key: str, limit: int = _U32_MAX) -> int:
    return _check_uint(key, _present(record, key), limit)


def _opt_uint(record: dict[str, Any], key: str, limit: int = _U32_MAX) -> int | None:
    value = record.get(key)
    return None if value is None else _check_uint(key, value, limit)


def _float(record: dict[str, Any], key: str) -> float:
    return _check_float(key, _present(record, key))


def _opt_float(record: dict[str, Any], key: str) -> float | None:
    value = record.get(key)
    return None if value is None else _check_float(key, value)


def _str(record: dict[str, Any], key: str) -> str:
    value = _present(record, key)
    if not isinstance(value, str):
        raise MonitorError(f"Field {key!r} is not a string: {value!r}")
    return value


def _cap_percent(value: float) -> float:
    """Limit a percentage to 100; an undefined value counts as 100."""
    if math.isnan(value) or value > 100.0:
        return 100.0
    return value


def _parse_float_text(text: str) -> float:
    if "_" in text:
        raise ValueError(text)
    return float(text)


def _core_id(text: str, fallback: int) -> int:
    digits = text[1:] if text.startswith("+") else text
    if digits and digits.isascii() and digits.isdigit():
        return int(digits)
    return fallback


def parse_cpu_info(output: str) -> CpuInfo:
    """Read the processor description; a missing TDP defaults to 65 W."""
    with _context("Failed to parse CPU info"):
        record = parse_json_object(output)
        tdp = _opt_float(record, "TDP")
        return CpuInfo(
            name=_str(record, "Name"),
            max_clock_speed=_uint(record, "MaxClockSpeed"),
            current_clock_speed=_uint(record, "CurrentClockSpeed"),
            number_of_cores=_uint(record, "NumberOfCores"),
            number_of_logical_processors=_uint(record, "NumberOfLogicalProcessors"),
            tdp=DEFAULT_TDP if tdp is None else tdp,
        )


def parse_overall_usage(output: str) -> float:
    """Read the total processor load, capped at 100 percent."""
    text = output.strip()
    try:
        usage = _parse_float_text(text)
    except ValueError as exc:
        raise MonitorError(f"Failed to parse CPU usage: {text!r}") from exc
    return _cap_percent(usage)


def parse_perf_info(output: str) -> PerfInfo:
    """Read the averaged processor performance counters."""
    with _context("Failed to parse CPU perf info"):
        record = parse_json_object(strip_bom(output))
        return PerfInfo(
            avg_frequency=_opt_float(record, "AvgFrequency"),
            max_frequency=_opt_float(record, "MaxFrequency"),
            avg_performance=_opt_float(record, "AvgPerformance"),
            avg_utility=_opt_float(record, "AvgUtility"),
        )


def parse_core_usage(output: str) -> list[CoreUsage]:
    """Read per-core load; cores with non-numeric names are numbered by position."""
    with _context("Failed to parse core usage"):
        return [
            CoreUsage(
                core_id=_core_id(_str(sample, "Core"), position),
                usage=_cap_percent(_float(sample, "Usage")),
            )
            for position, sample in enumerate(parse_json_array(output))
        ]


def parse_top_processes(output: str) -> list[ProcessInfo]:
    """Read the busiest processes."""
    with _context("Failed to parse top processes"):
        processes = []
        for sample in parse_json_array(output):
            cpu = _opt_float(sample, "CpuPercent")
            threads = _opt_uint(sample, "Threads")
            memory = _opt_uint(sample, "Memory", _U64_MAX)
            processes.append(
                ProcessInfo(
                    pid=_uint(sample, "Id"),
                    name=_str(sample, "ProcessName"),
                    cpu_usage=_cap_percent(0.0 if cpu is None else cpu),
                    threads=1 if threads is None else threads,
                    memory=0 if memory is None else memory,
                )
            )
        return processes


def parse_temperature(output: str) -> float:
    """Read the hottest thermal zone in degrees Celsius."""
    text = output.strip()
    if not text or text.lower() == "null":
        raise MonitorError("CPU temperature unavailable")
    try:
        return _parse_float_text(text)
    except ValueError as exc:
        raise MonitorError(f"Failed to parse CPU temperature: {text!r}") from exc


def frequency_info(cpu_info: CpuInfo, perf: PerfInfo) -> FrequencyInfo:
    """Derive clock figures in GHz and whether the processor is boosting."""
    base_mhz = float(max(cpu_info.max_clock_speed, 1))
    avg_mhz = (
        perf.avg_frequency
        if perf.avg_frequency is not None
        else float(cpu_info.current_clock_speed)
    )
    avg_mhz = max(avg_mhz, 0.0)
    max_mhz = (
        perf.max_frequency
        if perf.max_frequency is not None
        else float(cpu_info.max_clock_speed)
    )
    max_mhz = max(max_mhz, base_mhz)
    avg_perf = perf.avg_performance if perf.avg_performance is not None else 100.0

    return FrequencyInfo(
        base_clock=base_mhz / 1000.0,
        avg_frequency=avg_mhz / 1000.0,
        max_frequency=max_mhz / 1000.0,
        boost_active=avg_perf > 100.0 or avg_mhz > base_mhz * 1.05,
    )


def power_info(cpu_info: CpuInfo, overall_usage: float, perf: PerfInfo) -> PowerInfo:
    """Estimate power draw as the utilised share of the TDP."""
    util = perf.avg_utility if perf.avg_utility is not None else overall_usage
    util = max(0.0, min(util, 100.0))
    return PowerInfo(current_power=util / 100.0 * cpu_info.tdp, max_power=cpu_info.tdp)


def build_cpu_data(outputs: Sequence[str]) -> CpuData:
    """Combine the outputs of the six processor scripts, in script order."""
    if len(outputs) < len(SCRIPTS):
        raise MonitorError(f"Expected {len(SCRIPTS)} script outputs, got {len(outputs)}")
    cpu_info = parse_cpu_info(outputs[0])
    core_usage = parse_core_usage(outputs[1])
    overall_usage = parse_overall_usage(outputs[2])
    top_processes = parse_top_processes(outputs[3])
    perf = parse_perf_info(outputs[4])
    try:
        temperature: float | None = parse_temperature(outputs[5])
    except MonitorError:
        temperature = None

    return CpuData(
        name=cpu_info.name,
        overall_usage=overall_usage,
        core_count=cpu_info.number_of_cores,
        thread_count=cpu_info.number_of_logical_processors,
        core_usage=core_usage,
        frequency=frequency_info(cpu_info, perf),
        power=power_info(cpu_info, overall_usage, perf),
        temperature=temperature,
        top_processes=top_processes,
    )


class CpuMonitor:
    """Collects processor statistics through a PowerShell executor."""

    def __init__(self, ps):
        self._ps = ps

    async def collect_data(self) -> CpuData:
        try:
            outputs = await self._ps.execute_batch(list(SCRIPTS))
        except Exception as exc:
            raise MonitorError(f"Failed to execute CPU monitor batch: {exc}") from exc
        return build_cpu_data(outputs)