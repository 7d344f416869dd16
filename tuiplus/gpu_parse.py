"""Parsers for the JSON printed by the graphics card scripts."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from tuiplus.jsonout import MonitorError, parse_json_array, parse_json_object

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1


@dataclass
class GpuProcessInfo:
    """A process using the GPU; ``gpu_usage`` is -1.0 when unknown."""

    pid: int
    name: str
    gpu_usage: float
    vram: int
    process_type: str


@dataclass
class GpuData:
    name: str
    gpu_index: int
    utilization: float
    memory_used: int
    memory_total: int
    temperature: float
    power_usage: float
    power_limit: float
    fan_speed: float
    clock_speed: int
    memory_clock: int
    driver_version: str
    bus_id: str
    cuda_version: str
    processes: list[GpuProcessInfo] = field(default_factory=list)


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


def _opt_uint(record: dict[str, Any], key: str, limit: int = _U64_MAX) -> int | None:
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


def _clamp_percent(value: float) -> float:
    return max(0.0, min(value, 100.0))


def _cap_used(used: int, total: int) -> int:
    return min(used, total) if total > 0 else used


def stub_gpu_data() -> GpuData:
    """Placeholder reading used when no graphics card answers."""
    return GpuData(
        name="No GPU detected",
        gpu_index=0,
        utilization=0.0,
        memory_used=0,
        memory_total=0,
        temperature=0.0,
        power_usage=0.0,
        power_limit=0.0,
        fan_speed=-1.0,
        clock_speed=0,
        memory_clock=0,
        driver_version="N/A",
        bus_id="N/A",
        cuda_version="N/A",
    )


def parse_nvidia_smi_json(
    output: str, processes: list[GpuProcessInfo] | None = None
) -> GpuData:
    """Read the card reported by the nvidia-smi query script."""
    with _context("Failed to parse nvidia-smi data"):
        info = parse_json_object(output)
        _float(info, "UtilizationMemory")
        memory_total = _uint(info, "MemoryTotal", _U64_MAX)
        memory_used = _uint(info, "MemoryUsed", _U64_MAX)
        return GpuData(
            name=_str(info, "Name"),
            gpu_index=_uint(info, "GpuIndex"),
            utilization=_clamp_percent(_float(info, "UtilizationGpu")),
            memory_used=_cap_used(memory_used, memory_total),
            memory_total=memory_total,
            temperature=_float(info, "Temperature"),
            power_usage=_float(info, "PowerDraw"),
            power_limit=_float(info, "PowerLimit"),
            fan_speed=_float(info, "FanSpeed"),
            clock_speed=_uint(info, "ClockGraphics"),
            memory_clock=_uint(info, "ClockMemory"),
            driver_version=_str(info, "DriverVersion"),
            bus_id=_str(info, "BusId"),
            cuda_version=_str(info, "CudaVersion"),
            processes=list(processes or []),
        )


def parse_wmi_gpu_json(
    output: str, processes: list[GpuProcessInfo] | None = None
) -> GpuData:
    """Read the card reported by the generic video controller script."""
    with _context("Failed to parse GPU info"):
        info = parse_json_object(output)
        utilization = _opt_float(info, "Utilization")
        memory_total = _opt_uint(info, "MemoryTotal")
        memory_used = _opt_uint(info, "MemoryUsed")
        memory_total = 0 if memory_total is None else memory_total
        memory_used = 0 if memory_used is None else memory_used
        return GpuData(
            name=_str(info, "Name"),
            gpu_index=0,
            utilization=_clamp_percent(0.0 if utilization is None else utilization),
            memory_used=_cap_used(memory_used, memory_total),
            memory_total=memory_total,
            temperature=0.0,
            power_usage=0.0,
            power_limit=0.0,
            fan_speed=-1.0,
            clock_speed=0,
            memory_clock=0,
            driver_version=_str(info, "DriverVersion"),
            bus_id="N/A",
            cuda_version="N/A",
            processes=list(processes or []),
        )


def _process(record: dict[str, Any], default_type: str) -> GpuProcessInfo:
    usage = _opt_float(record, "GpuUsage")
    usage = 0.0 if usage is None else usage
    kind = record.get("Type")
    if kind is None:
        kind = ""
    elif not isinstance(kind, str):
        raise MonitorError(f"Field 'Type' is not a string: {kind!r}")
    return GpuProcessInfo(
        pid=_uint(record, "Pid"),
        name=_str(record, "Name"),
        gpu_usage=-1.0 if usage < 0.0 else usage,
        vram=_uint(record, "Vram", _U64_MAX),
        process_type=kind if kind.strip() else default_type,
    )


def parse_gpu_processes(output: str, default_type: str = "Unknown") -> list[GpuProcessInfo]:
    """Read a GPU process list; blank types become ``default_type``."""
    with _context("Failed to parse GPU process list"):
        return [_process(record, default_type) for record in parse_json_array(output)]