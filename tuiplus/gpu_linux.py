"""Graphics card readings from the nvidia-smi command line tool."""

from __future__ import annotations

import subprocess

from tuiplus.gpu_parse import GpuData, GpuProcessInfo
from tuiplus.jsonout import MonitorError

_MB = 1024 * 1024
_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

GPU_QUERY_ARGS = (
    "--query-gpu=name,temperature.gpu,utilization.gpu,utilization.memory,"
    "memory.used,memory.total,power.draw,power.limit,fan.speed,"
    "clocks.current.graphics,clocks.current.memory,driver_version",
    "--format=csv,noheader,nounits",
)

COMPUTE_APPS_ARGS = (
    "--query-compute-apps=pid,process_name,used_memory",
    "--format=csv,noheader,nounits",
)


def _float(text: str, default: float) -> float:
    if "_" in text:
        return default
    try:
        return float(text)
    except ValueError:
        return default


def _uint(text: str, default: int, limit: int) -> int:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not (digits.isascii() and digits.isdigit()):
        return default
    value = int(digits)
    return value if value <= limit else default


def parse_nvidia_csv(
    stdout: str, processes: list[GpuProcessInfo] | None = None
) -> GpuData:
    """Read one line of ``nvidia-smi --query-gpu`` CSV output."""
    parts = [part.strip() for part in stdout.strip().split(",")]
    if len(parts) < 12:
        raise MonitorError("Invalid nvidia-smi output")

    fan = parts[8]
    fan_speed = -1.0 if fan in ("[N/A]", "N/A") else _float(fan, -1.0)

    return GpuData(
        name=parts[0],
        gpu_index=0,
        utilization=_float(parts[2], 0.0),
        memory_used=_uint(parts[4], 0, _U64_MAX) * _MB,
        memory_total=_uint(parts[5], 0, _U64_MAX) * _MB,
        temperature=_float(parts[1], 0.0),
        power_usage=_float(parts[6], 0.0),
        power_limit=_float(parts[7], 300.0),
        fan_speed=fan_speed,
        clock_speed=_uint(parts[9], 0, _U32_MAX),
        memory_clock=_uint(parts[10], 0, _U32_MAX),
        driver_version=parts[11],
        bus_id="N/A",
        cuda_version="N/A",
        processes=list(processes or []),
    )


def parse_compute_apps_csv(stdout: str) -> list[GpuProcessInfo]:
    """Read ``nvidia-smi --query-compute-apps`` CSV output."""
    if not stdout.strip():
        return []
    processes = []
    for line in stdout.splitlines():
        parts = [part.strip() for part in line.split(",")]
        if len(parts) < 3:
            continue
        processes.append(
            GpuProcessInfo(
                pid=_uint(parts[0], 0, _U32_MAX),
                name=parts[1],
                gpu_usage=0.0,
                vram=_uint(parts[2], 0, _U64_MAX) * _MB,
                process_type="Compute",
            )
        )
    return processes


def _run_nvidia_smi(args: tuple[str, ...]) -> str:
    try:
        result = subprocess.run(["nvidia-smi", *args], capture_output=True)
    except OSError as exc:
        raise MonitorError(f"Failed to run nvidia-smi: {exc}") from exc
    return result.stdout.decode("utf-8", errors="replace")


def query_compute_apps() -> list[GpuProcessInfo]:
    """List the compute processes nvidia-smi reports."""
    return parse_compute_apps_csv(_run_nvidia_smi(COMPUTE_APPS_ARGS))


def query_nvidia_smi() -> GpuData:
    """Read the card and its compute processes from nvidia-smi."""
    stdout = _run_nvidia_smi(GPU_QUERY_ARGS)
    try:
        processes = query_compute_apps()
    except MonitorError:
        processes = []
    return parse_nvidia_csv(stdout, processes)