"""Process list monitor with CPU usage derived from consumed CPU time."""

from __future__ import annotations

import math
import os
import time
from dataclasses import dataclass, field
from typing import Any

from tuiplus.jsonout import MonitorError, parse_json_array

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

PROCESS_LIST_SCRIPT = r"""
$cpuById = @{}
Get-CimInstance Win32_PerfFormattedData_PerfProc_Process -ErrorAction SilentlyContinue |
    Where-Object { $_.IDProcess -ne 0 -and $_.Name -ne '_Total' -and $_.Name -ne 'Idle' } |
    ForEach-Object { $cpuById[$_.IDProcess] = $_.PercentProcessorTime }
$cimById = @{}
Get-CimInstance Win32_Process -ErrorAction SilentlyContinue |
    ForEach-Object { $cimById[$_.ProcessId] = $_ }
Get-Process | ForEach-Object {
    $cpu = $cpuById[$_.Id]
    $cim = $cimById[$_.Id]
    $user = 'N/A'
    if ($cim) {
        try {
            $owner = Invoke-CimMethod -InputObject $cim -MethodName GetOwner -ErrorAction Stop
            if ($owner -and $owner.User) { $user = $owner.User }
        } catch {}
    }
    $path = if ($cim -and $cim.ExecutablePath) { $cim.ExecutablePath } elseif ($_.Path) { $_.Path } else { $null }
    $startTime = $null
    try { if ($_.StartTime) { $startTime = $_.StartTime.ToString('o') } } catch {}
    $ioRead = 0
    $ioWrite = 0
    try {
        if ($_.IO) { $ioRead = $_.IO.ReadTransferCount; $ioWrite = $_.IO.WriteTransferCount }
    } catch {}
    [PSCustomObject]@{
        Id = $_.Id
        ProcessName = $_.ProcessName
        CpuPercent = if ($null -ne $cpu) { [double]$cpu } else { 0.0 }
        CpuTimeSeconds = if ($null -ne $_.CPU) { [double]$_.CPU } else { 0.0 }
        Threads = if ($_.Threads) { $_.Threads.Count } else { 0 }
        Memory = [uint64]$_.WorkingSet64
        User = $user
        SessionId = $_.SessionId
        Path = $path
        StartTime = $startTime
        HandleCount = $_.HandleCount
        IOReadBytes = [uint64]$ioRead
        IOWriteBytes = [uint64]$ioWrite
    }
} | ConvertTo-Json
"""


@dataclass
class ProcessSample:
    """One process as reported by the process list script."""

    id: int
    process_name: str
    cpu_percent: float | None = None
    cpu_time_seconds: float | None = None
    threads: int | None = None
    memory: int | None = None
    user: str | None = None
    session_id: int | None = None
    path: str | None = None
    start_time: str | None = None
    handle_count: int | None = None
    io_read_bytes: int | None = None
    io_write_bytes: int | None = None


@dataclass
class ProcessEntry:
    pid: int
    name: str
    cpu_usage: float
    memory: int
    threads: int
    user: str
    command_line: str | None = None
    start_time: str | None = None
    handle_count: int = 0
    io_read_bytes: int = 0
    io_write_bytes: int = 0


@dataclass
class ProcessData:
    processes: list[ProcessEntry] = field(default_factory=list)


def normalize_user(user: str | None, session_id: int | None) -> str:
    """Return the owner name, or SYSTEM/USER guessed from the session."""
    if user is not None:
        trimmed = user.strip()
        if trimmed and trimmed != "N/A":
            return trimmed
    return "SYSTEM" if session_id == 0 else "USER"


def _check_uint(key: str, value: Any, limit: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= limit:
        raise MonitorError(f"Field {key!r} is not an unsigned integer: {value!r}")
    return value


def _uint(record: dict[str, Any], key: str) -> int:
    value = record.get(key)
    if value is None:
        raise MonitorError(f"Missing field {key!r}")
    return _check_uint(key, value, _U32_MAX)


def _opt_uint(record: dict[str, Any], key: str, limit: int = _U32_MAX) -> int | None:
    value = record.get(key)
    return None if value is None else _check_uint(key, value, limit)


def _opt_float(record: dict[str, Any], key: str) -> float | None:
    value = record.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MonitorError(f"Field {key!r} is not a number: {value!r}")
    return float(value)


def _opt_str(record: dict[str, Any], key: str) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MonitorError(f"Field {key!r} is not a string: {value!r}")
    return value


def _sample(record: dict[str, Any]) -> ProcessSample:
    name = record.get("ProcessName")
    if not isinstance(name, str):
        raise MonitorError(f"Field 'ProcessName' is not a string: {name!r}")
    return ProcessSample(
        id=_uint(record, "Id"),
        process_name=name,
        cpu_percent=_opt_float(record, "CpuPercent"),
        cpu_time_seconds=_opt_float(record, "CpuTimeSeconds"),
        threads=_opt_uint(record, "Threads"),
        memory=_opt_uint(record, "Memory", _U64_MAX),
        user=_opt_str(record, "User"),
        session_id=_opt_uint(record, "SessionId"),
        path=_opt_str(record, "Path"),
        start_time=_opt_str(record, "StartTime"),
        handle_count=_opt_uint(record, "HandleCount"),
        io_read_bytes=_opt_uint(record, "IOReadBytes", _U64_MAX),
        io_write_bytes=_opt_uint(record, "IOWriteBytes", _U64_MAX),
    )


def parse_process_samples(output: str) -> list[ProcessSample]:
    """Read the process list printed by the process list script."""
    try:
        return [_sample(record) for record in parse_json_array(output)]
    except MonitorError as exc:
        raise MonitorError(f"Failed to parse process list: {exc}") from exc


class ProcessMonitor:
    """Lists processes; CPU usage comes from CPU time used between two readings."""

    def __init__(self, ps, cpu_count: int | None = None):
        self._ps = ps
        count = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        self._cpu_count = float(max(count, 1))
        self._last_cpu_times: dict[int, float] = {}
        self._last_timestamp: float | None = None

    def build_entries(
        self, samples: list[ProcessSample], now: float | None = None
    ) -> list[ProcessEntry]:
        """Turn samples into entries, remembering CPU times for the next call.

        ``now`` is a monotonic time in seconds; it defaults to the current one.
        """
        if not samples:
            return []
        if now is None:
            now = time.monotonic()

        time_delta = now - self._last_timestamp if self._last_timestamp is not None else 0.0
        entries = []
        current_cpu_times: dict[int, float] = {}

        for sample in samples:
            cpu_time = sample.cpu_time_seconds if sample.cpu_time_seconds is not None else 0.0
            current_cpu_times[sample.id] = cpu_time

            cpu_usage = sample.cpu_percent if sample.cpu_percent is not None else 0.0
            previous = self._last_cpu_times.get(sample.id)
            if time_delta > 0.0 and previous is not None:
                delta = max(cpu_time - previous, 0.0)
                computed = delta / time_delta * 100.0 / self._cpu_count
                if math.isfinite(computed):
                    cpu_usage = computed

            if not math.isfinite(cpu_usage) or cpu_usage < 0.0:
                cpu_usage = 0.0
            cpu_usage = min(cpu_usage, 100.0)

            entries.append(
                ProcessEntry(
                    pid=sample.id,
                    name=sample.process_name,
                    cpu_usage=cpu_usage,
                    memory=sample.memory if sample.memory is not None else 0,
                    threads=sample.threads if sample.threads is not None else 1,
                    user=normalize_user(sample.user, sample.session_id),
                    command_line=sample.path,
                    start_time=sample.start_time,
                    handle_count=sample.handle_count if sample.handle_count is not None else 0,
                    io_read_bytes=sample.io_read_bytes if sample.io_read_bytes is not None else 0,
                    io_write_bytes=sample.io_write_bytes if sample.io_write_bytes is not None else 0,
                )
            )

        self._last_timestamp = now
        self._last_cpu_times = current_cpu_times
        return entries

    async def collect_data(self) -> ProcessData:
        output = await self._ps.execute(PROCESS_LIST_SCRIPT)
        samples = parse_process_samples(output)
        return ProcessData(processes=self.build_entries(samples))