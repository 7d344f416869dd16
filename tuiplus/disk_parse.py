"""Parsers for the JSON printed by the disk monitoring scripts."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tuiplus.jsonout import MonitorError, parse_json_array

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

_T = TypeVar("_T")


@dataclass
class DiskIOStats:
    """Throughput of one physical disk."""

    disk_number: int
    read_speed: float  # MB/s
    write_speed: float  # MB/s
    read_iops: float
    write_iops: float
    queue_depth: float
    avg_response_time: float  # milliseconds
    active_time: float  # percent


@dataclass
class DiskProcessActivity:
    """Disk traffic caused by one process, in bytes per second."""

    process_name: str
    pid: int
    io_bytes_per_sec: float
    read_bytes_per_sec: float
    write_bytes_per_sec: float


@dataclass
class PhysicalDiskInfo:
    disk_number: int
    friendly_name: str
    model: str
    media_type: str
    bus_type: str
    size: int
    health_status: str
    operational_status: str
    temperature: float | None = None
    write_cache_enabled: bool = False
    power_on_hours: int | None = None
    tbw: int | None = None
    wear_level: float | None = None
    partitions: list[str] = field(default_factory=list)


@dataclass
class DriveInfo:
    letter: str
    name: str
    drive_type: str
    file_system: str
    total: int
    used: int
    free: int
    disk_number: int | None = None


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


def _check_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise MonitorError(f"Field {key!r} is not a string: {value!r}")
    return value


def _required(check: Callable[[str, Any], _T]) -> Callable[[dict[str, Any], str], _T]:
    return lambda record, key: check(key, _present(record, key))


def _optional(
    check: Callable[[str, Any], _T],
) -> Callable[[dict[str, Any], str], _T | None]:
    def read(record: dict[str, Any], key: str) -> _T | None:
        value = record.get(key)
        return None if value is None else check(key, value)

    return read


def _u32(key: str, value: Any) -> int:
    return _check_uint(key, value, _U32_MAX)


def _u64(key: str, value: Any) -> int:
    return _check_uint(key, value, _U64_MAX)


def _bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise MonitorError(f"Field {key!r} is not a boolean: {value!r}")
    return value


def _str_list(key: str, value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MonitorError(f"Field {key!r} is not a list of strings: {value!r}")
    return list(value)


_req_u32 = _required(_u32)
_req_u64 = _required(_u64)
_req_str = _required(_check_str)
_req_bool = _required(_bool)
_opt_u32 = _optional(_u32)
_opt_u64 = _optional(_u64)
_opt_float = _optional(_check_float)
_opt_str = _optional(_check_str)
_opt_str_list = _optional(_str_list)


def _or(value: _T | None, default: _T) -> _T:
    return default if value is None else value


def parse_physical_disks(output: str) -> list[PhysicalDiskInfo]:
    """Read the physical disk descriptions, including SMART data."""
    with _context("Failed to parse physical disks"):
        return [
            PhysicalDiskInfo(
                disk_number=_req_u32(d, "DiskNumber"),
                friendly_name=_req_str(d, "FriendlyName"),
                model=_req_str(d, "Model"),
                media_type=_req_str(d, "MediaType"),
                bus_type=_req_str(d, "BusType"),
                size=_req_u64(d, "Size"),
                health_status=_req_str(d, "HealthStatus"),
                operational_status=_req_str(d, "OperationalStatus"),
                temperature=_opt_float(d, "Temperature"),
                write_cache_enabled=_req_bool(d, "WriteCacheEnabled"),
                power_on_hours=_opt_u64(d, "PowerOnHours"),
                tbw=_opt_u64(d, "TBW"),
                wear_level=_opt_float(d, "WearLevel"),
                partitions=_or(_opt_str_list(d, "Partitions"), []),
            )
            for d in parse_json_array(output)
        ]


def parse_logical_drives(output: str) -> list[DriveInfo]:
    """Read the fixed logical drives with their space usage."""
    with _context("Failed to parse logical drives"):
        drives = []
        for d in parse_json_array(output):
            total = _or(_opt_u64(d, "Total"), 0)
            free = _or(_opt_u64(d, "Free"), 0)
            drives.append(
                DriveInfo(
                    letter=_req_str(d, "Letter"),
                    name=_or(_opt_str(d, "Name"), "Local Disk"),
                    drive_type=_or(_opt_str(d, "DriveType"), "Fixed"),
                    file_system=_or(_opt_str(d, "FileSystem"), "NTFS"),
                    total=total,
                    used=max(total - free, 0),
                    free=free,
                    disk_number=_opt_u32(d, "DiskNumber"),
                )
            )
        return drives


def parse_io_stats(output: str) -> list[DiskIOStats]:
    """Read per-disk throughput; missing counters count as zero."""
    with _context("Failed to parse I/O stats"):
        return [
            DiskIOStats(
                disk_number=_req_u32(s, "DiskNumber"),
                read_speed=_or(_opt_float(s, "ReadSpeed"), 0.0),
                write_speed=_or(_opt_float(s, "WriteSpeed"), 0.0),
                read_iops=_or(_opt_float(s, "ReadIOPS"), 0.0),
                write_iops=_or(_opt_float(s, "WriteIOPS"), 0.0),
                queue_depth=_or(_opt_float(s, "QueueDepth"), 0.0),
                avg_response_time=_or(_opt_float(s, "AvgResponseTime"), 0.0),
                active_time=_or(_opt_float(s, "ActiveTime"), 0.0),
            )
            for s in parse_json_array(output)
        ]


def parse_process_activity(output: str) -> list[DiskProcessActivity]:
    """Read the processes with the most disk traffic."""
    with _context("Failed to parse process activity"):
        return [
            DiskProcessActivity(
                process_name=_req_str(a, "ProcessName"),
                pid=_req_u32(a, "PID"),
                io_bytes_per_sec=_or(_opt_float(a, "IOBytesPerSec"), 0.0),
                read_bytes_per_sec=_or(_opt_float(a, "ReadBytesPerSec"), 0.0),
                write_bytes_per_sec=_or(_opt_float(a, "WriteBytesPerSec"), 0.0),
            )
            for a in parse_json_array(output)
        ]