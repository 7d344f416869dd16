"""Memory usage monitor fed by PowerShell queries."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from tuiplus.jsonout import MonitorError, parse_json_array, parse_json_object

MEMORY_INFO_SCRIPT = r"""
try {
    $os = Get-CimInstance Win32_OperatingSystem -ErrorAction Stop |
        Select-Object TotalVisibleMemorySize, FreePhysicalMemory
    if (-not $os) { throw "no data" }
    $os | ConvertTo-Json
} catch {
    [PSCustomObject]@{ TotalVisibleMemorySize = 0; FreePhysicalMemory = 0 } | ConvertTo-Json
}
"""

PHYSICAL_MEMORY_SCRIPT = r"""
function Get-MemTypeName([int]$code) {
    switch ($code) {
        20 { "DDR" } 21 { "DDR2" } 24 { "DDR3" } 26 { "DDR4" }
        27 { "LPDDR" } 28 { "LPDDR2" } 29 { "LPDDR3" } 30 { "LPDDR4" }
        34 { "DDR5" } 35 { "LPDDR5" } default { $null }
    }
}
try {
    $modules = Get-CimInstance Win32_PhysicalMemory -ErrorAction Stop
    if (-not $modules) {
        [PSCustomObject]@{ Speed = "Unknown"; MemoryType = "Unknown"; Modules = @() } | ConvertTo-Json
        return
    }
    $list = foreach ($mem in $modules) {
        $memType = Get-MemTypeName $mem.SMBIOSMemoryType
        if (-not $memType) {
            $memType = switch ([int]$mem.MemoryType) {
                20 { "DDR" } 21 { "DDR2" } 24 { "DDR3" } 26 { "DDR4" } 34 { "DDR5" }
                default { "Unknown" }
            }
        }
        $formFactor = switch ([int]$mem.FormFactor) { 12 { "SODIMM" } 8 { "DIMM" } default { $null } }
        if ($formFactor -and $memType -ne "Unknown") { $memType = "$formFactor $memType" }
        $speed = $null
        if ($mem.ConfiguredClockSpeed) { $speed = [uint32]$mem.ConfiguredClockSpeed }
        elseif ($mem.Speed) { $speed = [uint32]$mem.Speed }
        [PSCustomObject]@{
            Slot = $mem.DeviceLocator
            Capacity = [uint64]$mem.Capacity
            Speed = $speed
            MemoryType = $memType
        }
    }
    $types = @($list | ForEach-Object { $_.MemoryType } | Where-Object { $_ -and $_ -ne 'Unknown' } | Sort-Object -Unique)
    $typeSummary = if ($types.Count -eq 0) { "Unknown" } elseif ($types.Count -eq 1) { $types[0] } else { "Mixed (" + ($types -join "/") + ")" }
    $speeds = @($list | ForEach-Object { $_.Speed } | Where-Object { $_ -ne $null } | Sort-Object -Unique)
    $speedSummary = if ($speeds.Count -eq 0) { "Unknown" } elseif ($speeds.Count -eq 1) { "$($speeds[0]) MHz" } else { "$($speeds[0])-$($speeds[-1]) MHz" }
    [PSCustomObject]@{ Speed = $speedSummary; MemoryType = $typeSummary; Modules = $list } | ConvertTo-Json -Depth 4
} catch {
    [PSCustomObject]@{ Speed = "Unknown"; MemoryType = "Unknown"; Modules = @() } | ConvertTo-Json
}
"""

DETAILED_MEMORY_SCRIPT = r"""
$counters = @(
    '\Memory\Available Bytes',
    '\Memory\Cache Bytes',
    '\Memory\Standby Cache Normal Priority Bytes',
    '\Memory\Standby Cache Reserve Bytes',
    '\Memory\Standby Cache Core Bytes',
    '\Memory\Free & Zero Page List Bytes',
    '\Memory\Modified Page List Bytes'
)
$available = 0; $cached = 0; $standbyNormal = 0; $standbyReserve = 0
$standbyCore = 0; $free = 0; $modified = 0
$os = Get-CimInstance Win32_OperatingSystem -ErrorAction SilentlyContinue
$total = if ($os) { $os.TotalVisibleMemorySize * 1024 } else { 0 }
try {
    $samples = (Get-Counter -Counter $counters -ErrorAction Stop).CounterSamples
    $available = ($samples | Where-Object { $_.Path -like '*Available Bytes*' }).CookedValue
    $cached = ($samples | Where-Object { $_.Path -like '*Cache Bytes*' }).CookedValue
    $standbyNormal = ($samples | Where-Object { $_.Path -like '*Standby Cache Normal*' }).CookedValue
    $standbyReserve = ($samples | Where-Object { $_.Path -like '*Standby Cache Reserve*' }).CookedValue
    $standbyCore = ($samples | Where-Object { $_.Path -like '*Standby Cache Core*' }).CookedValue
    $free = ($samples | Where-Object { $_.Path -like '*Free && Zero*' }).CookedValue
    $modified = ($samples | Where-Object { $_.Path -like '*Modified Page*' }).CookedValue
} catch {}
if ($available -eq 0 -and $os) { $available = $os.FreePhysicalMemory * 1024 }
if ($free -eq 0 -and $os) { $free = $os.FreePhysicalMemory * 1024 }
$standby = $standbyNormal + $standbyReserve + $standbyCore
$inUse = if ($total -ge $available) { $total - $available } else { 0 }
[PSCustomObject]@{
    InUse = [uint64]$inUse
    Available = [uint64]$available
    Cached = [uint64]$cached
    Standby = [uint64]$standby
    Free = [uint64]$free
    Modified = [uint64]$modified
} | ConvertTo-Json
"""

COMMITTED_MEMORY_SCRIPT = r"""
$committed = 0; $commitLimit = 0; $commitPercent = 0
try {
    $samples = (Get-Counter -Counter @('\Memory\Committed Bytes', '\Memory\Commit Limit') -ErrorAction Stop).CounterSamples
    $committed = ($samples | Where-Object { $_.Path -like '*Committed Bytes*' }).CookedValue
    $commitLimit = ($samples | Where-Object { $_.Path -like '*Commit Limit*' }).CookedValue
    $commitPercent = if ($commitLimit -gt 0) { ($committed / $commitLimit) * 100 } else { 0 }
} catch {
    $os = Get-CimInstance Win32_OperatingSystem -ErrorAction SilentlyContinue
    $pageFile = Get-CimInstance Win32_PageFileUsage -ErrorAction SilentlyContinue | Select-Object -First 1
    if ($os) {
        $committed = ($os.TotalVisibleMemorySize - $os.FreePhysicalMemory) * 1024
        $commitLimit = $os.TotalVisibleMemorySize * 1024
        if ($pageFile) { $commitLimit += $pageFile.AllocatedBaseSize * 1024 * 1024 }
        $commitPercent = if ($commitLimit -gt 0) { ($committed / $commitLimit) * 100 } else { 0 }
    }
}
[PSCustomObject]@{
    Committed = [uint64]$committed
    CommitLimit = [uint64]$commitLimit
    CommitPercent = [double]$commitPercent
} | ConvertTo-Json
"""

TOP_PROCESSES_SCRIPT = r"""
try {
    Get-Process | Sort-Object WorkingSet64 -Descending | Select-Object -First 10 |
        ForEach-Object {
            [PSCustomObject]@{
                Pid = $_.Id
                Name = $_.ProcessName
                WorkingSet = [uint64]$_.WorkingSet64
                PrivateBytes = [uint64]$_.PrivateMemorySize64
            }
        } | ConvertTo-Json
} catch {
    "[]"
}
"""

PAGEFILE_SCRIPT = r"""
try {
    $pagefiles = Get-CimInstance Win32_PageFileUsage -ErrorAction Stop
    if (-not $pagefiles) { "[]"; return }
    $result = foreach ($pf in $pagefiles) {
        $totalSize = [uint64]($pf.AllocatedBaseSize * 1024 * 1024)
        $currentUsage = [uint64]($pf.CurrentUsage * 1024 * 1024)
        $peakUsage = [uint64]($pf.PeakUsage * 1024 * 1024)
        $usagePercent = if ($totalSize -gt 0) { ($currentUsage / $totalSize) * 100 } else { 0 }
        [PSCustomObject]@{
            Name = $pf.Name
            TotalSize = $totalSize
            CurrentUsage = $currentUsage
            PeakUsage = $peakUsage
            UsagePercent = [double]$usagePercent
        }
    }
    @($result) | ConvertTo-Json
} catch {
    "[]"
}
"""

SCRIPTS = (
    MEMORY_INFO_SCRIPT,
    PHYSICAL_MEMORY_SCRIPT,
    DETAILED_MEMORY_SCRIPT,
    COMMITTED_MEMORY_SCRIPT,
    TOP_PROCESSES_SCRIPT,
    PAGEFILE_SCRIPT,
)


@dataclass
class ProcessMemoryInfo:
    pid: int
    name: str
    working_set: int
    private_bytes: int


@dataclass
class PagefileInfo:
    name: str
    total_size: int
    current_usage: int
    peak_usage: int
    usage_percent: float


@dataclass
class RamData:
    total: int
    used: int
    available: int
    cached: int
    free: int
    speed: str
    type_name: str
    in_use: int
    standby: int
    modified: int
    committed: int
    commit_limit: int
    commit_percent: float
    top_processes: list[ProcessMemoryInfo]
    pagefiles: list[PagefileInfo]
    total_pagefile_size: int
    total_pagefile_used: int


class _MemoryInfo(NamedTuple):
    total_kb: int
    free_kb: int


class _PhysicalMemory(NamedTuple):
    speed: str
    memory_type: str


class _DetailedMemory(NamedTuple):
    in_use: int
    available: int
    cached: int
    standby: int
    free: int
    modified: int


class _CommittedMemory(NamedTuple):
    committed: int
    commit_limit: int
    commit_percent: float


def _field(record: dict[str, Any], key: str) -> Any:
    if key not in record or record[key] is None:
        raise MonitorError(f"Missing field {key!r}")
    return record[key]


def _uint(record: dict[str, Any], key: str) -> int:
    value = _field(record, key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MonitorError(f"Field {key!r} is not an unsigned integer: {value!r}")
    return value


def _float(record: dict[str, Any], key: str) -> float:
    value = _field(record, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MonitorError(f"Field {key!r} is not a number: {value!r}")
    return float(value)


def _str(record: dict[str, Any], key: str) -> str:
    value = _field(record, key)
    if not isinstance(value, str):
        raise MonitorError(f"Field {key!r} is not a string: {value!r}")
    return value


def _with_context(message: str):
    def wrap(func):
        def inner(output: str):
            try:
                return func(output)
            except MonitorError as exc:
                raise MonitorError(f"{message}: {exc}") from exc

        inner.__name__ = func.__name__
        inner.__doc__ = func.__doc__
        return inner

    return wrap


@_with_context("Failed to parse memory info")
def parse_memory_info(output: str) -> _MemoryInfo:
    """Read total and free physical memory, both in KiB."""
    record = parse_json_object(output)
    return _MemoryInfo(
        _uint(record, "TotalVisibleMemorySize"), _uint(record, "FreePhysicalMemory")
    )


@_with_context("Failed to parse physical memory info")
def parse_physical_memory_info(output: str) -> _PhysicalMemory:
    """Read the speed and type summaries of the installed modules."""
    record = parse_json_object(output)
    return _PhysicalMemory(_str(record, "Speed"), _str(record, "MemoryType"))


@_with_context("Failed to parse detailed memory info")
def parse_detailed_memory(output: str) -> _DetailedMemory:
    """Read the in-use/standby/modified breakdown, in bytes."""
    record = parse_json_object(output)
    return _DetailedMemory(
        *(
            _uint(record, key)
            for key in ("InUse", "Available", "Cached", "Standby", "Free", "Modified")
        )
    )


@_with_context("Failed to parse committed memory info")
def parse_committed_memory(output: str) -> _CommittedMemory:
    """Read committed bytes, the commit limit and their ratio in percent."""
    record = parse_json_object(output)
    return _CommittedMemory(
        _uint(record, "Committed"),
        _uint(record, "CommitLimit"),
        _float(record, "CommitPercent"),
    )


@_with_context("Failed to parse top processes")
def parse_top_memory_consumers(output: str) -> list[ProcessMemoryInfo]:
    """Read the processes with the largest working sets."""
    return [
        ProcessMemoryInfo(
            pid=_uint(item, "Pid"),
            name=_str(item, "Name"),
            working_set=_uint(item, "WorkingSet"),
            private_bytes=_uint(item, "PrivateBytes"),
        )
        for item in parse_json_array(output)
    ]


@_with_context("Failed to parse pagefiles")
def parse_pagefile_info(output: str) -> list[PagefileInfo]:
    """Read the configured page files."""
    return [
        PagefileInfo(
            name=_str(item, "Name"),
            total_size=_uint(item, "TotalSize"),
            current_usage=_uint(item, "CurrentUsage"),
            peak_usage=_uint(item, "PeakUsage"),
            usage_percent=_float(item, "UsagePercent"),
        )
        for item in parse_json_array(output)
    ]


def build_ram_data(outputs: Sequence[str]) -> RamData:
    """Combine the outputs of the six memory scripts, in script order."""
    if len(outputs) < len(SCRIPTS):
        raise MonitorError(
            f"Expected {len(SCRIPTS)} script outputs, got {len(outputs)}"
        )
    memory = parse_memory_info(outputs[0])
    physical = parse_physical_memory_info(outputs[1])
    detailed = parse_detailed_memory(outputs[2])
    committed = parse_committed_memory(outputs[3])
    top_processes = parse_top_memory_consumers(outputs[4])
    pagefiles = parse_pagefile_info(outputs[5])

    return RamData(
        total=memory.total_kb * 1024,
        used=max(memory.total_kb - memory.free_kb, 0) * 1024,
        available=memory.free_kb * 1024,
        cached=detailed.cached,
        free=detailed.free,
        speed=physical.speed,
        type_name=physical.memory_type,
        in_use=detailed.in_use,
        standby=detailed.standby,
        modified=detailed.modified,
        committed=committed.committed,
        commit_limit=committed.commit_limit,
        commit_percent=committed.commit_percent,
        top_processes=top_processes,
        pagefiles=pagefiles,
        total_pagefile_size=sum(pf.total_size for pf in pagefiles),
        total_pagefile_used=sum(pf.current_usage for pf in pagefiles),
    )


class RamMonitor:
    """Collects memory statistics through a PowerShell executor."""

    def __init__(self, ps):
        self._ps = ps

    async def collect_data(self) -> RamData:
        try:
            outputs = await self._ps.execute_batch(list(SCRIPTS))
        except Exception as exc:
            raise MonitorError(f"Failed to execute RAM monitor batch: {exc}") from exc
        return build_ram_data(outputs)