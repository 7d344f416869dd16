"""Disk monitor: physical disks, drives, throughput and its recent history."""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass, field

from tuiplus.disk_parse import (
    DiskIOStats,
    DiskProcessActivity,
    DriveInfo,
    PhysicalDiskInfo,
    parse_io_stats,
    parse_logical_drives,
    parse_physical_disks,
    parse_process_activity,
)
from tuiplus.jsonout import MonitorError

HISTORY_LENGTH = 60

PHYSICAL_DISKS_SCRIPT = r"""
if (-not (Get-Command Get-PhysicalDisk -ErrorAction SilentlyContinue)) { "[]"; return }
$result = @()
foreach ($disk in (Get-PhysicalDisk -ErrorAction SilentlyContinue)) {
    $partitions = Get-Partition -DiskNumber $disk.DeviceId -ErrorAction SilentlyContinue |
        Where-Object { $_.DriveLetter } | ForEach-Object { "$($_.DriveLetter):" }
    $smart = $null
    try { $smart = Get-StorageReliabilityCounter -PhysicalDisk $disk -ErrorAction SilentlyContinue } catch {}
    $mediaType = switch ($disk.MediaType) {
        "HDD" { "HDD" }
        "SSD" { if ($disk.BusType -eq "NVMe") { "NVMe SSD" } else { "SSD" } }
        "SCM" { "Storage Class Memory" }
        default { "$($disk.MediaType)" }
    }
    $temperature = $null
    try {
        $predict = Get-CimInstance -Namespace root/wmi -ClassName MSStorageDriver_FailurePredictData -ErrorAction SilentlyContinue |
            Where-Object { $_.InstanceName -like "*$($disk.DeviceId)*" } | Select-Object -First 1
        if ($predict -and $predict.VendorSpecific) { $temperature = $predict.VendorSpecific[12] }
    } catch {}
    $tbw = $null
    $wearLevel = $null
    if ($smart -and $disk.MediaType -eq "SSD") {
        try { $tbw = [uint64]($smart.WriteLatencyMax * 512) } catch {}
        try { $wearLevel = 100.0 - ($smart.Wear) } catch {}
    }
    $health = switch ($disk.HealthStatus) {
        0 { "Healthy" } 1 { "Warning" } 2 { "Unhealthy" } 5 { "Unknown" } default { "Healthy" }
    }
    $result += [PSCustomObject]@{
        DiskNumber = [uint32]$disk.DeviceId
        FriendlyName = $disk.FriendlyName
        Model = $disk.Model
        MediaType = $mediaType
        BusType = "$($disk.BusType)"
        Size = [uint64]$disk.Size
        HealthStatus = $health
        OperationalStatus = "$($disk.OperationalStatus)"
        Temperature = $temperature
        WriteCacheEnabled = if ($null -ne $disk.WriteCacheEnabled) { [bool]$disk.WriteCacheEnabled } else { $false }
        PowerOnHours = if ($smart) { [uint64]$smart.PowerOnHours } else { $null }
        TBW = $tbw
        WearLevel = $wearLevel
        Partitions = @($partitions)
    }
}
$result | ConvertTo-Json -Depth 3
"""

LOGICAL_DRIVES_SCRIPT = r"""
try {
    $result = Get-CimInstance Win32_LogicalDisk -ErrorAction Stop |
        Where-Object { $_.DriveType -eq 3 } | ForEach-Object {
            $diskNumber = $null
            try {
                $partition = Get-Partition -DriveLetter $_.DeviceID[0] -ErrorAction SilentlyContinue
                if ($partition) { $diskNumber = $partition.DiskNumber }
            } catch {}
            [PSCustomObject]@{
                Letter = $_.DeviceID
                Name = if ($_.VolumeName) { $_.VolumeName } else { "" }
                DriveType = "Fixed"
                FileSystem = $_.FileSystem
                Total = [uint64]$_.Size
                Free = [uint64]$_.FreeSpace
                DiskNumber = $diskNumber
            }
        }
    if ($result) { $result | ConvertTo-Json } else { "[]" }
} catch {
    "[]"
}
"""

IO_STATS_SCRIPT = r"""
if (-not (Get-Command Get-PhysicalDisk -ErrorAction SilentlyContinue) -or
    -not (Get-Command Get-Counter -ErrorAction SilentlyContinue)) { "[]"; return }
$result = @()
foreach ($disk in (Get-PhysicalDisk -ErrorAction SilentlyContinue)) {
    $id = [uint32]$disk.DeviceId
    $stat = [ordered]@{
        DiskNumber = $id; ReadSpeed = 0.0; WriteSpeed = 0.0; ReadIOPS = 0.0
        WriteIOPS = 0.0; QueueDepth = 0.0; AvgResponseTime = 0.0; ActiveTime = 0.0
    }
    try {
        $names = @('Disk Read Bytes/sec', 'Disk Write Bytes/sec', 'Disk Reads/sec', 'Disk Writes/sec',
                   'Current Disk Queue Length', 'Avg. Disk sec/Transfer', '% Disk Time')
        $paths = $names | ForEach-Object { "\PhysicalDisk($id *)\$_" }
        $counters = Get-Counter -Counter $paths -ErrorAction SilentlyContinue
        foreach ($sample in $counters.CounterSamples) {
            $v = $sample.CookedValue
            if ($sample.Path -like "*Read Bytes/sec*") { $stat.ReadSpeed = [math]::Round($v / 1MB, 2) }
            elseif ($sample.Path -like "*Write Bytes/sec*") { $stat.WriteSpeed = [math]::Round($v / 1MB, 2) }
            elseif ($sample.Path -like "*Reads/sec*") { $stat.ReadIOPS = [math]::Round($v, 2) }
            elseif ($sample.Path -like "*Writes/sec*") { $stat.WriteIOPS = [math]::Round($v, 2) }
            elseif ($sample.Path -like "*Queue Length*") { $stat.QueueDepth = [math]::Round($v, 2) }
            elseif ($sample.Path -like "*sec/Transfer*") { $stat.AvgResponseTime = [math]::Round($v * 1000, 2) }
            elseif ($sample.Path -like "*% Disk Time*") { $stat.ActiveTime = [math]::Round($v, 2) }
        }
    } catch {}
    $result += [PSCustomObject]$stat
}
$result | ConvertTo-Json -Depth 2
"""

PROCESS_ACTIVITY_SCRIPT = r"""
if (-not (Get-Command Get-Counter -ErrorAction SilentlyContinue)) { "[]"; return }
try {
    $result = @()
    $samples = (Get-Counter '\Process(*)\IO Data Bytes/sec' -ErrorAction Stop).CounterSamples |
        Where-Object { $_.CookedValue -gt 0 } |
        Sort-Object -Property CookedValue -Descending | Select-Object -First 10
    foreach ($sample in $samples) {
        if ($sample.Path -notmatch '\\Process\(([^)]+)\)') { continue }
        $name = $matches[1]
        $proc = Get-Process -Name $name -ErrorAction SilentlyContinue | Select-Object -First 1
        if (-not $proc) { continue }
        $read = 0.0
        $write = 0.0
        try { $read = (Get-Counter "\Process($name)\IO Read Bytes/sec" -ErrorAction SilentlyContinue).CounterSamples[0].CookedValue } catch {}
        try { $write = (Get-Counter "\Process($name)\IO Write Bytes/sec" -ErrorAction SilentlyContinue).CounterSamples[0].CookedValue } catch {}
        $result += [PSCustomObject]@{
            ProcessName = $name
            PID = $proc.Id
            IOBytesPerSec = [math]::Round($sample.CookedValue, 2)
            ReadBytesPerSec = [math]::Round($read, 2)
            WriteBytesPerSec = [math]::Round($write, 2)
        }
    }
    $result | ConvertTo-Json -Depth 2
} catch {
    "[]"
}
"""

SCRIPTS = (
    PHYSICAL_DISKS_SCRIPT,
    LOGICAL_DRIVES_SCRIPT,
    IO_STATS_SCRIPT,
    PROCESS_ACTIVITY_SCRIPT,
)


def _history_deque() -> deque[float]:
    return deque(maxlen=HISTORY_LENGTH)


@dataclass
class DiskIOHistory:
    """The last 60 throughput samples of one disk."""

    disk_number: int
    read_history: deque[float] = field(default_factory=_history_deque)
    write_history: deque[float] = field(default_factory=_history_deque)
    iops_history: deque[float] = field(default_factory=_history_deque)


@dataclass
class DiskData:
    physical_disks: list[PhysicalDiskInfo] = field(default_factory=list)
    logical_drives: list[DriveInfo] = field(default_factory=list)
    io_stats: list[DiskIOStats] = field(default_factory=list)
    process_activity: list[DiskProcessActivity] = field(default_factory=list)
    io_history: list[DiskIOHistory] = field(default_factory=list)


class DiskMonitor:
    """Collects disk statistics through a PowerShell executor."""

    def __init__(self, ps):
        self._ps = ps
        self._history: dict[int, DiskIOHistory] = {}

    def update_history(self, io_stats: list[DiskIOStats]) -> list[DiskIOHistory]:
        """Record one sample per disk and return copies of every disk's history."""
        for stat in io_stats:
            history = self._history.setdefault(
                stat.disk_number, DiskIOHistory(stat.disk_number)
            )
            history.read_history.append(stat.read_speed)
            history.write_history.append(stat.write_speed)
            history.iops_history.append(stat.read_iops + stat.write_iops)
        return [copy.deepcopy(history) for history in self._history.values()]

    async def collect_data(self) -> DiskData:
        try:
            outputs = await self._ps.execute_batch(list(SCRIPTS))
        except Exception as exc:
            raise MonitorError(f"Failed to execute disk monitor batch: {exc}") from exc
        if len(outputs) < len(SCRIPTS):
            raise MonitorError(
                f"Expected {len(SCRIPTS)} script outputs, got {len(outputs)}"
            )

        physical_disks = parse_physical_disks(outputs[0])
        logical_drives = parse_logical_drives(outputs[1])
        io_stats = parse_io_stats(outputs[2])
        process_activity = parse_process_activity(outputs[3])

        return DiskData(
            physical_disks=physical_disks,
            logical_drives=logical_drives,
            io_stats=io_stats,
            process_activity=process_activity,
            io_history=self.update_history(io_stats),
        )