import json

import pytest

from tuiplus.disk_parse import (
    DiskIOStats,
    parse_io_stats,
    parse_logical_drives,
    parse_physical_disks,
    parse_process_activity,
)
from tuiplus.jsonout import MonitorError


def _disk(**overrides):
    record = {
        "DiskNumber": 0,
        "FriendlyName": "Example Disk",
        "Model": "Example Model",
        "MediaType": "NVMe SSD",
        "BusType": "NVMe",
        "Size": 512_000_000_000,
        "HealthStatus": "Healthy",
        "OperationalStatus": "OK",
        "Temperature": None,
        "WriteCacheEnabled": True,
        "PowerOnHours": 1200,
        "TBW": None,
        "WearLevel": 97.5,
        "Partitions": ["C:", "D:"],
    }
    record.update(overrides)
    return record


def test_physical_disks_from_array():
    disks = parse_physical_disks(json.dumps([_disk(), _disk(DiskNumber=1, Partitions=None)]))
    assert [d.disk_number for d in disks] == [0, 1]
    assert disks[0].partitions == ["C:", "D:"]
    assert disks[1].partitions == []
    assert disks[0].power_on_hours == 1200
    assert disks[0].wear_level == 97.5
    assert disks[0].tbw is None
    assert disks[0].write_cache_enabled is True


def test_physical_disk_single_object_with_bom():
    disks = parse_physical_disks("\ufeff" + json.dumps(_disk(MediaType="HDD")))
    assert len(disks) == 1
    assert disks[0].media_type == "HDD"


@pytest.mark.parametrize("output", ["", "   ", "[]", "not json", "\ufeff[]"])
def test_physical_disks_empty_or_non_json(output):
    assert parse_physical_disks(output) == []


def test_physical_disks_missing_required_field():
    record = _disk()
    del record["Model"]
    with pytest.raises(MonitorError, match="Failed to parse physical disks"):
        parse_physical_disks(json.dumps([record]))


def test_physical_disks_negative_size_rejected():
    with pytest.raises(MonitorError):
        parse_physical_disks(json.dumps(_disk(Size=-1)))


def test_logical_drives_defaults():
    drives = parse_logical_drives(json.dumps({"Letter": "C:"}))
    assert len(drives) == 1
    drive = drives[0]
    assert drive.name == "Local Disk"
    assert drive.drive_type == "Fixed"
    assert drive.file_system == "NTFS"
    assert drive.total == 0 and drive.free == 0 and drive.used == 0
    assert drive.disk_number is None


def test_logical_drives_used_is_total_minus_free():
    total, free = 1_000_000, 250_000
    drives = parse_logical_drives(
        json.dumps([{"Letter": "D:", "Name": "Data", "Total": total, "Free": free, "DiskNumber": 2}])
    )
    assert drives[0].used + drives[0].free == total
    assert drives[0].name == "Data"
    assert drives[0].disk_number == 2


def test_logical_drives_used_never_negative():
    drives = parse_logical_drives(json.dumps([{"Letter": "E:", "Total": 10, "Free": 50}]))
    assert drives[0].used == 0


def test_logical_drives_missing_letter():
    with pytest.raises(MonitorError):
        parse_logical_drives(json.dumps([{"Total": 10}]))


def test_io_stats_missing_counters_are_zero():
    stats = parse_io_stats(json.dumps({"DiskNumber": 3, "ReadSpeed": 1.5}))
    assert stats == [
        DiskIOStats(
            disk_number=3,
            read_speed=1.5,
            write_speed=0.0,
            read_iops=0.0,
            write_iops=0.0,
            queue_depth=0.0,
            avg_response_time=0.0,
            active_time=0.0,
        )
    ]


def test_io_stats_keeps_order():
    stats = parse_io_stats(json.dumps([{"DiskNumber": 1}, {"DiskNumber": 0}]))
    assert [s.disk_number for s in stats] == [1, 0]


def test_io_stats_bad_disk_number():
    with pytest.raises(MonitorError, match="I/O stats"):
        parse_io_stats(json.dumps([{"DiskNumber": "zero"}]))


def test_process_activity():
    activity = parse_process_activity(
        json.dumps(
            [
                {"ProcessName": "backup", "PID": 42, "IOBytesPerSec": 2048.5, "ReadBytesPerSec": 1024},
                {"ProcessName": "indexer", "PID": 7},
            ]
        )
    )
    assert activity[0].process_name == "backup"
    assert activity[0].io_bytes_per_sec == 2048.5
    assert activity[0].read_bytes_per_sec == 1024.0
    assert activity[0].write_bytes_per_sec == 0.0
    assert activity[1].pid == 7
    assert activity[1].io_bytes_per_sec == 0.0


def test_process_activity_empty_and_invalid():
    assert parse_process_activity("[]") == []
    with pytest.raises(MonitorError):
        parse_process_activity("[{\"ProcessName\": \"x\"}")