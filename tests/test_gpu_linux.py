import subprocess
from unittest.mock import patch

import pytest

from tuiplus.gpu_linux import (
    parse_compute_apps_csv,
    parse_nvidia_csv,
    query_compute_apps,
    query_nvidia_smi,
)
from tuiplus.gpu_parse import GpuProcessInfo
from tuiplus.jsonout import MonitorError

MB = 1024 * 1024

GPU_LINE = "Test GPU, 45, 30, 10, 1024, 8192, 120.5, 250.0, 55, 1500, 7000, 535.54\n"
APPS = "1234, python, 512\n5678, trainer, 2048\n"


def _completed(stdout: str):
    return subprocess.CompletedProcess(args=["nvidia-smi"], returncode=0, stdout=stdout.encode())


def test_parse_gpu_line():
    data = parse_nvidia_csv(GPU_LINE)
    assert data.name == "Test GPU"
    assert data.temperature == 45.0
    assert data.utilization == 30.0
    assert data.memory_used == 1024 * MB
    assert data.memory_total == 8192 * MB
    assert data.power_usage == 120.5
    assert data.power_limit == 250.0
    assert data.fan_speed == 55.0
    assert data.clock_speed == 1500
    assert data.memory_clock == 7000
    assert data.driver_version == "535.54"
    assert data.bus_id == "N/A"
    assert data.cuda_version == "N/A"
    assert data.gpu_index == 0
    assert data.processes == []


@pytest.mark.parametrize("fan", ["[N/A]", "N/A", "junk"])
def test_fan_unavailable(fan):
    line = f"G, 1, 2, 3, 4, 5, 6, 7, {fan}, 9, 10, drv"
    assert parse_nvidia_csv(line).fan_speed == -1.0


def test_unparsable_fields_fall_back():
    line = "G, x, x, x, x, x, x, x, x, x, x, drv"
    data = parse_nvidia_csv(line)
    assert data.temperature == 0.0
    assert data.utilization == 0.0
    assert data.memory_used == 0
    assert data.memory_total == 0
    assert data.power_usage == 0.0
    assert data.power_limit == 300.0
    assert data.clock_speed == 0


def test_too_few_fields():
    with pytest.raises(MonitorError):
        parse_nvidia_csv("G, 1, 2")


def test_processes_attached():
    procs = [GpuProcessInfo(pid=1, name="a", gpu_usage=0.0, vram=0, process_type="Compute")]
    assert parse_nvidia_csv(GPU_LINE, procs).processes == procs


def test_parse_compute_apps():
    processes = parse_compute_apps_csv(APPS)
    assert [p.pid for p in processes] == [1234, 5678]
    assert [p.name for p in processes] == ["python", "trainer"]
    assert processes[0].vram == 512 * MB
    assert all(p.process_type == "Compute" and p.gpu_usage == 0.0 for p in processes)


def test_parse_compute_apps_skips_short_and_blank():
    assert parse_compute_apps_csv("   \n") == []
    processes = parse_compute_apps_csv("1, only\nabc, name, zz\n")
    assert len(processes) == 1
    assert (processes[0].pid, processes[0].vram) == (0, 0)


@patch("tuiplus.gpu_linux.subprocess.run")
def test_query_nvidia_smi(run):
    run.side_effect = [_completed(GPU_LINE), _completed(APPS)]
    data = query_nvidia_smi()
    assert data.name == "Test GPU"
    assert [p.pid for p in data.processes] == [1234, 5678]
    assert run.call_args_list[0].args[0][0] == "nvidia-smi"


@patch("tuiplus.gpu_linux.subprocess.run")
def test_query_nvidia_smi_missing_tool(run):
    run.side_effect = FileNotFoundError("nvidia-smi")
    with pytest.raises(MonitorError):
        query_nvidia_smi()


@patch("tuiplus.gpu_linux.subprocess.run")
def test_query_nvidia_smi_process_failure_gives_empty_list(run):
    run.side_effect = [_completed(GPU_LINE), FileNotFoundError("nvidia-smi")]
    assert query_nvidia_smi().processes == []


@patch("tuiplus.gpu_linux.subprocess.run")
def test_query_compute_apps_empty(run):
    run.return_value = _completed("")
    assert query_compute_apps() == []