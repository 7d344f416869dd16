import json

import pytest

from tuiplus.cpu import (
    CpuInfo,
    CpuMonitor,
    PerfInfo,
    build_cpu_data,
    frequency_info,
    parse_core_usage,
    parse_cpu_info,
    parse_overall_usage,
    parse_perf_info,
    parse_temperature,
    parse_top_processes,
    power_info,
)
from tuiplus.jsonout import MonitorError

CPU_RECORD = {
    "Name": "Test CPU 8-Core",
    "MaxClockSpeed": 3000,
    "CurrentClockSpeed": 2800,
    "NumberOfCores": 8,
    "NumberOfLogicalProcessors": 16,
    "TDP": 95,
}


def _outputs(temperature="55.5"):
    return [
        json.dumps(CPU_RECORD),
        json.dumps([{"Core": "0", "Usage": 10.0}, {"Core": "1", "Usage": 20.0}]),
        "15\r\n",
        json.dumps(
            [
                {
                    "Id": 1234,
                    "ProcessName": "app",
                    "CpuPercent": 12.5,
                    "Threads": 4,
                    "Memory": 1048576,
                }
            ]
        ),
        json.dumps(
            {
                "AvgFrequency": 3300,
                "MaxFrequency": 3600,
                "AvgPerformance": 110,
                "AvgUtility": 40,
            }
        ),
        temperature,
    ]


def _cpu(max_clock=3000, current=2800, tdp=95.0):
    return CpuInfo("cpu", max_clock, current, 4, 8, tdp)


class FakeShell:
    def __init__(self, outputs=None, error=None):
        self.outputs = outputs or []
        self.error = error
        self.batches = []

    async def execute_batch(self, scripts):
        self.batches.append(list(scripts))
        if self.error:
            raise self.error
        return list(self.outputs)


def test_parse_cpu_info_defaults_tdp():
    record = dict(CPU_RECORD)
    del record["TDP"]
    info = parse_cpu_info(json.dumps(record))
    assert info.tdp == 65.0
    assert info.name == "Test CPU 8-Core"
    assert info.number_of_logical_processors == 16


def test_parse_cpu_info_invalid():
    with pytest.raises(MonitorError, match="Failed to parse CPU info"):
        parse_cpu_info('{"Name": "x"}')


def test_parse_overall_usage_values():
    assert parse_overall_usage("  42.5 \n") == 42.5
    assert parse_overall_usage("150") == 100.0
    with pytest.raises(MonitorError):
        parse_overall_usage("abc")


def test_parse_perf_info_partial_with_bom():
    perf = parse_perf_info('\ufeff{"AvgFrequency": 2500, "AvgUtility": null}')
    assert perf == PerfInfo(avg_frequency=2500.0)


def test_parse_core_usage_ids_and_cap():
    cores = parse_core_usage(
        json.dumps([{"Core": "3", "Usage": 120.0}, {"Core": "0,1", "Usage": 5.0}])
    )
    assert [core.core_id for core in cores] == [3, 1]
    assert cores[0].usage == 100.0
    assert cores[1].usage == 5.0


def test_parse_core_usage_single_and_empty():
    assert parse_core_usage("[]") == []
    cores = parse_core_usage('{"Core": "7", "Usage": 33.0}')
    assert len(cores) == 1 and cores[0].core_id == 7


def test_parse_top_processes_defaults():
    processes = parse_top_processes('{"Id": 42, "ProcessName": "idle"}')
    assert len(processes) == 1
    proc = processes[0]
    assert (proc.pid, proc.name, proc.cpu_usage, proc.threads, proc.memory) == (
        42,
        "idle",
        0.0,
        1,
        0,
    )


def test_parse_top_processes_requires_name():
    with pytest.raises(MonitorError, match="Failed to parse top processes"):
        parse_top_processes('[{"Id": 42}]')


@pytest.mark.parametrize("text", ["", "   ", "null", "NULL"])
def test_parse_temperature_unavailable(text):
    with pytest.raises(MonitorError, match="unavailable"):
        parse_temperature(text)


def test_parse_temperature_value():
    assert parse_temperature(" 47.5\n") == 47.5
    with pytest.raises(MonitorError):
        parse_temperature("hot")


def test_frequency_boost_from_performance():
    freq = frequency_info(_cpu(), PerfInfo(avg_frequency=3000, avg_performance=101))
    assert freq.boost_active is True
    assert freq.base_clock * 1000 == pytest.approx(3000)


def test_frequency_no_boost_at_base():
    freq = frequency_info(_cpu(), PerfInfo(avg_frequency=3000, avg_performance=100))
    assert freq.boost_active is False
    assert freq.avg_frequency == pytest.approx(freq.base_clock)


def test_frequency_boost_from_clock_above_base():
    freq = frequency_info(_cpu(), PerfInfo(avg_frequency=3200))
    assert freq.boost_active is True


def test_frequency_fallbacks_to_cpu_info():
    freq = frequency_info(_cpu(max_clock=3000, current=2800), PerfInfo())
    assert freq.avg_frequency * 1000 == pytest.approx(2800)
    assert freq.max_frequency == pytest.approx(freq.base_clock)
    assert freq.boost_active is False


def test_frequency_base_at_least_one_mhz():
    freq = frequency_info(_cpu(max_clock=0, current=0), PerfInfo(max_frequency=0))
    assert freq.base_clock * 1000 == pytest.approx(1)
    assert freq.max_frequency >= freq.base_clock


def test_power_clamped_to_tdp():
    cpu = _cpu(tdp=95.0)
    assert power_info(cpu, 0.0, PerfInfo(avg_utility=250)).current_power == 95.0
    assert power_info(cpu, 50.0, PerfInfo(avg_utility=-5)).current_power == 0.0


def test_power_uses_overall_when_utility_missing():
    cpu = _cpu(tdp=95.0)
    power = power_info(cpu, 100.0, PerfInfo())
    assert power.current_power == power.max_power == 95.0


def test_power_proportional_to_utility():
    cpu = _cpu(tdp=95.0)
    power = power_info(cpu, 0.0, PerfInfo(avg_utility=40))
    assert power.current_power / power.max_power == pytest.approx(40 / 100)


def test_build_cpu_data_combines_outputs():
    data = build_cpu_data(_outputs())
    assert data.name == "Test CPU 8-Core"
    assert (data.core_count, data.thread_count) == (8, 16)
    assert data.overall_usage == 15.0
    assert data.temperature == 55.5
    assert [core.core_id for core in data.core_usage] == [0, 1]
    assert data.top_processes[0].pid == 1234
    assert data.frequency.boost_active is True
    assert data.power.max_power == 95.0


def test_build_cpu_data_missing_temperature():
    assert build_cpu_data(_outputs(temperature="")).temperature is None


def test_build_cpu_data_too_few_outputs():
    with pytest.raises(MonitorError):
        build_cpu_data(_outputs()[:5])


@pytest.mark.asyncio
async def test_monitor_collects_from_shell():
    shell = FakeShell(outputs=_outputs())
    data = await CpuMonitor(shell).collect_data()
    assert data.name == "Test CPU 8-Core"
    assert len(shell.batches) == 1 and len(shell.batches[0]) == 6


@pytest.mark.asyncio
async def test_monitor_wraps_shell_failure():
    shell = FakeShell(error=RuntimeError("boom"))
    with pytest.raises(MonitorError, match="Failed to execute CPU monitor batch"):
        await CpuMonitor(shell).collect_data()