# tuiplus

Collectors and parsers that take a snapshot of a machine's state: CPU,
memory, disks, running processes and system services. There are also
parsers for graphics card and network readings. Each reading ends up as a
dataclass. Malformed or missing data raises `tuiplus.jsonout.MonitorError`.

## Modules

| Module                | What it provides |
|-----------------------|------------------|
| `tuiplus.jsonout`     | `MonitorError`, `strip_bom`, `parse_json_array`, `parse_json_object` |
| `tuiplus.cpu`         | `CpuMonitor`, `CpuData`, parsers such as `parse_overall_usage`, `parse_temperature`, `build_cpu_data` |
| `tuiplus.ram`         | `RamMonitor`, `RamData`, `build_ram_data` and one parser per script |
| `tuiplus.disk`        | `DiskMonitor`, `DiskData`, `DiskIOHistory` |
| `tuiplus.disk_parse`  | `parse_physical_disks`, `parse_logical_drives`, `parse_io_stats`, `parse_process_activity` |
| `tuiplus.processes`   | `ProcessMonitor`, `ProcessData`, `parse_process_samples`, `normalize_user` |
| `tuiplus.services`    | `ServiceMonitor`, `ServiceData`, `ServiceStatus`, `ServiceStartType`, `parse_services` |
| `tuiplus.gpu_parse`   | `GpuData`, `GpuProcessInfo`, `parse_nvidia_smi_json`, `parse_wmi_gpu_json`, `parse_gpu_processes`, `stub_gpu_data` |
| `tuiplus.gpu_linux`   | `query_nvidia_smi`, `query_compute_apps`, `parse_nvidia_csv`, `parse_compute_apps_csv` |
| `tuiplus.netparse`    | `NetworkData` and related records, `parse_proc_net_tcp`, `parse_hex_address`, `parse_ipv4_from_ip_addr`, `parse_gateway_from_ip_route`, `traffic_history`, `speed_mbps` |

## Monitors and the PowerShell executor

`CpuMonitor`, `RamMonitor`, `DiskMonitor`, `ProcessMonitor` and
`ServiceMonitor` get their figures from PowerShell scripts. Each takes an
executor object `ps` that runs them. You supply the executor. It must
provide two coroutines:

- `execute(script)` returns the script's output as a string;
- `execute_batch(scripts)` returns a list of output strings, one per script.

```python
from tuiplus.ram import RamMonitor


async def snapshot(ps):
    data = await RamMonitor(ps).collect_data()
    print(data.total, data.used, data.commit_percent)
    for proc in data.top_processes:
        print(proc.pid, proc.name, proc.working_set)
```

Two monitors keep state between calls, so keep one instance and call
`collect_data()` on it repeatedly:

- `DiskMonitor` keeps the last 60 read, write and IOPS samples of each disk.
  You can also feed it directly with `update_history(io_stats)`.
- `ProcessMonitor(ps, cpu_count=None)` works out each process's CPU usage
  from the CPU time it used since the previous reading. Usage is divided by
  the CPU count and capped at 100. `build_entries(samples, now)` does the
  same for samples you already have; `now` is a monotonic time in seconds.

## Parsing output directly

The parsers work on plain strings, so saved output can be read without a
live system:

```python
from tuiplus.cpu import parse_overall_usage, parse_temperature
from tuiplus.jsonout import MonitorError, parse_json_array

parse_overall_usage("42.5\n")        # 42.5; values above 100 are capped at 100
parse_json_array('{"Id": 1}')        # a lone object becomes a one-item list

try:
    parse_temperature("")
except MonitorError:
    print("no temperature reading")
```

## Graphics cards

`tuiplus.gpu_linux.query_nvidia_smi()` runs `nvidia-smi` and returns a
`GpuData`, including its compute processes. It raises `MonitorError` if the
tool cannot be run or its output is incomplete. The CSV parsers behind it
take text directly. `tuiplus.gpu_parse` reads the JSON printed by
PowerShell GPU queries. `stub_gpu_data()` returns a "No GPU detected"
placeholder.

## Network

`tuiplus.netparse` reads text that other commands produce:

```python
from tuiplus.netparse import parse_hex_address, speed_mbps

parse_hex_address("0100007F:0050")   # ("127.0.0.1", 80)
speed_mbps(1_000_000, 1.0)           # 8.0
```

`parse_proc_net_tcp` returns up to ten established connections from the
contents of `/proc/net/tcp`. In place of a process id it reports the
owner's uid. `traffic_history` sums the interface speeds into a single
`TrafficSample`.

## Services

```python
from tuiplus.services import ServiceStartType, ServiceStatus

ServiceStatus.from_name("StartPending").label()              # "Starting"
ServiceStartType.from_name("AutomaticDelayedStart").label()  # "Auto (Delayed)"
```

`ServiceMonitor` can start, stop and restart a service, and change its
startup type with `set_startup_type`. Passing `ServiceStartType.UNKNOWN`
raises `ValueError`.

## What the package does not do

- It has no terminal screen and no command to run. It only collects and
  parses readings.
- It ships no PowerShell executor. You must supply the `ps` object.
- It has no monitor class for graphics cards or for network interfaces.
  - For graphics cards, use the parsers and `query_nvidia_smi`.
  - For network interfaces, `tuiplus.netparse` only parses text that you
    obtain yourself. Nothing here tracks interface speeds between readings.

## Tests

The test suite uses pytest and pytest-asyncio. Both come with the `test`
extra.