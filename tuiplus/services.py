"""Service listing and control through PowerShell."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tuiplus.jsonout import MonitorError, parse_json_array

SERVICES_SCRIPT = r"""
try {
    $cimByName = @{}
    Get-CimInstance Win32_Service -ErrorAction SilentlyContinue | ForEach-Object {
        $cimByName[$_.Name] = $_
    }
    Get-Service -ErrorAction SilentlyContinue | ForEach-Object {
        $cim = $cimByName[$_.Name]
        $startType = $_.StartType.ToString()
        if ($startType -eq 'Automatic' -and $cim -and $cim.DelayedAutoStart) {
            $startType = 'AutomaticDelayedStart'
        }
        [PSCustomObject]@{
            Name = $_.Name
            DisplayName = $_.DisplayName
            Status = $_.Status.ToString()
            StartType = $startType
            Description = if ($cim) { $cim.Description } else { $null }
            CanStop = $_.CanStop
            CanPauseAndContinue = $_.CanPauseAndContinue
            DependentServices = ($_.DependentServices | ForEach-Object { $_.Name }) -join ','
            ServiceType = if ($cim) { $cim.ServiceType } else { $null }
        }
    } | ConvertTo-Json
} catch {
    "[]"
}
"""


class ServiceStatus(Enum):
    """Service state, valued by the name PowerShell reports."""

    RUNNING = "Running"
    STOPPED = "Stopped"
    PAUSED = "Paused"
    START_PENDING = "StartPending"
    STOP_PENDING = "StopPending"
    CONTINUE_PENDING = "ContinuePending"
    PAUSE_PENDING = "PausePending"
    UNKNOWN = "Unknown"

    def label(self) -> str:
        """Text shown to the user."""
        return _STATUS_LABELS.get(self, self.value)

    @classmethod
    def from_name(cls, name: str) -> ServiceStatus:
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


_STATUS_LABELS = {
    ServiceStatus.START_PENDING: "Starting",
    ServiceStatus.STOP_PENDING: "Stopping",
    ServiceStatus.CONTINUE_PENDING: "Continuing",
    ServiceStatus.PAUSE_PENDING: "Pausing",
}


class ServiceStartType(Enum):
    """Service start mode, valued by the name PowerShell uses."""

    AUTOMATIC = "Automatic"
    MANUAL = "Manual"
    DISABLED = "Disabled"
    AUTOMATIC_DELAYED_START = "AutomaticDelayedStart"
    UNKNOWN = "Unknown"

    def label(self) -> str:
        """Text shown to the user."""
        if self is ServiceStartType.AUTOMATIC_DELAYED_START:
            return "Auto (Delayed)"
        return self.value

    @classmethod
    def from_name(cls, name: str) -> ServiceStartType:
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class ServiceEntry:
    name: str
    display_name: str
    status: ServiceStatus
    start_type: ServiceStartType
    description: str | None = None
    can_stop: bool = False
    can_pause_and_continue: bool = False
    dependent_services: list[str] = field(default_factory=list)
    service_type: str | None = None


@dataclass
class ServiceData:
    services: list[ServiceEntry] = field(default_factory=list)


def _str(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        raise MonitorError(f"Field {key!r} is not a string: {value!r}")
    return value


def _opt_str(record: dict[str, Any], key: str) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MonitorError(f"Field {key!r} is not a string: {value!r}")
    return value


def _opt_bool(record: dict[str, Any], key: str) -> bool:
    value = record.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise MonitorError(f"Field {key!r} is not a boolean: {value!r}")
    return value


def _entry(record: dict[str, Any]) -> ServiceEntry:
    dependents = _opt_str(record, "DependentServices")
    return ServiceEntry(
        name=_str(record, "Name"),
        display_name=_str(record, "DisplayName"),
        status=ServiceStatus.from_name(_str(record, "Status")),
        start_type=ServiceStartType.from_name(_str(record, "StartType")),
        description=_opt_str(record, "Description") or None,
        can_stop=_opt_bool(record, "CanStop"),
        can_pause_and_continue=_opt_bool(record, "CanPauseAndContinue"),
        dependent_services=dependents.split(",") if dependents else [],
        service_type=_opt_str(record, "ServiceType"),
    )


def parse_services(output: str) -> list[ServiceEntry]:
    """Read the service list printed by the services script."""
    try:
        return [_entry(record) for record in parse_json_array(output)]
    except MonitorError as exc:
        raise MonitorError(f"Failed to parse service data: {exc}") from exc


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class ServiceMonitor:
    """Lists and controls services through a PowerShell executor."""

    def __init__(self, ps):
        self._ps = ps

    async def collect_data(self) -> ServiceData:
        output = await self._ps.execute(SERVICES_SCRIPT)
        return ServiceData(services=parse_services(output))

    async def start_service(self, service_name: str) -> None:
        await self._ps.execute(f"Start-Service -Name {_quote(service_name)}")

    async def stop_service(self, service_name: str) -> None:
        await self._ps.execute(f"Stop-Service -Name {_quote(service_name)}")

    async def restart_service(self, service_name: str) -> None:
        await self._ps.execute(f"Restart-Service -Name {_quote(service_name)}")

    async def set_startup_type(
        self, service_name: str, startup_type: ServiceStartType
    ) -> None:
        if startup_type is ServiceStartType.UNKNOWN:
            raise ValueError("Invalid startup type")
        await self._ps.execute(
            f"Set-Service -Name {_quote(service_name)} -StartupType {startup_type.value}"
        )