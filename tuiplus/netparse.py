"""Network data records and parsers for Linux command and procfs output."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

HISTORY_LENGTH = 60
MAX_CONNECTIONS = 10

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_ESTABLISHED = "01"


@dataclass
class NetworkInterface:
    """One network adapter; speeds are in Mbps."""

    name: str
    description: str
    status: str
    link_speed: str
    mac_address: str
    mtu: int
    duplex: str
    ipv4_address: str
    ipv6_address: str
    gateway: str
    dns_servers: list[str] = field(default_factory=list)
    bytes_received: int = 0
    bytes_sent: int = 0
    download_speed: float = 0.0
    upload_speed: float = 0.0
    peak_download: float = 0.0
    peak_upload: float = 0.0


@dataclass
class NetworkConnection:
    process_name: str
    pid: int
    protocol: str
    local_address: str
    local_port: int
    remote_address: str
    remote_port: int
    state: str


@dataclass
class TrafficSample:
    """Total traffic at one moment; ``timestamp`` is in Unix seconds."""

    timestamp: int
    download_mbps: float
    upload_mbps: float


@dataclass
class BandwidthConsumer:
    """A process and its network throughput in Mbps."""

    process_name: str
    pid: int
    download_speed: float
    upload_speed: float
    total_bytes_received: int
    total_bytes_sent: int
    estimated: bool = True


def _history_deque() -> deque[TrafficSample]:
    return deque(maxlen=HISTORY_LENGTH)


@dataclass
class NetworkData:
    interfaces: list[NetworkInterface] = field(default_factory=list)
    connections: list[NetworkConnection] = field(default_factory=list)
    traffic_history: deque[TrafficSample] = field(default_factory=_history_deque)
    bandwidth_consumers: list[BandwidthConsumer] = field(default_factory=list)


def _parse_hex(text: str, limit: int) -> int:
    """Parse unsigned hex text; anything invalid or out of range gives 0."""
    digits = text[1:] if text.startswith("+") else text
    if not digits or not set(digits) <= _HEX_DIGITS:
        return 0
    value = int(digits, 16)
    return value if value <= limit else 0


def parse_hex_address(hex_addr: str) -> tuple[str, int]:
    """Decode a little-endian ``AABBCCDD:PPPP`` address from /proc/net/tcp."""
    parts = hex_addr.split(":")
    if len(parts) != 2:
        return "0.0.0.0", 0
    ip_hex, port_hex = parts
    if len(ip_hex) != 8:
        return "0.0.0.0", 0
    octets = [_parse_hex(ip_hex[i : i + 2], 0xFF) for i in (6, 4, 2, 0)]
    return ".".join(str(octet) for octet in octets), _parse_hex(port_hex, 0xFFFF)


def _parse_u32(text: str) -> int:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not (digits.isascii() and digits.isdigit()):
        return 0
    value = int(digits)
    return value if value <= 2**32 - 1 else 0


def parse_proc_net_tcp(content: str) -> list[NetworkConnection]:
    """Read up to ten established connections from /proc/net/tcp text.

    The owner's uid column stands in for the process id.
    """
    connections: list[NetworkConnection] = []
    for line in content.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 10 or parts[3] != _ESTABLISHED:
            continue
        local_address, local_port = parse_hex_address(parts[1])
        remote_address, remote_port = parse_hex_address(parts[2])
        connections.append(
            NetworkConnection(
                process_name="unknown",
                pid=_parse_u32(parts[7]),
                protocol="TCP",
                local_address=local_address,
                local_port=local_port,
                remote_address=remote_address,
                remote_port=remote_port,
                state="ESTABLISHED",
            )
        )
        if len(connections) >= MAX_CONNECTIONS:
            break
    return connections


def parse_ipv4_from_ip_addr(output: str) -> str:
    """Take the first IPv4 address from ``ip addr show`` output."""
    line = next((l for l in output.splitlines() if "inet " in l), None)
    if line is None:
        return "N/A"
    parts = line.split()
    if len(parts) < 2:
        return "N/A"
    return parts[1].split("/")[0]


def parse_gateway_from_ip_route(output: str) -> str:
    """Take the default gateway from ``ip route`` output."""
    line = next((l for l in output.splitlines() if "default" in l), None)
    if line is None:
        return "N/A"
    parts = line.split()
    try:
        position = parts.index("via")
    except ValueError:
        return "N/A"
    if position + 1 < len(parts):
        return parts[position + 1]
    return "N/A"


def traffic_history(
    interfaces: Iterable[NetworkInterface], timestamp: int | None = None
) -> deque[TrafficSample]:
    """Return a history holding one sample: the summed speed of all interfaces."""
    interfaces = list(interfaces)
    if timestamp is None:
        timestamp = int(time.time())
    history = _history_deque()
    history.append(
        TrafficSample(
            timestamp=timestamp,
            download_mbps=sum(i.download_speed for i in interfaces),
            upload_mbps=sum(i.upload_speed for i in interfaces),
        )
    )
    return history


def speed_mbps(byte_delta: float, time_delta: float) -> float:
    """Convert bytes transferred over ``time_delta`` seconds to megabits per second."""
    return byte_delta / time_delta * 8.0 / 1_000_000.0