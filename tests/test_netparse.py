import pytest

from tuiplus.netparse import (
    NetworkData,
    NetworkInterface,
    parse_gateway_from_ip_route,
    parse_hex_address,
    parse_ipv4_from_ip_addr,
    parse_proc_net_tcp,
    speed_mbps,
    traffic_history,
)

HEADER = "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt   uid  timeout inode"


def _tcp_line(local, remote, state, uid="1000"):
    return f"   0: {local} {remote} {state} 00000000:00000000 00:00000000 00000000  {uid}        0 12345 1"


def _iface(name, down, up):
    return NetworkInterface(
        name=name, description="", status="Up", link_speed="", mac_address="",
        mtu=1500, duplex="Full", ipv4_address="N/A", ipv6_address="N/A",
        gateway="N/A", download_speed=down, upload_speed=up,
    )


def test_hex_address_loopback():
    assert parse_hex_address("0100007F:0050") == ("127.0.0.1", 80)


@pytest.mark.parametrize("text", ["bad", "0100007F", "0100007F:0050:01", "01007F:0050"])
def test_hex_address_malformed(text):
    assert parse_hex_address(text) == ("0.0.0.0", 0)


def test_hex_address_zero():
    assert parse_hex_address("00000000:0000") == ("0.0.0.0", 0)


def test_hex_address_invalid_port_is_zero():
    address, port = parse_hex_address("0100007F:zz")
    assert address == "127.0.0.1"
    assert port == 0


def test_proc_net_tcp_keeps_only_established():
    content = "\n".join([
        HEADER,
        _tcp_line("0100007F:0050", "00000000:0000", "01", uid="42"),
        _tcp_line("0100007F:0050", "00000000:0000", "0A"),
    ])
    connections = parse_proc_net_tcp(content)
    assert len(connections) == 1
    conn = connections[0]
    assert conn.state == "ESTABLISHED"
    assert conn.protocol == "TCP"
    assert conn.process_name == "unknown"
    assert conn.pid == 42
    assert (conn.local_address, conn.local_port) == ("127.0.0.1", 80)
    assert (conn.remote_address, conn.remote_port) == ("0.0.0.0", 0)


def test_proc_net_tcp_skips_short_lines_and_header():
    content = "\n".join([_tcp_line("0100007F:0050", "00000000:0000", "01"), HEADER, "1 2 3"])
    assert parse_proc_net_tcp(content) == []


def test_proc_net_tcp_limits_to_ten():
    lines = [HEADER] + [_tcp_line("0100007F:0050", "00000000:0000", "01")] * 15
    assert len(parse_proc_net_tcp("\n".join(lines))) == 10


def test_proc_net_tcp_bad_uid_gives_zero():
    content = "\n".join([HEADER, _tcp_line("0100007F:0050", "00000000:0000", "01", uid="abc")])
    assert parse_proc_net_tcp(content)[0].pid == 0


def test_ipv4_from_ip_addr():
    output = (
        "2: eth0: <BROADCAST,UP> mtu 1500\n"
        "    link/ether aa:bb:cc:00:00:01 brd ff:ff:ff:ff:ff:ff\n"
        "    inet 10.0.0.5/24 brd 10.0.0.255 scope global eth0\n"
        "    inet6 fe80::1/64 scope link\n"
    )
    assert parse_ipv4_from_ip_addr(output) == "10.0.0.5"


def test_ipv4_missing():
    assert parse_ipv4_from_ip_addr("    inet6 fe80::1/64 scope link\n") == "N/A"
    assert parse_ipv4_from_ip_addr("") == "N/A"


def test_gateway_from_ip_route():
    output = "10.0.0.0/24 dev eth0 proto kernel\ndefault via 10.0.0.1 dev eth0\n"
    assert parse_gateway_from_ip_route(output) == "10.0.0.1"


@pytest.mark.parametrize("output", ["", "default dev eth0", "default via", "10.0.0.0/24 via 10.0.0.9"])
def test_gateway_missing(output):
    assert parse_gateway_from_ip_route(output) == "N/A"


def test_traffic_history_sums_interfaces():
    history = traffic_history([_iface("a", 1.5, 0.25), _iface("b", 2.0, 0.75)], timestamp=1234)
    assert len(history) == 1
    sample = history[0]
    assert sample.timestamp == 1234
    assert sample.download_mbps == pytest.approx(3.5)
    assert sample.upload_mbps == pytest.approx(1.0)


def test_traffic_history_empty_interfaces():
    sample = traffic_history([], timestamp=7)[0]
    assert (sample.download_mbps, sample.upload_mbps) == (0.0, 0.0)


def test_speed_mbps_value():
    assert speed_mbps(125000, 1.0) == pytest.approx(1.0)


def test_speed_mbps_scales():
    assert speed_mbps(2000, 1.0) == pytest.approx(2 * speed_mbps(1000, 1.0))
    assert speed_mbps(1000, 2.0) == pytest.approx(speed_mbps(500, 1.0))
    assert speed_mbps(0, 3.0) == 0.0


def test_network_data_history_bounded():
    data = NetworkData()
    for ts in range(100):
        data.traffic_history.extend(traffic_history([], timestamp=ts))
    assert len(data.traffic_history) == 60
    assert data.traffic_history[-1].timestamp == 99