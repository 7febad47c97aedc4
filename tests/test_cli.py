import socketserver
import threading

import pytest

from loadkali.cli import format_final_stats, format_live_stats, main, run
from loadkali.command import parse_args
from loadkali.stats import Stats


class _EchoHandler(socketserver.BaseRequestHandler):
    def handle(self):
        while True:
            try:
                data = self.request.recv(65536)
            except OSError:
                return
            if not data:
                return
            try:
                self.request.sendall(data)
            except OSError:
                return


class _EchoServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


@pytest.fixture
def echo_target():
    server = _EchoServer(("127.0.0.1", 0), _EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address
    try:
        yield f"{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()


def _measured_stats():
    stats = Stats()
    stats.end_warmup()
    for latency in (100, 200, 300, 400):
        stats.record_latency(latency, 0)
    return stats


def test_live_stats_reports_request_count_and_percentiles():
    stats = _measured_stats()
    for _ in range(3):
        stats.record_request(10, 10)
    line = format_live_stats(stats)
    hist = stats.latency_histogram
    assert line.startswith("[Live] QPS: ")
    assert "| Req: 3 |" in line
    assert f"P50={hist.value_at_percentile(50.0)}" in line
    assert f"P95={hist.value_at_percentile(95.0)}" in line
    assert f"P99={hist.value_at_percentile(99.0)}" in line


def test_live_stats_resets_qps_window():
    stats = _measured_stats()
    stats.record_request(1, 1)
    format_live_stats(stats)
    assert stats.last_print_count == stats.total_requests


def test_final_stats_lists_counters():
    stats = _measured_stats()
    stats.total_connections = 2
    stats.success_connections = 2
    for _ in range(4):
        stats.record_request(500_000, 250_000)
    report = format_final_stats(stats, 2.0)
    lines = report.split("\n")
    assert lines[0] == ""
    assert lines[1] == "=== Final Results ==="
    assert "Duration:          2.00s" in lines
    assert "Total Connections: 2" in lines
    assert "Success Rate:      100.0%" in lines
    assert "Total Requests:    4" in lines
    assert "Error Rate:        0.00%" in lines
    assert "Traffic:           8↓, 16↑ Mbps" in lines


def test_final_stats_latency_lines_match_histogram():
    stats = _measured_stats()
    hist = stats.latency_histogram
    report = format_final_stats(stats, 1.0)
    assert f"  Avg: {hist.mean():8.1f}  Min: {hist.min():8}" in report
    assert f"  Max: {hist.max():8}" in report
    assert report.endswith(f"  Max: {hist.max():8}")


def test_final_stats_with_nothing_recorded_does_not_divide_by_zero():
    stats = Stats()
    stats.end_warmup()
    report = format_final_stats(stats, 1.0)
    assert "Total Connections: 0" in report
    assert "Total Requests:    0" in report


@pytest.mark.asyncio
async def test_run_against_echo_server(echo_target, capsys):
    namespace = parse_args([echo_target, "-T", "300ms", "-c", "2", "-s", "16"])
    stats = await run(namespace)
    out = capsys.readouterr().out
    assert stats.total_connections == 2
    assert stats.success_connections == 2
    assert stats.connection_errors == 0
    assert stats.total_requests > 0
    assert stats.total_bytes_sent == stats.total_requests * 16
    assert stats.total_bytes_received == stats.total_bytes_sent
    assert "Warming up for 5 seconds..." in out
    assert "Warmup completed." in out
    assert "=== Final Results ===" in out


def test_main_quiet_prints_nothing(echo_target, capsys):
    assert main([echo_target, "-T", "100ms", "-q"]) == 0
    assert capsys.readouterr().out == ""


def test_main_rejects_bad_duration():
    with pytest.raises(SystemExit) as info:
        main(["127.0.0.1:1", "-T", "fast"])
    assert info.value.code == 2