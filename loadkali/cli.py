"""Command entry point: runs the benchmark and reports its results."""

from __future__ import annotations

import argparse
import asyncio
import math
import sys
import time
from collections.abc import Awaitable, Callable, Sequence

from loadkali.command import Config, parse_args, parse_config
from loadkali.stats import Stats
from loadkali.tcp_worker import tcp_worker
from loadkali.websocket_worker import websocket_worker

_LIVE_INTERVAL = 1.0

Worker = Callable[[str, Config, Stats, asyncio.Event], Awaitable[None]]


def _ratio(numerator: float, denominator: float) -> float:
    """Divide with floating-point semantics for a zero denominator."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def format_live_stats(stats: Stats) -> str:
    """One line of real-time statistics; resets the QPS window."""
    qps = stats.get_qps()
    hist = stats.latency_histogram
    return (
        f"[Live] QPS: {qps:.0f} | Req: {stats.total_requests} | "
        f"Latency(us): P50={hist.value_at_percentile(50.0)} "
        f"P95={hist.value_at_percentile(95.0)} "
        f"P99={hist.value_at_percentile(99.0)}"
    )


def format_final_stats(stats: Stats, duration: float) -> str:
    """Summary report for a run that lasted ``duration`` seconds."""
    hist = stats.latency_histogram
    sent = stats.total_bytes_sent
    received = stats.total_bytes_received
    total_bytes = sent + received
    total_requests = stats.total_requests
    qps = _ratio(total_requests, duration)
    success_rate = _ratio(stats.success_connections, stats.total_connections) * 100.0
    error_rate = _ratio(stats.connection_errors, total_requests * 100.0)

    lines = [
        "",
        "=== Final Results ===",
        f"Duration:          {duration:.2f}s",
        f"Total Connections: {stats.total_connections}",
        f"Success Rate:      {success_rate:.1f}%",
        f"Total Requests:    {total_requests}",
        f"Error Rate:        {error_rate:.2f}%",
        f"Requests Rate:     {qps:.2f} req/s",
        f"Throughput:        {total_bytes / 1_000_000.0:.2f} MB",
        f"Bandwidth:         {_ratio(total_bytes, duration) / 1_000_000.0:.2f} MB/s",
        f"Traffic:           {received * 8 // 1_000_000}↓, "
        f"{sent * 8 // 1_000_000}↑ Mbps",
        "Latency Distribution (us):",
        f"  Avg: {hist.mean():8.1f}  Min: {hist.min():8}",
        f"  P50: {hist.value_at_percentile(50.0):8}  "
        f"P90: {hist.value_at_percentile(90.0):8}",
        f"  P95: {hist.value_at_percentile(95.0):8}  "
        f"P99: {hist.value_at_percentile(99.0):8}",
        f"  Max: {hist.max():8}",
    ]
    return "\n".join(lines)


async def _report_live(stats: Stats, config: Config, shutdown: asyncio.Event) -> None:
    """Print live statistics every second until shutdown."""
    while not shutdown.is_set():
        if not stats.warming_up and not config.quiet:
            print(format_live_stats(stats), flush=True)
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=_LIVE_INTERVAL)
        except asyncio.TimeoutError:
            continue


async def _connection(
    target: str,
    config: Config,
    stats: Stats,
    shutdown: asyncio.Event,
    worker: Worker,
) -> None:
    if config.connect_rate > 0:
        await asyncio.sleep(1.0 / config.connect_rate)
    await worker(target, config, stats, shutdown)


async def run(namespace: argparse.Namespace) -> Stats:
    """Run a full benchmark (warmup, measurement, shutdown) and return its stats."""
    config = parse_config(namespace)
    stats = Stats()
    shutdown = asyncio.Event()

    reporter = None
    if not config.quiet:
        reporter = asyncio.create_task(_report_live(stats, config, shutdown))

    worker: Worker = websocket_worker if config.use_websocket else tcp_worker
    tasks = [
        asyncio.create_task(_connection(namespace.target, config, stats, shutdown, worker))
        for _ in range(config.connections)
    ]

    if not config.quiet:
        print(f"Warming up for {int(config.warmup_duration.total_seconds())} seconds...")
    await asyncio.sleep(config.warmup_duration.total_seconds())
    stats.end_warmup()
    if not config.quiet:
        print(
            "Warmup completed. Starting benchmark for "
            f"{int(config.duration.total_seconds())} seconds..."
        )

    started = time.monotonic()
    await asyncio.sleep(config.duration.total_seconds())
    stats.set_shutting_down()
    shutdown.set()

    results = await asyncio.gather(*tasks, return_exceptions=True)
    if reporter is not None:
        await reporter
    for result in results:
        if isinstance(result, Exception):
            if not config.quiet:
                print(f"Task error: {result}", file=sys.stderr)
        elif isinstance(result, BaseException):
            raise result

    elapsed = time.monotonic() - started
    if not config.quiet:
        print(format_final_stats(stats, elapsed))
    return stats


def main(argv: Sequence[str] | None = None) -> int:
    """Parse the command line and run the benchmark."""
    namespace = parse_args(argv)
    asyncio.run(run(namespace))
    return 0


if __name__ == "__main__":
    sys.exit(main())