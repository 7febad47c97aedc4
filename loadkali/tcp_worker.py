"""Raw TCP load generators: ping-pong and pipelined clients."""

from __future__ import annotations

import asyncio
import socket
import sys
import time
from collections import deque
from collections.abc import Awaitable, Callable
from contextlib import suppress

from loadkali.command import Config
from loadkali.stats import Stats


def _micros_since(start_ns: int) -> int:
    return (time.perf_counter_ns() - start_ns) // 1000


def _fail(stats: Stats, config: Config, text: str) -> None:
    """Report a connection problem unless quiet or shutting down, and count it."""
    if not stats.shutting_down and not config.quiet:
        print(text, file=sys.stderr)
    stats.record_connection_error()


async def _pace(config: Config, send_time_ns: int) -> None:
    """Sleep so that one message per 1/rate seconds is sent."""
    if config.message_rate is None:
        return
    interval = 1.0 / config.message_rate
    remaining = interval - (time.perf_counter_ns() - send_time_ns) / 1e9
    if remaining > 0:
        await asyncio.sleep(remaining)


async def _drive(
    config: Config,
    shutdown: asyncio.Event,
    step: Callable[[], Awaitable[None]],
) -> None:
    """Run ``step`` repeatedly until the channel lifetime ends or shutdown fires.

    A step still in progress when shutdown fires is cancelled.
    """
    lifetime = (
        config.channel_lifetime.total_seconds()
        if config.channel_lifetime is not None
        else None
    )
    started = time.monotonic()
    shutdown_wait = asyncio.ensure_future(shutdown.wait())
    iteration: asyncio.Future[None] | None = None
    try:
        while lifetime is None or time.monotonic() - started < lifetime:
            iteration = asyncio.ensure_future(step())
            await asyncio.wait(
                {iteration, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED
            )
            if shutdown_wait.done():
                iteration.cancel()
                with suppress(asyncio.CancelledError):
                    await iteration
                return
            iteration.result()
    finally:
        shutdown_wait.cancel()
        if iteration is not None and not iteration.done():
            iteration.cancel()


def _split_target(target: str) -> tuple[str, int]:
    host, sep, port = target.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError("invalid socket address")
    port_number = int(port)
    if port_number > 65535:
        raise ValueError("invalid port value")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port_number


async def _connect(
    target: str, config: Config, stats: Stats
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter] | None:
    """Open the connection, or count the failure and return None."""
    try:
        host, port = _split_target(target)
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=config.connect_timeout.total_seconds(),
        )
    except asyncio.TimeoutError:
        _fail(stats, config, f"Connection timeout to {target}")
        return None
    except (OSError, ValueError) as exc:
        _fail(stats, config, f"Failed to connect to {target}: {exc}")
        return None

    if config.nagle:
        sock = writer.get_extra_info("socket")
        if sock is not None:
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 0)
            except OSError:
                writer.close()
                raise
    return reader, writer


async def _send_first_message(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    config: Config,
    stats: Stats,
) -> bool:
    """Send the configured first message and await an equally long reply."""
    first = config.first_message
    if first is None:
        return True

    start = time.perf_counter_ns()
    try:
        writer.write(first)
        await writer.drain()
    except OSError as exc:
        _fail(stats, config, f"Failed to send first message: {exc}")
        return False

    try:
        await reader.readexactly(len(first))
    except (asyncio.IncompleteReadError, OSError) as exc:
        _fail(stats, config, f"Failed to read first message response: {exc}")
        return False

    stats.record_latency(_micros_since(start), 0)
    stats.record_request(len(first), len(first))
    return True


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with suppress(OSError):
        await writer.wait_closed()


async def tcp_worker(
    target: str, config: Config, stats: Stats, shutdown: asyncio.Event
) -> None:
    """Run one TCP connection in the mode the configuration selects."""
    if config.pipeline:
        await tcp_worker_pipeline(target, config, stats, shutdown)
    else:
        await tcp_worker_pingpong(target, config, stats, shutdown)


async def tcp_worker_pingpong(
    target: str, config: Config, stats: Stats, shutdown: asyncio.Event
) -> None:
    """Send a message, wait for a reply of the same length, repeat."""
    stats.total_connections += 1

    connection = await _connect(target, config, stats)
    if connection is None:
        return
    reader, writer = connection

    try:
        if not await _send_first_message(reader, writer, config, stats):
            return

        message = config.message
        size = len(message)
        counter = 0

        async def step() -> None:
            nonlocal counter
            if stats.shutting_down:
                return

            sent = time.perf_counter_ns()
            try:
                writer.write(message)
                await writer.drain()
            except OSError as exc:
                _fail(stats, config, f"Write error: {exc}")
                return

            counter += 1

            try:
                await reader.readexactly(size)
            except (asyncio.IncompleteReadError, OSError) as exc:
                _fail(stats, config, f"Read error: {exc}")
                return
            stats.record_latency(_micros_since(sent), counter)
            stats.record_request(size, size)

            if counter % 100 == 0:
                await asyncio.sleep(0)
            await _pace(config, sent)

        await _drive(config, shutdown, step)
    finally:
        await _close(writer)

    stats.success_connections += 1


async def tcp_worker_pipeline(
    target: str, config: Config, stats: Stats, shutdown: asyncio.Event
) -> None:
    """Send messages without waiting while a reader task matches the replies."""
    stats.total_connections += 1

    connection = await _connect(target, config, stats)
    if connection is None:
        return
    reader, writer = connection

    try:
        if not await _send_first_message(reader, writer, config, stats):
            return

        message = config.message
        size = len(message)
        sent_times: deque[int] = deque()

        async def read_replies() -> None:
            counter = 0
            while True:
                try:
                    await reader.readexactly(size)
                except (asyncio.IncompleteReadError, OSError) as exc:
                    _fail(stats, config, f"Read error: {exc}")
                    break
                counter += 1
                if sent_times:
                    sent = sent_times.popleft()
                    stats.record_request(size, size)
                    stats.record_latency(_micros_since(sent), counter)
                if counter % 100 == 0:
                    await asyncio.sleep(0)

        reader_task = asyncio.create_task(read_replies())
        counter = 0

        async def step() -> None:
            nonlocal counter
            if stats.shutting_down:
                return

            sent = time.perf_counter_ns()
            sent_times.append(sent)
            try:
                writer.write(message)
                await writer.drain()
            except OSError as exc:
                _fail(stats, config, f"Write error: {exc}")
                return

            counter += 1
            if counter % 100 == 0:
                await asyncio.sleep(0)
            await _pace(config, sent)

        try:
            await _drive(config, shutdown, step)
            with suppress(OSError):
                if writer.can_write_eof():
                    writer.write_eof()
            await reader_task
        finally:
            if not reader_task.done():
                reader_task.cancel()
                with suppress(asyncio.CancelledError):
                    await reader_task
    finally:
        await _close(writer)

    stats.success_connections += 1