"""WebSocket load generators: ping-pong and pipelined clients."""

from __future__ import annotations

import asyncio
import socket
import time
from collections import deque
from contextlib import suppress

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    WebSocketException,
)

from loadkali.command import Config
from loadkali.stats import Stats
from loadkali.tcp_worker import _drive, _fail, _micros_since, _pace

_MAX_MESSAGE_SIZE = 64 << 20


async def _open(target: str, config: Config) -> ClientConnection:
    ws = await connect(
        target,
        compression=None,
        ping_interval=None,
        open_timeout=None,
        max_size=_MAX_MESSAGE_SIZE,
    )
    if config.nagle:
        sock = ws.transport.get_extra_info("socket")
        if sock is not None:
            with suppress(OSError):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 0)
    return ws


async def _connect(target: str, config: Config, stats: Stats) -> ClientConnection | None:
    """Open the WebSocket, or count the failure and return None."""
    try:
        return await asyncio.wait_for(
            _open(target, config), timeout=config.connect_timeout.total_seconds()
        )
    except asyncio.TimeoutError:
        _fail(stats, config, f"WebSocket connection timeout to {target}")
    except (OSError, WebSocketException, ValueError) as exc:
        _fail(stats, config, f"Failed to connect to WebSocket {target}: {exc}")
    return None


async def _send_first_message(ws: ClientConnection, config: Config, stats: Stats) -> bool:
    """Send the configured first message and await one binary reply."""
    first = config.first_message
    if first is None:
        return True

    start = time.perf_counter_ns()
    try:
        await ws.send(first)
    except (ConnectionClosed, OSError) as exc:
        _fail(stats, config, f"Failed to send first WebSocket message: {exc}")
        return False

    try:
        reply = await ws.recv()
    except ConnectionClosedOK:
        reply = None
    except (ConnectionClosed, OSError) as exc:
        _fail(stats, config, f"Failed to read first message response: {exc}")
        return False

    if not isinstance(reply, bytes):
        _fail(stats, config, "Unexpected response to first message")
        return False

    stats.record_latency(_micros_since(start), 0)
    stats.record_request(len(first), len(reply))
    return True


async def _close(ws: ClientConnection) -> None:
    with suppress(ConnectionClosed, OSError):
        await ws.close()


async def websocket_worker(
    target: str, config: Config, stats: Stats, shutdown: asyncio.Event
) -> None:
    """Run one WebSocket connection in the mode the configuration selects."""
    if config.pipeline:
        await websocket_worker_pipeline(target, config, stats, shutdown)
    else:
        await websocket_worker_pingpong(target, config, stats, shutdown)


async def websocket_worker_pingpong(
    target: str, config: Config, stats: Stats, shutdown: asyncio.Event
) -> None:
    """Send a binary message, wait for the next message, repeat."""
    stats.total_connections += 1

    ws = await _connect(target, config, stats)
    if ws is None:
        return

    try:
        if not await _send_first_message(ws, config, stats):
            return

        message = config.message
        counter = 0

        async def step() -> None:
            nonlocal counter
            if stats.shutting_down:
                return

            sent = time.perf_counter_ns()
            try:
                await ws.send(message)
            except (ConnectionClosed, OSError) as exc:
                _fail(stats, config, f"WebSocket send error: {exc}")
                return

            counter += 1

            try:
                reply = await ws.recv()
            except ConnectionClosedOK:
                reply = None
            except (ConnectionClosed, OSError) as exc:
                _fail(stats, config, f"WebSocket receive error: {exc}")
                return
            if isinstance(reply, bytes):
                stats.record_latency(_micros_since(sent), counter)
                stats.record_request(len(message), len(reply))

            if counter % 100 == 0:
                await asyncio.sleep(0)
            await _pace(config, sent)

        await _drive(config, shutdown, step)
        await _close(ws)
    finally:
        if ws.state.name != "CLOSED":
            ws.transport.abort()

    stats.success_connections += 1


async def websocket_worker_pipeline(
    target: str, config: Config, stats: Stats, shutdown: asyncio.Event
) -> None:
    """Send binary messages without waiting while a reader task matches replies."""
    stats.total_connections += 1

    ws = await _connect(target, config, stats)
    if ws is None:
        return

    try:
        if not await _send_first_message(ws, config, stats):
            return

        sent_times: deque[int] = deque()

        async def read_replies() -> None:
            counter = 0
            while True:
                try:
                    reply = await ws.recv()
                except ConnectionClosedOK:
                    break
                except (ConnectionClosed, OSError) as exc:
                    _fail(stats, config, f"WebSocket receive error: {exc}")
                    break
                if not isinstance(reply, bytes):
                    continue
                counter += 1
                if sent_times:
                    sent = sent_times.popleft()
                    stats.record_latency(_micros_since(sent), counter)
                    stats.record_request(config.message_size, len(reply))

        reader_task = asyncio.create_task(read_replies())
        message = config.message
        counter = 0

        async def step() -> None:
            nonlocal counter
            if stats.shutting_down:
                return

            sent = time.perf_counter_ns()
            sent_times.append(sent)
            try:
                await ws.send(message)
            except (ConnectionClosed, OSError) as exc:
                _fail(stats, config, f"WebSocket send error: {exc}")
                return

            counter += 1
            if counter % 100 == 0:
                await asyncio.sleep(0)
            await _pace(config, sent)

        try:
            await _drive(config, shutdown, step)
            await _close(ws)
            await reader_task
        finally:
            if not reader_task.done():
                reader_task.cancel()
                with suppress(asyncio.CancelledError):
                    await reader_task
    finally:
        if ws.state.name != "CLOSED":
            ws.transport.abort()

    stats.success_connections += 1