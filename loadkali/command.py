"""Command-line options and the benchmark configuration built from them."""

from __future__ import annotations

import argparse
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import TypeVar

from loadkali.utils import (
    file_arg,
    generate_payload,
    message_arg,
    parse_duration,
    parse_rate,
)

_VERSION = "0.1.0"
_UNSIGNED = re.compile(r"\+?[0-9]+")
_U64_MAX = 2**64 - 1

T = TypeVar("T")


@dataclass(frozen=True)
class Config:
    """Settings shared by every connection of a run."""

    message: bytes
    duration: timedelta = timedelta(seconds=15)
    warmup_duration: timedelta = timedelta(seconds=5)
    message_size: int = 128
    quiet: bool = False
    nagle: bool = False
    pipeline: bool = False
    connections: int = 1
    connect_rate: int = 100
    connect_timeout: timedelta = timedelta(seconds=1)
    channel_lifetime: timedelta | None = None
    first_message: bytes | None = None
    message_rate: int | None = None
    use_websocket: bool = False


def _unsigned(text: str) -> int:
    if _UNSIGNED.fullmatch(text) is None:
        raise argparse.ArgumentTypeError("invalid digit found in string")
    value = int(text)
    if value > _U64_MAX:
        raise argparse.ArgumentTypeError("number too large to fit in target type")
    return value


def _option_type(func: Callable[[str], T]) -> Callable[[str], T]:
    def convert(text: str) -> T:
        try:
            return func(text)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from None

    convert.__name__ = func.__name__
    return convert


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="loadkali",
        description="A load testing tool for WebSocket and TCP server",
    )
    duration = _option_type(parse_duration)
    rate = _option_type(parse_rate)

    parser.add_argument(
        "target", metavar="host:port", help="Target server in host:port format"
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {_VERSION}"
    )
    parser.add_argument(
        "--websocket", "--ws", dest="websocket", action="store_true",
        help="Use RFC6455 WebSocket transport",
    )
    parser.add_argument(
        "-c", "--connections", metavar="N", type=_unsigned, default="1",
        help="Connections to keep open to the destinations",
    )
    parser.add_argument(
        "--connect-rate", metavar="R", type=rate, default="100",
        help="Limit number of new connections per second",
    )
    parser.add_argument(
        "--connect-timeout", metavar="T", type=duration, default="1s",
        help="Limit time spent in a connection attempt",
    )
    parser.add_argument(
        "--channel-lifetime", metavar="T", type=duration, default=None,
        help="Shut down each connection after T seconds",
    )
    parser.add_argument(
        "-w", "--workers", metavar="N", type=_unsigned, default="8",
        help="Number of worker threads to use",
    )
    parser.add_argument(
        "--nagle", action="store_true",
        help="Control Nagle algorithm (set TCP_NODELAY)",
    )
    parser.add_argument(
        "-p", "--pipeline", action="store_true",
        help="Use pipeline client to send messages",
    )
    parser.add_argument(
        "-T", "--duration", metavar="T", type=duration, default="15s",
        help="Load test for the specified amount of time",
    )
    parser.add_argument(
        "-e", "--unescape-message-args", action="store_true",
        help="Unescape the following {-m|-f|--first-*} arguments",
    )
    parser.add_argument(
        "--first-message", metavar="string", help="Send this message first, once"
    )
    parser.add_argument(
        "--first-message-file", metavar="name",
        help="Read the first message from a file",
    )
    parser.add_argument(
        "-m", "--message", metavar="string",
        help="Message to repeatedly send to the remote",
    )
    parser.add_argument(
        "-s", "--message-size", type=_unsigned, default="128",
        help="Random message to repeatedly send to the remote",
    )
    parser.add_argument(
        "-f", "--message-file", metavar="name",
        help="Read message to send from a file",
    )
    parser.add_argument(
        "-r", "--message-rate", metavar="R", type=rate, default=None,
        help="Messages per second to send in a connection",
    )
    parser.add_argument(
        "-q", dest="quiet", action="store_true", help="Suppress real-time output"
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments; exits with a usage message on errors."""
    return build_parser().parse_args(argv)


def parse_config(namespace: argparse.Namespace) -> Config:
    """Build the run configuration from parsed arguments."""
    unescape = namespace.unescape_message_args

    first_message = message_arg(namespace.first_message, unescape)
    if first_message is None:
        first_message = file_arg(namespace.first_message_file, unescape)

    message = message_arg(namespace.message, unescape)
    if message is None:
        message = file_arg(namespace.message_file, unescape)
    if message is None:
        message = generate_payload(namespace.message_size)

    return Config(
        duration=namespace.duration,
        warmup_duration=timedelta(seconds=5),
        message_size=namespace.message_size,
        quiet=namespace.quiet,
        nagle=namespace.nagle,
        pipeline=namespace.pipeline,
        connections=namespace.connections,
        connect_rate=namespace.connect_rate,
        connect_timeout=namespace.connect_timeout,
        channel_lifetime=namespace.channel_lifetime,
        first_message=first_message,
        message=message,
        message_rate=namespace.message_rate,
        use_websocket=namespace.websocket,
    )