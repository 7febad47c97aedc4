# loadkali

A load testing tool for TCP and WebSocket servers. It opens a number of
connections to one target, repeatedly sends a message on each, and measures
throughput and round-trip latency of the echoed replies.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Usage

```
loadkali [options] host:port
```

For WebSocket runs (`--websocket`) the target is a WebSocket URI such as
`ws://127.0.0.1:8080/echo`.

A run starts with a 5 second warmup, whose traffic is not counted, then runs
the benchmark for the requested duration. Unless `-q` is given, one line of
live statistics (QPS, request count and latency percentiles) is printed every
second after warmup, and a summary is printed at the end: duration, connection
count and success rate, request count and rate, error rate, throughput,
bandwidth, traffic and the latency distribution in microseconds.

### Examples

Ping-pong a 128-byte random message over 10 TCP connections for 30 seconds:

```
loadkali -c 10 -T 30s 127.0.0.1:9000
```

Pipeline messages over WebSocket at 1000 messages per second per connection:

```
loadkali --websocket -p -r 1k -m "hello" ws://127.0.0.1:8080/echo
```

Send an escaped first message once, then a message read from a file:

```
loadkali -e --first-message "HELLO\r\n" -f payload.txt 127.0.0.1:9000
```

### Options

| Option | Meaning | Default |
| --- | --- | --- |
| `-V`, `--version` | Print the version and exit | |
| `--websocket`, `--ws` | Use RFC6455 WebSocket transport (binary messages) | off |
| `-c`, `--connections N` | Connections to keep open to the target | 1 |
| `--connect-rate R` | Each connection waits 1/R seconds before connecting; 0 means no wait | 100 |
| `--connect-timeout T` | Limit time spent in a connection attempt | 1s |
| `--channel-lifetime T` | Stop sending on each connection after T | none |
| `-w`, `--workers N` | Accepted and validated, but has no effect: all connections run on one event loop | 8 |
| `--nagle` | Leave the Nagle algorithm enabled (clear TCP_NODELAY) | off |
| `-p`, `--pipeline` | Send without waiting for each reply | off |
| `-T`, `--duration T` | Length of the benchmark | 15s |
| `-e`, `--unescape-message-args` | Unescape `-m`, `-f` and `--first-*` arguments | off |
| `--first-message STRING` | Send this message first, once | none |
| `--first-message-file NAME` | Read the first message from a file | none |
| `-m`, `--message STRING` | Message to repeatedly send | none |
| `-s`, `--message-size N` | Size of the random message used when no message is given | 128 |
| `-f`, `--message-file NAME` | Read the message to send from a file | none |
| `-r`, `--message-rate R` | Messages per second per connection | unlimited |
| `-q` | Suppress all output except error reports from file reading | off |

Durations take a unit suffix: `ms`, `s`, `m`, `h` or `d` (for example
`500ms`, `15s`, `2m`). Rates are plain integers or take a `k` suffix for
thousands (`2k` is 2000).

`-m` takes precedence over `-f`, and `--first-message` over
`--first-message-file`. Files are read as UTF-8; if one cannot be read, an
error is printed and the option is ignored (for the repeated message, a random
payload of `--message-size` bytes is used instead).

With `-e`, the escapes `\n`, `\r`, `\t`, `\\`, `\0` and `\xHH` are
recognised; unknown escapes and malformed hex escapes are kept as written.

### Measurement

The target server is expected to echo each message back. Over TCP, a reply is
the next block of bytes as long as the message sent; over WebSocket, it is the
next binary message. Latency is the time from sending a message until its
reply arrives. Every request is counted, but only every hundredth latency
sample of each connection (plus the reply to the first message) goes into the
latency histogram, which has three significant digits of precision and tracks
values up to 60 seconds.

## Library use

The pieces behind the command can be used directly:

- `loadkali.utils`: `parse_duration`, `parse_rate`, `parse_bandwidth`,
  `unescape_string`, `message_arg`, `file_arg`, `generate_payload` and
  `unix_timestamp_millis`.
- `loadkali.stats`: `LatencyHistogram` (`record`, `reset`,
  `value_at_percentile`, `mean`, `min`, `max`) and `Stats`, the shared
  counters of a run.
- `loadkali.command`: `build_parser`, `parse_args`, `parse_config` and the
  frozen `Config` dataclass.
- `loadkali.tcp_worker` and `loadkali.websocket_worker`: coroutines that
  drive one connection in ping-pong or pipeline mode until an
  `asyncio.Event` is set.
- `loadkali.cli`: `main`, `run`, `format_live_stats` and
  `format_final_stats`.

## Limitations

- A run targets a single `host:port` or WebSocket URI.
- There is no option to limit bandwidth; `parse_bandwidth` is available as a
  helper only.
- Messages are sent at a fixed rate or as fast as possible; there is no
  ramp-up beyond the per-connection connect delay.