import string
import time
from datetime import timedelta

import pytest

from loadkali.utils import (
    file_arg,
    generate_payload,
    message_arg,
    parse_bandwidth,
    parse_duration,
    parse_rate,
    unescape_string,
    unix_timestamp_millis,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("15s", timedelta(seconds=15)),
        ("100ms", timedelta(milliseconds=100)),
        ("2m", timedelta(minutes=2)),
        ("1h", timedelta(hours=1)),
        ("1d", timedelta(days=1)),
        ("0s", timedelta(0)),
    ],
)
def test_parse_duration_units(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("s", "Duration string too short"),
        ("", "Duration string too short"),
        ("xs", "Invalid duration number"),
        ("-5s", "Invalid duration number"),
        ("10y", "Invalid duration unit"),
        ("abms", "Invalid duration number"),
        (" 5s", "Invalid duration number"),
    ],
)
def test_parse_duration_errors(text, message):
    with pytest.raises(ValueError, match=message):
        parse_duration(text)


def test_parse_duration_rejects_overflow():
    with pytest.raises(ValueError):
        parse_duration("99999999999999999999999s")


def test_parse_rate_plain_and_thousands():
    assert parse_rate("100") == 100
    assert parse_rate("1k") == 1000
    assert parse_rate("3k") == parse_rate("3") * parse_rate("1k")


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("", "Empty rate string"),
        ("abc", "Invalid rate number"),
        ("k", "Invalid rate number"),
        ("-1", "Invalid rate number"),
        ("1.5k", "Invalid rate number"),
    ],
)
def test_parse_rate_errors(text, message):
    with pytest.raises(ValueError, match=message):
        parse_rate(text)


def test_parse_bandwidth_suffixes_are_case_insensitive():
    assert parse_bandwidth("1kbps") == 1000
    assert parse_bandwidth("1Mbps") == 1_000_000
    assert parse_bandwidth("1KBPS") == parse_bandwidth("1kbps")
    assert parse_bandwidth("42") == 42


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("", "Empty bandwidth string"),
        ("kbps", "Invalid bandwidth number"),
        ("fast", "Invalid bandwidth number"),
    ],
)
def test_parse_bandwidth_errors(text, message):
    with pytest.raises(ValueError, match=message):
        parse_bandwidth(text)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (r"a\nb", "a\nb"),
        (r"\r\t", "\r\t"),
        (r"\\", "\\"),
        (r"\0", "\0"),
        (r"\x41", "A"),
        (r"\xZZ", r"\xZZ"),
        (r"\x4", r"\x4"),
        (r"\q", r"\q"),
        ("end\\", "end\\"),
        ("plain", "plain"),
    ],
)
def test_unescape_string(raw, expected):
    assert unescape_string(raw) == expected


def test_unescape_high_hex_is_a_code_point():
    assert unescape_string(r"\xff") == "\u00ff"


def test_message_arg_variants():
    assert message_arg(None, True) is None
    assert message_arg(r"hi\n", True) == b"hi\n"
    assert message_arg(r"hi\n", False) == b"hi\\n"
    assert message_arg(r"\xff", True) == "\u00ff".encode("utf-8")


def test_file_arg_reads_content_verbatim(tmp_path):
    path = tmp_path / "msg.txt"
    path.write_bytes(b"a\r\nb\\t")
    assert file_arg(str(path), False) == b"a\r\nb\\t"
    assert file_arg(str(path), True) == b"a\r\nb\t"


def test_file_arg_missing_file_reports_and_returns_none(tmp_path, capsys):
    missing = tmp_path / "absent.txt"
    assert file_arg(str(missing), False) is None
    assert "Failed to read file" in capsys.readouterr().err


def test_file_arg_invalid_utf8_returns_none(tmp_path, capsys):
    path = tmp_path / "bin.dat"
    path.write_bytes(b"\xff\xfe\x00")
    assert file_arg(str(path), False) is None
    assert str(path) in capsys.readouterr().err


def test_file_arg_none_filename():
    assert file_arg(None, True) is None


@pytest.mark.parametrize("size", [0, 1, 128, 1000])
def test_generate_payload_size_and_alphabet(size):
    payload = generate_payload(size)
    assert len(payload) == size
    allowed = set((string.ascii_letters + string.digits).encode())
    assert set(payload) <= allowed


def test_unix_timestamp_millis_tracks_wall_clock():
    before = int(time.time() * 1000)
    stamp = unix_timestamp_millis()
    after = int(time.time() * 1000)
    assert before - 1 <= stamp <= after + 1