from __future__ import annotations

from typing import List

import pytest

from cd48.device.config import ProtocolSettings
from cd48.device.errors import ProtocolError
from cd48.device.framing import ProtocolFramer, encode_command


class ScriptedChannel:
    def __init__(self, replies: List[bytes]):
        self.replies = list(replies)
        self.written: List[bytes] = []

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def read_line(self, terminator: bytes = b"\n") -> bytes:
        if self.replies:
            return self.replies.pop(0)
        return b""

    def close(self) -> None:
        pass


def test_encode_command_without_args():
    assert encode_command("v") == b"v\r"


def test_encode_command_with_args():
    assert encode_command("S", [4, 1, 1, 0, 0]) == b"S 4 1 1 0 0\r"
    assert encode_command("L", [128]) == b"L 128\r"


def test_encode_command_rejects_multi_char():
    with pytest.raises(ValueError):
        encode_command("vv")


def test_send_command_waits_settle_delay():
    waits: List[float] = []
    channel = ScriptedChannel([b"CD48 v1.0\r\n"])
    framer = ProtocolFramer(channel, ProtocolSettings(command_delay=0.05), sleep=waits.append)

    assert framer.send_command("v") == "CD48 v1.0"
    assert channel.written == [b"v\r"]
    assert waits == [0.05]


def test_zero_delay_skips_sleep():
    waits: List[float] = []
    framer = ProtocolFramer(ScriptedChannel([b"OK\n"]), ProtocolSettings(command_delay=0.0), sleep=waits.append)
    framer.send_command("T")
    assert waits == []


def test_unterminated_reply_is_protocol_error():
    framer = ProtocolFramer(ScriptedChannel([b"12 34"]), ProtocolSettings(command_delay=0.0))
    with pytest.raises(ProtocolError):
        framer.send_command("c")


def test_silent_channel_is_protocol_error():
    framer = ProtocolFramer(ScriptedChannel([]), ProtocolSettings(command_delay=0.0))
    with pytest.raises(ProtocolError):
        framer.send_command("v")


def test_collect_lines_reads_until_quiet():
    channel = ScriptedChannel([b"line one\r\n", b"line two\r\n"])
    framer = ProtocolFramer(channel, ProtocolSettings(command_delay=0.0))
    assert framer.collect_lines("h") == ["line one", "line two"]


def test_collect_lines_keeps_trailing_partial_line():
    channel = ScriptedChannel([b"first\n", b"last"])
    framer = ProtocolFramer(channel, ProtocolSettings(command_delay=0.0))
    assert framer.collect_lines("h") == ["first", "last"]


def test_collect_lines_without_reply_raises():
    framer = ProtocolFramer(ScriptedChannel([]), ProtocolSettings(command_delay=0.0))
    with pytest.raises(ProtocolError):
        framer.collect_lines("h")


class BrokenChannel(ScriptedChannel):
    def read_line(self, terminator: bytes = b"\n") -> bytes:
        raise OSError("port vanished")


def test_channel_os_error_becomes_protocol_error():
    framer = ProtocolFramer(BrokenChannel([]), ProtocolSettings(command_delay=0.0))
    with pytest.raises(ProtocolError):
        framer.send_command("v")
    with pytest.raises(ProtocolError):
        framer.collect_lines("h")
