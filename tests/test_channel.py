from __future__ import annotations

from typing import List

import pytest

from cd48.device.channel import SerialChannel, open_serial_channel
from cd48.device.config import SerialSettings
from cd48.device.errors import ProtocolError, TransportError


class FakeSerialException(Exception):
    pass


class FakePort:
    def __init__(self, replies: List[bytes], fail_reads: bool = False):
        self.replies = replies
        self.fail_reads = fail_reads
        self.written: List[bytes] = []
        self.resets = 0
        self.closed = False
        self.expected: List[bytes] = []

    def reset_input_buffer(self) -> None:
        self.resets += 1

    def write(self, data: bytes) -> int:
        self.written.append(data)
        return len(data)

    def flush(self) -> None:
        pass

    def read_until(self, expected: bytes = b"\n") -> bytes:
        if self.fail_reads:
            raise FakeSerialException("device unplugged")
        self.expected.append(expected)
        return self.replies.pop(0) if self.replies else b""

    def close(self) -> None:
        self.closed = True


class FakeSerialModule:
    SerialException = FakeSerialException

    def __init__(self, port: FakePort | None = None):
        self.port = port
        self.kwargs: dict = {}

    def Serial(self, **kwargs):
        self.kwargs = kwargs
        if self.port is None:
            raise FakeSerialException("could not open port")
        return self.port


def test_open_failure_is_transport_error(monkeypatch):
    monkeypatch.setattr("cd48.device.channel.serial", FakeSerialModule())
    with pytest.raises(TransportError):
        open_serial_channel(SerialSettings(port="/dev/ttyFAKE"))


def test_write_and_read(monkeypatch):
    port = FakePort([b"CD48 v1.0\r\n"])
    fake = FakeSerialModule(port)
    monkeypatch.setattr("cd48.device.channel.serial", fake)

    channel = SerialChannel(SerialSettings(port="/dev/ttyFAKE", baudrate=9600, timeout=0.2))
    channel.write(b"v\r")
    assert channel.read_line(b"\n") == b"CD48 v1.0\r\n"
    channel.close()

    assert fake.kwargs == {"port": "/dev/ttyFAKE", "baudrate": 9600, "timeout": 0.2}
    assert port.written == [b"v\r"]
    assert port.resets == 1
    assert port.expected == [b"\n"]
    assert port.closed


def test_read_failure_is_protocol_error(monkeypatch):
    monkeypatch.setattr("cd48.device.channel.serial", FakeSerialModule(FakePort([], fail_reads=True)))
    channel = SerialChannel(SerialSettings(port="/dev/ttyFAKE"))
    with pytest.raises(ProtocolError):
        channel.read_line()
