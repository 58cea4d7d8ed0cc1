from __future__ import annotations

import logging
import time
from typing import Callable, List, Sequence

from .channel import ByteChannel
from .config import ProtocolSettings
from .errors import ProtocolError

COMMAND_TERMINATOR = b"\r"

logger = logging.getLogger(__name__)


def encode_command(command: str, args: Sequence[int] = ()) -> bytes:
    """Encode `<char>[ arg ...]\\r` as ASCII."""
    if len(command) != 1 or not command.isascii():
        raise ValueError(f"Command must be a single ASCII character, got {command!r}")
    parts = [command, *(str(int(arg)) for arg in args)]
    return " ".join(parts).encode("ascii") + COMMAND_TERMINATOR


def tokenize(line: str) -> List[str]:
    return line.split()


class ProtocolFramer:
    """
    Writes one framed command, waits the settle delay, and reads the reply.

    The device has no flow control, so the delay is a fixed wait rather than a
    ready signal.
    """

    def __init__(
        self,
        channel: ByteChannel,
        settings: ProtocolSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.channel = channel
        self.settings = settings or ProtocolSettings()
        self._sleep = sleep
        self._terminator = self.settings.reply_terminator.encode("ascii")

    def send_command(self, command: str, *args: int) -> str:
        self._write(command, args)
        return self._read_line(command)

    def collect_lines(self, command: str, *args: int) -> List[str]:
        """Send *command* and gather reply lines until the channel goes quiet."""
        self._write(command, args)
        lines: List[str] = []
        while True:
            raw = self._receive(command)
            if not self._is_terminated(raw):
                if raw.strip():
                    lines.append(self._decode(raw))
                break
            lines.append(self._decode(raw))
        if not lines:
            raise ProtocolError(f"No reply to command '{command}'")
        return lines

    def _write(self, command: str, args: Sequence[int]) -> None:
        payload = encode_command(command, args)
        logger.debug("-> %r", payload)
        try:
            self.channel.write(payload)
        except OSError as exc:
            raise ProtocolError(f"Write of command '{command}' failed: {exc}") from exc
        if self.settings.command_delay > 0:
            self._sleep(self.settings.command_delay)

    def _read_line(self, command: str) -> str:
        raw = self._receive(command)
        if not self._is_terminated(raw):
            raise ProtocolError(
                f"Channel closed or timed out before reply to '{command}' was terminated "
                f"(received {raw!r})"
            )
        line = self._decode(raw)
        logger.debug("<- %r", line)
        return line

    def _receive(self, command: str) -> bytes:
        try:
            return self.channel.read_line(self._terminator)
        except OSError as exc:
            raise ProtocolError(f"Read of reply to '{command}' failed: {exc}") from exc

    def _is_terminated(self, raw: bytes) -> bool:
        return bool(raw) and raw[-1:] in (b"\n", b"\r")

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode("ascii", errors="replace").strip("\r\n")
