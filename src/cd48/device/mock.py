"""
Simulated CD48 for tests and the offline demo.

`SimulatedCD48` implements the ByteChannel contract and answers the wire
protocol from in-memory state. Counters advance with a `VirtualClock`, so a
ten-second measurement completes instantly and yields exact counts.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional, Sequence

import numpy as np

from .responses import COUNTER_MAX, ChannelInputs

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "CD48 command summary",
    "c  counts        C  counts (text)",
    "v  version       p  settings",
    "h  help          T  test LEDs",
    "L n trigger      V n DAC",
    "z 50 ohm         Z high-Z",
    "S ch a b c d     R ms / r repeat",
)


class VirtualClock:
    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._now += seconds


class SimulatedCD48:
    def __init__(
        self,
        rates: Sequence[float] = (100.0, 200.0, 0.0, 0.0, 5.0, 0.0, 0.0, 0.0),
        *,
        clock: Optional[VirtualClock] = None,
        version: str = "CD48 v1.0 (simulated)",
        rng: Optional[np.random.Generator] = None,
        initial_counts: Optional[Sequence[int]] = None,
        disconnect_after: Optional[int] = None,
    ):
        if len(rates) != 8:
            raise ValueError("Must provide 8 channel rates")
        self.rates = [float(rate) for rate in rates]
        self.clock = clock or VirtualClock()
        self.version = version
        self.rng = rng
        self.disconnect_after = disconnect_after
        self.closed = False
        self.written: List[bytes] = []
        self.commands = 0
        self.overflow = 0
        self.channels = [ChannelInputs.from_mask(1 << min(idx, 3)) for idx in range(8)]
        self.trigger_level = 0
        self.dac_voltage = 0
        self.impedance_50ohm = False
        self.repeat_enabled = False
        self.repeat_interval_ms = 1000
        self._pending: Deque[bytes] = deque()
        self._base = [int(value) for value in (initial_counts or [0] * 8)]
        self._accumulated = [0.0] * 8
        self._last_update = self.clock.now()

    # -- ByteChannel -------------------------------------------------------

    def write(self, data: bytes) -> None:
        if self.closed:
            raise OSError("simulated port closed")
        self.written.append(data)
        self.commands += 1
        if self.disconnect_after is not None and self.commands > self.disconnect_after:
            logger.debug("Simulated device dropping off after %d commands", self.disconnect_after)
            self._pending.clear()
            return
        text = data.decode("ascii").strip()
        if not text:
            return
        command, *args = text.split()
        for line in self._respond(command, [int(arg) for arg in args]):
            self._pending.append(line.encode("ascii") + b"\r\n")

    def read_line(self, terminator: bytes = b"\n") -> bytes:
        if self.closed or not self._pending:
            return b""
        return self._pending.popleft()

    def close(self) -> None:
        self.closed = True

    # -- test helpers ------------------------------------------------------

    def set_counts(self, counts: Sequence[int]) -> None:
        if len(counts) != 8:
            raise ValueError("Must provide 8 count values")
        self._sync()
        self._base = [int(value) for value in counts]
        self._accumulated = [0.0] * 8

    def counts(self) -> List[int]:
        self._sync()
        values = []
        for channel in range(8):
            total = self._base[channel] + int(np.floor(self._accumulated[channel]))
            if total > COUNTER_MAX[channel]:
                self.overflow |= 1 << channel
                total = COUNTER_MAX[channel]
            values.append(total)
        return values

    # -- internals ---------------------------------------------------------

    def _sync(self) -> None:
        now = self.clock.now()
        elapsed = now - self._last_update
        self._last_update = now
        if elapsed <= 0:
            return
        for channel, rate in enumerate(self.rates):
            expected = rate * elapsed
            if self.rng is not None:
                self._accumulated[channel] += float(self.rng.poisson(expected))
            else:
                self._accumulated[channel] += expected

    def _respond(self, command: str, args: List[int]) -> List[str]:
        if command == "v":
            return [self.version]
        if command == "c":
            return [" ".join(str(value) for value in self.counts()) + f" {self.overflow}"]
        if command == "C":
            values = self.counts()
            return ["  ".join(f"{idx}:{value}" for idx, value in enumerate(values))]
        if command == "p":
            return [self._settings_line()]
        if command == "h":
            return list(HELP_TEXT)
        if command == "T":
            return ["OK"]
        if command == "L" and len(args) == 1:
            self.trigger_level = args[0]
            return ["OK"]
        if command == "V" and len(args) == 1:
            self.dac_voltage = args[0]
            return ["OK"]
        if command == "z":
            self.impedance_50ohm = True
            return ["OK"]
        if command == "Z":
            self.impedance_50ohm = False
            return ["OK"]
        if command == "S" and len(args) == 5:
            channel, a, b, c, d = args
            self.channels[channel] = ChannelInputs(A=bool(a), B=bool(b), C=bool(c), D=bool(d))
            return ["OK"]
        if command == "R" and len(args) == 1:
            self.repeat_interval_ms = args[0]
            return ["OK"]
        if command == "r":
            self.repeat_enabled = not self.repeat_enabled
            return ["OK"]
        return [f"ERR unknown command {command}"]

    def _settings_line(self) -> str:
        tokens = [channel.mask() for channel in self.channels]
        tokens += [
            self.trigger_level,
            self.dac_voltage,
            int(self.impedance_50ohm),
            int(self.repeat_enabled),
            self.repeat_interval_ms,
        ]
        return " ".join(str(token) for token in tokens)
