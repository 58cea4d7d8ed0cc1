from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .errors import CounterAnomaly, MalformedResponseError
from .framing import tokenize

COUNT_TOKENS = 9
SETTINGS_TOKENS = 13
COUNTER_MAX: Tuple[int, ...] = (0xFFFFFF,) * 7 + (0xFFFF,)


@dataclass(frozen=True)
class ChannelInputs:
    """Which physical inputs must coincide to increment a channel."""

    A: bool = False
    B: bool = False
    C: bool = False
    D: bool = False

    def bits(self) -> Tuple[int, int, int, int]:
        return int(self.A), int(self.B), int(self.C), int(self.D)

    def mask(self) -> int:
        a, b, c, d = self.bits()
        return a | (b << 1) | (c << 2) | (d << 3)

    @staticmethod
    def from_mask(mask: int) -> "ChannelInputs":
        return ChannelInputs(A=bool(mask & 1), B=bool(mask & 2), C=bool(mask & 4), D=bool(mask & 8))

    @staticmethod
    def from_letters(letters: str) -> "ChannelInputs":
        """Build from a string such as 'AB' or 'a+c'."""
        picked = {char for char in letters.upper() if char.isalpha()}
        unknown = picked - set("ABCD")
        if unknown:
            raise ValueError(f"Unknown inputs {sorted(unknown)}; expected letters from ABCD")
        return ChannelInputs(A="A" in picked, B="B" in picked, C="C" in picked, D="D" in picked)

    def __str__(self) -> str:
        return "+".join(name for name, on in zip("ABCD", self.bits()) if on) or "-"


@dataclass(frozen=True)
class CountSnapshot:
    counts: Tuple[int, ...]
    overflow: int
    timestamp: float = 0.0

    def __getitem__(self, channel: int) -> int:
        return self.counts[channel]

    def overflowed(self, channel: int) -> bool:
        return bool(self.overflow & (1 << channel))

    def delta(self, earlier: "CountSnapshot", channel: int) -> int:
        """Counts accumulated on *channel* since *earlier*."""
        before = earlier.counts[channel]
        after = self.counts[channel]
        if after < before:
            raise CounterAnomaly(channel, before, after)
        return after - before


@dataclass(frozen=True)
class SettingsRecord:
    channels: Tuple[ChannelInputs, ...]
    trigger_level: int
    dac_voltage: int
    impedance_50ohm: bool
    repeat_enabled: bool
    repeat_interval_ms: int
    raw: str = field(default="", compare=False)

    @property
    def impedance(self) -> str:
        return "50ohm" if self.impedance_50ohm else "highz"


def _parse_ints(tokens: Iterable[str], line: str) -> List[int]:
    values: List[int] = []
    for token in tokens:
        if not (token.isascii() and token.isdigit()):
            raise MalformedResponseError(f"Token {token!r} is not an unsigned decimal integer", line)
        values.append(int(token))
    return values


def parse_counts(line: str, timestamp: float = 0.0) -> CountSnapshot:
    tokens = tokenize(line)
    if len(tokens) != COUNT_TOKENS:
        raise MalformedResponseError(f"Expected {COUNT_TOKENS} count tokens, got {len(tokens)}", line)
    values = _parse_ints(tokens, line)
    counts = tuple(values[:8])
    for channel, (value, limit) in enumerate(zip(counts, COUNTER_MAX)):
        if value > limit:
            raise MalformedResponseError(f"Channel {channel} count {value} exceeds counter width", line)
    return CountSnapshot(counts=counts, overflow=values[8], timestamp=timestamp)


def parse_version(line: str) -> str:
    version = line.strip()
    if not version:
        raise MalformedResponseError("Empty version reply", line)
    return version


def parse_settings(line: str) -> SettingsRecord:
    tokens = tokenize(line)
    if len(tokens) != SETTINGS_TOKENS:
        raise MalformedResponseError(
            f"Expected {SETTINGS_TOKENS} settings tokens, got {len(tokens)}", line
        )
    values = _parse_ints(tokens, line)
    masks = values[:8]
    if any(mask > 0xF for mask in masks):
        raise MalformedResponseError("Channel input mask out of range", line)
    trigger, dac, impedance, repeat_enabled, interval = values[8:]
    if trigger > 255 or dac > 255:
        raise MalformedResponseError("DAC code out of range", line)
    if impedance > 1 or repeat_enabled > 1:
        raise MalformedResponseError("Flag token must be 0 or 1", line)
    return SettingsRecord(
        channels=tuple(ChannelInputs.from_mask(mask) for mask in masks),
        trigger_level=trigger,
        dac_voltage=dac,
        impedance_50ohm=bool(impedance),
        repeat_enabled=bool(repeat_enabled),
        repeat_interval_ms=interval,
        raw=line.strip(),
    )


def parse_help(lines: Iterable[str]) -> str:
    return "\n".join(line.rstrip() for line in lines).strip()


def format_counts(snapshot: CountSnapshot, labels: Optional[List[str]] = None) -> str:
    names = labels or [f"ch{idx}" for idx in range(len(snapshot.counts))]
    return " ".join(f"{name}={value}" for name, value in zip(names, snapshot.counts))
