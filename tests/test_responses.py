from __future__ import annotations

import pytest

from cd48.device.errors import CounterAnomaly, MalformedResponseError
from cd48.device.responses import (
    ChannelInputs,
    CountSnapshot,
    format_counts,
    parse_counts,
    parse_help,
    parse_settings,
    parse_version,
)


def test_parse_counts_valid_line():
    snapshot = parse_counts("1 2 3 4 5 6 7 8 0\r", timestamp=1.5)
    assert snapshot.counts == (1, 2, 3, 4, 5, 6, 7, 8)
    assert snapshot.overflow == 0
    assert snapshot.timestamp == 1.5
    assert snapshot[3] == 4


def test_parse_counts_overflow_bits():
    snapshot = parse_counts("0 0 0 0 0 0 0 65535 128")
    assert snapshot.overflowed(7)
    assert not snapshot.overflowed(0)


@pytest.mark.parametrize(
    "line",
    [
        "1 2 3 4 5 6 7 8",
        "1 2 3 4 5 6 7 8 0 9",
        "1 2 x 4 5 6 7 8 0",
        "1 2 -3 4 5 6 7 8 0",
        "1_000 200 300 400 500 600 700 800 0",
        "+5 2 3 4 5 6 7 8 0",
        "1 2 3 4 5 6 7 8 \u0663",
        "1.0 2 3 4 5 6 7 8 0",
        "0 0 0 0 0 0 0 65536 0",
        "16777216 0 0 0 0 0 0 0 0",
        "",
    ],
)
def test_parse_counts_rejects_malformed(line):
    with pytest.raises(MalformedResponseError):
        parse_counts(line)


def test_delta_counts_forward():
    start = CountSnapshot(counts=(10,) * 8, overflow=0)
    end = CountSnapshot(counts=(15,) * 8, overflow=0)
    assert end.delta(start, 2) == 5


def test_delta_raises_on_counter_reset():
    start = CountSnapshot(counts=(100,) * 8, overflow=0)
    end = CountSnapshot(counts=(5,) * 8, overflow=0)
    with pytest.raises(CounterAnomaly) as info:
        end.delta(start, 0)
    assert info.value.channel == 0
    assert info.value.before == 100
    assert info.value.after == 5


def test_parse_settings():
    record = parse_settings("1 2 4 8 3 5 9 15 128 64 1 0 1000")
    assert record.channels[0] == ChannelInputs(A=True)
    assert record.channels[4] == ChannelInputs(A=True, B=True)
    assert record.channels[7] == ChannelInputs(True, True, True, True)
    assert record.trigger_level == 128
    assert record.dac_voltage == 64
    assert record.impedance == "50ohm"
    assert record.repeat_enabled is False
    assert record.repeat_interval_ms == 1000


@pytest.mark.parametrize(
    "line",
    [
        "1 2 4 8 3 5 9 15 128 64 1 0",
        "16 2 4 8 3 5 9 15 128 64 1 0 1000",
        "1 2 4 8 3 5 9 15 256 64 1 0 1000",
        "1 2 4 8 3 5 9 15 128 64 2 0 1000",
    ],
)
def test_parse_settings_rejects_malformed(line):
    with pytest.raises(MalformedResponseError):
        parse_settings(line)


def test_channel_inputs_letters_and_mask():
    inputs = ChannelInputs.from_letters("a+c")
    assert inputs.bits() == (1, 0, 1, 0)
    assert inputs.mask() == 5
    assert str(inputs) == "A+C"
    assert ChannelInputs.from_mask(inputs.mask()) == inputs
    assert str(ChannelInputs()) == "-"


def test_channel_inputs_rejects_unknown_letter():
    with pytest.raises(ValueError):
        ChannelInputs.from_letters("AE")


def test_parse_version_and_help():
    assert parse_version(" CD48 v1.0 \r") == "CD48 v1.0"
    with pytest.raises(MalformedResponseError):
        parse_version("  ")
    assert parse_help(["usage  ", "c counts"]) == "usage\nc counts"


def test_format_counts_labels():
    snapshot = CountSnapshot(counts=(1, 2, 3, 4, 5, 6, 7, 8), overflow=0)
    assert format_counts(snapshot).startswith("ch0=1 ch1=2")
