"""
Driver stack for the CD48 coincidence counter.

Leaves first: `framing` encodes commands and reads replies over a byte channel,
`responses` parses reply text, `driver` owns the device session, and
`measurement` turns pairs of count snapshots into rates.
"""

from .channel import ByteChannel, SerialChannel
from .config import DeviceConfig, MeasurementDefaults, ProtocolSettings, SerialSettings, load_config
from .driver import CD48
from .errors import (
    CD48Error,
    CounterAnomaly,
    MalformedResponseError,
    MeasurementCancelled,
    NotConnectedError,
    ProtocolError,
    TransportError,
)
from .framing import ProtocolFramer
from .measurement import (
    CoincidenceMeasurement,
    CoincidenceOptions,
    MeasurementEngine,
    MeasurementState,
    RateMeasurement,
)
from .responses import ChannelInputs, CountSnapshot, SettingsRecord, parse_counts, parse_settings

__all__ = [
    "ByteChannel",
    "SerialChannel",
    "DeviceConfig",
    "MeasurementDefaults",
    "ProtocolSettings",
    "SerialSettings",
    "load_config",
    "CD48",
    "CD48Error",
    "CounterAnomaly",
    "MalformedResponseError",
    "MeasurementCancelled",
    "NotConnectedError",
    "ProtocolError",
    "TransportError",
    "ProtocolFramer",
    "CoincidenceMeasurement",
    "CoincidenceOptions",
    "MeasurementEngine",
    "MeasurementState",
    "RateMeasurement",
    "ChannelInputs",
    "CountSnapshot",
    "SettingsRecord",
    "parse_counts",
    "parse_settings",
]
