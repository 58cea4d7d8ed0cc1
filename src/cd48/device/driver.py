from __future__ import annotations

import logging
import queue
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TypeVar

from .channel import ByteChannel, open_serial_channel
from .config import DeviceConfig
from .errors import CD48Error, NotConnectedError, ProtocolError
from .framing import ProtocolFramer
from .responses import (
    ChannelInputs,
    CountSnapshot,
    SettingsRecord,
    parse_counts,
    parse_help,
    parse_settings,
    parse_version,
)
from .validation import validate_impedance_mode, voltage_to_byte

logger = logging.getLogger(__name__)

T = TypeVar("T")

CMD_VERSION = "v"
CMD_COUNTS = "c"
CMD_COUNTS_TEXT = "C"
CMD_CLEAR = CMD_COUNTS
CMD_SETTINGS = "p"
CMD_HELP = "h"
CMD_TEST_LEDS = "T"
CMD_TRIGGER_LEVEL = "L"
CMD_DAC_VOLTAGE = "V"
CMD_IMPEDANCE_50 = "z"
CMD_IMPEDANCE_HIGHZ = "Z"
CMD_CHANNEL = "S"
CMD_REPEAT_INTERVAL = "R"
CMD_REPEAT_TOGGLE = "r"


@dataclass
class CommandRequest:
    command: str
    args: tuple = ()
    started: float = field(default=0.0)


@dataclass
class DeviceSession:
    channel: ByteChannel
    framer: ProtocolFramer
    opened: float = 0.0
    commands: int = 0


class CD48:
    """
    Request/reply driver for the CD48 coincidence counter.

    Commands go through a single-slot queue: a second caller blocks until the
    in-flight command has its reply (or gives up after the serial timeout), so
    replies always pair with the command that produced them.
    """

    def __init__(
        self,
        config: DeviceConfig | None = None,
        *,
        channel_factory: Optional[Callable[[DeviceConfig], ByteChannel]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or DeviceConfig()
        self._channel_factory = channel_factory or (lambda cfg: open_serial_channel(cfg.serial))
        self._sleep = sleep
        self.clock = clock
        self._slot: "queue.Queue[CommandRequest]" = queue.Queue(maxsize=1)
        self._session: Optional[DeviceSession] = None

    # -- session lifecycle -------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._session is not None

    def is_connected(self) -> bool:
        return self.connected

    @property
    def in_flight(self) -> Optional[str]:
        """Command currently awaiting its reply, if any."""
        try:
            return self._slot.queue[0].command
        except IndexError:
            return None

    def connect(self) -> "CD48":
        if self._session is not None:
            return self
        channel = self._channel_factory(self.config)
        framer = ProtocolFramer(channel, self.config.protocol, sleep=self._sleep)
        self._session = DeviceSession(channel=channel, framer=framer, opened=self.clock())
        logger.info("Connected to CD48 on %s", self.config.serial.port)
        return self

    def disconnect(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            session.channel.close()
        finally:
            logger.info(
                "Disconnected from CD48 (%d commands in %.1fs)",
                session.commands, self.clock() - session.opened,
            )

    def __enter__(self) -> "CD48":
        return self.connect()

    def __exit__(self, *_exc) -> None:
        self.disconnect()

    # -- exchange ----------------------------------------------------------

    def _exchange(self, request: CommandRequest, handler: Callable[[ProtocolFramer], T]) -> T:
        if self._session is None:
            raise NotConnectedError(request.command)
        try:
            self._slot.put(request, timeout=self.config.serial.timeout)
        except queue.Full as exc:
            raise ProtocolError(
                f"Command '{request.command}' timed out waiting for '{self.in_flight}' to complete"
            ) from exc
        try:
            session = self._session
            if session is None:
                raise NotConnectedError(request.command)
            request.started = self.clock()
            session.commands += 1
            result = handler(session.framer)
            logger.debug("'%s' answered in %.3fs", request.command, self.clock() - request.started)
            return result
        except ProtocolError:
            logger.warning("I/O failure during '%s'; closing session", request.command)
            self._teardown()
            raise
        finally:
            self._slot.get_nowait()

    def _teardown(self) -> None:
        try:
            self.disconnect()
        except (CD48Error, OSError) as exc:
            logger.warning("Error while releasing channel: %s", exc)

    def send_command(self, command: str, *args: int) -> str:
        """Send a raw command and return its single-line reply."""
        request = CommandRequest(command=command, args=args)
        return self._exchange(request, lambda framer: framer.send_command(command, *args))

    # -- device commands ---------------------------------------------------

    def get_version(self) -> str:
        return parse_version(self.send_command(CMD_VERSION))

    def get_counts(self, human_readable: bool = False) -> CountSnapshot | str:
        if human_readable:
            return self.send_command(CMD_COUNTS_TEXT).strip()
        return self.read_snapshot()

    def read_snapshot(self) -> CountSnapshot:
        def handler(framer: ProtocolFramer) -> CountSnapshot:
            line = framer.send_command(CMD_COUNTS)
            return parse_counts(line, timestamp=self.clock())

        return self._exchange(CommandRequest(command=CMD_COUNTS), handler)

    def clear_counts(self) -> CountSnapshot:
        """
        Issue the clear and confirm it.

        The firmware clears on the count command, so the acknowledgement is a
        well-formed count line; anything else raises MalformedResponseError.
        """
        def handler(framer: ProtocolFramer) -> CountSnapshot:
            return parse_counts(framer.send_command(CMD_CLEAR), timestamp=self.clock())

        snapshot = self._exchange(CommandRequest(command=CMD_CLEAR), handler)
        logger.info("Counters cleared")
        return snapshot

    def get_settings(self) -> SettingsRecord:
        return parse_settings(self.send_command(CMD_SETTINGS))

    def get_help(self) -> str:
        request = CommandRequest(command=CMD_HELP)
        lines: List[str] = self._exchange(request, lambda framer: framer.collect_lines(CMD_HELP))
        return parse_help(lines)

    def test_leds(self) -> str:
        return self.send_command(CMD_TEST_LEDS).strip()

    def set_trigger_level(self, voltage: float) -> str:
        return self.send_command(CMD_TRIGGER_LEVEL, voltage_to_byte(voltage)).strip()

    def set_dac_voltage(self, voltage: float) -> str:
        return self.send_command(CMD_DAC_VOLTAGE, voltage_to_byte(voltage)).strip()

    def set_impedance_50ohm(self) -> str:
        return self.send_command(CMD_IMPEDANCE_50).strip()

    def set_impedance_highz(self) -> str:
        return self.send_command(CMD_IMPEDANCE_HIGHZ).strip()

    def set_impedance(self, mode: str) -> str:
        if validate_impedance_mode(mode) == "50ohm":
            return self.set_impedance_50ohm()
        return self.set_impedance_highz()

    def set_channel(self, channel: int, inputs: ChannelInputs) -> str:
        return self.send_command(CMD_CHANNEL, channel, *inputs.bits()).strip()

    def set_repeat(self, interval_ms: int) -> str:
        return self.send_command(CMD_REPEAT_INTERVAL, int(interval_ms)).strip()

    def toggle_repeat(self) -> str:
        return self.send_command(CMD_REPEAT_TOGGLE).strip()

    def sleep(self, seconds: float) -> None:
        self._sleep(seconds)
