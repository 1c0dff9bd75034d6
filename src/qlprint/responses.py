"""
Status reply parser for Brother QL printers.

Reply structure (32 bytes):
    Offset  Length  Field
    0       1       Print head mark (0x80)
    1       1       Size (0x20)
    2       1       Brother code ('B')
    3       1       Series code
    4       1       Model code
    5       1       Country code
    6-7     2       Reserved
    8       1       Error information 1
    9       1       Error information 2
    10      1       Media width (mm)
    11      1       Media type
    12-14   3       Reserved
    15      1       Mode
    16      1       Reserved
    17      1       Media length (mm, 0 for continuous)
    18      1       Status type
    19      1       Phase type
    20-21   2       Phase number
    22      1       Notification number
    23-31   9       Reserved
"""

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Optional

from .errors import MalformedStatus
from .media import Media, MediaType

STATUS_LENGTH = 32
PRINT_HEAD_MARK = 0x80


class StatusOffsets(IntEnum):
    PRINT_HEAD_MARK = 0
    SIZE = 1
    BROTHER_CODE = 2
    SERIES_CODE = 3
    MODEL_CODE = 4
    ERROR_INFORMATION_1 = 8
    ERROR_INFORMATION_2 = 9
    MEDIA_WIDTH = 10
    MEDIA_TYPE = 11
    MODE = 15
    MEDIA_LENGTH = 17
    STATUS_TYPE = 18
    PHASE_TYPE = 19
    PHASE_NUMBER = 20
    NOTIFICATION = 22


class ErrorFlag(IntFlag):
    """Error conditions reported in error information bytes 1 and 2."""

    NONE = 0
    NO_MEDIA = 0x01
    END_OF_MEDIA = 0x02
    PAPER_JAM = 0x04
    COVER_OPEN = 0x08
    UNRECOVERABLE = 0x10
    PRINTER_IN_USE = 0x20
    TRANSMISSION_ERROR = 0x40
    UNRECOGNIZED = 0x80

    def describe(self) -> str:
        names = [flag.name.lower().replace("_", " ") for flag in ErrorFlag
                 if flag and flag in self]
        return ", ".join(names) if names else "none"


# (status offset, bit) -> flag
ERROR_BITS = {
    (StatusOffsets.ERROR_INFORMATION_1, 0x01): ErrorFlag.NO_MEDIA,
    (StatusOffsets.ERROR_INFORMATION_1, 0x02): ErrorFlag.END_OF_MEDIA,
    (StatusOffsets.ERROR_INFORMATION_1, 0x04): ErrorFlag.PAPER_JAM,  # cutter jam
    (StatusOffsets.ERROR_INFORMATION_1, 0x10): ErrorFlag.PRINTER_IN_USE,
    (StatusOffsets.ERROR_INFORMATION_1, 0x80): ErrorFlag.UNRECOVERABLE,  # fan failure
    (StatusOffsets.ERROR_INFORMATION_2, 0x04): ErrorFlag.TRANSMISSION_ERROR,
    (StatusOffsets.ERROR_INFORMATION_2, 0x10): ErrorFlag.COVER_OPEN,
    (StatusOffsets.ERROR_INFORMATION_2, 0x40): ErrorFlag.PAPER_JAM,  # cannot feed
    (StatusOffsets.ERROR_INFORMATION_2, 0x80): ErrorFlag.UNRECOVERABLE,  # system error
}

# flag -> (status offset, bit) used when building a reply
FLAG_BITS = {}
for _key, _flag in ERROR_BITS.items():
    FLAG_BITS.setdefault(_flag, _key)
FLAG_BITS[ErrorFlag.UNRECOGNIZED] = (StatusOffsets.ERROR_INFORMATION_1, 0x08)  # weak batteries


class StatusType(IntEnum):
    REPLY = 0x00
    PRINTING_COMPLETED = 0x01
    ERROR_OCCURRED = 0x02
    TURNED_OFF = 0x04
    NOTIFICATION = 0x05
    PHASE_CHANGE = 0x06
    UNKNOWN = 0xFF

    @classmethod
    def from_byte(cls, value: int) -> "StatusType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Phase(IntEnum):
    RECEIVING = 0x00
    PRINTING = 0x01
    COOLING = 0x10
    UNKNOWN = 0xFF


class Notification(IntEnum):
    NONE = 0x00
    COOLING_STARTED = 0x03
    COOLING_FINISHED = 0x04


@dataclass
class StatusFrame:
    """Parsed status reply."""

    media_width_mm: int
    media_length_mm: int
    media_type: MediaType
    error_flags: ErrorFlag
    status_type: StatusType
    phase: Phase
    raw: bytes = b""

    @property
    def ok(self) -> bool:
        return not self.error_flags

    @property
    def media(self) -> Optional[Media]:
        """Media entry for the loaded roll, if it is in the media table."""
        return Media.lookup(self.media_width_mm, self.media_length_mm)

    @classmethod
    def parse(cls, data: bytes) -> "StatusFrame":
        """
        Parse a status reply.

        Raises:
            MalformedStatus: If the reply is short or the header is wrong
        """
        if len(data) < STATUS_LENGTH:
            raise MalformedStatus(
                f"Status reply is {len(data)} bytes, expected {STATUS_LENGTH}",
                raw=bytes(data),
            )
        if data[StatusOffsets.PRINT_HEAD_MARK] != PRINT_HEAD_MARK or data[StatusOffsets.SIZE] != STATUS_LENGTH:
            raise MalformedStatus(
                f"Bad status header {bytes(data[:2]).hex()}, expected 8020",
                raw=bytes(data),
            )

        flags = ErrorFlag.NONE
        for offset in (StatusOffsets.ERROR_INFORMATION_1, StatusOffsets.ERROR_INFORMATION_2):
            byte = data[offset]
            for bit in range(8):
                mask = 1 << bit
                if byte & mask:
                    flags |= ERROR_BITS.get((offset, mask), ErrorFlag.UNRECOGNIZED)

        if data[StatusOffsets.NOTIFICATION] == Notification.COOLING_STARTED:
            phase = Phase.COOLING
        elif data[StatusOffsets.PHASE_TYPE] == 0x00:
            phase = Phase.RECEIVING
        elif data[StatusOffsets.PHASE_TYPE] == 0x01:
            phase = Phase.PRINTING
        else:
            phase = Phase.UNKNOWN

        return cls(
            media_width_mm=data[StatusOffsets.MEDIA_WIDTH],
            media_length_mm=data[StatusOffsets.MEDIA_LENGTH],
            media_type=MediaType.from_byte(data[StatusOffsets.MEDIA_TYPE]),
            error_flags=flags,
            status_type=StatusType.from_byte(data[StatusOffsets.STATUS_TYPE]),
            phase=phase,
            raw=bytes(data[:STATUS_LENGTH]),
        )

    def encode(self) -> bytes:
        """Build a reply with this frame's fields (for mock devices)."""
        data = bytearray(STATUS_LENGTH)
        data[StatusOffsets.PRINT_HEAD_MARK] = PRINT_HEAD_MARK
        data[StatusOffsets.SIZE] = STATUS_LENGTH
        data[StatusOffsets.BROTHER_CODE] = ord("B")
        data[StatusOffsets.SERIES_CODE] = 0x34
        for flag, (offset, mask) in FLAG_BITS.items():
            if flag in self.error_flags:
                data[offset] |= mask
        data[StatusOffsets.MEDIA_WIDTH] = self.media_width_mm
        data[StatusOffsets.MEDIA_TYPE] = self.media_type & 0xFF
        data[StatusOffsets.MEDIA_LENGTH] = self.media_length_mm
        data[StatusOffsets.STATUS_TYPE] = self.status_type & 0xFF
        if self.phase == Phase.COOLING:
            data[StatusOffsets.PHASE_TYPE] = Phase.PRINTING
            data[StatusOffsets.NOTIFICATION] = Notification.COOLING_STARTED
        else:
            data[StatusOffsets.PHASE_TYPE] = self.phase & 0xFF
        return bytes(data)

    def __str__(self) -> str:
        return (
            f"Media: {self.media_width_mm}x{self.media_length_mm}mm "
            f"{self.media_type.name.lower().replace('_', '-')}, "
            f"phase: {self.phase.name.lower()}, "
            f"errors: {self.error_flags.describe()}"
        )


def decode_status(data: bytes) -> StatusFrame:
    """Parse a 32-byte status reply into a StatusFrame."""
    return StatusFrame.parse(data)
