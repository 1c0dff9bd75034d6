"""
Brother QL Raster Command Protocol.

Each command frame has a fixed binary encoding taken from the Brother
QL raster command reference. Frames must reach the printer in a fixed
order; ProtocolEncoder enforces it with an explicit transition table.

Job sequence:
    Invalidate          200 x 0x00, flushes a half-received command
    Initialize          ESC @
    SwitchRasterMode    ESC i a 0x01
    SetMediaParameters  ESC i z  flags type width length count(4) page 0x00
    SetExpandedMode     ESC i K  flags
    SetMode             ESC i M  flags
    SetPageNumber       ESC i A  n
    SetMargin           ESC i d  dots(2)
    TransferRasterLine  g 0x00 0x5A  90 bytes   (once per row)
    PrintAndEject       0x1A  (0x0C without feed)

Status:
    StatusRequest       ESC i S, answered by a 32-byte status reply
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Union

from .errors import CommandOrderError
from .media import LINE_BYTES, Media, MediaType
from .raster import RasterImage, RasterLine

ESC = 0x1B


@dataclass(frozen=True)
class Invalidate:
    """Run of null bytes that flushes any partially received command."""

    LENGTH = 200

    def encode(self) -> bytes:
        return bytes(self.LENGTH)


@dataclass(frozen=True)
class Initialize:
    """Reset the command interpreter."""

    def encode(self) -> bytes:
        return bytes([ESC, 0x40])


@dataclass(frozen=True)
class StatusRequest:
    """Ask for a 32-byte status reply."""

    def encode(self) -> bytes:
        return bytes([ESC, 0x69, 0x53])


@dataclass(frozen=True)
class SwitchRasterMode:
    """Select raster mode (models that also speak ESC/P)."""

    def encode(self) -> bytes:
        return bytes([ESC, 0x69, 0x61, 0x01])


@dataclass(frozen=True)
class SetMediaParameters:
    """Print information: media kind, size and the number of raster lines."""

    media_type: MediaType
    width_mm: int
    length_mm: int
    raster_count: int

    # Valid-field flags
    PI_KIND = 0x02
    PI_WIDTH = 0x04
    PI_LENGTH = 0x08
    PI_QUALITY = 0x40
    PI_RECOVER = 0x80
    FLAGS = PI_KIND | PI_WIDTH | PI_LENGTH | PI_QUALITY | PI_RECOVER

    @classmethod
    def for_media(cls, media: Media, raster_count: int) -> "SetMediaParameters":
        return cls(media.media_type, media.width_mm, media.length_mm, raster_count)

    def encode(self) -> bytes:
        return (
            bytes([
                ESC, 0x69, 0x7A,
                self.FLAGS,
                self.media_type & 0xFF,
                self.width_mm & 0xFF,
                self.length_mm & 0xFF,
            ])
            + self.raster_count.to_bytes(4, "little")
            + bytes([0x01, 0x00])
        )


@dataclass(frozen=True)
class SetMode:
    """Various mode settings; only auto cut is used."""

    auto_cut: bool = True

    def encode(self) -> bytes:
        return bytes([ESC, 0x69, 0x4D, int(self.auto_cut) << 6])


@dataclass(frozen=True)
class SetExpandedMode:
    """Expanded mode: cut at end of job and 600 DPI feed resolution."""

    cut_at_end: bool = True
    high_resolution: bool = False

    def encode(self) -> bytes:
        flags = (int(self.cut_at_end) << 3) | (int(self.high_resolution) << 6)
        return bytes([ESC, 0x69, 0x4B, flags])


@dataclass(frozen=True)
class SetPageNumber:
    """Cut every n labels when auto cut is on (1-255)."""

    pages: int = 1

    def encode(self) -> bytes:
        if not 1 <= self.pages <= 255:
            raise ValueError(f"Page number must be 1-255, got {self.pages}")
        return bytes([ESC, 0x69, 0x41, self.pages])


@dataclass(frozen=True)
class SetMargin:
    """Feed amount in dots before and after the label."""

    dots: int = 0

    def encode(self) -> bytes:
        return bytes([ESC, 0x69, 0x64]) + self.dots.to_bytes(2, "little")


@dataclass(frozen=True)
class TransferRasterLine:
    """One uncompressed raster row."""

    line: RasterLine

    def encode(self) -> bytes:
        return bytes([0x67, 0x00, LINE_BYTES]) + self.line.data


@dataclass(frozen=True)
class PrintAndEject:
    """Print the buffered label; with feed the label is fed and cut."""

    feed: bool = True

    def encode(self) -> bytes:
        return bytes([0x1A if self.feed else 0x0C])


CommandFrame = Union[
    Invalidate,
    Initialize,
    StatusRequest,
    SwitchRasterMode,
    SetMediaParameters,
    SetMode,
    SetExpandedMode,
    SetPageNumber,
    SetMargin,
    TransferRasterLine,
    PrintAndEject,
]


class EncoderState(Enum):
    """Position in the command sequence."""

    IDLE = "idle"
    INITIALIZED = "initialized"
    MEDIA_SET = "media_set"
    TRANSFERRING = "transferring"
    FINISHED = "finished"


# frame type -> {state the frame is legal in: state after the frame}
TRANSITIONS: Dict[type, Dict[EncoderState, EncoderState]] = {
    Invalidate: {state: EncoderState.IDLE for state in EncoderState},
    Initialize: {state: EncoderState.INITIALIZED for state in EncoderState},
    StatusRequest: {
        EncoderState.INITIALIZED: EncoderState.INITIALIZED,
        EncoderState.FINISHED: EncoderState.FINISHED,
    },
    SwitchRasterMode: {EncoderState.INITIALIZED: EncoderState.INITIALIZED},
    SetMediaParameters: {EncoderState.INITIALIZED: EncoderState.MEDIA_SET},
    SetExpandedMode: {EncoderState.MEDIA_SET: EncoderState.MEDIA_SET},
    SetMode: {EncoderState.MEDIA_SET: EncoderState.MEDIA_SET},
    SetPageNumber: {EncoderState.MEDIA_SET: EncoderState.MEDIA_SET},
    SetMargin: {EncoderState.MEDIA_SET: EncoderState.MEDIA_SET},
    TransferRasterLine: {
        EncoderState.MEDIA_SET: EncoderState.TRANSFERRING,
        EncoderState.TRANSFERRING: EncoderState.TRANSFERRING,
    },
    PrintAndEject: {EncoderState.TRANSFERRING: EncoderState.FINISHED},
}


class ProtocolEncoder:
    """Serialize command frames, rejecting any out-of-order frame."""

    def __init__(self):
        self.state = EncoderState.IDLE
        self.raster_count = 0
        self.lines_sent = 0

    def encode(self, frame: CommandFrame) -> bytes:
        """
        Encode one frame and advance the sequence.

        Raises:
            CommandOrderError: If the frame is not allowed at this point
        """
        allowed = TRANSITIONS.get(type(frame))
        if allowed is None:
            raise CommandOrderError(f"Unknown command frame: {frame!r}")
        if self.state not in allowed:
            raise CommandOrderError(
                f"{type(frame).__name__} not allowed in state {self.state.value}"
            )

        if isinstance(frame, SetMediaParameters):
            if frame.raster_count <= 0:
                raise CommandOrderError("Print information must declare at least one line")
            self.raster_count = frame.raster_count
            self.lines_sent = 0
        elif isinstance(frame, TransferRasterLine):
            if self.lines_sent >= self.raster_count:
                raise CommandOrderError(
                    f"Raster line {self.lines_sent + 1} exceeds declared count {self.raster_count}"
                )
            self.lines_sent += 1
        elif isinstance(frame, PrintAndEject):
            if self.lines_sent != self.raster_count:
                raise CommandOrderError(
                    f"Only {self.lines_sent} of {self.raster_count} raster lines sent"
                )

        data = frame.encode()
        self.state = allowed[self.state]
        return data


def job_frames(raster: RasterImage, media: Media, auto_cut: bool = True,
               high_resolution: bool = False) -> List[CommandFrame]:
    """Build the full frame sequence that prints one label."""
    frames: List[CommandFrame] = [
        Invalidate(),
        Initialize(),
        SwitchRasterMode(),
        SetMediaParameters.for_media(media, len(raster)),
        SetExpandedMode(cut_at_end=auto_cut, high_resolution=high_resolution),
        SetMode(auto_cut=auto_cut),
        SetPageNumber(1),
        SetMargin(0),
    ]
    frames.extend(TransferRasterLine(line) for line in raster)
    frames.append(PrintAndEject(feed=True))
    return frames
