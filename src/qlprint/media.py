"""
Media definitions for Brother QL label printers.

Printable widths are the print head dots covered by each tape or label,
measured as total dots minus the right-hand offset of the loaded roll.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional

# Print head specifications (300 DPI, 720 dots)
DPI = 300
HEAD_WIDTH = 720
LINE_BYTES = HEAD_WIDTH // 8

# Longest continuous label the printer accepts: 1 m at 300 DPI
MAX_LENGTH_MM = 1000
MAX_RASTER_LINES = MAX_LENGTH_MM * DPI * 10 // 254


class MediaType(IntEnum):
    """Media type byte used in status replies and print information."""

    NO_MEDIA = 0x00
    CONTINUOUS = 0x0A
    DIE_CUT = 0x0B
    UNKNOWN = 0xFF

    @classmethod
    def from_byte(cls, value: int) -> "MediaType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Media:
    """A tape or label roll the printer can be loaded with.

    Attributes:
        width_mm: Tape width as reported in the status reply
        length_mm: Label length, 0 for continuous tape
        media_type: Continuous tape or die-cut labels
        printable_dots: Dots of the head covered by the media
    """

    width_mm: int
    length_mm: int
    media_type: MediaType
    printable_dots: int

    @property
    def identifier(self) -> str:
        if self.length_mm == 0:
            return str(self.width_mm)
        return f"{self.width_mm}x{self.length_mm}"

    @property
    def max_lines(self) -> int:
        """Raster lines that fit on one label (whole roll for continuous)."""
        if self.length_mm == 0:
            return MAX_RASTER_LINES
        return self.length_mm * DPI * 10 // 254

    @classmethod
    def lookup(cls, width_mm: int, length_mm: int) -> Optional["Media"]:
        """Find the media matching a status reply, or None if unknown."""
        for media in MEDIA.values():
            if media.width_mm == width_mm and media.length_mm == length_mm:
                return media
        return None

    def __str__(self) -> str:
        kind = "continuous" if self.media_type == MediaType.CONTINUOUS else "die-cut"
        return f"{self.identifier:<8} {kind:<11} {self.printable_dots} dots"


def _continuous(width_mm: int, dots: int) -> Media:
    return Media(width_mm, 0, MediaType.CONTINUOUS, dots)


def _die_cut(width_mm: int, length_mm: int, dots: int) -> Media:
    return Media(width_mm, length_mm, MediaType.DIE_CUT, dots)


_MEDIA_LIST = [
    # Endless tapes
    _continuous(12, 142 - 29),
    _continuous(18, 256 - 171),
    _continuous(29, 342 - 6),
    _continuous(38, 449 - 12),
    _continuous(50, 590 - 12),
    _continuous(54, 636 - 0),
    _continuous(62, 732 - 12),
    # Die-cut labels
    _die_cut(17, 54, 201 - 0),
    _die_cut(17, 87, 201 - 0),
    _die_cut(23, 23, 272 - 42),
    _die_cut(29, 42, 342 - 6),
    _die_cut(29, 90, 342 - 6),
    _die_cut(38, 90, 449 - 12),
    _die_cut(39, 48, 461 - 6),
    _die_cut(52, 29, 614 - 0),
    _die_cut(54, 29, 630 - 60),
    _die_cut(60, 87, 708 - 18),
    _die_cut(62, 29, 732 - 12),
    _die_cut(62, 100, 732 - 12),
    # Round labels
    _die_cut(24, 24, 284 - 42),
    _die_cut(58, 58, 688 - 51),
]

MEDIA: Dict[str, Media] = {media.identifier: media for media in _MEDIA_LIST}

DEFAULT_MEDIA = "62"

# Take the media from the printer status at print time
AUTO_MEDIA = "auto"


def get_media(identifier: str) -> Media:
    """Return media by identifier (e.g. "62" or "29x90").

    Raises:
        KeyError: If the identifier is not in the media table
    """
    try:
        return MEDIA[identifier]
    except KeyError:
        raise KeyError(
            f"Unknown media '{identifier}'. Known: {', '.join(MEDIA)}"
        ) from None
