"""
Raster line packing for the Brother QL print head.

Each printed row is sent as exactly LINE_BYTES bytes, 8 pixels per byte,
most significant bit first, 1 = black. The head expects rows mirrored:
the first byte on the wire drives the right-hand edge of the label.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List

from .dither import BLACK
from .errors import EmptyImage, ImageTooLarge, RowTooWide
from .image import ImageBuffer
from .media import HEAD_WIDTH, MAX_RASTER_LINES


@dataclass(frozen=True)
class RasterLine:
    """One packed row of print head dots."""

    data: bytes

    def __post_init__(self):
        if len(self.data) * 8 != HEAD_WIDTH:
            raise ValueError(
                f"Raster line must be {HEAD_WIDTH // 8} bytes, got {len(self.data)}"
            )

    @property
    def is_blank(self) -> bool:
        return not any(self.data)

    def bits(self) -> List[int]:
        """Unpack to one 0/1 value per head dot, in wire order."""
        return [(byte >> (7 - bit)) & 1 for byte in self.data for bit in range(8)]


@dataclass
class RasterImage:
    """Ordered raster lines of one label."""

    lines: List[RasterLine]

    def __post_init__(self):
        if len(self.lines) > MAX_RASTER_LINES:
            raise ImageTooLarge(
                f"Raster has {len(self.lines)} lines, maximum is {MAX_RASTER_LINES}"
            )

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[RasterLine]:
        return iter(self.lines)

    def __getitem__(self, index: int) -> RasterLine:
        return self.lines[index]


class Padding(Enum):
    """Where the white fill goes when an image is narrower than the head."""

    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


def pack_bits(bits: List[int]) -> bytes:
    """Pack 0/1 values MSB first. Length must be a multiple of 8."""
    out = bytearray()
    for i in range(0, len(bits), 8):
        value = 0
        for bit, pix in enumerate(bits[i:i + 8]):
            if pix:
                value |= 1 << (7 - bit)
        out.append(value)
    return bytes(out)


class RasterPacker:
    """Pack 1-bit images into head-width raster lines."""

    def __init__(self, padding: Padding = Padding.LEFT, mirror: bool = True):
        self.padding = padding
        self.mirror = mirror
        self.head_width = HEAD_WIDTH

    def _offset(self, width: int) -> int:
        """Number of white dots placed before the image."""
        fill = self.head_width - width
        if self.padding == Padding.LEFT:
            return fill
        if self.padding == Padding.CENTER:
            return fill // 2
        return 0

    def pack(self, buffer: ImageBuffer) -> RasterImage:
        """
        Pack a 1-bit buffer into a RasterImage.

        Raises:
            RowTooWide: If the image is wider than the print head
            EmptyImage: If the image has no rows
        """
        if buffer.channels != 1:
            raise ValueError("RasterPacker expects a 1-bit buffer")
        if buffer.width > self.head_width:
            raise RowTooWide(
                f"Image width {buffer.width} exceeds head width {self.head_width}"
            )
        if buffer.width == 0 or buffer.height == 0:
            raise EmptyImage(f"Nothing to print ({buffer.width}x{buffer.height})")

        offset = self._offset(buffer.width)
        trailing = self.head_width - offset - buffer.width
        lines = []
        for y in range(buffer.height):
            bits = [0] * offset + [1 if p == BLACK else 0 for p in buffer.row(y)] + [0] * trailing
            if self.mirror:
                bits.reverse()
            lines.append(RasterLine(pack_bits(bits)))
        return RasterImage(lines)

    def unpack(self, raster: RasterImage, width: int) -> ImageBuffer:
        """Recover the 1-bit image of the given width from packed lines."""
        offset = self._offset(width)
        data = bytearray()
        for line in raster:
            bits = line.bits()
            if self.mirror:
                bits.reverse()
            data += bytes(bits[offset:offset + width])
        return ImageBuffer(width, len(raster), 1, bytes(data))
