"""
Conversion of grayscale images to 1-bit rasters.

Output buffers hold one sample per pixel: 0 for white (no heat) and
1 for black (heat applied). Error diffusion is strictly sequential, each
pixel depends on the quantization error of its left and upper neighbours,
so rows cannot be processed in parallel.
"""

from typing import Optional

from PIL import Image

from .image import ImageBuffer

WHITE = 0
BLACK = 1

MIDPOINT = 128

# Floyd-Steinberg kernel as (dx, dy, weight/16)
FLOYD_STEINBERG = (
    (1, 0, 7),
    (-1, 1, 3),
    (0, 1, 5),
    (1, 1, 1),
)


class Ditherer:
    """Floyd-Steinberg error-diffusion dithering."""

    def __init__(self, threshold_bias: Optional[int] = None):
        """
        Initialize ditherer.

        Args:
            threshold_bias: Shift of the black/white decision point.
                Positive values print darker, negative values lighter.
        """
        self.threshold = MIDPOINT + (threshold_bias or 0)

    def dither(self, buffer: ImageBuffer) -> ImageBuffer:
        """Dither a grayscale buffer to a 1-bit buffer of the same size."""
        if buffer.channels != 1:
            raise ValueError("Ditherer expects a grayscale buffer")

        width = buffer.width
        threshold = self.threshold
        out = bytearray(width * buffer.height)

        # Error accumulators for the current and next row, padded by one
        # column on each side so edge error falls off the buffer.
        current = [0.0] * (width + 2)
        following = [0.0] * (width + 2)

        for y in range(buffer.height):
            row = buffer.row(y)
            base = y * width
            for x in range(width):
                value = row[x] + current[x + 1]
                if value < threshold:
                    out[base + x] = BLACK
                    error = value
                else:
                    error = value - 255
                for dx, dy, weight in FLOYD_STEINBERG:
                    if dy == 0:
                        current[x + 1 + dx] += error * weight / 16
                    else:
                        following[x + 1 + dx] += error * weight / 16
            current, following = following, [0.0] * (width + 2)

        return ImageBuffer(width, buffer.height, 1, bytes(out))


def threshold(buffer: ImageBuffer, level: int = MIDPOINT) -> ImageBuffer:
    """Plain threshold conversion: samples at or below level print black."""
    if buffer.channels != 1:
        raise ValueError("Threshold expects a grayscale buffer")
    return ImageBuffer(
        buffer.width,
        buffer.height,
        1,
        bytes(BLACK if sample <= level else WHITE for sample in buffer.data),
    )


def bitmap_to_image(buffer: ImageBuffer) -> Image.Image:
    """Render a 1-bit buffer as a PIL "1" image for previews."""
    img = Image.frombytes(
        "L",
        buffer.size,
        bytes(0 if bit else 255 for bit in buffer.data),
    )
    return img.convert("1", dither=Image.Dither.NONE)
