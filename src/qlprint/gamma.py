"""Gamma correction applied before dithering."""

from typing import List

from .image import ImageBuffer

# Tuning constant; recalibrate against real prints when changing paper stock
DEFAULT_GAMMA = 3.14


def to_grayscale(buffer: ImageBuffer) -> ImageBuffer:
    """
    Reduce an RGB buffer to luminance.

    Uses Pillow's ITU-R 601-2 luma transform:
    L = R * 299/1000 + G * 587/1000 + B * 114/1000
    """
    if buffer.channels == 1:
        return buffer
    return ImageBuffer.from_image(buffer.to_image().convert("L"))


def gamma_table(gamma: float) -> List[int]:
    """Build the 256-entry lookup table for a gamma exponent."""
    if gamma <= 0:
        raise ValueError(f"Gamma must be positive, got {gamma}")
    exponent = 1.0 / gamma
    return [round(255 * (value / 255) ** exponent) for value in range(256)]


class GammaCorrector:
    """Remap luminance with a gamma curve.

    Values above 1 brighten midtones, which keeps dithered photos from
    printing as solid black on thermal paper.
    """

    def __init__(self, gamma: float = DEFAULT_GAMMA):
        self.gamma = gamma
        self.table = gamma_table(gamma)

    def correct(self, buffer: ImageBuffer) -> ImageBuffer:
        gray = to_grayscale(buffer)
        corrected = gray.to_image().point(self.table)
        return ImageBuffer.from_image(corrected)
