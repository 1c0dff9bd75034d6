"""Print job configuration."""

from dataclasses import dataclass
from typing import Optional

from .gamma import DEFAULT_GAMMA
from .image import FitMode
from .media import AUTO_MEDIA, DEFAULT_MEDIA, MEDIA
from .raster import Padding

DEFAULT_TIMEOUT = 5.0  # seconds per device write or read

# Tallest image accepted by the CLI, as height / width
DEFAULT_MAX_ASPECT_RATIO = 3.5


@dataclass
class PrintConfig:
    """Settings for one print job.

    Attributes:
        gamma: Gamma exponent applied before dithering
        threshold_bias: Shift of the black/white decision point
        media: Media identifier from the media table (e.g. "62", "29x90"),
            or "auto" to use whatever the printer reports as loaded
        fit: What to do with images longer than the media
        timeout: Seconds allowed for each device write or read
        dither: Floyd-Steinberg dithering; plain threshold when False
        auto_cut: Cut the label after printing
        high_resolution: Print at 600 DPI in the feed direction
        padding: Side of the head that receives the white fill
        max_aspect_ratio: Reject images taller than this ratio
        wait: Wait for a busy printer instead of failing with PrinterBusy
    """

    gamma: float = DEFAULT_GAMMA
    threshold_bias: Optional[int] = None
    media: str = DEFAULT_MEDIA
    fit: FitMode = FitMode.REJECT
    timeout: float = DEFAULT_TIMEOUT
    dither: bool = True
    auto_cut: bool = True
    high_resolution: bool = False
    padding: Padding = Padding.LEFT
    max_aspect_ratio: Optional[float] = None
    wait: bool = False

    def __post_init__(self):
        if self.gamma <= 0:
            raise ValueError(f"Gamma must be positive, got {self.gamma}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        if self.threshold_bias is not None and not -128 < self.threshold_bias < 128:
            raise ValueError(f"Threshold bias must be within -127..127, got {self.threshold_bias}")
        if self.media not in MEDIA and self.media != AUTO_MEDIA:
            raise ValueError(f"Unknown media '{self.media}'. Known: {', '.join(MEDIA)}")
