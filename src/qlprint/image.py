"""
Image loading and scaling for the Brother QL print head.

Decoded images are held as ImageBuffer values: raw 8-bit grayscale or RGB
samples in row-major order. Every pipeline stage returns a new buffer.
"""

import math
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import EmptyImage, ImageLoadError, ImageTooLarge
from .media import HEAD_WIDTH, MAX_RASTER_LINES

# Image size limits to prevent memory exhaustion from malicious/malformed images
MAX_IMAGE_DIMENSION = 20000  # Maximum width or height in pixels
MAX_IMAGE_PIXELS = 40_000_000  # Maximum total pixels (40 megapixels)

WHITE = 255


@dataclass(frozen=True)
class ImageBuffer:
    """Decoded pixel data.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        channels: 1 for grayscale, 3 for RGB
        data: Row-major samples, width * height * channels bytes
    """

    width: int
    height: int
    channels: int
    data: bytes

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid dimensions {self.width}x{self.height}")
        if self.channels not in (1, 3):
            raise ValueError(f"Unsupported channel count: {self.channels}")
        expected = self.width * self.height * self.channels
        if len(self.data) != expected:
            raise ValueError(
                f"Pixel data is {len(self.data)} bytes, expected {expected} "
                f"for {self.width}x{self.height}x{self.channels}"
            )

    @property
    def mode(self) -> str:
        """PIL mode matching the sample layout."""
        return "L" if self.channels == 1 else "RGB"

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def row(self, y: int) -> bytes:
        """Return the samples of row y."""
        stride = self.width * self.channels
        return self.data[y * stride:(y + 1) * stride]

    @classmethod
    def from_image(cls, image: Image.Image) -> "ImageBuffer":
        """
        Build a buffer from a PIL image.

        Transparent pixels are composited onto white, since the label
        itself is the background. Other modes are reduced to L or RGB.
        """
        has_alpha = image.mode in ("RGBA", "LA", "PA") or (
            image.mode == "P" and "transparency" in image.info
        )
        if has_alpha:
            rgba = image.convert("RGBA")
            background = Image.new("RGBA", rgba.size, (WHITE, WHITE, WHITE, 255))
            background.alpha_composite(rgba)
            image = background.convert("RGB")
        elif image.mode == "1":
            image = image.convert("L")
        elif image.mode not in ("L", "RGB"):
            image = image.convert("RGB")

        channels = 1 if image.mode == "L" else 3
        return cls(image.width, image.height, channels, image.tobytes())

    def to_image(self) -> Image.Image:
        """Return a PIL image sharing no memory with this buffer."""
        return Image.frombytes(self.mode, self.size, self.data)


def load_image(source: Union[str, Path, bytes, Image.Image, ImageBuffer]) -> ImageBuffer:
    """
    Load an image from various sources.

    Args:
        source: File path, encoded bytes, PIL Image or ImageBuffer

    Returns:
        ImageBuffer with the decoded pixels

    Raises:
        ImageLoadError: If the source cannot be read or decoded
        ImageTooLarge: If image dimensions exceed safety limits
    """
    if isinstance(source, ImageBuffer):
        return source

    try:
        if isinstance(source, Image.Image):
            img = source
        elif isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise ImageLoadError(f"Image file not found: {path}")
            img = Image.open(path)
        elif isinstance(source, bytes):
            img = Image.open(BytesIO(source))
        else:
            raise ImageLoadError(f"Unsupported image type: {type(source)}")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageLoadError(f"Failed to load image: {e}") from e

    # Validate image dimensions before decoding the pixel data
    if img.width > MAX_IMAGE_DIMENSION or img.height > MAX_IMAGE_DIMENSION:
        raise ImageTooLarge(
            f"Image dimensions ({img.width}x{img.height}) exceed maximum "
            f"({MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION})"
        )
    if img.width * img.height > MAX_IMAGE_PIXELS:
        raise ImageTooLarge(
            f"Image pixel count ({img.width * img.height:,}) exceeds "
            f"maximum ({MAX_IMAGE_PIXELS:,})"
        )

    try:
        img = ImageOps.exif_transpose(img)
        return ImageBuffer.from_image(img)
    except OSError as e:
        raise ImageLoadError(f"Failed to decode image: {e}") from e


class FitMode(Enum):
    """What to do with images longer than the media allows."""

    PAD = "pad"  # shrink to fit the length, pad the sides with white
    CROP = "crop"  # keep the top of the image
    REJECT = "reject"  # raise ImageTooLarge


class Scaler:
    """Resize images to the printable width of the loaded media."""

    RESAMPLING_FILTERS = (
        Image.Resampling.BOX,
        Image.Resampling.BILINEAR,
        Image.Resampling.HAMMING,
        Image.Resampling.BICUBIC,
        Image.Resampling.LANCZOS,
    )

    def __init__(
        self,
        width: int = HEAD_WIDTH,
        fit: FitMode = FitMode.REJECT,
        max_lines: int = MAX_RASTER_LINES,
        max_aspect_ratio: Optional[float] = None,
        high_resolution: bool = False,
        resample: Image.Resampling = Image.Resampling.BOX,
    ):
        """
        Initialize scaler.

        Args:
            width: Target width in pixels (printable dots of the media)
            fit: Policy for images longer than max_lines
            max_lines: Maximum output height in raster lines
            max_aspect_ratio: Reject images whose height/width exceeds this
            high_resolution: Double the height for 600 DPI feed direction
            resample: Pillow resampling filter (nearest is not allowed)
        """
        if width <= 0:
            raise ValueError(f"Target width must be positive, got {width}")
        if resample not in self.RESAMPLING_FILTERS:
            raise ValueError(
                f"Resampling filter {resample!r} not supported; "
                "nearest-neighbour scaling ruins dithering"
            )
        self.width = width
        self.fit = fit
        self.max_lines = max_lines
        self.max_aspect_ratio = max_aspect_ratio
        self.high_resolution = high_resolution
        self.resample = resample

    def scaled_height(self, width: int, height: int) -> int:
        """Height of an image of the given size scaled to the target width."""
        factor = 2 if self.high_resolution else 1
        return max(1, round(height * self.width * factor / width))

    def scale(self, buffer: ImageBuffer) -> ImageBuffer:
        """
        Scale an image to the target width.

        Raises:
            EmptyImage: If width or height is zero
            ImageTooLarge: If the image is too long and fit is REJECT,
                or its aspect ratio exceeds max_aspect_ratio
        """
        if buffer.width == 0 or buffer.height == 0:
            raise EmptyImage(f"Image has no pixels ({buffer.width}x{buffer.height})")

        ratio = buffer.height / buffer.width
        if self.max_aspect_ratio is not None and ratio > self.max_aspect_ratio:
            raise ImageTooLarge(
                f"Aspect ratio {ratio:.2f} exceeds maximum {self.max_aspect_ratio}"
            )

        height = self.scaled_height(buffer.width, buffer.height)
        if height <= self.max_lines:
            return self._resize(buffer, self.width, height)

        if self.fit == FitMode.REJECT:
            raise ImageTooLarge(
                f"Scaled height {height} exceeds maximum of {self.max_lines} lines"
            )

        if self.fit == FitMode.CROP:
            # Crop the source first so we never allocate the full-length image
            rows = min(buffer.height, math.ceil(self.max_lines * buffer.height / height))
            cropped = buffer.to_image().crop((0, 0, buffer.width, rows))
            return self._resize(ImageBuffer.from_image(cropped), self.width, self.max_lines)

        factor = 2 if self.high_resolution else 1
        width = max(1, min(self.width, round(buffer.width * self.max_lines / (buffer.height * factor))))
        scaled = self._resize(buffer, width, self.max_lines)
        return self._pad(scaled)

    def _resize(self, buffer: ImageBuffer, width: int, height: int) -> ImageBuffer:
        if buffer.size == (width, height):
            return buffer
        img = buffer.to_image().resize((width, height), self.resample)
        return ImageBuffer.from_image(img)

    def _pad(self, buffer: ImageBuffer) -> ImageBuffer:
        """Center the image on a white canvas of the target width."""
        if buffer.width == self.width:
            return buffer
        fill = WHITE if buffer.channels == 1 else (WHITE, WHITE, WHITE)
        canvas = Image.new(buffer.mode, (self.width, buffer.height), fill)
        canvas.paste(buffer.to_image(), ((self.width - buffer.width) // 2, 0))
        return ImageBuffer.from_image(canvas)
