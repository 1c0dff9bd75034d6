"""
High-Level Brother QL Printer Interface.

Provides a simple API for printing images on a Brother QL label printer
through an already-open device handle.
"""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Union

from PIL import Image

from .config import DEFAULT_TIMEOUT, PrintConfig
from .device import DeviceHandle, PrinterPort
from .dither import bitmap_to_image
from .errors import DeviceIOError, DeviceReportedFault, DeviceTimeout, MediaMismatch
from .image import ImageBuffer, load_image
from .job import Pipeline, PrintJob
from .media import AUTO_MEDIA
from .protocol import Initialize, Invalidate, ProtocolEncoder, StatusRequest
from .raster import RasterImage
from .responses import STATUS_LENGTH, StatusFrame, StatusType, decode_status

log = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, Image.Image, ImageBuffer]


class LabelPrinter:
    """
    High-level interface to a Brother QL label printer.

    The device handle is opened and closed by the caller; the printer
    only borrows it for one job at a time.
    """

    def __init__(self, device: DeviceHandle):
        self.port = PrinterPort(device)
        self.last_job: Optional[PrintJob] = None

    @property
    def busy(self) -> bool:
        """True while a job holds the device."""
        return self.port.busy

    async def print_image(self, image: ImageSource,
                          config: Optional[PrintConfig] = None) -> StatusFrame:
        """
        Print an image as one label.

        Args:
            image: Image source (path, bytes, PIL Image or ImageBuffer)
            config: Print settings (defaults to PrintConfig())

        Returns:
            Status reported by the printer after printing

        Raises:
            InputError: If the image cannot be loaded or does not fit
            MediaMismatch: If the loaded media is not the configured one
            PrinterBusy: If another job is printing and config.wait is False
            DeviceError: If the device fails or times out
            ProtocolError: If the printer reply cannot be parsed
            DeviceReportedFault: If the printer reports an error
        """
        config = config or PrintConfig()
        buffer = load_image(image)
        log.debug("Image size: %dx%d pixels", buffer.width, buffer.height)

        async with self.port.acquire(wait=config.wait) as device:
            loaded = await self._query_status(device, config.timeout)
            job = PrintJob(buffer, self._match_media(loaded, config))
            self.last_job = job
            return await job.run(device)

    def _match_media(self, status: StatusFrame, config: PrintConfig) -> PrintConfig:
        """Check the loaded media against the job, resolving "auto"."""
        if status.error_flags:
            raise DeviceReportedFault(status.error_flags, status)
        media = status.media
        if media is None:
            raise MediaMismatch(
                f"Loaded media {status.media_width_mm}x{status.media_length_mm}mm "
                "is not in the media table"
            )
        if config.media == AUTO_MEDIA:
            log.info("Using loaded media %s", media.identifier)
            return replace(config, media=media.identifier)
        if media.identifier != config.media:
            raise MediaMismatch(
                f"Printer has {media.identifier} loaded, job is for {config.media}"
            )
        return config

    async def get_status(self, timeout: float = DEFAULT_TIMEOUT,
                         wait: bool = False) -> StatusFrame:
        """
        Query the printer status without printing.

        Raises:
            PrinterBusy: If a job is printing and wait is False
            DeviceError: If the device fails or times out
            MalformedStatus: If the reply cannot be parsed
        """
        async with self.port.acquire(wait=wait) as device:
            return await self._query_status(device, timeout)

    async def _query_status(self, device: DeviceHandle, timeout: float) -> StatusFrame:
        """
        Request a status reply on an acquired device.

        Unsolicited frames left over from a previous label (phase change,
        printing completed) are skipped until the reply or an error arrives.
        """
        encoder = ProtocolEncoder()
        frames = [
            encoder.encode(Invalidate()),
            encoder.encode(Initialize()),
            encoder.encode(StatusRequest()),
        ]
        loop = asyncio.get_running_loop()
        try:
            for frame in frames:
                await asyncio.wait_for(device.write(frame), timeout)
            deadline = loop.time() + timeout
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                reply = await asyncio.wait_for(device.read(STATUS_LENGTH), remaining)
                status = decode_status(reply)
                if status.error_flags or status.status_type == StatusType.REPLY:
                    return status
                log.debug("Skipping %s status frame", status.status_type.name.lower())
        except asyncio.TimeoutError as e:
            raise DeviceTimeout(f"Printer did not answer within {timeout}s") from e
        except OSError as e:
            raise DeviceIOError(f"Status query failed: {e}", cause=e) from e


def render(image: ImageSource, config: Optional[PrintConfig] = None) -> RasterImage:
    """Run the image pipeline without a printer."""
    return Pipeline(config or PrintConfig()).render(load_image(image))


def preview(image: ImageSource, config: Optional[PrintConfig] = None) -> Image.Image:
    """Return the 1-bit image exactly as it would be printed (unmirrored)."""
    pipeline = Pipeline(config or PrintConfig())
    return bitmap_to_image(pipeline.bitmap(load_image(image)))
