"""
Print job orchestration.

A PrintJob takes one image through the pipeline and the printer:

    IDLE -> SCALING -> CORRECTING_GAMMA -> DITHERING -> PACKING
         -> ENCODING -> TRANSFERRING -> AWAITING_STATUS -> DONE

Any stage may fail, which moves the job to FAILED. Nothing is retried:
the printer cannot resume a raster transfer part way through, so a
failed job is reported whole and the caller decides whether to resubmit.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from .config import PrintConfig
from .device import DeviceHandle
from .dither import MIDPOINT, Ditherer, threshold
from .errors import (
    DeviceIOError,
    DeviceReportedFault,
    DeviceTimeout,
    PrinterError,
)
from .gamma import GammaCorrector
from .image import ImageBuffer, Scaler
from .media import AUTO_MEDIA, MAX_RASTER_LINES, get_media
from .protocol import Initialize, Invalidate, ProtocolEncoder, StatusRequest, job_frames
from .raster import RasterImage, RasterPacker
from .responses import STATUS_LENGTH, StatusFrame, StatusType, decode_status

log = logging.getLogger(__name__)


class JobState(Enum):
    IDLE = "idle"
    SCALING = "scaling"
    CORRECTING_GAMMA = "correcting_gamma"
    DITHERING = "dithering"
    PACKING = "packing"
    ENCODING = "encoding"
    TRANSFERRING = "transferring"
    AWAITING_STATUS = "awaiting_status"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = {JobState.DONE, JobState.FAILED}

TRANSITIONS: Dict[JobState, Set[JobState]] = {
    JobState.IDLE: {JobState.SCALING},
    JobState.SCALING: {JobState.CORRECTING_GAMMA},
    JobState.CORRECTING_GAMMA: {JobState.DITHERING},
    JobState.DITHERING: {JobState.PACKING},
    JobState.PACKING: {JobState.ENCODING},
    JobState.ENCODING: {JobState.TRANSFERRING},
    JobState.TRANSFERRING: {JobState.AWAITING_STATUS},
    JobState.AWAITING_STATUS: {JobState.DONE},
    JobState.DONE: set(),
    JobState.FAILED: set(),
}

# Failures in these states may leave the printer mid-frame
DEVICE_STATES = {JobState.TRANSFERRING, JobState.AWAITING_STATUS}


class Pipeline:
    """Image stages configured for one job."""

    def __init__(self, config: PrintConfig):
        self.config = config
        if config.media == AUTO_MEDIA:
            raise ValueError("Media 'auto' must be resolved against a printer first")
        self.media = get_media(config.media)
        factor = 2 if config.high_resolution else 1
        self.scaler = Scaler(
            width=self.media.printable_dots,
            fit=config.fit,
            max_lines=min(MAX_RASTER_LINES, self.media.max_lines * factor),
            max_aspect_ratio=config.max_aspect_ratio,
            high_resolution=config.high_resolution,
        )
        self.corrector = GammaCorrector(config.gamma)
        self.ditherer = Ditherer(config.threshold_bias)
        self.packer = RasterPacker(padding=config.padding)

    def quantize(self, buffer: ImageBuffer) -> ImageBuffer:
        if self.config.dither:
            return self.ditherer.dither(buffer)
        return threshold(buffer, MIDPOINT + (self.config.threshold_bias or 0))

    def stages(self) -> List[Tuple[JobState, Callable]]:
        return [
            (JobState.SCALING, self.scaler.scale),
            (JobState.CORRECTING_GAMMA, self.corrector.correct),
            (JobState.DITHERING, self.quantize),
            (JobState.PACKING, self.packer.pack),
        ]

    def bitmap(self, buffer: ImageBuffer) -> ImageBuffer:
        """Run the image stages up to the 1-bit image."""
        for _, stage in self.stages()[:-1]:
            buffer = stage(buffer)
        return buffer

    def render(self, buffer: ImageBuffer) -> RasterImage:
        return self.packer.pack(self.bitmap(buffer))


class PrintJob:
    """One image printed once on one device."""

    def __init__(self, image: ImageBuffer, config: Optional[PrintConfig] = None):
        self.config = config or PrintConfig()
        self.pipeline = Pipeline(self.config)
        self.encoder = ProtocolEncoder()
        self.state = JobState.IDLE
        self.history: List[JobState] = [JobState.IDLE]
        self.failed_stage: Optional[JobState] = None
        self._image: Optional[ImageBuffer] = image

    def _advance(self, state: JobState):
        allowed = TRANSITIONS[self.state]
        if state == JobState.FAILED and self.state not in TERMINAL_STATES:
            allowed = {JobState.FAILED}
        if state not in allowed:
            raise RuntimeError(f"Illegal job transition {self.state.value} -> {state.value}")
        log.debug("Job %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    async def run(self, device: DeviceHandle) -> StatusFrame:
        """
        Print the image on an acquired device.

        Returns:
            Status reported by the printer after the label was printed

        Raises:
            InputError: If the image cannot be printed on this media
            DeviceError: If the device fails or times out
            ProtocolError: If the status reply is malformed
            DeviceReportedFault: If the printer reports an error condition
        """
        if self.state != JobState.IDLE:
            raise RuntimeError("A print job can only run once")

        try:
            data = self._image
            self._image = None
            for state, stage in self.pipeline.stages():
                self._advance(state)
                data = stage(data)
                # Cancellation point between stages
                await asyncio.sleep(0)
            raster: RasterImage = data

            self._advance(JobState.ENCODING)
            frames = [
                self.encoder.encode(frame)
                for frame in job_frames(
                    raster,
                    self.pipeline.media,
                    auto_cut=self.config.auto_cut,
                    high_resolution=self.config.high_resolution,
                )
            ]
            log.debug("Encoded %d raster lines in %d frames", len(raster), len(frames))
            del raster, data

            self._advance(JobState.TRANSFERRING)
            for frame in frames:
                await self._write(device, frame)
            frames.clear()

            self._advance(JobState.AWAITING_STATUS)
            await self._write(device, self.encoder.encode(StatusRequest()))
            status = await self._await_reply(device)

            self._advance(JobState.DONE)
            log.info("Label printed (%s)", status)
            return status

        except PrinterError as e:
            if e.stage is None:
                e.stage = self.state
            await self._fail(device, reset=not isinstance(e, DeviceReportedFault))
            log.error("Print job failed in %s: %s", e.stage.value, e)
            raise
        except asyncio.CancelledError:
            log.warning("Print job cancelled in %s", self.state.value)
            await self._fail(device, reset=True)
            raise

    async def _fail(self, device: DeviceHandle, reset: bool):
        self.failed_stage = self.state
        if reset and self.state in DEVICE_STATES:
            await self._reset(device)
        self._advance(JobState.FAILED)

    async def _reset(self, device: DeviceHandle):
        """Flush any partial frame and reinitialize the printer."""
        try:
            for frame in (Invalidate(), Initialize()):
                await asyncio.wait_for(device.write(self.encoder.encode(frame)), self.config.timeout)
            log.info("Printer reset after interrupted job")
        except (asyncio.TimeoutError, OSError) as e:
            log.warning("Printer reset failed: %s", e)

    async def _write(self, device: DeviceHandle, data: bytes):
        try:
            await asyncio.wait_for(device.write(data), self.config.timeout)
        except asyncio.TimeoutError as e:
            raise DeviceTimeout(
                f"Device write timed out after {self.config.timeout}s", stage=self.state
            ) from e
        except OSError as e:
            raise DeviceIOError(f"Device write failed: {e}", stage=self.state, cause=e) from e

    async def _await_reply(self, device: DeviceHandle) -> StatusFrame:
        """
        Read status frames until the reply to our status request arrives.

        After printing the printer also sends unsolicited frames (phase
        change, printing completed); those are decoded and skipped unless
        they report an error. The whole wait is bounded by the job timeout.
        """
        deadline = asyncio.get_running_loop().time() + self.config.timeout
        while True:
            status = decode_status(await self._read(device, STATUS_LENGTH, deadline))
            if status.error_flags:
                raise DeviceReportedFault(status.error_flags, status)
            if status.status_type == StatusType.REPLY:
                return status
            log.debug("Skipping %s status frame", status.status_type.name.lower())

    async def _read(self, device: DeviceHandle, size: int,
                    deadline: Optional[float] = None) -> bytes:
        timeout = self.config.timeout
        if deadline is not None:
            timeout = deadline - asyncio.get_running_loop().time()
        try:
            if timeout <= 0:
                raise asyncio.TimeoutError
            return await asyncio.wait_for(device.read(size), timeout)
        except asyncio.TimeoutError as e:
            raise DeviceTimeout(
                f"Device read timed out after {self.config.timeout}s", stage=self.state
            ) from e
        except OSError as e:
            raise DeviceIOError(f"Device read failed: {e}", stage=self.state, cause=e) from e
