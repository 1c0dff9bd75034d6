"""
Device access for Brother QL printers.

The printer shows up as a USB printer-class character device
(/dev/usb/lp0 on Linux). Status replies are read from the same node.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from .errors import PrinterBusy

log = logging.getLogger(__name__)

DEFAULT_DEVICE = "/dev/usb/lp0"


class DeviceHandle:
    """Byte stream to a printer.

    write() sends one complete frame; read() returns exactly size bytes.
    Both may block; callers bound them with a timeout. Once a call is
    cancelled the handle must not send or consume any more of its bytes.
    """

    async def write(self, data: bytes) -> None:
        raise NotImplementedError

    async def read(self, size: int) -> bytes:
        raise NotImplementedError


class CharacterDevice(DeviceHandle):
    """Printer character device opened read/write in non-blocking mode.

    All I/O runs on the event loop: a write or read that would block waits
    for readiness with add_writer/add_reader. Cancelling a write or read
    (including a wait_for timeout) leaves nothing in flight. At most the
    unsent tail of one frame is dropped; the Invalidate sent on reset
    flushes the partial frame out of the printer.
    """

    # The usblp driver can report readable before the printer has replied
    POLL_INTERVAL = 0.01

    def __init__(self, path: str = DEFAULT_DEVICE):
        self.path = path
        self._fd: Optional[int] = None

    def open(self) -> "CharacterDevice":
        """Open the device node. Raises OSError if it cannot be opened."""
        if self._fd is None:
            self._fd = os.open(self.path, os.O_RDWR | os.O_NONBLOCK)
            log.debug("Opened %s", self.path)
        return self

    def close(self):
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
            log.debug("Closed %s", self.path)

    def __enter__(self) -> "CharacterDevice":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _require_open(self) -> int:
        if self._fd is None:
            raise OSError(f"Device {self.path} is not open")
        return self._fd

    @staticmethod
    async def _wait_ready(add: Callable, remove: Callable, fd: int):
        loop = asyncio.get_running_loop()
        ready = loop.create_future()

        def wake():
            if not ready.done():
                ready.set_result(None)

        add(fd, wake)
        try:
            await ready
        finally:
            remove(fd)

    async def write(self, data: bytes) -> None:
        fd = self._require_open()
        loop = asyncio.get_running_loop()
        view = memoryview(data)
        while view:
            try:
                written = os.write(fd, view)
            except BlockingIOError:
                await self._wait_ready(loop.add_writer, loop.remove_writer, fd)
                continue
            view = view[written:]

    async def read(self, size: int) -> bytes:
        fd = self._require_open()
        loop = asyncio.get_running_loop()
        buf = bytearray()
        while len(buf) < size:
            try:
                chunk = os.read(fd, size - len(buf))
            except BlockingIOError:
                await self._wait_ready(loop.add_reader, loop.remove_reader, fd)
                continue
            if chunk:
                buf += chunk
            else:
                await asyncio.sleep(self.POLL_INTERVAL)
        return bytes(buf)


class PrinterPort:
    """Exclusive owner of a device handle.

    Only one job may hold the handle at a time, since a raster transfer
    cannot be interleaved with another job's frames.
    """

    def __init__(self, device: DeviceHandle):
        self._device = device
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def acquire(self, wait: bool = False) -> AsyncIterator[DeviceHandle]:
        """
        Hold the device for the duration of the block.

        Args:
            wait: Block until the current job finishes instead of failing

        Raises:
            PrinterBusy: If another job holds the device and wait is False
        """
        if not wait and self._lock.locked():
            raise PrinterBusy("Printer is busy with another job")
        async with self._lock:
            log.debug("Device acquired")
            try:
                yield self._device
            finally:
                log.debug("Device released")
