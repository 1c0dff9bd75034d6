"""Tests for device access and exclusive ownership."""

import asyncio
import os
import sys

import pytest
from PIL import Image

from qlprint.config import PrintConfig
from qlprint.device import CharacterDevice, PrinterPort
from qlprint.errors import DeviceTimeout, PrinterBusy
from qlprint.image import ImageBuffer
from qlprint.job import JobState, Pipeline, PrintJob
from qlprint.protocol import ProtocolEncoder, job_frames

from conftest import INITIALIZE, INVALIDATE

needs_fifo = pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="opening a FIFO read/write is Linux behaviour"
)


def drain(path):
    """Read everything currently buffered in a FIFO."""
    fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    data = bytearray()
    try:
        while True:
            try:
                chunk = os.read(fd, 65536)
            except BlockingIOError:
                break
            if not chunk:
                break
            data += chunk
    finally:
        os.close(fd)
    return bytes(data)


class TestCharacterDevice:
    """Exercise the device node code against regular files."""

    @pytest.mark.asyncio
    async def test_write_then_read_back(self, tmp_path):
        path = tmp_path / "lp0"
        path.write_bytes(b"")

        with CharacterDevice(str(path)) as device:
            await device.write(b"\x1b\x40")
            await device.write(bytes(5))

        assert path.read_bytes() == b"\x1b\x40" + bytes(5)

    @pytest.mark.asyncio
    async def test_read_exact_size(self, tmp_path):
        path = tmp_path / "lp0"
        path.write_bytes(bytes(range(40)))

        with CharacterDevice(str(path)) as device:
            data = await device.read(32)

        assert data == bytes(range(32))

    def test_open_missing_device(self, tmp_path):
        with pytest.raises(OSError):
            CharacterDevice(str(tmp_path / "missing")).open()

    @pytest.mark.asyncio
    async def test_write_when_closed(self, tmp_path):
        with pytest.raises(OSError, match="not open"):
            await CharacterDevice(str(tmp_path / "lp0")).write(b"x")

    def test_close_is_idempotent(self, tmp_path):
        path = tmp_path / "lp0"
        path.write_bytes(b"")
        device = CharacterDevice(str(path)).open()
        device.close()
        device.close()


@needs_fifo
class TestCharacterDeviceBlocking:
    """A FIFO nobody drains stands in for a printer that stopped accepting data."""

    @pytest.mark.asyncio
    async def test_timed_out_job_leaves_nothing_in_flight(self, tmp_path):
        path = tmp_path / "lp0"
        os.mkfifo(path)
        image = ImageBuffer.from_image(Image.new("L", (10, 100), 128))
        config = PrintConfig(media="12", timeout=0.2)

        encoder = ProtocolEncoder()
        raster = Pipeline(config).render(image)
        expected = b"".join(encoder.encode(f) for f in job_frames(raster, Pipeline(config).media))

        with CharacterDevice(str(path)) as device:
            job = PrintJob(image, config)
            # 1130 raster lines are well over the pipe buffer, so the transfer stalls
            with pytest.raises(DeviceTimeout):
                await job.run(device)
            assert job.failed_stage == JobState.TRANSFERRING

            sent = drain(path)
            await asyncio.sleep(0.2)
            late = drain(path)

        assert late == b""
        if sent.endswith(INITIALIZE):
            sent = sent[:-len(INITIALIZE)]
        if sent.endswith(INVALIDATE):
            sent = sent[:-len(INVALIDATE)]
        assert 0 < len(sent) < len(expected)
        assert expected.startswith(sent)

    @pytest.mark.asyncio
    async def test_cancelled_read_does_not_consume_reply(self, tmp_path):
        path = tmp_path / "lp0"
        os.mkfifo(path)

        with CharacterDevice(str(path)) as device:
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(device.read(32), 0.05)

            writer = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
            try:
                os.write(writer, bytes(range(32)))
            finally:
                os.close(writer)

            assert await asyncio.wait_for(device.read(32), 1) == bytes(range(32))

class TestPrinterPort:
    @pytest.mark.asyncio
    async def test_busy_while_held(self, device):
        port = PrinterPort(device)
        assert not port.busy

        async with port.acquire() as handle:
            assert handle is device
            assert port.busy

        assert not port.busy

    @pytest.mark.asyncio
    async def test_second_owner_rejected(self, device):
        port = PrinterPort(device)

        async with port.acquire():
            with pytest.raises(PrinterBusy):
                async with port.acquire():
                    pass

    @pytest.mark.asyncio
    async def test_second_owner_waits(self, device):
        port = PrinterPort(device)
        order = []

        async def second():
            async with port.acquire(wait=True):
                order.append("second")

        async with port.acquire():
            task = asyncio.create_task(second())
            await asyncio.sleep(0.01)
            assert not task.done()
            order.append("first")

        await task
        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_released_on_error(self, device):
        port = PrinterPort(device)

        with pytest.raises(RuntimeError):
            async with port.acquire():
                raise RuntimeError("boom")

        assert not port.busy
