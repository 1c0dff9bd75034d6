"""
Pytest configuration for qlprint tests.

Provides a scripted in-memory printer device and an option for
hardware tests against a real printer.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

import pytest
import pytest_asyncio

from qlprint.device import CharacterDevice, DeviceHandle
from qlprint.media import MediaType
from qlprint.printer import LabelPrinter
from qlprint.responses import ErrorFlag, Phase, StatusFrame, StatusType

INVALIDATE = bytes(200)
SET_MEDIA_PREFIX = bytes([0x1B, 0x69, 0x7A])
INITIALIZE = bytes([0x1B, 0x40])
STATUS_REQUEST = bytes([0x1B, 0x69, 0x53])
PRINT_AND_EJECT = bytes([0x1A])


def make_status(flags: ErrorFlag = ErrorFlag.NONE, width_mm: int = 62,
                length_mm: int = 0, phase: Phase = Phase.RECEIVING,
                status_type: Optional[StatusType] = None) -> StatusFrame:
    """Status frame as a QL printer with 62mm tape would report it."""
    media_type = MediaType.CONTINUOUS if length_mm == 0 else MediaType.DIE_CUT
    if status_type is None:
        status_type = StatusType.ERROR_OCCURRED if flags else StatusType.REPLY
    return StatusFrame(
        media_width_mm=width_mm,
        media_length_mm=length_mm,
        media_type=media_type,
        error_flags=flags,
        status_type=status_type,
        phase=phase,
    )


class MockDevice(DeviceHandle):
    """Records completed writes and answers reads with a canned reply.

    Attributes:
        writes: Frames the device accepted, in order
        queued: Replies returned by read() first, oldest first
        reply: Bytes returned by read() once the queue is empty, None to never answer
        hang_after: Prefix of a frame; the write following it never completes
        hang_on_write: Index of a write that never completes
        write_error: Exception raised by every write once set
        blocked: Set when a write starts hanging
    """

    def __init__(self, reply: Optional[bytes] = None):
        self.writes: List[bytes] = []
        self.queued: List[bytes] = []
        self.reply = reply if reply is not None else make_status().encode()
        self.hang_after: Optional[bytes] = None
        self.hang_on_write: Optional[int] = None
        self.write_error: Optional[Exception] = None
        self.blocked = asyncio.Event()
        self.reads = 0
        self.closed = False
        self._hang_next = False

    async def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        if self._hang_next or self.hang_on_write == len(self.writes):
            self._hang_next = False
            self.hang_on_write = None
            self.blocked.set()
            await asyncio.sleep(3600)
        self.writes.append(bytes(data))
        if self.hang_after is not None and data.startswith(self.hang_after):
            self.hang_after = None
            self._hang_next = True

    async def read(self, size: int) -> bytes:
        self.reads += 1
        if self.queued:
            return self.queued.pop(0)[:size]
        if self.reply is None:
            await asyncio.sleep(3600)
        return self.reply[:size]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True


@pytest.fixture
def device():
    return MockDevice()


@pytest.fixture
def golden_raster():
    """Packed lines of a 100x100 gray 128 image at gamma 1.8 on 62mm tape."""
    return (Path(__file__).parent / "fixtures" / "gray128_gamma18_62mm.bin").read_bytes()


def pytest_addoption(parser):
    """Add command-line option for hardware tests."""
    parser.addoption(
        "--device",
        action="store",
        default=None,
        help="Printer device node for hardware tests (e.g. /dev/usb/lp0)",
    )


@pytest_asyncio.fixture
async def printer(request):
    """Provide a printer on a real device node."""
    path = request.config.getoption("--device")
    if path is None:
        pytest.skip("No printer device provided (use --device=/dev/usb/lp0)")

    handle = CharacterDevice(path)
    try:
        handle.open()
    except OSError as e:
        pytest.skip(f"Could not open {path}: {e}")

    yield LabelPrinter(handle)

    handle.close()
