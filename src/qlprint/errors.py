"""
Exception hierarchy for qlprint.

Every error raised while printing derives from PrinterError. Errors raised
from inside a print job carry the job stage they failed in, so callers can
tell a bad image from a broken cable without parsing messages.
"""

from typing import Optional


class PrinterError(Exception):
    """Base exception for all printer errors."""

    def __init__(self, message: str = "", stage=None):
        super().__init__(message)
        self.stage = stage


# --- Input errors: caller-fixable, never retried ---


class InputError(PrinterError, ValueError):
    """The image cannot be turned into a raster for this printer."""

    pass


class EmptyImage(InputError):
    """Image has zero width or height."""

    pass


class ImageTooLarge(InputError):
    """Scaled image exceeds the maximum media length."""

    pass


class RowTooWide(InputError):
    """Raster row is wider than the print head."""

    pass


class ImageLoadError(InputError):
    """Image source could not be decoded."""

    pass


class MediaMismatch(InputError):
    """Loaded media differs from the configured media, or is not in the media table."""

    pass


# --- Device errors ---


class DeviceError(PrinterError):
    """Error talking to the printer device."""

    pass


class DeviceIOError(DeviceError):
    """Write to or read from the device failed."""

    def __init__(self, message: str = "", stage=None, cause: Optional[OSError] = None):
        super().__init__(message, stage)
        self.cause = cause


class DeviceTimeout(DeviceError):
    """Device did not complete a write or read in time."""

    pass


class PrinterBusy(DeviceError):
    """Another job currently owns the printer."""

    pass


# --- Protocol errors ---


class ProtocolError(PrinterError):
    """Printer protocol was violated by either side."""

    pass


class MalformedStatus(ProtocolError):
    """Status reply is truncated or fails the header check."""

    def __init__(self, message: str = "", stage=None, raw: bytes = b""):
        super().__init__(message, stage)
        self.raw = raw


class CommandOrderError(ProtocolError):
    """Command frame sent out of the required order."""

    pass


# --- Faults reported by the printer itself ---


class DeviceReportedFault(PrinterError):
    """Printer reported one or more error conditions in its status."""

    def __init__(self, flags, status=None, stage=None):
        super().__init__(f"Printer reported fault: {flags.describe()}", stage)
        self.flags = flags
        self.status = status
