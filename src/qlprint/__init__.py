"""Brother QL Label Printer Raster Driver."""

__version__ = "0.1.0"

from .config import PrintConfig
from .device import CharacterDevice, DeviceHandle, PrinterPort
from .dither import Ditherer
from .errors import (
    CommandOrderError,
    DeviceError,
    DeviceIOError,
    DeviceReportedFault,
    DeviceTimeout,
    EmptyImage,
    ImageLoadError,
    MediaMismatch,
    ImageTooLarge,
    InputError,
    MalformedStatus,
    PrinterBusy,
    PrinterError,
    ProtocolError,
    RowTooWide,
)
from .gamma import GammaCorrector
from .image import FitMode, ImageBuffer, Scaler, load_image
from .job import JobState, PrintJob
from .media import MEDIA, Media, MediaType
from .printer import LabelPrinter, preview, render
from .protocol import ProtocolEncoder
from .raster import Padding, RasterImage, RasterLine, RasterPacker
from .responses import ErrorFlag, Phase, StatusFrame, decode_status

__all__ = [
    "LabelPrinter",
    "PrintConfig",
    "PrintJob",
    "JobState",
    "render",
    "preview",
    "ImageBuffer",
    "load_image",
    "Scaler",
    "FitMode",
    "GammaCorrector",
    "Ditherer",
    "RasterPacker",
    "RasterLine",
    "RasterImage",
    "Padding",
    "ProtocolEncoder",
    "StatusFrame",
    "ErrorFlag",
    "Phase",
    "decode_status",
    "Media",
    "MediaType",
    "MEDIA",
    "DeviceHandle",
    "CharacterDevice",
    "PrinterPort",
    "PrinterError",
    "InputError",
    "EmptyImage",
    "ImageTooLarge",
    "RowTooWide",
    "ImageLoadError",
    "MediaMismatch",
    "DeviceError",
    "DeviceIOError",
    "DeviceTimeout",
    "PrinterBusy",
    "ProtocolError",
    "MalformedStatus",
    "CommandOrderError",
    "DeviceReportedFault",
]
