"""
Command-Line Interface for Brother QL Printers.

Usage:
    qlprint print IMAGE            - Print an image
    qlprint status                 - Show printer status
    qlprint preview IMAGE OUTPUT   - Save the dithered label as PNG
    qlprint media                  - List supported media
"""

import asyncio
import logging
import sys

import click

from .config import DEFAULT_MAX_ASPECT_RATIO, DEFAULT_TIMEOUT, PrintConfig
from .device import DEFAULT_DEVICE, CharacterDevice
from .errors import DeviceReportedFault, PrinterError
from .gamma import DEFAULT_GAMMA
from .image import FitMode
from .media import AUTO_MEDIA, DEFAULT_MEDIA, MEDIA
from .printer import LabelPrinter, preview
from .raster import Padding

device_option = click.option(
    "--device",
    "-d",
    envvar="QLPRINT_DEVICE",
    default=DEFAULT_DEVICE,
    show_default=True,
    help="Printer device node (or QLPRINT_DEVICE)",
)
timeout_option = click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Seconds allowed for each device write or read",
)


def image_options(f):
    """Options shared by print and preview."""
    options = [
        click.option("--media", "-m", type=click.Choice([AUTO_MEDIA] + list(MEDIA)),
                     default=DEFAULT_MEDIA, show_default=True,
                     help="Loaded media (auto: ask the printer)"),
        click.option("--gamma", type=click.FloatRange(min=0, min_open=True),
                     default=DEFAULT_GAMMA, show_default=True, help="Gamma correction"),
        click.option("--bias", type=click.IntRange(-127, 127), default=None,
                     help="Dither threshold bias (positive prints darker)"),
        click.option("--fit", type=click.Choice([m.value for m in FitMode]),
                     default=FitMode.REJECT.value, show_default=True,
                     help="How to handle images longer than the media"),
        click.option("--align", type=click.Choice([p.value for p in Padding]),
                     default=Padding.LEFT.value, show_default=True,
                     help="Side that receives white fill for narrow media"),
        click.option("--dither/--no-dither", default=True, help="Floyd-Steinberg dithering"),
        click.option("--high-res", is_flag=True, help="600 DPI in the feed direction"),
        click.option("--max-ratio", type=float, default=DEFAULT_MAX_ASPECT_RATIO,
                     show_default=True, help="Reject images taller than this height/width"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def build_config(media, gamma, bias, fit, align, dither, high_res, max_ratio, **kwargs) -> PrintConfig:
    return PrintConfig(
        gamma=gamma,
        threshold_bias=bias,
        media=media,
        fit=FitMode(fit),
        dither=dither,
        high_resolution=high_res,
        padding=Padding(align),
        max_aspect_ratio=max_ratio,
        **kwargs,
    )


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug output")
@click.pass_context
def main(ctx, debug):
    """Brother QL Label Printer CLI."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("print")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@device_option
@timeout_option
@image_options
@click.option("--cut/--no-cut", default=True, help="Cut the label after printing")
@click.option("--wait", is_flag=True, help="Wait for a busy printer")
def print_image(image, device, timeout, cut, wait, **options):
    """Print an image file."""
    try:
        config = build_config(timeout=timeout, auto_cut=cut, wait=wait, **options)
    except ValueError as e:
        raise click.BadParameter(str(e))

    async def _print():
        with CharacterDevice(device) as handle:
            printer = LabelPrinter(handle)
            return await printer.print_image(image, config)

    click.echo(f"Printing {image}...")
    try:
        status = asyncio.run(_print())
    except DeviceReportedFault as e:
        click.echo(f"Printer error: {e.flags.describe()}", err=True)
        sys.exit(1)
    except PrinterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Cannot open {device}: {e}", err=True)
        sys.exit(1)

    click.echo("Print complete!")
    click.echo(str(status))


@main.command()
@device_option
@timeout_option
def status(device, timeout):
    """Show printer and media status."""

    async def _status():
        with CharacterDevice(device) as handle:
            return await LabelPrinter(handle).get_status(timeout=timeout)

    try:
        result = asyncio.run(_status())
    except PrinterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Cannot open {device}: {e}", err=True)
        sys.exit(1)

    click.echo(str(result))
    media = result.media
    if media is not None:
        click.echo(f"Printable width: {media.printable_dots} dots")
    else:
        click.echo("Unknown media loaded")


@main.command("preview")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", type=click.Path(dir_okay=False, writable=True))
@image_options
def preview_image(image, output, **options):
    """Save the label exactly as it would print."""
    if options["media"] == AUTO_MEDIA:
        raise click.BadParameter("preview needs an explicit media", param_hint="--media")
    try:
        config = build_config(**options)
    except ValueError as e:
        raise click.BadParameter(str(e))

    try:
        bitmap = preview(image, config)
    except PrinterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    bitmap.save(output)
    click.echo(f"Saved {bitmap.width}x{bitmap.height} preview to {output}")


@main.command("media")
def list_media():
    """List supported media."""
    for media in MEDIA.values():
        click.echo(str(media))


if __name__ == "__main__":
    main()
