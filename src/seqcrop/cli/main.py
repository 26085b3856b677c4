#!/usr/bin/env python3
"""
seqcrop: crop a still-image sequence and render it to PNG frames or a video.

The CLI plays the part of the interactive front end: it loads the source
directory into a session, applies the crop, range and output options given on
the command line, then runs the render on a background task while a rich
progress bar drains its progress channel.
"""

from __future__ import annotations

# Standard library imports
import argparse
import sys
import time
from collections.abc import Sequence
from pathlib import Path

# Third-party imports
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

# Local application imports
from ..config import AspectRatio, OutputFormat, OutputResolution, OverlayKind, app_config
from ..core.errors import SeqcropError
from ..core.geometry import Rect, Size
from ..core.session import Session
from ..core.types import RenderJob, SequenceCatalog
from ..output.logger import SimpleLogger
from ..processing.render import RenderResult, SequenceRenderer
from ..processing.task import RenderTask
from ..tools.check import check_tools
from ..utils.path import ensure_output_directory, is_path_inside

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_floats(text: str, count: int) -> tuple[float, ...]:
    """Parse ``count`` comma-separated numbers, for argparse ``type=``."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != count:
        raise argparse.ArgumentTypeError(f"expected {count} comma-separated numbers, got {text!r}")
    try:
        return tuple(float(p) for p in parts)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number list: {text!r}") from e


def parse_rect(text: str) -> Rect:
    x, y, w, h = parse_floats(text, 4)
    return Rect(x, y, w, h)


def parse_size(text: str) -> Size:
    w, h = parse_floats(text, 2)
    return Size(w, h)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    p = argparse.ArgumentParser(
        prog="seqcrop",
        description="Crop a still-image sequence and render it to PNG frames or an MP4/ProRes video.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("-s", "--source", type=Path, help="Directory holding the input .jpg/.png frames")
    p.add_argument("-o", "--output-dir", type=Path, help="Directory for rendered output")
    p.add_argument(
        "--crop",
        type=parse_rect,
        metavar="X,Y,W,H",
        help="Crop in image pixels; Y is measured up from the bottom edge",
    )
    p.add_argument(
        "--display-crop",
        type=parse_rect,
        metavar="X,Y,W,H",
        help="Crop drawn over a letterboxed preview of size --container; Y up from the container's bottom edge",
    )
    p.add_argument("--container", type=parse_size, metavar="W,H", help="Preview size for --display-crop")
    p.add_argument("--in", dest="in_frame", type=int, metavar="N", help="First frame to render (1-based)")
    p.add_argument("--out", dest="out_frame", type=int, metavar="N", help="Last frame to render (1-based)")
    p.add_argument(
        "--format", choices=[f.value for f in OutputFormat], default=OutputFormat.IMAGE_SEQUENCE.value, help="Output format"
    )
    p.add_argument(
        "--resolution",
        choices=[r.value for r in OutputResolution],
        default=OutputResolution.NATIVE.value,
        help="Output resolution",
    )
    p.add_argument(
        "--aspect", choices=[a.value for a in AspectRatio], default=AspectRatio.FREE.value, help="Crop aspect ratio"
    )
    p.add_argument("--frame-number", action="store_true", help="Overlay the frame number")
    p.add_argument("--date-time", action="store_true", help="Overlay the capture date and time")
    p.add_argument("--list", action="store_true", help="List the frames of --source and exit")
    p.add_argument("--log-file", type=Path, help="Append log lines to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    p.add_argument("--check-tools", action="store_true", help="Check ffmpeg and its encoders, then exit")
    return p.parse_args(argv)


def configure_session(session: Session, args: argparse.Namespace) -> None:
    """Apply crop, range and output options to a loaded session.

    Raises:
        SeqcropError: When an option cannot be applied.
    """
    session.aspect = AspectRatio(args.aspect)
    session.output_format = OutputFormat(args.format)
    session.output_resolution = OutputResolution(args.resolution)
    if args.frame_number:
        session.overlays.add(OverlayKind.FRAME_NUMBER)
    if args.date_time:
        session.overlays.add(OverlayKind.DATE_TIME)

    if args.crop is not None:
        session.set_crop(args.crop)
    elif args.display_crop is not None:
        if args.container is None:
            raise SeqcropError("--display-crop needs --container W,H")
        session.crop_from_display(args.display_crop, args.container)

    if args.in_frame is not None:
        session.set_in_point(args.in_frame - 1)
    if args.out_frame is not None:
        session.set_out_point(args.out_frame - 1)

    if args.output_dir is not None:
        session.select_output_directory(ensure_output_directory(args.output_dir))
        if args.source is not None and is_path_inside(args.output_dir.resolve(), args.source.resolve()):
            session.logger.warning(
                "output directory is inside the source directory; rendered PNGs will be listed as input on the next load"
            )


def create_catalog_table(catalog: SequenceCatalog) -> Table:
    table = Table(
        title=f"{catalog.count} frames (numbering width {catalog.numbering_width})",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("File")
    table.add_column("Digits", justify="right")
    for frame in catalog.frames:
        table.add_row(str(frame.index + 1), frame.path.name, str(frame.digits))
    return table


def create_run_header(job: RenderJob) -> Panel:
    """Build the header panel describing the render."""
    x, y, w, h = job.crop.to_pixels()
    overlays = ", ".join(kind.value for kind in job.spec.ordered_overlays) or "none"
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Source:", str(job.catalog.directory))
    table.add_row("Output:", str(job.destination.resolve()))
    table.add_row("Format:", job.spec.format.value.upper())
    table.add_row("Resolution:", job.spec.resolution.label)
    table.add_row("Aspect:", job.aspect.label)
    table.add_row("Crop:", f"{w}x{h} at ({x}, {y})")
    table.add_row("Range:", f"{job.in_point + 1}-{job.out_point + 1} ({job.frame_count} frames)")
    table.add_row("Overlays:", overlays)
    return Panel(table, title="[bold cyan]Run Configuration[/bold cyan]", border_style="cyan", title_align="left")


def create_summary(result: RenderResult, elapsed: float) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Frames Rendered:", f"[green]{result.rendered}[/]/{result.requested}")
    table.add_row("Frames Skipped:", f"[yellow]{result.skipped}[/]" if result.skipped else "0")
    table.add_row("Bytes Written:", f"{result.bytes_written:,}")
    table.add_row("Total Time:", f"{elapsed:.1f}s")
    if result.cancelled:
        table.add_row("State:", "[yellow]cancelled[/]")
    for path in result.output_paths[-1:]:
        table.add_row("Last Output:", path.name)
    return Panel(table, title="[bold cyan]Summary[/bold cyan]", border_style="cyan", title_align="left")


def run_task(task: RenderTask) -> RenderResult:
    """Start ``task`` and follow its progress with a rich progress bar."""
    total = task.job.frame_count
    with Progress(
        TextColumn("[bold blue]Rendering"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task("render", total=total)
        task.start()
        for fraction in task.iter_progress():
            progress.update(bar, completed=round(fraction * total))
    return task.result()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = parse_args(argv)

    if args.check_tools:
        ok, probs = check_tools()
        if ok:
            console.print("[bold green]Tools OK:[/] ffmpeg (libx264, prores_ks)")
            return EXIT_OK
        for p in probs:
            err_console.print(f"[bold red]Missing:[/] {p}")
        return EXIT_FAILURE

    if args.source is None:
        err_console.print("[bold red]Error:[/] --source is required")
        return EXIT_FAILURE

    logger = SimpleLogger(args.log_file, verbose=args.verbose)
    session = Session(app_config, logger)
    try:
        session.load(args.source)
    except OSError as e:
        err_console.print(f"[bold red]Cannot read source directory:[/] {e}")
        return EXIT_FAILURE

    if args.list:
        console.print(create_catalog_table(session.catalog))
        return EXIT_OK

    try:
        configure_session(session, args)
        fmt = session.output_format
        if fmt.is_video:
            tools_ok, probs = check_tools((fmt,))
            if not tools_ok:
                for p in probs:
                    err_console.print(f"[bold red]Missing:[/] {p}")
                return EXIT_FAILURE
        if session.output_resolution.size is not None and session.aspect != AspectRatio.RATIO_16_9:
            logger.warning(
                f"{session.output_resolution.label} output is 16:9; a {session.aspect.label} crop will be stretched"
            )
        job = session.snapshot()
    except SeqcropError as e:
        err_console.print(f"[bold red]{e}[/]")
        return EXIT_FAILURE

    console.print(create_run_header(job))

    t0 = time.time()
    task = RenderTask(job, SequenceRenderer(app_config, logger))
    interrupted = False
    try:
        result = run_task(task)
    except KeyboardInterrupt:
        interrupted = True
        err_console.print("\n[yellow]Ctrl+C received. Stopping after the current frame...[/]")
        task.cancel()
        if task.future is None:
            return EXIT_INTERRUPTED
        try:
            result = task.result()
        except SeqcropError as e:
            err_console.print(f"[bold red]Rendering failed:[/] {e}")
            return EXIT_INTERRUPTED
    except SeqcropError as e:
        err_console.print(f"[bold red]Rendering failed:[/] {e}")
        return EXIT_FAILURE

    console.print()
    console.print(create_summary(result, time.time() - t0))

    if interrupted or result.cancelled:
        return EXIT_INTERRUPTED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
