#!/usr/bin/env python3
"""
LabelWatch command line.

Commands:
- start / stop / status: manage the background folder-watching daemon
- run: the watch loop itself (used by the spawned daemon, or in a terminal)
- convert: one-shot conversion of a file or inline ZPL to PDF

``-h`` is the label height, so help is only available as ``--help``.
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from labelwatch import __version__
from labelwatch.domains.daemon.lifecycle import DaemonLifecycleManager
from labelwatch.domains.daemon.runner import run_daemon
from labelwatch.domains.dimensions.resolver import DimensionResolver
from labelwatch.domains.processing.converter import ConversionError, LabelConverter, make_work_item
from labelwatch.domains.rendering.labelary import LabelaryError, LabelaryRenderer
from labelwatch.utils.config import Settings, get_settings
from labelwatch.utils.helpers import pdf_name_for


EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_INVALID_ARGS = 2
EXIT_FILE_NOT_FOUND = 3
EXIT_CONVERSION_ERROR = 4
EXIT_DAEMON_ERROR = 5

UNITS = ("mm", "cm", "in")

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None):
    """Log to stderr, and to a rotating file when ``log_file`` is given."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            format=LOG_FORMAT,
            level=level,
            rotation="10 MB",
            retention=5,
            colorize=False,
        )


def _add_help(parser: argparse.ArgumentParser):
    parser.add_argument("--help", action="help", help="Show this help message and exit.")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="labelwatch",
        description="Convert ZPL label files to PDF, once or by watching a folder.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--pid-dir",
        type=Path,
        default=None,
        help="Directory holding the daemon record (default: platform run/temp directory).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LABELWATCH_LOG_LEVEL or INFO).",
    )

    dimensions = argparse.ArgumentParser(add_help=False)
    dimensions.add_argument("-w", "--width", type=float, default=None, help="Label width.")
    dimensions.add_argument("-h", "--height", type=float, default=None, help="Label height.")
    dimensions.add_argument(
        "-u", "--unit",
        choices=UNITS,
        default=None,
        help="Unit of width and height (default: mm).",
    )
    dimensions.add_argument("-d", "--dpi", type=int, default=None, help="Print density (default: 203).")

    folder = argparse.ArgumentParser(add_help=False)
    folder.add_argument(
        "-l", "--listen-folder",
        type=Path,
        default=None,
        help="Folder to watch for .txt/.prn label files.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("start", "Start the background daemon."),
        ("run", "Run the watch loop in the foreground."),
    ):
        sub = subparsers.add_parser(
            name, parents=[common, folder, dimensions], add_help=False, help=help_text
        )
        _add_help(sub)

    for name, help_text in (
        ("stop", "Stop the background daemon."),
        ("status", "Show whether the daemon is running."),
    ):
        sub = subparsers.add_parser(name, parents=[common], add_help=False, help=help_text)
        _add_help(sub)

    convert = subparsers.add_parser(
        "convert", parents=[common, dimensions], add_help=False, help="Convert one file or ZPL text."
    )
    _add_help(convert)
    source = convert.add_mutually_exclusive_group(required=True)
    source.add_argument("-i", "--input", type=Path, help="Label file to convert.")
    source.add_argument("-z", "--zpl", help="Inline ZPL content to convert.")
    convert.add_argument("-o", "--output-folder", type=Path, default=None, help="Output folder.")
    convert.add_argument("-n", "--name", default=None, help="Output file name (.pdf is enforced).")

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    return build_parser().parse_args(argv)


def validate_args(args: argparse.Namespace) -> Optional[str]:
    """Return an error message for inconsistent arguments, or None."""
    width = getattr(args, "width", None)
    height = getattr(args, "height", None)

    if (width is None) != (height is None):
        return "Width (-w) and height (-h) must be given together"
    if width is not None and (width <= 0 or height <= 0):
        return "Width and height must be positive"

    dpi = getattr(args, "dpi", None)
    if dpi is not None and dpi <= 0:
        return "Print density must be positive"

    return None


def settings_for(args: argparse.Namespace) -> Settings:
    """Application settings with command line overrides applied."""
    settings = get_settings()
    updates = {}
    if args.pid_dir is not None:
        updates["pid_dir"] = args.pid_dir
    if args.log_level:
        updates["log_level"] = args.log_level.upper()
    return settings.model_copy(update=updates) if updates else settings


def _lifecycle_manager(args: argparse.Namespace, settings: Settings) -> DaemonLifecycleManager:
    return DaemonLifecycleManager.from_settings(
        settings,
        listen_folder=getattr(args, "listen_folder", None) or settings.listen_folder,
        width=getattr(args, "width", None),
        height=getattr(args, "height", None),
        unit=getattr(args, "unit", None) or settings.default_unit,
        dpi=getattr(args, "dpi", None) or settings.default_dpi,
    )


def command_start(args: argparse.Namespace, settings: Settings) -> int:
    manager = _lifecycle_manager(args, settings)
    return EXIT_SUCCESS if manager.start() else EXIT_DAEMON_ERROR


def command_stop(args: argparse.Namespace, settings: Settings) -> int:
    manager = _lifecycle_manager(args, settings)
    return EXIT_SUCCESS if manager.stop() else EXIT_DAEMON_ERROR


def command_status(args: argparse.Namespace, settings: Settings) -> int:
    # Reporting "not running" is a successful status query
    _lifecycle_manager(args, settings).status()
    return EXIT_SUCCESS


def command_run(args: argparse.Namespace, settings: Settings) -> int:
    configure_logging(settings.log_level, settings.get_log_file())

    ok = run_daemon(
        settings,
        listen_folder=args.listen_folder,
        width=args.width,
        height=args.height,
        unit=args.unit,
        dpi=args.dpi,
    )
    return EXIT_SUCCESS if ok else EXIT_DAEMON_ERROR


def default_output_name(now: Optional[datetime] = None) -> str:
    """Output name used for inline ZPL content."""
    return f"LABELWATCH_{(now or datetime.now()):%d%m%Y%H%M}.pdf"


def command_convert(args: argparse.Namespace, settings: Settings) -> int:
    if args.input is not None:
        input_path = args.input.expanduser()
        if not input_path.is_file():
            logger.error(f"Input file not found: {input_path}")
            return EXIT_FILE_NOT_FOUND
        content = input_path.read_text(encoding="utf-8", errors="replace")
        file_name = input_path.name
        default_folder = input_path.parent
    else:
        content = args.zpl
        file_name = default_output_name()
        default_folder = Path.cwd()

    output_folder = args.output_folder or settings.output_folder or default_folder
    if args.name:
        name = args.name if args.name.lower().endswith(".pdf") else f"{args.name}.pdf"
    else:
        name = pdf_name_for(file_name)
    output_path = Path(output_folder).expanduser() / name

    resolver = DimensionResolver.from_settings(settings)

    try:
        item = make_work_item(
            content,
            file_name,
            resolver,
            explicit_width=args.width,
            explicit_height=args.height,
            unit=args.unit or settings.default_unit,
            dpi=args.dpi or settings.default_dpi,
        )
        for index, dimensions in enumerate(item.dimensions, start=1):
            logger.info(f"Label {index}: {dimensions}")

        with LabelaryRenderer(settings.labelary_url, settings.labelary_timeout) as renderer:
            LabelConverter(renderer).convert(item, output_path)

    except (ConversionError, LabelaryError, ValueError, OSError) as e:
        logger.error(f"Conversion failed: {e}")
        return EXIT_CONVERSION_ERROR

    return EXIT_SUCCESS


COMMANDS = {
    "start": command_start,
    "stop": command_stop,
    "status": command_status,
    "run": command_run,
    "convert": command_convert,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI."""
    args = parse_args(argv)
    settings = settings_for(args)
    configure_logging(settings.log_level)

    error = validate_args(args)
    if error:
        logger.error(error)
        return EXIT_INVALID_ARGS

    try:
        return COMMANDS[args.command](args, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_ERROR
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
