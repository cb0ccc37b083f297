import argparse
import asyncio
import datetime
import logging
import os
import sys
from typing import List, Optional

from quarto_record.capture import get_last_selection_region
from quarto_record.config import load_settings
from quarto_record.errors import FatalArgumentError, QuartoRecordError
from quarto_record.orchestrator import build_orchestrator
from quarto_record.permissions import (
    check_prerequisites,
    display_screen_capture_permission_warning,
)
from quarto_record.models import RunOptions

logger = logging.getLogger("quarto_record.cli")

_installed_handlers: List[logging.Handler] = []


def configure_logging(log_dir: str = "logs", verbose: bool = False) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    datetime_str: str = datetime.datetime.now().strftime("%Y%m%d@%H%M%S")
    os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.FileHandler(
        os.path.join(log_dir, "normal-{:}.log".format(datetime_str)), encoding="utf-8"
    )
    debug_handler = logging.FileHandler(
        os.path.join(log_dir, "debug-{:}.log".format(datetime_str)), encoding="utf-8"
    )
    stdout_handler = logging.StreamHandler(sys.stdout)

    file_handler.setLevel(logging.INFO)
    debug_handler.setLevel(logging.DEBUG)
    stdout_handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    formatter = logging.Formatter(
        fmt="\x1b[1;33m[%(asctime)s \x1b[31m%(levelname)s \x1b[32m%(module)s/%(lineno)d-%(processName)s\x1b[1;33m] \x1b[0m%(message)s"
    )
    file_handler.setFormatter(formatter)
    debug_handler.setFormatter(formatter)
    stdout_handler.setFormatter(formatter)

    stdout_handler.addFilter(logging.Filter("quarto_record"))

    for handler in (file_handler, debug_handler, stdout_handler):
        root.addHandler(handler)
        _installed_handlers.append(handler)


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser that raises instead of exiting with status 2."""

    def error(self, message):
        raise FatalArgumentError(message)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="quarto_record",
        description="Capture a screenshot of a Quarto preview for every commit or profile.",
    )
    parser.add_argument("output_dir", metavar="OUTPUT_DIR", help="Directory that receives one subdirectory per item")
    parser.add_argument(
        "--input",
        dest="input_dir",
        default=".",
        help="Git repository / Quarto project to preview (default: current directory)",
    )
    parser.add_argument("--file", default=None, help="Quarto file to preview (e.g. index.qmd)")
    parser.add_argument(
        "--copy-file",
        default=None,
        help="File copied into every item directory after its capture",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--start-commit",
        default=None,
        help="First commit to capture (default: the initial commit)",
    )
    mode.add_argument(
        "--profiles",
        dest="profile_group",
        type=int,
        nargs="?",
        const=0,
        default=None,
        metavar="GROUP_INDEX",
        help=(
            "Capture each profile of profile.group[GROUP_INDEX] in _quarto.yml instead of git history. "
            "Give OUTPUT_DIR first or use --profiles=N, since a following argument is read as the index"
        ),
    )

    parser.add_argument("--slides-template", default=None, help="Template rendered once per item into a slides document")
    parser.add_argument("--slides-output", default="slides.qmd", help="File name of the slides document (default: slides.qmd)")
    parser.add_argument("--config", default=None, help="TOML file with timing and tool settings")
    parser.add_argument("--log-dir", default="logs", help="Directory for log files (default: logs)")
    parser.add_argument("--verbose", action="store_true", default=False, help="Show debug output, including preview logs")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    args = build_parser().parse_args(argv)
    if args.profile_group is not None and args.profile_group < 0:
        raise FatalArgumentError(f"Profile group index must not be negative: {args.profile_group}")
    return args


def options_from_args(args: argparse.Namespace) -> RunOptions:
    return RunOptions(
        output_dir=os.path.abspath(args.output_dir),
        input_dir=os.path.abspath(args.input_dir),
        file=args.file,
        start_commit=args.start_commit,
        copy_file=os.path.abspath(args.copy_file) if args.copy_file else None,
        profile_group=args.profile_group,
        slides_template=os.path.abspath(args.slides_template) if args.slides_template else None,
        slides_output=args.slides_output,
    )


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(argv)
    except FatalArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(args.log_dir, args.verbose)
    options = options_from_args(args)

    logger.info("Quarto Record - Starting...")
    logger.info(f"Output directory: {options.output_dir}")
    logger.info(f"Input directory: {options.input_dir}")
    if options.file:
        logger.info(f"File to preview: {options.file}")
    if options.start_commit:
        logger.info(f"Starting commit: {options.start_commit}")
    if options.profile_mode:
        logger.info(f"Profile group: {options.profile_group}")
    if options.copy_file:
        logger.info(f"File to copy: {options.copy_file}")

    try:
        settings = load_settings(args.config)
        check_prerequisites(settings, history_mode=not options.profile_mode)
        display_screen_capture_permission_warning()

        # One region for the whole run, even if the selection changes meanwhile
        region = get_last_selection_region()
        os.makedirs(options.output_dir, exist_ok=True)

        orchestrator = build_orchestrator(options, settings, region)
        asyncio.run(orchestrator.run())
    except QuartoRecordError as e:
        logger.error(f"Error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Error: {e}")
        return 1

    logger.info("Quarto Record - Completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
