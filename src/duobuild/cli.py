"""Command-line entry point.

Usage:
    duobuild duo256
    duobuild clean duo256 run
    duobuild --root /srv/duo --jobs 8 toolchain
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from duobuild.config import load_config
from duobuild.context import BuildContext
from duobuild.errors import DispatchError, DuoBuildError
from duobuild.observability import StructuredLogger, setup_logging
from duobuild.targets import BuildTargets, Dispatcher

LOG = logging.getLogger("duobuild.cli")

EXIT_FAILURE = 1
EXIT_DISPATCH = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="duobuild",
        description="Build the Milk-V Duo toolchain, SDK image and emulator",
    )
    parser.add_argument(
        "targets",
        nargs="+",
        metavar="TARGET",
        help="Targets to run in order: duo256, toolchain, deps, clean, distclean, run",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=Path.cwd(),
        help="Install root holding output/, host-tools/, pkgcache/ and patches/",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--jobs", type=int, default=None, help="Parallel jobs for native builds")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write the log here")
    parser.add_argument(
        "--event-log",
        type=Path,
        default=None,
        help="Write structured pipeline events as JSON lines",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)
    events = StructuredLogger()
    try:
        config = load_config(args.root, args.config).with_jobs(args.jobs)
        context = BuildContext.create(args.root, config=config, events=events)
        Dispatcher(BuildTargets(context)).dispatch(args.targets)
    except DispatchError as exc:
        _report_fatal(exc, events=events)
        return EXIT_DISPATCH
    except DuoBuildError as exc:
        _report_fatal(exc, events=events)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        LOG.error("Interrupted")
        return EXIT_INTERRUPTED
    finally:
        if args.event_log is not None:
            events.to_json_lines(args.event_log)
    return 0


def _report_fatal(exc: DuoBuildError, *, events: StructuredLogger) -> None:
    LOG.error("FATAL: %s", exc)
    LOG.debug("Traceback", exc_info=exc)
    events.log(
        stage=exc.context.get("stage", "-"),
        operation="fatal",
        message=str(exc).splitlines()[0],
        level="error",
        extra=exc.to_dict(),
    )
