"""heapdelta command line: compare two profile snapshots or benchmark files.

Usage:
    heapdelta profiles old.json new.json --threshold 10
    heapdelta benchmarks old.txt new.txt --combine median --metric ns_per_op

Exit status: 0 no regression, 1 threshold exceeded, 2 bad input or usage.
"""

import argparse
import math
import sys
from pathlib import Path

from loguru import logger

from heapdelta._benchmarks import load_benchmarks
from heapdelta._delta import (
    BENCHMARK_METRICS,
    PROFILE_METRICS,
    DeltaReport,
    compare_benchmarks,
    compare_snapshots,
)
from heapdelta._errors import KeyMismatchError, MalformedInputError
from heapdelta._snapshot_store import load_snapshot

EXIT_OK = 0
EXIT_REGRESSION = 1
EXIT_BAD_INPUT = 2


def _add_common(parser: argparse.ArgumentParser, metrics: tuple[str, ...]) -> None:
    parser.add_argument("old", type=Path, help="Baseline file")
    parser.add_argument("new", type=Path, help="Candidate file")
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Fail (exit 1) when any changed row or total grows by more than PCT percent",
        metavar="PCT",
    )
    parser.add_argument(
        "--metric",
        action="append",
        choices=metrics,
        dest="metrics",
        help="Metric to report (repeatable, default: all)",
    )
    parser.add_argument(
        "--keep-zero",
        action="store_true",
        help="Keep rows that are zero in both runs",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="heapdelta", description=__doc__.split("\n")[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    commands = parser.add_subparsers(dest="command", required=True)

    profiles = commands.add_parser("profiles", help="Compare two profile snapshots")
    _add_common(profiles, PROFILE_METRICS)

    benchmarks = commands.add_parser("benchmarks", help="Compare two benchmark result files")
    _add_common(benchmarks, BENCHMARK_METRICS)
    benchmarks.add_argument(
        "--combine",
        choices=("last", "median"),
        default="last",
        help="How repeated trials of one benchmark are folded (default: last)",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _build_report(args: argparse.Namespace) -> DeltaReport:
    metrics = tuple(args.metrics) if args.metrics else None
    elide_zero = not args.keep_zero
    if args.command == "profiles":
        return compare_snapshots(
            load_snapshot(args.old), load_snapshot(args.new), metrics, elide_zero
        )
    return compare_benchmarks(
        load_benchmarks(args.old, args.combine),
        load_benchmarks(args.new, args.combine),
        metrics,
        elide_zero,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if args.threshold is not None and not (math.isfinite(args.threshold) and args.threshold >= 0):
        logger.error(f"--threshold must be a finite non-negative number: {args.threshold}")
        return EXIT_BAD_INPUT

    try:
        report = _build_report(args)
    except (MalformedInputError, KeyMismatchError) as exc:
        logger.error(str(exc))
        return EXIT_BAD_INPUT
    except OSError as exc:
        logger.error(f"Cannot read input: {exc}")
        return EXIT_BAD_INPUT

    sys.stdout.write(report.render(f"{args.old} -> {args.new}"))

    if args.threshold is None:
        return EXIT_OK
    regressions = report.regressions(args.threshold)
    for metric, row in regressions:
        logger.warning(
            f"Regression in {metric}: {row.key} {row.old_value:g} -> {row.new_value:g} "
            f"({row.percent_change:+.2f}%)"
        )
    return EXIT_REGRESSION if regressions else EXIT_OK

