"""CLI that builds an execution report from serialized run trees."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from config import load_config
from exceptions import ReporterError
from execution_tree import ExecutionNode, RunFailure
from reporters import ExecutionStats, ReportAssembler, ReportData
from tree_loader import load_tree_files


def _collect_failures(roots: List[ExecutionNode]) -> List[RunFailure]:
    """Failed leaves, or failed nodes whose children all passed."""
    failures: List[RunFailure] = []
    for root in roots:
        for node in root.iter_nodes():
            if not node.status.is_failure:
                continue
            if any(child.status.is_failure for child in node.children):
                continue
            failures.append(RunFailure.from_node(node))
    return failures


def run_from_cli_args(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Entry point shared by the CLI script."""
    config_path = Path(args.config) if args.config else None
    cli_overrides = {
        "reports_dir": args.reports_dir,
        "title": args.title,
        "static_source": args.static_source,
        "verbose": args.verbose or None,
    }

    try:
        config = load_config(config_path, cli_overrides)
    except ReporterError as exc:
        logger.error(f"Failed to load config: {exc}")
        return 1

    roots = load_tree_files(Path(p) for p in args.tree_files)
    if not roots:
        logger.warning("No execution roots found in the given files")
        return 0
    logger.info(f"Loaded {len(roots)} execution root(s)")

    assembler = ReportAssembler(config.reporting, logger=logger)
    report_dir = assembler.build_report(
        ReportData(root_nodes=roots, output_dir=config.reporting.reports_folder)
    )

    stats = ExecutionStats.from_roots(roots)
    features = stats.totals.feature
    scenarios = stats.totals.scenario

    # Print summary
    print("\n" + "=" * 60)
    print(config.reporting.report_title.upper())
    print("=" * 60)
    print(f"Features:  {features.count} ({features.passed} passed, {features.failed} failed, {features.success_pc}%)")
    print(f"Scenarios: {scenarios.count} ({scenarios.passed} passed, {scenarios.failed} failed, {scenarios.success_pc}%)")
    print(f"Report:    {report_dir / 'report_frame.html'}")
    print("=" * 60)

    failures = _collect_failures(roots)
    if failures:
        print("\nFailures:")
        for failure in failures:
            print(f"  - #{failure.node_id}: {(failure.message or 'no message')[:80]}")

    return 1 if any(root.has_error() for root in roots) else 0


def _build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Build an HTML execution report from serialized run trees.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run.json                          # Report for one run
  %(prog)s unit.yaml smoke.yaml --title CI   # Several roots, custom title
  %(prog)s run.json --reports-dir out        # Write into out/feature_report
        """,
    )
    parser.add_argument(
        "tree_files",
        nargs="+",
        metavar="TREE_FILE",
        help="JSON or YAML file holding execution tree roots",
    )
    parser.add_argument(
        "--config",
        help="Path to config file (default: config.json if exists)",
    )

    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--reports-dir",
        help="Directory the report folder is created in (default: reports)",
    )
    output_group.add_argument(
        "--title",
        help="Report title",
    )
    output_group.add_argument(
        "--static-source",
        help="Directory or .zip archive with static report assets",
    )
    output_group.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    output_group.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-essential output",
    )

    return parser


def main() -> None:
    """Main entry point."""
    parser = _build_arg_parser()
    args = parser.parse_args()

    # Configure logging based on verbosity
    if args.quiet:
        log_level = logging.WARNING
    elif args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format="[%(levelname)s] %(message)s" if not args.verbose else "[%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("run_reporter")

    try:
        exit_code = run_from_cli_args(args, logger)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    except ReporterError as exc:
        logger.error(f"Error: {exc}")
        exit_code = 1
    except Exception as exc:
        logger.exception(f"Unexpected error: {exc}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
