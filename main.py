"""
Entry point for the three-statement metrics engine.

Loads a company dataset (income statement, cash flow, balance sheet),
derives the reconciled statements, runs every analysis domain and drops
into the interactive dashboard, where single cells can be edited and
the three statements are recomputed together.

Usage
-----
::

    python main.py pinelands_construction             Load -> summary -> interactive
    python main.py pinelands_construction --narrative Print the narrative and exit
    python main.py pinelands_construction --audit     List cells read as 0 and exit
    python main.py --list                             List available datasets
    python main.py redrock --url https://host/data    Fetch the CSVs over HTTP
"""

import argparse
import logging
import sys

from data.ingest import DatasetLoadError, list_companies
from interface.query import console, interactive_loop, open_session
from model.engine import load_config

logger = logging.getLogger(__name__)


def main() -> None:
    """Parse CLI arguments and dispatch to the appropriate step."""
    parser = argparse.ArgumentParser(
        description="Three-statement metrics engine — derive, analyse, and edit company financials",
    )
    parser.add_argument(
        "company",
        nargs="?",
        help="Dataset folder name (e.g. pinelands_construction)",
    )
    parser.add_argument(
        "--data-dir", default=None,
        help="Parent folder of company datasets (default: datasets/)",
    )
    parser.add_argument(
        "--url", default=None,
        help="Base URL serving <company>/<prefix>_<statement>.csv files",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to config.yaml",
    )
    parser.add_argument(
        "--list", action="store_true",
        help="List available datasets and exit",
    )
    parser.add_argument(
        "--narrative", action="store_true",
        help="Print the narrative for the dataset and exit",
    )
    parser.add_argument(
        "--audit", action="store_true",
        help="List non-numeric cells that are read as 0 and exit",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(args.config)
    data_dir = args.data_dir or (config.get("data") or {}).get("base_dir")

    # ── --list ─────────────────────────────────────────────────────────
    if args.list:
        for name in list_companies(data_dir):
            print(name)
        return

    if not args.company:
        parser.print_help()
        sys.exit(1)

    try:
        ctx = open_session(args.company, config, base_dir=data_dir, base_url=args.url)
    except DatasetLoadError as exc:
        console.print(f"[red]Error loading data:[/] {exc}")
        sys.exit(1)

    # ── --audit ────────────────────────────────────────────────────────
    if args.audit:
        issues = ctx["session"].audit()
        for issue in issues:
            print(f"{issue.statement}[{issue.row}] {issue.month} {issue.column}={issue.value!r}")
        if not issues:
            console.print("[green]No issues found.[/]")
        return

    # ── --narrative ────────────────────────────────────────────────────
    if args.narrative:
        print(ctx["session"].narrative())
        return

    logger.debug("Starting interactive mode for %s", args.company)
    interactive_loop(ctx)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s [%(name)s] %(message)s",
    )
    main()
