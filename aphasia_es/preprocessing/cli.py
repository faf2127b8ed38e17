"""
Preprocessing CLI for validating trial data and building session counts.

Usage:
    python -m aphasia_es.preprocessing --validate
    python -m aphasia_es.preprocessing --sessions
    python -m aphasia_es.preprocessing --trials data/trials_deidentified.csv --sessions --no-save
"""

import argparse
import sys
from pathlib import Path

from .constants import OUTPUT_TABLES_DIR, NA_REP, get_output_file, get_trials_path
from .loaders import load_trials
from .qc import validate_trials
from .sessions import aggregate_session_counts


if sys.platform.startswith("win") and hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Preprocessing CLI for single-case probe data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m aphasia_es.preprocessing --validate
    python -m aphasia_es.preprocessing --sessions
    python -m aphasia_es.preprocessing --sessions --output outputs/tables
        """,
    )
    parser.add_argument(
        "--trials",
        type=Path,
        default=None,
        help=f"Trial CSV (default: {get_trials_path()})",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=OUTPUT_TABLES_DIR,
        help="Directory for session count tables",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate trial table content and exit non-zero on issues",
    )
    parser.add_argument(
        "--sessions",
        action="store_true",
        help="Aggregate trials into per-session correct counts",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Build tables without saving to disk",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress verbose output",
    )

    args = parser.parse_args(argv)
    verbose = not args.quiet

    if not any([args.validate, args.sessions]):
        parser.print_help()
        return 0

    trials = load_trials(args.trials, verbose=verbose)

    if args.validate:
        result = validate_trials(trials)
        if result.ok:
            if verbose:
                print(f"[OK] {result.n_rows} rows, {result.n_participants} participants")
        else:
            for issue in result.issues:
                print(f"[WARN] {issue}")
            return 1

    if args.sessions:
        counts = aggregate_session_counts(trials)
        if verbose:
            print(f"[INFO] session counts: {len(counts)} rows")
        if not args.no_save:
            args.output.mkdir(parents=True, exist_ok=True)
            path = get_output_file("session_counts", args.output)
            counts.to_csv(path, index=False, encoding="utf-8-sig", na_rep=NA_REP)
            if verbose:
                print(f"[OK] saved: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
