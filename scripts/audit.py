"""
CLI entry point for ledger reconciliation.

Replays every energy log and squad progress log, compares the sums with the
cached counters and optionally rewrites the counters.
"""

import argparse
import sys
from pathlib import Path

from growthcore.core import GrowthCore
from growthcore.shared.config import settings
from growthcore.shared.logging import setup_logging


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="growthcore ledger audit")
    parser.add_argument(
        "--db",
        type=Path,
        default=Path(settings.store.db_path),
        help="SQLite database path"
    )
    parser.add_argument(
        "--fix",
        action="store_true",
        help="Rewrite drifted cached counters from their logs"
    )

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    core = GrowthCore(db_path=args.db)
    report = core.audit(fix=args.fix)

    # Print summary
    print("\n" + "=" * 50)
    print("Ledger Audit Summary")
    print("=" * 50)
    print(f"Energy drift: {len(report.energy_drift)} students")
    for drift in report.energy_drift:
        print(f"  {drift.record_id}: cached={drift.cached} replayed={drift.replayed}")
    print(f"Progress drift: {len(report.progress_drift)} challenges")
    for drift in report.progress_drift:
        print(f"  {drift.record_id}: cached={drift.cached} replayed={drift.replayed}")
    print(f"Fixed: {report.fixed}")
    print("=" * 50)

    return 0 if report.clean or report.fixed else 1


if __name__ == "__main__":
    sys.exit(main())
