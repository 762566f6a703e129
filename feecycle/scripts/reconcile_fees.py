"""
Repair historical fee data for every student: anchors, duplicates, labels, overpayments,
due dates, missing and excess months, pending credit, orphaned rows.

Safe to re-run: a second live run reports no changes.
Usage: python -m feecycle.scripts.reconcile_fees [--dry-run] [--include-inactive]
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from feecycle.api.v1.reconciliation.schemas import ReconciliationReport
from feecycle.api.v1.reconciliation.service import reconcile_all
from feecycle.core.logging_config import configure_logging
from feecycle.db.session import AsyncSessionLocal


def print_report(report: ReconciliationReport) -> None:
    print("=" * 60)
    print(f"Fee Reconciliation Summary ({'DRY RUN' if report.dry_run else 'LIVE'})")
    print("=" * 60)
    print(f"Active students only:        {'yes' if report.active_only else 'no'}")
    print(f"Total students:              {report.total_students}")
    print(f"Students processed:          {report.students_processed}")
    print(f"Students skipped:            {report.students_skipped}")
    print()
    print(f"Fee cycle dates corrected:   {report.fee_cycle_start_corrected}")
    print(f"Duplicate fees deleted:      {report.duplicate_fees_deleted}")
    print(f"Fee months standardized:     {report.fee_months_standardized}")
    print(f"Overpayments fixed:          {report.overpayments_fixed}")
    print(f"Zero-amount payments fixed:  {report.zero_amount_payments_fixed}")
    print(f"Due dates fixed:             {report.due_dates_fixed}")
    print(f"Missing fees created:        {report.missing_fees_created}")
    print(f"Excess fees deleted:         {report.excess_fees_deleted}")
    print(f"Credit applied:              {report.credits_applied} over {report.credit_fees_paid} fee(s)")
    print(f"Orphaned credits cleaned:    {report.orphaned_credits_cleaned}")
    print(f"Orphaned fee records:        {report.orphaned_fee_records_deleted}")
    print(f"Errors:                      {len(report.errors)}")
    for idx, err in enumerate(report.errors, start=1):
        print(f"  {idx}. {err.student_name} ({err.student_id}): {err.error}", file=sys.stderr)
    print("=" * 60)
    if report.dry_run:
        print(f"Dry run: {report.changes} change(s) would be made.")
    else:
        print(f"Done. {report.changes} change(s) made.")


async def run(dry_run: bool, active_only: bool) -> ReconciliationReport:
    async with AsyncSessionLocal() as session:
        return await reconcile_all(session, dry_run=dry_run, active_only=active_only)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile fee records and credit ledger for all students.")
    parser.add_argument("--dry-run", action="store_true", help="report what would change, write nothing")
    parser.add_argument("--include-inactive", action="store_true", help="also process inactive students")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()
    report = asyncio.run(run(dry_run=args.dry_run, active_only=not args.include_inactive))
    print_report(report)
    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
