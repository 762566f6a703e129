"""Reconciliation sweep schemas."""

from typing import List
from uuid import UUID

from pydantic import BaseModel


class ReconciliationRequest(BaseModel):
    dry_run: bool = False
    active_only: bool = True


class ReconciliationCounts(BaseModel):
    fee_cycle_start_corrected: int = 0
    duplicate_fees_deleted: int = 0
    fee_months_standardized: int = 0
    overpayments_fixed: int = 0
    zero_amount_payments_fixed: int = 0
    due_dates_fixed: int = 0
    missing_fees_created: int = 0
    excess_fees_deleted: int = 0
    credits_applied: int = 0
    credit_fees_paid: int = 0

    def total_changes(self) -> int:
        return (
            self.fee_cycle_start_corrected
            + self.duplicate_fees_deleted
            + self.fee_months_standardized
            + self.overpayments_fixed
            + self.zero_amount_payments_fixed
            + self.due_dates_fixed
            + self.missing_fees_created
            + self.excess_fees_deleted
            + self.credit_fees_paid
        )

    def add(self, other: "ReconciliationCounts") -> None:
        for name in ReconciliationCounts.model_fields:
            setattr(self, name, getattr(self, name) + getattr(other, name))


class StudentReconciliationResult(ReconciliationCounts):
    student_id: UUID
    dry_run: bool


class ReconciliationError(BaseModel):
    student_id: UUID
    student_name: str
    error: str


class ReconciliationReport(ReconciliationCounts):
    dry_run: bool
    active_only: bool
    total_students: int = 0
    students_processed: int = 0
    students_skipped: int = 0
    orphaned_credits_cleaned: int = 0
    orphaned_fee_records_deleted: int = 0
    errors: List[ReconciliationError] = []

    @property
    def changes(self) -> int:
        return self.total_changes() + self.orphaned_credits_cleaned + self.orphaned_fee_records_deleted
