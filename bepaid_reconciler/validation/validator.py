"""
Pre-Reconciliation Validation

DESIGN DECISION: An export is checked before it is compared with
the database, and problems are reported rather than fixed:

ERRORS (record is dropped):
- The same UID appears twice in one file

WARNINGS (record is imported, operator should look):
- Successful payment with a zero or negative amount
- No email and no card holder, so nothing to match a contact by
- Payment date in the future

INFO:
- Currency differs from the shop currency

IMPORTANT: Validation NEVER silently fixes values.
The only change it makes is removing duplicate rows.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import structlog

from bepaid_reconciler.config import ImportSettings, get_settings
from bepaid_reconciler.models.reports import (
    ImportValidationResult,
    IssueSeverity,
    ValidationIssue,
)
from bepaid_reconciler.models.transaction import NormalizedStatus, ParsedTransaction


logger = structlog.get_logger()


class TransactionValidator:
    """
    Validates parsed transactions before reconciliation.

    Checks run per record; duplicate detection runs across the file.
    """

    def __init__(self, settings: Optional[ImportSettings] = None):
        """
        Initialize validator.

        Args:
            settings: Import settings. Loaded from the environment if None.
        """
        self._settings = settings or get_settings().imports

    def _check_record(
        self,
        tx: ParsedTransaction,
        now: datetime,
    ) -> list[ValidationIssue]:
        issues = []

        if (
            tx.status_normalized == NormalizedStatus.SUCCESSFUL
            and tx.amount <= Decimal("0")
        ):
            issues.append(ValidationIssue(
                uid=tx.uid,
                field="amount",
                issue_type="suspicious_value",
                message=f"Successful payment with amount {tx.amount}",
                severity=IssueSeverity.WARNING,
                suggested_fix="Check the amount column of the export",
            ))

        if not tx.customer_email and not tx.card_holder:
            issues.append(ValidationIssue(
                uid=tx.uid,
                field="customer",
                issue_type="unmatchable",
                message="No email and no card holder: cannot be matched to a contact",
                severity=IssueSeverity.WARNING,
                suggested_fix="Link the payment to a contact manually after import",
            ))

        max_future = now + timedelta(days=self._settings.future_date_tolerance_days)
        if tx.paid_at and tx.paid_at > max_future:
            issues.append(ValidationIssue(
                uid=tx.uid,
                field="paid_at",
                issue_type="future_date",
                message=f"Payment date ({tx.paid_at:%d.%m.%Y %H:%M}) is in the future",
                severity=IssueSeverity.WARNING,
            ))

        if tx.currency and tx.currency.upper() != self._settings.default_currency:
            issues.append(ValidationIssue(
                uid=tx.uid,
                field="currency",
                issue_type="foreign_currency",
                message=f"Currency {tx.currency} differs from {self._settings.default_currency}",
                severity=IssueSeverity.INFO,
            ))

        return issues

    def validate(
        self,
        transactions: list[ParsedTransaction],
        now: Optional[datetime] = None,
    ) -> ImportValidationResult:
        """
        Validate an export.

        Args:
            transactions: Parsed transactions in file order
            now: Reference time for the future-date check

        Returns:
            ImportValidationResult with the deduplicated transactions
        """
        now = now or datetime.now()
        seen: set[str] = set()
        kept: list[ParsedTransaction] = []
        issues: list[ValidationIssue] = []

        for tx in transactions:
            if tx.uid in seen:
                issues.append(ValidationIssue(
                    uid=tx.uid,
                    field="uid",
                    issue_type="duplicate",
                    message=f"UID {tx.uid} appears more than once in the file",
                    severity=IssueSeverity.ERROR,
                    suggested_fix="Only the first occurrence is imported",
                ))
                continue
            seen.add(tx.uid)
            kept.append(tx)
            issues.extend(self._check_record(tx, now))

        result = ImportValidationResult(transactions=kept, issues=issues)
        logger.info(
            "export_validated",
            total=len(transactions),
            kept=len(kept),
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return result

    def get_summary(self, result: ImportValidationResult) -> str:
        """Plain-text summary for the operator."""
        if not result.issues:
            return "All checks passed."

        lines = []
        if result.errors:
            lines.append(f"Dropped {len(result.errors)} duplicate rows:")
            for issue in result.errors:
                lines.append(f"  - {issue.message}")
        if result.warnings:
            lines.append(f"{len(result.warnings)} records need attention:")
            for issue in result.warnings:
                lines.append(f"  - {issue.uid}: {issue.message}")
        return "\n".join(lines)
