"""
Two-Stage Receipt Validation

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount)
- Value range (amount > 0)
- Missing optional fields (description, date) reported as warnings

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Very old date detection
- Implausible amount detection
- Possible duplicate detection against recorded transactions

Stage 2 only runs when stage 1 has no errors.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from finance_tracker.analytics import format_currency
from finance_tracker.config import AppSettings, get_settings
from finance_tracker.models.finance import TransactionFilter
from finance_tracker.models.receipt import (
    ExtractedReceipt,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.services.storage import StorageError, TransactionStorageInterface


OLD_RECEIPT_DAYS = 365 * 2
MIN_PLAUSIBLE_AMOUNT = Decimal("1")


class ReceiptValidator:
    """
    Validates an ExtractedReceipt before it is shown for review.

    Duplicate checks need the transaction store and the signed-in user;
    without them that check is skipped.
    """

    def __init__(
        self,
        transaction_storage: Optional[TransactionStorageInterface] = None,
        user_id: Optional[UUID] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._storage = transaction_storage
        self._user_id = user_id
        self._settings = app_settings or get_settings().app
        self._logger = structlog.get_logger(__name__)

    def _money(self, amount: Decimal) -> str:
        return format_currency(amount, self._settings.currency_symbol)

    def _validate_schema(
        self,
        extracted: ExtractedReceipt,
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []

        if extracted.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Total amount could not be read from the receipt",
                severity="error",
                suggested_fix="Enter the amount manually or retake the photo",
            ))
        elif extracted.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Total amount must be greater than zero",
                severity="error",
                suggested_fix="Check if the amount was read correctly",
            ))

        if not extracted.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No items or merchant name were found",
                severity="warning",
                suggested_fix="You'll need to enter a description manually",
            ))

        if extracted.date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Receipt date was not found",
                severity="warning",
                suggested_fix="You'll need to enter the date manually",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        extracted: ExtractedReceipt,
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []
        today = date.today()

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if extracted.date and extracted.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Receipt date ({extracted.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if extracted.date and extracted.date < today - timedelta(days=OLD_RECEIPT_DAYS):
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_date",
                message=f"Receipt date ({extracted.date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the date was read correctly",
            ))

        max_amount = Decimal(str(self._settings.max_receipt_amount))
        if extracted.amount and extracted.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({self._money(extracted.amount)}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if extracted.amount and extracted.amount < MIN_PLAUSIBLE_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({extracted.amount}) seems unusually low",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_duplicates(
        self,
        extracted: ExtractedReceipt,
    ) -> list[ValidationIssue]:
        """Warn when a transaction with the same date, type and amount exists."""
        if self._storage is None or self._user_id is None:
            return []
        if extracted.amount is None or extracted.date is None:
            return []

        try:
            same_day = await self._storage.list_transactions(
                self._user_id,
                TransactionFilter(
                    type=extracted.type,
                    date_from=extracted.date,
                    date_to=extracted.date,
                ),
            )
        except StorageError as e:
            # Duplicate detection is advisory
            self._logger.warning("duplicate_check_failed", error=str(e))
            return []

        if any(t.amount == extracted.amount for t in same_day):
            return [ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=(
                    f"A transaction of {self._money(extracted.amount)} on "
                    f"{extracted.date} already exists"
                ),
                severity="warning",
                suggested_fix="Please verify this isn't a duplicate entry",
            )]
        return []

    async def validate(
        self,
        extracted: ExtractedReceipt,
        check_duplicates: bool = True,
    ) -> ValidationResult:
        """Run both stages and collect every issue found."""
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(extracted)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(extracted)
            all_issues.extend(semantic_issues)
            if check_duplicates:
                all_issues.extend(await self._check_duplicates(extracted))

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            extraction_id=extracted.extraction_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            can_proceed_with_review=schema_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Plain-language summary shown above the review form."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! Please review the details below."

        lines = []
        if not result.schema_valid:
            lines.append("❌ Some required information could not be read:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.can_proceed_with_review:
            lines.append("You can still proceed, but please review carefully.")
        else:
            lines.append("You can enter the details manually instead.")
        return "\n".join(lines)
