"""
Receipt Scanning Models

CRITICAL: An ExtractedReceipt is PROPOSED data, NOT verified.
It becomes a Transaction only after the user reviews it, picks a wallet
and a category, and confirms.
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finance_tracker.models.finance import TransactionType, utcnow


ALLOWED_IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}


class ReceiptUpload(BaseModel):
    """Represents an uploaded receipt image before analysis."""

    upload_id: UUID = Field(default_factory=uuid4)
    uploaded_at: datetime = Field(default_factory=utcnow)
    original_filename: str
    file_size_bytes: int = Field(ge=0)
    mime_type: str

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only allow image types."""
        if v.lower() not in ALLOWED_IMAGE_MIME_TYPES:
            raise ValueError(
                f"Unsupported image type: {v}. Allowed: {sorted(ALLOWED_IMAGE_MIME_TYPES)}"
            )
        return v.lower()


class ExtractedReceipt(BaseModel):
    """
    Data the AI model read from a receipt.

    All fields are optional because the model might fail to find some.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    extraction_id: UUID = Field(default_factory=uuid4)
    extracted_at: datetime = Field(default_factory=utcnow)

    amount: Optional[Decimal] = Field(
        default=None,
        description="Final total of the receipt, no currency symbols"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Comma-separated items, or the merchant name"
    )
    date: Optional[dt.date] = None
    type: TransactionType = TransactionType.EXPENSE

    raw_response: Optional[str] = Field(
        default=None,
        description="Raw model output for debugging"
    )


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str
    severity: str = Field(..., pattern="^(error|warning|info)$")
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage receipt validation.

    Stage 1: Schema validation (required fields present)
    Stage 2: Semantic validation (plausible dates and amounts)
    """

    extraction_id: UUID
    validated_at: datetime = Field(default_factory=utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    can_proceed_with_review: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")
