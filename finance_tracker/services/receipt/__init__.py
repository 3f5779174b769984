"""Receipt analysis services package."""

from finance_tracker.services.receipt.gemini_service import (
    InvalidReceiptImageError,
    ReceiptAnalysisError,
    ReceiptAnalyzer,
    ReceiptError,
)

__all__ = [
    "InvalidReceiptImageError",
    "ReceiptAnalysisError",
    "ReceiptAnalyzer",
    "ReceiptError",
]
