"""Receipt validation package."""

from finance_tracker.validation.validator import ReceiptValidator

__all__ = ["ReceiptValidator"]
