"""
Audit Models for Personal Finance Tracker

Every action that changes money-related state is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. Debugging information when a multi-step write fails halfway
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_tracker.models.finance import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Wallets
    WALLET_CREATED = "wallet_created"
    WALLET_UPDATED = "wallet_updated"
    WALLET_DEACTIVATED = "wallet_deactivated"
    BALANCE_ADJUSTED = "balance_adjusted"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_DEACTIVATED = "category_deactivated"
    DEFAULT_CATEGORIES_CREATED = "default_categories_created"

    # Transactions
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_ROLLED_BACK = "transaction_rolled_back"

    # Budgets
    BUDGET_SET = "budget_set"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"

    # Goals and loans
    GOAL_LOAN_CREATED = "goal_loan_created"
    GOAL_LOAN_PAYMENT_RECORDED = "goal_loan_payment_recorded"
    GOAL_LOAN_COMPLETED = "goal_loan_completed"

    # Assets
    ASSET_CREATED = "asset_created"
    ASSET_UPDATED = "asset_updated"
    ASSET_VALUE_UPDATED = "asset_value_updated"
    ASSET_DELETED = "asset_deleted"

    # Receipt scanning
    RECEIPT_UPLOADED = "receipt_uploaded"
    RECEIPT_ANALYZED = "receipt_analyzed"
    RECEIPT_VALIDATION_FAILED = "receipt_validation_failed"
    RECEIPT_CONFIRMED = "receipt_confirmed"
    RECEIPT_REJECTED = "receipt_rejected"

    # Ask AI
    QUERY_EXECUTED = "query_executed"
    CHAT_SESSION_DELETED = "chat_session_deleted"
    RECOMMENDATIONS_GENERATED = "recommendations_generated"

    # Reports
    REPORT_EXPORTED = "report_exported"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utcnow)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'wallet', 'transaction', 'receipt')"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one receipt scan)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.user_id) if self.user_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.wallet_created(user_id, wallet_id, name)
        event = AuditEventBuilder.transaction_recorded(user_id, txn, correlation_id)
    """

    @staticmethod
    def wallet_created(
        user_id: UUID,
        wallet_id: UUID,
        name: str,
        opening_balance: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WALLET_CREATED,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            description=f"Wallet created: {name}",
            details={"name": name, "opening_balance": opening_balance},
            is_user_action=True,
        )

    @staticmethod
    def wallet_updated(user_id: UUID, wallet_id: UUID, changes: dict) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WALLET_UPDATED,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            description=f"Wallet updated: {', '.join(sorted(changes)) or 'no fields'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def wallet_deactivated(user_id: UUID, wallet_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WALLET_DEACTIVATED,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            description="Wallet deactivated",
            is_user_action=True,
        )

    @staticmethod
    def balance_adjusted(
        user_id: UUID,
        wallet_id: UUID,
        operation: str,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            correlation_id=correlation_id,
            description=f"Balance {operation} {amount}, now {new_balance}",
            details={
                "operation": operation,
                "amount": amount,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def category_created(user_id: UUID, category_id: UUID, name: str, category_type: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category created: {name} ({category_type})",
            details={"name": name, "type": category_type},
            is_user_action=True,
        )

    @staticmethod
    def category_deactivated(user_id: UUID, category_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DEACTIVATED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description="Category deactivated",
            is_user_action=True,
        )

    @staticmethod
    def default_categories_created(user_id: UUID, count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_CATEGORIES_CREATED,
            user_id=user_id,
            entity_type="category",
            description=f"{count} default categories created",
            details={"count": count},
        )

    @staticmethod
    def transaction_recorded(
        user_id: UUID,
        transaction_id: UUID,
        wallet_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} of {amount} recorded",
            details={
                "wallet_id": str(wallet_id),
                "type": transaction_type,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: UUID,
        transaction_id: UUID,
        changes: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(sorted(changes)) or 'no fields'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        user_id: UUID,
        transaction_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction of {amount} deleted",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_rolled_back(
        user_id: UUID,
        transaction_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction removed after wallet balance update failed",
            error_message=error_message,
        )

    @staticmethod
    def budget_set(
        user_id: UUID,
        budget_id: UUID,
        category_id: UUID,
        month: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SET,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget of {amount} set for {month}",
            details={
                "category_id": str(category_id),
                "month": month,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_updated(user_id: UUID, budget_id: UUID, changes: dict) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget updated: {', '.join(sorted(changes)) or 'no fields'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def budget_deleted(user_id: UUID, budget_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_DELETED,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            description="Budget deleted",
            is_user_action=True,
        )

    @staticmethod
    def goal_loan_created(user_id: UUID, item_id: UUID, title: str, item_type: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_LOAN_CREATED,
            user_id=user_id,
            entity_type=item_type,
            entity_id=item_id,
            description=f"{item_type.capitalize()} created: {title}",
            details={"title": title},
            is_user_action=True,
        )

    @staticmethod
    def goal_loan_payment_recorded(
        user_id: UUID,
        item_id: UUID,
        amount: str,
        new_current_amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_LOAN_PAYMENT_RECORDED,
            user_id=user_id,
            entity_type="goal_loan",
            entity_id=item_id,
            description=f"Payment of {amount} recorded",
            details={"amount": amount, "current_amount": new_current_amount},
            is_user_action=True,
        )

    @staticmethod
    def goal_loan_completed(user_id: UUID, item_id: UUID, item_type: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_LOAN_COMPLETED,
            user_id=user_id,
            entity_type=item_type,
            entity_id=item_id,
            description=f"{item_type.capitalize()} marked as completed",
            is_user_action=True,
        )

    @staticmethod
    def asset_created(user_id: UUID, asset_id: UUID, name: str, value: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_CREATED,
            user_id=user_id,
            entity_type="asset",
            entity_id=asset_id,
            description=f"Asset created: {name}",
            details={"name": name, "current_value": value},
            is_user_action=True,
        )

    @staticmethod
    def asset_updated(user_id: UUID, asset_id: UUID, changes: dict) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_UPDATED,
            user_id=user_id,
            entity_type="asset",
            entity_id=asset_id,
            description=f"Asset updated: {', '.join(sorted(changes)) or 'no fields'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def asset_value_updated(
        user_id: UUID,
        asset_id: UUID,
        old_value: str,
        new_value: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_VALUE_UPDATED,
            user_id=user_id,
            entity_type="asset",
            entity_id=asset_id,
            description=f"Asset value changed from {old_value} to {new_value}",
            details={"old_value": old_value, "new_value": new_value},
            is_user_action=True,
        )

    @staticmethod
    def asset_deleted(user_id: UUID, asset_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_DELETED,
            user_id=user_id,
            entity_type="asset",
            entity_id=asset_id,
            description="Asset deleted",
            is_user_action=True,
        )

    @staticmethod
    def chat_session_deleted(user_id: UUID, session_id: UUID, message_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_SESSION_DELETED,
            user_id=user_id,
            entity_type="chat_session",
            entity_id=session_id,
            description=f"Conversation deleted ({message_count} messages)",
            details={"message_count": message_count},
            is_user_action=True,
        )

    @staticmethod
    def recommendations_generated(
        user_id: UUID,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECOMMENDATIONS_GENERATED,
            user_id=user_id,
            entity_type="recommendation",
            correlation_id=correlation_id,
            description=f"{count} recommendations generated",
            details={"count": count},
        )

    @staticmethod
    def receipt_uploaded(
        upload_id: UUID,
        filename: str,
        file_size: int,
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_UPLOADED,
            user_id=user_id,
            entity_type="receipt",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description=f"Receipt uploaded: {filename}",
            details={"filename": filename, "file_size_bytes": file_size},
            is_user_action=True,
        )

    @staticmethod
    def receipt_analyzed(
        extraction_id: UUID,
        amount: Optional[str],
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_ANALYZED,
            user_id=user_id,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description="Receipt analyzed by AI",
            details={"amount": amount},
        )

    @staticmethod
    def receipt_validation_failed(
        extraction_id: UUID,
        stage: str,
        issues: list[dict],
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"{stage.capitalize()} validation failed with {len(issues)} issues",
            details={"stage": stage, "issues": issues},
        )

    @staticmethod
    def receipt_confirmed(
        transaction_id: UUID,
        extraction_id: UUID,
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_CONFIRMED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="User confirmed scanned receipt",
            details={"extraction_id": str(extraction_id)},
            is_user_action=True,
        )

    @staticmethod
    def receipt_rejected(
        extraction_id: UUID,
        reason: Optional[str],
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_REJECTED,
            user_id=user_id,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description="User rejected scanned receipt",
            details={"reason": reason or "No reason provided"},
            is_user_action=True,
        )

    @staticmethod
    def query_executed(
        query_id: UUID,
        query_type: str,
        result_count: int,
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_EXECUTED,
            user_id=user_id,
            entity_type="query",
            entity_id=query_id,
            correlation_id=correlation_id,
            description=f"Query executed: {query_type} returned {result_count} results",
            details={"query_type": query_type, "result_count": result_count},
        )

    @staticmethod
    def report_exported(user_id: UUID, period: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_EXPORTED,
            user_id=user_id,
            entity_type="report",
            description=f"Report exported for period {period}",
            details={"period": period},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
