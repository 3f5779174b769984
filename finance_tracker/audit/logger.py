"""
Audit Logger

DESIGN DECISION: Every action that changes money-related state is logged.
Wallet balances are moved by several sequential storage calls, so the
audit trail is what lets a user (or a developer) reconstruct what happened
when one of those calls failed halfway.

The audit logger:
- Writes every event to the structured local log
- Persists events to audit storage when one is configured
- Never raises: a failed audit write must not undo a recorded transaction
- Groups the events of one user action under a correlation ID
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finance_tracker.services.storage import AuditStorageInterface


SEVERITY_LEVELS = {
    AuditSeverity.DEBUG: logging.DEBUG,
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
    AuditSeverity.CRITICAL: logging.CRITICAL,
}


def configure_logging(debug: bool = False) -> None:
    """
    Configure structlog for the whole application.

    JSON lines by default; readable console output in debug mode.
    """
    renderer = (
        structlog.dev.ConsoleRenderer() if debug
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )


configure_logging()


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (a receipt scan, a transaction
    edit) and pass it through every step of that action.
    """
    return uuid4()


class AuditLogger:
    """
    Records audit events locally and in audit storage.

    Services build events with AuditEventBuilder and pass them to `log`;
    the receipt and Ask-AI flows use the shortcut methods below.
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when audit storage rejected the write.
        """
        self._logger.log(SEVERITY_LEVELS[event.severity], "audit_event", **event.to_log_dict())

        if self._storage is None:
            return True
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    async def get_trail(self, correlation_id: UUID) -> list[AuditEvent]:
        """Every persisted event of one user action, oldest first."""
        if self._storage is None:
            return []
        return await self._storage.get_events_by_correlation_id(correlation_id)

    async def get_recent_activity(
        self,
        user_id: Optional[UUID] = None,
        limit: int = 20,
    ) -> list[AuditEvent]:
        """
        Most recent persisted events, newest first.

        With a user ID, only that user's events and system events are kept.
        """
        if self._storage is None:
            return []
        events = await self._storage.get_recent_events(limit=limit * 5 if user_id else limit)
        if user_id is not None:
            events = [e for e in events if e.user_id in (None, user_id)]
        return events[:limit]

    # -------------------------------------------------------------------------
    # Receipt scanning
    # -------------------------------------------------------------------------

    async def log_receipt_uploaded(
        self,
        upload_id: UUID,
        filename: str,
        file_size: int,
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_uploaded(
            upload_id=upload_id,
            filename=filename,
            file_size=file_size,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    async def log_receipt_analyzed(
        self,
        extraction_id: UUID,
        amount: Optional[str],
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_analyzed(
            extraction_id=extraction_id,
            amount=amount,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    async def log_validation_failed(
        self,
        extraction_id: UUID,
        stage: str,
        issues: list[dict],
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_validation_failed(
            extraction_id=extraction_id,
            stage=stage,
            issues=issues,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    async def log_receipt_confirmed(
        self,
        transaction_id: UUID,
        extraction_id: UUID,
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_confirmed(
            transaction_id=transaction_id,
            extraction_id=extraction_id,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    async def log_receipt_rejected(
        self,
        extraction_id: UUID,
        reason: Optional[str],
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_rejected(
            extraction_id=extraction_id,
            reason=reason,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    # -------------------------------------------------------------------------
    # Ask AI and failures
    # -------------------------------------------------------------------------

    async def log_query_executed(
        self,
        query_id: UUID,
        query_type: str,
        result_count: int,
        correlation_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.query_executed(
            query_id=query_id,
            query_type=query_type,
            result_count=result_count,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """A Gemini or Google Sheets call failed after its retries."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))
