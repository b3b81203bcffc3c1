"""
Audit Logger

DESIGN DECISION: Every engine write is logged.
This provides:
1. Complete traceability of generated and settled transactions
2. Debugging capability when a balance looks wrong
3. A user-visible history of what the engine did on their behalf

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the engine if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocketledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from pocketledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug_mode: bool = False) -> None:
    """
    Route stdlib logging (and therefore structlog) to stderr.

    Debug mode lowers the level so engine-internal events such as
    projection fallbacks become visible.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if debug_mode else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_log collection (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pocketledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_run_completed(
        self,
        processed: int,
        created: int,
        errors: int,
        correlation_id: UUID,
    ) -> None:
        """Log the end of a recurring processor run."""
        event = AuditEventBuilder.recurring_run_completed(
            processed=processed,
            created=created,
            errors=errors,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_run_skipped(
        self,
        last_run_at: datetime,
        cooldown_hours: float,
    ) -> None:
        """Log a startup check that fell inside the cooldown window."""
        event = AuditEventBuilder.recurring_run_skipped(
            last_run_at=last_run_at,
            cooldown_hours=cooldown_hours,
        )
        await self.log(event)

    async def log_occurrence_materialized(
        self,
        rule_id: str,
        transaction_id: str,
        occurrence: date,
        correlation_id: UUID,
    ) -> None:
        """Log a rule occurrence turned into a transaction."""
        event = AuditEventBuilder.occurrence_materialized(
            rule_id=rule_id,
            transaction_id=transaction_id,
            occurrence=occurrence,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_failed(
        self,
        rule_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a rule that could not be processed."""
        event = AuditEventBuilder.rule_processing_failed(
            rule_id=rule_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_saved(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a rule, instrument or account write."""
        event = AuditEventBuilder.entity_saved(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        await self.log(event)

    async def log_transaction_recorded(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        status: str,
        settlement_date: Optional[date] = None,
    ) -> None:
        """Log a ledger entry write."""
        event = AuditEventBuilder.transaction_recorded(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=str(amount),
            status=status,
            settlement_date=settlement_date,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        removed_ids: list[str],
    ) -> None:
        """Log a ledger entry removal."""
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            removed_ids=removed_ids,
        )
        await self.log(event)

    async def log_settlement_posted(
        self,
        settlement_id: str,
        instrument_id: str,
        settlement_date: date,
        amount: Decimal,
        origin_ids: list[str],
    ) -> None:
        """Log a settlement entry created or extended."""
        event = AuditEventBuilder.settlement_posted(
            settlement_id=settlement_id,
            instrument_id=instrument_id,
            settlement_date=settlement_date,
            amount=str(amount),
            origin_ids=origin_ids,
        )
        await self.log(event)

    async def log_balances_recomputed(
        self,
        account_count: int,
        applied_count: int,
        skipped_count: int,
    ) -> None:
        """Log a full balance rebuild."""
        event = AuditEventBuilder.balances_recomputed(
            account_count=account_count,
            applied_count=applied_count,
            skipped_count=skipped_count,
        )
        await self.log(event)

    async def log_dangling_reference(
        self,
        transaction_id: str,
        field: str,
        message: str,
    ) -> None:
        """Log a transaction skipped by the balance engine."""
        event = AuditEventBuilder.dangling_reference(
            transaction_id=transaction_id,
            field=field,
            message=message,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a processor run or ledger flow.
    Pass it through all subsequent operations.
    """
    return uuid4()
