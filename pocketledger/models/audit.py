"""
Audit Models for Pocket Ledger

Every engine write is recorded as an audit event so the history of
generated transactions, settlements and balance rebuilds can be
reconstructed.

DESIGN DECISION: Audit logs are append-only. We never modify them.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from pocketledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Recurring processing
    RECURRING_RUN_STARTED = "recurring_run_started"
    RECURRING_RUN_COMPLETED = "recurring_run_completed"
    RECURRING_RUN_SKIPPED = "recurring_run_skipped"
    OCCURRENCE_MATERIALIZED = "occurrence_materialized"
    RULE_PROCESSING_FAILED = "rule_processing_failed"

    # Rule and reference data maintenance
    RULE_SAVED = "rule_saved"
    RULE_UPDATED = "rule_updated"
    INSTRUMENT_SAVED = "instrument_saved"
    ACCOUNT_SAVED = "account_saved"

    # Ledger writes
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    SETTLEMENT_POSTED = "settlement_posted"

    # Projections
    BALANCES_RECOMPUTED = "balances_recomputed"
    DANGLING_REFERENCE = "dangling_reference"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


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

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'rule', 'transaction', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one processor run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.occurrence_materialized(rule_id, txn_id, occurrence, cid)
        event = AuditEventBuilder.balances_recomputed(account_count, skipped_count)
    """

    @staticmethod
    def recurring_run_completed(
        processed: int,
        created: int,
        errors: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RUN_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="recurring_run",
            correlation_id=correlation_id,
            description=(
                f"Recurring run: {processed} processed, {created} created, {errors} errors"
            ),
            details={
                "processed": processed,
                "created": created,
                "errors": errors,
            },
        )

    @staticmethod
    def recurring_run_skipped(
        last_run_at: datetime,
        cooldown_hours: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RUN_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="recurring_run",
            description=f"Recurring run skipped, last run within {cooldown_hours:g}h",
            details={"last_run_at": last_run_at.isoformat()},
        )

    @staticmethod
    def occurrence_materialized(
        rule_id: str,
        transaction_id: str,
        occurrence: date,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_MATERIALIZED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Occurrence {occurrence.isoformat()} materialized",
            details={
                "transaction_id": transaction_id,
                "occurrence": occurrence.isoformat(),
            },
        )

    @staticmethod
    def rule_processing_failed(
        rule_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_PROCESSING_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Recurring rule could not be processed",
            error_message=error_message,
        )

    @staticmethod
    def entity_saved(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} {event_type.value.rsplit('_', 1)[-1]}",
            details=details or {},
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        status: str,
        settlement_date: Optional[date] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction recorded: {transaction_type} {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "status": status,
                "settlement_date": settlement_date.isoformat() if settlement_date else None,
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        removed_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction deleted ({len(removed_ids)} records removed)",
            details={"removed_ids": removed_ids},
        )

    @staticmethod
    def settlement_posted(
        settlement_id: str,
        instrument_id: str,
        settlement_date: date,
        amount: str,
        origin_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_POSTED,
            entity_type="transaction",
            entity_id=settlement_id,
            description=(
                f"Settlement posted for {instrument_id} on "
                f"{settlement_date.isoformat()}: {amount}"
            ),
            details={
                "instrument_id": instrument_id,
                "settlement_date": settlement_date.isoformat(),
                "amount": amount,
                "origin_ids": origin_ids,
            },
        )

    @staticmethod
    def balances_recomputed(
        account_count: int,
        applied_count: int,
        skipped_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RECOMPUTED,
            severity=AuditSeverity.WARNING if skipped_count else AuditSeverity.INFO,
            entity_type="account",
            description=(
                f"Balances rebuilt for {account_count} accounts "
                f"({skipped_count} transactions skipped)"
            ),
            details={
                "account_count": account_count,
                "applied_count": applied_count,
                "skipped_count": skipped_count,
            },
        )

    @staticmethod
    def dangling_reference(
        transaction_id: str,
        field: str,
        message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DANGLING_REFERENCE,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            description=message,
            details={"field": field},
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
