"""
Data Models Package

This package contains all Pydantic models used by Pocket Ledger.
All data flowing through the engine and the store must conform to these schemas.
"""

from pocketledger.models.ledger import (
    CHARGE_TYPES,
    CYCLE_BILLED_KINDS,
    POSTED_STATUSES,
    Account,
    AccountType,
    BalanceReport,
    FundingInstrument,
    InstrumentKind,
    SettlementLink,
    Transaction,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from pocketledger.models.recurrence import (
    Frequency,
    RecurrenceRule,
    RuleStatus,
    RunSummary,
)
from pocketledger.models.settlement import (
    EngineState,
    ProjectionSource,
    SettlementPayment,
    SettlementProjection,
)
from pocketledger.models.reports import (
    GroupTotal,
    InstrumentBreakdown,
    MonthlySummary,
)
from pocketledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CHARGE_TYPES",
    "CYCLE_BILLED_KINDS",
    "POSTED_STATUSES",
    "Account",
    "AccountType",
    "BalanceReport",
    "FundingInstrument",
    "InstrumentKind",
    "SettlementLink",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Recurrence models
    "Frequency",
    "RecurrenceRule",
    "RuleStatus",
    "RunSummary",
    # Settlement models
    "EngineState",
    "ProjectionSource",
    "SettlementPayment",
    "SettlementProjection",
    # Report models
    "GroupTotal",
    "InstrumentBreakdown",
    "MonthlySummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
