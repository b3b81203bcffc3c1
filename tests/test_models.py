"""
Tests for Pocket Ledger

Test strategy:
1. Unit tests for individual components (models, pure calculators)
2. Integration tests for flows (against the in-memory store)
3. No real API calls in tests (Google Sheets is faked)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pocketledger.models.ledger import (
    Account,
    AccountType,
    BalanceReport,
    FundingInstrument,
    InstrumentKind,
    Transaction,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from pocketledger.models.recurrence import Frequency, RecurrenceRule, RuleStatus
from pocketledger.models.settlement import EngineState
from pocketledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerModels:
    """Tests for ledger Pydantic models."""

    def test_account_creation(self):
        """Test Account model creation."""
        account = Account(name="  Wallet  ", type=AccountType.CASH)
        assert account.name == "Wallet"
        assert account.balance == Decimal("0")
        assert account.currency == "JPY"
        assert account.id

    def test_account_type_is_explicit(self):
        """Test that the account kind is a required tag."""
        with pytest.raises(ValueError):
            Account(id="bank_main", name="Main")

    def test_transaction_creation(self):
        """Test Transaction model creation."""
        txn = Transaction(
            type=TransactionType.EXPENSE,
            amount=Decimal("1200"),
            transaction_date=date(2024, 3, 1),
            instrument_id="card",
        )
        assert txn.status == TransactionStatus.COMPLETED
        assert txn.settlement_date is None
        assert txn.recurring_rule_id is None

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(
                type=TransactionType.INCOME,
                amount=Decimal("-1"),
                transaction_date=date(2024, 3, 1),
                account_id="a",
            )

    def test_transfer_needs_both_accounts(self):
        """Test that transfers name source and destination."""
        with pytest.raises(ValueError, match="both source_account_id and account_id"):
            Transaction(
                type=TransactionType.TRANSFER,
                amount=Decimal("100"),
                transaction_date=date(2024, 3, 1),
                account_id="a",
            )

    def test_transfer_to_same_account_rejected(self):
        """Test that a transfer cannot loop back to its source."""
        with pytest.raises(ValueError, match="must differ"):
            Transaction(
                type=TransactionType.TRANSFER,
                amount=Decimal("100"),
                transaction_date=date(2024, 3, 1),
                account_id="a",
                source_account_id="a",
            )

    def test_transaction_json_round_trip(self):
        """Test that dates and amounts survive the store format."""
        txn = Transaction(
            type=TransactionType.EXPENSE,
            amount=Decimal("980.50"),
            transaction_date=date(2024, 3, 20),
            instrument_id="card",
            status=TransactionStatus.PENDING_SETTLEMENT,
            settlement_date=date(2024, 5, 10),
        )
        record = txn.model_dump(mode="json")
        assert record["transaction_date"] == "2024-03-20"
        assert record["settlement_date"] == "2024-05-10"

        restored = Transaction.model_validate(record)
        assert restored == txn


class TestFundingInstrument:
    """Tests for funding instrument billing cycles."""

    def test_cycle_billed_card(self):
        """Test a credit card with both cycle days."""
        card = FundingInstrument(
            name="Card",
            kind=InstrumentKind.CREDIT_CARD,
            account_id="bank",
            closing_day=15,
            billing_day=10,
        )
        assert card.is_cycle_billed is True

    def test_cycle_days_come_in_pairs(self):
        """Test that one cycle day without the other is rejected."""
        with pytest.raises(ValueError, match="must be set together"):
            FundingInstrument(
                kind=InstrumentKind.CREDIT_CARD,
                account_id="bank",
                closing_day=15,
            )

    def test_cycle_rejected_on_cash(self):
        """Test that only cycle-billed kinds may carry a cycle."""
        with pytest.raises(ValueError, match="only allowed"):
            FundingInstrument(
                kind=InstrumentKind.CASH,
                account_id="wallet",
                closing_day=15,
                billing_day=10,
            )

    def test_card_without_cycle_is_not_cycle_billed(self):
        """Test that a card with no days settles immediately."""
        card = FundingInstrument(kind=InstrumentKind.CREDIT_CARD, account_id="bank")
        assert card.is_cycle_billed is False

    def test_day_bounds(self):
        """Test closing day must be within 1..31."""
        with pytest.raises(ValueError):
            FundingInstrument(
                kind=InstrumentKind.DIRECT_DEBIT,
                account_id="bank",
                closing_day=32,
                billing_day=1,
            )


class TestRecurrenceRuleModel:
    """Tests for recurrence rule construction checks."""

    def _rule(self, **overrides):
        fields = dict(
            title="Rent",
            type=TransactionType.EXPENSE,
            amount=Decimal("80000"),
            instrument_id="bank_transfer",
            start_date=date(2024, 1, 25),
            frequency=Frequency.MONTHLY,
        )
        fields.update(overrides)
        return RecurrenceRule(**fields)

    def test_rule_defaults(self):
        """Test a minimal rule."""
        rule = self._rule()
        assert rule.interval == 1
        assert rule.status == RuleStatus.ACTIVE
        assert rule.last_generated_date is None

    def test_interval_must_be_positive(self):
        """Test that a zero interval is rejected."""
        with pytest.raises(ValueError):
            self._rule(interval=0)

    def test_amount_must_be_positive(self):
        """Test that a zero amount is rejected."""
        with pytest.raises(ValueError):
            self._rule(amount=Decimal("0"))

    def test_end_date_after_start(self):
        """Test that the end date must follow the start date."""
        with pytest.raises(ValueError, match="End date must be after start date"):
            self._rule(end_date=date(2024, 1, 25))

    def test_day_of_week_only_on_weekly(self):
        """Test that a weekday pin requires a weekly rule."""
        with pytest.raises(ValueError, match="day_of_week"):
            self._rule(day_of_week=1)

    def test_day_of_month_not_on_daily(self):
        """Test that a day-of-month pin requires monthly or yearly."""
        with pytest.raises(ValueError, match="day_of_month"):
            self._rule(frequency=Frequency.DAILY, day_of_month=3)

    def test_month_of_year_needs_day(self):
        """Test that a yearly month pin also needs a day."""
        with pytest.raises(ValueError, match="also need day_of_month"):
            self._rule(frequency=Frequency.YEARLY, month_of_year=4)

    def test_transfer_rule_needs_both_accounts(self):
        """Test that transfer rules name both ends."""
        with pytest.raises(ValueError, match="Transfer rules"):
            self._rule(type=TransactionType.TRANSFER, account_id="savings")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            description="Transaction recorded",
        )
        assert event.event_type == AuditEventType.TRANSACTION_RECORDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SETTLEMENT_POSTED,
            description="Settlement posted",
            details={"instrument_id": "card", "amount": "1000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "settlement_posted"
        assert log_dict["details"]["instrument_id"] == "card"

    def test_audit_event_builder_occurrence_materialized(self):
        """Test AuditEventBuilder.occurrence_materialized."""
        correlation_id = uuid4()

        event = AuditEventBuilder.occurrence_materialized(
            rule_id="rule-1",
            transaction_id="txn-1",
            occurrence=date(2024, 2, 25),
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.OCCURRENCE_MATERIALIZED
        assert event.entity_id == "rule-1"
        assert event.correlation_id == correlation_id
        assert event.details["occurrence"] == "2024-02-25"

    def test_audit_event_builder_run_with_errors_is_warning(self):
        """Test that a run with failures is raised to warning severity."""
        event = AuditEventBuilder.recurring_run_completed(
            processed=3,
            created=2,
            errors=1,
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details == {"processed": 3, "created": 2, "errors": 1}

    def test_audit_event_builder_entity_saved(self):
        """Test the generic entity save event."""
        event = AuditEventBuilder.entity_saved(
            event_type=AuditEventType.RULE_SAVED,
            entity_type="rule",
            entity_id="rule-1",
        )
        assert event.description == "Rule saved"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            issues=[
                ValidationIssue(
                    field="instrument_id",
                    issue_type="dangling_reference",
                    message="Missing instrument",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            issues=[
                ValidationIssue(
                    field="settlement_date",
                    issue_type="settlement_mismatch",
                    message="Settlement date differs",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["Settlement date differs"]

    def test_severity_pattern(self):
        """Test that unknown severities are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


class TestStateModels:
    """Tests for persisted engine state and reports."""

    def test_engine_state_starts_dirty(self):
        """Test that a fresh state forces a projection rebuild."""
        state = EngineState()
        assert state.settlements_dirty is True
        assert state.cached_projection is None
        assert state.last_recurring_run_at is None

    def test_balance_report_lookup(self):
        """Test BalanceReport.balance_of."""
        report = BalanceReport(
            accounts=[Account(id="a", type=AccountType.BANK, balance=Decimal("600"))],
        )
        assert report.balance_of("a") == Decimal("600")
        assert report.balance_of("missing") is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
