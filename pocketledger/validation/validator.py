"""
Two-Stage Ledger Integrity Check

DESIGN DECISION: Integrity checking happens in two distinct stages:

STAGE 1 - REFERENCE VALIDATION:
- Every account, instrument and rule id a record points at exists
- Settlement link rows point at existing transactions
- This catches records orphaned by deletes or partial writes

STAGE 2 - SEMANTIC VALIDATION:
- Stored settlement dates match what the instrument's cycle derives
- Pending charges carry a settlement date
- Settlement entries equal the sum of the charges linked to them
- Rule cursors do not run past their end date

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Stage 2 assumes references resolve, so it is skipped if stage 1 fails

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from decimal import Decimal
from typing import Iterable, Optional

from pocketledger.models.ledger import (
    CHARGE_TYPES,
    Account,
    FundingInstrument,
    SettlementLink,
    Transaction,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from pocketledger.models.recurrence import RecurrenceRule
from pocketledger.services.storage import LedgerRepository
from pocketledger.settlement.calculator import settlement_date_for


class LedgerValidator:
    """
    Validates stored ledger data through a two-stage pipeline.

    Stage 1: Reference validation
    Stage 2: Semantic validation (only when stage 1 finds no errors)
    """

    def __init__(
        self,
        repository: Optional[LedgerRepository] = None,
    ):
        """
        Initialize validator.

        Args:
            repository: Repository for ``validate_stored``.
                        If None, only in-memory validation is available.
        """
        self._repository = repository

    def _validate_references(
        self,
        transactions: list[Transaction],
        accounts: list[Account],
        instruments: list[FundingInstrument],
        rules: list[RecurrenceRule],
        links: list[SettlementLink],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Reference validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        account_ids = {a.id for a in accounts}
        instrument_ids = {i.id for i in instruments}
        rule_ids = {r.id for r in rules}
        transaction_ids = {t.id for t in transactions}

        for instrument in instruments:
            if instrument.account_id not in account_ids:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="dangling_reference",
                    message=f"Instrument '{instrument.name}' draws on a missing account",
                    severity="error",
                    entity_id=instrument.id,
                ))

        for txn in transactions:
            if txn.account_id and txn.account_id not in account_ids:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="dangling_reference",
                    message=f"Transaction {txn.id} credits a missing account",
                    severity="error",
                    entity_id=txn.id,
                ))
            if txn.source_account_id and txn.source_account_id not in account_ids:
                issues.append(ValidationIssue(
                    field="source_account_id",
                    issue_type="dangling_reference",
                    message=f"Transaction {txn.id} debits a missing account",
                    severity="error",
                    entity_id=txn.id,
                ))
            if txn.type in CHARGE_TYPES and txn.instrument_id not in instrument_ids:
                issues.append(ValidationIssue(
                    field="instrument_id",
                    issue_type="dangling_reference",
                    message=f"Transaction {txn.id} is charged to a missing instrument",
                    severity="error",
                    entity_id=txn.id,
                ))
            if txn.recurring_rule_id and txn.recurring_rule_id not in rule_ids:
                # Generated history may outlive its rule
                issues.append(ValidationIssue(
                    field="recurring_rule_id",
                    issue_type="dangling_reference",
                    message=f"Transaction {txn.id} was generated by a deleted rule",
                    severity="info",
                    entity_id=txn.id,
                ))

        for link in links:
            if link.origin_id not in transaction_ids or link.settlement_id not in transaction_ids:
                issues.append(ValidationIssue(
                    field="settlement_link",
                    issue_type="dangling_reference",
                    message=(
                        f"Settlement link {link.origin_id} -> {link.settlement_id} "
                        "points at a missing transaction"
                    ),
                    severity="error",
                    entity_id=link.origin_id,
                ))

        for rule in rules:
            if rule.account_id and rule.account_id not in account_ids:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="dangling_reference",
                    message=f"Rule '{rule.title}' credits a missing account",
                    severity="warning",
                    entity_id=rule.id,
                ))
            if rule.instrument_id and rule.instrument_id not in instrument_ids:
                issues.append(ValidationIssue(
                    field="instrument_id",
                    issue_type="dangling_reference",
                    message=f"Rule '{rule.title}' uses a missing instrument",
                    severity="warning",
                    entity_id=rule.id,
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        transactions: list[Transaction],
        instruments: list[FundingInstrument],
        rules: list[RecurrenceRule],
        links: list[SettlementLink],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        instrument_index = {i.id: i for i in instruments}
        transaction_index = {t.id: t for t in transactions}

        for txn in transactions:
            if txn.status == TransactionStatus.SETTLEMENT:
                continue

            expected = settlement_date_for(txn, instrument_index.get(txn.instrument_id or ""))
            if txn.settlement_date is not None and txn.settlement_date != expected:
                issues.append(ValidationIssue(
                    field="settlement_date",
                    issue_type="settlement_mismatch",
                    message=(
                        f"Transaction {txn.id} settles on {txn.settlement_date}, "
                        f"but its instrument's cycle gives {expected}"
                    ),
                    severity="warning",
                    entity_id=txn.id,
                ))

            if txn.status == TransactionStatus.PENDING_SETTLEMENT and txn.settlement_date is None:
                issues.append(ValidationIssue(
                    field="settlement_date",
                    issue_type="missing",
                    message=f"Pending charge {txn.id} has no settlement date",
                    severity="error",
                    entity_id=txn.id,
                ))

        # Settlement entry amount == sum of linked origins
        linked: dict[str, Decimal] = {}
        for link in links:
            origin = transaction_index[link.origin_id]
            linked[link.settlement_id] = linked.get(link.settlement_id, Decimal("0")) + origin.amount

        for settlement_id, total in linked.items():
            entry = transaction_index[settlement_id]
            if entry.status != TransactionStatus.SETTLEMENT:
                issues.append(ValidationIssue(
                    field="settlement_link",
                    issue_type="inconsistent",
                    message=f"Transaction {settlement_id} is linked as a settlement but is {entry.status.value}",
                    severity="error",
                    entity_id=settlement_id,
                ))
            elif entry.amount != total:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="inconsistent",
                    message=(
                        f"Settlement {settlement_id} is {entry.amount}, "
                        f"but its linked charges sum to {total}"
                    ),
                    severity="warning",
                    entity_id=settlement_id,
                ))

        for rule in rules:
            if (
                rule.end_date is not None
                and rule.last_generated_date is not None
                and rule.last_generated_date > rule.end_date
            ):
                issues.append(ValidationIssue(
                    field="last_generated_date",
                    issue_type="inconsistent",
                    message=f"Rule '{rule.title}' generated past its end date",
                    severity="warning",
                    entity_id=rule.id,
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        transactions: list[Transaction],
        accounts: list[Account],
        instruments: list[FundingInstrument],
        rules: Iterable[RecurrenceRule] = (),
        links: Iterable[SettlementLink] = (),
    ) -> ValidationResult:
        """
        Run the full two-stage integrity check.

        Returns:
            ValidationResult with all issues found
        """
        rules = list(rules)
        links = list(links)

        references_valid, all_issues = self._validate_references(
            transactions, accounts, instruments, rules, links,
        )

        # Only run stage 2 if stage 1 passes
        if references_valid:
            _, semantic_issues = self._validate_semantic(
                transactions, instruments, rules, links,
            )
            all_issues.extend(semantic_issues)

        return ValidationResult(issues=all_issues)

    async def validate_stored(self) -> ValidationResult:
        """Check everything currently in the repository."""
        if self._repository is None:
            raise RuntimeError("LedgerValidator needs a repository to validate stored data")

        repo = self._repository
        return self.validate(
            transactions=await repo.load_transactions(),
            accounts=await repo.load_accounts(),
            instruments=await repo.load_instruments(),
            rules=await repo.load_rules(),
            links=await repo.load_links(),
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if not result.issues:
            return "✅ Ledger is consistent."

        lines = []

        errors = [issue for issue in result.issues if issue.severity == "error"]
        if errors:
            lines.append(f"❌ {len(errors)} problem(s) need fixing:")
            for issue in errors:
                lines.append(f"   • {issue.message}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        notes = [issue for issue in result.issues if issue.severity == "info"]
        if notes:
            if lines:
                lines.append("")
            lines.append(f"ℹ️ {len(notes)} note(s):")
            for issue in notes:
                lines.append(f"   • {issue.message}")

        return "\n".join(lines)
