"""Pre-persistence checks for budgets, transactions and categories.

Each validator runs an ordered tuple of checks and stops at the first
failure, returning a ``ValidationResult`` instead of raising. Callers that
prefer exceptions use ``result.raise_for_error()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from models import TransactionType

if TYPE_CHECKING:  # pragma: no cover
    from ledger import LedgerStore

NAME_MAX_LENGTH = 100
TRANSACTION_DESCRIPTION_MAX_LENGTH = 255
NOTES_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 500
# amounts are stored as signed 64-bit cents
MAX_AMOUNT = Decimal(2**63 - 1).scaleb(-2)


class ValidationError(ValueError):
    def __init__(self, message: str, rule: str = "invalid") -> None:
        super().__init__(message)
        self.rule = rule


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    rule: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, rule: str, reason: str) -> "ValidationResult":
        return cls(ok=False, rule=rule, reason=reason)

    def raise_for_error(self) -> None:
        if not self.ok:
            raise ValidationError(self.reason or "Invalid input", self.rule or "invalid")


OK = ValidationResult.success()


@dataclass(frozen=True)
class BudgetDraft:
    owner_id: int
    name: Optional[str]
    amount: Optional[Decimal]
    start_date: Optional[date]
    end_date: Optional[date]
    category_id: Optional[int] = None
    description: Optional[str] = None
    is_active: bool = True
    id: Optional[int] = None


@dataclass(frozen=True)
class TransactionDraft:
    owner_id: int
    description: Optional[str]
    amount: Optional[Decimal]
    type: Optional[TransactionType]
    occurred_at: Optional[datetime]
    category_id: Optional[int] = None
    notes: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class CategoryDraft:
    owner_id: int
    name: Optional[str]
    description: Optional[str] = None
    color_code: Optional[str] = None
    id: Optional[int] = None


def _has_cent_precision(amount: Decimal) -> bool:
    try:
        return amount == amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        return False


def _run(checks: Sequence[Callable], draft, store) -> ValidationResult:
    for check in checks:
        result = check(draft, store)
        if not result.ok:
            return result
    return OK


# budgets


def _budget_required(draft: BudgetDraft, store: "LedgerStore") -> ValidationResult:
    if draft.name is None or not draft.name.strip():
        return ValidationResult.failure("required", "Budget name is required")
    if len(draft.name) > NAME_MAX_LENGTH:
        return ValidationResult.failure(
            "length", f"Budget name must not exceed {NAME_MAX_LENGTH} characters"
        )
    if draft.description and len(draft.description) > DESCRIPTION_MAX_LENGTH:
        return ValidationResult.failure(
            "length",
            f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters",
        )
    if draft.amount is None or draft.amount <= 0:
        return ValidationResult.failure(
            "amount", "Budget amount must be greater than 0"
        )
    if draft.amount > MAX_AMOUNT:
        return ValidationResult.failure(
            "amount", f"Budget amount must not exceed {MAX_AMOUNT}"
        )
    if not _has_cent_precision(draft.amount):
        return ValidationResult.failure(
            "amount", "Budget amount must have at most 2 decimal places"
        )
    if draft.start_date is None:
        return ValidationResult.failure("required", "Budget start date is required")
    if draft.end_date is None:
        return ValidationResult.failure("required", "Budget end date is required")
    return OK


def _budget_date_order(draft: BudgetDraft, store: "LedgerStore") -> ValidationResult:
    if draft.start_date > draft.end_date:
        return ValidationResult.failure(
            "date_order", "Budget start date cannot be after end date"
        )
    return OK


def _budget_unique_name(draft: BudgetDraft, store: "LedgerStore") -> ValidationResult:
    existing = store.find_budget_by_name(draft.name)
    if existing is not None and existing.id != draft.id:
        return ValidationResult.failure(
            "duplicate_name", f"Budget name already exists: {draft.name}"
        )
    return OK


def _budget_category(draft: BudgetDraft, store: "LedgerStore") -> ValidationResult:
    if draft.category_id is not None and not store.category_exists(draft.category_id):
        return ValidationResult.failure(
            "category_not_found", f"Category not found with id: {draft.category_id}"
        )
    return OK


def _budget_overlap(draft: BudgetDraft, store: "LedgerStore") -> ValidationResult:
    active = store.list_budgets(active_only=True, for_update=True)
    conflicts = sorted(
        (
            b
            for b in active
            if b.id != draft.id and b.overlaps(draft.start_date, draft.end_date)
        ),
        key=lambda b: (b.start_date, b.id),
    )
    if conflicts:
        return ValidationResult.failure(
            "overlap", f"Budget overlaps with existing budget: {conflicts[0].name}"
        )
    return OK


BUDGET_CHECKS = (
    _budget_required,
    _budget_date_order,
    _budget_unique_name,
    _budget_category,
    _budget_overlap,
)


def validate_budget(draft: BudgetDraft, store: "LedgerStore") -> ValidationResult:
    return _run(BUDGET_CHECKS, draft, store)


# transactions


def _transaction_fields(
    draft: TransactionDraft, store: "LedgerStore"
) -> ValidationResult:
    if draft.description is None or not draft.description.strip():
        return ValidationResult.failure(
            "required", "Transaction description is required"
        )
    if len(draft.description) > TRANSACTION_DESCRIPTION_MAX_LENGTH:
        return ValidationResult.failure(
            "length",
            f"Description must not exceed {TRANSACTION_DESCRIPTION_MAX_LENGTH} characters",
        )
    if draft.amount is None or draft.amount <= 0:
        return ValidationResult.failure(
            "amount", "Transaction amount must be greater than 0"
        )
    if draft.amount > MAX_AMOUNT:
        return ValidationResult.failure(
            "amount", f"Transaction amount must not exceed {MAX_AMOUNT}"
        )
    if not _has_cent_precision(draft.amount):
        return ValidationResult.failure(
            "amount", "Transaction amount must have at most 2 decimal places"
        )
    if draft.type is None:
        return ValidationResult.failure("required", "Transaction type is required")
    if draft.occurred_at is None:
        return ValidationResult.failure("required", "Transaction date is required")
    if draft.notes and len(draft.notes) > NOTES_MAX_LENGTH:
        return ValidationResult.failure(
            "length", f"Notes must not exceed {NOTES_MAX_LENGTH} characters"
        )
    return OK


def _transaction_category(
    draft: TransactionDraft, store: "LedgerStore"
) -> ValidationResult:
    if draft.category_id is not None and not store.category_exists(draft.category_id):
        return ValidationResult.failure(
            "category_not_found", f"Category not found with id: {draft.category_id}"
        )
    return OK


TRANSACTION_CHECKS = (_transaction_fields, _transaction_category)


def validate_transaction(
    draft: TransactionDraft, store: "LedgerStore"
) -> ValidationResult:
    return _run(TRANSACTION_CHECKS, draft, store)


# categories


def _category_fields(draft: CategoryDraft, store: "LedgerStore") -> ValidationResult:
    if draft.name is None or not draft.name.strip():
        return ValidationResult.failure("required", "Category name is required")
    if len(draft.name) > NAME_MAX_LENGTH:
        return ValidationResult.failure(
            "length", f"Category name must not exceed {NAME_MAX_LENGTH} characters"
        )
    if draft.description and len(draft.description) > DESCRIPTION_MAX_LENGTH:
        return ValidationResult.failure(
            "length",
            f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters",
        )
    return OK


def _category_unique_name(
    draft: CategoryDraft, store: "LedgerStore"
) -> ValidationResult:
    existing = store.find_category_by_name(draft.name)
    if existing is not None and existing.id != draft.id:
        return ValidationResult.failure(
            "duplicate_name", f"Category name already exists: {draft.name}"
        )
    return OK


CATEGORY_CHECKS = (_category_fields, _category_unique_name)


def validate_category(draft: CategoryDraft, store: "LedgerStore") -> ValidationResult:
    return _run(CATEGORY_CHECKS, draft, store)
