"""Ledger Store: owner-scoped reads over the relational schema.

Rows are handed to the rest of the application as frozen records that refer
to each other by id only. Analytics code never touches ORM objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from models import Budget, Category, Transaction, TransactionType
from periods import Window, day_window

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class NotFoundError(ValueError):
    pass


def cents_to_amount(cents: int) -> Decimal:
    return Decimal(int(cents)).scaleb(-2)


def amount_to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    owner_id: int
    name: str
    description: Optional[str]
    color_code: Optional[str]
    is_active: bool


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    owner_id: int
    description: str
    amount: Decimal
    type: TransactionType
    occurred_at: datetime
    category_id: Optional[int] = None
    notes: Optional[str] = None

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.income

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.expense

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.is_income else -self.amount


@dataclass(frozen=True)
class BudgetRecord:
    id: int
    owner_id: int
    name: str
    amount: Decimal
    start_date: date
    end_date: date
    is_active: bool = True
    category_id: Optional[int] = None
    description: Optional[str] = None

    def window(self) -> Window:
        return day_window(self.start_date, self.end_date)

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and start <= self.end_date

    def is_current(self, today: date) -> bool:
        return self.start_date <= today <= self.end_date

    def is_expired(self, today: date) -> bool:
        return today > self.end_date

    def is_future(self, today: date) -> bool:
        return today < self.start_date

    def days_remaining(self, today: date) -> int:
        if today > self.end_date:
            return 0
        return (self.end_date - today).days


def to_category_record(row: Category) -> CategoryRecord:
    return CategoryRecord(
        id=row.id,
        owner_id=row.user_id,
        name=row.name,
        description=row.description,
        color_code=row.color_code,
        is_active=bool(row.is_active),
    )


def to_transaction_record(row: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        owner_id=row.user_id,
        description=row.description,
        amount=cents_to_amount(row.amount_cents),
        type=row.type,
        occurred_at=row.occurred_at,
        category_id=row.category_id,
        notes=row.notes,
    )


def to_budget_record(row: Budget) -> BudgetRecord:
    return BudgetRecord(
        id=row.id,
        owner_id=row.user_id,
        name=row.name,
        amount=cents_to_amount(row.amount_cents),
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=bool(row.is_active),
        category_id=row.category_id,
        description=row.description,
    )


class LedgerStore:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    # transactions

    def list_transactions(
        self,
        window: Optional[Window] = None,
        *,
        type: Optional[TransactionType] = None,
        category_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        if window is not None:
            stmt = stmt.where(Transaction.occurred_at.between(window.start, window.end))
        if type is not None:
            stmt = stmt.where(Transaction.type == type)
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [to_transaction_record(row) for row in self.session.scalars(stmt)]

    def get_transaction_row(self, transaction_id: int) -> Transaction:
        row = self.session.get(Transaction, transaction_id)
        if not row or row.user_id != self.user_id:
            raise NotFoundError(f"Transaction not found with id: {transaction_id}")
        return row

    def sum_amount(
        self, type: TransactionType, window: Optional[Window] = None
    ) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == type,
        )
        if window is not None:
            stmt = stmt.where(Transaction.occurred_at.between(window.start, window.end))
        return cents_to_amount(self.session.execute(stmt).scalar_one() or 0)

    def sum_category_amount(
        self,
        category_id: int,
        type: TransactionType,
        window: Optional[Window] = None,
    ) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == type,
            Transaction.category_id == category_id,
        )
        if window is not None:
            stmt = stmt.where(Transaction.occurred_at.between(window.start, window.end))
        return cents_to_amount(self.session.execute(stmt).scalar_one() or 0)

    # categories

    def list_categories(self, *, active_only: bool = False) -> list[CategoryRecord]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name.asc())
        )
        if active_only:
            stmt = stmt.where(Category.is_active.is_(True))
        return [to_category_record(row) for row in self.session.scalars(stmt)]

    def category_index(
        self, ids: Optional[Iterable[int]] = None
    ) -> dict[int, CategoryRecord]:
        """Categories keyed by id.

        With ``ids`` the lookup is by id alone, so categories referenced by the
        owner's rows resolve even when they were created under another owner.
        """
        if ids is None:
            return {c.id: c for c in self.list_categories()}
        wanted = {i for i in ids if i is not None}
        if not wanted:
            return {}
        rows = self.session.scalars(select(Category).where(Category.id.in_(wanted)))
        return {row.id: to_category_record(row) for row in rows}

    def category_exists(self, category_id: int) -> bool:
        return self.session.get(Category, category_id) is not None

    def get_category_row(self, category_id: int) -> Category:
        row = self.session.get(Category, category_id)
        if not row or row.user_id != self.user_id:
            raise NotFoundError(f"Category not found with id: {category_id}")
        return row

    def find_category_by_name(self, name: str) -> Optional[CategoryRecord]:
        row = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id, Category.name == name
            )
        )
        return to_category_record(row) if row else None

    def category_usage(self) -> list[tuple[CategoryRecord, int]]:
        """Active categories with the owner's transaction counts, ordered by name."""
        count = func.count(Transaction.id).label("transaction_count")
        stmt = (
            select(Category, count)
            .outerjoin(
                Transaction,
                and_(
                    Transaction.category_id == Category.id,
                    Transaction.user_id == self.user_id,
                ),
            )
            .where(Category.user_id == self.user_id, Category.is_active.is_(True))
            .group_by(Category.id)
            .order_by(Category.name.asc())
        )
        return [
            (to_category_record(row), int(total or 0))
            for row, total in self.session.execute(stmt)
        ]

    # budgets

    def list_budgets(
        self, *, active_only: bool = False, for_update: bool = False
    ) -> list[BudgetRecord]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        if active_only:
            stmt = stmt.where(Budget.is_active.is_(True))
        if for_update:
            stmt = stmt.with_for_update()
        return [to_budget_record(row) for row in self.session.scalars(stmt)]

    def current_budgets(self, today: date) -> list[BudgetRecord]:
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.is_active.is_(True),
                Budget.start_date <= today,
                Budget.end_date >= today,
            )
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        return [to_budget_record(row) for row in self.session.scalars(stmt)]

    def get_budget_row(self, budget_id: int) -> Budget:
        row = self.session.get(Budget, budget_id)
        if not row or row.user_id != self.user_id:
            raise NotFoundError(f"Budget not found with id: {budget_id}")
        return row

    def find_budget_by_name(self, name: str) -> Optional[BudgetRecord]:
        row = self.session.scalar(
            select(Budget).where(Budget.user_id == self.user_id, Budget.name == name)
        )
        return to_budget_record(row) if row else None
