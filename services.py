from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from analytics import (
    BudgetSummary,
    CategoryBreakdown,
    CategoryExpenseData,
    CategoryGrowth,
    FinancialSummary,
    IncomeExpenseSummary,
    MonthlyCategoryTrends,
    MonthlyDataPoint,
    PeriodComparison,
    budget_summary,
    category_breakdown,
    category_growth,
    monthly_category_trends,
    monthly_series,
    period_comparison,
    period_windows,
    summarize_totals,
    top_categories,
)
from config import get_settings
from insights import Insight, generate_insights
from ledger import (
    BudgetRecord,
    CategoryRecord,
    LedgerStore,
    TransactionRecord,
    amount_to_cents,
    to_budget_record,
    to_category_record,
    to_transaction_record,
)
from models import Budget, Category, Transaction, TransactionType, User
from periods import Window, day_window, month_end, trailing_months
from schemas import BudgetIn, CategoryIn, TransactionIn
from validation import (
    BudgetDraft,
    CategoryDraft,
    TransactionDraft,
    ValidationError,
    ValidationResult,
    validate_budget,
    validate_category,
    validate_transaction,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Food & Dining", "Restaurants, groceries, and food expenses"),
    ("Transportation", "Gas, public transport, car maintenance"),
    ("Entertainment", "Movies, games, hobbies, and leisure activities"),
    ("Shopping", "Clothing, electronics, and general shopping"),
    ("Bills & Utilities", "Electricity, water, internet, phone bills"),
    ("Healthcare", "Medical expenses, pharmacy, health insurance"),
    ("Education", "Books, courses, school fees"),
    ("Travel", "Vacation, business trips, accommodation"),
    ("Salary", "Monthly salary and regular income"),
    ("Freelance", "Freelance work and side projects"),
    ("Investment", "Investment returns and dividends"),
    ("Other", "Miscellaneous income and expenses"),
)


def get_current_user_id() -> int:
    return get_settings().default_user_id


def local_now() -> datetime:
    return datetime.now(ZoneInfo(get_settings().timezone)).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def to_local_naive(moment: datetime) -> datetime:
    """Naive wall-clock time in the configured zone; naive input is taken as local."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(get_settings().timezone)).replace(tzinfo=None)


def _commit_unique(session: Session, message: str) -> None:
    """Commit, reporting a unique-constraint race as a validation failure."""
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ValidationError(message, "duplicate_name") from exc


def _reject(session: Session, result: ValidationResult, action: str) -> None:
    if result.ok:
        return
    session.rollback()
    logger.warning(f"{action}_rejected: rule={result.rule} reason={result.reason}")
    result.raise_for_error()


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def ensure_default_user(self) -> User:
        settings = get_settings()
        user = self.session.get(User, settings.default_user_id)
        if user:
            return user
        user = User(id=settings.default_user_id, username="admin", is_active=True)
        self.session.add(user)
        self.session.commit()
        logger.info(f"default_user_created: id={user.id}")
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    def list_all(self, include_inactive: bool = False) -> list[CategoryRecord]:
        return self.store.list_categories(active_only=not include_inactive)

    def get(self, category_id: int) -> CategoryRecord:
        return to_category_record(self.store.get_category_row(category_id))

    def _draft(self, data: CategoryIn, category_id: Optional[int] = None) -> CategoryDraft:
        return CategoryDraft(
            owner_id=self.user_id,
            name=data.name.strip(),
            description=data.description,
            color_code=data.color_code,
            id=category_id,
        )

    def create(self, data: CategoryIn) -> CategoryRecord:
        draft = self._draft(data)
        _reject(self.session, validate_category(draft, self.store), "category_create")
        category = Category(
            user_id=self.user_id,
            name=draft.name,
            description=draft.description,
            is_active=True,
        )
        if draft.color_code:
            category.color_code = draft.color_code
        self.session.add(category)
        _commit_unique(self.session, f"Category name already exists: {draft.name}")
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} user={self.user_id}")
        return to_category_record(category)

    def update(self, category_id: int, data: CategoryIn) -> CategoryRecord:
        category = self.store.get_category_row(category_id)
        draft = self._draft(data, category_id)
        _reject(self.session, validate_category(draft, self.store), "category_update")
        category.name = draft.name
        category.description = draft.description
        if draft.color_code:
            category.color_code = draft.color_code
        _commit_unique(self.session, f"Category name already exists: {draft.name}")
        self.session.refresh(category)
        return to_category_record(category)

    def deactivate(self, category_id: int) -> None:
        category = self.store.get_category_row(category_id)
        category.is_active = False
        self.session.commit()
        logger.info(f"category_deactivated: id={category_id} user={self.user_id}")

    def activate(self, category_id: int) -> None:
        category = self.store.get_category_row(category_id)
        category.is_active = True
        self.session.commit()

    def with_counts(self) -> list[tuple[CategoryRecord, int]]:
        return self.store.category_usage()

    def most_used(self, limit: int = 5) -> list[CategoryRecord]:
        usage = sorted(self.store.category_usage(), key=lambda row: (-row[1], row[0].name))
        return [category for category, _count in usage[: max(limit, 0)]]

    def seed_defaults(self) -> list[CategoryRecord]:
        existing = {c.name for c in self.store.list_categories()}
        created: list[Category] = []
        for name, description in DEFAULT_CATEGORIES:
            if name in existing:
                continue
            category = Category(
                user_id=self.user_id, name=name, description=description, is_active=True
            )
            self.session.add(category)
            created.append(category)
        _commit_unique(self.session, "Default categories already exist")
        logger.info(f"default_categories_seeded: user={self.user_id} count={len(created)}")
        return [to_category_record(c) for c in created]


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    def _draft(
        self, data: TransactionIn, transaction_id: Optional[int] = None
    ) -> TransactionDraft:
        return TransactionDraft(
            owner_id=self.user_id,
            description=data.description.strip(),
            amount=data.amount,
            type=data.type,
            occurred_at=to_local_naive(data.occurred_at),
            category_id=data.category_id,
            notes=data.notes,
            id=transaction_id,
        )

    def create(self, data: TransactionIn) -> TransactionRecord:
        draft = self._draft(data)
        _reject(self.session, validate_transaction(draft, self.store), "transaction_create")
        txn = Transaction(
            user_id=self.user_id,
            description=draft.description,
            amount_cents=amount_to_cents(draft.amount),
            type=draft.type,
            occurred_at=draft.occurred_at,
            notes=draft.notes,
            category_id=draft.category_id,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_created: id={txn.id} user={self.user_id}")
        return to_transaction_record(txn)

    def get(self, transaction_id: int) -> TransactionRecord:
        return to_transaction_record(self.store.get_transaction_row(transaction_id))

    def update(self, transaction_id: int, data: TransactionIn) -> TransactionRecord:
        txn = self.store.get_transaction_row(transaction_id)
        draft = self._draft(data, transaction_id)
        _reject(self.session, validate_transaction(draft, self.store), "transaction_update")
        txn.description = draft.description
        txn.amount_cents = amount_to_cents(draft.amount)
        txn.type = draft.type
        txn.occurred_at = draft.occurred_at
        txn.notes = draft.notes
        txn.category_id = draft.category_id
        self.session.commit()
        self.session.refresh(txn)
        return to_transaction_record(txn)

    def delete(self, transaction_id: int) -> None:
        txn = self.store.get_transaction_row(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id} user={self.user_id}")

    def list_transactions(
        self,
        window: Optional[Window] = None,
        *,
        type: Optional[TransactionType] = None,
        category_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        return self.store.list_transactions(
            window, type=type, category_id=category_id, limit=limit, offset=offset
        )

    def recent(self, limit: int = 10) -> list[TransactionRecord]:
        return self.store.list_transactions(limit=limit)

    def summary(self, window: Optional[Window] = None) -> FinancialSummary:
        income = self.store.sum_amount(TransactionType.income, window)
        expenses = self.store.sum_amount(TransactionType.expense, window)
        return FinancialSummary(income, expenses, income - expenses)


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    def _draft(
        self,
        data: BudgetIn,
        budget_id: Optional[int] = None,
        current_active: bool = True,
    ) -> BudgetDraft:
        is_active = current_active if data.is_active is None else data.is_active
        return BudgetDraft(
            owner_id=self.user_id,
            name=data.name.strip(),
            amount=data.amount,
            start_date=data.start_date,
            end_date=data.end_date,
            category_id=data.category_id,
            description=data.description,
            is_active=is_active,
            id=budget_id,
        )

    def create(self, data: BudgetIn) -> BudgetRecord:
        draft = self._draft(data)
        _reject(self.session, validate_budget(draft, self.store), "budget_create")
        budget = Budget(
            user_id=self.user_id,
            name=draft.name,
            description=draft.description,
            amount_cents=amount_to_cents(draft.amount),
            start_date=draft.start_date,
            end_date=draft.end_date,
            is_active=draft.is_active,
            category_id=draft.category_id,
        )
        self.session.add(budget)
        _commit_unique(self.session, f"Budget name already exists: {draft.name}")
        self.session.refresh(budget)
        logger.info(f"budget_created: id={budget.id} user={self.user_id}")
        return to_budget_record(budget)

    def get(self, budget_id: int) -> BudgetRecord:
        return to_budget_record(self.store.get_budget_row(budget_id))

    def update(self, budget_id: int, data: BudgetIn) -> BudgetRecord:
        budget = self.store.get_budget_row(budget_id)
        draft = self._draft(data, budget_id, current_active=bool(budget.is_active))
        _reject(self.session, validate_budget(draft, self.store), "budget_update")
        budget.name = draft.name
        budget.description = draft.description
        budget.amount_cents = amount_to_cents(draft.amount)
        budget.start_date = draft.start_date
        budget.end_date = draft.end_date
        budget.is_active = draft.is_active
        budget.category_id = draft.category_id
        _commit_unique(self.session, f"Budget name already exists: {draft.name}")
        self.session.refresh(budget)
        logger.info(f"budget_updated: id={budget_id} user={self.user_id}")
        return to_budget_record(budget)

    def deactivate(self, budget_id: int) -> None:
        budget = self.store.get_budget_row(budget_id)
        budget.is_active = False
        self.session.commit()
        logger.info(f"budget_deactivated: id={budget_id} user={self.user_id}")

    def activate(self, budget_id: int) -> None:
        record = to_budget_record(self.store.get_budget_row(budget_id))
        draft = BudgetDraft(
            owner_id=self.user_id,
            name=record.name,
            amount=record.amount,
            start_date=record.start_date,
            end_date=record.end_date,
            category_id=record.category_id,
            description=record.description,
            is_active=True,
            id=record.id,
        )
        _reject(self.session, validate_budget(draft, self.store), "budget_activate")
        self.store.get_budget_row(budget_id).is_active = True
        self.session.commit()

    def delete(self, budget_id: int) -> None:
        self.deactivate(budget_id)

    def list_active(self) -> list[BudgetRecord]:
        return self.store.list_budgets(active_only=True)

    def list_all(self) -> list[BudgetRecord]:
        return self.store.list_budgets()

    def current(self, today: Optional[date] = None) -> list[BudgetRecord]:
        return self.store.current_budgets(today or local_today())

    def spent_amount(self, budget: BudgetRecord) -> Decimal:
        window = budget.window()
        if budget.category_id is not None:
            return self.store.sum_category_amount(
                budget.category_id, TransactionType.expense, window
            )
        return self.store.sum_amount(TransactionType.expense, window)

    def summary(self, budget_id: int) -> BudgetSummary:
        budget = self.get(budget_id)
        return budget_summary(budget, self.spent_amount(budget))

    def current_summaries(self, today: Optional[date] = None) -> list[BudgetSummary]:
        return [budget_summary(b, self.spent_amount(b)) for b in self.current(today)]


class AnalyticsService:
    """Fetches the owner's rows once per call and hands them to the engine."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    def _categories_for(
        self, transactions: list[TransactionRecord]
    ) -> dict[int, CategoryRecord]:
        return self.store.category_index(t.category_id for t in transactions)

    def income_expense(self, window: Optional[Window] = None) -> IncomeExpenseSummary:
        return summarize_totals(
            self.store.sum_amount(TransactionType.income, window),
            self.store.sum_amount(TransactionType.expense, window),
        )

    def monthly(
        self, months: int = 6, today: Optional[date] = None
    ) -> list[MonthlyDataPoint]:
        today = today or local_today()
        if months <= 0:
            return []
        span = day_window(trailing_months(today, months)[0], month_end(today))
        return monthly_series(self.store.list_transactions(span), today, months)

    def comparison(
        self, months: int = 1, now: Optional[datetime] = None
    ) -> PeriodComparison:
        now = now or local_now()
        current, previous = period_windows(now, months)
        span = Window(previous.start, current.end)
        return period_comparison(self.store.list_transactions(span), now, months)

    def category_breakdown(self, window: Optional[Window] = None) -> CategoryBreakdown:
        transactions = self.store.list_transactions(
            window, type=TransactionType.expense
        )
        return category_breakdown(transactions, self._categories_for(transactions))

    def top_categories(
        self, window: Optional[Window] = None, limit: int = 10
    ) -> list[CategoryExpenseData]:
        return top_categories(self.category_breakdown(window), limit)

    def insights(self, window: Optional[Window] = None) -> list[Insight]:
        return generate_insights(self.category_breakdown(window))

    def category_trends(
        self, months: int = 6, today: Optional[date] = None
    ) -> MonthlyCategoryTrends:
        today = today or local_today()
        if months <= 0:
            return monthly_category_trends([], {}, today, 0)
        span = day_window(trailing_months(today, months)[0], month_end(today))
        transactions = self.store.list_transactions(span, type=TransactionType.expense)
        return monthly_category_trends(
            transactions, self._categories_for(transactions), today, months
        )

    def category_growth(
        self, months: int = 1, now: Optional[datetime] = None
    ) -> CategoryGrowth:
        now = now or local_now()
        current, previous = period_windows(now, months)
        transactions = self.store.list_transactions(
            Window(previous.start, current.end), type=TransactionType.expense
        )
        return category_growth(
            transactions, self._categories_for(transactions), now, months
        )
