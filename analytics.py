"""Aggregation engine.

Pure functions over already-fetched ledger records. Nothing here performs
I/O or keeps state between calls, and input sequences are never mutated.
All money and percentage arithmetic is ``Decimal``; ratios are rounded
half-up to four places before scaling to a percentage.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from ledger import CENT, ZERO, BudgetRecord, CategoryRecord, TransactionRecord
from models import DEFAULT_COLOR_CODE, TransactionType
from periods import Window, add_months, month_window, trailing_months

UNCATEGORIZED = "Uncategorized"
HUNDRED = Decimal(100)
RATIO_QUANTUM = Decimal("0.0001")
HEALTHY_SAVINGS_RATE = Decimal(20)
CAUTION_SAVINGS_RATE = Decimal(10)


class HealthStatus(str, Enum):
    healthy = "HEALTHY"
    caution = "CAUTION"
    critical = "CRITICAL"

    @property
    def display_name(self) -> str:
        return self.value.title()


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal(0)
    return (part / whole).quantize(RATIO_QUANTUM, rounding=ROUND_HALF_UP) * HUNDRED


def to_display(value: Decimal, places: int = 1) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    return str(value.quantize(CENT, rounding=ROUND_HALF_UP))


def _display_float(value: Decimal, places: int = 2) -> float:
    return float(to_display(value, places))


def _in_window(txn: TransactionRecord, window: Optional[Window]) -> bool:
    return window is None or window.contains(txn.occurred_at)


# totals


def sum_by_type(
    transactions: Iterable[TransactionRecord],
    type: TransactionType,
    window: Optional[Window] = None,
) -> Decimal:
    return sum(
        (t.amount for t in transactions if t.type == type and _in_window(t, window)),
        ZERO,
    )


def net_worth(
    transactions: Sequence[TransactionRecord], window: Optional[Window] = None
) -> Decimal:
    return sum_by_type(transactions, TransactionType.income, window) - sum_by_type(
        transactions, TransactionType.expense, window
    )


def savings_rate(income: Decimal, expenses: Decimal) -> Decimal:
    return percentage(income - expenses, income)


def expense_ratio(income: Decimal, expenses: Decimal) -> Decimal:
    return percentage(expenses, income)


def classify_health(rate: Decimal) -> HealthStatus:
    if rate >= HEALTHY_SAVINGS_RATE:
        return HealthStatus.healthy
    if rate >= CAUTION_SAVINGS_RATE:
        return HealthStatus.caution
    return HealthStatus.critical


def growth_rate(current: Decimal, previous: Decimal) -> Decimal:
    return percentage(current - previous, previous)


@dataclass(frozen=True)
class FinancialSummary:
    total_income: Decimal
    total_expenses: Decimal
    net_worth: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "total_income": format_amount(self.total_income),
            "total_expenses": format_amount(self.total_expenses),
            "net_worth": format_amount(self.net_worth),
        }


@dataclass(frozen=True)
class IncomeExpenseSummary(FinancialSummary):
    savings_rate: Decimal
    expense_ratio: Decimal

    @property
    def health(self) -> HealthStatus:
        return classify_health(self.savings_rate)

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data.update(
            {
                "savings_rate": _display_float(self.savings_rate),
                "expense_ratio": _display_float(self.expense_ratio),
                "health": self.health.value,
            }
        )
        return data


def summarize_totals(income: Decimal, expenses: Decimal) -> IncomeExpenseSummary:
    return IncomeExpenseSummary(
        total_income=income,
        total_expenses=expenses,
        net_worth=income - expenses,
        savings_rate=savings_rate(income, expenses),
        expense_ratio=expense_ratio(income, expenses),
    )


def financial_summary(
    transactions: Sequence[TransactionRecord], window: Optional[Window] = None
) -> FinancialSummary:
    income = sum_by_type(transactions, TransactionType.income, window)
    expenses = sum_by_type(transactions, TransactionType.expense, window)
    return FinancialSummary(income, expenses, income - expenses)


def income_expense_summary(
    transactions: Sequence[TransactionRecord], window: Optional[Window] = None
) -> IncomeExpenseSummary:
    return summarize_totals(
        sum_by_type(transactions, TransactionType.income, window),
        sum_by_type(transactions, TransactionType.expense, window),
    )


# budgets


@dataclass(frozen=True)
class BudgetSummary:
    budget: BudgetRecord
    spent_amount: Decimal
    remaining_amount: Decimal
    utilization_percentage: Decimal
    over_budget: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "budget_id": self.budget.id,
            "name": self.budget.name,
            "category_id": self.budget.category_id,
            "budget_amount": format_amount(self.budget.amount),
            "start_date": self.budget.start_date.isoformat(),
            "end_date": self.budget.end_date.isoformat(),
            "spent_amount": format_amount(self.spent_amount),
            "remaining_amount": format_amount(self.remaining_amount),
            "utilization_percentage": _display_float(self.utilization_percentage),
            "over_budget": self.over_budget,
        }


def budget_spend(
    budget: BudgetRecord, transactions: Iterable[TransactionRecord]
) -> Decimal:
    """Expense total inside the budget's dates, limited to its category if it has one."""
    window = budget.window()
    return sum(
        (
            t.amount
            for t in transactions
            if t.is_expense
            and window.contains(t.occurred_at)
            and (budget.category_id is None or t.category_id == budget.category_id)
        ),
        ZERO,
    )


def budget_summary(budget: BudgetRecord, spent: Decimal) -> BudgetSummary:
    return BudgetSummary(
        budget=budget,
        spent_amount=spent,
        remaining_amount=budget.amount - spent,
        utilization_percentage=percentage(spent, budget.amount),
        over_budget=spent > budget.amount,
    )


def summarize_budget(
    budget: BudgetRecord, transactions: Iterable[TransactionRecord]
) -> BudgetSummary:
    return budget_summary(budget, budget_spend(budget, transactions))


# categories


@dataclass(frozen=True)
class CategoryExpenseData:
    name: str
    color_code: str
    amount: Decimal
    transaction_count: int
    percentage_of_total: Decimal

    @property
    def average_amount(self) -> Decimal:
        if self.transaction_count == 0:
            return ZERO
        return (self.amount / self.transaction_count).quantize(
            CENT, rounding=ROUND_HALF_UP
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "color_code": self.color_code,
            "amount": format_amount(self.amount),
            "transaction_count": self.transaction_count,
            "percentage_of_total": _display_float(self.percentage_of_total),
            "average_amount": format_amount(self.average_amount),
        }


@dataclass(frozen=True)
class CategoryBreakdown:
    categories: tuple[CategoryExpenseData, ...]
    total_expenses: Decimal
    total_transactions: int

    @property
    def is_empty(self) -> bool:
        return not self.categories

    def find(self, name: str) -> Optional[CategoryExpenseData]:
        for item in self.categories:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "categories": [c.to_dict() for c in self.categories],
            "total_expenses": format_amount(self.total_expenses),
            "total_transactions": self.total_transactions,
        }


def _category_label(
    txn: TransactionRecord, categories: Mapping[int, CategoryRecord]
) -> tuple[str, str]:
    category = categories.get(txn.category_id) if txn.category_id is not None else None
    if category is None:
        return UNCATEGORIZED, DEFAULT_COLOR_CODE
    return category.name, category.color_code or DEFAULT_COLOR_CODE


def category_breakdown(
    transactions: Iterable[TransactionRecord],
    categories: Mapping[int, CategoryRecord],
    window: Optional[Window] = None,
) -> CategoryBreakdown:
    amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    colors: dict[str, str] = {}
    total = ZERO
    expense_count = 0
    for txn in transactions:
        if not txn.is_expense or not _in_window(txn, window):
            continue
        name, color = _category_label(txn, categories)
        colors.setdefault(name, color)
        amounts[name] += txn.amount
        counts[name] += 1
        total += txn.amount
        expense_count += 1

    items = [
        CategoryExpenseData(
            name=name,
            color_code=colors[name],
            amount=amount,
            transaction_count=counts[name],
            percentage_of_total=percentage(amount, total),
        )
        for name, amount in amounts.items()
    ]
    items.sort(key=lambda item: (-item.amount, item.name))
    return CategoryBreakdown(tuple(items), total, expense_count)


def top_categories(
    breakdown: CategoryBreakdown, limit: int
) -> list[CategoryExpenseData]:
    return list(breakdown.categories[: max(limit, 0)])


@dataclass(frozen=True)
class CategoryGrowth:
    current: CategoryBreakdown
    previous: CategoryBreakdown

    @property
    def total_growth_rate(self) -> Decimal:
        return growth_rate(self.current.total_expenses, self.previous.total_expenses)

    def to_dict(self) -> dict[str, object]:
        return {
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "total_growth_rate": _display_float(self.total_growth_rate),
        }


# time series


def month_label(month: date) -> str:
    return f"{calendar.month_name[month.month]} {month.year}"


def short_month_label(month: date) -> str:
    return f"{calendar.month_abbr[month.month]} {month.year}"


@dataclass(frozen=True)
class MonthlyDataPoint:
    month_label: str
    income: Decimal
    expenses: Decimal
    net: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "month": self.month_label,
            "income": format_amount(self.income),
            "expenses": format_amount(self.expenses),
            "net": format_amount(self.net),
        }


def monthly_series(
    transactions: Sequence[TransactionRecord], today: date, months: int
) -> list[MonthlyDataPoint]:
    points: list[MonthlyDataPoint] = []
    for first in trailing_months(today, months):
        window = month_window(first.year, first.month)
        income = sum_by_type(transactions, TransactionType.income, window)
        expenses = sum_by_type(transactions, TransactionType.expense, window)
        points.append(MonthlyDataPoint(month_label(first), income, expenses, income - expenses))
    return points


@dataclass(frozen=True)
class MonthlyCategoryTrends:
    labels: tuple[str, ...]
    series: Mapping[str, tuple[Decimal, ...]]

    def to_dict(self) -> dict[str, object]:
        return {
            "labels": list(self.labels),
            "series": {
                name: [format_amount(v) for v in values]
                for name, values in self.series.items()
            },
        }


def monthly_category_trends(
    transactions: Sequence[TransactionRecord],
    categories: Mapping[int, CategoryRecord],
    today: date,
    months: int,
) -> MonthlyCategoryTrends:
    month_starts = trailing_months(today, months)
    per_month = [
        category_breakdown(transactions, categories, month_window(m.year, m.month))
        for m in month_starts
    ]
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for breakdown in per_month:
        for item in breakdown.categories:
            totals[item.name] += item.amount

    names = sorted(totals, key=lambda name: (-totals[name], name))
    series: dict[str, tuple[Decimal, ...]] = {}
    for name in names:
        values = []
        for breakdown in per_month:
            item = breakdown.find(name)
            values.append(item.amount if item else ZERO)
        series[name] = tuple(values)
    return MonthlyCategoryTrends(
        labels=tuple(short_month_label(m) for m in month_starts), series=series
    )


# period comparison


@dataclass(frozen=True)
class PeriodComparison:
    current: IncomeExpenseSummary
    previous: IncomeExpenseSummary

    @property
    def income_growth_rate(self) -> Decimal:
        return growth_rate(self.current.total_income, self.previous.total_income)

    @property
    def expense_growth_rate(self) -> Decimal:
        return growth_rate(self.current.total_expenses, self.previous.total_expenses)

    def to_dict(self) -> dict[str, object]:
        return {
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "income_growth_rate": _display_float(self.income_growth_rate),
            "expense_growth_rate": _display_float(self.expense_growth_rate),
        }


def period_windows(now: datetime, months: int) -> tuple[Window, Window]:
    """(current, previous) windows of ``months`` calendar months ending at ``now``."""
    current_start = add_months(now, -months)
    previous_start = add_months(current_start, -months)
    return Window(current_start, now), Window(previous_start, current_start)


def period_comparison(
    transactions: Sequence[TransactionRecord], now: datetime, months: int
) -> PeriodComparison:
    current, previous = period_windows(now, months)
    return PeriodComparison(
        current=income_expense_summary(transactions, current),
        previous=income_expense_summary(transactions, previous),
    )


def category_growth(
    transactions: Sequence[TransactionRecord],
    categories: Mapping[int, CategoryRecord],
    now: datetime,
    months: int,
) -> CategoryGrowth:
    current, previous = period_windows(now, months)
    return CategoryGrowth(
        current=category_breakdown(transactions, categories, current),
        previous=category_breakdown(transactions, categories, previous),
    )
