from datetime import date, datetime
from decimal import Decimal

from analytics import (
    UNCATEGORIZED,
    HealthStatus,
    budget_spend,
    category_breakdown,
    growth_rate,
    income_expense_summary,
    month_label,
    monthly_category_trends,
    monthly_series,
    net_worth,
    percentage,
    period_comparison,
    period_windows,
    summarize_budget,
    sum_by_type,
    top_categories,
)
from ledger import BudgetRecord, CategoryRecord, TransactionRecord
from models import DEFAULT_COLOR_CODE, TransactionType


def _txn(
    txn_id: int,
    amount: str,
    type: TransactionType = TransactionType.expense,
    occurred_at: datetime = datetime(2025, 1, 15, 12, 0),
    category_id: int | None = None,
) -> TransactionRecord:
    return TransactionRecord(
        id=txn_id,
        owner_id=1,
        description=f"txn {txn_id}",
        amount=Decimal(amount),
        type=type,
        occurred_at=occurred_at,
        category_id=category_id,
    )


def _category(category_id: int, name: str, color: str = "#ff0000") -> CategoryRecord:
    return CategoryRecord(
        id=category_id,
        owner_id=1,
        name=name,
        description=None,
        color_code=color,
        is_active=True,
    )


def test_sum_of_empty_collection_is_zero() -> None:
    assert sum_by_type([], TransactionType.expense) == Decimal("0.00")
    assert net_worth([]) == Decimal("0.00")


def test_net_worth_is_decimal_exact() -> None:
    txns = [
        _txn(1, "1000.10", TransactionType.income),
        _txn(2, "0.10"),
        _txn(3, "0.20"),
    ]

    assert net_worth(txns) == Decimal("999.80")


def test_savings_rate_and_health_for_twenty_percent() -> None:
    txns = [_txn(1, "1000.00", TransactionType.income), _txn(2, "800.00")]

    summary = income_expense_summary(txns)

    assert summary.savings_rate == Decimal("20")
    assert summary.expense_ratio == Decimal("80")
    assert summary.health is HealthStatus.healthy
    assert summary.to_dict()["savings_rate"] == 20.0


def test_rates_are_zero_without_income() -> None:
    summary = income_expense_summary([_txn(1, "50.00")])

    assert summary.savings_rate == 0
    assert summary.expense_ratio == 0
    assert summary.net_worth == Decimal("-50.00")
    assert summary.health is HealthStatus.critical


def test_health_caution_band() -> None:
    txns = [_txn(1, "1000.00", TransactionType.income), _txn(2, "850.00")]

    assert income_expense_summary(txns).health is HealthStatus.caution


def test_percentage_rounds_ratio_half_up() -> None:
    assert percentage(Decimal("1"), Decimal("3")) == Decimal("33.33")
    assert percentage(Decimal("2"), Decimal("3")) == Decimal("66.67")
    assert percentage(Decimal("5"), Decimal("0")) == 0


def test_growth_rate_with_zero_previous_is_zero() -> None:
    assert growth_rate(Decimal("100"), Decimal("0")) == 0
    assert growth_rate(Decimal("150"), Decimal("100")) == Decimal("50")
    assert growth_rate(Decimal("50"), Decimal("100")) == Decimal("-50")


def test_budget_over_spend_reports_utilization_and_negative_remaining() -> None:
    budget = BudgetRecord(
        id=1,
        owner_id=1,
        name="January",
        amount=Decimal("500.00"),
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 31),
    )
    txns = [_txn(1, "400.00"), _txn(2, "200.00")]

    summary = summarize_budget(budget, txns)

    assert summary.spent_amount == Decimal("600.00")
    assert summary.utilization_percentage == Decimal("120")
    assert summary.over_budget is True
    assert summary.remaining_amount == Decimal("-100.00")
    assert summary.to_dict()["utilization_percentage"] == 120.0


def test_budget_spend_only_counts_matching_expenses_in_window() -> None:
    budget = BudgetRecord(
        id=1,
        owner_id=1,
        name="Food",
        amount=Decimal("300.00"),
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 31),
        category_id=7,
    )
    txns = [
        _txn(1, "10.00", category_id=7),
        _txn(2, "20.00", occurred_at=datetime(2025, 1, 31, 23, 59), category_id=7),
        _txn(3, "40.00", occurred_at=datetime(2025, 2, 1, 0, 0), category_id=7),
        _txn(4, "80.00", category_id=8),
        _txn(5, "160.00", TransactionType.income, category_id=7),
    ]

    assert budget_spend(budget, txns) == Decimal("30.00")


def test_budget_without_category_counts_all_expenses() -> None:
    budget = BudgetRecord(
        id=1,
        owner_id=1,
        name="All",
        amount=Decimal("100.00"),
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 31),
    )
    txns = [_txn(1, "10.00", category_id=7), _txn(2, "5.00")]

    summary = summarize_budget(budget, txns)

    assert summary.spent_amount == Decimal("15.00")
    assert summary.over_budget is False


def test_category_breakdown_groups_and_sorts_by_amount() -> None:
    categories = {1: _category(1, "Food"), 2: _category(2, "Travel", "#00ff00")}
    txns = [
        _txn(1, "30.00", category_id=1),
        _txn(2, "10.00", category_id=1),
        _txn(3, "50.00", category_id=2),
        _txn(4, "10.00"),
        _txn(5, "999.00", TransactionType.income, category_id=1),
    ]

    breakdown = category_breakdown(txns, categories)

    assert [c.name for c in breakdown.categories] == ["Travel", "Food", UNCATEGORIZED]
    assert breakdown.total_expenses == Decimal("100.00")
    assert breakdown.total_transactions == 4
    food = breakdown.find("Food")
    assert food is not None
    assert food.transaction_count == 2
    assert food.average_amount == Decimal("20.00")
    assert food.percentage_of_total == Decimal("40")
    assert breakdown.find(UNCATEGORIZED).color_code == DEFAULT_COLOR_CODE


def test_category_breakdown_percentages_sum_to_about_hundred() -> None:
    categories = {i: _category(i, f"C{i}") for i in range(1, 4)}
    txns = [_txn(i, "10.00", category_id=i) for i in range(1, 4)]

    breakdown = category_breakdown(txns, categories)

    total = sum(c.percentage_of_total for c in breakdown.categories)
    assert abs(total - Decimal("100")) <= Decimal("0.05")


def test_category_breakdown_ties_are_ordered_by_name() -> None:
    categories = {1: _category(1, "Zoo"), 2: _category(2, "Art")}
    txns = [_txn(1, "10.00", category_id=1), _txn(2, "10.00", category_id=2)]

    breakdown = category_breakdown(txns, categories)

    assert [c.name for c in breakdown.categories] == ["Art", "Zoo"]
    assert [c.name for c in top_categories(breakdown, 1)] == ["Art"]


def test_empty_breakdown() -> None:
    breakdown = category_breakdown([], {})

    assert breakdown.is_empty
    assert breakdown.total_expenses == Decimal("0.00")
    assert top_categories(breakdown, 5) == []


def test_monthly_series_covers_full_calendar_months() -> None:
    txns = [
        _txn(1, "1000.00", TransactionType.income, datetime(2025, 1, 1, 0, 0)),
        _txn(2, "200.00", occurred_at=datetime(2025, 1, 31, 23, 59, 59)),
        _txn(3, "50.00", occurred_at=datetime(2025, 3, 2, 8, 0)),
        _txn(4, "75.00", occurred_at=datetime(2024, 12, 31, 8, 0)),
    ]

    points = monthly_series(txns, date(2025, 3, 10), 3)

    assert [p.month_label for p in points] == [
        "January 2025",
        "February 2025",
        "March 2025",
    ]
    assert points[0].income == Decimal("1000.00")
    assert points[0].net == Decimal("800.00")
    assert points[1].expenses == Decimal("0.00")
    assert points[2].net == Decimal("-50.00")


def test_month_label_format() -> None:
    assert month_label(date(2025, 12, 1)) == "December 2025"


def test_monthly_category_trends_are_zero_filled() -> None:
    categories = {1: _category(1, "Food"), 2: _category(2, "Rent")}
    txns = [
        _txn(1, "20.00", occurred_at=datetime(2025, 1, 10), category_id=1),
        _txn(2, "500.00", occurred_at=datetime(2025, 2, 1), category_id=2),
    ]

    trends = monthly_category_trends(txns, categories, date(2025, 2, 20), 2)

    assert trends.labels == ("Jan 2025", "Feb 2025")
    assert list(trends.series) == ["Rent", "Food"]
    assert trends.series["Food"] == (Decimal("20.00"), Decimal("0.00"))
    assert trends.series["Rent"] == (Decimal("0.00"), Decimal("500.00"))


def test_period_windows_shift_by_calendar_months() -> None:
    now = datetime(2025, 3, 31, 18, 0)

    current, previous = period_windows(now, 1)

    assert current.start == datetime(2025, 2, 28, 18, 0)
    assert current.end == now
    assert previous.start == datetime(2025, 1, 28, 18, 0)
    assert previous.end == current.start


def test_period_comparison_growth_rates() -> None:
    now = datetime(2025, 3, 15, 12, 0)
    txns = [
        _txn(1, "200.00", TransactionType.income, datetime(2025, 3, 1)),
        _txn(2, "100.00", TransactionType.income, datetime(2025, 1, 20)),
        _txn(3, "50.00", occurred_at=datetime(2025, 3, 1)),
    ]

    comparison = period_comparison(txns, now, 1)

    assert comparison.current.total_income == Decimal("200.00")
    assert comparison.previous.total_income == Decimal("100.00")
    assert comparison.income_growth_rate == Decimal("100")
    assert comparison.expense_growth_rate == 0
