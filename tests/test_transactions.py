from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from config import get_settings
from database import Base
from ledger import NotFoundError
from models import TransactionType
from periods import day_window
from schemas import CategoryIn, TransactionIn
from services import AnalyticsService, CategoryService, TransactionService
from validation import ValidationError


def _txn(
    amount: str,
    type: TransactionType = TransactionType.expense,
    occurred_at: datetime = datetime(2025, 1, 10, 12, 0),
    category_id: int | None = None,
    description: str = "Lunch",
) -> TransactionIn:
    return TransactionIn(
        description=description,
        amount=Decimal(amount),
        type=type,
        occurred_at=occurred_at,
        category_id=category_id,
    )


def test_create_update_and_delete_transaction() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session)
        txn = service.create(_txn("12.99"))
        assert txn.amount == Decimal("12.99")

        updated = service.update(txn.id, _txn("15.50", description="Dinner"))
        assert updated.description == "Dinner"
        assert service.get(txn.id).amount == Decimal("15.50")

        service.delete(txn.id)
        with pytest.raises(NotFoundError):
            service.get(txn.id)


def test_transaction_amount_rules() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session)
        with pytest.raises(ValidationError) as excinfo:
            service.create(_txn("-5.00"))
        assert excinfo.value.rule == "amount"

        with pytest.raises(ValidationError):
            service.create(_txn("1.005"))

        assert service.list_transactions() == []


def test_transaction_with_missing_category_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValidationError) as excinfo:
            TransactionService(session).create(_txn("5.00", category_id=99))

        assert excinfo.value.rule == "category_not_found"


def test_list_filters_and_ordering() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        service = TransactionService(session)
        service.create(_txn("1.00", occurred_at=datetime(2025, 1, 1, 8, 0)))
        service.create(
            _txn("2.00", occurred_at=datetime(2025, 1, 20, 8, 0), category_id=food.id)
        )
        service.create(
            _txn("3.00", TransactionType.income, datetime(2025, 2, 2, 8, 0))
        )

        newest_first = service.list_transactions()
        january = service.list_transactions(
            day_window(date(2025, 1, 1), date(2025, 1, 31))
        )
        food_only = service.list_transactions(category_id=food.id)
        income = service.list_transactions(type=TransactionType.income)
        page = service.list_transactions(limit=1, offset=1)

        assert [t.amount for t in newest_first] == [
            Decimal("3.00"),
            Decimal("2.00"),
            Decimal("1.00"),
        ]
        assert len(january) == 2
        assert [t.amount for t in food_only] == [Decimal("2.00")]
        assert [t.amount for t in income] == [Decimal("3.00")]
        assert [t.amount for t in page] == [Decimal("2.00")]


def test_summary_over_window() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session)
        service.create(_txn("1000.10", TransactionType.income))
        service.create(_txn("0.30"))
        service.create(_txn("50.00", occurred_at=datetime(2024, 12, 31, 23, 0)))

        summary = service.summary(day_window(date(2025, 1, 1), date(2025, 1, 31)))

        assert summary.total_income == Decimal("1000.10")
        assert summary.total_expenses == Decimal("0.30")
        assert summary.net_worth == Decimal("999.80")
        assert service.summary().total_expenses == Decimal("50.30")


def test_other_owner_cannot_touch_transaction() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txn = TransactionService(session, user_id=1).create(_txn("5.00"))
        other = TransactionService(session, user_id=2)

        with pytest.raises(NotFoundError):
            other.delete(txn.id)
        assert other.list_transactions() == []


def test_analytics_service_reads_owner_rows() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        service = TransactionService(session)
        service.create(_txn("1000.00", TransactionType.income, datetime(2025, 3, 1)))
        service.create(_txn("450.00", occurred_at=datetime(2025, 3, 2), category_id=food.id))
        service.create(_txn("300.00", occurred_at=datetime(2025, 3, 3)))
        service.create(_txn("250.00", occurred_at=datetime(2025, 2, 3)))
        TransactionService(session, user_id=2).create(
            _txn("999.00", occurred_at=datetime(2025, 3, 4))
        )

        analytics = AnalyticsService(session)
        march = day_window(date(2025, 3, 1), date(2025, 3, 31))
        totals = analytics.income_expense(march)
        breakdown = analytics.category_breakdown(march)
        monthly = analytics.monthly(2, today=date(2025, 3, 20))
        trends = analytics.category_trends(2, today=date(2025, 3, 20))
        insights = analytics.insights(march)

        assert totals.total_expenses == Decimal("750.00")
        assert totals.savings_rate == Decimal("25")
        assert [c.name for c in breakdown.categories] == ["Food", "Uncategorized"]
        assert breakdown.categories[0].percentage_of_total == Decimal("60")
        assert [p.expenses for p in monthly] == [Decimal("250.00"), Decimal("750.00")]
        assert trends.series["Uncategorized"] == (Decimal("250.00"), Decimal("300.00"))
        assert [i.title for i in insights] == ["High Concentration", "Uncategorized Expenses"]


def test_offset_timestamps_are_stored_in_configured_zone(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "timezone", "Europe/Berlin")
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session)
        new_york_evening = datetime(2025, 1, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        txn = service.create(_txn("20.00", occurred_at=new_york_evening))

        assert txn.occurred_at == datetime(2025, 2, 1, 5, 30)
        january = service.summary(day_window(date(2025, 1, 1), date(2025, 1, 31)))
        february = service.summary(day_window(date(2025, 2, 1), date(2025, 2, 28)))
        assert january.total_expenses == Decimal("0.00")
        assert february.total_expenses == Decimal("20.00")


def test_naive_timestamps_are_kept_as_given() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txn = TransactionService(session).create(
            _txn("20.00", occurred_at=datetime(2025, 1, 31, 23, 30))
        )

        assert txn.occurred_at == datetime(2025, 1, 31, 23, 30)


def test_transaction_amount_beyond_storage_range_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session)
        with pytest.raises(ValidationError) as excinfo:
            service.create(_txn("1e20"))

        assert excinfo.value.rule == "amount"
        assert service.list_transactions() == []
