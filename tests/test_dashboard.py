from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import Base
from models import TransactionType
from schemas import BudgetIn, CategoryIn, TransactionIn
from services import (
    BudgetService,
    CategoryService,
    DashboardService,
    TransactionService,
    UpstreamFailure,
)


NOW = datetime(2025, 1, 15, 12, 0)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def seed(session: Session) -> dict[str, int]:
    categories = CategoryService(session, 1)
    salary = categories.create(CategoryIn(name="Salary", icon="briefcase", color="#16a34a"))
    food = categories.create(CategoryIn(name="Food", icon="utensils", color="#f97316"))
    rent = categories.create(CategoryIn(name="Rent", icon="home", color="#6366f1"))

    txns = TransactionService(session, 1)

    def add(kind, cents, when, category, note):
        txns.create(
            TransactionIn(
                amount_cents=cents,
                type=kind,
                occurred_at=when,
                category_id=category.id if category else None,
                description=note,
            )
        )

    income, expense = TransactionType.income, TransactionType.expense
    add(income, 300_000, datetime(2025, 1, 1, 9, 0), salary, "January salary")
    add(expense, 12_000, datetime(2025, 1, 5, 10, 0), food, "Groceries")
    add(expense, 100_000, datetime(2025, 1, 10, 8, 0), rent, "January rent")
    add(expense, 3_000, datetime(2025, 1, 20, 19, 0), food, "Bakery")
    add(income, 240_000, datetime(2024, 12, 1, 9, 0), salary, "December salary")
    add(expense, 50_000, datetime(2024, 12, 10, 10, 0), food, "Holiday food")
    add(expense, 100_000, datetime(2024, 12, 31, 23, 59), rent, "December rent")
    add(expense, 7_000, datetime(2025, 2, 1, 0, 0), food, "February groceries")

    budgets = BudgetService(session, 1)
    budgets.create(BudgetIn(category_id=food.id, year=2025, month=1, amount_cents=10_000))
    budgets.create(BudgetIn(category_id=rent.id, year=2025, month=1, amount_cents=150_000))
    budgets.create(BudgetIn(category_id=food.id, year=2024, month=12, amount_cents=40_000))

    other = CategoryService(session, 2).create(
        CategoryIn(name="Food", icon="utensils", color="#f97316")
    )
    TransactionService(session, 2).create(
        TransactionIn(
            amount_cents=999_999,
            type=expense,
            occurred_at=datetime(2025, 1, 6, 12, 0),
            category_id=other.id,
        )
    )
    return {"salary": salary.id, "food": food.id, "rent": rent.id}


def test_balance_summary_compares_with_previous_month() -> None:
    session = make_session()
    seed(session)

    summary = DashboardService(session, recent_limit=5).balance_summary(1, now=NOW)

    assert summary.balance.current_balance_cents == 185_000
    assert summary.balance.income.amount_cents == 300_000
    assert summary.balance.income.change_percentage == 25
    assert summary.balance.expenses.amount_cents == 115_000
    assert summary.balance.expenses.change_percentage == -23


def test_balance_summary_embeds_budget_progress_for_current_month() -> None:
    session = make_session()
    ids = seed(session)

    summary = DashboardService(session, recent_limit=5).balance_summary(1, now=NOW)

    rows = [
        (p.category.name, p.spent_cents, p.percentage, p.overspent)
        for p in summary.budget_progress
    ]
    assert rows == [("Food", 15_000, 150, True), ("Rent", 100_000, 67, False)]
    assert summary.budget_progress[0].budget.category_id == ids["food"]


def test_balance_summary_includes_most_recent_transactions() -> None:
    session = make_session()
    seed(session)

    summary = DashboardService(session, recent_limit=3).balance_summary(1, now=NOW)

    assert [t.description for t in summary.recent_transactions] == [
        "February groceries",
        "Bakery",
        "January rent",
    ]


def test_budget_progress_for_an_explicit_month() -> None:
    session = make_session()
    seed(session)

    [december] = DashboardService(session).budget_progress(1, 2024, 12)

    assert december.spent_cents == 50_000
    assert december.percentage == 125
    assert december.remaining_cents == -10_000


def test_monthly_trends_returns_six_points_oldest_first() -> None:
    session = make_session()
    seed(session)

    points = DashboardService(session).monthly_trends(1, now=NOW)

    assert [(p.year, p.month) for p in points] == [
        (2024, 8),
        (2024, 9),
        (2024, 10),
        (2024, 11),
        (2024, 12),
        (2025, 1),
    ]
    assert [(p.income_cents, p.expense_cents) for p in points] == [
        (0, 0),
        (0, 0),
        (0, 0),
        (0, 0),
        (240_000, 150_000),
        (300_000, 115_000),
    ]


def test_monthly_trends_for_user_without_rows_is_all_zero() -> None:
    session = make_session()

    points = DashboardService(session).monthly_trends(42, now=NOW)

    assert len(points) == 6
    assert all(p.income_cents == 0 and p.expense_cents == 0 for p in points)


@pytest.mark.parametrize(
    "period, expected",
    [
        ("30days", [("Rent", 200_000, 94), ("Food", 12_000, 6)]),
        ("90days", [("Rent", 200_000, 76), ("Food", 62_000, 24)]),
        ("year", [("Rent", 100_000, 89), ("Food", 12_000, 11)]),
        ("bogus", [("Rent", 200_000, 94), ("Food", 12_000, 6)]),
        (None, [("Rent", 200_000, 94), ("Food", 12_000, 6)]),
    ],
)
def test_expense_breakdown_by_period(period, expected) -> None:
    session = make_session()
    seed(session)

    breakdown = DashboardService(session).expense_breakdown(1, period, now=NOW)

    assert [(e.category.name, e.amount_cents, e.percentage) for e in breakdown] == expected


def test_entry_points_are_repeatable() -> None:
    session = make_session()
    seed(session)
    service = DashboardService(session, recent_limit=5)

    assert service.monthly_trends(1, now=NOW) == service.monthly_trends(1, now=NOW)
    assert service.expense_breakdown(1, "year", now=NOW) == service.expense_breakdown(
        1, "year", now=NOW
    )
    first = service.balance_summary(1, now=NOW)
    second = service.balance_summary(1, now=NOW)
    assert first.balance == second.balance
    assert [p.spent_cents for p in first.budget_progress] == [
        p.spent_cents for p in second.budget_progress
    ]


def test_database_failure_surfaces_as_upstream_failure() -> None:
    engine = create_engine("sqlite:///:memory:")
    session = Session(engine)
    service = DashboardService(session, recent_limit=5)

    with pytest.raises(UpstreamFailure) as excinfo:
        service.balance_summary(1, now=NOW)
    assert str(excinfo.value) == "Failed to fetch dashboard summary"
    assert isinstance(excinfo.value.__cause__, SQLAlchemyError)

    with pytest.raises(UpstreamFailure):
        service.monthly_trends(1, now=NOW)
    with pytest.raises(UpstreamFailure):
        service.expense_breakdown(1, "30days", now=NOW)
    with pytest.raises(UpstreamFailure):
        service.export_csv(1)
