"""Dashboard figures derived from transaction and budget rows.

Nothing in here touches the database: callers fetch the rows and hand them
over. All amounts are integer cents, all percentages whole numbers rounded
half away from zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from models import Budget, Category, Transaction, TransactionType
from periods import MonthWindow


@dataclass(frozen=True)
class AmountChange:
    amount_cents: int
    change_percentage: int


@dataclass(frozen=True)
class BalanceSummary:
    current_balance_cents: int
    income: AmountChange
    expenses: AmountChange


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    category: Optional[Category]
    spent_cents: int
    percentage: int
    remaining_cents: int
    overspent: bool


@dataclass(frozen=True)
class ExpenseBreakdownEntry:
    category: Category
    amount_cents: int
    percentage: int


@dataclass(frozen=True)
class MonthlyTrendPoint:
    year: int
    month: int
    income_cents: int
    expense_cents: int


@dataclass(frozen=True)
class DashboardSummary:
    balance: BalanceSummary
    budget_progress: list[BudgetProgress] = field(default_factory=list)
    recent_transactions: list[Transaction] = field(default_factory=list)


def percent_of(part: int, whole: int) -> int:
    """``round(part / whole * 100)``; the caller guarantees ``whole != 0``."""
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def change_percentage(current: int, previous: int) -> int:
    if previous <= 0:
        return 0
    return percent_of(current - previous, previous)


def total_for_type(
    transactions: Iterable[Transaction], txn_type: TransactionType
) -> int:
    return sum(txn.amount_cents for txn in transactions if txn.type == txn_type)


def income_and_expenses(transactions: Sequence[Transaction]) -> tuple[int, int]:
    return (
        total_for_type(transactions, TransactionType.income),
        total_for_type(transactions, TransactionType.expense),
    )


def summarize_balance(
    current: Sequence[Transaction], previous: Sequence[Transaction]
) -> BalanceSummary:
    income, expenses = income_and_expenses(current)
    prev_income, prev_expenses = income_and_expenses(previous)
    return BalanceSummary(
        current_balance_cents=income - expenses,
        income=AmountChange(income, change_percentage(income, prev_income)),
        expenses=AmountChange(expenses, change_percentage(expenses, prev_expenses)),
    )


def budget_progress(
    budgets: Iterable[Budget], transactions: Sequence[Transaction]
) -> list[BudgetProgress]:
    """One row per budget, in the order given.

    ``transactions`` must already be limited to the budgets' month. A budget
    amount of zero or less cannot be expressed as a ratio, so its percentage
    is reported as 0 and only ``overspent`` reflects the spend.
    """
    progress: list[BudgetProgress] = []
    for budget in budgets:
        spent = sum(
            txn.amount_cents
            for txn in transactions
            if txn.type == TransactionType.expense
            and txn.category_id == budget.category_id
        )
        if budget.amount_cents > 0:
            percentage = percent_of(spent, budget.amount_cents)
        else:
            percentage = 0
        progress.append(
            BudgetProgress(
                budget=budget,
                category=budget.category,
                spent_cents=spent,
                percentage=percentage,
                remaining_cents=budget.amount_cents - spent,
                overspent=spent > budget.amount_cents,
            )
        )
    return progress


def expense_breakdown(
    transactions: Iterable[Transaction], categories: Sequence[Category]
) -> list[ExpenseBreakdownEntry]:
    spent_by_category: dict[int, int] = {}
    for txn in transactions:
        if txn.type != TransactionType.expense or txn.category_id is None:
            continue
        spent_by_category[txn.category_id] = (
            spent_by_category.get(txn.category_id, 0) + txn.amount_cents
        )
    total = sum(spent_by_category.values())

    breakdown = []
    for category in categories:
        amount = spent_by_category.get(category.id, 0)
        if amount <= 0:
            continue
        breakdown.append(
            ExpenseBreakdownEntry(
                category=category,
                amount_cents=amount,
                percentage=percent_of(amount, total) if total else 0,
            )
        )
    # sort() is stable: equal amounts keep the category list order.
    breakdown.sort(key=lambda entry: entry.amount_cents, reverse=True)
    return breakdown


def trend_point(
    window: MonthWindow, transactions: Sequence[Transaction]
) -> MonthlyTrendPoint:
    income, expenses = income_and_expenses(transactions)
    return MonthlyTrendPoint(
        year=window.year,
        month=window.month,
        income_cents=income,
        expense_cents=expenses,
    )
