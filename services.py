from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    BudgetProgress,
    DashboardSummary,
    ExpenseBreakdownEntry,
    MonthlyTrendPoint,
    budget_progress,
    expense_breakdown,
    summarize_balance,
    trend_point,
)
from config import get_settings, local_now
from csv_utils import export_transactions
from models import Budget, Category, Transaction, TransactionType
from periods import DateRangeWindow, MonthWindow, Window, resolve_period, trailing_months
from schemas import (
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    TransactionIn,
    TransactionUpdate,
)


logger = logging.getLogger(__name__)


class RecordNotFound(ValueError):
    pass


class RecordForbidden(ValueError):
    pass


class UpstreamFailure(RuntimeError):
    """The database could not deliver the rows a dashboard figure needs."""


@dataclass
class TransactionFilters:
    windows: tuple[Window, ...] = ()
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None


@dataclass
class BudgetFilters:
    year: Optional[int] = None
    month: Optional[int] = None
    category_id: Optional[int] = None


def _window_clauses(window: Window) -> list:
    column = Transaction.occurred_at
    if isinstance(window, MonthWindow):
        return [column >= window.start, column < window.end]
    clauses = []
    if window.start is not None:
        clauses.append(column >= window.start)
    if window.end is not None:
        clauses.append(column <= window.end)
    return clauses


def _owned(session: Session, model, record_id: int, user_id: int, label: str):
    record = session.get(model, record_id)
    if record is None:
        raise RecordNotFound(f"{label} not found")
    if record.user_id != user_id:
        raise RecordForbidden("Not authorized")
    return record


def _require_category(session: Session, user_id: int, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if not category or category.user_id != user_id:
        raise ValueError("Category not found")
    return category


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.id)
        )
        return list(self.session.scalars(stmt).all())

    def names(self) -> dict[int, str]:
        return {category.id: category.name for category in self.list_all()}

    def get(self, category_id: int) -> Category:
        return _owned(self.session, Category, category_id, self.user_id, "Category")

    def _ensure_unique_name(self, name: str, *, exclude_id: Optional[int] = None) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValueError("Category name cannot be empty")
        self._ensure_unique_name(name)
        category = Category(
            user_id=self.user_id,
            name=name,
            icon=data.icon,
            color=data.color,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: user_id={self.user_id} category_id={category.id}")
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if not changes["name"]:
                raise ValueError("Category name cannot be empty")
            self._ensure_unique_name(changes["name"], exclude_id=category.id)
        for key, value in changes.items():
            setattr(category, key, value)
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        # Transactions survive as uncategorized; budgets go with the category.
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category.id,
            )
            .values(category_id=None)
        )
        self.session.execute(
            delete(Budget).where(
                Budget.user_id == self.user_id, Budget.category_id == category.id
            )
        )
        self.session.expire(category)
        self.session.delete(category)
        self.session.commit()
        self.session.expire_all()
        logger.info(f"category_deleted: user_id={self.user_id} category_id={category_id}")


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        for window in filters.windows:
            stmt = stmt.where(*_window_clauses(window))
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return list(self.session.scalars(stmt).all())

    def recent(self, limit: int = 5) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        return _owned(
            self.session, Transaction, transaction_id, self.user_id, "Transaction"
        )

    def _reload(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).one()

    def create(self, data: TransactionIn) -> Transaction:
        if data.category_id is not None:
            _require_category(self.session, self.user_id, data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            type=data.type,
            occurred_at=data.occurred_at or local_now(),
            description=data.description,
            category_id=data.category_id,
        )
        self.session.add(txn)
        self.session.commit()
        txn = self._reload(txn.id)
        logger.info(
            f"transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"type={txn.type.value}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        for required in ("amount_cents", "type", "occurred_at"):
            if changes.get(required, ...) is None:
                raise ValueError(f"{required} cannot be null")
        if changes.get("category_id") is not None:
            _require_category(self.session, self.user_id, changes["category_id"])
        for key, value in changes.items():
            setattr(txn, key, value)
        self.session.commit()
        return self._reload(txn.id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(
            f"transaction_deleted: user_id={self.user_id} transaction_id={transaction_id}"
        )


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, filters: Optional[BudgetFilters] = None) -> list[Budget]:
        filters = filters or BudgetFilters()
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.id)
        )
        if filters.year:
            stmt = stmt.where(Budget.year == filters.year)
        if filters.month:
            stmt = stmt.where(Budget.month == filters.month)
        if filters.category_id:
            stmt = stmt.where(Budget.category_id == filters.category_id)
        return list(self.session.scalars(stmt).all())

    def get(self, budget_id: int) -> Budget:
        return _owned(self.session, Budget, budget_id, self.user_id, "Budget")

    def find(self, category_id: int, year: int, month: int) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id,
                Budget.category_id == category_id,
                Budget.year == year,
                Budget.month == month,
            )
        )

    def create(self, data: BudgetIn) -> Budget:
        _require_category(self.session, self.user_id, data.category_id)
        if self.find(data.category_id, data.year, data.month):
            raise ValueError("Budget already exists for this category in the selected month")
        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            year=data.year,
            month=data.month,
            amount_cents=data.amount_cents,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: user_id={self.user_id} budget_id={budget.id} "
            f"month={budget.year:04d}-{budget.month:02d}"
        )
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "category_id" in changes:
            _require_category(self.session, self.user_id, changes["category_id"])
        category_id = changes.get("category_id", budget.category_id)
        year = changes.get("year", budget.year)
        month = changes.get("month", budget.month)
        existing = self.find(category_id, year, month)
        if existing is not None and existing.id != budget.id:
            raise ValueError("Budget already exists for this category in the selected month")
        for key, value in changes.items():
            setattr(budget, key, value)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: user_id={self.user_id} budget_id={budget_id}")


class DashboardService:
    """Read-only dashboard figures for one user at a time.

    Every entry point takes the user id explicitly and fetches fresh rows;
    nothing is cached between calls. Database errors surface as
    ``UpstreamFailure``.
    """

    def __init__(self, session: Session, *, recent_limit: Optional[int] = None) -> None:
        self.session = session
        self.recent_limit = recent_limit or get_settings().recent_transactions_limit

    def balance_summary(
        self, user_id: int, now: Optional[datetime] = None
    ) -> DashboardSummary:
        now = now or local_now()
        current = MonthWindow.containing(now)
        txns = TransactionService(self.session, user_id)
        try:
            current_rows = txns.list(TransactionFilters(windows=(current,)))
            previous_rows = txns.list(TransactionFilters(windows=(current.previous(),)))
            progress = self.budget_progress(
                user_id, current.year, current.month, transactions=current_rows
            )
            recent = txns.recent(self.recent_limit)
        except SQLAlchemyError as exc:
            raise UpstreamFailure("Failed to fetch dashboard summary") from exc
        logger.debug(
            f"balance_summary: user_id={user_id} month={current.year:04d}-{current.month:02d} "
            f"rows={len(current_rows)} previous_rows={len(previous_rows)}"
        )
        return DashboardSummary(
            balance=summarize_balance(current_rows, previous_rows),
            budget_progress=progress,
            recent_transactions=recent,
        )

    def budget_progress(
        self,
        user_id: int,
        year: int,
        month: int,
        *,
        transactions: Optional[Sequence[Transaction]] = None,
    ) -> list[BudgetProgress]:
        window = MonthWindow(year, month)
        try:
            if transactions is None:
                transactions = TransactionService(self.session, user_id).list(
                    TransactionFilters(windows=(window,))
                )
            budgets = BudgetService(self.session, user_id).list(
                BudgetFilters(year=year, month=month)
            )
        except SQLAlchemyError as exc:
            raise UpstreamFailure("Failed to fetch budget progress") from exc
        return budget_progress(budgets, transactions)

    def monthly_trends(
        self, user_id: int, now: Optional[datetime] = None
    ) -> list[MonthlyTrendPoint]:
        now = now or local_now()
        txns = TransactionService(self.session, user_id)
        points = []
        try:
            for window in trailing_months(now):
                rows = txns.list(TransactionFilters(windows=(window,)))
                points.append(trend_point(window, rows))
        except SQLAlchemyError as exc:
            raise UpstreamFailure("Failed to fetch monthly trends") from exc
        logger.debug(f"monthly_trends: user_id={user_id} points={len(points)}")
        return points

    def expense_breakdown(
        self,
        user_id: int,
        period: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[ExpenseBreakdownEntry]:
        resolved = resolve_period(period, now=now or local_now())
        try:
            rows = TransactionService(self.session, user_id).list(
                TransactionFilters(
                    windows=(DateRangeWindow(resolved.start, resolved.end),),
                    type=TransactionType.expense,
                )
            )
            categories = CategoryService(self.session, user_id).list_all()
        except SQLAlchemyError as exc:
            raise UpstreamFailure("Failed to fetch expense breakdown") from exc
        logger.debug(
            f"expense_breakdown: user_id={user_id} period={resolved.slug} rows={len(rows)}"
        )
        return expense_breakdown(rows, categories)

    def export_csv(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> str:
        try:
            rows = TransactionService(self.session, user_id).list(
                TransactionFilters(windows=(DateRangeWindow(start, end),))
            )
            names = CategoryService(self.session, user_id).names()
        except SQLAlchemyError as exc:
            raise UpstreamFailure("Failed to export transactions") from exc
        return export_transactions(rows, names)
