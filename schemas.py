from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from aggregation import DashboardSummary
from models import TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(..., min_length=1, max_length=50)
    color: str = Field(..., min_length=1, max_length=20)


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, min_length=1, max_length=20)


class TransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    occurred_at: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: Optional[int] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    occurred_at: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None


class BudgetIn(BaseModel):
    category_id: int
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    amount_cents: int = Field(..., ge=0)


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: Optional[int] = None
    year: Optional[int] = Field(default=None, ge=1970, le=3000)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    amount_cents: Optional[int] = Field(default=None, ge=0)


class OrmOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CategoryOut(OrmOut):
    id: int
    name: str
    icon: str
    color: str


class TransactionOut(OrmOut):
    id: int
    amount_cents: int
    type: TransactionType
    occurred_at: datetime
    description: Optional[str]
    category_id: Optional[int]
    category: Optional[CategoryOut]


class BudgetOut(OrmOut):
    id: int
    category_id: int
    year: int
    month: int
    amount_cents: int


class AmountChangeOut(OrmOut):
    amount_cents: int
    change_percentage: int


class BudgetProgressOut(OrmOut):
    budget: BudgetOut
    category: Optional[CategoryOut]
    spent_cents: int
    percentage: int
    remaining_cents: int
    overspent: bool


class SummaryOut(BaseModel):
    current_balance_cents: int
    income: AmountChangeOut
    expenses: AmountChangeOut
    budget_progress: list[BudgetProgressOut]
    recent_transactions: list[TransactionOut]

    @classmethod
    def from_summary(cls, summary: DashboardSummary) -> "SummaryOut":
        balance = summary.balance
        return cls(
            current_balance_cents=balance.current_balance_cents,
            income=AmountChangeOut.model_validate(balance.income),
            expenses=AmountChangeOut.model_validate(balance.expenses),
            budget_progress=[
                BudgetProgressOut.model_validate(row) for row in summary.budget_progress
            ],
            recent_transactions=[
                TransactionOut.model_validate(txn)
                for txn in summary.recent_transactions
            ],
        )


class MonthlyTrendPointOut(OrmOut):
    year: int
    month: int
    income_cents: int
    expense_cents: int


class ExpenseBreakdownEntryOut(OrmOut):
    category: CategoryOut
    amount_cents: int
    percentage: int
