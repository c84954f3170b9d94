import logging
from datetime import date, datetime, time
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings, local_now
from csrf import generate_csrf_token, validate_csrf_token
from database import get_db
from models import TransactionType
from periods import DateRangeWindow, MonthWindow
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetProgressOut,
    BudgetUpdate,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    ExpenseBreakdownEntryOut,
    MonthlyTrendPointOut,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    BudgetFilters,
    BudgetService,
    CategoryService,
    DashboardService,
    RecordForbidden,
    RecordNotFound,
    TransactionFilters,
    TransactionService,
    UpstreamFailure,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def current_user_id() -> int:
    return get_settings().user_id


def request_now() -> datetime:
    return local_now()


def csrf_user_id(
    user_id: int = Depends(current_user_id),
    x_csrf_token: str = Header(default=""),
) -> int:
    if not validate_csrf_token(x_csrf_token, user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
    return user_id


@app.exception_handler(UpstreamFailure)
def upstream_failure_handler(request: Request, exc: UpstreamFailure) -> JSONResponse:
    logger.exception(f"upstream_failure: path={request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"database_error: path={request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Database request failed"})


def raise_for_record_error(exc: ValueError) -> None:
    if isinstance(exc, RecordNotFound):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, RecordForbidden):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def parse_moment(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def parse_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    windows = []
    start = parse_moment(params.get("startDate"))
    end = parse_moment(params.get("endDate"), end_of_day=True)
    if start or end:
        windows.append(DateRangeWindow(start, end))
    month = parse_int(params.get("month"))
    year = parse_int(params.get("year"))
    if month and year and 1 <= month <= 12:
        windows.append(MonthWindow(year, month))

    txn_type = None
    type_param = params.get("type")
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError:
            txn_type = None
    return TransactionFilters(
        windows=tuple(windows),
        type=txn_type,
        category_id=parse_int(params.get("categoryId")),
    )


@app.get("/api/csrf-token")
def csrf_token(user_id: int = Depends(current_user_id)):
    return {"csrf_token": generate_csrf_token(user_id)}


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return CategoryService(db, user_id).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).create(data)
    except ValueError as exc:
        raise_for_record_error(exc)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryUpdate,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        raise_for_record_error(exc)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise_for_record_error(exc)
    return Response(status_code=204)


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    return TransactionService(db, user_id).list(filters)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise_for_record_error(exc)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, data)
    except ValueError as exc:
        raise_for_record_error(exc)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise_for_record_error(exc)
    return Response(status_code=204)


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = BudgetFilters(
        year=parse_int(request.query_params.get("year")),
        month=parse_int(request.query_params.get("month")),
    )
    return BudgetService(db, user_id).list(filters)


@app.get("/api/budgets/progress", response_model=list[BudgetProgressOut])
def budgets_progress(
    request: Request,
    user_id: int = Depends(current_user_id),
    now: datetime = Depends(request_now),
    db: Session = Depends(get_db),
):
    month = parse_int(request.query_params.get("month"))
    year = parse_int(request.query_params.get("year"))
    if month is None:
        month = now.month
    if year is None:
        year = now.year
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    progress = DashboardService(db).budget_progress(user_id, year, month)
    return [BudgetProgressOut.model_validate(row) for row in progress]


@app.post("/api/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    data: BudgetIn,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        return BudgetService(db, user_id).create(data)
    except ValueError as exc:
        raise_for_record_error(exc)


@app.put("/api/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    data: BudgetUpdate,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        return BudgetService(db, user_id).update(budget_id, data)
    except ValueError as exc:
        raise_for_record_error(exc)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    user_id: int = Depends(csrf_user_id),
    db: Session = Depends(get_db),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except ValueError as exc:
        raise_for_record_error(exc)
    return Response(status_code=204)


@app.get("/api/dashboard/summary", response_model=SummaryOut)
def dashboard_summary(
    user_id: int = Depends(current_user_id),
    now: datetime = Depends(request_now),
    db: Session = Depends(get_db),
):
    summary = DashboardService(db).balance_summary(user_id, now=now)
    return SummaryOut.from_summary(summary)


@app.get("/api/dashboard/monthly-trends", response_model=list[MonthlyTrendPointOut])
def dashboard_monthly_trends(
    user_id: int = Depends(current_user_id),
    now: datetime = Depends(request_now),
    db: Session = Depends(get_db),
):
    points = DashboardService(db).monthly_trends(user_id, now=now)
    return [MonthlyTrendPointOut.model_validate(point) for point in points]


@app.get(
    "/api/dashboard/expense-breakdown", response_model=list[ExpenseBreakdownEntryOut]
)
def dashboard_expense_breakdown(
    request: Request,
    user_id: int = Depends(current_user_id),
    now: datetime = Depends(request_now),
    db: Session = Depends(get_db),
):
    period = request.query_params.get("period")
    breakdown = DashboardService(db).expense_breakdown(user_id, period, now=now)
    return [ExpenseBreakdownEntryOut.model_validate(entry) for entry in breakdown]


@app.get("/api/export/transactions")
def export_transactions_endpoint(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    start = parse_moment(request.query_params.get("startDate"))
    end = parse_moment(request.query_params.get("endDate"), end_of_day=True)
    csv_text = DashboardService(db).export_csv(user_id, start, end)
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=transactions.csv"},
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
