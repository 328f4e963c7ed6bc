import logging
import tomllib
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, session_scope
from insights import generate_insights
from ledger import NotFoundError
from models import TransactionType
from periods import Period, Window, day_window, resolve_period
from schemas import (
    BudgetIn,
    BudgetOut,
    CategoryIn,
    CategoryOut,
    CategoryUsageOut,
    TransactionIn,
    TransactionOut,
)
from services import (
    AnalyticsService,
    BudgetService,
    CategoryService,
    TransactionService,
    UserService,
    get_current_user_id,
    local_today,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def _load_app_version() -> str:
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    return x_user_id or get_current_user_id()


@app.on_event("startup")
def startup_event():
    with session_scope() as db:
        UserService(db).ensure_default_user()
    logger.info(f"finance_tracker_started: version={APP_VERSION}")


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def window_from_request(request: Request) -> Optional[Window]:
    """Optional ``start``/``end`` ISO dates; a missing side is left open."""
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    if not start and not end:
        return None
    try:
        start_date = date.fromisoformat(start) if start else date(1970, 1, 1)
        end_date = date.fromisoformat(end) if end else local_today()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    return day_window(start_date, end_date)


def _months_param(request: Request, default: int) -> int:
    try:
        months = int(request.query_params.get("months", str(default)))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="months must be an integer") from exc
    return min(max(months, 1), 120)


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION, "currency": settings.currency}


# categories


@app.get("/api/categories")
def list_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    categories = CategoryService(db, user_id).list_all()
    return [CategoryOut.model_validate(c) for c in categories]


@app.get("/api/categories/all")
def list_all_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    categories = CategoryService(db, user_id).list_all(include_inactive=True)
    return [CategoryOut.model_validate(c) for c in categories]


@app.get("/api/categories/with-counts")
def categories_with_counts(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [
        CategoryUsageOut(
            category=CategoryOut.model_validate(category), transaction_count=count
        )
        for category, count in CategoryService(db, user_id).with_counts()
    ]


@app.get("/api/categories/most-used")
def most_used_categories(
    limit: int = 5,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    limit = min(max(limit, 1), 50)
    categories = CategoryService(db, user_id).most_used(limit)
    return [CategoryOut.model_validate(c) for c in categories]


@app.post("/api/categories/defaults", status_code=201)
def seed_default_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        created = CategoryService(db, user_id).seed_defaults()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [CategoryOut.model_validate(c) for c in created]


@app.post("/api/categories", status_code=201)
def create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryOut.model_validate(category)


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).get(category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return CategoryOut.model_validate(category)


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).update(category_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).deactivate(category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/categories/{category_id}/activate")
def activate_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = CategoryService(db, user_id)
    try:
        service.activate(category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return CategoryOut.model_validate(service.get(category_id))


# transactions


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    window = window_from_request(request)
    type_param = request.query_params.get("type")
    category_param = request.query_params.get("category_id")
    try:
        txn_type = TransactionType(type_param) if type_param else None
        category_id = int(category_param) if category_param else None
        page = max(int(request.query_params.get("page", "1")), 1)
        limit = min(max(int(request.query_params.get("limit", "50")), 1), 100)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    offset = (page - 1) * limit
    items = TransactionService(db, user_id).list_transactions(
        window, type=txn_type, category_id=category_id, limit=limit + 1, offset=offset
    )
    has_more = len(items) > limit
    return {
        "items": [TransactionOut.model_validate(t) for t in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.get("/api/transactions/summary")
def transaction_summary(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    window = window_from_request(request)
    return TransactionService(db, user_id).summary(window).to_dict()


@app.post("/api/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# budgets


@app.get("/api/budgets")
def list_budgets(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    budgets = BudgetService(db, user_id).list_active()
    return [BudgetOut.model_validate(b) for b in budgets]


@app.get("/api/budgets/all")
def list_all_budgets(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    budgets = BudgetService(db, user_id).list_all()
    return [BudgetOut.model_validate(b) for b in budgets]


@app.get("/api/budgets/current")
def current_budgets(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    budgets = BudgetService(db, user_id).current()
    return [BudgetOut.model_validate(b) for b in budgets]


@app.get("/api/budgets/summaries")
def budget_summaries(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    summaries = BudgetService(db, user_id).current_summaries()
    return [s.to_dict() for s in summaries]


@app.post("/api/budgets", status_code=201)
def create_budget(
    payload: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetOut.model_validate(budget)


@app.get("/api/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).get(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return BudgetOut.model_validate(budget)


@app.get("/api/budgets/{budget_id}/summary")
def get_budget_summary(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        summary = BudgetService(db, user_id).summary(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return summary.to_dict()


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    payload: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).update(budget_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetOut.model_validate(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/budgets/{budget_id}/activate")
def activate_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = BudgetService(db, user_id)
    try:
        service.activate(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetOut.model_validate(service.get(budget_id))


# analytics


@app.get("/api/analytics/income-expense")
def analytics_income_expense(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    summary = AnalyticsService(db, user_id).income_expense(period.window())
    data = summary.to_dict()
    data.update(
        {
            "period": period.slug,
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "currency": settings.currency,
        }
    )
    return data


@app.get("/api/analytics/monthly")
def analytics_monthly(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    months = _months_param(request, 6)
    points = AnalyticsService(db, user_id).monthly(months)
    return [p.to_dict() for p in points]


@app.get("/api/analytics/comparison")
def analytics_comparison(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    months = _months_param(request, 1)
    return AnalyticsService(db, user_id).comparison(months).to_dict()


@app.get("/api/analytics/categories")
def analytics_categories(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    breakdown = AnalyticsService(db, user_id).category_breakdown(period.window())
    data = breakdown.to_dict()
    data["insights"] = [i.to_dict() for i in generate_insights(breakdown)]
    data["period"] = period.slug
    return data


@app.get("/api/analytics/category-trends")
def analytics_category_trends(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    months = _months_param(request, 6)
    return AnalyticsService(db, user_id).category_trends(months).to_dict()


@app.get("/api/analytics/category-growth")
def analytics_category_growth(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    months = _months_param(request, 1)
    return AnalyticsService(db, user_id).category_growth(months).to_dict()


@app.get("/api/analytics/top-categories")
def analytics_top_categories(
    request: Request,
    limit: int = 5,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    limit = min(max(limit, 1), 50)
    items = AnalyticsService(db, user_id).top_categories(period.window(), limit)
    return [item.to_dict() for item in items]
