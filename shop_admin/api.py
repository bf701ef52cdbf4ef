"""FastAPI application exposing the shop_admin backend."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .cache import ViewCache
from .config import load_config
from .errors import InvalidInputError, NotFoundError, StoreError
from .notifications import Notifier
from .repository import StoreRepository
from .search import display_label, route_for
from .services import DashboardService, RequestContext
from .store import StoreClient

logger = logging.getLogger(__name__)

PERIOD_PATTERN = "^(all|daily|weekly|monthly|yearly|custom)$"
DEFAULT_SUBMITTED_BY = "Admin"


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Initialise shared services once and reuse them across requests."""

    config = load_config()
    store = StoreClient(config)
    repository = StoreRepository(store)
    notifier = Notifier(config)
    view_cache = ViewCache(config.view_cache_ttl)
    service = DashboardService(config, repository, store, notifier, view_cache)

    app.state.config = config
    app.state.store = store
    app.state.dashboard = service

    yield

    store.close()


app = FastAPI(lifespan=lifespan, title="shop_admin backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping ---------------------------------------------------------------


@app.exception_handler(InvalidInputError)
def invalid_input_handler(_: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StoreError)
def store_error_handler(_: Request, exc: StoreError) -> JSONResponse:
    logger.error("Data service request failed: %s", exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})


# Dependency injection ------------------------------------------------------

def get_dashboard_service() -> DashboardService:
    service: DashboardService = app.state.dashboard
    return service


def get_request_context(authorization: Annotated[Optional[str], Header()] = None) -> RequestContext:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip() or None
    return RequestContext(access_token=token)


Service = Annotated[DashboardService, Depends(get_dashboard_service)]
Period = Annotated[str, Query(pattern=PERIOD_PATTERN)]


# Request bodies ------------------------------------------------------------


class StatusUpdate(BaseModel):
    status: str


class CategoryPayload(BaseModel):
    name: str


class DepositPayload(BaseModel):
    amount_paid: float = Field(gt=0)
    mode_of_payment: str
    purpose: str
    submittedby: str = DEFAULT_SUBMITTED_BY
    mode_of_mobilemoney: Optional[str] = None
    bank_name: Optional[str] = None


class ExpensePayload(BaseModel):
    item: str
    amount_spent: float = Field(gt=0)
    department: str
    mode_of_payment: str
    account: Optional[str] = None
    submittedby: str = DEFAULT_SUBMITTED_BY


# Routes --------------------------------------------------------------------


@app.get("/health")
def health_check() -> dict[str, str]:
    """Return a basic heartbeat payload for monitoring purposes."""

    return {"status": "ok"}


@app.get("/orders")
def list_orders(
    service: Service,
    period: Period = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict[str, object]:
    orders = [asdict(order) for order in service.orders(period, start, end)]
    return {"orders": orders, "count": len(orders)}


@app.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    service: Service,
    context: Annotated[RequestContext, Depends(get_request_context)],
) -> dict[str, object]:
    order = service.update_order_status(order_id, payload.status, context)
    return {"order": asdict(order)}


@app.get("/analytics/monthly-orders")
def monthly_orders(service: Service) -> dict[str, object]:
    return {"months": [asdict(bucket) for bucket in service.monthly_orders()]}


@app.get("/analytics/cash-flow")
def cash_flow(
    service: Service,
    granularity: Annotated[str, Query(pattern="^(day|week|month)$")] = "week",
) -> dict[str, object]:
    return {
        "granularity": granularity,
        "points": [asdict(point) for point in service.cash_flow(granularity)],
    }


@app.get("/analytics/payment-methods")
def payment_methods(service: Service) -> dict[str, object]:
    distribution = service.payment_methods()
    return {"methods": [{"name": name, "value": value} for name, value in distribution.items()]}


@app.get("/analytics/comparison")
def comparison(service: Service) -> dict[str, object]:
    return {"totals": service.comparison()}


@app.get("/analytics/categories")
def category_chart(service: Service) -> dict[str, object]:
    return {"categories": service.category_chart()}


@app.get("/ledgers/summary")
def ledger_summary(service: Service) -> dict[str, object]:
    return asdict(service.ledger_summary())


@app.get("/ledgers/accounts")
def account_summary(
    service: Service,
    period: Period = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict[str, object]:
    entries, balances = service.account_summary(period, start, end)
    return {"entries": [asdict(entry) for entry in entries], "summary": asdict(balances)}


@app.get("/ledgers/accounts/export")
def export_ledger(
    service: Service,
    period: Period = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Response:
    filename, content = service.export_ledger(period, start, end)
    return _csv_response(filename, content)


@app.get("/ledgers/accounts/{mode}")
def payment_details(
    mode: str,
    service: Service,
    period: Period = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict[str, object]:
    deposits, expenses = service.payment_details(mode, period, start, end)
    return {
        "mode": mode,
        "deposits": [asdict(entry) for entry in deposits],
        "expenses": [asdict(entry) for entry in expenses],
    }


@app.post("/ledgers/deposits", status_code=201)
def record_deposit(payload: DepositPayload, service: Service) -> dict[str, object]:
    entry = service.record_deposit(
        payload.amount_paid,
        payload.mode_of_payment,
        payload.purpose,
        payload.submittedby,
        payload.mode_of_mobilemoney,
        payload.bank_name,
    )
    return {"deposit": asdict(entry)}


@app.delete("/ledgers/deposits/{entry_id}", status_code=204)
def delete_deposit(entry_id: int, service: Service) -> Response:
    service.delete_deposit(entry_id)
    return Response(status_code=204)


@app.get("/ledgers/users/{order_id}")
def user_ledger(order_id: int, service: Service) -> dict[str, object]:
    return asdict(service.user_ledger(order_id))


@app.get("/ledgers/expenses")
def list_expenses(
    service: Service,
    period: Period = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict[str, object]:
    expenses = [asdict(expense) for expense in service.expenses(period, start, end)]
    total = sum(expense["amount_spent"] for expense in expenses)
    return {"expenses": expenses, "count": len(expenses), "total": total}


@app.get("/ledgers/expenses/export")
def export_expenses(
    service: Service,
    period: Period = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Response:
    filename, content = service.export_expenses(period, start, end)
    return _csv_response(filename, content)


@app.post("/ledgers/expenses", status_code=201)
def create_expense(payload: ExpensePayload, service: Service) -> dict[str, object]:
    expense = service.save_expense(
        payload.item,
        payload.amount_spent,
        payload.department,
        payload.mode_of_payment,
        payload.submittedby,
        payload.account,
    )
    return {"expense": asdict(expense)}


@app.put("/ledgers/expenses/{expense_id}")
def update_expense(expense_id: int, payload: ExpensePayload, service: Service) -> dict[str, object]:
    expense = service.save_expense(
        payload.item,
        payload.amount_spent,
        payload.department,
        payload.mode_of_payment,
        payload.submittedby,
        payload.account,
        expense_id=expense_id,
    )
    return {"expense": asdict(expense)}


@app.delete("/ledgers/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: int, service: Service) -> Response:
    service.delete_expense(expense_id)
    return Response(status_code=204)


@app.get("/stock/materials")
def material_stock(service: Service) -> dict[str, object]:
    materials = [asdict(material) for material in service.material_stock()]
    return {"materials": materials, "count": len(materials)}


@app.get("/categories")
def list_categories(service: Service) -> dict[str, object]:
    categories = [asdict(category) for category in service.categories()]
    return {"categories": categories, "count": len(categories)}


@app.post("/categories", status_code=201)
def create_category(payload: CategoryPayload, service: Service) -> dict[str, object]:
    return {"category": asdict(service.create_category(payload.name))}


@app.put("/categories/{slug}")
def update_category(slug: str, payload: CategoryPayload, service: Service) -> dict[str, object]:
    return {"category": asdict(service.update_category(slug, payload.name))}


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: int, service: Service) -> Response:
    service.delete_category(category_id)
    return Response(status_code=204)


@app.get("/search")
def search(service: Service, q: Annotated[str, Query(max_length=200)] = "") -> dict[str, object]:
    results = [
        {"table": result["table"], "label": display_label(result), "route": route_for(result), "row": result}
        for result in service.search(q)
    ]
    return {"query": q, "results": results, "count": len(results)}


@app.get("/search/route")
def search_route(table: str, id: str) -> dict[str, str]:
    return {"route": route_for({"table": table, "id": id})}


def _csv_response(filename: str, content: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
