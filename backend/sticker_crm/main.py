import logging
from datetime import date, datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaError

from . import analytics, clients as client_registry, schemas
from .config import settings
from .db import Base, engine
from .errors import CrmError
from .parsing import parse_description
from .periods import matches, salary_matches
from .service import CrmService
from .storage import build_store

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Sticker CRM")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[CrmService] = None


def get_service() -> CrmService:
    global _service
    if _service is None:
        _service = CrmService(build_store(settings.storage_backend))
    return _service


@app.exception_handler(CrmError)
def crm_error_handler(request, exc: CrmError):
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def get_period(
    period: schemas.PeriodKind = schemas.PeriodKind.CURRENT_MONTH,
    month: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> schemas.PeriodSpec:
    try:
        return schemas.PeriodSpec(kind=period, month=month, date_from=date_from, date_to=date_to)
    except SchemaError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])


@app.get("/health")
def health():
    return {"status": "ok", "utc": datetime.utcnow().isoformat()}


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


# ---------------- Orders ----------------

@app.get("/orders", response_model=schemas.OrderListOut)
def list_orders(
    q: Optional[str] = None,
    category: Optional[schemas.Category] = None,
    payment_method: Optional[schemas.Channel] = None,
    manager: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    svc: CrmService = Depends(get_service),
):
    items = analytics.filter_orders(svc.orders, q, category, payment_method, manager, date_from, date_to)
    items = sorted(items, key=lambda o: o.order_date, reverse=True)
    return {"items": items, "total": analytics.orders_total(items, svc.orders, manager)}


@app.get("/orders/feed", response_model=schemas.OrderFeed)
def order_feed(manager: Optional[str] = None, svc: CrmService = Depends(get_service)):
    return svc.order_feed(manager)


@app.post("/orders/parse", response_model=schemas.ParsedDescription)
def parse_order_description(payload: schemas.DescriptionIn):
    return parse_description(payload.text)


@app.post("/orders", response_model=list[schemas.Order])
def create_order(payload: schemas.OrderCreate, svc: CrmService = Depends(get_service)):
    return svc.create_order(payload)


@app.patch("/orders/{order_id}", response_model=schemas.Order)
def edit_order(order_id: str, payload: schemas.OrderUpdate, svc: CrmService = Depends(get_service)):
    return svc.edit_order(order_id, payload)


@app.delete("/orders/{order_id}")
def delete_order(order_id: str, svc: CrmService = Depends(get_service)):
    svc.delete_order(order_id)
    return {"ok": True}


@app.post("/orders/{order_id}/toggle-paid", response_model=list[schemas.Order])
def toggle_paid(order_id: str, svc: CrmService = Depends(get_service)):
    return svc.toggle_paid(order_id)


# ---------------- Clients ----------------

@app.get("/clients", response_model=list[schemas.Client])
def list_clients(q: Optional[str] = None, svc: CrmService = Depends(get_service)):
    return client_registry.search_clients(svc.clients, q)


@app.get("/clients/stats", response_model=schemas.ClientStats)
def client_stats(svc: CrmService = Depends(get_service)):
    return client_registry.roster_stats(svc.clients)


@app.post("/clients/match", response_model=Optional[schemas.ClientMatch])
def match_client(payload: schemas.ClientMatchIn, svc: CrmService = Depends(get_service)):
    return svc.find_client_match(payload.name, payload.phone)


@app.get("/clients/{client_id}/orders", response_model=list[schemas.Order])
def client_orders(client_id: str, svc: CrmService = Depends(get_service)):
    return svc.client_orders(client_id)


# ---------------- Expenses / Salaries ----------------

@app.get("/expenses", response_model=list[schemas.Expense])
def list_expenses(period: schemas.PeriodSpec = Depends(get_period), svc: CrmService = Depends(get_service)):
    now = svc.clock()
    items = [e for e in svc.expenses if matches(e.exp_date, period, now)]
    return sorted(items, key=lambda e: e.exp_date, reverse=True)


@app.post("/expenses", response_model=schemas.Expense)
def add_expense(payload: schemas.ExpenseCreate, svc: CrmService = Depends(get_service)):
    return svc.add_expense(payload)


@app.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str, svc: CrmService = Depends(get_service)):
    svc.delete_expense(expense_id)
    return {"ok": True}


@app.get("/salaries", response_model=list[schemas.Salary])
def list_salaries(period: schemas.PeriodSpec = Depends(get_period), svc: CrmService = Depends(get_service)):
    now = svc.clock()
    items = [s for s in svc.salaries if salary_matches(s.month, period, now)]
    return sorted(items, key=lambda s: (s.month, s.manager), reverse=True)


@app.post("/salaries", response_model=schemas.Salary)
def add_salary(payload: schemas.SalaryCreate, svc: CrmService = Depends(get_service)):
    return svc.add_salary(payload)


@app.post("/salaries/import", response_model=schemas.Salary)
def import_salary(payload: schemas.SalaryImportParams, svc: CrmService = Depends(get_service)):
    return svc.import_salary(payload)


@app.delete("/salaries/{salary_id}")
def delete_salary(salary_id: str, svc: CrmService = Depends(get_service)):
    svc.delete_salary(salary_id)
    return {"ok": True}


@app.post("/salaries/{salary_id}/toggle-paid", response_model=schemas.Salary)
def toggle_salary_paid(salary_id: str, svc: CrmService = Depends(get_service)):
    return svc.toggle_salary_paid(salary_id)


# ---------------- Finance ----------------

@app.get("/finance/totals", response_model=schemas.FinancialTotals)
def financial_totals(period: schemas.PeriodSpec = Depends(get_period), svc: CrmService = Depends(get_service)):
    return svc.totals(period)


@app.get("/finance/overrides", response_model=schemas.Overrides)
def get_overrides(svc: CrmService = Depends(get_service)):
    return svc.overrides


@app.put("/finance/overrides", response_model=schemas.Overrides)
def set_override(payload: schemas.OverrideIn, svc: CrmService = Depends(get_service)):
    return svc.set_override(payload)


@app.delete("/finance/overrides", response_model=schemas.Overrides)
def clear_overrides(svc: CrmService = Depends(get_service)):
    return svc.clear_overrides()


@app.get("/finance/cash-reserve", response_model=schemas.ChannelAmounts)
def get_cash_reserve(svc: CrmService = Depends(get_service)):
    return svc.cash_reserve


@app.put("/finance/cash-reserve", response_model=schemas.ChannelAmounts)
def set_cash_reserve(payload: schemas.CashReserveIn, svc: CrmService = Depends(get_service)):
    return svc.set_cash_reserve(payload)


# ---------------- Archives ----------------

@app.get("/archives", response_model=list[schemas.MonthlyArchive])
def list_archives(svc: CrmService = Depends(get_service)):
    return svc.archives


@app.post("/archives", response_model=schemas.MonthlyArchive)
def close_month(payload: schemas.CloseMonthIn, svc: CrmService = Depends(get_service)):
    return svc.close_month(payload.month)


@app.get("/archives/{month}", response_model=schemas.MonthlyArchive)
def get_archive(month: str, svc: CrmService = Depends(get_service)):
    return svc.get_archive(month)


# ---------------- Dashboard / Managers ----------------

@app.get("/dashboard", response_model=schemas.DashboardOut)
def dashboard(period: schemas.PeriodSpec = Depends(get_period), svc: CrmService = Depends(get_service)):
    return svc.dashboard(period)


@app.get("/managers/{name}/stats", response_model=schemas.ManagerStats)
def manager_stats(
    name: str,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    svc: CrmService = Depends(get_service),
):
    return svc.manager_stats(name, date_from, date_to)


# ---------------- Settings ----------------

@app.get("/settings/managers", response_model=list[schemas.ManagerData])
def list_managers(svc: CrmService = Depends(get_service)):
    return svc.managers


@app.post("/settings/managers", response_model=schemas.ManagerData)
def add_manager(payload: schemas.ManagerData, svc: CrmService = Depends(get_service)):
    return svc.add_manager(payload)


@app.patch("/settings/managers/{name}", response_model=schemas.ManagerData)
def update_manager(name: str, payload: schemas.ManagerPatch, svc: CrmService = Depends(get_service)):
    return svc.update_manager_percentage(name, payload.salary_percentage)


@app.delete("/settings/managers/{name}")
def delete_manager(name: str, svc: CrmService = Depends(get_service)):
    svc.delete_manager(name)
    return {"ok": True}


@app.get("/settings/order-sources", response_model=list[str])
def list_order_sources(svc: CrmService = Depends(get_service)):
    return svc.order_sources


@app.post("/settings/order-sources", response_model=list[str])
def add_order_source(payload: schemas.OrderSourceIn, svc: CrmService = Depends(get_service)):
    return svc.add_order_source(payload.name)


@app.delete("/settings/order-sources/{name}", response_model=list[str])
def delete_order_source(name: str, svc: CrmService = Depends(get_service)):
    return svc.delete_order_source(name)


@app.get("/settings/expense-categories", response_model=list[str])
def expense_categories():
    return settings.expense_categories


@app.get("/settings/role", response_model=schemas.RoleIn)
def get_role(svc: CrmService = Depends(get_service)):
    return {"role": svc.user_role}


@app.put("/settings/role", response_model=schemas.RoleIn)
def set_role(payload: schemas.RoleIn, svc: CrmService = Depends(get_service)):
    return {"role": svc.set_user_role(payload.role)}


@app.delete("/settings/data")
def clear_all_data(svc: CrmService = Depends(get_service)):
    svc.clear_all_data()
    return {"ok": True}
