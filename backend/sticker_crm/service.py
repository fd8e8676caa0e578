"""In-memory state of the shop plus every mutation the UI can request.

Every mutation validates first and only then changes state and saves, so a
rejected request leaves orders, clients and storage untouched. Any change
to the order ledger goes through ``on_ledger_changed`` which rebuilds the
client roster from scratch.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Callable, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from . import analytics, archive, clients as client_registry, commissions, finance
from .config import Settings, settings as default_settings
from .duplicates import group_members
from .errors import ConflictError, NotFoundError, ValidationError
from .periods import month_key, parse_month_key
from .schemas import (
    CashReserveIn,
    ChannelAmounts,
    Client,
    ClientMatch,
    Expense,
    ExpenseCreate,
    FinancialTotals,
    ManagerData,
    ManagerStats,
    MonthlyArchive,
    Order,
    OrderCreate,
    OrderUpdate,
    OverrideIn,
    Overrides,
    PeriodSpec,
    Salary,
    SalaryCreate,
    SalaryImportParams,
)
from .storage import (
    ARCHIVES_KEY,
    CASH_RESERVE_KEY,
    CLIENTS_KEY,
    EXPENSES_KEY,
    MANAGERS_KEY,
    ORDER_SOURCES_KEY,
    ORDERS_KEY,
    SALARIES_KEY,
    USER_ROLE_KEY,
    KeyValueStore,
    overrides_key,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _dump(items: list[BaseModel]) -> list[dict]:
    return [i.model_dump(mode="json") for i in items]


def _with_group_paid(orders: list[Order], group_id: str, value: bool) -> list[Order]:
    members = {o.id for o in group_members(orders, group_id)}
    return [o.model_copy(update={"is_paid": value}) if o.id in members else o for o in orders]


class CrmService:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
        config: Optional[Settings] = None,
    ):
        self.store = store
        self.clock = clock
        self.config = config or default_settings

        self.orders: list[Order] = self._load_list(ORDERS_KEY, Order)
        self.expenses: list[Expense] = self._load_list(EXPENSES_KEY, Expense)
        self.salaries: list[Salary] = self._load_list(SALARIES_KEY, Salary)
        self.archives: list[MonthlyArchive] = sorted(
            self._load_list(ARCHIVES_KEY, MonthlyArchive), key=lambda a: a.month, reverse=True
        )

        managers = self._load_list(MANAGERS_KEY, ManagerData)
        self.managers: list[ManagerData] = managers or [ManagerData(**m) for m in self.config.default_managers]
        self.order_sources: list[str] = self.store.load(ORDER_SOURCES_KEY) or list(self.config.default_order_sources)
        self.user_role: str = self.store.load(USER_ROLE_KEY) or self.config.director_role

        reserve = self.store.load(CASH_RESERVE_KEY)
        self.cash_reserve = ChannelAmounts.model_validate(reserve) if reserve else ChannelAmounts()
        # corrections are for the current session only; the snapshot is what archives read
        self.overrides = Overrides()

        # persisted clients are only a cache
        self.clients: list[Client] = client_registry.rebuild_clients(self.orders)

    # ----------------------------------------------------------------- storage

    def _load_list(self, key: str, model: Type[M]) -> list[M]:
        raw = self.store.load(key)
        if not raw:
            return []
        out = []
        for item in raw:
            try:
                out.append(model.model_validate(item))
            except SchemaError:
                logger.warning("skipping unreadable %s record: %r", key, item)
        return out

    def _save(self, key: str, value: Any) -> None:
        self.store.save(key, value)

    def on_ledger_changed(self, orders: list[Order]) -> None:
        """Make *orders* the ledger. The roster is built before anything is replaced."""
        clients = client_registry.rebuild_clients(orders)
        self.orders, self.clients = orders, clients
        self._save(ORDERS_KEY, _dump(self.orders))
        self._save(CLIENTS_KEY, _dump(self.clients))

    # ---------------------------------------------------------------- guards

    def _assert_month_open(self, d: date | datetime) -> None:
        period = month_key(d)
        if archive.is_closed(period, self.archives):
            raise ConflictError(f"Период {period} закрыт. Изменения запрещены.")

    def _get_order(self, order_id: str) -> Order:
        for o in self.orders:
            if o.id == order_id:
                return o
        raise NotFoundError("order not found")

    def _manager(self, name: str) -> ManagerData:
        for m in self.managers:
            if m.name == name:
                return m
        raise NotFoundError(f"manager {name} not found")

    @staticmethod
    def _check_percentage(percentage: float) -> None:
        if percentage is None or percentage <= 0 or percentage > 100:
            raise ValidationError("salary percentage must be between 1 and 100")

    # ------------------------------------------------------------------ orders

    def create_order(self, payload: OrderCreate) -> list[Order]:
        """Add one order, or two shares of one sale when ``split`` is given."""
        title = (payload.title or "").strip()
        if not title:
            raise ValidationError("title is required")
        if not payload.category:
            raise ValidationError("category is required")
        if not payload.payment_method:
            raise ValidationError("payment_method is required")

        split = payload.split
        if split:
            if not split.manager or not split.partner_manager:
                raise ValidationError("both managers are required for a split order")
            if split.price <= 0 or split.partner_price <= 0:
                raise ValidationError("both shares must be > 0")
        elif payload.price is None or payload.price <= 0:
            raise ValidationError("price must be > 0")

        now = self.clock()
        order_date = payload.order_date or now
        self._assert_month_open(order_date)

        base = dict(
            title=title,
            full_description=payload.full_description.strip(),
            category=payload.category,
            payment_method=payload.payment_method,
            is_paid=payload.is_paid,
            order_date=order_date,
            created_at=now,
            client_name=(payload.client_name or "").strip() or None,
            client_phone=(payload.client_phone or "").strip() or None,
            order_source=payload.order_source,
        )
        if split:
            group_id = str(uuid.uuid4())
            created = [
                Order(id=_new_id("order"), price=split.price, manager=split.manager,
                      duplicate_group_id=group_id, is_duplicate=True, **base),
                Order(id=_new_id("order"), price=split.partner_price, manager=split.partner_manager,
                      duplicate_group_id=group_id, is_duplicate=True, **base),
            ]
        else:
            created = [Order(id=_new_id("order"), price=payload.price, manager=payload.manager, **base)]

        self.on_ledger_changed([*self.orders, *created])
        logger.info("order created: %s", ", ".join(o.id for o in created))
        return created

    def edit_order(self, order_id: str, payload: OrderUpdate) -> Order:
        order = self._get_order(order_id)
        patch = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
        if "title" in patch:
            patch["title"] = patch["title"].strip()
            if not patch["title"]:
                raise ValidationError("title is required")
        if "price" in patch and patch["price"] <= 0:
            raise ValidationError("price must be > 0")
        self._assert_month_open(order.order_date)
        if "order_date" in patch:
            self._assert_month_open(patch["order_date"])

        updated = order.model_copy(update=patch)
        paid_changed = "is_paid" in patch and patch["is_paid"] != order.is_paid
        orders = [updated if o.id == order_id else o for o in self.orders]
        if paid_changed and order.duplicate_group_id:
            # shares of one sale are paid together
            orders = _with_group_paid(orders, order.duplicate_group_id, patch["is_paid"])
        self.on_ledger_changed(orders)
        logger.info("order edited: %s (%s)", order_id, ", ".join(sorted(patch)))
        return self._get_order(order_id)

    def delete_order(self, order_id: str) -> None:
        order = self._get_order(order_id)
        self._assert_month_open(order.order_date)
        self.on_ledger_changed([o for o in self.orders if o.id != order_id])
        logger.info("order deleted: %s", order_id)

    def toggle_paid(self, order_id: str) -> list[Order]:
        """Flip the paid flag. For a split sale every share gets the new flag."""
        order = self._get_order(order_id)
        self._assert_month_open(order.order_date)
        new_value = not order.is_paid
        if order.duplicate_group_id:
            orders = _with_group_paid(self.orders, order.duplicate_group_id, new_value)
        else:
            orders = [o.model_copy(update={"is_paid": new_value}) if o.id == order_id else o for o in self.orders]
        self.on_ledger_changed(orders)
        logger.info("order %s paid=%s", order_id, new_value)
        if order.duplicate_group_id:
            return group_members(self.orders, order.duplicate_group_id)
        return [self._get_order(order_id)]

    # ----------------------------------------------------------------- clients

    def find_client_match(self, name: str, phone: str) -> Optional[ClientMatch]:
        return client_registry.find_match(name, phone, self.clients)

    def get_client(self, client_id: str) -> Client:
        for c in self.clients:
            if c.id == client_id:
                return c
        raise NotFoundError("client not found")

    def client_orders(self, client_id: str) -> list[Order]:
        return client_registry.client_orders(self.get_client(client_id), self.orders)

    # ---------------------------------------------------------------- expenses

    def add_expense(self, payload: ExpenseCreate) -> Expense:
        if payload.amount is None or payload.amount <= 0:
            raise ValidationError("amount must be > 0")
        if not (payload.category or "").strip():
            raise ValidationError("category is required")
        self._assert_month_open(payload.exp_date)

        expense = Expense(
            id=_new_id("expense"),
            exp_date=payload.exp_date,
            category=payload.category.strip(),
            amount=payload.amount,
            payment_source=payload.payment_source,
            created_at=self.clock(),
        )
        self.expenses.append(expense)
        self._save(EXPENSES_KEY, _dump(self.expenses))
        logger.info("expense added: %s %.2f", expense.category, expense.amount)
        return expense

    def delete_expense(self, expense_id: str) -> None:
        expense = next((e for e in self.expenses if e.id == expense_id), None)
        if expense is None:
            raise NotFoundError("expense not found")
        self._assert_month_open(expense.exp_date)
        self.expenses = [e for e in self.expenses if e.id != expense_id]
        self._save(EXPENSES_KEY, _dump(self.expenses))
        logger.info("expense deleted: %s", expense_id)

    # ---------------------------------------------------------------- salaries

    def _append_salary(self, month: str, manager: str, amount: float, payment_source) -> Salary:
        if any(s.month == month and s.manager == manager for s in self.salaries):
            raise ConflictError(f"Зарплата для {manager} за {month} уже добавлена")
        salary = Salary(
            id=_new_id("salary"),
            month=month,
            manager=manager,
            amount=amount,
            is_paid=False,
            payment_source=payment_source,
            created_at=self.clock(),
        )
        self.salaries.append(salary)
        self._save(SALARIES_KEY, _dump(self.salaries))
        logger.info("salary added: %s %s %.2f", month, manager, amount)
        return salary

    def add_salary(self, payload: SalaryCreate) -> Salary:
        if payload.amount is None or payload.amount <= 0:
            raise ValidationError("amount must be > 0")
        manager = (payload.manager or "").strip()
        if not manager:
            raise ValidationError("manager is required")
        try:
            year, mon = parse_month_key(payload.month)
        except ValueError as e:
            raise ValidationError(str(e))
        self._assert_month_open(date(year, mon, 1))
        return self._append_salary(f"{year:04d}-{mon:02d}", manager, payload.amount, payload.payment_source)

    def import_salary(self, params: SalaryImportParams) -> Salary:
        """Create the salary from the manager's commission on paid sales in the range."""
        manager = self._manager(params.manager)
        if params.date_to < params.date_from:
            raise ValidationError("date_to must not be before date_from")
        amount = commissions.paid_commission(
            self.orders, manager.name, manager.salary_percentage, params.date_from, params.date_to
        )
        if amount <= 0:
            raise ValidationError("no paid revenue for the period")
        self._assert_month_open(params.date_from)
        return self._append_salary(month_key(params.date_from), manager.name, amount, params.payment_source)

    def delete_salary(self, salary_id: str) -> None:
        salary = next((s for s in self.salaries if s.id == salary_id), None)
        if salary is None:
            raise NotFoundError("salary not found")
        year, mon = parse_month_key(salary.month)
        self._assert_month_open(date(year, mon, 1))
        self.salaries = [s for s in self.salaries if s.id != salary_id]
        self._save(SALARIES_KEY, _dump(self.salaries))
        logger.info("salary deleted: %s", salary_id)

    def toggle_salary_paid(self, salary_id: str) -> Salary:
        salary = next((s for s in self.salaries if s.id == salary_id), None)
        if salary is None:
            raise NotFoundError("salary not found")
        year, mon = parse_month_key(salary.month)
        self._assert_month_open(date(year, mon, 1))
        is_paid = not salary.is_paid
        updated = salary.model_copy(update={
            "is_paid": is_paid,
            "paid_date": self.clock().date() if is_paid else None,
        })
        self.salaries = [updated if s.id == salary_id else s for s in self.salaries]
        self._save(SALARIES_KEY, _dump(self.salaries))
        return updated

    # ----------------------------------------------------------------- finance

    def totals(self, period: PeriodSpec) -> FinancialTotals:
        return finance.aggregate(
            self.orders, self.expenses, self.salaries, period,
            overrides=self.overrides, cash_reserve=self.cash_reserve, now=self.clock(),
        )

    def set_override(self, payload: OverrideIn) -> Overrides:
        kind = self.overrides.for_kind(payload.kind).model_copy(update={payload.channel.value: payload.value})
        self.overrides = self.overrides.model_copy(update={payload.kind.value: kind})
        self._save(overrides_key(month_key(self.clock())), self.overrides.model_dump(mode="json"))
        return self.overrides

    def clear_overrides(self) -> Overrides:
        self.overrides = Overrides()
        self._save(overrides_key(month_key(self.clock())), self.overrides.model_dump(mode="json"))
        return self.overrides

    def set_cash_reserve(self, payload: CashReserveIn) -> ChannelAmounts:
        self.cash_reserve = self.cash_reserve.model_copy(update={payload.channel.value: payload.value})
        self._save(CASH_RESERVE_KEY, self.cash_reserve.model_dump(mode="json"))
        return self.cash_reserve

    def close_month(self, month: str) -> MonthlyArchive:
        month = (month or "").strip()
        snapshot = self.store.load(overrides_key(month))
        overrides = Overrides.model_validate(snapshot) if snapshot else Overrides()
        closed = archive.close_month(
            month, self.archives, self.orders, self.expenses, self.salaries,
            overrides=overrides, cash_reserve=self.cash_reserve, now=self.clock(),
        )
        self.archives = archive.with_archive(self.archives, closed)
        self._save(ARCHIVES_KEY, _dump(self.archives))
        logger.info("month %s closed: revenue %.2f", month, closed.stats.total_revenue)
        return closed

    def get_archive(self, month: str) -> MonthlyArchive:
        return archive.get_archive(month, self.archives)

    # ----------------------------------------------------------------- stats

    def manager_stats(self, name: str, date_from: Optional[date] = None, date_to: Optional[date] = None) -> ManagerStats:
        manager = self._manager(name)
        return commissions.manager_stats(self.orders, manager.name, manager.salary_percentage, date_from, date_to)

    # ---------------------------------------------------------------- settings

    def add_manager(self, payload: ManagerData) -> ManagerData:
        name = (payload.name or "").strip()
        if not name:
            raise ValidationError("manager name is required")
        if any(m.name == name for m in self.managers):
            raise ConflictError(f"manager {name} already exists")
        self._check_percentage(payload.salary_percentage)
        manager = ManagerData(name=name, salary_percentage=payload.salary_percentage)
        self.managers.append(manager)
        self._save(MANAGERS_KEY, _dump(self.managers))
        return manager

    def update_manager_percentage(self, name: str, percentage: float) -> ManagerData:
        self._manager(name)
        self._check_percentage(percentage)
        self.managers = [
            m.model_copy(update={"salary_percentage": percentage}) if m.name == name else m
            for m in self.managers
        ]
        self._save(MANAGERS_KEY, _dump(self.managers))
        return self._manager(name)

    def delete_manager(self, name: str) -> None:
        self._manager(name)
        if len(self.managers) == 1:
            raise ConflictError("cannot delete the last manager")
        self.managers = [m for m in self.managers if m.name != name]
        self._save(MANAGERS_KEY, _dump(self.managers))

    def add_order_source(self, name: str) -> list[str]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("order source is required")
        if name in self.order_sources:
            raise ConflictError(f"order source {name} already exists")
        self.order_sources = [*self.order_sources, name]
        self._save(ORDER_SOURCES_KEY, self.order_sources)
        return self.order_sources

    def delete_order_source(self, name: str) -> list[str]:
        if name not in self.order_sources:
            raise NotFoundError(f"order source {name} not found")
        if len(self.order_sources) == 1:
            raise ConflictError("cannot delete the last order source")
        self.order_sources = [s for s in self.order_sources if s != name]
        self._save(ORDER_SOURCES_KEY, self.order_sources)
        return self.order_sources

    def set_user_role(self, role: str) -> str:
        if role != self.config.director_role and not any(m.name == role for m in self.managers):
            raise ValidationError(f"unknown role: {role}")
        self.user_role = role
        self._save(USER_ROLE_KEY, role)
        return role

    def clear_all_data(self) -> None:
        """Drop every order (and so every client). Expenses, salaries and archives stay."""
        self.on_ledger_changed([])
        logger.warning("all orders and clients cleared")

    # ------------------------------------------------------------------ views

    def dashboard(self, period: PeriodSpec):
        return analytics.dashboard(self.orders, period, now=self.clock())

    def order_feed(self, manager: Optional[str] = None):
        return analytics.order_feed(self.orders, now=self.clock(), manager=manager)
