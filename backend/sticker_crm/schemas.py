from datetime import date, datetime
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any


MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class Channel(str, Enum):
    """Payment rail. Every money figure is broken down by these four."""

    CARD = "card"
    TERMINAL = "terminal"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


# Labels used by the earlier shop UI; accepted on input and when loading old data.
CHANNEL_LABELS: Dict[str, Channel] = {
    "Карта": Channel.CARD,
    "Терминал": Channel.TERMINAL,
    "РС": Channel.BANK_TRANSFER,
    "Расчетный счет": Channel.BANK_TRANSFER,
    "Наличные": Channel.CASH,
}


def coerce_channel(value: Any) -> Any:
    if isinstance(value, str) and value in CHANNEL_LABELS:
        return CHANNEL_LABELS[value]
    return value


def naive_local(value: Any) -> Any:
    # every timestamp in the ledger is local wall time without tzinfo
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class Category(str, Enum):
    SINGLE_WHOLESALE = "Штучные стикеры опт"
    PACKS_WHOLESALE = "Стикерпаки опт"
    SINGLE_RETAIL = "Штучные стикеры розница"


# --- Orders ---

class Order(BaseModel):
    id: str
    title: str
    full_description: str = ""
    price: float = Field(ge=0)
    category: Category
    payment_method: Channel
    is_paid: bool = False
    order_date: datetime
    created_at: datetime
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    manager: Optional[str] = None
    order_source: Optional[str] = None
    # shares of one sale split between two managers carry the same group id
    duplicate_group_id: Optional[str] = None
    is_duplicate: bool = False

    @model_validator(mode="before")
    @classmethod
    def order_date_fallback(cls, data: Any) -> Any:
        # records saved before order_date existed
        if isinstance(data, dict) and not data.get("order_date") and data.get("created_at"):
            data = {**data, "order_date": data["created_at"]}
        return data

    normalize_channel = field_validator("payment_method", mode="before")(coerce_channel)
    normalize_timestamps = field_validator("order_date", "created_at")(naive_local)


class OrderSplit(BaseModel):
    """Second manager's share when one sale is split between two managers."""

    manager: str
    price: float
    partner_manager: str
    partner_price: float


class OrderCreate(BaseModel):
    title: str
    full_description: str = ""
    price: Optional[float] = None
    category: Optional[Category] = None
    payment_method: Optional[Channel] = None
    is_paid: bool = False
    order_date: Optional[datetime] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    manager: Optional[str] = None
    order_source: Optional[str] = None
    split: Optional[OrderSplit] = None

    normalize_channel = field_validator("payment_method", mode="before")(coerce_channel)
    normalize_order_date = field_validator("order_date")(naive_local)


class OrderUpdate(BaseModel):
    title: Optional[str] = None
    full_description: Optional[str] = None
    price: Optional[float] = None
    category: Optional[Category] = None
    payment_method: Optional[Channel] = None
    is_paid: Optional[bool] = None
    order_date: Optional[datetime] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    manager: Optional[str] = None
    order_source: Optional[str] = None

    normalize_channel = field_validator("payment_method", mode="before")(coerce_channel)
    normalize_order_date = field_validator("order_date")(naive_local)


class OrderListOut(BaseModel):
    items: List[Order]
    total: float


class OrderFeed(BaseModel):
    # each item is one order or all visible shares of a split order
    today: List[List[Order]] = Field(default_factory=list)
    yesterday: List[List[Order]] = Field(default_factory=list)
    earlier: List[List[Order]] = Field(default_factory=list)


class ParsedDescription(BaseModel):
    title: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    price: Optional[float] = None


class DescriptionIn(BaseModel):
    text: str


# --- Clients (derived) ---

class Client(BaseModel):
    id: str
    name: str
    phone: str
    manager: Optional[str] = None
    order_source: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)
    total_orders: int = 0
    total_revenue: float = 0
    last_order_date: datetime


class MatchType(str, Enum):
    NAME = "name"
    PHONE = "phone"
    BOTH = "both"


class ClientMatch(BaseModel):
    client: Client
    match_type: MatchType


class ClientMatchIn(BaseModel):
    name: str
    phone: str


class ClientStats(BaseModel):
    total: int
    repeat: int
    total_revenue: float


# --- Expenses / Salaries ---

class Expense(BaseModel):
    id: str
    exp_date: date
    category: str
    amount: float
    payment_source: Channel
    created_at: Optional[datetime] = None

    normalize_channel = field_validator("payment_source", mode="before")(coerce_channel)


class ExpenseCreate(BaseModel):
    exp_date: date
    category: str
    amount: float
    payment_source: Channel

    normalize_channel = field_validator("payment_source", mode="before")(coerce_channel)


class Salary(BaseModel):
    id: str
    month: str = Field(pattern=MONTH_PATTERN)  # YYYY-MM
    manager: str
    amount: float
    is_paid: bool = False
    paid_date: Optional[date] = None
    payment_source: Channel
    created_at: Optional[datetime] = None

    normalize_channel = field_validator("payment_source", mode="before")(coerce_channel)


class SalaryCreate(BaseModel):
    month: str
    manager: str
    amount: float
    payment_source: Channel

    normalize_channel = field_validator("payment_source", mode="before")(coerce_channel)


class SalaryImportParams(BaseModel):
    date_from: date
    date_to: date
    manager: str
    payment_source: Channel

    normalize_channel = field_validator("payment_source", mode="before")(coerce_channel)


# --- Settings ---

class ManagerData(BaseModel):
    name: str
    salary_percentage: float = 22


class ManagerPatch(BaseModel):
    salary_percentage: float


class OrderSourceIn(BaseModel):
    name: str


class RoleIn(BaseModel):
    role: str


# --- Periods ---

class PeriodKind(str, Enum):
    TODAY = "today"
    CURRENT_MONTH = "currentMonth"
    FIRST_HALF = "firstHalf"
    SECOND_HALF = "secondHalf"
    MONTH = "month"
    CUSTOM = "custom"
    ALL = "all"


class PeriodSpec(BaseModel):
    kind: PeriodKind = PeriodKind.CURRENT_MONTH
    month: Optional[str] = Field(default=None, pattern=MONTH_PATTERN)
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @model_validator(mode="after")
    def month_required(self):
        if self.kind == PeriodKind.MONTH and not self.month:
            raise ValueError("month is required for period 'month'")
        return self


# --- Finance ---

class ChannelAmounts(BaseModel):
    card: float = 0
    terminal: float = 0
    bank_transfer: float = 0
    cash: float = 0

    def get(self, channel: Channel) -> float:
        return getattr(self, channel.value)

    @property
    def total(self) -> float:
        return sum(self.get(ch) for ch in Channel)


class ChannelOverrides(BaseModel):
    card: Optional[float] = None
    terminal: Optional[float] = None
    bank_transfer: Optional[float] = None
    cash: Optional[float] = None

    def get(self, channel: Channel) -> Optional[float]:
        return getattr(self, channel.value)


class OverrideKind(str, Enum):
    REVENUE = "revenue"
    EXPENSES = "expenses"
    SALARIES = "salaries"


class Overrides(BaseModel):
    revenue: ChannelOverrides = Field(default_factory=ChannelOverrides)
    expenses: ChannelOverrides = Field(default_factory=ChannelOverrides)
    salaries: ChannelOverrides = Field(default_factory=ChannelOverrides)

    def for_kind(self, kind: OverrideKind) -> ChannelOverrides:
        return getattr(self, kind.value)


class OverrideIn(BaseModel):
    kind: OverrideKind
    channel: Channel
    value: Optional[float] = None  # null clears the channel


class CashReserveIn(BaseModel):
    channel: Channel
    value: float


class FinancialTotals(BaseModel):
    revenue: ChannelAmounts
    expenses: ChannelAmounts
    salaries: ChannelAmounts
    cash_reserve: ChannelAmounts
    net_profit: ChannelAmounts
    total_revenue: float
    total_expenses: float
    total_salaries: float
    total_net_profit: float


class MonthlyArchive(BaseModel):
    month: str
    closed_at: datetime
    stats: FinancialTotals
    overrides: Overrides
    orders_count: int
    expenses_count: int
    salaries_count: int


class CloseMonthIn(BaseModel):
    month: str


# --- Stats ---

class ManagerStats(BaseModel):
    manager: str
    total_revenue: float
    paid_revenue: float
    unpaid_revenue: float
    total_orders: int
    paid_orders: int
    unpaid_orders: int
    salary_percentage: float
    salary: float
    paid_salary: float


class BreakdownRow(BaseModel):
    name: str
    orders: int
    paid: int
    revenue: float


class DashboardOut(BaseModel):
    total_orders: int
    paid_orders: int
    total_revenue: float
    pending_revenue: float
    average_check: float
    conversion_rate: float
    categories: List[BreakdownRow]
    managers: List[BreakdownRow]
    sources: List[BreakdownRow]
