import os

os.environ.setdefault("STICKER_CRM_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STICKER_CRM_STORAGE_BACKEND", "memory")

from datetime import datetime  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402

from sticker_crm.schemas import Order  # noqa: E402
from sticker_crm.service import CrmService  # noqa: E402
from sticker_crm.storage import MemoryStore  # noqa: E402

NOW = datetime(2025, 1, 20, 12, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_order():
    ids = count(1)

    def _make(**kw) -> Order:
        n = next(ids)
        data = {
            "id": f"order_{n}",
            "title": f"Заказ {n}",
            "price": 1000,
            "category": "Стикерпаки опт",
            "payment_method": "card",
            "is_paid": False,
            "order_date": datetime(2025, 1, 5, 10, 0),
            "created_at": datetime(2025, 1, 5, 10, 0),
        }
        data.update(kw)
        return Order(**data)

    return _make


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def service(store) -> CrmService:
    return CrmService(store, clock=lambda: NOW)
