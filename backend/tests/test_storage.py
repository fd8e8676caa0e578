import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sticker_crm.db import Base
from sticker_crm.storage import MemoryStore, SqlStore, build_store, overrides_key


@pytest.fixture
def sql_store() -> SqlStore:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return SqlStore(sessionmaker(bind=engine, autoflush=False, autocommit=False))


def test_memory_store_roundtrip():
    store = MemoryStore()
    assert store.load("missing") is None
    store.save("k", {"a": [1, 2], "b": "привет"})
    assert store.load("k") == {"a": [1, 2], "b": "привет"}
    assert store.keys() == ["k"]


def test_memory_store_skips_unserializable_value():
    store = MemoryStore({"k": [1]})
    store.save("k", {"bad": object()})
    assert store.load("k") == [1]


def test_sql_store_upsert(sql_store):
    assert sql_store.load("orders") is None
    sql_store.save("orders", [{"id": "order_1"}])
    sql_store.save("orders", [{"id": "order_1"}, {"id": "order_2"}])
    assert sql_store.load("orders") == [{"id": "order_1"}, {"id": "order_2"}]


def test_sql_store_skips_unserializable_value(sql_store):
    sql_store.save("k", "ok")
    sql_store.save("k", {1, 2})
    assert sql_store.load("k") == "ok"


def test_build_store():
    assert isinstance(build_store("memory"), MemoryStore)
    with pytest.raises(ValueError):
        build_store("redis")


def test_overrides_key():
    assert overrides_key("2025-01") == "finance_overrides_2025-01"
