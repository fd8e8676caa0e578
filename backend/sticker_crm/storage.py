"""Key-value persistence boundary.

The core only ever calls ``load(key)`` and ``save(key, value)`` with
JSON-compatible values. Save failures are logged and swallowed: the
in-memory state of the running service stays authoritative.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import KvEntry

logger = logging.getLogger(__name__)

ORDERS_KEY = "sticker-crm-orders"
CLIENTS_KEY = "sticker-crm-clients"
MANAGERS_KEY = "sticker-crm-managers"
ORDER_SOURCES_KEY = "sticker-crm-order-sources"
EXPENSES_KEY = "sticker-crm-expenses"
SALARIES_KEY = "sticker-crm-salaries"
USER_ROLE_KEY = "sticker-crm-user-role"
ARCHIVES_KEY = "monthly_archives"
CASH_RESERVE_KEY = "cash_reserve_breakdown"


def overrides_key(month: str) -> str:
    return f"finance_overrides_{month}"


class KeyValueStore:
    def load(self, key: str) -> Any:
        raise NotImplementedError

    def save(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Non-persistent store. Values are kept as JSON text, like browser storage."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.save(key, value)

    def load(self, key: str) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.exception("stored value for %s is not valid JSON", key)
            return None

    def save(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            logger.exception("failed to serialize %s, save skipped", key)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqlStore(KeyValueStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load(self, key: str) -> Any:
        try:
            with self.session_factory() as db:
                row = db.get(KvEntry, key)
                return row.value if row else None
        except SQLAlchemyError:
            logger.exception("failed to load %s", key)
            return None

    def save(self, key: str, value: Any) -> None:
        try:
            # serialize up front so a bad value never reaches the session
            json.dumps(value)
        except (TypeError, ValueError):
            logger.exception("failed to serialize %s, save skipped", key)
            return
        with self.session_factory() as db:
            try:
                row = db.get(KvEntry, key)
                if row:
                    row.value = value
                    row.updated_at = datetime.utcnow()
                else:
                    db.add(KvEntry(key=key, value=value))
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("failed to save %s", key)


def build_store(backend: str, session_factory: Callable[[], Session] | None = None) -> KeyValueStore:
    if backend == "memory":
        return MemoryStore()
    if backend != "sql":
        raise ValueError(f"unknown storage backend: {backend}")
    if session_factory is None:
        from .db import SessionLocal

        session_factory = SessionLocal
    return SqlStore(session_factory)
