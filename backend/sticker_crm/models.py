from datetime import datetime
from typing import Any
from sqlalchemy import JSON, String, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base

JSON_TYPE = JSON().with_variant(JSONB, "postgresql")


class KvEntry(Base):
    """One persisted collection (orders, salaries, archives...) per row."""

    __tablename__ = "kv_entries"
    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON_TYPE, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
