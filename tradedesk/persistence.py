"""State stores the ledger and alert store write through to.

The core only ever hands plain JSON-serializable dicts to a store. Which
technology keeps them is up to the deployment: tests and the demo use
``InMemoryStateStore``; ``SqlStateStore`` keeps one row per record in any
database SQLAlchemy can reach.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import JSON, DateTime, String, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import utcnow

logger = logging.getLogger(__name__)

LEDGER_NAMESPACE = "ledger"
DEVICE_NAMESPACE = "device"
HISTORY_NAMESPACE = "history"


class StateStore(Protocol):
    """Key-value persistence for serialized core records."""

    def save(self, namespace: str, key: str, record: dict[str, Any]) -> None:
        ...

    def load(self, namespace: str, key: str) -> dict[str, Any] | None:
        ...

    def delete(self, namespace: str, key: str) -> bool:
        ...

    def keys(self, namespace: str) -> list[str]:
        ...


class InMemoryStateStore:
    """Dictionary-backed store for tests and single-process demos.

    Records are round-tripped through JSON on save so anything that would not
    survive a real store fails here too.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def save(self, namespace: str, key: str, record: dict[str, Any]) -> None:
        encoded = json.dumps(record)
        with self._lock:
            self._records[(namespace, key)] = encoded

    def load(self, namespace: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            encoded = self._records.get((namespace, key))
        return json.loads(encoded) if encoded is not None else None

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock:
            return self._records.pop((namespace, key), None) is not None

    def keys(self, namespace: str) -> list[str]:
        with self._lock:
            return sorted(key for ns, key in self._records if ns == namespace)


class Base(DeclarativeBase):
    """Declarative base for the state tables."""

    pass


class StateRecord(Base):
    __tablename__ = "state_record"

    namespace: Mapped[str] = mapped_column(String(32), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SqlStateStore:
    """Persist records as JSON rows through a synchronous SQLAlchemy engine."""

    def __init__(self, url: str, *, echo: bool = False, create_tables: bool = True):
        engine_kwargs: dict[str, Any] = {}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # A single shared connection keeps the in-memory database alive.
                engine_kwargs["poolclass"] = StaticPool
        self._url = url
        self._engine = create_engine(url, echo=echo, future=True, **engine_kwargs)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        if create_tables:
            self.create_all()

    @property
    def url(self) -> str:
        return self._url

    @property
    def engine(self):
        return self._engine

    def create_all(self) -> None:
        logger.debug("Ensuring state tables exist on %s", self._engine.url.render_as_string(hide_password=True))
        Base.metadata.create_all(self._engine)

    def save(self, namespace: str, key: str, record: dict[str, Any]) -> None:
        with self._session_factory.begin() as session:
            session.merge(StateRecord(namespace=namespace, key=key, payload=record, updated_at=utcnow()))

    def load(self, namespace: str, key: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            row = session.get(StateRecord, (namespace, key))
            return dict(row.payload) if row is not None else None

    def delete(self, namespace: str, key: str) -> bool:
        with self._session_factory.begin() as session:
            row = session.get(StateRecord, (namespace, key))
            if row is None:
                return False
            session.delete(row)
            return True

    def keys(self, namespace: str) -> list[str]:
        with self._session_factory() as session:
            stmt = select(StateRecord.key).where(StateRecord.namespace == namespace).order_by(StateRecord.key)
            return list(session.scalars(stmt).all())

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = [
    "Base",
    "DEVICE_NAMESPACE",
    "HISTORY_NAMESPACE",
    "InMemoryStateStore",
    "LEDGER_NAMESPACE",
    "SqlStateStore",
    "StateRecord",
    "StateStore",
]
