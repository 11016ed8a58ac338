"""Persistent key-value stores behind ``ExtractionCache``.

The cache only needs get/set/delete of a serialized blob by string key.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from threading import Lock

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from transferscan.models.kv import Base, KeyValueEntry

from .errors import CacheIOError

logger = logging.getLogger(__name__)


class KeyValueStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored blob or ``None``."""

    @abc.abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous blob."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; missing keys are not an error."""


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = Lock()

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SqlKeyValueStore(KeyValueStore):
    """Blob store on the ``kv_entries`` table; sync sessions run off the event loop."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._run, self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._run, self._set, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._run, self._delete, key)

    def _run(self, fn, *args):
        try:
            with self._session_factory() as db:
                result = fn(db, *args)
                db.commit()
                return result
        except SQLAlchemyError as exc:
            raise CacheIOError(f"key-value store unavailable: {exc.__class__.__name__}") from exc

    @staticmethod
    def _get(db: Session, key: str) -> str | None:
        row = db.get(KeyValueEntry, key)
        return row.value if row is not None else None

    @staticmethod
    def _set(db: Session, key: str, value: str) -> None:
        db.merge(KeyValueEntry(key=key, value=value))

    @staticmethod
    def _delete(db: Session, key: str) -> None:
        row = db.get(KeyValueEntry, key)
        if row is not None:
            db.delete(row)


def create_sql_store(database_url: str, *, create_tables: bool = True) -> SqlKeyValueStore:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        # Sessions are opened from worker threads via asyncio.to_thread.
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    if create_tables:
        Base.metadata.create_all(engine)
    logger.info("Extraction cache backed by %s", engine.url.render_as_string(hide_password=True))
    return SqlKeyValueStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
