"""
auth/storage.py -- SQLAlchemy Core key/value store standing in for browser storage.

Pattern: Repository. One LocalStorage database is one origin. Each LocalStorage
object is one "tab" of that origin: tab() opens a sibling view that shares the
engine and the SessionChannel but writes under its own tab id.

Every write that actually changes a value publishes a StorageEvent on the
channel. Listeners decide whether to ignore their own tab's writes, which is
what browsers do with the storage event.

Security:
  All queries use bound parameters. Values are opaque strings; callers own the
  serialization format.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine

from auth.channel import SessionChannel, StorageEvent
from core.config import get_settings

_metadata = MetaData()

_items = Table(
    "local_storage",
    _metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
)


def _current_value(conn: Connection, key: str) -> Optional[str]:
    row = conn.execute(_items.select().where(_items.c.key == key)).fetchone()
    return row.value if row is not None else None


def _upsert(key: str, value: str):
    # INSERT .. ON CONFLICT DO UPDATE: a row another tab inserted between our
    # read and our write is overwritten instead of raising IntegrityError.
    stmt = sqlite_insert(_items).values(key=key, value=value)
    return stmt.on_conflict_do_update(index_elements=[_items.c.key], set_={"value": stmt.excluded.value})


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers in other processes are not blocked by writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class LocalStorage:
    """Durable string key/value store shared by every tab of one origin.

    Usage:
        storage = LocalStorage("sqlite://")
        other_tab = storage.tab()
        storage.set_item("k", "v")   # other_tab's channel listeners see the change
        storage.close()
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        channel: Optional[SessionChannel] = None,
        *,
        engine: Optional[Engine] = None,
        tab_id: Optional[str] = None,
    ) -> None:
        if engine is None:
            db_url = db_url or get_settings().storage_db_url
            connect_args: dict = {}
            if db_url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
            engine = create_engine(db_url, connect_args=connect_args)
            if db_url.startswith("sqlite"):
                event.listen(engine, "connect", _set_wal_mode)
            _metadata.create_all(engine)
            self._owns_engine = True
        else:
            self._owns_engine = False
        self.engine: Engine = engine
        self.channel = channel or SessionChannel()
        self.tab_id = tab_id or uuid.uuid4().hex

    def tab(self) -> "LocalStorage":
        """Open another tab on the same origin (same engine, same channel)."""
        return LocalStorage(engine=self.engine, channel=self.channel)

    # ------------------------------------------------------------------
    # Storage API
    # ------------------------------------------------------------------

    def get_item(self, key: str) -> Optional[str]:
        with self.engine.connect() as conn:
            return _current_value(conn, key)

    def set_item(self, key: str, value: str) -> None:
        self.set_items({key: value})

    def remove_item(self, key: str) -> None:
        self.remove_items([key])

    def set_items(self, items: dict[str, str]) -> None:
        """Write several keys in one transaction, then publish one event per change.

        Events go out only after the commit, so a listener never observes half
        of a multi-key write.
        """
        events: list[StorageEvent] = []
        with self.engine.connect() as conn:
            for key, value in items.items():
                old = _current_value(conn, key)
                conn.execute(_upsert(key, value))
                if old != value:
                    events.append(StorageEvent(key=key, old_value=old, new_value=value, source=self.tab_id))
            conn.commit()
        for ev in events:
            self.channel.publish(ev)

    def remove_items(self, keys: list[str]) -> None:
        events: list[StorageEvent] = []
        with self.engine.connect() as conn:
            for key in keys:
                old = _current_value(conn, key)
                if old is None:
                    continue
                conn.execute(_items.delete().where(_items.c.key == key))
                events.append(StorageEvent(key=key, old_value=old, new_value=None, source=self.tab_id))
            conn.commit()
        for ev in events:
            self.channel.publish(ev)

    def keys(self) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(_items.select().order_by(_items.c.key)).fetchall()
        return [r.key for r in rows]

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()
