"""
db.py
SQLite snapshot store + change broadcast.

Each collection (members, admin accounts) lives under one key as a complete
JSON snapshot; there are no partial writes. Every successful save publishes
the collection's signal to all subscribers, the writer included, so every
cached view re-reads the same snapshot. Nothing is locked: when two
processes write the same key, the last write wins.
"""

from __future__ import annotations

import copy
import inspect
import json
import sqlite3
from collections import defaultdict
from contextlib import contextmanager
from typing import Callable
import weakref

from loguru import logger

import config
from utils import PanelError, now_iso


class SnapshotDecodeError(Exception):
    """Persisted snapshot is not a JSON list."""


@contextmanager
def get_conn():
    config.DB_FILE.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(config.DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def init_db() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS snapshots (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    # Small settings table (used to force password change on first login)
    execute(
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def read_snapshot(key: str) -> list[dict] | None:
    """Stored collection, or None when the key was never written."""
    row = fetch_one("SELECT value FROM snapshots WHERE key = ?", (key,))
    if row is None:
        return None
    try:
        data = json.loads(row["value"])
    except ValueError as exc:
        raise SnapshotDecodeError(f"{key}: {exc}") from exc
    if not isinstance(data, list):
        raise SnapshotDecodeError(f"{key}: expected a list, got {type(data).__name__}")
    return data


def write_snapshot(key: str, records: list[dict]) -> None:
    execute(
        """
        INSERT INTO snapshots(key, value, updated_at) VALUES(?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
        """,
        (key, json.dumps(records, ensure_ascii=False), now_iso()),
    )


def _get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def _set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def is_force_password_change() -> bool:
    return _get_setting("force_password_change") == "1"


def set_force_password_change(flag: bool) -> None:
    _set_setting("force_password_change", "1" if flag else "0")


# ---------- change broadcast ----------

# Bound methods are held weakly: a view dropped with its session stops
# receiving signals without having to call close().
_subscribers: dict[str, list[Callable[[], Callable[[], None] | None]]] = defaultdict(list)


def _reference(callback: Callable[[], None]) -> Callable[[], Callable[[], None] | None]:
    if inspect.ismethod(callback):
        return weakref.WeakMethod(callback)
    return lambda: callback


def _live(signal: str) -> list[Callable[[], None]]:
    alive, callbacks = [], []
    for ref in _subscribers[signal]:
        callback = ref()
        if callback is not None:
            alive.append(ref)
            callbacks.append(callback)
    _subscribers[signal] = alive
    return callbacks


def subscribe(signal: str, callback: Callable[[], None]) -> Callable[[], None]:
    """Register callback for signal; returns a function that unregisters it."""
    ref = _reference(callback)
    _subscribers[signal].append(ref)

    def unsubscribe() -> None:
        if ref in _subscribers[signal]:
            _subscribers[signal].remove(ref)

    return unsubscribe


def subscriber_count(signal: str) -> int:
    return len(_live(signal))


def publish(signal: str) -> None:
    for callback in _live(signal):
        try:
            callback()
        except Exception:
            logger.exception("Subscriber of {} failed", signal)


def clear_subscribers() -> None:
    _subscribers.clear()


# ---------- stores ----------

class SnapshotStore:
    """
    One persisted collection: load / save / subscribe.

    load() normalizes what it reads. When nothing (or an empty list) is
    stored yet, the seed loader is asked for initial records, which are then
    saved. A malformed snapshot is logged and replaced by the last good
    in-memory copy, or an empty list.
    """

    def __init__(
        self,
        key: str,
        signal: str,
        normalizer: Callable[[list], list[dict]],
        seed_loader: Callable[[], list | None] | None = None,
    ):
        self.key = key
        self.signal = signal
        self._normalizer = normalizer
        self._seed_loader = seed_loader
        self._last_good: list[dict] = []

    def load(self) -> list[dict]:
        init_db()
        try:
            stored = read_snapshot(self.key)
        except SnapshotDecodeError as exc:
            logger.warning("Unreadable snapshot, using last known state: {}", exc)
            return copy.deepcopy(self._last_good)

        if stored:
            self._last_good = self._normalizer(stored)
            return copy.deepcopy(self._last_good)

        seeded = self._seed_loader() if self._seed_loader else None
        if seeded:
            logger.info("Seeding {} with {} records", self.key, len(seeded))
            return self.save(seeded)
        return []

    def save(self, records: list[dict]) -> list[dict]:
        normalized = self._normalizer(records)
        try:
            init_db()
            write_snapshot(self.key, normalized)
        except sqlite3.Error as exc:
            logger.error("Could not persist {}: {}", self.key, exc)
            raise PanelError("Enregistrement impossible. Merci de réessayer.") from exc

        self._last_good = normalized
        publish(self.signal)
        return copy.deepcopy(normalized)

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        return subscribe(self.signal, callback)


class CachedView:
    """Read-only copy of a store held by one screen, refreshed on every broadcast."""

    def __init__(self, store: SnapshotStore):
        self._store = store
        self._records = store.load()
        self._unsubscribe = store.subscribe(self.refresh)

    def refresh(self) -> None:
        self._records = self._store.load()

    @property
    def records(self) -> list[dict]:
        return copy.deepcopy(self._records)

    def close(self) -> None:
        self._unsubscribe()
