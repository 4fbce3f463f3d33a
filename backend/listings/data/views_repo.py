"""
View counts per service in a small SQLite table, plus the in-memory guard that
lets each client session count a service at most once.
"""
import sqlite3
from collections import OrderedDict
from pathlib import Path
from threading import Lock

SESSION_GUARD_MAX_ENTRIES = 10_000


def init_views_db(db_path: str | Path) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS service_views (
                service_id TEXT PRIMARY KEY,
                views INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.commit()


def get_views(db_path: str | Path, service_id: str) -> int:
    db_path = Path(db_path)
    if not db_path.exists():
        return 0
    with sqlite3.connect(db_path) as conn:
        try:
            row = conn.execute(
                "SELECT views FROM service_views WHERE service_id = ?",
                (service_id,),
            ).fetchone()
        except sqlite3.OperationalError:
            # Table not created yet
            return 0
    return int(row[0]) if row else 0


def get_all_views(db_path: str | Path) -> dict[str, int]:
    db_path = Path(db_path)
    if not db_path.exists():
        return {}
    with sqlite3.connect(db_path) as conn:
        try:
            rows = conn.execute("SELECT service_id, views FROM service_views").fetchall()
        except sqlite3.OperationalError:
            return {}
    return {r[0]: int(r[1]) for r in rows}


def increment_view(db_path: str | Path, service_id: str) -> int:
    """Add one view for service_id and return the new stored count."""
    init_views_db(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO service_views (service_id, views) VALUES (?, 1)
            ON CONFLICT(service_id) DO UPDATE SET views = views + 1
            """,
            (service_id,),
        )
        row = conn.execute(
            "SELECT views FROM service_views WHERE service_id = ?",
            (service_id,),
        ).fetchone()
        conn.commit()
    return int(row[0])


class SessionViewGuard:
    """Remembers (session_id, service_id) pairs already counted. Not durable; oldest pairs are evicted."""

    def __init__(self, max_entries: int = SESSION_GUARD_MAX_ENTRIES):
        self._max_entries = max_entries
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()
        self._lock = Lock()

    def first_view(self, session_id: str, service_id: str) -> bool:
        key = (session_id, service_id)
        with self._lock:
            if key in self._seen:
                return False
            self._seen[key] = None
            if len(self._seen) > self._max_entries:
                self._seen.popitem(last=False)
            return True

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
