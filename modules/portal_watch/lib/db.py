from __future__ import annotations

import contextlib
import os
import sqlite3
from collections.abc import Iterable, Iterator

from .errors import PersistenceFailure
from .logging_bridge import error as log_error
from .models import Posting, Source, Subscriber
from .utils import now_iso

# ---- Public API -------------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with _session(sqlite_path) as conn:
        _ensure_schema(conn)


# ---- Sources ----------------------------------------------------------------


def fetch_sources(sqlite_path: str) -> list[Source]:
    """All configured sources, in insertion order."""
    with _session(sqlite_path) as conn:
        rows = conn.execute("SELECT id, name, url, structured, cursor_id FROM sources ORDER BY id").fetchall()
    return [
        Source(id=int(r[0]), name=r[1], url=r[2], structured=bool(r[3]), cursor_id=r[4])
        for r in rows
    ]


def upsert_source(sqlite_path: str, name: str, url: str, structured: bool = True) -> int:
    """
    Insert a source or update its url/flag by name. The cursor is preserved.
    Returns the source id.
    """
    with _session(sqlite_path) as conn:
        conn.execute(
            """
            INSERT INTO sources (name, url, structured) VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET url = excluded.url, structured = excluded.structured
            """,
            (name.strip(), url.strip(), 1 if structured else 0),
        )
        (source_id,) = conn.execute("SELECT id FROM sources WHERE name = ?", (name.strip(),)).fetchone()
    return int(source_id)


def update_cursor(sqlite_path: str, source_id: int, external_id: str) -> None:
    """Overwrite a source's cursor."""
    try:
        with _session(sqlite_path) as conn:
            conn.execute("UPDATE sources SET cursor_id = ? WHERE id = ?", (external_id, source_id))
    except sqlite3.Error as e:
        log_error({
            "component": "portal_watch.db",
            "op": "update_cursor",
            "sqlite_path": sqlite_path,
            "source_id": source_id,
            "error": repr(e),
        })
        raise PersistenceFailure(f"cursor update failed for source {source_id}: {e}") from e


# ---- Postings ---------------------------------------------------------------


def posting_exists(sqlite_path: str, external_id: str, source_id: int) -> bool:
    try:
        with _session(sqlite_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM postings WHERE external_id = ? AND source_id = ? LIMIT 1",
                (external_id, source_id),
            ).fetchone()
    except sqlite3.Error as e:
        raise PersistenceFailure(f"lookup failed for {external_id!r}: {e}") from e
    return row is not None


def insert_batch(sqlite_path: str, postings: Iterable[Posting]) -> int:
    """
    Insert postings in one transaction and return how many rows were NEW.

    Dedupe key: (external_id, source_id). Existing pairs are ignored and not
    counted. On any sqlite error nothing is committed and PersistenceFailure
    is raised.
    """
    inserted = 0
    ts = now_iso()
    try:
        with _session(sqlite_path) as conn:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                for p in postings:
                    cur.execute(
                        """
                        INSERT OR IGNORE INTO postings
                          (external_id, source_id, title, location, url, first_seen_utc)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (p.external_id.strip(), p.source_id, p.title.strip(), p.location, p.url.strip(), ts),
                    )
                    if cur.rowcount == 1:
                        inserted += 1
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
    except sqlite3.Error as e:
        log_error({
            "component": "portal_watch.db",
            "op": "insert_batch",
            "sqlite_path": sqlite_path,
            "error": repr(e),
        })
        raise PersistenceFailure(f"batch insert failed: {e}") from e
    return inserted


def latest_postings(sqlite_path: str, limit: int = 20) -> list[tuple[str, str, str, str | None, str, str]]:
    """
    Most recently recorded postings as
    (source_name, external_id, title, location, url, first_seen_utc).
    """
    with _session(sqlite_path) as conn:
        rows = conn.execute(
            """
            SELECT s.name, p.external_id, p.title, p.location, p.url, p.first_seen_utc
            FROM postings p JOIN sources s ON s.id = p.source_id
            ORDER BY p.first_seen_utc DESC, p.id DESC
            LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
    return [tuple(r) for r in rows]


# ---- Subscribers ------------------------------------------------------------


def add_subscriber(sqlite_path: str, email: str, name: str | None = None) -> bool:
    """Add a subscriber; returns False if the email is already subscribed."""
    with _session(sqlite_path) as conn:
        cur = conn.execute(
            "INSERT OR IGNORE INTO subscribers (name, email) VALUES (?, ?)",
            ((name or "").strip() or None, email.strip()),
        )
        return cur.rowcount == 1


def fetch_subscribers(sqlite_path: str) -> list[Subscriber]:
    with _session(sqlite_path) as conn:
        rows = conn.execute("SELECT email, name FROM subscribers ORDER BY id").fetchall()
    return [Subscriber(email=r[0], name=r[1]) for r in rows]


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def count_rows(sqlite_path: str, table: str = "postings") -> int:
    """Return total rows in a table; 0 if DB missing/empty."""
    if table not in {"postings", "sources", "subscribers"}:
        raise ValueError(f"unknown table {table!r}")
    if not os.path.exists(sqlite_path):
        return 0
    with _session(sqlite_path) as conn:
        (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Store binding ----------------------------------------------------------


class SqliteStore:
    """The store interface the engine consumes, bound to one database file."""

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path

    def init(self) -> None:
        init_db(self.sqlite_path)

    def fetch_sources(self) -> list[Source]:
        return fetch_sources(self.sqlite_path)

    def upsert_source(self, name: str, url: str, structured: bool = True) -> int:
        return upsert_source(self.sqlite_path, name, url, structured)

    def exists(self, external_id: str, source_id: int) -> bool:
        return posting_exists(self.sqlite_path, external_id, source_id)

    def insert_batch(self, postings: Iterable[Posting]) -> int:
        return insert_batch(self.sqlite_path, postings)

    def update_cursor(self, source_id: int, external_id: str) -> None:
        update_cursor(self.sqlite_path, source_id, external_id)

    def fetch_subscribers(self) -> list[Subscriber]:
        return fetch_subscribers(self.sqlite_path)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


@contextlib.contextmanager
def _session(sqlite_path: str) -> Iterator[sqlite3.Connection]:
    # sqlite3's own context manager only commits; this one also closes.
    conn = _connect(sqlite_path)
    try:
        _apply_pragmas(conn)
        yield conn
    finally:
        conn.close()


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; transactions are explicit.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA temp_store=MEMORY;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sources (
          id INTEGER PRIMARY KEY,
          name TEXT NOT NULL UNIQUE,
          url  TEXT NOT NULL,
          cursor_id TEXT,
          structured INTEGER NOT NULL DEFAULT 1
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS postings (
          id INTEGER PRIMARY KEY,
          external_id TEXT NOT NULL,
          source_id INTEGER NOT NULL REFERENCES sources(id),
          title TEXT NOT NULL,
          location TEXT,
          url   TEXT NOT NULL,
          first_seen_utc TEXT NOT NULL,
          UNIQUE (external_id, source_id)
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS subscribers (
          id INTEGER PRIMARY KEY,
          name TEXT,
          email TEXT NOT NULL UNIQUE
        );
        """
    )
