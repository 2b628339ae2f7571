# jobmap/models/db.py - Configuration, logging and snapshot key/value storage

import os
import logging
import sqlite3
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

try:
    import psycopg  # psycopg v3
except Exception:
    psycopg = None  # optional, only required when DATABASE_URL is set

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

# ------------------------- Config --------------------------------------------

def _normalize_pg_url(url: str) -> str:
    if not url or not url.startswith(("postgres://", "postgresql://")):
        return url
    parsed = urlparse(url)
    query_pairs = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)]
    # libpq rejects the pgbouncer flag that pooled Supabase URLs carry.
    query_pairs = [(k, v) for k, v in query_pairs if k.lower() != "pgbouncer"]
    if not any(k.lower() == "sslmode" for k, _ in query_pairs):
        query_pairs.append(("sslmode", "require"))
    if not any(k.lower() == "connect_timeout" for k, _ in query_pairs):
        query_pairs.append(("connect_timeout", "5"))
    return urlunparse(parsed._replace(query=urlencode(query_pairs)))


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_SQLITE_PATH = str(PROJECT_ROOT / "data" / "jobmap.db")
_DEFAULT_JOBS_SOURCE = str(PROJECT_ROOT / "data" / "all_jobs.json")

def _sqlite_path() -> str:
    return os.getenv("DB_PATH") or _DEFAULT_SQLITE_PATH

def _jobs_source() -> str:
    return (os.getenv("JOBS_SOURCE") or "").strip() or _DEFAULT_JOBS_SOURCE

# Prefer DATABASE_URL for Postgres; fallback to SUPABASE_URL for backwards-compat
_DATABASE_RAW = (os.getenv("DATABASE_URL") or os.getenv("SUPABASE_URL") or "").strip()
DATABASE_URL = _normalize_pg_url(_DATABASE_RAW)
PER_PAGE_MAX = int(_env_float("PER_PAGE_MAX", 100))  # safety cap
SNAPSHOT_MAX_AGE_HOURS = _env_float("SNAPSHOT_MAX_AGE_HOURS", 24)
SEARCH_CACHE_TTL = _env_float("SEARCH_CACHE_TTL", 600)  # seconds
JOBS_FETCH_TIMEOUT = _env_float("JOBS_FETCH_TIMEOUT", 15)  # seconds

# ------------------------- Logging -------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("jobmap")

# ------------------------- Errors --------------------------------------------

class JobmapError(Exception):
    """Base class for errors raised by the jobs engine."""


class LoadError(JobmapError):
    """The bulk job source could not be fetched or parsed."""


class IndexNotReadyError(JobmapError):
    """A search ran before the index was built."""

# ------------------------- Key/Value Storage ---------------------------------

_KV_TABLE = "kv_store"


class SqliteKeyValueStore:
    """String key/value pairs persisted in a local SQLite file."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or _sqlite_path()

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {_KV_TABLE} (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        return conn

    def get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT value FROM {_KV_TABLE} WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO {_KV_TABLE}(key, value) VALUES(?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(f"DELETE FROM {_KV_TABLE} WHERE key = ?", (key,))
        finally:
            conn.close()


class PostgresKeyValueStore:
    """Same contract as SqliteKeyValueStore, backed by Postgres."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or DATABASE_URL
        if not self.url:
            raise RuntimeError("DATABASE_URL not set")
        self._table_ready = False

    def _connect(self):
        if psycopg is None:
            raise RuntimeError("psycopg is required for Postgres snapshot storage")
        conn = psycopg.connect(self.url, autocommit=True)
        if not self._table_ready:
            with conn.cursor() as cur:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS {_KV_TABLE} (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
            self._table_ready = True
        return conn

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(f"SELECT value FROM {_KV_TABLE} WHERE key = %s", (key,))
            row = cur.fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO {_KV_TABLE}(key, value) VALUES(%s, %s) "
                "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(f"DELETE FROM {_KV_TABLE} WHERE key = %s", (key,))


def get_kv_store():
    """Return the snapshot store selected by configuration."""
    if DATABASE_URL:
        return PostgresKeyValueStore(DATABASE_URL)
    return SqliteKeyValueStore(_sqlite_path())
