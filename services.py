"""Report storage and the submission/query boundaries.

Reports are kept in SQLite for local development or PostgreSQL when
``DATABASE_URL`` points at one.  All storage functions take an open
connection from ``get_connection``.  Driver errors are re-raised as
``StorageError``; the wait status itself is computed in ``status.py`` and
never stored.

Redis is optional.  When ``REDIS_URL`` is set it holds a short-lived
"already reported" marker per device and clinic so repeat submissions can be
turned away without a database round trip.  The database check is the one
that counts.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, List, Optional, Tuple

import redis

from clinics import get_clinic
from errors import RateLimited, StorageError, ValidationError
from models import Report, StatusResult, WaitBucket
from status import FRESHNESS_WINDOW, compute_status

logger = logging.getLogger(__name__)

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_FILENAME = os.path.join(PROJECT_DIR, "reports.db")

DATABASE_URL = os.getenv("DATABASE_URL")
REDIS_URL = os.getenv("REDIS_URL")

REPORT_COOLDOWN = timedelta(minutes=60)

_redis_client: Optional[redis.Redis] = None
_sqlite_write_lock = threading.Lock()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_postgres() -> bool:
    return bool(DATABASE_URL) and DATABASE_URL.startswith("postgres")


def database_backend() -> str:
    return "PostgreSQL" if _is_postgres() else "SQLite"


def _driver_errors() -> Tuple[type, ...]:
    if _is_postgres():
        import psycopg2

        return (sqlite3.Error, psycopg2.Error)
    return (sqlite3.Error,)


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except _driver_errors() as e:
        logger.error("Storage failure while %s: %s", action, e)
        raise StorageError(f"Database error while {action}") from e


def get_redis() -> Optional[redis.Redis]:
    """Get Redis client if configured."""
    global _redis_client
    if not REDIS_URL:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(REDIS_URL, decode_responses=True)
            _redis_client.ping()
        except redis.RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            _redis_client = None

    return _redis_client


def get_connection():
    """Return a database connection (PostgreSQL if configured, else SQLite)."""
    if _is_postgres():
        try:
            import psycopg2
        except ImportError as e:
            raise StorageError("PostgreSQL configured but psycopg2 is not installed") from e
        try:
            return psycopg2.connect(DATABASE_URL)
        except psycopg2.Error as e:
            logger.error("PostgreSQL connection failed: %s", e)
            raise StorageError("Database unreachable") from e

    db_path = DATABASE_URL or DEFAULT_DB_FILENAME
    try:
        conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10)
    except sqlite3.Error as e:
        logger.error("SQLite connection failed for %s: %s", db_path, e)
        raise StorageError("Database unreachable") from e
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn) -> None:
    """Create the reports table and indexes if they do not exist."""
    id_column = "id SERIAL PRIMARY KEY" if _is_postgres() else "id INTEGER PRIMARY KEY AUTOINCREMENT"
    statements = [
        f"""
        CREATE TABLE IF NOT EXISTS reports (
            {id_column},
            clinic_id TEXT NOT NULL,
            wait_bucket TEXT NOT NULL,
            created_at TEXT NOT NULL,
            device_id TEXT
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_reports_clinic_created ON reports (clinic_id, created_at)",
        "CREATE INDEX IF NOT EXISTS idx_reports_device ON reports (clinic_id, device_id, created_at)",
    ]
    with _storage_errors("initialising schema"):
        cur = conn.cursor()
        for statement in statements:
            cur.execute(statement)
        conn.commit()


# ===== ROW HELPERS =====

def _sql(query: str) -> str:
    """Queries are written with ``?`` placeholders; psycopg2 wants ``%s``."""
    return query.replace("?", "%s") if _is_postgres() else query


def _execute(conn, query: str, params: Tuple[Any, ...] = ()):
    cur = conn.cursor()
    cur.execute(_sql(query), params)
    return cur


def _to_db_time(value: datetime) -> str:
    # Fixed-width UTC text so string comparison matches time order.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_report(row) -> Report:
    report_id, clinic_id, wait_bucket, created_at, device_id = row
    try:
        bucket: Any = WaitBucket(wait_bucket)
    except ValueError:
        logger.warning("Report %s has unrecognised wait_bucket %r", report_id, wait_bucket)
        bucket = wait_bucket
    return Report(
        id=report_id,
        clinic_id=clinic_id,
        wait_bucket=bucket,
        created_at=_from_db_time(created_at),
        device_id=device_id,
    )


_REPORT_COLUMNS = "id, clinic_id, wait_bucket, created_at, device_id"


# ===== REPORT REPOSITORY =====

def _insert(conn, clinic_id: str, bucket: WaitBucket, device_id: Optional[str], now: datetime) -> Report:
    created_at = _to_db_time(now)
    if _is_postgres():
        cur = _execute(
            conn,
            "INSERT INTO reports (clinic_id, wait_bucket, created_at, device_id)"
            " VALUES (?, ?, ?, ?) RETURNING id",
            (clinic_id, bucket.value, created_at, device_id),
        )
        report_id = cur.fetchone()[0]
    else:
        cur = _execute(
            conn,
            "INSERT INTO reports (clinic_id, wait_bucket, created_at, device_id) VALUES (?, ?, ?, ?)",
            (clinic_id, bucket.value, created_at, device_id),
        )
        report_id = cur.lastrowid
    return Report(
        id=report_id,
        clinic_id=clinic_id,
        wait_bucket=bucket,
        created_at=_from_db_time(created_at),
        device_id=device_id,
    )


def insert_report(
    conn,
    clinic_id: str,
    wait_bucket: WaitBucket,
    device_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Report:
    """Store one report.  ``created_at`` is always the server's clock."""
    bucket = WaitBucket.parse(wait_bucket)
    with _storage_errors("inserting report"):
        report = _insert(conn, clinic_id, bucket, device_id, now or utcnow())
        conn.commit()
    logger.info("Created report %s for clinic %s (%s)", report.id, clinic_id, bucket.value)
    return report


def list_recent_reports(conn, clinic_id: str, since: datetime) -> List[Report]:
    """Reports for ``clinic_id`` with ``created_at >= since``, newest first."""
    with _storage_errors("listing reports"):
        cur = _execute(
            conn,
            f"SELECT {_REPORT_COLUMNS} FROM reports"
            " WHERE clinic_id = ? AND created_at >= ? ORDER BY created_at DESC, id DESC",
            (clinic_id, _to_db_time(since)),
        )
        rows = cur.fetchall()
    return [_row_to_report(tuple(row)) for row in rows]


def _latest_device_report(conn, clinic_id: str, device_id: str, since: datetime) -> Optional[datetime]:
    cur = _execute(
        conn,
        "SELECT MAX(created_at) FROM reports WHERE clinic_id = ? AND device_id = ? AND created_at > ?",
        (clinic_id, device_id, _to_db_time(since)),
    )
    row = cur.fetchone()
    return _from_db_time(row[0]) if row and row[0] else None


@contextmanager
def _device_transaction(conn, clinic_id: str, device_id: str) -> Iterator[None]:
    """Serialise check-then-insert for one device/clinic pair."""
    if _is_postgres():
        try:
            _execute(conn, "SELECT pg_advisory_xact_lock(hashtext(?))", (f"{clinic_id}:{device_id}",))
            yield
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        return

    with _sqlite_write_lock:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield
            conn.commit()
        except BaseException:
            conn.rollback()
            raise


# ===== SUBMISSION AND QUERY BOUNDARIES =====

def validate_clinic_id(clinic_id: Optional[str]) -> str:
    if not clinic_id or not str(clinic_id).strip():
        raise ValidationError("clinic_id is required")
    clinic_id = str(clinic_id).strip()
    if get_clinic(clinic_id) is None:
        raise ValidationError(f"Unknown clinic_id: {clinic_id}")
    return clinic_id


def submit_report(
    conn,
    clinic_id: Optional[str],
    wait_bucket: Any,
    device_id: Optional[str],
    now: Optional[datetime] = None,
) -> Report:
    """Accept a visitor's report if the device has not reported here recently.

    Raises ``ValidationError`` for bad input, ``RateLimited`` when the same
    device reported for the same clinic less than an hour ago and
    ``StorageError`` when the database fails.
    """
    clinic_id = validate_clinic_id(clinic_id)
    if wait_bucket is None or wait_bucket == "":
        raise ValidationError("wait_bucket is required")
    bucket = WaitBucket.parse(wait_bucket)
    if not device_id or not device_id.strip():
        raise ValidationError("device_id is required")
    device_id = device_id.strip()
    now = now or utcnow()

    cached = cached_cooldown_remaining(clinic_id, device_id)
    if cached is not None:
        logger.info("Rejected report for clinic %s: cached cooldown", clinic_id)
        raise RateLimited(clinic_id, retry_after=cached)

    with _storage_errors("submitting report"):
        with _device_transaction(conn, clinic_id, device_id):
            last = _latest_device_report(conn, clinic_id, device_id, now - REPORT_COOLDOWN)
            if last is not None:
                retry_after = max(1, int((last + REPORT_COOLDOWN - now).total_seconds()))
                logger.info("Rejected report for clinic %s: device reported at %s", clinic_id, last.isoformat())
                raise RateLimited(clinic_id, retry_after=retry_after)
            report = _insert(conn, clinic_id, bucket, device_id, now)

    logger.info("Created report %s for clinic %s (%s)", report.id, clinic_id, bucket.value)
    cache_cooldown(clinic_id, device_id)
    return report


def has_recent_report(conn, clinic_id: str, device_id: str, now: Optional[datetime] = None) -> bool:
    """Whether this device already reported for the clinic within the cooldown."""
    now = now or utcnow()
    with _storage_errors("checking recent report"):
        return _latest_device_report(conn, clinic_id, device_id, now - REPORT_COOLDOWN) is not None


def ping_database(conn) -> None:
    """Round trip to the database; raises ``StorageError`` on failure."""
    with _storage_errors("checking database health"):
        _execute(conn, "SELECT 1").fetchone()


def get_recent_reports(conn, clinic_id: str, now: Optional[datetime] = None) -> List[Report]:
    """Reports young enough to influence the status, newest first."""
    now = now or utcnow()
    return list_recent_reports(conn, clinic_id, now - FRESHNESS_WINDOW)


def get_clinic_status(conn, clinic_id: str, now: Optional[datetime] = None) -> StatusResult:
    now = now or utcnow()
    reports = get_recent_reports(conn, clinic_id, now)
    return compute_status(clinic_id, reports, now)


# ===== REDIS COOLDOWN CACHE =====

def _cooldown_key(clinic_id: str, device_id: str) -> str:
    return f"report_cooldown:{clinic_id}:{device_id}"


def cache_cooldown(clinic_id: str, device_id: str) -> None:
    """Remember a fresh submission in Redis for the cooldown period."""
    redis_client = get_redis()
    if redis_client:
        try:
            redis_client.setex(_cooldown_key(clinic_id, device_id), int(REPORT_COOLDOWN.total_seconds()), 1)
        except redis.RedisError as e:
            logger.warning("Redis cooldown cache error: %s", e)


def cached_cooldown_remaining(clinic_id: str, device_id: str) -> Optional[int]:
    """Seconds left on a cached cooldown, or None when nothing is cached."""
    redis_client = get_redis()
    if not redis_client:
        return None
    try:
        ttl = redis_client.ttl(_cooldown_key(clinic_id, device_id))
    except redis.RedisError as e:
        logger.warning("Redis cooldown lookup error: %s", e)
        return None
    if ttl is None or ttl == -2:
        return None
    if ttl < 0:
        # Key without expiry: treat it as a full cooldown.
        return int(REPORT_COOLDOWN.total_seconds())
    return max(1, int(ttl))
