"""
Check-in store: durable log of check-in attempts plus the system config table.

The store owns the SQLAlchemy engine and is shared by every request. Writes
are serialized through a store-level lock (SQLite allows a single writer);
reads run concurrently. Connectivity failures are retried a bounded number of
times with a fixed delay before a ``StorageConnectivityError`` is raised.
Every other database failure is translated into a ``StorageQueryError`` that
says whether the client or the store caused it.
"""
import threading
import time
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, SystemClock
from app.core.constants import CHECKIN_STATUSES, DEFAULT_QUERY_LIMIT, OTP_SECRET_KEY
from app.core.exceptions import (
    ErrorCodes,
    ServiceUnavailableError,
    StorageConnectivityError,
    StorageError,
    StorageQueryError,
    ValidationError,
)
from app.core.logging_config import get_logger, mask_code, mask_phone_number
from app.core.utils import day_bounds, to_utc
from app.db.base import Base
from app.db.models import CheckIn, SystemConfig
from app.db.session import create_db_engine, make_session_factory

logger = get_logger(__name__)

T = TypeVar("T")

# Substrings of driver messages that indicate a transient connectivity problem
_CONNECTIVITY_MARKERS = (
    "unable to open database",
    "database is locked",
    "disk i/o error",
    "could not connect",
    "connection refused",
    "server closed the connection",
    "connection reset",
    "connection timed out",
)
_READ_ONLY_MARKERS = ("readonly database", "read-only", "read only")


def _message(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc).lower()


class CheckInStore:
    """Persistence and query surface over check-in attempts and configuration."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        clock: Optional[Clock] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if database_url is None and engine is None:
            raise ValueError("Either database_url or engine is required")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.database_url = database_url or str(engine.url)
        self._engine = engine
        self._session_factory = make_session_factory(engine) if engine is not None else None
        self.clock = clock or SystemClock()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._write_lock = threading.Lock()
        self._connected = False
        self.connection_retries = 0

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> "CheckInStore":
        """
        Open the database and verify it answers ``SELECT 1``.

        Retries connectivity failures ``max_retries`` times with a fixed
        ``retry_delay`` between attempts.

        Raises:
            StorageConnectivityError: If every attempt failed
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                if self._engine is None:
                    self._engine = create_db_engine(self.database_url)
                    self._session_factory = make_session_factory(self._engine)
                with self._engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                self._connected = True
                self.connection_retries = 0
                logger.info("database_connected", attempts=attempt, dialect=self._engine.dialect.name)
                return self
            except (SQLAlchemyError, OSError) as exc:
                last_error = exc
                self.connection_retries = attempt
                logger.error(
                    "database_connection_attempt_failed",
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=str(exc),
                )
                if attempt < self.max_retries:
                    self._sleep(self.retry_delay)

        raise StorageConnectivityError(
            "Database connection failed",
            details={"operation": "connect", "attempts": self.max_retries, "original_error": str(last_error)},
        )

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("database_connection_closed")
        self._connected = False

    def create_schema(self) -> None:
        """Create the check_ins and system_config tables if missing."""
        self._require_connected("create schema")
        with self._write_lock:
            self._with_retry("create_schema", lambda: Base.metadata.create_all(bind=self._engine))
        logger.info("database_schema_ready")

    def drop_schema(self) -> None:
        self._require_connected("drop schema")
        with self._write_lock:
            self._with_retry("drop_schema", lambda: Base.metadata.drop_all(bind=self._engine))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_connected(self, operation: str) -> None:
        if not self._connected or self._engine is None:
            raise StorageConnectivityError(
                "Database not connected",
                details={"operation": operation},
            )

    @staticmethod
    def _is_connectivity_error(exc: SQLAlchemyError) -> bool:
        if getattr(exc, "connection_invalidated", False):
            return True
        if not isinstance(exc, OperationalError):
            return False
        message = _message(exc)
        return any(marker in message for marker in _CONNECTIVITY_MARKERS)

    @staticmethod
    def _translate(exc: SQLAlchemyError, operation: str) -> StorageQueryError:
        message = _message(exc)
        details = {"operation": operation, "original_error": str(getattr(exc, "orig", exc))[:200]}

        if isinstance(exc, IntegrityError):
            return StorageQueryError("Database constraint violation", kind=StorageQueryError.CONSTRAINT, details=details)
        if any(marker in message for marker in _READ_ONLY_MARKERS):
            return StorageQueryError("Database is read-only", kind=StorageQueryError.READ_ONLY, details=details)
        return StorageQueryError("Database query failed", kind=StorageQueryError.FAILED, details=details)

    def _with_retry(self, operation: str, fn: Callable[[], T]) -> T:
        """Run ``fn``, retrying connectivity failures and translating the rest."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return fn()
            except SQLAlchemyError as exc:
                if not self._is_connectivity_error(exc):
                    logger.error("database_query_failed", operation=operation, error=str(exc)[:200])
                    raise self._translate(exc, operation) from exc

                logger.warning(
                    "database_connectivity_error",
                    operation=operation,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=str(exc)[:200],
                )
                if attempt == self.max_retries:
                    raise StorageConnectivityError(
                        "Database unavailable",
                        details={"operation": operation, "attempts": attempt},
                    ) from exc
                self._sleep(self.retry_delay)

        raise AssertionError("unreachable")

    def _read(self, operation: str, fn: Callable[[Session], T]) -> T:
        self._require_connected(operation)

        def run() -> T:
            with self._session_factory() as session:
                return fn(session)

        return self._with_retry(operation, run)

    def _write(self, operation: str, fn: Callable[[Session], T]) -> T:
        self._require_connected(operation)

        def run() -> T:
            with self._session_factory() as session:
                try:
                    result = fn(session)
                    session.commit()
                    return result
                except BaseException:
                    session.rollback()
                    raise

        with self._write_lock:
            return self._with_retry(operation, run)

    @staticmethod
    def _to_record(row: CheckIn) -> Dict[str, Any]:
        return {
            "id": row.id,
            "phone_number": row.phone_number,
            "otp": row.otp,
            "validation_status": row.validation_status,
            "timestamp": to_utc(row.timestamp),
            "created_at": to_utc(row.created_at) if row.created_at else None,
        }

    # ------------------------------------------------------------------
    # Check-in records
    # ------------------------------------------------------------------

    def record_attempt(
        self,
        phone_number: str,
        otp: str,
        validation_status: str,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """
        Insert an immutable check-in record.

        Args:
            phone_number: Canonical subject id
            otp: The code as presented
            validation_status: One of valid, expired, invalid, error
            timestamp: Attempt instant (defaults to the store clock)

        Returns:
            The new record id

        Raises:
            StorageQueryError: On an unknown status or any constraint violation
            StorageConnectivityError: If the store stays unreachable
        """
        if validation_status not in CHECKIN_STATUSES:
            raise StorageQueryError(
                "Database constraint violation",
                kind=StorageQueryError.CONSTRAINT,
                details={"operation": "record_attempt", "validation_status": validation_status},
            )

        attempt_time = to_utc(timestamp) if timestamp is not None else self.clock.now()
        # Generated once so a retried insert can never produce a second row
        record_id = uuid.uuid4().hex

        def insert(session: Session) -> str:
            session.add(CheckIn(
                id=record_id,
                phone_number=phone_number,
                otp=otp,
                validation_status=validation_status,
                timestamp=attempt_time,
                created_at=self.clock.now(),
            ))
            return record_id

        try:
            self._write("record_attempt", insert)
        except StorageError as exc:
            logger.error(
                "checkin_record_failed",
                phone_number=mask_phone_number(phone_number),
                otp=mask_code(otp),
                validation_status=validation_status,
                error=exc.message,
            )
            raise

        logger.info(
            "checkin_recorded",
            checkin_id=record_id,
            phone_number=mask_phone_number(phone_number),
            otp=mask_code(otp),
            validation_status=validation_status,
            timestamp=attempt_time.isoformat(),
        )
        return record_id

    def query_by_date_range(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """Check-ins whose timestamp falls on ``start_date``..``end_date`` (UTC, inclusive), newest first."""
        lower, upper = day_bounds(start_date, end_date)

        def query(session: Session) -> List[Dict[str, Any]]:
            rows = session.scalars(
                select(CheckIn)
                .where(CheckIn.timestamp >= lower, CheckIn.timestamp < upper)
                .order_by(CheckIn.timestamp.desc(), CheckIn.created_at.desc())
            ).all()
            return [self._to_record(row) for row in rows]

        results = self._read("query_by_date_range", query)
        logger.debug(
            "checkins_by_date_range",
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            count=len(results),
        )
        return results

    def query_by_phone(self, phone_number: str, limit: int = DEFAULT_QUERY_LIMIT) -> List[Dict[str, Any]]:
        """Most recent check-ins for one subject, capped at ``limit``."""

        def query(session: Session) -> List[Dict[str, Any]]:
            rows = session.scalars(
                select(CheckIn)
                .where(CheckIn.phone_number == phone_number)
                .order_by(CheckIn.timestamp.desc(), CheckIn.created_at.desc())
                .limit(limit)
            ).all()
            return [self._to_record(row) for row in rows]

        results = self._read("query_by_phone", query)
        logger.debug(
            "checkins_by_phone",
            phone_number=mask_phone_number(phone_number),
            limit=limit,
            count=len(results),
        )
        return results

    def query_today(self) -> List[Dict[str, Any]]:
        """Check-ins for the current UTC calendar day."""
        today = self.clock.now().date()
        return self.query_by_date_range(today, today)

    def stats(self, start_date: date, end_date: date) -> Dict[str, Any]:
        """
        Aggregate check-ins over an inclusive date range.

        Returns:
            Dictionary with total, counts_by_status (every status present,
            zero when absent), unique_subjects, start_date and end_date
        """
        lower, upper = day_bounds(start_date, end_date)
        in_range = (CheckIn.timestamp >= lower, CheckIn.timestamp < upper)

        def query(session: Session) -> Dict[str, Any]:
            by_status = session.execute(
                select(CheckIn.validation_status, func.count())
                .where(*in_range)
                .group_by(CheckIn.validation_status)
            ).all()
            unique_subjects = session.scalar(
                select(func.count(func.distinct(CheckIn.phone_number))).where(*in_range)
            )
            return {"by_status": by_status, "unique_subjects": unique_subjects or 0}

        raw = self._read("stats", query)

        counts = {status: 0 for status in CHECKIN_STATUSES}
        for status, count in raw["by_status"]:
            counts[status] = count

        return {
            "total": sum(counts.values()),
            "counts_by_status": counts,
            "unique_subjects": raw["unique_subjects"],
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        }

    def purge_older_than(self, days: int) -> int:
        """
        Delete check-ins whose timestamp is older than ``days`` days.

        Returns:
            Number of deleted records
        """
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValidationError(
                "Retention days must be a non-negative integer",
                code=ErrorCodes.INVALID_LIMIT,
                details={"provided_value": str(days)[:20]},
            )

        cutoff = self.clock.now() - timedelta(days=days)

        def delete(session: Session) -> int:
            result = session.execute(
                CheckIn.__table__.delete().where(CheckIn.timestamp < cutoff)
            )
            return result.rowcount or 0

        deleted = self._write("purge_older_than", delete)
        logger.info("checkins_purged", days_old=days, cutoff=cutoff.isoformat(), deleted_count=deleted)
        return deleted

    def count(self) -> int:
        return self._read("count", lambda session: session.scalar(select(func.count()).select_from(CheckIn)) or 0)

    # ------------------------------------------------------------------
    # System config
    # ------------------------------------------------------------------

    def get_config(self, key: str) -> Optional[str]:
        def query(session: Session) -> Optional[str]:
            row = session.get(SystemConfig, key)
            return row.value if row is not None else None

        return self._read("get_config", query)

    def set_config(self, key: str, value: str) -> None:
        """Insert or replace a configuration value."""

        def upsert(session: Session) -> None:
            now = self.clock.now()
            row = session.get(SystemConfig, key)
            if row is None:
                session.add(SystemConfig(key=key, value=value, updated_at=now))
            else:
                row.value = value
                row.updated_at = now

        self._write("set_config", upsert)
        logger.info("config_updated", key=key)

    def ensure_config(self, key: str, value: str) -> str:
        """
        Insert ``value`` under ``key`` unless a value already exists.

        Returns:
            The value stored after the call (the existing one when present)
        """

        def insert_if_absent(session: Session) -> str:
            row = session.get(SystemConfig, key)
            if row is not None:
                return row.value
            session.add(SystemConfig(key=key, value=value, updated_at=self.clock.now()))
            return value

        try:
            return self._write("ensure_config", insert_if_absent)
        except StorageQueryError as exc:
            if not exc.client_caused:
                raise
            # Another writer inserted the key first
            existing = self.get_config(key)
            if existing is None:
                raise
            return existing

    def get_all_config(self) -> Dict[str, str]:
        def query(session: Session) -> Dict[str, str]:
            return {row.key: row.value for row in session.scalars(select(SystemConfig)).all()}

        return self._read("get_all_config", query)

    def delete_config(self, key: str) -> bool:
        def delete(session: Session) -> bool:
            row = session.get(SystemConfig, key)
            if row is None:
                return False
            session.delete(row)
            return True

        return self._write("delete_config", delete)

    def get_otp_secret(self) -> str:
        """
        Raises:
            ServiceUnavailableError: If the secret was never bootstrapped
        """
        secret = self.get_config(OTP_SECRET_KEY)
        if not secret:
            raise ServiceUnavailableError(
                "OTP secret not configured. Run database initialization.",
                details={"service": "otp_secret"},
            )
        return secret

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_status(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            record_count = self.count()
        except StorageError as exc:
            return {
                "status": "unhealthy",
                "connected": self._connected,
                "error": exc.message,
                "retries": self.connection_retries,
            }
        return {
            "status": "healthy",
            "connected": True,
            "dialect": self._engine.dialect.name,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "record_count": record_count,
            "retries": self.connection_retries,
        }
