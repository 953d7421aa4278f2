from collections import namedtuple
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import json
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any, Callable, Dict, List, Optional

from focus_signal.config.config import RetentionConfig
from focus_signal.config.settings import settings
from focus_signal.models.activity import ActivityCategory, ActivityRecord
from focus_signal.models.recommendations import BreakRecord
from focus_signal.models.work_pattern import DailyWorkPattern
from focus_signal.models.work_session import SessionState, WorkSession
from focus_signal.services.errors import DatabaseError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

MIGRATIONS = [
    """
    -- Raw activity log
    CREATE TABLE IF NOT EXISTS activities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        app_name TEXT NOT NULL,
        window_title TEXT,
        url TEXT,
        category TEXT,
        duration_seconds INTEGER DEFAULT 0,
        is_distraction INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    );

    -- Completed work sessions
    CREATE TABLE IF NOT EXISTS focus_sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_uid TEXT UNIQUE NOT NULL,
        type TEXT CHECK(type IN ('focus', 'break', 'meeting')) DEFAULT 'focus',
        duration_minutes REAL NOT NULL,
        quality_score INTEGER,
        distractions_count INTEGER DEFAULT 0,
        context_switches INTEGER DEFAULT 0,
        apps_touched TEXT DEFAULT '[]',
        qualified INTEGER DEFAULT 0,
        started_at TEXT NOT NULL,
        ended_at TEXT
    );

    -- One row per calendar date
    CREATE TABLE IF NOT EXISTS daily_work_pattern (
        date TEXT PRIMARY KEY,
        work_minutes REAL NOT NULL DEFAULT 0,
        focus_score REAL NOT NULL DEFAULT 0,
        breaks_taken INTEGER NOT NULL DEFAULT 0,
        late_night_minutes REAL NOT NULL DEFAULT 0,
        early_morning_minutes REAL NOT NULL DEFAULT 0,
        weekend_work INTEGER NOT NULL DEFAULT 0
    );

    -- Break recommendations taken or skipped
    CREATE TABLE IF NOT EXISTS break_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        break_type TEXT NOT NULL,
        taken INTEGER NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_activities_created_at ON activities(created_at);
    CREATE INDEX IF NOT EXISTS idx_activities_app_name ON activities(app_name);
    CREATE INDEX IF NOT EXISTS idx_focus_sessions_started_at ON focus_sessions(started_at);
    CREATE INDEX IF NOT EXISTS idx_break_history_created_at ON break_history(created_at);
    """
]

PendingWrite = namedtuple("PendingWrite", ["kind", "payload"])

class DatabaseConnectionError(DatabaseError):
    """Exception raised when database connection fails"""
    pass

class QueryError(DatabaseError):
    """Exception raised when a database query fails"""
    pass

@dataclass
class WriteResult:
    """Outcome of a store write.

    A failed write is queued and retried on the next write, so ``ok=False``
    means durability is delayed, not that the data is gone.
    """
    ok: bool
    row_id: Optional[int] = None
    error: Optional[str] = None
    pending: int = 0

def _ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)

def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace(' ', 'T'))

def _day_bounds(day: date):
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)

class DatabaseManager:
    """SQLite-backed store for activities, sessions, daily patterns and breaks.

    Every public method takes the same re-entrant lock, which makes the
    manager the single serialization point when the tracker, the assessor and
    the web layer share it.
    """

    # Oldest queued writes are dropped beyond this
    MAX_PENDING_WRITES = 500

    def __init__(
        self,
        db_path=None,
        retention: Optional[RetentionConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize database manager

        Args:
            db_path: SQLite file path or ":memory:". Defaults to settings.DEFAULT_DB_PATH
            retention: Retention horizons and compaction cadence
            clock: Source of "now", injectable for tests
        """
        self.db_path = str(db_path or settings.DEFAULT_DB_PATH)
        self.retention = retention or RetentionConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._pending: List[PendingWrite] = []
        self._last_compaction: Optional[datetime] = None
        self.conn: Optional[sqlite3.Connection] = None
        logger.info(f"Initialized DatabaseManager with db_path: {self.db_path}")
        self.initialize()

    def initialize(self):
        """Initialize database schema"""
        try:
            with self._lock:
                if self.conn is None:
                    self.conn = self.get_connection()
                for migration in MIGRATIONS:
                    self.conn.executescript(migration)
                self.conn.commit()
                logger.info("Database initialization complete")
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}")
            raise DatabaseError(f"Failed to initialize database: {e}")

    def get_connection(self) -> sqlite3.Connection:
        """Open a new connection with the standard pragmas"""
        if self.db_path != ":memory:":
            db_path = Path(self.db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db_path_str = str(db_path)
        else:
            db_path_str = self.db_path

        try:
            conn = sqlite3.connect(db_path_str, check_same_thread=False)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(f"Could not open {db_path_str}: {e}")
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if self.db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    @property
    def pending_writes(self) -> int:
        with self._lock:
            return len(self._pending)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_activity(self, record: ActivityRecord) -> WriteResult:
        """Append a classified observation to the activity log"""
        return self._write(PendingWrite("activity", record))

    def store_work_session(self, session: WorkSession, quality_score: Optional[float] = None) -> WriteResult:
        """Persist a closed work session"""
        return self._write(PendingWrite("work_session", (session.snapshot(), quality_score)))

    def upsert_daily_pattern(self, pattern: DailyWorkPattern) -> WriteResult:
        """Insert or replace the pattern row for ``pattern.date``"""
        return self._write(PendingWrite("daily_pattern", pattern))

    def record_break(self, record: BreakRecord) -> WriteResult:
        return self._write(PendingWrite("break", record))

    def _write(self, write: PendingWrite) -> WriteResult:
        with self._lock:
            if write.kind == "daily_pattern":
                self._drop_superseded(write.payload.date)
            self._flush_pending()
            try:
                row_id = self._apply(write)
            except sqlite3.Error as e:
                self._enqueue(write)
                logger.error(
                    f"Failed to store {write.kind}, queued for retry "
                    f"({len(self._pending)} pending): {e}"
                )
                return WriteResult(ok=False, error=str(e), pending=len(self._pending))

            self.maybe_compact()
            return WriteResult(ok=True, row_id=row_id, pending=len(self._pending))

    def _apply(self, write: PendingWrite) -> Optional[int]:
        if self.conn is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        handler = getattr(self, f"_insert_{write.kind}")
        try:
            row_id = handler(write.payload)
            self.conn.commit()
            return row_id
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def _enqueue(self, write: PendingWrite) -> None:
        self._pending.append(write)
        while len(self._pending) > self.MAX_PENDING_WRITES:
            dropped = self._pending.pop(0)
            logger.warning(f"Retry queue full, dropping pending {dropped.kind} write")

    def _drop_superseded(self, day: date) -> None:
        """Forget queued pattern upserts for a day that is about to be rewritten"""
        before = len(self._pending)
        self._pending = [
            w for w in self._pending
            if not (w.kind == "daily_pattern" and w.payload.date == day)
        ]
        if len(self._pending) < before:
            logger.info(f"Dropped {before - len(self._pending)} superseded pattern write(s) for {day}")

    def _flush_pending(self) -> None:
        """Retry queued writes in order, stopping at the first failure"""
        while self._pending:
            write = self._pending[0]
            try:
                self._apply(write)
            except sqlite3.Error as e:
                logger.warning(f"Retry of pending {write.kind} failed: {e}")
                return
            self._pending.pop(0)
            logger.info(f"Flushed pending {write.kind} write")

    def _insert_activity(self, record: ActivityRecord) -> int:
        cursor = self.conn.execute("""
            INSERT INTO activities (
                app_name, window_title, url, category,
                duration_seconds, is_distraction, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            record.app_name,
            record.window_title,
            record.url,
            record.category.value,
            record.duration_seconds,
            1 if record.is_distraction else 0,
            _ts(record.created_at)
        ))
        return cursor.lastrowid

    def _insert_work_session(self, payload) -> int:
        session, quality_score = payload
        cursor = self.conn.execute("""
            INSERT INTO focus_sessions (
                session_uid, type, duration_minutes, quality_score,
                distractions_count, context_switches, apps_touched,
                qualified, started_at, ended_at
            ) VALUES (?, 'focus', ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_uid) DO UPDATE SET
                duration_minutes = excluded.duration_minutes,
                quality_score = excluded.quality_score,
                distractions_count = excluded.distractions_count,
                context_switches = excluded.context_switches,
                apps_touched = excluded.apps_touched,
                qualified = excluded.qualified,
                ended_at = excluded.ended_at
        """, (
            session.id,
            session.continuous_minutes,
            round(quality_score) if quality_score is not None else None,
            session.distractions,
            session.context_switches,
            json.dumps(sorted(session.apps_touched)),
            1 if session.qualified else 0,
            _ts(session.start_time),
            _ts(session.end_time) if session.end_time else None
        ))
        return cursor.lastrowid

    def _insert_daily_pattern(self, pattern: DailyWorkPattern) -> int:
        cursor = self.conn.execute("""
            INSERT INTO daily_work_pattern (
                date, work_minutes, focus_score, breaks_taken,
                late_night_minutes, early_morning_minutes, weekend_work
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(date) DO UPDATE SET
                work_minutes = excluded.work_minutes,
                focus_score = excluded.focus_score,
                breaks_taken = excluded.breaks_taken,
                late_night_minutes = excluded.late_night_minutes,
                early_morning_minutes = excluded.early_morning_minutes,
                weekend_work = excluded.weekend_work
        """, (
            pattern.date.isoformat(),
            pattern.work_minutes,
            pattern.focus_score,
            pattern.breaks_taken,
            pattern.late_night_minutes,
            pattern.early_morning_minutes,
            1 if pattern.weekend_work else 0
        ))
        return cursor.lastrowid

    def _insert_break(self, record: BreakRecord) -> int:
        cursor = self.conn.execute("""
            INSERT INTO break_history (break_type, taken, created_at)
            VALUES (?, ?, ?)
        """, (record.break_type, 1 if record.taken else 0, _ts(record.created_at)))
        return cursor.lastrowid

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _query(self, sql: str, params=()) -> List[sqlite3.Row]:
        with self._lock:
            if self.conn is None:
                raise QueryError("Database connection is closed")
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                logger.error(f"Query failed: {e}")
                raise QueryError(f"Query failed: {e}")

    def get_activities_between(self, start: datetime, end: datetime) -> List[ActivityRecord]:
        """Get activity records with start <= created_at < end, oldest first"""
        rows = self._query("""
            SELECT * FROM activities
            WHERE created_at >= ? AND created_at < ?
            ORDER BY created_at ASC, id ASC
        """, (_ts(start), _ts(end)))
        return [
            ActivityRecord(
                id=row["id"],
                app_name=row["app_name"],
                window_title=row["window_title"] or "",
                url=row["url"],
                category=ActivityCategory(row["category"]),
                duration_seconds=row["duration_seconds"] or 0,
                created_at=_parse_ts(row["created_at"])
            ) for row in rows
        ]

    def get_activities_on(self, day: date) -> List[ActivityRecord]:
        return self.get_activities_between(*_day_bounds(day))

    def get_today_activities(self) -> List[ActivityRecord]:
        return self.get_activities_on(self._clock().date())

    def get_work_sessions(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        qualified_only: bool = False,
    ) -> List[WorkSession]:
        """Get persisted sessions that started in [start, end), newest first"""
        clauses, params = [], []
        if start is not None:
            clauses.append("started_at >= ?")
            params.append(_ts(start))
        if end is not None:
            clauses.append("started_at < ?")
            params.append(_ts(end))
        if qualified_only:
            clauses.append("qualified = 1")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self._query(f"""
            SELECT * FROM focus_sessions
            {where}
            ORDER BY started_at DESC
        """, params)
        return [
            WorkSession(
                id=row["session_uid"],
                start_time=_parse_ts(row["started_at"]),
                end_time=_parse_ts(row["ended_at"]),
                continuous_minutes=row["duration_minutes"],
                apps_touched=set(json.loads(row["apps_touched"] or "[]")),
                state=SessionState.CLOSED,
                qualified=bool(row["qualified"]),
                context_switches=row["context_switches"] or 0,
                distractions=row["distractions_count"] or 0
            ) for row in rows
        ]

    def get_sessions_on(self, day: date, qualified_only: bool = False) -> List[WorkSession]:
        start, end = _day_bounds(day)
        return self.get_work_sessions(start, end, qualified_only=qualified_only)

    def _row_to_pattern(self, row: sqlite3.Row) -> DailyWorkPattern:
        return DailyWorkPattern(
            date=date.fromisoformat(row["date"]),
            work_minutes=row["work_minutes"],
            focus_score=row["focus_score"],
            breaks_taken=row["breaks_taken"],
            late_night_minutes=row["late_night_minutes"],
            early_morning_minutes=row["early_morning_minutes"],
            weekend_work=bool(row["weekend_work"])
        )

    def get_daily_pattern(self, day: date) -> Optional[DailyWorkPattern]:
        rows = self._query("SELECT * FROM daily_work_pattern WHERE date = ?", (day.isoformat(),))
        return self._row_to_pattern(rows[0]) if rows else None

    def get_recent_patterns(self, limit: int = 14) -> List[DailyWorkPattern]:
        """Get the most recent ``limit`` patterns, oldest first"""
        rows = self._query("""
            SELECT * FROM daily_work_pattern
            ORDER BY date DESC
            LIMIT ?
        """, (limit,))
        return [self._row_to_pattern(row) for row in reversed(rows)]

    def get_patterns_between(self, start: date, end: date) -> List[DailyWorkPattern]:
        """Get patterns with start <= date <= end, oldest first"""
        rows = self._query("""
            SELECT * FROM daily_work_pattern
            WHERE date BETWEEN ? AND ?
            ORDER BY date ASC
        """, (start.isoformat(), end.isoformat()))
        return [self._row_to_pattern(row) for row in rows]

    def get_breaks_on(self, day: date) -> List[BreakRecord]:
        start, end = _day_bounds(day)
        rows = self._query("""
            SELECT * FROM break_history
            WHERE created_at >= ? AND created_at < ?
            ORDER BY created_at ASC, id ASC
        """, (_ts(start), _ts(end)))
        return [
            BreakRecord(
                id=row["id"],
                break_type=row["break_type"],
                taken=bool(row["taken"]),
                created_at=_parse_ts(row["created_at"])
            ) for row in rows
        ]

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def maybe_compact(self, now: Optional[datetime] = None) -> Optional[Dict[str, int]]:
        """Run a retention pass if the compaction interval has elapsed"""
        now = now or self._clock()
        interval = timedelta(minutes=self.retention.compaction_interval_minutes)
        with self._lock:
            if self._last_compaction is not None and now - self._last_compaction < interval:
                return None
            try:
                return self.compact(now)
            except DatabaseError:
                return None

    def compact(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Drop rows older than each table's retention horizon

        Returns:
            Dict mapping table name to the number of rows deleted
        """
        now = now or self._clock()
        today = now.date()
        horizons = {
            "daily_work_pattern": ("date", (today - timedelta(days=self.retention.pattern_days)).isoformat()),
            "break_history": ("created_at", _ts(now - timedelta(days=self.retention.break_days))),
            "activities": ("created_at", _ts(now - timedelta(days=self.retention.activity_days))),
            "focus_sessions": ("started_at", _ts(now - timedelta(days=self.retention.session_days))),
        }

        with self._lock:
            if self.conn is None:
                raise DatabaseError("Database connection is closed")
            deleted = {}
            try:
                for table, (column, cutoff) in horizons.items():
                    cursor = self.conn.execute(f"DELETE FROM {table} WHERE {column} < ?", (cutoff,))
                    deleted[table] = cursor.rowcount
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error(f"Compaction failed: {e}")
                raise DatabaseError(f"Compaction failed: {e}")

            self._last_compaction = now
            if any(deleted.values()):
                logger.info(f"Compaction removed {deleted}")
            return deleted

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def optimize(self) -> None:
        """Run database optimizations"""
        with self._lock:
            try:
                logger.info("Running database optimizations...")
                self.conn.execute("PRAGMA optimize")
                self.conn.execute("ANALYZE")
                # VACUUM is pointless for in-memory databases
                if self.db_path != ":memory:":
                    self.conn.execute("VACUUM")
                logger.info("Database optimizations complete")
            except sqlite3.Error as e:
                logger.error(f"Failed to optimize database: {e}")
                raise DatabaseError(f"Optimization failed: {e}")

    def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics"""
        with self._lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute("""
                    SELECT
                        name,
                        (SELECT COUNT(*) FROM sqlite_master WHERE type='index' AND tbl_name=m.name) as index_count
                    FROM sqlite_master m
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """)

                tables = {}
                for table_name, index_count in cursor.fetchall():
                    cursor.execute(f"SELECT COUNT(*) FROM {table_name}")
                    tables[table_name] = {
                        "row_count": cursor.fetchone()[0],
                        "index_count": index_count
                    }

                cursor.execute("""
                    SELECT MIN(created_at), MAX(created_at), COUNT(*)
                    FROM activities
                """)
                oldest, newest, total = cursor.fetchone()

                if self.db_path == ":memory:":
                    db_size = 0
                else:
                    db_size = Path(self.db_path).stat().st_size / (1024 * 1024)

                return {
                    "tables": tables,
                    "database_size_mb": db_size,
                    "pending_writes": len(self._pending),
                    "time_range": {
                        "oldest": oldest,
                        "newest": newest,
                        "total_records": total
                    }
                }
            except sqlite3.Error as e:
                logger.error(f"Failed to get database stats: {e}")
                raise DatabaseError(f"Failed to get database stats: {e}")

    def verify_database_integrity(self) -> bool:
        """Run integrity check on the database

        Returns:
            bool: True if database is healthy

        Raises:
            DatabaseError: If integrity check fails
        """
        with self._lock:
            try:
                result = self.conn.execute("PRAGMA integrity_check").fetchone()[0]
                if result != "ok":
                    logger.error(f"Database integrity check failed: {result}")
                    return False

                if self.conn.execute("PRAGMA foreign_key_check").fetchone() is not None:
                    logger.error("Foreign key violations found")
                    return False

                return True
            except sqlite3.Error as e:
                logger.error(f"Failed to verify database integrity: {e}")
                raise DatabaseError(f"Integrity check failed: {e}")

    def close(self):
        """Close database connection"""
        with self._lock:
            if self.conn is None:
                return
            if self._pending:
                self._flush_pending()
            if self._pending:
                logger.warning(f"Closing with {len(self._pending)} unsaved writes")
            try:
                self.conn.close()
                self.conn = None
                logger.info("Database connection closed.")
            except sqlite3.Error as e:
                logger.error(f"Error closing database: {e}")
            finally:
                self.conn = None
