"""SQLite database lifecycle, transactions and schema management.

The `Database` object is created once per process (or per test), opened
explicitly, and handed to the web layer through `app.state`. Each unit of
work gets its own connection and commits or rolls back as a whole.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generator, Iterable, Sequence

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/tutorhub.db")

SideEffect = Callable[[sqlite3.Connection], None]


def new_id() -> str:
    """Generate a new entity identifier."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class PostCommitHook:
    """A side effect that runs after its transaction commits."""

    name: str
    run: SideEffect


def row_to_dict(
    row: sqlite3.Row | None, json_columns: Iterable[str] = ()
) -> dict[str, Any] | None:
    """Convert a row to a plain dict, decoding JSON text columns."""
    if row is None:
        return None
    data = dict(row)
    for column in json_columns:
        value = data.get(column)
        if isinstance(value, str):
            data[column] = json.loads(value)
    return data


class Transaction:
    """A single unit of work on one connection.

    Collects post-commit hooks; `Database.transaction` runs them once the
    commit has succeeded.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.hooks: list[PostCommitHook] = []

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, tuple(params))

    def fetch_one(
        self, sql: str, params: Sequence[Any] = (), json_columns: Iterable[str] = ()
    ) -> dict[str, Any] | None:
        return row_to_dict(self.conn.execute(sql, tuple(params)).fetchone(), json_columns)

    def fetch_all(
        self, sql: str, params: Sequence[Any] = (), json_columns: Iterable[str] = ()
    ) -> list[dict[str, Any]]:
        rows = self.conn.execute(sql, tuple(params)).fetchall()
        return [row_to_dict(r, json_columns) for r in rows]

    def fetch_value(self, sql: str, params: Sequence[Any] = ()) -> Any:
        row = self.conn.execute(sql, tuple(params)).fetchone()
        return None if row is None else row[0]

    def update_row(
        self, table: str, key: dict[str, Any], values: dict[str, Any]
    ) -> int:
        """Update columns of the rows matching `key`.

        Table and column names must come from code, never from input.

        Returns:
            Number of rows changed
        """
        if not values:
            return 0
        assignments = ", ".join(f"{col} = ?" for col in values)
        conditions = " AND ".join(f"{col} = ?" for col in key)
        cursor = self.conn.execute(
            f"UPDATE {table} SET {assignments} WHERE {conditions}",
            (*values.values(), *key.values()),
        )
        return cursor.rowcount

    def after_commit(self, hook: PostCommitHook) -> None:
        """Register a side effect to run after this transaction commits."""
        self.hooks.append(hook)


class Database:
    """Persistence gateway with an explicit open/close lifecycle."""

    def __init__(self, path: Path | str | None = None, busy_timeout: float = 5.0):
        self.path = Path(path) if path is not None else DEFAULT_DB_PATH
        self.busy_timeout = busy_timeout
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """Create the database file and schema if needed, and accept work.

        Safe to call more than once.
        """
        if self._open:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._open = True
        with self.connect() as conn:
            _create_schema(conn)
        logger.info("database.initialized", path=str(self.path))

    def close(self) -> None:
        """Stop accepting work."""
        if self._open:
            self._open = False
            logger.info("database.closed", path=str(self.path))

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection as a context manager.

        Commits on success, rolls back on any exception.

        Yields:
            SQLite connection with row factory set to sqlite3.Row

        Raises:
            RuntimeError: If the database has not been opened
        """
        if not self._open:
            raise RuntimeError(f"Database at {self.path} is not open")

        conn = sqlite3.connect(self.path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[Transaction, None, None]:
        """Run a unit of work, then its post-commit hooks.

        Hooks only run when the transaction committed. Each hook gets its
        own connection; a failing hook is logged and does not affect the
        caller or the remaining hooks.

        Example:
            with db.transaction() as tx:
                tx.execute("UPDATE sessions SET status = ? WHERE id = ?", (...))
                tx.after_commit(notify(...))
        """
        with self.connect() as conn:
            tx = Transaction(conn)
            yield tx
        self._run_hooks(tx.hooks)

    def _run_hooks(self, hooks: list[PostCommitHook]) -> None:
        for hook in hooks:
            try:
                with self.connect() as conn:
                    hook.run(conn)
            except Exception:
                logger.exception("side_effect.failed", hook=hook.name)


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            full_name TEXT NOT NULL,
            role TEXT NOT NULL CHECK(role IN ('student', 'tutor', 'both', 'admin')),
            bio TEXT,
            avatar_url TEXT,
            phone TEXT,
            is_verified INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_login_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS user_settings (
            user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            notifications_enabled INTEGER NOT NULL DEFAULT 1,
            email_notifications INTEGER NOT NULL DEFAULT 1,
            theme TEXT NOT NULL DEFAULT 'light',
            language TEXT NOT NULL DEFAULT 'en',
            timezone TEXT NOT NULL DEFAULT 'UTC',
            privacy_level TEXT NOT NULL DEFAULT 'public'
        );

        CREATE TABLE IF NOT EXISTS subjects (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            category TEXT,
            description TEXT
        );

        CREATE TABLE IF NOT EXISTS user_subjects (
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject_id TEXT NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
            proficiency_level TEXT NOT NULL DEFAULT 'intermediate',
            PRIMARY KEY (user_id, subject_id)
        );

        CREATE TABLE IF NOT EXISTS tutor_profiles (
            user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            hourly_rate REAL NOT NULL DEFAULT 0,
            years_experience INTEGER NOT NULL DEFAULT 0,
            bio TEXT,
            education TEXT,
            certifications TEXT NOT NULL DEFAULT '[]',
            languages TEXT NOT NULL DEFAULT '[]',
            availability TEXT NOT NULL DEFAULT '{}',
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'approved', 'rejected', 'suspended')),
            status_reason TEXT,
            rating REAL NOT NULL DEFAULT 0,
            total_reviews INTEGER NOT NULL DEFAULT 0,
            total_sessions INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS coupons (
            id TEXT PRIMARY KEY,
            code TEXT NOT NULL UNIQUE,
            description TEXT,
            discount_type TEXT NOT NULL CHECK(discount_type IN ('percentage', 'fixed')),
            discount_value REAL NOT NULL,
            max_uses INTEGER,
            current_uses INTEGER NOT NULL DEFAULT 0,
            valid_from TEXT,
            valid_until TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES users(id),
            tutor_id TEXT NOT NULL REFERENCES users(id),
            subject_id TEXT REFERENCES subjects(id),
            coupon_id TEXT REFERENCES coupons(id),
            title TEXT NOT NULL,
            description TEXT,
            scheduled_at TEXT NOT NULL,
            duration INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'scheduled'
                CHECK(status IN ('scheduled', 'in_progress', 'completed', 'cancelled')),
            price REAL NOT NULL DEFAULT 0,
            meeting_link TEXT,
            notes TEXT,
            completed_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        -- One active booking per tutor and start time
        CREATE UNIQUE INDEX IF NOT EXISTS uq_sessions_tutor_slot
            ON sessions(tutor_id, scheduled_at)
            WHERE status IN ('scheduled', 'in_progress');

        CREATE TABLE IF NOT EXISTS reviews (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
            reviewer_id TEXT NOT NULL REFERENCES users(id),
            reviewee_id TEXT NOT NULL REFERENCES users(id),
            rating INTEGER NOT NULL CHECK(rating BETWEEN 1 AND 5),
            comment TEXT,
            created_at TEXT NOT NULL,
            UNIQUE (session_id, reviewer_id)
        );

        CREATE TABLE IF NOT EXISTS payments (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL REFERENCES sessions(id),
            student_id TEXT NOT NULL REFERENCES users(id),
            tutor_id TEXT NOT NULL REFERENCES users(id),
            amount REAL NOT NULL,
            platform_fee REAL NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'completed', 'failed', 'refunded')),
            payment_method TEXT,
            transaction_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS disputes (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL REFERENCES sessions(id),
            reporter_id TEXT NOT NULL REFERENCES users(id),
            reported_id TEXT NOT NULL REFERENCES users(id),
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'open' CHECK(status IN ('open', 'resolved')),
            resolution TEXT,
            resolved_by TEXT REFERENCES users(id),
            resolved_at TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject_id TEXT REFERENCES subjects(id),
            title TEXT NOT NULL,
            description TEXT,
            file_name TEXT NOT NULL,
            file_url TEXT NOT NULL,
            file_type TEXT NOT NULL,
            file_size INTEGER NOT NULL DEFAULT 0,
            category TEXT,
            tags TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS favorite_documents (
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
            created_at TEXT NOT NULL,
            PRIMARY KEY (user_id, document_id)
        );

        CREATE TABLE IF NOT EXISTS shared_documents (
            document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
            shared_by_user_id TEXT NOT NULL REFERENCES users(id),
            shared_with_user_id TEXT NOT NULL REFERENCES users(id),
            permissions TEXT NOT NULL DEFAULT 'view' CHECK(permissions IN ('view', 'edit')),
            shared_at TEXT NOT NULL,
            PRIMARY KEY (document_id, shared_with_user_id)
        );

        CREATE TABLE IF NOT EXISTS exams (
            id TEXT PRIMARY KEY,
            tutor_id TEXT NOT NULL REFERENCES users(id),
            subject_id TEXT REFERENCES subjects(id),
            title TEXT NOT NULL,
            description TEXT,
            duration INTEGER NOT NULL,
            total_marks INTEGER NOT NULL,
            passing_marks INTEGER NOT NULL,
            questions TEXT NOT NULL DEFAULT '[]',
            scheduled_at TEXT,
            due_at TEXT,
            status TEXT NOT NULL DEFAULT 'draft' CHECK(status IN ('draft', 'published')),
            published_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS exam_submissions (
            id TEXT PRIMARY KEY,
            exam_id TEXT NOT NULL REFERENCES exams(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES users(id),
            answers TEXT NOT NULL DEFAULT '[]',
            score REAL,
            passed INTEGER,
            feedback TEXT,
            status TEXT NOT NULL DEFAULT 'submitted' CHECK(status IN ('submitted', 'graded')),
            submitted_at TEXT NOT NULL,
            graded_at TEXT,
            UNIQUE (exam_id, student_id)
        );

        CREATE TABLE IF NOT EXISTS planner_items (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject_id TEXT REFERENCES subjects(id),
            title TEXT NOT NULL,
            description TEXT,
            item_type TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT,
            priority TEXT NOT NULL DEFAULT 'medium' CHECK(priority IN ('low', 'medium', 'high')),
            priority_rank INTEGER NOT NULL DEFAULT 2,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'in_progress', 'completed', 'cancelled')),
            related_id TEXT,
            reminder_time TEXT,
            is_recurring INTEGER NOT NULL DEFAULT 0,
            recurrence_pattern TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS messages (
            id TEXT PRIMARY KEY,
            sender_id TEXT NOT NULL REFERENCES users(id),
            receiver_id TEXT NOT NULL REFERENCES users(id),
            content TEXT NOT NULL,
            attachment_url TEXT,
            attachment_type TEXT,
            is_read INTEGER NOT NULL DEFAULT 0,
            read_at TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            is_read INTEGER NOT NULL DEFAULT 0,
            scheduled_for TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS activity_log (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type TEXT NOT NULL,
            description TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS learning_progress (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject_id TEXT NOT NULL REFERENCES subjects(id),
            progress_percentage REAL NOT NULL DEFAULT 0,
            hours_studied REAL NOT NULL DEFAULT 0,
            last_studied_at TEXT,
            UNIQUE (user_id, subject_id)
        );

        CREATE TABLE IF NOT EXISTS achievements (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            description TEXT,
            icon TEXT,
            criteria TEXT NOT NULL DEFAULT '{}'
        );

        CREATE TABLE IF NOT EXISTS user_achievements (
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id TEXT NOT NULL REFERENCES achievements(id),
            earned_at TEXT NOT NULL,
            PRIMARY KEY (user_id, achievement_id)
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_student ON sessions(student_id);
        CREATE INDEX IF NOT EXISTS idx_sessions_tutor ON sessions(tutor_id);
        CREATE INDEX IF NOT EXISTS idx_sessions_scheduled ON sessions(scheduled_at);
        CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, receiver_id);
        CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read);
        CREATE INDEX IF NOT EXISTS idx_activity_user ON activity_log(user_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_planner_user ON planner_items(user_id, start_time);
        CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(user_id);
        CREATE INDEX IF NOT EXISTS idx_payments_tutor ON payments(tutor_id, status);
        """
    )
