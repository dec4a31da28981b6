import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from vitrine.errors import (
    InvalidTransitionError,
    SchemaDriftError,
    StoreError,
    StoreUnavailableError,
    VitrineError,
)

logger = logging.getLogger(__name__)

# Messages raised by the store-level guards installed in db/repairs.py.
FINAL_STATUS_MESSAGE = "status is final"
IMMUTABLE_SUBMITTER_MESSAGE = "submitter is immutable"

_TRANSIENT_MARKERS = ("database is locked", "database table is locked", "database is busy",
                      "unable to open database", "disk i/o error")
_DRIFT_MARKERS = ("no such table", "no such column", "has no column named")


def get_connection(db_path: str, timeout: float = 10.0) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and row factory enabled.

    The connection is in autocommit mode; callers open transactions explicitly.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def translate_error(exc: sqlite3.Error) -> VitrineError:
    """Map a sqlite3 error onto the pipeline's error taxonomy."""
    message = str(exc)
    lowered = message.lower()
    if FINAL_STATUS_MESSAGE in lowered:
        return InvalidTransitionError()
    if "unique constraint failed" in lowered and "source_submission_id" in lowered:
        return InvalidTransitionError("Submission was already published")
    if any(marker in lowered for marker in _TRANSIENT_MARKERS):
        return StoreUnavailableError(message)
    if any(marker in lowered for marker in _DRIFT_MARKERS):
        return SchemaDriftError(message)
    return StoreError(message)


def _rollback(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        logger.exception("[db] rollback failed")


class Database:
    """A SQLite file playing the role of one store (submissions or catalog)."""

    def __init__(self, path: str, label: str, timeout: float = 10.0) -> None:
        self.path = path
        self.label = label
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"Database(label={self.label!r}, path={self.path!r})"

    def same_store(self, other: "Database") -> bool:
        if ":memory:" in (self.path, other.path):
            return self is other
        return Path(self.path).resolve() == Path(other.path).resolve()

    def connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.path, self.timeout)
        except sqlite3.Error as exc:
            raise translate_error(exc) from exc
        except OSError as exc:
            raise StoreUnavailableError(f"cannot open {self.label} store: {exc}") from exc

    @contextmanager
    def session(self, conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Connection for reads. Reuses ``conn`` when the caller already holds one."""
        if conn is not None:
            yield conn
            return
        conn = self.connect()
        try:
            yield conn
        except sqlite3.Error as exc:
            raise translate_error(exc) from exc
        finally:
            conn.close()

    @contextmanager
    def transaction(self, conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Write transaction (BEGIN IMMEDIATE). Nested use joins the outer transaction."""
        if conn is not None:
            yield conn
            return
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            _rollback(conn)
            raise translate_error(exc) from exc
        except BaseException:
            _rollback(conn)
            raise
        finally:
            conn.close()


def run_migrations(database: Database, tables: Sequence, migrations: Sequence) -> list[str]:
    """Apply any unapplied migrations to ``database``. Returns the names applied."""
    with database.transaction() as conn:
        # Ensure tracking table exists
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        applied = {row["name"] for row in conn.execute("SELECT name FROM _schema_migrations")}

    applied_now = []
    for migration in migrations:
        if migration.name in applied:
            continue
        logger.info("Applying migration: %s | store=%s", migration.name, database.label)
        with database.transaction() as conn:
            migration.apply(conn, tables)
            conn.execute("INSERT INTO _schema_migrations (name) VALUES (?)", (migration.name,))
        applied_now.append(migration.name)
        logger.info("Migration applied: %s | store=%s", migration.name, database.label)
    return applied_now
