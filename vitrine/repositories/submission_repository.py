import logging
import sqlite3
import uuid

from vitrine.db.connection import Database
from vitrine.db.schema import SUBMISSION_TABLES, quote, table_columns
from vitrine.errors import (
    InvalidTransitionError,
    NotFoundError,
    SchemaDriftError,
    UnauthenticatedError,
)
from vitrine.models.submission import (
    Submission,
    SubmissionKind,
    SubmissionStatus,
    check_transition,
    require_reason,
    utcnow_iso,
)
from vitrine.repositories.base import AbstractSubmissionRepository, Conn
from vitrine.repositories.field_resolver import SUBMISSION_FIELDS, status_values
from vitrine.schemas.submission import parse_payload

logger = logging.getLogger(__name__)


def _empty(value) -> bool:
    """Blank strings, empty lists and unset flags carry no data worth a column."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    return isinstance(value, (list, dict)) and not value


class SubmissionRepository(AbstractSubmissionRepository):
    def __init__(self, database: Database, kind: SubmissionKind) -> None:
        self.database = database
        self.kind = kind
        self.table = SUBMISSION_TABLES[kind]
        self._fields = SUBMISSION_FIELDS
        self._sql_table = quote(self.table.name)

    # -- helpers -----------------------------------------------------------

    def _present(self, conn: sqlite3.Connection) -> set[str]:
        present = set(table_columns(conn, self.table.name))
        if not present:
            raise SchemaDriftError(
                f"{self.database.label} store has no table {self.table.name}"
            )
        return present

    def _status_filter(self, status: SubmissionStatus, present: set[str]) -> tuple[str, tuple]:
        if "status" not in present:
            # A store without a status column has never reviewed anything.
            return ("1 = 1", ()) if status is SubmissionStatus.PENDING else ("0 = 1", ())
        values = status_values(status.value)
        placeholders = ", ".join("?" for _ in values)
        clause = f"lower(trim(status)) IN ({placeholders})"
        if status is SubmissionStatus.PENDING:
            clause = f"(status IS NULL OR trim(status) = '' OR {clause})"
        return clause, values

    def _order_by(self, present: set[str]) -> str:
        columns = [quote(c) for c in self._fields.columns_for("submitted_at", present)]
        if not columns:
            return "rowid DESC"
        expression = columns[0] if len(columns) == 1 else f"COALESCE({', '.join(columns)})"
        return f"{expression} DESC, rowid DESC"

    def _to_submission(self, row: sqlite3.Row) -> Submission:
        record = self._fields.resolve(self.table.decode(dict(row)))
        try:
            status = SubmissionStatus(record["status"])
        except ValueError as exc:
            raise SchemaDriftError(
                f"{self.table.name} row {record.get('id')} has unrecognised status {record['status']!r}"
            ) from exc
        return Submission(
            id=record["id"],
            kind=self.kind,
            status=status,
            submitter_id=record["submitter_id"],
            payload={name: record.get(name) for name in self.table.payload_names},
            submitted_at=record["submitted_at"],
            updated_at=record["updated_at"],
            reviewer_id=record["reviewer_id"],
            reviewer_comments=record["reviewer_comments"],
            reviewed_at=record["reviewed_at"],
        )

    def _select(self, conn: sqlite3.Connection, where: str, params: tuple, present: set[str]):
        rows = conn.execute(
            f"SELECT * FROM {self._sql_table} WHERE {where} ORDER BY {self._order_by(present)}",
            params,
        ).fetchall()
        return [self._to_submission(row) for row in rows]

    # -- reads -------------------------------------------------------------

    def list_by_status(self, status: SubmissionStatus, conn: Conn = None) -> list[Submission]:
        status = SubmissionStatus(status)
        with self.database.session(conn) as c:
            present = self._present(c)
            where, params = self._status_filter(status, present)
            return self._select(c, where, params, present)

    def list_by_submitter(self, submitter_id: str, conn: Conn = None) -> list[Submission]:
        with self.database.session(conn) as c:
            present = self._present(c)
            columns = self._fields.columns_for("submitter_id", present)
            if not columns:
                raise SchemaDriftError(f"{self.table.name} has no submitter column")
            where = " OR ".join(f"{quote(column)} = ?" for column in columns)
            return self._select(c, f"({where})", (submitter_id,) * len(columns), present)

    def get(self, submission_id: str, conn: Conn = None) -> Submission:
        with self.database.session(conn) as c:
            row = c.execute(
                f"SELECT * FROM {self._sql_table} WHERE id = ?", (submission_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"{self.kind.value} submission", submission_id)
        return self._to_submission(row)

    # -- writes ------------------------------------------------------------

    def create(self, payload: dict, submitter_id: str, conn: Conn = None) -> Submission:
        """
        Store a new submission from ``payload``. The status is forced to pending
        no matter what the payload carries, so submitters cannot self-approve.
        """
        if not submitter_id:
            raise UnauthenticatedError()
        clean = parse_payload(self.kind, payload)
        submission_id = str(uuid.uuid4())
        now = utcnow_iso()

        with self.database.transaction(conn) as c:
            present = self._present(c)
            # Optional fields left empty do not need a column; anything with data does.
            clean = {name: value for name, value in clean.items() if not _empty(value) or name in present}
            missing = [name for name in clean if name not in present]
            if missing:
                raise SchemaDriftError(
                    f"{self.table.name} is missing columns: {', '.join(sorted(missing))}"
                )
            submitter_columns = self._fields.columns_for("submitter_id", present)
            if not submitter_columns:
                raise SchemaDriftError(f"{self.table.name} has no submitter column")

            values = {"id": submission_id, **self.table.encode(clean)}
            # Write every alias column that exists so mirrored columns stay in sync.
            for field, value in (
                ("submitter_id", submitter_id),
                ("status", SubmissionStatus.PENDING.value),
                ("submitted_at", now),
                ("updated_at", now),
            ):
                for column in self._fields.columns_for(field, present):
                    values[column] = value

            columns = ", ".join(quote(column) for column in values)
            placeholders = ", ".join("?" for _ in values)
            c.execute(
                f"INSERT INTO {self._sql_table} ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            submission = self.get(submission_id, c)

        logger.info(
            "[submissions] created | kind=%s | id=%s | submitter=%s",
            self.kind.value, submission_id, submitter_id,
        )
        return submission

    def transition_status(
        self,
        submission_id: str,
        new_status: SubmissionStatus,
        reviewer_id: str,
        comments: str | None = None,
        conn: Conn = None,
    ) -> Submission:
        """
        Move a pending submission to approved or rejected.

        The update is conditioned on the stored status still being pending, so of
        two reviewers racing on the same submission exactly one wins; the other
        gets InvalidTransitionError.
        """
        target = SubmissionStatus(new_status)
        check_transition(SubmissionStatus.PENDING, target)
        if target is SubmissionStatus.REJECTED:
            comments = require_reason(comments)
        if not reviewer_id:
            raise UnauthenticatedError()
        now = utcnow_iso()

        with self.database.transaction(conn) as c:
            present = self._present(c)
            if "status" not in present:
                raise SchemaDriftError(f"{self.table.name} has no status column")
            if not self._fields.columns_for("reviewer_id", present):
                raise SchemaDriftError(f"{self.table.name} has no reviewer column")

            assignments = {"status": target.value}
            for field, value in (
                ("reviewer_id", reviewer_id),
                ("reviewer_comments", comments),
                ("reviewed_at", now),
                ("updated_at", now),
            ):
                for column in self._fields.columns_for(field, present):
                    assignments[column] = value

            pending_clause, pending_params = self._status_filter(SubmissionStatus.PENDING, present)
            set_clause = ", ".join(f"{quote(column)} = ?" for column in assignments)
            cursor = c.execute(
                f"UPDATE {self._sql_table} SET {set_clause} WHERE id = ? AND {pending_clause}",
                (*assignments.values(), submission_id, *pending_params),
            )
            if cursor.rowcount == 0:
                current = self.get(submission_id, c)
                raise InvalidTransitionError(
                    f"Submission {submission_id} was already {current.status.value}"
                )
            submission = self.get(submission_id, c)

        logger.info(
            "[submissions] %s | kind=%s | id=%s | reviewer=%s",
            target.value, self.kind.value, submission_id, reviewer_id,
        )
        return submission

    def delete(self, submission_id: str, conn: Conn = None) -> bool:
        with self.database.transaction(conn) as c:
            cursor = c.execute(f"DELETE FROM {self._sql_table} WHERE id = ?", (submission_id,))
            deleted = cursor.rowcount > 0
        if not deleted:
            logger.warning(
                "[submissions] delete found nothing | kind=%s | id=%s", self.kind.value, submission_id
            )
        return deleted
