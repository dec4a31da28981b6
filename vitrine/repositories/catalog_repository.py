import logging
import sqlite3
import uuid

from vitrine.db.connection import Database
from vitrine.db.schema import CATALOG_TABLES, quote, table_columns
from vitrine.errors import NotFoundError, SchemaDriftError, ValidationError
from vitrine.models.catalog import CatalogEntry
from vitrine.models.submission import SubmissionKind, utcnow_iso
from vitrine.repositories.base import AbstractCatalogRepository, Conn

logger = logging.getLogger(__name__)

# Columns that catalog management may not touch.
_READ_ONLY = frozenset({"id", "source_submission_id", "created_at", "updated_at"})

_PYTHON_TYPES = {"TEXT": (str,), "REAL": (int, float), "INTEGER": (int,)}


class CatalogRepository(AbstractCatalogRepository):
    def __init__(self, database: Database, kind: SubmissionKind) -> None:
        self.database = database
        self.kind = kind
        self.table = CATALOG_TABLES[kind]
        self._sql_table = quote(self.table.name)

    def _present(self, conn: sqlite3.Connection) -> set[str]:
        present = set(table_columns(conn, self.table.name))
        if not present:
            raise SchemaDriftError(f"{self.database.label} store has no table {self.table.name}")
        return present

    def _require_columns(self, names, present: set[str]) -> None:
        missing = sorted(name for name in names if name not in present)
        if missing:
            raise SchemaDriftError(f"{self.table.name} is missing columns: {', '.join(missing)}")

    def _check_values(self, values: dict) -> None:
        problems = []
        for name, value in values.items():
            column = self.table.column(name)
            if value is None:
                if column.not_null:
                    problems.append(f"{name} may not be null")
                continue
            if column.codec == "json":
                valid = isinstance(value, list)
            elif column.codec == "bool":
                valid = isinstance(value, bool)
            else:
                valid = isinstance(value, _PYTHON_TYPES[column.type]) and not isinstance(value, bool)
            if not valid:
                problems.append(f"{name} must be {column.codec or column.type.lower()}")
        if problems:
            raise ValidationError(f"Invalid {self.table.name} update: {'; '.join(problems)}")

    def _to_entry(self, row: sqlite3.Row) -> CatalogEntry:
        record = self.table.decode(dict(row))
        return CatalogEntry(
            id=record["id"],
            kind=self.kind,
            active=bool(record.get("active", True)),
            featured=bool(record.get("featured", False)),
            order_index=record.get("order_index") or 0,
            fields={name: record.get(name) for name in self.table.payload_names},
            created_at=record.get("created_at"),
            updated_at=record.get("updated_at"),
        )

    def _list(self, where: str, conn: Conn) -> list[CatalogEntry]:
        with self.database.session(conn) as c:
            self._present(c)
            rows = c.execute(
                f"SELECT * FROM {self._sql_table} {where} ORDER BY order_index ASC, created_at ASC"
            ).fetchall()
        return [self._to_entry(row) for row in rows]

    def insert(
        self, draft: dict, source_submission_id: str | None = None, conn: Conn = None
    ) -> CatalogEntry:
        """
        Publish ``draft`` under a new id. Defaults to active, not featured, at the
        baseline position. A catalog table lacking a column the draft needs is
        reported as drift instead of publishing a truncated entry.
        """
        unknown = sorted(set(draft) - set(self.table.column_names))
        if unknown:
            raise ValidationError(f"Unknown {self.table.name} fields: {', '.join(unknown)}")
        now = utcnow_iso()
        values = {
            "id": str(uuid.uuid4()),
            "source_submission_id": source_submission_id,
            "active": True,
            "featured": False,
            "order_index": 0,
            "created_at": now,
            "updated_at": now,
        }
        values.update({key: value for key, value in draft.items() if key not in _READ_ONLY})

        with self.database.transaction(conn) as c:
            self._require_columns(values, self._present(c))
            encoded = self.table.encode(values)
            columns = ", ".join(quote(column) for column in encoded)
            placeholders = ", ".join("?" for _ in encoded)
            c.execute(
                f"INSERT INTO {self._sql_table} ({columns}) VALUES ({placeholders})",
                tuple(encoded.values()),
            )
            entry = self.get(values["id"], c)

        logger.info(
            "[catalog] published | kind=%s | id=%s | source=%s",
            self.kind.value, entry.id, source_submission_id,
        )
        return entry

    def get(self, entry_id: str, conn: Conn = None) -> CatalogEntry:
        with self.database.session(conn) as c:
            row = c.execute(f"SELECT * FROM {self._sql_table} WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"{self.kind.value} catalog entry", entry_id)
        return self._to_entry(row)

    def update(self, entry_id: str, patch: dict, conn: Conn = None) -> CatalogEntry:
        editable = set(self.table.column_names) - _READ_ONLY
        unknown = sorted(set(patch) - editable)
        if unknown:
            raise ValidationError(f"Cannot update {self.table.name} fields: {', '.join(unknown)}")
        if not patch:
            return self.get(entry_id, conn)
        self._check_values(patch)

        values = {**patch, "updated_at": utcnow_iso()}
        with self.database.transaction(conn) as c:
            self._require_columns(values, self._present(c))
            encoded = self.table.encode(values)
            set_clause = ", ".join(f"{quote(column)} = ?" for column in encoded)
            cursor = c.execute(
                f"UPDATE {self._sql_table} SET {set_clause} WHERE id = ?",
                (*encoded.values(), entry_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"{self.kind.value} catalog entry", entry_id)
            entry = self.get(entry_id, c)

        logger.info(
            "[catalog] updated | kind=%s | id=%s | fields=%s",
            self.kind.value, entry_id, ",".join(sorted(patch)),
        )
        return entry

    def delete(self, entry_id: str, conn: Conn = None) -> None:
        with self.database.transaction(conn) as c:
            cursor = c.execute(f"DELETE FROM {self._sql_table} WHERE id = ?", (entry_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"{self.kind.value} catalog entry", entry_id)
        logger.info("[catalog] removed | kind=%s | id=%s", self.kind.value, entry_id)

    def list_active(self, conn: Conn = None) -> list[CatalogEntry]:
        return self._list("WHERE active = 1", conn)

    def list_all(self, conn: Conn = None) -> list[CatalogEntry]:
        return self._list("", conn)

    def find_by_source(self, submission_id: str, conn: Conn = None) -> CatalogEntry | None:
        with self.database.session(conn) as c:
            # Without the provenance column a retry could publish twice.
            self._require_columns(("source_submission_id",), self._present(c))
            row = c.execute(
                f"SELECT * FROM {self._sql_table} WHERE source_submission_id = ?",
                (submission_id,),
            ).fetchone()
        return self._to_entry(row) if row is not None else None
