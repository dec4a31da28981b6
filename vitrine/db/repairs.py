"""Versioned, idempotent schema repairs.

Each action inspects the live schema and only changes what differs from the
expected shape in db/schema.py, returning one detail line per change. Running
an action against a store it already fixed returns no details. Nothing here
drops or renames a column.
"""
import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Sequence

from vitrine.db.connection import FINAL_STATUS_MESSAGE, IMMUTABLE_SUBMITTER_MESSAGE
from vitrine.db.schema import CATALOG, SUBMISSIONS, TableSpec, quote, table_columns, table_exists
from vitrine.repositories.field_resolver import SUBMISSION_FIELDS, status_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairAction:
    name: str
    description: str
    apply: Callable[[sqlite3.Connection, Sequence[TableSpec]], list[str]]


def _sql_list(values: Sequence[str]) -> str:
    return ", ".join("'" + value.replace("'", "''") + "'" for value in values)


def _object_exists(conn: sqlite3.Connection, type_: str, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = ? AND name = ?", (type_, name)
    ).fetchone()
    return row is not None


def create_tables(conn: sqlite3.Connection, tables: Sequence[TableSpec]) -> list[str]:
    details = []
    for table in tables:
        if table_exists(conn, table.name):
            continue
        conn.execute(table.create_sql())
        details.append(f"created table {table.name}")
    return details


def mirror_aliases(conn: sqlite3.Connection, tables: Sequence[TableSpec]) -> list[str]:
    """
    Give every aliased submission field its documented column, copying values
    from whichever legacy column exists, and fill gaps in both directions when
    a table carries several names for the same field.
    """
    details = []
    for table in tables:
        if table.role != SUBMISSIONS:
            continue
        present = table_columns(conn, table.name)
        if not present:
            continue
        for alias in SUBMISSION_FIELDS.aliases:
            found = [name for name in alias.names if name in present]
            if not found:
                continue
            documented = alias.documented
            if documented not in present:
                column = table.column(documented)
                conn.execute(f"ALTER TABLE {quote(table.name)} ADD COLUMN {column.add_ddl()}")
                present.append(documented)
                details.append(f"added {table.name}.{documented} mirroring {found[0]}")
            for legacy in found:
                if legacy == documented:
                    continue
                for target, source in ((documented, legacy), (legacy, documented)):
                    cursor = conn.execute(
                        f"UPDATE {quote(table.name)} SET {quote(target)} = {quote(source)} "
                        f"WHERE {quote(target)} IS NULL AND {quote(source)} IS NOT NULL"
                    )
                    if cursor.rowcount > 0:
                        details.append(
                            f"copied {cursor.rowcount} value(s) {table.name}.{source} -> {target}"
                        )
    return details


def add_missing_columns(conn: sqlite3.Connection, tables: Sequence[TableSpec]) -> list[str]:
    details = []
    for table in tables:
        present = set(table_columns(conn, table.name))
        if not present:
            continue
        for column in table.columns:
            if column.name in present:
                continue
            if column.primary_key:
                logger.warning(
                    "[repair] cannot add primary key column | table=%s | column=%s",
                    table.name, column.name,
                )
                continue
            conn.execute(f"ALTER TABLE {quote(table.name)} ADD COLUMN {column.add_ddl()}")
            details.append(f"added {table.name}.{column.name}")
    return details


def _submission_guards(table: TableSpec, present: set[str]) -> list[tuple[str, str]]:
    guards = []
    name = quote(table.name)
    if "status" in present:
        open_values = _sql_list(("", *status_values("pending")))
        guards.append((
            f"{table.name}_final_status",
            f"CREATE TRIGGER IF NOT EXISTS {quote(table.name + '_final_status')} "
            f"BEFORE UPDATE OF status ON {name} "
            f"WHEN OLD.status IS NOT NULL AND lower(trim(OLD.status)) NOT IN ({open_values}) "
            f"AND NEW.status IS NOT OLD.status "
            f"BEGIN SELECT RAISE(ABORT, '{FINAL_STATUS_MESSAGE}'); END",
        ))
    submitter = SUBMISSION_FIELDS.alias("submitter_id").documented
    if submitter in present:
        column = quote(submitter)
        guards.append((
            f"{table.name}_immutable_submitter",
            f"CREATE TRIGGER IF NOT EXISTS {quote(table.name + '_immutable_submitter')} "
            f"BEFORE UPDATE OF {column} ON {name} "
            f"WHEN OLD.{column} IS NOT NULL AND NEW.{column} IS NOT OLD.{column} "
            f"BEGIN SELECT RAISE(ABORT, '{IMMUTABLE_SUBMITTER_MESSAGE}'); END",
        ))
    return guards


def access_rules(conn: sqlite3.Connection, tables: Sequence[TableSpec]) -> list[str]:
    """
    Reassert the store-level write rules: a reviewed status is final, the
    submitter of a submission never changes, and a submission is published
    at most once.
    """
    details = []
    for table in tables:
        present = set(table_columns(conn, table.name))
        if not present:
            continue
        if table.role == SUBMISSIONS:
            for trigger, sql in _submission_guards(table, present):
                if _object_exists(conn, "trigger", trigger):
                    continue
                conn.execute(sql)
                details.append(f"created trigger {trigger}")
        elif table.role == CATALOG and "source_submission_id" in present:
            index = f"{table.name}_source_submission_id_key"
            if _object_exists(conn, "index", index):
                continue
            conn.execute(
                f"CREATE UNIQUE INDEX IF NOT EXISTS {quote(index)} "
                f"ON {quote(table.name)} (source_submission_id)"
            )
            details.append(f"created unique index {index}")
    return details


REPAIR_ACTIONS: tuple[RepairAction, ...] = (
    RepairAction("0001_create_tables", "create missing tables with the expected shape", create_tables),
    RepairAction("0002_mirror_aliases", "mirror legacy column names into documented ones", mirror_aliases),
    RepairAction("0003_add_missing_columns", "add expected columns with their defaults", add_missing_columns),
    RepairAction("0004_access_rules", "reassert store-level write rules", access_rules),
)

# Applied once at startup. Renaming or mirroring drifted columns is left to an
# operator running the full repair from the diagnostics endpoint.
MIGRATIONS: tuple[RepairAction, ...] = (REPAIR_ACTIONS[0], REPAIR_ACTIONS[3])
