import logging
import threading
from typing import Sequence

from vitrine.db.connection import Database
from vitrine.db.repairs import REPAIR_ACTIONS, RepairAction
from vitrine.db.schema import SUBMISSIONS, TableSpec, quote, table_columns
from vitrine.errors import StoreError
from vitrine.models.diagnostics import DiagnosticSnapshot, RepairOutcome, RepairReport, StoreReport
from vitrine.models.submission import utcnow_iso
from vitrine.repositories.field_resolver import SUBMISSION_FIELDS
from vitrine.services.moderation_service import ModerationService

logger = logging.getLogger(__name__)


class DiagnosticsService:
    """
    Reports what each store actually looks like and runs the repair actions on
    request. Repairs only add or copy, so they can run alongside normal
    moderation traffic; two repair requests never interleave.
    """

    def __init__(
        self,
        layout: Sequence[tuple[Database, Sequence[TableSpec]]],
        moderation: ModerationService,
        actions: Sequence[RepairAction] = REPAIR_ACTIONS,
    ) -> None:
        self._layout = list(layout)
        self._moderation = moderation
        self._actions = tuple(actions)
        self._lock = threading.Lock()

    def _inspect(self, database: Database, table: TableSpec) -> StoreReport:
        report = StoreReport(store=database.label, table=table.name)
        try:
            with database.session() as conn:
                columns = table_columns(conn, table.name)
                if not columns:
                    report.last_error = f"table {table.name} does not exist"
                    return report
                report.exists = True
                report.columns = columns
                report.row_count = conn.execute(
                    f"SELECT COUNT(*) FROM {quote(table.name)}"
                ).fetchone()[0]
                sample = conn.execute(f"SELECT * FROM {quote(table.name)} LIMIT 1").fetchone()
                report.sample_fields = list(sample.keys()) if sample is not None else []
        except StoreError as exc:
            report.last_error = exc.message
            return report

        report.missing_columns = [name for name in table.column_names if name not in columns]
        if table.role == SUBMISSIONS:
            report.drifted_fields = SUBMISSION_FIELDS.drifted(columns)
        return report

    def snapshot(self) -> DiagnosticSnapshot:
        """Read-only report of every store. Never raises for an unhealthy store."""
        snapshot = DiagnosticSnapshot(generated_at=utcnow_iso())
        for database, tables in self._layout:
            for table in tables:
                snapshot.stores.append(self._inspect(database, table))

        for kind in self._moderation.kinds:
            snapshot.backends[kind.value] = self._moderation.backend_name(kind)
            try:
                snapshot.unpromoted[kind.value] = len(self._moderation.list_unpromoted(kind))
            except StoreError as exc:
                logger.warning("[diagnostics] unpromoted count failed | kind=%s | error=%s", kind.value, exc)
                snapshot.unpromoted[kind.value] = None

        unhealthy = [f"{r.store}.{r.table}" for r in snapshot.stores if not r.healthy]
        if unhealthy:
            logger.warning("[diagnostics] unhealthy stores | tables=%s", ",".join(unhealthy))
        return snapshot

    def repair(self) -> RepairReport:
        """Run every repair action in order. Safe to call repeatedly."""
        with self._lock:
            report = RepairReport()
            for action in self._actions:
                logger.info("[repair] running %s | %s", action.name, action.description)
                details: list[str] = []
                for database, tables in self._layout:
                    with database.transaction() as conn:
                        details.extend(action.apply(conn, tables))
                for line in details:
                    logger.info("[repair] %s | %s", action.name, line)
                report.actions.append(RepairOutcome(action.name, bool(details), details))
            logger.info("[repair] finished | changed=%s", report.changed)
            return report
