import logging
from dataclasses import dataclass

from vitrine.db.connection import Database, run_migrations
from vitrine.db.repairs import MIGRATIONS
from vitrine.db.schema import CATALOG, CATALOG_LOCATION, CATALOG_TABLES, SUBMISSION_TABLES, TableSpec
from vitrine.models.submission import SubmissionKind
from vitrine.repositories.catalog_repository import CatalogRepository
from vitrine.repositories.submission_repository import SubmissionRepository
from vitrine.services.diagnostics_service import DiagnosticsService
from vitrine.services.moderation_service import ModerationService
from vitrine.services.promotion import AtomicPromotion, PromotionBackend, TwoStepPromotion

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    moderation: ModerationService
    diagnostics: DiagnosticsService
    submissions: dict[SubmissionKind, SubmissionRepository]
    catalogs: dict[SubmissionKind, CatalogRepository]
    layout: list[tuple[Database, tuple[TableSpec, ...]]]

    def migrate(self) -> None:
        for database, tables in self.layout:
            run_migrations(database, tables, MIGRATIONS)


def build_container(
    submissions_db_path: str, catalog_db_path: str, timeout: float = 10.0
) -> ServiceContainer:
    """Wire stores, repositories and services for both submission kinds."""
    submissions_db = Database(submissions_db_path, "submissions", timeout)
    catalog_db = Database(catalog_db_path, "catalog", timeout)
    if catalog_db.same_store(submissions_db):
        catalog_db = submissions_db

    submissions: dict[SubmissionKind, SubmissionRepository] = {}
    catalogs: dict[SubmissionKind, CatalogRepository] = {}
    backends: dict[SubmissionKind, PromotionBackend] = {}
    tables: dict[int, list[TableSpec]] = {id(submissions_db): [], id(catalog_db): []}

    for kind in SubmissionKind:
        published_db = catalog_db if CATALOG_LOCATION[kind] == CATALOG else submissions_db
        submissions[kind] = SubmissionRepository(submissions_db, kind)
        catalogs[kind] = CatalogRepository(published_db, kind)
        tables[id(submissions_db)].append(SUBMISSION_TABLES[kind])
        tables[id(published_db)].append(CATALOG_TABLES[kind])

        # Prefer a single transaction whenever both tables share a database.
        if submissions_db.same_store(published_db):
            backends[kind] = AtomicPromotion(submissions[kind], catalogs[kind])
        else:
            backends[kind] = TwoStepPromotion(submissions[kind], catalogs[kind])
        logger.info("[wiring] kind=%s | backend=%s", kind.value, backends[kind].name)

    layout = [(submissions_db, tuple(tables[id(submissions_db)]))]
    if catalog_db is not submissions_db:
        layout.append((catalog_db, tuple(tables[id(catalog_db)])))

    moderation = ModerationService(submissions, backends)
    diagnostics = DiagnosticsService(layout, moderation)
    return ServiceContainer(moderation, diagnostics, submissions, catalogs, layout)
