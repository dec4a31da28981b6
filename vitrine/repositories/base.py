import sqlite3
from abc import ABC, abstractmethod

from vitrine.models.catalog import CatalogEntry
from vitrine.models.submission import Submission, SubmissionStatus

# Every method accepts an already-open connection so that several calls can
# share one transaction (see services/promotion.py).
Conn = sqlite3.Connection | None


class AbstractSubmissionRepository(ABC):
    @abstractmethod
    def list_by_status(self, status: SubmissionStatus, conn: Conn = None) -> list[Submission]:
        """Submissions in ``status``, newest first. Rows without a status count as pending."""

    @abstractmethod
    def list_by_submitter(self, submitter_id: str, conn: Conn = None) -> list[Submission]:
        """A submitter's own submissions, newest first."""

    @abstractmethod
    def get(self, submission_id: str, conn: Conn = None) -> Submission:
        """Return the submission or raise NotFoundError."""

    @abstractmethod
    def create(self, payload: dict, submitter_id: str, conn: Conn = None) -> Submission:
        """Store a new submission. Its status is always pending."""

    @abstractmethod
    def transition_status(
        self,
        submission_id: str,
        new_status: SubmissionStatus,
        reviewer_id: str,
        comments: str | None = None,
        conn: Conn = None,
    ) -> Submission:
        """Review a pending submission (compare-and-set on status)."""

    @abstractmethod
    def delete(self, submission_id: str, conn: Conn = None) -> bool:
        """Remove a submission. Returns False if it was already gone."""


class AbstractCatalogRepository(ABC):
    @abstractmethod
    def insert(
        self, draft: dict, source_submission_id: str | None = None, conn: Conn = None
    ) -> CatalogEntry:
        """Publish a new catalog entry with a fresh id."""

    @abstractmethod
    def get(self, entry_id: str, conn: Conn = None) -> CatalogEntry:
        """Return the entry or raise NotFoundError."""

    @abstractmethod
    def update(self, entry_id: str, patch: dict, conn: Conn = None) -> CatalogEntry:
        """Apply a partial update to an entry."""

    @abstractmethod
    def delete(self, entry_id: str, conn: Conn = None) -> None:
        """Remove an entry or raise NotFoundError."""

    @abstractmethod
    def list_active(self, conn: Conn = None) -> list[CatalogEntry]:
        """Active entries by display order."""

    @abstractmethod
    def list_all(self, conn: Conn = None) -> list[CatalogEntry]:
        """All entries by display order."""

    @abstractmethod
    def find_by_source(self, submission_id: str, conn: Conn = None) -> CatalogEntry | None:
        """The entry published from ``submission_id``, if any."""
