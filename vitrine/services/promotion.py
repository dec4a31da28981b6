"""Approval, rejection and promotion of submissions into the catalog.

Two backends sit behind one interface:

* ``AtomicPromotion`` runs review + publication in a single transaction. It
  needs the submission table and the catalog table in the same database.
* ``TwoStepPromotion`` reviews, inserts into the catalog store and then retires
  the submission as separate steps. If the insert fails the submission stays
  ``approved`` and shows up in ``unpromoted()`` until ``promote()`` succeeds.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from vitrine.errors import InvalidTransitionError, NotFoundError, StoreError
from vitrine.models.submission import Submission, SubmissionKind, SubmissionStatus, require_reason
from vitrine.repositories.catalog_repository import CatalogRepository
from vitrine.repositories.submission_repository import SubmissionRepository
from vitrine.services.publication import to_catalog_entry

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    PUBLISHED = "published"
    REJECTED = "rejected"
    PROMOTION_PENDING = "promotion_pending"


@dataclass
class ModerationResult:
    success: bool
    outcome: Outcome
    message: str
    submission_id: str
    catalog_entry_id: str | None = None


class PromotionBackend(ABC):
    name = "base"

    def __init__(self, submissions: SubmissionRepository, catalog: CatalogRepository) -> None:
        self._submissions = submissions
        self._catalog = catalog

    @property
    def kind(self) -> SubmissionKind:
        return self._submissions.kind

    @abstractmethod
    def approve(self, submission_id: str, reviewer_id: str, comments: str | None = None) -> ModerationResult:
        """Approve a pending submission and publish it."""

    @abstractmethod
    def promote(self, submission_id: str) -> ModerationResult:
        """Publish an already-approved submission that is not in the catalog yet."""

    @abstractmethod
    def unpromoted(self) -> list[Submission]:
        """Approved submissions still waiting for promotion."""

    def reject(self, submission_id: str, reviewer_id: str, comments: str | None) -> ModerationResult:
        reason = require_reason(comments)
        self._review(submission_id, SubmissionStatus.REJECTED, reviewer_id, reason)
        logger.info(
            "[moderation] rejected | kind=%s | id=%s | reviewer=%s",
            self.kind.value, submission_id, reviewer_id,
        )
        return ModerationResult(True, Outcome.REJECTED, "Submission rejected", submission_id)

    def _review(
        self,
        submission_id: str,
        status: SubmissionStatus,
        reviewer_id: str,
        comments: str | None,
        conn=None,
    ) -> Submission:
        try:
            return self._submissions.transition_status(
                submission_id, status, reviewer_id, comments, conn=conn
            )
        except NotFoundError:
            # A retired submission is gone from its table but lives on in the catalog.
            if self._published(submission_id, conn):
                raise InvalidTransitionError(
                    f"Submission {submission_id} was already approved and published"
                ) from None
            raise

    def _published(self, submission_id: str, conn=None) -> bool:
        try:
            return self._catalog.find_by_source(submission_id, conn) is not None
        except StoreError as exc:
            logger.warning(
                "[moderation] provenance lookup failed | kind=%s | id=%s | error=%s",
                self.kind.value, submission_id, exc.message,
            )
            return False

    def _require_approved(self, submission: Submission) -> None:
        if submission.status is not SubmissionStatus.APPROVED:
            raise InvalidTransitionError(
                f"Only approved submissions can be promoted; {submission.id} is {submission.status.value}"
            )


class TwoStepPromotion(PromotionBackend):
    name = "two_step"

    def approve(self, submission_id: str, reviewer_id: str, comments: str | None = None) -> ModerationResult:
        submission = self._review(submission_id, SubmissionStatus.APPROVED, reviewer_id, comments)
        logger.info(
            "[moderation] approved | kind=%s | id=%s | reviewer=%s",
            self.kind.value, submission_id, reviewer_id,
        )
        return self._publish(submission)

    def promote(self, submission_id: str) -> ModerationResult:
        submission = self._submissions.get(submission_id)
        self._require_approved(submission)
        existing = self._catalog.find_by_source(submission_id)
        if existing is not None:
            # The insert landed earlier but the cleanup did not.
            logger.info(
                "[moderation] already published, retiring submission | kind=%s | id=%s | entry=%s",
                self.kind.value, submission_id, existing.id,
            )
            self._retire(submission_id)
            return ModerationResult(
                True, Outcome.PUBLISHED, "Already published", submission_id, existing.id
            )
        return self._publish(submission)

    def unpromoted(self) -> list[Submission]:
        # Promotion retires the submission, so any approved row still here is unfinished.
        return self._submissions.list_by_status(SubmissionStatus.APPROVED)

    def _publish(self, submission: Submission) -> ModerationResult:
        try:
            entry = self._catalog.insert(to_catalog_entry(submission), source_submission_id=submission.id)
        except StoreError as exc:
            logger.error(
                "[moderation] promotion failed | kind=%s | id=%s | category=%s | error=%s",
                self.kind.value, submission.id, exc.category, exc.message,
            )
            return ModerationResult(
                False,
                Outcome.PROMOTION_PENDING,
                f"Approved but not published yet ({exc.message}); retry the promotion",
                submission.id,
            )
        self._retire(submission.id)
        return ModerationResult(True, Outcome.PUBLISHED, "Approved and published", submission.id, entry.id)

    def _retire(self, submission_id: str) -> None:
        try:
            self._submissions.delete(submission_id)
        except StoreError as exc:
            # Publication already happened; the row just stays listed as approved.
            logger.warning(
                "[moderation] cleanup failed | kind=%s | id=%s | error=%s",
                self.kind.value, submission_id, exc.message,
            )


class AtomicPromotion(PromotionBackend):
    """Review and publication commit together. The submission row is kept for audit."""

    name = "atomic"

    def __init__(self, submissions: SubmissionRepository, catalog: CatalogRepository) -> None:
        if not submissions.database.same_store(catalog.database):
            raise ValueError("atomic promotion needs submissions and catalog in the same store")
        super().__init__(submissions, catalog)

    def approve(self, submission_id: str, reviewer_id: str, comments: str | None = None) -> ModerationResult:
        with self._submissions.database.transaction() as conn:
            submission = self._review(
                submission_id, SubmissionStatus.APPROVED, reviewer_id, comments, conn=conn
            )
            entry = self._catalog.insert(
                to_catalog_entry(submission), source_submission_id=submission.id, conn=conn
            )
        logger.info(
            "[moderation] approved | kind=%s | id=%s | reviewer=%s | entry=%s",
            self.kind.value, submission_id, reviewer_id, entry.id,
        )
        return ModerationResult(True, Outcome.PUBLISHED, "Approved and published", submission_id, entry.id)

    def promote(self, submission_id: str) -> ModerationResult:
        with self._submissions.database.transaction() as conn:
            submission = self._submissions.get(submission_id, conn)
            self._require_approved(submission)
            entry = self._catalog.find_by_source(submission_id, conn)
            if entry is not None:
                return ModerationResult(
                    True, Outcome.PUBLISHED, "Already published", submission_id, entry.id
                )
            entry = self._catalog.insert(
                to_catalog_entry(submission), source_submission_id=submission.id, conn=conn
            )
        logger.info(
            "[moderation] promoted | kind=%s | id=%s | entry=%s", self.kind.value, submission_id, entry.id
        )
        return ModerationResult(True, Outcome.PUBLISHED, "Published", submission_id, entry.id)

    def unpromoted(self) -> list[Submission]:
        with self._submissions.database.session() as conn:
            approved = self._submissions.list_by_status(SubmissionStatus.APPROVED, conn)
            return [s for s in approved if self._catalog.find_by_source(s.id, conn) is None]
