import logging

from vitrine.errors import UnauthenticatedError, ValidationError
from vitrine.models.identity import Identity
from vitrine.models.submission import Submission, SubmissionKind, SubmissionStatus
from vitrine.repositories.submission_repository import SubmissionRepository
from vitrine.services.promotion import ModerationResult, PromotionBackend

logger = logging.getLogger(__name__)


def _require_identity(identity: Identity | None) -> Identity:
    if identity is None or not identity.user_id or not identity.user_id.strip():
        raise UnauthenticatedError()
    return identity


def _parse_kind(kind: SubmissionKind | str) -> SubmissionKind:
    try:
        return SubmissionKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown submission kind: {kind}") from None


class ModerationService:
    """Entry point for the moderation surface. Callers never pick a promotion backend."""

    def __init__(
        self,
        submissions: dict[SubmissionKind, SubmissionRepository],
        backends: dict[SubmissionKind, PromotionBackend],
    ) -> None:
        self._submissions = submissions
        self._backends = backends

    @property
    def kinds(self) -> list[SubmissionKind]:
        return list(self._backends)

    def backend_name(self, kind: SubmissionKind | str) -> str:
        return self._backends[_parse_kind(kind)].name

    def submit(self, kind: SubmissionKind | str, payload: dict, identity: Identity | None) -> Submission:
        identity = _require_identity(identity)
        return self._submissions[_parse_kind(kind)].create(payload, identity.user_id)

    def list_submissions(
        self, kind: SubmissionKind | str, status: SubmissionStatus | str = SubmissionStatus.PENDING
    ) -> list[Submission]:
        try:
            status = SubmissionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status}") from None
        return self._submissions[_parse_kind(kind)].list_by_status(status)

    def list_mine(self, kind: SubmissionKind | str, identity: Identity | None) -> list[Submission]:
        identity = _require_identity(identity)
        return self._submissions[_parse_kind(kind)].list_by_submitter(identity.user_id)

    def approve(
        self,
        kind: SubmissionKind | str,
        submission_id: str,
        identity: Identity | None,
        comments: str | None = None,
    ) -> ModerationResult:
        identity = _require_identity(identity)
        comments = comments.strip() if comments and comments.strip() else None
        return self._backends[_parse_kind(kind)].approve(submission_id, identity.user_id, comments)

    def reject(
        self,
        kind: SubmissionKind | str,
        submission_id: str,
        identity: Identity | None,
        comments: str | None,
    ) -> ModerationResult:
        identity = _require_identity(identity)
        return self._backends[_parse_kind(kind)].reject(submission_id, identity.user_id, comments)

    def retry_promotion(
        self, kind: SubmissionKind | str, submission_id: str, identity: Identity | None
    ) -> ModerationResult:
        identity = _require_identity(identity)
        kind = _parse_kind(kind)
        logger.info(
            "[moderation] promotion retry | kind=%s | id=%s | by=%s",
            kind.value, submission_id, identity.user_id,
        )
        return self._backends[kind].promote(submission_id)

    def list_unpromoted(self, kind: SubmissionKind | str) -> list[Submission]:
        return self._backends[_parse_kind(kind)].unpromoted()
