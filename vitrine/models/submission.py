from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from vitrine.errors import InvalidTransitionError, ValidationError


class SubmissionKind(str, Enum):
    PRODUCT = "product"
    RECOMMENDED = "recommended"
    TESTIMONIAL = "testimonial"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# approved and rejected are terminal: a submission is reviewed exactly once.
ALLOWED_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({SubmissionStatus.APPROVED, SubmissionStatus.REJECTED}),
    SubmissionStatus.APPROVED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}


def check_transition(current: SubmissionStatus, target: SubmissionStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is a legal review."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move submission from {current.value} to {target.value}"
        )


def require_reason(comments: str | None) -> str:
    """A rejection always needs a non-blank reason. Returns it stripped."""
    if comments is None or not comments.strip():
        raise ValidationError("A rejection reason is required")
    return comments.strip()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Submission:
    id: str
    kind: SubmissionKind
    status: SubmissionStatus
    submitter_id: str | None = None
    payload: dict = field(default_factory=dict)
    submitted_at: str | None = None
    updated_at: str | None = None
    reviewer_id: str | None = None
    reviewer_comments: str | None = None
    reviewed_at: str | None = None
