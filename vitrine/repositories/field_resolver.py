"""Canonical names for fields the submission stores expose under several names.

Older deployments wrote ``user_id``/``submitted_at`` where current ones write
``userId``/``submittedAt``; some tables carry both. Everything above the
repositories sees only the logical names declared here.
"""
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

# Status values written by the first generation of the submission forms.
LEGACY_STATUS_VALUES = {
    "pendente": "pending",
    "aprovado": "approved",
    "rejeitado": "rejected",
}


def normalize_status(value: Any) -> str:
    if value is None or not str(value).strip():
        return "pending"
    lowered = str(value).strip().lower()
    return LEGACY_STATUS_VALUES.get(lowered, lowered)


def status_values(status: str) -> tuple[str, ...]:
    """Every (lower-cased) stored value that means ``status``."""
    legacy = tuple(raw for raw, canonical in LEGACY_STATUS_VALUES.items() if canonical == status)
    return (status, *legacy)


@dataclass(frozen=True)
class FieldAlias:
    field: str
    names: tuple[str, ...]  # documented name first, then legacy aliases
    default: Any = None
    normalize: Callable[[Any], Any] | None = None

    @property
    def documented(self) -> str:
        return self.names[0]

    @property
    def sources(self) -> tuple[str, ...]:
        # The logical name is also accepted so already-resolved records resolve to themselves.
        if self.field in self.names:
            return self.names
        return (*self.names, self.field)


class FieldResolver:
    def __init__(self, aliases: Iterable[FieldAlias]) -> None:
        self._aliases = tuple(aliases)
        self._by_field = {alias.field: alias for alias in self._aliases}
        self._owned = frozenset(name for alias in self._aliases for name in alias.sources)

    @property
    def aliases(self) -> tuple[FieldAlias, ...]:
        return self._aliases

    def alias(self, field: str) -> FieldAlias:
        return self._by_field[field]

    def resolve(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """
        Return ``raw`` with every aliased field present exactly once under its
        logical name. The first non-null source wins; missing fields get the
        alias default. Keys that are not aliased pass through untouched.
        """
        record = {key: value for key, value in raw.items() if key not in self._owned}
        for alias in self._aliases:
            value = next(
                (raw[name] for name in alias.sources if raw.get(name) is not None),
                None,
            )
            if value is None:
                value = alias.default
            if alias.normalize is not None:
                value = alias.normalize(value)
            record[alias.field] = value
        return record

    def columns_for(self, field: str, present: Iterable[str]) -> list[str]:
        """Physical columns backing ``field`` that exist in a table, in preference order."""
        present = set(present)
        return [name for name in self._by_field[field].sources if name in present]

    def drifted(self, present: Iterable[str]) -> list[str]:
        """Logical fields whose documented column is missing from a table."""
        present = set(present)
        return [alias.field for alias in self._aliases if alias.documented not in present]


SUBMISSION_FIELDS = FieldResolver(
    [
        FieldAlias("submitter_id", ("userId", "user_id", "submitted_by")),
        FieldAlias("submitted_at", ("submittedAt", "submitted_at")),
        FieldAlias("updated_at", ("updatedAt", "updated_at")),
        FieldAlias("reviewer_id", ("reviewerId", "reviewer_id", "reviewed_by")),
        FieldAlias("reviewer_comments", ("reviewerComments", "reviewer_comments", "review_notes")),
        FieldAlias("reviewed_at", ("reviewedAt", "reviewed_at")),
        FieldAlias("status", ("status",), default="pending", normalize=normalize_status),
    ]
)
