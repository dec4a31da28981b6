from dataclasses import dataclass, field

from vitrine.models.submission import SubmissionKind


@dataclass
class CatalogEntry:
    id: str
    kind: SubmissionKind
    active: bool = True
    featured: bool = False
    order_index: int = 0
    fields: dict = field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
