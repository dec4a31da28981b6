"""Expected shape of every table the pipeline reads or writes."""
import json
import sqlite3
from dataclasses import dataclass, replace
from typing import Any, Mapping

from vitrine.models.submission import SubmissionKind

SUBMISSIONS = "submissions"
CATALOG = "catalog"


def quote(identifier: str) -> str:
    """Quote an identifier; camelCase columns must keep their case."""
    return '"' + identifier.replace('"', '""') + '"'


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    type: str = "TEXT"
    default: str | None = None  # SQL literal
    not_null: bool = False
    primary_key: bool = False
    codec: str | None = None  # "json" | "bool"

    def ddl(self) -> str:
        parts = [quote(self.name), self.type]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        if self.not_null:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)

    def add_ddl(self) -> str:
        """Declaration usable in ALTER TABLE ADD COLUMN (no key or NOT NULL constraints)."""
        parts = [quote(self.name), self.type]
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)

    def encode(self, value: Any) -> Any:
        if value is None:
            return None
        if self.codec == "json":
            return json.dumps(value)
        if self.codec == "bool":
            return 1 if value else 0
        return value

    def decode(self, value: Any) -> Any:
        if value is None:
            return None
        if self.codec == "json":
            if isinstance(value, (list, dict)):
                return value
            try:
                return json.loads(value)
            except (TypeError, ValueError):
                # legacy rows stored one benefit per line
                return [line.strip() for line in str(value).splitlines() if line.strip()]
        if self.codec == "bool":
            return bool(value)
        return value


@dataclass(frozen=True)
class TableSpec:
    name: str
    role: str  # SUBMISSIONS or CATALOG
    kind: SubmissionKind
    base: tuple[ColumnSpec, ...]
    payload: tuple[ColumnSpec, ...]

    @property
    def columns(self) -> tuple[ColumnSpec, ...]:
        return self.base + self.payload

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def payload_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.payload)

    def column(self, name: str) -> ColumnSpec | None:
        return next((column for column in self.columns if column.name == name), None)

    def create_sql(self) -> str:
        body = ",\n    ".join(column.ddl() for column in self.columns)
        return f"CREATE TABLE IF NOT EXISTS {quote(self.name)} (\n    {body}\n)"

    def encode(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {name: self.column(name).encode(value) for name, value in values.items()}

    def decode(self, row: Mapping[str, Any]) -> dict[str, Any]:
        decoded = {}
        for key, value in row.items():
            column = self.column(key)
            decoded[key] = column.decode(value) if column is not None else value
        return decoded


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    """Column names of ``table`` in definition order; empty when it does not exist."""
    return [row["name"] for row in conn.execute(f"PRAGMA table_info({quote(table)})")]


# Documented review columns. Legacy aliases live in repositories/field_resolver.py.
_REVIEW_COLUMNS = (
    ColumnSpec("id", primary_key=True),
    ColumnSpec("userId", not_null=True),
    ColumnSpec("status", not_null=True, default="'pending'"),
    ColumnSpec("submittedAt"),
    ColumnSpec("updatedAt"),
    ColumnSpec("reviewerId"),
    ColumnSpec("reviewerComments"),
    ColumnSpec("reviewedAt"),
)

_CATALOG_COLUMNS = (
    ColumnSpec("id", primary_key=True),
    ColumnSpec("source_submission_id"),
    ColumnSpec("active", "INTEGER", default="1", not_null=True, codec="bool"),
    ColumnSpec("featured", "INTEGER", default="0", not_null=True, codec="bool"),
    ColumnSpec("order_index", "INTEGER", default="0", not_null=True),
    ColumnSpec("created_at"),
    ColumnSpec("updated_at"),
)

_PRODUCT_PAYLOAD = (
    ColumnSpec("name", not_null=True, default="''"),
    ColumnSpec("description"),
    ColumnSpec("price", "REAL"),
    ColumnSpec("price_display"),
    ColumnSpec("category"),
    ColumnSpec("image_url"),
    ColumnSpec("image"),
    ColumnSpec("benefits", default="'[]'", codec="json"),
    ColumnSpec("sales_url"),
    ColumnSpec("commission_rate", "REAL"),
    ColumnSpec("affiliate_link"),
    ColumnSpec("vendor_name"),
    ColumnSpec("platform"),
)

# Published products carry the defaults the catalog pages rely on.
_PUBLISHED_DEFAULTS = {
    "commission_rate": "50",
    "platform": "'Hotmart'",
    "affiliate_link": "''",
    "vendor_name": "''",
    "image": "''",
}
_PUBLISHED_PRODUCT_PAYLOAD = tuple(
    replace(column, default=_PUBLISHED_DEFAULTS[column.name])
    if column.name in _PUBLISHED_DEFAULTS else column
    for column in _PRODUCT_PAYLOAD
)

_RECOMMENDED_PAYLOAD = (
    ColumnSpec("name", not_null=True, default="''"),
    ColumnSpec("description"),
    ColumnSpec("benefits", default="'[]'", codec="json"),
    ColumnSpec("price", "REAL"),
    ColumnSpec("image"),
    ColumnSpec("category"),
    ColumnSpec("eliteBadge", "INTEGER", default="0", codec="bool"),
    ColumnSpec("topPick", "INTEGER", default="0", codec="bool"),
    ColumnSpec("sales_url"),
)

# Recommendations open at the top rating and are marked as user-submitted.
_PUBLISHED_RECOMMENDED_PAYLOAD = _RECOMMENDED_PAYLOAD + (
    ColumnSpec("rating", "REAL", default="5.0", not_null=True),
    ColumnSpec("addedByAdmin", "INTEGER", default="0", codec="bool"),
)

_TESTIMONIAL_PAYLOAD = (
    ColumnSpec("image_url", not_null=True, default="''"),
    ColumnSpec("type", default="'testimonial'"),
    ColumnSpec("name"),
    ColumnSpec("product"),
    ColumnSpec("message"),
)

SUBMISSION_TABLES: dict[SubmissionKind, TableSpec] = {
    SubmissionKind.PRODUCT: TableSpec(
        "submitted_products", SUBMISSIONS, SubmissionKind.PRODUCT, _REVIEW_COLUMNS, _PRODUCT_PAYLOAD
    ),
    SubmissionKind.RECOMMENDED: TableSpec(
        "submitted_recommendations", SUBMISSIONS, SubmissionKind.RECOMMENDED, _REVIEW_COLUMNS,
        _RECOMMENDED_PAYLOAD,
    ),
    SubmissionKind.TESTIMONIAL: TableSpec(
        "testimonial_submissions", SUBMISSIONS, SubmissionKind.TESTIMONIAL, _REVIEW_COLUMNS,
        _TESTIMONIAL_PAYLOAD,
    ),
}

CATALOG_TABLES: dict[SubmissionKind, TableSpec] = {
    SubmissionKind.PRODUCT: TableSpec(
        "affiliate_products", CATALOG, SubmissionKind.PRODUCT, _CATALOG_COLUMNS,
        _PUBLISHED_PRODUCT_PAYLOAD,
    ),
    SubmissionKind.RECOMMENDED: TableSpec(
        "recommended_products", CATALOG, SubmissionKind.RECOMMENDED, _CATALOG_COLUMNS,
        _PUBLISHED_RECOMMENDED_PAYLOAD,
    ),
    SubmissionKind.TESTIMONIAL: TableSpec(
        "testimonial_gallery", CATALOG, SubmissionKind.TESTIMONIAL, _CATALOG_COLUMNS,
        _TESTIMONIAL_PAYLOAD,
    ),
}

# Which database holds each kind's published table. The testimonial gallery
# shares the submissions database, which is what lets its promotion be atomic.
CATALOG_LOCATION: dict[SubmissionKind, str] = {
    SubmissionKind.PRODUCT: CATALOG,
    SubmissionKind.RECOMMENDED: CATALOG,
    SubmissionKind.TESTIMONIAL: SUBMISSIONS,
}
