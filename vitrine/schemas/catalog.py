from pydantic import BaseModel, ConfigDict

from vitrine.models.submission import SubmissionKind


class CatalogPatch(BaseModel):
    # Kind-specific fields are accepted as extras and checked by the repository.
    model_config = ConfigDict(extra="allow")

    active: bool | None = None
    featured: bool | None = None
    order_index: int | None = None

    def changes(self) -> dict:
        values = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name in type(self).model_fields
        }
        values.update(self.model_extra or {})
        return values


class CatalogEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: SubmissionKind
    active: bool
    featured: bool
    order_index: int
    fields: dict = {}
    created_at: str | None = None
    updated_at: str | None = None
