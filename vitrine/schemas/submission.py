from enum import Enum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from vitrine.errors import ValidationError
from vitrine.models.submission import SubmissionKind, SubmissionStatus


class _ListingPayload(BaseModel):
    # Unknown keys (including any "status" a submitter sends) are dropped.
    model_config = ConfigDict(extra="ignore")

    name: str
    description: str | None = None
    price: float | None = None
    category: str | None = None
    benefits: list[str] = []

    @field_validator("name")
    @classmethod
    def name_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name must not be empty")
        return v.strip()

    @field_validator("price")
    @classmethod
    def price_must_not_be_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("price must not be negative")
        return v

    @field_validator("benefits")
    @classmethod
    def drop_blank_benefits(cls, v: list[str]) -> list[str]:
        return [benefit.strip() for benefit in v if benefit and benefit.strip()]


class ProductPayload(_ListingPayload):
    price_display: str | None = None
    image_url: str | None = None
    image: str | None = None
    sales_url: str | None = None
    commission_rate: float | None = None
    affiliate_link: str | None = None
    vendor_name: str | None = None
    platform: str | None = None


class RecommendedPayload(_ListingPayload):
    image: str | None = Field(default=None, validation_alias=AliasChoices("image", "image_url", "imageUrl"))
    eliteBadge: bool = False
    topPick: bool = False
    sales_url: str | None = Field(default=None, validation_alias=AliasChoices("sales_url", "salesUrl"))


class TestimonialPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    image_url: str
    type: Literal["sale", "testimonial"] = "testimonial"
    name: str | None = None
    product: str | None = None
    message: str | None = None

    @field_validator("image_url")
    @classmethod
    def image_url_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("image_url must not be empty")
        return v.strip()


PAYLOAD_MODELS: dict[SubmissionKind, type[BaseModel]] = {
    SubmissionKind.PRODUCT: ProductPayload,
    SubmissionKind.RECOMMENDED: RecommendedPayload,
    SubmissionKind.TESTIMONIAL: TestimonialPayload,
}


def parse_payload(kind: SubmissionKind, payload: dict) -> dict:
    """Validate a submitted payload. Raises ValidationError listing every bad field."""
    try:
        model = PAYLOAD_MODELS[kind].model_validate(payload)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(f"Invalid {kind.value} submission: {problems}") from exc
    return model.model_dump()


class ReviewRequest(BaseModel):
    comments: str | None = None


class SubmissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: SubmissionKind
    status: SubmissionStatus
    submitter_id: str | None = None
    payload: dict = {}
    submitted_at: str | None = None
    updated_at: str | None = None
    reviewer_id: str | None = None
    reviewer_comments: str | None = None
    reviewed_at: str | None = None


class ModerationResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    outcome: str
    message: str
    submission_id: str
    catalog_entry_id: str | None = None

    @field_validator("outcome", mode="before")
    @classmethod
    def outcome_value(cls, v):
        return v.value if isinstance(v, Enum) else v
