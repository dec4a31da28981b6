"""Reshape an approved submission into a catalog entry draft.

Pure functions: no store access, no clock. Only whitelisted payload fields are
copied, so review metadata (reviewer, comments, submitter, timestamps) never
reaches the public catalog.
"""
from typing import Any, Callable

from vitrine.models.submission import Submission, SubmissionKind

DEFAULT_COMMISSION_RATE = 50
BASELINE_ORDER_INDEX = 0
DEFAULT_PLATFORM = "Hotmart"
DEFAULT_RATING = 5.0


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def format_price_display(price: Any) -> str:
    """Format a price the way the catalog pages show it, e.g. ``R$ 1.234,50``."""
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        price = 0
    formatted = f"{price:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"R$ {formatted}"


def commission_rate(value: Any) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return DEFAULT_COMMISSION_RATE
    return value


def reconcile_images(primary: Any, alternate: Any) -> tuple[str, str]:
    """Mirror each image field into the other when one of them is blank."""
    primary = None if _blank(primary) else primary
    alternate = None if _blank(alternate) else alternate
    return primary or alternate or "", alternate or primary or ""


def _product_entry(payload: dict) -> dict:
    image_url, image = reconcile_images(payload.get("image_url"), payload.get("image"))
    price_display = payload.get("price_display")
    return {
        "name": payload.get("name"),
        "description": payload.get("description"),
        "price": payload.get("price"),
        "category": payload.get("category"),
        "benefits": list(payload.get("benefits") or []),
        "image_url": image_url,
        "image": image,
        "price_display": format_price_display(payload.get("price")) if _blank(price_display) else price_display,
        "commission_rate": commission_rate(payload.get("commission_rate")),
        "sales_url": payload.get("sales_url") or "",
        "affiliate_link": payload.get("affiliate_link") or "",
        "vendor_name": payload.get("vendor_name") or "",
        "platform": payload.get("platform") or DEFAULT_PLATFORM,
    }


def _recommended_entry(payload: dict) -> dict:
    return {
        "name": payload.get("name"),
        "description": payload.get("description"),
        "benefits": list(payload.get("benefits") or []),
        "price": payload.get("price"),
        "image": payload.get("image") or "",
        "category": payload.get("category"),
        "eliteBadge": bool(payload.get("eliteBadge")),
        "topPick": bool(payload.get("topPick")),
        "sales_url": payload.get("sales_url") or "",
        "rating": DEFAULT_RATING,
        "addedByAdmin": False,
    }


def _testimonial_entry(payload: dict) -> dict:
    return {
        "image_url": payload.get("image_url"),
        "type": payload.get("type") or "testimonial",
        "name": payload.get("name"),
        "product": payload.get("product"),
        "message": payload.get("message"),
    }


_BUILDERS: dict[SubmissionKind, Callable[[dict], dict]] = {
    SubmissionKind.PRODUCT: _product_entry,
    SubmissionKind.RECOMMENDED: _recommended_entry,
    SubmissionKind.TESTIMONIAL: _testimonial_entry,
}


def to_catalog_entry(submission: Submission) -> dict:
    """
    Build the catalog draft for ``submission``. Placement is never inherited:
    the entry starts active, not featured, at the baseline order index.
    """
    draft = _BUILDERS[submission.kind](dict(submission.payload))
    draft.update(active=True, featured=False, order_index=BASELINE_ORDER_INDEX)
    return draft
