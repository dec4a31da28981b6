import asyncio
import logging
from dataclasses import asdict

from fastapi import APIRouter, Body, Request

from vitrine.models.identity import Identity
from vitrine.models.submission import SubmissionKind, SubmissionStatus
from vitrine.schemas.catalog import CatalogEntryOut, CatalogPatch
from vitrine.schemas.submission import ModerationResultOut, ReviewRequest, SubmissionOut

logger = logging.getLogger(__name__)

router = APIRouter()

IDENTITY_HEADER = "X-User-Id"


def _identity(request: Request) -> Identity | None:
    """The caller as reported by the upstream auth proxy; None when absent."""
    user_id = request.headers.get(IDENTITY_HEADER, "").strip()
    return Identity(user_id) if user_id else None


def _container(request: Request):
    return request.app.state.container


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.post("/submissions/{kind}", response_model=SubmissionOut, status_code=201)
async def submit(kind: SubmissionKind, request: Request, payload: dict = Body(...)) -> SubmissionOut:
    moderation = _container(request).moderation
    submission = await asyncio.to_thread(moderation.submit, kind, payload, _identity(request))
    return SubmissionOut.model_validate(submission)


@router.get("/submissions/{kind}", response_model=list[SubmissionOut])
async def list_submissions(
    kind: SubmissionKind, request: Request, status: SubmissionStatus = SubmissionStatus.PENDING
) -> list[SubmissionOut]:
    moderation = _container(request).moderation
    submissions = await asyncio.to_thread(moderation.list_submissions, kind, status)
    return [SubmissionOut.model_validate(s) for s in submissions]


@router.get("/submissions/{kind}/mine", response_model=list[SubmissionOut])
async def list_mine(kind: SubmissionKind, request: Request) -> list[SubmissionOut]:
    moderation = _container(request).moderation
    submissions = await asyncio.to_thread(moderation.list_mine, kind, _identity(request))
    return [SubmissionOut.model_validate(s) for s in submissions]


@router.get("/submissions/{kind}/unpromoted", response_model=list[SubmissionOut])
async def list_unpromoted(kind: SubmissionKind, request: Request) -> list[SubmissionOut]:
    moderation = _container(request).moderation
    submissions = await asyncio.to_thread(moderation.list_unpromoted, kind)
    return [SubmissionOut.model_validate(s) for s in submissions]


@router.post("/submissions/{kind}/{submission_id}/approve", response_model=ModerationResultOut)
async def approve(
    kind: SubmissionKind, submission_id: str, request: Request, review: ReviewRequest | None = None
) -> ModerationResultOut:
    moderation = _container(request).moderation
    comments = review.comments if review else None
    result = await asyncio.to_thread(
        moderation.approve, kind, submission_id, _identity(request), comments
    )
    return ModerationResultOut.model_validate(result)


@router.post("/submissions/{kind}/{submission_id}/reject", response_model=ModerationResultOut)
async def reject(
    kind: SubmissionKind, submission_id: str, review: ReviewRequest, request: Request
) -> ModerationResultOut:
    moderation = _container(request).moderation
    result = await asyncio.to_thread(
        moderation.reject, kind, submission_id, _identity(request), review.comments
    )
    return ModerationResultOut.model_validate(result)


@router.post("/submissions/{kind}/{submission_id}/promote", response_model=ModerationResultOut)
async def promote(kind: SubmissionKind, submission_id: str, request: Request) -> ModerationResultOut:
    moderation = _container(request).moderation
    result = await asyncio.to_thread(
        moderation.retry_promotion, kind, submission_id, _identity(request)
    )
    return ModerationResultOut.model_validate(result)


@router.get("/catalog/{kind}", response_model=list[CatalogEntryOut])
async def list_catalog(kind: SubmissionKind, request: Request, active_only: bool = True) -> list[CatalogEntryOut]:
    catalog = _container(request).catalogs[kind]
    entries = await asyncio.to_thread(catalog.list_active if active_only else catalog.list_all)
    return [CatalogEntryOut.model_validate(e) for e in entries]


@router.patch("/catalog/{kind}/{entry_id}", response_model=CatalogEntryOut)
async def update_catalog_entry(
    kind: SubmissionKind, entry_id: str, patch: CatalogPatch, request: Request
) -> CatalogEntryOut:
    catalog = _container(request).catalogs[kind]
    entry = await asyncio.to_thread(catalog.update, entry_id, patch.changes())
    return CatalogEntryOut.model_validate(entry)


@router.delete("/catalog/{kind}/{entry_id}", status_code=204)
async def delete_catalog_entry(kind: SubmissionKind, entry_id: str, request: Request) -> None:
    catalog = _container(request).catalogs[kind]
    await asyncio.to_thread(catalog.delete, entry_id)


@router.get("/diagnostics")
async def diagnostics(request: Request) -> dict:
    snapshot = await asyncio.to_thread(_container(request).diagnostics.snapshot)
    body = asdict(snapshot)
    body["healthy"] = snapshot.healthy
    return body


@router.post("/diagnostics/repair")
async def repair(request: Request) -> dict:
    report = await asyncio.to_thread(_container(request).diagnostics.repair)
    logger.info("[diagnostics] repair requested | changed=%s", report.changed)
    body = asdict(report)
    body["changed"] = report.changed
    return body
