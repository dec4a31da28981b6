"""Integration tests for the moderation pipeline and both promotion backends."""
import asyncio
from unittest.mock import patch

import pytest

from vitrine.errors import (
    InvalidTransitionError,
    NotFoundError,
    SchemaDriftError,
    StoreUnavailableError,
    UnauthenticatedError,
    ValidationError,
)
from vitrine.models.identity import Identity
from vitrine.models.submission import SubmissionKind, SubmissionStatus
from vitrine.services.container import build_container
from vitrine.services.promotion import Outcome

PRODUCT = SubmissionKind.PRODUCT
RECOMMENDED = SubmissionKind.RECOMMENDED
TESTIMONIAL = SubmissionKind.TESTIMONIAL


def _drop_table(database, table: str) -> None:
    with database.transaction() as conn:
        conn.execute(f"DROP TABLE {table}")


def test_backends_follow_store_layout(moderation):
    assert moderation.backend_name(PRODUCT) == "two_step"
    assert moderation.backend_name(RECOMMENDED) == "two_step"
    assert moderation.backend_name(TESTIMONIAL) == "atomic"


def test_shared_database_makes_products_atomic(tmp_path):
    path = str(tmp_path / "single.db")
    container = build_container(path, path)
    container.migrate()
    assert container.moderation.backend_name(PRODUCT) == "atomic"
    assert len(container.layout) == 1


def test_identity_is_required(moderation):
    with pytest.raises(UnauthenticatedError):
        moderation.submit(PRODUCT, {"name": "X"}, None)
    with pytest.raises(UnauthenticatedError):
        moderation.approve(PRODUCT, "any", Identity("  "))


def test_unknown_kind(moderation, submitter):
    with pytest.raises(ValidationError):
        moderation.submit("ebook", {"name": "X"}, submitter)


# Scenario A: submitted status is ignored, the submission lands as pending
def test_submit_lands_pending(moderation, submitter):
    submission = moderation.submit(PRODUCT, {"name": "X", "price": 10, "status": "approved"}, submitter)
    assert submission.status is SubmissionStatus.PENDING
    pending = moderation.list_submissions(PRODUCT, SubmissionStatus.PENDING)
    assert submission.id in [s.id for s in pending]
    assert [s.id for s in moderation.list_mine(PRODUCT, submitter)] == [submission.id]


# Scenario B: approval publishes exactly one active entry and clears the queue
def test_two_step_approve_publishes(container, moderation, submitter, reviewer):
    submission = moderation.submit(PRODUCT, {"name": "X", "price": 10}, submitter)
    result = moderation.approve(PRODUCT, submission.id, reviewer, "ok")

    assert result.success is True
    assert result.outcome is Outcome.PUBLISHED
    entries = container.catalogs[PRODUCT].list_all()
    assert len(entries) == 1
    assert entries[0].id == result.catalog_entry_id
    assert entries[0].active is True
    assert entries[0].featured is False
    assert entries[0].fields["name"] == "X"
    assert entries[0].fields["price_display"] == "R$ 10,00"
    assert moderation.list_submissions(PRODUCT, SubmissionStatus.PENDING) == []
    assert moderation.list_unpromoted(PRODUCT) == []


# Scenario C: a blank rejection reason changes nothing
@pytest.mark.parametrize("reason", ["", "   ", None])
def test_reject_without_reason(container, moderation, submitter, reviewer, reason):
    submission = moderation.submit(PRODUCT, {"name": "X"}, submitter)
    with pytest.raises(ValidationError):
        moderation.reject(PRODUCT, submission.id, reviewer, reason)
    assert container.submissions[PRODUCT].get(submission.id).status is SubmissionStatus.PENDING


def test_reject_is_final(container, moderation, submitter, reviewer):
    submission = moderation.submit(PRODUCT, {"name": "X"}, submitter)
    result = moderation.reject(PRODUCT, submission.id, reviewer, "  broken link ")
    assert result.outcome is Outcome.REJECTED

    stored = container.submissions[PRODUCT].get(submission.id)
    assert stored.status is SubmissionStatus.REJECTED
    assert stored.reviewer_comments == "broken link"
    with pytest.raises(InvalidTransitionError):
        moderation.approve(PRODUCT, submission.id, reviewer)
    with pytest.raises(InvalidTransitionError):
        moderation.retry_promotion(PRODUCT, submission.id, reviewer)
    assert container.catalogs[PRODUCT].list_all() == []


# Scenario D: approving twice never publishes twice
@pytest.mark.parametrize("kind", [PRODUCT, TESTIMONIAL])
def test_reapprove_is_refused(container, moderation, submitter, reviewer, kind):
    payload = {"name": "X"} if kind is PRODUCT else {"image_url": "https://cdn/print.png"}
    submission = moderation.submit(kind, payload, submitter)
    moderation.approve(kind, submission.id, reviewer, "ok")

    with pytest.raises(InvalidTransitionError):
        moderation.approve(kind, submission.id, reviewer, "again")
    with pytest.raises(InvalidTransitionError):
        moderation.reject(kind, submission.id, reviewer, "changed my mind")
    assert len(container.catalogs[kind].list_all()) == 1


def test_approve_unknown_submission(moderation, reviewer):
    with pytest.raises(NotFoundError):
        moderation.approve(PRODUCT, "ghost", reviewer)


@pytest.mark.asyncio
async def test_concurrent_reviews_exactly_one_wins(container, submitter):
    repo = container.submissions[PRODUCT]
    for _ in range(5):
        submission = repo.create({"name": "contested"}, submitter.user_id)
        results = await asyncio.gather(
            asyncio.to_thread(repo.transition_status, submission.id, SubmissionStatus.APPROVED, "mod-a"),
            asyncio.to_thread(
                repo.transition_status, submission.id, SubmissionStatus.REJECTED, "mod-b", "no"
            ),
            return_exceptions=True,
        )
        wins = [r for r in results if not isinstance(r, BaseException)]
        losses = [r for r in results if isinstance(r, BaseException)]
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], InvalidTransitionError)
        assert repo.get(submission.id).status is wins[0].status


@pytest.mark.asyncio
async def test_concurrent_approvals_publish_once(container, moderation, submitter):
    submission = moderation.submit(TESTIMONIAL, {"image_url": "https://cdn/a.png"}, submitter)
    results = await asyncio.gather(
        *(
            asyncio.to_thread(moderation.approve, TESTIMONIAL, submission.id, Identity(f"mod-{i}"))
            for i in range(3)
        ),
        return_exceptions=True,
    )
    assert sum(1 for r in results if not isinstance(r, BaseException)) == 1
    assert all(isinstance(r, InvalidTransitionError) for r in results if isinstance(r, BaseException))
    assert len(container.catalogs[TESTIMONIAL].list_all()) == 1


# -- two-step partial failure -------------------------------------------------


def test_failed_insert_leaves_promotion_pending(container, moderation, submitter, reviewer):
    catalog = container.catalogs[PRODUCT]
    submission = moderation.submit(PRODUCT, {"name": "X", "price": 10}, submitter)
    _drop_table(catalog.database, "affiliate_products")

    result = moderation.approve(PRODUCT, submission.id, reviewer, "ok")
    assert result.success is False
    assert result.outcome is Outcome.PROMOTION_PENDING
    assert "retry" in result.message
    assert container.submissions[PRODUCT].get(submission.id).status is SubmissionStatus.APPROVED
    assert [s.id for s in moderation.list_unpromoted(PRODUCT)] == [submission.id]

    # still broken: the retry reports drift instead of publishing blind
    with pytest.raises(SchemaDriftError):
        moderation.retry_promotion(PRODUCT, submission.id, reviewer)

    container.diagnostics.repair()
    retried = moderation.retry_promotion(PRODUCT, submission.id, reviewer)
    assert retried.success is True
    assert retried.outcome is Outcome.PUBLISHED
    assert len(catalog.list_all()) == 1
    assert moderation.list_unpromoted(PRODUCT) == []
    with pytest.raises(NotFoundError):
        container.submissions[PRODUCT].get(submission.id)


def test_failed_cleanup_is_tolerated(container, moderation, submitter, reviewer):
    repo = container.submissions[PRODUCT]
    catalog = container.catalogs[PRODUCT]
    submission = moderation.submit(PRODUCT, {"name": "X"}, submitter)

    with patch.object(repo, "delete", side_effect=StoreUnavailableError("database is locked")) as delete:
        result = moderation.approve(PRODUCT, submission.id, reviewer)
    delete.assert_called_once_with(submission.id)
    assert result.success is True
    assert result.outcome is Outcome.PUBLISHED
    assert [s.id for s in moderation.list_unpromoted(PRODUCT)] == [submission.id]

    # the retry finds the published entry and only finishes the cleanup
    retried = moderation.retry_promotion(PRODUCT, submission.id, reviewer)
    assert retried.success is True
    assert retried.catalog_entry_id == result.catalog_entry_id
    assert len(catalog.list_all()) == 1
    assert moderation.list_unpromoted(PRODUCT) == []


def test_retry_requires_approved_submission(moderation, submitter, reviewer):
    submission = moderation.submit(PRODUCT, {"name": "X"}, submitter)
    with pytest.raises(InvalidTransitionError):
        moderation.retry_promotion(PRODUCT, submission.id, reviewer)


# -- recommendations ----------------------------------------------------------


def test_recommendation_publishes_with_top_rating(container, moderation, submitter, reviewer):
    payload = {"name": "Kit Confeiteiro", "price": 47, "salesUrl": "https://pay/kit", "topPick": True}
    submission = moderation.submit(RECOMMENDED, payload, submitter)
    assert submission.payload["sales_url"] == "https://pay/kit"

    result = moderation.approve(RECOMMENDED, submission.id, reviewer, "great pick")
    assert result.outcome is Outcome.PUBLISHED
    entries = container.catalogs[RECOMMENDED].list_active()
    assert [e.id for e in entries] == [result.catalog_entry_id]
    assert entries[0].fields["rating"] == 5.0
    assert entries[0].fields["topPick"] is True
    assert entries[0].fields["eliteBadge"] is False
    assert entries[0].fields["sales_url"] == "https://pay/kit"
    with pytest.raises(NotFoundError):
        container.submissions[RECOMMENDED].get(submission.id)


def test_recommendation_cleanup_failure_is_tolerated(container, moderation, submitter, reviewer):
    repo = container.submissions[RECOMMENDED]
    submission = moderation.submit(RECOMMENDED, {"name": "Kit"}, submitter)

    with patch.object(repo, "delete", side_effect=StoreUnavailableError("database is locked")):
        result = moderation.approve(RECOMMENDED, submission.id, reviewer)
    assert result.success is True
    assert len(container.catalogs[RECOMMENDED].list_all()) == 1
    assert repo.get(submission.id).status is SubmissionStatus.APPROVED


# -- atomic -------------------------------------------------------------------


def test_atomic_approve_keeps_audit_row(container, moderation, submitter, reviewer):
    payload = {"image_url": "https://cdn/print.png", "type": "sale", "name": "Ana", "message": "Vendi!"}
    submission = moderation.submit(TESTIMONIAL, payload, submitter)
    result = moderation.approve(TESTIMONIAL, submission.id, reviewer, "nice")

    assert result.success is True
    assert result.outcome is Outcome.PUBLISHED
    stored = container.submissions[TESTIMONIAL].get(submission.id)
    assert stored.status is SubmissionStatus.APPROVED
    assert stored.reviewer_comments == "nice"

    gallery = container.catalogs[TESTIMONIAL].list_active()
    assert [e.id for e in gallery] == [result.catalog_entry_id]
    assert gallery[0].fields["type"] == "sale"
    assert moderation.list_unpromoted(TESTIMONIAL) == []


def test_atomic_approve_rolls_back_on_failure(container, moderation, submitter, reviewer):
    submission = moderation.submit(TESTIMONIAL, {"image_url": "https://cdn/a.png"}, submitter)
    _drop_table(container.catalogs[TESTIMONIAL].database, "testimonial_gallery")

    with pytest.raises(SchemaDriftError):
        moderation.approve(TESTIMONIAL, submission.id, reviewer)
    assert container.submissions[TESTIMONIAL].get(submission.id).status is SubmissionStatus.PENDING


def test_atomic_promote_publishes_approved_orphan(container, moderation, submitter, reviewer):
    repo = container.submissions[TESTIMONIAL]
    submission = moderation.submit(TESTIMONIAL, {"image_url": "https://cdn/a.png"}, submitter)
    # approved outside the pipeline, never published
    repo.transition_status(submission.id, SubmissionStatus.APPROVED, reviewer.user_id)
    assert [s.id for s in moderation.list_unpromoted(TESTIMONIAL)] == [submission.id]

    first = moderation.retry_promotion(TESTIMONIAL, submission.id, reviewer)
    second = moderation.retry_promotion(TESTIMONIAL, submission.id, reviewer)
    assert first.success and second.success
    assert first.catalog_entry_id == second.catalog_entry_id
    assert len(container.catalogs[TESTIMONIAL].list_all()) == 1
    assert moderation.list_unpromoted(TESTIMONIAL) == []
