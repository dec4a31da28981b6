"""Integration tests for the HTTP moderation surface."""
import pytest
from fastapi.testclient import TestClient

from vitrine.config import Settings
from vitrine.main import create_app

SUBMITTER = {"X-User-Id": "user-1"}
REVIEWER = {"X-User-Id": "moderator-1"}


@pytest.fixture
def client(tmp_path):
    config = Settings(
        SUBMISSIONS_DB_PATH=str(tmp_path / "submissions.db"),
        CATALOG_DB_PATH=str(tmp_path / "catalog.db"),
        LOG_LEVEL="warning",
    )
    app = create_app(config)
    with TestClient(app) as c:
        yield c


def _submit_product(client, **payload):
    body = {"name": "X", "price": 10}
    body.update(payload)
    response = client.post("/submissions/product", json=body, headers=SUBMITTER)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_submit_requires_identity(client):
    response = client.post("/submissions/product", json={"name": "X"})
    assert response.status_code == 401
    data = response.json()
    assert data["status"] == "error"
    assert data["category"] == "auth"
    assert data["retryable"] is False


def test_submit_invalid_payload(client):
    response = client.post("/submissions/product", json={"price": -3}, headers=SUBMITTER)
    assert response.status_code == 422
    assert response.json()["category"] == "validation"


def test_unknown_kind_is_rejected(client):
    response = client.post("/submissions/ebook", json={"name": "X"}, headers=SUBMITTER)
    assert response.status_code == 422


def test_submit_and_list(client):
    created = _submit_product(client, status="approved")
    assert created["status"] == "pending"
    assert created["submitter_id"] == "user-1"

    pending = client.get("/submissions/product").json()
    assert [s["id"] for s in pending] == [created["id"]]
    assert client.get("/submissions/product", params={"status": "approved"}).json() == []

    mine = client.get("/submissions/product/mine", headers=SUBMITTER).json()
    assert [s["id"] for s in mine] == [created["id"]]
    assert client.get("/submissions/product/mine", headers=REVIEWER).json() == []


def test_list_rejects_unknown_status(client):
    response = client.get("/submissions/product", params={"status": "archived"})
    assert response.status_code == 422


def test_approve_publishes_to_catalog(client):
    created = _submit_product(client)
    response = client.post(
        f"/submissions/product/{created['id']}/approve", json={"comments": "ok"}, headers=REVIEWER
    )
    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["outcome"] == "published"

    catalog = client.get("/catalog/product").json()
    assert [e["id"] for e in catalog] == [result["catalog_entry_id"]]
    assert catalog[0]["active"] is True
    assert catalog[0]["fields"]["name"] == "X"
    assert client.get("/submissions/product").json() == []

    again = client.post(f"/submissions/product/{created['id']}/approve", headers=REVIEWER)
    assert again.status_code == 409
    assert again.json()["category"] == "conflict"
    assert len(client.get("/catalog/product").json()) == 1


def test_approve_without_body(client):
    created = _submit_product(client)
    response = client.post(f"/submissions/product/{created['id']}/approve", headers=REVIEWER)
    assert response.status_code == 200
    assert response.json()["outcome"] == "published"


def test_approve_missing_submission(client):
    response = client.post("/submissions/product/ghost/approve", headers=REVIEWER)
    assert response.status_code == 404
    assert response.json()["category"] == "not_found"


def test_reject_requires_reason(client):
    created = _submit_product(client)
    response = client.post(
        f"/submissions/product/{created['id']}/reject", json={"comments": "  "}, headers=REVIEWER
    )
    assert response.status_code == 422
    assert response.json()["category"] == "validation"
    pending = client.get("/submissions/product").json()
    assert [s["id"] for s in pending] == [created["id"]]


def test_reject(client):
    created = _submit_product(client)
    response = client.post(
        f"/submissions/product/{created['id']}/reject", json={"comments": "duplicate"}, headers=REVIEWER
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "rejected"
    rejected = client.get("/submissions/product", params={"status": "rejected"}).json()
    assert rejected[0]["reviewer_comments"] == "duplicate"
    assert rejected[0]["reviewer_id"] == "moderator-1"


def test_review_requires_identity(client):
    created = _submit_product(client)
    response = client.post(f"/submissions/product/{created['id']}/approve")
    assert response.status_code == 401


def test_testimonial_flow(client):
    response = client.post(
        "/submissions/testimonial",
        json={"image_url": "https://cdn/print.png", "type": "sale", "name": "Ana"},
        headers=SUBMITTER,
    )
    assert response.status_code == 201
    created = response.json()

    result = client.post(
        f"/submissions/testimonial/{created['id']}/approve", headers=REVIEWER
    ).json()
    assert result["outcome"] == "published"
    gallery = client.get("/catalog/testimonial").json()
    assert gallery[0]["fields"]["type"] == "sale"
    assert client.get("/submissions/testimonial", params={"status": "approved"}).json()[0]["id"] == created["id"]
    assert client.get("/submissions/testimonial/unpromoted").json() == []


def test_recommendation_flow(client):
    response = client.post(
        "/submissions/recommended",
        json={"name": "Kit Confeiteiro", "price": 47, "eliteBadge": True, "salesUrl": "https://pay/kit"},
        headers=SUBMITTER,
    )
    assert response.status_code == 201
    created = response.json()
    assert created["kind"] == "recommended"

    result = client.post(f"/submissions/recommended/{created['id']}/approve", headers=REVIEWER).json()
    assert result["outcome"] == "published"
    listed = client.get("/catalog/recommended").json()
    assert listed[0]["fields"]["rating"] == 5.0
    assert listed[0]["fields"]["eliteBadge"] is True
    assert client.get("/submissions/recommended").json() == []


def test_promote_requires_approved(client):
    created = _submit_product(client)
    response = client.post(f"/submissions/product/{created['id']}/promote", headers=REVIEWER)
    assert response.status_code == 409


def test_catalog_management(client):
    created = _submit_product(client)
    entry_id = client.post(
        f"/submissions/product/{created['id']}/approve", headers=REVIEWER
    ).json()["catalog_entry_id"]

    response = client.patch(f"/catalog/product/{entry_id}", json={"featured": True, "order_index": 3})
    assert response.status_code == 200
    assert response.json()["featured"] is True
    assert response.json()["order_index"] == 3

    bad = client.patch(f"/catalog/product/{entry_id}", json={"reviewer_id": "x"})
    assert bad.status_code == 422

    nulled = client.patch(f"/catalog/product/{entry_id}", json={"active": None})
    assert nulled.status_code == 422
    assert nulled.json()["category"] == "validation"
    mistyped = client.patch(f"/catalog/product/{entry_id}", json={"price": "abc"})
    assert mistyped.status_code == 422

    client.patch(f"/catalog/product/{entry_id}", json={"active": False})
    assert client.get("/catalog/product").json() == []
    assert len(client.get("/catalog/product", params={"active_only": False}).json()) == 1

    assert client.delete(f"/catalog/product/{entry_id}").status_code == 204
    assert client.delete(f"/catalog/product/{entry_id}").status_code == 404


def test_diagnostics(client):
    response = client.get("/diagnostics")
    assert response.status_code == 200
    data = response.json()
    assert data["healthy"] is True
    assert data["backends"] == {"product": "two_step", "recommended": "two_step", "testimonial": "atomic"}
    assert len(data["stores"]) == 6


def test_repair_on_healthy_store(client):
    response = client.post("/diagnostics/repair")
    assert response.status_code == 200
    data = response.json()
    assert data["changed"] is False
    assert len(data["actions"]) == 4
