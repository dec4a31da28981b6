import pytest

from vitrine.models.identity import Identity
from vitrine.services.container import build_container


@pytest.fixture
def container(tmp_path):
    """Services wired to fresh submissions and catalog databases."""
    c = build_container(str(tmp_path / "submissions.db"), str(tmp_path / "catalog.db"), timeout=5.0)
    c.migrate()
    return c


@pytest.fixture
def moderation(container):
    return container.moderation


@pytest.fixture
def submitter():
    return Identity("user-1")


@pytest.fixture
def reviewer():
    return Identity("moderator-1")
