from __future__ import annotations

import os
import sys
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Settings are read at import time; keep the dev sample catalog out of tests.
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.models.catalog import (  # noqa: E402
    CatalogCourse,
    CatalogLesson,
    CatalogMaterial,
)
from app.repos.catalog_repo import (  # noqa: E402
    add_course,
    add_lesson,
    add_material,
    seed_sample_catalog,
)
from app.repos.memory import InMemoryDatabase  # noqa: E402
from app.repos.unit_of_work import InMemoryUnitOfWork  # noqa: E402
from app.services import token_service  # noqa: E402
from app.services.cache import InMemoryCacheService, cache_service  # noqa: E402
from app.services.completion import CompletionPolicy  # noqa: E402
from app.services.coordinator import ProgressCoordinator, memory_db  # noqa: E402

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_progress_state() -> None:
    """Fresh in-memory database behind the app between tests."""
    memory_db.reset()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if isinstance(cache_service, InMemoryCacheService):
        cache_service.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def sample_catalog() -> InMemoryDatabase:
    """The dev catalog behind the app:

    course 1
      lesson 1: material 1, material 2
      lesson 2: material 3 (automatic only), material 4
    """
    seed_sample_catalog(memory_db)
    return memory_db


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


@pytest.fixture
def token() -> str:
    """Token with default role (user)."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Engine test helpers
# ---------------------------------------------------------------------------

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)  # a Monday


class FixedClock:
    """Deterministic clock for the coordinator; move it with advance()."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def seed_course(
    db: InMemoryDatabase,
    course_id: int,
    layout: dict[int, list[int]],
) -> None:
    """Add a published course whose lessons hold the given material ids."""
    add_course(db, CatalogCourse(id=course_id, title=f"Course {course_id}"))
    for order, (lesson_id, material_ids) in enumerate(layout.items()):
        add_lesson(
            db,
            CatalogLesson(id=lesson_id, course_id=course_id, sort_order=order),
        )
        for m_order, material_id in enumerate(material_ids):
            add_material(
                db,
                CatalogMaterial(
                    id=material_id, lesson_id=lesson_id, sort_order=m_order
                ),
            )


def make_coordinator(
    db: InMemoryDatabase,
    *,
    policy: CompletionPolicy = CompletionPolicy.REVERSIBLE,
    clock: Callable[[], datetime] | None = None,
    **kwargs,
) -> ProgressCoordinator:
    return ProgressCoordinator(
        lambda: InMemoryUnitOfWork(db),
        policy=policy,
        clock=clock or FixedClock(),
        **kwargs,
    )


@pytest.fixture
def db() -> InMemoryDatabase:
    """Standalone database for engine tests.

    course 10
      lesson 100: materials 1000, 1001, 1002
      lesson 101: material 1010
      lesson 102: no materials
    """
    database = InMemoryDatabase()
    seed_course(database, 10, {100: [1000, 1001, 1002], 101: [1010], 102: []})
    return database


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
