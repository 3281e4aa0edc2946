"""Field validation and leaf upsert rules."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from app.models.catalog import CatalogMaterial
from app.models.progress import ProgressKind
from app.repos.catalog_repo import add_material
from app.repos.memory import InMemoryDatabase
from app.repos.unit_of_work import InMemoryUnitOfWork
from app.services.completion import CompletionPolicy
from app.services.errors import (
    NotFoundReason,
    ProgressNotFoundError,
    ProgressValidationError,
    ValidationReason,
)
from app.services.progress_store import (
    MAX_NOTE_LENGTH,
    ProgressStore,
    ProgressSubmission,
    validate_minutes,
    validate_rate,
    validate_submission,
)
from tests.conftest import START

# ---- progress_rate ----


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (0, Decimal("0.00")),
        (100, Decimal("100.00")),
        (50.5, Decimal("50.50")),
        ("99.5", Decimal("99.50")),
        (Decimal("33.335"), Decimal("33.34")),
        (Decimal("66.664"), Decimal("66.66")),
        (0.1, Decimal("0.10")),
    ],
)
def test_validate_rate_accepts_and_rounds(raw: object, expected: Decimal) -> None:
    assert validate_rate(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        -0.01,
        100.01,
        Decimal("100.004"),
        150,
        float("nan"),
        float("inf"),
        Decimal("Infinity"),
        "abc",
        True,
        None,
        [50],
    ],
)
def test_validate_rate_rejects(raw: object) -> None:
    with pytest.raises(ProgressValidationError) as exc_info:
        validate_rate(raw)
    assert exc_info.value.reason is ValidationReason.OUT_OF_RANGE


# ---- spent_minutes ----


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, None), (0, 0), (45, 45), (10.0, 10), (Decimal("15"), 15)],
)
def test_validate_minutes_accepts(raw: object, expected: int | None) -> None:
    assert validate_minutes(raw) == expected


@pytest.mark.parametrize("raw", [2.5, Decimal("0.1"), True, "10", float("nan")])
def test_validate_minutes_rejects_non_integers(raw: object) -> None:
    with pytest.raises(ProgressValidationError) as exc_info:
        validate_minutes(raw)
    assert exc_info.value.reason is ValidationReason.NOT_INTEGER


def test_validate_minutes_rejects_negative() -> None:
    with pytest.raises(ProgressValidationError) as exc_info:
        validate_minutes(-1)
    assert exc_info.value.reason is ValidationReason.OUT_OF_RANGE


# ---- note ----


def test_note_at_limit_is_accepted() -> None:
    submission = validate_submission(10, note="x" * MAX_NOTE_LENGTH)
    assert len(submission.note) == MAX_NOTE_LENGTH


def test_note_over_limit_is_rejected() -> None:
    with pytest.raises(ProgressValidationError) as exc_info:
        validate_submission(10, note="x" * (MAX_NOTE_LENGTH + 1))
    assert exc_info.value.reason is ValidationReason.NOTE_TOO_LONG


# ---- upsert ----


async def _upsert(
    db: InMemoryDatabase,
    material_id: int,
    submission: ProgressSubmission,
    policy: CompletionPolicy = CompletionPolicy.REVERSIBLE,
):
    async with InMemoryUnitOfWork(db) as uow:
        stored = await ProgressStore(policy).upsert(
            uow, "u1", material_id, submission, clock=lambda: START
        )
        await uow.commit()
    return stored


def test_upsert_creates_manual_leaf(db: InMemoryDatabase) -> None:
    stored = asyncio.run(
        _upsert(db, 1000, ProgressSubmission(Decimal("40.00"), 15, "started"))
    )
    leaf = stored.current
    assert stored.previous is None
    assert leaf.id > 0
    assert leaf.course_id == 10
    assert leaf.lesson_id == 100
    assert leaf.progress_kind is ProgressKind.MANUAL
    assert leaf.manual_progress_rate == Decimal("40.00")
    assert leaf.spent_minutes == 15
    assert leaf.note == "started"
    assert leaf.last_updated_at == START


def test_upsert_accumulates_minutes_and_keeps_note(db: InMemoryDatabase) -> None:
    asyncio.run(_upsert(db, 1000, ProgressSubmission(Decimal("40.00"), 15, "started")))
    stored = asyncio.run(_upsert(db, 1000, ProgressSubmission(Decimal("60.00"), 10)))
    assert stored.previous is not None
    assert stored.current.id == stored.previous.id
    assert stored.current.spent_minutes == 25
    assert stored.minutes_delta == 10
    assert stored.current.note == "started"


def test_upsert_rejects_unknown_material(db: InMemoryDatabase) -> None:
    with pytest.raises(ProgressNotFoundError) as exc_info:
        asyncio.run(_upsert(db, 9999, ProgressSubmission(Decimal("10.00"))))
    assert exc_info.value.reason is NotFoundReason.MATERIAL_NOT_FOUND
    assert db.tables.progress == {}


def test_upsert_rejects_automatic_only_material(db: InMemoryDatabase) -> None:
    add_material(
        db, CatalogMaterial(id=1099, lesson_id=100, allow_manual_progress=False)
    )
    with pytest.raises(ProgressValidationError) as exc_info:
        asyncio.run(_upsert(db, 1099, ProgressSubmission(Decimal("10.00"))))
    assert exc_info.value.reason is ValidationReason.MANUAL_PROGRESS_NOT_ALLOWED
    assert db.tables.progress == {}
