"""Lesson and course roll-ups."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from app.models.catalog import CatalogCourse, CatalogMaterial
from app.repos.catalog_repo import add_course, add_material
from app.repos.memory import InMemoryDatabase
from app.repos.unit_of_work import InMemoryUnitOfWork
from app.services.aggregation import AggregationEngine, mean_rate
from tests.conftest import make_coordinator


def _submit(db: InMemoryDatabase, *writes: tuple[int, int]) -> None:
    coordinator = make_coordinator(db)

    async def run() -> None:
        for material_id, rate in writes:
            await coordinator.submit_progress("u1", material_id, rate)

    asyncio.run(run())


def test_mean_rate_rounds_half_up() -> None:
    assert mean_rate([]) == Decimal("0.00")
    assert mean_rate([Decimal("100"), Decimal("0"), Decimal("0")]) == Decimal("33.33")
    assert mean_rate([Decimal("100"), Decimal("100"), Decimal("0")]) == Decimal(
        "66.67"
    )
    assert mean_rate([Decimal("0.01"), Decimal("0.00")]) == Decimal("0.01")


def test_lesson_counts_missing_leaves_as_zero(db: InMemoryDatabase) -> None:
    _submit(db, (1000, 50), (1001, 100))
    summary = asyncio.run(make_coordinator(db).get_lesson_summary("u1", 100))
    assert summary.aggregate_progress_rate == Decimal("50.00")
    assert summary.completed_material_count == 1
    assert summary.total_material_count == 3


def test_course_averages_lessons_and_skips_empty_ones(db: InMemoryDatabase) -> None:
    _submit(db, (1000, 50), (1001, 100), (1010, 100))
    summary = asyncio.run(make_coordinator(db).get_course_summary("u1", 10))
    # lesson 100 -> 50.00, lesson 101 -> 100.00, lesson 102 has no materials
    assert summary.aggregate_progress_rate == Decimal("75.00")
    assert summary.completed_lesson_count == 1
    assert summary.total_lesson_count == 2


def test_course_without_lessons_is_zero(db: InMemoryDatabase) -> None:
    add_course(db, CatalogCourse(id=20))
    summary = asyncio.run(make_coordinator(db).get_course_summary("u1", 20))
    assert summary.aggregate_progress_rate == Decimal("0.00")
    assert summary.total_lesson_count == 0
    assert summary.completed_lesson_count == 0


def test_unpublished_material_is_left_out(db: InMemoryDatabase) -> None:
    add_material(db, CatalogMaterial(id=1003, lesson_id=100, is_published=False))
    _submit(db, (1000, 100), (1001, 100), (1002, 100))
    summary = asyncio.run(make_coordinator(db).get_lesson_summary("u1", 100))
    assert summary.aggregate_progress_rate == Decimal("100.00")
    assert summary.total_material_count == 3


def test_write_path_persists_fresh_summaries(db: InMemoryDatabase) -> None:
    _submit(db, (1000, 30), (1010, 90))
    lesson = db.tables.lesson_summaries[("u1", 100)]
    course = db.tables.course_summaries[("u1", 10)]
    assert lesson.aggregate_progress_rate == Decimal("10.00")
    assert course.aggregate_progress_rate == Decimal("50.00")


def test_recompute_is_deterministic(db: InMemoryDatabase) -> None:
    _submit(db, (1000, 33), (1001, 67), (1010, 12))
    engine = AggregationEngine()

    async def recompute_twice():
        async with InMemoryUnitOfWork(db) as uow:
            first = await engine.recompute_course(uow, "u1", 10)
            second = await engine.recompute_course(uow, "u1", 10)
            lesson_a = await engine.recompute_lesson(uow, "u1", 100)
            lesson_b = await engine.recompute_lesson(uow, "u1", 100)
            await uow.commit()
        return first, second, lesson_a, lesson_b

    first, second, lesson_a, lesson_b = asyncio.run(recompute_twice())
    assert first == second
    assert lesson_a == lesson_b
    assert db.tables.course_summaries[("u1", 10)] == first


def test_course_recompute_writes_only_the_course_row(db: InMemoryDatabase) -> None:
    _submit(db, (1000, 40))
    saved_lessons: list[int] = []

    async def run():
        async with InMemoryUnitOfWork(db) as uow:
            save_lesson = uow.summaries.save_lesson

            async def recording_save_lesson(summary):
                saved_lessons.append(summary.lesson_id)
                return await save_lesson(summary)

            uow.summaries.save_lesson = recording_save_lesson
            summary = await AggregationEngine().recompute_course(uow, "u1", 10)
            await uow.commit()
        return summary

    summary = asyncio.run(run())
    assert saved_lessons == []
    assert db.tables.course_summaries[("u1", 10)] == summary


def test_submission_persists_only_its_own_lesson(db: InMemoryDatabase) -> None:
    _submit(db, (1010, 80))
    assert set(db.tables.lesson_summaries) == {("u1", 101)}
    assert db.tables.course_summaries[("u1", 10)].aggregate_progress_rate == (
        Decimal("40.00")
    )


def test_summaries_are_locked_before_their_leaves_are_read(
    db: InMemoryDatabase,
) -> None:
    _submit(db, (1000, 40))
    calls: list[str] = []

    async def run():
        async with InMemoryUnitOfWork(db) as uow:
            summaries, progress = uow.summaries, uow.progress
            lock_lesson, lock_course = summaries.lock_lesson, summaries.lock_course
            list_for_materials = progress.list_for_materials

            async def recording_lock_lesson(user_id, lesson_id):
                calls.append("lock lesson")
                await lock_lesson(user_id, lesson_id)

            async def recording_lock_course(user_id, course_id):
                calls.append("lock course")
                await lock_course(user_id, course_id)

            async def recording_read(user_id, material_ids):
                calls.append("read")
                return await list_for_materials(user_id, material_ids)

            summaries.lock_lesson = recording_lock_lesson
            summaries.lock_course = recording_lock_course
            progress.list_for_materials = recording_read
            engine = AggregationEngine()
            await engine.recompute_lesson(uow, "u1", 100)
            await engine.recompute_course(uow, "u1", 10)

    asyncio.run(run())
    assert calls[:2] == ["lock lesson", "read"]
    assert calls[2] == "lock course"
    assert set(calls[3:]) == {"read"}
