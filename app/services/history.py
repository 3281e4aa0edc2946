from __future__ import annotations

from app.models.progress import HistoryEntry, LeafProgress
from app.repos.unit_of_work import UnitOfWork
from app.services.errors import ProgressValidationError, ValidationReason

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


def check_page(limit: int, offset: int, max_limit: int = MAX_HISTORY_LIMIT) -> None:
    if limit < 1 or limit > max_limit:
        raise ProgressValidationError(
            ValidationReason.INVALID_RANGE,
            f"limit must be between 1 and {max_limit} (got {limit})",
        )
    if offset < 0:
        raise ProgressValidationError(
            ValidationReason.INVALID_RANGE, f"offset must be >= 0 (got {offset})"
        )


class HistoryRecorder:
    """Audit trail of leaf writes.

    Only append and list are offered; past entries cannot be edited or
    removed through this class or the repos beneath it.
    """

    async def append(
        self,
        uow: UnitOfWork,
        leaf: LeafProgress,
        *,
        changed_by: str,
        minutes_delta: int,
        became_completed: bool,
        idempotency_key: str | None = None,
        request_fingerprint: str | None = None,
    ) -> HistoryEntry:
        """Snapshot `leaf` as it stands after the write."""
        entry = HistoryEntry(
            id=0,
            progress_id=leaf.id,
            progress_rate=leaf.progress_rate,
            spent_minutes=leaf.spent_minutes,
            minutes_delta=minutes_delta,
            changed_by=changed_by,
            created_at=leaf.last_updated_at,
            became_completed=became_completed,
            note=leaf.note,
            idempotency_key=idempotency_key,
            request_fingerprint=request_fingerprint,
        )
        return await uow.history.append(entry)

    async def list(
        self,
        uow: UnitOfWork,
        user_id: str,
        material_id: int,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> list[HistoryEntry]:
        """Newest first.  Page through with offset; an unknown leaf is []."""
        check_page(limit, offset)
        leaf = await uow.progress.get(user_id, material_id)
        if leaf is None:
            return []
        return await uow.history.list_for_progress(leaf.id, limit, offset)
