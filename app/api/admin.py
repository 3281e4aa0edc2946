from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header

from app.api.dependencies import require_role
from app.api.progress import ManualProgressIn, SubmissionOut, submit_and_invalidate
from app.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.put(
    "/progress/users/{user_id}/materials/{material_id}",
    response_model=SubmissionOut,
)
async def admin_submit_progress(
    user_id: str,
    material_id: int,
    body: ManualProgressIn,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> SubmissionOut:
    """Admin-assisted edit: the leaf belongs to `user_id`, the history
    entry records the admin as changed_by."""
    logger.info(
        "Admin progress edit by user=%s on behalf of user=%s",
        principal.user_id,
        user_id,
        extra={"user_id": user_id, "material_id": material_id},
    )
    return await submit_and_invalidate(
        user_id,
        material_id,
        body,
        changed_by=principal.user_id,
        idempotency_key=idempotency_key,
    )
