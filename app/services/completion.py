"""Completion-state transitions.

classify() is pure: it compares two rates and reports which way the
100% threshold was crossed.  Whether crossing it downward un-completes a
material is a product decision, so it lives behind CompletionPolicy:

  REVERSIBLE  isCompleted always mirrors the latest rate; dropping below
              100 clears isCompleted and completionDate.
  MONOTONIC   once completed, always completed; the original
              completionDate is kept even if the rate is edited down.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from app.models.progress import LeafProgress

COMPLETE_RATE = Decimal("100")


class CompletionPolicy(str, enum.Enum):
    REVERSIBLE = "reversible"
    MONOTONIC = "monotonic"


@dataclass(frozen=True, slots=True)
class Transition:
    became_completed: bool
    became_incomplete: bool


def classify(previous_rate: Decimal | None, new_rate: Decimal) -> Transition:
    was_complete = previous_rate is not None and previous_rate >= COMPLETE_RATE
    is_complete = new_rate >= COMPLETE_RATE
    return Transition(
        became_completed=is_complete and not was_complete,
        became_incomplete=was_complete and not is_complete,
    )


@dataclass(frozen=True, slots=True)
class CompletionState:
    is_completed: bool
    completion_date: datetime | None
    transition: Transition


def apply_completion(
    previous: LeafProgress | None,
    new_rate: Decimal,
    now: datetime,
    policy: CompletionPolicy,
) -> CompletionState:
    """Resolve isCompleted/completionDate for a write of new_rate.

    The returned transition is the effective one, i.e. what happened to
    isCompleted under the policy, not the raw threshold crossing.
    """
    was_completed = previous is not None and previous.is_completed
    previous_date = previous.completion_date if previous is not None else None
    reached = new_rate >= COMPLETE_RATE

    if policy is CompletionPolicy.MONOTONIC:
        is_completed = was_completed or reached
    else:
        is_completed = reached

    if not is_completed:
        completion_date = None
    elif was_completed and previous_date is not None:
        completion_date = previous_date
    else:
        completion_date = now

    return CompletionState(
        is_completed=is_completed,
        completion_date=completion_date,
        transition=Transition(
            became_completed=is_completed and not was_completed,
            became_incomplete=was_completed and not is_completed,
        ),
    )
