"""
Checkpoint Tracker - per-checkpoint completion inside a running patrol.

A checkpoint moves pending -> completed exactly once, while its patrol is
in progress, and only by an assigned officer. Completing an already
completed checkpoint is rejected (InvalidStateError) rather than
overwritten, so every successful call writes exactly one log entry.

actual_time is set exactly when status becomes completed.

Pending checkpoints left when a patrol completes stay pending unless
PATROL_SWEEP_MISSED_CHECKPOINTS is enabled, in which case sweep_missed()
marks them missed in the same write unit.
"""

import os
import logging
from typing import Optional

from sqlalchemy.orm import Session

from actor import Actor
from errors import NotFoundError, InvalidStateError
from models import (
    Patrol, PATROL_IN_PROGRESS,
    CHECKPOINT_PENDING, CHECKPOINT_COMPLETED, CHECKPOINT_MISSED, utcnow
)
from services.patrol import activity_log
from services.patrol.authorization import require, OP_CHECKPOINT_COMPLETE
from services.patrol.concurrency import apply_patrol_write

logger = logging.getLogger(__name__)

SWEEP_MISSED_CHECKPOINTS = os.environ.get(
    "PATROL_SWEEP_MISSED_CHECKPOINTS", ""
).lower() in ("1", "true", "yes")


def complete_checkpoint(
    db: Session,
    patrol_id: int,
    checkpoint_id: int,
    actor: Actor,
    notes: Optional[str] = None,
    coordinates=None,
) -> Patrol:
    """Mark one checkpoint completed and log a check-in at its location."""

    def mutate(patrol):
        require(actor, OP_CHECKPOINT_COMPLETE, patrol)

        checkpoint = patrol.find_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise NotFoundError("Checkpoint not found in this patrol")

        if patrol.status != PATROL_IN_PROGRESS:
            raise InvalidStateError(
                f"Patrol is {patrol.status}; checkpoints can only be completed while in-progress"
            )
        if checkpoint.status != CHECKPOINT_PENDING:
            raise InvalidStateError(f"Checkpoint {checkpoint_id} is already {checkpoint.status}")

        checkpoint.status = CHECKPOINT_COMPLETED
        checkpoint.actual_time = utcnow()
        checkpoint.notes = notes or ""

        activity_log.append(
            db, patrol.id, actor.officer_id, checkpoint.location_id,
            "check-in", notes or "Checkpoint completed", coordinates,
        )
        return patrol

    patrol = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id}: checkpoint {checkpoint_id} completed by {actor}")
    return patrol


def sweep_missed(patrol: Patrol) -> int:
    """Mark every still-pending checkpoint missed. Returns how many changed."""
    swept = 0
    for checkpoint in patrol.checkpoints:
        if checkpoint.status == CHECKPOINT_PENDING:
            checkpoint.status = CHECKPOINT_MISSED
            swept += 1
    return swept
