"""
Patrol write unit - optimistic concurrency around one patrol.

A Patrol (with its checkpoints and log stream) is the consistency boundary.
Every mutation runs as: load patrol -> mutate -> bump patrol row -> commit.
Patrol.version is SQLAlchemy's version_id_col, so the UPDATE of the patrol
row only succeeds if nobody else committed against the same version in the
meantime. On conflict the whole unit is rolled back and re-run against a
fresh read, so checks inside mutate always see current state.

Nothing is locked across requests and there is no cross-patrol transaction.
"""

import os
import logging
from typing import Callable, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import NotFoundError, WriteConflictError
from models import Patrol, utcnow

logger = logging.getLogger(__name__)

WRITE_ATTEMPTS = int(os.environ.get("PATROL_WRITE_ATTEMPTS", "3"))

T = TypeVar("T")


def load_patrol(db: Session, patrol_id: int) -> Patrol:
    """Fetch a live (not deleted) patrol or raise NotFoundError."""
    patrol = db.query(Patrol).filter(
        Patrol.id == patrol_id,
        Patrol.deleted_at.is_(None)
    ).first()

    if not patrol:
        raise NotFoundError(f"Patrol not found with id of {patrol_id}")
    return patrol


def apply_patrol_write(
    db: Session,
    patrol_id: int,
    mutate: Callable[[Patrol], T],
    attempts: int = None,
) -> T:
    """
    Run mutate(patrol) and commit it as one atomic unit.

    mutate performs its own authorization and state checks; any exception
    it raises rolls the unit back and propagates. Every change it makes
    (patrol fields, checkpoints, log rows, officer duty) commits together
    or not at all.

    Raises:
        NotFoundError: patrol missing or soft-deleted
        WriteConflictError: version conflicts on every attempt
    """
    attempts = attempts or WRITE_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            patrol = load_patrol(db, patrol_id)
            result = mutate(patrol)
            # Always touch the patrol row so child-only changes still
            # go through the version check.
            patrol.updated_at = utcnow()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Write conflict on patrol {patrol_id} (attempt {attempt}/{attempts}), retrying"
            )
        except Exception:
            db.rollback()
            raise

    raise WriteConflictError(
        f"Patrol {patrol_id} is being modified concurrently, please retry"
    )
