"""
Assignment Authorization Guard

authorize() is a pure function of (actor, operation, patrol). It never
touches the database and never mutates anything. require() turns a deny
into an AuthorizationError so callers cannot silently skip it.

Rules:
    create, cancel, assign-officers   -> admin or manager
    delete                            -> admin, or the manager who created it
    update                            -> creator or admin
    start, complete,
    checkpoint-complete, log-append   -> one of the patrol's assigned officers
"""

import logging
from dataclasses import dataclass
from typing import Optional

from actor import Actor
from errors import AuthorizationError, NotAssignedError

logger = logging.getLogger(__name__)

OP_CREATE = "create"
OP_CANCEL = "cancel"
OP_DELETE = "delete"
OP_ASSIGN_OFFICERS = "assign-officers"
OP_UPDATE = "update"
OP_START = "start"
OP_COMPLETE = "complete"
OP_CHECKPOINT_COMPLETE = "checkpoint-complete"
OP_LOG_APPEND = "log-append"

SUPERVISOR_OPERATIONS = {OP_CREATE, OP_CANCEL, OP_ASSIGN_OFFICERS}
ASSIGNED_OPERATIONS = {OP_START, OP_COMPLETE, OP_CHECKPOINT_COMPLETE, OP_LOG_APPEND}
OWNER_OPERATIONS = {OP_UPDATE, OP_DELETE}

OPERATIONS = SUPERVISOR_OPERATIONS | ASSIGNED_OPERATIONS | OWNER_OPERATIONS


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    not_assigned: bool = False


ALLOW = Decision(True)


def authorize(actor: Actor, operation: str, patrol=None) -> Decision:
    """
    Decide whether actor may perform operation on patrol.

    patrol may be None only for create. Unknown operations are denied.
    """
    if operation not in OPERATIONS:
        return Decision(False, f"Unknown operation '{operation}'")

    if operation in SUPERVISOR_OPERATIONS:
        if actor.is_supervisor:
            return ALLOW
        return Decision(False, "Not authorized to access this route")

    if patrol is None:
        return Decision(False, f"Operation '{operation}' requires a patrol")

    if operation in ASSIGNED_OPERATIONS:
        if actor.officer_id in patrol.assigned_officer_ids:
            return ALLOW
        return Decision(
            False, f"User {actor.officer_id} is not assigned to this patrol", not_assigned=True
        )

    # Owner operations
    verb = "update" if operation == OP_UPDATE else "delete"
    if operation == OP_DELETE and not actor.is_supervisor:
        return Decision(False, f"User {actor.officer_id} is not authorized to {verb} this patrol")
    if actor.is_admin or patrol.created_by == actor.officer_id:
        return ALLOW
    return Decision(False, f"User {actor.officer_id} is not authorized to {verb} this patrol")


def require(actor: Actor, operation: str, patrol=None) -> None:
    """Raise AuthorizationError (or NotAssignedError) unless allowed."""
    decision = authorize(actor, operation, patrol)
    if decision.allowed:
        return

    patrol_ref = f"patrol {patrol.id}" if patrol is not None else "new patrol"
    logger.warning(f"Denied {operation} on {patrol_ref} for {actor}: {decision.reason}")
    if decision.not_assigned:
        raise NotAssignedError(decision.reason)
    raise AuthorizationError(decision.reason)
