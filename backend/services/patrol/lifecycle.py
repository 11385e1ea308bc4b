"""
Patrol Lifecycle Manager - owns the patrol state machine.

    scheduled --start--> in-progress --complete--> completed
    scheduled | in-progress --cancel--> cancelled

completed and cancelled are terminal. Each operation checks, in order:
input validation (ValidationError), patrol exists (NotFoundError),
authorization (AuthorizationError), lifecycle state (InvalidStateError),
then mutates. State change and its log entry commit in one write unit.

end_time holds the planned end until the patrol completes, at which
point it is overwritten with the actual completion time.

Starting puts the starting officer on duty. When a running patrol ends
(complete or cancel) every assigned officer with no other patrol in
progress goes back to available.
"""

import logging
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from actor import Actor
from errors import ValidationError, InvalidStateError
from models import (
    Patrol, Checkpoint, Officer, Location, PatrolOfficer,
    PATROL_STATUSES, PATROL_SCHEDULED, PATROL_IN_PROGRESS, PATROL_COMPLETED, PATROL_CANCELLED,
    PRIORITIES, RECURRENCES, DUTY_ON_DUTY, DUTY_AVAILABLE,
    utcnow, as_utc,
)
from schemas_patrols import PatrolCreate, PatrolUpdate
from services.patrol import activity_log, checkpoints as checkpoint_tracker
from services.patrol.authorization import (
    require, OP_CREATE, OP_START, OP_COMPLETE, OP_CANCEL, OP_UPDATE, OP_DELETE, OP_ASSIGN_OFFICERS
)
from services.patrol.concurrency import apply_patrol_write, load_patrol

logger = logging.getLogger(__name__)

# API sort keys -> columns
SORT_FIELDS = {
    "startTime": Patrol.start_time,
    "endTime": Patrol.end_time,
    "createdAt": Patrol.created_at,
    "title": Patrol.title,
    "priority": Patrol.priority,
    "status": Patrol.status,
}
DEFAULT_SORT = "-createdAt"
MAX_PAGE_SIZE = 100


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def _validate_officers(db: Session, officer_ids: List[int]):
    if not officer_ids:
        raise ValidationError("At least one assigned officer is required")
    if len(set(officer_ids)) != len(officer_ids):
        raise ValidationError("Assigned officers must not contain duplicates")

    found = {o.id for o in db.query(Officer).filter(Officer.id.in_(officer_ids)).all()}
    missing = [oid for oid in officer_ids if oid not in found]
    if missing:
        raise ValidationError(f"Unknown officers: {missing}")


def _validate_locations(db: Session, location_ids: List[int]):
    if not location_ids:
        return
    found = {loc.id for loc in db.query(Location).filter(Location.id.in_(set(location_ids))).all()}
    missing = sorted({lid for lid in location_ids if lid not in found})
    if missing:
        raise ValidationError(f"Unknown locations: {missing}")


def _validate_choice(value: str, choices: list, label: str):
    if value not in choices:
        raise ValidationError(f"Invalid {label} '{value}'. Must be one of: {choices}")


def _validate_window(start: datetime, end: datetime):
    if end <= start:
        raise ValidationError("Patrol end time must be after start time")


def _build_checkpoints(specs) -> List[Checkpoint]:
    return [
        Checkpoint(
            location_id=spec.location,
            required_time=spec.required_time,
            notes=spec.notes,
        )
        for spec in specs
    ]


def _route_start(patrol: Patrol) -> int:
    """First route location; falls back to the first checkpoint."""
    if patrol.stops:
        return patrol.stops[0].location_id
    return patrol.checkpoints[0].location_id


def _route_end(patrol: Patrol) -> int:
    """Last route location; falls back to the last checkpoint."""
    if patrol.stops:
        return patrol.stops[-1].location_id
    return patrol.checkpoints[-1].location_id


def _set_duty(db: Session, officer_id: int, duty_status: str):
    officer = db.query(Officer).filter(Officer.id == officer_id).first()
    if officer:
        officer.duty_status = duty_status


def _release_officers(db: Session, patrol: Patrol) -> List[int]:
    """
    Put the patrol's on-duty officers back to available, except those
    still assigned to another patrol in progress. Returns the released ids.
    """
    ids = patrol.assigned_officer_ids
    busy = {
        oid for (oid,) in db.query(PatrolOfficer.officer_id).join(PatrolOfficer.patrol).filter(
            PatrolOfficer.officer_id.in_(ids),
            Patrol.id != patrol.id,
            Patrol.status == PATROL_IN_PROGRESS,
            Patrol.deleted_at.is_(None),
        ).all()
    }
    released = []
    for officer in db.query(Officer).filter(Officer.id.in_(ids), Officer.duty_status == DUTY_ON_DUTY).all():
        if officer.id not in busy:
            officer.duty_status = DUTY_AVAILABLE
            released.append(officer.id)
    return released


# =============================================================================
# CREATE
# =============================================================================

def create_patrol(db: Session, data: PatrolCreate, actor: Actor, now: datetime = None) -> Patrol:
    """Create a scheduled patrol with officers and checkpoints pre-populated."""
    now = now or utcnow()

    if not data.title:
        raise ValidationError("Please provide patrol title")
    if not data.checkpoints:
        raise ValidationError("At least one checkpoint is required")
    _validate_choice(data.priority, PRIORITIES, "priority")
    _validate_choice(data.recurrence, RECURRENCES, "recurrence")

    start = as_utc(data.start_time)
    end = as_utc(data.end_time)
    _validate_window(start, end)
    if start < now:
        raise ValidationError("Patrol start time cannot be in the past")

    _validate_officers(db, data.assigned_officers)
    _validate_locations(db, data.locations + [cp.location for cp in data.checkpoints])

    require(actor, OP_CREATE)

    patrol = Patrol(
        title=data.title,
        created_by=actor.officer_id,
        start_time=start,
        end_time=end,
        status=PATROL_SCHEDULED,
        notes=data.notes,
        priority=data.priority,
        recurrence=data.recurrence,
    )
    patrol.set_officers(data.assigned_officers)
    patrol.set_route(data.locations)
    patrol.checkpoints = _build_checkpoints(data.checkpoints)

    db.add(patrol)
    db.commit()
    db.refresh(patrol)

    logger.info(
        f"Patrol {patrol.id} '{patrol.title}' created by {actor}: "
        f"{len(data.assigned_officers)} officers, {len(data.checkpoints)} checkpoints"
    )
    return patrol


# =============================================================================
# TRANSITIONS
# =============================================================================

def start_patrol(db: Session, patrol_id: int, actor: Actor, coordinates=None) -> Patrol:
    """scheduled -> in-progress; logs a check-in at the first route location."""

    def mutate(patrol):
        require(actor, OP_START, patrol)
        if patrol.status != PATROL_SCHEDULED:
            raise InvalidStateError(f"Patrol cannot be started from status '{patrol.status}'")

        patrol.status = PATROL_IN_PROGRESS
        _set_duty(db, actor.officer_id, DUTY_ON_DUTY)
        activity_log.append(
            db, patrol.id, actor.officer_id, _route_start(patrol),
            "check-in", "Patrol started", coordinates,
        )
        return patrol

    patrol = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id}: {PATROL_SCHEDULED} → {PATROL_IN_PROGRESS} by {actor}")
    return patrol


def complete_patrol(
    db: Session,
    patrol_id: int,
    actor: Actor,
    notes: Optional[str] = None,
    coordinates=None,
    sweep_missed: bool = None,
) -> Patrol:
    """in-progress -> completed; sets end_time, logs a check-out at the last route location
    and releases the assigned officers."""
    if sweep_missed is None:
        sweep_missed = checkpoint_tracker.SWEEP_MISSED_CHECKPOINTS

    def mutate(patrol):
        require(actor, OP_COMPLETE, patrol)
        if patrol.status != PATROL_IN_PROGRESS:
            raise InvalidStateError(f"Patrol cannot be completed from status '{patrol.status}'")

        patrol.status = PATROL_COMPLETED
        patrol.end_time = utcnow()
        if sweep_missed:
            swept = checkpoint_tracker.sweep_missed(patrol)
            if swept:
                logger.info(f"Patrol {patrol.id}: {swept} pending checkpoints marked missed")

        _release_officers(db, patrol)
        activity_log.append(
            db, patrol.id, actor.officer_id, _route_end(patrol),
            "check-out", notes or "Patrol completed", coordinates,
        )
        return patrol

    patrol = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id}: {PATROL_IN_PROGRESS} → {PATROL_COMPLETED} by {actor}")
    return patrol


def cancel_patrol(db: Session, patrol_id: int, actor: Actor, reason: Optional[str] = None) -> Patrol:
    """scheduled | in-progress -> cancelled; logs a note at the first route location."""
    previous = {}

    def mutate(patrol):
        require(actor, OP_CANCEL, patrol)
        if patrol.is_terminal:
            raise InvalidStateError(f"Patrol cannot be cancelled from status '{patrol.status}'")

        previous["status"] = patrol.status
        patrol.status = PATROL_CANCELLED
        if previous["status"] == PATROL_IN_PROGRESS:
            _release_officers(db, patrol)
        activity_log.append(
            db, patrol.id, actor.officer_id, _route_start(patrol),
            "note", reason or "Patrol cancelled",
        )
        return patrol

    patrol = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id}: {previous.get('status')} → {PATROL_CANCELLED} by {actor}")
    return patrol


# =============================================================================
# EDIT / DELETE / ASSIGN
# =============================================================================

def update_patrol(
    db: Session, patrol_id: int, patch: PatrolUpdate, actor: Actor, now: datetime = None
) -> Patrol:
    """
    Edit the patrol document (creator or admin, not once terminal).

    Only fields present in the patch change. Checkpoints can be replaced
    only before the patrol starts, since replacing them would discard
    completion state.
    """
    now = now or utcnow()
    changes = patch.model_dump(exclude_unset=True)

    if "title" in changes and not changes["title"]:
        raise ValidationError("Please provide patrol title")
    if changes.get("priority") is not None:
        _validate_choice(changes["priority"], PRIORITIES, "priority")
    if changes.get("recurrence") is not None:
        _validate_choice(changes["recurrence"], RECURRENCES, "recurrence")
    if "assigned_officers" in changes:
        _validate_officers(db, patch.assigned_officers or [])
    if "checkpoints" in changes and not patch.checkpoints:
        raise ValidationError("At least one checkpoint is required")

    new_locations = list(patch.locations or [])
    new_locations += [cp.location for cp in (patch.checkpoints or [])]
    _validate_locations(db, new_locations)

    def mutate(patrol):
        require(actor, OP_UPDATE, patrol)
        if patrol.is_terminal:
            raise InvalidStateError(f"Patrol is {patrol.status} and can no longer be edited")

        start = as_utc(patch.start_time) if patch.start_time else patrol.start_time
        end = as_utc(patch.end_time) if patch.end_time else patrol.end_time
        _validate_window(start, end)
        if patch.start_time and patrol.status == PATROL_SCHEDULED and start < now:
            raise ValidationError("Patrol start time cannot be in the past")

        if "checkpoints" in changes and patrol.status != PATROL_SCHEDULED:
            raise InvalidStateError("Checkpoints can only be replaced before the patrol starts")

        patrol.start_time = start
        patrol.end_time = end
        for field in ("title", "notes", "priority", "recurrence"):
            if field in changes and changes[field] is not None:
                setattr(patrol, field, changes[field])
        if "notes" in changes and changes["notes"] is None:
            patrol.notes = None
        if "assigned_officers" in changes:
            patrol.set_officers(patch.assigned_officers)
        if "locations" in changes:
            patrol.set_route(patch.locations or [])
        if "checkpoints" in changes:
            patrol.checkpoints = _build_checkpoints(patch.checkpoints)
        return patrol

    patrol = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id} updated by {actor}: {sorted(changes)}")
    return patrol


def delete_patrol(db: Session, patrol_id: int, actor: Actor) -> None:
    """Soft delete; the patrol's log entries are kept."""

    def mutate(patrol):
        require(actor, OP_DELETE, patrol)
        patrol.deleted_at = utcnow()

    apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id} deleted by {actor}")


def assign_officers(db: Session, patrol_id: int, officer_ids: List[int], actor: Actor) -> Patrol:
    """Replace the assigned officer list (admin/manager, not once terminal)."""
    _validate_officers(db, officer_ids)

    def mutate(patrol):
        require(actor, OP_ASSIGN_OFFICERS, patrol)
        if patrol.is_terminal:
            raise InvalidStateError(f"Patrol is {patrol.status}; officers can no longer be changed")
        patrol.set_officers(officer_ids)
        return patrol

    patrol = apply_patrol_write(db, patrol_id, mutate)
    logger.info(f"Patrol {patrol_id} officers set to {officer_ids} by {actor}")
    return patrol


# =============================================================================
# READS
# =============================================================================

def get_patrol(db: Session, patrol_id: int) -> Patrol:
    return load_patrol(db, patrol_id)


def list_patrol_officers(db: Session, patrol_id: int) -> List[Officer]:
    patrol = load_patrol(db, patrol_id)
    ids = patrol.assigned_officer_ids
    by_id = {o.id: o for o in db.query(Officer).filter(Officer.id.in_(ids)).all()}
    return [by_id[oid] for oid in ids if oid in by_id]


def _sort_clauses(sort: Optional[str]):
    clauses = []
    for key in (sort or DEFAULT_SORT).split(","):
        key = key.strip()
        if not key:
            continue
        descending = key.startswith("-")
        name = key.lstrip("-+")
        column = SORT_FIELDS.get(name)
        if column is None:
            raise ValidationError(f"Invalid sort field '{name}'. Must be one of: {list(SORT_FIELDS)}")
        clauses.append(column.desc() if descending else column.asc())
    clauses.append(Patrol.id.desc())
    return clauses


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def list_patrols(
    db: Session,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    priority: Optional[str] = None,
    officer_id: Optional[int] = None,
    sort: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Patrol], int]:
    """
    Filtered, sorted page of patrols and the filtered total.

    start_date / end_date are inclusive calendar-day bounds (UTC) on start_time.
    """
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    query = db.query(Patrol).filter(Patrol.deleted_at.is_(None))

    if status:
        _validate_choice(status, PATROL_STATUSES, "status")
        query = query.filter(Patrol.status == status)
    if priority:
        _validate_choice(priority, PRIORITIES, "priority")
        query = query.filter(Patrol.priority == priority)
    if start_date:
        query = query.filter(Patrol.start_time >= _day_start(start_date))
    if end_date:
        query = query.filter(Patrol.start_time < _day_start(end_date + timedelta(days=1)))
    if officer_id is not None:
        query = query.filter(Patrol.officer_links.any(PatrolOfficer.officer_id == officer_id))

    total = query.count()
    patrols = query.order_by(*_sort_clauses(sort)).offset((page - 1) * limit).limit(limit).all()
    return patrols, total
