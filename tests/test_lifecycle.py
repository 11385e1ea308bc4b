"""
PatrolSheet - Lifecycle Manager Tests
======================================
State machine, validation order, officer duty side effects, edit/delete/assign
and the filtered list.
"""

from datetime import timedelta

import pytest

from conftest import make_patrol, checkpoint_ids
from errors import (
    ValidationError, NotFoundError, AuthorizationError, NotAssignedError, InvalidStateError,
)
from models import Officer, PatrolLog, utcnow
from schemas_patrols import PatrolUpdate
from services.patrol import lifecycle, checkpoints, activity_log


def _logs(db, patrol_id):
    return db.query(PatrolLog).filter(PatrolLog.patrol_id == patrol_id).order_by(PatrolLog.timestamp).all()


# ============================================================================
# Create
# ============================================================================

class TestCreatePatrol:

    def test_create_scheduled_with_pending_checkpoints(self, db, seed):
        patrol = make_patrol(db, seed, officers=[seed.o1.officer_id, seed.o2.officer_id])

        assert patrol.id is not None
        assert patrol.status == "scheduled"
        assert patrol.created_by == seed.manager.officer_id
        assert patrol.assigned_officer_ids == [seed.o1.officer_id, seed.o2.officer_id]
        assert patrol.location_ids == [seed.gate, seed.dock, seed.roof]
        assert [cp.status for cp in patrol.checkpoints] == ["pending", "pending"]
        assert all(cp.actual_time is None for cp in patrol.checkpoints)
        assert patrol.priority == "medium"
        assert patrol.recurrence == "none"
        assert _logs(db, patrol.id) == []

    def test_admin_can_create(self, db, seed):
        patrol = make_patrol(db, seed, creator=seed.admin)
        assert patrol.created_by == seed.admin.officer_id

    def test_officer_cannot_create(self, db, seed):
        with pytest.raises(AuthorizationError):
            make_patrol(db, seed, creator=seed.o1)

    def test_validation_runs_before_authorization(self, db, seed):
        # An officer sending a bad body gets the validation error, not 401
        with pytest.raises(ValidationError):
            make_patrol(db, seed, creator=seed.o1, officers=[])

    def test_end_before_start_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="end time"):
            make_patrol(db, seed, duration=timedelta(hours=-1))

    def test_end_equal_start_rejected(self, db, seed):
        with pytest.raises(ValidationError):
            make_patrol(db, seed, duration=timedelta(0))

    def test_start_in_past_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="past"):
            make_patrol(db, seed, start_in=timedelta(hours=-3))

    def test_no_officers_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="officer"):
            make_patrol(db, seed, officers=[])

    def test_duplicate_officers_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="duplicates"):
            make_patrol(db, seed, officers=[seed.o1.officer_id, seed.o1.officer_id])

    def test_unknown_officer_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="Unknown officers"):
            make_patrol(db, seed, officers=[seed.o1.officer_id, 9999])

    def test_no_checkpoints_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="checkpoint"):
            make_patrol(db, seed, checkpoints=[])

    def test_unknown_checkpoint_location_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="Unknown locations"):
            make_patrol(db, seed, checkpoints=[{"location": 4242}])

    def test_blank_title_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="title"):
            make_patrol(db, seed, title="   ")

    def test_bad_priority_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="priority"):
            make_patrol(db, seed, priority="whenever")

    def test_bad_recurrence_rejected(self, db, seed):
        with pytest.raises(ValidationError, match="recurrence"):
            make_patrol(db, seed, recurrence="hourly")

    def test_nothing_persisted_on_failure(self, db, seed):
        with pytest.raises(ValidationError):
            make_patrol(db, seed, officers=[])
        patrols, total = lifecycle.list_patrols(db)
        assert total == 0


# ============================================================================
# Start / Complete / Cancel
# ============================================================================

class TestStartPatrol:

    def test_start_moves_to_in_progress_and_logs_check_in(self, db, seed):
        patrol = make_patrol(db, seed)
        patrol = lifecycle.start_patrol(db, patrol.id, seed.o1)

        assert patrol.status == "in-progress"
        logs = _logs(db, patrol.id)
        assert len(logs) == 1
        assert logs[0].action == "check-in"
        assert logs[0].officer_id == seed.o1.officer_id
        assert logs[0].location_id == seed.gate
        assert logs[0].coordinates is None

    def test_start_records_coordinates(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1, {"latitude": 40.7, "longitude": -74.0})
        assert _logs(db, patrol.id)[0].coordinates == {"latitude": 40.7, "longitude": -74.0}

    def test_start_puts_officer_on_duty(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        officer = db.get(Officer, seed.o1.officer_id)
        assert officer.duty_status == "on-duty"

    def test_unassigned_officer_cannot_start(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(NotAssignedError):
            lifecycle.start_patrol(db, patrol.id, seed.o2)

        db.expire_all()
        assert lifecycle.get_patrol(db, patrol.id).status == "scheduled"
        assert _logs(db, patrol.id) == []

    def test_unassigned_manager_cannot_start(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(NotAssignedError):
            lifecycle.start_patrol(db, patrol.id, seed.manager)

    def test_start_twice_rejected(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        with pytest.raises(InvalidStateError):
            lifecycle.start_patrol(db, patrol.id, seed.o1)
        assert len(_logs(db, patrol.id)) == 1

    def test_start_missing_patrol(self, db, seed):
        with pytest.raises(NotFoundError):
            lifecycle.start_patrol(db, 999, seed.o1)

    def test_not_found_before_authorization(self, db, seed):
        # Nobody is assigned to a patrol that does not exist
        with pytest.raises(NotFoundError):
            lifecycle.start_patrol(db, 999, seed.o2)

    def test_route_falls_back_to_first_checkpoint(self, db, seed):
        patrol = make_patrol(db, seed, locations=[])
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        assert _logs(db, patrol.id)[0].location_id == seed.dock


class TestCompletePatrol:

    def test_complete_sets_end_time_and_logs_check_out(self, db, seed):
        patrol = make_patrol(db, seed)
        planned_end = patrol.end_time
        lifecycle.start_patrol(db, patrol.id, seed.o1)

        before = utcnow()
        patrol = lifecycle.complete_patrol(db, patrol.id, seed.o1, notes="All quiet")

        assert patrol.status == "completed"
        assert patrol.end_time >= before
        assert patrol.end_time != planned_end
        logs = _logs(db, patrol.id)
        assert [log.action for log in logs] == ["check-in", "check-out"]
        assert logs[-1].location_id == seed.roof
        assert logs[-1].description == "All quiet"

    def test_complete_makes_officer_available(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        lifecycle.complete_patrol(db, patrol.id, seed.o1)
        assert db.get(Officer, seed.o1.officer_id).duty_status == "available"

    def test_any_assigned_officer_can_complete(self, db, seed):
        patrol = make_patrol(db, seed, officers=[seed.o1.officer_id, seed.o2.officer_id])
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        patrol = lifecycle.complete_patrol(db, patrol.id, seed.o2)
        assert patrol.status == "completed"

    def test_complete_releases_every_assigned_officer(self, db, seed):
        patrol = make_patrol(db, seed, officers=[seed.o1.officer_id, seed.o2.officer_id])
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        lifecycle.complete_patrol(db, patrol.id, seed.o2)
        db.expire_all()
        assert db.get(Officer, seed.o1.officer_id).duty_status == "available"
        assert db.get(Officer, seed.o2.officer_id).duty_status == "available"

    def test_officer_on_another_running_patrol_stays_on_duty(self, db, seed):
        first = make_patrol(db, seed)
        second = make_patrol(db, seed)
        lifecycle.start_patrol(db, first.id, seed.o1)
        lifecycle.start_patrol(db, second.id, seed.o1)

        lifecycle.complete_patrol(db, first.id, seed.o1)
        db.expire_all()
        assert db.get(Officer, seed.o1.officer_id).duty_status == "on-duty"

        lifecycle.complete_patrol(db, second.id, seed.o1)
        db.expire_all()
        assert db.get(Officer, seed.o1.officer_id).duty_status == "available"

    def test_complete_scheduled_rejected(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(InvalidStateError):
            lifecycle.complete_patrol(db, patrol.id, seed.o1)

    def test_complete_twice_rejected(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        lifecycle.complete_patrol(db, patrol.id, seed.o1)
        with pytest.raises(InvalidStateError):
            lifecycle.complete_patrol(db, patrol.id, seed.o1)

    def test_complete_by_unassigned_rejected(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        with pytest.raises(NotAssignedError):
            lifecycle.complete_patrol(db, patrol.id, seed.o3)

    def test_pending_checkpoints_left_pending(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        patrol = lifecycle.complete_patrol(db, patrol.id, seed.o1, sweep_missed=False)
        assert [cp.status for cp in patrol.checkpoints] == ["pending", "pending"]


class TestCancelPatrol:

    def test_cancel_scheduled(self, db, seed):
        patrol = make_patrol(db, seed)
        patrol = lifecycle.cancel_patrol(db, patrol.id, seed.manager)
        assert patrol.status == "cancelled"
        logs = _logs(db, patrol.id)
        assert [log.action for log in logs] == ["note"]
        assert logs[0].officer_id == seed.manager.officer_id

    def test_cancel_in_progress(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        patrol = lifecycle.cancel_patrol(db, patrol.id, seed.admin, reason="Weather")
        assert patrol.status == "cancelled"
        assert _logs(db, patrol.id)[-1].description == "Weather"

    def test_cancel_in_progress_releases_officers(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        lifecycle.cancel_patrol(db, patrol.id, seed.manager)
        db.expire_all()
        assert db.get(Officer, seed.o1.officer_id).duty_status == "available"

    def test_cancel_scheduled_leaves_duty_alone(self, db, seed):
        running = make_patrol(db, seed)
        lifecycle.start_patrol(db, running.id, seed.o1)
        scheduled = make_patrol(db, seed)
        lifecycle.cancel_patrol(db, scheduled.id, seed.manager)
        db.expire_all()
        assert db.get(Officer, seed.o1.officer_id).duty_status == "on-duty"

    def test_any_manager_can_cancel(self, db, seed):
        patrol = make_patrol(db, seed)
        assert lifecycle.cancel_patrol(db, patrol.id, seed.manager2).status == "cancelled"

    def test_officer_cannot_cancel(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(AuthorizationError):
            lifecycle.cancel_patrol(db, patrol.id, seed.o1)

    @pytest.mark.parametrize("finish", ["complete", "cancel"])
    def test_cancel_terminal_rejected(self, db, seed, finish):
        patrol = make_patrol(db, seed)
        if finish == "complete":
            lifecycle.start_patrol(db, patrol.id, seed.o1)
            lifecycle.complete_patrol(db, patrol.id, seed.o1)
        else:
            lifecycle.cancel_patrol(db, patrol.id, seed.manager)

        with pytest.raises(InvalidStateError):
            lifecycle.cancel_patrol(db, patrol.id, seed.manager)

    def test_cancelled_patrol_cannot_start(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.cancel_patrol(db, patrol.id, seed.manager)
        with pytest.raises(InvalidStateError):
            lifecycle.start_patrol(db, patrol.id, seed.o1)


# ============================================================================
# Update / Delete / Assign
# ============================================================================

class TestUpdatePatrol:

    def test_creator_updates_fields(self, db, seed):
        patrol = make_patrol(db, seed)
        patch = PatrolUpdate(title="East wing", priority="high", notes="Bring flashlight")
        patrol = lifecycle.update_patrol(db, patrol.id, patch, seed.manager)

        assert patrol.title == "East wing"
        assert patrol.priority == "high"
        assert patrol.notes == "Bring flashlight"
        assert patrol.status == "scheduled"
        assert len(patrol.checkpoints) == 2

    def test_admin_can_update(self, db, seed):
        patrol = make_patrol(db, seed)
        patrol = lifecycle.update_patrol(db, patrol.id, PatrolUpdate(title="Admin edit"), seed.admin)
        assert patrol.title == "Admin edit"

    def test_other_manager_cannot_update(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(AuthorizationError):
            lifecycle.update_patrol(db, patrol.id, PatrolUpdate(title="Nope"), seed.manager2)

    def test_replace_officers_and_checkpoints(self, db, seed):
        patrol = make_patrol(db, seed)
        patch = PatrolUpdate(
            assigned_officers=[seed.o3.officer_id],
            checkpoints=[{"location": seed.gate}],
        )
        patrol = lifecycle.update_patrol(db, patrol.id, patch, seed.manager)
        assert patrol.assigned_officer_ids == [seed.o3.officer_id]
        assert [cp.location_id for cp in patrol.checkpoints] == [seed.gate]

    def test_window_checked_against_existing_times(self, db, seed):
        patrol = make_patrol(db, seed)
        patch = PatrolUpdate(end_time=patrol.start_time - timedelta(minutes=5))
        with pytest.raises(ValidationError):
            lifecycle.update_patrol(db, patrol.id, patch, seed.manager)

    def test_checkpoints_locked_once_started(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        patch = PatrolUpdate(checkpoints=[{"location": seed.gate}])
        with pytest.raises(InvalidStateError):
            lifecycle.update_patrol(db, patrol.id, patch, seed.manager)

    def test_terminal_patrol_not_editable(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.cancel_patrol(db, patrol.id, seed.manager)
        with pytest.raises(InvalidStateError):
            lifecycle.update_patrol(db, patrol.id, PatrolUpdate(title="Late"), seed.manager)

    def test_empty_officer_list_rejected(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(ValidationError):
            lifecycle.update_patrol(db, patrol.id, PatrolUpdate(assigned_officers=[]), seed.manager)


class TestDeletePatrol:

    def test_creator_deletes(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.delete_patrol(db, patrol.id, seed.manager)
        with pytest.raises(NotFoundError):
            lifecycle.get_patrol(db, patrol.id)

    def test_logs_survive_delete(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.start_patrol(db, patrol.id, seed.o1)
        lifecycle.delete_patrol(db, patrol.id, seed.admin)
        assert len(_logs(db, patrol.id)) == 1

    def test_other_manager_cannot_delete(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(AuthorizationError):
            lifecycle.delete_patrol(db, patrol.id, seed.manager2)

    def test_deleted_patrol_rejects_transitions(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.delete_patrol(db, patrol.id, seed.manager)
        with pytest.raises(NotFoundError):
            lifecycle.start_patrol(db, patrol.id, seed.o1)


class TestAssignOfficers:

    def test_manager_reassigns(self, db, seed):
        patrol = make_patrol(db, seed)
        patrol = lifecycle.assign_officers(
            db, patrol.id, [seed.o2.officer_id, seed.o3.officer_id], seed.manager2
        )
        assert patrol.assigned_officer_ids == [seed.o2.officer_id, seed.o3.officer_id]
        officers = lifecycle.list_patrol_officers(db, patrol.id)
        assert [o.id for o in officers] == [seed.o2.officer_id, seed.o3.officer_id]

    def test_newly_assigned_officer_can_start(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.assign_officers(db, patrol.id, [seed.o2.officer_id], seed.manager)
        with pytest.raises(NotAssignedError):
            lifecycle.start_patrol(db, patrol.id, seed.o1)
        assert lifecycle.start_patrol(db, patrol.id, seed.o2).status == "in-progress"

    def test_officer_cannot_assign(self, db, seed):
        patrol = make_patrol(db, seed)
        with pytest.raises(AuthorizationError):
            lifecycle.assign_officers(db, patrol.id, [seed.o1.officer_id], seed.o1)

    def test_terminal_rejected(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.cancel_patrol(db, patrol.id, seed.manager)
        with pytest.raises(InvalidStateError):
            lifecycle.assign_officers(db, patrol.id, [seed.o2.officer_id], seed.manager)


# ============================================================================
# List
# ============================================================================

class TestListPatrols:

    def test_filters(self, db, seed):
        a = make_patrol(db, seed, priority="high")
        b = make_patrol(db, seed, officers=[seed.o2.officer_id])
        lifecycle.start_patrol(db, b.id, seed.o2)

        _, total = lifecycle.list_patrols(db)
        assert total == 2

        patrols, total = lifecycle.list_patrols(db, status="in-progress")
        assert [p.id for p in patrols] == [b.id]

        patrols, _ = lifecycle.list_patrols(db, priority="high")
        assert [p.id for p in patrols] == [a.id]

        patrols, _ = lifecycle.list_patrols(db, officer_id=seed.o2.officer_id)
        assert [p.id for p in patrols] == [b.id]

    def test_date_window(self, db, seed):
        soon = make_patrol(db, seed)
        later = make_patrol(db, seed, start_in=timedelta(days=3))
        today = utcnow().date()

        patrols, _ = lifecycle.list_patrols(db, start_date=today + timedelta(days=2))
        assert [p.id for p in patrols] == [later.id]

        patrols, _ = lifecycle.list_patrols(db, end_date=today + timedelta(days=1))
        assert [p.id for p in patrols] == [soon.id]

    def test_pagination_and_sort(self, db, seed):
        ids = [make_patrol(db, seed, start_in=timedelta(hours=h)).id for h in (3, 1, 2)]

        patrols, total = lifecycle.list_patrols(db, sort="startTime", page=1, limit=2)
        assert total == 3
        assert [p.id for p in patrols] == [ids[1], ids[2]]

        patrols, _ = lifecycle.list_patrols(db, sort="startTime", page=2, limit=2)
        assert [p.id for p in patrols] == [ids[0]]

    def test_deleted_excluded(self, db, seed):
        patrol = make_patrol(db, seed)
        lifecycle.delete_patrol(db, patrol.id, seed.manager)
        assert lifecycle.list_patrols(db) == ([], 0)

    @pytest.mark.parametrize("kwargs", [
        {"status": "paused"},
        {"priority": "extreme"},
        {"sort": "color"},
        {"page": 0},
        {"limit": 0},
        {"limit": 1000},
    ])
    def test_bad_parameters(self, db, seed, kwargs):
        with pytest.raises(ValidationError):
            lifecycle.list_patrols(db, **kwargs)


# ============================================================================
# End-to-end through the services
# ============================================================================

def test_full_patrol_writes_three_logs(db, seed):
    patrol = make_patrol(db, seed, checkpoints=[{"location": seed.dock}])
    lifecycle.start_patrol(db, patrol.id, seed.o1)
    checkpoints.complete_checkpoint(db, patrol.id, checkpoint_ids(patrol)[0], seed.o1)
    lifecycle.complete_patrol(db, patrol.id, seed.o1)

    logs = activity_log.list_for_patrol(db, patrol.id)
    assert [log.action for log in logs] == ["check-out", "check-in", "check-in"]
