"""Tests for the latest-wins ownership policy."""

import uuid
from datetime import timedelta

from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.policies.ownership import (
    collapse_latest,
    next_assigned_at,
    project_history,
    select_current,
)
from tests.fakes import T0

ENTITY = uuid.uuid4()
OTHER = uuid.uuid4()
U1, U2, U3 = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()


def _rec(rid, owner, minutes, entity=ENTITY) -> AssignmentRecord:
    return AssignmentRecord(
        id=rid, entity_id=entity, owner_id=owner, assigned_by=owner,
        assigned_at=T0 + timedelta(minutes=minutes),
    )


def test_select_current_empty_is_none():
    assert select_current([]) is None


def test_select_current_picks_latest_timestamp():
    records = [_rec(1, U1, 0), _rec(2, U2, 10), _rec(3, U3, 5)]
    assert select_current(records).owner_id == U2


def test_select_current_breaks_timestamp_ties_by_id():
    records = [_rec(7, U1, 0), _rec(9, U2, 0), _rec(8, U3, 0)]
    assert select_current(records).id == 9


def test_select_current_is_order_independent():
    records = [_rec(1, U1, 0), _rec(2, U2, 10), _rec(3, U3, 5)]
    assert select_current(records) is select_current(list(reversed(records)))


def test_collapse_latest_one_record_per_entity():
    records = [_rec(1, U1, 0), _rec(2, U2, 1), _rec(3, U3, 0, entity=OTHER)]
    latest = collapse_latest(records)
    assert set(latest) == {ENTITY, OTHER}
    assert latest[ENTITY].owner_id == U2
    assert latest[OTHER].owner_id == U3


def test_project_history_newest_first_with_released_at():
    first, second = _rec(1, U1, 0), _rec(2, U2, 30)
    history = project_history([second, first])
    assert [r.owner_id for r in history] == [U2, U1]
    assert history[0].released_at is None
    assert history[1].released_at == second.assigned_at
    # inputs are untouched
    assert first.released_at is None


def test_next_assigned_at_never_precedes_predecessor():
    previous = _rec(1, U1, 10)
    assert next_assigned_at(previous, T0) == previous.assigned_at
    later = T0 + timedelta(hours=1)
    assert next_assigned_at(previous, later) == later
    assert next_assigned_at(None, T0) == T0
