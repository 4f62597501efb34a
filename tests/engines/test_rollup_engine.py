"""
Rollup and replay engines -- pure, in-memory inputs.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from progress_engines.replay import events_before, ordered_events, replay_milestones
from progress_engines.rollup import RollupItemInput, aggregate_rollup
from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.domain.dtos import DimensionLabel, EventRecord, ItemSnapshot
from progress_kernel.domain.schedule import Category, MilestoneKind, ScheduleEntry
from progress_kernel.domain.template_merge import resolve_schedule
from progress_kernel.exceptions import InvariantViolationError

PROJECT = uuid4()
AREA_A = uuid4()
AREA_B = uuid4()
DAY1 = datetime(2024, 3, 1, tzinfo=timezone.utc)

SPOOL = resolve_schedule(
    "spool",
    [
        ScheduleEntry("Receive", Decimal("5"), MilestoneKind.DISCRETE, Category.RECEIVE, 0),
        ScheduleEntry("Erect", Decimal("40"), MilestoneKind.DISCRETE, Category.INSTALL, 1),
        ScheduleEntry("Connect", Decimal("40"), MilestoneKind.DISCRETE, Category.INSTALL, 2),
        ScheduleEntry("Punch", Decimal("5"), MilestoneKind.DISCRETE, Category.PUNCH, 3),
        ScheduleEntry("Test", Decimal("5"), MilestoneKind.DISCRETE, Category.TEST, 4),
        ScheduleEntry("Restore", Decimal("5"), MilestoneKind.DISCRETE, Category.RESTORE, 5),
    ],
)

LABELS = {
    AREA_A: DimensionLabel(AREA_A, "A", "Area A"),
    AREA_B: DimensionLabel(AREA_B, "B", "Area B"),
}


def _rollup_item(budget, milestones, area=None, retired=False, item_id=None):
    snapshot = ItemSnapshot(
        item_id=item_id or uuid4(),
        project_id=PROJECT,
        item_type="spool",
        budgeted_hours=Decimal(budget),
        milestones={k: Decimal(v) for k, v in milestones.items()},
        dimension_ids={DimensionType.AREA: area},
        is_retired=retired,
    )
    return RollupItemInput(snapshot=snapshot, schedule=SPOOL)


def _event(item_id, name, previous, new, at, seq):
    return EventRecord(
        event_id=uuid4(),
        item_id=item_id,
        milestone_name=name,
        previous_value=Decimal(previous),
        new_value=Decimal(new),
        occurred_at=at,
        item_seq=seq,
    )


class TestAggregateRollup:
    def test_groups_by_dimension_value(self):
        items = [
            _rollup_item("10", {"Receive": 100, "Erect": 100}, area=AREA_A),
            _rollup_item("20", {"Receive": 100}, area=AREA_A),
            _rollup_item("8", {}, area=AREA_B),
        ]
        snapshot = aggregate_rollup(PROJECT, DimensionType.AREA, items, labels=LABELS)

        assert [r.label for r in snapshot.rows] == ["Area A", "Area B"]
        area_a = snapshot.rows[0]
        assert area_a.item_count == 2
        assert area_a.budgeted_hours == Decimal("30")
        # 4.5 + 1.0
        assert area_a.earned_hours == Decimal("5.5")
        assert area_a.category_earned_hours[Category.RECEIVE] == Decimal("1.5")
        assert area_a.category_budgeted_hours[Category.INSTALL] == Decimal("24")
        assert snapshot.totals.budgeted_hours == Decimal("38")
        assert snapshot.totals.label == "Total"

    def test_unassigned_items_go_last(self):
        items = [
            _rollup_item("10", {}, area=None),
            _rollup_item("10", {}, area=AREA_B),
        ]
        snapshot = aggregate_rollup(PROJECT, DimensionType.AREA, items, labels=LABELS)
        assert [r.label for r in snapshot.rows] == ["Area B", "Not Assigned"]

    def test_not_assigned_label_is_configurable(self):
        snapshot = aggregate_rollup(
            PROJECT,
            DimensionType.AREA,
            [_rollup_item("1", {})],
            not_assigned_label="(none)",
        )
        assert snapshot.rows[0].label == "(none)"

    def test_retired_items_excluded(self):
        items = [
            _rollup_item("10", {"Receive": 100}, area=AREA_A),
            _rollup_item("50", {"Receive": 100}, area=AREA_A, retired=True),
        ]
        snapshot = aggregate_rollup(PROJECT, DimensionType.AREA, items, labels=LABELS)
        assert snapshot.totals.item_count == 1
        assert snapshot.totals.budgeted_hours == Decimal("10")

    def test_percent_recomputed_from_milestones(self):
        item = _rollup_item("10", {"Receive": 100}, area=AREA_A)
        # cached percent on the snapshot is ignored
        assert item.snapshot.percent_complete == Decimal("0")
        snapshot = aggregate_rollup(PROJECT, DimensionType.AREA, [item], labels=LABELS)
        assert snapshot.rows[0].percent_complete == Decimal("5")

    def test_empty_project_has_zero_totals(self):
        snapshot = aggregate_rollup(PROJECT, DimensionType.SYSTEM, [])
        assert snapshot.rows == ()
        assert snapshot.totals.percent_complete == Decimal("0")

    def test_same_item_twice_violates_budget_rule(self):
        shared = uuid4()
        items = [
            _rollup_item("10", {}, area=AREA_A, item_id=shared),
            _rollup_item("10", {}, area=AREA_A, item_id=shared),
        ]
        with pytest.raises(InvariantViolationError):
            aggregate_rollup(PROJECT, DimensionType.AREA, items, labels=LABELS)


class TestReplay:
    def test_latest_value_wins(self):
        item_id = uuid4()
        events = [
            _event(item_id, "Receive", 0, 100, DAY1, 1),
            _event(item_id, "Erect", 0, 100, DAY1 + timedelta(hours=1), 2),
            _event(item_id, "Erect", 100, 0, DAY1 + timedelta(hours=2), 3),
        ]
        assert replay_milestones(events) == {"Receive": Decimal("100"), "Erect": Decimal("0")}

    def test_as_of_is_exclusive(self):
        item_id = uuid4()
        events = [
            _event(item_id, "Receive", 0, 100, DAY1, 1),
            _event(item_id, "Erect", 0, 100, DAY1 + timedelta(days=1), 2),
        ]
        assert replay_milestones(events, as_of=DAY1 + timedelta(days=1)) == {
            "Receive": Decimal("100")
        }
        assert [e.item_seq for e in events_before(events, DAY1 + timedelta(days=2))] == [1, 2]

    def test_ordered_by_sequence(self):
        item_id = uuid4()
        late = _event(item_id, "Receive", 0, 100, DAY1, 2)
        early = _event(item_id, "Receive", 100, 0, DAY1, 1)
        assert ordered_events([late, early]) == [early, late]
        assert replay_milestones([late, early]) == {"Receive": Decimal("100")}
