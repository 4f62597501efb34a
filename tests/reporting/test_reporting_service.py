"""
The reporting facade: four reads and the single write.

The delta scenario (window is the second day after T0):

    Area A  spool 10h   Receive before, Erect at window start,
                        Connect exactly at window end         ->  +4.0h
    Area B  spool 20h   Erect inside the window               ->  +8.0h
            valve 10h   Receive before, regressed inside      ->  -1.0h
    None    valve  4h   Receive, Install, Punch inside        ->  +3.2h
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.domain.schedule import Category
from progress_kernel.exceptions import (
    InvalidDimensionError,
    InvalidWindowError,
    ItemNotFoundError,
    UntrackedProgressError,
)
from progress_kernel.models.item import Item


def _force_cached_progress(session, item_id, percent, earned):
    """Write cached progress with no events behind it, as a bulk import would."""
    session.execute(
        update(Item)
        .where(Item.id == item_id)
        .values(percent_complete=percent, earned_hours=earned)
        .execution_options(synchronize_session=False)
    )
    session.expire_all()


@pytest.fixture
def window(clock):
    start = clock.now() + timedelta(days=1)
    return start, start + timedelta(days=1)


@pytest.fixture
def scenario(make_dimension, make_item, record_at, clock, window):
    start, end = window
    t0 = clock.now()
    a = make_dimension(DimensionType.AREA, "A", "Area A")
    b = make_dimension(DimensionType.AREA, "B", "Area B")

    spool_a = make_item("spool", "10", area=a.dimension_value_id)
    record_at(spool_a.item_id, "Receive", True, t0)
    record_at(spool_a.item_id, "Erect", True, start)
    record_at(spool_a.item_id, "Connect", True, end)

    spool_b = make_item("spool", "20", area=b.dimension_value_id)
    record_at(spool_b.item_id, "Erect", True, start + timedelta(hours=2))

    valve_b = make_item("valve", "10", area=b.dimension_value_id)
    record_at(valve_b.item_id, "Receive", True, t0)
    record_at(valve_b.item_id, "Receive", False, start + timedelta(hours=3))

    loose = make_item("valve", "4")
    for offset, milestone in enumerate(("Receive", "Install", "Punch")):
        record_at(loose.item_id, milestone, True, start + timedelta(hours=4 + offset))

    return {"a": a, "b": b, "spool_a": spool_a, "spool_b": spool_b, "valve_b": valve_b, "loose": loose}


class TestResolveTemplate:
    def test_default_schedule(self, reporting, project_id):
        schedule = reporting.resolve_template(project_id, "spool")
        assert [e.name for e in schedule.entries][:2] == ["Receive", "Erect"]
        assert schedule.entry_for("erect").weight == Decimal("40")

    def test_project_override_visible(self, orchestrator, reporting, project_id, actor_id):
        orchestrator.templates.set_project_overrides(
            project_id,
            "spool",
            [{"name": "Receive", "weight": 2}, {"name": "Punch", "weight": 8}],
            actor_id,
        )
        assert reporting.resolve_template(project_id, "spool").entry_for("Punch").weight == Decimal("8")
        assert reporting.resolve_template(None, "spool").entry_for("Punch").weight == Decimal("5")


class TestComputeItemProgress:
    def test_current_progress(self, reporting, scenario):
        progress = reporting.compute_item_progress(scenario["spool_a"].item_id)
        assert progress.percent_complete == Decimal("85")
        assert progress.earned_hours == Decimal("8.5")
        assert progress.category_earned_hours[Category.INSTALL] == Decimal("8")

    def test_as_of_replays_earlier_events(self, reporting, scenario, window):
        start, _ = window
        progress = reporting.compute_item_progress(scenario["spool_a"].item_id, as_of=start)
        # Erect happened exactly at ``start`` and is excluded
        assert progress.percent_complete == Decimal("5")

    def test_unknown_item(self, reporting):
        with pytest.raises(ItemNotFoundError):
            reporting.compute_item_progress(uuid4())


class TestRollupSnapshot:
    def test_fresh_and_cached_agree(self, reporting, scenario, project_id):
        fresh = reporting.get_rollup_snapshot(project_id, "area")
        cached = reporting.get_rollup_snapshot(project_id, "area", use_cache=True)

        assert [r.label for r in fresh.rows] == ["Area A", "Area B", "Not Assigned"]
        assert cached.totals.earned_hours == fresh.totals.earned_hours
        # 8.5 + 8 + 0 + 3.2
        assert fresh.totals.earned_hours == Decimal("19.7")


class TestDimensionDelta:
    def test_rows_by_area(self, reporting, scenario, project_id, window):
        report = reporting.get_dimension_delta(project_id, "area", *window)

        assert [r.label for r in report.rows] == ["Area A", "Area B", "Not Assigned"]
        area_a, area_b, unassigned = report.rows
        assert area_a.delta_earned_hours == Decimal("4")
        assert area_b.delta_earned_hours == Decimal("7")
        assert unassigned.delta_earned_hours == Decimal("3.2")
        assert report.totals.label == "Total"
        assert report.totals.delta_earned_hours == Decimal("14.2")
        assert report.totals.items_with_activity == 4

    def test_regression_is_negative(self, reporting, scenario, project_id, window):
        area_b = reporting.get_dimension_delta(project_id, "area", *window).rows[1]
        assert area_b.category_delta_hours[Category.RECEIVE] == Decimal("-1")
        assert area_b.category_delta_hours[Category.INSTALL] == Decimal("8")

    def test_budget_counted_once_per_item(self, reporting, scenario, project_id, window):
        report = reporting.get_dimension_delta(project_id, "area", *window)
        unassigned = report.rows[-1]
        # three milestones moved, one 4h valve
        assert unassigned.budgeted_hours == Decimal("4")
        assert report.totals.budgeted_hours == Decimal("44")

    def test_delta_matches_replayed_difference(self, reporting, scenario, project_id, window):
        start, end = window
        item_id = scenario["spool_a"].item_id
        before = reporting.compute_item_progress(item_id, as_of=start).earned_hours
        after = reporting.compute_item_progress(item_id, as_of=end).earned_hours
        area_a = reporting.get_dimension_delta(project_id, "area", start, end).rows[0]
        assert area_a.delta_earned_hours == after - before

    def test_empty_window(self, reporting, scenario, project_id, clock):
        later = clock.now() + timedelta(days=30)
        report = reporting.get_dimension_delta(project_id, "area", later, later + timedelta(days=1))
        assert report.rows == ()
        assert report.totals.delta_earned_hours == Decimal("0")

    def test_cross_checks_consistent(self, reporting, scenario, project_id, window):
        report = reporting.get_dimension_delta(project_id, "area", *window)
        assert len(report.cross_checks) == 4
        assert report.discrepancies == ()
        spool_a = next(c for c in report.cross_checks if c.item_id == scenario["spool_a"].item_id)
        assert spool_a.percent_at_window_end == Decimal("45")

    def test_stale_cache_reported_as_discrepancy(
        self, session, reporting, scenario, project_id, window, captured_logs
    ):
        _force_cached_progress(session, scenario["spool_b"].item_id, Decimal("90"), Decimal("18"))
        report = reporting.get_dimension_delta(project_id, "area", *window)

        (bad,) = report.discrepancies
        assert bad.item_id == scenario["spool_b"].item_id
        assert bad.cached_percent == Decimal("90")
        assert bad.replayed_percent == Decimal("40")
        assert any(r["message"] == "delta_cross_check_mismatch" for r in captured_logs())

    def test_invalid_window(self, reporting, project_id, window):
        start, _ = window
        with pytest.raises(InvalidWindowError):
            reporting.get_dimension_delta(project_id, "area", start, start)

    def test_invalid_dimension(self, reporting, project_id, window):
        with pytest.raises(InvalidDimensionError):
            reporting.get_dimension_delta(project_id, "drawing", *window)


class TestUntrackedProgress:
    @pytest.fixture
    def untracked(self, session, scenario, make_item):
        item = make_item("valve", "10")
        _force_cached_progress(session, item.item_id, Decimal("30"), Decimal("3"))
        return item

    def test_listed_beside_the_delta(self, reporting, untracked, project_id, window):
        report = reporting.get_dimension_delta(project_id, "area", *window)

        (listed,) = report.untracked
        assert listed.item_id == untracked.item_id
        assert listed.cached_percent == Decimal("30")
        assert report.totals.delta_earned_hours == Decimal("14.2")
        assert report.totals.items_with_activity == 4

    def test_strict_mode_refuses(self, reporting, untracked, project_id, window):
        with pytest.raises(UntrackedProgressError) as exc:
            reporting.get_dimension_delta(project_id, "area", *window, require_tracked=True)
        assert exc.value.code == "UNTRACKED_PROGRESS"
        assert exc.value.item_id == str(untracked.item_id)


class TestRecordMilestoneChange:
    def test_write_flows_into_reads(self, reporting, make_item, project_id, actor_id, clock):
        item = make_item("spool", "10")
        result = reporting.record_milestone_change(item.item_id, "Receive", True, actor_id)

        assert result.changed
        assert reporting.compute_item_progress(item.item_id).percent_complete == Decimal("5")
        report = reporting.get_dimension_delta(
            project_id, "system", clock.now(), clock.now() + timedelta(minutes=1)
        )
        assert report.totals.delta_earned_hours == Decimal("0.5")
        assert report.rows[0].label == "Not Assigned"
