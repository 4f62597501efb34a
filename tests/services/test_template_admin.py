"""
Template edits applied to existing items.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.exceptions import SchemaInvalidError
from progress_kernel.selectors.item_selector import ItemSelector

SPOOL_OVERRIDE = [{"name": "Receive", "weight": 2}, {"name": "Punch", "weight": 8}]


@pytest.fixture
def templates(orchestrator):
    return orchestrator.templates


@pytest.fixture
def items(session):
    return ItemSelector(session)


class TestProjectOverrideEdits:
    def test_existing_items_recalculated(self, templates, make_item, items, project_id, actor_id):
        first = make_item("spool", "10", milestones={"Receive": True})
        second = make_item("spool", "20", milestones={"Receive": True, "Punch": True})
        make_item("valve", "5", milestones={"Receive": True})

        result = templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)

        assert result.affected_items == 2
        assert items.get(first.item_id).percent_complete == Decimal("2")
        assert items.get(first.item_id).earned_hours == Decimal("0.2")
        # 2 + 8
        assert items.get(second.item_id).percent_complete == Decimal("10")
        assert items.get(first.item_id).schedule_fingerprint == result.schedule.fingerprint

    def test_change_log_records_affected_count(self, templates, make_item, project_id, actor_id):
        make_item("spool", "10")
        templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        (change,) = templates.change_history(project_id=project_id)
        assert change.affected_items == 1

    def test_other_projects_untouched(self, templates, make_item, items, project_id, actor_id):
        elsewhere = make_item("spool", "10", project=uuid4(), milestones={"Receive": True})
        result = templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        assert result.affected_items == 0
        assert items.get(elsewhere.item_id).percent_complete == Decimal("5")

    def test_template_only_edit_leaves_cache_stale(self, templates, make_item, items, project_id, actor_id):
        item = make_item("spool", "10", milestones={"Receive": True})
        result = templates.set_project_overrides(
            project_id, "spool", SPOOL_OVERRIDE, actor_id, apply_to_existing=False
        )
        assert result.affected_items == 0
        assert items.get(item.item_id).percent_complete == Decimal("5")

    def test_rejected_edit_recalculates_nothing(self, templates, make_item, items, project_id, actor_id):
        item = make_item("spool", "10", milestones={"Receive": True})
        with pytest.raises(SchemaInvalidError):
            templates.set_project_overrides(project_id, "spool", [{"name": "Receive", "weight": 9}], actor_id)
        assert items.get(item.item_id).percent_complete == Decimal("5")

    def test_remove_override_restores_defaults(self, templates, make_item, items, project_id, actor_id):
        item = make_item("spool", "10", milestones={"Receive": True})
        templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        result = templates.remove_project_override(project_id, "spool", actor_id)
        assert result.affected_items == 1
        assert items.get(item.item_id).percent_complete == Decimal("5")

    def test_rollups_follow_the_edit(self, orchestrator, templates, make_item, make_dimension, project_id, actor_id):
        area = make_dimension(DimensionType.AREA, "A")
        make_item("spool", "10", area=area.dimension_value_id, milestones={"Receive": True})
        templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)

        cached = orchestrator.rollups.cached_snapshot(project_id, DimensionType.AREA)
        assert cached.rows[0].earned_hours == Decimal("0.2")
        assert orchestrator.rollups.detect_rollup_drift(project_id, DimensionType.AREA) == []


class TestDefaultEdits:
    def test_default_change_reaches_every_project(self, templates, make_item, items, actor_id):
        here = make_item("valve", "10", milestones={"Receive": True})
        there = make_item("valve", "10", project=uuid4(), milestones={"Receive": True})

        result = templates.set_default_schedule(
            "valve",
            [
                {"name": "Receive", "weight": 20},
                {"name": "Install", "weight": 50},
                {"name": "Punch", "weight": 10},
                {"name": "Test", "weight": 15},
                {"name": "Restore", "weight": 5},
            ],
            actor_id,
        )

        assert result.affected_items == 2
        assert items.get(here.item_id).percent_complete == Decimal("20")
        assert items.get(there.item_id).percent_complete == Decimal("20")

    def test_default_change_under_project_override(self, templates, make_item, items, project_id, actor_id):
        item = make_item("spool", "10", milestones={"Erect": True, "Punch": True})
        templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        templates.set_default_schedule(
            "spool",
            [
                {"name": "Receive", "weight": 5},
                {"name": "Erect", "weight": 35},
                {"name": "Connect", "weight": 45},
                {"name": "Punch", "weight": 5},
                {"name": "Test", "weight": 5},
                {"name": "Restore", "weight": 5},
            ],
            actor_id,
        )
        # Erect from the new default, Punch from the override: 35 + 8;
        # override total 2 + 35 + 45 + 8 + 5 + 5 = 100
        assert items.get(item.item_id).percent_complete == Decimal("43")

    def test_clone_then_edit(self, templates, project_id, actor_id):
        created = templates.clone_defaults_to_project(project_id, actor_id)
        assert created > 0
        result = templates.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        assert result.schedule.entry_for("Receive").weight == Decimal("2")
