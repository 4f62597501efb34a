"""
Template Registry: type defaults, project overrides, conflicts, history.

The default template set is seeded by the ``orchestrator`` fixture.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from progress_kernel.domain.schedule import Category, MilestoneKind
from progress_kernel.exceptions import (
    SchemaInvalidError,
    TemplateConflictError,
    TemplateNotFoundError,
    TemplatesAlreadyExistError,
    UnknownMilestoneError,
)

LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)

SPOOL_OVERRIDE = [{"name": "Receive", "weight": 2}, {"name": "Punch", "weight": 8}]


@pytest.fixture
def registry(orchestrator):
    return orchestrator.registry


@pytest.fixture
def resolver(orchestrator):
    return orchestrator.resolver


class TestDefaults:
    def test_seeded_defaults_resolve(self, resolver):
        schedule = resolver.resolve("spool")
        assert schedule.milestone_names == ("Receive", "Erect", "Connect", "Punch", "Test", "Restore")
        assert schedule.weight_total == Decimal("100")

    def test_replace_default(self, registry, resolver, actor_id):
        registry.set_default_schedule(
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
        assert resolver.resolve("valve").entry_for("Receive").weight == Decimal("20")

    def test_invalid_default_writes_nothing(self, registry, resolver, actor_id):
        with pytest.raises(SchemaInvalidError):
            registry.set_default_schedule(
                "valve",
                [{"name": "Receive", "weight": 20}, {"name": "Install", "weight": 70}],
                actor_id,
            )
        assert resolver.resolve("valve").entry_for("Receive").weight == Decimal("10")

    def test_new_item_type(self, registry, resolver, actor_id):
        registry.set_default_schedule(
            "insulation",
            [
                {"name": "Install", "weight": 80, "kind": "partial"},
                {"name": "Punch", "weight": 20},
            ],
            actor_id,
        )
        schedule = resolver.resolve("insulation")
        assert schedule.entry_for("install").kind is MilestoneKind.PARTIAL
        assert schedule.entry_for("punch").category is Category.PUNCH

    def test_unknown_item_type(self, resolver):
        with pytest.raises(TemplateNotFoundError):
            resolver.resolve("unicorn")

    def test_default_change_revalidates_overriding_projects(
        self, registry, project_id, actor_id
    ):
        registry.set_project_overrides(project_id, "support", [
            {"name": "Receive", "weight": 5},
            {"name": "Install", "weight": 65},
        ], actor_id)
        with pytest.raises(UnknownMilestoneError):
            registry.set_default_schedule(
                "support",
                [
                    {"name": "Install", "weight": 70},
                    {"name": "Punch", "weight": 10},
                    {"name": "Test", "weight": 15},
                    {"name": "Restore", "weight": 5},
                ],
                actor_id,
            )


class TestProjectOverrides:
    def test_override_applies_only_to_its_project(self, registry, resolver, project_id, actor_id):
        other_project = uuid4()
        schedule = registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)

        assert schedule.entry_for("Receive").weight == Decimal("2")
        assert schedule.entry_for("Punch").weight == Decimal("8")
        assert schedule.entry_for("Erect").weight == Decimal("40")
        assert resolver.resolve("spool", project_id).project_id == project_id
        assert resolver.resolve("spool", other_project).entry_for("Receive").weight == Decimal("5")
        assert resolver.resolve("spool").entry_for("Receive").weight == Decimal("5")

    def test_unnamed_overrides_are_kept(self, registry, project_id, actor_id):
        registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        schedule = registry.set_project_overrides(
            project_id,
            "spool",
            [{"name": "receive", "weight": 3}, {"name": "Test", "weight": 4}],
            actor_id,
        )
        assert schedule.entry_for("Receive").weight == Decimal("3")
        assert schedule.entry_for("Punch").weight == Decimal("8")
        assert schedule.entry_for("Test").weight == Decimal("4")
        overrides = registry.list_project_overrides(project_id)["spool"]
        assert {o.name for o in overrides} == {"Receive", "Punch", "Test"}

    def test_override_can_change_kind_and_category(self, registry, project_id, actor_id):
        schedule = registry.set_project_overrides(
            project_id,
            "spool",
            [{"name": "Erect", "weight": 40, "kind": "partial", "category": "receive"}],
            actor_id,
        )
        entry = schedule.entry_for("Erect")
        assert entry.kind is MilestoneKind.PARTIAL
        assert entry.category is Category.RECEIVE

    def test_invalid_sum_rejected_and_nothing_written(self, registry, resolver, project_id, actor_id):
        with pytest.raises(SchemaInvalidError) as exc:
            registry.set_project_overrides(project_id, "spool", [{"name": "Receive", "weight": 10}], actor_id)
        assert exc.value.weight_total == Decimal("105")
        assert registry.list_project_overrides(project_id) == {}
        assert resolver.resolve("spool", project_id).entry_for("Receive").weight == Decimal("5")

    def test_unknown_milestone_rejected(self, registry, project_id, actor_id):
        with pytest.raises(UnknownMilestoneError):
            registry.set_project_overrides(project_id, "spool", [{"name": "Grout", "weight": 0}], actor_id)

    def test_duplicate_names_in_one_call(self, registry, project_id, actor_id):
        with pytest.raises(SchemaInvalidError):
            registry.set_project_overrides(
                project_id,
                "spool",
                [{"name": "Punch", "weight": 5}, {"name": "PUNCH", "weight": 5}],
                actor_id,
            )

    def test_unknown_item_type(self, registry, project_id, actor_id):
        with pytest.raises(TemplateNotFoundError):
            registry.set_project_overrides(project_id, "unicorn", [], actor_id)


class TestConflicts:
    def test_stale_token_rejected(self, registry, project_id, actor_id, captured_logs):
        registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        with pytest.raises(TemplateConflictError) as exc:
            registry.set_project_overrides(
                project_id,
                "spool",
                [{"name": "Receive", "weight": 3}, {"name": "Punch", "weight": 7}],
                actor_id,
                expected_updated_at=LONG_AGO,
            )
        assert exc.value.code == "TEMPLATE_CONFLICT"
        assert any(r["message"] == "template_conflict_detected" for r in captured_logs())

    def test_current_token_accepted(self, registry, project_id, actor_id):
        registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        token = registry.overrides_last_modified(project_id, "spool")
        schedule = registry.set_project_overrides(
            project_id,
            "spool",
            [{"name": "Receive", "weight": 3}, {"name": "Punch", "weight": 7}],
            actor_id,
            expected_updated_at=token,
        )
        assert schedule.entry_for("Receive").weight == Decimal("3")

    def test_first_write_has_nothing_to_conflict_with(self, registry, project_id, actor_id):
        assert registry.overrides_last_modified(project_id, "spool") is None
        registry.set_project_overrides(
            project_id, "spool", SPOOL_OVERRIDE, actor_id, expected_updated_at=LONG_AGO
        )


class TestRemoveOverride:
    def test_remove_all(self, registry, project_id, actor_id):
        registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        schedule = registry.remove_project_override(project_id, "spool", actor_id)
        assert schedule.entry_for("Receive").weight == Decimal("5")
        assert schedule.project_id is None
        assert registry.list_project_overrides(project_id) == {}

    def test_remove_one_must_stay_valid(self, registry, project_id, actor_id):
        registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        # 5 + 40 + 40 + 8 + 5 + 5
        with pytest.raises(SchemaInvalidError):
            registry.remove_project_override(project_id, "spool", actor_id, milestone_name="Receive")

    def test_remove_one(self, registry, project_id, actor_id):
        registry.set_project_overrides(
            project_id,
            "spool",
            [{"name": "Test", "weight": 5, "category": "punch"}, {"name": "Restore", "weight": 5}],
            actor_id,
        )
        schedule = registry.remove_project_override(project_id, "spool", actor_id, milestone_name="test")
        assert schedule.entry_for("Test").category is Category.TEST
        assert [o.name for o in registry.list_project_overrides(project_id)["spool"]] == ["Restore"]

    def test_remove_missing_override(self, registry, project_id, actor_id):
        with pytest.raises(UnknownMilestoneError):
            registry.remove_project_override(project_id, "spool", actor_id, milestone_name="Erect")


class TestCloneDefaults:
    def test_clone_copies_every_type(self, registry, resolver, project_id, actor_id, template_set):
        created = registry.clone_defaults_to_project(project_id, actor_id)
        assert created == sum(len(t.milestones) for t in template_set.templates)
        assert set(registry.list_project_overrides(project_id)) == set(template_set.item_types)
        assert resolver.resolve("spool", project_id).project_id == project_id

    def test_clone_refuses_existing_overrides(self, registry, project_id, actor_id):
        registry.set_project_overrides(project_id, "spool", SPOOL_OVERRIDE, actor_id)
        with pytest.raises(TemplatesAlreadyExistError):
            registry.clone_defaults_to_project(project_id, actor_id)


class TestChangeLog:
    def test_override_write_logged_with_states(self, orchestrator, registry, project_id, actor_id):
        registry.set_project_overrides(
            project_id, "spool", SPOOL_OVERRIDE, actor_id, reason="owner contract rev B"
        )
        history = orchestrator.templates.change_history(project_id=project_id)

        assert len(history) == 1
        change = history[0]
        assert change.action == "set_overrides"
        assert change.reason == "owner contract rev B"
        assert change.actor_id == actor_id
        old = {e["name"]: e["weight"] for e in change.old_state["entries"]}
        new = {e["name"]: e["weight"] for e in change.new_state["entries"]}
        assert Decimal(old["Receive"]) == Decimal("5")
        assert Decimal(new["Receive"]) == Decimal("2")

    def test_rejected_write_not_logged(self, orchestrator, registry, project_id, actor_id):
        with pytest.raises(SchemaInvalidError):
            registry.set_project_overrides(project_id, "spool", [{"name": "Receive", "weight": 50}], actor_id)
        assert orchestrator.templates.change_history(project_id=project_id) == []

