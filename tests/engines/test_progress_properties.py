"""
Property-based tests for the calculator, replay and delta engines.

Properties:
- Category earned hours always reconcile to total earned hours.
- Percent complete stays within [0, 100].
- Percent complete never falls when one milestone value rises.
- Deltas over adjacent windows add up to the delta over their union.
- A window covering the whole log yields the item's final earned hours.
- Replay of the log reproduces the final milestone map.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from progress_engines.delta import DeltaItemInput, aggregate_delta
from progress_engines.progress import compute_progress
from progress_engines.replay import replay_milestones
from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.domain.dtos import EventRecord, ItemSnapshot
from progress_kernel.domain.schedule import Category, MilestoneKind, ScheduleEntry
from progress_kernel.domain.template_merge import resolve_schedule

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)
TOLERANCE = Decimal("0.01")


@st.composite
def schedules(draw):
    """A resolved schedule whose integer weights total exactly 100."""
    parts = draw(st.lists(st.integers(min_value=0, max_value=40), min_size=1, max_size=7))
    if sum(parts) > 100:
        parts = [p * 100 // sum(parts) for p in parts]
    weights = parts + [100 - sum(parts)]
    entries = [
        ScheduleEntry(
            name=f"M{i}",
            weight=Decimal(w),
            kind=draw(st.sampled_from(list(MilestoneKind))),
            category=draw(st.sampled_from(list(Category))),
            order=i,
        )
        for i, w in enumerate(weights)
    ]
    return resolve_schedule("generated", entries)


def _value_for(kind):
    if kind is MilestoneKind.DISCRETE:
        return st.sampled_from([Decimal("0"), Decimal("100")])
    return st.decimals(min_value=0, max_value=100, places=2)


@st.composite
def schedule_and_milestones(draw):
    schedule = draw(schedules())
    chosen = draw(st.lists(st.sampled_from(schedule.entries), unique=True))
    milestones = {e.name: draw(_value_for(e.kind)) for e in chosen}
    return schedule, milestones


@st.composite
def schedule_and_history(draw):
    """A schedule plus a time-ordered event log over its milestones."""
    schedule = draw(schedules())
    steps = draw(
        st.lists(
            st.tuples(st.sampled_from(schedule.entries), st.integers(1, 240)),
            max_size=15,
        )
    )
    item_id = uuid4()
    current: dict[str, Decimal] = {}
    events = []
    at = EPOCH
    for seq, (entry, gap) in enumerate(steps, start=1):
        value = draw(_value_for(entry.kind))
        at = at + timedelta(hours=gap)
        events.append(
            EventRecord(
                event_id=uuid4(),
                item_id=item_id,
                milestone_name=entry.name,
                previous_value=current.get(entry.name, Decimal("0")),
                new_value=value,
                occurred_at=at,
                item_seq=seq,
            )
        )
        current[entry.name] = value
    return schedule, item_id, events, current


budgets = st.decimals(min_value=0, max_value=10_000, places=2)


def _input(schedule, item_id, events, current, budget):
    progress = compute_progress(schedule, current, budget)
    snapshot = ItemSnapshot(
        item_id=item_id,
        project_id=uuid4(),
        item_type=schedule.item_type,
        budgeted_hours=budget,
        milestones=current,
        percent_complete=progress.percent_complete,
        earned_hours=progress.earned_hours,
    )
    return DeltaItemInput(snapshot=snapshot, schedule=schedule, events=tuple(events))


def _delta_total(item, start, end):
    report = aggregate_delta(
        item.snapshot.project_id, DimensionType.AREA, start, end, [item]
    )
    return report.totals.delta_earned_hours


class TestCalculatorProperties:
    @given(schedule_and_milestones(), budgets)
    @settings(max_examples=200, deadline=None)
    def test_categories_reconcile(self, data, budget):
        schedule, milestones = data
        result = compute_progress(schedule, milestones, budget)
        total = sum(result.category_earned_hours.values(), Decimal("0"))
        assert abs(total - result.earned_hours) <= TOLERANCE

    @given(schedule_and_milestones(), budgets)
    @settings(max_examples=200, deadline=None)
    def test_percent_bounded(self, data, budget):
        schedule, milestones = data
        result = compute_progress(schedule, milestones, budget)
        assert Decimal("0") <= result.percent_complete <= Decimal("100")
        assert result.earned_hours <= budget

    @given(schedule_and_milestones(), budgets)
    @settings(max_examples=50, deadline=None)
    def test_deterministic(self, data, budget):
        schedule, milestones = data
        assert compute_progress(schedule, milestones, budget) == compute_progress(
            schedule, milestones, budget
        )

    def _check_monotonic(self, data, kind, budget):
        schedule, milestones = data.draw(schedule_and_milestones())
        candidates = [e for e in schedule.entries if e.kind is kind]
        assume(candidates)
        entry = data.draw(st.sampled_from(candidates))
        low, high = sorted(data.draw(st.lists(_value_for(kind), min_size=2, max_size=2)))

        before = compute_progress(schedule, {**milestones, entry.name: low}, budget)
        after = compute_progress(schedule, {**milestones, entry.name: high}, budget)
        assert before.percent_complete <= after.percent_complete
        assert before.earned_hours <= after.earned_hours

    @given(st.data(), budgets)
    @settings(max_examples=200, deadline=None)
    def test_percent_monotonic_in_partial_value(self, data, budget):
        self._check_monotonic(data, MilestoneKind.PARTIAL, budget)

    @given(st.data(), budgets)
    @settings(max_examples=200, deadline=None)
    def test_percent_monotonic_in_discrete_value(self, data, budget):
        self._check_monotonic(data, MilestoneKind.DISCRETE, budget)


class TestReplayProperties:
    @given(schedule_and_history())
    @settings(max_examples=100, deadline=None)
    def test_replay_reproduces_final_map(self, data):
        _, _, events, current = data
        assert replay_milestones(events) == current

    @given(schedule_and_history())
    @settings(max_examples=100, deadline=None)
    def test_replay_ignores_input_order(self, data):
        _, _, events, _ = data
        assert replay_milestones(list(reversed(events))) == replay_milestones(events)


class TestDeltaProperties:
    @given(schedule_and_history(), budgets, st.integers(0, 4000), st.integers(0, 4000))
    @settings(max_examples=100, deadline=None)
    def test_adjacent_windows_add_up(self, data, budget, split_a, split_b):
        schedule, item_id, events, current = data
        item = _input(schedule, item_id, events, current, budget)
        first, second = sorted([split_a, split_b])
        start = EPOCH
        middle = EPOCH + timedelta(hours=first, minutes=30)
        end = EPOCH + timedelta(hours=second + 1)

        combined = _delta_total(item, start, end)
        parts = _delta_total(item, start, middle) + _delta_total(item, middle, end)
        assert abs(combined - parts) <= TOLERANCE

    @given(schedule_and_history(), budgets)
    @settings(max_examples=100, deadline=None)
    def test_full_window_equals_final_earned(self, data, budget):
        schedule, item_id, events, current = data
        item = _input(schedule, item_id, events, current, budget)
        end = EPOCH + timedelta(days=365)

        assert abs(_delta_total(item, EPOCH, end) - item.snapshot.earned_hours) <= TOLERANCE
