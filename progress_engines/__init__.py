"""
Module: progress_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    kernel services and progress_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import progress_kernel.domain, progress_kernel.exceptions,
    progress_kernel.invariants and progress_kernel.logging_config.
    MUST NOT import progress_services or progress_config.

Invariants enforced:
    - Purity: engines never read a clock.  Window bounds and as-of instants
      are passed in by the caller.
    - Decimal-only arithmetic: hours, weights and values are ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine`` (see
    ``progress_engines.tracer``), emitting PROGRESS_ENGINE_TRACE records.

Usage:
    from progress_engines import compute_progress, aggregate_delta, replay_milestones
"""

from progress_engines.delta import (
    DeltaItemInput,
    MilestoneNetChange,
    aggregate_delta,
    item_delta_hours,
    milestone_net_changes,
    window_events,
)
from progress_engines.progress import (
    category_earned_hours,
    category_percent,
    compute_progress,
    earned_hours,
    milestone_credit,
    percent_complete,
    split_milestones,
)
from progress_engines.replay import events_before, ordered_events, replay_milestones
from progress_engines.rollup import RollupItemInput, aggregate_rollup, compute_rollup_rows
from progress_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DeltaItemInput",
    "MilestoneNetChange",
    "RollupItemInput",
    "aggregate_delta",
    "aggregate_rollup",
    "category_earned_hours",
    "category_percent",
    "compute_input_fingerprint",
    "compute_progress",
    "compute_rollup_rows",
    "earned_hours",
    "events_before",
    "item_delta_hours",
    "milestone_credit",
    "milestone_net_changes",
    "ordered_events",
    "percent_complete",
    "replay_milestones",
    "split_milestones",
    "traced_engine",
    "window_events",
]
