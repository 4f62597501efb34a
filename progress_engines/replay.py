"""
Module: progress_engines.replay
Responsibility:
    Rebuild an item's milestone map from its event log.  The cached map on
    the item is a projection of the log; this is the function that defines
    what that projection is.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Events are applied in (item_seq, occurred_at) order; the latest event
      per milestone wins, corrections included.  Names are matched
      case-insensitively and the latest spelling is kept.
    - Replaying every event for an item from an empty map reproduces the
      item's cached map exactly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal

from progress_kernel.domain.dtos import EventRecord
from progress_kernel.domain.schedule import milestone_key
from progress_engines.tracer import traced_engine


def ordered_events(events: Iterable[EventRecord]) -> list[EventRecord]:
    """Events in log order."""
    return sorted(events, key=lambda e: (e.item_seq, e.occurred_at))


def events_before(events: Iterable[EventRecord], as_of: datetime) -> list[EventRecord]:
    """Events that occurred strictly before ``as_of``, in log order."""
    return [e for e in ordered_events(events) if e.occurred_at < as_of]


@traced_engine("replay", "1.0", fingerprint_fields=("events", "as_of"))
def replay_milestones(
    events: Sequence[EventRecord],
    as_of: datetime | None = None,
) -> dict[str, Decimal]:
    """
    Milestone map produced by applying ``events`` to an empty map.

    Args:
        events: One item's events, in any order.
        as_of: When given, only events strictly before this instant apply.

    Returns:
        {milestone name: latest new_value}
    """
    selected = ordered_events(events) if as_of is None else events_before(events, as_of)
    # key -> (stored name, value); the latest event's spelling becomes the name
    latest: dict[str, tuple[str, Decimal]] = {}
    for event in selected:
        latest[milestone_key(event.milestone_name)] = (event.milestone_name, event.new_value)
    return dict(latest.values())
