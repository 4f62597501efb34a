"""
Milestone value normalization -- the ingestion boundary.

Responsibility:
    Turn whatever a source system calls "done" into the one canonical
    representation the rest of the kernel understands.  Legacy data marks a
    discrete milestone complete with ``True``, ``1`` or ``100``; partial
    milestones carry a 0-100 percentage.  This module is the ONLY place that
    knows about those variants.  The calculator, the recorder and the delta
    aggregator all assume values have already passed through here.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Canonical scale: every stored value is a Decimal in [0, 100].
    - Discrete milestones store exactly COMPLETE (100) or INCOMPLETE (0).
    - Partial values carry at most four decimal places (VALUE_QUANTUM), the
      precision of the event log columns, so a replayed map equals the
      cached one exactly.

Failure modes:
    - InvalidMilestoneValueError for anything that cannot be mapped
      (out-of-range numbers, unrecognized strings, NaN, a discrete value
      that is neither a legacy "complete" nor "not started" form).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from progress_kernel.domain.schedule import MilestoneKind
from progress_kernel.exceptions import InvalidMilestoneValueError

COMPLETE = Decimal("100")
INCOMPLETE = Decimal("0")

# Matches Numeric(9, 4) on milestone_events.previous_value / new_value
VALUE_QUANTUM = Decimal("0.0001")

_TRUE_STRINGS = frozenset({"true", "t", "yes", "y", "complete", "done"})
_FALSE_STRINGS = frozenset({"false", "f", "no", "n", ""})


def _to_decimal(milestone_name: str, raw: object) -> Decimal:
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float, str)):
        try:
            value = Decimal(str(raw).strip())
        except InvalidOperation:
            raise InvalidMilestoneValueError(
                milestone_name, raw, "not a number or boolean"
            ) from None
    else:
        raise InvalidMilestoneValueError(
            milestone_name, raw, f"unsupported type {type(raw).__name__}"
        )
    if not value.is_finite():
        raise InvalidMilestoneValueError(milestone_name, raw, "not a finite number")
    return value


def normalize_milestone_value(
    milestone_name: str,
    raw: object,
    kind: MilestoneKind | None,
) -> Decimal:
    """
    Normalize one raw milestone value to the canonical 0-100 scale.

    Args:
        milestone_name: Used only for error messages.
        raw: Value from the source (bool, int, float, str, Decimal or None).
        kind: The milestone's completion kind, or None when the milestone is
            not in the item's schedule (values are then range-checked only).

    Returns:
        Decimal in [0, 100]; exactly 0 or 100 for discrete milestones.

    Raises:
        InvalidMilestoneValueError: If the value cannot be normalized.
    """
    if raw is None:
        return INCOMPLETE
    if isinstance(raw, bool):
        return COMPLETE if raw else INCOMPLETE
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return COMPLETE
        if lowered in _FALSE_STRINGS:
            return INCOMPLETE

    value = _to_decimal(milestone_name, raw)

    if kind is MilestoneKind.DISCRETE:
        if value == 0:
            return INCOMPLETE
        # Legacy 0/1 scale and current 0/100 scale both mean "done"
        if value == 1 or value == COMPLETE:
            return COMPLETE
        raise InvalidMilestoneValueError(
            milestone_name, raw, "discrete milestones accept only 0/1/100 or a boolean"
        )

    if value < 0 or value > COMPLETE:
        raise InvalidMilestoneValueError(milestone_name, raw, "must be between 0 and 100")
    return value.quantize(VALUE_QUANTUM, rounding=ROUND_HALF_UP)


def is_complete(value: Decimal | None) -> bool:
    """True when a (normalized) value is the canonical complete sentinel."""
    return value is not None and value == COMPLETE
