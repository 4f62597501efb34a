"""
Kernel Invariants Contract.

These invariants are structural law. No project override, engine setting,
or caller flag may switch them off. This module declares them and holds
the single enforcement point for each numeric invariant so that the
template registry, the calculator and the delta aggregator all check the
same thing the same way.

Enforcement of the storage invariants (event immutability, atomic
recording) is distributed across db/immutability.py and the
MilestoneRecorder service.
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import Enum, unique
from uuid import UUID

from progress_kernel.exceptions import (
    InvalidBudgetError,
    InvariantViolationError,
    SchemaInvalidError,
)
from progress_kernel.logging_config import get_logger

logger = get_logger("invariants")

# Resolved schedule weights must total 100 within this tolerance.
WEIGHT_TOLERANCE = Decimal("0.01")

# Category earned hours must total earned hours within this many hours.
HOURS_TOLERANCE = Decimal("0.01")

HUNDRED = Decimal("100")


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    WEIGHT_SUM = "weight_sum"
    """Weights of one resolved schedule sum to 100 (+/-0.01). Enforced at
    template write time by TemplateRegistry via check_weight_sum."""

    CATEGORY_RECONCILIATION = "category_reconciliation"
    """Sum of category earned hours equals earned hours (+/-0.01 h).
    Enforced after every calculation via check_category_reconciliation."""

    EVENT_IMMUTABILITY = "event_immutability"
    """Milestone events are append-only. Enforced by ORM listeners and,
    on PostgreSQL, by triggers (progress_kernel.db.immutability)."""

    ATOMIC_RECORDING = "atomic_recording"
    """An event append and the item's cached projection update commit or
    roll back together. Enforced by MilestoneRecorder flushing both within
    the caller's transaction."""

    BUDGET_ONCE_PER_ITEM = "budget_once_per_item"
    """An item's budgeted hours enter a report total exactly once, no
    matter how many categories or milestones it touches. Enforced by
    check_budget_once_per_item in the aggregators."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "progress_services",
    "progress_config",
    "progress_engines",
)


def check_weight_sum(
    item_type: str,
    weights: Iterable[Decimal],
    project_id: UUID | str | None = None,
    tolerance: Decimal = WEIGHT_TOLERANCE,
) -> Decimal:
    """Verify a resolved schedule's weights total 100.

    Returns:
        The weight total.

    Raises:
        SchemaInvalidError: If the total is outside 100 +/- tolerance.
    """
    total = sum((Decimal(w) for w in weights), Decimal("0"))
    if abs(total - HUNDRED) > tolerance:
        raise SchemaInvalidError(
            item_type=item_type,
            weight_total=total,
            project_id=str(project_id) if project_id is not None else None,
        )
    return total


def check_category_reconciliation(
    earned_hours: Decimal,
    category_hours: Mapping[object, Decimal],
    item_id: UUID | str | None = None,
    tolerance: Decimal = HOURS_TOLERANCE,
) -> None:
    """Verify category earned hours reconcile to total earned hours.

    The two figures come from differently-shaped code paths. A mismatch is
    a data-integrity alert: it is logged and raised, never corrected.

    Raises:
        InvariantViolationError: If the sums differ by more than tolerance.
    """
    category_total = sum(category_hours.values(), Decimal("0"))
    if abs(category_total - earned_hours) > tolerance:
        logger.error(
            "category_reconciliation_failed",
            extra={
                "item_id": str(item_id) if item_id is not None else None,
                "earned_hours": earned_hours,
                "category_total": category_total,
            },
        )
        raise InvariantViolationError(
            invariant=KernelInvariant.CATEGORY_RECONCILIATION.value,
            expected=earned_hours,
            actual=category_total,
            item_id=str(item_id) if item_id is not None else None,
        )


def check_budget_once_per_item(item_ids: Iterable[UUID]) -> None:
    """Verify no item contributes budgeted hours to a total more than once.

    Raises:
        InvariantViolationError: If any item id repeats.
    """
    counts = Counter(item_ids)
    repeated = [item_id for item_id, n in counts.items() if n > 1]
    if repeated:
        logger.error(
            "budget_double_count_detected",
            extra={"item_ids": [str(i) for i in repeated]},
        )
        raise InvariantViolationError(
            invariant=KernelInvariant.BUDGET_ONCE_PER_ITEM.value,
            expected=Decimal(1),
            actual=Decimal(max(counts[i] for i in repeated)),
            item_id=str(repeated[0]),
        )


def check_budgeted_hours(budgeted_hours: object) -> Decimal:
    """Validate budgeted hours are a non-negative decimal.

    Raises:
        InvalidBudgetError: If missing, non-numeric or negative.
    """
    if budgeted_hours is None or isinstance(budgeted_hours, bool):
        raise InvalidBudgetError(budgeted_hours)
    try:
        hours = Decimal(str(budgeted_hours))
    except ArithmeticError:
        raise InvalidBudgetError(budgeted_hours) from None
    if not hours.is_finite() or hours < 0:
        raise InvalidBudgetError(budgeted_hours)
    return hours
