"""
Milestone schedule value objects.

Responsibility:
    Frozen dataclasses describing what an item type's milestones are worth:
    the milestone vocabulary, each milestone's weight, completion kind and
    reporting category, and the resolved (default + override) schedule that
    the calculator and the delta aggregator consume.

Architecture position:
    Kernel > Domain -- pure data definitions with ZERO I/O.

Invariants enforced:
    - All value objects are ``frozen=True``.
    - Weights and values are ``Decimal`` on the 0-100 scale.
    - Milestone names are matched case-insensitively everywhere
      (``milestone_key``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from progress_kernel.utils.hashing import hash_payload


class MilestoneKind(str, Enum):
    """How a milestone value turns into credit."""

    DISCRETE = "discrete"  # only the "complete" sentinel counts
    PARTIAL = "partial"  # any 0-100 value counts proportionally


class Category(str, Enum):
    """Fixed reporting categories, independent of milestone naming."""

    RECEIVE = "receive"
    INSTALL = "install"
    PUNCH = "punch"
    TEST = "test"
    RESTORE = "restore"


# Reporting order of categories.
CATEGORIES: tuple[Category, ...] = tuple(Category)


def milestone_key(name: str) -> str:
    """Canonical case-insensitive lookup key for a milestone name."""
    return name.strip().casefold()


def zero_by_category() -> dict[Category, Decimal]:
    """A fresh {category: 0} map covering every category."""
    return {category: Decimal("0") for category in CATEGORIES}


@dataclass(frozen=True)
class ScheduleEntry:
    """One milestone of a schedule."""

    name: str
    weight: Decimal
    kind: MilestoneKind
    category: Category
    order: int = 0
    requires_welder: bool = False

    @property
    def key(self) -> str:
        return milestone_key(self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "weight": self.weight,
            "kind": self.kind.value,
            "category": self.category.value,
            "order": self.order,
        }


@dataclass(frozen=True)
class MilestoneOverride:
    """Project-local replacement of a default milestone's weight/kind/category."""

    name: str
    weight: Decimal
    kind: MilestoneKind
    category: Category

    @property
    def key(self) -> str:
        return milestone_key(self.name)


@dataclass(frozen=True)
class ResolvedSchedule:
    """
    The ordered, validated milestone schedule for one (project, item type).

    Guarantees:
        - Produced only by ``resolve_schedule`` (domain.template_merge), which
          has already checked that weights total 100.
        - ``entry_for`` lookups are case-insensitive.
    """

    item_type: str
    entries: tuple[ScheduleEntry, ...]
    project_id: UUID | None = None
    _by_key: dict[str, ScheduleEntry] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_by_key", {entry.key: entry for entry in self.entries}
        )

    @property
    def weight_total(self) -> Decimal:
        return sum((e.weight for e in self.entries), Decimal("0"))

    @property
    def milestone_names(self) -> tuple[str, ...]:
        return tuple(e.name for e in self.entries)

    def entry_for(self, name: str) -> ScheduleEntry | None:
        """Case-insensitive lookup; None for milestones outside the schedule."""
        return self._by_key.get(milestone_key(name))

    def category_weights(self) -> dict[Category, Decimal]:
        """Sum of weights per category; categories with no milestones are 0."""
        weights = zero_by_category()
        for entry in self.entries:
            weights[entry.category] += entry.weight
        return weights

    def to_dict(self) -> dict:
        return {
            "item_type": self.item_type,
            "project_id": self.project_id,
            "entries": [e.to_dict() for e in self.entries],
        }

    @property
    def fingerprint(self) -> str:
        """Deterministic hash identifying this exact resolved schedule."""
        return hash_payload(
            {"item_type": self.item_type, "entries": [e.to_dict() for e in self.entries]}
        )
