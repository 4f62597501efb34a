"""
TemplateResolver -- cached (project, item type) -> ResolvedSchedule lookup.

Responsibility:
    Loads the type default and the project's overrides through
    TemplateSelector and merges them with ``resolve_schedule``.  Results
    are cached per (project, item type) until a template write invalidates
    them.

Architecture position:
    Kernel > Services.  Read-only against the database; the cache is the
    only mutable state and is guarded by a lock so concurrent readers in
    one process can share a resolver.

Invariants enforced:
    - WEIGHT_SUM is validated when a schedule is written (TemplateRegistry).
      Resolution re-runs the same merge, so a stored schedule that somehow
      violates it still fails loudly here instead of feeding bad weights to
      the calculator.

Failure modes:
    - TemplateNotFoundError when the item type has no default schedule.
    - SchemaInvalidError / UnknownMilestoneError if stored rows are
      inconsistent.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from progress_kernel.domain.schedule import ResolvedSchedule
from progress_kernel.domain.template_merge import resolve_schedule
from progress_kernel.invariants import WEIGHT_TOLERANCE
from progress_kernel.logging_config import get_logger
from progress_kernel.selectors.template_selector import TemplateSelector

logger = get_logger("services.template_resolver")

_CacheKey = tuple[UUID | None, str]


class TemplateResolver:
    """
    Resolve milestone schedules with per-(project, item type) caching.

    Contract:
        ``resolve(item_type, project_id)`` returns the same ResolvedSchedule
        object until ``invalidate`` is called for that pair.
    """

    def __init__(self, session: Session, tolerance: Decimal = WEIGHT_TOLERANCE):
        self._session = session
        self._selector = TemplateSelector(session)
        self._tolerance = tolerance
        self._cache: dict[_CacheKey, ResolvedSchedule] = {}
        self._lock = threading.Lock()

    def resolve(self, item_type: str, project_id: UUID | None = None) -> ResolvedSchedule:
        """
        The ordered, validated schedule for ``item_type`` in ``project_id``.

        ``project_id=None`` resolves the bare type default.
        """
        key = (project_id, item_type)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        schedule = self.resolve_uncached(item_type, project_id)
        with self._lock:
            self._cache[key] = schedule
        return schedule

    def resolve_uncached(
        self, item_type: str, project_id: UUID | None = None
    ) -> ResolvedSchedule:
        defaults = self._selector.default_entries(item_type)
        overrides = (
            self._selector.override_entries(project_id, item_type)
            if project_id is not None
            else []
        )
        schedule = resolve_schedule(
            item_type,
            defaults,
            overrides,
            project_id=project_id,
            tolerance=self._tolerance,
        )
        logger.debug(
            "schedule_resolved",
            extra={
                "item_type": item_type,
                "project_id": str(project_id) if project_id else None,
                "fingerprint": schedule.fingerprint,
                "override_count": len(overrides),
            },
        )
        return schedule

    def invalidate(self, project_id: UUID | None = None, item_type: str | None = None) -> None:
        """
        Drop cached schedules.

        ``invalidate()`` clears everything; ``invalidate(item_type=t)`` drops
        every project's entry for ``t`` (a default changed);
        ``invalidate(project_id=p, item_type=t)`` drops one pair.
        """
        with self._lock:
            if project_id is None and item_type is None:
                self._cache.clear()
                return
            stale = [
                key
                for key in self._cache
                if (item_type is None or key[1] == item_type)
                and (project_id is None or key[0] == project_id)
            ]
            for key in stale:
                del self._cache[key]

    @property
    def cached_keys(self) -> frozenset[_CacheKey]:
        with self._lock:
            return frozenset(self._cache)
