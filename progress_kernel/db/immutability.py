"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The milestone event log is the only historical truth about progress.  Every
cached percent, every rollup row and every delta report is derived from it.
If an event could be edited in place, a "the numbers don't match" incident
would become unrecoverable: there would be nothing left to re-derive from.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable          | Why
--------------------|-------------------------|----------------------------------
MilestoneEvent      | ALWAYS (from creation)  | Sole source of historical truth
TemplateChangeLog   | ALWAYS (from creation)  | Audit trail of weighting changes
Item                | Never deleted           | Items are retired, not removed

Corrections are new MilestoneEvent rows flagged ``is_correction``; the
original row stays untouched.

===============================================================================
USAGE
===============================================================================

Called automatically during application startup:

    from progress_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event

from progress_kernel.exceptions import ImmutabilityViolationError
from progress_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_milestone_event_immutability(mapper, connection, target):
    """Prevent any update to a MilestoneEvent."""
    _block(
        "MilestoneEvent",
        target,
        "UPDATE",
        "Milestone events are immutable; record a correction instead",
    )


def _check_milestone_event_delete(mapper, connection, target):
    """Prevent deletion of a MilestoneEvent."""
    _block("MilestoneEvent", target, "DELETE", "Milestone events cannot be deleted")


def _check_change_log_immutability(mapper, connection, target):
    _block(
        "TemplateChangeLog",
        target,
        "UPDATE",
        "Template change log entries are immutable",
    )


def _check_change_log_delete(mapper, connection, target):
    _block(
        "TemplateChangeLog",
        target,
        "DELETE",
        "Template change log entries cannot be deleted",
    )


def _check_item_delete(mapper, connection, target):
    """Items are retired, never deleted."""
    _block("Item", target, "DELETE", "Items cannot be deleted; retire them instead")


def _listeners():
    from progress_kernel.models.item import Item
    from progress_kernel.models.milestone_event import MilestoneEvent
    from progress_kernel.models.template import TemplateChangeLog

    return [
        (MilestoneEvent, "before_update", _check_milestone_event_immutability),
        (MilestoneEvent, "before_delete", _check_milestone_event_delete),
        (TemplateChangeLog, "before_update", _check_change_log_immutability),
        (TemplateChangeLog, "before_delete", _check_change_log_delete),
        (Item, "before_delete", _check_item_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
