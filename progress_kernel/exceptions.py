"""
Typed Exception Hierarchy for the Progress Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Progress reporting feeds payroll forecasts, owner billing and schedule
claims. A silent zero is worse than a loud failure: "0% complete" must
always mean "nothing was done", never "something went wrong".

Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        registry.set_project_overrides(...)
    except Exception as e:
        if "sum to 100" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        registry.set_project_overrides(...)
    except SchemaInvalidError as e:
        api_response(code=e.code, total=str(e.weight_total))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProgressKernelError (base)
    |
    +-- TemplateError
    |   +-- SchemaInvalidError
    |   +-- TemplateNotFoundError
    |   +-- UnknownMilestoneError
    |   +-- TemplateConflictError
    |   +-- TemplatesAlreadyExistError
    |
    +-- ItemError
    |   +-- ItemNotFoundError
    |   +-- ItemRetiredError
    |   +-- DuplicateItemError
    |   +-- InvalidBudgetError
    |   +-- InvalidMilestoneValueError
    |   +-- DimensionValueNotFoundError
    |
    +-- IntegrityAlertError
    |   +-- InvariantViolationError
    |   +-- UntrackedProgressError
    |
    +-- EventError
    |   +-- EventNotFoundError
    |   +-- ImmutabilityViolationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ReportError
        +-- InvalidDimensionError
        +-- InvalidWindowError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                     | When Raised
-----------|--------------------------|------------------------------------------
Template   | SCHEMA_INVALID           | Resolved weights do not sum to 100
           | TEMPLATE_NOT_FOUND       | No default schedule for the item type
           | UNKNOWN_MILESTONE        | Override names a milestone the type lacks
           | TEMPLATE_CONFLICT        | Override rows changed since caller read them
           | TEMPLATES_ALREADY_EXIST  | Clone requested but project has overrides
-----------|--------------------------|------------------------------------------
Item       | ITEM_NOT_FOUND           | Item ID doesn't exist
           | ITEM_RETIRED             | Write against a retired item
           | DUPLICATE_ITEM           | Natural key already used in the project
           | INVALID_BUDGET           | Budgeted hours negative or missing
           | INVALID_MILESTONE_VALUE  | Value cannot be normalized
           | DIMENSION_VALUE_NOT_FOUND | Assignment to a value outside the project
-----------|--------------------------|------------------------------------------
Integrity  | INVARIANT_VIOLATION      | Category hours != earned hours
           | UNTRACKED_PROGRESS       | Cached progress with no event history
-----------|--------------------------|------------------------------------------
Event      | EVENT_NOT_FOUND          | Milestone event ID doesn't exist
           | IMMUTABILITY_VIOLATION   | UPDATE/DELETE of an append-only row
-----------|--------------------------|------------------------------------------
Concurrency| OPTIMISTIC_LOCK_CONFLICT | Concurrent write to the same item
-----------|--------------------------|------------------------------------------
Report     | INVALID_DIMENSION        | Unknown reporting dimension
           | INVALID_WINDOW           | Window end is not after window start

===============================================================================
"""

from decimal import Decimal


class ProgressKernelError(Exception):
    """
    Base exception for all progress kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PROGRESS_KERNEL_ERROR"


# Template-related exceptions


class TemplateError(ProgressKernelError):
    """Base exception for milestone template errors."""

    code: str = "TEMPLATE_ERROR"


class SchemaInvalidError(TemplateError):
    """Resolved milestone weights do not sum to 100 within tolerance."""

    code: str = "SCHEMA_INVALID"

    def __init__(
        self,
        item_type: str,
        weight_total: Decimal,
        project_id: str | None = None,
        detail: str | None = None,
    ):
        self.item_type = item_type
        self.weight_total = weight_total
        self.project_id = project_id
        self.detail = detail
        scope = f"project {project_id}" if project_id else "default"
        message = (
            f"Milestone schedule for {item_type} ({scope}) is invalid: "
            f"weights sum to {weight_total}, expected 100"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class TemplateNotFoundError(TemplateError):
    """No default milestone schedule exists for the item type."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, item_type: str):
        self.item_type = item_type
        super().__init__(f"No milestone template for item type: {item_type}")


class UnknownMilestoneError(TemplateError):
    """A milestone name has no matching entry in the item type's schedule."""

    code: str = "UNKNOWN_MILESTONE"

    def __init__(self, item_type: str, milestone_name: str):
        self.item_type = item_type
        self.milestone_name = milestone_name
        super().__init__(
            f"Milestone {milestone_name!r} is not part of the {item_type} template"
        )


class TemplateConflictError(TemplateError):
    """Override rows were modified after the caller last read them."""

    code: str = "TEMPLATE_CONFLICT"

    def __init__(self, project_id: str, item_type: str):
        self.project_id = project_id
        self.item_type = item_type
        super().__init__(
            f"Templates for {item_type} in project {project_id} were modified "
            "by another user. Refresh and try again."
        )


class TemplatesAlreadyExistError(TemplateError):
    """Project already has override rows; cloning defaults would clobber them."""

    code: str = "TEMPLATES_ALREADY_EXIST"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Templates already exist for project {project_id}")


# Item-related exceptions


class ItemError(ProgressKernelError):
    """Base exception for tracked item errors."""

    code: str = "ITEM_ERROR"


class ItemNotFoundError(ItemError):
    """Item with given ID was not found."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class ItemRetiredError(ItemError):
    """Write attempted against a retired item."""

    code: str = "ITEM_RETIRED"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} is retired")


class DuplicateItemError(ItemError):
    """The natural key is already used by another item in the project."""

    code: str = "DUPLICATE_ITEM"

    def __init__(self, project_id: str, identity_key: str):
        self.project_id = project_id
        self.identity_key = identity_key
        super().__init__(
            f"Item with key {identity_key} already exists in project {project_id}"
        )


class InvalidBudgetError(ItemError):
    """Budgeted hours are negative or missing."""

    code: str = "INVALID_BUDGET"

    def __init__(self, budgeted_hours: object):
        self.budgeted_hours = budgeted_hours
        super().__init__(
            f"Budgeted hours must be a non-negative number, got {budgeted_hours!r}"
        )


class InvalidMilestoneValueError(ItemError):
    """A milestone value cannot be normalized to the canonical scale."""

    code: str = "INVALID_MILESTONE_VALUE"

    def __init__(self, milestone_name: str, value: object, reason: str):
        self.milestone_name = milestone_name
        self.value = value
        self.reason = reason
        super().__init__(
            f"Invalid value {value!r} for milestone {milestone_name!r}: {reason}"
        )


class DimensionValueNotFoundError(ItemError):
    """Assignment names a dimension value that is not in the item's project."""

    code: str = "DIMENSION_VALUE_NOT_FOUND"

    def __init__(self, dimension: str, value_id: str):
        self.dimension = dimension
        self.value_id = value_id
        super().__init__(f"No {dimension} value {value_id} in this project")


# Data-integrity alerts


class IntegrityAlertError(ProgressKernelError):
    """Base exception for detected data-integrity problems."""

    code: str = "INTEGRITY_ALERT"


class InvariantViolationError(IntegrityAlertError):
    """Category earned hours do not reconcile to total earned hours."""

    code: str = "INVARIANT_VIOLATION"

    def __init__(
        self,
        invariant: str,
        expected: Decimal,
        actual: Decimal,
        item_id: str | None = None,
    ):
        self.invariant = invariant
        self.expected = expected
        self.actual = actual
        self.item_id = item_id
        subject = f" for item {item_id}" if item_id else ""
        super().__init__(
            f"Invariant {invariant} violated{subject}: "
            f"expected {expected}, got {actual}"
        )


class UntrackedProgressError(IntegrityAlertError):
    """Item has cached progress but no supporting event history."""

    code: str = "UNTRACKED_PROGRESS"

    def __init__(self, item_id: str, cached_percent: Decimal):
        self.item_id = item_id
        self.cached_percent = cached_percent
        super().__init__(
            f"Item {item_id} reports {cached_percent}% complete with no "
            "milestone events"
        )


# Event-related exceptions


class EventError(ProgressKernelError):
    """Base exception for milestone event errors."""

    code: str = "EVENT_ERROR"


class EventNotFoundError(EventError):
    """Milestone event with given ID was not found."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Milestone event not found: {event_id}")


class ImmutabilityViolationError(EventError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = f"{entity_type} {entity_id} is append-only"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Concurrency exceptions


class ConcurrencyError(ProgressKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Concurrent modification of the same item detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}; retry the write"
        )


# Reporting exceptions


class ReportError(ProgressKernelError):
    """Base exception for report request errors."""

    code: str = "REPORT_ERROR"


class InvalidDimensionError(ReportError):
    """Requested reporting dimension is not supported."""

    code: str = "INVALID_DIMENSION"

    def __init__(self, dimension: str, allowed: tuple[str, ...]):
        self.dimension = dimension
        self.allowed = allowed
        super().__init__(
            f"Invalid dimension: {dimension}. Must be one of {', '.join(allowed)}"
        )


class InvalidWindowError(ReportError):
    """Report window end is not after its start."""

    code: str = "INVALID_WINDOW"

    def __init__(self, start: object, end: object):
        self.start = start
        self.end = end
        super().__init__(f"Window end {end} must be after window start {start}")
