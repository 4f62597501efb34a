"""
Module: progress_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the CQRS-lite pattern, providing structured read access
    to items, schedules, events and rollups without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and the
    pure DTOs in domain/.  MUST NOT import from services/ or outer layers.
    Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT raw ORM
      model instances.
    - Session ownership: the caller owns the session and its transaction scope.

Failure modes:
    - Selectors return None or empty collections on absence of data; they
      never raise for "not found".
"""

from abc import ABC
from collections.abc import Iterable, Iterator, Sequence
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from progress_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
T = TypeVar("T")

# Keep IN (...) lists under SQLite's bound-parameter limit.
IN_CLAUSE_CHUNK = 500


def chunked(values: Iterable[T], size: int = IN_CLAUSE_CHUNK) -> Iterator[Sequence[T]]:
    """Yield successive lists of at most ``size`` values."""
    batch: list[T] = []
    for value in values:
        batch.append(value)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.

    Non-goals:
        - BaseSelector does NOT define any query methods; subclasses implement
          domain-specific queries (items, templates, events, rollups).
    """

    def __init__(self, session: Session):
        """
        Initialize the selector.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
