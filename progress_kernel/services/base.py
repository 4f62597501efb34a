"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Every write service in ``progress_kernel/services/`` and
    ``progress_services/`` extends this class.

Invariants enforced:
    ATOMIC_RECORDING -- services flush within the caller's transaction and
        never commit or roll back themselves.  The caller
        (``session_scope()``, the reporting facade, or a test harness) owns
        commit/rollback, so an event append and its projection update land
        together or not at all.

Failure modes:
    - If a subclass calls ``session.commit()``, a milestone event could be
      committed without the cached projection it implies.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from progress_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``progress_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
