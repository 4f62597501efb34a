"""
progress_services.orchestrator -- Central DI container for progress services.

Responsibility:
    Creates every service exactly once and wires them together.  No
    service creates other services internally; the orchestrator is the
    single point of dependency injection.

Architecture position:
    Services -- top of the service layer.

Invariants enforced:
    - Single-instance lifecycle: one TemplateResolver per orchestrator, so
      every service sees the same schedule cache and every template write
      invalidates it for all of them.
    - All services share the same Session, Clock and EngineSettings.

Usage:
    from progress_services.orchestrator import ProgressOrchestrator

    orchestrator = ProgressOrchestrator(session, settings=template_set.settings)
    orchestrator.recorder.record_milestone(item_id, "Receive", True, actor_id)
    session.commit()
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from progress_config.schema import EngineSettings
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.services.item_service import ItemService
from progress_kernel.services.template_registry import TemplateRegistry
from progress_kernel.services.template_resolver import TemplateResolver
from progress_services.item_lifecycle import ItemLifecycleService
from progress_services.milestone_recorder import MilestoneRecorder
from progress_services.projection_service import ProjectionService
from progress_services.rollup_service import RollupService
from progress_services.template_admin import TemplateAdminService


class ProgressOrchestrator:
    """Central factory for progress services.

    Contract:
        Receives a SQLAlchemy Session and optional EngineSettings / Clock.
        Constructs every service exactly once, in dependency order, and
        exposes them as public attributes.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
        - Does NOT own the Session lifecycle (no commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()

        # Foundational (no service dependencies)
        self.resolver = TemplateResolver(session, tolerance=self.settings.weight_tolerance)
        self.registry = TemplateRegistry(
            session,
            resolver=self.resolver,
            clock=self.clock,
            tolerance=self.settings.weight_tolerance,
        )
        self.items = ItemService(session, resolver=self.resolver, clock=self.clock)

        # Calculation-backed services
        self.projection = ProjectionService(
            session, self.resolver, self.items, settings=self.settings
        )
        self.rollups = RollupService(
            session, self.resolver, clock=self.clock, settings=self.settings
        )
        self.recorder = MilestoneRecorder(
            session,
            self.resolver,
            self.items,
            self.projection,
            rollups=self.rollups,
            clock=self.clock,
            settings=self.settings,
        )

        # Front doors
        self.templates = TemplateAdminService(
            session, self.registry, self.projection, self.rollups
        )
        self.lifecycle = ItemLifecycleService(
            session,
            self.items,
            self.recorder,
            self.projection,
            self.rollups,
            settings=self.settings,
        )
