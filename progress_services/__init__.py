"""
progress_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure calculation engines
    (progress_engines/) with database sessions and the kernel services.
    This is the only layer that both holds a session and calls the
    engines.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        progress_services/ -> progress_engines/  (allowed)
        progress_services/ -> progress_kernel/   (allowed)
        progress_services/ -> progress_config/   (allowed)
        progress_engines/  -> progress_services/ (FORBIDDEN)
        progress_kernel/   -> progress_services/ (FORBIDDEN)

Invariants enforced:
    - DI transparency: all service wiring is centralised in
      ProgressOrchestrator; no service self-constructs its dependencies.
"""

from progress_services.export import export_delta_to_excel, export_rollup_to_excel
from progress_services.item_lifecycle import ItemLifecycleService
from progress_services.milestone_recorder import MilestoneRecorder
from progress_services.orchestrator import ProgressOrchestrator
from progress_services.projection_service import ProjectionService
from progress_services.reporting import ProgressReportingService
from progress_services.rollup_service import RollupService
from progress_services.template_admin import TemplateAdminService, TemplateEditResult

__all__ = [
    "ItemLifecycleService",
    "MilestoneRecorder",
    "ProgressOrchestrator",
    "ProgressReportingService",
    "ProjectionService",
    "RollupService",
    "TemplateAdminService",
    "TemplateEditResult",
    "export_delta_to_excel",
    "export_rollup_to_excel",
]
