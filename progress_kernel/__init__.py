"""
Progress Kernel

An event-sourced, append-only milestone tracking core with:
- Per-item milestone schedules (type default + project override)
- Immutable milestone event log as the sole historical truth
- Cached per-item projections that are always rebuildable from the log
- Earned-hour rollups by area, system, test package and welder
"""

__version__ = "0.1.0"
