"""Batch migration of drone imagery into tile pyramids."""

from .importer import import_tile_directory
from .orchestrator import (
    ImageOutcome,
    MigrationOrchestrator,
    MigrationSummary,
    OutcomeStatus,
    is_stale_build,
)
from .sweep import orphan_reason, sweep_orphaned_pyramids

__all__ = [
    "ImageOutcome",
    "MigrationOrchestrator",
    "MigrationSummary",
    "OutcomeStatus",
    "import_tile_directory",
    "is_stale_build",
    "orphan_reason",
    "sweep_orphaned_pyramids",
]
