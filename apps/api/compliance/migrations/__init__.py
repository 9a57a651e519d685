"""Schema evolution and index reconciliation for the document store."""

from compliance.migrations.indexes import ReconcileResult, reconcile
from compliance.migrations.runner import (
    MigrationError,
    MigrationReport,
    MigrationRunner,
    MigrationStep,
    MigrationStepError,
    run_migrations,
)
from compliance.migrations.schema import UpdateCounts, apply_cleanup, apply_rename, apply_unset

__all__ = [
    "MigrationError",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStep",
    "MigrationStepError",
    "ReconcileResult",
    "UpdateCounts",
    "apply_cleanup",
    "apply_rename",
    "apply_unset",
    "reconcile",
    "run_migrations",
]
