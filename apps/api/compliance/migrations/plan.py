"""The fixed maintenance plan run by ``compliance migrate``.

Data-shape fixes run before index reconciliation within each collection, and
each collection's steps run as one contiguous block: unique constraints are
only created once the values they cover are clean.
"""

from __future__ import annotations

from compliance.db.enums import MigrationStepKind
from compliance.db.indexes import INDEX_CATALOG
from compliance.db.models import APPLICATIONS, USERS
from compliance.migrations.runner import MigrationStep


class PlanError(ValueError):
    """Raised when a step sequence would break the rename → cleanup → index chain."""


def _data_steps() -> dict[str, list[MigrationStep]]:
    return {
        USERS: [
            MigrationStep.rename(USERS, "division", "district"),
            MigrationStep.unset(USERS, "division"),
            MigrationStep.cleanup(USERS, "email"),
            MigrationStep.cleanup(USERS, "cnic"),
        ],
        APPLICATIONS: [
            MigrationStep.rename(APPLICATIONS, "description.division", "description.district"),
            MigrationStep.unset(APPLICATIONS, "description.division"),
        ],
    }


def build_default_plan() -> list[MigrationStep]:
    data_steps = _data_steps()
    steps: list[MigrationStep] = []
    for collection, specs in INDEX_CATALOG.items():
        steps.extend(data_steps.get(collection, []))
        steps.extend(MigrationStep.reconcile_index(collection, spec) for spec in specs)
    return steps


def validate_plan(steps: list[MigrationStep]) -> None:
    """
    Reject plans that interleave collections or clean a field after its
    unique index has been reconciled.
    """
    finished: set[str] = set()
    current: str | None = None
    unique_fields_indexed: dict[str, set[str]] = {}

    for position, step in enumerate(steps, start=1):
        if step.collection != current:
            if step.collection in finished:
                raise PlanError(
                    f"Step {position}: steps for {step.collection!r} are not contiguous"
                )
            if current is not None:
                finished.add(current)
            current = step.collection

        indexed = unique_fields_indexed.setdefault(step.collection, set())
        if step.kind == MigrationStepKind.RECONCILE_INDEX and step.index and step.index.unique:
            indexed.update(step.index.fields)
        elif step.kind in (MigrationStepKind.CLEANUP, MigrationStepKind.RENAME, MigrationStepKind.UNSET):
            touched = {step.path, step.new_path} - {None}
            if touched & indexed:
                raise PlanError(
                    f"Step {position}: {step.kind.value} of {sorted(touched & indexed)} on "
                    f"{step.collection!r} runs after its unique index was reconciled"
                )
