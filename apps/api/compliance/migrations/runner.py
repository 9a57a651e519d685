"""Ordered execution of schema and index maintenance steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from pymongo.errors import PyMongoError

from compliance.core.cache import EphemeralCache
from compliance.core.config import Settings, settings
from compliance.core.structured_logging import build_log_context
from compliance.db.enums import MigrationStepKind
from compliance.db.indexes import IndexSpec
from compliance.db.mongo import create_client, get_database
from compliance.migrations import indexes as index_reconciler
from compliance.migrations import schema as schema_migrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationStep:
    """
    One declarative step: which collection, what kind, and its parameters.

    ``invalidates`` names cache keys cleared when the step modifies documents.
    It only reaches a cache handed to ``MigrationRunner`` in the same process;
    ``compliance migrate`` runs out of process with no cache, so the API's
    cached reference data expires on its own TTL after a CLI migration.
    """

    collection: str
    kind: MigrationStepKind
    path: str | None = None
    new_path: str | None = None
    index: IndexSpec | None = None
    invalidates: tuple[str, ...] = ()

    @classmethod
    def rename(cls, collection: str, old_path: str, new_path: str, *, invalidates: tuple[str, ...] = ()):
        return cls(collection, MigrationStepKind.RENAME, path=old_path, new_path=new_path, invalidates=invalidates)

    @classmethod
    def unset(cls, collection: str, path: str, *, invalidates: tuple[str, ...] = ()):
        return cls(collection, MigrationStepKind.UNSET, path=path, invalidates=invalidates)

    @classmethod
    def cleanup(cls, collection: str, path: str, *, invalidates: tuple[str, ...] = ()):
        return cls(collection, MigrationStepKind.CLEANUP, path=path, invalidates=invalidates)

    @classmethod
    def reconcile_index(cls, collection: str, spec: IndexSpec):
        return cls(collection, MigrationStepKind.RECONCILE_INDEX, index=spec)

    @property
    def target(self) -> str:
        if self.kind == MigrationStepKind.RENAME:
            return f"{self.path}->{self.new_path}"
        if self.kind == MigrationStepKind.RECONCILE_INDEX and self.index is not None:
            return self.index.name
        return self.path or ""

    def describe(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "collection": self.collection,
            "kind": self.kind.value,
            "target": self.target,
        }
        if self.index is not None:
            data["index"] = self.index.describe()
        return data


@dataclass(frozen=True)
class StepResult:
    collection: str
    kind: MigrationStepKind
    target: str
    matched: int | None = None
    modified: int | None = None
    rebuilt: bool | None = None
    created: bool | None = None

    def as_dict(self) -> dict[str, Any]:
        if self.kind == MigrationStepKind.RECONCILE_INDEX:
            return {"rebuilt": self.rebuilt, "created": self.created}
        return {"matched": self.matched, "modified": self.modified}


@dataclass
class MigrationReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    results: list[StepResult] = field(default_factory=list)

    def record(self, result: StepResult) -> None:
        self.results.append(result)

    @property
    def total_modified(self) -> int:
        return sum(r.modified or 0 for r in self.results)

    @property
    def indexes_rebuilt(self) -> int:
        return sum(1 for r in self.results if r.rebuilt)

    def as_dict(self) -> dict[str, Any]:
        """Summary grouped as collection -> "<kind> <target>" -> counts/flags."""
        collections: dict[str, dict[str, Any]] = {}
        for result in self.results:
            entries = collections.setdefault(result.collection, {})
            entries[f"{result.kind.value} {result.target}"] = result.as_dict()
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "steps_completed": len(self.results),
            "collections": collections,
        }


class MigrationError(RuntimeError):
    """Raised when a migration run cannot complete."""


class MigrationStepError(MigrationError):
    """A step failed; carries the step identity and the report up to the failure."""

    def __init__(self, step: MigrationStep, cause: BaseException, report: MigrationReport):
        self.step = step
        self.cause = cause
        self.report = report
        super().__init__(
            f"Migration step {step.kind.value} {step.target!r} on collection "
            f"{step.collection!r} failed: {cause}"
        )


class MigrationRunner:
    """
    Execute steps strictly in the given order against one database handle.

    Each step's store operation is awaited before the next one starts. The
    first failure aborts the run; completed steps are not rolled back, since
    every step is idempotent and a re-run of the whole sequence converges.
    """

    def __init__(self, db, cache: EphemeralCache | None = None) -> None:
        self.db = db
        self.cache = cache

    async def run(self, steps: Iterable[MigrationStep]) -> MigrationReport:
        report = MigrationReport()
        for step in steps:
            context = build_log_context(
                collection=step.collection,
                step=step.kind.value,
                index=step.index.name if step.index else None,
            )
            try:
                result = await self._execute(step)
            except Exception as exc:
                logger.error(
                    "Migration step %s %s on %s failed: %s",
                    step.kind.value,
                    step.target,
                    step.collection,
                    exc,
                    extra=context,
                )
                report.finished_at = datetime.now(timezone.utc)
                raise MigrationStepError(step, exc, report) from exc

            report.record(result)
            logger.info(
                "Migration step %s %s on %s: %s",
                step.kind.value,
                step.target,
                step.collection,
                result.as_dict(),
                extra=context,
            )
            self._invalidate(step, result)

        report.finished_at = datetime.now(timezone.utc)
        return report

    async def _execute(self, step: MigrationStep) -> StepResult:
        collection = self.db[step.collection]

        if step.kind == MigrationStepKind.RECONCILE_INDEX:
            if step.index is None:
                raise ValueError("reconcile_index step requires an index spec")
            outcome = await index_reconciler.reconcile(collection, step.index)
            return StepResult(
                step.collection,
                step.kind,
                step.target,
                rebuilt=outcome.rebuilt,
                created=outcome.created,
            )

        if not step.path:
            raise ValueError(f"{step.kind.value} step requires a field path")
        if step.kind == MigrationStepKind.RENAME:
            if not step.new_path:
                raise ValueError("rename step requires a target path")
            counts = await schema_migrator.apply_rename(collection, step.path, step.new_path)
        elif step.kind == MigrationStepKind.UNSET:
            counts = await schema_migrator.apply_unset(collection, step.path)
        elif step.kind == MigrationStepKind.CLEANUP:
            counts = await schema_migrator.apply_cleanup(collection, step.path)
        else:
            raise ValueError(f"Unknown migration step kind: {step.kind}")

        return StepResult(
            step.collection,
            step.kind,
            step.target,
            matched=counts.matched,
            modified=counts.modified,
        )

    def _invalidate(self, step: MigrationStep, result: StepResult) -> None:
        if self.cache is None or not step.invalidates or not result.modified:
            return
        for key in step.invalidates:
            self.cache.clear(key)
            logger.info("Invalidated cache key %s after %s", key, step.target)


async def run_migrations(
    steps: Iterable[MigrationStep],
    config: Settings = settings,
    cache: EphemeralCache | None = None,
) -> MigrationReport:
    """
    Open one client for the whole run, execute ``steps`` and close the client.

    Connection problems surface as MigrationError before any step runs;
    step failures surface as MigrationStepError. The client is closed on
    both paths.
    """
    client = create_client(config)
    try:
        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            raise MigrationError(f"Could not connect to the document store: {exc}") from exc
        db = get_database(client, config)
        logger.info("Running migrations against database %s", db.name)
        return await MigrationRunner(db, cache=cache).run(steps)
    finally:
        await client.close()
