"""CLI tools for compliance store maintenance."""

import json
import sys
from datetime import datetime, timezone

import anyio
import click
from pymongo.errors import PyMongoError

from compliance.core.config import settings
from compliance.core.structured_logging import configure_logging
from compliance.db.indexes import INDEX_CATALOG
from compliance.db.mongo import create_client, get_database
from compliance.migrations import MigrationError, MigrationStepError, run_migrations
from compliance.migrations.indexes import describe_drift
from compliance.migrations.plan import PlanError, build_default_plan, validate_plan
from compliance.services.application_service import advance_due_hearings, notify_hearings_today


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run")
def cli(log_level: str | None):
    """Compliance CLI tools."""
    configure_logging(log_level or settings.LOG_LEVEL)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Print the plan without touching the store")
def migrate(dry_run: bool):
    """
    Apply field renames, null/empty cleanups and index reconciliation.

    Every step is idempotent; after a failure, fix the cause and re-run the
    whole command.

    Example:
        compliance migrate --dry-run
    """
    steps = build_default_plan()
    try:
        validate_plan(steps)
    except PlanError as e:
        click.echo(f"❌ Invalid plan: {e}", err=True)
        sys.exit(1)

    if dry_run:
        click.echo(json.dumps({"dry_run": True, "steps": [s.describe() for s in steps]}, indent=2))
        return

    try:
        report = anyio.run(run_migrations, steps)
    except MigrationStepError as e:
        click.echo(json.dumps(e.report.as_dict(), indent=2))
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    except MigrationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(report.as_dict(), indent=2))
    click.echo(
        f"✓ {len(report.results)} step(s) applied, {report.total_modified} document(s) modified, "
        f"{report.indexes_rebuilt} index(es) rebuilt",
        err=True,
    )


async def _with_store(job):
    client = create_client(settings)
    try:
        return await job(get_database(client, settings))
    finally:
        await client.close()


def _run_store_job(job):
    """Run ``job(db)`` against a fresh client; store errors exit 1 like ``migrate``."""
    try:
        return anyio.run(_with_store, job)
    except PyMongoError as e:
        click.echo(f"❌ Store error: {e}", err=True)
        sys.exit(1)


@cli.command("advance-hearings")
def advance_hearings():
    """Move applications whose hearing date has arrived to under_hearing."""
    advanced = _run_store_job(lambda db: advance_due_hearings(db, datetime.now(timezone.utc)))
    if advanced:
        click.echo(f"✓ Advanced {len(advanced)} application(s) to under_hearing")
        for application_id in advanced:
            click.echo(f"  {application_id}")
    else:
        click.echo("✓ No hearings due")


@cli.command("notify-hearings-today")
def notify_hearings():
    """
    Remind officers and registrars of hearings scheduled for today.

    Meant to run on a schedule (e.g. hourly); repeat runs on the same day
    do not send duplicate reminders.
    """
    created = _run_store_job(lambda db: notify_hearings_today(db, datetime.now(timezone.utc)))
    click.echo(f"✓ Sent {created} hearing reminder(s)")


async def _collect_indexes(db) -> dict[str, dict]:
    catalog: dict[str, dict] = {}
    for collection, specs in INDEX_CATALOG.items():
        live = await db[collection].index_information()
        catalog[collection] = {
            spec.name: (
                ["missing"] if spec.name not in live else describe_drift(live[spec.name], spec)
            )
            for spec in specs
        }
    return catalog


@cli.command("show-indexes")
def show_indexes():
    """Compare live indexes with the catalog (no changes are made)."""
    catalog = _run_store_job(_collect_indexes)
    drifted = 0
    for collection, indexes in catalog.items():
        click.echo(f"{collection}:")
        for name, drift in indexes.items():
            if drift:
                drifted += 1
                click.echo(f"  ❌ {name} ({', '.join(drift)})")
            else:
                click.echo(f"  ✓ {name}")
    if drifted:
        click.echo(f"→ {drifted} index(es) need reconciliation; run `compliance migrate`")


if __name__ == "__main__":
    cli()
