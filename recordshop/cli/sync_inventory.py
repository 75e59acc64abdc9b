# recordshop/cli/sync_inventory.py
import asyncio
import logging
import sys
from datetime import datetime

import click

from recordshop.core.config import get_settings
from recordshop.core.enums import SyncMode
from recordshop.core.exceptions import BaseServiceError, ReconciliationInProgressError
from recordshop.database import async_session
from recordshop.schemas.sync import ReconciliationReport
from recordshop.services.discogs.client import DiscogsClient
from recordshop.services.reconciler import CatalogReconciler

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    '--mode',
    type=click.Choice([m.value for m in SyncMode], case_sensitive=False),
    required=True,
    help='initial = destructive full replace, delta = reconcile in place',
)
@click.option('--yes', is_flag=True, help='Skip the confirmation prompt for an initial sync')
def sync_inventory(mode, yes):
    """Reconcile the local record mirror with the Discogs inventory"""
    from recordshop.core import logging_config  # noqa: F401 - configures logging on import

    mode = SyncMode(mode.lower())
    if mode == SyncMode.INITIAL and not yes:
        click.confirm(
            "Initial sync deletes every record without order history and reimports the feed. Continue?",
            abort=True,
        )

    start_time = datetime.now()
    logger.info(f"Starting {mode.value} sync at {start_time}")

    try:
        report = asyncio.run(run_sync(mode))
    except ReconciliationInProgressError as e:
        click.echo(f"Sync not started: {e}", err=True)
        sys.exit(2)
    except BaseServiceError as e:
        logger.error(f"Sync failed: {e}")
        click.echo(f"Sync failed: {e}", err=True)
        sys.exit(1)

    logger.info(f"Completed {mode.value} sync in {datetime.now() - start_time}")
    _print_report(report)
    if report.partial:
        click.echo("Warning: inventory feed was incomplete; deletions were skipped", err=True)


async def run_sync(mode: SyncMode) -> ReconciliationReport:
    """Run one reconciliation with a fresh session and Discogs client."""
    gateway = DiscogsClient.from_settings(get_settings())
    async with async_session() as session:
        reconciler = CatalogReconciler(session, gateway)
        return await reconciler.reconcile(mode, trigger="cli")


def _print_report(report: ReconciliationReport) -> None:
    click.echo(f"\n{report.mode.value.capitalize()} sync completed!")
    click.echo(f"Remote listings: {report.total_remote}")
    click.echo(f"Created: {report.created}")
    click.echo(f"Updated: {report.updated}")
    click.echo(f"Deleted: {report.deleted}")
    click.echo(f"Mapping errors: {report.mapping_errors}")
    click.echo(f"Skipped deletions (order history): {report.skipped_deletions}")
    click.echo(f"Skipped duplicates: {report.skipped_duplicates}")
    if report.relinked:
        click.echo(f"Relinked by release id: {report.relinked}")
    if report.update_failures:
        click.echo(f"Update failures: {report.update_failures}")


if __name__ == '__main__':
    sync_inventory()
