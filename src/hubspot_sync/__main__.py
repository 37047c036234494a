"""
Command-line entry point: one incremental sweep of a tenant, then exit.

Usage:
    python -m hubspot_sync [--tenant-id ID] [--json-logs] [--log-level DEBUG]

Exit codes: 0 all accounts synced, 1 partial failure or tenant load
failure, 2 missing configuration.
"""

import argparse
import asyncio
import sys

from .clients.sink_client import ActionSink
from .config import get_settings
from .errors import FatalLoadError
from .logging import configure_logging, get_logger
from .repository import TenantRepository
from .worker import HubspotWorker

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='hubspot-sync',
        description='Incrementally sync HubSpot contacts, companies and meetings to the analytics sink.',
    )
    parser.add_argument('--tenant-id', help='Tenant to sync (defaults to the first tenant)')
    parser.add_argument('--json-logs', action='store_true', help='Emit JSON logs')
    parser.add_argument('--log-level', help='Override LOG_LEVEL')
    return parser.parse_args(argv)


async def run_sync(tenant_id: str | None = None) -> int:
    """Run one sweep with clients built from settings; returns the exit code."""
    settings = get_settings()
    repository = TenantRepository(settings.DATABASE_URL, persist=settings.PERSIST_ACCOUNTS)
    sink = ActionSink()

    await repository.connect()
    try:
        worker = HubspotWorker(repository, sink, batch_size=settings.ACTION_BATCH_SIZE)
        try:
            results = await worker.run(tenant_id)
        except FatalLoadError:
            return 1
        return 0 if all(result.success for result in results) else 1
    finally:
        await sink.close()
        await repository.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    configure_logging(
        json_output=args.json_logs or settings.LOG_JSON,
        log_level=args.log_level,
    )

    missing = settings.validate_required()
    if missing:
        logger.error('worker.config_missing', missing=missing)
        sys.exit(2)

    # One-shot batch job: always terminate once the tenant sweep is over
    sys.exit(asyncio.run(run_sync(args.tenant_id)))


if __name__ == '__main__':
    main()
