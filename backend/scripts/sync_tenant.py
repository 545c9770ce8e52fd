"""
Manual tenant sync.

Usage:
    python scripts/sync_tenant.py <tenant_id> [<tenant_id> ...]
    python scripts/sync_tenant.py --all

Environment variables:
    DATABASE_URL: Database connection string
    ENCRYPTION_KEY: Key used to decrypt stored access tokens
"""

import argparse
import asyncio
import json
import logging
import sys

from shopsync.database.session import session_scope
from shopsync.jobs.scheduled_sync import sync_all_tenants

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync store data for one or more tenants")
    parser.add_argument("tenant_ids", nargs="*", help="Tenant ids to sync")
    parser.add_argument("--all", action="store_true", help="Sync every active tenant")
    args = parser.parse_args(argv)
    if args.all == bool(args.tenant_ids):
        parser.error("pass either tenant ids or --all")
    return args


async def run(args: argparse.Namespace) -> int:
    with session_scope() as session:
        report = await sync_all_tenants(
            session, tenant_ids=None if args.all else args.tenant_ids
        )

    for result in report.results:
        if result.success:
            print(json.dumps(result.summary))
        else:
            print(f"{result.tenant_id}: FAILED ({result.error_type}) {result.error_message}",
                  file=sys.stderr)
    return 1 if report.failed else 0


def main(argv=None):
    args = parse_args(argv)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
