"""
第三方登录维护任务，供 crontab / k8s CronJob 调用

    python scripts/oauth_maintenance.py sweep
    python scripts/oauth_maintenance.py purge --days 30
    python scripts/oauth_maintenance.py refresh-expiring --limit 50
"""

import argparse
import asyncio
import sys

from internal.config import settings
from internal.core.crypto import init_secret_codec
from internal.core.logger import init_app_logger
from internal.infra.database import close_db, init_db
from internal.services.oauth import new_oauth_service
from internal.services.oauth_state import new_oauth_state_store
from pkg.logger import logger


async def sweep() -> int:
    return await new_oauth_state_store().sweep_expired()


async def purge(days: int) -> int:
    return await new_oauth_state_store().purge_older_than(days)


async def refresh_expiring(limit: int) -> int:
    report = await new_oauth_service().refresh_expiring_tokens(limit=limit)
    return len(report.failed)


async def run(args: argparse.Namespace) -> int:
    init_app_logger()
    init_secret_codec()
    init_db()
    try:
        match args.command:
            case "sweep":
                await sweep()
            case "purge":
                await purge(args.days)
            case "refresh-expiring":
                if await refresh_expiring(args.limit):
                    return 1
        return 0
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="OAuth maintenance jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sweep", help="Mark overdue states as expired")

    purge_parser = sub.add_parser("purge", help="Delete finished states older than N days")
    purge_parser.add_argument("--days", type=int, default=settings.OAUTH_STATE_RETENTION_DAYS)

    refresh_parser = sub.add_parser("refresh-expiring", help="Refresh tokens that are about to expire")
    refresh_parser.add_argument("--limit", type=int, default=settings.OAUTH_REFRESH_BATCH_SIZE)

    args = parser.parse_args()
    exit_code = asyncio.run(run(args))
    if exit_code:
        logger.warning(f"Maintenance job finished with failures, command={args.command}")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
