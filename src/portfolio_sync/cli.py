"""Command line entry points for operating the sync engine without the API server.

Usage:
  portfolio-sync-keygen
  portfolio-sync-cron ibkr
  portfolio-sync-cron binance --cost-basis
  portfolio-sync-cron --user 42 binance
  portfolio-sync-cron --history --user 42 ibkr
"""
import argparse
import asyncio
import json
import sys

from portfolio_sync.brokers.core import SyncError
from portfolio_sync.config import get_settings
from portfolio_sync.container import Container, init_container
from portfolio_sync.db.sessions import init_db
from portfolio_sync.main import configure_logging
from portfolio_sync.schemas import SyncHistoryOut
from portfolio_sync.security import generate_key


def print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def keygen() -> int:
    """Print a fresh ENCRYPTION_KEY value."""
    print(generate_key())
    return 0


async def cmd_sync_all(container: Container, args: argparse.Namespace) -> int:
    result = await container.sync_service().sync_all(args.broker)
    print_json(result.model_dump(mode="json"))
    return 0 if result.errors == 0 else 1


async def cmd_sync_user(container: Container, args: argparse.Namespace) -> int:
    try:
        summary = await container.sync_service().sync_user(args.broker, args.user)
    except SyncError as exc:
        print(f"Sync failed: {exc}", file=sys.stderr)
        return 1
    print_json(summary.model_dump(mode="json"))
    return 0


async def cmd_history(container: Container, args: argparse.Namespace) -> int:
    entries = container.sync_service().history(args.broker, args.user, limit=args.limit)
    print_json([SyncHistoryOut.model_validate(e).model_dump(mode="json") for e in entries])
    return 0


async def _run(handler, args: argparse.Namespace) -> int:
    container = init_container()
    init_db(container.db_engine())
    try:
        return await handler(container, args)
    finally:
        for client in container.broker_clients().values():
            await client.close()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run broker syncs from the command line.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("broker", choices=["ibkr", "binance"], help="Broker to sync")
    parser.add_argument(
        "--user",
        default=None,
        help="Sync only this user on demand (default: every configured user)",
    )
    parser.add_argument(
        "--cost-basis",
        action="store_true",
        help="Fetch trade history during the batch (overrides SCHEDULED_COST_BASIS)",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="Print the user's recent sync history instead of syncing (requires --user)",
    )
    parser.add_argument("--limit", type=int, default=20, help="History entries (default: 20)")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)
    if args.cost_basis:
        settings.scheduled_cost_basis = True

    if args.history:
        if args.user is None:
            parser.error("--history requires --user")
        handler = cmd_history
    elif args.user is not None:
        handler = cmd_sync_user
    else:
        handler = cmd_sync_all

    try:
        return asyncio.run(_run(handler, args))
    except SyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run_keygen() -> None:
    sys.exit(keygen())


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
