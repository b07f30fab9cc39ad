#!/usr/bin/env python3
"""
Reconcile Stuck Generations

Sweeps processing generations for every user (or one user) and reconciles
them with their providers, so jobs nobody polls still reach a terminal
state and get refunded when they fail.

Usage:
    # Reconcile everything processing for more than 5 minutes
    python3 scripts/reconcile_stuck_generations.py

    # One user only
    python3 scripts/reconcile_stuck_generations.py --user-id <uuid>

    # List what would be checked
    python3 scripts/reconcile_stuck_generations.py --dry-run

    # Keep sweeping every 60 seconds
    python3 scripts/reconcile_stuck_generations.py --loop 60
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from uuid import UUID

from sqlalchemy import func, select
from structlog import get_logger

from timeless.db.models import Generation, utc_now
from timeless.db.session import close_engines, get_session
from timeless.observability import setup_logging
from timeless.services.reconciliation import ACTIVE_STATUSES, ReconciliationService

logger = get_logger("reconcile_stuck_generations")


async def find_stuck_users(
    older_than_minutes: int, user_id: UUID | None = None
) -> list[tuple[UUID, int]]:
    """Users with processing rows older than the threshold, with their row counts."""
    cutoff = utc_now() - timedelta(minutes=older_than_minutes)

    stmt = (
        select(Generation.user_id, func.count(Generation.id))
        .where(Generation.status.in_(ACTIVE_STATUSES), Generation.created_at < cutoff)
        .group_by(Generation.user_id)
    )
    if user_id is not None:
        stmt = stmt.where(Generation.user_id == user_id)

    async with get_session() as session:
        result = await session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]


async def sweep(older_than_minutes: int, user_id: UUID | None, dry_run: bool) -> int:
    """Reconcile every stuck user once. Returns the number of rows still processing."""
    users = await find_stuck_users(older_than_minutes, user_id)
    logger.info("stuck_users_found", users=len(users), rows=sum(count for _, count in users))

    if dry_run:
        for stuck_user, count in users:
            logger.info("stuck_user", user_id=str(stuck_user), processing=count)
        return sum(count for _, count in users)

    still_pending = 0
    for stuck_user, _ in users:
        async with get_session() as session:
            service = ReconciliationService(session)
            try:
                response = await service.check(stuck_user)
            except Exception as e:
                logger.error(
                    "user_reconcile_failed", user_id=str(stuck_user), error=str(e), exc_info=True
                )
                continue
            finally:
                await service.close()

        still_pending += response.pending_count
        logger.info(
            "user_reconciled",
            user_id=str(stuck_user),
            checked=len(response.results),
            pending=response.pending_count,
        )

    logger.info("sweep_complete", users=len(users), still_pending=still_pending)
    return still_pending


async def run(args: argparse.Namespace) -> None:
    try:
        while True:
            await sweep(args.older_than_minutes, args.user_id, args.dry_run)
            if not args.loop:
                return
            await asyncio.sleep(args.loop)
    finally:
        await close_engines()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile stuck generations")
    parser.add_argument("--user-id", type=UUID, default=None, help="Only this user")
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=5,
        help="Only rows processing for longer than this (default: 5)",
    )
    parser.add_argument("--dry-run", action="store_true", help="List, do not reconcile")
    parser.add_argument(
        "--loop",
        type=int,
        default=0,
        metavar="SECONDS",
        help="Repeat the sweep every SECONDS (default: run once)",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Main entry point."""
    setup_logging()
    args = parse_args()
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("reconcile_sweep_stopped")
        sys.exit(0)


if __name__ == "__main__":
    main()
