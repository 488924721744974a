#!/usr/bin/env python3
"""
Reconcile Pending Purchases

Sweeps token purchases still pending at the gateway and reconciles them
the same way the purchase page's polling does. Catches payments whose
buyer closed the page before approval reached the service.

Run once (cron) or continuously with --loop-seconds.
"""

import argparse
import asyncio
import os
import sys
from datetime import timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pixtokens.api.dependencies import close_clients, get_payment_gateway
from pixtokens.db.session import close_engines, get_write_session
from pixtokens.observability import get_logger, setup_logging
from pixtokens.services.purchase_store import PurchaseStore
from pixtokens.services.purchases import PurchaseReconciliationService

logger = get_logger(__name__)


async def sweep(limit: int, older_than: timedelta) -> int:
    """Reconcile one batch. Returns how many purchases settled."""
    gateway = get_payment_gateway()
    async with get_write_session() as session:
        service = PurchaseReconciliationService(store=PurchaseStore(session), gateway=gateway)
        results = await service.reconcile_pending(limit=limit, older_than=older_than)

    settled = [r for r in results if r.status.is_terminal]
    for result in settled:
        logger.info(
            "pending_purchase_settled",
            purchase_id=str(result.purchase_id),
            status=result.status.value,
            new_balance=result.new_balance,
        )
    return len(settled)


async def run(limit: int, older_than: timedelta, loop_seconds: int | None) -> None:
    try:
        while True:
            try:
                settled = await sweep(limit, older_than)
                logger.info("reconcile_sweep_complete", settled=settled)
            except Exception as e:
                if loop_seconds is None:
                    raise
                logger.error("reconcile_sweep_error", error=str(e), exc_info=True)

            if loop_seconds is None:
                return
            await asyncio.sleep(loop_seconds)
    finally:
        await close_clients()
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Reconcile pending Pix token purchases with Mercado Pago",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One sweep (for cron jobs)
  python3 reconcile_pending.py

  # Sweep every 2 minutes, purchases older than 5 minutes
  python3 reconcile_pending.py --loop-seconds 120 --older-than-minutes 5
        """,
    )
    parser.add_argument("--limit", type=int, default=100, help="Max purchases per sweep")
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=2,
        help="Only sweep purchases created at least this long ago (default: 2)",
    )
    parser.add_argument(
        "--loop-seconds", type=int, help="Keep sweeping at this interval instead of exiting"
    )

    args = parser.parse_args()

    if args.limit <= 0:
        parser.error("--limit must be positive")

    setup_logging()

    try:
        asyncio.run(
            run(args.limit, timedelta(minutes=args.older_than_minutes), args.loop_seconds)
        )
    except KeyboardInterrupt:
        logger.info("reconcile_pending_stopped")
        sys.exit(0)


if __name__ == "__main__":
    main()
