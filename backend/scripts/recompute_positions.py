"""Rebuild cached positions from the transaction log."""

from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy import select

from app.core.logging import setup_logging
from app.db.session import session_scope
from app.models import Portfolio
from app.services.portfolio import reconcile_user_positions
from papertrade.cost_basis import InvalidTransactionSequence

logger = logging.getLogger(__name__)


async def _run(user_ids: list[str]) -> None:
    async with session_scope() as session:
        if not user_ids:
            result = await session.execute(select(Portfolio.user_id).order_by(Portfolio.user_id))
            user_ids = list(result.scalars().all())
        for user_id in user_ids:
            try:
                drift = await reconcile_user_positions(session, user_id)
            except InvalidTransactionSequence:
                await session.rollback()
                logger.exception("Skipping %s: transaction log is inconsistent", user_id)
                continue
            print(f"{user_id}: {len(drift)} position(s) corrected")


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile cached positions with replayed transactions")
    parser.add_argument("--user", action="append", default=[], help="Limit to these user ids")
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.user))


if __name__ == "__main__":
    main()
