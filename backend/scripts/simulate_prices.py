"""Run one simulated market day; invoked by the external scheduler."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date

import numpy as np

from app.core.logging import setup_logging
from app.db.session import session_scope
from app.services.market import run_simulation_tick


async def _run(as_of: date | None, seed: int | None) -> None:
    rng = np.random.default_rng(seed) if seed is not None else None
    async with session_scope() as session:
        batch = await run_simulation_tick(session, rng=rng, as_of=as_of)
    print(
        f"Simulated {batch.as_of.isoformat()}: {len(batch.updates)} updated, "
        f"{batch.skipped} skipped, {len(batch.failures)} failed"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Advance every active stock by one simulated day")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="Snapshot day (YYYY-MM-DD)")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.as_of, args.seed))


if __name__ == "__main__":
    main()
