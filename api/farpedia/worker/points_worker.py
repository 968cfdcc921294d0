"""Nightly user_points rebuild.

Sums the contributions ledger per fid and rewrites every user_points row,
repairing drift left by failed increments. Takes no arguments; meant for
cron:

    python -m farpedia.worker.points_worker

Exit code 0 on success, 1 when the database could not be read or written
or did not answer within DB_TIMEOUT_SECONDS.
"""

import asyncio
import sys
import time

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from farpedia.database import async_session_factory, engine
from farpedia.logging_config import configure_logging
from farpedia.services.points import RecomputeResult, recompute_user_points

log = structlog.get_logger()


async def run_recompute(session_factory: async_sessionmaker[AsyncSession]) -> RecomputeResult:
    start = time.monotonic()
    async with session_factory() as db:
        result = await recompute_user_points(db)
    log.info(
        "points_recompute_completed",
        updated=result.updated,
        inserted=result.inserted,
        reset=result.reset,
        duration_ms=round((time.monotonic() - start) * 1000, 2),
    )
    return result


async def _main() -> int:
    try:
        await run_recompute(async_session_factory)
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
        log.error("points_recompute_failed", error=str(exc))
        return 1
    finally:
        await engine.dispose()
    return 0


def main() -> int:
    configure_logging()
    return asyncio.run(_main())


if __name__ == "__main__":
    sys.exit(main())
