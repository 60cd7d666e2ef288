"""Fail generation jobs a crashed worker left RUNNING (or lost from the queue)."""

import argparse
import asyncio
from datetime import timedelta

from app.api.deps import get_generation_provider
from app.core.config import get_settings
from app.db import close_db, close_redis, get_redis, get_session_factory, init_db, init_redis
from app.services.job_orchestrator import JobOrchestrator


async def main(older_than_seconds: int) -> None:
    await init_db()
    await init_redis()
    try:
        orchestrator = JobOrchestrator(get_session_factory(), get_generation_provider(), redis=get_redis())
        failed = await orchestrator.fail_stale_jobs(timedelta(seconds=older_than_seconds))
        print(f"Failed {len(failed)} stale job(s).")
        for job_id in failed:
            print(f"  {job_id}")
    finally:
        await close_redis()
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--older-than",
        type=int,
        default=get_settings().stale_job_after_seconds,
        help="Seconds without progress before a job counts as stale",
    )
    args = parser.parse_args()
    asyncio.run(main(args.older_than))
