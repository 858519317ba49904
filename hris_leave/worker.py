"""Worker process for scheduled leave-quota jobs.

Runs an asyncio loop once daily: year rollover on Jan 1, monthly accrual
refresh on the 1st of each month, rollover expiration every day.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from hris_leave.config import get_settings
from hris_leave.db import get_session_factory
from hris_leave.services.employee import get_employee_service

logger = logging.getLogger(__name__)


async def run_daily_jobs(today: date) -> None:
    """Run every job due on ``today``. A failing job does not stop the others."""
    from hris_leave.services.rollover import (
        refresh_monthly_accruals,
        run_rollover_expiration,
        run_year_rollover,
    )

    session_factory = get_session_factory()
    employees = get_employee_service()

    # Year rollover (only fires on Jan 1)
    if today.month == 1 and today.day == 1:
        try:
            async with session_factory() as session:
                result = await run_year_rollover(session, employees, today.year, today)
            logger.info(
                "Rollover run for %s: created=%d skipped=%d errors=%d",
                today.year,
                result.updated,
                result.skipped,
                result.errors,
            )
        except Exception:
            logger.exception("Rollover run failed for %s", today)

    # Monthly accrual refresh (1st of each month)
    if today.day == 1:
        try:
            async with session_factory() as session:
                acc_result = await refresh_monthly_accruals(session, employees, today)
            logger.info(
                "Accrual refresh for %s: processed=%d updated=%d skipped=%d errors=%d",
                today,
                acc_result.processed,
                acc_result.updated,
                acc_result.skipped,
                acc_result.errors,
            )
        except Exception:
            logger.exception("Accrual refresh failed for %s", today)

    # Rollover expiration
    try:
        async with session_factory() as session:
            exp_result = await run_rollover_expiration(session, today)
        if exp_result.processed > 0:
            logger.info(
                "Expiration run for %s: expired=%d skipped=%d errors=%d",
                today,
                exp_result.updated,
                exp_result.skipped,
                exp_result.errors,
            )
    except Exception:
        logger.exception("Expiration run failed for %s", today)


async def run_worker_loop() -> None:
    """Main worker loop."""
    interval = get_settings().worker_interval_seconds
    logger.info("Leave quota worker started")

    while True:
        await run_daily_jobs(date.today())
        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_worker_loop())


if __name__ == "__main__":
    main()
