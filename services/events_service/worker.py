"""ARQ worker for meeting penalty reconciliation and attendance warnings.

Run with: arq services.events_service.worker.WorkerSettings
"""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def task_reconcile_meeting_penalties(ctx: dict):
    from services.events_service.tasks import reconcile_current_year_penalties

    logger.info("Running: reconcile_current_year_penalties")
    counts = await reconcile_current_year_penalties()
    logger.info("Finished: reconcile_current_year_penalties %s", counts)


async def task_send_attendance_warnings(ctx: dict):
    from services.events_service.tasks import send_current_year_warnings

    logger.info("Running: send_current_year_warnings")
    warned = await send_current_year_warnings()
    logger.info("Finished: send_current_year_warnings (%d warned)", warned)


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        task_reconcile_meeting_penalties,
        task_send_attendance_warnings,
    ]

    cron_jobs = [
        cron(
            task_reconcile_meeting_penalties,
            hour=get_settings().PENALTY_RECONCILE_HOUR,
            minute=0,
            run_at_startup=False,
        ),
        # Monday morning warnings
        cron(
            task_send_attendance_warnings,
            weekday=0,
            hour=8,
            minute=0,
            run_at_startup=False,
        ),
    ]
