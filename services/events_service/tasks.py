"""
Background tasks for meeting penalties.

Handles:
- Nightly penalty reconciliation for the current year
- Attendance warnings for members below the threshold
"""

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.events_service.services.penalties import reconcile_meeting_penalties
from services.events_service.services.warnings import send_attendance_warnings

logger = get_logger(__name__)


async def reconcile_current_year_penalties() -> dict:
    """Reconcile penalty dues for the current year. Returns outcome counts."""
    year = utc_now().year
    async with AsyncSessionLocal() as db:
        report = await reconcile_meeting_penalties(db, year)
    return report.counts()


async def send_current_year_warnings() -> int:
    """Warn members below the attendance threshold for the current year.

    Runs without a connection registry, so notifications are stored but not
    pushed to open sockets.
    """
    year = utc_now().year
    async with AsyncSessionLocal() as db:
        return await send_attendance_warnings(db, year)
