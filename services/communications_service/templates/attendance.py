"""
Meeting attendance email templates.
"""

from html import escape

from libs.common.config import get_settings
from libs.common.emails.core import send_email
from services.communications_service.templates.base import (
    GRADIENT_AMBER,
    cta_button,
    detail_box,
    info_box,
    wrap_html,
)


async def send_attendance_warning_email(
    to_email: str,
    member_name: str,
    year: int,
    total_meetings: int,
    attended_meetings: int,
    attendance_percentage: int,
    remaining_meetings: int,
) -> bool:
    """
    Warn a member that their meeting attendance for the year is below the threshold.
    """
    settings = get_settings()
    organization = settings.ORGANIZATION_NAME
    missed = total_meetings - attended_meetings
    threshold = round(settings.MEETING_ATTENDANCE_THRESHOLD * 100)
    subject = f"Meeting Attendance Warning - {organization}"

    body = (
        f"Hi {member_name},\n\n"
        f"Your meeting attendance for {year} is {attendance_percentage}%, "
        f"below the required {threshold}%.\n\n"
        f"Meetings held: {total_meetings}\n"
        f"Attended: {attended_meetings}\n"
        f"Missed: {missed}\n"
        f"Meetings remaining this year: {remaining_meetings}\n\n"
        "Members who finish the year below the threshold are charged a penalty "
        f"due by March 31, {year + 1}.\n\n"
        f"View your attendance: {settings.FRONTEND_URL}\n\n"
        f"The {organization} Secretariat"
    )

    body_html = (
        f"<p>Hi {escape(member_name)},</p>"
        f"<p>Your meeting attendance for {year} is <strong>{attendance_percentage}%</strong>, "
        f"below the required {threshold}%.</p>"
        + detail_box(
            {
                "Meetings held": str(total_meetings),
                "Attended": str(attended_meetings),
                "Missed": str(missed),
                "Remaining this year": str(remaining_meetings),
            },
            accent_color="#f59e0b",
        )
        + info_box(
            "Members who finish the year below the threshold are charged a penalty "
            f"due by March 31, {year + 1}.",
            title="Attend the remaining meetings to avoid a penalty",
        )
        + cta_button("View my attendance", settings.FRONTEND_URL, color="#d97706")
    )

    html_body = wrap_html(
        title="Meeting Attendance Warning",
        subtitle=f"{year} attendance: {attendance_percentage}%",
        body_html=body_html,
        header_gradient=GRADIENT_AMBER,
        preheader=f"You have attended {attended_meetings} of {total_meetings} meetings",
    )

    return await send_email(to_email, subject, body, html_body)
