"""
Shared branded email layout.

Usage:
    from services.communications_service.templates.base import wrap_html, detail_box

    html = wrap_html(
        title="Meeting Attendance Warning",
        body_html="<p>Hi Ada, ...</p>" + detail_box({...}),
        header_gradient=GRADIENT_AMBER,
    )
"""

from html import escape

from libs.common.config import get_settings

GRADIENT_CYAN = "linear-gradient(135deg, #0891b2 0%, #0284c7 100%)"
GRADIENT_AMBER = "linear-gradient(135deg, #f59e0b 0%, #d97706 100%)"


def wrap_html(
    title: str,
    body_html: str,
    subtitle: str = "",
    header_gradient: str = GRADIENT_CYAN,
    preheader: str = "",
) -> str:
    """Wrap inner content in the branded email layout.

    Args:
        title: Bold heading shown in the coloured header banner.
        body_html: The main email content (already-formatted HTML).
        subtitle: Smaller text below the title in the header.
        header_gradient: CSS gradient for the header background.
        preheader: Hidden preview text shown in inbox list view.
    """
    organization = escape(get_settings().ORGANIZATION_NAME)
    subtitle_html = (
        f'<p style="margin: 8px 0 0 0; opacity: 0.9; font-size: 15px;">{subtitle}</p>'
        if subtitle
        else ""
    )
    preheader_html = (
        f'<span style="display:none;max-height:0;overflow:hidden;">{preheader}</span>'
        if preheader
        else ""
    )

    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{title}</title>
</head>
<body style="margin: 0; padding: 0; background: #f8fafc; font-family: Arial, sans-serif; color: #1e293b;">
    {preheader_html}
    <div style="max-width: 600px; margin: 0 auto; padding: 24px 12px;">
        <div style="background: {header_gradient}; color: #ffffff; padding: 28px 24px; border-radius: 12px 12px 0 0;">
            <p style="margin: 0 0 8px 0; font-size: 13px; letter-spacing: 1px; text-transform: uppercase;">{organization}</p>
            <h1 style="margin: 0; font-size: 24px;">{title}</h1>
            {subtitle_html}
        </div>
        <div style="background: #ffffff; padding: 28px 24px; border-radius: 0 0 12px 12px; line-height: 1.6;">
            {body_html}
        </div>
        <p style="text-align: center; font-size: 12px; color: #94a3b8; margin-top: 16px;">
            You are receiving this email as a member of {organization}.
        </p>
    </div>
</body>
</html>"""


def detail_box(
    items: dict[str, str],
    accent_color: str = "#0891b2",
) -> str:
    """Render a key-value detail box.

    Args:
        items: Ordered dict of label to value pairs.
        accent_color: Left-border accent colour.
    """
    rows = "\n".join(
        f'<div style="padding: 4px 0;"><strong>{label}:</strong> {value}</div>'
        for label, value in items.items()
        if value != ""
    )
    return (
        f'<div style="border-left: 4px solid {accent_color}; background: #f8fafc; '
        f'padding: 16px 20px; margin: 20px 0;">{rows}</div>'
    )


def cta_button(label: str, url: str, color: str = "#0891b2") -> str:
    """Render a centered call-to-action button."""
    return (
        f'<div style="text-align: center; margin: 28px 0;">'
        f'<a href="{url}" style="background-color: {color}; color: #ffffff; '
        f'padding: 12px 28px; border-radius: 8px; text-decoration: none; font-weight: bold;">'
        f"{label}</a></div>"
    )


def info_box(
    content: str,
    bg_color: str = "#fffbeb",
    border_color: str = "#f59e0b",
    title: str = "",
) -> str:
    """Render a coloured info box with an optional bold title line."""
    title_html = f"<strong>{title}</strong><br/>" if title else ""
    return (
        f'<div style="background: {bg_color}; border-left: 4px solid {border_color}; '
        f'padding: 16px 20px; border-radius: 0 8px 8px 0; margin: 20px 0;">'
        f"{title_html}{content}</div>"
    )
