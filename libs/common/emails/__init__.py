"""
MemberHub email package.

Modules:
- core: Base send_email function (SMTP)

Templates live with the service that owns the message, e.g.
services/communications_service/templates/attendance.py for attendance warnings.
"""
