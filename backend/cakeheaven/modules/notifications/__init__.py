"""
Notifications Module - Outbound customer email.
"""

from cakeheaven.modules.notifications.email import EmailService, SMTPConfig, get_email_service

__all__ = [
    "EmailService",
    "SMTPConfig",
    "get_email_service",
]
