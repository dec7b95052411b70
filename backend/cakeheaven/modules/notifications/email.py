"""
Email Notification Service.

Sends transactional emails over SMTP.

Features:
- Welcome, order, payment, cancellation and password reset messages
- STARTTLS when configured
- Blocking SMTP work runs in a worker thread
- Failures are logged and reported as False, never raised
"""

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from loguru import logger

from cakeheaven.core.config import settings


@dataclass
class SMTPConfig:
    """Connection parameters for one SMTP server."""

    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    from_address: str = ""
    from_name: str = "Cake Heaven"
    use_tls: bool = True

    @classmethod
    def from_settings(cls) -> "SMTPConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.smtp_from_address,
            from_name=settings.smtp_from_name,
            use_tls=settings.smtp_use_tls,
        )


class EmailService:
    """
    SMTP email sender.

    Usage:
        mailer = EmailService()
        await mailer.send("jane@example.com", "Hello", "Plain text body")
    """

    def __init__(self, config: SMTPConfig | None = None, enabled: bool | None = None) -> None:
        """
        Initialize email service.

        Args:
            config: SMTP parameters (or from env)
            enabled: Override the EMAIL_ENABLED setting
        """
        self.config = config or SMTPConfig.from_settings()
        self.enabled = settings.email_enabled if enabled is None else enabled

        if not self.config.host:
            logger.warning("SMTP_HOST not configured")

    def _build_message(self, to: str, subject: str, text: str, html: str | None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f"{self.config.from_name} <{self.config.from_address}>"
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.config.host, self.config.port, timeout=10) as server:
            if self.config.use_tls:
                server.starttls()
            if self.config.username:
                server.login(self.config.username, self.config.password)
            server.send_message(message)

    async def deliver(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        """Send one message, raising on any SMTP failure."""
        message = self._build_message(to, subject, text, html)
        await asyncio.to_thread(self._deliver, message)

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: str | None = None,
    ) -> bool:
        """
        Send email, best-effort.

        Returns:
            True if sent successfully
        """
        if not self.enabled:
            logger.debug("Email notifications disabled")
            return False

        if not self.config.host:
            logger.error(f"Cannot send '{subject}': SMTP host not configured")
            return False

        try:
            await self.deliver(to, subject, text, html)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error sending '{subject}' to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True

    # ==================== Messages ====================

    async def send_welcome(self, to: str, name: str, bonus_points: int) -> bool:
        text = (
            f"Dear {name},\n\n"
            "Welcome to Cake Heaven! Your account has been created.\n\n"
            f"As a welcome gift, {bonus_points} points have been added to your wallet.\n\n"
            "Happy baking!"
        )
        return await self.send(to, "Welcome to Cake Heaven", text)

    async def send_order_confirmation(
        self,
        to: str,
        name: str,
        order_number: str,
        total: float,
        payment_method: str,
        estimated_delivery: str,
        reward_points: float,
    ) -> bool:
        text = (
            f"Dear {name},\n\n"
            f"Thank you for your order! Your order #{order_number} has been received "
            "and is being processed.\n\n"
            "Order Details:\n"
            f"- Total Amount: {total:.2f}\n"
            f"- Payment Method: {payment_method}\n"
            f"- Estimated Delivery: {estimated_delivery}\n\n"
            f"You earned {reward_points:g} reward points with this purchase!\n\n"
            "Thank you for shopping with Cake Heaven!"
        )
        return await self.send(to, f"Cake Heaven - Order #{order_number} Confirmation", text)

    async def send_status_update(
        self,
        to: str,
        name: str,
        order_number: str,
        status: str,
        comment: str | None = None,
    ) -> bool:
        readable = status.replace("_", " ")
        text = f"Dear {name},\n\nYour order #{order_number} is now {readable}.\n"
        if comment:
            text += f"\nNote: {comment}\n"
        return await self.send(to, f"Cake Heaven - Order #{order_number} {readable.title()}", text)

    async def send_payment_confirmation(
        self,
        to: str,
        name: str,
        order_number: str,
        amount: float,
    ) -> bool:
        text = (
            f"Dear {name},\n\n"
            f"We have received your payment of {amount:.2f} for order #{order_number}.\n\n"
            "Thank you for shopping with Cake Heaven!"
        )
        return await self.send(to, f"Cake Heaven - Payment Received for Order #{order_number}", text)

    async def send_cancellation(
        self,
        to: str,
        name: str,
        order_number: str,
        reason: str,
        wallet_refund: float,
    ) -> bool:
        text = f"Dear {name},\n\nYour order #{order_number} has been cancelled.\nReason: {reason}\n"
        if wallet_refund > 0:
            text += f"\n{wallet_refund:g} wallet points have been returned to your account.\n"
        return await self.send(to, f"Cake Heaven - Order #{order_number} Cancelled", text)

    async def send_password_reset(self, to: str, reset_url: str) -> bool:
        text = (
            "You are receiving this email because you (or someone else) requested "
            "a password reset.\n\n"
            f"Please open the following link to reset your password:\n{reset_url}\n\n"
            "If you did not request this, please ignore this email."
        )
        return await self.send(to, "Cake Heaven - Password Reset", text)


# Singleton instance
_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get or create email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
