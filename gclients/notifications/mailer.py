import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from fastapi import Request

from gclients import config

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


class Mailer:
    """SMTP transport; blocking sends are pushed to a worker thread"""

    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        user: str = config.SMTP_USER,
        password: str = config.SMTP_PASSWORD,
        sender: str = config.SMTP_FROM,
        starttls: bool = config.SMTP_STARTTLS,
        enabled: bool = config.SMTP_ENABLED,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.starttls = starttls
        self.enabled = enabled

    def _create_message(self, to_email: str, subject: str, text_body: str, html_body: Optional[str]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{config.APP_NAME} <{self.sender}>"
        msg["To"] = to_email

        msg.attach(MIMEText(text_body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))
        return msg

    def _send_sync(self, to_email: str, message: MIMEMultipart) -> None:
        if self.port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=config.SMTP_TIMEOUT_SECONDS) as server:
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(message)
            return

        with smtplib.SMTP(self.host, self.port, timeout=config.SMTP_TIMEOUT_SECONDS) as server:
            if self.starttls:
                server.starttls(context=ssl.create_default_context())
            if self.user:
                server.login(self.user, self.password)
            server.send_message(message)

    async def send(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        """
        Deliver one email

        Raises:
            MailDeliveryError: transport failure
        """
        if not self.enabled:
            logger.warning("SMTP disabled, email '%s' not sent to %s", subject, to_email)
            return

        message = self._create_message(to_email, subject, text_body, html_body)
        try:
            await asyncio.to_thread(self._send_sync, to_email, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            raise MailDeliveryError("Failed to send email") from e

        logger.info("Email sent to %s", to_email)


async def get_mailer(request: Request) -> Mailer:
    """Mailer dependency (constructed once at startup)"""
    return request.app.state.mailer
