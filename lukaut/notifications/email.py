"""Transactional email over SMTP.

Messages are rendered from Jinja2 templates in ``templates/``. When SMTP is
not configured, messages are logged instead of sent so local development
works without a mail server.
"""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from lukaut.config import SMTPConfig, get_config

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailService:
    """Service for sending emails with template support."""

    def __init__(self, smtp: SMTPConfig | None = None, base_url: str | None = None):
        config = get_config()
        self.smtp = smtp or config.smtp
        self.base_url = (base_url or config.base_url).rstrip("/")
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def send_email(
        self,
        to_emails: list[str],
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """Send an email.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.smtp.enabled:
            logger.warning("smtp_not_configured", to=to_emails, subject=subject)
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.smtp.from_name, self.smtp.from_email))
        msg["To"] = ", ".join(to_emails)

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=30) as server:
                if self.smtp.use_tls:
                    server.starttls()
                if self.smtp.username and self.smtp.password:
                    server.login(self.smtp.username, self.smtp.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email_send_failed", to=to_emails, subject=subject, error=str(exc))
            return False

        logger.info("email_sent", to=to_emails, subject=subject)
        return True

    def render_template(self, template_name: str, context: dict[str, Any]) -> str:
        template = self.jinja_env.get_template(template_name)
        return template.render(base_url=self.base_url, **context)

    def _send(self, to: str, subject: str, template_name: str, context: dict[str, Any]) -> bool:
        html_body = self.render_template(template_name, context)
        text_body = self.render_template(template_name.replace(".html", ".txt"), context)
        return self.send_email([to], subject, html_body, text_body)

    def send_verification_email(self, to: str, name: str, token: str) -> bool:
        link = f"{self.base_url}/verify-email?token={token}"
        return self._send(to, "Verify your Lukaut email address", "verify_email.html", {"name": name, "link": link})

    def send_password_reset_email(self, to: str, name: str, token: str) -> bool:
        link = f"{self.base_url}/reset-password?token={token}"
        return self._send(to, "Reset your Lukaut password", "password_reset.html", {"name": name, "link": link})

    def send_report_ready_email(self, to: str, name: str, report_url: str) -> bool:
        return self._send(
            to, "Your inspection report is ready", "report_ready.html", {"name": name, "link": report_url}
        )

    def send_report_to_client_email(
        self,
        to: str,
        inspector_name: str,
        inspector_company: str | None,
        site_name: str,
        report_url: str,
    ) -> bool:
        """Send the report link to a client on the inspector's behalf."""
        sender = inspector_company or inspector_name
        return self._send(
            to,
            f"Inspection report for {site_name} from {sender}",
            "report_to_client.html",
            {
                "inspector_name": inspector_name,
                "inspector_company": inspector_company,
                "site_name": site_name,
                "link": report_url,
            },
        )


_service: EmailService | None = None


def get_email_service() -> EmailService:
    global _service
    if _service is None:
        _service = EmailService()
    return _service


def set_email_service(service: EmailService | None) -> None:
    global _service
    _service = service
