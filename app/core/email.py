"""Transactional email: templates and delivery backends."""
from __future__ import annotations
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from jinja2 import Environment, PackageLoader, select_autoescape

logger = logging.getLogger(__name__)

RESET_PASSWORD_SUBJECT = "Reset your password"
INVITATION_SUBJECT = "Invitation to the system"

_templates = Environment(
    loader=PackageLoader("app", "templates"),
    autoescape=select_autoescape(["html"]),
)


def render_email(template_name: str, **context) -> str:
    return _templates.get_template(f"email/{template_name}").render(**context)


class Mailer(ABC):
    """Email delivery boundary."""

    def __init__(self, sender: str):
        self.sender = sender

    @abstractmethod
    def send_templated_email(self, to: str, subject: str, html_body: str) -> None:
        """Deliver one HTML email."""

    def send_reset_password(self, to: str, reset_url: str) -> None:
        html = render_email("reset_password.html", reset_url=reset_url)
        self.send_templated_email(to, RESET_PASSWORD_SUBJECT, html)

    def send_invitation(self, to: str, reset_url: str) -> None:
        html = render_email("invitation.html", reset_url=reset_url)
        self.send_templated_email(to, INVITATION_SUBJECT, html)


class SmtpMailer(Mailer):
    """Deliver through an SMTP relay (STARTTLS + login when credentials are set)."""

    def __init__(
        self,
        sender: str,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: int = 10,
    ):
        super().__init__(sender)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send_templated_email(self, to: str, subject: str, html_body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)
        logger.info("Email '%s' sent via %s:%s", subject, self.host, self.port)


class ConsoleMailer(Mailer):
    """Log emails instead of sending them (demo mode, no SMTP configured)."""

    def send_templated_email(self, to: str, subject: str, html_body: str) -> None:
        logger.info("Email to %s | %s\n%s", to, subject, html_body)


def build_mailer(cfg) -> Mailer:
    if cfg.email_enabled:
        return SmtpMailer(
            cfg.email_from,
            cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_user,
            password=cfg.smtp_password,
            use_tls=cfg.smtp_use_tls,
        )
    logger.warning("SMTP_HOST not set; emails will only be logged")
    return ConsoleMailer(cfg.email_from)
