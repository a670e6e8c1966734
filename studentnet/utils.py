import math
import os
import secrets
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from jinja2 import Environment, FileSystemLoader, select_autoescape

from studentnet.core.config import settings
from studentnet.core.exceptions import ExternalServiceError
from studentnet.core.logging_config import get_logger

logger = get_logger("mailer")

template_dir = os.path.join(os.path.dirname(__file__), 'email_templates')
env = Environment(loader=FileSystemLoader(template_dir), autoescape=select_autoescape(['html']))

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_otp(length=6):
    return ''.join(secrets.choice('0123456789') for _ in range(length))


def get_pagination(page, limit, default_limit=DEFAULT_PAGE_SIZE):
    page = max(1, int(page or 1))
    limit = max(1, min(MAX_PAGE_SIZE, int(limit or default_limit)))
    return page, limit, (page - 1) * limit


def page_meta(page: int, limit: int, total: int, **extra) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
        **extra,
    }


def send_email(to_email: str, subject: str, template_name: str, context: dict) -> str:
    """Render a template and send it over SMTP. Returns the Message-ID."""
    template = env.get_template(template_name)
    html_content = template.render(context)

    msg = MIMEMultipart()
    msg['From'] = settings.EMAIL_FROM
    msg['To'] = to_email
    msg['Subject'] = subject
    msg['Message-ID'] = make_msgid(domain="studentnet")
    msg.attach(MIMEText(html_content, 'html'))

    try:
        server = smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT, timeout=15)
        try:
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM, to_email, msg.as_string())
        finally:
            server.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send '{template_name}' email: {e}")
        raise ExternalServiceError("mailer", "Failed to send email. Please try again.") from e

    logger.info(f"Email sent: {msg['Message-ID']}", extra={"template": template_name})
    return msg['Message-ID']


class Mailer:
    """Email transport used by the auth flows; swapped for a fake in tests"""

    def send_otp_email(self, to_email: str, name: str, otp: str) -> str:
        return send_email(
            to_email=to_email,
            subject="Verify Your Email - Student Network",
            template_name="verification.html",
            context={"name": name, "otp": otp, "expires_in": settings.OTP_EXPIRE_MINUTES}
        )

    def send_password_reset_email(self, to_email: str, name: str, otp: str) -> str:
        return send_email(
            to_email=to_email,
            subject="Reset Your Password - Student Network",
            template_name="password_reset.html",
            context={"name": name, "otp": otp, "expires_in": settings.OTP_EXPIRE_MINUTES}
        )

    def send_welcome_email(self, to_email: str, name: str) -> str:
        return send_email(
            to_email=to_email,
            subject="Welcome to Student Network!",
            template_name="welcome.html",
            context={"name": name}
        )


_mailer = Mailer()


def get_mailer() -> Mailer:
    return _mailer


def send_welcome_email_quietly(mailer: Mailer, to_email: str, name: str):
    """Background task: the account is already verified, a lost welcome mail is only logged"""
    try:
        mailer.send_welcome_email(to_email, name)
    except ExternalServiceError:
        logger.warning("Welcome email could not be delivered", extra={"to": to_email})


def success_response(data=None, message: str = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
