# sidebyside/services/mail_service.py
import smtplib
from email.message import EmailMessage

from sidebyside.config import settings
from sidebyside.core.logger import logger


def build_magic_link_message(email: str, url: str) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = "Your Side-by-Side sign-in link"
    message["From"] = settings.smtp_from_email
    message["To"] = email
    message.set_content(
        f"Click the link below to sign in to Side-by-Side:\n\n{url}\n\n"
        f"The link expires in {settings.magic_token_expire_hours} hours and works once.\n"
        "If you did not request it, ignore this email."
    )
    return message


def send_magic_link(email: str, url: str) -> None:
    """Send the login link; without SMTP the link is only logged"""
    if not settings.smtp_host:
        logger.warning(f"SMTP is not configured, magic link for {email}: {url}")
        return

    message = build_magic_link_message(email, url)

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as smtp:
        if settings.smtp_port != 25:
            smtp.starttls()
        if settings.smtp_user:
            smtp.login(settings.smtp_user, settings.smtp_pass)
        smtp.send_message(message)

    logger.info(f"Magic link sent to {email}")
