"""
auth/mailer.py -- Outbound email over SMTP.

Mailer.send() is blocking (smtplib). Its callers are plain `def` route
handlers and background tasks, which FastAPI runs in its threadpool.

With no SMTP_HOST configured the mailer runs as a development backend: it
logs that a message would have been sent and returns. In debug mode it also
logs the body so OTP codes can be read off the console.

Layer rule: no imports from api/, contacts/, or cache/.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from core.config import Settings

logger = logging.getLogger("safehaven.mailer")


class MailError(Exception):
    """Raised when the SMTP server rejects or fails a send."""


class Mailer:
    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.sender = settings.smtp_sender
        self.use_tls = settings.smtp_use_tls
        self.debug = settings.debug

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def send(self, to: str, subject: str, html: str) -> None:
        """Send one HTML email. Raises MailError on SMTP failure."""
        if not self.configured:
            logger.info("SMTP not configured; skipped email to %s (%s)", to, subject)
            if self.debug:
                logger.debug("Unsent email body for %s:\n%s", to, html)
            return

        message = MIMEMultipart()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=15) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email to %s failed: %s", to, e)
            raise MailError(str(e)) from e
        logger.info("Sent email to %s (%s)", to, subject)


# ---------------------------------------------------------------------------
# Message bodies
# ---------------------------------------------------------------------------


def otp_email(name: str, otp: str, purpose: str, expire_minutes: int) -> tuple[str, str]:
    """Return (subject, html) for a verification or password-reset code.

    purpose is "verification" or "reset".
    """
    if purpose == "reset":
        subject = "SafeHaven password reset code"
        intro = "Use this code to reset your SafeHaven password."
    else:
        subject = "Verify your SafeHaven account"
        intro = "Use this code to verify your email address."
    html = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>{intro}</p>"
        f"<p style='font-size:20px'><b>{otp}</b></p>"
        f"<p>This code expires in {expire_minutes} minutes. "
        "If you did not request it, you can ignore this email.</p>"
    )
    return subject, html


def emergency_email(
    sender_name: str,
    contact_name: str,
    latitude: float,
    longitude: float,
    disaster: str | None = None,
    note: str | None = None,
) -> tuple[str, str]:
    """Return (subject, html) for the message sent to an emergency contact."""
    if disaster:
        what = f"{'an' if disaster[0] in 'aeiou' else 'a'} {disaster} alert"
    else:
        what = "an emergency"
    maps = f"https://www.google.com/maps?q={latitude},{longitude}"
    subject = f"SafeHaven emergency alert from {sender_name}"
    html = (
        f"<p>Hi {escape(contact_name)},</p>"
        f"<p><b>{escape(sender_name)}</b> has reported {escape(what)} and listed you as an emergency contact.</p>"
        f"<p>Last known location: {latitude:.5f}, {longitude:.5f} "
        f"(<a href='{maps}'>open map</a>)</p>"
    )
    if note:
        html += f"<p>Message: {escape(note)}</p>"
    html += "<p>Please try to reach them as soon as possible.</p>"
    return subject, html
