import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Protocol, Tuple

from reminder.core import scheduler_config as cfg
from reminder.schemas.models import Schedule, SendResult

logger = logging.getLogger("reminder.notifier")


class NotificationFailure(RuntimeError):
    pass


class Notifier(Protocol):
    def send(self, address: str, subject: str, body_text: str, body_html: str) -> SendResult:
        ...


class SmtpNotifier:
    """Sends multipart (text + html) mail. Transport errors come back as ok=False."""

    def __init__(
        self,
        host: str = cfg.SMTP_HOST,
        port: int = cfg.SMTP_PORT,
        user: str = cfg.SMTP_USER,
        password: str = cfg.SMTP_PASS,
        sender: str = cfg.SMTP_FROM,
        secure: bool = cfg.SMTP_SECURE,
        timeout_s: int = cfg.SMTP_TIMEOUT_S,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.secure = secure
        self.timeout_s = timeout_s

    def _deliver(self, address: str, subject: str, body_text: str, body_html: str) -> None:
        if not address:
            raise NotificationFailure("No email provided")
        if not self.host:
            raise NotificationFailure("SMTP_HOST is not set.")

        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = address
        msg["Subject"] = subject
        msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        try:
            if self.secure:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout_s)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout_s)
            with server:
                if not self.secure:
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, address, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(f"SMTP send to {address} failed: {e}") from e

    def send(self, address: str, subject: str, body_text: str, body_html: str) -> SendResult:
        try:
            self._deliver(address, subject, body_text, body_html)
        except NotificationFailure as e:
            logger.error(str(e))
            return SendResult(ok=False, details={"error": str(e)})
        return SendResult(ok=True, details={"to": address})


class LogNotifier:
    """Used when EMAIL_ENABLED is false: records the message in the log only."""

    def send(self, address: str, subject: str, body_text: str, body_html: str) -> SendResult:
        logger.info(f"[email disabled] to={address} subject={subject!r} body={body_text!r}")
        return SendResult(ok=True, details={"to": address, "delivered": False})


def build_notifier() -> Notifier:
    return SmtpNotifier() if cfg.EMAIL_ENABLED else LogNotifier()


# ---------------------------
# Message builders
# ---------------------------

def reminder_message(schedule: Schedule) -> Tuple[str, str, str]:
    dosage = f" ({schedule.dosage})" if schedule.dosage else ""
    name_html = escape(schedule.medicine_name)
    return (
        f"💊 Reminder: {schedule.medicine_name}",
        f"It's time to take {schedule.medicine_name}{dosage}.",
        f"<p>It's time to take <strong>{name_html}</strong>{escape(dosage)}.</p>",
    )

def missed_message(schedule: Schedule) -> Tuple[str, str, str]:
    name_html = escape(schedule.medicine_name)
    return (
        f"⚠️ Missed Dose: {schedule.medicine_name}",
        f"You missed your scheduled dose of {schedule.medicine_name}.",
        f"<p>You missed your scheduled dose of <strong>{name_html}</strong>.</p>",
    )

def status_message(medicine_name: str, status: str, at: str) -> Tuple[str, str, str]:
    return (
        f"💊 Dose Update: {medicine_name}",
        f"Your dose status: {status} at {at}",
        f"<p>Status for <strong>{escape(medicine_name)}</strong>: <strong>{escape(status)}</strong> at {escape(at)}</p>",
    )
