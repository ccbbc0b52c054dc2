"""
Reservation emails.

Sending is fire-and-forget: messages go out on a small worker pool and any
failure is logged, never raised back into the booking flow.
"""
import logging
import smtplib
from concurrent.futures import ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)


class EmailNotifier:

    def __init__(self, smtp_host: str | None = None, smtp_port: int = 587,
                 username: str | None = None, password: str | None = None,
                 from_email: str = "noreply@barsan.com", use_tls: bool = True,
                 cancel_notice_hours: int = 2, background: bool = True):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_tls = use_tls
        self.cancel_notice_hours = cancel_notice_hours
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="mail") if background else None

    @classmethod
    def from_config(cls, config) -> "EmailNotifier":
        return cls(
            smtp_host=config.get("SMTP_HOST"),
            smtp_port=config.get("SMTP_PORT", 587),
            username=config.get("SMTP_USER"),
            password=config.get("SMTP_PASS"),
            from_email=config.get("EMAIL_FROM", "noreply@barsan.com"),
            cancel_notice_hours=config.get("CANCELLATION_CUTOFF_HOURS", 2),
        )

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host)

    def send_confirmation(self, data: dict) -> None:
        subject = f"Reservation confirmed - {data['cafe_name']} ({data['reservation_code']})"
        text = (
            f"Dear {data['guest_name']},\n\n"
            f"Thank you for booking a table with {data['cafe_name']}.\n\n"
            f"Reservation number: {data['reservation_code']}\n"
            f"Date: {data['date']}\n"
            f"Time: {data['time']}\n"
            f"Guests: {data['party_size']}\n\n"
            f"Please arrive 5-10 minutes early. To cancel, let us know at least "
            f"{self.cancel_notice_hours} hours in advance.\n"
        )
        html = (
            f"<h2>Reservation confirmed - {data['cafe_name']}</h2>"
            f"<p>Dear {data['guest_name']},</p>"
            f"<ul><li><strong>Reservation number:</strong> {data['reservation_code']}</li>"
            f"<li><strong>Date:</strong> {data['date']}</li>"
            f"<li><strong>Time:</strong> {data['time']}</li>"
            f"<li><strong>Guests:</strong> {data['party_size']}</li></ul>"
        )
        self.send(data["guest_email"], subject, text, html)

    def send_cancellation(self, data: dict) -> None:
        subject = f"Reservation cancelled - {data['cafe_name']} ({data['reservation_code']})"
        text = (
            f"Dear {data['guest_name']},\n\n"
            f"Your reservation {data['reservation_code']} on {data['date']} at {data['time']} "
            f"has been cancelled. We hope to welcome you another time.\n"
        )
        self.send(data["guest_email"], subject, text)

    def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> None:
        if not self.configured:
            logger.info("Email not configured, skipping send: %s", subject)
            return
        if self._pool is None:
            self._deliver(to, subject, body, html_body)
        else:
            self._pool.submit(self._deliver, to, subject, body, html_body)

    def _deliver(self, to, subject, body, html_body) -> bool:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg.attach(MIMEText(body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return False

        logger.info("Email sent to %s: %s", to, subject)
        return True

    def shutdown(self):
        if self._pool is not None:
            self._pool.shutdown(wait=False)
