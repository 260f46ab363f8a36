"""
Appointment notifications for doctors and patients.

Sending is fire-and-forget from the caller's point of view: every failure is
logged here and reported as a False return, never raised into the booking or
cancellation that triggered it.
"""
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
import logging
import smtplib
import ssl

from ..core.config import settings
from ..core.exceptions import InvalidInput, NotificationFailure
from ..core.slot_dates import humanize_slot_date

logger = logging.getLogger(__name__)

PATIENT_STATUS_MESSAGES = {
    "completed": (
        "Appointment Approved",
        "Your appointment has been <strong style=\"color: #28a745;\">APPROVED</strong> by the doctor. "
        "Please arrive at the clinic at least 15 minutes before your scheduled appointment time.",
    ),
    "cancelled": (
        "Appointment Canceled",
        "We regret to inform you that your appointment has been "
        "<strong style=\"color: #dc3545;\">CANCELED</strong>. Please schedule another appointment "
        "at your convenience or contact support for assistance.",
    ),
    "summary_added": (
        "Consultation Summary Available",
        "Your doctor has added a consultation summary to your appointment. "
        "You can read it from the My Appointments page.",
    ),
}


def _display_date(slot_date: str) -> str:
    try:
        return humanize_slot_date(slot_date)
    except InvalidInput:
        return slot_date


class NotificationSink:
    """Builds notification emails and hands them to ``deliver``.

    The base class has no transport and only logs what would be sent.
    """

    def notify_doctor_of_booking(self, doctor_contact: Optional[str], summary: dict) -> bool:
        patient = summary.get("userData") or {}
        patient_name = " ".join(
            part for part in (patient.get("firstName"), patient.get("middleName"), patient.get("lastName"))
            if part
        )
        subject = f"New Patient Appointment - {settings.APP_NAME}"
        html = f"""
            <div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #333;">New Patient Appointment</h2>
                <p style="color: #666; font-size: 16px;">A new patient has booked an appointment with you:</p>
                <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;">
                    <p><strong>Patient Name:</strong> {patient_name}</p>
                    <p><strong>Appointment Date:</strong> {_display_date(summary["slotDate"])}</p>
                    <p><strong>Appointment Time:</strong> {summary["slotTime"]}</p>
                </div>
                <p style="color: #666; font-size: 16px;">You can view all your appointments in your doctor dashboard.</p>
                {self._feedback_footer()}
            </div>
        """
        return self._send_safely("doctor booking", doctor_contact, subject, html)

    def notify_patient_of_status_change(
        self, patient_contact: Optional[str], summary: dict, status: str
    ) -> bool:
        if status not in PATIENT_STATUS_MESSAGES:
            logger.error(f"Unknown appointment status notification '{status}'")
            return False

        title, message = PATIENT_STATUS_MESSAGES[status]
        doctor = summary.get("docData") or {}
        speciality = (doctor.get("speciality") or "").replace("_", " ")
        subject = f"{title} - {settings.APP_NAME}"
        html = f"""
            <div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #333;">Appointment Status Update</h2>
                <p style="color: #666; font-size: 16px;">{message}</p>
                <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;">
                    <p><strong>Doctor:</strong> {doctor.get("name", "")} {doctor.get("name_extension") or ""}</p>
                    <p><strong>Speciality:</strong> {speciality}</p>
                    <p><strong>Date:</strong> {_display_date(summary["slotDate"])}</p>
                    <p><strong>Time:</strong> {summary["slotTime"]}</p>
                </div>
                {self._feedback_footer()}
            </div>
        """
        return self._send_safely(f"patient {status}", patient_contact, subject, html)

    def deliver(self, to: str, subject: str, html: str) -> None:
        logger.info(f"No email transport configured, skipping '{subject}' to {to}")

    def _send_safely(self, kind: str, to: Optional[str], subject: str, html: str) -> bool:
        if not to:
            logger.warning(f"No contact address for {kind} notification, skipping")
            return False
        try:
            self.deliver(to, subject, html)
        except Exception as e:
            logger.error(f"Failed to send {kind} notification to {to}: {e}")
            return False
        logger.info(f"{kind.capitalize()} notification sent to {to}")
        return True

    @staticmethod
    def _feedback_footer() -> str:
        return f"""
            <div style="margin-top: 30px; border-top: 1px solid #eee; padding-top: 20px;">
                <p style="color: #666; font-size: 14px;">We value your feedback!</p>
                <a href="{settings.FRONTEND_URL}/feedback">Send Feedback</a>
            </div>
        """


class SmtpNotificationSink(NotificationSink):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or settings.APP_EMAIL

    def deliver(self, to: str, subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f'"{settings.APP_NAME}" <{self.sender}>'
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        try:
            context = ssl.create_default_context()
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=30)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=30)
                server.starttls(context=context)
            try:
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(f"SMTP delivery to {to} failed: {e}") from e


def build_notifier() -> NotificationSink:
    """Pick the transport from settings."""
    if settings.SMTP_HOST:
        return SmtpNotificationSink(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
        )
    return NotificationSink()
