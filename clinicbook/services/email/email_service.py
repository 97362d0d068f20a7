# ===== clinicbook/services/email/email_service.py =====
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Dict, List, Optional
import logging

from clinicbook.config.settings import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via SMTP"""

    @staticmethod
    def _get_smtp_connection():
        """Create and return SMTP connection"""
        try:
            if settings.EMAIL_USE_TLS:
                server = smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT)
                server.starttls()
            else:
                server = smtplib.SMTP_SSL(settings.EMAIL_HOST, settings.EMAIL_PORT)

            if settings.EMAIL_USERNAME and settings.EMAIL_PASSWORD:
                server.login(settings.EMAIL_USERNAME, settings.EMAIL_PASSWORD)

            return server
        except Exception as e:
            logger.error(f"Failed to connect to SMTP server: {e}")
            raise

    @staticmethod
    def send_email(
            to_email: str,
            subject: str,
            html_content: str,
            plain_text: Optional[str] = None,
            cc: Optional[List[str]] = None
    ) -> Dict[str, str]:
        """
        Send an email using SMTP

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of the email
            plain_text: Plain text version (fallback for non-HTML clients)
            cc: List of CC email addresses

        Returns:
            dict: {"providerMessageId": <Message-ID header of the sent mail>}

        Raises:
            smtplib.SMTPException / OSError when the server rejects or is unreachable
        """
        message_id = make_msgid(domain=settings.EMAIL_FROM_ADDRESS.partition("@")[2] or None)

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
        msg['To'] = to_email
        msg['Message-ID'] = message_id

        if cc:
            msg['Cc'] = ', '.join(cc)

        if plain_text:
            msg.attach(MIMEText(plain_text, 'plain'))
        msg.attach(MIMEText(html_content, 'html'))

        recipients = [to_email]
        if cc:
            recipients.extend(cc)

        try:
            server = EmailService._get_smtp_connection()
            try:
                server.sendmail(settings.EMAIL_FROM_ADDRESS, recipients, msg.as_string())
            finally:
                server.quit()
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            raise

        logger.info(f"Email sent successfully to {to_email}")
        return {"providerMessageId": message_id}

    @staticmethod
    def render_booking_confirmation(
            clinic_name: str,
            patient_name: str,
            service_name: str,
            local_start: str
    ) -> Dict[str, str]:
        """Subject, HTML and plain text for a booking confirmation"""
        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background-color: #0f766e; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
                <h1 style="color: white; margin: 0; font-size: 26px;">Appointment Confirmed</h1>
            </div>

            <div style="background-color: #ffffff; padding: 30px; border: 1px solid #e0e0e0; border-top: none; border-radius: 0 0 10px 10px;">
                <h2 style="color: #333; margin-top: 0;">Hi {patient_name},</h2>

                <p style="font-size: 16px; color: #555;">
                    Your <strong>{service_name}</strong> appointment at <strong>{clinic_name}</strong>
                    is booked for <strong>{local_start}</strong>.
                </p>

                <p style="font-size: 14px; color: #777;">
                    Need to change it? Reply to this email or call the clinic.
                </p>
            </div>
        </body>
        </html>
        """

        plain_text = f"""
        Hi {patient_name},

        Your {service_name} appointment at {clinic_name} is booked for {local_start}.

        Need to change it? Reply to this email or call the clinic.
        """

        return {
            "subject": f"Your appointment at {clinic_name} is confirmed",
            "html": html_content,
            "text": plain_text,
        }

    @staticmethod
    def render_appointment_reminder(
            clinic_name: str,
            patient_name: str,
            service_name: str,
            local_start: str
    ) -> Dict[str, str]:
        """Subject, HTML and plain text for a 24 hour reminder"""
        html_content = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #0f766e;">See you tomorrow, {patient_name}</h2>
            <p style="font-size: 16px; color: #555;">
                This is a reminder of your <strong>{service_name}</strong> appointment at
                <strong>{clinic_name}</strong> on <strong>{local_start}</strong>.
            </p>
        </body>
        </html>
        """

        plain_text = (
            f"Reminder: your {service_name} appointment at {clinic_name} is on {local_start}."
        )

        return {
            "subject": f"Reminder: appointment at {clinic_name}",
            "html": html_content,
            "text": plain_text,
        }
