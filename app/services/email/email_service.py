# ===== app/services/email/email_service.py =====
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from html import escape
from typing import List, Optional
import logging

from app.config.settings import settings
from app.core.exceptions import EmailDeliveryError, EmailNotConfiguredError

logger = logging.getLogger(__name__)

_ROW = """
                    <tr>
                        <td style="padding: 8px 0; color: #666; vertical-align: top;"><strong>{label}:</strong></td>
                        <td style="padding: 8px 0; color: #333;">{value}</td>
                    </tr>"""


def _rows(rows) -> str:
    return "".join(_ROW.format(label=label, value=value) for label, value in rows)


def _wrap(title: str, body: str, footer: str) -> str:
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #333; margin-bottom: 20px;">{title}</h2>
            {body}
            <p style="font-size: 14px; color: #999; margin-top: 20px; padding-top: 20px; border-top: 1px solid #eee;">
                {footer}
            </p>
        </body>
        </html>
        """


def _section(heading: str, rows) -> str:
    return f"""
            <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin-bottom: 20px;">
                <h3 style="color: #333; margin-top: 0;">{heading}</h3>
                <table style="width: 100%; border-collapse: collapse;">{_rows(rows)}
                </table>
            </div>"""


class EmailService:
    """Service for sending emails via SMTP"""

    @staticmethod
    def is_configured() -> bool:
        return settings.email_configured

    @staticmethod
    def _get_smtp_connection():
        """Create and return SMTP connection"""
        timeout = settings.OUTBOUND_TIMEOUT_SECONDS
        if settings.EMAIL_USE_TLS:
            server = smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=timeout)
            server.starttls()
        else:
            server = smtplib.SMTP_SSL(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=timeout)

        if settings.EMAIL_USERNAME and settings.EMAIL_PASSWORD:
            server.login(settings.EMAIL_USERNAME, settings.EMAIL_PASSWORD)

        return server

    @staticmethod
    def send_email(
            to_email: str,
            subject: str,
            html_content: str,
            plain_text: Optional[str] = None,
            cc: Optional[List[str]] = None,
            trace_id: Optional[str] = None,
    ) -> str:
        """
        Send an email using SMTP

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of the email
            plain_text: Plain text version (fallback for non-HTML clients)
            cc: List of CC email addresses
            trace_id: Stamped into an X-Trace-ID header for correlation

        Returns:
            str: Message-ID of the accepted message

        Raises:
            EmailNotConfiguredError: SMTP host or sender address missing
            EmailDeliveryError: the SMTP exchange failed
        """
        if not EmailService.is_configured():
            raise EmailNotConfiguredError("EMAIL_HOST and EMAIL_FROM_ADDRESS must be set")

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
        msg['To'] = to_email
        message_id = make_msgid()
        msg['Message-ID'] = message_id
        if trace_id:
            msg['X-Trace-ID'] = trace_id
        if cc:
            msg['Cc'] = ', '.join(cc)

        if plain_text:
            msg.attach(MIMEText(plain_text, 'plain'))
        msg.attach(MIMEText(html_content, 'html'))

        recipients = [to_email] + list(cc or [])

        try:
            server = EmailService._get_smtp_connection()
            try:
                server.sendmail(settings.EMAIL_FROM_ADDRESS, recipients, msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            raise EmailDeliveryError(str(e), recipient=to_email) from e

        logger.info(f"Email sent successfully to {to_email}")
        return message_id

    @staticmethod
    def send_booking_confirmation_email(
            email: str,
            customer_name: str,
            business_name: str,
            service_name: str,
            when: str,
            duration_minutes: int,
            notes: Optional[str] = None,
            trace_id: Optional[str] = None,
    ) -> str:
        """Confirmation sent to the customer who booked"""
        rows = [
            ("Service", escape(service_name)),
            ("Date &amp; Time", escape(when)),
            ("Duration", f"{duration_minutes} minutes"),
        ]
        if notes:
            rows.append(("Notes", escape(notes)))

        body = f"""
            <p style="font-size: 16px; color: #666;">Hi {escape(customer_name)},</p>
            <p style="font-size: 16px; color: #666;">
                Thank you for booking with <strong>{escape(business_name)}</strong>! Your booking has been confirmed.
            </p>
            {_section("Booking Details", rows)}"""

        html_content = _wrap(
            "Booking Confirmation",
            body,
            "If you need to reschedule or cancel, please contact the business directly.",
        )

        plain_text = f"""
        Hi {customer_name},

        Thank you for booking with {business_name}! Your booking has been confirmed.

        Service: {service_name}
        Date & Time: {when}
        Duration: {duration_minutes} minutes
        """
        if notes:
            plain_text += f"Notes: {notes}\n"

        return EmailService.send_email(
            to_email=email,
            subject=f"Booking Confirmation - {business_name}",
            html_content=html_content,
            plain_text=plain_text,
            trace_id=trace_id,
        )

    @staticmethod
    def send_booking_admin_notification_email(
            email: str,
            business_name: str,
            customer_name: str,
            customer_email: str,
            service_name: str,
            when: str,
            duration_minutes: int,
            customer_phone: Optional[str] = None,
            notes: Optional[str] = None,
            trace_id: Optional[str] = None,
    ) -> str:
        """Heads-up sent to the tenant admin about a new booking"""
        customer_rows = [
            ("Name", escape(customer_name)),
            ("Email", f'<a href="mailto:{escape(customer_email)}" style="color: #0066cc;">{escape(customer_email)}</a>'),
        ]
        if customer_phone:
            customer_rows.append(
                ("Phone", f'<a href="tel:{escape(customer_phone)}" style="color: #0066cc;">{escape(customer_phone)}</a>')
            )

        booking_rows = [
            ("Service", escape(service_name)),
            ("Date &amp; Time", escape(when)),
            ("Duration", f"{duration_minutes} minutes"),
        ]
        if notes:
            booking_rows.append(("Customer Notes", escape(notes)))

        body = f"""
            <p style="font-size: 16px; color: #666;">
                You have received a new booking request at <strong>{escape(business_name)}</strong>.
            </p>
            {_section("Customer Information", customer_rows)}
            {_section("Booking Details", booking_rows)}"""

        html_content = _wrap(
            "New Booking Request",
            body,
            "Log in to your admin portal to confirm or adjust this booking.",
        )

        plain_text = f"""
        New booking request at {business_name}

        Name: {customer_name}
        Email: {customer_email}
        """
        if customer_phone:
            plain_text += f"Phone: {customer_phone}\n"
        plain_text += f"""
        Service: {service_name}
        Date & Time: {when}
        Duration: {duration_minutes} minutes
        """
        if notes:
            plain_text += f"Customer Notes: {notes}\n"

        return EmailService.send_email(
            to_email=email,
            subject=f"New Booking Request - {customer_name}",
            html_content=html_content,
            plain_text=plain_text,
            trace_id=trace_id,
        )
