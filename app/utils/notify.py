"""
Notification Utility
Booking confirmation and cancellation emails
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import (
    CANCELLATION_WINDOW_HOURS,
    NOTIFY_EMAILS,
    SMTP_FROM_EMAIL,
    SMTP_FROM_NAME,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USER,
)
from app.models import ClassSession

logger = logging.getLogger(__name__)

_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f9f9f9; border-radius: 10px; }
    .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 20px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background-color: white; padding: 30px; border-radius: 0 0 10px 10px; }
    .footer { text-align: center; margin-top: 20px; font-size: 12px; color: #666; }
"""


def send_email(to_email: str, subject: str, body: str) -> bool:
    """
    Send email using SMTP server (supports TLS and SSL)

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    if not NOTIFY_EMAILS:
        logger.info(f"Email disabled, skipped '{subject}' to {to_email}")
        return False

    try:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{SMTP_FROM_NAME} <{SMTP_FROM_EMAIL}>"
        message["To"] = to_email
        message.attach(MIMEText(body, "html"))

        # Port 465 is implicit SSL, anything else uses STARTTLS
        if SMTP_PORT == 465:
            with smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT) as server:
                server.login(SMTP_USER, SMTP_PASSWORD)
                server.send_message(message)
        else:
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
                server.starttls()
                server.login(SMTP_USER, SMTP_PASSWORD)
                server.send_message(message)

        logger.info(f"Email sent successfully to {to_email}")
        return True

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP Authentication failed: {str(e)}")
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email: {type(e).__name__}: {str(e)}")
        return False


def _render(title: str, paragraphs: list) -> str:
    content = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{_STYLE}</style></head>
    <body>
        <div class="container">
            <div class="header"><h1>{title}</h1></div>
            <div class="content">
                {content}
                <div class="footer"><p>{SMTP_FROM_NAME}</p></div>
            </div>
        </div>
    </body>
    </html>
    """


def _when(session: ClassSession) -> str:
    return session.start_time.strftime("%A %d %B %Y, %H:%M UTC")


def send_booking_confirmation(to_email: str, session: ClassSession) -> bool:
    subject = f"Booking confirmed - {session.name}"
    lines = [
        f"Your place in <strong>{session.name}</strong> is booked.",
        f"When: {_when(session)}",
    ]
    if session.instructor:
        lines.append(f"Instructor: {session.instructor}")
    lines.append(f"Cancellations are possible up to {CANCELLATION_WINDOW_HOURS} hours before the class starts.")
    return send_email(to_email, subject, _render("Booking Confirmed", lines))


def send_booking_cancellation(to_email: str, session: ClassSession) -> bool:
    subject = f"Booking cancelled - {session.name}"
    lines = [
        f"Your booking for <strong>{session.name}</strong> on {_when(session)} has been cancelled.",
    ]
    return send_email(to_email, subject, _render("Booking Cancelled", lines))
