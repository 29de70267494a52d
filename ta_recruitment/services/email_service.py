"""
Email Service - outgoing notifications over SMTP.

Mail is always sent outside the request/response cycle (FastAPI background
tasks). A failed send is logged and reported as False; it never raises, so
it can't undo or fail the operation that triggered it.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Union

from ta_recruitment.core.config import get_settings

logger = logging.getLogger(__name__)


def send_email(to: Union[str, List[str]], subject: str, html: str) -> bool:
    """
    Send one HTML email.

    Args:
        to: Recipient address or list of addresses
        subject: Email subject
        html: HTML body

    Returns:
        True when the SMTP server accepted the message
    """
    settings = get_settings()
    recipients = to if isinstance(to, list) else [to]

    if not settings.smtp_host:
        logger.info("SMTP not configured, skipping email '%s' to %s", subject, ", ".join(recipients))
        return False

    msg = MIMEMultipart("alternative")
    msg["From"] = f"{settings.mail_from} <{settings.smtp_user}>"
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            server.starttls()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.smtp_user, recipients, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Failed to send email '%s' to %s: %s", subject, ", ".join(recipients), e)
        return False

    logger.info("Email '%s' sent to %s", subject, ", ".join(recipients))
    return True


def send_acceptance_email(email: str, name: str, module_code: str, module_name: str) -> bool:
    """Tell an applicant their TA application was accepted."""
    settings = get_settings()
    subject = f"TA Application Accepted: {module_code} - {module_name}"
    html = f"""<p>Hello {name},</p>
<p>Your application for the TA position in <strong>{module_code} - {module_name}</strong>
has been accepted.</p>
<p>Please sign in to <a href="{settings.frontend_url}">the TA Appointment System</a>
and submit the required documents before the document due date.</p>
<p>Best regards,</p>
<p>The TA Recruitment Team</p>"""
    return send_email(email, subject, html)


def send_removal_email(email: str, name: str, module_code: str, module_name: str,
                       hours_returned: float) -> bool:
    """Tell an applicant their pending application was dropped after the TA count was lowered."""
    subject = f"TA Application Removed - {module_code}"
    refund = ""
    if hours_returned > 0:
        refund = f"<p>Your allocated hours ({hours_returned:g} hours) have been returned to your available hours.</p>"
    html = f"""<p>Dear {name},</p>
<p>Your TA application for <strong>{module_code} - {module_name}</strong> has been removed
because the number of required TAs for this module was reduced.</p>
{refund}
<p>You are welcome to apply for other available TA positions.</p>
<p>Best regards,</p>
<p>The TA Recruitment Team</p>"""
    return send_email(email, subject, html)
