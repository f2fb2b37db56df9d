import os, smtplib, logging, ssl
from email.message import EmailMessage
from typing import Optional, Tuple

from app.services.otp_store import PURPOSE_VERIFICATION
from app.storage import CsvStore
from app.utils.ids import new_record_id, now_iso

logger = logging.getLogger(__name__)

EMAIL_HOST = os.getenv("EMAIL_HOST")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USERNAME = os.getenv("EMAIL_USERNAME")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", EMAIL_USERNAME or "no-reply@example.com")
EMAIL_USE_TLS = str(os.getenv("EMAIL_USE_TLS", "1")).lower() in ("1","true","yes","on")
EMAIL_USE_SSL = str(os.getenv("EMAIL_USE_SSL", "0")).lower() in ("1","true","yes","on")

OTP_VALID_MINUTES = 10

_OTP_HTML = (
    "<div style='font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;'>"
    "<h2 style='color: #667eea;'>{heading}</h2>"
    "<p>{intro}</p>"
    "<div style='background: #f5f5f5; padding: 20px; text-align: center; border-radius: 10px; margin: 20px 0;'>"
    "<h1 style='color: #667eea; letter-spacing: 5px; margin: 0;'>{otp}</h1>"
    "</div>"
    "<p>This OTP will expire in {minutes} minutes.</p>"
    "<p style='color: #666; font-size: 12px;'>{footer}</p>"
    "</div>"
)


def email_configured() -> bool:
    return bool(EMAIL_HOST and EMAIL_USERNAME and EMAIL_PASSWORD)


def build_otp_email(otp: str, purpose: str) -> Tuple[str, str, str]:
    """Return (subject, html, text) for a verification or password-reset code."""
    if purpose == PURPOSE_VERIFICATION:
        subject = "Verify Your Email - Mental Health AI"
        heading = "Email Verification"
        intro = "Thank you for signing up! Please verify your email address by entering the OTP below:"
        footer = "If you didn't create an account, please ignore this email."
    else:
        subject = "Password Reset OTP - Mental Health AI"
        heading = "Password Reset"
        intro = "You requested to reset your password. Please enter the OTP below to proceed:"
        footer = "If you didn't request a password reset, please ignore this email."
    html = _OTP_HTML.format(heading=heading, intro=intro, otp=otp, minutes=OTP_VALID_MINUTES, footer=footer)
    text = f"{intro}\n\n{otp}\n\nThis OTP will expire in {OTP_VALID_MINUTES} minutes.\n{footer}"
    return subject, html, text


def send_email(subject: str, to_email: str, html_body: str, text_body: Optional[str] = None) -> bool:
    """Send email using configured SMTP provider. Returns True if sent, False otherwise."""
    if not email_configured():
        logger.warning("Email service not fully configured; would send to %s subject %s", to_email, subject)
        return False
    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = EMAIL_FROM_ADDRESS
        msg["To"] = to_email
        if text_body:
            msg.set_content(text_body)
            msg.add_alternative(html_body, subtype="html")
        else:
            msg.set_content(html_body, subtype="html")

        if EMAIL_USE_SSL:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(EMAIL_HOST, EMAIL_PORT, context=context) as server:
                server.login(EMAIL_USERNAME, EMAIL_PASSWORD)
                server.send_message(msg)
        else:
            with smtplib.SMTP(EMAIL_HOST, EMAIL_PORT) as server:
                if EMAIL_USE_TLS:
                    server.starttls()
                server.login(EMAIL_USERNAME, EMAIL_PASSWORD)
                server.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s", to_email)
        return False


def send_otp_email(store: CsvStore, to_email: str, otp: str, purpose: str, username: Optional[str] = None) -> bool:
    """Send an OTP email and, once delivered, record it in the global email log."""
    subject, html, text = build_otp_email(otp, purpose)
    if not send_email(subject, to_email, html, text):
        return False
    store.add_email({
        "id": new_record_id(),
        "to": to_email,
        "subject": subject,
        "type": purpose,
        "otp": otp,
        "sentAt": now_iso(),
        "username": username or "",
    })
    logger.info("Sent %s email to %s", purpose, to_email)
    return True
