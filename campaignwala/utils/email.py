import logging
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from campaignwala import config

logger = logging.getLogger("uvicorn.error")

PURPOSE_TEXT = {
    "login": "Login",
    "verification": "Account Verification",
    "password-change": "Password Change",
    "registration": "Registration",
}


def send_otp_email(to_email: str, otp: str, user_name: str = "", purpose: str = "verification") -> bool:
    """Send an OTP through SendGrid. Returns False instead of raising on any failure."""
    if not config.SENDGRID_API_KEY or not config.SENDER_EMAIL:
        logger.error("SENDGRID_API_KEY and SENDER_EMAIL must be set to send OTP emails")
        return False

    title = PURPOSE_TEXT.get(purpose, "Verification")
    message = Mail(
        from_email=config.SENDER_EMAIL,
        to_emails=to_email,
        subject=f"Campaignwala {title} Code",
        html_content=(
            f"<p>Hi {user_name or 'there'},</p>"
            f"<strong>Your OTP is: {otp}</strong>"
            f"<p>It will expire in {config.OTP_EXPIRE_MINUTES} minutes.</p>"
        ),
    )
    try:
        sg = SendGridAPIClient(config.SENDGRID_API_KEY)
        response = sg.send(message)
    except Exception as e:
        logger.error("Error sending %s OTP email to %s: %s", purpose, to_email, e)
        return False

    if response.status_code >= 300:
        logger.error("SendGrid rejected OTP email to %s with status %s", to_email, response.status_code)
        return False
    logger.info("OTP email sent to %s, status code: %s", to_email, response.status_code)
    return True
