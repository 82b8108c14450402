import logging
import httpx

from campaignwala import config

logger = logging.getLogger("uvicorn.error")


def send_sms_otp(phone_number: str, otp: str) -> bool:
    """Deliver an OTP through the configured SMS gateway. Returns False on any failure."""
    if not config.SMS_API_KEY or not config.SMS_API_URL:
        logger.warning("SMS API not configured, cannot deliver OTP to %s", phone_number)
        return False

    payload = {
        "apiKey": config.SMS_API_KEY,
        "sender": config.SMS_SENDER_ID,
        "number": phone_number,
        "message": f"Your Campaign Waala OTP is: {otp}. Valid for {config.OTP_EXPIRE_MINUTES} minutes.",
    }
    try:
        response = httpx.post(config.SMS_API_URL, json=payload, timeout=5.0)
        response.raise_for_status()
        body = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("SMS API error for %s: %s", phone_number, e)
        return False

    if not isinstance(body, dict) or not body.get("success"):
        logger.warning("SMS API did not accept OTP for %s: %s", phone_number, body)
        return False
    logger.info("OTP sent successfully via SMS API to %s", phone_number)
    return True
