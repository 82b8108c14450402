"""
One-time codes: generation, per-account send limits, storage and single-use verification.

Codes live on the owning document: registered users keep theirs in ``emailOtp`` /
``emailOtpExpires`` on the user record, phone numbers that have no account yet keep
theirs in the ``phone_otps`` collection.
"""
import logging
import secrets
from datetime import timedelta

from campaignwala import config, db
from campaignwala.errors import InvalidOtp, OtpDeliveryFailed, OtpExpired, TooManyOtpRequests
from campaignwala.utils.helpers import utcnow

logger = logging.getLogger("uvicorn.error")


class OtpStore:
    def __init__(self, collection_name, code_field, expires_field, upsert=False):
        self.collection_name = collection_name
        self.code_field = code_field
        self.expires_field = expires_field
        self.upsert = upsert

    @property
    def collection(self):
        return getattr(db, self.collection_name)


USER_OTP = OtpStore("users_collection", "emailOtp", "emailOtpExpires")
PHONE_OTP = OtpStore("phone_otps_collection", "otp", "otpExpires", upsert=True)


def generate_otp():
    low = 10 ** (config.OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def _window_elapsed(doc, now):
    last_sent = doc.get("lastOtpSent")
    return last_sent is not None and now - last_sent > timedelta(minutes=config.OTP_WINDOW_MINUTES)


def can_send_otp(doc, now=None):
    if not doc:
        return True
    now = now or utcnow()
    if _window_elapsed(doc, now):
        return True
    return doc.get("otpAttempts", 0) < config.OTP_MAX_SENDS


def _counters(doc, now):
    attempts = 1 if not doc or _window_elapsed(doc, now) else doc.get("otpAttempts", 0) + 1
    return {"otpAttempts": attempts, "lastOtpSent": now}


def register_otp_send(store, query, doc, code, now=None):
    """Count a send against the rate limit and store ``code`` with a fresh expiry."""
    now = now or utcnow()
    if not can_send_otp(doc, now):
        raise TooManyOtpRequests()

    counters = _counters(doc, now)
    store.collection.update_one(
        query,
        {"$set": {
            store.code_field: code,
            store.expires_field: now + timedelta(minutes=config.OTP_EXPIRE_MINUTES),
            **counters,
        }},
        upsert=store.upsert,
    )
    logger.info("OTP issued for %s (attempt %s of %s)", query, counters["otpAttempts"], config.OTP_MAX_SENDS)


def send_otp(store, query, doc, deliver, allow_static=False):
    """
    Rate-limit, generate, deliver and store a code.

    ``deliver(code)`` returns True when the code reached the user. When it fails and
    ``allow_static`` is set, the configured static code is stored instead, provided the
    deployment enables it. Returns ``(code, used_static)``.
    """
    now = utcnow()
    if not can_send_otp(doc, now):
        raise TooManyOtpRequests()

    code = generate_otp()
    used_static = False
    if not deliver(code):
        if allow_static and config.static_otp_enabled():
            logger.warning("OTP delivery failed for %s, falling back to static OTP", query)
            code = config.STATIC_OTP
            used_static = True
        else:
            # a failed send still counts against the limit
            store.collection.update_one(
                query,
                {"$set": _counters(doc, now), "$unset": {store.code_field: "", store.expires_field: ""}},
                upsert=store.upsert,
            )
            raise OtpDeliveryFailed()

    register_otp_send(store, query, doc, code, now)
    return code, used_static


def verify_and_consume_otp(store, query, doc, otp, now=None):
    """Check ``otp`` against the stored code and clear it so it cannot be replayed."""
    stored = doc.get(store.code_field) if doc else None
    if not stored or not otp:
        raise InvalidOtp()

    expires = doc.get(store.expires_field)
    if expires is None or expires < (now or utcnow()):
        store.collection.update_one(query, {"$unset": {store.code_field: "", store.expires_field: ""}})
        raise OtpExpired()

    if not secrets.compare_digest(str(otp), str(stored)):
        raise InvalidOtp()

    result = store.collection.update_one(
        {**query, store.code_field: stored},
        {"$unset": {store.code_field: "", store.expires_field: ""}},
    )
    if result.modified_count == 0:
        # consumed by a concurrent request
        raise InvalidOtp()
