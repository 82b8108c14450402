import random
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from bson import ObjectId

from campaignwala.errors import ValidationFailed, ERROR_INVALID_ID

ID_CHARS = string.ascii_uppercase + string.digits
BASE36 = string.digits + string.ascii_uppercase


def utcnow():
    # pymongo hands back naive UTC datetimes, so keep ours naive too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def safe_object_id(id_str):
    if isinstance(id_str, ObjectId):
        return id_str
    if not id_str or not ObjectId.is_valid(str(id_str)):
        raise ValidationFailed(ERROR_INVALID_ID)
    return ObjectId(str(id_str))


def to_amount(value):
    """Round a money value to paise and return it as a float for storage."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _base36(number):
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = BASE36[rem] + digits
    return digits or "0"


def generate_lead_id():
    return "LD-" + "".join(random.choices(ID_CHARS, k=8))


def generate_withdrawal_id():
    return f"WDR-{_base36(int(time.time() * 1000))}-{''.join(random.choices(ID_CHARS, k=3))}"


def generate_offers_id():
    return f"OFF-{_base36(int(time.time() * 1000))}-{''.join(random.choices(ID_CHARS, k=5))}"


def unique_id(collection, field, generator):
    """Keep generating until the id is not taken in the collection."""
    while True:
        candidate = generator()
        if not collection.find_one({field: candidate}, {"_id": 1}):
            return candidate


def serialize_doc(value):
    """Make a Mongo document JSON-friendly (ObjectId -> str, datetime -> ISO)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: serialize_doc(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    return value


USER_PRIVATE_FIELDS = ("password", "emailOtp", "emailOtpExpires", "otpAttempts", "lastOtpSent")


def serialize_user(user):
    if user is None:
        return None
    return serialize_doc({k: v for k, v in user.items() if k not in USER_PRIVATE_FIELDS})


def mask_email(email):
    if not email or "@" not in email:
        return email
    name, domain = email.split("@", 1)
    return f"{name[:2]}{'*' * max(len(name) - 2, 1)}@{domain}"


def paginate(page, limit):
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    return page, limit, (page - 1) * limit


def api_response(message, data=None, **extra):
    body = {"success": True, "message": message}
    body.update(serialize_doc(extra))
    if data is not None:
        body["data"] = serialize_doc(data)
    return body
