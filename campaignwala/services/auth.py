"""
Phone + password accounts with a second OTP step.

Admins receive their login code by SMS, regular users by email. The static code is only
ever used for SMS delivery failures and only where the deployment turns it on.
"""
import logging
import re

from pymongo.errors import DuplicateKeyError

from campaignwala import db
from campaignwala.errors import (
    Conflict,
    InvalidCredentials,
    NoEmailConfigured,
    NotFound,
    ValidationFailed,
    ERROR_ACCOUNT_DEACTIVATED,
    ERROR_USER_NOT_FOUND,
)
from campaignwala.services import otp as otp_service
from campaignwala.services.otp import PHONE_OTP, USER_OTP
from campaignwala.utils.email import send_otp_email
from campaignwala.utils.helpers import mask_email, utcnow
from campaignwala.utils.security import create_access_token, get_password_hash, verify_password
from campaignwala.utils.sms import send_sms_otp

logger = logging.getLogger("uvicorn.error")

PHONE_RE = re.compile(r"^[0-9]{10}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def validate_phone(phone_number):
    if not phone_number or not PHONE_RE.match(phone_number):
        raise ValidationFailed("Invalid phone number format. Must be 10 digits")


def validate_password(password, field="Password"):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"{field} must be at least {MIN_PASSWORD_LENGTH} characters long")


def new_user_document(phone_number, name, email, password, role="user", is_verified=False):
    now = utcnow()
    return {
        "phoneNumber": phone_number,
        "name": name or "",
        "email": (email or "").strip().lower(),
        "password": get_password_hash(password),
        "role": role,
        "isVerified": is_verified,
        "isActive": True,
        "isEx": False,
        "otpAttempts": 0,
        "firstName": "",
        "lastName": "",
        "gender": "",
        "address1": "",
        "city": "",
        "state": "",
        "zip": "",
        "country": "India",
        "kycDetails": {
            "panNumber": "",
            "aadhaarNumber": "",
            "panImage": "",
            "aadhaarImage": "",
            "kycStatus": "not_submitted",
            "kycRejectionReason": "",
        },
        "bankDetails": {
            "bankName": "",
            "accountHolderName": "",
            "accountNumber": "",
            "ifscCode": "",
            "branchAddress": "",
            "upiId": "",
        },
        "createdAt": now,
        "updatedAt": now,
    }


def _sms_otp(store, query, doc, phone_number):
    return otp_service.send_otp(
        store,
        query,
        doc,
        lambda code: send_sms_otp(phone_number, code),
        allow_static=True,
    )


def _email_otp(user, purpose):
    if not user.get("email"):
        raise NoEmailConfigured()
    return otp_service.send_otp(
        USER_OTP,
        {"_id": user["_id"]},
        user,
        lambda code: send_otp_email(user["email"], code, user.get("name", ""), purpose),
    )


def _otp_payload(phone_number, code, used_static, email=None):
    data = {"phoneNumber": phone_number, "useStatic": used_static}
    if email:
        data["email"] = mask_email(email)
    if used_static:
        data["otp"] = code
    return data


def send_phone_otp(phone_number):
    """SMS code for registration (no account yet) or phone verification (existing account)."""
    validate_phone(phone_number)
    user = db.users_collection.find_one({"phoneNumber": phone_number})
    if user:
        code, used_static = _sms_otp(USER_OTP, {"_id": user["_id"]}, user, phone_number)
    else:
        pending = db.phone_otps_collection.find_one({"phoneNumber": phone_number})
        code, used_static = _sms_otp(PHONE_OTP, {"phoneNumber": phone_number}, pending, phone_number)
    return _otp_payload(phone_number, code, used_static)


def register(phone_number, otp, name, email, password):
    if not all([phone_number, otp, name, email, password]):
        raise ValidationFailed("Phone number, OTP, name, email, and password are required")
    validate_phone(phone_number)
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Invalid email format")
    validate_password(password)

    if db.users_collection.find_one({"phoneNumber": phone_number}):
        raise Conflict("User with this phone number already exists")
    if db.users_collection.find_one({"email": email.strip().lower()}):
        raise Conflict("Email already registered")

    pending = db.phone_otps_collection.find_one({"phoneNumber": phone_number})
    otp_service.verify_and_consume_otp(PHONE_OTP, {"phoneNumber": phone_number}, pending, otp)

    user = new_user_document(phone_number, name, email, password, is_verified=True)
    try:
        user["_id"] = db.users_collection.insert_one(user).inserted_id
    except DuplicateKeyError:
        raise Conflict("Phone number already registered")
    db.phone_otps_collection.delete_one({"phoneNumber": phone_number})

    logger.info("User %s registered", user["_id"])
    return user, create_access_token(user)


def authenticate(phone_number, password):
    user = db.users_collection.find_one({"phoneNumber": phone_number})
    if not user or not verify_password(password, user.get("password")):
        raise InvalidCredentials()
    if not user.get("isActive", True):
        raise InvalidCredentials(ERROR_ACCOUNT_DEACTIVATED)
    return user


def issue_login_otp(user):
    if user.get("role") == "admin":
        code, used_static = _sms_otp(USER_OTP, {"_id": user["_id"]}, user, user["phoneNumber"])
        channel = "sms"
    else:
        code, used_static = _email_otp(user, "login")
        channel = "email"
    logger.info("Login OTP sent to user %s via %s", user["_id"], channel)
    return {
        "otpType": channel,
        "data": _otp_payload(user["phoneNumber"], code, used_static, user.get("email") if channel == "email" else None),
    }


def login(phone_number, password, otp=None):
    """
    Without ``otp`` this issues a code and returns ``{"requireOTP": True, ...}``; with it,
    the code is consumed and ``{"user": ..., "token": ...}`` is returned.
    """
    if not phone_number or not password:
        raise ValidationFailed("Phone number and password are required")

    user = authenticate(phone_number, password)
    if otp is None:
        return {"requireOTP": True, **issue_login_otp(user)}

    otp_service.verify_and_consume_otp(USER_OTP, {"_id": user["_id"]}, user, otp)
    user = db.users_collection.find_one({"_id": user["_id"]})
    logger.info("User %s logged in", user["_id"])
    return {"user": user, "token": create_access_token(user)}


def verify_phone(phone_number, otp):
    if not phone_number or not otp:
        raise ValidationFailed("Phone number and OTP are required")
    user = db.users_collection.find_one({"phoneNumber": phone_number})
    if not user:
        raise NotFound(ERROR_USER_NOT_FOUND)

    otp_service.verify_and_consume_otp(USER_OTP, {"_id": user["_id"]}, user, otp)
    db.users_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"isVerified": True, "otpAttempts": 0, "updatedAt": utcnow()}},
    )
    return db.users_collection.find_one({"_id": user["_id"]})


def _set_password(user_id, new_password, **extra):
    db.users_collection.update_one(
        {"_id": user_id},
        {"$set": {"password": get_password_hash(new_password), "updatedAt": utcnow(), **extra}},
    )


def change_password(user, current_password, new_password, otp=None):
    """
    Returns ``{"requireOTP": True, ...}`` while a code is outstanding, or ``None`` once the
    password has been changed. Accounts without an email skip the OTP step.
    """
    if not current_password or not new_password:
        raise ValidationFailed("Current password and new password are required")
    validate_password(new_password, "New password")

    user = db.users_collection.find_one({"_id": user["_id"]})
    if not verify_password(current_password, user.get("password")):
        raise ValidationFailed("Current password is incorrect")

    if user.get("email"):
        if otp is None:
            code, used_static = _email_otp(user, "password-change")
            return {"requireOTP": True, "otpType": "email",
                    "data": _otp_payload(user["phoneNumber"], code, used_static, user["email"])}
        otp_service.verify_and_consume_otp(USER_OTP, {"_id": user["_id"]}, user, otp)

    _set_password(user["_id"], new_password)
    logger.info("Password changed for user %s", user["_id"])
    return None


def forgot_password(phone_number):
    validate_phone(phone_number)
    user = db.users_collection.find_one({"phoneNumber": phone_number})
    if not user:
        raise NotFound("No account found with this phone number")
    code, used_static = _sms_otp(USER_OTP, {"_id": user["_id"]}, user, phone_number)
    return _otp_payload(phone_number, code, used_static)


def reset_password(phone_number, otp, new_password):
    if not phone_number or not otp or not new_password:
        raise ValidationFailed("Phone number, OTP, and new password are required")
    validate_password(new_password)

    user = db.users_collection.find_one({"phoneNumber": phone_number})
    if not user:
        raise NotFound(ERROR_USER_NOT_FOUND)
    otp_service.verify_and_consume_otp(USER_OTP, {"_id": user["_id"]}, user, otp)
    _set_password(user["_id"], new_password, otpAttempts=0)
    logger.info("Password reset for user %s", user["_id"])
