"""
Error messages and the exceptions the services raise.

Every AppError is turned into a ``{"success": false, "message": ...}`` response by the
handlers registered in main.py.
"""

# User errors
ERROR_USER_NOT_FOUND = "User not found"
ERROR_INVALID_CREDENTIALS = "Invalid phone number or password"
ERROR_ACCOUNT_DEACTIVATED = "Account is deactivated"
ERROR_ADMIN_REQUIRED = "Admin access required"
ERROR_VERIFICATION_REQUIRED = "Phone number verification required"
ERROR_ACCESS_DENIED = "You do not have access to this resource"

# Token errors
ERROR_TOKEN_REQUIRED = "Access token is required"
ERROR_INVALID_TOKEN = "Invalid token"
ERROR_TOKEN_EXPIRED = "Token expired"

# OTP errors
ERROR_INVALID_OTP = "Invalid OTP"
ERROR_OTP_EXPIRED = "OTP has expired"
ERROR_TOO_MANY_OTP = "Too many OTP attempts. Please try again later"
ERROR_NO_EMAIL = "No email configured for this account"
ERROR_OTP_DELIVERY = "Failed to send OTP"

# Lead / offer errors
ERROR_LEAD_NOT_FOUND = "Lead not found"
ERROR_LEAD_SETTLED = "Lead already fully approved or no commission pending"
ERROR_OFFER_NOT_FOUND = "Offer not found"
ERROR_OFFER_NAME_TAKEN = "Offer with this name already exists"
ERROR_HR_USER_NOT_FOUND = "HR User not found"

# Wallet / withdrawal errors
ERROR_INSUFFICIENT_BALANCE = "Insufficient balance"
ERROR_WITHDRAWAL_NOT_FOUND = "Withdrawal not found"

# Generic errors
ERROR_INVALID_ID = "Invalid ID format"
ERROR_INTERNAL = "Internal server error"


class AppError(Exception):
    status_code = 500
    message = ERROR_INTERNAL

    def __init__(self, message=None, data=None):
        self.message = message or self.message
        self.data = data
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = 400
    message = "Validation failed"


class InvalidOtp(AppError):
    status_code = 400
    message = ERROR_INVALID_OTP


class OtpExpired(AppError):
    status_code = 400
    message = ERROR_OTP_EXPIRED


class NoEmailConfigured(AppError):
    status_code = 400
    message = ERROR_NO_EMAIL


class InsufficientBalance(AppError):
    status_code = 400
    message = ERROR_INSUFFICIENT_BALANCE


class LeadAlreadySettled(AppError):
    status_code = 400
    message = ERROR_LEAD_SETTLED


class InvalidStateTransition(AppError):
    status_code = 400
    message = "Invalid status transition"


class InvalidCredentials(AppError):
    status_code = 401
    message = ERROR_INVALID_CREDENTIALS


class NotAuthenticated(AppError):
    status_code = 401
    message = ERROR_TOKEN_REQUIRED


class Forbidden(AppError):
    status_code = 403
    message = ERROR_ACCESS_DENIED


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class Conflict(AppError):
    status_code = 409
    message = "Conflict"


class TooManyOtpRequests(AppError):
    status_code = 429
    message = ERROR_TOO_MANY_OTP


class OtpDeliveryFailed(AppError):
    status_code = 502
    message = ERROR_OTP_DELIVERY
