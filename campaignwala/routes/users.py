import logging
import re
from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from pymongo import ReturnDocument

from campaignwala import db
from campaignwala.errors import (
    InvalidStateTransition,
    NotFound,
    ValidationFailed,
    ERROR_USER_NOT_FOUND,
)
from campaignwala.middleware.auth_middleware import get_current_user, require_admin
from campaignwala.models.user import (
    ChangePasswordRequest,
    KycApproveRequest,
    KycRejectRequest,
    KycUpdateRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SendOtpRequest,
    UpdateProfileRequest,
    UpdateRoleRequest,
    VerifyOtpRequest,
)
from campaignwala.services import auth as auth_service
from campaignwala.utils.helpers import api_response, paginate, safe_object_id, serialize_user, utcnow

logger = logging.getLogger("uvicorn.error")

router = APIRouter()

KYC_REQUIRED_FIELDS = ("panNumber", "aadhaarNumber", "accountNumber", "firstName", "lastName")
PRIVATE_PROJECTION = {"password": 0, "emailOtp": 0, "emailOtpExpires": 0, "otpAttempts": 0, "lastOtpSent": 0}


def _get_user(user_id):
    user = db.users_collection.find_one({"_id": safe_object_id(user_id)})
    if not user:
        raise NotFound(ERROR_USER_NOT_FOUND)
    return user


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------

@router.post("/send-otp")
async def send_otp(request: SendOtpRequest):
    data = auth_service.send_phone_otp(request.phoneNumber)
    return api_response("OTP sent successfully", data)


@router.post("/register", status_code=201)
async def register(request: RegisterRequest):
    user, token = auth_service.register(
        request.phoneNumber, request.otp, request.name, request.email, request.password
    )
    return api_response("User registered successfully", {"user": serialize_user(user), "token": token})


@router.post("/login")
async def login(request: LoginRequest):
    result = auth_service.login(request.phoneNumber, request.password, request.otp)
    if result.get("requireOTP"):
        channel = "phone" if result["otpType"] == "sms" else "email"
        return api_response(
            f"OTP sent to your {channel}. Please verify to complete login.",
            result["data"],
            requireOTP=True,
            otpType=result["otpType"],
        )
    return api_response("Login successful", {"user": serialize_user(result["user"]), "token": result["token"]})


@router.post("/verify-otp")
async def verify_otp(request: VerifyOtpRequest):
    user = auth_service.verify_phone(request.phoneNumber, request.otp)
    return api_response("Phone number verified successfully", {"user": serialize_user(user)})


@router.post("/forgot-password")
async def forgot_password(request: SendOtpRequest):
    data = auth_service.forgot_password(request.phoneNumber)
    return api_response("Password reset OTP sent successfully", data)


@router.post("/reset-password")
async def reset_password(request: ResetPasswordRequest):
    auth_service.reset_password(request.phoneNumber, request.otp, request.newPassword)
    return api_response("Password reset successfully")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@router.get("/profile")
async def get_profile(user=Depends(get_current_user)):
    return api_response("Profile retrieved successfully", {"user": serialize_user(user)})


@router.put("/profile")
async def update_profile(request: UpdateProfileRequest, user=Depends(get_current_user)):
    if not request.password:
        return api_response("No changes to update", {"user": serialize_user(user)})

    # same gate as change-password: current password, then the email OTP when one is on file
    pending = auth_service.change_password(user, request.currentPassword, request.password, request.otp)
    if pending:
        return api_response(
            "OTP sent to your email. Please verify to update your profile.",
            pending["data"],
            requireOTP=True,
            otpType=pending["otpType"],
        )
    updated = db.users_collection.find_one({"_id": user["_id"]})
    return api_response("Profile updated successfully", {"user": serialize_user(updated)})


@router.put("/change-password")
async def change_password(request: ChangePasswordRequest, user=Depends(get_current_user)):
    pending = auth_service.change_password(user, request.currentPassword, request.newPassword, request.otp)
    if pending:
        return api_response(
            "OTP sent to your email. Please verify to change password.",
            pending["data"],
            requireOTP=True,
            otpType=pending["otpType"],
        )
    return api_response("Password changed successfully")


# ---------------------------------------------------------------------------
# KYC
# ---------------------------------------------------------------------------

def _kyc_view(user):
    kyc = user.get("kycDetails") or {}
    bank = user.get("bankDetails") or {}
    return {
        "firstName": user.get("firstName", ""),
        "lastName": user.get("lastName", ""),
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "phoneNumber": user.get("phoneNumber", ""),
        "dob": user.get("dob", ""),
        "gender": user.get("gender", ""),
        "address1": user.get("address1", ""),
        "city": user.get("city", ""),
        "state": user.get("state", ""),
        "zip": user.get("zip", ""),
        "country": user.get("country") or "India",
        "kycDetails": {
            "panNumber": kyc.get("panNumber", ""),
            "aadhaarNumber": kyc.get("aadhaarNumber", ""),
            "panImage": kyc.get("panImage", ""),
            "aadhaarImage": kyc.get("aadhaarImage", ""),
            "kycStatus": kyc.get("kycStatus", "not_submitted"),
            "kycSubmittedAt": kyc.get("kycSubmittedAt"),
            "kycApprovedAt": kyc.get("kycApprovedAt"),
            "kycRejectedAt": kyc.get("kycRejectedAt"),
            "kycRejectionReason": kyc.get("kycRejectionReason", ""),
        },
        "bankDetails": {
            field: bank.get(field, "")
            for field in ("bankName", "accountHolderName", "accountNumber", "ifscCode", "branchAddress", "upiId")
        },
    }


@router.get("/kyc")
async def get_kyc(user=Depends(get_current_user)):
    return api_response("KYC details retrieved successfully", _kyc_view(user))


@router.put("/kyc")
async def update_kyc(request: KycUpdateRequest, user=Depends(get_current_user)):
    personal = request.personal()
    documents = request.documents()
    bank = request.bank()

    updates = dict(personal)
    updates.update({f"kycDetails.{k}": v for k, v in documents.items()})
    updates.update({f"bankDetails.{k}": v for k, v in bank.items()})

    merged = {
        **{f: user.get(f) for f in ("firstName", "lastName")},
        **{f: (user.get("kycDetails") or {}).get(f) for f in ("panNumber", "aadhaarNumber")},
        "accountNumber": (user.get("bankDetails") or {}).get("accountNumber"),
        **personal, **documents, **bank,
    }
    kyc_status = (user.get("kycDetails") or {}).get("kycStatus", "not_submitted")
    unset = {}
    if all(merged.get(f) for f in KYC_REQUIRED_FIELDS) and kyc_status != "approved":
        updates["kycDetails.kycStatus"] = "pending"
        updates["kycDetails.kycSubmittedAt"] = utcnow()
        updates["kycDetails.kycRejectionReason"] = ""
        unset["kycDetails.kycRejectedAt"] = ""

    updates["updatedAt"] = utcnow()
    operation = {"$set": updates}
    if unset:
        operation["$unset"] = unset
    updated = db.users_collection.find_one_and_update(
        {"_id": user["_id"]}, operation, return_document=ReturnDocument.AFTER
    )
    logger.info("KYC details updated for user %s, status %s", user["_id"], (updated.get("kycDetails") or {}).get("kycStatus"))
    return api_response("KYC details updated successfully", serialize_user(updated))


@router.get("/admin/kyc/pending")
async def get_pending_kyc(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    search: str = "",
    admin=Depends(require_admin),
):
    query = {"kycDetails.kycStatus": "pending"}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{f: pattern} for f in ("name", "email", "phoneNumber", "firstName", "lastName")]

    page, limit, skip = paginate(page, limit)
    users = db.users_collection.find(query, PRIVATE_PROJECTION).sort("kycDetails.kycSubmittedAt", -1).skip(skip).limit(limit)
    total = db.users_collection.count_documents(query)
    return api_response("Pending KYC requests retrieved successfully", {
        "users": [serialize_user(u) for u in users],
        "pagination": {"total": total, "page": page, "limit": limit, "totalPages": -(-total // limit)},
    })


@router.get("/admin/kyc/{userId}")
async def get_kyc_by_user(userId: str, admin=Depends(require_admin)):
    return api_response("KYC details retrieved successfully", serialize_user(_get_user(userId)))


def _decide_kyc(user_id, status, fields):
    updated = db.users_collection.find_one_and_update(
        {"_id": safe_object_id(user_id), "kycDetails.kycStatus": "pending"},
        {"$set": {"kycDetails.kycStatus": status, "updatedAt": utcnow(), **fields}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        _get_user(user_id)
        raise InvalidStateTransition("KYC is not in pending status")
    logger.info("KYC %s for user %s", status, user_id)
    return updated


@router.put("/admin/kyc/{userId}/approve")
async def approve_kyc(userId: str, request: KycApproveRequest = None, admin=Depends(require_admin)):
    fields = {"kycDetails.kycApprovedAt": utcnow(), "kycDetails.kycRejectionReason": ""}
    if request and request.remarks:
        fields["kycDetails.remarks"] = request.remarks
    updated = _decide_kyc(userId, "approved", fields)
    return api_response("KYC approved successfully", serialize_user(updated))


@router.put("/admin/kyc/{userId}/reject")
async def reject_kyc(userId: str, request: KycRejectRequest, admin=Depends(require_admin)):
    if not request.reason or not request.reason.strip():
        raise ValidationFailed("Rejection reason is required")
    updated = _decide_kyc(userId, "rejected", {
        "kycDetails.kycRejectedAt": utcnow(),
        "kycDetails.kycRejectionReason": request.reason,
    })
    return api_response("KYC rejected successfully", serialize_user(updated))


# ---------------------------------------------------------------------------
# Admin user management
# ---------------------------------------------------------------------------

@router.get("/admin/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    role: str = None,
    isVerified: bool = None,
    search: str = None,
    admin=Depends(require_admin),
):
    query = {}
    if role:
        query["role"] = role
    if isVerified is not None:
        query["isVerified"] = isVerified
    if search:
        query["phoneNumber"] = {"$regex": re.escape(search), "$options": "i"}

    page, limit, skip = paginate(page, limit)
    users = db.users_collection.find(query, PRIVATE_PROJECTION).sort("createdAt", -1).skip(skip).limit(limit)
    total = db.users_collection.count_documents(query)
    return api_response("Users retrieved successfully", {
        "users": [serialize_user(u) for u in users],
        "pagination": {"current": page, "pages": -(-total // limit), "total": total},
    })


@router.get("/admin/dashboard-stats")
async def dashboard_stats(admin=Depends(require_admin)):
    users = db.users_collection
    total = users.count_documents({})
    verified = users.count_documents({"isVerified": True})
    active = users.count_documents({"isActive": True})
    return api_response("Dashboard stats retrieved successfully", {
        "totalUsers": total,
        "verifiedUsers": verified,
        "adminUsers": users.count_documents({"role": "admin"}),
        "activeUsers": active,
        "recentRegistrations": users.count_documents({"createdAt": {"$gte": utcnow() - timedelta(days=7)}}),
        "unverifiedUsers": total - verified,
        "inactiveUsers": total - active,
    })


@router.get("/admin/users/{userId}")
async def get_user(userId: str, admin=Depends(require_admin)):
    return api_response("User retrieved successfully", {"user": serialize_user(_get_user(userId))})


@router.put("/admin/users/{userId}/role")
async def update_role(userId: str, request: UpdateRoleRequest, admin=Depends(require_admin)):
    updated = db.users_collection.find_one_and_update(
        {"_id": safe_object_id(userId)},
        {"$set": {"role": request.role, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound(ERROR_USER_NOT_FOUND)
    logger.info("Admin %s set role of user %s to %s", admin["_id"], userId, request.role)
    return api_response("User role updated successfully", {"user": serialize_user(updated)})


@router.put("/admin/users/{userId}/toggle-status")
async def toggle_status(userId: str, admin=Depends(require_admin)):
    user = _get_user(userId)
    updated = db.users_collection.find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {"isActive": not user.get("isActive", True), "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    state = "activated" if updated["isActive"] else "deactivated"
    return api_response(f"User {state} successfully", {"user": serialize_user(updated)})


@router.put("/admin/users/{userId}/mark-ex")
async def mark_ex(userId: str, admin=Depends(require_admin)):
    updated = db.users_collection.find_one_and_update(
        {"_id": safe_object_id(userId)},
        {"$set": {"isActive": False, "isEx": True, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound(ERROR_USER_NOT_FOUND)
    return api_response("User marked as Ex successfully", {"user": serialize_user(updated)})


@router.delete("/admin/users/{userId}")
async def delete_user(userId: str, admin=Depends(require_admin)):
    result = db.users_collection.delete_one({"_id": safe_object_id(userId)})
    if result.deleted_count == 0:
        raise NotFound(ERROR_USER_NOT_FOUND)
    logger.info("Admin %s deleted user %s", admin["_id"], userId)
    return api_response("User deleted successfully")
