from bson import ObjectId
from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError

from campaignwala import db
from campaignwala.errors import (
    Forbidden,
    NotAuthenticated,
    ERROR_ACCOUNT_DEACTIVATED,
    ERROR_ADMIN_REQUIRED,
    ERROR_INVALID_TOKEN,
    ERROR_TOKEN_EXPIRED,
    ERROR_TOKEN_REQUIRED,
    ERROR_VERIFICATION_REQUIRED,
)
from campaignwala.utils.security import decode_access_token


async def get_current_user(request: Request):
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise NotAuthenticated(ERROR_TOKEN_REQUIRED)

    token = auth_header.split(" ", 1)[1]
    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise NotAuthenticated(ERROR_TOKEN_EXPIRED)
    except JWTError:
        raise NotAuthenticated(ERROR_INVALID_TOKEN)

    user_id = payload.get("userId")
    user = None
    if user_id and ObjectId.is_valid(user_id):
        user = db.users_collection.find_one({"_id": ObjectId(user_id)})
    if not user:
        raise NotAuthenticated("Invalid token - user not found")

    if not user.get("isActive", True):
        raise NotAuthenticated(ERROR_ACCOUNT_DEACTIVATED)

    request.state.user_id = str(user["_id"])
    request.state.role = user.get("role")
    return user


async def require_admin(user=Depends(get_current_user)):
    if user.get("role") != "admin":
        raise Forbidden(ERROR_ADMIN_REQUIRED)
    return user


async def require_verified(user=Depends(get_current_user)):
    if not user.get("isVerified"):
        raise Forbidden(ERROR_VERIFICATION_REQUIRED)
    return user


def ensure_self_or_admin(user, user_id):
    if user.get("role") != "admin" and str(user["_id"]) != str(user_id):
        raise Forbidden()
