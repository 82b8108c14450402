from fastapi import APIRouter, Depends

from campaignwala import db
from campaignwala.errors import NotFound, ERROR_USER_NOT_FOUND
from campaignwala.middleware.auth_middleware import ensure_self_or_admin, get_current_user, require_admin
from campaignwala.models.wallet import CreditRequest, DebitRequest
from campaignwala.services import wallet as wallet_service
from campaignwala.utils.helpers import api_response, safe_object_id

router = APIRouter()


def _ensure_user(user_id):
    if not db.users_collection.find_one({"_id": safe_object_id(user_id)}, {"_id": 1}):
        raise NotFound(ERROR_USER_NOT_FOUND)


@router.get("/user/{userId}")
async def get_wallet(userId: str, user=Depends(get_current_user)):
    ensure_self_or_admin(user, userId)
    wallet = wallet_service.get_or_create_wallet(userId)
    wallet["transactions"] = sorted(wallet.get("transactions", []), key=lambda t: t["createdAt"], reverse=True)
    return api_response("Wallet retrieved successfully", wallet)


@router.post("/credit")
async def credit_wallet(request: CreditRequest, admin=Depends(require_admin)):
    _ensure_user(request.userId)
    wallet, _ = wallet_service.credit(
        request.userId,
        request.amount,
        description=request.description or "Commission credited",
        lead_id=request.leadId,
    )
    return api_response("Amount credited successfully", wallet)


@router.post("/debit")
async def debit_wallet(request: DebitRequest, admin=Depends(require_admin)):
    _ensure_user(request.userId)
    wallet = wallet_service.debit(request.userId, request.amount, description=request.description or "Withdrawal")
    return api_response("Amount debited successfully", wallet)


@router.get("/all")
async def list_wallets(admin=Depends(require_admin)):
    wallets = wallet_service.list_wallets()
    return api_response("Wallets retrieved successfully", wallets, count=len(wallets))
