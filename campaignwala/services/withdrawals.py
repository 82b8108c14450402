"""
Withdrawal requests paid out of the wallet ledger.

Approval first claims the request (``pending -> processing``) so only one admin can act
on it, then performs the wallet's conditional debit tagged with the withdrawal id. If the
balance no longer covers the amount, or the debit fails before landing, the claim is
released back to ``pending``. A request left in ``processing`` after the debit landed is
finished by approving it again; the tagged debit is not repeated.
"""
import logging
import re

from pymongo import ReturnDocument, ASCENDING, DESCENDING

from campaignwala import db
from campaignwala.errors import (
    InsufficientBalance,
    InvalidStateTransition,
    NotFound,
    ValidationFailed,
    ERROR_INSUFFICIENT_BALANCE,
    ERROR_USER_NOT_FOUND,
    ERROR_WITHDRAWAL_NOT_FOUND,
)
from campaignwala.services import wallet as wallet_service
from campaignwala.utils.helpers import (
    generate_withdrawal_id,
    paginate,
    safe_object_id,
    to_amount,
    unique_id,
    utcnow,
)

logger = logging.getLogger("uvicorn.error")

WITHDRAWAL_STATUSES = ("pending", "processing", "approved", "rejected")


def get_withdrawal(withdrawal_id):
    withdrawal = db.withdrawals_collection.find_one({"_id": safe_object_id(withdrawal_id)})
    if not withdrawal:
        raise NotFound(ERROR_WITHDRAWAL_NOT_FOUND)
    return withdrawal


def create_withdrawal(user_id, amount, bank_details=None):
    amount = to_amount(amount)
    if amount < 1:
        raise ValidationFailed("Amount must be at least 1")

    user_oid = safe_object_id(user_id)
    if not db.users_collection.find_one({"_id": user_oid}, {"_id": 1}):
        raise NotFound(ERROR_USER_NOT_FOUND)

    available = wallet_service.get_balance(user_oid)
    if available < amount:
        raise InsufficientBalance(
            ERROR_INSUFFICIENT_BALANCE,
            data={"requested": amount, "available": available},
        )

    now = utcnow()
    withdrawal = {
        "withdrawalId": unique_id(db.withdrawals_collection, "withdrawalId", generate_withdrawal_id),
        "userId": user_oid,
        "amount": amount,
        "status": "pending",
        "requestDate": now,
        "reason": "Awaiting admin approval",
        "bankDetails": bank_details or {},
        "createdAt": now,
        "updatedAt": now,
    }
    withdrawal["_id"] = db.withdrawals_collection.insert_one(withdrawal).inserted_id
    logger.info("Withdrawal %s of %.2f requested by user %s", withdrawal["withdrawalId"], amount, user_oid)
    return withdrawal


def _claim(withdrawal_id, new_status, fields=None, from_statuses=("pending",)):
    """Move a withdrawal in ``from_statuses`` to ``new_status``; raise if it has moved on."""
    oid = safe_object_id(withdrawal_id)
    claimed = db.withdrawals_collection.find_one_and_update(
        {"_id": oid, "status": {"$in": list(from_statuses)}},
        {"$set": {"status": new_status, "updatedAt": utcnow(), **(fields or {})}},
        return_document=ReturnDocument.AFTER,
    )
    if claimed is None:
        current = get_withdrawal(oid)
        raise InvalidStateTransition(f"Withdrawal is already {current['status']}")
    return claimed


def _release(withdrawal):
    db.withdrawals_collection.update_one(
        {"_id": withdrawal["_id"], "status": "processing"},
        {"$set": {"status": "pending", "updatedAt": utcnow()}},
    )


def approve_withdrawal(withdrawal_id, admin_id=None, transaction_id="", remarks=""):
    processed_by = safe_object_id(admin_id) if admin_id else None
    # a request left in processing by an interrupted approval can be approved again
    withdrawal = _claim(withdrawal_id, "processing", from_statuses=("pending", "processing"))
    reference = f"withdrawal:{withdrawal['withdrawalId']}"
    try:
        wallet_service.debit(
            withdrawal["userId"],
            withdrawal["amount"],
            description=f"Withdrawal approved - {withdrawal['withdrawalId']}",
            reference=reference,
        )
    except InsufficientBalance as e:
        _release(withdrawal)
        raise InsufficientBalance("Insufficient wallet balance", data=e.data)
    except Exception:
        if not wallet_service.has_reference(withdrawal["userId"], reference):
            _release(withdrawal)
        logger.error("Debit for withdrawal %s failed", withdrawal["withdrawalId"])
        raise

    now = utcnow()
    try:
        approved = db.withdrawals_collection.find_one_and_update(
            {"_id": withdrawal["_id"]},
            {"$set": {
                "status": "approved",
                "processedDate": now,
                "processedBy": processed_by,
                "transactionId": transaction_id or "",
                "reason": "Processed successfully",
                "remarks": remarks or "",
                "updatedAt": now,
            }},
            return_document=ReturnDocument.AFTER,
        )
    except Exception:
        # the debit has landed; approving again completes it without a second debit
        logger.error("Withdrawal %s debited but left in processing", withdrawal["withdrawalId"])
        raise
    logger.info("Withdrawal %s approved by %s", approved["withdrawalId"], admin_id)
    return approved


def reject_withdrawal(withdrawal_id, admin_id=None, rejection_reason=None, remarks=""):
    if not rejection_reason or not rejection_reason.strip():
        raise ValidationFailed("Rejection reason is required")

    rejected = _claim(withdrawal_id, "rejected", {
        "processedDate": utcnow(),
        "processedBy": safe_object_id(admin_id) if admin_id else None,
        "rejectionReason": rejection_reason,
        "reason": rejection_reason,
        "remarks": remarks or "",
    })
    logger.info("Withdrawal %s rejected by %s: %s", rejected["withdrawalId"], admin_id, rejection_reason)
    return rejected


def delete_withdrawal(withdrawal_id):
    result = db.withdrawals_collection.delete_one({"_id": safe_object_id(withdrawal_id)})
    if result.deleted_count == 0:
        raise NotFound(ERROR_WITHDRAWAL_NOT_FOUND)


def list_withdrawals(status=None, user_id=None, search=None, page=1, limit=100, sort_by="requestDate", order="desc"):
    query = {}
    if status and status != "all":
        if status not in WITHDRAWAL_STATUSES:
            raise ValidationFailed("Invalid status. Must be one of: " + ", ".join(WITHDRAWAL_STATUSES))
        query["status"] = status
    if user_id:
        query["userId"] = safe_object_id(user_id)
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"withdrawalId": pattern}, {"transactionId": pattern}]

    page, limit, skip = paginate(page, limit)
    direction = ASCENDING if order == "asc" else DESCENDING
    withdrawals = list(db.withdrawals_collection.find(query).sort(sort_by, direction).skip(skip).limit(limit))
    total = db.withdrawals_collection.count_documents(query)
    return withdrawals, {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": -(-total // limit),
    }


def withdrawals_for_user(user_id, status=None, page=1, limit=100):
    return list_withdrawals(status=status, user_id=user_id, page=page, limit=limit)


def withdrawal_stats():
    stats = {
        "totalRequests": db.withdrawals_collection.count_documents({}),
        "pendingRequests": 0,
        "approvedRequests": 0,
        "rejectedRequests": 0,
        "totalApprovedAmount": 0.0,
        "totalPendingAmount": 0.0,
    }
    for row in db.withdrawals_collection.aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "amount": {"$sum": "$amount"}}},
    ]):
        if row["_id"] in ("pending", "approved", "rejected"):
            stats[f"{row['_id']}Requests"] = row["count"]
        if row["_id"] == "approved":
            stats["totalApprovedAmount"] = to_amount(row["amount"])
        elif row["_id"] == "pending":
            stats["totalPendingAmount"] = to_amount(row["amount"])
    return stats
