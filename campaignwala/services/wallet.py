"""
Wallet ledger.

One wallet per user holding ``balance``, ``totalEarned``, ``totalWithdrawn`` and an
append-only ``transactions`` list. Every mutation is a single conditional
``find_one_and_update`` so the totals and the log entry land together, and
``balance == totalEarned - totalWithdrawn`` holds after each write.
"""
import logging

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from campaignwala import db
from campaignwala.errors import (
    InsufficientBalance,
    ValidationFailed,
    ERROR_INSUFFICIENT_BALANCE,
)
from campaignwala.utils.helpers import safe_object_id, to_amount, utcnow

logger = logging.getLogger("uvicorn.error")


def _new_wallet_fields(now):
    return {
        "balance": 0.0,
        "totalEarned": 0.0,
        "totalWithdrawn": 0.0,
        "transactions": [],
        "createdAt": now,
    }


def _validate_amount(amount):
    amount = to_amount(amount)
    if amount <= 0:
        raise ValidationFailed("Amount must be greater than 0")
    return amount


def get_or_create_wallet(user_id):
    user_id = safe_object_id(user_id)
    now = utcnow()
    try:
        db.wallets_collection.update_one(
            {"userId": user_id},
            {"$setOnInsert": _new_wallet_fields(now), "$set": {"updatedAt": now}},
            upsert=True,
        )
    except DuplicateKeyError:
        # a concurrent request created it first
        pass
    return db.wallets_collection.find_one({"userId": user_id})


def credit(user_id, amount, description="Commission credited", lead_id=None, reference=None):
    """
    Add ``amount`` to the user's wallet and log a credit transaction.

    With a ``reference`` the credit is applied at most once: a repeated call with the same
    reference leaves the wallet untouched. Returns ``(wallet, applied)``.
    """
    amount = _validate_amount(amount)
    user_id = safe_object_id(user_id)
    get_or_create_wallet(user_id)

    now = utcnow()
    txn = {
        "_id": ObjectId(),
        "type": "credit",
        "amount": amount,
        "description": description or "Commission credited",
        "leadId": safe_object_id(lead_id) if lead_id else None,
        "createdAt": now,
    }
    query = {"userId": user_id}
    if reference:
        txn["reference"] = reference
        query["transactions.reference"] = {"$ne": reference}

    wallet = db.wallets_collection.find_one_and_update(
        query,
        {
            "$inc": {"balance": amount, "totalEarned": amount},
            "$push": {"transactions": txn},
            "$set": {"updatedAt": now},
        },
        return_document=ReturnDocument.AFTER,
    )
    if wallet is None:
        logger.info("Credit %s for user %s already applied, skipping", reference, user_id)
        return db.wallets_collection.find_one({"userId": user_id}), False

    logger.info("Credited %.2f to wallet of user %s, balance now %.2f", amount, user_id, wallet["balance"])
    return wallet, True


def debit(user_id, amount, description="Withdrawal", reference=None):
    """
    Subtract ``amount`` if the balance covers it, else raise InsufficientBalance.

    With a ``reference`` the debit is applied at most once: a repeated call with the same
    reference returns the wallet unchanged instead of debiting again.
    """
    amount = _validate_amount(amount)
    user_id = safe_object_id(user_id)
    get_or_create_wallet(user_id)

    now = utcnow()
    txn = {
        "_id": ObjectId(),
        "type": "debit",
        "amount": amount,
        "description": description or "Withdrawal",
        "createdAt": now,
    }
    query = {"userId": user_id, "balance": {"$gte": amount}}
    if reference:
        txn["reference"] = reference
        query["transactions.reference"] = {"$ne": reference}

    wallet = db.wallets_collection.find_one_and_update(
        query,
        {
            "$inc": {"balance": -amount, "totalWithdrawn": amount},
            "$push": {"transactions": txn},
            "$set": {"updatedAt": now},
        },
        return_document=ReturnDocument.AFTER,
    )
    if wallet is None:
        if reference and has_reference(user_id, reference):
            logger.info("Debit %s for user %s already applied, skipping", reference, user_id)
            return db.wallets_collection.find_one({"userId": user_id})
        raise InsufficientBalance(
            ERROR_INSUFFICIENT_BALANCE,
            data={"requested": amount, "available": get_balance(user_id)},
        )

    logger.info("Debited %.2f from wallet of user %s, balance now %.2f", amount, user_id, wallet["balance"])
    return wallet


def has_reference(user_id, reference):
    """True when a transaction tagged ``reference`` is already in the user's ledger."""
    found = db.wallets_collection.find_one(
        {"userId": safe_object_id(user_id), "transactions.reference": reference}, {"_id": 1}
    )
    return found is not None


def get_balance(user_id):
    wallet = db.wallets_collection.find_one({"userId": safe_object_id(user_id)}, {"balance": 1})
    return wallet["balance"] if wallet else 0.0


def list_wallets():
    return list(db.wallets_collection.find().sort("updatedAt", -1))
