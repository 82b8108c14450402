import logging
import re

from fastapi import APIRouter, Depends, Query
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from campaignwala import db
from campaignwala.errors import (
    Conflict,
    NotFound,
    ValidationFailed,
    ERROR_OFFER_NAME_TAKEN,
    ERROR_OFFER_NOT_FOUND,
)
from campaignwala.middleware.auth_middleware import require_admin
from campaignwala.models.offer import OfferCreate, OfferReject, OfferUpdate
from campaignwala.utils.helpers import (
    api_response,
    generate_offers_id,
    paginate,
    safe_object_id,
    to_amount,
    unique_id,
    utcnow,
)

logger = logging.getLogger("uvicorn.error")

router = APIRouter()

MONEY_FIELDS = ("commission1", "commission2")


def _get_offer(offer_id):
    offer = db.offers_collection.find_one({"_id": safe_object_id(offer_id)})
    if not offer:
        raise NotFound(ERROR_OFFER_NOT_FOUND)
    return offer


def _name_key(name):
    return name.strip().lower()


def _ensure_unique_name(name, exclude_id=None):
    # the unique nameLower index is authoritative under concurrent writes
    query = {"nameLower": _name_key(name)}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if db.offers_collection.find_one(query, {"_id": 1}):
        raise Conflict(ERROR_OFFER_NAME_TAKEN)


@router.get("")
async def list_offers(
    category: str = None,
    isApproved: bool = None,
    search: str = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
):
    query = {}
    if category:
        query["category"] = category
    if isApproved is not None:
        query["isApproved"] = isApproved
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"description": pattern}, {"offersId": pattern}]

    page, limit, skip = paginate(page, limit)
    offers = list(db.offers_collection.find(query).sort("createdAt", -1).skip(skip).limit(limit))
    total = db.offers_collection.count_documents(query)
    return api_response("Offers retrieved successfully", {
        "offers": offers,
        "pagination": {"total": total, "page": page, "limit": limit, "totalPages": -(-total // limit)},
    })


@router.get("/{offerId}")
async def get_offer(offerId: str):
    return api_response("Offer retrieved successfully", _get_offer(offerId))


@router.post("", status_code=201)
async def create_offer(request: OfferCreate, admin=Depends(require_admin)):
    _ensure_unique_name(request.name)

    now = utcnow()
    offer = request.model_dump()
    offer.update({
        "name": request.name.strip(),
        "nameLower": _name_key(request.name),
        "commission1": to_amount(request.commission1),
        "commission2": to_amount(request.commission2),
        "offersId": unique_id(db.offers_collection, "offersId", generate_offers_id),
        "isApproved": False,
        "rejectionReason": "",
        "createdAt": now,
        "updatedAt": now,
    })
    try:
        offer["_id"] = db.offers_collection.insert_one(offer).inserted_id
    except DuplicateKeyError:
        raise Conflict(ERROR_OFFER_NAME_TAKEN)

    logger.info("Offer %s (%s) created by admin %s", offer["offersId"], offer["name"], admin["_id"])
    return api_response("Offer created successfully", offer)


@router.put("/{offerId}")
async def update_offer(offerId: str, request: OfferUpdate, admin=Depends(require_admin)):
    offer = _get_offer(offerId)
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationFailed("No fields to update")

    if "name" in updates:
        if updates["name"] is None:
            raise ValidationFailed("Offer name cannot be empty")
        updates["name"] = updates["name"].strip()
        updates["nameLower"] = _name_key(updates["name"])
        _ensure_unique_name(updates["name"], exclude_id=offer["_id"])
    for field in MONEY_FIELDS:
        if field in updates:
            updates[field] = to_amount(updates[field])
    updates["updatedAt"] = utcnow()

    try:
        updated = db.offers_collection.find_one_and_update(
            {"_id": offer["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        raise Conflict(ERROR_OFFER_NAME_TAKEN)
    return api_response("Offer updated successfully", updated)


@router.delete("/{offerId}")
async def delete_offer(offerId: str, admin=Depends(require_admin)):
    result = db.offers_collection.delete_one({"_id": safe_object_id(offerId)})
    if result.deleted_count == 0:
        raise NotFound(ERROR_OFFER_NOT_FOUND)
    logger.info("Offer %s deleted by admin %s", offerId, admin["_id"])
    return api_response("Offer deleted successfully")


@router.post("/{offerId}/approve")
async def approve_offer(offerId: str, admin=Depends(require_admin)):
    now = utcnow()
    updated = db.offers_collection.find_one_and_update(
        {"_id": safe_object_id(offerId)},
        {"$set": {
            "isApproved": True,
            "approvedBy": admin["_id"],
            "approvedAt": now,
            "rejectionReason": "",
            "updatedAt": now,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound(ERROR_OFFER_NOT_FOUND)
    return api_response("Offer approved successfully", updated)


@router.post("/{offerId}/reject")
async def reject_offer(offerId: str, request: OfferReject, admin=Depends(require_admin)):
    updated = db.offers_collection.find_one_and_update(
        {"_id": safe_object_id(offerId)},
        {
            "$set": {"isApproved": False, "rejectionReason": request.rejectionReason or "", "updatedAt": utcnow()},
            "$unset": {"approvedBy": "", "approvedAt": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound(ERROR_OFFER_NOT_FOUND)
    return api_response("Offer rejected successfully", updated)
