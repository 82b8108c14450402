"""
Leads and commission settlement.

A lead moves ``pending -> approved -> completed`` (or straight to ``completed`` when the
offer has no second commission), and can be diverted to ``rejected`` while it is still
open. Every ``approve`` pays exactly one tranche into the referrer's wallet.

Settlement order: the wallet credit goes first and is keyed by ``<lead id>:commission<N>``
so it can never be applied twice; the lead is then advanced with a compare-and-swap on
its current status. Whoever loses the swap gets ``LeadAlreadySettled`` and the wallet
still holds a single credit. A crash between the two writes is repaired by simply calling
``approve`` (or ``reconcile_lead``) again.
"""
import logging
import re

from pymongo import ReturnDocument, DESCENDING, ASCENDING

from campaignwala import db
from campaignwala.errors import (
    InvalidStateTransition,
    LeadAlreadySettled,
    NotFound,
    ValidationFailed,
    ERROR_HR_USER_NOT_FOUND,
    ERROR_LEAD_NOT_FOUND,
    ERROR_OFFER_NOT_FOUND,
)
from campaignwala.services import wallet as wallet_service
from campaignwala.utils.helpers import (
    generate_lead_id,
    paginate,
    safe_object_id,
    to_amount,
    unique_id,
    utcnow,
)

logger = logging.getLogger("uvicorn.error")

LEAD_STATUSES = ("pending", "approved", "completed", "rejected")
OPEN_STATUSES = ("pending", "approved")


def _format_rupees(amount):
    return f"{amount:.0f}" if float(amount).is_integer() else f"{amount:.2f}"


def tranche_reference(lead_oid, tranche):
    return f"{lead_oid}:commission{tranche}"


def get_lead(lead_id):
    lead = db.leads_collection.find_one({"_id": safe_object_id(lead_id)})
    if not lead:
        raise NotFound(ERROR_LEAD_NOT_FOUND)
    return lead


def create_lead(offer_id, hr_user_id, customer_name, customer_contact, shared_link=""):
    offer = db.offers_collection.find_one({"_id": safe_object_id(offer_id)})
    if not offer:
        raise NotFound(ERROR_OFFER_NOT_FOUND)

    hr_user = db.users_collection.find_one({"_id": safe_object_id(hr_user_id)})
    if not hr_user:
        raise NotFound(ERROR_HR_USER_NOT_FOUND)

    now = utcnow()
    lead = {
        "leadId": unique_id(db.leads_collection, "leadId", generate_lead_id),
        "offerId": offer["_id"],
        "offerName": offer["name"],
        "category": offer.get("category", ""),
        "hrUserId": hr_user["_id"],
        "hrName": hr_user.get("name") or "User",
        "hrContact": hr_user.get("phoneNumber") or "N/A",
        "customerName": customer_name,
        "customerContact": customer_contact,
        # commissions are frozen at creation; later offer edits do not reach this lead
        "commission1": to_amount(offer.get("commission1")),
        "commission2": to_amount(offer.get("commission2")),
        "commission1Paid": False,
        "commission2Paid": False,
        "status": "pending",
        "sharedLink": shared_link or "",
        "remarks": "",
        "rejectionReason": "",
        "createdAt": now,
        "updatedAt": now,
    }
    result = db.leads_collection.insert_one(lead)
    lead["_id"] = result.inserted_id
    logger.info("Lead %s created for offer %s by HR user %s", lead["leadId"], offer["_id"], hr_user["_id"])
    return lead


def _plan_settlement(lead):
    """Return (tranche, amount, new_status) for the next approval or raise."""
    status = lead.get("status")
    commission1 = to_amount(lead.get("commission1"))
    commission2 = to_amount(lead.get("commission2"))

    if status == "pending" and not lead.get("commission1Paid"):
        return 1, commission1, "approved" if commission2 > 0 else "completed"
    if status == "approved" and not lead.get("commission2Paid"):
        return 2, commission2, "completed"
    raise LeadAlreadySettled()


def approve_lead(lead_id):
    lead = get_lead(lead_id)
    tranche, amount, new_status = _plan_settlement(lead)
    flag = f"commission{tranche}Paid"

    applied = False
    if amount > 0:
        _, applied = wallet_service.credit(
            lead["hrUserId"],
            amount,
            description=f"Commission {tranche} from lead {lead['leadId']} - {lead['offerName']}",
            lead_id=lead["_id"],
            reference=tranche_reference(lead["_id"], tranche),
        )

    updated = db.leads_collection.find_one_and_update(
        {"_id": lead["_id"], "status": lead["status"], flag: {"$ne": True}},
        {"$set": {"status": new_status, flag: True, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        current = db.leads_collection.find_one({"_id": lead["_id"]})
        if applied and current and current.get("status") == "rejected":
            logger.error(
                "Lead %s was rejected while commission %s (%.2f) was credited to user %s",
                lead["leadId"], tranche, amount, lead["hrUserId"],
            )
        raise LeadAlreadySettled()

    if amount > 0:
        outcome = f"Commission {tranche} (₹{_format_rupees(amount)}) credited."
    else:
        outcome = f"Commission {tranche} is ₹0, nothing credited."
    if tranche == 1 and new_status == "approved":
        message = f"{outcome} Approve again for Commission 2."
    else:
        message = f"{outcome} Lead completed."
    logger.info("Lead %s moved to %s, paid commission %s of %.2f", lead["leadId"], new_status, tranche, amount)

    return {
        "message": message,
        "lead": updated,
        "commissionPaid": amount,
        "newStatus": new_status,
        "commission1Paid": updated.get("commission1Paid", False),
        "commission2Paid": updated.get("commission2Paid", False),
    }


def reject_lead(lead_id, rejection_reason=""):
    oid = safe_object_id(lead_id)
    updated = db.leads_collection.find_one_and_update(
        {"_id": oid, "status": {"$in": list(OPEN_STATUSES)}},
        {"$set": {"status": "rejected", "rejectionReason": rejection_reason or "", "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        lead = get_lead(oid)
        raise InvalidStateTransition(f"Lead is already {lead['status']}")
    logger.info("Lead %s rejected: %s", updated["leadId"], rejection_reason)
    return updated


def update_lead(lead_id, status=None, remarks=None, rejection_reason=None):
    """Edit remarks, or reject. Payout states are only reachable through approve_lead."""
    if status is not None and status not in LEAD_STATUSES:
        raise ValidationFailed("Invalid status. Must be one of: " + ", ".join(LEAD_STATUSES))

    lead = get_lead(lead_id)
    if status == "rejected" and lead["status"] != "rejected":
        lead = reject_lead(lead["_id"], rejection_reason or "")
    elif status is not None and status != lead["status"]:
        raise InvalidStateTransition(f"Cannot change lead status from {lead['status']} to {status}; use approve or reject")

    if remarks is not None:
        lead = db.leads_collection.find_one_and_update(
            {"_id": lead["_id"]},
            {"$set": {"remarks": remarks, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    return lead


def delete_lead(lead_id):
    result = db.leads_collection.delete_one({"_id": safe_object_id(lead_id)})
    if result.deleted_count == 0:
        raise NotFound(ERROR_LEAD_NOT_FOUND)


def reconcile_lead(lead_id):
    """Re-apply the credit of every tranche already marked paid. Returns how many were missing."""
    lead = get_lead(lead_id)
    repaired = 0
    for tranche in (1, 2):
        amount = to_amount(lead.get(f"commission{tranche}"))
        if not lead.get(f"commission{tranche}Paid") or amount <= 0:
            continue
        _, applied = wallet_service.credit(
            lead["hrUserId"],
            amount,
            description=f"Commission {tranche} from lead {lead['leadId']} - {lead['offerName']}",
            lead_id=lead["_id"],
            reference=tranche_reference(lead["_id"], tranche),
        )
        if applied:
            logger.warning("Restored missing commission %s credit for lead %s", tranche, lead["leadId"])
            repaired += 1
    return lead, repaired


def list_leads(status=None, hr_user_id=None, search=None, page=1, limit=100, sort_by="createdAt", order="desc"):
    query = {}
    if status and status != "all":
        query["status"] = status.lower()
    if hr_user_id:
        query["hrUserId"] = safe_object_id(hr_user_id)
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {field: pattern}
            for field in ("leadId", "offerName", "category", "hrName", "customerName", "customerContact")
        ]

    page, limit, skip = paginate(page, limit)
    direction = ASCENDING if order == "asc" else DESCENDING
    leads = list(db.leads_collection.find(query).sort(sort_by, direction).skip(skip).limit(limit))
    total = db.leads_collection.count_documents(query)
    return leads, {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": -(-total // limit),
    }


def lead_stats(hr_user_id=None):
    match = {"hrUserId": safe_object_id(hr_user_id)} if hr_user_id else {}
    stats = {"total": 0}
    stats.update({status: 0 for status in LEAD_STATUSES})
    for row in db.leads_collection.aggregate([
        {"$match": match},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ]):
        stats[row["_id"]] = row["count"]
        stats["total"] += row["count"]
    return stats
