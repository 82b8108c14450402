from fastapi import APIRouter, Depends, Query

from campaignwala.middleware.auth_middleware import ensure_self_or_admin, get_current_user, require_admin
from campaignwala.models.lead import LeadCreate, LeadReject, LeadUpdate
from campaignwala.services import leads as lead_service
from campaignwala.utils.helpers import api_response

router = APIRouter()


def _scope_to_user(user, hr_user_id):
    """Admins may look at anyone's leads, everyone else only at their own."""
    if user.get("role") == "admin":
        return hr_user_id
    return str(user["_id"])


@router.post("", status_code=201)
async def create_lead(request: LeadCreate):
    lead = lead_service.create_lead(
        request.offerId,
        request.hrUserId,
        request.customerName,
        request.customerContact,
        request.sharedLink,
    )
    return api_response("Lead created successfully", lead)


@router.get("")
async def list_leads(
    status: str = None,
    hrUserId: str = None,
    search: str = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    sortBy: str = "createdAt",
    order: str = "desc",
    user=Depends(get_current_user),
):
    leads, pagination = lead_service.list_leads(
        status=status,
        hr_user_id=_scope_to_user(user, hrUserId),
        search=search,
        page=page,
        limit=limit,
        sort_by=sortBy,
        order=order,
    )
    return api_response("Leads retrieved successfully", {"leads": leads, "pagination": pagination})


@router.get("/stats")
async def lead_stats(hrUserId: str = None, user=Depends(get_current_user)):
    stats = lead_service.lead_stats(_scope_to_user(user, hrUserId))
    return api_response("Lead stats retrieved successfully", stats)


@router.get("/{leadId}")
async def get_lead(leadId: str, user=Depends(get_current_user)):
    lead = lead_service.get_lead(leadId)
    ensure_self_or_admin(user, lead["hrUserId"])
    return api_response("Lead retrieved successfully", lead)


@router.put("/{leadId}")
async def update_lead(leadId: str, request: LeadUpdate, admin=Depends(require_admin)):
    lead = lead_service.update_lead(
        leadId,
        status=request.status,
        remarks=request.remarks,
        rejection_reason=request.rejectionReason,
    )
    return api_response("Lead updated successfully", lead)


@router.delete("/{leadId}")
async def delete_lead(leadId: str, admin=Depends(require_admin)):
    lead_service.delete_lead(leadId)
    return api_response("Lead deleted successfully")


@router.post("/{leadId}/approve")
async def approve_lead(leadId: str, admin=Depends(require_admin)):
    result = lead_service.approve_lead(leadId)
    message = result.pop("message")
    return api_response(message, result)


@router.post("/{leadId}/reject")
async def reject_lead(leadId: str, request: LeadReject = None, admin=Depends(require_admin)):
    reason = request.rejectionReason if request else ""
    lead = lead_service.reject_lead(leadId, reason)
    return api_response("Lead rejected successfully", lead)


@router.post("/{leadId}/reconcile")
async def reconcile_lead(leadId: str, admin=Depends(require_admin)):
    lead, repaired = lead_service.reconcile_lead(leadId)
    message = f"Restored {repaired} missing commission credit(s)" if repaired else "Lead wallet credits are consistent"
    return api_response(message, {"lead": lead, "repaired": repaired})
