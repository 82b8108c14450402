from fastapi import APIRouter, Depends, Query

from campaignwala.middleware.auth_middleware import ensure_self_or_admin, get_current_user, require_admin, require_verified
from campaignwala.models.withdrawal import WithdrawalApprove, WithdrawalCreate, WithdrawalReject
from campaignwala.services import withdrawals as withdrawal_service
from campaignwala.utils.helpers import api_response

router = APIRouter()


@router.post("", status_code=201)
async def create_withdrawal(request: WithdrawalCreate, user=Depends(require_verified)):
    ensure_self_or_admin(user, request.userId)
    bank_details = request.bankDetails.model_dump(exclude_none=True) if request.bankDetails else {}
    withdrawal = withdrawal_service.create_withdrawal(request.userId, request.amount, bank_details)
    return api_response("Withdrawal request created successfully", withdrawal)


@router.get("")
async def list_withdrawals(
    status: str = None,
    userId: str = None,
    search: str = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    sortBy: str = "requestDate",
    order: str = "desc",
    admin=Depends(require_admin),
):
    withdrawals, pagination = withdrawal_service.list_withdrawals(
        status=status, user_id=userId, search=search, page=page, limit=limit, sort_by=sortBy, order=order
    )
    return api_response("Withdrawals retrieved successfully", {"withdrawals": withdrawals, "pagination": pagination})


@router.get("/stats")
async def withdrawal_stats(admin=Depends(require_admin)):
    return api_response("Withdrawal stats retrieved successfully", withdrawal_service.withdrawal_stats())


@router.get("/user/{userId}")
async def user_withdrawals(
    userId: str,
    status: str = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    user=Depends(get_current_user),
):
    ensure_self_or_admin(user, userId)
    withdrawals, pagination = withdrawal_service.withdrawals_for_user(userId, status=status, page=page, limit=limit)
    return api_response("Withdrawals retrieved successfully", {"withdrawals": withdrawals, "pagination": pagination})


@router.get("/{withdrawalId}")
async def get_withdrawal(withdrawalId: str, admin=Depends(require_admin)):
    return api_response("Withdrawal retrieved successfully", withdrawal_service.get_withdrawal(withdrawalId))


@router.put("/{withdrawalId}/approve")
async def approve_withdrawal(withdrawalId: str, request: WithdrawalApprove = None, admin=Depends(require_admin)):
    request = request or WithdrawalApprove()
    withdrawal = withdrawal_service.approve_withdrawal(
        withdrawalId,
        admin_id=request.adminId or admin["_id"],
        transaction_id=request.transactionId,
        remarks=request.remarks,
    )
    return api_response("Withdrawal approved successfully", withdrawal)


@router.put("/{withdrawalId}/reject")
async def reject_withdrawal(withdrawalId: str, request: WithdrawalReject, admin=Depends(require_admin)):
    withdrawal = withdrawal_service.reject_withdrawal(
        withdrawalId,
        admin_id=request.adminId or admin["_id"],
        rejection_reason=request.rejectionReason,
        remarks=request.remarks,
    )
    return api_response("Withdrawal rejected successfully", withdrawal)


@router.delete("/{withdrawalId}")
async def delete_withdrawal(withdrawalId: str, admin=Depends(require_admin)):
    withdrawal_service.delete_withdrawal(withdrawalId)
    return api_response("Withdrawal deleted successfully")
