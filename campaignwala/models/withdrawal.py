from pydantic import BaseModel, condecimal
from typing import Optional

from campaignwala.models.user import BankDetails

WithdrawalAmount = condecimal(ge=1, decimal_places=2)


class WithdrawalCreate(BaseModel):
    userId: str
    amount: WithdrawalAmount
    bankDetails: Optional[BankDetails] = None

class WithdrawalApprove(BaseModel):
    adminId: Optional[str] = None
    transactionId: Optional[str] = ""
    remarks: Optional[str] = ""

class WithdrawalReject(BaseModel):
    adminId: Optional[str] = None
    rejectionReason: Optional[str] = None
    remarks: Optional[str] = ""
