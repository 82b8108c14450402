from pydantic import BaseModel
from typing import Optional


class LeadCreate(BaseModel):
    offerId: str
    hrUserId: str
    customerName: str
    customerContact: str
    sharedLink: Optional[str] = ""

class LeadUpdate(BaseModel):
    status: Optional[str] = None
    remarks: Optional[str] = None
    rejectionReason: Optional[str] = None

class LeadReject(BaseModel):
    rejectionReason: Optional[str] = ""
