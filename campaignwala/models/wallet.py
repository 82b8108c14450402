from pydantic import BaseModel, condecimal
from typing import Optional

Amount = condecimal(gt=0, decimal_places=2)


class CreditRequest(BaseModel):
    userId: str
    amount: Amount
    description: Optional[str] = None
    leadId: Optional[str] = None

class DebitRequest(BaseModel):
    userId: str
    amount: Amount
    description: Optional[str] = None
