# campaignwala/models/user.py

from pydantic import BaseModel
from typing import Optional, Literal


class SendOtpRequest(BaseModel):
    phoneNumber: str

class RegisterRequest(BaseModel):
    phoneNumber: Optional[str] = None
    otp: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

class LoginRequest(BaseModel):
    phoneNumber: Optional[str] = None
    password: Optional[str] = None
    otp: Optional[str] = None

class VerifyOtpRequest(BaseModel):
    phoneNumber: Optional[str] = None
    otp: Optional[str] = None

class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None
    otp: Optional[str] = None

class ResetPasswordRequest(BaseModel):
    phoneNumber: Optional[str] = None
    otp: Optional[str] = None
    newPassword: Optional[str] = None

class UpdateProfileRequest(BaseModel):
    password: Optional[str] = None
    currentPassword: Optional[str] = None
    otp: Optional[str] = None

class UpdateRoleRequest(BaseModel):
    role: Literal["user", "admin"]


# --- KYC ---

class PersonalDetails(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[Literal["", "Male", "Female", "Other"]] = None
    address1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None

class KycDocuments(BaseModel):
    panNumber: Optional[str] = None
    aadhaarNumber: Optional[str] = None
    panImage: Optional[str] = None
    aadhaarImage: Optional[str] = None

class BankDetails(BaseModel):
    bankName: Optional[str] = None
    accountHolderName: Optional[str] = None
    accountNumber: Optional[str] = None
    ifscCode: Optional[str] = None
    branchAddress: Optional[str] = None
    upiId: Optional[str] = None

class KycUpdateRequest(PersonalDetails, KycDocuments, BankDetails):
    """
    Accepts the KYC fields flat, grouped, or both. When a field is given in both places
    the value inside the group wins.
    """
    personalDetails: Optional[PersonalDetails] = None
    kycDocuments: Optional[KycDocuments] = None
    bankDetails: Optional[BankDetails] = None

    def _merged(self, group_model, group):
        values = {
            name: getattr(self, name)
            for name in group_model.model_fields
            if name in self.model_fields_set
        }
        if group is not None:
            values.update(group.model_dump(exclude_unset=True))
        return values

    def personal(self):
        return self._merged(PersonalDetails, self.personalDetails)

    def documents(self):
        values = self._merged(KycDocuments, self.kycDocuments)
        if values.get("panNumber"):
            values["panNumber"] = values["panNumber"].strip().upper()
        return values

    def bank(self):
        values = self._merged(BankDetails, self.bankDetails)
        if values.get("ifscCode"):
            values["ifscCode"] = values["ifscCode"].strip().upper()
        return values

class KycApproveRequest(BaseModel):
    remarks: Optional[str] = None

class KycRejectRequest(BaseModel):
    reason: Optional[str] = None
