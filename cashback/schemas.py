import re
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import (
    AnyHttpUrl, BaseModel, EmailStr, Field, TypeAdapter, ValidationError, constr,
    field_validator, model_validator,
)

Status = Literal["pending", "approved", "rejected"]
Method = Literal["upi", "bank"]

UPI_RE = re.compile(r"^[\w.-]+@[\w]+$")
IFSC_RE = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
_HTTP_URL = TypeAdapter(AnyHttpUrl)

MIN_WITHDRAWAL = Decimal("10")

# ---------- Auth ----------
class SignUpIn(BaseModel):
    email: EmailStr
    password: constr(min_length=6)
    confirm_password: str
    full_name: constr(strip_whitespace=True, min_length=2)
    instagram_id: constr(strip_whitespace=True, min_length=1)
    phone_number: constr(strip_whitespace=True, min_length=1)

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

class LoginIn(BaseModel):
    email: EmailStr
    password: str

class SessionOut(BaseModel):
    ok: bool = True
    token: str
    user_id: str
    is_admin: bool

# ---------- Profiles ----------
class ProfileOut(BaseModel):
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    instagram_id: Optional[str] = None
    phone_number: Optional[str] = None
    wallet_balance: Decimal
    is_admin: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ---------- Brands ----------
class BrandCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=1)
    description: Optional[str] = None
    cashback_amount: Decimal = Field(..., gt=0, decimal_places=2)

class BrandOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    cashback_amount: Decimal

    class Config:
        from_attributes = True

# ---------- Submissions ----------
class SubmissionCreate(BaseModel):
    brand_id: str
    platform: constr(strip_whitespace=True, min_length=1)
    content_url: constr(strip_whitespace=True, max_length=500)
    note: Optional[constr(max_length=500)] = None

    @field_validator("content_url")
    @classmethod
    def _valid_url(cls, v: str) -> str:
        try:
            _HTTP_URL.validate_python(v)
        except ValidationError:
            raise ValueError("Please enter a valid URL") from None
        return v

    @field_validator("note")
    @classmethod
    def _blank_note_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

class SubmissionOut(BaseModel):
    id: str
    user_id: str
    brand_id: str
    brand_name: Optional[str] = None
    platform: str
    content_url: str
    note: Optional[str] = None
    cashback_amount: Decimal
    status: Status
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AdminSubmissionOut(SubmissionOut):
    email: Optional[str] = None

# ---------- Withdrawals ----------
class WithdrawalCreate(BaseModel):
    amount: Decimal = Field(..., ge=MIN_WITHDRAWAL, decimal_places=2)
    method: Method
    upi_id: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_ifsc: Optional[str] = None
    bank_holder_name: Optional[str] = None

    @model_validator(mode="after")
    def _method_fields(self):
        if self.method == "upi":
            upi = (self.upi_id or "").strip()
            if not upi:
                raise ValueError("UPI ID is required")
            if not UPI_RE.match(upi):
                raise ValueError("Invalid UPI ID format")
            self.upi_id = upi
            self.bank_account_number = self.bank_ifsc = self.bank_holder_name = None
        else:
            account = (self.bank_account_number or "").strip()
            ifsc = (self.bank_ifsc or "").strip().upper()
            holder = (self.bank_holder_name or "").strip()
            if len(account) < 8:
                raise ValueError("Account number must be at least 8 digits")
            if not IFSC_RE.match(ifsc):
                raise ValueError("Invalid IFSC code")
            if len(holder) < 2:
                raise ValueError("Account holder name is required")
            self.bank_account_number, self.bank_ifsc, self.bank_holder_name = account, ifsc, holder
            self.upi_id = None
        return self

class WithdrawalOut(BaseModel):
    id: str
    user_id: str
    amount: Decimal
    method: Method
    upi_id: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_ifsc: Optional[str] = None
    bank_holder_name: Optional[str] = None
    status: Status
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AdminWithdrawalOut(WithdrawalOut):
    email: Optional[str] = None
    wallet_balance: Optional[Decimal] = None

# ---------- Dashboard ----------
class DashboardOut(BaseModel):
    wallet_balance: Decimal
    total_submissions: int
    pending_count: int
    approved_count: int
    recent_submissions: List[SubmissionOut]

# ---------- Admin decisions ----------
class DecisionOut(BaseModel):
    ok: bool = True
    item_kind: Literal["submission", "withdrawal"]
    item_id: str
    status: Status
    user_id: str
    wallet_balance: Decimal

class WalletEntryOut(BaseModel):
    id: str
    item_kind: Literal["submission", "withdrawal"]
    item_id: str
    amount: Decimal
    balance_after: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
