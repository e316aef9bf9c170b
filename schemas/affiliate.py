import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from api.models.affiliate import CommissionStatus, PayoutStatus, ReferralStatus


class BankInfo(BaseModel):
    bank_name: str
    account_number: str
    account_name: str


class AffiliateJoin(BaseModel):
    user_id: str
    email: str
    display_name: str


class AffiliateRead(BaseModel):
    user_id: str
    email: str
    display_name: str
    referral_code: str
    total_clicks: int
    total_referrals: int
    total_commission: int
    pending_commission: int
    paid_commission: int
    bank_info: Optional[BankInfo] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReferralClick(BaseModel):
    referral_code: str
    visitor_token: Optional[str] = None


class ReferralRegistration(BaseModel):
    referral_code: str
    user_id: str
    email: str
    display_name: str
    visitor_token: Optional[str] = None


class ReferralRead(BaseModel):
    id: uuid.UUID
    referral_code: str
    referrer_id: str
    visitor_id: Optional[str] = None
    referred_user_id: Optional[str] = None
    referred_user_email: Optional[str] = None
    referred_user_name: Optional[str] = None
    status: ReferralStatus
    order_id: Optional[uuid.UUID] = None
    order_total: Optional[int] = None
    commission_amount: Optional[int] = None
    clicked_at: Optional[datetime] = None
    registered_at: Optional[datetime] = None
    ordered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClickTracked(BaseModel):
    visitor_token: str
    referral: ReferralRead


class CommissionRead(BaseModel):
    id: uuid.UUID
    affiliate_id: str
    referral_id: Optional[uuid.UUID] = None
    order_id: uuid.UUID
    order_total: int
    commission_rate: Decimal
    commission_amount: int
    status: CommissionStatus
    notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    paid_at: Optional[datetime] = None
    payout_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CommissionRejection(BaseModel):
    reason: str


class PayoutRequestCreate(BaseModel):
    amount: int = Field(gt=0)
    method: str
    bank_info: Optional[BankInfo] = None


class PayoutProcess(BaseModel):
    status: Literal["processing", "completed", "rejected"]
    notes: Optional[str] = None


class PayoutRead(BaseModel):
    id: uuid.UUID
    affiliate_id: str
    amount: int
    method: str
    status: PayoutStatus
    bank_info: Optional[BankInfo] = None
    notes: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class SettingsRead(BaseModel):
    default_commission_rate: Decimal
    min_payout_amount: int
    payout_methods: List[str]
    terms_and_conditions: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class SettingsUpdate(BaseModel):
    default_commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    min_payout_amount: Optional[int] = Field(default=None, ge=0)
    payout_methods: Optional[List[str]] = None
    terms_and_conditions: Optional[str] = None


class Follower(BaseModel):
    id: uuid.UUID
    affiliate_id: str
    user_id: str
    email: str
    display_name: str
    total_orders: int
    total_spent: int
    first_order_date: Optional[datetime] = None
    last_order_date: Optional[datetime] = None
    created_at: datetime


class LedgerBalances(BaseModel):
    total_commission: int
    pending_commission: int
    paid_commission: int
