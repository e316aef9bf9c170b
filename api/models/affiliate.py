import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import UUID, JSON, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from api.database.base import Base


class ReferralStatus(enum.Enum):
    clicked = "clicked"
    registered = "registered"
    ordered = "ordered"
    approved = "approved"
    rejected = "rejected"
    paid = "paid"
    # written by older storefront builds, only ever read
    purchased = "purchased"


class CommissionStatus(enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    paid = "paid"


class PayoutStatus(enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    rejected = "rejected"


class AffiliateUser(Base):
    __tablename__ = "affiliates"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    referral_code: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)

    total_clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_referrals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_commission: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_commission: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_commission: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    bank_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AffiliateReferral(Base):
    __tablename__ = "affiliate_referrals"
    __table_args__ = (UniqueConstraint("referral_code", "visitor_id", name="uq_referral_code_visitor"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    referral_code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    referrer_id: Mapped[str] = mapped_column(ForeignKey("affiliates.user_id"), nullable=False, index=True)
    visitor_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    referred_user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    referred_user_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    referred_user_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[ReferralStatus] = mapped_column(Enum(ReferralStatus, name="referralstatus"), nullable=False)

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    order_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    commission_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    clicked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    registered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ordered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AffiliateCommission(Base):
    __tablename__ = "affiliate_commissions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id: Mapped[str] = mapped_column(ForeignKey("affiliates.user_id"), nullable=False, index=True)
    referral_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("affiliate_referrals.id"), nullable=True)
    order_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, unique=True)
    order_total: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[CommissionStatus] = mapped_column(Enum(CommissionStatus, name="commissionstatus"), default=CommissionStatus.pending, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payout_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("affiliate_payouts.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AffiliatePayout(Base):
    __tablename__ = "affiliate_payouts"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id: Mapped[str] = mapped_column(ForeignKey("affiliates.user_id"), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[PayoutStatus] = mapped_column(Enum(PayoutStatus, name="affiliatepayoutstatus"), default=PayoutStatus.pending, nullable=False)
    bank_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AffiliateSettings(Base):
    __tablename__ = "affiliate_settings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default="default")
    default_commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    min_payout_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payout_methods: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    terms_and_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
