import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UUID, JSON, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from api.database.base import Base


class OrderStatus(enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    processing = "processing"
    completed = "completed"


class PaymentStatus(enum.Enum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus, name="orderstatus"), default=OrderStatus.pending, nullable=False, index=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus, name="paymentstatus"), default=PaymentStatus.pending, nullable=False)

    # line items: product_id, name, quantity, price, selected_variant_name, selected_variants
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    customer_info: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    shipping_fee: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_proof_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    affiliate_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    visitor_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    referral_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
