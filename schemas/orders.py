import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from api.models.order import OrderStatus, PaymentStatus


class OrderItem(BaseModel):
    product_id: Optional[uuid.UUID] = None
    name: str
    quantity: int = Field(gt=0)
    price: int = Field(ge=0)
    selected_variant_name: Optional[str] = None
    selected_variants: Optional[Dict[str, str]] = None


class CustomerInfo(BaseModel):
    name: str
    email: str
    prefecture: str
    postal_code: str
    address: str
    phone: str
    notes: Optional[str] = None
    payment_method: Optional[str] = None


class OrderCreate(BaseModel):
    user_id: Optional[str] = None
    customer_info: CustomerInfo
    items: List[OrderItem] = Field(min_length=1)
    total_price: int = Field(ge=0)
    shipping_fee: int = Field(default=0, ge=0)
    payment_proof_url: Optional[str] = None
    referral_code: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    payment_status: Optional[PaymentStatus] = None


class OrderRead(BaseModel):
    id: uuid.UUID
    user_id: Optional[str]
    status: OrderStatus
    payment_status: PaymentStatus
    items: List[Dict[str, Any]]
    customer_info: Dict[str, Any]
    shipping_fee: int
    total_price: int
    payment_proof_url: Optional[str] = None
    affiliate_id: Optional[str] = None
    visitor_id: Optional[str] = None
    referral_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductRead(BaseModel):
    id: uuid.UUID
    name: str
    price: int
    stock: int
    variants: List[Dict[str, Any]]
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentProofLink(BaseModel):
    url: str
    expires_in: int
