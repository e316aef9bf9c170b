from api.database.base import Base
from .order import Order, OrderStatus, PaymentStatus
from .product import Product
from .affiliate import (
    AffiliateUser,
    AffiliateReferral,
    AffiliateCommission,
    AffiliatePayout,
    AffiliateSettings,
    ReferralStatus,
    CommissionStatus,
    PayoutStatus,
)
