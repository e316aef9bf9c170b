from .orders import OrderItem, CustomerInfo, OrderCreate, OrderStatusUpdate, OrderRead, PaymentProofLink, ProductRead
from .affiliate import (
    BankInfo,
    AffiliateJoin,
    AffiliateRead,
    ReferralClick,
    ReferralRegistration,
    ReferralRead,
    ClickTracked,
    CommissionRead,
    CommissionRejection,
    PayoutRequestCreate,
    PayoutProcess,
    PayoutRead,
    SettingsRead,
    SettingsUpdate,
    Follower,
    LedgerBalances,
)
from .currency import ExchangeRateRead, ConversionRead
