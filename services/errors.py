class StoreError(Exception): ...


class NotFoundError(StoreError): ...
class AlreadyConfirmedError(StoreError): ...
class VariantNotFoundError(StoreError): ...
class InvalidReferralCodeError(StoreError): ...
class InsufficientCommissionError(StoreError): ...
class BelowMinimumPayoutError(StoreError): ...
class InvalidStateError(StoreError): ...
class ConcurrencyConflictError(StoreError): ...


class InsufficientStockError(StoreError):
    def __init__(self, product_name: str, variant_name: str | None, available: int, requested: int):
        self.product_name = product_name
        self.variant_name = variant_name
        self.available = available
        self.requested = requested
        label = f"{product_name} ({variant_name})" if variant_name else product_name
        super().__init__(f"Not enough stock for {label}. Available: {available}, Requested: {requested}")
