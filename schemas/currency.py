from pydantic import BaseModel, Field


class ExchangeRateRead(BaseModel):
    rate: float
    timestamp: float
    source: str
    is_fallback: bool


class ConversionRead(BaseModel):
    yen: int = Field(ge=0)
    rupiah: int
    exchange_rate: ExchangeRateRead
