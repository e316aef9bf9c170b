from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from schemas import ConversionRead, ExchangeRateRead
from services.currency import CurrencyConverter, get_currency_converter

router = APIRouter()


@router.get("/rate", response_model=ExchangeRateRead, summary="Current JPY to IDR rate")
async def get_rate(converter: CurrencyConverter = Depends(get_currency_converter)):
    rate = await converter.get_rate()
    return asdict(rate)


@router.get("/convert", response_model=ConversionRead, summary="Convert a yen amount to rupiah")
async def convert(
    yen: int = Query(..., ge=0),
    converter: CurrencyConverter = Depends(get_currency_converter),
):
    rupiah, rate = await converter.convert(yen)
    return ConversionRead(yen=yen, rupiah=rupiah, exchange_rate=ExchangeRateRead(**asdict(rate)))
